from __future__ import annotations

import io
import json
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest import mock

from PIL import Image

from screen_locator import cli
from screen_locator.common.geometry import CoordinateSpace, Region
from screen_locator.retrieval.memory_store import InMemoryElementStore
from tests.fakes import blank_screen, hashed_embedding


class FakeGroundingModel:
    def __init__(self, **_kwargs):
        pass

    def propose_regions(self, description, image):
        return [Region(100, 200, 150, 240, CoordinateSpace.NORMALIZED)]


class FakeValidationModel:
    def __init__(self, **_kwargs):
        pass

    def choose_label(self, labeled_image, description, candidate_labels):
        return candidate_labels[0]


def _run(argv):
    out = io.StringIO()
    with redirect_stdout(out):
        code = cli.main(argv)
    return code, out.getvalue()


@mock.patch.object(cli, "OpenAIEmbedder", return_value=hashed_embedding)
class TestCli(unittest.TestCase):
    def test_add_then_locate(self, _embedder) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store_path = str(Path(tmp) / "store.json")
            reference = str(Path(tmp) / "ref.png")
            screenshot = str(Path(tmp) / "screen.png")
            Image.new("RGB", (50, 24), (0, 0, 0)).save(reference)
            blank_screen(1000, 500).save(screenshot)

            code, out = _run(["add", "--store", store_path, "--name", "save button",
                              "--description", "green save button", "--reference", reference])
            self.assertEqual(code, 0)
            self.assertEqual(json.loads(out)["status"], "stored")
            self.assertEqual(len(InMemoryElementStore.load(store_path, hashed_embedding)), 1)

            with mock.patch.object(cli, "OpenAIGroundingModel", FakeGroundingModel), \
                    mock.patch.object(cli, "OpenAIValidationModel", FakeValidationModel), \
                    mock.patch.dict("os.environ", {"ALGORITHMIC_SEARCH_ENABLED": "false"}):
                code, out = _run(["locate", "--store", store_path, "--screenshot", screenshot, "save button"])
            self.assertEqual(code, 0)
            result = json.loads(out)
            self.assertEqual(result["status"], "found")
            self.assertEqual(result["box"], [100, 100, 150, 120])

    def test_bad_environment_is_reported(self, _embedder) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store_path = str(Path(tmp) / "store.json")
            screenshot = str(Path(tmp) / "screen.png")
            InMemoryElementStore(hashed_embedding).save(store_path)
            blank_screen().save(screenshot)
            with mock.patch.dict("os.environ", {"RETRIEVER_TOP_N": "many"}):
                code, _ = _run(["locate", "--store", store_path, "--screenshot", screenshot, "x"])
        self.assertEqual(code, 2)

    def test_missing_store_is_reported(self, _embedder) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            screenshot = str(Path(tmp) / "screen.png")
            blank_screen().save(screenshot)
            err = io.StringIO()
            with redirect_stderr(err):
                code, out = _run(["locate", "--store", str(Path(tmp) / "missing.json"),
                                  "--screenshot", screenshot, "save button"])
        self.assertEqual(code, 2)
        self.assertEqual(out, "")
        self.assertIn("missing.json", err.getvalue())


if __name__ == "__main__":
    unittest.main()
