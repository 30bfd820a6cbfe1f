from __future__ import annotations

import json
import unittest
from types import SimpleNamespace
from unittest import mock

import numpy as np

from screen_locator.common.geometry import CoordinateSpace
from screen_locator.errors import ConfigurationError, ModelResponseError, TransientModelError
from screen_locator.models.embeddings import OpenAIEmbedder
from screen_locator.models.openai_vision import (
    OpenAIGroundingModel,
    OpenAIPageDescriber,
    OpenAIValidationModel,
    _extract_json,
)
from screen_locator.security.rate_limiter import RateLimitConfig, RateLimiter, RateLimitExceeded
from tests.fakes import FakeClock, blank_screen


def _response(content, status: int = 200):
    body = {"choices": [{"message": {"content": json.dumps(content) if not isinstance(content, str) else content}}]}
    return mock.Mock(status_code=status, text="error body", json=mock.Mock(return_value=body))


class TestExtractJson(unittest.TestCase):
    def test_plain_and_wrapped(self) -> None:
        self.assertEqual(_extract_json('{"a": 1}'), {"a": 1})
        self.assertEqual(_extract_json('Sure! ```json\n{"a": 2}\n```'), {"a": 2})

    def test_rejects_non_objects(self) -> None:
        with self.assertRaises(ValueError):
            _extract_json("")
        with self.assertRaises(ValueError):
            _extract_json("[1, 2]")


@mock.patch("screen_locator.models.openai_vision.requests.post")
class TestVisionModels(unittest.TestCase):
    def test_grounding_boxes_are_normalized(self, post) -> None:
        post.return_value = _response({
            "bounding_boxes": [{"x1": 100, "y1": 200, "x2": 300, "y2": 260}, {"x1": "bad"}]
        })
        model = OpenAIGroundingModel(api_key="sk-test")
        regions = model.propose_regions("Save button", blank_screen())
        self.assertEqual(len(regions), 1)
        self.assertEqual(regions[0].space, CoordinateSpace.NORMALIZED)
        self.assertEqual(regions[0].as_tuple(), (100.0, 200.0, 300.0, 260.0))

        payload = post.call_args.kwargs["json"]
        self.assertEqual(payload["model"], "gpt-4o")
        self.assertEqual(payload["response_format"], {"type": "json_object"})
        self.assertIn("Save button", payload["messages"][1]["content"][0]["text"])

    def test_absolute_boxes_undo_upload_scaling(self, post) -> None:
        post.return_value = _response({"bounding_boxes": [{"x1": 100, "y1": 100, "x2": 200, "y2": 150}]})
        model = OpenAIGroundingModel(api_key="sk-test", normalized=False)
        regions = model.propose_regions("Save button", blank_screen(3136, 1000))
        self.assertEqual(regions[0].space, CoordinateSpace.ABSOLUTE)
        self.assertEqual(regions[0].as_tuple(), (200.0, 200.0, 400.0, 300.0))

    def test_validation_answer(self, post) -> None:
        post.return_value = _response({"success": True, "bounding_box_id": " B ", "message": ""})
        model = OpenAIValidationModel(api_key="sk-test")
        self.assertEqual(model.choose_label(blank_screen(), "Save button", ["A", "B"]), "B")

        post.return_value = _response({"success": False, "bounding_box_id": "", "message": "not visible"})
        self.assertIsNone(model.choose_label(blank_screen(), "Save button", ["A", "B"]))

    def test_page_description(self, post) -> None:
        post.return_value = _response({"page_description": " Invoice editor with a toolbar. "})
        self.assertEqual(OpenAIPageDescriber(api_key="sk-test").describe_page(blank_screen()),
                         "Invoice editor with a toolbar.")

    def test_http_error_is_transient(self, post) -> None:
        post.return_value = _response({}, status=500)
        with self.assertRaises(ModelResponseError) as ctx:
            OpenAIPageDescriber(api_key="sk-test").describe_page(blank_screen())
        self.assertIsInstance(ctx.exception, TransientModelError)

    def test_unreadable_answer_is_transient(self, post) -> None:
        post.return_value = _response("I cannot see any buttons here.")
        with self.assertRaises(ModelResponseError):
            OpenAIValidationModel(api_key="sk-test").choose_label(blank_screen(), "Save button", ["A"])

    def test_rate_limit_checked_before_call(self, post) -> None:
        limiter = RateLimiter(RateLimitConfig(requests_per_minute=1, burst_size=0), clock=FakeClock())
        post.return_value = _response({"page_description": "x"})
        describer = OpenAIPageDescriber(api_key="sk-test", rate_limiter=limiter)
        describer.describe_page(blank_screen())
        with self.assertRaises(RateLimitExceeded):
            describer.describe_page(blank_screen())
        self.assertEqual(post.call_count, 1)


class TestCredentials(unittest.TestCase):
    def test_missing_api_key(self) -> None:
        with mock.patch.dict("os.environ", {}, clear=True):
            with self.assertRaises(ConfigurationError):
                OpenAIGroundingModel()
            with self.assertRaises(ConfigurationError):
                OpenAIEmbedder()


class TestEmbedder(unittest.TestCase):
    def test_returns_float_vector(self) -> None:
        client = mock.Mock()
        client.embeddings.create.return_value = SimpleNamespace(data=[SimpleNamespace(embedding=[0.5, -1.0, 2.0])])
        vec = OpenAIEmbedder(client=client)("login button")
        self.assertEqual(vec.dtype, np.float32)
        np.testing.assert_allclose(vec, [0.5, -1.0, 2.0])
        client.embeddings.create.assert_called_once_with(model="text-embedding-3-small", input="login button")


if __name__ == "__main__":
    unittest.main()
