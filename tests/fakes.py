"""Deterministic stand-ins for the locator's collaborators."""

from __future__ import annotations

import threading
import zlib
from typing import Callable, Iterable, List, Optional, Sequence

import numpy as np
from PIL import Image

from screen_locator.common.geometry import Region
from screen_locator.common.text_utils import normalize_text
from screen_locator.elements import RetrievedCandidate, StoredElement
from screen_locator.outcomes import LocationConfirmation, UserDecision


def blank_screen(width: int = 800, height: int = 600, color=(240, 240, 240)) -> Image.Image:
    return Image.new("RGB", (width, height), color)


def noise_image(width: int, height: int, seed: int = 0) -> Image.Image:
    rng = np.random.default_rng(seed)
    arr = rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)
    return Image.fromarray(arr, mode="RGB")


def hashed_embedding(text: str, dims: int = 64) -> np.ndarray:
    vec = np.zeros(dims, dtype=np.float32)
    for tok in normalize_text(text or "").split():
        vec[zlib.crc32(tok.encode("utf-8")) % dims] += 1.0
    return vec


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = float(start)
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(float(seconds))
        self.now += float(seconds)


class ScriptedGrounder:
    """Returns proposals from ``script(call_index, image)``; may raise."""

    def __init__(self, script: Callable[[int, Image.Image], List[Region]]):
        self.script = script
        self.calls = 0
        self.descriptions: List[str] = []
        self._lock = threading.Lock()

    @classmethod
    def fixed(cls, per_call: Sequence[Sequence[Region]]) -> "ScriptedGrounder":
        return cls(lambda i, _img: list(per_call[i % len(per_call)]))

    @classmethod
    def failing(cls, exc: Exception) -> "ScriptedGrounder":
        def _raise(_i, _img):
            raise exc
        return cls(_raise)

    def propose_regions(self, description: str, image: Image.Image) -> List[Region]:
        with self._lock:
            i = self.calls
            self.calls += 1
            self.descriptions.append(description)
        return self.script(i, image)


class ScriptedValidator:
    def __init__(self, answers: Sequence[Optional[str]]):
        self.answers = list(answers)
        self.calls = 0
        self.seen_labels: List[List[str]] = []
        self._lock = threading.Lock()

    def choose_label(self, labeled_image, description, candidate_labels):
        with self._lock:
            i = self.calls
            self.calls += 1
            self.seen_labels.append(list(candidate_labels))
        answer = self.answers[i % len(self.answers)]
        if isinstance(answer, Exception):
            raise answer
        return answer


class StaticRetriever:
    """Returns fixed candidates; ``contextual`` answers calls that pass page context."""

    def __init__(self, candidates: Iterable[RetrievedCandidate], contextual: Iterable[RetrievedCandidate] = ()):
        self.candidates = list(candidates)
        self.contextual = list(contextual)
        self.calls: List[dict] = []

    def retrieve(self, query, top_n, min_score, context_text=None):
        self.calls.append({"query": query, "top_n": top_n, "min_score": min_score, "context_text": context_text})
        source = self.contextual if context_text is not None else self.candidates
        return [c for c in source if c.score >= min_score][:top_n]

    def store(self, element):
        raise NotImplementedError

    def update(self, original, updated):
        raise NotImplementedError

    def remove(self, element):
        raise NotImplementedError


class RecordingMatcher:
    def __init__(self, feature: Sequence[Region] = (), correlation: Sequence[Region] = ()):
        self.feature = list(feature)
        self.correlation = list(correlation)
        self.calls = 0
        self._lock = threading.Lock()

    def feature_match(self, reference, screen, threshold):
        with self._lock:
            self.calls += 1
        return list(self.feature)

    def correlation_match(self, reference, screen, threshold):
        return list(self.correlation)


class FixedPageDescriber:
    def __init__(self, text: str):
        self.text = text
        self.calls = 0

    def describe_page(self, image):
        self.calls += 1
        return self.text


class FakeScreen:
    def __init__(self, image: Optional[Image.Image] = None):
        self.image = image if image is not None else blank_screen()
        self.captures = 0

    def capture(self) -> Image.Image:
        self.captures += 1
        return self.image.copy()


class ScriptedUser:
    def __init__(
        self,
        decisions: Sequence[UserDecision] = (UserDecision.TERMINATE,),
        confirmations: Sequence[LocationConfirmation] = (LocationConfirmation.CORRECT,),
        new_region: Optional[Region] = None,
        refine_result: bool = True,
    ):
        self.decisions = list(decisions)
        self.confirmations = list(confirmations)
        self.new_region = new_region
        self.refine_result = refine_result
        self.prompts: List[str] = []
        self.refined: List[List[StoredElement]] = []
        self.confirm_calls = 0
        self.created = 0

    @property
    def total_calls(self) -> int:
        return len(self.prompts) + len(self.refined) + self.confirm_calls + self.created

    def confirm_location(self, description, region, image):
        answer = self.confirmations[min(self.confirm_calls, len(self.confirmations) - 1)]
        self.confirm_calls += 1
        return answer

    def prompt_next_action(self, reason):
        decision = self.decisions[min(len(self.prompts), len(self.decisions) - 1)]
        self.prompts.append(reason)
        return decision

    def create_new_element(self, description, image):
        self.created += 1
        return self.new_region

    def refine_elements(self, elements, reason):
        self.refined.append(list(elements))
        return self.refine_result


def candidate(name: str, score: float, page_relevance: Optional[float] = None, **element_kwargs) -> RetrievedCandidate:
    element = StoredElement(
        name=name,
        own_description=element_kwargs.pop("own_description", f"{name} description"),
        **element_kwargs,
    )
    return RetrievedCandidate(element=element, score=score, page_relevance=page_relevance)
