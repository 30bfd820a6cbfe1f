"""
In-memory similarity store for UI elements with JSON persistence.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from screen_locator.common.cv_utils import decode_png_base64, encode_png_base64
from screen_locator.common.math_utils import cosine_similarity, relevance_from_cosine
from screen_locator.elements import RetrievedCandidate, StoredElement

logger = logging.getLogger(__name__)

EmbedFn = Callable[[str], np.ndarray]

STORE_FORMAT_VERSION = 1


class InMemoryElementStore:
    """
    Cosine-similarity store keyed by element name.

    The retrieval score is ``(1 + cos) / 2`` between the query and the
    element name embeddings. With ``context_text`` each candidate also gets a
    page relevance computed the same way against the element's own and
    anchor descriptions.

    Example:
        >>> store = InMemoryElementStore(embed=my_embedder)
        >>> store.store(StoredElement(name="Login button", own_description="..."))
        >>> store.retrieve("login button", top_n=5, min_score=0.0)
    """

    def __init__(self, embed: EmbedFn):
        self._embed = embed
        self._elements: Dict[str, StoredElement] = {}
        self._name_vectors: Dict[str, np.ndarray] = {}
        self._context_vectors: Dict[str, np.ndarray] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        return len(self._elements)

    def elements(self) -> List[StoredElement]:
        with self._lock:
            return list(self._elements.values())

    def retrieve(
        self,
        query: str,
        top_n: int,
        min_score: float,
        context_text: Optional[str] = None,
    ) -> List[RetrievedCandidate]:
        query_vec = self._embed(query)
        context_vec = self._embed(context_text) if context_text else None
        with self._lock:
            entries = list(self._elements.values())
            scored = []
            for element in entries:
                score = relevance_from_cosine(cosine_similarity(query_vec, self._name_vectors[element.id]))
                if score < float(min_score):
                    continue
                scored.append((element, score))

        # Stable sort keeps insertion order for equal scores.
        scored.sort(key=lambda t: -t[1])
        out: List[RetrievedCandidate] = []
        for element, score in scored[: int(top_n)]:
            relevance = None
            if context_vec is not None:
                relevance = relevance_from_cosine(cosine_similarity(context_vec, self._context_vector(element)))
            out.append(RetrievedCandidate(element=element, score=score, page_relevance=relevance))
        logger.debug("Retrieved %d candidates for %r", len(out), query)
        return out

    def store(self, element: StoredElement) -> None:
        name_vec = np.asarray(self._embed(element.name), dtype=np.float32)
        with self._lock:
            self._elements[element.id] = element
            self._name_vectors[element.id] = name_vec
            self._context_vectors.pop(element.id, None)
        logger.info("Stored element %r (%s)", element.name, element.id)

    def update(self, original: StoredElement, updated: StoredElement) -> None:
        with self._lock:
            if original.id not in self._elements:
                raise KeyError(f"Element {original.id} is not in the store")
            del self._elements[original.id]
            self._name_vectors.pop(original.id, None)
            self._context_vectors.pop(original.id, None)
        self.store(updated)

    def remove(self, element: StoredElement) -> None:
        with self._lock:
            if self._elements.pop(element.id, None) is None:
                raise KeyError(f"Element {element.id} is not in the store")
            self._name_vectors.pop(element.id, None)
            self._context_vectors.pop(element.id, None)
        logger.info("Removed element %r (%s)", element.name, element.id)

    def _context_vector(self, element: StoredElement) -> np.ndarray:
        vec = self._context_vectors.get(element.id)
        if vec is None:
            vec = np.asarray(self._embed(element.context_text), dtype=np.float32)
            with self._lock:
                self._context_vectors[element.id] = vec
        return vec

    # Persistence

    def save(self, path: str) -> None:
        records = [_element_to_record(e) for e in self.elements()]
        payload = {"version": STORE_FORMAT_VERSION, "elements": records}
        Path(path).write_text(json.dumps(payload, indent=2), encoding="utf-8")

    @classmethod
    def load(cls, path: str, embed: EmbedFn) -> "InMemoryElementStore":
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(payload, dict) or not isinstance(payload.get("elements"), list):
            raise ValueError(f"{path} is not an element store file")
        store = cls(embed=embed)
        for rec in payload["elements"]:
            store.store(_element_from_record(rec))
        return store


def _element_to_record(element: StoredElement) -> Dict[str, Any]:
    return {
        "id": element.id,
        "name": element.name,
        "own_description": element.own_description,
        "anchor_description": element.anchor_description,
        "page_summary": element.page_summary,
        "requires_zoom": bool(element.requires_zoom),
        "data_dependent_attributes": list(element.data_dependent_attributes),
        "reference_image_png": (
            encode_png_base64(element.reference_image) if element.reference_image is not None else None
        ),
    }


def _element_from_record(rec: Dict[str, Any]) -> StoredElement:
    image_data = rec.get("reference_image_png")
    return StoredElement(
        id=str(rec["id"]),
        name=str(rec["name"]),
        own_description=str(rec.get("own_description", "")),
        anchor_description=str(rec.get("anchor_description", "")),
        page_summary=str(rec.get("page_summary", "")),
        reference_image=decode_png_base64(image_data) if image_data else None,
        requires_zoom=bool(rec.get("requires_zoom", False)),
        data_dependent_attributes=tuple(str(a) for a in rec.get("data_dependent_attributes", [])),
    )
