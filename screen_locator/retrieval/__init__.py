"""
Element retrieval: score-floor classification and an in-memory store.
"""

from screen_locator.retrieval.classify import (
    RetrievalClassification,
    classify_candidates,
    classify_score,
    filter_by_page_relevance,
)
from screen_locator.retrieval.memory_store import InMemoryElementStore

__all__ = [
    "RetrievalClassification",
    "classify_candidates",
    "classify_score",
    "filter_by_page_relevance",
    "InMemoryElementStore",
]
