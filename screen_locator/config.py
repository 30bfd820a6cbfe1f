"""
Configuration for the element locator.

Defaults mirror the deployed agent's settings; every field can be
overridden from the environment through ``LocatorConfig.from_env``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from screen_locator.errors import ConfigurationError

DEFAULT_LABEL_PALETTE: Tuple[Tuple[str, str], ...] = (
    ("A", "#e6194b"),
    ("B", "#3cb44b"),
    ("C", "#4363d8"),
    ("D", "#f58231"),
    ("E", "#911eb4"),
    ("F", "#008080"),
    ("G", "#f032e6"),
    ("H", "#9a6324"),
)


@dataclass
class LocatorConfig:
    """Configuration for retrieval, grounding, fusion and retries."""

    # Retrieval floors
    target_score_floor: float = 0.85
    general_score_floor: float = 0.4
    page_relevance_floor: float = 0.5
    retriever_top_n: int = 5

    # Algorithmic matching
    algorithmic_search_enabled: bool = True
    visual_similarity_threshold: float = 0.8
    max_visual_matches: int = 6  # per technique
    dimension_deviation_ratio: float = 0.3
    algorithmic_trust_floor: int = 2

    # Voting and clustering
    grounding_votes: int = 5  # K
    validation_votes: int = 3  # M
    min_intersection_ratio: float = 0.7
    min_cluster_votes: int = 1  # raise to drop sparse clusters as noise
    max_parallel_calls: int = 8

    # Zoom-in search
    zoom_scale_factor: float = 2.0
    zoom_extension_ratio: float = 15.0

    # Retry loop
    retry_deadline_ms: int = 10_000
    retry_interval_ms: int = 1_000

    # Operator interaction
    unattended: bool = False
    confirm_location: bool = False

    # Disambiguation labels
    label_palette: Tuple[Tuple[str, str], ...] = field(default=DEFAULT_LABEL_PALETTE)

    # Diagnostics
    debug_dir: Optional[str] = None

    def validate(self) -> "LocatorConfig":
        for name in ("target_score_floor", "general_score_floor", "page_relevance_floor",
                     "visual_similarity_threshold", "min_intersection_ratio"):
            v = float(getattr(self, name))
            if not 0.0 <= v <= 1.0:
                raise ConfigurationError(f"{name} must be within [0, 1], got {v}", name)
        if self.general_score_floor > self.target_score_floor:
            raise ConfigurationError("general_score_floor must not exceed target_score_floor",
                                     "general_score_floor")
        for name in ("grounding_votes", "validation_votes", "retriever_top_n", "max_visual_matches",
                     "max_parallel_calls", "min_cluster_votes"):
            if int(getattr(self, name)) < 1:
                raise ConfigurationError(f"{name} must be at least 1", name)
        if self.dimension_deviation_ratio < 0.0:
            raise ConfigurationError("dimension_deviation_ratio must be non-negative",
                                     "dimension_deviation_ratio")
        if self.retry_deadline_ms < 0 or self.retry_interval_ms <= 0:
            raise ConfigurationError("retry deadline must be >= 0 and interval > 0", "retry_interval_ms")
        if self.zoom_scale_factor < 1.0:
            raise ConfigurationError("zoom_scale_factor must be at least 1", "zoom_scale_factor")
        if not self.label_palette:
            raise ConfigurationError("label_palette must not be empty", "label_palette")
        labels = [lbl for lbl, _ in self.label_palette]
        if len(set(labels)) != len(labels):
            raise ConfigurationError("label_palette labels must be distinct", "label_palette")
        return self

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides: Any) -> "LocatorConfig":
        """Build a config from environment variables, then apply keyword overrides."""
        env = os.environ if environ is None else environ
        kwargs: Dict[str, Any] = {}
        for env_name, (attr, parse) in _ENV_FIELDS.items():
            raw = env.get(env_name)
            if raw is None or not str(raw).strip():
                continue
            try:
                kwargs[attr] = parse(str(raw).strip())
            except ValueError as exc:
                raise ConfigurationError(f"Invalid value for {env_name}: {raw!r}", attr) from exc
        known = {f.name for f in fields(cls)}
        for k, v in overrides.items():
            if k not in known:
                raise ConfigurationError(f"Unknown config field {k!r}", k)
            kwargs[k] = v
        return cls(**kwargs).validate()


def _parse_bool(s: str) -> bool:
    t = s.strip().lower()
    if t in ("1", "true", "yes", "on"):
        return True
    if t in ("0", "false", "no", "off"):
        return False
    raise ValueError(s)


_ENV_FIELDS: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    "ELEMENT_RETRIEVAL_MIN_TARGET_SCORE": ("target_score_floor", float),
    "ELEMENT_RETRIEVAL_MIN_GENERAL_SCORE": ("general_score_floor", float),
    "ELEMENT_RETRIEVAL_MIN_PAGE_RELEVANCE_SCORE": ("page_relevance_floor", float),
    "RETRIEVER_TOP_N": ("retriever_top_n", int),
    "ALGORITHMIC_SEARCH_ENABLED": ("algorithmic_search_enabled", _parse_bool),
    "VISUAL_SIMILARITY_THRESHOLD": ("visual_similarity_threshold", float),
    "TOP_VISUAL_MATCHES_TO_FIND": ("max_visual_matches", int),
    "FOUND_MATCHES_DIMENSION_DEVIATION_RATIO": ("dimension_deviation_ratio", float),
    "VISUAL_GROUNDING_MODEL_VOTE_COUNT": ("grounding_votes", int),
    "VALIDATION_MODEL_VOTE_COUNT": ("validation_votes", int),
    "BBOX_CLUSTERING_MIN_INTERSECTION_RATIO": ("min_intersection_ratio", float),
    "ELEMENT_LOCATOR_ZOOM_SCALE_FACTOR": ("zoom_scale_factor", float),
    "ELEMENT_LOCATION_RETRY_TIMEOUT_MILLIS": ("retry_deadline_ms", int),
    "ELEMENT_LOCATION_RETRY_INTERVAL_MILLIS": ("retry_interval_ms", int),
    "UNATTENDED_MODE": ("unattended", _parse_bool),
    "SCREENSHOTS_SAVE_FOLDER": ("debug_dir", str),
}
