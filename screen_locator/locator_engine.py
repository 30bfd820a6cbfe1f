"""
Element location orchestrator.

Given an element description, the locator:
1. Retrieves stored elements and checks them against the score floors
2. Narrows several strong matches by page relevance, when a page describer is set
3. Grounds the element with K model votes, plus algorithmic matches on the
   stored reference image
4. Fuses the candidates and, when more than one remains, lets M validation
   votes pick one
5. Retries the whole pipeline on failure until the deadline passes

In attended mode categorized failures are handed to the operator instead of
being retried.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Sequence, Union

import openai
import requests
from PIL import Image

from screen_locator.common.geometry import Region
from screen_locator.config import LocatorConfig
from screen_locator.elements import RetrievedCandidate, StoredElement
from screen_locator.errors import (
    CandidatesBelowConfidenceFloor,
    ConfigurationError,
    DisambiguationInconsistent,
    ErrorCategory,
    LocationError,
    NoCandidatesInStore,
    NoVisualMatchFound,
    TransientModelError,
)
from screen_locator.grounding.algorithmic import find_algorithmic_candidates
from screen_locator.grounding.clustering import CandidateCluster
from screen_locator.grounding.disambiguator import DisambiguationState, Disambiguator
from screen_locator.grounding.fusion import fuse_candidates
from screen_locator.grounding.opencv_matcher import OpenCvMatcher
from screen_locator.grounding.voter import VisualGroundingVoter
from screen_locator.grounding.zoom import zoom_in
from screen_locator.interfaces import (
    AlgorithmicMatcher,
    PageDescriber,
    ScreenSource,
    SimilarityRetriever,
    UserInteraction,
    Validator,
    VisualGrounder,
)
from screen_locator.outcomes import (
    CANCELLED,
    RETRIES_EXHAUSTED,
    Found,
    Interrupted,
    LocationConfirmation,
    LocationOutcome,
    NotFound,
    UserDecision,
)
from screen_locator.retrieval.classify import classify_candidates, filter_by_page_relevance
from screen_locator.security.rate_limiter import RateLimitExceeded
from screen_locator.security.validation import InputValidator, ValidationError
from screen_locator.visualization.overlay import draw_region, save_debug_image

logger = logging.getLogger(__name__)

# Failures a later attempt may not share. Anything else is a bug and propagates.
_TRANSIENT_ERRORS = (TransientModelError, RateLimitExceeded, requests.RequestException, openai.OpenAIError, OSError)


@dataclass
class AttemptContext:
    """Retry bookkeeping for one pass of the retry loop."""

    started_at: float
    deadline: float
    attempts: int = 0
    last_error: Optional[BaseException] = None
    screenshot: Optional[Image.Image] = None
    element: Optional[StoredElement] = None

    @classmethod
    def start(cls, clock: Callable[[], float], deadline_ms: int) -> "AttemptContext":
        now = clock()
        return cls(started_at=now, deadline=now + float(deadline_ms) / 1000.0)

    def can_retry(self, now: float, interval_s: float) -> bool:
        return now + interval_s < self.deadline


class _Cancelled(Exception):
    pass


class ElementLocator:
    """
    Locate a described element on the current screen.

    Example:
        >>> locator = ElementLocator(retriever=store, grounder=grounding_model,
        ...                          validator=validation_model, screen=screen_source)
        >>> outcome = locator.locate("Login button")
        >>> if isinstance(outcome, Found):
        ...     print(outcome.region)
    """

    def __init__(
        self,
        *,
        retriever: SimilarityRetriever,
        grounder: VisualGrounder,
        validator: Validator,
        screen: ScreenSource,
        config: Optional[LocatorConfig] = None,
        matcher: Optional[AlgorithmicMatcher] = None,
        page_describer: Optional[PageDescriber] = None,
        user: Optional[UserInteraction] = None,
        input_validator: Optional[InputValidator] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.config = (config or LocatorConfig()).validate()
        self.retriever = retriever
        self.screen = screen
        self.page_describer = page_describer
        self.user = user
        self.input_validator = input_validator or InputValidator()
        self.matcher = matcher if matcher is not None else OpenCvMatcher(max_matches=self.config.max_visual_matches)
        self.voter = VisualGroundingVoter(
            grounder,
            votes=self.config.grounding_votes,
            min_iou=self.config.min_intersection_ratio,
            min_cluster_votes=self.config.min_cluster_votes,
            max_workers=self.config.max_parallel_calls,
        )
        self.disambiguator = Disambiguator(
            validator,
            votes=self.config.validation_votes,
            palette=self.config.label_palette,
            max_workers=self.config.max_parallel_calls,
        )
        self._clock = clock
        self._sleep = sleep
        self.cancel_event = cancel_event or threading.Event()

    @property
    def attended(self) -> bool:
        return not self.config.unattended and self.user is not None

    def cancel(self) -> None:
        self.cancel_event.set()

    def locate(self, description: str, element_data: Optional[str] = None) -> LocationOutcome:
        """
        Run the location pipeline until it yields an outcome.

        Raises:
            ConfigurationError: For invalid configuration, including more
                candidates than disambiguation labels.
            ValidationError: For a blank description or an unusable screenshot.
        """
        description = self.input_validator.validate_description(description)
        total_attempts = 0
        while True:
            ctx = AttemptContext.start(self._clock, self.config.retry_deadline_ms)
            result = self._run_attempts(ctx, description, element_data)
            total_attempts += ctx.attempts
            if isinstance(result, LocationError):
                outcome = self._prompt_operator(result.message, _refinement_targets(result, ctx), ctx, description)
            elif isinstance(result, NotFound) and self.attended:
                message = f"{result.reason}: {result.detail}" if result.detail else result.reason
                outcome = self._prompt_operator(message, _refinement_targets(None, ctx), ctx, description)
            else:
                return _with_attempts(result, total_attempts)
            if outcome is not None:
                return _with_attempts(outcome, total_attempts)
            logger.info("Operator requested a new search for %r", description)

    # Retry loop

    def _run_attempts(
        self, ctx: AttemptContext, description: str, element_data: Optional[str]
    ) -> Union[LocationOutcome, LocationError]:
        interval_s = float(self.config.retry_interval_ms) / 1000.0
        while True:
            ctx.attempts += 1
            logger.info("Locating %r, attempt %d", description, ctx.attempts)
            try:
                region = self._attempt(ctx, description, element_data)
                return self._confirm(ctx, description, region)
            except _Cancelled:
                logger.info("Location of %r cancelled", description)
                return Interrupted(CANCELLED, attempts=ctx.attempts)
            except (ConfigurationError, ValidationError):
                raise
            except LocationError as exc:
                if not exc.retryable:
                    return Interrupted(exc.message, category=exc.category, attempts=ctx.attempts)
                logger.warning("Attempt %d failed: %s", ctx.attempts, exc)
                ctx.last_error = exc
                if self.attended:
                    return exc
            except _TRANSIENT_ERRORS as exc:
                logger.warning("Attempt %d failed with a transient error: %s", ctx.attempts, exc)
                ctx.last_error = exc

            if not ctx.can_retry(self._clock(), interval_s):
                return self._exhausted(ctx)
            self._sleep(interval_s)

    def _exhausted(self, ctx: AttemptContext) -> NotFound:
        err = ctx.last_error
        if isinstance(err, LocationError):
            reason, category, detail = err.category.value, err.category, err.message
        else:
            reason, category, detail = RETRIES_EXHAUSTED, None, str(err or "")
        logger.warning("Giving up after %d attempts: %s (%s)", ctx.attempts, reason, detail)
        if ctx.screenshot is not None:
            save_debug_image(ctx.screenshot, self.config.debug_dir, f"not_found_{reason}")
        return NotFound(reason, category=category, detail=detail, screenshot=ctx.screenshot, attempts=ctx.attempts)

    # One attempt

    def _attempt(self, ctx: AttemptContext, description: str, element_data: Optional[str]) -> Region:
        self._check_cancelled()
        screen = self.screen.capture()
        self.input_validator.validate_screenshot(screen)
        ctx.screenshot = screen

        element = self._select_element(description, screen)
        ctx.element = element
        self._check_cancelled()
        region = self._locate_element(element, screen, element_data)
        logger.info("Located %r at %s", element.name, region.as_tuple())
        return region

    def _select_element(self, description: str, screen: Image.Image) -> StoredElement:
        cfg = self.config
        candidates = self.retriever.retrieve(description, cfg.retriever_top_n, 0.0)
        if not candidates:
            raise NoCandidatesInStore(f"No stored elements match '{description}'")

        classified = classify_candidates(
            candidates, target_floor=cfg.target_score_floor, general_floor=cfg.general_score_floor
        )
        if not classified.target:
            raise CandidatesBelowConfidenceFloor(
                f"No stored element for '{description}' reaches the target score {cfg.target_score_floor}; "
                f"{len(classified.general)} reach the general score {cfg.general_score_floor}",
                general_candidates=classified.general,
            )
        if len(classified.target) == 1 or self.page_describer is None:
            return classified.best.element

        self._check_cancelled()
        page = self.page_describer.describe_page(screen)
        contextual = self.retriever.retrieve(description, cfg.retriever_top_n, cfg.target_score_floor, context_text=page)
        relevant = filter_by_page_relevance(contextual, cfg.page_relevance_floor)
        if not relevant:
            raise CandidatesBelowConfidenceFloor(
                f"None of {len(classified.target)} stored elements for '{description}' is relevant to the "
                f"current page (floor {cfg.page_relevance_floor})",
                general_candidates=classified.target,
            )
        logger.info("Page relevance selected %r", relevant[0].element.name)
        return relevant[0].element

    def _locate_element(self, element: StoredElement, screen: Image.Image, element_data: Optional[str]) -> Region:
        description = element.full_description(element_data)
        use_algorithmic = self._algorithmic_allowed(element, element_data)
        if not element.requires_zoom:
            return self._ground(element, description, screen, algorithmic=use_algorithmic)

        logger.info("Zoom-in is needed for %r, running a wide-area search first", element.name)
        initial = self.voter.vote(description, screen)
        if not initial:
            raise NoVisualMatchFound(f"Wide-area search found no region for '{element.name}'")
        ref_width = element.reference_image.width if element.reference_image is not None else None
        view = zoom_in(
            screen,
            [c.region for c in initial],
            ref_width=ref_width,
            scale_factor=self.config.zoom_scale_factor,
            extension_ratio=self.config.zoom_extension_ratio,
        )
        self._check_cancelled()
        region = self._ground(element, description, view.image, algorithmic=False)
        return view.to_screen(region)

    def _algorithmic_allowed(self, element: StoredElement, element_data: Optional[str]) -> bool:
        if not self.config.algorithmic_search_enabled or element.reference_image is None:
            return False
        # The stored reference shows other data than what is on screen now.
        if element.is_data_dependent and element_data:
            return False
        return True

    def _ground(self, element: StoredElement, description: str, image: Image.Image, *, algorithmic: bool) -> Region:
        cfg = self.config
        model_clusters = self.voter.vote(description, image)
        algorithmic_clusters: List[CandidateCluster] = []
        if algorithmic:
            self._check_cancelled()
            algorithmic_clusters = find_algorithmic_candidates(
                self.matcher,
                element.reference_image,
                image,
                threshold=cfg.visual_similarity_threshold,
                max_matches=cfg.max_visual_matches,
                deviation_ratio=cfg.dimension_deviation_ratio,
                min_iou=cfg.min_intersection_ratio,
            )
        fused = fuse_candidates(
            model_clusters,
            algorithmic_clusters,
            min_iou=cfg.min_intersection_ratio,
            algorithmic_trust_floor=cfg.algorithmic_trust_floor,
        )
        if not fused:
            raise NoVisualMatchFound(f"No visual match found for '{element.name}'")
        if len(fused) == 1:
            return fused[0].region

        self._check_cancelled()
        result = self.disambiguator.disambiguate(fused, image, description)
        if result.state is DisambiguationState.RESOLVED and result.winner is not None:
            return result.winner.region
        if result.labeled_image is not None:
            save_debug_image(result.labeled_image, cfg.debug_dir, f"unresolved_{element.name}")
        raise DisambiguationInconsistent(
            f"No candidate for '{element.name}' won a majority of {cfg.validation_votes} votes: "
            f"{dict(result.ballot.counts)}"
        )

    # Operator interaction

    def _confirm(self, ctx: AttemptContext, description: str, region: Region) -> Union[LocationOutcome, LocationError]:
        if not (self.attended and self.config.confirm_location):
            return Found(region, element=ctx.element, attempts=ctx.attempts)
        image = draw_region(ctx.screenshot, region)
        answer = self.user.confirm_location(description, region, image)
        if answer is LocationConfirmation.CORRECT:
            return Found(region, element=ctx.element, attempts=ctx.attempts)
        if answer is LocationConfirmation.INTERRUPTED:
            return Interrupted("interrupted by operator", category=ErrorCategory.USER_INTERRUPTED, attempts=ctx.attempts)
        ctx.last_error = NoVisualMatchFound(f"The operator rejected the location found for '{description}'")
        return ctx.last_error

    def _prompt_operator(
        self, message: str, targets: List[StoredElement], ctx: AttemptContext, description: str
    ) -> Optional[LocationOutcome]:
        """Recovery menu. Returns None when the operator asks for a new search."""
        while True:
            decision = self.user.prompt_next_action(message)
            logger.info("Operator chose %s after: %s", decision.value, message)
            if decision is UserDecision.CREATE_NEW:
                region = self.user.create_new_element(description, ctx.screenshot)
                if region is None:
                    return Interrupted("element creation interrupted", category=ErrorCategory.USER_INTERRUPTED)
                return Found(region)
            if decision is UserDecision.REFINE:
                if not self.user.refine_elements(targets, message):
                    return Interrupted("refinement interrupted", category=ErrorCategory.USER_INTERRUPTED)
                continue
            if decision is UserDecision.RETRY:
                return None
            return Interrupted("terminated by operator", category=ErrorCategory.USER_TERMINATED)

    def _check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise _Cancelled()


def _refinement_targets(error: Optional[LocationError], ctx: AttemptContext) -> List[StoredElement]:
    general: Sequence[RetrievedCandidate] = getattr(error, "general_candidates", ())
    if general:
        return [c.element for c in general]
    return [ctx.element] if ctx.element is not None else []


def _with_attempts(outcome: LocationOutcome, attempts: int) -> LocationOutcome:
    return replace(outcome, attempts=int(attempts))
