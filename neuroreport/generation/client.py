"""Narrative generation with model tiers, retries and output validation.

The retry contract is an explicit state machine::

    TryingPrimary(0) -> ... -> TryingPrimary(n-1)
        -> TryingFallback(0) -> ... -> TryingFallback(m-1)
        -> Exhausted

Any state may move to Succeeded. Each Trying state makes up to
``max_retries`` attempts on its model; an attempt succeeds when the backend
returns text and that text passes output validation. A failed attempt,
whether a transport error, a timeout or rejected text, is recorded in the
usage ledger before the next attempt is made.
"""

import enum
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from typing import List, Optional, Union

from neuroreport.config.model_catalogue import ModelCatalogue
from neuroreport.error_classifier import ErrorClassifier
from neuroreport.generation.cache import NarrativeCache
from neuroreport.models import (
    GenerationAttemptRecord,
    GenerationRequest,
    GenerationResult,
    ModelTier,
    SectionKind,
)
from neuroreport.providers.base import Completion, InferenceBackend, TransportError
from neuroreport.text_utils import estimate_tokens, strip_think_blocks
from neuroreport.usage_ledger import UsageLedger
from neuroreport.validation.output_validator import validate_narrative

logger = logging.getLogger(__name__)

# Model id reported for narratives served from the cache
CACHED_MODEL_ID = "cache"


class GenerationErrorKind(str, enum.Enum):
    """Why generation gave up on a request."""

    ALL_MODELS_EXHAUSTED = "AllModelsExhausted"
    NO_MODELS_AVAILABLE = "NoModelsAvailable"


@dataclass(frozen=True)
class AttemptFailure:
    """One failed attempt, in the order it was made."""

    model_id: str
    tier: ModelTier
    attempt: int
    reason: str


class GenerationError(Exception):
    """Every candidate model failed for one request.

    Returned by ``GenerationClient.generate`` rather than raised, so callers
    can mark the section for manual writing and carry on with others.

    Attributes:
        kind: ALL_MODELS_EXHAUSTED, or NO_MODELS_AVAILABLE when no catalogue
            model passed the availability check
        request: The request that could not be served
        failures: Failed attempts in order
    """

    def __init__(
        self,
        kind: GenerationErrorKind,
        request: GenerationRequest,
        failures: Optional[List[AttemptFailure]] = None,
    ):
        self.kind = kind
        self.request = request
        self.failures = list(failures or [])
        super().__init__(
            f"{kind.value} for {request.domain_key} "
            f"({request.section_kind.value}) after {len(self.failures)} attempts"
        )

    @property
    def attempted_models(self) -> List[str]:
        """Distinct models attempted, in order."""
        seen: List[str] = []
        for failure in self.failures:
            if failure.model_id not in seen:
                seen.append(failure.model_id)
        return seen


@dataclass(frozen=True)
class TryingPrimary:
    index: int


@dataclass(frozen=True)
class TryingFallback:
    index: int


@dataclass(frozen=True)
class Succeeded:
    result: GenerationResult


@dataclass(frozen=True)
class Exhausted:
    error: GenerationError


GenerationState = Union[TryingPrimary, TryingFallback, Succeeded, Exhausted]


@dataclass
class CandidatePlan:
    """Models to try for one request, after the availability check.

    Attributes:
        primary: Available primary models in catalogue order
        fallback: Available fallback models in catalogue order
        unavailable: Catalogue models the backend does not serve
    """

    primary: List[str] = field(default_factory=list)
    fallback: List[str] = field(default_factory=list)
    unavailable: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.primary and not self.fallback

    def initial_state(self, request: GenerationRequest) -> GenerationState:
        """First state of the machine for this plan."""
        if self.primary:
            return TryingPrimary(0)
        if self.fallback:
            return TryingFallback(0)
        return Exhausted(
            GenerationError(GenerationErrorKind.NO_MODELS_AVAILABLE, request)
        )

    def advance(
        self, state: Union[TryingPrimary, TryingFallback]
    ) -> Optional[Union[TryingPrimary, TryingFallback]]:
        """Next candidate after ``state`` is spent, or None when none remain."""
        if isinstance(state, TryingPrimary):
            if state.index + 1 < len(self.primary):
                return TryingPrimary(state.index + 1)
            return TryingFallback(0) if self.fallback else None
        if state.index + 1 < len(self.fallback):
            return TryingFallback(state.index + 1)
        return None

    def candidate(self, state: Union[TryingPrimary, TryingFallback]) -> str:
        """Model id a Trying state points at."""
        if isinstance(state, TryingPrimary):
            return self.primary[state.index]
        return self.fallback[state.index]


@dataclass
class _AttemptOutcome:
    success: bool
    text: str = ""
    reason: str = ""
    retryable: bool = True
    quality_score: Optional[int] = None
    warnings: List[str] = field(default_factory=list)


def _tier_of(state: Union[TryingPrimary, TryingFallback]) -> ModelTier:
    return ModelTier.PRIMARY if isinstance(state, TryingPrimary) else ModelTier.FALLBACK


class GenerationClient:
    """Runs generation requests against tiered models with retries.

    Attempts for one request are strictly sequential. Independent requests
    may be run concurrently from several threads sharing one client, one
    backend and one ledger.
    """

    def __init__(
        self,
        backend: InferenceBackend,
        max_retries: int = 2,
        attempt_timeout: float = 120.0,
        validate_output: bool = True,
        cache: Optional[NarrativeCache] = None,
    ):
        """Initialize the client.

        Args:
            backend: Inference backend to call
            max_retries: Attempts per model before moving to the next one
            attempt_timeout: Upper bound on each backend call in seconds
            validate_output: Validate every output; strict requests are
                always validated
            cache: Optional narrative cache consulted before any attempt
        """
        if max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {max_retries}")
        if attempt_timeout <= 0:
            raise ValueError(f"attempt_timeout must be positive, got {attempt_timeout}")

        self.backend = backend
        self.max_retries = max_retries
        self.attempt_timeout = attempt_timeout
        self.validate_output = validate_output
        self.cache = cache

    def plan(self, section_kind: SectionKind, catalogue: ModelCatalogue) -> CandidatePlan:
        """Narrow the catalogue tiers to models the backend serves.

        Args:
            section_kind: Section whose tiers to use
            catalogue: Model catalogue

        Returns:
            CandidatePlan with available primary and fallback models in order
        """
        section = catalogue.models_for(section_kind)
        plan = CandidatePlan()
        for model_id in section.primary:
            if self.backend.is_available(model_id):
                plan.primary.append(model_id)
            else:
                plan.unavailable.append(model_id)
        for model_id in section.fallback:
            if self.backend.is_available(model_id):
                plan.fallback.append(model_id)
            else:
                plan.unavailable.append(model_id)

        if plan.unavailable:
            logger.info(
                f"Skipping unavailable models for {section_kind.value}: "
                f"{', '.join(plan.unavailable)}"
            )
        return plan

    def generate(
        self,
        request: GenerationRequest,
        catalogue: ModelCatalogue,
        ledger: UsageLedger,
    ) -> Union[GenerationResult, GenerationError]:
        """Generate text for a request.

        Args:
            request: Prompt payload
            catalogue: Model tiers per section kind
            ledger: Receives one record per attempt

        Returns:
            GenerationResult for the first accepted output, or a
            GenerationError when every candidate is spent
        """
        cached = self._from_cache(request)
        if cached is not None:
            return cached

        plan = self.plan(request.section_kind, catalogue)
        state = plan.initial_state(request)
        failures: List[AttemptFailure] = []
        attempts_made = 0

        while isinstance(state, (TryingPrimary, TryingFallback)):
            model_id = plan.candidate(state)
            tier = _tier_of(state)
            next_state: Optional[GenerationState] = None

            for attempt in range(1, self.max_retries + 1):
                attempts_made += 1
                outcome = self._attempt(request, model_id, tier, attempt, ledger)

                if outcome.success:
                    result = GenerationResult(
                        text=outcome.text,
                        model_id=model_id,
                        tier=tier,
                        attempts=attempts_made,
                        quality_score=outcome.quality_score,
                        warnings=outcome.warnings,
                    )
                    next_state = Succeeded(result)
                    break

                failures.append(
                    AttemptFailure(
                        model_id=model_id,
                        tier=tier,
                        attempt=attempt,
                        reason=outcome.reason,
                    )
                )
                if not outcome.retryable:
                    logger.info(
                        f"Not retrying {model_id} for {request.domain_key}: "
                        f"{outcome.reason}"
                    )
                    break

            if next_state is None:
                next_state = plan.advance(state) or Exhausted(
                    GenerationError(
                        GenerationErrorKind.ALL_MODELS_EXHAUSTED, request, failures
                    )
                )
            state = next_state

        if isinstance(state, Succeeded):
            logger.info(
                f"Generated {request.domain_key} with {state.result.model_id} "
                f"({state.result.tier.value}) after {state.result.attempts} attempts",
                extra={
                    "domain_key": request.domain_key,
                    "model_id": state.result.model_id,
                    "tier": state.result.tier.value,
                    "attempt": state.result.attempts,
                },
            )
            if self.cache is not None:
                try:
                    self.cache.put(request, state.result.text)
                except OSError as e:
                    logger.warning(
                        f"Could not cache narrative for {request.domain_key}: {e}"
                    )
            return state.result

        error = state.error
        logger.error(
            f"Generation failed for {request.domain_key}: {error}",
            extra={"domain_key": request.domain_key},
        )
        return error

    def generate_or_raise(
        self,
        request: GenerationRequest,
        catalogue: ModelCatalogue,
        ledger: UsageLedger,
    ) -> GenerationResult:
        """Like generate(), but raise the GenerationError.

        Raises:
            GenerationError: If every candidate model is spent
        """
        outcome = self.generate(request, catalogue, ledger)
        if isinstance(outcome, GenerationError):
            raise outcome
        return outcome

    def _should_validate(self, request: GenerationRequest) -> bool:
        return self.validate_output or request.requires_strict_validation

    def _from_cache(self, request: GenerationRequest) -> Optional[GenerationResult]:
        if self.cache is None:
            return None
        text = self.cache.get(request)
        if text is None:
            return None

        text = strip_think_blocks(text)
        quality_score: Optional[int] = None
        warnings: List[str] = []
        if self._should_validate(request):
            validation = validate_narrative(
                text, strict=request.requires_strict_validation
            )
            if not validation.is_valid:
                logger.warning(
                    f"Cached narrative for {request.domain_key} failed validation, "
                    f"regenerating ({validation.describe()})"
                )
                self.cache.discard(request)
                return None
            quality_score = validation.quality_score
            warnings = validation.warnings

        return GenerationResult(
            text=text,
            model_id=CACHED_MODEL_ID,
            tier=ModelTier.PRIMARY,
            attempts=0,
            quality_score=quality_score,
            warnings=warnings,
            cached=True,
        )

    def _call_backend(self, request: GenerationRequest, model_id: str) -> Completion:
        """Call the backend, giving up after attempt_timeout seconds.

        The timeout is passed to the backend and also enforced here, so a
        backend that ignores it cannot stall the request.

        Raises:
            TransportError: If the backend fails or the call times out
        """
        executor = ThreadPoolExecutor(max_workers=1)
        future = executor.submit(
            self.backend.complete,
            model_id,
            request.prompt_system,
            request.prompt_user,
            request.temperature,
            self.attempt_timeout,
        )
        try:
            return future.result(timeout=self.attempt_timeout)
        except FuturesTimeoutError:
            future.cancel()
            timeout_error = TimeoutError(
                f"Attempt timed out after {self.attempt_timeout:.1f}s"
            )
            raise TransportError(
                ErrorClassifier.classify_error(timeout_error, model_id),
                timeout_error,
            ) from None
        finally:
            executor.shutdown(wait=False)

    def _attempt(
        self,
        request: GenerationRequest,
        model_id: str,
        tier: ModelTier,
        attempt: int,
        ledger: UsageLedger,
    ) -> _AttemptOutcome:
        """Make one attempt and record it in the ledger."""
        log_extra = {
            "domain_key": request.domain_key,
            "model_id": model_id,
            "tier": tier.value,
            "attempt": attempt,
        }
        logger.debug(
            f"Attempt {attempt}/{self.max_retries} for {request.domain_key} "
            f"with {model_id} ({tier.value})",
            extra=log_extra,
        )

        start = time.perf_counter()
        try:
            completion = self._call_backend(request, model_id)
        except Exception as e:
            if not isinstance(e, TransportError):
                # A backend bug or malformed response fails this attempt only
                logger.error(
                    f"Unexpected {type(e).__name__} from {model_id}: {e}",
                    extra=log_extra,
                    exc_info=e,
                )
                e = TransportError(ErrorClassifier.classify_error(e, model_id), e)
            latency = time.perf_counter() - start
            ledger.append(
                GenerationAttemptRecord(
                    section_kind=request.section_kind,
                    model_id=model_id,
                    tier=tier,
                    input_tokens=estimate_tokens(
                        request.prompt_system + request.prompt_user
                    ),
                    output_tokens=0,
                    latency_seconds=latency,
                    success=False,
                    domain_key=request.domain_key,
                )
            )
            logger.warning(
                f"Attempt {attempt} with {model_id} failed for "
                f"{request.domain_key}: {e}",
                extra={**log_extra, "latency_seconds": round(latency, 3)},
            )
            return _AttemptOutcome(
                success=False,
                reason=f"transport: {e.classified_error.category.value}: "
                f"{e.classified_error.message}",
                retryable=e.is_retryable,
            )

        latency = completion.latency_seconds or (time.perf_counter() - start)
        text = strip_think_blocks(completion.text)

        outcome = _AttemptOutcome(success=True, text=text)
        if self._should_validate(request):
            validation = validate_narrative(
                text, strict=request.requires_strict_validation
            )
            outcome.quality_score = validation.quality_score
            outcome.warnings = validation.warnings
            if not validation.is_valid:
                outcome.success = False
                outcome.reason = f"validation: {validation.describe()}"

        ledger.append(
            GenerationAttemptRecord(
                section_kind=request.section_kind,
                model_id=model_id,
                tier=tier,
                input_tokens=completion.input_tokens,
                output_tokens=completion.output_tokens,
                latency_seconds=latency,
                success=outcome.success,
                domain_key=request.domain_key,
            )
        )

        if not outcome.success:
            logger.warning(
                f"Attempt {attempt} with {model_id} rejected for "
                f"{request.domain_key}: {outcome.reason}",
                extra={**log_extra, "latency_seconds": round(latency, 3)},
            )
        return outcome
