"""Pytest configuration and shared fixtures for the report narrative tests."""

import threading
import time
from typing import Dict, List, Optional, Sequence, Union

import pytest

from neuroreport.config.model_catalogue import ModelCatalogue, SectionModels
from neuroreport.models import SectionKind
from neuroreport.providers.base import Completion, InferenceBackend
from neuroreport.usage_ledger import UsageLedger

# Passes output validation in lenient and strict mode
GOOD_NARRATIVE = (
    "Overall cognitive functioning fell within the average range. "
    "Verbal reasoning skills were a relative strength, while processing speed "
    "was an area of weakness that may slow classroom performance."
)

# Rejected by output validation (too short, single sentence)
BAD_NARRATIVE = "Average."

ScriptStep = Union[str, Exception]


class ScriptedBackend(InferenceBackend):
    """Fake backend that replays scripted responses per model.

    Each call to ``complete`` pops the next step for the model. A string step
    is returned as the completion text; an exception step is raised as a
    classified TransportError. When a model's script is empty ``default`` is
    used.
    """

    def __init__(
        self,
        script: Optional[Dict[str, Sequence[ScriptStep]]] = None,
        available: Optional[Sequence[str]] = None,
        default: Optional[ScriptStep] = GOOD_NARRATIVE,
        delay: float = 0.0,
    ):
        self.script: Dict[str, List[ScriptStep]] = {
            model_id: list(steps) for model_id, steps in (script or {}).items()
        }
        self.available = set(available) if available is not None else None
        self.default = default
        self.delay = delay
        self.calls: List[str] = []
        self.temperatures: List[float] = []
        self._lock = threading.Lock()

    def is_available(self, model_id: str) -> bool:
        return self.available is None or model_id in self.available

    def complete(
        self,
        model_id: str,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        timeout: float,
    ) -> Completion:
        with self._lock:
            self.calls.append(model_id)
            self.temperatures.append(temperature)
            steps = self.script.get(model_id)
            step = steps.pop(0) if steps else self.default

        if self.delay:
            time.sleep(self.delay)
        if step is None:
            step = RuntimeError("no scripted response")
        if isinstance(step, Exception):
            raise self._handle_api_error(step, model_id)
        return Completion(
            text=step, input_tokens=120, output_tokens=60, latency_seconds=0.01
        )


def make_catalogue(
    primary: Sequence[str] = ("model-a", "model-b"),
    fallback: Sequence[str] = ("model-c",),
) -> ModelCatalogue:
    """Catalogue using the same tiers for every section kind."""
    return ModelCatalogue(
        sections={
            kind: SectionModels(
                primary=list(primary), fallback=list(fallback), temperature=0.25
            )
            for kind in SectionKind
        }
    )


@pytest.fixture
def catalogue() -> ModelCatalogue:
    """Fixture providing a two-primary, one-fallback catalogue."""
    return make_catalogue()


@pytest.fixture
def ledger() -> UsageLedger:
    """Fixture providing an in-memory usage ledger."""
    return UsageLedger()


@pytest.fixture
def backend() -> ScriptedBackend:
    """Fixture providing a backend that always returns a valid narrative."""
    return ScriptedBackend()


@pytest.fixture
def wisc_rows() -> List[dict]:
    """Fixture providing raw rows from one neurocognitive test export."""
    return [
        {
            "test": "wisc5",
            "test_name": "WISC-V",
            "scale": "Full Scale IQ",
            "score": "103",
            "score_type": "standard_score",
            "percentile": "58",
            "domain": "General Cognitive Ability",
            "subdomain": "Intelligence",
            "test_type": "npsych_test",
        },
        {
            "test": "wisc5",
            "test_name": "WISC-V",
            "scale": "Verbal Comprehension",
            "score": "96",
            "score_type": "standard_score",
            "percentile": "39",
            "domain": "Verbal/Language",
            "subdomain": "Crystallized Knowledge",
            "test_type": "npsych_test",
        },
        {
            "test": "wisc5",
            "test_name": "WISC-V",
            "scale": "Similarities",
            "score": "9",
            "score_type": "scaled_score",
            "percentile": "37",
            "domain": "Verbal/Language",
            "subdomain": "Crystallized Knowledge",
            "test_type": "npsych_test",
        },
        {
            "test": "wisc5",
            "test_name": "WISC-V",
            "scale": "Digit Span",
            "score": "NA",
            "percentile": "NA",
            "domain": "Attention/Executive",
            "test_type": "npsych_test",
        },
    ]


@pytest.fixture
def good_narrative() -> str:
    """Fixture providing narrative text that passes validation."""
    return GOOD_NARRATIVE


@pytest.fixture
def bad_narrative() -> str:
    """Fixture providing narrative text that fails validation."""
    return BAD_NARRATIVE


@pytest.fixture
def make_backend():
    """Fixture providing the ScriptedBackend factory."""
    return ScriptedBackend


@pytest.fixture
def catalogue_factory():
    """Fixture providing the make_catalogue factory."""
    return make_catalogue
