"""Report narrative pipeline orchestrator.

This module runs one report: it normalizes the raw score rows, selects the
domains with enough evidence, generates a narrative for each selected domain
and writes the narratives into the renderer's text files.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from neuroreport.config.domain_rules import RulesLike, load_domain_rules
from neuroreport.config.model_catalogue import ModelCatalogue, load_model_catalogue
from neuroreport.config.settings import Settings, settings
from neuroreport.domains import PatientType
from neuroreport.generation.cache import NarrativeCache
from neuroreport.generation.client import GenerationClient, GenerationError
from neuroreport.generation.prompts import NarrativeRequestBuilder
from neuroreport.logging_config import run_id_context
from neuroreport.models import GenerationRequest, GenerationResult, SectionKind
from neuroreport.normalizer import normalize
from neuroreport.providers.base import InferenceBackend
from neuroreport.providers.openai_provider import OpenAICompatibleBackend
from neuroreport.reporting.run_summary import RunSummary
from neuroreport.reporting.summary_block import SummaryMetadata, inject_summary_block
from neuroreport.usage_ledger import UsageLedger
from neuroreport.validation.domain_validator import (
    DomainSelection,
    select_report_domains,
)

logger = logging.getLogger(__name__)

# Renderer file and log key for the cross-domain summary
INTEGRATED_SUMMARY_FILE = "_03-00_sirf_text.qmd"
INTEGRATED_SUMMARY_KEY = "sirf"
INTEGRATED_SUMMARY_TITLE = "Summary/Impression"

GenerationOutcome = Union[GenerationResult, GenerationError]


def _new_run_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass
class ReportRunContext:
    """Everything one report run needs to know about its invocation.

    Attributes:
        patient_type: Child or adult; selects rater-specific domains
        output_dir: Directory receiving the renderer text files
        max_workers: Upper bound on concurrent domain generations
        strict: Apply strict output validation to every section
        cache_dir: Narrative cache directory, None to disable caching
        max_retries: Attempts per model before moving on
        attempt_timeout: Upper bound on each backend call in seconds
        write_outputs: Write narratives into the renderer files
        integrated_summary: Also generate the cross-domain summary
        source_file: Provenance for rows that carry none
        run_id: Correlation id attached to every log line of the run
    """

    patient_type: PatientType
    output_dir: Path = field(default_factory=lambda: Path("."))
    max_workers: int = 4
    strict: bool = False
    cache_dir: Optional[Path] = None
    max_retries: int = 2
    attempt_timeout: float = 120.0
    write_outputs: bool = True
    integrated_summary: bool = False
    source_file: Optional[str] = None
    run_id: str = field(default_factory=_new_run_id)

    def __post_init__(self) -> None:
        self.patient_type = PatientType(self.patient_type)
        self.output_dir = Path(self.output_dir)
        if self.cache_dir is not None:
            self.cache_dir = Path(self.cache_dir)
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")

    @classmethod
    def from_settings(
        cls,
        patient_type: Union[PatientType, str],
        config: Optional[Settings] = None,
        **overrides: Any,
    ) -> "ReportRunContext":
        """Build a context from settings, with keyword overrides."""
        config = config or settings
        values: Dict[str, Any] = {
            "patient_type": patient_type,
            "output_dir": Path(config.output_dir),
            "max_workers": config.max_concurrent_domains,
            "strict": config.strict_validation,
            "cache_dir": Path(config.cache_dir) if config.cache_dir else None,
            "max_retries": config.max_retries,
            "attempt_timeout": config.attempt_timeout_seconds,
        }
        values.update(overrides)
        return cls(**values)


class NarrativePipeline:
    """Orchestrates narrative generation for one report.

    Domains are independent: a domain whose models are all spent is marked
    for manual writing and the remaining domains carry on.
    """

    def __init__(
        self,
        context: ReportRunContext,
        backend: InferenceBackend,
        catalogue: ModelCatalogue,
        ledger: UsageLedger,
        rules: RulesLike = None,
        client: Optional[GenerationClient] = None,
    ):
        """Initialize the pipeline.

        Args:
            context: Per-run settings
            backend: Inference backend shared by all domains
            catalogue: Model tiers per section kind
            ledger: Receives one record per generation attempt
            rules: Evidence rules by domain kind
            client: Generation client; built from the context when omitted
        """
        self.context = context
        self.backend = backend
        self.catalogue = catalogue
        self.ledger = ledger
        self.rules = rules
        self.builder = NarrativeRequestBuilder()

        if client is None:
            cache = NarrativeCache(context.cache_dir) if context.cache_dir else None
            client = GenerationClient(
                backend,
                max_retries=context.max_retries,
                attempt_timeout=context.attempt_timeout,
                cache=cache,
            )
        self.client = client

        logger.info(
            f"Narrative pipeline initialized (run {context.run_id}, "
            f"{context.patient_type.value}, backend {backend.get_backend_name()})"
        )

    @classmethod
    def from_settings(
        cls,
        patient_type: Union[PatientType, str],
        config: Optional[Settings] = None,
        **overrides: Any,
    ) -> "NarrativePipeline":
        """Build a pipeline wired to the configured backend and files."""
        config = config or settings
        context = ReportRunContext.from_settings(patient_type, config, **overrides)
        backend = OpenAICompatibleBackend(
            base_url=config.inference_base_url,
            api_key=config.inference_api_key,
        )
        return cls(
            context=context,
            backend=backend,
            catalogue=load_model_catalogue(config.model_catalogue_path),
            ledger=UsageLedger(log_path=config.usage_log_path),
            rules=load_domain_rules(config.domain_rules_path),
        )

    def select_domains(
        self, raw_rows: Iterable[Mapping[str, Any]], summary: RunSummary
    ) -> List[DomainSelection]:
        """Normalize rows and return the domains to narrate.

        Malformed rows and excluded domains are recorded in ``summary``.
        """
        normalized = normalize(raw_rows, source_file=self.context.source_file)
        summary.records_normalized = len(normalized.records)
        summary.record_malformed(normalized.rejected)

        selections = select_report_domains(
            normalized.records, self.context.patient_type, self.rules
        )
        valid: List[DomainSelection] = []
        for selection in selections:
            if selection.is_valid:
                valid.append(selection)
            else:
                summary.record_excluded(selection.result)
        return valid

    def build_request(self, selection: DomainSelection) -> GenerationRequest:
        """Build the domain summary request for a selected domain."""
        section = self.catalogue.models_for(SectionKind.DOMAIN_SUMMARY)
        return self.builder.build(
            selection.config.title,
            selection.records,
            SectionKind.DOMAIN_SUMMARY,
            domain_key=selection.config.file_key,
            temperature=section.temperature,
            strict=self.context.strict,
            raters=selection.config.raters,
        )

    def _generate_and_write(
        self, request: GenerationRequest, output_file: str
    ) -> Tuple[GenerationOutcome, Optional[Path]]:
        """Generate one section and write it when generation succeeds."""
        outcome = self.client.generate(request, self.catalogue, self.ledger)
        if isinstance(outcome, GenerationError) or not self.context.write_outputs:
            return outcome, None

        metadata = SummaryMetadata(
            model_id=outcome.model_id, quality_score=outcome.quality_score
        )
        path = inject_summary_block(
            self.context.output_dir / output_file, outcome.text, metadata
        )
        return outcome, path

    def _process_domain(
        self, selection: DomainSelection
    ) -> Tuple[GenerationOutcome, Optional[Path]]:
        request = self.build_request(selection)
        return self._generate_and_write(request, selection.config.text_file())

    def _record_outcome(
        self,
        summary: RunSummary,
        title: str,
        outcome: GenerationOutcome,
        path: Optional[Path],
        narratives: Dict[str, str],
    ) -> None:
        if isinstance(outcome, GenerationError):
            reasons = [
                f"{f.model_id} ({f.tier.value}) attempt {f.attempt}: {f.reason}"
                for f in outcome.failures
            ] or [outcome.kind.value]
            summary.record_needs_manual(title, reasons)
            logger.warning(f"{title} needs a manually written narrative: {outcome}")
            return

        narratives[title] = outcome.text
        summary.record_narrated(title, outcome, str(path) if path else None)

    def _record_unexpected(
        self, summary: RunSummary, title: str, error: Exception
    ) -> None:
        logger.error(f"Unexpected failure generating {title}: {error}", exc_info=error)
        summary.record_needs_manual(title, [f"{type(error).__name__}: {error}"])

    def _integrated_request(
        self, narratives: Dict[str, str]
    ) -> Optional[GenerationRequest]:
        if not self.context.integrated_summary or not narratives:
            return None
        section = self.catalogue.models_for(SectionKind.INTEGRATED_SUMMARY)
        return self.builder.build_integrated(
            narratives,
            domain_key=INTEGRATED_SUMMARY_KEY,
            temperature=section.temperature,
            strict=self.context.strict,
        )

    def _start(self) -> RunSummary:
        summary = RunSummary(
            run_id=self.context.run_id,
            patient_type=self.context.patient_type.value,
        )
        summary.start_run()
        return summary

    def _finish(self, summary: RunSummary) -> RunSummary:
        summary.end_run()
        summary.usage = self.ledger.summary(
            lambda r: r.timestamp >= summary.start_time
        )
        logger.info(
            f"Run {summary.run_id} complete: {len(summary.narrated)} narrated, "
            f"{len(summary.needs_manual_narrative)} need manual narrative, "
            f"{len(summary.excluded)} excluded"
        )
        return summary

    def run(self, raw_rows: Iterable[Mapping[str, Any]]) -> RunSummary:
        """Run the report sequentially.

        Args:
            raw_rows: Raw score rows for one patient

        Returns:
            RunSummary for the run
        """
        token = run_id_context.set(self.context.run_id)
        try:
            summary = self._start()
            narratives: Dict[str, str] = {}

            for selection in self.select_domains(raw_rows, summary):
                title = selection.config.title
                try:
                    outcome, path = self._process_domain(selection)
                except Exception as e:
                    self._record_unexpected(summary, title, e)
                    continue
                self._record_outcome(summary, title, outcome, path, narratives)

            request = self._integrated_request(narratives)
            if request is not None:
                try:
                    outcome, path = self._generate_and_write(
                        request, INTEGRATED_SUMMARY_FILE
                    )
                except Exception as e:
                    self._record_unexpected(summary, INTEGRATED_SUMMARY_TITLE, e)
                else:
                    self._record_outcome(
                        summary, INTEGRATED_SUMMARY_TITLE, outcome, path, {}
                    )

            return self._finish(summary)
        finally:
            run_id_context.reset(token)

    async def run_async(self, raw_rows: Iterable[Mapping[str, Any]]) -> RunSummary:
        """Run the report with domains generated concurrently.

        Each domain runs in a worker thread; at most ``context.max_workers``
        run at once. A failure in one domain never cancels the others.

        Args:
            raw_rows: Raw score rows for one patient

        Returns:
            RunSummary for the run
        """
        token = run_id_context.set(self.context.run_id)
        try:
            summary = self._start()
            narratives: Dict[str, str] = {}
            selections = self.select_domains(raw_rows, summary)
            semaphore = asyncio.Semaphore(self.context.max_workers)

            async def process(
                selection: DomainSelection,
            ) -> Tuple[GenerationOutcome, Optional[Path]]:
                async with semaphore:
                    return await asyncio.to_thread(self._process_domain, selection)

            logger.info(
                f"Generating {len(selections)} domains "
                f"(max {self.context.max_workers} concurrent)"
            )
            results = await asyncio.gather(
                *(process(s) for s in selections), return_exceptions=True
            )

            for selection, result in zip(selections, results):
                title = selection.config.title
                if isinstance(result, Exception):
                    self._record_unexpected(summary, title, result)
                    continue
                if isinstance(result, BaseException):
                    raise result
                outcome, path = result
                self._record_outcome(summary, title, outcome, path, narratives)

            request = self._integrated_request(narratives)
            if request is not None:
                try:
                    outcome, path = await asyncio.to_thread(
                        self._generate_and_write, request, INTEGRATED_SUMMARY_FILE
                    )
                except Exception as e:
                    self._record_unexpected(summary, INTEGRATED_SUMMARY_TITLE, e)
                else:
                    self._record_outcome(
                        summary, INTEGRATED_SUMMARY_TITLE, outcome, path, {}
                    )

            return self._finish(summary)
        finally:
            run_id_context.reset(token)
