"""
Batch Orchestrator

Runs many documents through the FuelInvoicePipeline in fixed-size windows.
Supports:
- Bounded concurrency (at most window_size extraction calls in flight)
- Per-file failure isolation
- Skipping uploads that match a previously ingested file
- Progress reporting after each window
- Stopping early on exhausted quota or cancellation
- Batch-wide duplicate detection once every window has finished
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from fuelex.config.config_manager import ConfigManager
from fuelex.config.settings import BatchConfig
from fuelex.models.batch import BatchResult, FailureKind, FileOutcome
from fuelex.models.fuel_invoice import (
    ExistingRecord,
    ExistingRecordIndex,
    IngestedFile,
    IngestedFileIndex,
    KnownVehicle,
    RawDocument,
)
from fuelex.jobs.progress import ProgressChannel
from fuelex.processors.invoice.extractor import InvoiceExtractor
from fuelex.processors.invoice.normalizer import ContentNormalizer
from fuelex.processors.invoice.pipeline import FuelInvoicePipeline
from fuelex.processors.invoice.reconciler import DuplicateReconciler
from fuelex.processors.invoice.validator import LineItemValidator
from fuelex.processors.invoice.vehicle_matcher import VehicleMatcher
from fuelex.utils.date_hints import document_date_hint

logger = logging.getLogger(__name__)

DateHintFn = Callable[[RawDocument], Optional[date]]
IndexedDocument = Tuple[int, RawDocument]


@dataclass
class WindowRun:
    """Outcomes of the windows that actually ran"""
    outcomes: Dict[int, FileOutcome] = field(default_factory=dict)
    cancelled: bool = False
    quota_exhausted: bool = False


def as_matcher(known_vehicles: Union[VehicleMatcher, Iterable[Union[KnownVehicle, dict]]]) -> VehicleMatcher:
    if isinstance(known_vehicles, VehicleMatcher):
        return known_vehicles
    return VehicleMatcher(known_vehicles or ())


def as_index(existing: Union[ExistingRecordIndex, Iterable[Union[ExistingRecord, dict]], None]) -> ExistingRecordIndex:
    if isinstance(existing, ExistingRecordIndex):
        return existing
    return ExistingRecordIndex(existing or ())


def as_ingested(ingested: Union[IngestedFileIndex, Iterable[Union[IngestedFile, dict]], None]) -> IngestedFileIndex:
    if isinstance(ingested, IngestedFileIndex):
        return ingested
    return IngestedFileIndex(ingested or ())


def unscheduled(document: RawDocument, file_index: int, kind: FailureKind, reason: str) -> FileOutcome:
    """Outcome for a file that never entered the pipeline"""
    outcome = FileOutcome(document_name=document.name, file_index=file_index)
    outcome.fail(kind, reason)
    return outcome


class BatchOrchestrator:
    """
    Sole owner of concurrency for a batch of fuel invoices.

    Usage:
        orchestrator = BatchOrchestrator.from_config(ConfigManager.load())
        result = await orchestrator.run_batch(documents, vehicles, existing_records)
    """

    def __init__(self, pipeline: FuelInvoicePipeline, config: Optional[BatchConfig] = None):
        self.pipeline = pipeline
        self.config = config or BatchConfig()
        self._cancel_event = asyncio.Event()

    @classmethod
    def from_config(
        cls,
        config: Optional[ConfigManager] = None,
        llm_service=None,
        clock: Callable[[], date] = date.today
    ) -> 'BatchOrchestrator':
        """Wire every component from a ConfigManager"""
        config = config or ConfigManager()
        rules = config.validation()
        batch_config = config.batch()

        extractor = InvoiceExtractor(
            llm_service=llm_service,
            config=config.extraction(),
            currency_symbol=rules.currency_symbol
        )
        pipeline = FuelInvoicePipeline(
            extractor=extractor,
            normalizer=ContentNormalizer(config.normalizer()),
            validator=LineItemValidator(rules, clock=clock),
            reconciler=DuplicateReconciler(config.reconciliation()),
            extraction_timeout=batch_config.extraction_timeout
        )
        return cls(pipeline, batch_config)

    @property
    def reconciler(self) -> DuplicateReconciler:
        return self.pipeline.reconciler

    def cancel(self) -> None:
        """Stop scheduling new windows; the window in flight completes"""
        logger.info("Batch cancellation requested")
        self._cancel_event.set()

    def reset_cancel(self) -> None:
        """Forget a cancel request once the run it targeted has finished"""
        self._cancel_event.clear()

    async def run_batch(
        self,
        documents: Sequence[RawDocument],
        known_vehicles: Union[VehicleMatcher, Iterable[Union[KnownVehicle, dict]]] = (),
        existing_index: Union[ExistingRecordIndex, Iterable[Union[ExistingRecord, dict]], None] = None,
        date_hint_fn: Optional[DateHintFn] = document_date_hint,
        progress: Optional[ProgressChannel] = None,
        cancel_event: Optional[asyncio.Event] = None,
        ingested_files: Union[IngestedFileIndex, Iterable[Union[IngestedFile, dict]], None] = None
    ) -> BatchResult:
        """
        Process a batch of documents.

        Args:
            documents: Uploaded files, in the order the caller wants results
            known_vehicles: Vehicle roster (or a prepared VehicleMatcher)
            existing_index: Persisted fuel records snapshot
            date_hint_fn: Derives an anchor-date hint per document; None disables hints
            progress: Optional progress channel
            cancel_event: Optional caller-owned cancellation event
            ingested_files: Files stored by earlier runs; matching uploads are
                skipped before normalization

        Returns:
            BatchResult with one outcome per document, in input order
        """
        documents = list(documents)
        matcher = as_matcher(known_vehicles)
        index = as_index(existing_index)
        ingested = as_ingested(ingested_files)

        skipped: Dict[int, FileOutcome] = {}
        scheduled: List[IndexedDocument] = []
        for i, document in enumerate(documents):
            stored = ingested.match(document)
            if stored is None:
                scheduled.append((i, document))
                continue
            logger.info(f"Skipping {document.name}: already ingested as {stored.label}")
            skipped[i] = unscheduled(
                document, i, FailureKind.DUPLICATE_FILE, f"Already ingested as {stored.label}"
            )

        logger.info(
            f"Starting batch of {len(documents)} file(s), window size {self.config.window_size}, "
            f"{len(matcher.vehicles)} known vehicle(s), {len(index)} existing record(s), "
            f"{len(skipped)} already ingested"
        )

        # cancel() may arrive before the first window, so the event is only
        # cleared after the run
        try:
            run = await self.run_windows(
                scheduled, matcher, index,
                date_hint_fn=date_hint_fn, progress=progress, cancel_event=cancel_event
            )
        finally:
            self.reset_cancel()

        reason = "Batch stopped: quota exhausted" if run.quota_exhausted else "Batch cancelled"
        outcomes = [
            skipped.get(i) or run.outcomes.get(i) or unscheduled(document, i, FailureKind.NOT_STARTED, reason)
            for i, document in enumerate(documents)
        ]
        result = self.merge(outcomes, index, cancelled=run.cancelled, quota_exhausted=run.quota_exhausted)
        logger.info(f"Batch finished: {result.summary()}")
        return result

    async def run_windows(
        self,
        indexed_documents: List[IndexedDocument],
        matcher: VehicleMatcher,
        existing_index: ExistingRecordIndex,
        date_hint_fn: Optional[DateHintFn] = document_date_hint,
        progress: Optional[ProgressChannel] = None,
        cancel_event: Optional[asyncio.Event] = None
    ) -> WindowRun:
        """Run (file_index, document) pairs window by window"""
        run = WindowRun()
        total = len(indexed_documents)
        window_size = self.config.window_size

        if progress:
            progress.publish(0, total)

        for start in range(0, total, window_size):
            if start > 0 and self.config.window_delay > 0:
                await asyncio.sleep(self.config.window_delay)

            if self._cancelled(cancel_event):
                logger.info(f"Cancelled with {total - start} file(s) not started")
                run.cancelled = True
                break

            window = indexed_documents[start:start + window_size]
            results = await asyncio.gather(*[
                self._process_one(document, file_index, matcher, existing_index, date_hint_fn)
                for file_index, document in window
            ])

            for outcome in results:
                run.outcomes[outcome.file_index] = outcome

            if progress:
                progress.publish(len(run.outcomes), total)

            quota_failures = [
                o for o in results
                if o.failure and o.failure.kind == FailureKind.QUOTA_EXCEEDED
            ]
            if quota_failures:
                remaining = total - start - len(window)
                logger.error(
                    f"Quota exhausted while processing {quota_failures[0].document_name}; "
                    f"{remaining} file(s) not started"
                )
                run.quota_exhausted = True
                break

        return run

    def merge(
        self,
        outcomes: Sequence[FileOutcome],
        existing_index: ExistingRecordIndex,
        cancelled: bool = False,
        quota_exhausted: bool = False
    ) -> BatchResult:
        """
        Merge per-file candidates and re-run duplicate detection batch-wide.

        Candidates are ordered by file, then by line. Outcomes are returned
        as copies carrying the batch-wide verdicts.
        """
        ordered = sorted(outcomes, key=lambda o: o.file_index)
        merged = [c.candidate for o in ordered if o.succeeded for c in o.candidates]
        state = self.reconciler.reconcile_all(merged, existing_index)

        rewritten: List[FileOutcome] = []
        position = 0
        for outcome in ordered:
            if outcome.succeeded:
                count = len(outcome.candidates)
                outcome = outcome.model_copy(
                    update={'candidates': list(state.reconciled[position:position + count])}
                )
                position += count
            rewritten.append(outcome)

        return BatchResult(
            per_file=rewritten,
            merged_candidates=list(state.reconciled),
            cancelled=cancelled,
            quota_exhausted=quota_exhausted
        )

    def _cancelled(self, cancel_event: Optional[asyncio.Event]) -> bool:
        return self._cancel_event.is_set() or (cancel_event is not None and cancel_event.is_set())

    async def _process_one(
        self,
        document: RawDocument,
        file_index: int,
        matcher: VehicleMatcher,
        existing_index: ExistingRecordIndex,
        date_hint_fn: Optional[DateHintFn]
    ) -> FileOutcome:
        date_hint = None
        if date_hint_fn is not None:
            try:
                date_hint = date_hint_fn(document)
            except Exception as e:
                logger.warning(f"Date hint for {document.name} failed, continuing without one: {e}")
        return await self.pipeline.process(document, file_index, matcher, existing_index, date_hint)
