"""
Fuel Invoice Processing Pipeline

Per-file pipeline:
normalize -> extract -> validate -> resolve vehicles -> reconcile

Each file moves through the FileState machine and ends either reconciled
(with candidates) or failed (with a failure kind). Failures never escape
the file; the batch orchestrator decides what to do next.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, List, Optional

from fuelex.exceptions import ExtractionErrorKind, FuelexError
from fuelex.models.batch import FailureKind, FileOutcome, FileState
from fuelex.models.fuel_invoice import (
    ExistingRecordIndex,
    ExtractedInvoice,
    ExtractionContext,
    NormalizedPayload,
    RawDocument,
    ResolvedCandidate,
    ValidationReport,
)
from fuelex.processors.invoice.extractor import InvoiceExtractor
from fuelex.processors.invoice.normalizer import ContentNormalizer
from fuelex.processors.invoice.reconciler import DuplicateReconciler
from fuelex.processors.invoice.validator import LineItemValidator, parse_iso_date
from fuelex.processors.invoice.vehicle_matcher import VehicleMatcher

logger = logging.getLogger(__name__)


class StageFailure(FuelexError):
    """Raised inside a stage to end the file in the failed state"""

    def __init__(self, kind: FailureKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


@dataclass
class PipelineContext:
    """Context passed through pipeline stages"""
    document: RawDocument
    outcome: FileOutcome
    matcher: VehicleMatcher
    existing_index: ExistingRecordIndex
    date_hint: Optional[date] = None

    # Stage results
    payload: Optional[NormalizedPayload] = None
    invoice: Optional[ExtractedInvoice] = None
    report: Optional[ValidationReport] = None
    resolved: List[ResolvedCandidate] = field(default_factory=list)


class FuelInvoicePipeline:
    """
    Runs one document through every stage.

    Usage:
        pipeline = FuelInvoicePipeline(extractor=InvoiceExtractor(llm_service))
        outcome = await pipeline.process(document, 0, matcher, existing_index)
    """

    def __init__(
        self,
        extractor: InvoiceExtractor,
        normalizer: Optional[ContentNormalizer] = None,
        validator: Optional[LineItemValidator] = None,
        reconciler: Optional[DuplicateReconciler] = None,
        extraction_timeout: float = 120.0
    ):
        self.extractor = extractor
        self.normalizer = normalizer or ContentNormalizer()
        self.validator = validator or LineItemValidator()
        self.reconciler = reconciler or DuplicateReconciler()
        self.extraction_timeout = extraction_timeout

        self._stage_callbacks: Dict[FileState, List[Callable[[PipelineContext], None]]] = {}

    def on_stage(self, state: FileState, callback: Callable[[PipelineContext], None]) -> None:
        """Register a callback run after a stage completes successfully"""
        self._stage_callbacks.setdefault(state, []).append(callback)

    async def process(
        self,
        document: RawDocument,
        file_index: int,
        matcher: VehicleMatcher,
        existing_index: ExistingRecordIndex,
        date_hint: Optional[date] = None
    ) -> FileOutcome:
        """
        Process one document.

        Returns:
            FileOutcome in state reconciled or failed
        """
        start_time = time.time()
        outcome = FileOutcome(document_name=document.name, file_index=file_index)
        ctx = PipelineContext(
            document=document,
            outcome=outcome,
            matcher=matcher,
            existing_index=existing_index,
            date_hint=date_hint
        )

        try:
            await self._run_stage(ctx, FileState.NORMALIZING, self._stage_normalize)
            await self._run_stage(ctx, FileState.EXTRACTING, self._stage_extract)
            await self._run_stage(ctx, FileState.VALIDATING, self._stage_validate)
            await self._run_stage(ctx, FileState.RESOLVING, self._stage_resolve)
            outcome.advance(FileState.RECONCILED)
        except StageFailure as e:
            logger.warning(f"{document.name} failed during {outcome.state.value}: {e.kind.value}: {e.message}")
            outcome.fail(e.kind, e.message)
        except Exception as e:
            logger.error(f"{document.name} failed unexpectedly during {outcome.state.value}: {e}", exc_info=True)
            outcome.fail(FailureKind.UNKNOWN, str(e) or e.__class__.__name__)

        total_ms = int((time.time() - start_time) * 1000)
        if outcome.succeeded:
            logger.info(
                f"{document.name}: {len(outcome.candidates)} candidate(s), "
                f"{len(outcome.rejected)} rejected in {total_ms}ms"
            )
        return outcome

    async def _run_stage(
        self,
        ctx: PipelineContext,
        state: FileState,
        stage_func: Callable
    ) -> None:
        """Run a pipeline stage with timing"""
        ctx.outcome.advance(state)
        start = time.time()
        try:
            await stage_func(ctx)

            for callback in self._stage_callbacks.get(state, []):
                try:
                    callback(ctx)
                except Exception as e:
                    logger.warning(f"Stage callback failed: {e}")
        finally:
            ctx.outcome.stage_times[state.value] = int((time.time() - start) * 1000)

    async def _stage_normalize(self, ctx: PipelineContext) -> None:
        result = await self.normalizer.process(ctx.document)
        if not result.success:
            raise StageFailure(FailureKind.NORMALIZATION_FAILED, result.error)
        ctx.payload = result.content

    async def _stage_extract(self, ctx: PipelineContext) -> None:
        extraction_context = ExtractionContext(
            known_registrations=ctx.matcher.registrations,
            expected_date_hint=ctx.date_hint
        )
        try:
            result = await asyncio.wait_for(
                self.extractor.process(ctx.payload, extraction_context),
                timeout=self.extraction_timeout
            )
        except asyncio.TimeoutError as e:
            raise StageFailure(
                FailureKind.TIMEOUT,
                f"Extraction did not finish within {self.extraction_timeout}s"
            ) from e

        if not result.success:
            kind = FailureKind.from_extraction(ExtractionErrorKind(result.error_kind))
            raise StageFailure(kind, result.error)

        invoice: ExtractedInvoice = result.content
        ctx.invoice = invoice
        ctx.outcome.invoice_date = invoice.invoice_date
        ctx.outcome.invoice_total = invoice.invoice_total
        ctx.outcome.extraction_degraded = invoice.degraded
        if invoice.degraded:
            logger.warning(f"Extraction for {ctx.document.name} was degraded, no usable rows")

    async def _stage_validate(self, ctx: PipelineContext) -> None:
        anchor_date = parse_iso_date(ctx.invoice.invoice_date) or ctx.date_hint
        ctx.outcome.anchor_date = anchor_date
        ctx.report = self.validator.validate_all(ctx.invoice.line_items, anchor_date)
        ctx.outcome.rejected = list(ctx.report.rejected)
        if ctx.report.rejected:
            logger.info(f"{ctx.document.name}: rejected {len(ctx.report.rejected)} of {ctx.report.total} line item(s)")

    async def _stage_resolve(self, ctx: PipelineContext) -> None:
        ctx.resolved = [
            ResolvedCandidate(
                item=validated.item,
                transaction_date=validated.parsed_date,
                vehicle_id=ctx.matcher.resolve(validated.item.registration),
                source_name=ctx.document.name,
                file_index=ctx.outcome.file_index
            )
            for validated in ctx.report.accepted
        ]
        state = self.reconciler.reconcile_all(ctx.resolved, ctx.existing_index)
        ctx.outcome.candidates = list(state.reconciled)
