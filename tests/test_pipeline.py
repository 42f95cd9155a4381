"""
Tests for FuelInvoicePipeline (single file)
"""

from datetime import date

import pytest

from fuelex.models.batch import FailureKind, FileState
from fuelex.models.fuel_invoice import ExistingRecordIndex, MatchKind
from fuelex.processors.invoice.extractor import InvoiceExtractor
from fuelex.processors.invoice.pipeline import FuelInvoicePipeline
from fuelex.processors.invoice.validator import LineItemValidator
from fuelex.processors.invoice.vehicle_matcher import VehicleMatcher

from tests.helpers import FakeLLMService, fixed_clock, make_row, text_document, tool_response


def build_pipeline(service, timeout=5.0) -> FuelInvoicePipeline:
    return FuelInvoicePipeline(
        extractor=InvoiceExtractor(service),
        validator=LineItemValidator(clock=fixed_clock),
        extraction_timeout=timeout
    )


class TestFuelInvoicePipeline:
    """Per-file state machine"""

    @pytest.mark.asyncio
    async def test_reconciled_outcome(self, vehicles):
        service = FakeLLMService({'alpha.txt': tool_response([
            make_row(),
            make_row(registration='ZZ00 ZZZ', transactionDate='2025-10-07'),
            make_row(litres=None),
        ])})
        pipeline = build_pipeline(service)

        outcome = await pipeline.process(text_document('alpha.txt'), 0, VehicleMatcher(vehicles), ExistingRecordIndex())

        assert outcome.state == FileState.RECONCILED
        assert outcome.failure is None
        assert [c.vehicle_id for c in outcome.candidates] == ['v1', None]
        assert outcome.candidates[1].needs_manual_resolution
        assert len(outcome.rejected) == 1
        assert outcome.invoice_date == '2025-10-10'
        assert outcome.anchor_date == date(2025, 10, 10)
        assert set(outcome.stage_times) == {'normalizing', 'extracting', 'validating', 'resolving'}

    @pytest.mark.asyncio
    async def test_date_hint_is_anchor_without_invoice_date(self, vehicles):
        service = FakeLLMService({'alpha.txt': tool_response([make_row(transactionDate='2025-06-01')], invoice_date=None)})
        pipeline = build_pipeline(service)

        outcome = await pipeline.process(
            text_document('alpha.txt'), 0, VehicleMatcher(vehicles), ExistingRecordIndex(),
            date_hint=date(2025, 10, 1)
        )

        assert outcome.anchor_date == date(2025, 10, 1)
        assert outcome.candidates == []
        assert 'from the invoice date' in outcome.rejected[0].reasons[0]

    @pytest.mark.asyncio
    async def test_existing_duplicate_is_flagged(self, vehicles):
        service = FakeLLMService({'alpha.txt': tool_response([make_row()])})
        existing = ExistingRecordIndex([{'vehicle_id': 'v1', 'fill_date': '2025-10-06', 'litres': 50.0}])

        outcome = await build_pipeline(service).process(text_document('alpha.txt'), 0, VehicleMatcher(vehicles), existing)

        assert outcome.candidates[0].duplicate.match_kind == MatchKind.DATABASE

    @pytest.mark.asyncio
    async def test_normalization_failure_skips_extraction(self, vehicles):
        service = FakeLLMService({'empty.txt': tool_response([])})

        outcome = await build_pipeline(service).process(
            text_document('empty.txt', ''), 0, VehicleMatcher(vehicles), ExistingRecordIndex()
        )

        assert outcome.state == FileState.FAILED
        assert outcome.failure.kind == FailureKind.NORMALIZATION_FAILED
        assert service.calls == []

    @pytest.mark.asyncio
    async def test_extraction_timeout(self, vehicles):
        service = FakeLLMService({'slow.txt': tool_response([make_row()])}, delay=1.0)

        outcome = await build_pipeline(service, timeout=0.05).process(
            text_document('slow.txt'), 0, VehicleMatcher(vehicles), ExistingRecordIndex()
        )

        assert outcome.failure.kind == FailureKind.TIMEOUT

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_unknown(self, vehicles):
        service = FakeLLMService({'alpha.txt': RuntimeError('boom')})

        outcome = await build_pipeline(service).process(
            text_document('alpha.txt'), 0, VehicleMatcher(vehicles), ExistingRecordIndex()
        )

        assert outcome.failure.kind == FailureKind.UNKNOWN
        assert 'boom' in outcome.failure.message
        assert 'extracting' in outcome.stage_times

    @pytest.mark.asyncio
    async def test_degraded_extraction_reconciles_with_no_candidates(self, vehicles):
        service = FakeLLMService({'alpha.txt': {'arguments': None, 'content': 'no idea'}})

        outcome = await build_pipeline(service).process(
            text_document('alpha.txt'), 0, VehicleMatcher(vehicles), ExistingRecordIndex()
        )

        assert outcome.succeeded
        assert outcome.extraction_degraded
        assert outcome.candidates == []

    @pytest.mark.asyncio
    async def test_stage_callbacks(self, vehicles):
        service = FakeLLMService({'alpha.txt': tool_response([make_row()])})
        pipeline = build_pipeline(service)
        seen = []

        def broken(ctx):
            raise ValueError('observer bug')

        pipeline.on_stage(FileState.EXTRACTING, lambda ctx: seen.append(len(ctx.invoice.line_items)))
        pipeline.on_stage(FileState.VALIDATING, broken)

        outcome = await pipeline.process(text_document('alpha.txt'), 0, VehicleMatcher(vehicles), ExistingRecordIndex())

        assert seen == [1]
        assert outcome.succeeded
