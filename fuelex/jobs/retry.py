"""
Rate-limit retries

The pipeline never retries on its own. Callers that want rate-limited files
re-submitted use retry_rate_limited, which backs off exponentially between
attempts and re-merges everything so batch-wide duplicate detection still
sees every candidate.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Iterable, Optional, Sequence, Union

from fuelex.jobs.batch import BatchOrchestrator, DateHintFn, as_index, as_matcher
from fuelex.models.batch import BatchResult, FailureKind
from fuelex.models.fuel_invoice import ExistingRecord, ExistingRecordIndex, KnownVehicle, RawDocument
from fuelex.processors.invoice.vehicle_matcher import VehicleMatcher
from fuelex.utils.date_hints import document_date_hint

logger = logging.getLogger(__name__)


def backoff_delay(attempt: int, base: float, maximum: float) -> float:
    """Delay before retry number `attempt` (0-based)"""
    return min(base * (2 ** attempt), maximum)


async def retry_rate_limited(
    orchestrator: BatchOrchestrator,
    documents: Sequence[RawDocument],
    result: BatchResult,
    known_vehicles: Union[VehicleMatcher, Iterable[Union[KnownVehicle, dict]]] = (),
    existing_index: Union[ExistingRecordIndex, Iterable[Union[ExistingRecord, dict]], None] = None,
    max_retries: Optional[int] = None,
    date_hint_fn: Optional[DateHintFn] = document_date_hint,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
) -> BatchResult:
    """
    Re-submit files that failed with rate_limited.

    Args:
        orchestrator: Orchestrator that produced `result`
        documents: The same documents, in the same order, as the original run
        result: BatchResult of the original run
        known_vehicles: Vehicle roster
        existing_index: Persisted fuel records snapshot
        max_retries: Attempts; defaults to the orchestrator's batch config
        date_hint_fn: Date-hint function used for the original run
        sleep: Awaitable sleep, replaceable in tests

    Returns:
        A new BatchResult with retried outcomes merged in
    """
    documents = list(documents)
    config = orchestrator.config
    attempts = config.max_retries if max_retries is None else max_retries
    matcher = as_matcher(known_vehicles)
    index = as_index(existing_index)

    outcomes = {o.file_index: o for o in result.per_file}
    quota_exhausted = result.quota_exhausted
    cancelled = result.cancelled

    try:
        for attempt in range(attempts):
            pending = sorted(
                i for i, o in outcomes.items()
                if o.failure and o.failure.kind == FailureKind.RATE_LIMITED
            )
            if not pending or quota_exhausted:
                break

            delay = backoff_delay(attempt, config.retry_delay_base, config.retry_delay_max)
            logger.info(
                f"Retrying {len(pending)} rate-limited file(s) in {delay:.1f}s "
                f"(attempt {attempt + 1}/{attempts})"
            )
            await sleep(delay)

            run = await orchestrator.run_windows(
                [(i, documents[i]) for i in pending], matcher, index, date_hint_fn=date_hint_fn
            )
            outcomes.update(run.outcomes)
            quota_exhausted = quota_exhausted or run.quota_exhausted
            if run.cancelled:
                cancelled = True
                break
    finally:
        orchestrator.reset_cancel()

    still_limited = [
        o.document_name for o in outcomes.values()
        if o.failure and o.failure.kind == FailureKind.RATE_LIMITED
    ]
    if still_limited:
        logger.warning(f"Still rate limited after retries: {', '.join(still_limited)}")

    return orchestrator.merge(
        list(outcomes.values()),
        index,
        cancelled=cancelled,
        quota_exhausted=quota_exhausted
    )
