"""
Duplicate Reconciler

Flags candidates that look like a purchase already on record or one seen
earlier in the same batch. Flagged candidates are kept; deciding what to
persist is left to the caller.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple, Union

from fuelex.config.settings import ReconcileConfig
from fuelex.models.fuel_invoice import (
    DuplicateVerdict,
    ExistingRecordIndex,
    MatchKind,
    ReconciledCandidate,
    ResolvedCandidate,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileState:
    """Candidates reconciled so far, in batch order, plus the last station seen"""
    reconciled: Tuple[ReconciledCandidate, ...] = ()
    last_station: Optional[str] = None

    def add(self, candidate: ReconciledCandidate) -> 'ReconcileState':
        return ReconcileState(
            self.reconciled + (candidate,),
            candidate.candidate.item.station or self.last_station
        )

    @property
    def prior(self) -> Tuple[ResolvedCandidate, ...]:
        return tuple(r.candidate for r in self.reconciled)

    def with_station(self, candidate: ResolvedCandidate) -> ResolvedCandidate:
        """Rows without a station inherit the last one seen in the batch"""
        if candidate.item.station or not self.last_station:
            return candidate
        item = candidate.item.model_copy(update={'station': self.last_station})
        return candidate.model_copy(update={'item': item})


class DuplicateReconciler:
    """Same vehicle, same day and litres within tolerance means the same purchase"""

    def __init__(self, config: Optional[ReconcileConfig] = None):
        self.config = config or ReconcileConfig()

    @property
    def litres_tolerance(self) -> float:
        return self.config.litres_tolerance

    def same_purchase(self, vehicle_id: str, fill_date, litres: Optional[float], other) -> bool:
        """Compare against an ExistingRecord or a ResolvedCandidate"""
        other_date = getattr(other, 'fill_date', None) or getattr(other, 'transaction_date', None)
        if other.vehicle_id != vehicle_id or other_date != fill_date:
            return False
        if litres is None or other.litres is None:
            return False
        return abs(litres - other.litres) < self.litres_tolerance

    def reconcile(
        self,
        candidate: ResolvedCandidate,
        existing_index: ExistingRecordIndex,
        prior_candidates: Sequence[Union[ResolvedCandidate, ReconciledCandidate]] = ()
    ) -> ReconciledCandidate:
        """
        Reconcile one candidate.

        Args:
            candidate: Accepted, vehicle-resolved line item
            existing_index: Persisted records snapshot
            prior_candidates: Earlier candidates of the same batch, in order

        Returns:
            ReconciledCandidate with its duplicate verdict
        """
        if candidate.vehicle_id is None:
            return ReconciledCandidate(candidate=candidate)

        vehicle_id = candidate.vehicle_id
        fill_date = candidate.transaction_date
        litres = candidate.litres

        for record in existing_index.on(vehicle_id, fill_date):
            if self.same_purchase(vehicle_id, fill_date, litres, record):
                logger.debug(f"{candidate.ref} duplicates existing record {record.ref}")
                return ReconciledCandidate(
                    candidate=candidate,
                    duplicate=DuplicateVerdict(
                        is_duplicate=True,
                        match_kind=MatchKind.DATABASE,
                        matched_record_ref=record.ref
                    )
                )

        for prior in prior_candidates:
            earlier = prior.candidate if isinstance(prior, ReconciledCandidate) else prior
            if earlier.vehicle_id is None:
                continue
            if self.same_purchase(vehicle_id, fill_date, litres, earlier):
                logger.debug(f"{candidate.ref} duplicates {earlier.ref} from this batch")
                return ReconciledCandidate(
                    candidate=candidate,
                    duplicate=DuplicateVerdict(
                        is_duplicate=True,
                        match_kind=MatchKind.WITHIN_BATCH,
                        matched_record_ref=earlier.ref
                    )
                )

        return ReconciledCandidate(candidate=candidate)

    def reconcile_all(
        self,
        candidates: Iterable[Union[ResolvedCandidate, ReconciledCandidate]],
        existing_index: ExistingRecordIndex,
        state: Optional[ReconcileState] = None
    ) -> ReconcileState:
        """Fold over candidates in order; each is checked against all earlier ones"""
        state = state or ReconcileState()
        for item in candidates:
            candidate = item.candidate if isinstance(item, ReconciledCandidate) else item
            candidate = state.with_station(candidate)
            state = state.add(self.reconcile(candidate, existing_index, state.prior))
        return state
