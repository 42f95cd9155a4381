"""
Batch Outcome Models

Per-file state machine and the aggregated result of a batch run.
"""

from datetime import date
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from fuelex.exceptions import ExtractionErrorKind, InvalidStateTransition
from fuelex.models.fuel_invoice import ReconciledCandidate, ValidatedLineItem


class FileState(str, Enum):
    """Per-file ingestion state"""
    QUEUED = "queued"
    NORMALIZING = "normalizing"
    EXTRACTING = "extracting"
    VALIDATING = "validating"
    RESOLVING = "resolving"
    RECONCILED = "reconciled"
    FAILED = "failed"


TERMINAL_STATES = frozenset({FileState.RECONCILED, FileState.FAILED})

_TRANSITIONS: Dict[FileState, FileState] = {
    FileState.QUEUED: FileState.NORMALIZING,
    FileState.NORMALIZING: FileState.EXTRACTING,
    FileState.EXTRACTING: FileState.VALIDATING,
    FileState.VALIDATING: FileState.RESOLVING,
    FileState.RESOLVING: FileState.RECONCILED,
}


class FailureKind(str, Enum):
    """Why a file ended in the failed state"""
    NORMALIZATION_FAILED = "normalization_failed"
    RATE_LIMITED = "rate_limited"
    QUOTA_EXCEEDED = "quota_exceeded"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"
    NOT_STARTED = "not_started"
    DUPLICATE_FILE = "duplicate_file"

    @classmethod
    def from_extraction(cls, kind: ExtractionErrorKind) -> 'FailureKind':
        return cls(kind.value)


class FileFailure(BaseModel):
    """Failure reason reported for one file"""
    kind: FailureKind
    message: str

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class FileOutcome(BaseModel):
    """Everything the caller needs to know about one ingested file"""
    document_name: str
    file_index: int
    state: FileState = FileState.QUEUED
    failure: Optional[FileFailure] = None

    candidates: List[ReconciledCandidate] = Field(default_factory=list)
    rejected: List[ValidatedLineItem] = Field(default_factory=list)

    invoice_date: Optional[str] = None
    invoice_total: Optional[float] = None
    anchor_date: Optional[date] = None
    extraction_degraded: bool = False

    stage_times: Dict[str, int] = Field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.state == FileState.RECONCILED

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, new_state: FileState) -> None:
        """Move to the next pipeline state"""
        if _TRANSITIONS.get(self.state) != new_state:
            raise InvalidStateTransition(
                f"{self.document_name}: cannot move from {self.state.value} to {new_state.value}"
            )
        self.state = new_state

    def fail(self, kind: FailureKind, message: str) -> None:
        """Move to the failed state from any non-terminal state"""
        if self.is_terminal:
            raise InvalidStateTransition(
                f"{self.document_name}: cannot fail from terminal state {self.state.value}"
            )
        self.state = FileState.FAILED
        self.failure = FileFailure(kind=kind, message=message)


class BatchResult(BaseModel):
    """Aggregated outcome of one batch run"""
    per_file: List[FileOutcome] = Field(default_factory=list)
    merged_candidates: List[ReconciledCandidate] = Field(default_factory=list)
    cancelled: bool = False
    quota_exhausted: bool = False

    @property
    def succeeded(self) -> List[FileOutcome]:
        return [o for o in self.per_file if o.succeeded]

    @property
    def failed(self) -> List[FileOutcome]:
        return [o for o in self.per_file if o.state == FileState.FAILED]

    @property
    def duplicate_file_names(self) -> List[str]:
        return [
            o.document_name for o in self.failed
            if o.failure and o.failure.kind == FailureKind.DUPLICATE_FILE
        ]

    @property
    def rate_limited_names(self) -> List[str]:
        return [
            o.document_name for o in self.failed
            if o.failure and o.failure.kind == FailureKind.RATE_LIMITED
        ]

    @property
    def selected(self) -> List[ReconciledCandidate]:
        """Candidates pre-selected for persistence under the default review policy"""
        return [c for c in self.merged_candidates if c.default_selected]

    def summary(self) -> Dict[str, int]:
        return {
            'files': len(self.per_file),
            'reconciled': len(self.succeeded),
            'failed': len(self.failed),
            'duplicate_files': len(self.duplicate_file_names),
            'candidates': len(self.merged_candidates),
            'duplicates': sum(1 for c in self.merged_candidates if c.is_duplicate),
            'unresolved': sum(1 for c in self.merged_candidates if c.needs_manual_resolution),
            'rejected': sum(len(o.rejected) for o in self.per_file),
            'selected': len(self.selected),
        }
