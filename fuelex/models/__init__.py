from fuelex.models.fuel_invoice import (
    DateSource,
    DuplicateVerdict,
    ExistingRecord,
    ExistingRecordIndex,
    ExtractedInvoice,
    ExtractedLineItem,
    ExtractionContext,
    IngestedFile,
    IngestedFileIndex,
    KnownVehicle,
    MatchKind,
    NormalizedPayload,
    PayloadKind,
    RawDocument,
    ReconciledCandidate,
    ResolvedCandidate,
    ValidatedLineItem,
    ValidationReport,
    Verdict,
)
from fuelex.models.batch import (
    BatchResult,
    FailureKind,
    FileFailure,
    FileOutcome,
    FileState,
)

__all__ = [
    'BatchResult',
    'DateSource',
    'DuplicateVerdict',
    'ExistingRecord',
    'ExistingRecordIndex',
    'ExtractedInvoice',
    'ExtractedLineItem',
    'ExtractionContext',
    'FailureKind',
    'FileFailure',
    'FileOutcome',
    'FileState',
    'IngestedFile',
    'IngestedFileIndex',
    'KnownVehicle',
    'MatchKind',
    'NormalizedPayload',
    'PayloadKind',
    'RawDocument',
    'ReconciledCandidate',
    'ResolvedCandidate',
    'ValidatedLineItem',
    'ValidationReport',
    'Verdict',
]
