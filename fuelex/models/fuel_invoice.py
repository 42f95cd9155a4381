"""
Fuel Invoice Data Models

Pydantic models for every stage of fuel-invoice ingestion: the uploaded
document, the payload sent to the extraction service, the untrusted rows it
returns, validation verdicts and reconciled candidates ready for review.
"""

import hashlib
from datetime import date
from enum import Enum
from pathlib import Path, PurePath
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from fuelex.utils.file_utils import get_content_type


class PayloadKind(str, Enum):
    """Shape of a normalized extraction payload"""
    TEXT = "text"
    IMAGE = "image"


class DateSource(str, Enum):
    """Where a line item's transaction date came from"""
    LINE = "line"
    INVOICE = "invoice"
    NONE = "none"


class Verdict(str, Enum):
    """Line item validation verdict"""
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class MatchKind(str, Enum):
    """Origin of a duplicate match"""
    NONE = "none"
    DATABASE = "database"
    WITHIN_BATCH = "within_batch"


class RawDocument(BaseModel):
    """An uploaded file as received from the caller"""
    name: str
    content: bytes = Field(repr=False)
    media_type: Optional[str] = None
    size: Optional[int] = None

    @model_validator(mode='after')
    def fill_size(self) -> 'RawDocument':
        if self.size is None:
            self.size = len(self.content)
        return self

    @classmethod
    def from_path(cls, path: Union[str, Path], media_type: Optional[str] = None) -> 'RawDocument':
        """Read a file from disk, guessing the media type from its extension"""
        file_path = Path(path)
        content = file_path.read_bytes()
        return cls(
            name=file_path.name,
            content=content,
            media_type=media_type or get_content_type(file_path),
            size=len(content)
        )

    @property
    def sha256(self) -> str:
        return hashlib.sha256(self.content).hexdigest()


class NormalizedPayload(BaseModel):
    """Canonical extraction input: inline text or a bounded inline image"""
    kind: PayloadKind
    source_name: str
    text: Optional[str] = None
    image_data_url: Optional[str] = Field(None, repr=False)
    original_media_type: Optional[str] = None
    truncated: bool = False
    char_count: int = 0

    @model_validator(mode='after')
    def check_body(self) -> 'NormalizedPayload':
        if self.kind == PayloadKind.TEXT and self.text is None:
            raise ValueError("text payload requires text")
        if self.kind == PayloadKind.IMAGE and not self.image_data_url:
            raise ValueError("image payload requires image_data_url")
        body = self.text if self.kind == PayloadKind.TEXT else self.image_data_url
        self.char_count = len(body)
        return self


class ExtractedLineItem(BaseModel):
    """
    One fuel purchase as reported by the extractor.

    Nothing here is trusted yet. Absent values stay None and are never
    defaulted to zero.
    """
    transaction_date: Optional[str] = None
    registration: Optional[str] = None
    litres: Optional[float] = None
    cost_per_litre: Optional[float] = None
    total_cost: Optional[float] = None
    mileage: Optional[int] = None
    station: Optional[str] = None
    date_source: DateSource = DateSource.NONE
    line_number: int = 1


class ExtractedInvoice(BaseModel):
    """Raw result of one extraction call"""
    invoice_date: Optional[str] = None
    invoice_total: Optional[float] = None
    station: Optional[str] = None
    line_items: List[ExtractedLineItem] = Field(default_factory=list)
    degraded: bool = False


class ExtractionContext(BaseModel):
    """Hints passed to the extraction call"""
    known_registrations: List[str] = Field(default_factory=list)
    expected_date_hint: Optional[date] = None


class ValidatedLineItem(BaseModel):
    """An extracted line item with its validation verdict"""
    item: ExtractedLineItem
    verdict: Verdict
    reasons: List[str] = Field(default_factory=list)
    parsed_date: Optional[date] = None

    @property
    def accepted(self) -> bool:
        return self.verdict == Verdict.ACCEPTED

    @model_validator(mode='after')
    def check_verdict(self) -> 'ValidatedLineItem':
        if self.verdict == Verdict.ACCEPTED and (self.reasons or self.parsed_date is None):
            raise ValueError("accepted line items carry no reasons and a parsed date")
        if self.verdict == Verdict.REJECTED and not self.reasons:
            raise ValueError("rejected line items must carry at least one reason")
        return self


class ValidationReport(BaseModel):
    """Accepted and rejected partitions of one invoice, input order kept"""
    accepted: List[ValidatedLineItem] = Field(default_factory=list)
    rejected: List[ValidatedLineItem] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.accepted) + len(self.rejected)


class KnownVehicle(BaseModel):
    """Roster entry used for registration matching"""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str
    registration: str


class ExistingRecord(BaseModel):
    """A previously persisted fuel record"""
    vehicle_id: str
    fill_date: date
    litres: float
    record_id: Optional[str] = None

    @property
    def ref(self) -> str:
        return self.record_id or f"{self.vehicle_id}@{self.fill_date.isoformat()}"


class ExistingRecordIndex:
    """
    Read-only snapshot of persisted fuel records.

    Supplied fresh by the caller for each run and never mutated here.
    """

    def __init__(self, records: Iterable[Union[ExistingRecord, Dict[str, Any]]] = ()):
        self._records: Tuple[ExistingRecord, ...] = tuple(
            r if isinstance(r, ExistingRecord) else ExistingRecord(**r)
            for r in records
        )
        self._by_key: Dict[Tuple[str, date], List[ExistingRecord]] = {}
        for record in self._records:
            self._by_key.setdefault((record.vehicle_id, record.fill_date), []).append(record)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self):
        return iter(self._records)

    @property
    def records(self) -> Tuple[ExistingRecord, ...]:
        return self._records

    def on(self, vehicle_id: str, fill_date: date) -> List[ExistingRecord]:
        """Records for one vehicle on one day"""
        return list(self._by_key.get((vehicle_id, fill_date), ()))


class IngestedFile(BaseModel):
    """A file stored by an earlier ingestion"""
    name: str
    size: Optional[int] = None
    sha256: Optional[str] = None
    ref: Optional[str] = None

    @property
    def label(self) -> str:
        return self.ref or self.name


def _name_key(name: str) -> str:
    return PurePath(name.strip()).name.casefold()


class IngestedFileIndex:
    """
    Read-only snapshot of files ingested before this run.

    A document matches a stored file when their SHA-256 digests agree, or,
    when no digest was stored, when the file name (case-insensitive) and
    size both agree.
    """

    def __init__(self, files: Iterable[Union[IngestedFile, Dict[str, Any]]] = ()):
        self._files: Tuple[IngestedFile, ...] = tuple(
            f if isinstance(f, IngestedFile) else IngestedFile(**f)
            for f in files
        )
        self._by_hash: Dict[str, IngestedFile] = {}
        self._by_name_size: Dict[Tuple[str, int], IngestedFile] = {}
        for stored in self._files:
            if stored.sha256:
                self._by_hash.setdefault(stored.sha256.lower(), stored)
            elif stored.size is not None:
                self._by_name_size.setdefault((_name_key(stored.name), stored.size), stored)

    def __len__(self) -> int:
        return len(self._files)

    def match(self, document: 'RawDocument') -> Optional[IngestedFile]:
        if self._by_hash:
            stored = self._by_hash.get(document.sha256)
            if stored is not None:
                return stored
        return self._by_name_size.get((_name_key(document.name), document.size))


class ResolvedCandidate(BaseModel):
    """An accepted line item with its vehicle resolved (or explicitly not)"""
    item: ExtractedLineItem
    transaction_date: date
    vehicle_id: Optional[str] = None
    source_name: str
    file_index: int = 0

    @property
    def ref(self) -> str:
        """`<file index>:<source name>#<line>`, unique even when uploads share a name"""
        return f"{self.file_index}:{self.source_name}#{self.item.line_number}"

    @property
    def litres(self) -> float:
        return self.item.litres


class DuplicateVerdict(BaseModel):
    """Outcome of duplicate detection for one candidate"""
    is_duplicate: bool = False
    match_kind: MatchKind = MatchKind.NONE
    matched_record_ref: Optional[str] = None

    @model_validator(mode='after')
    def check_consistency(self) -> 'DuplicateVerdict':
        if self.is_duplicate != (self.match_kind != MatchKind.NONE):
            raise ValueError("is_duplicate must agree with match_kind")
        return self


class ReconciledCandidate(BaseModel):
    """The reviewable unit handed back to the caller"""
    candidate: ResolvedCandidate
    duplicate: DuplicateVerdict = Field(default_factory=DuplicateVerdict)

    @property
    def ref(self) -> str:
        return self.candidate.ref

    @property
    def vehicle_id(self) -> Optional[str]:
        return self.candidate.vehicle_id

    @property
    def is_duplicate(self) -> bool:
        return self.duplicate.is_duplicate

    @property
    def needs_manual_resolution(self) -> bool:
        return self.candidate.vehicle_id is None

    @property
    def default_selected(self) -> bool:
        """Pre-selection for review: resolved rows that are not duplicates"""
        return not self.needs_manual_resolution and not self.is_duplicate

    def to_record(self) -> Dict[str, Any]:
        """Flat dictionary in the shape of a persisted fuel record"""
        item = self.candidate.item
        return {
            'ref': self.ref,
            'vehicle_id': self.candidate.vehicle_id,
            'registration': item.registration,
            'fill_date': self.candidate.transaction_date.isoformat(),
            'litres': item.litres,
            'cost_per_litre': item.cost_per_litre,
            'total_cost': item.total_cost,
            'mileage': item.mileage,
            'station': item.station,
            'is_duplicate': self.duplicate.is_duplicate,
            'match_kind': self.duplicate.match_kind.value,
            'matched_record_ref': self.duplicate.matched_record_ref,
            'needs_manual_resolution': self.needs_manual_resolution,
            'selected': self.default_selected,
        }
