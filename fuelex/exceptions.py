"""
Fuelex exceptions

Exceptions are raised inside a component and converted to result values
(ProcessingResult, FileOutcome) at the component boundary.
"""

from enum import Enum
from typing import Optional


class FuelexError(Exception):
    """Base class for all fuelex errors"""


class ConfigurationError(FuelexError):
    """Configuration is missing or invalid"""


class NormalizationFailed(FuelexError):
    """Uploaded file could not be turned into an extraction payload"""


class ExtractionErrorKind(str, Enum):
    """Failure classes reported by the extraction service"""
    RATE_LIMITED = "rate_limited"
    QUOTA_EXCEEDED = "quota_exceeded"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    UNKNOWN = "unknown"


class ExtractionError(FuelexError):
    """Extraction call failed"""

    def __init__(self, kind: ExtractionErrorKind, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code

    def __repr__(self) -> str:
        return f"ExtractionError(kind={self.kind.value!r}, message={self.message!r})"


class InvalidStateTransition(FuelexError):
    """A file outcome was moved through an illegal state transition"""
