from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class ProcessingResult:
    """Result of a fuelex processing step"""

    def __init__(
        self,
        success: bool,
        content: Optional[Any] = None,
        metadata: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
        error_kind: Optional[str] = None
    ):
        self.success = success
        self.content = content
        self.metadata = dict(metadata) if metadata else {}
        self.error = error
        self.error_kind = error_kind
        self.timestamp = datetime.now(timezone.utc)

    @classmethod
    def ok(cls, content: Any, **metadata) -> 'ProcessingResult':
        return cls(success=True, content=content, metadata=metadata)

    @classmethod
    def failed(cls, error_kind: str, error: str, **metadata) -> 'ProcessingResult':
        return cls(success=False, error=error, error_kind=error_kind, metadata=metadata)

    def __repr__(self) -> str:
        if self.success:
            return f"ProcessingResult(success=True, content={type(self.content).__name__})"
        return f"ProcessingResult(success=False, error_kind={self.error_kind!r}, error={self.error!r})"


class BaseProcessor(ABC):
    """Base class for fuelex processing steps that talk to the outside world"""

    def __init__(self, config: Any = None):
        self.config = config

    @abstractmethod
    async def process(self, *args, **kwargs) -> ProcessingResult:
        """Run the step

        Returns:
            ProcessingResult; failures are reported here, never raised
        """
        pass

    @abstractmethod
    def can_process(self, item: Any) -> bool:
        """Check if this processor can handle the given input

        Args:
            item: Input to check

        Returns:
            True if processor can handle the input
        """
        pass
