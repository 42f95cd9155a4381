from fuelex.config.config_manager import ConfigManager
from fuelex.config.settings import (
    BatchConfig,
    ExtractionConfig,
    NormalizerConfig,
    ReconcileConfig,
    ValidationRules,
)

__all__ = [
    'ConfigManager',
    'BatchConfig',
    'ExtractionConfig',
    'NormalizerConfig',
    'ReconcileConfig',
    'ValidationRules',
]
