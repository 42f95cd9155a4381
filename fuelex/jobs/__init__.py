"""
Fuelex Jobs Module

Batch execution for fuel invoice ingestion.

Components:
- BatchOrchestrator: Windowed, cancellable batch runs
- ProgressChannel: Progress updates for observers
- retry_rate_limited: Caller-level retries with exponential backoff
"""

from .batch import BatchOrchestrator, WindowRun
from .progress import ProgressChannel, ProgressSnapshot
from .retry import backoff_delay, retry_rate_limited

__all__ = [
    # Orchestration
    'BatchOrchestrator',
    'WindowRun',

    # Progress
    'ProgressChannel',
    'ProgressSnapshot',

    # Retries
    'backoff_delay',
    'retry_rate_limited'
]
