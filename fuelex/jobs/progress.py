"""
Batch Progress

Observer-style progress channel. Subscribers are called on every update and
the latest snapshot can be sampled at any time.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressSnapshot:
    """Files completed out of the batch total"""
    completed: int = 0
    total: int = 0

    @property
    def fraction(self) -> float:
        if self.total <= 0:
            return 1.0
        return self.completed / self.total

    @property
    def done(self) -> bool:
        return self.completed >= self.total


ProgressCallback = Callable[[ProgressSnapshot], None]


class ProgressChannel:
    """
    Publishes (completed, total) updates.

    Updates never go backwards: a snapshot with fewer completed files than
    the latest one is ignored. Subscriber errors are logged, not raised.
    """

    def __init__(self):
        self._latest = ProgressSnapshot()
        self._subscribers: List[ProgressCallback] = []

    @property
    def latest(self) -> ProgressSnapshot:
        return self._latest

    def subscribe(self, callback: ProgressCallback) -> Callable[[], None]:
        """
        Register a callback.

        Returns:
            A function that removes the callback again
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, completed: int, total: int) -> ProgressSnapshot:
        if completed < self._latest.completed:
            logger.debug(f"Ignoring stale progress {completed}/{total}")
            return self._latest

        self._latest = ProgressSnapshot(completed=completed, total=total)
        for callback in list(self._subscribers):
            try:
                callback(self._latest)
            except Exception as e:
                logger.warning(f"Progress callback failed: {e}")
        return self._latest
