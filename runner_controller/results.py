"""
Results Module

Values returned to the reconciler after each tick.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from kubernetes.client import V1Pod


@dataclass(frozen=True)
class Requeue:
    """
    Ask the caller to run the same tick again later

    ``after`` is None when the caller should apply its own default backoff.
    ``error`` is set when the retry was caused by a failure worth reporting.
    """

    after: Optional[timedelta] = None
    error: Optional[Exception] = None


@dataclass(frozen=True)
class TickResult:
    """Outcome of one tick for a runner and its pod"""

    pod: Optional[V1Pod] = None
    requeue: Optional[Requeue] = None

    @property
    def done(self) -> bool:
        """True when nothing is left to do; the pod (if any) is safe to delete"""
        return self.requeue is None

    @property
    def error(self) -> Optional[Exception]:
        return self.requeue.error if self.requeue else None
