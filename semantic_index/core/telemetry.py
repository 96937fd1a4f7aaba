"""
Dependency-call telemetry sink. Receives one observation per remote provider attempt.
"""

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List

from ..util.logging import logger


@dataclass
class DependencyObservation:
    component: str
    operation: str
    duration_ms: float
    success: bool
    recorded_at: float = field(default_factory=time.time)


class DependencyTelemetry:
    """Bounded in-memory record of external dependency calls."""

    def __init__(self, max_observations: int = 200):
        self._observations: Deque[DependencyObservation] = deque(maxlen=max_observations)
        self._counters: Dict[str, Dict[str, int]] = {}
        self._lock = threading.Lock()

    def track_dependency_call(self, component: str, operation: str, duration_ms: float, success: bool) -> None:
        observation = DependencyObservation(component, operation, duration_ms, success)
        key = f"{component}.{operation}"
        with self._lock:
            self._observations.append(observation)
            counter = self._counters.setdefault(key, {"success": 0, "failure": 0})
            counter["success" if success else "failure"] += 1

        logger.log_dependency_call(component, operation, duration_ms, success)

    def recent(self) -> List[DependencyObservation]:
        with self._lock:
            return list(self._observations)

    def snapshot(self) -> Dict[str, Any]:
        """Counters per dependency operation."""
        with self._lock:
            return {key: dict(counter) for key, counter in self._counters.items()}


# Process-wide sink
telemetry = DependencyTelemetry()
