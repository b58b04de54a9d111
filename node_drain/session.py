import math
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from kubernetes import client

from node_drain.client import EvictionAPIShape
from node_drain.settings import DrainConfig


class OutcomeStatus(str, Enum):
    EVICTED = "evicted"
    SKIPPED = "skipped"
    FAILED = "failed"


class SkipReason(str, Enum):
    TERMINAL = "terminal"
    LOCAL_WORKLOAD = "local-workload"
    UNMANAGED = "unmanaged"
    DRY_RUN = "dry-run"


class FailureReason(str, Enum):
    RETRY_EXHAUSTED = "retry-exhausted"
    TIMEOUT = "timeout"
    FORBIDDEN = "forbidden"
    TRANSPORT = "transport"
    ERROR = "error"


def pod_key(pod: client.V1Pod) -> str:
    return f"{pod.metadata.namespace}/{pod.metadata.name}"


class Deadline:
    """Session-wide deadline shared by every pod worker.

    A timeout of ``None`` or ``0`` never expires. ``sleep`` never sleeps past
    the deadline, so a waiting worker wakes up as soon as time runs out.
    """

    def __init__(self, timeout: Optional[float], clock: Callable[[], float] = time.monotonic,
                 sleeper: Callable[[float], None] = time.sleep):
        self.timeout = timeout or None
        self._clock = clock
        self._sleeper = sleeper
        self._expires_at = clock() + self.timeout if self.timeout else None

    def remaining(self) -> float:
        if self._expires_at is None:
            return math.inf
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        return self.remaining() <= 0

    def sleep(self, seconds: float) -> None:
        seconds = min(seconds, self.remaining())
        if seconds > 0:
            self._sleeper(seconds)


@dataclass
class PodOutcome:
    pod: str
    status: OutcomeStatus
    reason: Optional[str] = None
    message: str = ""
    attempts: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.EVICTED

    @property
    def failed(self) -> bool:
        return self.status is OutcomeStatus.FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "reason": getattr(self.reason, "value", self.reason),
            "message": self.message,
            "attempts": self.attempts,
        }


class OutcomeMap:
    """Per-pod outcomes, each key written exactly once"""

    def __init__(self):
        self._lock = threading.Lock()
        self._outcomes: Dict[str, PodOutcome] = {}

    def record(self, outcome: PodOutcome) -> None:
        with self._lock:
            if outcome.pod in self._outcomes:
                raise ValueError(f"outcome for {outcome.pod} already recorded")
            self._outcomes[outcome.pod] = outcome

    def snapshot(self) -> Dict[str, PodOutcome]:
        with self._lock:
            return dict(self._outcomes)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._outcomes

    def __len__(self) -> int:
        with self._lock:
            return len(self._outcomes)


@dataclass
class DrainSession:
    """State for one drain invocation; never outlives it"""
    node_name: str
    config: DrainConfig
    deadline: Deadline
    eviction_shape: Optional[EvictionAPIShape] = None
    shape_resolved: bool = False
    node: Optional[client.V1Node] = None
    outcomes: OutcomeMap = field(default_factory=OutcomeMap)


@dataclass
class DrainResult:
    node: client.V1Node
    outcomes: Dict[str, PodOutcome]

    def _with_status(self, status: OutcomeStatus) -> List[PodOutcome]:
        return [o for o in self.outcomes.values() if o.status is status]

    @property
    def evicted(self) -> List[PodOutcome]:
        return self._with_status(OutcomeStatus.EVICTED)

    @property
    def skipped(self) -> List[PodOutcome]:
        return self._with_status(OutcomeStatus.SKIPPED)

    @property
    def failed(self) -> List[PodOutcome]:
        return self._with_status(OutcomeStatus.FAILED)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict[str, Any]:
        """Plain-data report suitable for json.dump"""
        return {
            "node": self.node.metadata.name if self.node and self.node.metadata else None,
            "summary": {
                "pods": len(self.outcomes),
                "evicted": len(self.evicted),
                "skipped": len(self.skipped),
                "failed": len(self.failed),
            },
            "pods": {key: outcome.to_dict() for key, outcome in sorted(self.outcomes.items())},
        }
