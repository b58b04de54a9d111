import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

TERMINAL_PHASE_ACCEPT = "accept"
TERMINAL_PHASE_DELETE = "delete"
TERMINAL_PHASE_POLICIES = (TERMINAL_PHASE_ACCEPT, TERMINAL_PHASE_DELETE)


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


DEFAULT_TIMEOUT = _env_float("DRAIN_TIMEOUT", 300.0)
DEFAULT_POLL_INTERVAL = _env_float("DRAIN_POLL_INTERVAL", 5.0)
DEFAULT_CONCURRENCY = _env_int("DRAIN_CONCURRENCY", 5)
DEFAULT_GRACE_PERIOD = _env_int("DRAIN_GRACE_PERIOD", None)
DEFAULT_BACKOFF_MIN = _env_float("DRAIN_BACKOFF_MIN", 1.0)
DEFAULT_BACKOFF_MAX = _env_float("DRAIN_BACKOFF_MAX", 30.0)


@dataclass
class DrainConfig:
    """Options for one drain session.

    ``timeout`` of ``None`` or ``0`` means the session never gives up.
    ``grace_period`` of ``None`` keeps each pod's own termination grace period.
    """
    grace_period: Optional[int] = DEFAULT_GRACE_PERIOD
    force: bool = False
    ignore_local_workloads: bool = False
    timeout: Optional[float] = DEFAULT_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    skip_discovery: bool = False
    concurrency: int = DEFAULT_CONCURRENCY
    disable_eviction: bool = False
    dry_run: bool = False
    pod_selector: Optional[str] = None
    terminal_phase_policy: str = TERMINAL_PHASE_ACCEPT
    backoff_min: float = DEFAULT_BACKOFF_MIN
    backoff_max: float = DEFAULT_BACKOFF_MAX

    def validate(self) -> "DrainConfig":
        if self.timeout is not None and self.timeout < 0:
            raise ValueError("timeout must be non-negative")
        if self.poll_interval <= 0:
            raise ValueError("poll interval must be positive")
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if self.grace_period is not None and self.grace_period < 0:
            raise ValueError("grace period must be non-negative")
        if self.backoff_min < 0 or self.backoff_max < self.backoff_min:
            raise ValueError("backoff bounds must satisfy 0 <= min <= max")
        if self.terminal_phase_policy not in TERMINAL_PHASE_POLICIES:
            raise ValueError(
                f"terminal phase policy must be one of {', '.join(TERMINAL_PHASE_POLICIES)}"
            )
        return self
