import math

import pytest

from node_drain.session import (
    Deadline,
    DrainResult,
    FailureReason,
    OutcomeMap,
    OutcomeStatus,
    PodOutcome,
    SkipReason,
)
from node_drain.settings import DrainConfig

from fakes import make_node


def test_deadline_counts_down(clock):
    deadline = Deadline(10, clock=clock.monotonic, sleeper=clock.sleep)

    deadline.sleep(4)
    assert deadline.remaining() == 6
    assert not deadline.expired()

    deadline.sleep(60)
    assert clock.sleeps == [4, 6]
    assert deadline.expired()


def test_deadline_does_not_sleep_once_expired(clock):
    deadline = Deadline(1, clock=clock.monotonic, sleeper=clock.sleep)
    deadline.sleep(1)
    deadline.sleep(5)

    assert clock.sleeps == [1]


@pytest.mark.parametrize("timeout", [None, 0])
def test_deadline_without_timeout_never_expires(clock, timeout):
    deadline = Deadline(timeout, clock=clock.monotonic, sleeper=clock.sleep)
    deadline.sleep(10_000)

    assert deadline.remaining() == math.inf
    assert not deadline.expired()


def test_outcomes_are_write_once():
    outcomes = OutcomeMap()
    outcomes.record(PodOutcome("default/web", OutcomeStatus.EVICTED))

    with pytest.raises(ValueError):
        outcomes.record(PodOutcome("default/web", OutcomeStatus.FAILED, FailureReason.TIMEOUT))
    assert outcomes.snapshot()["default/web"].status is OutcomeStatus.EVICTED
    assert "default/web" in outcomes
    assert len(outcomes) == 1


def test_result_report():
    result = DrainResult(node=make_node("node1"), outcomes={
        "default/web": PodOutcome("default/web", OutcomeStatus.EVICTED, message="removed", attempts=2),
        "kube-system/agent": PodOutcome("kube-system/agent", OutcomeStatus.SKIPPED, SkipReason.LOCAL_WORKLOAD),
        "data/db": PodOutcome("data/db", OutcomeStatus.FAILED, FailureReason.RETRY_EXHAUSTED, "blocked", 7),
    })

    report = result.to_dict()

    assert not result.ok
    assert report["node"] == "node1"
    assert report["summary"] == {"pods": 3, "evicted": 1, "skipped": 1, "failed": 1}
    assert list(report["pods"]) == ["data/db", "default/web", "kube-system/agent"]
    assert report["pods"]["data/db"] == {
        "status": "failed", "reason": "retry-exhausted", "message": "blocked", "attempts": 7,
    }
    assert report["pods"]["kube-system/agent"]["reason"] == "local-workload"


@pytest.mark.parametrize("options", [
    {"timeout": -1},
    {"poll_interval": 0},
    {"concurrency": 0},
    {"grace_period": -5},
    {"backoff_min": 10, "backoff_max": 1},
    {"terminal_phase_policy": "ignore"},
])
def test_invalid_config(options):
    with pytest.raises(ValueError):
        DrainConfig(**options).validate()


def test_config_defaults_validate():
    config = DrainConfig().validate()

    assert config.terminal_phase_policy == "accept"
