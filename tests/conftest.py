from typing import Optional

import pytest

from node_drain.session import Deadline, DrainSession
from node_drain.settings import DrainConfig

from fakes import FakeClock, FakeResourceClient


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_client() -> FakeResourceClient:
    return FakeResourceClient()


@pytest.fixture
def make_session(clock):
    def _make(config: Optional[DrainConfig] = None, node_name: str = "node1") -> DrainSession:
        config = config or DrainConfig(backoff_min=1, backoff_max=4, poll_interval=1, timeout=30)
        deadline = Deadline(config.timeout, clock=clock.monotonic, sleeper=clock.sleep)
        return DrainSession(node_name=node_name, config=config, deadline=deadline)
    return _make
