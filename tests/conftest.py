from datetime import datetime, timedelta, timezone

import pytest

from instasocial import store
from instasocial.api_interface import LocalAPI
from instasocial.data_models import Snapshot
from instasocial.storage import MemoryStorage

START = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class StepClock:
    """Deterministic clock: every call is one second after the previous one."""

    def __init__(self, start=START, step=timedelta(seconds=1)):
        self.now = start
        self.step = step

    def __call__(self):
        current = self.now
        self.now += self.step
        return current


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def snapshot_with_users():
    """alice and bob, nobody following anybody."""
    snapshot, alice = store.add_user(Snapshot(), "alice", "alice@x.com", "pw1")
    snapshot, bob = store.add_user(snapshot, "bob", "bob@x.com", "pw2")
    return snapshot, alice, bob


@pytest.fixture
async def api(storage, clock):
    api = await LocalAPI.open(storage, clock=clock)
    yield api
    await api.aclose()
