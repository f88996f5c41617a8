import os
import sys

import pytest


# Allow running pytest from either the repo root or from within `backend/`.
# Tests import `backend.*`, which requires the repo root on sys.path.
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)


class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, now_ms: int = 0):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


@pytest.fixture
def clock():
    return FakeClock(1_700_000_000_000)


@pytest.fixture
def kv():
    from backend.client.kvstore import MemoryKeyValueStore

    return MemoryKeyValueStore()


@pytest.fixture
def tcache(kv, clock):
    from backend.client.cache import TimestampedCache

    return TimestampedCache(kv, clock)
