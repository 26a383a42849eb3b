"""Pytest fixtures for lifeseed tests.

Every test gets its own ledger database under tmp_path and a deterministic
clock, so block hashes and feed ordering are reproducible.
"""

import os
import sqlite3

import pytest

from lifeseed.config import Settings
from lifeseed.ledger import get_ledger, init_db
from lifeseed.models import Lightseed, StandardPayload
from lifeseed.storage import LocalBlobStorage

CLOCK_START = 1_760_000_000_000


class FakeClock:
    """Epoch-milliseconds clock that advances by `step` on every read."""

    def __init__(self, start: int = CLOCK_START, step: int = 1):
        self.now = start
        self.step = step
        self.reads = 0

    def __call__(self) -> int:
        value = self.now
        self.now += self.step
        self.reads += 1
        return value


class RacingClock:
    """Clock that lets a rival session append before returning a reading.

    The rival append commits after the reading session has read the chain
    head and before its compare-and-set, so that session loses the race.
    rounds=None races on every reading.
    """

    def __init__(self, settings, clock, tree_id, rival, rounds=1):
        self.settings = settings
        self.clock = clock
        self.tree_id = tree_id
        self.rival = rival
        self.rounds = rounds
        self.rival_blocks = []

    def __call__(self) -> int:
        if self.rounds is None or self.rounds > 0:
            if self.rounds is not None:
                self.rounds -= 1
            with get_ledger(self.settings, clock=self.clock) as rival:
                self.rival_blocks.append(rival.chain.append_block(
                    self.tree_id, StandardPayload("Rival", "Got there first"), self.rival
                ))
        return self.clock()


class ContendingClock:
    """Clock that runs a rival write in another session on its first reading.

    The rival sees whatever the reading session has locked. Its result, or
    the sqlite3.OperationalError it hit waiting for the write lock, is kept
    in `outcome`.
    """

    def __init__(self, clock, rival):
        self.clock = clock
        self.rival = rival
        self.outcome = None
        self._fired = False

    def __call__(self) -> int:
        if not self._fired:
            self._fired = True
            try:
                self.outcome = self.rival()
            except sqlite3.OperationalError as e:
                self.outcome = e
        return self.clock()


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep LIFESEED_* variables from the host out of the tests."""
    for key in list(os.environ):
        if key.startswith("LIFESEED_"):
            monkeypatch.delenv(key, raising=False)
    yield


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a fresh database and a config file that does not exist."""
    return Settings(
        database_path=tmp_path / "ledger.db",
        config_path=tmp_path / "config" / "config.toml",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger_factory(settings, clock):
    """Session factory over an initialized database."""
    init_db(settings)
    return lambda: get_ledger(settings, clock=clock)


@pytest.fixture
def racing_clock(settings, clock, bob):
    """Build a RacingClock whose rival appends as bob."""
    def build(tree_id, rounds=1):
        return RacingClock(settings, clock, tree_id, bob, rounds=rounds)
    return build


@pytest.fixture
def contending_clock(settings, clock):
    """Build a ContendingClock; rivals give up on the write lock quickly."""
    settings.busy_timeout = 0.05

    def build(rival):
        return ContendingClock(clock, rival)
    return build


@pytest.fixture
def ledger(ledger_factory):
    """One open Ledger session; committed when the test finishes."""
    with ledger_factory() as session:
        yield session


@pytest.fixture
def storage(tmp_path):
    return LocalBlobStorage(tmp_path / "blobs", base_url="https://cdn.test/lifeseed")


@pytest.fixture
def alice():
    return Lightseed(uid="alice", display_name="Alice", photo_url="https://img.test/alice.png")


@pytest.fixture
def bob():
    return Lightseed(uid="bob", display_name="Bob")


@pytest.fixture
def root_tree(ledger_factory, alice):
    """First tree in the system; validated by the GENESIS bootstrap rule."""
    with ledger_factory() as ledger:
        return ledger.lifetree.plant(owner_id=alice.uid, name="Elder Oak", body="First roots")


@pytest.fixture
def sapling(ledger_factory, root_tree, bob):
    """An unvalidated tree owned by bob."""
    with ledger_factory() as ledger:
        return ledger.lifetree.plant(owner_id=bob.uid, name="Young Birch", body="New growth")
