"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta

import pytest

from services import build_memory_engine


class FakeClock:
    """Clock the tests can move forward by hand."""

    def __init__(self, start=datetime(2024, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine(clock):
    """In-memory engine: trades, locks, books, ratings and notifications."""
    return build_memory_engine(clock=clock)


@pytest.fixture
def alice():
    return "65a000000000000000000001"


@pytest.fixture
def bob():
    return "65a000000000000000000002"


@pytest.fixture
def carol():
    return "65a000000000000000000003"


@pytest.fixture
def books(engine, alice, bob, carol):
    """One listed book per user, keyed by owner name."""
    repo = engine.books
    return {
        "alice": repo.add(alice, "Dune"),
        "bob": repo.add(bob, "Emma"),
        "carol": repo.add(carol, "Ulysses"),
    }


@pytest.fixture
def propose(engine, alice, books):
    """Alice offers her book for Bob's."""

    async def _propose():
        return await engine.trades.propose(alice, books["alice"].id, books["bob"].id)

    return _propose
