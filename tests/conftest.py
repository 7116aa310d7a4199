"""
Shared pytest fixtures for injuryflow tests.
"""

import pytest

from injuryflow import EngineConfig, Session
from tests.factories import make_store


@pytest.fixture
def store():
    """A small store with three products, one of them without records."""
    return make_store()


@pytest.fixture
def session(store):
    """A seeded session over the shared store."""
    return Session(store, EngineConfig(seed=42))
