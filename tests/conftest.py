"""Pytest fixtures for testing."""
import pytest

from fakes import FakeStore
from schemas.session import Identity


@pytest.fixture
def identity() -> Identity:
    """The active test identity."""
    return Identity(id="u1", email="u1@example.com", display_name="User One")


@pytest.fixture
def other_identity() -> Identity:
    """A second identity whose rows must never leak into u1's collection."""
    return Identity(id="u2", email="u2@example.com")


@pytest.fixture
def store(identity: Identity) -> FakeStore:
    """Fake store signed in as the test identity."""
    fake = FakeStore()
    fake.identity = identity
    return fake
