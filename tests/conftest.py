"""
Pytest configuration and shared fixtures.
"""

import pytest

from fakes import SAMPLE_NOTES, FakeEmbeddingBackend, create_notes_db


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (require local models)")
    config.addinivalue_line("markers", "slow: Slow tests (model loading, large data)")


@pytest.fixture
def notes_db(tmp_path):
    """A small notes database with three embedded chunks in two collections."""
    return create_notes_db(
        tmp_path / "notes.db", SAMPLE_NOTES, collections=["coping", "sleep", "journaling"]
    )


@pytest.fixture
def fake_backend():
    """Embedding backend that maps anxiety questions close to the coping notes."""
    return FakeEmbeddingBackend(
        vectors={"I feel anxious": [1.0, 0.0, 0.0], "I can't sleep": [0.0, 1.0, 0.0]}
    )
