import pytest


@pytest.fixture(autouse=True)
def patch_database_connection():
    """Scoring, candidate and resolver tests are pure; skip the test engine."""
    yield
