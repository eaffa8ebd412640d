"""Shared fixtures for the trxx test suite."""

import pytest


@pytest.fixture(autouse=True)
def offline_token_estimate(monkeypatch):
    """Keep tiktoken from fetching its tables during tests."""
    monkeypatch.setattr("trxx.utils._token_encoder", lambda: None)
