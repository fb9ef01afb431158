"""Fixtures for API view tests."""

import pytest


@pytest.fixture
def api_store(store, monkeypatch):
    """Route the views' object storage to the in-memory fake."""
    monkeypatch.setattr("uploads.services.sessions.get_object_store", lambda: store)
    return store
