"""Shared fixtures for journal tests."""

from __future__ import annotations

import pytest

from trade_journal.journal import JournalAnalytics, JournalEntryService, JournalStore


@pytest.fixture
def analytics() -> JournalAnalytics:
    return JournalAnalytics()


@pytest.fixture
def store(tmp_path) -> JournalStore:
    s = JournalStore(str(tmp_path / "journal.db"))
    yield s
    s.close()


@pytest.fixture
def service(store, analytics) -> JournalEntryService:
    return JournalEntryService(store, analytics)
