"""
Journal entry service — facade between callers (CLI, UI) and the store.

Collaborators are passed in by whoever composes the application; there is no
module-level registry. Change listeners are plain callables receiving the
entry after every successful save or removal.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from trade_journal.journal.journal_analytics import JournalAnalytics
from trade_journal.journal.journal_models import JournalEntry
from trade_journal.journal.journal_store import JournalStore
from trade_journal.journal.validation import ZERO
from trade_journal.utils.logger import get_logger

logger = get_logger(__name__)

ChangeListener = Callable[[JournalEntry], None]


class JournalEntryService:

    def __init__(self, store: JournalStore, analytics: JournalAnalytics):
        self._store = store
        self._analytics = analytics
        self._listeners: List[ChangeListener] = []

    def add_change_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def remove_change_listener(self, listener: ChangeListener) -> bool:
        if listener in self._listeners:
            self._listeners.remove(listener)
            return True
        return False

    def _notify(self, entry: JournalEntry) -> None:
        for listener in list(self._listeners):
            listener(entry)

    # ─── persistence ────────────────────────────────────────────

    def save(self, entry: JournalEntry) -> int:
        entry_id = self._store.save(entry)
        self._notify(entry)
        return entry_id

    def remove(self, entry: JournalEntry) -> bool:
        removed = self._store.remove(entry)
        if removed:
            self._notify(entry)
        else:
            logger.warning("journal_entry_not_found", entry_id=entry.id)
        return removed

    def get_all_entries(self) -> List[JournalEntry]:
        return self._store.find_all()

    def find_by_id(self, entry_id: int) -> Optional[JournalEntry]:
        return self._store.find_by_id(entry_id)

    def find_latest_entry(self) -> Optional[JournalEntry]:
        return self._store.find_latest_entry()

    # ─── analysis ───────────────────────────────────────────────

    def get_total_change_for_entry(self, entry_id: int) -> Decimal:
        """Total change of a stored entry; 0 when no entry has that id."""
        entry = self._store.find_by_id(entry_id)
        if entry is None:
            return ZERO
        return self._analytics.calculate_total_change_kr(entry)

    def summarize_entry(self, entry_id: int) -> Optional[Dict[str, Any]]:
        entry = self._store.find_by_id(entry_id)
        if entry is None:
            return None
        return self._analytics.summarize(entry)
