"""
Journal Analytics Engine — day-level metrics over a loaded JournalEntry
=======================================================================

Computes, for one journal day:
  - Total change in currency and average change % across snapshots
  - Open / closed snapshot counts
  - Morning buys and evening sells (time-of-day buckets)
  - Trades held over a weekend

Every method reads the object graph and returns a value; nothing is cached or
mutated. Missing optional inputs (a price or a time that was never recorded)
exclude the item from the metric instead of counting as zero.
"""

from __future__ import annotations

from datetime import time, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

from trade_journal.journal.journal_models import (
    HUNDRED, PERCENT_STEP, RATIO_STEP, ZERO,
    ExecutedSale, JournalEntry, Trade, TradeSnapshot,
)

MORNING_CUTOFF = time(11, 0)
EVENING_CUTOFF = time(15, 0)

_SATURDAY = 5


class JournalAnalytics:
    """
    Stateless analysis of journal entries, trades and snapshots.
    The only configuration is the pair of time-of-day cut-offs.
    """

    def __init__(self, morning_cutoff: time = MORNING_CUTOFF,
                 evening_cutoff: time = EVENING_CUTOFF):
        self._morning_cutoff = morning_cutoff
        self._evening_cutoff = evening_cutoff

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # SNAPSHOT LEVEL
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def calculate_change_amount(self, snapshot: TradeSnapshot) -> Decimal:
        """Price move × units held, fees excluded."""
        if snapshot.open_price is None or snapshot.close_price is None:
            return ZERO
        return (snapshot.close_price - snapshot.open_price) * snapshot.remaining_quantity

    def calculate_change_percentage(self, snapshot: TradeSnapshot) -> Decimal:
        """4-decimal ratio × 100, left unrounded (e.g. 20.0000); averages round to 2 decimals."""
        if (snapshot.open_price is None or snapshot.open_price == ZERO
                or snapshot.close_price is None):
            return ZERO
        ratio = ((snapshot.close_price - snapshot.open_price) / snapshot.open_price).quantize(
            RATIO_STEP, rounding=ROUND_HALF_UP)
        return ratio * HUNDRED

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # ENTRY LEVEL
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def calculate_total_change_kr(self, entry: JournalEntry) -> Decimal:
        return sum((self.calculate_change_amount(s) for s in entry.snapshots), ZERO)

    def calculate_average_change_percentage(self, entry: JournalEntry) -> Decimal:
        valid = [s for s in entry.snapshots
                 if s.open_price is not None and s.close_price is not None]
        if not valid:
            return ZERO
        total = sum((self.calculate_change_percentage(s) for s in valid), ZERO)
        return (total / len(valid)).quantize(PERCENT_STEP, rounding=ROUND_HALF_UP)

    def count_closed_snapshots(self, entry: JournalEntry) -> int:
        return sum(1 for s in entry.snapshots if s.is_closed())

    def count_open_snapshots(self, entry: JournalEntry) -> int:
        return sum(1 for s in entry.snapshots if not s.is_closed())

    def get_morning_buy_count(self, entry: JournalEntry) -> int:
        """Snapshots of the day whose trade was bought strictly before the morning cut-off."""
        return sum(1 for s in entry.snapshots
                   if s.trade is not None and s.trade.entry_time is not None
                   and s.trade.entry_time < self._morning_cutoff)

    def get_evening_sell_count(self, entry: JournalEntry) -> int:
        """Sales of the day executed at or after the evening cut-off."""
        return sum(1 for sale in self._sales(entry)
                   if sale.sell_time is not None and sale.sell_time >= self._evening_cutoff)

    def contains_held_over_weekend_trades(self, entry: JournalEntry) -> bool:
        return any(self.crosses_weekend(t) for t in entry.get_trades())

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # TRADE LEVEL
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def crosses_weekend(self, trade: Trade) -> bool:
        """
        True if a Saturday or Sunday falls after the first snapshot day and
        on or before the last one. Fewer than two dated snapshots never span
        a weekend.
        """
        snapshots = trade.sorted_snapshots()
        if len(snapshots) < 2:
            return False

        start = snapshots[0].entry_date
        end = snapshots[-1].entry_date
        current = start + timedelta(days=1)
        while current <= end:
            if current.weekday() >= _SATURDAY:
                return True
            current += timedelta(days=1)
        return False

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # REPORT
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def summarize(self, entry: JournalEntry) -> Dict[str, Any]:
        """All day metrics in one dict, for display and export."""
        trades = entry.get_trades()
        return {
            "entry_id": entry.id,
            "date": entry.date.isoformat() if entry.date else None,
            "trades": len(trades),
            "snapshots": len(entry.snapshots),
            "total_change": self.calculate_total_change_kr(entry),
            "average_change_pct": self.calculate_average_change_percentage(entry),
            "closed_snapshots": self.count_closed_snapshots(entry),
            "open_snapshots": self.count_open_snapshots(entry),
            "morning_buys": self.get_morning_buy_count(entry),
            "evening_sells": self.get_evening_sell_count(entry),
            "held_over_weekend": self.contains_held_over_weekend_trades(entry),
            "net_gain_by_trade": self._net_gain_by_trade(trades),
        }

    # ─── helpers ────────────────────────────────────────────────

    @staticmethod
    def _sales(entry: JournalEntry) -> List[ExecutedSale]:
        return [sale for s in entry.snapshots for sale in s.sales]

    @staticmethod
    def _net_gain_by_trade(trades: List[Trade]) -> List[Dict[str, Optional[Any]]]:
        return [{
            "trade_id": t.id,
            "ticker": t.asset.ticker if t.asset is not None else None,
            "net_gain": t.calculate_net_gain(),
            "net_gain_pct": t.calculate_net_gain_percentage(),
        } for t in trades]
