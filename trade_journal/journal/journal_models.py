"""
Journal Data Models — Trade ledger and daily journal
=====================================================

  Trade          — one buy-to-sell lifecycle of an Asset position
  TradeSnapshot  — the trade's state on one journal day
  ExecutedSale   — a partial or full disposal recorded on a snapshot
  JournalEntry   — a calendar day; owns that day's snapshots

Parents own their children in lists; each child keeps a back-reference to its
parent. Both sides are only changed through the add_*/remove_* methods, which
refuse a child that already belongs to another parent (OwnershipConflict) and
validate before mutating so a failed call leaves everything as it was.

All money is Decimal. Models use identity equality (eq=False).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, time
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

from trade_journal.journal.asset import Asset
from trade_journal.journal.validation import (
    ZERO, decimal_to_str, isoformat_or_none, to_decimal,
    validate_sale, validate_snapshot, validate_sold_quantity, validate_trade,
)
from trade_journal.utils.exceptions import OwnershipConflict, ValidationFailure

PERCENT_STEP = Decimal("0.01")
RATIO_STEP = Decimal("0.0001")
HUNDRED = Decimal("100")


def _contains(items: list, obj) -> bool:
    return any(item is obj for item in items)


def _remove(items: list, obj) -> bool:
    for i, item in enumerate(items):
        if item is obj:
            del items[i]
            return True
    return False


def _attach_all(children: list, attach, detach) -> None:
    """Attach each child; on the first failure detach the ones already attached and re-raise."""
    attached = []
    try:
        for child in children:
            attach(child)
            attached.append(child)
    except Exception:
        for child in reversed(attached):
            detach(child)
        raise


def percentage(numerator: Decimal, denominator: Decimal) -> Decimal:
    """numerator / denominator as a percentage, 4-decimal ratio then 2-decimal result (HALF_UP)."""
    ratio = (numerator / denominator).quantize(RATIO_STEP, rounding=ROUND_HALF_UP)
    return (ratio * HUNDRED).quantize(PERCENT_STEP, rounding=ROUND_HALF_UP)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# EXECUTED SALE
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(eq=False)
class ExecutedSale:
    """Units sold on the snapshot's day."""
    quantity_sold: int
    sell_price: Decimal              # per unit
    sell_fee: Decimal = ZERO
    sell_time: Optional[time] = None
    id: Optional[int] = None
    trade_snapshot: Optional["TradeSnapshot"] = field(default=None, init=False, repr=False)

    def __post_init__(self):
        self.sell_price = to_decimal(self.sell_price, "sell_price")
        self.sell_fee = to_decimal(self.sell_fee, "sell_fee")
        validate_sale(self)

    @property
    def gross_gain(self) -> Decimal:
        return self.quantity_sold * self.sell_price

    @property
    def net_gain(self) -> Decimal:
        """Can be negative when the fee exceeds the proceeds."""
        return self.gross_gain - self.sell_fee

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "quantity_sold": self.quantity_sold,
            "sell_price": decimal_to_str(self.sell_price),
            "sell_fee": decimal_to_str(self.sell_fee),
            "gross_gain": decimal_to_str(self.gross_gain),
            "net_gain": decimal_to_str(self.net_gain),
            "sell_time": isoformat_or_none(self.sell_time),
        }


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# TRADE SNAPSHOT
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(eq=False)
class TradeSnapshot:
    """
    A trade as observed on one journal day: units still held, the day's
    open/close price and any sales executed that day.
    """
    open_price: Decimal
    remaining_quantity: int = 0
    close_price: Optional[Decimal] = None   # None until the day is closed
    notes: str = ""
    id: Optional[int] = None
    sales: List[ExecutedSale] = field(default_factory=list, repr=False)
    trade: Optional["Trade"] = field(default=None, init=False, repr=False)
    journal_entry: Optional["JournalEntry"] = field(default=None, init=False, repr=False)

    def __post_init__(self):
        self.open_price = to_decimal(self.open_price, "open_price")
        self.close_price = to_decimal(self.close_price, "close_price")
        validate_snapshot(self)
        initial, self.sales = self.sales, []
        _attach_all(initial, self.add_sale, self.remove_sale)

    @property
    def entry_date(self) -> Optional[date]:
        return self.journal_entry.date if self.journal_entry is not None else None

    def add_sale(self, sale: Optional[ExecutedSale]) -> None:
        if sale is None:
            return
        if sale.trade_snapshot is not None and sale.trade_snapshot is not self:
            raise OwnershipConflict("Sale already belongs to another snapshot")
        if _contains(self.sales, sale):
            return
        if self.trade is not None:
            validate_sold_quantity(self.trade, sale.quantity_sold)
        sale.trade_snapshot = self
        self.sales.append(sale)

    def remove_sale(self, sale: ExecutedSale) -> bool:
        if _remove(self.sales, sale):
            sale.trade_snapshot = None
            return True
        return False

    def quantity_sold(self) -> int:
        return sum(s.quantity_sold for s in self.sales)

    def is_closed(self) -> bool:
        """A snapshot counts as closed once any sale was executed on it."""
        return bool(self.sales)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "trade_id": self.trade.id if self.trade is not None else None,
            "journal_entry_id": self.journal_entry.id if self.journal_entry is not None else None,
            "date": isoformat_or_none(self.entry_date),
            "remaining_quantity": self.remaining_quantity,
            "open_price": decimal_to_str(self.open_price),
            "close_price": decimal_to_str(self.close_price),
            "notes": self.notes,
            "sales": [s.to_dict() for s in self.sales],
        }


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# TRADE
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(eq=False)
class Trade:
    """
    Full lifecycle of one position, from purchase to final sale.

    ``quantity`` is the number of units originally bought and cannot change
    once set. Snapshots are kept in insertion order; chronological order comes
    from :meth:`sorted_snapshots`, which reads each snapshot's journal date.
    """
    quantity: int
    entry_price: Decimal
    buy_fee: Decimal = ZERO
    asset: Optional[Asset] = None
    exit_price: Optional[Decimal] = None
    entry_time: Optional[time] = None
    exit_time: Optional[time] = None
    id: Optional[int] = None
    snapshots: List[TradeSnapshot] = field(default_factory=list, repr=False)

    def __post_init__(self):
        self.entry_price = to_decimal(self.entry_price, "entry_price")
        self.buy_fee = to_decimal(self.buy_fee, "buy_fee")
        self.exit_price = to_decimal(self.exit_price, "exit_price")
        validate_trade(self)
        initial, self.snapshots = self.snapshots, []
        _attach_all(initial, self.add_snapshot, self.remove_snapshot)

    def __setattr__(self, name, value):
        if name == "quantity" and self.__dict__.get("quantity") is not None and value != self.quantity:
            raise ValidationFailure("quantity cannot change once set", field="quantity", value=value)
        super().__setattr__(name, value)

    # ─── Ledger mutation ────────────────────────────────────────

    def add_snapshot(self, snapshot: Optional[TradeSnapshot]) -> None:
        if snapshot is None:
            return
        if snapshot.trade is not None and snapshot.trade is not self:
            raise OwnershipConflict("Snapshot already belongs to another trade")
        if _contains(self.snapshots, snapshot):
            return
        if snapshot.remaining_quantity > self.quantity:
            raise ValidationFailure("remaining_quantity exceeds traded quantity",
                                    field="remaining_quantity", value=snapshot.remaining_quantity)
        validate_sold_quantity(self, snapshot.quantity_sold())
        snapshot.trade = self
        self.snapshots.append(snapshot)

    def remove_snapshot(self, snapshot: TradeSnapshot) -> bool:
        if _remove(self.snapshots, snapshot):
            snapshot.trade = None
            return True
        return False

    # ─── Queries ────────────────────────────────────────────────

    def sorted_snapshots(self) -> List[TradeSnapshot]:
        """Snapshots attached to a journal entry, oldest first (stable on equal dates)."""
        dated = [s for s in self.snapshots if s.entry_date is not None]
        return sorted(dated, key=lambda s: s.entry_date)

    def executed_sales(self) -> List[ExecutedSale]:
        return [sale for s in self.snapshots for sale in s.sales]

    def total_quantity_sold(self) -> int:
        return sum(s.quantity_sold() for s in self.snapshots)

    def is_fully_sold(self) -> bool:
        return self.total_quantity_sold() == self.quantity

    def get_remaining_quantity(self) -> int:
        return sum(s.remaining_quantity for s in self.snapshots)

    # ─── Results ────────────────────────────────────────────────

    def calculate_initial_investment(self) -> Decimal:
        """Cost basis: entry price × quantity + buy fee."""
        return self.entry_price * self.quantity + self.buy_fee

    def calculate_current_value(self) -> Decimal:
        """Market value of held units; snapshots without a close price add nothing."""
        return sum(
            (s.close_price * s.remaining_quantity for s in self.snapshots if s.close_price is not None),
            ZERO,
        )

    def calculate_net_gain(self) -> Decimal:
        """Realised sale proceeds plus unrealised value, less the cost basis."""
        realised = sum((sale.net_gain for sale in self.executed_sales()), ZERO)
        return realised + self.calculate_current_value() - self.calculate_initial_investment()

    def calculate_net_gain_percentage(self) -> Decimal:
        # A zero cost basis has no meaningful percentage; report 0 instead of raising.
        investment = self.calculate_initial_investment()
        if investment == ZERO:
            return ZERO
        return percentage(self.calculate_net_gain(), investment)

    def record_exit_from_sales(self) -> bool:
        """Once fully sold, take exit price and time from the latest sale."""
        if not self.is_fully_sold():
            return False
        sales = [sale for s in self.sorted_snapshots() for sale in s.sales]
        if not sales:
            return False
        last = sales[-1]
        self.exit_price = last.sell_price
        self.exit_time = last.sell_time
        return True

    def to_dict(self, include_snapshots: bool = True) -> dict:
        d: Dict[str, Any] = {
            "id": self.id,
            "asset": self.asset.to_dict() if self.asset is not None else None,
            "quantity": self.quantity,
            "buy_fee": decimal_to_str(self.buy_fee),
            "entry_price": decimal_to_str(self.entry_price),
            "exit_price": decimal_to_str(self.exit_price),
            "entry_time": isoformat_or_none(self.entry_time),
            "exit_time": isoformat_or_none(self.exit_time),
            "remaining_quantity": self.get_remaining_quantity(),
            "current_value": decimal_to_str(self.calculate_current_value()),
            "net_gain": decimal_to_str(self.calculate_net_gain()),
            "net_gain_pct": decimal_to_str(self.calculate_net_gain_percentage()),
        }
        if include_snapshots:
            d["snapshots"] = [s.to_dict() for s in self.snapshots]
        return d


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# JOURNAL ENTRY
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(eq=False)
class JournalEntry:
    """
    One calendar day of trading. Owns the snapshots recorded that day; the
    day's trades are derived from them by :meth:`get_trades`.
    """
    date: date
    comment: str = ""
    notes: str = ""
    cash_balance: Optional[Decimal] = None       # cash on the account, not in assets
    invested_capital: Optional[Decimal] = None
    id: Optional[int] = None
    snapshots: List[TradeSnapshot] = field(default_factory=list, repr=False)

    def __post_init__(self):
        self.cash_balance = to_decimal(self.cash_balance, "cash_balance")
        self.invested_capital = to_decimal(self.invested_capital, "invested_capital")
        initial, self.snapshots = self.snapshots, []
        _attach_all(initial, self.add_trade_snapshot, self.remove_snapshot)

    def add_trade_snapshot(self, snapshot: Optional[TradeSnapshot]) -> None:
        if snapshot is None:
            return
        if snapshot.journal_entry is not None and snapshot.journal_entry is not self:
            raise OwnershipConflict("Snapshot already belongs to another journal entry")
        if _contains(self.snapshots, snapshot):
            return
        snapshot.journal_entry = self
        self.snapshots.append(snapshot)

    def remove_snapshot(self, snapshot: TradeSnapshot) -> bool:
        if _remove(self.snapshots, snapshot):
            snapshot.journal_entry = None
            return True
        return False

    def add_trade(self, trade: Optional[Trade]) -> None:
        """
        Attach every snapshot of ``trade`` to this entry.

        Refused as a whole when any of its snapshots is already recorded on a
        different day; attach that trade's new snapshot with
        :meth:`add_trade_snapshot` instead.
        """
        if trade is None:
            return
        for snapshot in trade.snapshots:
            if snapshot.journal_entry is not None and snapshot.journal_entry is not self:
                raise OwnershipConflict("Trade already has snapshots in another journal entry")
        for snapshot in trade.snapshots:
            self.add_trade_snapshot(snapshot)

    def remove_trade(self, trade: Trade) -> bool:
        owned = [s for s in self.snapshots if s.trade is trade]
        for snapshot in owned:
            self.remove_snapshot(snapshot)
        return bool(owned)

    def get_trades(self) -> List[Trade]:
        """Distinct trades behind this entry's snapshots, in order of first appearance."""
        seen: Dict[int, Trade] = {}
        for snapshot in self.snapshots:
            if snapshot.trade is not None:
                seen.setdefault(id(snapshot.trade), snapshot.trade)
        return list(seen.values())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": isoformat_or_none(self.date),
            "comment": self.comment,
            "notes": self.notes,
            "cash_balance": decimal_to_str(self.cash_balance),
            "invested_capital": decimal_to_str(self.invested_capital),
            "trades": [t.to_dict(include_snapshots=False) for t in self.get_trades()],
            "snapshots": [s.to_dict() for s in self.snapshots],
        }
