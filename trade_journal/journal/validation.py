"""
Field constraint checks for the journal models.

Each ``validate_*`` function raises :class:`ValidationFailure` naming the
offending field. They run from the models' ``__post_init__``, from the attach
operations, and from ``JournalStore.save`` before anything is written.
"""

from __future__ import annotations

import re
from datetime import date, time
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

from trade_journal.utils.exceptions import ValidationFailure

ZERO = Decimal("0")

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")
_ISIN_MAX_LENGTH = 20


# ── Coercion helpers ────────────────────────────────────────

def to_decimal(value: Any, field: str) -> Optional[Decimal]:
    """Convert ``value`` to Decimal. Floats go through ``str`` to keep their printed digits."""
    if value is None or isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValidationFailure(f"{field} must be a number", field=field, value=value)
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationFailure(f"{field} is not a valid decimal", field=field, value=value) from None


def decimal_to_str(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


def isoformat_or_none(value: Union[date, time, None]) -> Optional[str]:
    return None if value is None else value.isoformat()


# ── Primitive checks ────────────────────────────────────────

def require(value: Any, field: str) -> None:
    if value is None:
        raise ValidationFailure(f"{field} is required", field=field)


def require_text(value: Optional[str], field: str) -> None:
    if value is None or not str(value).strip():
        raise ValidationFailure(f"{field} is required", field=field, value=value)


def require_quantity(value: Any, field: str, allow_zero: bool = False) -> None:
    require(value, field)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationFailure(f"{field} must be a whole number", field=field, value=value)
    if value < 0 or (value == 0 and not allow_zero):
        bound = "cannot be negative" if allow_zero else "must be greater than 0"
        raise ValidationFailure(f"{field} {bound}", field=field, value=value)


def require_positive(value: Optional[Decimal], field: str) -> None:
    require(value, field)
    if value <= ZERO:
        raise ValidationFailure(f"{field} must be greater than 0", field=field, value=value)


def require_non_negative(value: Optional[Decimal], field: str, required: bool = True) -> None:
    if value is None:
        if required:
            raise ValidationFailure(f"{field} is required", field=field)
        return
    if value < ZERO:
        raise ValidationFailure(f"{field} cannot be negative", field=field, value=value)


def require_time(value: Any, field: str) -> None:
    if value is not None and not isinstance(value, time):
        raise ValidationFailure(f"{field} must be a time of day", field=field, value=value)


# ── Model checks ────────────────────────────────────────────

def validate_asset(asset) -> None:
    require_text(asset.name, "name")
    require_text(asset.ticker, "ticker")
    require_text(asset.isin, "isin")
    if len(asset.isin) > _ISIN_MAX_LENGTH:
        raise ValidationFailure("isin is too long", field="isin", value=asset.isin)
    require(asset.asset_class, "asset_class")
    require(asset.exchange, "exchange")
    if not asset.currency or not _CURRENCY_RE.match(asset.currency):
        raise ValidationFailure("currency must be an ISO 4217 code", field="currency", value=asset.currency)
    if asset.is_leveraged and asset.leverage_ratio is None:
        raise ValidationFailure("leverage_ratio is required for leveraged assets", field="leverage_ratio")
    if asset.leverage_ratio is not None and asset.leverage_ratio < Decimal("1.0"):
        raise ValidationFailure("leverage_ratio must be at least 1.0", field="leverage_ratio",
                                value=asset.leverage_ratio)
    require_non_negative(asset.dividend_yield, "dividend_yield", required=False)


def validate_trade(trade) -> None:
    require_quantity(trade.quantity, "quantity")
    require_non_negative(trade.buy_fee, "buy_fee")
    require_positive(trade.entry_price, "entry_price")
    require_non_negative(trade.exit_price, "exit_price", required=False)
    require_time(trade.entry_time, "entry_time")
    require_time(trade.exit_time, "exit_time")


def validate_snapshot(snapshot) -> None:
    require_quantity(snapshot.remaining_quantity, "remaining_quantity", allow_zero=True)
    require_positive(snapshot.open_price, "open_price")
    require_non_negative(snapshot.close_price, "close_price", required=False)


def validate_sale(sale) -> None:
    require_quantity(sale.quantity_sold, "quantity_sold")
    require_positive(sale.sell_price, "sell_price")
    require_non_negative(sale.sell_fee, "sell_fee")
    require_time(sale.sell_time, "sell_time")


def validate_sold_quantity(trade, extra_sold: int = 0) -> None:
    """Sales recorded against ``trade`` (plus ``extra_sold``) may not exceed its quantity."""
    sold = trade.total_quantity_sold() + extra_sold
    if sold > trade.quantity:
        raise ValidationFailure(
            f"sold quantity {sold} exceeds traded quantity {trade.quantity}",
            field="quantity_sold", value=sold,
        )


def validate_trade_ledger(trade) -> None:
    """Full consistency check of one trade and everything below it."""
    validate_trade(trade)
    validate_sold_quantity(trade)
    previous = None
    for snapshot in trade.snapshots:
        validate_snapshot(snapshot)
        for sale in snapshot.sales:
            validate_sale(sale)
        if snapshot.remaining_quantity > trade.quantity:
            raise ValidationFailure("remaining_quantity exceeds traded quantity",
                                    field="remaining_quantity", value=snapshot.remaining_quantity)
    for snapshot in trade.sorted_snapshots():
        if previous is not None and snapshot.remaining_quantity > previous:
            raise ValidationFailure(
                f"remaining_quantity increased on {snapshot.entry_date}",
                field="remaining_quantity", value=snapshot.remaining_quantity,
            )
        previous = snapshot.remaining_quantity


def validate_journal_entry(entry) -> None:
    require(entry.date, "date")
    if not isinstance(entry.date, date):
        raise ValidationFailure("date must be a calendar date", field="date", value=entry.date)
    require(entry.comment, "comment")
    require_non_negative(entry.invested_capital, "invested_capital", required=False)
    for snapshot in entry.snapshots:
        if snapshot.trade is None:
            raise ValidationFailure("snapshot has no trade", field="trade")
        if snapshot.journal_entry is not entry:
            raise ValidationFailure("snapshot is not owned by this entry", field="journal_entry")
    for trade in entry.get_trades():
        validate_trade_ledger(trade)
        if trade.asset is not None:
            validate_asset(trade.asset)
