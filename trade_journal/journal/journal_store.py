"""
Journal Storage Engine — SQLite-backed aggregate repository
===========================================================

A JournalEntry is saved as a whole: the entry row, the assets and trades its
snapshots point to, the snapshots themselves and their executed sales, all
inside one transaction. Loading rebuilds the connected object graph through
an identity map, so a trade seen from two different days is one object.

Tables:
  assets           — instrument reference data (ISIN unique)
  journal_entries  — one row per calendar day (date unique)
  trades           — buy-side facts of a position
  trade_snapshots  — daily state, FK to trade and to journal entry
  executed_sales   — sales, FK to snapshot

Deleting a trade or an entry cascades through snapshots to sales. Money is
stored as TEXT so Decimal values come back exactly as written.
"""

from __future__ import annotations

import json
import os
import sqlite3
import threading
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, List, Optional

from trade_journal.journal.asset import Asset
from trade_journal.journal.journal_models import (
    ExecutedSale, JournalEntry, Trade, TradeSnapshot,
)
from trade_journal.journal.validation import (
    decimal_to_str, isoformat_or_none, validate_asset, validate_journal_entry,
)
from trade_journal.utils.logger import get_logger

logger = get_logger(__name__)


def _parse_decimal(value: Optional[str]) -> Optional[Decimal]:
    return None if value is None else Decimal(value)


def _parse_time(value: Optional[str]) -> Optional[time]:
    return None if value is None else time.fromisoformat(value)


class JournalStore:
    """
    SQLite journal repository.
    One connection per thread; every save/remove is a single transaction.
    """

    def __init__(self, db_path: str = "data/trade_journal.db"):
        self._db_path = db_path
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._local = threading.local()
        self._init_db()
        logger.info("journal_store_initialized", db_path=db_path)

    def _get_conn(self) -> sqlite3.Connection:
        if not hasattr(self._local, "conn") or self._local.conn is None:
            self._local.conn = sqlite3.connect(self._db_path, timeout=10)
            self._local.conn.row_factory = sqlite3.Row
            self._local.conn.execute("PRAGMA foreign_keys=ON")
            self._local.conn.execute("PRAGMA journal_mode=WAL")
            self._local.conn.execute("PRAGMA synchronous=NORMAL")
        return self._local.conn

    def close(self):
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None

    def _init_db(self):
        conn = self._get_conn()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS assets (
                id                    INTEGER PRIMARY KEY AUTOINCREMENT,
                isin                  TEXT NOT NULL UNIQUE,
                name                  TEXT NOT NULL,
                ticker                TEXT NOT NULL,
                asset_class           TEXT NOT NULL,
                currency              TEXT NOT NULL,
                exchange              TEXT NOT NULL,
                is_leveraged          INTEGER DEFAULT 0,
                leverage_ratio        TEXT,
                is_investment_company INTEGER DEFAULT 0,
                dividend_yield        TEXT,
                sectors               TEXT DEFAULT '[]',
                industries            TEXT DEFAULT '[]',
                last_updated          TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS journal_entries (
                id               INTEGER PRIMARY KEY AUTOINCREMENT,
                date             TEXT NOT NULL UNIQUE,
                comment          TEXT NOT NULL DEFAULT '',
                notes            TEXT DEFAULT '',
                cash_balance     TEXT,
                invested_capital TEXT
            );

            CREATE TABLE IF NOT EXISTS trades (
                id          INTEGER PRIMARY KEY AUTOINCREMENT,
                asset_id    INTEGER REFERENCES assets(id),
                quantity    INTEGER NOT NULL,
                buy_fee     TEXT NOT NULL,
                entry_price TEXT NOT NULL,
                exit_price  TEXT,
                entry_time  TEXT,
                exit_time   TEXT
            );

            CREATE TABLE IF NOT EXISTS trade_snapshots (
                id                 INTEGER PRIMARY KEY AUTOINCREMENT,
                trade_id           INTEGER NOT NULL REFERENCES trades(id) ON DELETE CASCADE,
                journal_entry_id   INTEGER NOT NULL REFERENCES journal_entries(id) ON DELETE CASCADE,
                remaining_quantity INTEGER NOT NULL,
                open_price         TEXT NOT NULL,
                close_price        TEXT,
                notes              TEXT DEFAULT ''
            );

            CREATE TABLE IF NOT EXISTS executed_sales (
                id            INTEGER PRIMARY KEY AUTOINCREMENT,
                snapshot_id   INTEGER NOT NULL REFERENCES trade_snapshots(id) ON DELETE CASCADE,
                quantity_sold INTEGER NOT NULL,
                sell_price    TEXT NOT NULL,
                sell_fee      TEXT NOT NULL,
                gross_gain    TEXT NOT NULL,
                net_gain      TEXT NOT NULL,
                sell_time     TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_je_date ON journal_entries(date);
            CREATE INDEX IF NOT EXISTS idx_tr_asset ON trades(asset_id);
            CREATE INDEX IF NOT EXISTS idx_ts_trade ON trade_snapshots(trade_id);
            CREATE INDEX IF NOT EXISTS idx_ts_entry ON trade_snapshots(journal_entry_id);
            CREATE INDEX IF NOT EXISTS idx_es_snapshot ON executed_sales(snapshot_id);
        """)
        conn.commit()

    # ─── JOURNAL ENTRIES ────────────────────────────────────────

    def save(self, entry: JournalEntry) -> int:
        """
        Insert or update the entry together with everything under it.
        Snapshots and sales that were detached since the last save are deleted.
        On failure the transaction is rolled back, ids handed out during the
        attempt are cleared again and the error propagates.
        """
        validate_journal_entry(entry)
        conn = self._get_conn()
        assigned: List[Any] = []
        try:
            with conn:
                self._write_entry(conn, entry, assigned)
                for trade in entry.get_trades():
                    if trade.asset is not None:
                        self._write_asset(conn, trade.asset, assigned)
                    self._write_trade(conn, trade, assigned)
                for snapshot in entry.snapshots:
                    self._write_snapshot(conn, snapshot, assigned)
                self._delete_detached(conn, entry)
        except Exception:
            for obj in assigned:
                obj.id = None
            raise
        logger.info("journal_entry_saved", entry_id=entry.id, date=str(entry.date),
                    snapshots=len(entry.snapshots))
        return entry.id

    def find_by_id(self, entry_id: int) -> Optional[JournalEntry]:
        return _GraphLoader(self._get_conn()).entry(entry_id)

    def find_all(self) -> List[JournalEntry]:
        """All entries, newest date first."""
        conn = self._get_conn()
        loader = _GraphLoader(conn)
        rows = conn.execute("SELECT id FROM journal_entries ORDER BY date DESC").fetchall()
        return [loader.entry(r["id"]) for r in rows]

    def find_latest_entry(self) -> Optional[JournalEntry]:
        conn = self._get_conn()
        row = conn.execute("SELECT id FROM journal_entries ORDER BY date DESC LIMIT 1").fetchone()
        if row is None:
            return None
        return _GraphLoader(conn).entry(row["id"])

    def remove(self, entry: JournalEntry) -> bool:
        """Delete a stored entry. Returns False when it was never stored."""
        if entry.id is None:
            return False
        conn = self._get_conn()
        with conn:
            cur = conn.execute("DELETE FROM journal_entries WHERE id = ?", (entry.id,))
            if cur.rowcount == 0:
                return False
            self._delete_orphan_trades(conn)
        logger.info("journal_entry_removed", entry_id=entry.id)
        return True

    # ─── TRADES & ASSETS ────────────────────────────────────────

    def remove_trade(self, trade: Trade) -> bool:
        """Delete a trade with all of its snapshots and their sales."""
        if trade.id is None:
            return False
        conn = self._get_conn()
        with conn:
            cur = conn.execute("DELETE FROM trades WHERE id = ?", (trade.id,))
        if cur.rowcount:
            logger.info("trade_removed", trade_id=trade.id)
        return cur.rowcount > 0

    def save_asset(self, asset: Asset) -> int:
        validate_asset(asset)
        conn = self._get_conn()
        assigned: List[Any] = []
        try:
            with conn:
                self._write_asset(conn, asset, assigned)
        except Exception:
            for obj in assigned:
                obj.id = None
            raise
        return asset.id

    def find_asset_by_isin(self, isin: str) -> Optional[Asset]:
        conn = self._get_conn()
        row = conn.execute("SELECT id FROM assets WHERE isin = ?", (isin,)).fetchone()
        if row is None:
            return None
        return _GraphLoader(conn).asset(row["id"])

    # ─── EXPORT / STATS ─────────────────────────────────────────

    def export_all(self) -> List[Dict]:
        """Every entry as a dict, newest first (for backup/analysis)."""
        return [e.to_dict() for e in self.find_all()]

    def get_db_stats(self) -> Dict:
        conn = self._get_conn()
        stats = {}
        for table in ("assets", "journal_entries", "trades", "trade_snapshots", "executed_sales"):
            stats[table] = conn.execute(f"SELECT COUNT(*) as c FROM {table}").fetchone()["c"]
        stats["db_size_bytes"] = os.path.getsize(self._db_path) if os.path.exists(self._db_path) else 0
        stats["db_size_mb"] = round(stats["db_size_bytes"] / 1048576, 2)
        return stats

    # ─── writers ────────────────────────────────────────────────

    @staticmethod
    def _upsert(conn: sqlite3.Connection, table: str, obj, values: Dict[str, Any],
                assigned: List[Any]) -> None:
        if obj.id is not None:
            sets = ", ".join(f"{col} = ?" for col in values)
            cur = conn.execute(f"UPDATE {table} SET {sets} WHERE id = ?",
                               [*values.values(), obj.id])
            if cur.rowcount:
                return
            values = {"id": obj.id, **values}
        cols = ", ".join(values)
        marks = ", ".join("?" for _ in values)
        cur = conn.execute(f"INSERT INTO {table} ({cols}) VALUES ({marks})", list(values.values()))
        if obj.id is None:
            obj.id = cur.lastrowid
            assigned.append(obj)

    def _write_entry(self, conn, entry: JournalEntry, assigned):
        self._upsert(conn, "journal_entries", entry, {
            "date": entry.date.isoformat(),
            "comment": entry.comment,
            "notes": entry.notes,
            "cash_balance": decimal_to_str(entry.cash_balance),
            "invested_capital": decimal_to_str(entry.invested_capital),
        }, assigned)

    def _write_asset(self, conn, asset: Asset, assigned):
        if asset.id is None:
            row = conn.execute("SELECT id FROM assets WHERE isin = ?", (asset.isin,)).fetchone()
            if row is not None:
                asset.id = row["id"]
                assigned.append(asset)
        self._upsert(conn, "assets", asset, {
            "isin": asset.isin,
            "name": asset.name,
            "ticker": asset.ticker,
            "asset_class": asset.asset_class.value,
            "currency": asset.currency,
            "exchange": asset.exchange.value,
            "is_leveraged": 1 if asset.is_leveraged else 0,
            "leverage_ratio": decimal_to_str(asset.leverage_ratio),
            "is_investment_company": 1 if asset.is_investment_company else 0,
            "dividend_yield": decimal_to_str(asset.dividend_yield),
            "sectors": json.dumps([s.value for s in asset.sectors]),
            "industries": json.dumps([i.value for i in asset.industries]),
            "last_updated": asset.last_updated.isoformat(),
        }, assigned)

    def _write_trade(self, conn, trade: Trade, assigned):
        self._upsert(conn, "trades", trade, {
            "asset_id": trade.asset.id if trade.asset is not None else None,
            "quantity": trade.quantity,
            "buy_fee": decimal_to_str(trade.buy_fee),
            "entry_price": decimal_to_str(trade.entry_price),
            "exit_price": decimal_to_str(trade.exit_price),
            "entry_time": isoformat_or_none(trade.entry_time),
            "exit_time": isoformat_or_none(trade.exit_time),
        }, assigned)

    def _write_snapshot(self, conn, snapshot: TradeSnapshot, assigned):
        self._upsert(conn, "trade_snapshots", snapshot, {
            "trade_id": snapshot.trade.id,
            "journal_entry_id": snapshot.journal_entry.id,
            "remaining_quantity": snapshot.remaining_quantity,
            "open_price": decimal_to_str(snapshot.open_price),
            "close_price": decimal_to_str(snapshot.close_price),
            "notes": snapshot.notes,
        }, assigned)
        for sale in snapshot.sales:
            self._upsert(conn, "executed_sales", sale, {
                "snapshot_id": snapshot.id,
                "quantity_sold": sale.quantity_sold,
                "sell_price": decimal_to_str(sale.sell_price),
                "sell_fee": decimal_to_str(sale.sell_fee),
                "gross_gain": decimal_to_str(sale.gross_gain),
                "net_gain": decimal_to_str(sale.net_gain),
                "sell_time": isoformat_or_none(sale.sell_time),
            }, assigned)
        self._delete_missing(conn, "executed_sales", "snapshot_id", snapshot.id,
                             [s.id for s in snapshot.sales])

    def _delete_detached(self, conn, entry: JournalEntry):
        self._delete_missing(conn, "trade_snapshots", "journal_entry_id", entry.id,
                             [s.id for s in entry.snapshots])
        self._delete_orphan_trades(conn)

    @staticmethod
    def _delete_missing(conn, table: str, parent_col: str, parent_id: int, keep: List[int]):
        if keep:
            marks = ", ".join("?" for _ in keep)
            conn.execute(f"DELETE FROM {table} WHERE {parent_col} = ? AND id NOT IN ({marks})",
                         [parent_id, *keep])
        else:
            conn.execute(f"DELETE FROM {table} WHERE {parent_col} = ?", (parent_id,))

    @staticmethod
    def _delete_orphan_trades(conn):
        conn.execute("""
            DELETE FROM trades
            WHERE id NOT IN (SELECT DISTINCT trade_id FROM trade_snapshots)
        """)


class _GraphLoader:
    """
    Rebuilds stored rows into linked model objects.

    Loading an entry pulls in its snapshots, their trades, every other
    snapshot of those trades and the entries owning them. Each row becomes
    exactly one object per loader.
    """

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn
        self._entries: Dict[int, JournalEntry] = {}
        self._trades: Dict[int, Trade] = {}
        self._assets: Dict[int, Asset] = {}
        self._snapshots: Dict[int, TradeSnapshot] = {}

    def entry(self, entry_id: int) -> Optional[JournalEntry]:
        if entry_id in self._entries:
            return self._entries[entry_id]
        row = self._conn.execute("SELECT * FROM journal_entries WHERE id = ?", (entry_id,)).fetchone()
        if row is None:
            return None
        entry = JournalEntry(
            date=date.fromisoformat(row["date"]),
            comment=row["comment"],
            notes=row["notes"] or "",
            cash_balance=_parse_decimal(row["cash_balance"]),
            invested_capital=_parse_decimal(row["invested_capital"]),
            id=row["id"],
        )
        self._entries[entry_id] = entry
        rows = self._conn.execute(
            "SELECT * FROM trade_snapshots WHERE journal_entry_id = ? ORDER BY id", (entry_id,)
        ).fetchall()
        for srow in rows:
            entry.add_trade_snapshot(self._snapshot(srow))
        return entry

    def trade(self, trade_id: int) -> Trade:
        if trade_id in self._trades:
            return self._trades[trade_id]
        row = self._conn.execute("SELECT * FROM trades WHERE id = ?", (trade_id,)).fetchone()
        trade = Trade(
            quantity=row["quantity"],
            entry_price=_parse_decimal(row["entry_price"]),
            buy_fee=_parse_decimal(row["buy_fee"]),
            asset=self.asset(row["asset_id"]) if row["asset_id"] is not None else None,
            exit_price=_parse_decimal(row["exit_price"]),
            entry_time=_parse_time(row["entry_time"]),
            exit_time=_parse_time(row["exit_time"]),
            id=row["id"],
        )
        self._trades[trade_id] = trade
        rows = self._conn.execute(
            "SELECT * FROM trade_snapshots WHERE trade_id = ? ORDER BY id", (trade_id,)
        ).fetchall()
        for srow in rows:
            trade.add_snapshot(self._snapshot(srow))
        return trade

    def asset(self, asset_id: int) -> Asset:
        if asset_id in self._assets:
            return self._assets[asset_id]
        row = self._conn.execute("SELECT * FROM assets WHERE id = ?", (asset_id,)).fetchone()
        asset = Asset(
            name=row["name"],
            ticker=row["ticker"],
            isin=row["isin"],
            asset_class=row["asset_class"],
            currency=row["currency"],
            exchange=row["exchange"],
            id=row["id"],
            is_leveraged=bool(row["is_leveraged"]),
            leverage_ratio=_parse_decimal(row["leverage_ratio"]),
            is_investment_company=bool(row["is_investment_company"]),
            dividend_yield=_parse_decimal(row["dividend_yield"]),
            sectors=json.loads(row["sectors"]),
            industries=json.loads(row["industries"]),
            last_updated=datetime.fromisoformat(row["last_updated"]),
        )
        self._assets[asset_id] = asset
        return asset

    def _snapshot(self, row: sqlite3.Row) -> TradeSnapshot:
        snapshot_id = row["id"]
        if snapshot_id in self._snapshots:
            return self._snapshots[snapshot_id]
        sale_rows = self._conn.execute(
            "SELECT * FROM executed_sales WHERE snapshot_id = ? ORDER BY id", (snapshot_id,)
        ).fetchall()
        snapshot = TradeSnapshot(
            open_price=_parse_decimal(row["open_price"]),
            remaining_quantity=row["remaining_quantity"],
            close_price=_parse_decimal(row["close_price"]),
            notes=row["notes"] or "",
            id=snapshot_id,
            sales=[self._sale(r) for r in sale_rows],
        )
        self._snapshots[snapshot_id] = snapshot
        self.trade(row["trade_id"]).add_snapshot(snapshot)
        self.entry(row["journal_entry_id"])
        return snapshot

    @staticmethod
    def _sale(row: sqlite3.Row) -> ExecutedSale:
        return ExecutedSale(
            quantity_sold=row["quantity_sold"],
            sell_price=_parse_decimal(row["sell_price"]),
            sell_fee=_parse_decimal(row["sell_fee"]),
            sell_time=_parse_time(row["sell_time"]),
            id=row["id"],
        )
