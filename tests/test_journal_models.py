"""Tests for the trade ledger: ownership, derived results and validation."""

from datetime import time
from decimal import Decimal

import pytest

from tests.factories import (
    FRIDAY, MONDAY, make_asset, make_entry, make_sale, make_snapshot, make_trade,
)
from trade_journal.journal import Exchange, ExecutedSale, JournalEntry, Trade, TradeSnapshot
from trade_journal.utils.exceptions import ErrorCategory, OwnershipConflict, ValidationFailure


class TestExecutedSale:

    def test_gross_and_net_gain_are_exact(self):
        sale = make_sale(quantity_sold=3, sell_price="10.1", sell_fee="0.35")
        assert sale.gross_gain == Decimal("30.3")
        assert sale.net_gain == Decimal("29.95")

    def test_net_gain_can_be_negative(self):
        sale = make_sale(quantity_sold=1, sell_price="1", sell_fee="2.50")
        assert sale.net_gain == Decimal("-1.50")

    def test_float_price_keeps_printed_digits(self):
        sale = ExecutedSale(quantity_sold=1, sell_price=0.1)
        assert sale.sell_price == Decimal("0.1")

    @pytest.mark.parametrize("kwargs, field", [
        (dict(quantity_sold=0, sell_price="1"), "quantity_sold"),
        (dict(quantity_sold=1, sell_price="0"), "sell_price"),
        (dict(quantity_sold=1, sell_price="1", sell_fee="-1"), "sell_fee"),
    ])
    def test_rejects_invalid_fields(self, kwargs, field):
        with pytest.raises(ValidationFailure) as exc:
            ExecutedSale(**kwargs)
        assert exc.value.field == field
        assert exc.value.category == ErrorCategory.VALIDATION


class TestTradeOwnership:

    def test_add_snapshot_sets_back_reference(self):
        trade = make_trade()
        snapshot = make_snapshot()
        trade.add_snapshot(snapshot)
        assert snapshot.trade is trade
        assert trade.snapshots == [snapshot]

    def test_add_none_is_noop(self):
        trade = make_trade()
        trade.add_snapshot(None)
        assert trade.snapshots == []

    def test_adding_same_snapshot_twice_is_noop(self):
        trade = make_trade()
        snapshot = make_snapshot()
        trade.add_snapshot(snapshot)
        trade.add_snapshot(snapshot)
        assert len(trade.snapshots) == 1

    def test_snapshot_owned_by_other_trade_conflicts(self):
        first, second = make_trade(), make_trade()
        snapshot = make_snapshot()
        first.add_snapshot(snapshot)

        with pytest.raises(OwnershipConflict):
            second.add_snapshot(snapshot)
        assert first.snapshots == [snapshot]
        assert second.snapshots == []
        assert snapshot.trade is first

    def test_remove_snapshot_clears_back_reference(self):
        trade = make_trade()
        snapshot = make_snapshot()
        trade.add_snapshot(snapshot)
        assert trade.remove_snapshot(snapshot) is True
        assert snapshot.trade is None
        assert trade.remove_snapshot(snapshot) is False

    def test_sale_owned_by_other_snapshot_conflicts(self):
        sale = make_sale()
        first, second = make_snapshot(), make_snapshot()
        first.add_sale(sale)
        with pytest.raises(OwnershipConflict):
            second.add_sale(sale)
        assert second.sales == []

    def test_sold_quantity_cannot_exceed_trade_quantity(self):
        trade = make_trade(quantity=2)
        first = make_snapshot(remaining_quantity=1, sales=[make_sale(quantity_sold=1)])
        trade.add_snapshot(first)
        second = make_snapshot(remaining_quantity=0)
        trade.add_snapshot(second)

        with pytest.raises(ValidationFailure):
            second.add_sale(make_sale(quantity_sold=2))
        assert second.sales == []

    def test_snapshot_with_too_many_sales_is_rejected_untouched(self):
        trade = make_trade(quantity=1)
        snapshot = make_snapshot(remaining_quantity=0, sales=[make_sale(quantity_sold=1),
                                                              make_sale(quantity_sold=1)])
        with pytest.raises(ValidationFailure):
            trade.add_snapshot(snapshot)
        assert snapshot.trade is None
        assert trade.snapshots == []

    def test_failed_trade_construction_releases_earlier_snapshots(self):
        fresh, owned = make_snapshot(), make_snapshot()
        make_trade().add_snapshot(owned)

        with pytest.raises(OwnershipConflict):
            Trade(quantity=1, entry_price="100", snapshots=[fresh, owned])
        assert fresh.trade is None
        make_trade().add_snapshot(fresh)

    def test_oversold_trade_construction_releases_earlier_snapshots(self):
        first = make_snapshot(remaining_quantity=0, sales=[make_sale()])
        second = make_snapshot(remaining_quantity=0, sales=[make_sale()])

        with pytest.raises(ValidationFailure):
            Trade(quantity=1, entry_price="100", snapshots=[first, second])
        assert first.trade is None
        assert second.trade is None

    def test_failed_snapshot_construction_releases_earlier_sales(self):
        fresh, owned = make_sale(), make_sale()
        make_snapshot().add_sale(owned)

        with pytest.raises(OwnershipConflict):
            TradeSnapshot(open_price="100", sales=[fresh, owned])
        assert fresh.trade_snapshot is None

    def test_quantity_is_immutable(self):
        trade = make_trade(quantity=5)
        trade.quantity = 5
        with pytest.raises(ValidationFailure):
            trade.quantity = 6
        assert trade.quantity == 5


class TestTradeResults:

    def test_empty_trade_has_zero_value_and_quantity(self):
        trade = make_trade()
        assert trade.calculate_current_value() == 0
        assert trade.get_remaining_quantity() == 0

    def test_net_gain_of_open_position(self):
        trade = make_trade(entry_price=Decimal("100"), quantity=1, buy_fee=Decimal("0"))
        trade.add_snapshot(make_snapshot(close_price="110", remaining_quantity=1))
        assert trade.calculate_net_gain() == Decimal("10.00")
        assert trade.calculate_net_gain_percentage() == Decimal("10.00")

    def test_current_value_skips_snapshots_without_close(self):
        trade = make_trade(quantity=3)
        trade.add_snapshot(make_snapshot(close_price="110", remaining_quantity=2))
        trade.add_snapshot(make_snapshot(close_price=None, remaining_quantity=2))
        assert trade.calculate_current_value() == Decimal("220")
        assert trade.get_remaining_quantity() == 4

    def test_net_gain_combines_sales_and_held_units(self):
        trade = make_trade(quantity=2, entry_price=Decimal("50"), buy_fee=Decimal("5"))
        trade.add_snapshot(make_snapshot(
            open_price="50", close_price="60", remaining_quantity=1,
            sales=[make_sale(quantity_sold=1, sell_price="55", sell_fee="1")],
        ))
        # 54 realised + 60 held - 105 cost basis
        assert trade.calculate_net_gain() == Decimal("9")
        assert trade.calculate_net_gain_percentage() == Decimal("8.57")

    def test_percentage_rounds_half_up(self):
        trade = make_trade(quantity=3, entry_price=Decimal("1"))
        trade.add_snapshot(make_snapshot(open_price="1", close_price="1.00005", remaining_quantity=3))
        # 0.00015 / 3 = 0.00005 -> 0.0001 -> 0.01 %
        assert trade.calculate_net_gain_percentage() == Decimal("0.01")

    def test_record_exit_from_sales(self):
        trade = make_trade(quantity=1)
        snapshot = make_snapshot(remaining_quantity=0,
                                 sales=[make_sale(sell_price="120", sell_time=time(15, 30))])
        trade.add_snapshot(snapshot)
        make_entry(FRIDAY).add_trade_snapshot(snapshot)

        assert trade.is_fully_sold()
        assert trade.record_exit_from_sales() is True
        assert trade.exit_price == Decimal("120")
        assert trade.exit_time == time(15, 30)

    def test_record_exit_requires_full_sale(self):
        trade = make_trade(quantity=2)
        trade.add_snapshot(make_snapshot(remaining_quantity=1, sales=[make_sale()]))
        assert trade.record_exit_from_sales() is False
        assert trade.exit_price is None

    @pytest.mark.parametrize("kwargs, field", [
        (dict(quantity=0, entry_price="1"), "quantity"),
        (dict(quantity=1, entry_price="0"), "entry_price"),
        (dict(quantity=1, entry_price="1", buy_fee="-0.01"), "buy_fee"),
        (dict(quantity=1, entry_price="1", exit_price="-1"), "exit_price"),
    ])
    def test_rejects_invalid_fields(self, kwargs, field):
        with pytest.raises(ValidationFailure) as exc:
            Trade(**kwargs)
        assert exc.value.field == field

    def test_snapshot_requires_open_price(self):
        with pytest.raises(ValidationFailure):
            TradeSnapshot(open_price=None)


class TestJournalEntry:

    def test_add_trade_attaches_its_snapshots(self):
        trade = make_trade(quantity=2)
        s1, s2 = make_snapshot(), make_snapshot()
        trade.add_snapshot(s1)
        trade.add_snapshot(s2)
        entry = make_entry()
        entry.add_trade(trade)

        assert entry.snapshots == [s1, s2]
        assert s1.journal_entry is entry
        assert entry.get_trades() == [trade]

    def test_get_trades_preserves_first_appearance(self):
        first, second = make_trade(quantity=2), make_trade()
        a, b, c = make_snapshot(), make_snapshot(), make_snapshot()
        first.add_snapshot(a)
        second.add_snapshot(b)
        first.add_snapshot(c)
        entry = JournalEntry(date=FRIDAY, snapshots=[a, b, c])

        assert entry.get_trades() == [first, second]

    def test_get_trades_follows_removal(self):
        trade = make_trade()
        snapshot = make_snapshot()
        trade.add_snapshot(snapshot)
        entry = make_entry()
        entry.add_trade_snapshot(snapshot)

        assert entry.remove_snapshot(snapshot) is True
        assert entry.get_trades() == []
        assert snapshot.journal_entry is None
        assert entry.remove_snapshot(snapshot) is False

    def test_snapshot_owned_by_other_entry_conflicts(self):
        snapshot = make_snapshot()
        friday, monday = make_entry(FRIDAY), make_entry(MONDAY)
        friday.add_trade_snapshot(snapshot)

        with pytest.raises(OwnershipConflict):
            monday.add_trade_snapshot(snapshot)
        assert friday.snapshots == [snapshot]
        assert monday.snapshots == []

    def test_readding_owned_snapshot_is_noop(self):
        snapshot = make_snapshot()
        entry = make_entry()
        entry.add_trade_snapshot(snapshot)
        entry.add_trade_snapshot(snapshot)
        entry.add_trade_snapshot(None)
        assert entry.snapshots == [snapshot]

    def test_add_trade_conflict_leaves_entry_untouched(self):
        trade = make_trade(quantity=2)
        recorded, fresh = make_snapshot(), make_snapshot()
        trade.add_snapshot(fresh)
        trade.add_snapshot(recorded)
        make_entry(FRIDAY).add_trade_snapshot(recorded)
        monday = make_entry(MONDAY)

        with pytest.raises(OwnershipConflict):
            monday.add_trade(trade)
        assert monday.snapshots == []
        assert fresh.journal_entry is None

    def test_failed_entry_construction_releases_earlier_snapshots(self):
        fresh, owned = make_snapshot(), make_snapshot()
        make_entry(MONDAY).add_trade_snapshot(owned)

        with pytest.raises(OwnershipConflict):
            JournalEntry(date=FRIDAY, snapshots=[fresh, owned])
        assert fresh.journal_entry is None
        make_entry(FRIDAY).add_trade_snapshot(fresh)
        assert fresh.entry_date == FRIDAY

    def test_remove_trade(self):
        trade = make_trade()
        trade.add_snapshot(make_snapshot())
        entry = make_entry()
        entry.add_trade(trade)

        assert entry.remove_trade(trade) is True
        assert entry.snapshots == []
        assert entry.remove_trade(trade) is False

    def test_to_dict_lists_trades_and_snapshots(self):
        trade = make_trade(asset=make_asset())
        trade.add_snapshot(make_snapshot())
        entry = make_entry(cash_balance="1500.50")
        entry.add_trade(trade)

        d = entry.to_dict()
        assert d["date"] == "2025-04-11"
        assert d["cash_balance"] == "1500.50"
        assert d["trades"][0]["asset"]["ticker"] == "SAAB-B.ST"
        assert d["snapshots"][0]["close_price"] == "110"


class TestAsset:

    def test_enums_accept_their_names(self):
        asset = make_asset(asset_class="ETF", exchange="NYSE")
        assert asset.exchange is Exchange.NYSE

    def test_mutation_refreshes_last_updated(self):
        asset = make_asset()
        before = asset.last_updated
        asset.name = "Saab AB ser. B"
        assert asset.last_updated >= before
        assert asset.last_updated is not before

    def test_leveraged_asset_needs_ratio_of_at_least_one(self):
        with pytest.raises(ValidationFailure):
            make_asset(is_leveraged=True)
        with pytest.raises(ValidationFailure):
            make_asset(is_leveraged=True, leverage_ratio="0.5")
        assert make_asset(is_leveraged=True, leverage_ratio="2").leverage_ratio == Decimal("2")

    @pytest.mark.parametrize("overrides", [
        dict(currency="sek"),
        dict(isin=""),
        dict(dividend_yield="-0.1"),
    ])
    def test_rejects_invalid_fields(self, overrides):
        with pytest.raises(ValidationFailure):
            make_asset(**overrides)
