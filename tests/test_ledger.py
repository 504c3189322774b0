"""Tests for the balance ledger: reservations, settlement, shorts."""

import pytest

from execution.errors import InsufficientFundsError
from execution.ledger import BalanceLedger
from execution.models import OrderSide

PAIR = "BTCUSDT"


@pytest.fixture
def ledger() -> BalanceLedger:
    ledger = BalanceLedger()
    ledger.deposit("USDT", 1000.0)
    return ledger


def test_reserve_buy_locks_quote(ledger: BalanceLedger) -> None:
    r = ledger.reserve(PAIR, OrderSide.BUY, 2, 100.0)
    usdt = ledger.balance("USDT")
    assert r.locked_quote == pytest.approx(200.0)
    assert usdt.free == pytest.approx(800.0)
    assert usdt.locked == pytest.approx(200.0)
    assert usdt.total == pytest.approx(1000.0)


def test_release_restores_free(ledger: BalanceLedger) -> None:
    r = ledger.reserve(PAIR, OrderSide.BUY, 2, 100.0)
    ledger.release(r)
    usdt = ledger.balance("USDT")
    assert usdt.free == pytest.approx(1000.0)
    assert usdt.locked == 0.0


def test_settle_buy_moves_asset_and_quote(ledger: BalanceLedger) -> None:
    r = ledger.reserve(PAIR, OrderSide.BUY, 2, 100.0)
    fee = ledger.settle(r, 100.0)
    assert fee == 0.0
    assert ledger.balance("BTC").free == pytest.approx(2.0)
    assert ledger.balance("USDT").free == pytest.approx(800.0)
    assert ledger.balance("USDT").locked == 0.0


def test_insufficient_funds_leaves_balances_untouched(ledger: BalanceLedger) -> None:
    with pytest.raises(InsufficientFundsError) as exc:
        ledger.reserve(PAIR, OrderSide.BUY, 20, 100.0)
    assert exc.value.pair == PAIR
    usdt = ledger.balance("USDT")
    assert usdt.free == 1000.0
    assert usdt.locked == 0.0
    assert ledger.balance("BTC").free == 0.0


def test_fee_counts_toward_required_funds(ledger: BalanceLedger) -> None:
    with pytest.raises(InsufficientFundsError):
        ledger.reserve(PAIR, OrderSide.BUY, 10, 100.0, fee_rate=0.01)
    r = ledger.reserve(PAIR, OrderSide.BUY, 9, 100.0, fee_rate=0.01, fill=True)
    assert r.locked_quote == 0.0
    assert ledger.balance("USDT").free == pytest.approx(1000.0 - 900.0 - 9.0)


def test_sell_locks_asset_then_settles_at_fill_price(ledger: BalanceLedger) -> None:
    ledger.deposit("BTC", 1.0)
    r = ledger.reserve(PAIR, OrderSide.SELL, 1, 100.0)
    btc = ledger.balance("BTC")
    assert btc.free == 0.0
    assert btc.locked == pytest.approx(1.0)
    ledger.settle(r, 110.0)
    assert ledger.balance("BTC").total == 0.0
    assert ledger.balance("USDT").free == pytest.approx(1110.0)


def test_short_and_cover(ledger: BalanceLedger) -> None:
    ledger.reserve(PAIR, OrderSide.SELL, 2, 100.0, fill=True)
    btc = ledger.balance("BTC")
    assert btc.free == 0.0
    assert btc.short == pytest.approx(2.0)
    assert ledger.net("BTC") == pytest.approx(-2.0)
    assert ledger.balance("USDT").free == pytest.approx(800.0)

    ledger.reserve(PAIR, OrderSide.BUY, 2, 80.0, fill=True)
    assert ledger.net("BTC") == 0.0
    assert ledger.balance("BTC").short == 0.0
    # collateral 200 back plus 2 * (100 - 80) profit
    assert ledger.balance("USDT").free == pytest.approx(1040.0)


def test_cover_more_than_short_opens_long(ledger: BalanceLedger) -> None:
    ledger.reserve(PAIR, OrderSide.SELL, 1, 100.0, fill=True)
    ledger.reserve(PAIR, OrderSide.BUY, 3, 100.0, fill=True)
    btc = ledger.balance("BTC")
    assert btc.short == 0.0
    assert btc.free == pytest.approx(2.0)
    assert ledger.balance("USDT").free == pytest.approx(800.0)


def test_balances_never_negative(ledger: BalanceLedger) -> None:
    ledger.deposit("BTC", 0.5)
    ledger.reserve(PAIR, OrderSide.SELL, 2, 100.0, fill=True)
    for b in ledger.balances():
        assert b.free >= 0
        assert b.locked >= 0
        assert b.short >= 0
    assert ledger.net("BTC") == pytest.approx(-1.5)


def test_negative_deposit_rejected(ledger: BalanceLedger) -> None:
    with pytest.raises(ValueError):
        ledger.deposit("USDT", -1.0)


def test_short_basis_is_weighted_entry_of_units_owed(ledger: BalanceLedger) -> None:
    ledger.reserve(PAIR, OrderSide.SELL, 1, 100.0, fill=True)
    ledger.reserve(PAIR, OrderSide.SELL, 1, 120.0, fill=True)
    assert ledger.short_basis("BTC") == pytest.approx(110.0)
    assert ledger.value("BTC", 110.0) == pytest.approx(220.0)
    ledger.reserve(PAIR, OrderSide.BUY, 2, 110.0, fill=True)
    assert ledger.short_basis("BTC") == 0.0
    assert ledger.balance("USDT").free == pytest.approx(1000.0)


def test_sell_beyond_locked_units_keeps_its_own_basis(ledger: BalanceLedger) -> None:
    ledger.reserve(PAIR, OrderSide.BUY, 5, 10.0, fill=True)
    pending = ledger.reserve(PAIR, OrderSide.SELL, 5, 20.0)
    ledger.reserve(PAIR, OrderSide.SELL, 3, 10.0, fill=True)
    assert ledger.net("BTC") == pytest.approx(2.0)
    ledger.settle(pending, 20.0)
    assert ledger.net("BTC") == pytest.approx(-3.0)
    assert ledger.short_basis("BTC") == pytest.approx(10.0)
    ledger.reserve(PAIR, OrderSide.BUY, 3, 20.0, fill=True)
    assert ledger.net("BTC") == 0.0
    # -50 + 100 for the long, -30 for the short opened at 10 and covered at 20
    assert ledger.balance("USDT").free == pytest.approx(1020.0)


def test_pending_short_locks_its_fee(ledger: BalanceLedger) -> None:
    r = ledger.reserve(PAIR, OrderSide.SELL, 1, 900.0, fee_rate=0.1)
    assert r.locked_quote == pytest.approx(990.0)
    assert ledger.balance("USDT").free == pytest.approx(10.0)
    with pytest.raises(InsufficientFundsError):
        ledger.reserve(PAIR, OrderSide.BUY, 1, 10.0, fee_rate=0.1)


def test_settle_refuses_to_overdraw(ledger: BalanceLedger) -> None:
    ledger.reserve(PAIR, OrderSide.SELL, 5, 10.0, fill=True)
    # covers the short, so nothing is locked for it
    pending = ledger.reserve(PAIR, OrderSide.BUY, 5, 10.0)
    assert pending.locked_quote == 0.0
    ledger.reserve(PAIR, OrderSide.BUY, 5, 10.0, fill=True)
    ledger.reserve(PAIR, OrderSide.BUY, 99, 10.0, fill=True)
    before = ledger.balances()
    with pytest.raises(InsufficientFundsError):
        ledger.settle(pending, 10.0)
    assert ledger.balances() == before
