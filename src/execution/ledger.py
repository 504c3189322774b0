"""
Balance ledger: per-asset free / locked / short bookkeeping.

All three quantities stay >= 0. A short position is carried in ``short``
(units owed) rather than as a negative free balance; the net position of an
asset is ``free + locked - short``.

Shorts are collateralised in the quote asset: opening a short of v units at
price p removes v * p from the quote balance, and the short is worth
``2 * v * short_basis - v * price`` (collateral plus unrealized profit) when
covered at ``price``. ``short_basis`` is the weighted entry price of the units
currently owed and is kept here, next to the collateral it describes.

The ledger never partially reserves: funds are checked before any mutation
and InsufficientFundsError leaves every balance untouched. A settlement that
would leave a free balance below zero is refused the same way.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from execution.errors import InsufficientFundsError
from execution.models import Balance, OrderSide, split_asset_quote

logger = logging.getLogger("tradesim.ledger")

_EPSILON = 1e-9


@dataclass
class _AssetBalance:
    free: float = 0.0
    locked: float = 0.0
    short: float = 0.0
    short_basis: float = 0.0


@dataclass(frozen=True)
class Reservation:
    """Funds set aside for one order (or one OCO group) until fill or cancel.

    SELL: ``long_part`` units of the asset are locked and ``short_part``
    units will open/extend a short, collateralised by ``locked_quote``
    (fee included).
    BUY: ``locked_quote`` is the quote still needed after crediting the
    liquidation value of the short being covered.
    """

    pair: str
    side: OrderSide
    quantity: float
    price: float
    long_part: float
    short_part: float
    locked_asset: float
    locked_quote: float


class BalanceLedger:
    """Per-asset balances. Every mutation goes through deposit, reserve, release or settle."""

    def __init__(self) -> None:
        self._assets: dict[str, _AssetBalance] = {}

    def _entry(self, asset: str) -> _AssetBalance:
        if asset not in self._assets:
            self._assets[asset] = _AssetBalance()
        return self._assets[asset]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def assets(self) -> list[str]:
        return list(self._assets)

    def balance(self, asset: str) -> Balance:
        entry = self._assets.get(asset, _AssetBalance())
        return Balance(asset=asset, free=entry.free, locked=entry.locked, short=entry.short)

    def balances(self) -> list[Balance]:
        return [self.balance(asset) for asset in self._assets]

    def net(self, asset: str) -> float:
        entry = self._assets.get(asset, _AssetBalance())
        return entry.free + entry.locked - entry.short

    def short_basis(self, asset: str) -> float:
        return self._assets.get(asset, _AssetBalance()).short_basis

    def value(self, asset: str, price: float) -> float:
        """Quote value of everything held in *asset* at *price*, shorts at collateral value."""
        entry = self._assets.get(asset, _AssetBalance())
        return (entry.free + entry.locked) * price + entry.short * (2 * entry.short_basis - price)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def deposit(self, asset: str, amount: float) -> None:
        if amount < 0:
            raise ValueError(f"deposit amount must be >= 0, got {amount}")
        self._entry(asset).free += amount

    def reserve(
        self,
        pair: str,
        side: OrderSide,
        quantity: float,
        price: float,
        *,
        fee_rate: float = 0.0,
        fill: bool = False,
    ) -> Reservation:
        """Check funds for an order and lock them, or settle at once if *fill*.

        Raises InsufficientFundsError without touching any balance.
        """
        asset_name, quote_name = split_asset_quote(pair)
        asset = self._assets.get(asset_name, _AssetBalance())
        quote = self._assets.get(quote_name, _AssetBalance())

        funds = quote.free
        if side == OrderSide.SELL:
            long_part = min(max(asset.free, 0.0), quantity)
            short_part = quantity - long_part
            funds += asset.free * price
            required = quantity * price + short_part * price * fee_rate
            locked_asset = long_part
            locked_quote = short_part * price * (1 + fee_rate)
        else:
            v = asset.short
            covered = min(v, quantity)
            long_part = quantity - covered
            short_part = covered
            to_buy = quantity
            if v > 0:
                funds += 2 * v * asset.short_basis - v * price
                to_buy = quantity - v
            required = to_buy * price + quantity * price * fee_rate
            locked_asset = 0.0
            covered_value = covered * (2 * asset.short_basis - price)
            locked_quote = max(long_part * price + quantity * price * fee_rate - covered_value, 0.0)

        if funds + _EPSILON < required:
            raise InsufficientFundsError(pair, quantity)
        if not fill and locked_quote > quote.free + _EPSILON:
            raise InsufficientFundsError(pair, quantity)

        reservation = Reservation(
            pair=pair,
            side=side,
            quantity=quantity,
            price=price,
            long_part=long_part,
            short_part=short_part,
            locked_asset=0.0 if fill else locked_asset,
            locked_quote=0.0 if fill else min(locked_quote, quote.free),
        )

        if fill:
            self.settle(reservation, price, fee_rate=fee_rate)
            return reservation

        asset_entry = self._entry(asset_name)
        quote_entry = self._entry(quote_name)
        asset_entry.free -= reservation.locked_asset
        asset_entry.locked += reservation.locked_asset
        quote_entry.free -= reservation.locked_quote
        quote_entry.locked += reservation.locked_quote
        logger.debug(
            "%s -> LOCK = %f / FREE %f", asset_name, asset_entry.locked, asset_entry.free
        )
        return reservation

    def release(self, reservation: Reservation) -> None:
        """Return the locked funds of a cancelled order to ``free``."""
        asset_name, quote_name = split_asset_quote(reservation.pair)
        asset = self._entry(asset_name)
        quote = self._entry(quote_name)
        asset.locked = _clip(asset.locked - reservation.locked_asset)
        asset.free += reservation.locked_asset
        quote.locked = _clip(quote.locked - reservation.locked_quote)
        quote.free += reservation.locked_quote

    def settle(self, reservation: Reservation, fill_price: float, *, fee_rate: float = 0.0) -> float:
        """Apply a fill at *fill_price*; returns the fee charged in quote.

        Raises InsufficientFundsError, leaving the reservation in place, when
        the fill would take the quote balance below zero.
        """
        asset_name, quote_name = split_asset_quote(reservation.pair)
        asset = self._entry(asset_name)
        quote = self._entry(quote_name)
        quantity = reservation.quantity
        fee = quantity * fill_price * fee_rate

        asset_free = asset.free + reservation.locked_asset
        quote_free = quote.free + reservation.locked_quote
        if reservation.side == OrderSide.SELL:
            long_part = min(quantity, asset_free)
            short_part = quantity - long_part
            quote_free += long_part * fill_price - short_part * fill_price - fee
        else:
            covered = min(asset.short, quantity)
            long_part = quantity - covered
            quote_free += covered * (2 * asset.short_basis - fill_price) - long_part * fill_price - fee

        if quote_free < -_EPSILON:
            logger.warning("%s fill of %f %s refused: quote would go to %f", reservation.side.value,
                           quantity, reservation.pair, quote_free)
            raise InsufficientFundsError(reservation.pair, quantity)

        self.release(reservation)
        quote.free = max(_clip(quote_free), 0.0)
        if reservation.side == OrderSide.SELL:
            asset.free = _clip(asset.free - long_part)
            if short_part > 0:
                owed = asset.short + short_part
                asset.short_basis = (asset.short_basis * asset.short + short_part * fill_price) / owed
                asset.short = owed
        else:
            asset.short = _clip(asset.short - covered)
            if asset.short <= 0:
                asset.short = 0.0
                asset.short_basis = 0.0
            asset.free += long_part
        return fee


def _clip(value: float) -> float:
    return 0.0 if abs(value) < _EPSILON else value
