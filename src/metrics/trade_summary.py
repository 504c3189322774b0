"""
Per-pair aggregate of realized trades: wins and losses split by the side of
the position that was closed, plus traded volume.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from execution.models import OrderSide, split_asset_quote


@dataclass
class TradeSummary:
    pair: str
    win_long: list[float] = field(default_factory=list)
    win_short: list[float] = field(default_factory=list)
    lose_long: list[float] = field(default_factory=list)
    lose_short: list[float] = field(default_factory=list)
    volume: float = 0.0

    def record(self, position_side: OrderSide, value: float) -> None:
        """Record one realized trade. BUY = a long was closed, SELL = a short."""
        if value == 0:
            return
        is_long = position_side == OrderSide.BUY
        if value > 0:
            (self.win_long if is_long else self.win_short).append(value)
        else:
            (self.lose_long if is_long else self.lose_short).append(value)

    def wins(self) -> list[float]:
        return self.win_long + self.win_short

    def losses(self) -> list[float]:
        return self.lose_long + self.lose_short

    def trades(self) -> int:
        return len(self.wins()) + len(self.losses())

    def profit(self) -> float:
        return sum(self.wins()) + sum(self.losses())

    def win_percentage(self) -> float:
        total = self.trades()
        if total == 0:
            return 0.0
        return len(self.wins()) / total * 100

    def payoff(self) -> float:
        """Average win over absolute average loss; 0 when either side is empty."""
        wins, losses = self.wins(), self.losses()
        if not wins or not losses:
            return 0.0
        avg_lose = sum(losses) / len(losses)
        if avg_lose == 0:
            return 0.0
        return (sum(wins) / len(wins)) / abs(avg_lose)

    def sqn(self) -> float:
        """System quality number: sqrt(n) * mean / population stddev (0 if undefined)."""
        values = self.wins() + self.losses()
        n = len(values)
        if n == 0:
            return 0.0
        mean = sum(values) / n
        std = math.sqrt(sum((v - mean) ** 2 for v in values) / n)
        if std == 0:
            return 0.0
        return math.sqrt(n) * mean / std

    def as_rows(self) -> list[tuple[str, str]]:
        """Label/value rows for table output."""
        _, quote = split_asset_quote(self.pair)
        return [
            ("Coin", self.pair),
            ("Trades", str(self.trades())),
            ("Win", str(len(self.wins()))),
            ("Loss", str(len(self.losses()))),
            ("% Win", f"{self.win_percentage():.1f}"),
            ("Payoff", f"{self.payoff() * 100:.1f}"),
            ("SQN", f"{self.sqn():.2f}"),
            ("Profit", f"{self.profit():.4f} {quote}"),
            ("Volume", f"{self.volume:.4f} {quote}"),
        ]
