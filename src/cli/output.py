"""
Human-readable terminal output: trade statistics, wallet summary, order log.

Every CLI command uses these formatters. Journal receives the same data.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

from execution.models import Account, Order

if TYPE_CHECKING:
    from backtest.runner import BacktestResult
    from execution.matching_engine import WalletSummary
    from metrics.trade_summary import TradeSummary


def format_table(rows: Iterable[tuple[str, str]]) -> str:
    """Two-column table: labels left-aligned, values right-aligned."""
    rows = list(rows)
    if not rows:
        return ""
    left = max(len(label) for label, _ in rows)
    right = max(len(value) for _, value in rows)
    border = f"+-{'-' * left}-+-{'-' * right}-+"
    lines = [border]
    for label, value in rows:
        lines.append(f"| {label.ljust(left)} | {value.rjust(right)} |")
    lines.append(border)
    return "\n".join(lines)


def format_trade_summary(summary: TradeSummary) -> str:
    return format_table(summary.as_rows())


def format_wallet_summary(wallet: WalletSummary) -> str:
    base = wallet.base_coin
    dd = wallet.max_drawdown
    lines = ["-- FINAL WALLET --"]
    for h in wallet.holdings:
        lines.append(f"{h.quantity:.4f} {h.asset} = {h.value:.4f} {base}")
    lines.append(f"{wallet.base_value:.4f} {base}")
    lines += [
        "",
        "----- RETURNS -----",
        f"START PORTFOLIO     = {wallet.start_value:.2f} {base}",
        f"FINAL PORTFOLIO     = {wallet.final_value:.2f} {base}",
        f"GROSS PROFIT        = {wallet.gross_profit:f} {base} ({wallet.gross_profit_pct:.2f}%)",
        f"MARKET CHANGE (B&H) = {wallet.market_change:.2f}%",
        "",
        "------ RISK -------",
        f"MAX DRAWDOWN = {dd.value * 100:.2f} %",
    ]
    if dd.start is not None and dd.end is not None:
        lines.append(f"  from {dd.start.isoformat()} to {dd.end.isoformat()}")
    lines += ["", "------ VOLUME -----"]
    for pair, volume in wallet.volume.items():
        lines.append(f"{pair:<15} = {volume:.2f} {base}")
    lines.append(f"{'TOTAL':<15} = {wallet.total_volume:.2f} {base}")
    lines.append("-------------------")
    return "\n".join(lines)


def format_backtest_summary(result: BacktestResult) -> str:
    """Per-pair trade tables followed by the wallet summary."""
    parts = []
    if result.start_time is not None and result.end_time is not None:
        parts.append(f"=== Backtest: {result.start_time.isoformat()} -> {result.end_time.isoformat()} ===")
    parts.append(f"Bars: {result.bars_processed} processed, {result.bars_dropped} dropped | Trades: {result.trades}")
    for summary in result.results.values():
        parts.append(format_trade_summary(summary))
    parts.append(format_wallet_summary(result.wallet))
    return "\n".join(parts)


def format_orders(orders: list[Order]) -> str:
    if not orders:
        return "No orders."
    lines = [f"{'ID':>5}  {'UPDATED':<32}  ORDER"]
    for o in orders:
        profit = f"  profit {o.profit * 100:+.2f}%" if o.profit else ""
        lines.append(f"{o.id or 0:>5}  {o.updated_at.isoformat():<32}  {o}{profit}")
    return "\n".join(lines)


def format_account(account: Account) -> str:
    lines = ["=== Account ==="]
    for b in account.balances:
        short = f"  short {b.short:.8g}" if b.short else ""
        lines.append(f"{b.asset:<8} free {b.free:.8g}  locked {b.locked:.8g}{short}")
    lines.append("===")
    return "\n".join(lines)
