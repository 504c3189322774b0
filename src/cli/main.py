"""
CLI entry point: tradesim ingest | backtest | paper | orders | health.

Every command loads config from --config (default config.yaml), prints a
human-readable summary, and logs events to the journal.
"""

import heapq
import logging
import sys
import threading
from datetime import datetime, timezone

import click
from dotenv import load_dotenv

from config import ConfigError, load_config
from execution.models import OrderStatus

load_dotenv()

logger = logging.getLogger("tradesim")

_STATUS_CHOICES = [s.value for s in OrderStatus]


def _setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s  %(message)s",
        stream=sys.stderr,
    )


def _load(ctx: click.Context):
    try:
        return load_config(ctx.obj["config_path"])
    except ConfigError as e:
        raise click.ClickException(str(e)) from e


def _parse_date(value: str | None) -> datetime | None:
    if value is None:
        return None
    ts = datetime.fromisoformat(value)
    return ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts


def _strategy(cfg):
    from strategy import CrossMA

    return CrossMA(fast=cfg.backtest.fast_period, slow=cfg.backtest.slow_period, timeframe=cfg.timeframe)


@click.group()
@click.option("--config", "config_path", default="config.yaml", help="Path to config file.")
@click.option("--verbose", is_flag=True, default=False, help="Debug logging.")
@click.pass_context
def cli(ctx: click.Context, config_path: str, verbose: bool) -> None:
    """tradesim: bar-driven paper trading and backtesting engine."""
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


# ---------- tradesim ingest ----------


@cli.command()
@click.option("--pair", required=True, help="Pair the CSV file holds (e.g. BTCUSDT).")
@click.option("--csv", "csv_path", required=True, type=click.Path(exists=True, dir_okay=False), help="CSV file of OHLCV bars.")
@click.option("--timeframe", "tf_override", default=None, help="Override timeframe. Defaults to config value.")
@click.pass_context
def ingest(ctx: click.Context, pair: str, csv_path: str, tf_override: str | None) -> None:
    """Load bars from a CSV file into the local bar store."""
    cfg = _load(ctx)
    from data.bar_store import BarStore
    from data.csv_feed import read_csv_bars

    tf = tf_override or cfg.timeframe
    bars = read_csv_bars(csv_path, pair)
    if not bars:
        click.echo(f"No bars found in {csv_path}.")
        return
    store = BarStore(cfg.data.bar_store_path)
    store.write_bars(pair, tf, bars)
    click.echo(f"Stored {len(bars)} bars in {cfg.data.bar_store_path}")
    click.echo(f"  Range: {bars[0].time.isoformat()} -> {bars[-1].time.isoformat()}")
    click.echo(f"  Total {pair} {tf} bars in store: {store.count_bars(pair, tf)}")


# ---------- tradesim backtest ----------


@cli.command()
@click.option("--source", type=click.Choice(["csv", "store"]), default=None, help="Bar source (default: csv when csv_files are configured).")
@click.option("--start", "start_str", default=None, help="Start date filter for the bar store (ISO).")
@click.option("--end", "end_str", default=None, help="End date filter for the bar store (ISO).")
@click.option("--persist", is_flag=True, default=False, help="Write the order log to the configured orders database.")
@click.pass_context
def backtest(ctx: click.Context, source: str | None, start_str: str | None, end_str: str | None, persist: bool) -> None:
    """Replay bars with the moving-average crossover strategy and print the results."""
    cfg = _load(ctx)
    from backtest import run_backtest
    from cli.output import format_backtest_summary
    from cli.structured_log import StructuredEventLogger
    from data.bar_store import BarStore
    from data.csv_feed import CSVFeed
    from journal import JournalWriter
    from orders import OrderFeed
    from storage import MemoryOrderStore, SQLiteOrderStore

    source = source or ("csv" if cfg.data.csv_files else "store")
    if source == "csv":
        if not cfg.data.csv_files:
            raise click.ClickException("No data.csv_files configured.")
        feed_src = CSVFeed(cfg.data.csv_files, cfg.timeframe)
        bars = list(feed_src.iter_bars())
    else:
        store = BarStore(cfg.data.bar_store_path)
        since, until = _parse_date(start_str), _parse_date(end_str)
        per_pair = [store.get_bars(p, cfg.timeframe, since=since, until=until) for p in cfg.pairs]
        bars = list(heapq.merge(*per_pair, key=lambda b: b.time))
    if not bars:
        click.echo("No bars to replay. Run 'tradesim ingest' first or configure data.csv_files.")
        return

    journal = JournalWriter(cfg.journal.path, echo_stdout=cfg.journal.echo_stdout)
    events = StructuredEventLogger(
        "backtest", enabled=cfg.alerting.structured_logs, webhook_url=cfg.alerting.webhook_url
    )
    order_feed = OrderFeed()
    for pair in {b.pair for b in bars}:
        order_feed.subscribe(pair, journal.on_order)

    events.run_start("backtest", sorted({b.pair for b in bars}))
    click.echo(f"Running backtest: {len(bars)} bars, pairs={','.join(sorted({b.pair for b in bars}))} ...")
    result = run_backtest(
        bars,
        _strategy(cfg),
        base_coin=cfg.wallet.base_coin,
        balances=cfg.wallet.balances,
        maker_fee=cfg.wallet.maker_fee,
        taker_fee=cfg.wallet.taker_fee,
        storage=SQLiteOrderStore(cfg.storage.orders_path) if persist else MemoryOrderStore(),
        feed=order_feed,
        notifier=events,
    )
    start_value = result.wallet.start_value
    for summary in result.results.values():
        journal.profit(
            summary.pair,
            summary.profit(),
            summary.profit() / start_value if start_value else 0.0,
            trades=summary.trades(),
            win_pct=summary.win_percentage(),
        )
    journal.summary(
        {
            "mode": "backtest",
            "start_value": result.wallet.start_value,
            "final_value": result.wallet.final_value,
            "max_drawdown": result.wallet.max_drawdown.value,
            "volume": result.wallet.volume,
        }
    )
    events.run_complete(result.bars_processed, len(result.orders))
    click.echo(format_backtest_summary(result))


# ---------- tradesim paper ----------


@cli.command()
@click.option("--once", is_flag=True, default=False, help="Replay the bars currently stored, then stop.")
@click.option("--max-bars", default=None, type=int, help="Stop each pair after this many bars.")
@click.pass_context
def paper(ctx: click.Context, once: bool, max_bars: int | None) -> None:
    """Paper-trade the bar store: the engine follows new bars, orders reconcile in the background."""
    cfg = _load(ctx)
    from cli.output import format_account, format_trade_summary, format_wallet_summary
    from cli.structured_log import StructuredEventLogger
    from data.bar_store import BarStore, BarStoreFeed
    from data.subscription import Backoff
    from execution import MatchingEngine
    from journal import JournalWriter
    from orders import OrderController, OrderFeed
    from storage import SQLiteOrderStore
    from strategy import StrategyController

    store = BarStore(cfg.data.bar_store_path)
    feeder = BarStoreFeed(
        store,
        poll_interval=cfg.data.poll_seconds,
        backoff=Backoff(cfg.data.backoff_min_seconds, cfg.data.backoff_max_seconds),
    )
    engine = MatchingEngine(
        cfg.wallet.base_coin,
        balances=cfg.wallet.balances,
        maker_fee=cfg.wallet.maker_fee,
        taker_fee=cfg.wallet.taker_fee,
        feeder=feeder,
    )
    journal = JournalWriter(cfg.journal.path, echo_stdout=cfg.journal.echo_stdout)
    events = StructuredEventLogger("paper", enabled=cfg.alerting.structured_logs, webhook_url=cfg.alerting.webhook_url)
    order_feed = OrderFeed()
    for pair in cfg.pairs:
        order_feed.subscribe(pair, journal.on_order)
        order_feed.subscribe(pair, lambda o: events.order_event(o, new=True), only_new=True)
    controller = OrderController(
        engine,
        SQLiteOrderStore(cfg.storage.orders_path),
        order_feed,
        notifier=events,
        interval=cfg.controller.interval_seconds,
        opening_positions=cfg.wallet.balances,
    )
    strategy = _strategy(cfg)
    stop_event = threading.Event()

    def consume(pair: str) -> None:
        sc = StrategyController(pair, strategy, controller)
        sc.start()
        if once:
            bars = iter(store.get_bars(pair, cfg.timeframe))
        else:
            bars = engine.candles_subscription(pair, cfg.timeframe, stop_event)
        count = 0
        for bar in bars:
            if stop_event.is_set():
                break
            if not engine.on_bar(bar):
                continue
            controller.on_bar(bar)
            if bar.complete:
                sc.on_bar(bar)
            else:
                sc.on_partial_bar(bar)
            count += 1
            if max_bars is not None and count >= max_bars:
                break
        logger.info("%s: processed %d bars", pair, count)

    events.run_start("paper", list(cfg.pairs))
    controller.start()
    workers = [threading.Thread(target=consume, args=(p,), name=f"bars-{p}", daemon=True) for p in cfg.pairs]
    for w in workers:
        w.start()
    try:
        for w in workers:
            w.join()
    except KeyboardInterrupt:
        click.echo("\nStopping paper trading ...")
        stop_event.set()
        for w in workers:
            w.join()
    finally:
        controller.stop()
        events.shutdown("finished")

    wallet = engine.summary()
    journal.summary({"mode": "paper", "final_value": wallet.final_value, "volume": wallet.volume})
    for summary in controller.results.values():
        click.echo(format_trade_summary(summary))
    click.echo(format_account(engine.account()))
    click.echo(format_wallet_summary(wallet))


# ---------- tradesim orders ----------


@cli.command()
@click.option("--pair", default=None, help="Only orders for this pair.")
@click.option("--status", "status_filter", default=None, type=click.Choice(_STATUS_CHOICES), help="Only orders with this status.")
@click.option("--limit", default=50, help="Show at most this many (most recent) orders.")
@click.pass_context
def orders(ctx: click.Context, pair: str | None, status_filter: str | None, limit: int) -> None:
    """List the stored order log."""
    cfg = _load(ctx)
    from cli.output import format_orders
    from storage import SQLiteOrderStore, with_pair, with_status

    filters = []
    if pair:
        filters.append(with_pair(pair))
    if status_filter:
        filters.append(with_status(OrderStatus(status_filter)))
    found = SQLiteOrderStore(cfg.storage.orders_path).orders(*filters)
    click.echo(format_orders(found[-limit:]))


# ---------- tradesim health ----------


@cli.command()
@click.pass_context
def health(ctx: click.Context) -> None:
    """Check system health: config, bar store, order store.

    Exit code 0 = healthy, 1 = unhealthy.
    """
    checks: list[tuple[str, bool, str]] = []

    try:
        cfg = load_config(ctx.obj["config_path"])
        checks.append(("config", True, f"loaded ({','.join(cfg.pairs)} {cfg.timeframe})"))
    except Exception as e:
        checks.append(("config", False, str(e)))
        _print_health(checks)
        raise SystemExit(1)

    try:
        from data.bar_store import BarStore

        store = BarStore(cfg.data.bar_store_path)
        counts = {p: store.count_bars(p, cfg.timeframe) for p in cfg.pairs}
        empty = [p for p, n in counts.items() if n == 0]
        detail = ", ".join(f"{p}={n}" for p, n in counts.items())
        if empty and not cfg.data.csv_files:
            checks.append(("bars", False, f"no {cfg.timeframe} bars for {','.join(empty)}"))
        else:
            checks.append(("bars", True, detail))
    except Exception as e:
        checks.append(("bars", False, str(e)))

    try:
        from storage import SQLiteOrderStore

        n = len(SQLiteOrderStore(cfg.storage.orders_path).orders())
        checks.append(("orders", True, f"{n} orders stored"))
    except Exception as e:
        checks.append(("orders", False, str(e)))

    _print_health(checks)
    healthy = all(ok for _, ok, _ in checks)
    raise SystemExit(0 if healthy else 1)


def _print_health(checks: list[tuple[str, bool, str]]) -> None:
    for name, ok, detail in checks:
        status = "OK" if ok else "FAIL"
        click.echo(f"  [{status}] {name}: {detail}")
    healthy = all(ok for _, ok, _ in checks)
    click.echo(f"\nHealth: {'HEALTHY' if healthy else 'UNHEALTHY'}")


if __name__ == "__main__":
    cli()
