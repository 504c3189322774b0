"""
Backtest engine: replay bars through the matching engine, order controller and strategy.
"""

from backtest.runner import BacktestResult, run_backtest

__all__ = ["BacktestResult", "run_backtest"]
