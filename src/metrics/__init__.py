"""
Risk and trade statistics derived from equity samples and realized profits.
"""

from metrics.drawdown import Drawdown, max_drawdown
from metrics.trade_summary import TradeSummary

__all__ = ["Drawdown", "TradeSummary", "max_drawdown"]
