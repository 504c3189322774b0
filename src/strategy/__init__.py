"""
Strategy layer: dataframe, strategy contracts, controller and helpers.
"""

from strategy.base import Broker, Dataframe, HighFrequencyStrategy, Strategy
from strategy.controller import StrategyController
from strategy.cross_ma import CrossMA
from strategy.tools import OrderScheduler, TrailingStop

__all__ = [
    "Broker",
    "CrossMA",
    "Dataframe",
    "HighFrequencyStrategy",
    "OrderScheduler",
    "Strategy",
    "StrategyController",
    "TrailingStop",
]
