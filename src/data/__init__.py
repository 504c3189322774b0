"""
Market data: CSV and SQLite bar feeds, and reconnecting subscriptions.
"""

from data.bar_store import BarStore, BarStoreFeed
from data.csv_feed import CSVFeed, read_csv_bars
from data.subscription import Backoff, subscribe_bars

__all__ = [
    "Backoff",
    "BarStore",
    "BarStoreFeed",
    "CSVFeed",
    "read_csv_bars",
    "subscribe_bars",
]
