"""
Append-only JSON-lines journal of order events, fills, profits and summaries.
"""

from journal.writer import JournalWriter

__all__ = ["JournalWriter"]
