"""
Durable order log used by the order controller.
"""

from storage.order_store import (
    MemoryOrderStore,
    OrderFilter,
    OrderStore,
    SQLiteOrderStore,
    with_pair,
    with_status,
    with_status_in,
    with_updated_before_or_equal,
)

__all__ = [
    "MemoryOrderStore",
    "OrderFilter",
    "OrderStore",
    "SQLiteOrderStore",
    "with_pair",
    "with_status",
    "with_status_in",
    "with_updated_before_or_equal",
]
