"""
Order lifecycle: placement through a Venue, persistence, reconciliation and
profit attribution, plus the order event feed.
"""

from orders.controller import ControllerStatus, OrderController
from orders.feed import OrderFeed

__all__ = ["ControllerStatus", "OrderController", "OrderFeed"]
