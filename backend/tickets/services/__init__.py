"""
Tickets services package.

- TicketLifecycleService: create, item mutations, discounts, state machine
- SplitMergeService: split by items, split by diners, merge
- KitchenService: item preparation progress
- EventNotifier: outbox-backed event publication
- StockService: post-commit stock movements
"""

from .lifecycle_service import TicketLifecycleService
from .split_merge_service import SplitMergeService
from .kitchen_service import KitchenService
from .notification_service import EventNotifier, build_payload
from .stock_service import StockLine, StockService

__all__ = [
    "TicketLifecycleService",
    "SplitMergeService",
    "KitchenService",
    "EventNotifier",
    "build_payload",
    "StockLine",
    "StockService",
]
