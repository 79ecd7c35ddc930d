import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockLine:
    """What the inventory side needs to know about a ticket line."""

    product_ref: str
    ticket_id: str
    item_id: Optional[int]

    @classmethod
    def from_item(cls, item) -> "StockLine":
        return cls(product_ref=item.product_ref, ticket_id=str(item.ticket_id), item_id=item.id)


class StockService:
    """
    Best-effort stock adjustments for ticket lines.

    Called from transaction.on_commit by the lifecycle service. Movements are
    handed to the inventory Celery task; if enqueueing fails the sale still
    stands and the failure is only logged.
    """

    def deduct(self, item, quantity: int) -> None:
        self._enqueue(item, -int(quantity), "SALE")

    def restore(self, item, quantity: int) -> None:
        self._enqueue(item, int(quantity), "RETURN")

    def _enqueue(self, item, quantity_delta: int, reason: str) -> None:
        if quantity_delta == 0:
            return
        line = item if isinstance(item, StockLine) else StockLine.from_item(item)
        try:
            from inventory.tasks import record_stock_movement

            record_stock_movement.delay(
                line.product_ref,
                quantity_delta,
                reason,
                ticket_id=line.ticket_id,
                ticket_item_id=line.item_id,
            )
            logger.info(f"Queued stock movement {quantity_delta:+d} for {line.product_ref} ({reason})")
        except Exception as e:
            logger.warning(
                f"Failed to queue stock movement for {line.product_ref} on ticket {line.ticket_id}: {e}",
                exc_info=True,
            )
