from celery import shared_task
import logging

from .services import InventoryService

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def record_stock_movement(self, product_ref, quantity_delta, reason, ticket_id=None, ticket_item_id=None):
    """
    Async task to record a stock movement for a ticket line.

    Queued after the ticket transaction commits so stock bookkeeping never
    blocks or rolls back a sale.

    Returns:
        dict: Status and the created movement id
    """
    try:
        movement = InventoryService.record_movement(
            product_ref,
            quantity_delta,
            reason,
            ticket_id=ticket_id,
            ticket_item_id=ticket_item_id,
        )
        return {"status": "completed", "movement_id": movement.id}

    except ValueError as exc:
        logger.error(f"Rejected stock movement for {product_ref}: {exc}")
        return {"status": "failed", "error": str(exc)}
    except Exception as exc:
        logger.error(f"Error recording stock movement for {product_ref}: {exc}")
        raise self.retry(exc=exc)
