from django.db import transaction
from django.db.models import Sum
import logging

from .models import StockMovement

logger = logging.getLogger(__name__)


class InventoryService:

    @staticmethod
    @transaction.atomic
    def record_movement(product_ref, quantity_delta, reason, ticket_id=None, ticket_item_id=None):
        """
        Append a movement to the ledger.

        Every product_ref is stocked as itself; recipe and pack expansion
        are not modelled.
        """
        if reason not in StockMovement.Reason.values:
            raise ValueError(f"Unknown stock movement reason '{reason}'")

        movement = StockMovement.objects.create(
            product_ref=product_ref,
            quantity_delta=int(quantity_delta),
            reason=reason,
            ticket_id=ticket_id,
            ticket_item_id=ticket_item_id,
        )
        logger.info(f"Stock {movement.quantity_delta:+d} for {product_ref} ({reason})")
        return movement

    @staticmethod
    def stock_level(product_ref) -> int:
        """Net movement for a product (negative means more sold than restored)."""
        total = StockMovement.objects.filter(product_ref=product_ref).aggregate(total=Sum("quantity_delta"))["total"]
        return total or 0
