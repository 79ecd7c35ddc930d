from django.db import transaction
import logging

from tickets.exceptions import BusinessError, BusinessRule, ValidationError
from tickets.models import Ticket, TicketEvent, TicketItem
from tickets.repositories import TicketRepository
from tickets.services.notification_service import EventNotifier, build_payload

logger = logging.getLogger(__name__)

Prep = TicketItem.PreparationState


class KitchenService:
    """Service for kitchen-side item progress - preparation states and summaries."""

    PREPARATION_ORDER = [Prep.PENDING, Prep.IN_PROGRESS, Prep.READY, Prep.SERVED]

    def __init__(self, repository=None, notifier=None):
        self.repository = repository or TicketRepository()
        self.notifier = notifier or EventNotifier()

    @transaction.atomic
    def advance_item(self, item_id, target_state, actor=None) -> TicketItem:
        """
        Move an item forward in preparation. Skipping ahead is allowed,
        going back or staying put is not.
        """
        if target_state not in Prep.values:
            raise ValidationError(f"Unknown preparation state '{target_state}'", field="preparation_state")
        target_state = Prep(target_state)

        # Re-read under the ticket lock; a concurrent split may have moved the item.
        item = self.repository.get_item_by_id(item_id)
        ticket = self.repository.get_for_update(item.ticket_id)
        item = self.repository.get_item(ticket, item_id)

        if ticket.state == Ticket.TicketState.VOIDED:
            raise BusinessError(
                BusinessRule.TICKET_NOT_OPEN,
                f"Ticket {ticket.number} is voided",
                {"ticket_id": str(ticket.pk), "state": ticket.state},
            )

        current = Prep(item.preparation_state)
        if self.PREPARATION_ORDER.index(target_state) <= self.PREPARATION_ORDER.index(current):
            raise BusinessError(
                BusinessRule.INVALID_TRANSITION,
                f"Item {item.id} cannot go from {current} to {target_state}",
                {"from": current.value, "to": target_state.value},
            )

        item.preparation_state = target_state
        self.repository.save(item, update_fields=["preparation_state", "updated_at"])
        self.notifier.publish(
            TicketEvent.EventType.ITEM_UPDATED,
            build_payload(ticket, [item.id], preparation_state=target_state.value),
        )

        logger.info(f"Item {item.id} on ticket {ticket.number}: {current} -> {target_state}")
        return item

    def kitchen_summary(self, ticket) -> dict:
        items = self.repository.items_of(ticket)
        counts = {state.value: 0 for state in self.PREPARATION_ORDER}
        for item in items:
            counts[item.preparation_state] += 1

        total = len(items)
        served = counts[Prep.SERVED.value]
        return {
            "ticket_id": str(ticket.pk),
            "total_items": total,
            "counts": counts,
            "completion_pct": round(served * 100 / total, 2) if total else 0.0,
        }
