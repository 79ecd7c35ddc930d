import pytest

from tickets.exceptions import BusinessError, BusinessRule, NotFoundError, ValidationError
from tickets.models import TicketEvent, TicketItem

Prep = TicketItem.PreparationState


@pytest.mark.django_db
class TestAdvanceItem:
    """Kitchen preparation only moves forward"""

    def test_forward_progress(self, kitchen, ticket_with_items):
        """
        Business Impact: the pass and the floor see the same preparation state
        """
        _, item_a, _ = ticket_with_items

        item = kitchen.advance_item(item_a.pk, Prep.IN_PROGRESS)
        assert item.preparation_state == Prep.IN_PROGRESS

        item = kitchen.advance_item(item_a.pk, "SERVED")
        assert item.preparation_state == Prep.SERVED

        event = TicketEvent.objects.filter(
            event_type=TicketEvent.EventType.ITEM_UPDATED
        ).order_by("-created_at").first()
        assert event.payload["preparation_state"] == "SERVED"
        assert event.payload["item_ids"] == [item_a.pk]

    def test_backwards_is_invalid(self, kitchen, ticket_with_items):
        _, item_a, _ = ticket_with_items
        kitchen.advance_item(item_a.pk, Prep.READY)

        with pytest.raises(BusinessError) as excinfo:
            kitchen.advance_item(item_a.pk, Prep.IN_PROGRESS)
        assert excinfo.value.rule == BusinessRule.INVALID_TRANSITION

        with pytest.raises(BusinessError):
            kitchen.advance_item(item_a.pk, Prep.READY)

    def test_unknown_state(self, kitchen, ticket_with_items):
        _, item_a, _ = ticket_with_items
        with pytest.raises(ValidationError):
            kitchen.advance_item(item_a.pk, "BURNT")

    def test_unknown_item(self, kitchen, db):
        with pytest.raises(NotFoundError):
            kitchen.advance_item(424242, Prep.READY)

    def test_closed_ticket_can_still_be_served(self, lifecycle, kitchen, ticket_with_items):
        ticket, item_a, _ = ticket_with_items
        lifecycle.change_state(ticket.pk, "CLOSED")

        item = kitchen.advance_item(item_a.pk, Prep.SERVED)
        assert item.preparation_state == Prep.SERVED

    def test_voided_ticket_rejected(self, lifecycle, kitchen, ticket_with_items):
        ticket, item_a, _ = ticket_with_items
        lifecycle.change_state(ticket.pk, "VOIDED")

        with pytest.raises(BusinessError) as excinfo:
            kitchen.advance_item(item_a.pk, Prep.READY)
        assert excinfo.value.rule == BusinessRule.TICKET_NOT_OPEN

    def test_progress_survives_split(self, kitchen, split_merge, ticket_with_items):
        ticket, _, item_b = ticket_with_items
        kitchen.advance_item(item_b.pk, Prep.READY)

        _, child = split_merge.split_by_items(ticket.pk, [item_b.pk])

        item = kitchen.advance_item(item_b.pk, Prep.SERVED)
        assert item.ticket_id == child.pk


@pytest.mark.django_db
class TestKitchenSummary:
    def test_summary(self, kitchen, ticket_with_items):
        ticket, item_a, item_b = ticket_with_items
        kitchen.advance_item(item_a.pk, Prep.SERVED)
        kitchen.advance_item(item_b.pk, Prep.IN_PROGRESS)

        summary = kitchen.kitchen_summary(ticket)

        assert summary == {
            "ticket_id": str(ticket.pk),
            "total_items": 2,
            "counts": {"PENDING": 0, "IN_PROGRESS": 1, "READY": 0, "SERVED": 1},
            "completion_pct": 50.0,
        }

    def test_empty_ticket(self, kitchen, open_ticket):
        summary = kitchen.kitchen_summary(open_ticket)
        assert summary["total_items"] == 0
        assert summary["completion_pct"] == 0.0

    def test_fractional_completion(self, kitchen, open_ticket, add_items):
        items = add_items(open_ticket, 3)
        kitchen.advance_item(items[0].pk, Prep.SERVED)

        assert kitchen.kitchen_summary(open_ticket)["completion_pct"] == 33.33
