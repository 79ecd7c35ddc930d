"""
Event outbox tests.

Events are written inside the mutating transaction and delivered only after
commit. pytest-django wraps each test in a transaction, so delivery is
driven with django_capture_on_commit_callbacks(execute=True).
"""
import pytest
from django.db import transaction

from tickets.models import TicketEvent
from tickets.services import EventNotifier, TicketLifecycleService
from tickets.signals import ticket_event
from tickets.tasks import publish_pending_ticket_events


class RecordingLayer:
    def __init__(self):
        self.sent = []

    async def group_send(self, group, message):
        self.sent.append((group, message))


class BrokenLayer:
    async def group_send(self, group, message):
        raise ConnectionError("redis is down")


@pytest.fixture
def received():
    events = []

    def receiver(sender, event_type, payload, **kwargs):
        events.append((event_type, payload))

    ticket_event.connect(receiver, dispatch_uid="test-recorder")
    yield events
    ticket_event.disconnect(dispatch_uid="test-recorder")


@pytest.fixture
def layer():
    return RecordingLayer()


@pytest.fixture
def notified_lifecycle(layer):
    return TicketLifecycleService(notifier=EventNotifier(channel_layer=layer))


@pytest.mark.django_db
class TestDelivery:
    """Committed changes are announced exactly once"""

    def test_create_is_delivered_after_commit(
        self, notified_lifecycle, layer, received, table, server_user, django_capture_on_commit_callbacks
    ):
        """
        CRITICAL: The floor dashboard learns about a ticket only once it is committed

        Business Impact: dashboards never show tickets that were rolled back
        """
        with django_capture_on_commit_callbacks(execute=True):
            ticket = notified_lifecycle.create(table_ref=table.pk, server_ref=server_user)
            assert received == []

        assert len(received) == 1
        event_type, payload = received[0]
        assert event_type == "ticket.created"
        assert payload["ticket_id"] == str(ticket.pk)
        assert payload["table_id"] == table.pk
        assert payload["totals"]["total"] == "0"

        group, message = layer.sent[0]
        assert group == "ticket_events_test"
        assert message["type"] == "ticket.event"
        assert message["event"]["event_id"] == payload["event_id"]

        event = TicketEvent.objects.get(pk=payload["event_id"])
        assert event.published_at is not None
        assert event.attempts == 1

    def test_event_order_follows_mutations(
        self, notified_lifecycle, received, server_user, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            ticket = notified_lifecycle.create(server_ref=server_user)
        with django_capture_on_commit_callbacks(execute=True):
            item = notified_lifecycle.add_item(ticket.pk, {"product_ref": "A", "unit_price": 1000})
        with django_capture_on_commit_callbacks(execute=True):
            notified_lifecycle.update_item(ticket.pk, item.pk, {"quantity": 2})
        with django_capture_on_commit_callbacks(execute=True):
            notified_lifecycle.remove_item(ticket.pk, item.pk)
        with django_capture_on_commit_callbacks(execute=True):
            notified_lifecycle.change_state(ticket.pk, "VOIDED")

        assert [event_type for event_type, _ in received] == [
            "ticket.created",
            "item.added",
            "item.updated",
            "item.removed",
            "ticket.state_changed",
        ]
        assert received[1][1]["item_ids"] == [item.pk]
        assert received[1][1]["totals"]["total"] == "1190"
        assert received[2][1]["changed_fields"] == ["quantity"]
        assert received[4][1]["previous_state"] == "OPEN"
        assert received[4][1]["state"] == "VOIDED"

    def test_rolled_back_change_is_not_announced(self, layer, received, open_ticket, django_capture_on_commit_callbacks):
        notifier = EventNotifier(channel_layer=layer)
        before = TicketEvent.objects.count()

        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            with pytest.raises(RuntimeError):
                with transaction.atomic():
                    notifier.publish(TicketEvent.EventType.TICKET_UPDATED, {"ticket_id": str(open_ticket.pk)})
                    raise RuntimeError("boom")

        assert callbacks == []
        assert received == []
        assert layer.sent == []
        assert TicketEvent.objects.count() == before

    def test_failing_receiver_does_not_block_broadcast(self, layer, open_ticket, django_capture_on_commit_callbacks):
        def broken_receiver(sender, **kwargs):
            raise RuntimeError("receiver bug")

        ticket_event.connect(broken_receiver, dispatch_uid="test-broken")
        try:
            notifier = EventNotifier(channel_layer=layer)
            with django_capture_on_commit_callbacks(execute=True):
                event = notifier.publish(TicketEvent.EventType.TICKET_UPDATED, {"ticket_id": str(open_ticket.pk)})
        finally:
            ticket_event.disconnect(dispatch_uid="test-broken")

        event.refresh_from_db()
        assert event.published_at is not None
        assert len(layer.sent) == 1


@pytest.mark.django_db
class TestOutboxRetry:
    """Events that fail to deliver stay in the outbox"""

    def test_broken_layer_leaves_event_pending(self, open_ticket, django_capture_on_commit_callbacks):
        """
        Business Impact: a Redis outage must not lose or fail a sale, only delay its broadcast
        """
        notifier = EventNotifier(channel_layer=BrokenLayer())
        with django_capture_on_commit_callbacks(execute=True):
            event = notifier.publish(TicketEvent.EventType.TICKET_UPDATED, {"ticket_id": str(open_ticket.pk)})

        event.refresh_from_db()
        assert event.published_at is None
        assert event.attempts == 1
        assert "redis is down" in event.last_error

    def test_publish_pending_redelivers(self, layer, open_ticket):
        # Never delivered: the test transaction does not commit.
        event = EventNotifier(channel_layer=layer).publish(
            TicketEvent.EventType.TICKET_UPDATED, {"ticket_id": str(open_ticket.pk)}
        )
        TicketEvent.objects.exclude(pk=event.pk).update(attempts=3)

        published = EventNotifier(channel_layer=layer).publish_pending()

        assert published == 1
        event.refresh_from_db()
        assert event.published_at is not None
        assert layer.sent[0][1]["event"]["event_id"] == str(event.pk)

    def test_exhausted_events_are_skipped(self, layer, open_ticket):
        TicketEvent.objects.update(attempts=3)

        assert EventNotifier(channel_layer=layer).publish_pending() == 0
        assert layer.sent == []

    def test_deliver_is_idempotent(self, layer, open_ticket):
        notifier = EventNotifier(channel_layer=layer)
        event = TicketEvent.objects.get(ticket_id=open_ticket.pk)

        assert notifier.deliver(event.pk) is True
        assert notifier.deliver(event.pk) is True
        assert len(layer.sent) == 1

    def test_periodic_task(self, open_ticket, settings):
        settings.CHANNEL_LAYERS = {"default": {"BACKEND": "channels.layers.InMemoryChannelLayer"}}

        result = publish_pending_ticket_events.delay()

        assert result.get() == 1
        event = TicketEvent.objects.get(ticket_id=open_ticket.pk)
        assert event.published_at is not None
