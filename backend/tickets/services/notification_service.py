"""
Ticket event publication through a transactional outbox.

publish() writes a TicketEvent row inside the caller's transaction and
schedules delivery with transaction.on_commit, so nothing is announced for a
change that rolled back. Delivery sends the ticket_event Django signal and
forwards the payload to the Channels group the floor dashboard listens on.
Rows that fail to deliver stay unpublished and are retried by
tickets.tasks.publish_pending_ticket_events.
"""
import logging
from typing import Any, Dict, Iterable, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db import transaction
from django.utils import timezone

from tickets.conf import ticket_settings
from tickets.models import TicketEvent
from tickets.money import quantize
from tickets.signals import ticket_event

logger = logging.getLogger(__name__)

TOTAL_FIELDS = ("subtotal", "discount", "tax", "tip_suggested", "total")


def ticket_totals(ticket) -> Dict[str, str]:
    currency = ticket_settings.currency
    return {field: str(quantize(currency, getattr(ticket, field))) for field in TOTAL_FIELDS}


def build_payload(ticket, item_ids: Optional[Iterable] = None, **extra) -> Dict[str, Any]:
    """Standard payload for a single-ticket event."""
    payload = {
        "ticket_id": str(ticket.pk),
        "ticket_number": ticket.number,
        "table_id": ticket.table_id,
        "state": ticket.state,
        "item_ids": [item_id for item_id in (item_ids or [])],
        "totals": ticket_totals(ticket),
    }
    payload.update(extra)
    return payload


class EventNotifier:
    def __init__(self, channel_layer=None):
        self._channel_layer = channel_layer

    @property
    def channel_layer(self):
        if self._channel_layer is None:
            self._channel_layer = get_channel_layer()
        return self._channel_layer

    def publish(self, event_type: str, payload: Dict[str, Any]) -> TicketEvent:
        """
        Record an event and deliver it once the current transaction commits.

        Outside an atomic block on_commit runs the delivery immediately.
        """
        event_type = TicketEvent.EventType(event_type)
        event = TicketEvent(event_type=event_type, ticket_id=payload["ticket_id"])
        event.payload = {
            **payload,
            "event_id": str(event.pk),
            "event_type": event_type.value,
            "occurred_at": event.created_at.isoformat(),
        }
        event.save()

        transaction.on_commit(lambda: self.deliver(event.pk))
        logger.debug(f"Queued {event_type.value} for ticket {payload['ticket_id']}")
        return event

    def deliver(self, event_id) -> bool:
        """
        Deliver one outbox row. Returns True when it is (or already was) published.

        Failures are recorded on the row and logged, never raised.
        """
        event = TicketEvent.objects.filter(pk=event_id).first()
        if event is None:
            logger.warning(f"Outbox event {event_id} vanished before delivery")
            return False
        if event.published_at is not None:
            return True

        try:
            self._dispatch(event)
        except Exception as exc:
            event.attempts += 1
            event.last_error = str(exc)[:1000]
            event.save(update_fields=["attempts", "last_error"])
            logger.warning(
                f"Delivery of {event.event_type} {event.pk} failed (attempt {event.attempts}): {exc}",
                exc_info=True,
            )
            return False

        event.attempts += 1
        event.published_at = timezone.now()
        event.last_error = ""
        event.save(update_fields=["attempts", "published_at", "last_error"])
        return True

    def _dispatch(self, event: TicketEvent) -> None:
        responses = ticket_event.send_robust(
            sender=TicketEvent, event_type=event.event_type, payload=event.payload
        )
        for receiver, response in responses:
            if isinstance(response, Exception):
                logger.error(
                    f"ticket_event receiver {receiver!r} failed for {event.event_type}: {response}",
                    exc_info=response,
                )

        layer = self.channel_layer
        if layer is None:
            logger.warning("No channel layer configured; skipping websocket broadcast")
            return
        async_to_sync(layer.group_send)(
            ticket_settings.event_group,
            {"type": "ticket.event", "event": event.payload},
        )

    def publish_pending(self, limit: int = 100) -> int:
        """Redeliver outbox rows that never made it out. Returns how many were published."""
        pending = TicketEvent.objects.filter(
            published_at__isnull=True,
            attempts__lt=ticket_settings.outbox_max_attempts,
        ).order_by("created_at")[:limit]

        published = 0
        for event in pending:
            if self.deliver(event.pk):
                published += 1
        return published
