from django.dispatch import Signal

# Sent once per published outbox row, after the originating transaction commits.
# Receivers get event_type and payload; payload["event_id"] is stable across
# redeliveries, so receivers must be idempotent on it.
ticket_event = Signal()
