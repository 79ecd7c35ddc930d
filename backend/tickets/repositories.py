"""
Persistence gateway for tickets and their items.

All ticket-engine reads and writes go through TicketRepository so services
never build queries themselves. Callers are expected to be inside
transaction.atomic; the *_for_update/lock_* methods take row locks that last
until the surrounding transaction ends.
"""
import logging
import re
from typing import Iterable, List

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import BigIntegerField, Max
from django.db.models.functions import Cast, Substr

from tickets.conf import ticket_settings
from tickets.exceptions import ConflictError, NotFoundError
from tickets.models import Ticket, TicketAuditEntry, TicketItem

logger = logging.getLogger(__name__)

NUMBER_PREFIX = "T-"
NUMBER_PATTERN = re.compile(r"^T-(\d+)$")
MAX_NUMBER_ATTEMPTS = 5


class TicketRepository:
    def get(self, ticket_id) -> Ticket:
        try:
            return Ticket.objects.select_related("table", "server").get(pk=ticket_id)
        except (Ticket.DoesNotExist, DjangoValidationError, ValueError, TypeError):
            raise NotFoundError("Ticket", ticket_id)

    def get_for_update(self, ticket_id) -> Ticket:
        try:
            return Ticket.objects.select_for_update(nowait=ticket_settings.lock_nowait).get(pk=ticket_id)
        except (Ticket.DoesNotExist, DjangoValidationError, ValueError, TypeError):
            raise NotFoundError("Ticket", ticket_id)
        except DatabaseError as exc:
            logger.info(f"Lock contention on ticket {ticket_id}: {exc}")
            raise ConflictError(f"Ticket '{ticket_id}' is being modified by another operation")

    def lock_many(self, ticket_ids: Iterable) -> List[Ticket]:
        """Lock several tickets in ascending id order. Every id must exist."""
        ticket_ids = [str(ticket_id) for ticket_id in ticket_ids]
        try:
            tickets = list(
                Ticket.objects.select_for_update(nowait=ticket_settings.lock_nowait)
                .filter(pk__in=ticket_ids)
                .order_by("pk")
            )
        except (DjangoValidationError, ValueError, TypeError):
            raise NotFoundError("Ticket", ", ".join(ticket_ids))
        except DatabaseError as exc:
            logger.info(f"Lock contention on tickets {ticket_ids}: {exc}")
            raise ConflictError("One or more tickets are being modified by another operation")

        found = {str(ticket.pk) for ticket in tickets}
        for ticket_id in ticket_ids:
            if ticket_id not in found:
                raise NotFoundError("Ticket", ticket_id)
        return tickets

    def items_of(self, ticket) -> List[TicketItem]:
        return list(TicketItem.objects.filter(ticket=ticket).order_by("id"))

    def get_item(self, ticket, item_id) -> TicketItem:
        try:
            return TicketItem.objects.get(pk=item_id, ticket=ticket)
        except (TicketItem.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Item", item_id)

    def get_item_by_id(self, item_id) -> TicketItem:
        try:
            return TicketItem.objects.get(pk=item_id)
        except (TicketItem.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Item", item_id)

    def open_tickets_for_table(self, table):
        return Ticket.objects.filter(table=table, state=Ticket.TicketState.OPEN).order_by("created_at", "number")

    def next_number(self) -> str:
        # Compare the numeric suffix; "T-999999" sorts after "T-1000000" as text.
        last = (
            Ticket.objects.filter(number__regex=NUMBER_PATTERN.pattern)
            .annotate(sequence=Cast(Substr("number", len(NUMBER_PREFIX) + 1), BigIntegerField()))
            .aggregate(last=Max("sequence"))["last"]
        )
        return f"{NUMBER_PREFIX}{(last or 0) + 1:06d}"

    def create_ticket(self, **fields) -> Ticket:
        """
        Insert a ticket with the next free number.

        A collision on the number is retried inside a savepoint; any other
        IntegrityError (such as the table-holder constraint) propagates.
        """
        for _attempt in range(MAX_NUMBER_ATTEMPTS):
            number = self.next_number()
            try:
                with transaction.atomic():
                    return Ticket.objects.create(number=number, **fields)
            except IntegrityError:
                if not Ticket.objects.filter(number=number).exists():
                    raise
                logger.info(f"Ticket number {number} taken, retrying")
        raise ConflictError("Could not allocate a ticket number, retry the operation")

    def create_item(self, ticket, **fields) -> TicketItem:
        return TicketItem.objects.create(ticket=ticket, **fields)

    def move_items(self, item_ids: Iterable, target) -> int:
        """Reassign items to target. Only the owning reference changes."""
        return TicketItem.objects.filter(pk__in=list(item_ids)).update(ticket=target)

    def save(self, instance, update_fields=None):
        instance.save(update_fields=update_fields)
        return instance

    def save_totals(self, ticket, totals) -> Ticket:
        ticket.subtotal = totals.subtotal
        ticket.discount = totals.discount
        ticket.tax = totals.tax
        ticket.tip_suggested = totals.tip_suggested
        ticket.total = totals.total
        ticket.save(update_fields=["subtotal", "discount", "tax", "tip_suggested", "total", "updated_at"])
        return ticket

    def delete_item(self, item) -> None:
        item.delete()

    def audit(self, ticket, action, actor=None, note="", data=None) -> TicketAuditEntry:
        return TicketAuditEntry.objects.create(
            ticket=ticket,
            action=action,
            actor=actor if getattr(actor, "is_authenticated", False) else None,
            note=note or "",
            data=data or {},
        )
