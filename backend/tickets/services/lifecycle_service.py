import logging
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.utils import timezone

from tables.models import Table
from tables.services import TableRegistry
from tickets.calculators import TicketCalculator, Totals, compute_line_subtotal
from tickets.conf import ticket_settings
from tickets.exceptions import BusinessError, BusinessRule, NotFoundError, ValidationError
from tickets.models import Ticket, TicketAuditEntry, TicketEvent, TicketItem
from tickets.money import quantize
from tickets.repositories import TicketRepository
from tickets.services.notification_service import EventNotifier, build_payload
from tickets.services.stock_service import StockLine, StockService

logger = logging.getLogger(__name__)

State = Ticket.TicketState

ITEM_FIELDS = (
    "product_ref",
    "name",
    "quantity",
    "unit_price",
    "discount_pct",
    "modifiers",
    "notes",
    "is_complimentary",
)
# Decimal places of TicketItem.unit_price and discount_pct.
PRICE_PLACES = 2

PATCHABLE_ITEM_FIELDS = (
    "quantity",
    "unit_price",
    "discount_pct",
    "modifiers",
    "notes",
    "is_complimentary",
)


def require_open(ticket: Ticket) -> None:
    if ticket.state != State.OPEN:
        raise BusinessError(
            BusinessRule.TICKET_NOT_OPEN,
            f"Ticket {ticket.number} is {ticket.state}; only OPEN tickets can be modified",
            {"ticket_id": str(ticket.pk), "state": ticket.state},
        )


def _clean_quantity(value) -> int:
    if isinstance(value, bool):
        raise ValidationError("Quantity must be a whole number", field="quantity")
    try:
        quantity = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError("Quantity must be a whole number", field="quantity")
    if quantity != quantity.to_integral_value():
        raise ValidationError("Quantity must be a whole number", field="quantity")
    if quantity <= 0:
        raise ValidationError("Quantity must be greater than 0", field="quantity")
    return int(quantity)


def _clean_decimal(value, field: str, places: Optional[int] = None) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"'{field}' must be a number", field=field)
    try:
        number = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"'{field}' must be a number", field=field)
    if not number.is_finite():
        raise ValidationError(f"'{field}' must be a number", field=field)
    # Must fit the column scale.
    if places is not None and number.normalize().as_tuple().exponent < -places:
        raise ValidationError(
            f"'{field}' allows at most {places} decimal places", field=field
        )
    return number


def clean_item_values(values: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """
    Validate an item spec (or a patch, when partial) and normalise its types.

    Monetary and range checks are left to compute_line_subtotal so there is
    one definition of a priceable line.
    """
    allowed = PATCHABLE_ITEM_FIELDS if partial else ITEM_FIELDS
    unknown = sorted(set(values) - set(allowed))
    if unknown:
        raise ValidationError(
            f"Unsupported item fields: {', '.join(unknown)}", details={"fields": unknown}
        )

    cleaned = {}
    if not partial:
        product_ref = str(values.get("product_ref") or "").strip()
        if not product_ref:
            raise ValidationError("product_ref is required", field="product_ref")
        cleaned["product_ref"] = product_ref
        cleaned["name"] = str(values.get("name") or product_ref).strip()
        if "unit_price" not in values:
            raise ValidationError("unit_price is required", field="unit_price")

    if "quantity" in values or not partial:
        cleaned["quantity"] = _clean_quantity(values.get("quantity", 1))
    if "unit_price" in values:
        cleaned["unit_price"] = _clean_decimal(values["unit_price"], "unit_price", places=PRICE_PLACES)
    if "discount_pct" in values:
        cleaned["discount_pct"] = _clean_decimal(values["discount_pct"] or 0, "discount_pct", places=PRICE_PLACES)
    if "modifiers" in values:
        modifiers = values["modifiers"] or []
        if not isinstance(modifiers, list):
            raise ValidationError("modifiers must be a list", field="modifiers")
        cleaned["modifiers"] = modifiers
    if "notes" in values:
        cleaned["notes"] = str(values["notes"] or "")
    if "is_complimentary" in values:
        cleaned["is_complimentary"] = bool(values["is_complimentary"])
    return cleaned


class TicketLifecycleService:
    """
    Creates tickets, mutates their items and drives the ticket state machine.

    Every public operation runs in one transaction and holds a row lock on
    the ticket for its duration. Events are written to the outbox inside the
    transaction; stock adjustments are scheduled for after commit.
    """

    VALID_STATE_TRANSITIONS = {
        State.OPEN: [State.CLOSED, State.VOIDED],
        State.CLOSED: [State.PAID, State.VOIDED],
        State.PAID: [],
        State.VOIDED: [],
    }

    def __init__(self, repository=None, tables=None, notifier=None, stock=None):
        self.repository = repository or TicketRepository()
        self.tables = tables or TableRegistry()
        self.notifier = notifier or EventNotifier()
        self.stock = stock or StockService()

    # --- Reads ---

    def get(self, ticket_id) -> Ticket:
        return self.repository.get(ticket_id)

    def list_open_for_table(self, table_ref) -> List[Ticket]:
        table = self.tables.get(table_ref)
        return list(self.repository.open_tickets_for_table(table))

    # --- Creation ---

    def resolve_server(self, server_ref, actor):
        server = server_ref if server_ref is not None else actor
        if server is None:
            raise ValidationError("A server is required to open a ticket", field="server")
        if hasattr(server, "pk"):
            return server
        User = get_user_model()
        try:
            return User.objects.get(pk=server)
        except (User.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Server", server)

    def create(
        self,
        table_ref=None,
        server_ref=None,
        sale_type: Optional[str] = None,
        diners: int = 1,
        notes: str = "",
        actor=None,
    ) -> Ticket:
        """
        Open an empty ticket, optionally against a table.

        Raises:
            NotFoundError: unknown table or server.
            BusinessError(TABLE_UNAVAILABLE): the table is occupied, out of
                service, or another open ticket already holds it.
            ValidationError: bad sale type or diner count.
        """
        start = time.monotonic()
        if sale_type is None:
            sale_type = Ticket.SaleType.DINE_IN if table_ref is not None else Ticket.SaleType.TAKEAWAY
        if sale_type not in Ticket.SaleType.values:
            raise ValidationError(f"Unknown sale type '{sale_type}'", field="sale_type")
        if sale_type == Ticket.SaleType.DINE_IN and table_ref is None:
            raise ValidationError("Dine-in tickets need a table", field="table")
        if isinstance(diners, bool) or not isinstance(diners, int) or diners < 1:
            raise ValidationError("Diners must be a positive whole number", field="diners")

        server = self.resolve_server(server_ref, actor)

        with transaction.atomic():
            table = None
            if table_ref is not None:
                table = self.tables.lock(table_ref)
                if table.state != Table.TableState.FREE:
                    raise BusinessError(
                        BusinessRule.TABLE_UNAVAILABLE,
                        f"Table {table.number} is {table.state}",
                        {"table_id": table.pk, "state": table.state},
                    )
                if self.repository.open_tickets_for_table(table).exists():
                    raise BusinessError(
                        BusinessRule.TABLE_UNAVAILABLE,
                        f"Table {table.number} already has an open ticket",
                        {"table_id": table.pk},
                    )

            try:
                with transaction.atomic():
                    ticket = self.repository.create_ticket(
                        table=table,
                        server=server,
                        sale_type=sale_type,
                        diners=diners,
                        notes=notes or "",
                        tax_rate=ticket_settings.tax_rate,
                        holds_table=table is not None,
                    )
            except IntegrityError:
                raise BusinessError(
                    BusinessRule.TABLE_UNAVAILABLE,
                    f"Table {table.number if table else table_ref} was taken by a concurrent sale",
                    {"table_id": getattr(table, "pk", table_ref)},
                )

            if table is not None:
                self.tables.set_state(table, Table.TableState.OCCUPIED)

            self.notifier.publish(TicketEvent.EventType.TICKET_CREATED, build_payload(ticket))

        duration = time.monotonic() - start
        logger.info(
            f"Opened ticket {ticket.number} ({sale_type}) table={table.number if table else '-'} "
            f"server={server.pk} in {duration:.3f}s"
        )
        return ticket

    # --- Totals ---

    def recalculate(self, ticket: Ticket, items: Optional[List[TicketItem]] = None) -> Totals:
        """
        Recompute line subtotals and ticket totals from the current items and persist them.

        Totals are derived from scratch every time, so calling this twice in a
        row gives identical results.
        """
        if items is None:
            items = self.repository.items_of(ticket)

        currency = ticket_settings.currency
        for item in items:
            line_subtotal = compute_line_subtotal(
                item.quantity, item.unit_price, item.discount_pct, currency, item.is_complimentary
            )
            if item.line_subtotal != line_subtotal:
                item.line_subtotal = line_subtotal
                self.repository.save(item, update_fields=["line_subtotal", "updated_at"])

        totals = TicketCalculator(ticket, items).calculate_totals()
        self.repository.save_totals(ticket, totals)
        return totals

    # --- Item mutations ---

    @transaction.atomic
    def add_item(self, ticket_id, item_spec: Dict[str, Any], actor=None) -> TicketItem:
        values = clean_item_values(item_spec or {})
        ticket = self.repository.get_for_update(ticket_id)
        require_open(ticket)

        values["line_subtotal"] = compute_line_subtotal(
            values["quantity"],
            values["unit_price"],
            values.get("discount_pct", 0),
            ticket_settings.currency,
            values.get("is_complimentary", False),
        )
        item = self.repository.create_item(ticket, **values)
        self.recalculate(ticket)

        self.notifier.publish(TicketEvent.EventType.ITEM_ADDED, build_payload(ticket, [item.id]))
        line = StockLine.from_item(item)
        quantity = item.quantity
        transaction.on_commit(lambda: self.stock.deduct(line, quantity))

        logger.info(f"Added {item.quantity} x {item.product_ref} to ticket {ticket.number}, total {ticket.total}")
        return item

    @transaction.atomic
    def update_item(self, ticket_id, item_id, patch: Dict[str, Any], actor=None) -> TicketItem:
        if not patch:
            raise ValidationError("Nothing to update")
        values = clean_item_values(patch, partial=True)
        ticket = self.repository.get_for_update(ticket_id)
        require_open(ticket)
        item = self.repository.get_item(ticket, item_id)

        previous_quantity = item.quantity
        for field, value in values.items():
            setattr(item, field, value)
        item.line_subtotal = compute_line_subtotal(
            item.quantity, item.unit_price, item.discount_pct, ticket_settings.currency, item.is_complimentary
        )
        self.repository.save(item)
        self.recalculate(ticket)

        self.notifier.publish(
            TicketEvent.EventType.ITEM_UPDATED,
            build_payload(ticket, [item.id], changed_fields=sorted(values)),
        )

        delta = item.quantity - previous_quantity
        if delta:
            line = StockLine.from_item(item)
            if delta > 0:
                transaction.on_commit(lambda: self.stock.deduct(line, delta))
            else:
                transaction.on_commit(lambda: self.stock.restore(line, -delta))

        logger.info(f"Updated item {item.id} on ticket {ticket.number}: {sorted(values)}")
        return item

    @transaction.atomic
    def remove_item(self, ticket_id, item_id, actor=None) -> Ticket:
        ticket = self.repository.get_for_update(ticket_id)
        require_open(ticket)
        item = self.repository.get_item(ticket, item_id)

        line = StockLine.from_item(item)
        quantity = item.quantity
        self.repository.delete_item(item)
        self.recalculate(ticket)

        self.notifier.publish(TicketEvent.EventType.ITEM_REMOVED, build_payload(ticket, [line.item_id]))
        transaction.on_commit(lambda: self.stock.restore(line, quantity))

        logger.info(f"Removed item {line.item_id} from ticket {ticket.number}")
        return ticket

    # --- Ticket-level changes ---

    @transaction.atomic
    def apply_discount(self, ticket_id, amount, actor=None) -> Ticket:
        amount = _clean_decimal(amount, "amount")
        if amount < 0:
            raise ValidationError("Discount cannot be negative", field="amount")

        ticket = self.repository.get_for_update(ticket_id)
        require_open(ticket)
        amount = quantize(ticket_settings.currency, amount)
        if amount > ticket.subtotal:
            raise ValidationError(
                f"Discount {amount} exceeds subtotal {ticket.subtotal}",
                field="amount",
                details={"subtotal": str(ticket.subtotal)},
            )

        previous = ticket.discount
        ticket.discount = amount
        self.recalculate(ticket)
        self.repository.audit(
            ticket,
            TicketAuditEntry.Action.DISCOUNT,
            actor=actor,
            note=f"Discount {previous} -> {amount}",
            data={"previous": str(previous), "amount": str(amount)},
        )
        self.notifier.publish(
            TicketEvent.EventType.TICKET_UPDATED,
            build_payload(ticket, changed_fields=["discount"]),
        )

        logger.info(f"Discount on ticket {ticket.number} set to {amount}")
        return ticket

    def change_state(self, ticket_id, target_state, actor=None, note: Optional[str] = None) -> Ticket:
        """
        Move a ticket through the state machine.

        Leaving OPEN hands the table over: if the ticket was the table's
        holder, the earliest remaining open ticket on that table takes over;
        if no open ticket remains the table goes back to FREE.
        """
        if target_state not in State.values:
            raise ValidationError(f"Unknown ticket state '{target_state}'", field="state")
        target_state = State(target_state)

        with transaction.atomic():
            ticket = self.repository.get_for_update(ticket_id)
            previous = State(ticket.state)
            if target_state not in self.VALID_STATE_TRANSITIONS[previous]:
                raise BusinessError(
                    BusinessRule.INVALID_TRANSITION,
                    f"Cannot move ticket {ticket.number} from {previous} to {target_state}",
                    {"from": previous.value, "to": target_state.value},
                )

            now = timezone.now()
            was_holder = ticket.holds_table
            ticket.state = target_state
            if previous == State.OPEN:
                ticket.closed_at = now
                ticket.holds_table = False
            if target_state == State.PAID:
                ticket.paid_at = now
            self.repository.save(ticket)

            if previous == State.OPEN and ticket.table_id is not None:
                self._settle_table(ticket.table_id, was_holder)

            self.repository.audit(
                ticket,
                TicketAuditEntry.Action.STATE_CHANGE,
                actor=actor,
                note=note or "",
                data={"from": previous.value, "to": target_state.value},
            )
            self.notifier.publish(
                TicketEvent.EventType.STATE_CHANGED,
                build_payload(ticket, previous_state=previous.value),
            )

        logger.info(f"Ticket {ticket.number} {previous} -> {target_state}")
        return ticket

    def _settle_table(self, table_id, transfer_holder: bool) -> None:
        table = self.tables.lock(table_id)
        remaining = list(self.repository.open_tickets_for_table(table))
        if not remaining:
            self.tables.set_state(table, Table.TableState.FREE)
            return

        if transfer_holder and not any(t.holds_table for t in remaining):
            successor = remaining[0]
            successor.holds_table = True
            self.repository.save(successor, update_fields=["holds_table", "updated_at"])
            logger.info(f"Ticket {successor.number} now holds table {table.number}")
