import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


class Ticket(models.Model):
    """
    An open sale (comanda) tied to a table, or to nothing for takeaway and
    delivery.

    Financial fields are derived: they are only written by the calculation
    path in TicketLifecycleService.recalculate and always satisfy
    total == subtotal - discount + tax.
    """

    class TicketState(models.TextChoices):
        OPEN = "OPEN", _("Open")  # Accepting items
        CLOSED = "CLOSED", _("Closed")  # Bill requested, awaiting payment
        PAID = "PAID", _("Paid")
        VOIDED = "VOIDED", _("Voided")  # Cancelled, or absorbed by a merge

    class SaleType(models.TextChoices):
        DINE_IN = "DINE_IN", _("Dine In")
        TAKEAWAY = "TAKEAWAY", _("Takeaway")
        DELIVERY = "DELIVERY", _("Delivery")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    number = models.CharField(max_length=20, unique=True)

    table = models.ForeignKey(
        "tables.Table",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="tickets",
    )
    server = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="tickets",
        help_text=_("Employee who owns the sale."),
    )
    sale_type = models.CharField(
        max_length=10, choices=SaleType.choices, default=SaleType.DINE_IN
    )
    diners = models.PositiveIntegerField(default=1)
    state = models.CharField(
        max_length=10, choices=TicketState.choices, default=TicketState.OPEN
    )
    holds_table = models.BooleanField(
        default=False,
        help_text=_("True for the open ticket that holds the table's exclusivity slot."),
    )

    # --- Financial Fields ---
    tax_rate = models.DecimalField(
        max_digits=5,
        decimal_places=4,
        default=Decimal("0.19"),
        help_text=_("Tax rate snapshotted when the ticket was opened."),
    )
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    tax = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    tip_suggested = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))

    # --- Provenance ---
    split_from = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="split_children",
    )
    merged_into = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="merged_tickets",
    )
    notes = models.TextField(blank=True)

    created_at = models.DateTimeField(default=timezone.now, editable=False)
    updated_at = models.DateTimeField(auto_now=True)
    closed_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["created_at", "number"]
        verbose_name = _("Ticket")
        verbose_name_plural = _("Tickets")
        indexes = [
            models.Index(fields=["state"], name="ticket_state_idx"),
            models.Index(fields=["table", "state"], name="ticket_table_state_idx"),
            models.Index(fields=["server", "state"], name="ticket_server_state_idx"),
            models.Index(fields=["created_at"], name="ticket_created_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["table"],
                condition=models.Q(state="OPEN", holds_table=True),
                name="unique_open_holder_per_table",
            ),
        ]

    def __str__(self):
        return f"Ticket {self.number} - {self.state}"

    @property
    def is_open(self):
        return self.state == self.TicketState.OPEN


class TicketItem(models.Model):
    class PreparationState(models.TextChoices):
        PENDING = "PENDING", _("Pending")
        IN_PROGRESS = "IN_PROGRESS", _("In Progress")
        READY = "READY", _("Ready")
        SERVED = "SERVED", _("Served")

    ticket = models.ForeignKey(Ticket, on_delete=models.CASCADE, related_name="items")
    product_ref = models.CharField(
        max_length=64, help_text=_("Catalogue reference used for stock movements.")
    )
    name = models.CharField(max_length=200)
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    discount_pct = models.DecimalField(
        max_digits=5, decimal_places=2, default=Decimal("0")
    )
    modifiers = models.JSONField(default=list, blank=True)
    notes = models.TextField(blank=True, help_text=_("Customer notes, e.g., 'no onions'"))
    is_complimentary = models.BooleanField(default=False)
    line_subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    preparation_state = models.CharField(
        max_length=15,
        choices=PreparationState.choices,
        default=PreparationState.PENDING,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        # Item id is the global insertion order and survives moves between tickets.
        ordering = ["id"]
        verbose_name = _("Ticket Item")
        verbose_name_plural = _("Ticket Items")
        indexes = [
            models.Index(fields=["ticket", "preparation_state"], name="item_ticket_prep_idx"),
            models.Index(fields=["product_ref"], name="item_product_idx"),
        ]

    def __str__(self):
        return f"{self.quantity} x {self.name} on {self.ticket_id}"


class TicketEvent(models.Model):
    """
    Transactional outbox row.

    Written in the same transaction as the change it describes and published
    after commit. Rows with published_at unset are retried by the
    publish_pending_ticket_events task.
    """

    class EventType(models.TextChoices):
        TICKET_CREATED = "ticket.created", _("Ticket Created")
        TICKET_UPDATED = "ticket.updated", _("Ticket Updated")
        ITEM_ADDED = "item.added", _("Item Added")
        ITEM_UPDATED = "item.updated", _("Item Updated")
        ITEM_REMOVED = "item.removed", _("Item Removed")
        STATE_CHANGED = "ticket.state_changed", _("State Changed")
        TICKET_SPLIT = "ticket.split", _("Ticket Split")
        TICKET_MERGED = "ticket.merged", _("Ticket Merged")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    event_type = models.CharField(max_length=32, choices=EventType.choices)
    ticket_id = models.UUIDField(db_index=True)
    payload = models.JSONField(default=dict)
    created_at = models.DateTimeField(default=timezone.now)
    published_at = models.DateTimeField(null=True, blank=True)
    attempts = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True)

    class Meta:
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["published_at", "created_at"], name="event_pending_idx"),
        ]

    def __str__(self):
        return f"{self.event_type} ({self.ticket_id})"


class TicketAuditEntry(models.Model):
    class Action(models.TextChoices):
        STATE_CHANGE = "STATE_CHANGE", _("State Change")
        DISCOUNT = "DISCOUNT", _("Discount")
        SPLIT = "SPLIT", _("Split")
        MERGE = "MERGE", _("Merge")

    ticket = models.ForeignKey(Ticket, on_delete=models.CASCADE, related_name="audit_entries")
    action = models.CharField(max_length=20, choices=Action.choices)
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="ticket_audit_entries",
    )
    note = models.TextField(blank=True)
    data = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["created_at", "id"]
        verbose_name = _("Ticket Audit Entry")
        verbose_name_plural = _("Ticket Audit Entries")

    def __str__(self):
        return f"{self.action} on {self.ticket_id}"
