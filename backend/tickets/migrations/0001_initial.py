import uuid
from decimal import Decimal

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("tables", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Ticket",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("number", models.CharField(max_length=20, unique=True)),
                (
                    "sale_type",
                    models.CharField(
                        choices=[("DINE_IN", "Dine In"), ("TAKEAWAY", "Takeaway"), ("DELIVERY", "Delivery")],
                        default="DINE_IN",
                        max_length=10,
                    ),
                ),
                ("diners", models.PositiveIntegerField(default=1)),
                (
                    "state",
                    models.CharField(
                        choices=[("OPEN", "Open"), ("CLOSED", "Closed"), ("PAID", "Paid"), ("VOIDED", "Voided")],
                        default="OPEN",
                        max_length=10,
                    ),
                ),
                (
                    "holds_table",
                    models.BooleanField(
                        default=False,
                        help_text="True for the open ticket that holds the table's exclusivity slot.",
                    ),
                ),
                (
                    "tax_rate",
                    models.DecimalField(
                        decimal_places=4,
                        default=Decimal("0.19"),
                        help_text="Tax rate snapshotted when the ticket was opened.",
                        max_digits=5,
                    ),
                ),
                ("subtotal", models.DecimalField(decimal_places=2, default=Decimal("0"), max_digits=12)),
                ("discount", models.DecimalField(decimal_places=2, default=Decimal("0"), max_digits=12)),
                ("tax", models.DecimalField(decimal_places=2, default=Decimal("0"), max_digits=12)),
                ("tip_suggested", models.DecimalField(decimal_places=2, default=Decimal("0"), max_digits=12)),
                ("total", models.DecimalField(decimal_places=2, default=Decimal("0"), max_digits=12)),
                ("notes", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("closed_at", models.DateTimeField(blank=True, null=True)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                (
                    "merged_into",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="merged_tickets",
                        to="tickets.ticket",
                    ),
                ),
                (
                    "server",
                    models.ForeignKey(
                        help_text="Employee who owns the sale.",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="tickets",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "split_from",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="split_children",
                        to="tickets.ticket",
                    ),
                ),
                (
                    "table",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="tickets",
                        to="tables.table",
                    ),
                ),
            ],
            options={
                "verbose_name": "Ticket",
                "verbose_name_plural": "Tickets",
                "ordering": ["created_at", "number"],
                "indexes": [
                    models.Index(fields=["state"], name="ticket_state_idx"),
                    models.Index(fields=["table", "state"], name="ticket_table_state_idx"),
                    models.Index(fields=["server", "state"], name="ticket_server_state_idx"),
                    models.Index(fields=["created_at"], name="ticket_created_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("holds_table", True), ("state", "OPEN")),
                        fields=("table",),
                        name="unique_open_holder_per_table",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="TicketEvent",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "event_type",
                    models.CharField(
                        choices=[
                            ("ticket.created", "Ticket Created"),
                            ("ticket.updated", "Ticket Updated"),
                            ("item.added", "Item Added"),
                            ("item.updated", "Item Updated"),
                            ("item.removed", "Item Removed"),
                            ("ticket.state_changed", "State Changed"),
                            ("ticket.split", "Ticket Split"),
                            ("ticket.merged", "Ticket Merged"),
                        ],
                        max_length=32,
                    ),
                ),
                ("ticket_id", models.UUIDField(db_index=True)),
                ("payload", models.JSONField(default=dict)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("published_at", models.DateTimeField(blank=True, null=True)),
                ("attempts", models.PositiveIntegerField(default=0)),
                ("last_error", models.TextField(blank=True)),
            ],
            options={
                "ordering": ["created_at"],
                "indexes": [models.Index(fields=["published_at", "created_at"], name="event_pending_idx")],
            },
        ),
        migrations.CreateModel(
            name="TicketItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "product_ref",
                    models.CharField(help_text="Catalogue reference used for stock movements.", max_length=64),
                ),
                ("name", models.CharField(max_length=200)),
                ("quantity", models.PositiveIntegerField(default=1)),
                ("unit_price", models.DecimalField(decimal_places=2, max_digits=12)),
                ("discount_pct", models.DecimalField(decimal_places=2, default=Decimal("0"), max_digits=5)),
                ("modifiers", models.JSONField(blank=True, default=list)),
                ("notes", models.TextField(blank=True, help_text="Customer notes, e.g., 'no onions'")),
                ("is_complimentary", models.BooleanField(default=False)),
                ("line_subtotal", models.DecimalField(decimal_places=2, default=Decimal("0"), max_digits=12)),
                (
                    "preparation_state",
                    models.CharField(
                        choices=[
                            ("PENDING", "Pending"),
                            ("IN_PROGRESS", "In Progress"),
                            ("READY", "Ready"),
                            ("SERVED", "Served"),
                        ],
                        default="PENDING",
                        max_length=15,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "ticket",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="items", to="tickets.ticket"
                    ),
                ),
            ],
            options={
                "verbose_name": "Ticket Item",
                "verbose_name_plural": "Ticket Items",
                "ordering": ["id"],
                "indexes": [
                    models.Index(fields=["ticket", "preparation_state"], name="item_ticket_prep_idx"),
                    models.Index(fields=["product_ref"], name="item_product_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="TicketAuditEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "action",
                    models.CharField(
                        choices=[
                            ("STATE_CHANGE", "State Change"),
                            ("DISCOUNT", "Discount"),
                            ("SPLIT", "Split"),
                            ("MERGE", "Merge"),
                        ],
                        max_length=20,
                    ),
                ),
                ("note", models.TextField(blank=True)),
                ("data", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "actor",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="ticket_audit_entries",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "ticket",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="audit_entries",
                        to="tickets.ticket",
                    ),
                ),
            ],
            options={
                "verbose_name": "Ticket Audit Entry",
                "verbose_name_plural": "Ticket Audit Entries",
                "ordering": ["created_at", "id"],
            },
        ),
    ]
