from django.contrib import admin

from tickets.models import Ticket, TicketAuditEntry, TicketEvent, TicketItem


class TicketItemInline(admin.TabularInline):
    model = TicketItem
    extra = 0
    readonly_fields = ("line_subtotal", "preparation_state")


class TicketAuditEntryInline(admin.TabularInline):
    model = TicketAuditEntry
    extra = 0
    can_delete = False
    readonly_fields = ("action", "actor", "note", "data", "created_at")


@admin.register(Ticket)
class TicketAdmin(admin.ModelAdmin):
    list_display = ("number", "table", "server", "sale_type", "state", "holds_table", "total", "created_at")
    list_filter = ("state", "sale_type")
    search_fields = ("number",)
    readonly_fields = (
        "number",
        "holds_table",
        "subtotal",
        "discount",
        "tax",
        "tip_suggested",
        "total",
        "split_from",
        "merged_into",
        "closed_at",
        "paid_at",
    )
    inlines = [TicketItemInline, TicketAuditEntryInline]


@admin.register(TicketEvent)
class TicketEventAdmin(admin.ModelAdmin):
    list_display = ("event_type", "ticket_id", "created_at", "published_at", "attempts")
    list_filter = ("event_type",)
    readonly_fields = ("event_type", "ticket_id", "payload", "created_at", "published_at", "attempts", "last_error")
