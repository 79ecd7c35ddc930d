from django.contrib import admin

from .models import StockMovement


@admin.register(StockMovement)
class StockMovementAdmin(admin.ModelAdmin):
    list_display = ("product_ref", "quantity_delta", "reason", "ticket_id", "created_at")
    list_filter = ("reason",)
    search_fields = ("product_ref",)
    readonly_fields = ("created_at",)
