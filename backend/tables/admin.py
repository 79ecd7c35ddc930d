from django.contrib import admin

from tables.models import Table


@admin.register(Table)
class TableAdmin(admin.ModelAdmin):
    list_display = ("number", "name", "seats", "state", "occupied_since")
    list_filter = ("state",)
    search_fields = ("name",)
    ordering = ("number",)
