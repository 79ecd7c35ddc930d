from rest_framework import serializers

from core_backend.base import BaseModelSerializer, TimestampedSerializer
from tickets.models import Ticket, TicketAuditEntry, TicketItem


class TicketItemSerializer(BaseModelSerializer):
    class Meta(BaseModelSerializer.Meta):
        model = TicketItem
        fields = [
            "id",
            "ticket",
            "product_ref",
            "name",
            "quantity",
            "unit_price",
            "discount_pct",
            "modifiers",
            "notes",
            "is_complimentary",
            "line_subtotal",
            "preparation_state",
        ]
        read_only_fields = fields


class TicketAuditEntrySerializer(BaseModelSerializer):
    actor = serializers.StringRelatedField()

    class Meta(BaseModelSerializer.Meta):
        model = TicketAuditEntry
        fields = ["id", "action", "actor", "note", "data", "created_at"]
        read_only_fields = fields


class TicketSerializer(TimestampedSerializer):
    items = TicketItemSerializer(many=True, read_only=True)
    server_name = serializers.CharField(source="server.get_username", read_only=True)
    table_number = serializers.IntegerField(source="table.number", read_only=True, default=None)

    class Meta(TimestampedSerializer.Meta):
        model = Ticket
        fields = [
            "id",
            "number",
            "table",
            "table_number",
            "server",
            "server_name",
            "sale_type",
            "diners",
            "state",
            "holds_table",
            "tax_rate",
            "subtotal",
            "discount",
            "tax",
            "tip_suggested",
            "total",
            "split_from",
            "merged_into",
            "notes",
            "items",
            "created_at",
            "updated_at",
            "closed_at",
            "paid_at",
        ]
        read_only_fields = fields
        select_related_fields = ["table", "server"]
        prefetch_related_fields = ["items"]


class TicketCreateSerializer(serializers.Serializer):
    table = serializers.IntegerField(required=False, allow_null=True)
    server = serializers.IntegerField(required=False, allow_null=True)
    sale_type = serializers.ChoiceField(choices=Ticket.SaleType.choices, required=False)
    diners = serializers.IntegerField(min_value=1, default=1)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class AddItemSerializer(serializers.Serializer):
    product_ref = serializers.CharField(max_length=64)
    name = serializers.CharField(max_length=200, required=False, allow_blank=True)
    quantity = serializers.IntegerField(required=False)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2)
    discount_pct = serializers.DecimalField(max_digits=5, decimal_places=2, required=False)
    modifiers = serializers.ListField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True)
    is_complimentary = serializers.BooleanField(required=False)


class UpdateItemSerializer(serializers.Serializer):
    quantity = serializers.IntegerField(required=False)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    discount_pct = serializers.DecimalField(max_digits=5, decimal_places=2, required=False)
    modifiers = serializers.ListField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True)
    is_complimentary = serializers.BooleanField(required=False)


class StateChangeSerializer(serializers.Serializer):
    # Unknown states are rejected by the service with a VALIDATION_ERROR body.
    state = serializers.CharField()
    note = serializers.CharField(required=False, allow_blank=True, default="")


class DiscountSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)


class SplitItemsSerializer(serializers.Serializer):
    item_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=True)
    server = serializers.IntegerField(required=False)
    diners = serializers.IntegerField(required=False, min_value=1)
    notes = serializers.CharField(required=False, allow_blank=True)


class SplitDinersSerializer(serializers.Serializer):
    n = serializers.IntegerField()


class MergeSerializer(serializers.Serializer):
    secondary_ids = serializers.ListField(child=serializers.UUIDField(), allow_empty=True)


class PreparationSerializer(serializers.Serializer):
    preparation_state = serializers.CharField()
