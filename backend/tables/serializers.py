from rest_framework import serializers

from core_backend.base import BaseModelSerializer
from tables.models import Table


class TableSerializer(BaseModelSerializer):
    open_tickets = serializers.SerializerMethodField()

    class Meta(BaseModelSerializer.Meta):
        model = Table
        fields = [
            "id",
            "number",
            "name",
            "seats",
            "state",
            "occupied_since",
            "open_tickets",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["state", "occupied_since", "created_at", "updated_at"]

    def get_open_tickets(self, obj):
        # Annotated in TableViewSet.get_queryset; falls back to a count query.
        value = getattr(obj, "open_ticket_count", None)
        if value is None:
            value = obj.tickets.filter(state="OPEN").count()
        return value


class TableStateSerializer(serializers.Serializer):
    state = serializers.ChoiceField(choices=Table.TableState.choices)
