from django.db.models import Count, Q
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.response import Response

from core_backend.base import BaseViewSet
from tables.models import Table
from tables.serializers import TableSerializer, TableStateSerializer
from tables.services import TableRegistry


class TableViewSet(BaseViewSet):
    """
    Floor tables. State is read-only here; use the state action to take a
    table out of service or bring it back.
    """

    queryset = Table.objects.annotate(
        open_ticket_count=Count("tickets", filter=Q(tickets__state="OPEN"))
    )
    serializer_class = TableSerializer
    filterset_fields = ["state"]
    ordering = ["number"]
    ordering_fields = ["number", "state"]
    http_method_names = ["get", "post", "put", "patch", "head", "options"]

    @action(detail=True, methods=["post"])
    def state(self, request, pk=None):
        serializer = TableStateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        TableRegistry().set_availability(pk, serializer.validated_data["state"])
        table = self.get_queryset().get(pk=pk)
        return Response(TableSerializer(table).data, status=status.HTTP_200_OK)
