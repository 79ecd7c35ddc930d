import logging

from rest_framework import status
from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response

from core_backend.base import BaseViewSet
from tickets.filters import TicketFilter
from tickets.models import Ticket, TicketItem
from tickets.serializers import (
    AddItemSerializer,
    DiscountSerializer,
    MergeSerializer,
    PreparationSerializer,
    SplitDinersSerializer,
    SplitItemsSerializer,
    StateChangeSerializer,
    TicketAuditEntrySerializer,
    TicketCreateSerializer,
    TicketItemSerializer,
    TicketSerializer,
    UpdateItemSerializer,
)
from tickets.services import KitchenService, SplitMergeService, TicketLifecycleService

logger = logging.getLogger(__name__)


class TicketServicesMixin:
    """Per-request service instances sharing one notifier and repository."""

    @property
    def lifecycle(self) -> TicketLifecycleService:
        if not hasattr(self, "_lifecycle"):
            self._lifecycle = TicketLifecycleService()
        return self._lifecycle

    @property
    def split_merge(self) -> SplitMergeService:
        if not hasattr(self, "_split_merge"):
            self._split_merge = SplitMergeService(
                repository=self.lifecycle.repository,
                notifier=self.lifecycle.notifier,
                lifecycle=self.lifecycle,
            )
        return self._split_merge

    @property
    def kitchen(self) -> KitchenService:
        if not hasattr(self, "_kitchen"):
            self._kitchen = KitchenService(
                repository=self.lifecycle.repository, notifier=self.lifecycle.notifier
            )
        return self._kitchen

    def ticket_response(self, ticket_id, status_code=status.HTTP_200_OK) -> Response:
        ticket = self.lifecycle.get(ticket_id)
        return Response(TicketSerializer(ticket, context=self.get_serializer_context()).data, status=status_code)


class TicketViewSet(TicketServicesMixin, BaseViewSet):
    """
    Tickets (open sales).

    Reads go through the ORM; every mutation goes through the ticket
    services so locking, totals and events stay consistent.
    """

    queryset = Ticket.objects.all()
    serializer_class = TicketSerializer
    filterset_class = TicketFilter
    ordering = ["-created_at"]
    ordering_fields = ["created_at", "number", "total"]
    http_method_names = ["get", "post", "head", "options"]

    def get_serializer_class(self):
        if self.action == "create":
            return TicketCreateSerializer
        return TicketSerializer

    def create(self, request: Request, *args, **kwargs) -> Response:
        serializer = TicketCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        ticket = self.lifecycle.create(
            table_ref=data.get("table"),
            server_ref=data.get("server"),
            sale_type=data.get("sale_type"),
            diners=data["diners"],
            notes=data.get("notes", ""),
            actor=request.user,
        )
        return self.ticket_response(ticket.pk, status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="state")
    def change_state(self, request: Request, pk=None) -> Response:
        serializer = StateChangeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        self.lifecycle.change_state(
            pk,
            serializer.validated_data["state"],
            actor=request.user,
            note=serializer.validated_data.get("note"),
        )
        return self.ticket_response(pk)

    @action(detail=True, methods=["post"])
    def discount(self, request: Request, pk=None) -> Response:
        serializer = DiscountSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        self.lifecycle.apply_discount(pk, serializer.validated_data["amount"], actor=request.user)
        return self.ticket_response(pk)

    @action(detail=True, methods=["post"], url_path="split-items")
    def split_items(self, request: Request, pk=None) -> Response:
        serializer = SplitItemsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        item_ids = data.pop("item_ids")

        original, new_ticket = self.split_merge.split_by_items(
            pk, item_ids, new_ticket_meta=data, actor=request.user
        )
        context = self.get_serializer_context()
        return Response(
            {
                "original": TicketSerializer(self.lifecycle.get(original.pk), context=context).data,
                "new_ticket": TicketSerializer(self.lifecycle.get(new_ticket.pk), context=context).data,
            },
            status=status.HTTP_201_CREATED,
        )

    @action(detail=True, methods=["post"], url_path="split-diners")
    def split_diners(self, request: Request, pk=None) -> Response:
        serializer = SplitDinersSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        tickets = self.split_merge.split_by_diners(pk, serializer.validated_data["n"], actor=request.user)
        context = self.get_serializer_context()
        return Response(
            {"tickets": [TicketSerializer(self.lifecycle.get(t.pk), context=context).data for t in tickets]},
            status=status.HTTP_201_CREATED,
        )

    @action(detail=True, methods=["post"])
    def merge(self, request: Request, pk=None) -> Response:
        serializer = MergeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        self.split_merge.merge_tickets(pk, serializer.validated_data["secondary_ids"], actor=request.user)
        return self.ticket_response(pk)

    @action(detail=True, methods=["get"], url_path="kitchen")
    def kitchen_summary(self, request: Request, pk=None) -> Response:
        ticket = self.lifecycle.get(pk)
        return Response(self.kitchen.kitchen_summary(ticket))

    @action(detail=True, methods=["get"])
    def audit(self, request: Request, pk=None) -> Response:
        ticket = self.lifecycle.get(pk)
        entries = ticket.audit_entries.select_related("actor")
        return Response(TicketAuditEntrySerializer(entries, many=True).data)


class TicketItemViewSet(TicketServicesMixin, BaseViewSet):
    """
    Items of one ticket, nested under /tickets/{ticket_pk}/items/.

    create, partial_update and destroy return the whole updated ticket.
    """

    queryset = TicketItem.objects.all()
    serializer_class = TicketItemSerializer
    ordering = ["id"]
    http_method_names = ["get", "post", "patch", "delete", "head", "options"]

    def get_serializer_class(self):
        if self.action == "create":
            return AddItemSerializer
        if self.action == "partial_update":
            return UpdateItemSerializer
        return TicketItemSerializer

    def get_queryset(self):
        return super().get_queryset().filter(ticket__pk=self.kwargs["ticket_pk"])

    def create(self, request: Request, *args, **kwargs) -> Response:
        serializer = AddItemSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ticket_pk = self.kwargs["ticket_pk"]
        self.lifecycle.add_item(ticket_pk, dict(serializer.validated_data), actor=request.user)
        return self.ticket_response(ticket_pk, status.HTTP_201_CREATED)

    def partial_update(self, request: Request, *args, **kwargs) -> Response:
        serializer = UpdateItemSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ticket_pk = self.kwargs["ticket_pk"]
        self.lifecycle.update_item(ticket_pk, self.kwargs["pk"], dict(serializer.validated_data), actor=request.user)
        return self.ticket_response(ticket_pk)

    def destroy(self, request: Request, *args, **kwargs) -> Response:
        ticket_pk = self.kwargs["ticket_pk"]
        self.lifecycle.remove_item(ticket_pk, self.kwargs["pk"], actor=request.user)
        return self.ticket_response(ticket_pk)

    @action(detail=True, methods=["post"])
    def preparation(self, request: Request, ticket_pk=None, pk=None) -> Response:
        serializer = PreparationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        # The item must belong to the ticket in the URL.
        self.lifecycle.repository.get_item(self.lifecycle.get(ticket_pk), pk)
        item = self.kitchen.advance_item(pk, serializer.validated_data["preparation_state"], actor=request.user)
        return Response(TicketItemSerializer(item).data)
