import django_filters

from tickets.models import Ticket


class TicketFilter(django_filters.FilterSet):
    """Ticket list filters; created_at bounds are inclusive."""

    created_at__gte = django_filters.DateTimeFilter(field_name="created_at", lookup_expr="gte")
    created_at__lte = django_filters.DateTimeFilter(field_name="created_at", lookup_expr="lte")

    class Meta:
        model = Ticket
        fields = ["state", "table", "server", "sale_type"]
