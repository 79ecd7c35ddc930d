from django.urls import path, include
from rest_framework import routers
from rest_framework_nested import routers as nested_routers

from .views import TicketItemViewSet, TicketViewSet

app_name = "tickets"

router = routers.DefaultRouter()
router.register(r"tickets", TicketViewSet, basename="ticket")

tickets_router = nested_routers.NestedSimpleRouter(router, r"tickets", lookup="ticket")
tickets_router.register(r"items", TicketItemViewSet, basename="ticket-item")

urlpatterns = [
    path("", include(tickets_router.urls)),
    path("", include(router.urls)),
]
