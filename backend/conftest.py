"""
Root conftest.py for all backend tests.

This file makes fixtures available to all test files across all apps.
"""
import pytest
from decimal import Decimal

from core_backend.celery import app as celery_app

# Run Celery tasks in-process so stock movements can be asserted directly.
celery_app.conf.CELERY_TASK_ALWAYS_EAGER = True
celery_app.conf.CELERY_TASK_EAGER_PROPAGATES = False


# ============================================================================
# AUTO-USE FIXTURES (Run automatically for every test)
# ============================================================================

@pytest.fixture(autouse=True)
def ticket_engine_settings(settings):
    """
    Pin the engine to CLP with 19% tax and 10% suggested tip.

    The example figures in the tests (2500 -> 475 tax -> 2975 total) depend on
    these values regardless of the local .env.
    """
    settings.TICKETS = {
        "CURRENCY": "CLP",
        "TAX_RATE": "0.19",
        "TIP_RATE": "0.10",
        "LOCK_NOWAIT": True,
        "EVENT_GROUP": "ticket_events_test",
        "OUTBOX_MAX_ATTEMPTS": 3,
    }
    settings.CHANNEL_LAYERS = {"default": {"BACKEND": "channels.layers.InMemoryChannelLayer"}}
    return settings.TICKETS


# ============================================================================
# USER & API CLIENT FIXTURES
# ============================================================================

@pytest.fixture
def server_user(django_user_model):
    """Waiter who opens and owns tickets."""
    return django_user_model.objects.create_user(username="waiter", password="secret-pass-123")


@pytest.fixture
def other_server(django_user_model):
    return django_user_model.objects.create_user(username="waiter2", password="secret-pass-123")


@pytest.fixture
def api_client():
    """
    Provide DRF API client for API tests.

    Usage:
        def test_my_api(api_client):
            response = api_client.get('/api/tickets/')
            assert response.status_code == 401
    """
    from rest_framework.test import APIClient
    return APIClient()


@pytest.fixture
def authenticated_client(api_client, server_user):
    """API client carrying a SimpleJWT access token for server_user."""
    from rest_framework_simplejwt.tokens import RefreshToken

    refresh = RefreshToken.for_user(server_user)
    api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {refresh.access_token}")
    return api_client


# ============================================================================
# FLOOR FIXTURES
# ============================================================================

@pytest.fixture
def table(db):
    from tables.models import Table
    return Table.objects.create(number=1, name="Window 1", seats=4)


@pytest.fixture
def second_table(db):
    from tables.models import Table
    return Table.objects.create(number=2, name="Patio 2", seats=2)


# ============================================================================
# SERVICE FIXTURES
# ============================================================================

@pytest.fixture
def lifecycle():
    from tickets.services import TicketLifecycleService
    return TicketLifecycleService()


@pytest.fixture
def split_merge(lifecycle):
    from tickets.services import SplitMergeService
    return SplitMergeService(
        repository=lifecycle.repository, notifier=lifecycle.notifier, lifecycle=lifecycle
    )


@pytest.fixture
def kitchen(lifecycle):
    from tickets.services import KitchenService
    return KitchenService(repository=lifecycle.repository, notifier=lifecycle.notifier)


# ============================================================================
# TICKET FIXTURES
# ============================================================================

@pytest.fixture
def open_ticket(lifecycle, table, server_user):
    """Empty OPEN dine-in ticket holding table 1."""
    return lifecycle.create(table_ref=table.pk, server_ref=server_user, actor=server_user)


@pytest.fixture
def ticket_with_items(lifecycle, open_ticket, server_user):
    """
    Table 1 ticket with A (2 x 1000) and B (1 x 500).

    Subtotal 2500, tax 475, total 2975 in CLP.
    """
    item_a = lifecycle.add_item(
        open_ticket.pk,
        {"product_ref": "A", "name": "Lomo a lo pobre", "quantity": 2, "unit_price": Decimal("1000")},
        actor=server_user,
    )
    item_b = lifecycle.add_item(
        open_ticket.pk,
        {"product_ref": "B", "name": "Pisco sour", "quantity": 1, "unit_price": Decimal("500")},
        actor=server_user,
    )
    ticket = lifecycle.get(open_ticket.pk)
    return ticket, item_a, item_b


@pytest.fixture
def add_items(lifecycle, server_user):
    """Factory: add n single-unit items priced 100, 200, ... to a ticket."""

    def _add(ticket, n, start=1):
        items = []
        for i in range(start, start + n):
            items.append(
                lifecycle.add_item(
                    ticket.pk,
                    {"product_ref": f"P{i}", "quantity": 1, "unit_price": Decimal(100 * i)},
                    actor=server_user,
                )
            )
        return items

    return _add
