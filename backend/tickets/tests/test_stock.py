"""
Stock side effects of item mutations.

Movements are queued on commit and recorded by the inventory Celery task,
which conftest runs eagerly.
"""
import logging
from unittest.mock import patch

import pytest

from inventory.models import StockMovement
from inventory.services import InventoryService
from tickets.services import StockLine, StockService


@pytest.mark.django_db
class TestStockMovements:
    """Item changes deduct and restore stock after commit"""

    def test_add_deducts_after_commit(self, lifecycle, open_ticket, django_capture_on_commit_callbacks):
        """
        Business Impact: stock only moves for sales that actually committed
        """
        with django_capture_on_commit_callbacks(execute=True):
            item = lifecycle.add_item(open_ticket.pk, {"product_ref": "BEER", "unit_price": 2500, "quantity": 3})
            assert not StockMovement.objects.exists()

        movement = StockMovement.objects.get()
        assert movement.product_ref == "BEER"
        assert movement.quantity_delta == -3
        assert movement.reason == StockMovement.Reason.SALE
        assert movement.ticket_id == open_ticket.pk
        assert movement.ticket_item_id == item.pk

    def test_quantity_changes_adjust_by_delta(self, lifecycle, open_ticket, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True):
            item = lifecycle.add_item(open_ticket.pk, {"product_ref": "BEER", "unit_price": 2500, "quantity": 3})
        with django_capture_on_commit_callbacks(execute=True):
            lifecycle.update_item(open_ticket.pk, item.pk, {"quantity": 5})
        with django_capture_on_commit_callbacks(execute=True):
            lifecycle.update_item(open_ticket.pk, item.pk, {"quantity": 1})

        deltas = list(StockMovement.objects.order_by("id").values_list("quantity_delta", "reason"))
        assert deltas == [(-3, "SALE"), (-2, "SALE"), (4, "RETURN")]
        assert InventoryService.stock_level("BEER") == -1

    def test_price_change_does_not_move_stock(self, lifecycle, open_ticket, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True):
            item = lifecycle.add_item(open_ticket.pk, {"product_ref": "BEER", "unit_price": 2500})
        with django_capture_on_commit_callbacks(execute=True):
            lifecycle.update_item(open_ticket.pk, item.pk, {"unit_price": 2000})

        assert StockMovement.objects.count() == 1

    def test_remove_restores(self, lifecycle, open_ticket, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True):
            item = lifecycle.add_item(open_ticket.pk, {"product_ref": "WINE", "unit_price": 5000, "quantity": 2})
        with django_capture_on_commit_callbacks(execute=True):
            lifecycle.remove_item(open_ticket.pk, item.pk)

        restored = StockMovement.objects.get(reason=StockMovement.Reason.RETURN)
        assert restored.quantity_delta == 2
        assert restored.ticket_item_id == item.pk
        assert InventoryService.stock_level("WINE") == 0

    def test_split_and_merge_do_not_move_stock(
        self, split_merge, ticket_with_items, django_capture_on_commit_callbacks
    ):
        ticket, item_a, item_b = ticket_with_items
        with django_capture_on_commit_callbacks(execute=True):
            original, child = split_merge.split_by_items(ticket.pk, [item_b.pk])
            split_merge.merge_tickets(original.pk, [child.pk])

        assert not StockMovement.objects.exists()

    def test_enqueue_failure_is_logged_not_raised(self, lifecycle, open_ticket, caplog, django_capture_on_commit_callbacks):
        """
        Business Impact: a broker outage must never undo or block a sale
        """
        with patch("inventory.tasks.record_stock_movement.delay", side_effect=ConnectionError("broker down")):
            with caplog.at_level(logging.WARNING, logger="tickets.services.stock_service"):
                with django_capture_on_commit_callbacks(execute=True):
                    item = lifecycle.add_item(open_ticket.pk, {"product_ref": "BEER", "unit_price": 2500})

        assert item.pk is not None
        assert not StockMovement.objects.exists()
        assert "Failed to queue stock movement for BEER" in caplog.text


class TestStockService:
    def test_zero_quantity_is_ignored(self):
        line = StockLine(product_ref="A", ticket_id="t", item_id=1)
        with patch("inventory.tasks.record_stock_movement.delay") as delay:
            StockService().deduct(line, 0)
        delay.assert_not_called()

    def test_signs(self):
        line = StockLine(product_ref="A", ticket_id="t", item_id=1)
        with patch("inventory.tasks.record_stock_movement.delay") as delay:
            StockService().deduct(line, 2)
            StockService().restore(line, 2)

        assert delay.call_args_list[0].args == ("A", -2, "SALE")
        assert delay.call_args_list[1].args == ("A", 2, "RETURN")
        assert delay.call_args_list[1].kwargs == {"ticket_id": "t", "ticket_item_id": 1}
