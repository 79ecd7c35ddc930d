from django.db import models
from django.utils.translation import gettext_lazy as _


class StockMovement(models.Model):
    """
    One signed change to a product's stock, caused by a ticket line.

    Negative quantity_delta is a deduction (SALE), positive a restoration
    (RETURN). Stock on hand is the sum of movements per product_ref.
    """

    class Reason(models.TextChoices):
        SALE = "SALE", _("Sale")
        RETURN = "RETURN", _("Return")
        ADJUSTMENT = "ADJUSTMENT", _("Manual Adjustment")

    product_ref = models.CharField(max_length=64, db_index=True)
    quantity_delta = models.IntegerField()
    reason = models.CharField(max_length=20, choices=Reason.choices)
    ticket_id = models.UUIDField(null=True, blank=True, db_index=True)
    ticket_item_id = models.BigIntegerField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        verbose_name = _("Stock Movement")
        verbose_name_plural = _("Stock Movements")
        indexes = [
            models.Index(fields=["product_ref", "created_at"], name="stock_product_created_idx"),
        ]

    def __str__(self):
        return f"{self.quantity_delta:+d} {self.product_ref} ({self.reason})"
