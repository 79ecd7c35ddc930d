from django.db import models
from django.utils.translation import gettext_lazy as _


class Table(models.Model):
    """
    A physical table on the restaurant floor.

    Occupancy is driven by the ticket engine: a table is OCCUPIED while at
    least one OPEN ticket references it and FREE otherwise. OUT_OF_SERVICE is
    set by staff and blocks new tickets.
    """

    class TableState(models.TextChoices):
        FREE = "FREE", _("Free")
        OCCUPIED = "OCCUPIED", _("Occupied")
        OUT_OF_SERVICE = "OUT_OF_SERVICE", _("Out of Service")

    number = models.PositiveIntegerField(unique=True)
    name = models.CharField(max_length=100, blank=True)
    seats = models.PositiveIntegerField(default=4)
    state = models.CharField(
        max_length=20, choices=TableState.choices, default=TableState.FREE
    )
    occupied_since = models.DateTimeField(
        null=True,
        blank=True,
        help_text=_("When the table last went from FREE to OCCUPIED."),
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["number"]
        verbose_name = _("Table")
        verbose_name_plural = _("Tables")
        indexes = [
            models.Index(fields=["state"], name="table_state_idx"),
        ]

    def __str__(self):
        return self.name or f"Table {self.number}"

    @property
    def is_free(self):
        return self.state == self.TableState.FREE
