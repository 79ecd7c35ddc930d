import logging

from django.db import DatabaseError, transaction
from django.utils import timezone

from tables.models import Table
from tickets.conf import ticket_settings
from tickets.exceptions import BusinessError, BusinessRule, ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class TableRegistry:
    """
    Gateway to physical table occupancy.

    The ticket engine is the only writer of FREE/OCCUPIED. Staff may take a
    free table out of service and bring it back through set_availability.
    """

    def get(self, table_ref) -> Table:
        try:
            return Table.objects.get(pk=table_ref)
        except (Table.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Table", table_ref)

    def get_state(self, table_ref) -> str:
        return self.get(table_ref).state

    def lock(self, table_ref) -> Table:
        """Row-lock the table for the rest of the current transaction."""
        try:
            return Table.objects.select_for_update(nowait=ticket_settings.lock_nowait).get(pk=table_ref)
        except (Table.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Table", table_ref)
        except DatabaseError as exc:
            logger.info(f"Lock contention on table {table_ref}: {exc}")
            raise ConflictError(f"Table '{table_ref}' is being modified by another operation")

    def set_state(self, table_ref, state) -> Table:
        if state not in Table.TableState.values:
            raise ValidationError(f"Unknown table state '{state}'", field="state")

        table = table_ref if isinstance(table_ref, Table) else self.get(table_ref)
        if table.state == state:
            return table

        previous = table.state
        table.state = state
        if state == Table.TableState.OCCUPIED:
            table.occupied_since = timezone.now()
        elif state == Table.TableState.FREE:
            table.occupied_since = None
        table.save(update_fields=["state", "occupied_since", "updated_at"])

        logger.info(f"Table {table.number} {previous} -> {state}")
        return table

    @transaction.atomic
    def set_availability(self, table_ref, state) -> Table:
        """
        Staff-driven toggle between FREE and OUT_OF_SERVICE.

        Occupancy itself cannot be set by hand; it follows the open tickets.
        """
        allowed = {Table.TableState.FREE, Table.TableState.OUT_OF_SERVICE}
        if state not in allowed:
            raise ValidationError(
                "Only FREE and OUT_OF_SERVICE can be set manually", field="state"
            )

        table = self.lock(table_ref)
        if table.state == Table.TableState.OCCUPIED:
            raise BusinessError(
                BusinessRule.TABLE_UNAVAILABLE,
                f"Table {table.number} has open tickets",
                {"table_id": table.pk},
            )
        return self.set_state(table, state)
