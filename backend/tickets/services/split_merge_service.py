"""
Structural ticket operations: split by items, split by diners, merge.

Both directions move items between tickets without copying them, recompute
every participant and then verify, inside the same transaction, that item
count, subtotal and discount were conserved. A failed check raises and rolls
the whole operation back.
"""
import logging
import math
import uuid
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from django.db import transaction
from django.utils import timezone

from tickets.conf import ticket_settings
from tickets.exceptions import BusinessError, BusinessRule, ValidationError
from tickets.models import Ticket, TicketAuditEntry, TicketEvent
from tickets.money import allocate_minor, from_minor, to_minor, validate_minor_sum
from tickets.repositories import TicketRepository
from tickets.services.lifecycle_service import TicketLifecycleService, require_open
from tickets.services.notification_service import EventNotifier, build_payload, ticket_totals

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Snapshot:
    item_count: int
    subtotal: int
    discount: int
    total: int
    tax_rates: frozenset


def take_snapshot(tickets: Iterable[Ticket], item_counts: Dict) -> Snapshot:
    currency = ticket_settings.currency
    tickets = list(tickets)
    return Snapshot(
        item_count=sum(item_counts.get(t.pk, 0) for t in tickets),
        subtotal=sum(to_minor(currency, t.subtotal) for t in tickets),
        discount=sum(to_minor(currency, t.discount) for t in tickets),
        total=sum(to_minor(currency, t.total) for t in tickets),
        tax_rates=frozenset(t.tax_rate for t in tickets),
    )


class SplitMergeService:
    def __init__(self, repository=None, notifier=None, lifecycle=None):
        self.repository = repository or TicketRepository()
        self.notifier = notifier or EventNotifier()
        self.lifecycle = lifecycle or TicketLifecycleService(
            repository=self.repository, notifier=self.notifier
        )

    # --- Helpers ---

    def _count_items(self, tickets: Iterable[Ticket]) -> Dict:
        return {t.pk: len(self.repository.items_of(t)) for t in tickets}

    def _check_conservation(self, before: Snapshot, after: Snapshot, tickets: Sequence[Ticket], context: str) -> None:
        try:
            validate_minor_sum([after.item_count], before.item_count, f"{context} item count")
            validate_minor_sum([after.subtotal], before.subtotal, f"{context} subtotal")
            validate_minor_sum([after.discount], before.discount, f"{context} discount")
            if len(before.tax_rates | after.tax_rates) == 1:
                validate_minor_sum(
                    [after.total], before.total, f"{context} total", tolerance=len(tickets)
                )
        except ValueError as exc:
            logger.error(f"Conservation check failed: {exc}")
            raise ValidationError(str(exc), code="CONSERVATION_VIOLATION")

    def _spawn_child(self, original: Ticket, meta: Optional[Dict], actor) -> Ticket:
        meta = dict(meta or {})
        unknown = sorted(set(meta) - {"server", "diners", "notes"})
        if unknown:
            raise ValidationError(f"Unsupported ticket fields: {', '.join(unknown)}")

        server = self.lifecycle.resolve_server(meta.get("server"), original.server)
        diners = meta.get("diners", 1)
        if isinstance(diners, bool) or not isinstance(diners, int) or diners < 1:
            raise ValidationError("Diners must be a positive whole number", field="diners")

        return self.repository.create_ticket(
            table_id=original.table_id,
            server=server,
            sale_type=original.sale_type,
            diners=diners,
            tax_rate=original.tax_rate,
            holds_table=False,
            split_from=original,
            notes=meta.get("notes") or "",
        )

    def _redistribute(self, tickets: List[Ticket], discount_minor: int) -> None:
        """
        Recompute every ticket and share the original discount by subtotal weight.

        Discounts are cleared first so the subtotals used as weights are not
        capped by a stale discount.
        """
        currency = ticket_settings.currency
        for ticket in tickets:
            ticket.discount = from_minor(currency, 0)
            self.lifecycle.recalculate(ticket)

        weights = [to_minor(currency, t.subtotal) for t in tickets]
        shares = allocate_minor(weights, discount_minor)
        for ticket, share in zip(tickets, shares):
            ticket.discount = from_minor(currency, share)
            self.lifecycle.recalculate(ticket)

    def _split(self, original: Ticket, groups: List[List[int]], metas: List[Optional[Dict]], actor) -> List[Ticket]:
        currency = ticket_settings.currency
        before = take_snapshot([original], self._count_items([original]))
        discount_minor = to_minor(currency, original.discount)

        children = []
        for item_ids, meta in zip(groups, metas):
            child = self._spawn_child(original, meta, actor)
            self.repository.move_items(item_ids, child)
            children.append(child)

        participants = [original] + children
        self._redistribute(participants, discount_minor)

        after = take_snapshot(participants, self._count_items(participants))
        self._check_conservation(before, after, participants, "split")

        moved = [item_id for group in groups for item_id in group]
        child_numbers = ", ".join(c.number for c in children)
        self.repository.audit(
            original,
            TicketAuditEntry.Action.SPLIT,
            actor=actor,
            note=f"Split into {child_numbers}",
            data={"children": [str(c.pk) for c in children], "item_ids": moved},
        )
        for child, group in zip(children, groups):
            self.repository.audit(
                child,
                TicketAuditEntry.Action.SPLIT,
                actor=actor,
                note=f"Split from {original.number}",
                data={"parent": str(original.pk), "item_ids": group},
            )

        self.notifier.publish(
            TicketEvent.EventType.TICKET_SPLIT,
            {
                "ticket_id": str(original.pk),
                "ticket_ids": [str(t.pk) for t in participants],
                "item_ids": moved,
                "table_id": original.table_id,
                "totals": {str(t.pk): ticket_totals(t) for t in participants},
            },
        )
        return children

    # --- Operations ---

    @transaction.atomic
    def split_by_items(
        self, ticket_id, item_ids: Sequence, new_ticket_meta: Optional[Dict] = None, actor=None
    ) -> Tuple[Ticket, Ticket]:
        """
        Move the given items to a new ticket on the same table.

        The new ticket does not hold the table; occupancy is unchanged.

        Raises:
            ValidationError: empty selection, unknown item ids, or every item
                selected (code CANNOT_MOVE_ALL_ITEMS).
            BusinessError(TICKET_NOT_OPEN): ticket is not OPEN.
        """
        if not item_ids:
            raise ValidationError("Select at least one item to split", field="item_ids")
        try:
            item_ids = [int(item_id) for item_id in item_ids]
        except (TypeError, ValueError):
            raise ValidationError("Item ids must be integers", field="item_ids")
        if len(set(item_ids)) != len(item_ids):
            raise ValidationError("Item ids must not repeat", field="item_ids")

        original = self.repository.get_for_update(ticket_id)
        require_open(original)

        present = [item.id for item in self.repository.items_of(original)]
        missing = sorted(set(item_ids) - set(present))
        if missing:
            raise ValidationError(
                f"Items not on ticket {original.number}: {missing}",
                field="item_ids",
                details={"missing": missing},
            )
        if set(item_ids) == set(present):
            raise ValidationError(
                "Cannot move every item; at least one must stay on the original ticket",
                field="item_ids",
                code=BusinessRule.CANNOT_MOVE_ALL_ITEMS.value,
            )

        # Keep insertion order regardless of how the caller listed them.
        selected = set(item_ids)
        moving = [item_id for item_id in present if item_id in selected]
        (child,) = self._split(original, [moving], [new_ticket_meta], actor)

        logger.info(f"Split {len(moving)} items from {original.number} into {child.number}")
        return original, child

    @transaction.atomic
    def split_by_diners(self, ticket_id, n, actor=None) -> List[Ticket]:
        """
        Partition the items into n contiguous groups of ceil(count / n).

        The first group stays on the original; each further group becomes a
        new ticket. When the groups run out early (for example 4 items into
        3) fewer than n tickets result.
        """
        if isinstance(n, bool) or not isinstance(n, int):
            raise ValidationError("Number of diners must be a whole number", field="n")

        original = self.repository.get_for_update(ticket_id)
        require_open(original)

        items = self.repository.items_of(original)
        count = len(items)
        if n < 2 or n > count:
            raise ValidationError(
                f"Cannot split {count} items between {n} diners",
                field="n",
                details={"item_count": count},
            )

        size = math.ceil(count / n)
        groups = [[item.id for item in items[i:i + size]] for i in range(0, count, size)]
        moving = groups[1:]
        children = self._split(original, moving, [{"diners": 1}] * len(moving), actor)

        logger.info(f"Split {original.number} by {n} diners into {[len(g) for g in groups]}")
        return [original] + children

    @transaction.atomic
    def merge_tickets(self, principal_id, secondary_ids: Sequence, actor=None) -> Ticket:
        """
        Fold the secondaries into the principal.

        Secondaries are voided with merged_into set. If one of them held the
        table, the principal takes over as holder.

        Raises:
            ValidationError: empty, repeated or self-referencing ids.
            BusinessError(TICKET_NOT_OPEN): a participant is not OPEN.
            BusinessError(TABLE_MISMATCH): participants are on different tables.
        """
        if not secondary_ids:
            raise ValidationError("Select at least one ticket to merge", field="secondary_ids")
        try:
            principal_key = str(uuid.UUID(str(principal_id)))
            secondary_keys = [str(uuid.UUID(str(s))) for s in secondary_ids]
        except ValueError:
            raise ValidationError("Ticket ids must be UUIDs", field="secondary_ids")
        if len(set(secondary_keys)) != len(secondary_keys):
            raise ValidationError("Ticket ids must not repeat", field="secondary_ids")
        if principal_key in secondary_keys:
            raise ValidationError("A ticket cannot be merged into itself", field="secondary_ids")

        locked = {str(t.pk): t for t in self.repository.lock_many([principal_key] + secondary_keys)}
        principal = locked[principal_key]
        secondaries = [locked[key] for key in secondary_keys]
        participants = [principal] + secondaries

        for ticket in participants:
            require_open(ticket)
        for ticket in secondaries:
            if ticket.table_id != principal.table_id:
                raise BusinessError(
                    BusinessRule.TABLE_MISMATCH,
                    f"Ticket {ticket.number} is on a different table than {principal.number}",
                    {"ticket_id": str(ticket.pk), "table_id": ticket.table_id, "expected_table_id": principal.table_id},
                )

        before = take_snapshot(participants, self._count_items(participants))
        currency = ticket_settings.currency
        moved = []
        take_over_table = False
        now = timezone.now()

        for secondary in secondaries:
            item_ids = [item.id for item in self.repository.items_of(secondary)]
            self.repository.move_items(item_ids, principal)
            moved.extend(item_ids)

            principal.discount = principal.discount + secondary.discount
            self.lifecycle.recalculate(principal)

            take_over_table = take_over_table or secondary.holds_table
            secondary.discount = from_minor(currency, 0)
            secondary.state = Ticket.TicketState.VOIDED
            secondary.holds_table = False
            secondary.closed_at = now
            secondary.merged_into = principal
            secondary.notes = "\n".join(filter(None, [secondary.notes, f"Merged into ticket {principal.number}"]))
            self.repository.save(secondary)
            self.lifecycle.recalculate(secondary, items=[])

            self.repository.audit(
                secondary,
                TicketAuditEntry.Action.STATE_CHANGE,
                actor=actor,
                note=f"Merged into ticket {principal.number}",
                data={"from": Ticket.TicketState.OPEN.value, "to": Ticket.TicketState.VOIDED.value},
            )
            self.notifier.publish(
                TicketEvent.EventType.STATE_CHANGED,
                build_payload(secondary, previous_state=Ticket.TicketState.OPEN.value, merged_into=principal_key),
            )

            self.repository.audit(
                secondary,
                TicketAuditEntry.Action.MERGE,
                actor=actor,
                note=f"Merged into ticket {principal.number}",
                data={"principal": str(principal.pk), "item_ids": item_ids},
            )

        if take_over_table:
            principal.holds_table = True
            self.repository.save(principal, update_fields=["holds_table", "updated_at"])

        after = take_snapshot(participants, self._count_items(participants))
        self._check_conservation(before, after, participants, "merge")

        self.repository.audit(
            principal,
            TicketAuditEntry.Action.MERGE,
            actor=actor,
            note=f"Absorbed {', '.join(t.number for t in secondaries)}",
            data={"secondaries": secondary_keys, "item_ids": moved},
        )
        self.notifier.publish(
            TicketEvent.EventType.TICKET_MERGED,
            {
                "ticket_id": principal_key,
                "ticket_ids": [principal_key] + secondary_keys,
                "item_ids": moved,
                "table_id": principal.table_id,
                "totals": {str(t.pk): ticket_totals(t) for t in participants},
            },
        )

        logger.info(f"Merged {[t.number for t in secondaries]} into {principal.number}")
        return principal
