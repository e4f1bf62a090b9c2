"""
Signing-order policy.

The functions at the top are pure: they take a group's entries (any
objects with ``recipient_index`` and ``status``) and answer who may act.
``OrderingPolicy.activate_next`` is the single place a sequential group
hands the turn to the next signer.
"""

import logging

from notifications.models import NotificationKind

from ..models import (
    ACTIVE_STATUSES, Action, ActionSource, EntryStatus, SigningOrder,
)
from .audit import record_event
from .links import LinkService
from .notify import notify
from .state_machine import apply_transition

logger = logging.getLogger(__name__)


def initial_statuses(signing_order, count):
    if signing_order == SigningOrder.SEQUENTIAL:
        return [EntryStatus.PENDING] + [EntryStatus.AWAITING_TURN] * (count - 1)
    return [EntryStatus.PENDING] * count


def _ordered(entries):
    return sorted(entries, key=lambda e: e.recipient_index)


def lowest_unsigned_index(entries):
    for entry in _ordered(entries):
        if entry.status != EntryStatus.SIGNED:
            return entry.recipient_index
    return None


def may_act(entry, entries, signing_order):
    """Whether ``entry`` is currently eligible to sign."""
    if entry.status not in (EntryStatus.PENDING, EntryStatus.VIEWED):
        return False
    if signing_order != SigningOrder.SEQUENTIAL:
        return True
    return entry.recipient_index == lowest_unsigned_index(entries)


def current_turn(entries, signing_order):
    """Entries that may act right now (at most one in sequential mode)."""
    return [e for e in _ordered(entries) if e.status in ACTIVE_STATUSES and (
        signing_order != SigningOrder.SEQUENTIAL
        or e.recipient_index == lowest_unsigned_index(entries)
    )]


def sequential_invariant_holds(entries):
    """
    From the lowest unsigned index upward at most one entry is active and
    every later entry is still awaiting its turn (or was cancelled/declined
    when the group closed).
    """
    first = lowest_unsigned_index(entries)
    if first is None:
        return True
    tail = [e for e in _ordered(entries) if e.recipient_index >= first]
    if len([e for e in tail if e.status in ACTIVE_STATUSES]) > 1:
        return False
    resolved = (EntryStatus.AWAITING_TURN, EntryStatus.CANCELLED, EntryStatus.DECLINED)
    return all(e.status in resolved for e in tail[1:])


class OrderingPolicy:
    """Side-effecting half of the ordering engine."""

    @staticmethod
    def activate_next(group, signed_entry):
        """
        Hand the turn to ``signed_entry.recipient_index + 1`` if it is waiting.

        Runs inside the caller's transaction; the compare-and-swap on the next
        entry's status guarantees a single activation and a single notification.
        """
        if group.signing_order != SigningOrder.SEQUENTIAL:
            return None

        nxt = group.entries.filter(
            recipient_index=signed_entry.recipient_index + 1,
            status=EntryStatus.AWAITING_TURN,
        ).first()
        if nxt is None:
            return None

        apply_transition(nxt, Action.ACTIVATE)
        record_event(
            group, Action.ACTIVATE, entry=nxt,
            from_status=EntryStatus.AWAITING_TURN, to_status=nxt.status,
            source=ActionSource.SYSTEM,
            previous_index=signed_entry.recipient_index,
        )
        logger.info(f"Group {group.pk}: turn passed to recipient {nxt.recipient_index}")

        link = LinkService.current_signer_link(nxt)
        notify(
            NotificationKind.TURN_ACTIVATED,
            nxt.acting_email,
            recipient_name=nxt.acting_name,
            previous_signer=signed_entry.acting_name,
            group_title=group.title,
            link_url=link.url if link else '',
        )
        return nxt
