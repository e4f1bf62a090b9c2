"""
Central transition table for recipient ledger entries.

Every status change goes through ``apply_transition``, which looks the
target status up in TRANSITIONS and persists it with a single conditional
update keyed on the entry's current status and revision. Two concurrent
actions on the same entry cannot both succeed: the loser updates zero rows
and gets a StateConflictError.
"""

import logging

from django.db.models import F
from django.utils import timezone

from ..exceptions import StateConflictError
from ..models import Action, EntryStatus, RecipientLedgerEntry

logger = logging.getLogger(__name__)

S = EntryStatus

TRANSITIONS = {
    Action.VIEW: {
        S.PENDING: S.VIEWED,
        S.VIEWED: S.VIEWED,
        S.DELEGATED: S.VIEWED,
    },
    Action.SIGN: {
        S.PENDING: S.SIGNED,
        S.VIEWED: S.SIGNED,
    },
    Action.DECLINE: {
        S.PENDING: S.DECLINED,
        S.VIEWED: S.DECLINED,
        S.AWAITING_TURN: S.DECLINED,
        S.DELEGATED: S.DECLINED,
    },
    Action.DELEGATE: {
        S.PENDING: S.DELEGATED,
        S.VIEWED: S.DELEGATED,
        S.DELEGATED: S.DELEGATED,
    },
    Action.REASSIGN: {
        S.PENDING: S.PENDING,
        S.VIEWED: S.PENDING,
        S.DELEGATED: S.PENDING,
        S.AWAITING_TURN: S.AWAITING_TURN,
    },
    # Annotation only: stamps expired_at, status unchanged.
    Action.EXPIRE: {
        S.PENDING: S.PENDING,
        S.VIEWED: S.VIEWED,
        S.AWAITING_TURN: S.AWAITING_TURN,
        S.DELEGATED: S.DELEGATED,
    },
    Action.CANCEL: {
        S.PENDING: S.CANCELLED,
        S.VIEWED: S.CANCELLED,
        S.AWAITING_TURN: S.CANCELLED,
        S.DELEGATED: S.CANCELLED,
    },
    Action.ACTIVATE: {
        S.AWAITING_TURN: S.PENDING,
    },
}

_CONFLICT_MESSAGES = {
    (Action.SIGN, S.AWAITING_TURN): "It is not this recipient's turn to sign yet",
    (Action.SIGN, S.DELEGATED): "This request was delegated; only the delegate can sign",
    (Action.SIGN, S.SIGNED): "This recipient has already signed",
    (Action.DELEGATE, S.AWAITING_TURN): "It is not this recipient's turn yet",
}


def next_status(action, current):
    """
    Target status for ``action`` applied to an entry in ``current``.

    Raises:
        StateConflictError: if the transition is not allowed
    """
    try:
        return TRANSITIONS[action][current]
    except KeyError:
        message = _CONFLICT_MESSAGES.get(
            (action, current),
            f"Cannot {Action(action).label.lower()} a request that is {EntryStatus(current).label.lower()}"
        )
        raise StateConflictError(message)


def allowed_actions(current):
    return [action for action, table in TRANSITIONS.items() if current in table]


def is_terminal(status):
    return not allowed_actions(status)


def compare_and_swap(entry, expected_status, bump_revision=True, **changes):
    """
    Persist ``changes`` only if the row still has ``expected_status`` and the
    revision ``entry`` was loaded with. Refreshes ``entry`` on success.
    """
    if bump_revision:
        changes['revision'] = F('revision') + 1
    changes['updated_at'] = timezone.now()

    updated = RecipientLedgerEntry.objects.filter(
        pk=entry.pk,
        status=expected_status,
        revision=entry.revision,
    ).update(**changes)

    if updated == 0:
        logger.warning(
            f"Concurrent update rejected for entry {entry.pk} "
            f"(expected {expected_status}@r{entry.revision})"
        )
        raise StateConflictError("This request was changed by someone else; reload and try again")

    entry.refresh_from_db()
    return entry


def apply_transition(entry, action, **changes):
    """Validate ``action`` against the table and apply it atomically."""
    current = entry.status
    target = next_status(action, current)
    compare_and_swap(entry, current, status=target, **changes)
    logger.info(f"Entry {entry.pk} (group {entry.group_id}) {action}: {current} -> {target}")
    return entry
