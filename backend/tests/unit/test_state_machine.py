"""Transition table checks (no database)."""

import pytest

from signing.exceptions import StateConflictError
from signing.models import Action, EntryStatus
from signing.services.state_machine import allowed_actions, is_terminal, next_status

S = EntryStatus


class TestNextStatus:

    @pytest.mark.parametrize('current, expected', [
        (S.PENDING, S.VIEWED),
        (S.VIEWED, S.VIEWED),
        (S.DELEGATED, S.VIEWED),
    ])
    def test_view(self, current, expected):
        assert next_status(Action.VIEW, current) == expected

    @pytest.mark.parametrize('current', [S.PENDING, S.VIEWED])
    def test_sign_from_actionable_statuses(self, current):
        assert next_status(Action.SIGN, current) == S.SIGNED

    def test_sign_blocked_while_awaiting_turn(self):
        with pytest.raises(StateConflictError, match="not this recipient's turn"):
            next_status(Action.SIGN, S.AWAITING_TURN)

    def test_sign_blocked_while_delegated(self):
        with pytest.raises(StateConflictError, match='delegated'):
            next_status(Action.SIGN, S.DELEGATED)

    @pytest.mark.parametrize('current', [S.PENDING, S.VIEWED, S.AWAITING_TURN, S.DELEGATED])
    def test_decline_from_any_open_status(self, current):
        assert next_status(Action.DECLINE, current) == S.DECLINED

    def test_reassign_keeps_waiting_entries_waiting(self):
        assert next_status(Action.REASSIGN, S.AWAITING_TURN) == S.AWAITING_TURN
        assert next_status(Action.REASSIGN, S.VIEWED) == S.PENDING
        assert next_status(Action.REASSIGN, S.DELEGATED) == S.PENDING

    @pytest.mark.parametrize('current', [S.PENDING, S.VIEWED, S.AWAITING_TURN, S.DELEGATED])
    def test_expire_does_not_change_status(self, current):
        assert next_status(Action.EXPIRE, current) == current

    def test_activate_only_from_awaiting_turn(self):
        assert next_status(Action.ACTIVATE, S.AWAITING_TURN) == S.PENDING
        with pytest.raises(StateConflictError):
            next_status(Action.ACTIVATE, S.PENDING)


class TestTerminalStatuses:

    @pytest.mark.parametrize('status', [S.SIGNED, S.DECLINED, S.CANCELLED])
    def test_terminal(self, status):
        assert is_terminal(status)
        for action in (Action.VIEW, Action.SIGN, Action.DECLINE, Action.DELEGATE):
            with pytest.raises(StateConflictError):
                next_status(action, status)

    def test_open_statuses_allow_decline(self):
        for status in (S.PENDING, S.VIEWED, S.AWAITING_TURN, S.DELEGATED):
            assert Action.DECLINE in allowed_actions(status)
