"""Decline cascades cancellation and declines the group atomically."""

import pytest

from notifications.models import NotificationKind
from signing.exceptions import StateConflictError, ValidationError
from signing.models import GroupStatus
from signing.services import TransitionEngine

from ..factories import build_group

pytestmark = pytest.mark.django_db(transaction=True)


def decline(handle, index, reason='terms unacceptable'):
    return TransitionEngine.submit_action(handle.tokens[index], 'decline', {'reason': reason})


class TestDecline:

    def test_decline_cancels_siblings_and_declines_group(self, notifier):
        handle = build_group(count=2)

        assert decline(handle, 0) == 'declined'

        declined, cancelled = handle.entry(0), handle.entry(1)
        assert declined.decline_reason == 'terms unacceptable'
        assert declined.declined_at is not None
        assert cancelled.status == 'cancelled'
        assert 'Recipient 0' in cancelled.cancellation_reason
        assert 'terms unacceptable' in cancelled.cancellation_reason
        assert handle.group.status == GroupStatus.DECLINED

        assert notifier.of_kind(NotificationKind.RECIPIENT_DECLINED, 'owner@example.com')
        assert notifier.of_kind(NotificationKind.REQUEST_CANCELLED, 'recipient1@example.com')

    def test_signed_siblings_are_kept(self, notifier):
        handle = build_group(count=3)
        TransitionEngine.submit_action(handle.tokens[1], 'sign', {'fields': handle.values_for(1)})

        decline(handle, 0)

        assert handle.statuses() == ['declined', 'signed', 'cancelled']
        assert notifier.of_kind(NotificationKind.RECIPIENT_DECLINED, 'recipient1@example.com')
        assert not notifier.of_kind(NotificationKind.REQUEST_CANCELLED, 'recipient1@example.com')

    def test_waiting_recipient_may_decline(self):
        handle = build_group(count=3, signing_order='sequential')
        assert decline(handle, 2) == 'declined'
        assert handle.statuses() == ['cancelled', 'cancelled', 'declined']

    def test_short_reason_is_rejected(self):
        handle = build_group(count=2)
        with pytest.raises(ValidationError, match='at least 10'):
            decline(handle, 0, reason='no')
        assert handle.statuses() == ['pending', 'pending']

    def test_declined_group_rejects_further_actions(self):
        handle = build_group(count=2)
        decline(handle, 0)
        with pytest.raises(StateConflictError):
            TransitionEngine.submit_action(handle.tokens[1], 'sign', {'fields': handle.values_for(1)})
        with pytest.raises(StateConflictError):
            decline(handle, 1)

    def test_decline_min_length_is_configurable(self, settings):
        settings.SIGNING = {**settings.SIGNING, 'DECLINE_REASON_MIN_LENGTH': 3}
        handle = build_group(count=2)
        assert decline(handle, 0, reason='nah') == 'declined'
