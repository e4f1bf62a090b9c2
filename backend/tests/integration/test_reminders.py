"""Reminder sweep: periodic reminders, warnings, expiry, hard cutoff."""

from datetime import timedelta

import pytest
from django.utils import timezone

from notifications.models import NotificationKind
from signing.exceptions import AccessDeniedError, StateConflictError
from signing.models import ActionSource, RecipientLedgerEntry, ReminderDispatch, RequestGroup
from signing.services import LedgerProjection, ReminderScheduler, TransitionEngine
from signing.tasks import run_reminder_sweep

from ..factories import build_group

pytestmark = pytest.mark.django_db(transaction=True)


def later(**delta):
    return timezone.now() + timedelta(**delta)


class TestReminders:

    def test_reminder_is_sent_once_per_interval(self, notifier):
        handle = build_group(count=2)
        now = later(days=3, hours=1)

        assert ReminderScheduler.sweep(now=now)['reminders'] == 2
        assert ReminderScheduler.sweep(now=now)['reminders'] == 0

        assert len(notifier.of_kind(NotificationKind.REMINDER)) == 2
        assert handle.entry(0).reminder_count == 1
        assert ReminderDispatch.objects.filter(threshold='reminder:1', delivered=True).count() == 2

        assert ReminderScheduler.sweep(now=later(days=6, hours=1))['reminders'] == 2

    def test_signed_and_waiting_entries_are_skipped(self, notifier):
        handle = build_group(count=3, signing_order='sequential')
        TransitionEngine.submit_action(handle.tokens[0], 'sign', {'fields': handle.values_for(0)})

        counts = ReminderScheduler.sweep(now=later(days=3, hours=1))

        assert counts['reminders'] == 1
        assert [a for _, a, _ in notifier.of_kind(NotificationKind.REMINDER)] == ['recipient1@example.com']

    def test_reminder_goes_to_the_delegate(self, notifier):
        handle = build_group(count=1)
        TransitionEngine.submit_action(handle.tokens[0], 'delegate', {'name': 'Dana', 'email': 'dana@example.com'})

        ReminderScheduler.sweep(now=later(days=3, hours=1))

        assert notifier.of_kind(NotificationKind.REMINDER, 'dana@example.com')

    def test_expiration_warnings_and_due_soon(self, notifier):
        build_group(count=1)

        counts = ReminderScheduler.sweep(now=later(days=8))
        assert counts['expiration_warnings'] == 1
        assert counts['due_soon'] == 0
        assert notifier.of_kind(NotificationKind.EXPIRATION_WARNING)[0][2]['days'] == 7

        counts = ReminderScheduler.sweep(now=later(days=13, hours=12))
        assert counts['expiration_warnings'] == 1
        assert counts['due_soon'] == 1
        assert [d['days'] for _, _, d in notifier.of_kind(NotificationKind.EXPIRATION_WARNING)] == [7, 1]

        counts = ReminderScheduler.sweep(now=later(days=13, hours=13))
        assert counts['expiration_warnings'] == 0
        assert counts['due_soon'] == 0

    def test_celery_task_runs_the_sweep(self):
        build_group(count=1)
        counts = run_reminder_sweep()
        assert set(counts) == {
            'reminders', 'due_soon', 'expiration_warnings',
            'expired_entries', 'expired_groups', 'finalization_retries',
        }


class TestExpiry:

    def test_recipient_due_date_expires_entry_and_tells_owner(self, notifier):
        handle = build_group(count=2, recipient_overrides={1: {'due_date': later(days=1)}})

        counts = ReminderScheduler.sweep(now=later(days=2))

        assert counts['expired_entries'] == 1
        assert counts['expired_groups'] == 0
        entry = handle.entry(1)
        assert entry.status == 'pending'
        assert entry.expired_at is not None
        assert notifier.of_kind(NotificationKind.RECIPIENT_EXPIRED, 'owner@example.com')

        assert ReminderScheduler.sweep(now=later(days=2))['expired_entries'] == 0

    def test_group_due_date_expires_group_once(self, notifier):
        handle = build_group(count=2)
        TransitionEngine.submit_action(handle.tokens[0], 'sign', {'fields': handle.values_for(0)})

        counts = ReminderScheduler.sweep(now=later(days=15))

        assert counts['expired_groups'] == 1
        assert counts['expired_entries'] == 1
        group = handle.group
        assert group.expired_at is not None
        assert group.status == 'pending_signature'
        expired = notifier.of_kind(NotificationKind.GROUP_EXPIRED, 'owner@example.com')
        assert expired[0][2]['pending_recipients'] == 'Recipient 1'
        assert not notifier.of_kind(NotificationKind.RECIPIENT_EXPIRED)

        assert ReminderScheduler.sweep(now=later(days=16))['expired_groups'] == 0

    def test_hard_cutoff_rejects_sign_after_due_date(self):
        handle = build_group(count=2)
        RecipientLedgerEntry.objects.filter(group_id=handle.group_id, recipient_index=0).update(
            due_date=timezone.now() - timedelta(hours=1)
        )

        with pytest.raises(StateConflictError, match='expired'):
            TransitionEngine.submit_action(handle.tokens[0], 'sign', {'fields': handle.values_for(0)})
        assert TransitionEngine.submit_action(
            handle.tokens[1], 'sign', {'fields': handle.values_for(1)}
        ) == 'signed'

    def test_status_view_withholds_action_past_hard_cutoff(self):
        handle = build_group(count=2)
        RecipientLedgerEntry.objects.filter(group_id=handle.group_id, recipient_index=0).update(
            due_date=timezone.now() - timedelta(hours=1)
        )

        assert LedgerProjection.status_view(handle.tokens[0])['may_act'] is False
        assert LedgerProjection.status_view(handle.tokens[1])['may_act'] is True

    def test_soft_expiry_still_accepts_signatures(self):
        handle = build_group(count=1, hard_expiry=False)
        RequestGroup.objects.filter(pk=handle.group_id).update(due_date=timezone.now() - timedelta(hours=1))

        assert TransitionEngine.submit_action(
            handle.tokens[0], 'sign', {'fields': handle.values_for(0)}
        ) == 'signed'

    def test_expire_is_reserved_for_the_scheduler(self):
        handle = build_group(count=1)
        with pytest.raises(AccessDeniedError):
            TransitionEngine.submit_action(handle.tokens[0], 'expire')

        status = TransitionEngine.submit_action(handle.tokens[0], 'expire', source=ActionSource.SCHEDULER)

        assert status == 'pending'
        assert handle.entry(0).expired_at is not None
