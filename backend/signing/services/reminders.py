"""
Reminder and expiration sweep.

The sweep is triggered externally (cron endpoint or Celery beat) and is
safe to run repeatedly or concurrently: every time-based notification is
guarded by a ReminderDispatch row claimed with an insert-if-absent, so each
(entry, threshold) pair is notified at most once.
"""

import logging

from django.db.models import F
from django.utils import timezone

from notifications.models import NotificationKind

from ..collaborators import signing_setting
from ..exceptions import StateConflictError
from ..models import (
    ACTIVE_STATUSES, OPEN_STATUSES, Action, ActionSource, GroupStatus,
    RecipientLedgerEntry, ReminderDispatch, RequestGroup,
)
from .audit import record_event
from .completion import Finalizer
from .links import LinkService
from .notify import deliver, notify
from .transitions import TransitionEngine

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


def claim_threshold(entry, threshold):
    """Returns the new dispatch row, or None if this threshold was already claimed."""
    dispatch, created = ReminderDispatch.objects.get_or_create(entry=entry, threshold=threshold)
    return dispatch if created else None


def reminder_threshold(created_at, now, interval_days):
    """``reminder:<n>`` for the n-th full interval since creation, or None."""
    window = (now - created_at).days // interval_days
    return f"reminder:{window}" if window >= 1 else None


def warning_threshold(due_date, now, warning_days):
    """The tightest expiration-warning bucket ``due_date`` falls into."""
    days_left = (due_date - now).total_seconds() / SECONDS_PER_DAY
    matching = [d for d in sorted(warning_days) if days_left <= d]
    return matching[0] if matching else None


class ReminderScheduler:

    @staticmethod
    def sweep(now=None):
        """
        Run one pass over every open group.

        Returns:
            dict: counts of notifications sent and entries expired
        """
        now = now or timezone.now()
        counts = {
            'reminders': 0,
            'due_soon': 0,
            'expiration_warnings': 0,
            'expired_entries': 0,
            'expired_groups': 0,
            'finalization_retries': 0,
        }

        groups = RequestGroup.objects.filter(status=GroupStatus.PENDING_SIGNATURE)
        for group in groups.iterator():
            for entry in group.entries.filter(status__in=OPEN_STATUSES).select_related('group'):
                ReminderScheduler._sweep_entry(group, entry, now, counts)
            if group.due_date and now > group.due_date:
                if ReminderScheduler._expire_group(group, now):
                    counts['expired_groups'] += 1

        counts['finalization_retries'] = ReminderScheduler._requeue_finalizations(now)
        logger.info(f"Reminder sweep finished: {counts}")
        return counts

    @staticmethod
    def _sweep_entry(group, entry, now, counts):
        due = entry.effective_due_date()

        if due and now > due:
            if claim_threshold(entry, 'expired'):
                try:
                    TransitionEngine.expire(entry)
                except StateConflictError as e:
                    logger.warning(f"Could not expire entry {entry.pk}: {e}")
                    return
                counts['expired_entries'] += 1
                # The group-level notice covers entries that expire with the group.
                if not (group.due_date and now > group.due_date):
                    notify(NotificationKind.RECIPIENT_EXPIRED, group.owner_email,
                           recipient_name=entry.acting_name, recipient_email=entry.acting_email,
                           group_title=group.title, due_date=due.isoformat())
            return

        if entry.status not in ACTIVE_STATUSES:
            return

        if due:
            days = warning_threshold(due, now, signing_setting('EXPIRATION_WARNING_DAYS'))
            if days is not None and ReminderScheduler._send(
                entry, f"expiration_warning:{days}", NotificationKind.EXPIRATION_WARNING, now,
                days=days, due_date=due.isoformat(),
            ):
                counts['expiration_warnings'] += 1

            days_left = (due - now).total_seconds() / SECONDS_PER_DAY
            if days_left <= signing_setting('DUE_SOON_DAYS') and ReminderScheduler._send(
                entry, 'due_soon', NotificationKind.DUE_SOON, now, due_date=due.isoformat(),
            ):
                counts['due_soon'] += 1

        threshold = reminder_threshold(group.created_at, now, signing_setting('REMINDER_INTERVAL_DAYS'))
        if threshold and ReminderScheduler._send(entry, threshold, NotificationKind.REMINDER, now):
            counts['reminders'] += 1

    @staticmethod
    def _send(entry, threshold, kind, now, **data):
        dispatch = claim_threshold(entry, threshold)
        if dispatch is None:
            return False

        link = LinkService.current_signer_link(entry)
        delivered = deliver(kind, entry.acting_email, {
            'recipient_name': entry.acting_name,
            'group_title': entry.group.title,
            'link_url': link.url if link else '',
            **data,
        })
        ReminderDispatch.objects.filter(pk=dispatch.pk).update(delivered=delivered)
        RecipientLedgerEntry.objects.filter(pk=entry.pk).update(
            reminder_count=F('reminder_count') + 1,
            last_reminder_sent_at=now,
        )
        logger.info(f"Sent {threshold} to entry {entry.pk} (delivered={delivered})")
        return True

    @staticmethod
    def _expire_group(group, now):
        """Stamp the group as expired and tell the owner, once."""
        claimed = RequestGroup.objects.filter(
            pk=group.pk,
            expired_at__isnull=True,
        ).update(expired_at=now)
        if not claimed:
            return False

        unsigned = group.entries.filter(status__in=OPEN_STATUSES).order_by('recipient_index')
        names = ', '.join(e.acting_name for e in unsigned)
        record_event(group, Action.EXPIRE, source=ActionSource.SCHEDULER,
                     to_status=group.status, group_expired=True)
        notify(NotificationKind.GROUP_EXPIRED, group.owner_email,
               group_title=group.title, due_date=group.due_date.isoformat(),
               pending_recipients=names)
        logger.info(f"Group {group.pk} expired; unsigned: {names}")
        return True

    @staticmethod
    def _requeue_finalizations(now):
        from ..tasks import retry_finalization

        due = list(Finalizer.due_retries(now).values_list('pk', flat=True))
        for group_id in due:
            retry_finalization.delay(str(group_id))
        return len(due)
