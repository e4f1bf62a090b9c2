"""
Completion detection and exactly-once finalization.

Purpose:
- Recompute a group's aggregate status after every sign or decline.
- Claim completion with a single conditional update so only one caller
  ever assembles the artifact and fans out the completion notices.

Design:
- The claim (``pending_signature`` -> ``completed``) stands even if
  assembly fails; the failure is recorded on the group and retried under
  its own claim (``failed`` -> ``assembling``) until ``artifact_ref`` is set.
- While ``assembling``, ``next_finalization_at`` holds a lease deadline. A
  group still assembling past it (the worker died mid-assembly) is
  reclaimed by the same retry path.
- ``artifact_ref`` is written with a conditional update on ``artifact_ref
  IS NULL``, so a late duplicate can never overwrite it.
"""

import logging
from datetime import timedelta

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from documents.services.hashing import HashingService
from notifications.models import NotificationKind

from ..collaborators import get_artifact_assembler, get_blob_store, signing_setting
from ..exceptions import DependencyFailure, NotFoundError, StateConflictError
from ..models import (
    Action, ActionSource, EntryStatus, FinalizationState, GroupStatus, RequestGroup,
)
from .audit import record_event
from .notify import notify, notify_webhooks

logger = logging.getLogger(__name__)


class CompletionDetector:
    """Aggregate status evaluation and the completion claim."""

    @staticmethod
    def aggregate(statuses):
        statuses = list(statuses)
        if statuses and all(s == EntryStatus.SIGNED for s in statuses):
            return GroupStatus.COMPLETED
        if any(s == EntryStatus.DECLINED for s in statuses):
            return GroupStatus.DECLINED
        return GroupStatus.PENDING_SIGNATURE

    @staticmethod
    def claim(group, target, **changes):
        """Move a pending group to ``target``; True only for the single winner."""
        claimed = RequestGroup.objects.filter(
            pk=group.pk,
            status=GroupStatus.PENDING_SIGNATURE,
        ).update(status=target, **changes)
        if claimed:
            logger.info(f"Group {group.pk} claimed as {target}")
            group.refresh_from_db()
        return bool(claimed)

    @staticmethod
    def evaluate(group):
        """
        Called inside the sign/decline transaction. Returns the group's
        status after evaluation.
        """
        statuses = group.entries.values_list('status', flat=True)
        outcome = CompletionDetector.aggregate(statuses)
        now = timezone.now()

        if outcome == GroupStatus.COMPLETED:
            if CompletionDetector.claim(
                group, GroupStatus.COMPLETED,
                completed_at=now,
                finalization_state=FinalizationState.ASSEMBLING,
                next_finalization_at=Finalizer.lease_deadline(now),
            ):
                record_event(group, Action.SIGN, source=ActionSource.SYSTEM,
                             to_status=GroupStatus.COMPLETED, group_completed=True)
                group_id = group.pk
                transaction.on_commit(lambda: Finalizer.finalize(group_id))
        elif outcome == GroupStatus.DECLINED:
            if not CompletionDetector.claim(group, GroupStatus.DECLINED, declined_at=now):
                raise StateConflictError('This request is no longer open')
        return outcome


class Finalizer:
    """Artifact assembly for completed groups."""

    @staticmethod
    def finalize(group_id):
        """
        Assemble the final artifact for a claimed group.

        Returns:
            str or None: the artifact ref, or None if assembly failed
        """
        group = RequestGroup.objects.get(pk=group_id)
        if group.artifact_ref:
            return group.artifact_ref

        entries = list(
            group.entries.filter(status=EntryStatus.SIGNED)
            .select_related('group')
            .order_by('recipient_index')
        )
        documents = group.ordered_documents()
        artifacts = dict(group.document_artifacts or {})

        try:
            assembler = get_artifact_assembler()
            for document in documents:
                key = str(document.pk)
                if key in artifacts:
                    continue
                artifacts[key] = assembler.compose(document, entries)
                RequestGroup.objects.filter(pk=group.pk).update(document_artifacts=artifacts)

            refs = [artifacts[str(d.pk)] for d in documents]
            final_ref = refs[0] if len(refs) == 1 else assembler.merge(refs)

            sha256 = HashingService.compute_bytes_sha256(get_blob_store().get(final_ref))
        except (DependencyFailure, NotFoundError) as e:
            Finalizer.record_failure(group, str(e))
            return None
        except Exception as e:
            logger.exception(f"Group {group.pk} assembler raised unexpectedly")
            Finalizer.record_failure(group, f"{type(e).__name__}: {e}")
            return None

        now = timezone.now()
        written = RequestGroup.objects.filter(
            pk=group.pk,
            artifact_ref__isnull=True,
        ).update(
            artifact_ref=final_ref,
            artifact_sha256=sha256,
            document_artifacts=artifacts,
            finalization_state=FinalizationState.DONE,
            finalization_error='',
            next_finalization_at=None,
            finalized_at=now,
        )
        group.refresh_from_db()
        if not written:
            logger.info(f"Group {group.pk} artifact already written; keeping {group.artifact_ref}")
            return group.artifact_ref

        logger.info(f"Group {group.pk} finalized: artifact {final_ref} (sha256={sha256[:12]})")
        record_event(group, Action.SIGN, source=ActionSource.SYSTEM,
                     to_status=GroupStatus.COMPLETED, artifact_ref=final_ref, artifact_sha256=sha256)
        Finalizer.announce(group, entries)
        return final_ref

    @staticmethod
    def announce(group, entries):
        data = {
            'group_title': group.title,
            'artifact_ref': group.artifact_ref,
        }
        notify(NotificationKind.GROUP_COMPLETED, group.owner_email,
               recipient_name=group.owner_name, **data)
        for entry in entries:
            notify(NotificationKind.GROUP_COMPLETED, entry.acting_email,
                   recipient_name=entry.acting_name, **data)
        notify_webhooks(group, 'group.completed', {
            'group_id': str(group.pk),
            'title': group.title,
            'artifact_ref': group.artifact_ref,
            'artifact_sha256': group.artifact_sha256,
            'completed_at': group.completed_at.isoformat() if group.completed_at else None,
            'recipients': [
                {'index': e.recipient_index, 'name': e.acting_name, 'email': e.acting_email}
                for e in entries
            ],
        })

    @staticmethod
    def record_failure(group, error):
        attempts = group.finalization_attempts + 1
        delays = signing_setting('FINALIZATION_RETRY_DELAYS')
        delay = delays[attempts - 1] if attempts <= len(delays) else None
        next_at = timezone.now() + timedelta(seconds=delay) if delay is not None else None

        RequestGroup.objects.filter(pk=group.pk, artifact_ref__isnull=True).update(
            finalization_state=FinalizationState.FAILED,
            finalization_attempts=attempts,
            finalization_error=error[:1000],
            next_finalization_at=next_at,
        )

        if delay is None:
            logger.error(f"Group {group.pk} finalization failed after {attempts} attempts: {error}")
            return

        logger.warning(f"Group {group.pk} finalization failed (attempt {attempts}); retrying in {delay}s: {error}")
        from ..tasks import retry_finalization
        retry_finalization.apply_async(args=[str(group.pk)], countdown=delay)

    @staticmethod
    def lease_deadline(now=None):
        lease = signing_setting('FINALIZATION_LEASE_SECONDS')
        return (now or timezone.now()) + timedelta(seconds=lease)

    @staticmethod
    def retryable(now):
        """Failed groups, and assembling groups whose lease has run out."""
        return Q(finalization_state=FinalizationState.FAILED) | Q(
            finalization_state=FinalizationState.ASSEMBLING,
            next_finalization_at__lte=now,
        )

    @staticmethod
    def retry(group_id):
        """
        Re-attempt finalization under the ``failed`` -> ``assembling`` claim.
        A group stuck in ``assembling`` past its lease is claimed the same way.

        Returns:
            str or None: artifact ref when this call finalized the group
        """
        now = timezone.now()
        claimed = RequestGroup.objects.filter(
            Finalizer.retryable(now),
            pk=group_id,
            status=GroupStatus.COMPLETED,
            artifact_ref__isnull=True,
        ).update(
            finalization_state=FinalizationState.ASSEMBLING,
            next_finalization_at=Finalizer.lease_deadline(now),
        )

        if not claimed:
            logger.info(f"Group {group_id} not eligible for finalization retry")
            return None

        logger.info(f"Retrying finalization for group {group_id}")
        return Finalizer.finalize(group_id)

    @staticmethod
    def due_retries(now=None):
        """Groups whose scheduled retry time or assembly lease has passed."""
        now = now or timezone.now()
        return RequestGroup.objects.filter(
            status=GroupStatus.COMPLETED,
            finalization_state__in=[FinalizationState.FAILED, FinalizationState.ASSEMBLING],
            artifact_ref__isnull=True,
            next_finalization_at__lte=now,
        )
