import logging

from celery import shared_task

from .services.completion import Finalizer
from .services.reminders import ReminderScheduler

logger = logging.getLogger(__name__)


@shared_task
def retry_finalization(group_id):
    """Re-attempt artifact assembly for a completed group whose finalization failed."""
    artifact_ref = Finalizer.retry(group_id)
    if artifact_ref:
        logger.info(f"Finalization retry succeeded for group {group_id}")
    return artifact_ref


@shared_task
def run_reminder_sweep():
    """Periodic entry point for the reminder and expiration sweep."""
    return ReminderScheduler.sweep()
