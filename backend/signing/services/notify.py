"""
Post-commit notification dispatch.

Emails and webhooks are queued with ``transaction.on_commit`` so they only
go out once the state change is durable. Delivery failures are logged and
never propagate into the workflow.
"""

import logging

from django.db import transaction

from ..collaborators import get_notifier

logger = logging.getLogger(__name__)


def deliver(kind, address, data):
    """Send one notification now; returns whether the notifier accepted it."""
    try:
        return bool(get_notifier().send(kind, address, data))
    except Exception as e:
        logger.error(f"Notifier failed for {kind} to {address}: {e}")
        return False


def notify(kind, address, **data):
    if not address:
        return
    transaction.on_commit(lambda: deliver(kind, address, data))


def notify_webhooks(group, event_type, payload):
    """Queue ``event_type`` for webhooks subscribed to all groups or to this group's owner."""
    from notifications.services.webhook_service import WebhookService

    payload = {'group_id': str(group.pk), **payload}
    owner_id = group.owner_id

    def _trigger():
        try:
            WebhookService.trigger_event(event_type, payload, owner_id=owner_id)
        except Exception as e:
            logger.error(f"Failed to trigger webhook event {event_type}: {e}")

    transaction.on_commit(_trigger)
