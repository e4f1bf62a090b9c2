from .notifier import EmailNotifier
from .webhook_service import WebhookService

__all__ = [
    'EmailNotifier',
    'WebhookService',
]
