from .services.webhook_service import deliver_webhook_event, retry_webhook_event

__all__ = ['deliver_webhook_event', 'retry_webhook_event']
