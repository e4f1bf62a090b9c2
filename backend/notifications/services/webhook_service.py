"""
Outbound webhooks for workflow events.

Each subscribed webhook gets its own WebhookEvent row so deliveries and
retries are tracked per receiver. Requests carry the raw JSON body signed
with the webhook secret (``X-Signflow-Signature: sha256=<hex>``); receivers
verify against the bytes they received, not a re-serialization.
"""

import json
import logging
import time
from datetime import timedelta

import requests
from celery import shared_task
from django.utils import timezone

from ..models import DeliveryStatus, Webhook, WebhookAttempt, WebhookEvent

logger = logging.getLogger(__name__)


class WebhookService:
    """Service for queuing and delivering webhook events."""

    # Delay before each retry, in seconds; delivery gives up after the last one.
    RETRY_DELAYS = [60, 300, 900]

    REQUEST_TIMEOUT = 10

    @staticmethod
    def trigger_event(event_type: str, payload: dict, owner_id=None):
        """
        Queue ``event_type`` for every active webhook subscribed to it.

        Returns:
            list: the created WebhookEvent rows
        """
        # Filtered in Python: JSON containment lookups are not portable to SQLite.
        webhooks = [
            webhook for webhook in Webhook.objects.filter(is_active=True)
            if webhook.subscribes_to(event_type, owner_id)
        ]
        if not webhooks:
            return []

        events = []
        for webhook in webhooks:
            event = WebhookEvent.objects.create(
                webhook=webhook,
                event_type=event_type,
                group_id=payload.get('group_id'),
                payload=payload,
            )
            deliver_webhook_event.delay(event.id)
            events.append(event)
        logger.info(f"Queued '{event_type}' for {len(events)} webhook(s)")
        return events

    @staticmethod
    def encode(event: WebhookEvent):
        """Serialize the event envelope and build the signed headers."""
        envelope = {
            'id': event.id,
            'type': event.event_type,
            'created_at': event.created_at.isoformat(),
            'data': event.payload,
        }
        body = json.dumps(envelope, sort_keys=True, separators=(',', ':')).encode()
        headers = {
            'Content-Type': 'application/json',
            'X-Signflow-Event': event.event_type,
            'X-Signflow-Delivery': str(event.id),
            'X-Signflow-Signature': event.webhook.sign(body),
        }
        return body, headers

    @staticmethod
    def post(event: WebhookEvent, number: int):
        """
        Make one HTTP attempt and record it.

        Returns:
            str or None: error description, None when the receiver answered 2xx
        """
        body, headers = WebhookService.encode(event)
        status_code, response_body, error = None, '', None
        started = time.monotonic()

        try:
            response = requests.post(
                event.webhook.url,
                data=body,
                headers=headers,
                timeout=WebhookService.REQUEST_TIMEOUT
            )
        except requests.exceptions.Timeout:
            error = "Request timeout"
        except requests.exceptions.ConnectionError:
            error = "Connection error"
        except requests.exceptions.RequestException as e:
            error = str(e)
        else:
            status_code = response.status_code
            response_body = response.text[:1000]
            if not 200 <= status_code < 300:
                error = f"HTTP {status_code}: {response.text[:200]}"

        WebhookAttempt.objects.create(
            event=event,
            number=number,
            status_code=status_code,
            response_body=response_body,
            error_message=error or '',
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return error

    @staticmethod
    def deliver_event(event: WebhookEvent, retry_attempt: int = 0):
        """
        Deliver ``event``, scheduling a retry on failure.

        Returns:
            bool: whether the receiver accepted the delivery
        """
        number = retry_attempt + 1
        error = WebhookService.post(event, number)
        event.attempt_count = number

        if error is None:
            event.status = DeliveryStatus.DELIVERED
            event.delivered_at = timezone.now()
            event.next_retry_at = None
            event.last_error = ''
            event.save()
            event.webhook.record_outcome(delivered=True)
            logger.info(f"Webhook {event.webhook_id} accepted {event.event_type} (event {event.id})")
            return True

        logger.warning(f"Webhook {event.webhook_id} attempt {number} failed: {error}")
        WebhookService.schedule_retry(event, retry_attempt, error)
        return False

    @staticmethod
    def schedule_retry(event, retry_attempt, error):
        event.last_error = error

        if retry_attempt >= len(WebhookService.RETRY_DELAYS):
            event.status = DeliveryStatus.FAILED
            event.next_retry_at = None
            event.save()
            event.webhook.record_outcome(delivered=False)
            logger.error(f"Webhook {event.webhook_id} gave up on event {event.id} after {event.attempt_count} attempts")
            return

        delay = WebhookService.RETRY_DELAYS[retry_attempt]
        event.status = DeliveryStatus.RETRYING
        event.next_retry_at = timezone.now() + timedelta(seconds=delay)
        event.save()
        retry_webhook_event.apply_async(args=[event.id, retry_attempt + 1], countdown=delay)
        logger.info(f"Retrying event {event.id} for webhook {event.webhook_id} in {delay}s")


def _load_event(event_id):
    try:
        return WebhookEvent.objects.select_related('webhook').get(id=event_id)
    except WebhookEvent.DoesNotExist:
        logger.error(f"WebhookEvent {event_id} not found")
        return None


@shared_task
def deliver_webhook_event(event_id: int):
    event = _load_event(event_id)
    if event is None:
        return False
    return WebhookService.deliver_event(event, retry_attempt=0)


@shared_task
def retry_webhook_event(event_id: int, retry_attempt: int):
    event = _load_event(event_id)
    if event is None or event.status == DeliveryStatus.DELIVERED:
        return False
    return WebhookService.deliver_event(event, retry_attempt=retry_attempt)
