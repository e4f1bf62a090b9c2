import hashlib
import hmac

from django.db import models
from django.db.models import F
from django.utils import timezone


class NotificationKind(models.TextChoices):
    SIGNATURE_REQUESTED = 'signature_requested', 'Signature requested'
    TURN_ACTIVATED = 'turn_activated', 'Your turn to sign'
    RECIPIENT_SIGNED = 'recipient_signed', 'Recipient signed'
    ENVELOPE_PROGRESS = 'envelope_progress', 'Envelope progress'
    RECIPIENT_DECLINED = 'recipient_declined', 'Recipient declined'
    REQUEST_CANCELLED = 'request_cancelled', 'Request cancelled'
    GROUP_COMPLETED = 'group_completed', 'All parties signed'
    GROUP_CANCELLED = 'group_cancelled', 'Request cancelled by sender'
    DELEGATED_TO_YOU = 'delegated_to_you', 'Signing delegated to you'
    DELEGATION_CONFIRMED = 'delegation_confirmed', 'Delegation confirmed'
    RECIPIENT_DELEGATED = 'recipient_delegated', 'Recipient delegated'
    REASSIGNED_TO_YOU = 'reassigned_to_you', 'Signing reassigned to you'
    REASSIGNED_AWAY = 'reassigned_away', 'Signing reassigned'
    REMINDER = 'reminder', 'Reminder'
    DUE_SOON = 'due_soon', 'Due soon'
    EXPIRATION_WARNING = 'expiration_warning', 'Expiration warning'
    RECIPIENT_EXPIRED = 'recipient_expired', 'Recipient expired'
    GROUP_EXPIRED = 'group_expired', 'Request expired'
    VERIFICATION_CODE = 'verification_code', 'Verification code'


class NotificationLog(models.Model):
    """One delivery attempt through the notifier."""
    kind = models.CharField(max_length=40, choices=NotificationKind.choices)
    address = models.EmailField()
    subject = models.CharField(max_length=255, blank=True)
    delivered = models.BooleanField(default=False)
    error_message = models.TextField(blank=True)
    context = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['kind', 'created_at'], name='notif_kind_created_idx'),
        ]

    def __str__(self):
        return f"{self.kind} -> {self.address} ({'ok' if self.delivered else 'failed'})"


class WebhookEventType(models.TextChoices):
    RECIPIENT_SIGNED = 'recipient.signed', 'Recipient signed'
    RECIPIENT_DECLINED = 'recipient.declined', 'Recipient declined'
    GROUP_COMPLETED = 'group.completed', 'Group completed'
    GROUP_DECLINED = 'group.declined', 'Group declined'
    GROUP_CANCELLED = 'group.cancelled', 'Group cancelled'


class DeliveryStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    DELIVERED = 'delivered', 'Delivered'
    RETRYING = 'retrying', 'Retrying'
    FAILED = 'failed', 'Failed'


class Webhook(models.Model):
    """
    External endpoint subscribed to workflow events.

    A blank ``owner_id`` receives events for every request group; otherwise
    only events from groups created by that owner are delivered.
    """
    url = models.URLField(help_text="Endpoint that receives signed POST requests")
    owner_id = models.CharField(max_length=255, blank=True, db_index=True)
    description = models.CharField(max_length=255, blank=True)
    subscribed_events = models.JSONField(
        default=list,
        help_text="Event types to deliver, e.g. ['group.completed']"
    )
    secret = models.CharField(
        max_length=255,
        help_text="HMAC-SHA256 key for the X-Signflow-Signature header"
    )
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    last_delivery_at = models.DateTimeField(null=True, blank=True)
    delivered_count = models.PositiveIntegerField(default=0)
    failed_count = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['is_active', 'owner_id'], name='webhook_active_owner_idx'),
        ]

    def __str__(self):
        return f"Webhook {self.pk}: {self.url}"

    def subscribes_to(self, event_type, owner_id=None):
        if event_type not in (self.subscribed_events or []):
            return False
        return not self.owner_id or self.owner_id == owner_id

    def sign(self, body: bytes) -> str:
        """Signature header value over the exact request body."""
        digest = hmac.new(self.secret.encode(), body, hashlib.sha256).hexdigest()
        return f"sha256={digest}"

    def record_outcome(self, delivered: bool):
        counter = 'delivered_count' if delivered else 'failed_count'
        Webhook.objects.filter(pk=self.pk).update(
            **{counter: F(counter) + 1},
            last_delivery_at=timezone.now(),
        )


class WebhookEvent(models.Model):
    """One event queued for one webhook, tracked until delivered or given up."""
    webhook = models.ForeignKey(Webhook, on_delete=models.CASCADE, related_name='events')
    event_type = models.CharField(max_length=50, choices=WebhookEventType.choices)
    group_id = models.UUIDField(null=True, blank=True, db_index=True)
    payload = models.JSONField()
    status = models.CharField(max_length=20, choices=DeliveryStatus.choices, default=DeliveryStatus.PENDING)
    attempt_count = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    next_retry_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['webhook', 'status'], name='whevent_webhook_status_idx'),
            models.Index(fields=['event_type', 'created_at'], name='whevent_type_created_idx'),
        ]

    def __str__(self):
        return f"{self.event_type} -> webhook {self.webhook_id} ({self.status})"


class WebhookAttempt(models.Model):
    """A single HTTP attempt for a webhook event."""
    event = models.ForeignKey(WebhookEvent, on_delete=models.CASCADE, related_name='attempts')
    number = models.PositiveIntegerField()
    status_code = models.PositiveIntegerField(null=True, blank=True)
    response_body = models.TextField(blank=True)
    error_message = models.TextField(blank=True)
    duration_ms = models.PositiveIntegerField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['event', 'number']

    def __str__(self):
        return f"Attempt {self.number} for event {self.event_id} (HTTP {self.status_code})"
