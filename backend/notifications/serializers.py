import secrets

from rest_framework import serializers

from .models import NotificationLog, Webhook, WebhookAttempt, WebhookEvent, WebhookEventType


class WebhookAttemptSerializer(serializers.ModelSerializer):

    class Meta:
        model = WebhookAttempt
        fields = ['number', 'status_code', 'response_body', 'error_message', 'duration_ms', 'created_at']
        read_only_fields = fields


class WebhookEventSerializer(serializers.ModelSerializer):
    """Queued event with its delivery attempts."""
    attempts = WebhookAttemptSerializer(many=True, read_only=True)

    class Meta:
        model = WebhookEvent
        fields = [
            'id', 'webhook', 'event_type', 'group_id', 'payload', 'status',
            'attempt_count', 'last_error', 'created_at', 'delivered_at',
            'next_retry_at', 'attempts',
        ]
        read_only_fields = fields


class WebhookSerializer(serializers.ModelSerializer):
    """
    Subscription management. The signing secret is generated server-side
    and only returned when it is created or rotated.
    """

    class Meta:
        model = Webhook
        fields = [
            'id', 'url', 'owner_id', 'description', 'subscribed_events', 'is_active',
            'created_at', 'updated_at', 'last_delivery_at', 'delivered_count', 'failed_count',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at', 'last_delivery_at', 'delivered_count', 'failed_count']

    def validate_subscribed_events(self, value):
        if not isinstance(value, list) or not value:
            raise serializers.ValidationError("Subscribe to at least one event.")
        unknown = sorted({str(event) for event in value} - set(WebhookEventType.values))
        if unknown:
            raise serializers.ValidationError(f"Unknown events: {', '.join(unknown)}")
        return list(dict.fromkeys(value))

    def create(self, validated_data):
        validated_data['secret'] = secrets.token_urlsafe(32)
        return super().create(validated_data)


class NotificationLogSerializer(serializers.ModelSerializer):

    class Meta:
        model = NotificationLog
        fields = ['id', 'kind', 'address', 'subject', 'delivered', 'error_message', 'created_at']
        read_only_fields = fields
