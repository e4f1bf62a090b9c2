import secrets

from django.shortcuts import get_object_or_404
from rest_framework import status, viewsets
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from signing.exceptions import ValidationError
from .models import DeliveryStatus, NotificationLog, Webhook, WebhookEvent, WebhookEventType
from .serializers import (
    NotificationLogSerializer,
    WebhookEventSerializer,
    WebhookSerializer,
)
from .services import WebhookService


class WebhookViewSet(viewsets.ViewSet):
    """Manage webhook subscriptions."""
    permission_classes = [AllowAny]

    def list(self, request):
        webhooks = Webhook.objects.all()
        owner_id = request.query_params.get('owner_id')
        if owner_id:
            webhooks = webhooks.filter(owner_id=owner_id)
        return Response(WebhookSerializer(webhooks, many=True).data)

    def create(self, request):
        serializer = WebhookSerializer(data=request.data)
        if not serializer.is_valid():
            raise ValidationError('Invalid webhook', details=serializer.errors)
        webhook = serializer.save()
        data = {**WebhookSerializer(webhook).data, 'secret': webhook.secret}
        return Response(data, status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        webhook = get_object_or_404(Webhook, pk=pk)
        return Response(WebhookSerializer(webhook).data)

    def partial_update(self, request, pk=None):
        webhook = get_object_or_404(Webhook, pk=pk)
        serializer = WebhookSerializer(webhook, data=request.data, partial=True)
        if not serializer.is_valid():
            raise ValidationError('Invalid webhook', details=serializer.errors)
        return Response(WebhookSerializer(serializer.save()).data)

    def destroy(self, request, pk=None):
        get_object_or_404(Webhook, pk=pk).delete()
        return Response(status=status.HTTP_204_NO_CONTENT)

    def rotate_secret(self, request, pk=None):
        webhook = get_object_or_404(Webhook, pk=pk)
        webhook.secret = secrets.token_urlsafe(32)
        webhook.save(update_fields=['secret', 'updated_at'])
        return Response({'id': webhook.pk, 'secret': webhook.secret})

    def events(self, request, pk=None):
        webhook = get_object_or_404(Webhook, pk=pk)
        events = webhook.events.prefetch_related('attempts')[:100]
        return Response(WebhookEventSerializer(events, many=True).data)

    def test(self, request, pk=None):
        """Deliver a synthetic event right away, without retries."""
        webhook = get_object_or_404(Webhook, pk=pk)
        event_type = webhook.subscribed_events[0] if webhook.subscribed_events else WebhookEventType.GROUP_COMPLETED
        event = WebhookEvent.objects.create(webhook=webhook, event_type=event_type, payload={'test': True})
        error = WebhookService.post(event, number=1)
        event.attempt_count = 1
        event.status = DeliveryStatus.DELIVERED if error is None else DeliveryStatus.FAILED
        event.last_error = error or ''
        event.save()
        return Response({
            'delivered': error is None,
            'event': WebhookEventSerializer(event).data,
        })


class WebhookEventViewSet(viewsets.ViewSet):
    """Read-only access to queued events; filter with ?event_type=, ?status=, ?group="""
    permission_classes = [AllowAny]

    def list(self, request):
        events = WebhookEvent.objects.select_related('webhook').prefetch_related('attempts')
        filters = {
            'event_type': request.query_params.get('event_type'),
            'status': request.query_params.get('status'),
            'group_id': request.query_params.get('group'),
        }
        events = events.filter(**{k: v for k, v in filters.items() if v})
        return Response(WebhookEventSerializer(events[:200], many=True).data)

    def retrieve(self, request, pk=None):
        event = get_object_or_404(WebhookEvent, pk=pk)
        return Response(WebhookEventSerializer(event).data)


class NotificationLogViewSet(viewsets.ViewSet):
    permission_classes = [AllowAny]

    def list(self, request):
        logs = NotificationLog.objects.all()
        address = request.query_params.get('address')
        if address:
            logs = logs.filter(address__iexact=address)
        return Response(NotificationLogSerializer(logs[:200], many=True).data)
