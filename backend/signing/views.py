import hmac
import logging

from django.conf import settings
from rest_framework import status, viewsets
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .exceptions import AccessDeniedError, ValidationError
from .serializers import (
    AccessCodeSerializer,
    LedgerEventSerializer,
    OwnerActionSerializer,
    ReassignSerializer,
    RequestGroupCreateSerializer,
    SubmitActionSerializer,
    VerificationSerializer,
)
from .services import (
    AccessPolicy,
    GroupService,
    LedgerProjection,
    LinkService,
    ReminderScheduler,
    TransitionEngine,
)

logger = logging.getLogger(__name__)


def validated(serializer_class, data):
    """Run a DRF serializer and raise the domain ValidationError on failure."""
    serializer = serializer_class(data=data)
    if not serializer.is_valid():
        raise ValidationError('Invalid request', details=serializer.errors)
    return serializer.validated_data


def get_client_ip(request):
    """Extract client IP from request."""
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('REMOTE_ADDR')
    return ip or None


def owner_id_from(request):
    return request.data.get('owner_id') or request.query_params.get('owner_id')


class RequestGroupViewSet(viewsets.ViewSet):
    """Sender-facing endpoints for request groups."""
    permission_classes = [AllowAny]

    def create(self, request):
        data = validated(RequestGroupCreateSerializer, request.data)
        result = GroupService.create_group(data)
        return Response(result, status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        return Response(GroupService.summary(pk))

    def destroy(self, request, pk=None):
        GroupService.delete_group(pk, owner_id_from(request))
        return Response(status=status.HTTP_204_NO_CONTENT)

    def cancel(self, request, pk=None):
        data = validated(OwnerActionSerializer, request.data)
        GroupService.cancel_group(pk, data['owner_id'], data['reason'])
        return Response(GroupService.summary(pk))

    def retry_finalization(self, request, pk=None):
        data = validated(OwnerActionSerializer, request.data)
        GroupService.retry_finalization(pk, data['owner_id'])
        return Response(GroupService.summary(pk))

    def reassign(self, request, pk=None, index=None):
        data = validated(ReassignSerializer, request.data)
        entry, link = TransitionEngine.reassign(pk, index, dict(data))
        return Response({
            'status': entry.status,
            'recipient_index': entry.recipient_index,
            'link': {'token': link.token, 'url': link.url},
        })

    def remind(self, request, pk=None, index=None):
        data = validated(OwnerActionSerializer, request.data)
        return Response(GroupService.remind_recipient(pk, index, data['owner_id']))

    def events(self, request, pk=None):
        events = GroupService.events(pk)
        return Response(LedgerEventSerializer(events, many=True).data)


class PublicSignViewSet(viewsets.ViewSet):
    """Recipient-facing endpoints; the link token is the credential."""
    permission_classes = [AllowAny]

    def ledger_status(self, request, token=None):
        return Response(LedgerProjection.status_view(token))

    def submit_action(self, request, token=None):
        data = validated(SubmitActionSerializer, request.data)
        new_status = TransitionEngine.submit_action(
            token,
            data['action'],
            data['payload'],
            ip_address=get_client_ip(request),
            user_agent=request.META.get('HTTP_USER_AGENT', ''),
        )
        return Response({'status': new_status})

    def access_code(self, request, token=None):
        data = validated(AccessCodeSerializer, request.data)
        link = LinkService.resolve(token)
        AccessPolicy.verify_access_code(link, data['access_code'])
        return Response({'verified': True})

    def verification(self, request, token=None):
        data = validated(VerificationSerializer, request.data)
        link = LinkService.resolve(token)
        if data.get('code'):
            AccessPolicy.confirm_verification_code(link, data['code'])
            return Response({'verified': True})

        expires_at = AccessPolicy.issue_verification_code(link)
        return Response({'sent': True, 'expires_at': expires_at.isoformat()}, status=status.HTTP_202_ACCEPTED)


class CronViewSet(viewsets.ViewSet):
    """Scheduler trigger, guarded by ``Authorization: Bearer <CRON_SECRET>``."""
    permission_classes = [AllowAny]

    def sweep(self, request):
        header = request.META.get('HTTP_AUTHORIZATION', '')
        expected = f"Bearer {settings.CRON_SECRET}"
        if not settings.CRON_SECRET or not hmac.compare_digest(header, expected):
            logger.warning(f"Rejected sweep trigger from {get_client_ip(request)}")
            raise AccessDeniedError('Invalid cron secret')

        counts = ReminderScheduler.sweep()
        return Response(counts)
