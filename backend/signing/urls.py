"""
backend/signing/urls.py

"""

# ----------------------------
# Django imports
# ----------------------------
from django.urls import path

# ----------------------------
# Local view imports
# ----------------------------
from .views import CronViewSet, PublicSignViewSet, RequestGroupViewSet

app_name = 'signing'

# ----------------------------
# Sender routes
# ----------------------------
urlpatterns = [
    path('groups/', RequestGroupViewSet.as_view({
        'post': 'create'
    }), name='group-create'),
    # Create a request group: documents, recipients, field placements,
    # signing order and view mode. Returns one link per recipient.

    path('groups/<uuid:pk>/', RequestGroupViewSet.as_view({
        'get': 'retrieve',
        'delete': 'destroy'
    }), name='group-detail'),
    # Group summary (status, recipients, artifact ref) and owner deletion.

    path('groups/<uuid:pk>/cancel/', RequestGroupViewSet.as_view({
        'post': 'cancel'
    }), name='group-cancel'),
    # Owner cancels the whole request; open entries become cancelled.

    path('groups/<uuid:pk>/retry-finalization/', RequestGroupViewSet.as_view({
        'post': 'retry_finalization'
    }), name='group-retry-finalization'),
    # Re-run artifact assembly for a completed group whose finalization failed.

    path('groups/<uuid:pk>/recipients/<int:index>/reassign/', RequestGroupViewSet.as_view({
        'post': 'reassign'
    }), name='group-recipient-reassign'),
    # Replace the person in one recipient slot; issues a new link.

    path('groups/<uuid:pk>/recipients/<int:index>/remind/', RequestGroupViewSet.as_view({
        'post': 'remind'
    }), name='group-recipient-remind'),
    # Manual reminder to one recipient.

    path('groups/<uuid:pk>/events/', RequestGroupViewSet.as_view({
        'get': 'events'
    }), name='group-events'),
    # Audit trail with per-event hash verification.
]

# ----------------------------
# Public signing routes (token is the credential)
# ----------------------------
urlpatterns += [
    path('sign/<str:token>/', PublicSignViewSet.as_view({
        'get': 'ledger_status'
    }), name='sign-status'),
    # Read-only view of the entry behind a link, filtered by view mode and
    # access policy. Does not change status; viewing is an explicit action.

    path('sign/<str:token>/actions/', PublicSignViewSet.as_view({
        'post': 'submit_action'
    }), name='sign-actions'),
    # Submit view / sign / decline / delegate.

    path('sign/<str:token>/access-code/', PublicSignViewSet.as_view({
        'post': 'access_code'
    }), name='sign-access-code'),
    # Unlock a link protected by an access code.

    path('sign/<str:token>/verification/', PublicSignViewSet.as_view({
        'post': 'verification'
    }), name='sign-verification'),
    # Empty body sends a one-time code; {"code": ...} confirms it.
]

# ----------------------------
# Scheduler
# ----------------------------
urlpatterns += [
    path('cron/sweep/', CronViewSet.as_view({
        'post': 'sweep'
    }), name='cron-sweep'),
    # Reminder / expiration sweep. Requires Authorization: Bearer <CRON_SECRET>.
]
