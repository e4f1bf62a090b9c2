"""
backend/notifications/urls.py

"""

# ----------------------------
# Django imports
# ----------------------------
from django.urls import path

# ----------------------------
# Local view imports
# ----------------------------
from .views import NotificationLogViewSet, WebhookEventViewSet, WebhookViewSet

app_name = 'notifications'

# ----------------------------
# Webhook routes
# ----------------------------
urlpatterns = [
    path('webhooks/', WebhookViewSet.as_view({'get': 'list', 'post': 'create'}), name='webhook-list'),
    # Register and list webhook subscriptions. The secret is generated server-side.

    path('webhooks/<int:pk>/', WebhookViewSet.as_view({
        'get': 'retrieve',
        'patch': 'partial_update',
        'delete': 'destroy'
    }), name='webhook-detail'),

    path('webhooks/<int:pk>/events/', WebhookViewSet.as_view({'get': 'events'}), name='webhook-events'),
    # Recent events for one webhook, with their delivery attempts.

    path('webhooks/<int:pk>/test/', WebhookViewSet.as_view({'post': 'test'}), name='webhook-test'),
    # Deliver a synthetic event synchronously.

    path('webhooks/<int:pk>/rotate-secret/', WebhookViewSet.as_view({'post': 'rotate_secret'}), name='webhook-rotate-secret'),
    # Issue a new signing secret; the old one stops verifying immediately.

    # Filter with ?event_type=, ?status= or ?group=<group uuid>.
    path('webhook-events/', WebhookEventViewSet.as_view({'get': 'list'}), name='webhook-event-list'),
    path('webhook-events/<int:pk>/', WebhookEventViewSet.as_view({'get': 'retrieve'}), name='webhook-event-detail'),
]

# ----------------------------
# Notification log
# ----------------------------
urlpatterns += [
    path('notifications/', NotificationLogViewSet.as_view({'get': 'list'}), name='notification-log'),
    # Every notifier attempt; filter with ?address=
]
