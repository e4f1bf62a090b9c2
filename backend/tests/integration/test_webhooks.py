"""Webhook fan-out for workflow events, signatures and retries."""

import hashlib
import hmac
import json
from unittest import mock

import pytest
import requests
from rest_framework.test import APIClient

from notifications.models import Webhook, WebhookEvent
from signing.services import GroupService, TransitionEngine

from ..factories import build_group

pytestmark = pytest.mark.django_db(transaction=True)


def response(status_code=200, text='ok'):
    return mock.Mock(status_code=status_code, text=text)


@pytest.fixture
def webhook():
    return Webhook.objects.create(
        url='https://hooks.example.com/signflow',
        subscribed_events=['recipient.signed', 'group.completed', 'group.cancelled'],
        secret='whsec-test',
    )


@pytest.fixture
def post():
    with mock.patch('notifications.services.webhook_service.requests.post') as patched:
        patched.return_value = response()
        yield patched


class TestWebhookDelivery:

    def test_sign_and_completion_are_delivered_with_signature(self, webhook, post):
        handle = build_group(count=1)

        TransitionEngine.submit_action(handle.tokens[0], 'sign', {'fields': handle.values_for(0)})

        events = WebhookEvent.objects.order_by('created_at', 'id')
        assert [e.event_type for e in events] == ['recipient.signed', 'group.completed']
        assert {e.status for e in events} == {'delivered'}
        completed = events[1].payload
        assert completed['group_id'] == handle.group_id
        assert completed['artifact_ref'] == handle.group.artifact_ref

        for call in post.call_args_list:
            body = call.kwargs['data']
            expected = hmac.new(b'whsec-test', body, hashlib.sha256).hexdigest()
            assert call.kwargs['headers']['X-Signflow-Signature'] == f"sha256={expected}"
            assert json.loads(body)['data']['group_id'] == handle.group_id

        webhook.refresh_from_db()
        assert webhook.delivered_count == 2
        assert webhook.last_delivery_at is not None

    def test_unsubscribed_and_inactive_webhooks_are_skipped(self, webhook, post):
        Webhook.objects.create(
            url='https://hooks.example.com/off', subscribed_events=['recipient.signed'],
            secret='whsec-off', is_active=False,
        )
        handle = build_group(count=2)

        TransitionEngine.submit_action(handle.tokens[0], 'decline', {'reason': 'terms unacceptable'})

        assert not WebhookEvent.objects.exists()
        post.assert_not_called()

    def test_owner_scoped_webhook_only_sees_its_owner(self, post):
        mine = Webhook.objects.create(
            url='https://hooks.example.com/mine', owner_id='owner-1',
            subscribed_events=['group.cancelled'], secret='whsec-mine',
        )
        Webhook.objects.create(
            url='https://hooks.example.com/theirs', owner_id='owner-2',
            subscribed_events=['group.cancelled'], secret='whsec-theirs',
        )
        handle = build_group(count=1)

        GroupService.cancel_group(handle.group_id, 'owner-1')

        event = WebhookEvent.objects.get()
        assert event.webhook == mine
        assert str(event.group_id) == handle.group_id

    def test_cancellation_event(self, webhook, post):
        handle = build_group(count=1)
        GroupService.cancel_group(handle.group_id, 'owner-1', 'No longer needed')

        event = WebhookEvent.objects.get()
        assert event.event_type == 'group.cancelled'
        assert event.payload['reason'] == 'No longer needed'

    def test_failing_receiver_is_retried_then_marked_failed(self, webhook, post):
        post.return_value = response(500, 'boom')
        handle = build_group(count=2)

        TransitionEngine.submit_action(handle.tokens[0], 'sign', {'fields': handle.values_for(0)})

        event = WebhookEvent.objects.get()
        assert event.status == 'failed'
        assert event.attempt_count == 4
        assert list(event.attempts.values_list('number', flat=True)) == [1, 2, 3, 4]
        assert 'HTTP 500' in event.last_error
        assert post.call_count == 4
        webhook.refresh_from_db()
        assert webhook.failed_count == 1

    def test_receiver_outage_does_not_affect_signing(self, webhook, post):
        post.side_effect = requests.exceptions.ConnectionError('unreachable')
        handle = build_group(count=2)

        assert TransitionEngine.submit_action(
            handle.tokens[0], 'sign', {'fields': handle.values_for(0)}
        ) == 'signed'


class TestWebhookApi:

    def test_create_generates_secret_and_validates_events(self):
        client = APIClient()

        created = client.post('/api/webhooks/', {
            'url': 'https://hooks.example.com/new',
            'subscribed_events': ['group.completed'],
        }, format='json')
        assert created.status_code == 201
        assert created.data['secret'] == Webhook.objects.get(pk=created.data['id']).secret
        assert 'secret' not in client.get(f"/api/webhooks/{created.data['id']}/").data

        rotated = client.post(f"/api/webhooks/{created.data['id']}/rotate-secret/")
        assert rotated.data['secret'] != created.data['secret']

        rejected = client.post('/api/webhooks/', {
            'url': 'https://hooks.example.com/new',
            'subscribed_events': ['document.shredded'],
        }, format='json')
        assert rejected.status_code == 400

    def test_test_delivery(self, webhook, post):
        result = APIClient().post(f"/api/webhooks/{webhook.pk}/test/")
        assert result.data['delivered'] is True
        assert result.data['event']['status'] == 'delivered'
