"""HTTP surface: uploads, group management, link actions and the cron trigger."""

from datetime import timedelta

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from django.utils import timezone
from rest_framework.test import APIClient

from signing.models import LedgerEvent

from ..factories import build_group, make_pdf

pytestmark = pytest.mark.django_db(transaction=True)


@pytest.fixture
def client():
    return APIClient()


def upload(client, name='contract.pdf', data=None):
    return client.post('/api/documents/', {
        'file': SimpleUploadedFile(name, data if data is not None else make_pdf(2), content_type='application/pdf'),
        'display_name': 'Contract',
    }, format='multipart')


def group_payload(document_id, count=2, **overrides):
    payload = {
        'title': 'Lease',
        'owner_id': 'owner-1',
        'owner_email': 'owner@example.com',
        'owner_name': 'Olivia Owner',
        'documents': [document_id],
        'recipients': [
            {'name': f"Recipient {i}", 'email': f"recipient{i}@example.com"} for i in range(count)
        ],
        'fields': [
            {
                'document': document_id,
                'recipient_index': i,
                'field_type': 'signature',
                'page_number': 2,
                'x_pct': 0.1,
                'y_pct': 0.5 + 0.1 * i,
                'width_pct': 0.3,
                'height_pct': 0.05,
            }
            for i in range(count)
        ],
        'signing_order': 'sequential',
        'due_date': (timezone.now() + timedelta(days=7)).isoformat(),
    }
    payload.update(overrides)
    return payload


class TestDocuments:

    def test_upload_reads_page_count_and_hash(self, client):
        response = upload(client)

        assert response.status_code == 201
        assert response.data['page_count'] == 2
        assert response.data['display_name'] == 'Contract'
        assert len(response.data['sha256']) == 64

        detail = client.get(f"/api/documents/{response.data['id']}/")
        assert detail.status_code == 200

    def test_non_pdf_upload_is_rejected(self, client):
        response = upload(client, name='notes.txt', data=b'hello')
        assert response.status_code == 400
        assert response.data['code'] == 'validation_error'

    def test_unreadable_pdf_is_rejected(self, client):
        response = upload(client, data=b'%PDF-1.4 garbage')
        assert response.status_code == 400


class TestGroupLifecycle:

    def test_create_view_and_sign_through_links(self, client):
        document_id = upload(client).data['id']

        response = client.post('/api/groups/', group_payload(document_id), format='json')

        assert response.status_code == 201
        links = response.data['links']
        assert [link['recipient_index'] for link in links] == [0, 1]
        assert links[0]['url'].startswith('https://sign.example.com/sign/')
        group_id = response.data['group_id']

        status_view = client.get(f"/api/sign/{links[0]['token']}/")
        assert status_view.status_code == 200
        field = status_view.data['documents'][0]['fields'][0]
        assert status_view.data['may_act'] is True

        viewed = client.post(
            f"/api/sign/{links[0]['token']}/actions/", {'action': 'view'},
            format='json', HTTP_USER_AGENT='api-test', REMOTE_ADDR='198.51.100.4',
        )
        assert viewed.data == {'status': 'viewed'}

        out_of_turn = client.post(
            f"/api/sign/{links[1]['token']}/actions/",
            {'action': 'sign', 'payload': {'fields': {'1': 'x'}}}, format='json',
        )
        assert out_of_turn.status_code == 409
        assert out_of_turn.data['code'] == 'state_conflict'

        signed = client.post(
            f"/api/sign/{links[0]['token']}/actions/",
            {'action': 'sign', 'payload': {'fields': {str(field['id']): 'Recipient 0'}}}, format='json',
        )
        assert signed.data == {'status': 'signed'}

        summary = client.get(f"/api/groups/{group_id}/")
        assert [r['status'] for r in summary.data['recipients']] == ['signed', 'pending']

        event = LedgerEvent.objects.get(action='view')
        assert event.user_agent == 'api-test'
        assert event.ip_address == '198.51.100.4'

    def test_invalid_field_placement(self, client):
        document_id = upload(client).data['id']
        payload = group_payload(document_id)
        payload['fields'][0]['x_pct'] = 0.9

        response = client.post('/api/groups/', payload, format='json')

        assert response.status_code == 400
        assert 'fields' in response.data['details']

    def test_page_outside_document(self, client):
        document_id = upload(client).data['id']
        payload = group_payload(document_id)
        payload['fields'][1]['page_number'] = 5

        response = client.post('/api/groups/', payload, format='json')

        assert response.status_code == 400
        assert response.data['details']['fields'][0]['field'] == 1

    def test_unknown_token_and_action(self, client):
        assert client.get('/api/sign/missing/').data['code'] == 'not_found'

        handle = build_group(count=1)
        response = client.post(f"/api/sign/{handle.tokens[0]}/actions/", {'action': 'shred'}, format='json')
        assert response.status_code == 400

    def test_short_decline_reason(self, client):
        handle = build_group(count=1)
        response = client.post(
            f"/api/sign/{handle.tokens[0]}/actions/",
            {'action': 'decline', 'payload': {'reason': 'nope'}}, format='json',
        )
        assert response.status_code == 400
        assert 'at least 10' in response.data['error']

    def test_cancel_requires_owner_and_closes_group(self, client):
        handle = build_group(count=2)
        url = f"/api/groups/{handle.group_id}/cancel/"

        assert client.post(url, {'owner_id': 'intruder'}, format='json').status_code == 403

        response = client.post(url, {'owner_id': 'owner-1', 'reason': 'Deal fell through'}, format='json')
        assert response.status_code == 200
        assert response.data['status'] == 'cancelled'
        assert {r['status'] for r in response.data['recipients']} == {'cancelled'}

        again = client.post(url, {'owner_id': 'owner-1'}, format='json')
        assert again.status_code == 409

    def test_delete(self, client):
        handle = build_group(count=1)
        url = f"/api/groups/{handle.group_id}/"

        assert client.delete(f"{url}?owner_id=intruder").status_code == 403
        assert client.delete(f"{url}?owner_id=owner-1").status_code == 204
        assert client.get(url).status_code == 404

    def test_remind_and_events(self, client):
        handle = build_group(count=1)

        response = client.post(
            f"/api/groups/{handle.group_id}/recipients/0/remind/", {'owner_id': 'owner-1'}, format='json'
        )
        assert response.data == {'delivered': True, 'reminder_count': 1}

        events = client.get(f"/api/groups/{handle.group_id}/events/").data
        assert [e['action'] for e in events] == ['create', 'remind']
        assert all(e['is_verified'] for e in events)

        LedgerEvent.objects.filter(action='remind').update(metadata={'delivered': False})
        events = client.get(f"/api/groups/{handle.group_id}/events/").data
        assert [e['is_verified'] for e in events] == [True, False]

    def test_reassign(self, client):
        handle = build_group(count=2)
        response = client.post(
            f"/api/groups/{handle.group_id}/recipients/1/reassign/",
            {'owner_id': 'owner-1', 'name': 'Rita', 'email': 'rita@example.com'}, format='json',
        )
        assert response.status_code == 200
        assert response.data['status'] == 'pending'
        assert client.get(f"/api/sign/{handle.tokens[1]}/").status_code == 403
        assert client.get(f"/api/sign/{response.data['link']['token']}/").status_code == 200

    def test_retry_without_failure_conflicts(self, client):
        handle = build_group(count=1)
        response = client.post(
            f"/api/groups/{handle.group_id}/retry-finalization/", {'owner_id': 'owner-1'}, format='json'
        )
        assert response.status_code == 409


class TestVerificationEndpoints:

    def test_access_code_endpoint(self, client):
        handle = build_group(count=1, recipient_overrides={0: {'access_code': 'opensesame'}})
        url = f"/api/sign/{handle.tokens[0]}/access-code/"

        denied = client.post(url, {'access_code': 'nope'}, format='json')
        assert denied.status_code == 403
        assert denied.data['details'] == {'attempts_remaining': 4}

        assert client.post(url, {'access_code': 'OpenSesame'}, format='json').data == {'verified': True}
        assert 'access_required' not in client.get(f"/api/sign/{handle.tokens[0]}/").data

    def test_verification_endpoint(self, client, notifier):
        handle = build_group(count=1, recipient_overrides={0: {'require_verification': True}})
        url = f"/api/sign/{handle.tokens[0]}/verification/"

        issued = client.post(url, {}, format='json')
        assert issued.status_code == 202
        code = notifier.of_kind('verification_code')[0][2]['code']

        assert client.post(url, {'code': code}, format='json').data == {'verified': True}


class TestCronTrigger:

    def test_requires_secret(self, client):
        response = client.post('/api/cron/sweep/')
        assert response.status_code == 403
        assert response.data['code'] == 'access_denied'

        wrong = client.post('/api/cron/sweep/', HTTP_AUTHORIZATION='Bearer nope')
        assert wrong.status_code == 403

    def test_runs_sweep(self, client):
        build_group(count=1)
        response = client.post('/api/cron/sweep/', HTTP_AUTHORIZATION='Bearer test-cron-secret')
        assert response.status_code == 200
        assert response.data['reminders'] == 0
