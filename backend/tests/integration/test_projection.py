"""Status view through a link: own values, shared signatures and gates."""

import pytest

from signing.exceptions import NotFoundError
from signing.services import LedgerProjection, TransitionEngine

from ..factories import build_group

pytestmark = pytest.mark.django_db(transaction=True)


def sign(handle, index):
    TransitionEngine.submit_action(handle.tokens[index], 'sign', {'fields': handle.values_for(index)})


class TestStatusView:

    def test_signed_values_round_trip_into_fields(self):
        handle = build_group(count=2)
        sign(handle, 0)

        view = LedgerProjection.status_view(handle.tokens[0])

        assert view['recipient']['status'] == 'signed'
        assert view['recipient']['signed_payload'] == handle.values_for(0)
        fields = view['documents'][0]['fields']
        assert [f['value'] for f in fields] == list(handle.values_for(0).values())
        assert view['documents'][0]['signed'] is True
        assert view['may_act'] is False

    def test_isolated_mode_hides_other_signatures(self):
        handle = build_group(count=3, view_mode='isolated')
        sign(handle, 0)

        view = LedgerProjection.status_view(handle.tokens[1])

        assert 'shared_signatures' not in view
        assert all(f['value'] is None for f in view['documents'][0]['fields'])
        assert view['may_act'] is True

    def test_shared_mode_exposes_other_signed_entries(self):
        handle = build_group(count=3, view_mode='shared')
        sign(handle, 0)
        sign(handle, 2)

        view = LedgerProjection.status_view(handle.tokens[1])

        assert view['shared_signatures'] == {
            '0': handle.values_for(0),
            '2': handle.values_for(2),
        }

    def test_status_view_does_not_mark_viewed(self):
        handle = build_group(count=2)
        LedgerProjection.status_view(handle.tokens[0])
        assert handle.entry(0).status == 'pending'

    def test_sequential_current_turn(self):
        handle = build_group(count=3, signing_order='sequential')
        sign(handle, 0)

        view = LedgerProjection.status_view(handle.tokens[2])

        assert view['current_turn'] == [1]
        assert view['may_act'] is False

    def test_gated_link_gets_limited_view(self):
        handle = build_group(count=2, recipient_overrides={0: {'access_code': 'blue whale'}})

        view = LedgerProjection.status_view(handle.tokens[0])

        assert view['access_required'] == ['access_code']
        assert 'documents' not in view

    def test_unknown_token(self):
        with pytest.raises(NotFoundError):
            LedgerProjection.status_view('no-such-token')
