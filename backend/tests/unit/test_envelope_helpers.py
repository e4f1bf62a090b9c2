from signing.services.envelope import EnvelopeCoordinator


def test_documents_without_fields_are_pre_acknowledged():
    specs = [
        {'document_id': 1, 'recipient_index': 0},
        {'document_id': 2, 'recipient_index': 0},
        {'document_id': 1, 'recipient_index': 1},
    ]
    assert EnvelopeCoordinator.pre_acknowledged([1, 2], specs, 0) == []
    assert EnvelopeCoordinator.pre_acknowledged([1, 2], specs, 1) == [2]


def test_flatten_payloads_merges_documents():
    flat = EnvelopeCoordinator.flatten_payloads({'1': {'10': 'a'}, '2': {'11': 'b'}})
    assert flat == {'10': 'a', '11': 'b'}
