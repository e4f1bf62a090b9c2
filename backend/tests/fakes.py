"""
In-memory collaborators wired in through ``settings.SIGNING`` during tests.

State is kept on the class because the workflow builds a fresh instance
per call; the autouse ``reset_fakes`` fixture clears it between tests.
"""

import uuid

from signing.exceptions import DependencyFailure, NotFoundError


class InMemoryBlobStore:
    blobs = {}

    def __init__(self, storage=None):
        pass

    def put(self, data, meta=None):
        ref = f"mem/{uuid.uuid4().hex}"
        InMemoryBlobStore.blobs[ref] = bytes(data)
        return ref

    def get(self, ref):
        try:
            return InMemoryBlobStore.blobs[ref]
        except KeyError:
            raise NotFoundError(f"Blob {ref} not found")

    @classmethod
    def reset(cls):
        cls.blobs = {}


class RecordingAssembler:
    """Records compose/merge calls; fails the next ``fail_times`` composes with ``failure``."""
    calls = []
    fail_times = 0
    failure = None

    def __init__(self, blob_store=None):
        self.blob_store = blob_store or InMemoryBlobStore()

    def compose(self, document, signed_entries):
        if RecordingAssembler.fail_times > 0:
            RecordingAssembler.fail_times -= 1
            raise RecordingAssembler.failure or DependencyFailure('assembler unavailable')
        entries = list(signed_entries)
        RecordingAssembler.calls.append(('compose', document.pk, [e.recipient_index for e in entries]))
        return self.blob_store.put(f"composed:{document.pk}".encode(), {'filename': 'signed.pdf'})

    def merge(self, refs):
        RecordingAssembler.calls.append(('merge', list(refs)))
        return self.blob_store.put(b'|'.join(self.blob_store.get(r) for r in refs), {'filename': 'envelope.pdf'})

    @classmethod
    def composes(cls):
        return [c for c in cls.calls if c[0] == 'compose']

    @classmethod
    def reset(cls):
        cls.calls = []
        cls.fail_times = 0
        cls.failure = None


class RecordingNotifier:
    sent = []
    fail = False

    def send(self, kind, address, data):
        if RecordingNotifier.fail:
            raise ConnectionError('mail server down')
        RecordingNotifier.sent.append((str(kind), address, dict(data)))
        return True

    @classmethod
    def of_kind(cls, kind, address=None):
        return [
            (k, a, d) for k, a, d in cls.sent
            if k == str(kind) and (address is None or a == address)
        ]

    @classmethod
    def reset(cls):
        cls.sent = []
        cls.fail = False
