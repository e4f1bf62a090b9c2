"""
Shared fixtures.

Collaborators are swapped for the in-memory fakes in ``tests.fakes`` and
Celery runs tasks eagerly. Integration modules use transactional
databases so ``transaction.on_commit`` callbacks (notifications,
finalization) actually fire.
"""

import pytest

from .fakes import InMemoryBlobStore, RecordingAssembler, RecordingNotifier


@pytest.fixture(autouse=True)
def signing_settings(settings):
    settings.SIGNING = {
        **settings.SIGNING,
        'BLOB_STORE': 'tests.fakes.InMemoryBlobStore',
        'ARTIFACT_ASSEMBLER': 'tests.fakes.RecordingAssembler',
        'NOTIFIER': 'tests.fakes.RecordingNotifier',
    }
    settings.FRONTEND_BASE_URL = 'https://sign.example.com'
    settings.EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'
    settings.CRON_SECRET = 'test-cron-secret'
    return settings


@pytest.fixture(autouse=True)
def reset_fakes():
    InMemoryBlobStore.reset()
    RecordingAssembler.reset()
    RecordingNotifier.reset()
    yield


@pytest.fixture(autouse=True)
def eager_celery():
    from signflow.celery import app

    app.conf.CELERY_TASK_ALWAYS_EAGER = True
    app.conf.CELERY_TASK_EAGER_PROPAGATES = True
    yield
    app.conf.CELERY_TASK_ALWAYS_EAGER = False


@pytest.fixture
def notifier():
    return RecordingNotifier


@pytest.fixture
def assembler():
    return RecordingAssembler
