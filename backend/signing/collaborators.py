"""
Pluggable collaborators, resolved from ``settings.SIGNING`` dotted paths.

Instances are built per call so settings overrides take effect immediately.
"""

from django.conf import settings
from django.utils.module_loading import import_string


def signing_setting(name):
    return settings.SIGNING[name]


def get_blob_store():
    return import_string(signing_setting('BLOB_STORE'))()


def get_artifact_assembler():
    return import_string(signing_setting('ARTIFACT_ASSEMBLER'))(blob_store=get_blob_store())


def get_notifier():
    return import_string(signing_setting('NOTIFIER'))()
