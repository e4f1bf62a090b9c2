"""
Celery application for background work (finalization retries, reminder
sweeps, webhook delivery).
"""

import os

from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'signflow.settings')

app = Celery('signflow')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()
