"""
WSGI config for the signflow project.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'signflow.settings')

application = get_wsgi_application()
