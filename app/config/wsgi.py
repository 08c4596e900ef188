"""
WSGI config for the ledger project.

Exposes the WSGI callable as a module-level variable named `application`,
used to serve the Django admin.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
