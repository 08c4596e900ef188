"""
URL configuration for the ledger project.

URL Structure:
    /admin/   - Django admin (ledger, settlements, accounts)

The ledger has no public HTTP surface; read layers and payment processing
call the service modules directly.
"""

from django.contrib import admin
from django.urls import path

urlpatterns = [
    path("admin/", admin.site.urls),
]
