"""
URL configuration for the escrow engine.

The engine exposes no HTTP API of its own; request handling lives in the
calling service. Only the Django admin is routed here, for back-office
inspection of payments, distributions, wallets and payout requests.

URL Structure:
    /admin/                        - Django admin interface

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import path

urlpatterns = [
    path("admin/", admin.site.urls),
]
