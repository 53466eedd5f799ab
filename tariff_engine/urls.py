"""URL configuration for tariff_engine project. Everything is served through the admin."""

from django.contrib import admin
from django.urls import path

urlpatterns = [
    path("admin/", admin.site.urls),
]
