"""
AffSync URL Configuration
"""

from django.urls import path, include
from django.http import JsonResponse


def api_root(request):
    """API root - public surface is minimal."""
    return JsonResponse({
        "service": "AffSync API",
        "version": "1.0.0",
    })


urlpatterns = [
    path("api/", api_root, name="api-root"),
    path("api/", include("networks.urls")),
]
