"""
Network URLs

URL routing for the networks app.
"""

from django.urls import path
from .views import AffiliateWebhookView

urlpatterns = [
    path('webhooks/affiliates/<str:network_type>/', AffiliateWebhookView.as_view(), name='affiliate-webhook'),
]
