"""
Affiliate webhook endpoint.

Networks call ``POST /api/webhooks/affiliates/<network_type>/``. The raw
body is handed to the dispatcher untouched so signatures are checked
against the exact bytes that were signed. Multi-tenant deployments pass
``?tenant=<id>`` in the URL registered with the network.
"""

import logging

from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from networks.services.manager import get_network_manager

logger = logging.getLogger(__name__)


class AffiliateWebhookView(APIView):
    """Receives network callbacks; trust is established by the dispatcher."""

    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_classes = []

    def post(self, request, network_type):
        raw_body = request.body
        result = get_network_manager().dispatcher.dispatch(
            network_type,
            raw_body,
            headers=request.headers,
            remote_addr=request.META.get("REMOTE_ADDR"),
            tenant_id=request.query_params.get("tenant") or None,
        )
        if result.success:
            logger.info(f"Handled {network_type} webhook ({result.event_type.value})")
        return Response(result.to_dict(), status=result.status_code)
