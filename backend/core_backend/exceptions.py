"""
Project-wide DRF exception handler.

Renders ticket-engine domain errors with their own status codes and defers
everything else to DRF's default handler.
"""
import logging

from rest_framework.response import Response
from rest_framework.views import exception_handler

from tickets.exceptions import TicketError

logger = logging.getLogger(__name__)


def api_exception_handler(exc, context):
    if isinstance(exc, TicketError):
        request = context.get("request")
        logger.info(
            f"Ticket API error: {exc.__class__.__name__} ({exc.code})",
            extra={
                "status_code": exc.status_code,
                "path": getattr(request, "path", None),
                "method": getattr(request, "method", None),
            },
        )
        return Response(exc.as_dict(), status=exc.status_code)

    return exception_handler(exc, context)
