"""
Core views providing infrastructure endpoints and shared response helpers.

Contents:
    health_check: Liveness/readiness endpoint used by Docker and load balancers
    error_response: Render a BaseApplicationError as a DRF response
"""

from __future__ import annotations

import logging

from django.core.cache import cache
from django.db import connection
from django.http import JsonResponse
from rest_framework.response import Response

from core.exceptions import BaseApplicationError

logger = logging.getLogger(__name__)


def error_response(exc: BaseApplicationError, **extra) -> Response:
    """
    Render a domain error with the status code it declares.

    Extra keyword arguments are merged into the body, for example the
    shortfall of a refused payout request.
    """
    body = exc.to_dict()
    body.update(extra)
    return Response(body, status=exc.http_status)


def _database_ok() -> bool:
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        return True
    except Exception:
        logger.exception("Health check: database unreachable")
        return False


def _cache_ok() -> bool:
    try:
        cache.set("health_check", "ok", timeout=1)
        return cache.get("health_check") == "ok"
    except Exception:
        logger.warning("Health check: cache unreachable", exc_info=True)
        return False


def health_check(request):
    """
    Health check endpoint for monitoring and orchestration.

    The database is required. Redis backs locks and the cache, and its
    loss degrades reconciliation but not request handling, so it is
    reported without failing the check.

    HTTP Status Codes:
        200: Database reachable
        503: Database unreachable

    Example Response:
        {"status": "healthy", "database": "connected", "cache": "connected"}
    """
    database = _database_ok()
    health_status = {
        "status": "healthy" if database else "unhealthy",
        "database": "connected" if database else "disconnected",
        "cache": "connected" if _cache_ok() else "disconnected",
    }
    return JsonResponse(health_status, status=200 if database else 503)
