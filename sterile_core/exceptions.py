# sterile_core/exceptions.py
"""
Domain failures raised by the sterilization core.

The core never maps these to HTTP itself; `api_exception_handler` is the
transport adapter hook registered in REST_FRAMEWORK["EXCEPTION_HANDLER"].
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from rest_framework import status

logger = logging.getLogger(__name__)


class SterilizationError(Exception):
    """
    Base class for every typed failure of the core.
    """

    code = "error"
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, *, field: Optional[str] = None, **extra: Any):
        self.message = message
        self.field = field
        self.extra = extra
        super().__init__(message)

    @property
    def detail(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"code": self.code, "error": self.message}
        if self.field:
            out["field"] = self.field
        out.update(self.extra)
        return out


class ValidationError(SterilizationError):
    code = "validation_error"
    http_status = status.HTTP_400_BAD_REQUEST


class Conflict(SterilizationError):
    code = "conflict"
    http_status = status.HTTP_409_CONFLICT


class InvalidTransition(SterilizationError):
    code = "invalid_transition"
    http_status = status.HTTP_409_CONFLICT


class PreconditionNotMet(SterilizationError):
    code = "precondition_not_met"
    http_status = status.HTTP_412_PRECONDITION_FAILED

    def __init__(self, message: str, *, remaining_minutes: int, **extra: Any):
        self.remaining_minutes = remaining_minutes
        super().__init__(message, remaining_minutes=remaining_minutes, **extra)


class NotFound(SterilizationError):
    code = "not_found"
    http_status = status.HTTP_404_NOT_FOUND


class Forbidden(SterilizationError):
    code = "forbidden"
    http_status = status.HTTP_403_FORBIDDEN


def api_exception_handler(exc, context):
    """
    DRF exception handler: domain errors become JSON bodies with their
    status code, everything else falls through to DRF's default handling.
    """
    from rest_framework.response import Response
    from rest_framework.views import exception_handler

    if isinstance(exc, SterilizationError):
        view = context.get("view")
        logger.info(
            "%s rejected by core: %s (%s)",
            view.__class__.__name__ if view is not None else "request",
            exc.code,
            exc.message,
        )
        return Response(exc.detail, status=exc.http_status)

    return exception_handler(exc, context)
