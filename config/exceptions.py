"""DRF exception handler that understands the chat/trip domain errors."""

from __future__ import annotations

import logging

from rest_framework import exceptions
from rest_framework import status
from rest_framework.views import exception_handler

from baycation.realtime.exceptions import AlreadyAnswered
from baycation.realtime.exceptions import AlreadyExists
from baycation.realtime.exceptions import AlreadyJoined
from baycation.realtime.exceptions import AuthError
from baycation.realtime.exceptions import AuthorizationError
from baycation.realtime.exceptions import ConflictError
from baycation.realtime.exceptions import NotFoundError
from baycation.realtime.exceptions import RealtimeError
from baycation.realtime.exceptions import TransientStoreError
from baycation.realtime.exceptions import ValidationError

logger = logging.getLogger(__name__)


class Conflict(exceptions.APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict."
    default_code = "conflict"


class ServiceUnavailable(exceptions.APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Service temporarily unavailable, try again later."
    default_code = "service_unavailable"


_MAPPING: list[tuple[type[RealtimeError], type[exceptions.APIException]]] = [
    (AuthError, exceptions.NotAuthenticated),
    (AuthorizationError, exceptions.PermissionDenied),
    (NotFoundError, exceptions.NotFound),
    (ValidationError, exceptions.ValidationError),
    (AlreadyAnswered, Conflict),
    (AlreadyJoined, Conflict),
    (AlreadyExists, Conflict),
    (ConflictError, Conflict),
    (TransientStoreError, ServiceUnavailable),
]


def to_api_exception(exc: RealtimeError) -> exceptions.APIException:
    for domain_cls, api_cls in _MAPPING:
        if isinstance(exc, domain_cls):
            return api_cls(detail=exc.message, code=exc.code)
    return exceptions.APIException(detail=exc.message, code=exc.code)


def api_exception_handler(exc, context):
    if isinstance(exc, RealtimeError):
        exc = to_api_exception(exc)
    return exception_handler(exc, context)
