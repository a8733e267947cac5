"""
Domain error taxonomy and the DRF exception handler that renders it.

Services raise these plain exceptions; only the API edge knows about
HTTP status codes.
"""

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from apps.core.observability import metrics
from apps.core.observability.events import log_operation_blocked


class LifecycleError(Exception):
    """Base class for every refused domain operation."""
    code = 'lifecycle_error'
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message, operation=None):
        super().__init__(message)
        self.message = message
        self.operation = operation


class ValidationError(LifecycleError):
    """Input is missing or malformed."""
    code = 'validation_error'
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(LifecycleError):
    """Referenced entity does not exist (or is soft-deleted)."""
    code = 'not_found'
    status_code = status.HTTP_404_NOT_FOUND


class AuthorizationError(LifecycleError):
    """Principal is not allowed to perform the operation on this entity."""
    code = 'not_authorized'
    status_code = status.HTTP_403_FORBIDDEN


class InvalidStateError(LifecycleError):
    """Entity is not in a state that permits the operation."""
    code = 'invalid_state'
    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(LifecycleError):
    """Operation collides with concurrent or already-pending work."""
    code = 'conflict'
    status_code = status.HTTP_409_CONFLICT


def api_exception_handler(exc, context):
    """
    Render ``LifecycleError`` as ``{"error": ..., "code": ...}``.

    Everything else falls through to DRF's default handler.
    """
    if isinstance(exc, LifecycleError):
        view = context.get('view')
        request = context.get('request')
        operation = exc.operation or getattr(view, 'action', None) or 'unknown'
        metrics.lifecycle_errors_total.labels(operation=operation, error_code=exc.code).inc()
        actor = getattr(request, 'user', None)
        log_operation_blocked(
            operation,
            exc,
            actor=actor if actor is not None and actor.is_authenticated else None,
            object_id=context.get('kwargs', {}).get('pk'),
        )
        return Response({'error': exc.message, 'code': exc.code}, status=exc.status_code)

    return exception_handler(exc, context)
