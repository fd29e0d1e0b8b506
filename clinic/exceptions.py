"""
Error taxonomy for the booking workflow and the unified API handler.

Services raise these ``APIException`` subclasses directly; the handler
below turns every error into ``{'ok': False, 'error': {...}}`` so that
callers see one shape regardless of where the failure originated.
"""
import logging

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.http import Http404
from rest_framework import exceptions, status
from rest_framework.exceptions import APIException, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = 'Service temporarily unavailable, please try again.'


class BookingValidationError(APIException):
    """Bad or missing input; never retried automatically."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid booking request.'
    default_code = 'validation_error'


class ResourceNotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Resource not found.'
    default_code = 'not_found'


class SlotConflict(APIException):
    """The requested slot was taken between the availability read and the write."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'The requested time slot is no longer available. Refresh availability and choose again.'
    default_code = 'slot_conflict'


class InvalidTransition(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'This status change is not allowed.'
    default_code = 'invalid_transition'


class DependencyError(APIException):
    """The store failed for non-business reasons.  Carries no internal detail."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = GENERIC_FAILURE_MESSAGE
    default_code = 'dependency_error'


def api_exception_handler(exc, context):
    resp = drf_exception_handler(exc, context)
    if resp is None:
        view = context.get('view') if context else None
        logger.error('Unhandled error in %s', getattr(view, '__class__', type(None)).__name__, exc_info=exc)
        return Response(
            {'ok': False, 'error': {'code': 'server_error', 'message': GENERIC_FAILURE_MESSAGE}},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    # normalize response
    if isinstance(exc, ValidationError):
        code = BookingValidationError.default_code
    elif isinstance(exc, Http404):
        code = exceptions.NotFound.default_code
    elif isinstance(exc, DjangoPermissionDenied):
        code = exceptions.PermissionDenied.default_code
    else:
        code = getattr(exc, 'default_code', None) or 'api_error'
    if isinstance(resp.data, dict):
        detail = resp.data.get('detail') or resp.data
    else:
        detail = resp.data
    return Response({'ok': False, 'error': {'code': code, 'message': detail}}, status=resp.status_code)
