"""
Admin Service Exceptions

Error kinds raised by the service layer and the exception handler that
renders them for the route layer.
"""

import logging
import traceback
from typing import Any, Dict, Iterable, Optional

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response

logger = logging.getLogger(__name__)


# =============================================================================
# BASE EXCEPTION
# =============================================================================

class AdminServiceError(APIException):
    """Base exception for all service-layer errors"""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'An unexpected error occurred.'
    default_code = 'error'
    error_code = 'INTERNAL_ERROR'

    def __init__(
        self,
        detail: Optional[str] = None,
        error_code: Optional[str] = None,
        extra_data: Optional[Dict[str, Any]] = None
    ):
        super().__init__(detail=detail)
        self.error_code = error_code or self.error_code
        self.extra_data = extra_data or {}

    @property
    def message(self) -> str:
        return str(self.detail)


# =============================================================================
# CLIENT ERRORS (4xx)
# =============================================================================

class ValidationError(AdminServiceError):
    """400 Malformed input, detected before any store access"""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Validation error.'
    default_code = 'validation_error'
    error_code = 'VALIDATION_ERROR'

    def __init__(self, errors: Any = None, detail: str = None, error_code: str = None):
        super().__init__(detail=detail, error_code=error_code)
        self.errors = errors or {}
        self.extra_data = {'errors': self.errors}


class UnauthenticatedError(AdminServiceError):
    """401 No valid session or credentials"""
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = 'Authentication credentials were not provided or are invalid.'
    default_code = 'unauthorized'
    error_code = 'UNAUTHORIZED'


class PermissionDeniedError(AdminServiceError):
    """403 Effective permissions do not satisfy the required check"""
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'You do not have permission to perform this action.'
    default_code = 'forbidden'
    error_code = 'FORBIDDEN'

    def __init__(self, detail: str = None, missing: Iterable[str] = None):
        self.missing = frozenset(missing or ())
        super().__init__(
            detail=detail,
            extra_data={'missing_permissions': sorted(self.missing)}
        )


class NotFoundError(AdminServiceError):
    """404 Referenced entity does not exist"""
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'The requested resource was not found.'
    default_code = 'not_found'
    error_code = 'NOT_FOUND'

    def __init__(self, entity_type: str, entity_id: Any = None, detail: str = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            detail=detail or f"{entity_type} not found",
            extra_data={'entity_type': entity_type, 'entity_id': str(entity_id) if entity_id else None}
        )


class ConflictError(AdminServiceError):
    """409 Duplicate assignment or unique field"""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'A conflict occurred with the current state of the resource.'
    default_code = 'conflict'
    error_code = 'CONFLICT'


class RateLimitExceededError(AdminServiceError):
    """429 Too Many Requests"""
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_detail = 'Too many requests. Please try again later.'
    default_code = 'too_many_requests'
    error_code = 'RATE_LIMITED'

    def __init__(self, retry_after: int = None, detail: str = None):
        self.retry_after = retry_after
        super().__init__(detail=detail, extra_data={'retry_after': retry_after})


# =============================================================================
# EXCEPTION HANDLER
# =============================================================================

def custom_exception_handler(exc, context) -> Optional[Response]:
    """
    DRF exception handler.
    Renders every error in the same envelope the route layer returns.
    """
    # rest_framework.views resolves DEFAULT_AUTHENTICATION_CLASSES on import
    from rest_framework.views import exception_handler

    request = context.get('request')
    request_id = getattr(request, 'request_id', None) if request else None

    response = exception_handler(exc, context)

    if response is not None:
        return format_error_response(exc, response, request_id)

    if isinstance(exc, DjangoValidationError):
        errors = exc.message_dict if hasattr(exc, 'message_dict') else {'detail': exc.messages}
        return Response(
            {
                'success': False,
                'error': {
                    'code': 'VALIDATION_ERROR',
                    'message': 'Validation error',
                    'details': errors,
                    'request_id': request_id,
                }
            },
            status=status.HTTP_400_BAD_REQUEST
        )

    if isinstance(exc, Http404):
        return Response(
            {
                'success': False,
                'error': {
                    'code': 'NOT_FOUND',
                    'message': str(exc) or 'Resource not found',
                    'request_id': request_id,
                }
            },
            status=status.HTTP_404_NOT_FOUND
        )

    logger.exception(
        f"Unhandled exception: {exc}",
        extra={
            'request_id': request_id,
            'exception_type': type(exc).__name__,
        }
    )

    if settings.DEBUG:
        return Response(
            {
                'success': False,
                'error': {
                    'code': 'INTERNAL_ERROR',
                    'message': str(exc),
                    'type': type(exc).__name__,
                    'traceback': traceback.format_exc().split('\n'),
                    'request_id': request_id,
                }
            },
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    return Response(
        {
            'success': False,
            'error': {
                'code': 'INTERNAL_ERROR',
                'message': 'An unexpected error occurred. Please try again later.',
                'request_id': request_id,
            }
        },
        status=status.HTTP_500_INTERNAL_SERVER_ERROR
    )


def format_error_response(exc, response: Response, request_id: str = None) -> Response:
    """Format error response in consistent structure"""
    error_code = getattr(exc, 'error_code', 'ERROR')
    extra_data = getattr(exc, 'extra_data', {})

    error_data = {
        'success': False,
        'error': {
            'code': error_code,
            'message': get_error_message(exc, response),
            'request_id': request_id,
        }
    }

    if extra_data.get('errors'):
        error_data['error']['details'] = extra_data['errors']
    elif extra_data:
        error_data['error']['details'] = extra_data
    elif isinstance(response.data, dict) and 'detail' not in response.data:
        error_data['error']['details'] = response.data

    response.data = error_data
    return response


def get_error_message(exc, response: Response) -> str:
    """Extract error message from exception or response"""
    if hasattr(exc, 'detail'):
        if isinstance(exc.detail, str):
            return exc.detail
        if isinstance(exc.detail, list) and exc.detail:
            return str(exc.detail[0])
        if isinstance(exc.detail, dict):
            return exc.detail.get('detail', str(exc.detail))

    if isinstance(response.data, dict):
        return response.data.get('detail', str(response.data))

    return str(response.data)
