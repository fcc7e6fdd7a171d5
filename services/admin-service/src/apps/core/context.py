"""
Ambient request context.

RequestContextMiddleware publishes the current request here so that code
deep in the service layer (audit logging in particular) can enrich its
records without the request being threaded through every call.
"""

import uuid
from contextvars import ContextVar
from typing import Optional

from django.core.exceptions import ValidationError
from django.core.validators import validate_ipv46_address
from django.http import HttpRequest

REQUEST_ID_HEADER = 'X-Request-ID'

_current_request: ContextVar[Optional[HttpRequest]] = ContextVar('current_request', default=None)


def get_current_request() -> Optional[HttpRequest]:
    return _current_request.get()


def set_current_request(request: Optional[HttpRequest]):
    """Set the ambient request. Returns a token for ``reset_current_request``."""
    return _current_request.set(request)


def reset_current_request(token) -> None:
    _current_request.reset(token)


def _valid_ip(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    try:
        validate_ipv46_address(value)
    except ValidationError:
        return None
    return value


def get_client_ip(request: HttpRequest) -> Optional[str]:
    """
    Client IP: first entry of X-Forwarded-For, then X-Real-IP, then the
    direct connection address. Header values that are not IP addresses are
    skipped.
    """
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    forwarded = x_forwarded_for.split(',')[0].strip() if x_forwarded_for else None

    for candidate in (forwarded, request.META.get('HTTP_X_REAL_IP'), request.META.get('REMOTE_ADDR')):
        ip = _valid_ip(candidate)
        if ip:
            return ip
    return None


def get_request_id(request: HttpRequest) -> str:
    """Reuse the correlation id the request already carries, or mint one."""
    request_id = getattr(request, 'request_id', None) or request.headers.get(REQUEST_ID_HEADER)
    return request_id or str(uuid.uuid4())
