"""
Request Context Middleware

Assigns every request a correlation id and publishes the request as the
ambient context read by the audit log.
"""

from typing import Callable

from django.http import HttpRequest, HttpResponse

from apps.core.context import (
    REQUEST_ID_HEADER,
    get_request_id,
    reset_current_request,
    set_current_request,
)


class RequestContextMiddleware:
    """
    Middleware that adds a unique request ID to each request and exposes
    the request to the service layer for the duration of the call.
    """

    def __init__(self, get_response: Callable):
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        # Reuse the caller's X-Request-ID or generate a new one
        request.request_id = get_request_id(request)

        token = set_current_request(request)
        try:
            response = self.get_response(request)
        finally:
            reset_current_request(token)

        response[REQUEST_ID_HEADER] = request.request_id
        return response
