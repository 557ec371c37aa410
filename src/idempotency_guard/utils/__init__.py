"""Utility modules for idempotency handling."""

from .headers import (
    SENSITIVE_REQUEST_HEADERS,
    filter_request_headers,
    filter_response_headers,
    get_header_value,
)

__all__ = [
    "filter_request_headers",
    "filter_response_headers",
    "get_header_value",
    "SENSITIVE_REQUEST_HEADERS",
]
