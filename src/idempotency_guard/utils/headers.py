"""Header filtering and lookup utilities for idempotency handling.

This module provides functions for:
- Redacting credentials from request headers before a snapshot is stored
- Restricting response headers to the set that is safe to replay
- Case-insensitive header lookup and merging
"""

# Request headers that never reach the store (exact match, lowercase)
SENSITIVE_REQUEST_HEADERS = {
    "authorization",
    "proxy-authorization",
    "cookie",
    "set-cookie",
    "x-auth-token",
    "x-csrf-token",
    "x-xsrf-token",
    "x-api-key",
}

# Request header name prefixes that are always treated as credentials
SENSITIVE_REQUEST_HEADER_PREFIXES = (
    "x-auth-",
    "x-token-",
    "x-secret-",
    "x-key-",
)

# Response header name prefixes that survive capture and replay
REPLAYABLE_RESPONSE_HEADER_PREFIXES = (
    "content-",
    "access-control-allow-",
)

# Response headers that survive capture and replay (exact match, lowercase)
REPLAYABLE_RESPONSE_HEADERS = {
    "location",
}


def is_sensitive_request_header(name: str) -> bool:
    """Tell whether a request header carries credentials.

    Args:
        name: Header name (any case)

    Returns:
        True if the header must be redacted from stored snapshots

    Example:
        >>> is_sensitive_request_header("X-Auth-Session")
        True
        >>> is_sensitive_request_header("Accept")
        False
    """
    lowered = name.lower()
    if lowered in SENSITIVE_REQUEST_HEADERS:
        return True
    return lowered.startswith(SENSITIVE_REQUEST_HEADER_PREFIXES)


def is_replayable_response_header(name: str) -> bool:
    """Tell whether a response header may be cached and replayed.

    Args:
        name: Header name (any case)

    Returns:
        True if the header belongs to the replay whitelist

    Example:
        >>> is_replayable_response_header("Content-Type")
        True
        >>> is_replayable_response_header("ETag")
        False
    """
    lowered = name.lower()
    if lowered in REPLAYABLE_RESPONSE_HEADERS:
        return True
    return lowered.startswith(REPLAYABLE_RESPONSE_HEADER_PREFIXES)


def filter_request_headers(headers: dict[str, str]) -> dict[str, str]:
    """Remove credentials from request headers.

    Header names and values that are kept are preserved verbatim.

    Args:
        headers: Original request headers

    Returns:
        New headers dictionary without sensitive entries

    Example:
        >>> filter_request_headers({
        ...     "Authorization": "Bearer abc",
        ...     "x-token-refresh": "r1",
        ...     "Content-Type": "application/json",
        ... })
        {'Content-Type': 'application/json'}
    """
    return {key: value for key, value in headers.items() if not is_sensitive_request_header(key)}


def filter_response_headers(headers: dict[str, str]) -> dict[str, str]:
    """Keep only response headers that are safe to replay.

    Only ``content-*``, ``access-control-allow-*`` and ``location`` survive.
    Caching, validation and session headers (``cache-control``, ``etag``,
    ``set-cookie``...) are dropped along with any custom header.

    Args:
        headers: Original response headers

    Returns:
        New headers dictionary restricted to the replay whitelist

    Example:
        >>> filter_response_headers({
        ...     "Content-Type": "application/json",
        ...     "ETag": '"abc"',
        ...     "Location": "/orders/1",
        ... })
        {'Content-Type': 'application/json', 'Location': '/orders/1'}
    """
    return {key: value for key, value in headers.items() if is_replayable_response_header(key)}


def get_header_value(
    headers: dict[str, str],
    header_name: str,
    default: str | None = None,
) -> str | None:
    """Get header value with case-insensitive lookup.

    Args:
        headers: Headers dictionary
        header_name: Name of header to find (case-insensitive)
        default: Default value if header not found

    Returns:
        Header value or default

    Example:
        >>> headers = {"Content-Type": "application/json"}
        >>> get_header_value(headers, "content-type")
        'application/json'
        >>> get_header_value(headers, "missing", "default")
        'default'
    """
    header_name_lower = header_name.lower()

    for key, value in headers.items():
        if key.lower() == header_name_lower:
            return value

    return default


def merge_headers(*header_dicts: dict[str, str]) -> dict[str, str]:
    """Merge multiple header dictionaries with case-insensitive key handling.

    Later dictionaries override earlier ones. Keys from the last dict are used.

    Args:
        *header_dicts: Variable number of header dictionaries to merge

    Returns:
        Merged headers dictionary

    Example:
        >>> h1 = {"Content-Type": "text/html"}
        >>> h2 = {"content-type": "application/json", "X-Custom": "value"}
        >>> merge_headers(h1, h2)
        {'content-type': 'application/json', 'X-Custom': 'value'}
    """
    # Track canonical case for each header (use last seen)
    canonical_keys: dict[str, str] = {}
    result: dict[str, str] = {}

    for headers in header_dicts:
        for key, value in headers.items():
            key_lower = key.lower()

            if key_lower in canonical_keys:
                old_key = canonical_keys[key_lower]
                if old_key in result:
                    del result[old_key]

            canonical_keys[key_lower] = key
            result[key] = value

    return result
