"""Response replay logic.

Restores a completed idempotency resource onto an outgoing response:

1. Set the stored status code
2. Re-apply only whitelisted headers (the same filter used at capture time)
3. Write the stored body

The body is written with ``Response.finalize`` directly, so no finalize hook
can fire for a replayed response.

Examples:
    Replaying a completed resource::

        from idempotency_guard.core.replay import restore_response
        from idempotency_guard.http import Response

        response = restore_response(resource, Response())
        # response.status_code == 201
        # response.body == b'{"id": 1}'
"""

from idempotency_guard.http import Response
from idempotency_guard.models import IdempotencyResource
from idempotency_guard.utils.headers import filter_response_headers


def restore_response(resource: IdempotencyResource, response: Response) -> Response:
    """Write the captured outcome of ``resource`` onto ``response``.

    Args:
        resource: A completed idempotency resource
        response: The outgoing response for the replaying request

    Returns:
        The response, finalized with the stored body

    Raises:
        ValueError: If the resource is not completed
    """
    stored = resource.response
    if stored is None or not resource.is_completed:
        raise ValueError(f"Resource {resource.idempotency_key} has no completed response")

    response.status_code = stored.status_code
    for name, value in filter_response_headers(stored.headers).items():
        response.set_header(name, value)

    return response.finalize(stored.get_body_bytes())
