"""HTTP plumbing shared by the token and profile clients.

Maps transport failures and provider status codes onto the
ProviderRejected / ProviderUnavailable taxonomy:

- timeouts, connection errors, 5xx and 429 -> :class:`ProviderUnavailableError`
- any other non-2xx -> :class:`ProviderRejectedError`
"""

from typing import Any

import httpx
from starlette import status
from structlog import get_logger

from social_connect.core.constants import MAX_ERROR_TEXT_LENGTH
from social_connect.exceptions import ProviderRejectedError, ProviderUnavailableError


logger = get_logger(__name__)


def _truncate(text: str) -> str:
    return text[:MAX_ERROR_TEXT_LENGTH]


async def send_provider_request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    operation: str,
    timeout: float,
    **kwargs: Any,
) -> httpx.Response:
    """Send one request to the provider and classify failures.

    Args:
        client: Shared async HTTP client
        method: HTTP method
        url: Absolute provider URL
        operation: Short name used in log events and error messages
        timeout: Per-request timeout in seconds
        **kwargs: Passed through to ``httpx.AsyncClient.request``

    Returns:
        The successful (2xx) response

    Raises:
        ProviderRejectedError: Definitive 4xx answer
        ProviderUnavailableError: Network failure, timeout, 429 or 5xx
    """
    try:
        response = await client.request(method, url, timeout=timeout, **kwargs)
    except httpx.TimeoutException as e:
        logger.warning(f"oauth_{operation}_timeout", url=url, timeout=timeout)
        raise ProviderUnavailableError(f"{operation} timed out") from e
    except httpx.TransportError as e:
        logger.warning(f"oauth_{operation}_transport_error", url=url, error=str(e))
        raise ProviderUnavailableError(f"{operation} failed: {e}") from e

    if response.is_success:
        return response

    error_text = _truncate(response.text)
    logger.error(
        f"oauth_{operation}_failed",
        status=response.status_code,
        error=error_text,
    )
    if (
        response.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR
        or response.status_code == status.HTTP_429_TOO_MANY_REQUESTS
    ):
        raise ProviderUnavailableError(
            f"{operation} failed with status {response.status_code}",
            provider_status=response.status_code,
            response_text=error_text,
        )
    raise ProviderRejectedError(
        f"{operation} rejected with status {response.status_code}",
        provider_status=response.status_code,
        response_text=error_text,
    )


def parse_json_object(response: httpx.Response, operation: str) -> dict[str, Any]:
    """Decode a JSON object body.

    Raises:
        ProviderUnavailableError: If the body is not a JSON object
    """
    try:
        payload = response.json()
    except ValueError as e:
        raise ProviderUnavailableError(
            f"{operation} returned a non-JSON body",
            provider_status=response.status_code,
            response_text=_truncate(response.text),
        ) from e
    if not isinstance(payload, dict):
        raise ProviderUnavailableError(
            f"{operation} returned an unexpected body",
            provider_status=response.status_code,
        )
    return payload
