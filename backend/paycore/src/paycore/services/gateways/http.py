"""HTTP plumbing shared by the REST gateway adapters."""

import logging
from typing import Any

import httpx

from paycore.models import GatewayError, TransientGatewayError

logger = logging.getLogger(__name__)


def build_client(timeout: float, transport: httpx.BaseTransport | None = None) -> httpx.Client:
    """Synchronous client with the gateway timeout; tests pass a MockTransport."""
    return httpx.Client(timeout=timeout, transport=transport)


def send_json(
    client: httpx.Client,
    method: str,
    url: str,
    *,
    gateway: str,
    **kwargs: Any,
) -> dict[str, Any]:
    """Send a request and return the decoded JSON body.

    Raises:
        TransientGatewayError: timeouts, connection failures, 429 and 5xx
        GatewayError: any other non-2xx response
    """
    try:
        response = client.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        raise TransientGatewayError(f"{gateway} request timed out", gateway=gateway) from e
    except httpx.TransportError as e:
        raise TransientGatewayError(f"{gateway} connection failed: {e}", gateway=gateway) from e

    if response.is_success:
        return response.json() if response.content else {}

    body = _safe_json(response)
    error_code = _provider_error_code(body)
    message = f"{gateway} returned HTTP {response.status_code}"
    logger.warning("%s: %s", message, body or response.text[:500])

    if response.status_code == 429 or response.status_code >= 500:
        raise TransientGatewayError(
            message,
            gateway=gateway,
            provider_error_code=error_code,
            status_code=response.status_code,
        )
    raise GatewayError(
        message,
        gateway=gateway,
        provider_error_code=error_code,
        status_code=response.status_code,
    )


def _safe_json(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _provider_error_code(body: dict[str, Any]) -> str | None:
    # PayPal nests the specific issue under details[].issue
    details = body.get("details")
    if isinstance(details, list) and details and isinstance(details[0], dict):
        issue = details[0].get("issue")
        if issue:
            return str(issue)
    code = body.get("code") or body.get("name") or body.get("error")
    return str(code) if code else None
