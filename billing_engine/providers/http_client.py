"""HTTP plumbing shared by provider adapters.

Maps transport failures and status codes onto the provider error taxonomy.
"""

from typing import Any, Callable, Optional

import httpx

from billing_engine.logging_config import get_logger
from billing_engine.models import Provider
from billing_engine.providers.base import PermanentProviderError, TransientProviderError

logger = get_logger(__name__)


def format_provider_errors(payload: Any, fallback: str) -> str:
    """Build a readable message from a provider error body.

    Handles `{"errors": {"field": ["msg", ...]}}`, `{"errors": "msg"}` and
    `{"message": "msg"}` shapes.
    """
    if isinstance(payload, str) and payload:
        return payload
    if not isinstance(payload, dict):
        return fallback

    errors = payload.get("errors")
    if isinstance(errors, dict) and errors:
        parts = []
        for field, value in errors.items():
            message = ", ".join(str(v) for v in value) if isinstance(value, list) else str(value)
            parts.append(f"{field}: {message}")
        return " | ".join(parts)
    if isinstance(errors, str) and errors:
        return errors
    if isinstance(errors, list) and errors:
        return ", ".join(str(e) for e in errors)

    message = payload.get("message")
    if message:
        return str(message)
    return fallback


class ProviderHttpClient:
    """Thin wrapper over httpx.Client with a bounded timeout and error mapping."""

    def __init__(
        self,
        provider: Provider,
        base_url: str,
        auth_factory: Callable[[], dict[str, str]],
        timeout_seconds: float = 8.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            provider: Provider this client talks to (for errors and logs)
            base_url: API root
            auth_factory: Returns auth headers; raises PermanentProviderError when
                credentials are missing
            timeout_seconds: Per-call timeout
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.provider = provider
        self._auth_factory = auth_factory
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
            headers={"Accept": "application/json", "Content-Type": "application/json"},
        )

    def request(
        self,
        method: str,
        path: str,
        json: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        allow_not_found: bool = False,
    ) -> Optional[dict[str, Any]]:
        """Send a request and return the decoded JSON body.

        Args:
            method: HTTP method
            path: Path relative to the base URL
            json: Optional JSON body
            headers: Extra headers
            allow_not_found: Return None on 404 instead of raising

        Raises:
            TransientProviderError: Timeout, transport error or 5xx
            PermanentProviderError: 4xx or missing credentials
        """
        request_headers = dict(self._auth_factory())
        if headers:
            request_headers.update(headers)

        try:
            response = self._client.request(method, path, json=json, headers=request_headers)
        except httpx.TimeoutException as e:
            logger.warning("provider_timeout", provider=self.provider.value, method=method, path=path)
            raise TransientProviderError(
                f"{self.provider.value} request timed out: {method} {path}", provider=self.provider
            ) from e
        except httpx.TransportError as e:
            logger.warning(
                "provider_transport_error",
                provider=self.provider.value,
                method=method,
                path=path,
                error=str(e),
            )
            raise TransientProviderError(
                f"{self.provider.value} request failed: {e}", provider=self.provider
            ) from e

        if response.status_code == 404 and allow_not_found:
            return None

        body = self._decode(response)
        if response.is_success:
            return body if isinstance(body, dict) else {"data": body}

        message = format_provider_errors(
            body, f"{self.provider.value} request failed ({response.status_code})"
        )
        error_class = TransientProviderError if response.status_code >= 500 else PermanentProviderError
        logger.warning(
            "provider_http_error",
            provider=self.provider.value,
            method=method,
            path=path,
            status_code=response.status_code,
            error=message,
        )
        raise error_class(message, provider=self.provider, status_code=response.status_code, details=body)

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return response.text

    def close(self) -> None:
        self._client.close()
