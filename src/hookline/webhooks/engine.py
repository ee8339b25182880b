"""HTTP delivery engine.

Performs exactly one outbound POST per call and classifies the result.
The engine never touches storage; the scheduler records what it returns.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Protocol
from urllib.parse import urlsplit

import httpx

from hookline import __version__
from hookline.exceptions import ConfigurationError, DeliveryError
from hookline.models import AttemptResult, Outcome
from hookline.models.webhook import RESERVED_HEADERS

from .signing import DELIVERY_ID_HEADER, EVENT_HEADER, SIGNATURE_HEADER, sign

if TYPE_CHECKING:
    from hookline.config import Settings
    from hookline.models import Delivery, Webhook

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = f"hookline/{__version__}"


def classify_status(status_code: int) -> Outcome:
    """Map an HTTP status code to a delivery outcome.

    2xx is success and 4xx is a permanent failure. Everything else,
    including unfollowed redirects, is worth retrying.
    """
    if 200 <= status_code < 300:
        return Outcome.SUCCESS
    if 400 <= status_code < 500:
        return Outcome.PERMANENT
    return Outcome.RETRYABLE


class Transport(Protocol):
    """Sends one prepared request and reports what happened."""

    async def send(self, request: httpx.Request) -> AttemptResult: ...


class HttpTransport:
    """Transport for http:// and https:// endpoints backed by httpx."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        timeout: float = 30.0,
        max_response_bytes: int = 10 * 1024,
    ) -> None:
        """Initialize the transport.

        Args:
            client: Shared HTTP client.
            timeout: Total seconds allowed for connect, send and read.
            max_response_bytes: Response body bytes kept for diagnostics.
        """
        self._client = client
        self._timeout = timeout
        self._max_response_bytes = max_response_bytes

    async def send(self, request: httpx.Request) -> AttemptResult:
        started = time.monotonic()

        def elapsed_ms() -> int:
            return int((time.monotonic() - started) * 1000)

        try:
            async with asyncio.timeout(self._timeout):
                response = await self._client.send(request, stream=True, follow_redirects=False)
                try:
                    body = await self._read_body(response)
                finally:
                    await response.aclose()
        except (TimeoutError, httpx.TimeoutException):
            return AttemptResult(
                outcome=Outcome.RETRYABLE,
                error=f"request timed out after {self._timeout:g}s",
                duration_ms=elapsed_ms(),
            )
        except (httpx.UnsupportedProtocol, httpx.InvalidURL) as e:
            return AttemptResult(
                outcome=Outcome.PERMANENT,
                error=f"invalid webhook URL: {e}",
                duration_ms=elapsed_ms(),
            )
        except httpx.HTTPError as e:
            return AttemptResult(
                outcome=Outcome.RETRYABLE,
                error=f"request failed: {e.__class__.__name__}: {e}",
                duration_ms=elapsed_ms(),
            )

        outcome = classify_status(response.status_code)
        return AttemptResult(
            outcome=outcome,
            status_code=response.status_code,
            response_body=body,
            error=None if outcome is Outcome.SUCCESS else f"HTTP {response.status_code}",
            duration_ms=elapsed_ms(),
        )

    async def _read_body(self, response: httpx.Response) -> str | None:
        """Read at most max_response_bytes of the body."""
        limit = self._max_response_bytes
        chunks: list[bytes] = []
        size = 0
        if limit > 0:
            async for chunk in response.aiter_bytes():
                chunks.append(chunk)
                size += len(chunk)
                if size >= limit:
                    break
        raw = b"".join(chunks)[:limit]
        return raw.decode("utf-8", errors="replace") if raw else None


class DeliveryEngine:
    """Delivers one attempt of a delivery to its webhook.

    Example:
        ```python
        async with DeliveryEngine() as engine:
            result = await engine.attempt(delivery, webhook)
            if result.succeeded:
                ...
        ```
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        timeout: float = 30.0,
        max_response_bytes: int = 10 * 1024,
        user_agent: str = DEFAULT_USER_AGENT,
        transports: Mapping[str, Transport] | None = None,
    ) -> None:
        """Initialize the delivery engine.

        Args:
            client: HTTP client to share across attempts. Created (and owned)
                by the engine when not given.
            timeout: Total seconds allowed per attempt.
            max_response_bytes: Response body bytes kept for diagnostics.
            user_agent: User-Agent header value.
            transports: Transport per URL scheme. Defaults to httpx for
                http and https.
        """
        if transports is not None and not transports:
            raise ConfigurationError("at least one delivery transport is required")

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=False)
        self._user_agent = user_agent

        if transports is None:
            http = HttpTransport(self._client, timeout, max_response_bytes)
            transports = {"http": http, "https": http}
        self._transports: dict[str, Transport] = {k.lower(): v for k, v in transports.items()}
        self._closed = False

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> DeliveryEngine:
        return cls(
            timeout=settings.request_timeout_seconds,
            max_response_bytes=settings.max_response_bytes,
            user_agent=settings.user_agent,
            **kwargs,
        )

    def build_headers(self, delivery: Delivery, webhook: Webhook) -> httpx.Headers:
        """Headers for one attempt.

        Configured headers go in first and the standard headers are set on
        top of them, so a webhook can never replace its own signature.
        Framing headers are left to the client so they match the payload.
        """
        headers = httpx.Headers(
            {k: v for k, v in webhook.headers.items() if k.lower() not in RESERVED_HEADERS}
        )
        headers["Content-Type"] = "application/json"
        headers["User-Agent"] = self._user_agent
        headers[SIGNATURE_HEADER] = sign(webhook.secret, delivery.payload)
        headers[EVENT_HEADER] = delivery.event
        headers[DELIVERY_ID_HEADER] = delivery.id
        return headers

    async def attempt(self, delivery: Delivery, webhook: Webhook) -> AttemptResult:
        """POST the delivery's stored payload to the webhook URL once.

        Args:
            delivery: Delivery being attempted.
            webhook: Destination webhook.

        Returns:
            The classified result. Network problems are reported in the
            result rather than raised.

        Raises:
            DeliveryError: If the engine has been closed.
        """
        if self._closed:
            raise DeliveryError("delivery engine is closed")

        url = str(webhook.url)
        scheme = urlsplit(url).scheme.lower()
        transport = self._transports.get(scheme)
        if transport is None:
            return AttemptResult(
                outcome=Outcome.PERMANENT,
                error=f"unsupported URL scheme: {scheme or '(none)'}",
            )

        try:
            request = httpx.Request(
                "POST",
                url,
                content=delivery.payload,
                headers=self.build_headers(delivery, webhook),
            )
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
            return AttemptResult(outcome=Outcome.PERMANENT, error=f"invalid webhook URL: {e}")

        result = await transport.send(request)

        if result.succeeded:
            logger.info(
                "Webhook delivered: %s %s to %s (status %s, %dms)",
                delivery.event,
                delivery.id,
                url,
                result.status_code,
                result.duration_ms,
            )
        else:
            logger.warning(
                "Webhook attempt failed: %s %s to %s (%s: %s)",
                delivery.event,
                delivery.id,
                url,
                result.outcome.value,
                result.error,
            )
        return result

    async def close(self) -> None:
        """Close the HTTP client if the engine created it."""
        self._closed = True
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> DeliveryEngine:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
