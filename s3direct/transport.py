"""Transport adapter between the orchestrator and the network.

The orchestrator hands a fully signed ``SignedRequest`` to a ``Transport``
together with a cancellation token. The transport performs the exchange
and returns a ``TransportResponse`` (any status code), or raises:

- Canceled: the token was signaled before or during the call
- NetworkFailure: the exchange could not be completed
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Mapping, Optional

import httpx

from s3direct.cancellation import CancellationToken, ensure_token
from s3direct.errors import Canceled, NetworkFailure

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0


@dataclass(frozen=True)
class SignedRequest:
    """Descriptor of a signed request, ready to be sent."""

    method: str
    url: str
    headers: Mapping[str, str]
    body: bytes = b""


@dataclass
class TransportResponse:
    """Status, headers and body returned by the server."""

    status_code: int
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: bytes = b""

    def __post_init__(self):
        if not isinstance(self.headers, httpx.Headers):
            self.headers = httpx.Headers(self.headers)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class Transport(ABC):
    """Performs one HTTP exchange for a signed request."""

    @abstractmethod
    async def send(
        self,
        request: SignedRequest,
        token: Optional[CancellationToken] = None,
    ) -> TransportResponse:
        """Send the request and return the response.

        Raises:
            Canceled: If the token is signaled before or during the call.
            NetworkFailure: If the exchange could not be completed.
        """
        pass


class HttpxTransport(Transport):
    """Transport backed by ``httpx.AsyncClient``.

    The request runs as its own task so a token signaled from any thread
    aborts the connection instead of waiting for the response.

    Can be used as an async context manager; a client passed in by the
    caller is left open.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """Initialize the transport.

        Args:
            client: Existing httpx client to reuse (optional)
            timeout: Timeout in seconds for a client created here
        """
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def send(
        self,
        request: SignedRequest,
        token: Optional[CancellationToken] = None,
    ) -> TransportResponse:
        token = ensure_token(token)
        if token.is_canceled():
            raise Canceled()

        loop = asyncio.get_running_loop()
        task = asyncio.ensure_future(self._exchange(request))

        def cancel_task() -> None:
            if not task.done():
                task.cancel()

        unregister = token.on_cancel(lambda: loop.call_soon_threadsafe(cancel_task))
        try:
            return await task
        except asyncio.CancelledError:
            if token.is_canceled():
                logger.debug("%s %s canceled in flight", request.method, request.url)
                raise Canceled() from None
            raise
        finally:
            unregister()

    async def _exchange(self, request: SignedRequest) -> TransportResponse:
        try:
            response = await self.client.request(
                request.method,
                request.url,
                headers=dict(request.headers),
                content=request.body,
            )
        except httpx.HTTPError as e:
            raise NetworkFailure(f"{request.method} {request.url} failed: {e}") from e

        logger.debug(
            "%s %s -> %d", request.method, request.url, response.status_code
        )
        return TransportResponse(
            status_code=response.status_code,
            headers=response.headers,
            body=response.content,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "HttpxTransport":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        await self.aclose()
        return False
