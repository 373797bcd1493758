"""HTTP capability used by the resolver, workers and health checker."""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

import httpx

from sitecrawl.constants import (
    DEFAULT_REQUEST_HEADERS,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
)

logger = logging.getLogger(__name__)

StatusValidator = Callable[[int], bool]


class FetchError(Exception):
    """Raised when a request fails or its status is rejected."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_type: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_type = error_type
        super().__init__(message)


@dataclass
class FetchResponse:
    """Response returned by HttpFetcher."""

    url: str
    status_code: int
    content: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)
    encoding: Optional[str] = None

    @property
    def text(self) -> str:
        return self.content.decode(self.encoding or "utf-8", errors="replace")


def classify_error(error: BaseException) -> str:
    """Classify an exception for error statistics and PageResult.error_type.

    Args:
        error: Exception raised while fetching

    Returns:
        Error category string
    """
    if isinstance(error, FetchError):
        if error.error_type:
            return error.error_type
        if error.status_code is not None:
            return _classify_status(error.status_code)

    if isinstance(error, httpx.TimeoutException):
        return "TIMEOUT"
    if isinstance(error, httpx.ConnectError):
        message = str(error).lower()
        if "name or service not known" in message or "nodename nor servname" in message \
                or "getaddrinfo" in message or "name resolution" in message:
            return "DNS_ERROR"
        if "certificate" in message or "ssl" in message:
            return "SSL_ERROR"
        if "refused" in message:
            return "CONNECTION_REFUSED"
        return "NETWORK_ERROR"
    if isinstance(error, httpx.RemoteProtocolError):
        message = str(error).lower()
        if "reset" in message:
            return "CONNECTION_RESET"
        return "PROTOCOL_ERROR"
    if isinstance(error, (httpx.UnsupportedProtocol, httpx.InvalidURL)):
        return "PROTOCOL_ERROR"
    if isinstance(error, httpx.HTTPStatusError):
        return _classify_status(error.response.status_code)
    if isinstance(error, httpx.TransportError):
        return "NETWORK_ERROR"

    return "UNKNOWN_ERROR"


def _classify_status(status_code: int) -> str:
    if 400 <= status_code < 500:
        return f"HTTP_CLIENT_ERROR_{status_code}"
    if status_code >= 500:
        return f"HTTP_SERVER_ERROR_{status_code}"
    return "UNKNOWN_ERROR"


class HttpFetcher:
    """Thin async wrapper around one httpx.AsyncClient.

    Every request carries its own timeout; bodies are streamed so a size cap
    can abort oversize responses before they are buffered.
    """

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the fetcher.

        Args:
            user_agent: User-Agent header sent with every request
            timeout: Default timeout in seconds
            headers: Extra default headers
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.user_agent = user_agent
        self.timeout = timeout

        default_headers = {"User-Agent": user_agent, **DEFAULT_REQUEST_HEADERS}
        if headers:
            default_headers.update(headers)

        self._client = httpx.AsyncClient(
            headers=default_headers,
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )

    async def get(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        max_bytes: Optional[int] = None,
        status_validator: Optional[StatusValidator] = None,
    ) -> FetchResponse:
        """GET a URL.

        Args:
            url: URL to fetch
            headers: Per-request headers merged over the defaults
            timeout: Per-request timeout in seconds
            max_bytes: Abort once the body exceeds this many bytes
            status_validator: Returns False for statuses that should raise

        Returns:
            FetchResponse with the full body

        Raises:
            FetchError: On network failure, timeout, oversize body or rejected status
        """
        try:
            async with self._client.stream(
                "GET",
                url,
                headers=headers,
                timeout=timeout if timeout is not None else self.timeout,
            ) as response:
                self._check_status(url, response.status_code, status_validator)

                chunks = []
                received = 0
                async for chunk in response.aiter_bytes():
                    received += len(chunk)
                    if max_bytes is not None and received > max_bytes:
                        raise FetchError(
                            f"Response from {url} exceeds {max_bytes} bytes",
                            status_code=response.status_code,
                            error_type="TOO_LARGE",
                        )
                    chunks.append(chunk)

                return FetchResponse(
                    url=str(response.url),
                    status_code=response.status_code,
                    content=b"".join(chunks),
                    headers=dict(response.headers),
                    encoding=response.encoding,
                )
        except FetchError:
            raise
        except httpx.HTTPError as e:
            raise FetchError(
                f"{type(e).__name__}: {e}" if str(e) else type(e).__name__,
                error_type=classify_error(e),
            ) from e

    async def head(
        self,
        url: str,
        timeout: Optional[float] = None,
        status_validator: Optional[StatusValidator] = None,
    ) -> FetchResponse:
        """Issue a HEAD request (existence check).

        Raises:
            FetchError: On network failure, timeout or rejected status
        """
        try:
            response = await self._client.head(
                url,
                timeout=timeout if timeout is not None else self.timeout,
            )
        except httpx.HTTPError as e:
            raise FetchError(
                f"{type(e).__name__}: {e}" if str(e) else type(e).__name__,
                error_type=classify_error(e),
            ) from e

        self._check_status(url, response.status_code, status_validator)
        return FetchResponse(
            url=str(response.url),
            status_code=response.status_code,
            headers=dict(response.headers),
        )

    @staticmethod
    def _check_status(
        url: str, status_code: int, status_validator: Optional[StatusValidator]
    ) -> None:
        if status_validator is not None and not status_validator(status_code):
            raise FetchError(
                f"Request to {url} failed with status code {status_code}",
                status_code=status_code,
                error_type=_classify_status(status_code),
            )

    async def aclose(self) -> None:
        """Close the underlying client."""
        await self._client.aclose()

    async def __aenter__(self) -> "HttpFetcher":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
