"""HTTP fetcher that validates every redirect hop against SSRF.

The fetcher never lets httpx follow redirects on its own: each ``Location``
target is resolved against the current URL and re-validated before the next
request, so a public page cannot bounce the worker into a private network.

Example:
    >>> fetcher = HttpFetcher(config)
    >>> result = await fetcher.fetch("https://example.com/article")
    >>> isinstance(result, FetchedContent)
    True
"""

import asyncio
import logging
from urllib.parse import urljoin

import httpcore
import httpx

from linkradar.archiving.models import ErrorReason, FetchedContent, FetchFailure
from linkradar.archiving.url_validator import UrlValidator, ValidationError
from linkradar.core.config import ArchiveConfig

logger = logging.getLogger(__name__)

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})

# Only these escape as retryable; every other transport error is terminal
RETRYABLE_TIMEOUTS = (httpx.ConnectTimeout, httpx.ReadTimeout)


def _describe(exc: Exception) -> str:
    return str(exc) or type(exc).__name__


def _parse_content_length(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


class AddressCheckingBackend(httpcore.AsyncNetworkBackend):
    """Network backend that re-validates the host on every TCP connect.

    Connections are opened to the address the validator just approved, never
    to whatever a second DNS lookup inside the connection pool returns.
    """

    def __init__(
        self,
        validator: UrlValidator,
        backend: httpcore.AsyncNetworkBackend | None = None,
    ) -> None:
        self._validator = validator
        self._backend = backend or httpcore.AnyIOBackend()

    async def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: float | None = None,
        local_address: str | None = None,
        socket_options=None,
    ) -> httpcore.AsyncNetworkStream:
        address = await asyncio.to_thread(self._validator.connect_address, host)
        return await self._backend.connect_tcp(
            address,
            port,
            timeout=timeout,
            local_address=local_address,
            socket_options=socket_options,
        )

    async def connect_unix_socket(
        self, path: str, timeout: float | None = None, socket_options=None
    ) -> httpcore.AsyncNetworkStream:
        raise httpcore.ConnectError("Unix socket connections are not allowed")

    async def sleep(self, seconds: float) -> None:
        await self._backend.sleep(seconds)


class AddressCheckingTransport(httpx.AsyncHTTPTransport):
    """``AsyncHTTPTransport`` whose connection pool uses ``AddressCheckingBackend``."""

    def __init__(self, validator: UrlValidator) -> None:
        super().__init__()
        self._pool = httpcore.AsyncConnectionPool(
            ssl_context=httpx.create_ssl_context(),
            network_backend=AddressCheckingBackend(validator),
        )


class HttpFetcher:
    """Fetches a URL with size, time and redirect budgets.

    Args:
        config: Archival budgets (timeouts, redirect and size limits, User-Agent)
        validator: URL validator applied to the initial URL and every redirect
    """

    def __init__(
        self,
        config: ArchiveConfig,
        validator: UrlValidator | None = None,
    ) -> None:
        self.config = config
        self.validator = validator or UrlValidator()

    async def fetch(self, url: str) -> FetchedContent | FetchFailure:
        """Fetch ``url`` and return its content or a classified failure.

        Steps: validate, HEAD pre-check of Content-Length, then GET with manual
        redirect following. Connect/read timeouts of the GET are returned as
        retryable ``network_error`` failures.

        Args:
            url: URL to fetch

        Returns:
            FetchedContent on a 2xx response, FetchFailure otherwise
        """
        failure = await self._validate(url)
        if failure is not None:
            return failure

        async with self._build_client() as client:
            failure = await self._check_content_length(client, url)
            if failure is not None:
                return failure

            try:
                return await self._fetch_with_redirect_validation(client, url)
            except ValidationError as e:
                return self._rejected_at_connect(url, e)
            except RETRYABLE_TIMEOUTS as e:
                return FetchFailure(
                    reason=ErrorReason.NETWORK_ERROR,
                    message=f"Fetch timed out: {_describe(e)}",
                    url=url,
                    details={"error_class": type(e).__name__},
                    retryable=True,
                )
            except httpx.ConnectError as e:
                return FetchFailure(
                    reason=ErrorReason.NETWORK_ERROR,
                    message=f"Connection failed: {_describe(e)}",
                    url=url,
                    details={"error_class": type(e).__name__},
                )
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                return FetchFailure(
                    reason=ErrorReason.NETWORK_ERROR,
                    message=f"HTTP fetch error: {_describe(e)}",
                    url=url,
                    details={"error_class": type(e).__name__},
                )

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            follow_redirects=False,
            timeout=httpx.Timeout(
                self.config.read_timeout, connect=self.config.connect_timeout
            ),
            headers={"User-Agent": self.config.user_agent},
            transport=AddressCheckingTransport(self.validator),
        )

    async def _validate(self, url: str) -> FetchFailure | None:
        # DNS lookups block; keep them off the event loop
        try:
            await asyncio.to_thread(self.validator.validate, url)
        except ValidationError as e:
            return FetchFailure(
                reason=e.reason, message=e.message, url=e.url, details=e.details
            )
        return None

    def _rejected_at_connect(self, url: str, error: ValidationError) -> FetchFailure:
        # The host passed validation but resolved differently when connecting
        return FetchFailure(
            reason=error.reason,
            message=error.message,
            url=url,
            details={**error.details, "validation_stage": "connect"},
        )

    async def _check_content_length(
        self, client: httpx.AsyncClient, url: str
    ) -> FetchFailure | None:
        try:
            response = await client.head(url)
        except ValidationError as e:
            return self._rejected_at_connect(url, e)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            # Without a size check the download could be arbitrarily large
            return FetchFailure(
                reason=ErrorReason.NETWORK_ERROR,
                message=f"Unable to check content size: {_describe(e)}",
                url=url,
                details={"error_class": type(e).__name__},
            )

        content_length = _parse_content_length(response.headers.get("content-length"))
        if content_length is not None and content_length > self.config.max_content_size:
            return self._size_failure(url, {"content_length": content_length})
        return None

    def _size_failure(self, url: str, details: dict[str, int]) -> FetchFailure:
        return FetchFailure(
            reason=ErrorReason.SIZE_LIMIT,
            message=f"Content size exceeds {self.config.max_content_size_mb}MB limit",
            url=url,
            details={**details, "max_size": self.config.max_content_size},
        )

    async def _fetch_with_redirect_validation(
        self, client: httpx.AsyncClient, url: str
    ) -> FetchedContent | FetchFailure:
        current_url = url
        redirect_count = 0

        while True:
            async with client.stream("GET", current_url) as response:
                status = response.status_code
                if status not in REDIRECT_STATUSES:
                    return await self._build_result(response, url)
                location = response.headers.get("location")

            redirect_count += 1
            if redirect_count > self.config.max_redirects:
                return FetchFailure(
                    reason=ErrorReason.TOO_MANY_REDIRECTS,
                    message=(
                        f"Too many redirects: {redirect_count} exceeds limit of "
                        f"{self.config.max_redirects}"
                    ),
                    url=url,
                    details={
                        "redirect_count": redirect_count,
                        "max_redirects": self.config.max_redirects,
                        "final_url": current_url,
                    },
                    http_status=status,
                )

            if not location:
                return FetchFailure(
                    reason=ErrorReason.INVALID_URL,
                    message="Redirect missing Location header",
                    url=url,
                    details={"status": status, "current_url": current_url},
                    http_status=status,
                )

            redirect_url = urljoin(current_url, location)
            failure = await self._validate(redirect_url)
            if failure is not None:
                return self._redirect_failure(url, current_url, redirect_url, failure)

            logger.debug(
                "Following redirect %d/%d: %s -> %s",
                redirect_count,
                self.config.max_redirects,
                current_url,
                redirect_url,
            )
            current_url = redirect_url

    def _redirect_failure(
        self,
        url: str,
        current_url: str,
        redirect_url: str,
        failure: FetchFailure,
    ) -> FetchFailure:
        if failure.reason is ErrorReason.BLOCKED:
            message = "Redirect to private IP address blocked (SSRF protection)"
        else:
            message = f"Redirect target rejected: {failure.message}"
        return FetchFailure(
            reason=failure.reason,
            message=message,
            url=url,
            details={
                **failure.details,
                "current_url": current_url,
                "redirect_url": redirect_url,
                "validation_error": failure.message,
            },
        )

    async def _build_result(
        self, response: httpx.Response, url: str
    ) -> FetchedContent | FetchFailure:
        if not response.is_success:
            return FetchFailure(
                reason=ErrorReason.NETWORK_ERROR,
                message=f"HTTP {response.status_code}: {response.reason_phrase}",
                url=url,
                details={"final_url": str(response.url)},
                http_status=response.status_code,
            )

        declared = _parse_content_length(response.headers.get("content-length"))
        if declared is not None and declared > self.config.max_content_size:
            return self._size_failure(url, {"content_length": declared})

        chunks: list[bytes] = []
        bytes_read = 0
        async for chunk in response.aiter_bytes():
            bytes_read += len(chunk)
            if bytes_read > self.config.max_content_size:
                return self._size_failure(url, {"bytes_read": bytes_read})
            chunks.append(chunk)

        return FetchedContent(
            body=b"".join(chunks),
            status=response.status_code,
            final_url=str(response.url),
            content_type=response.headers.get("content-type", ""),
            encoding=response.charset_encoding,
        )
