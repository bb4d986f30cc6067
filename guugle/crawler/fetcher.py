"""
Web page fetcher and HTML response classification.
"""

import asyncio
import aiohttp
import logging
import re
from typing import Optional
from urllib.parse import urlparse
from dataclasses import dataclass
from aiohttp import ClientSession, ClientTimeout, ClientError

from .parser import is_html


DEFAULT_MAX_CONTENT_SIZE = 10 * 1024 * 1024

# "scheme:" not followed by a port number
SCHEME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:(?!\d)")


class FetchError(Exception):
    """A page could not be turned into an HTML document."""

    def __init__(self, url: str, message: str = ""):
        super().__init__(f"{message}: {url}" if message else url)
        self.url = url
        self.message = message


class NotHtml(FetchError):
    """The response is not an HTML document."""
    pass


class TransportFailure(FetchError):
    """Connection, timeout or I/O failure while fetching."""
    pass


class ContentTooLarge(TransportFailure):
    """The body exceeds the configured size cap; never retried."""
    pass


class BadStatus(FetchError):
    """The server answered with a non-2xx status."""

    def __init__(self, url: str, status_code: int):
        super().__init__(url, f"HTTP status {status_code}")
        self.status_code = status_code


class InvalidUrl(FetchError):
    """The link target cannot be parsed as an http(s) URL."""
    pass


@dataclass
class FetchResult:
    """Result of a fetch operation."""
    url: str
    status_code: int
    body: Optional[bytes] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    content_type: Optional[str] = None
    encoding: Optional[str] = None


@dataclass
class HtmlDocument:
    """A successfully fetched page that declares itself as HTML."""
    url: str
    text: str


def normalize_url(url: str) -> str:
    """
    Prepare a stored link target for dispatch.

    Targets without a scheme get ``http://`` in front.

    Raises:
        InvalidUrl: if the result is not an http(s) URL with a host
    """
    target = url.strip()
    if not SCHEME_PATTERN.match(target):
        target = f"http://{target}"

    try:
        parsed = urlparse(target)
        # port parsing is lazy and raises on garbage
        parsed.port
    except ValueError as e:
        raise InvalidUrl(url, str(e)) from e

    if parsed.scheme.lower() not in ("http", "https"):
        raise InvalidUrl(url, f"Unsupported scheme {parsed.scheme!r}")
    if not parsed.hostname:
        raise InvalidUrl(url, "Missing host")

    return target


def decode_body(body: bytes, encoding: Optional[str] = None) -> str:
    """Decode a response body, falling back through common encodings."""
    try:
        return body.decode(encoding or 'utf-8')
    except (UnicodeDecodeError, LookupError):
        for fallback_encoding in ['utf-8', 'cp1252']:
            try:
                return body.decode(fallback_encoding)
            except UnicodeDecodeError:
                continue

        # latin-1 never fails
        return body.decode('latin-1')


def classify(result: FetchResult) -> HtmlDocument:
    """
    Turn a raw fetch result into an HTML document.

    Raises:
        InvalidUrl: the HTTP client rejected the URL
        TransportFailure: no response was received
        ContentTooLarge: the body exceeded the size cap
        BadStatus: the status is not 2xx
        NotHtml: the content type or the doctype is not HTML
    """
    if result.error:
        if result.error_type == "invalid_url":
            raise InvalidUrl(result.url, result.error)
        if result.error_type == "too_large":
            raise ContentTooLarge(result.url, result.error)
        raise TransportFailure(result.url, result.error)

    if not 200 <= result.status_code < 300:
        raise BadStatus(result.url, result.status_code)

    content_type = (result.content_type or "").lower()
    if "text/html" not in content_type:
        raise NotHtml(result.url, f"Content type {content_type or 'missing'}")

    if result.body is None:
        raise NotHtml(result.url, "Empty body")

    text = decode_body(result.body, result.encoding)
    if not is_html(text):
        raise NotHtml(result.url, "Missing HTML doctype")

    return HtmlDocument(url=result.url, text=text)


class WebFetcher:
    """
    Fetches web pages over one aiohttp session.

    Transport problems are reported in the returned ``FetchResult`` rather
    than raised.
    """

    def __init__(self, user_agent: str, request_timeout: int = 30,
                 max_content_size: int = DEFAULT_MAX_CONTENT_SIZE):
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self.max_content_size = max_content_size

        self.logger = logging.getLogger(__name__)

        self.session: Optional[ClientSession] = None

    async def __aenter__(self):
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def start(self):
        """Initialize the fetcher session."""
        if self.session is None:
            timeout = ClientTimeout(total=self.request_timeout)
            headers = {'User-Agent': self.user_agent}

            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers=headers,
                connector=aiohttp.TCPConnector(
                    limit_per_host=10,
                    ttl_dns_cache=300,
                    use_dns_cache=True
                )
            )
            self.logger.debug("WebFetcher session started")

    async def close(self):
        """Close the fetcher session."""
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.debug("WebFetcher session closed")

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch a single URL.

        Args:
            url: The URL to fetch

        Returns:
            FetchResult object containing the response data or error information
        """
        if self.session is None:
            await self.start()

        try:
            async with self.session.get(url) as response:
                content_type = response.headers.get('content-type', '').lower()

                body = None
                if self._is_text_content(content_type):
                    body = await self._read_body_safely(response)
                    if body is None:
                        return FetchResult(
                            url=url,
                            status_code=response.status,
                            content_type=content_type,
                            error="Content too large",
                            error_type="too_large"
                        )
                else:
                    self.logger.debug(f"Skipping non-text content: {url} ({content_type})")

                self.logger.debug(
                    f"Fetched {url}: {response.status} ({len(body) if body else 0} bytes)"
                )
                return FetchResult(
                    url=url,
                    status_code=response.status,
                    body=body,
                    content_type=content_type,
                    encoding=response.charset
                )

        except aiohttp.InvalidURL as e:
            error_type = "invalid_url"
            error_msg = f"Invalid URL: {e}"
            self.logger.debug(f"Invalid URL {url}: {e}")

        except asyncio.TimeoutError:
            error_type = "timeout"
            error_msg = "Request timeout"
            self.logger.warning(f"Timeout fetching {url}")

        except ClientError as e:
            error_type = "client"
            error_msg = f"Client error: {str(e)}"
            self.logger.warning(f"Client error fetching {url}: {e}")

        except OSError as e:
            error_type = "io"
            error_msg = f"I/O error: {str(e)}"
            self.logger.warning(f"I/O error fetching {url}: {e}")

        return FetchResult(
            url=url,
            status_code=0,
            error=error_msg,
            error_type=error_type
        )

    def _is_text_content(self, content_type: str) -> bool:
        """Check if content type is text-based."""
        text_types = [
            'text/html',
            'text/plain',
            'text/xml',
            'application/xml',
            'application/xhtml+xml'
        ]

        return any(text_type in content_type for text_type in text_types)

    async def _read_body_safely(self, response) -> Optional[bytes]:
        """
        Read response content with a size limit.

        Returns:
            The raw body, or None if it exceeds ``max_content_size``
        """
        content_length = response.headers.get('content-length')
        if content_length and content_length.isdigit() and int(content_length) > self.max_content_size:
            self.logger.warning(f"Content too large ({content_length} bytes): {response.url}")
            return None

        # Read content in chunks to respect size limit
        content_bytes = b''
        async for chunk in response.content.iter_chunked(8192):
            content_bytes += chunk
            if len(content_bytes) > self.max_content_size:
                self.logger.warning(f"Content exceeded size limit during reading: {response.url}")
                return None

        return content_bytes


class HtmlFetcher:
    """
    Fetches a stored link target and classifies the outcome.

    ``get_html`` either returns an ``HtmlDocument`` or raises one of
    ``NotHtml``, ``TransportFailure``, ``BadStatus`` or ``InvalidUrl``.
    """

    def __init__(self, fetcher: WebFetcher):
        self.fetcher = fetcher
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, crawler_config) -> 'HtmlFetcher':
        return cls(WebFetcher(
            user_agent=crawler_config.user_agent,
            request_timeout=crawler_config.request_timeout,
            max_content_size=crawler_config.max_content_size
        ))

    async def __aenter__(self):
        await self.fetcher.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.fetcher.close()

    async def get_html(self, url: str) -> HtmlDocument:
        target = normalize_url(url)
        result = await self.fetcher.fetch(target)
        result.url = url
        return classify(result)
