"""
Page Fetcher
============

Conditional retrieval of source pages. Validators remembered from the
previous fetch are sent back to the server so unchanged pages cost a 304
and no body transfer.
"""

import asyncio
import hashlib
import ssl
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
from pathlib import Path
from typing import AsyncIterator, Optional, Union
from urllib.parse import urlparse
from urllib.request import url2pathname

import aiohttp
import certifi

from ..config.settings import PageFeedSettings, get_settings
from ..database.models import CacheRecord, utc_now
from ..utils.exceptions import (
    ErrorCode,
    FetchError,
    FetchTimeoutError,
    HttpStatusError,
    NetworkError,
)
from ..utils.logging import get_logger_for_component
from ..utils.validators import URLValidator


@dataclass
class NotModified:
    """The source reported no change since the remembered validators."""

    url: str


@dataclass
class Modified:
    """The source returned content."""

    url: str
    body: bytes
    record: CacheRecord
    final_url: str
    encoding: Optional[str] = None
    # Body hashes the same as last time even though the server sent it again
    unchanged: bool = False


@dataclass
class Failed:
    """The fetch could not complete."""

    url: str
    error: FetchError


FetchOutcome = Union[NotModified, Modified, Failed]


def fingerprint_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def parse_http_date(value: Optional[str]) -> Optional[datetime]:
    """Parse an HTTP-date header value, None when absent or malformed."""
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def conditional_headers(prior: Optional[CacheRecord]) -> dict:
    """Build the single conditional header for ``prior``.

    An ETag wins over Last-Modified. No record, or a record without
    validators, produces no header.
    """
    if prior is None:
        return {}
    if prior.etag:
        return {"If-None-Match": prior.etag}
    if prior.last_modified is not None:
        return {
            "If-Modified-Since": format_datetime(
                prior.last_modified.astimezone(timezone.utc), usegmt=True
            )
        }
    return {}


class PageFetcher:
    """Conditional HTTP and file fetcher."""

    def __init__(
        self,
        settings: Optional[PageFeedSettings] = None,
        proxy: Optional[str] = None,
        file_urls: Optional[bool] = None,
    ):
        """Initialize page fetcher.

        Args:
            settings: Application settings (default: global settings)
            proxy: Proxy URL overriding ``settings.http.proxy``
            file_urls: Whether file:// URLs may be read, overriding settings
        """
        settings = settings or get_settings()
        self.request_timeout = settings.limits.request_timeout
        self.connect_timeout = settings.limits.connect_timeout
        self.default_user_agent = settings.http.user_agent
        self.max_concurrent = settings.processing.parallel_feeds
        self.proxy = proxy if proxy is not None else settings.http.proxy
        self.file_urls = file_urls if file_urls is not None else settings.http.file_urls
        self.logger = get_logger_for_component("fetcher")

        self.ssl_context = ssl.create_default_context(cafile=certifi.where())

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[aiohttp.ClientSession]:
        """Get configured aiohttp session."""
        connector = aiohttp.TCPConnector(
            ssl=self.ssl_context,
            limit=self.max_concurrent * 2,
            limit_per_host=5,
        )

        timeout = aiohttp.ClientTimeout(
            total=self.request_timeout, connect=self.connect_timeout
        )

        headers = {
            "User-Agent": self.default_user_agent,
            "Accept": "text/html, application/xhtml+xml, */*;q=0.8",
            "Accept-Encoding": "gzip, deflate",
        }

        # An explicit proxy is passed per request; otherwise honour the
        # standard proxy environment variables.
        async with aiohttp.ClientSession(
            connector=connector,
            timeout=timeout,
            headers=headers,
            trust_env=self.proxy is None,
        ) as session:
            yield session

    async def fetch(
        self,
        url: str,
        user_agent: Optional[str] = None,
        prior_record: Optional[CacheRecord] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> FetchOutcome:
        """Fetch ``url`` conditionally on ``prior_record``.

        Never raises for fetch problems; they are returned as ``Failed``.
        Cancellation propagates.
        """
        if URLValidator.is_file_url(url):
            return await self._fetch_file(url, prior_record)

        if session is None:
            async with self.get_session() as own_session:
                return await self._fetch_http(
                    url, user_agent, prior_record, own_session
                )

        return await self._fetch_http(url, user_agent, prior_record, session)

    async def _fetch_http(
        self,
        url: str,
        user_agent: Optional[str],
        prior: Optional[CacheRecord],
        session: aiohttp.ClientSession,
    ) -> FetchOutcome:
        headers = conditional_headers(prior)
        conditional = bool(headers)
        if user_agent:
            headers["User-Agent"] = user_agent

        for name, value in headers.items():
            self.logger.debug(f"add {name}: {value}", extra={"url": url})

        try:
            async with session.get(url, headers=headers, proxy=self.proxy) as response:
                if response.status == 304 and not conditional:
                    return Failed(
                        url=url,
                        error=HttpStatusError(
                            f"Failed to fetch {url}: 304 without a conditional request",
                            status=304,
                            feed_url=url,
                        ),
                    )

                if response.status == 304:
                    self.logger.info(f"{url} is unmodified")
                    return NotModified(url=url)

                if not 200 <= response.status < 300:
                    reason = response.reason or "Unknown Status"
                    return Failed(
                        url=url,
                        error=HttpStatusError(
                            f"Failed to fetch {url}: {response.status} {reason}",
                            status=response.status,
                            feed_url=url,
                        ),
                    )

                body = await response.read()
                now = utc_now()
                fingerprint = fingerprint_bytes(body)
                record = CacheRecord(
                    url=url,
                    etag=response.headers.get("ETag"),
                    last_modified=parse_http_date(response.headers.get("Last-Modified")),
                    content_fingerprint=fingerprint,
                    recorded_at=now,
                    checked_at=now,
                )

                return Modified(
                    url=url,
                    body=body,
                    record=record,
                    final_url=str(response.url),
                    encoding=response.charset,
                    unchanged=prior is not None
                    and prior.content_fingerprint == fingerprint,
                )

        except asyncio.TimeoutError:
            return Failed(
                url=url,
                error=FetchTimeoutError(
                    f"Request timeout after {self.request_timeout}s for {url}",
                    timeout=self.request_timeout,
                    feed_url=url,
                ),
            )
        except aiohttp.ClientError as e:
            return Failed(
                url=url,
                error=NetworkError(f"Unable to fetch {url}: {e}", feed_url=url),
            )

    async def _fetch_file(
        self, url: str, prior: Optional[CacheRecord]
    ) -> FetchOutcome:
        """Read a local file, using its modification time as Last-Modified."""
        if not self.file_urls:
            return Failed(
                url=url,
                error=FetchError(
                    f"file URLs are disabled, enable file_urls to read {url}",
                    error_code=ErrorCode.FEED_INVALID_URL,
                    feed_url=url,
                    recoverable=False,
                ),
            )

        path = Path(url2pathname(urlparse(url).path))

        try:
            stat = await asyncio.to_thread(path.stat)
            modified_at = datetime.fromtimestamp(int(stat.st_mtime), tz=timezone.utc)

            if (
                prior is not None
                and prior.last_modified is not None
                and modified_at <= prior.last_modified
            ):
                self.logger.info(f"{url} is unmodified")
                return NotModified(url=url)

            body = await asyncio.to_thread(path.read_bytes)

        except FileNotFoundError:
            return Failed(
                url=url,
                error=FetchError(
                    f"File not found: {path}",
                    error_code=ErrorCode.FEED_NOT_FOUND,
                    feed_url=url,
                ),
            )
        except OSError as e:
            return Failed(
                url=url,
                error=NetworkError(f"Unable to read {path}: {e}", feed_url=url),
            )

        now = utc_now()
        fingerprint = fingerprint_bytes(body)
        return Modified(
            url=url,
            body=body,
            record=CacheRecord(
                url=url,
                last_modified=modified_at,
                content_fingerprint=fingerprint,
                recorded_at=now,
                checked_at=now,
            ),
            final_url=url,
            unchanged=prior is not None and prior.content_fingerprint == fingerprint,
        )
