"""
Unit Tests for Page Fetching
============================

Tests for conditional requests, fetch outcomes and file URLs, against a
local aiohttp site.
"""

from datetime import datetime, timezone

import pytest

from pagefeed.config.settings import LimitsSettings, PageFeedSettings
from pagefeed.database.models import CacheRecord
from pagefeed.processing.fetcher import (
    Failed,
    Modified,
    NotModified,
    PageFetcher,
    conditional_headers,
    fingerprint_bytes,
    parse_http_date,
)
from pagefeed.utils.exceptions import (
    ErrorCode,
    FetchError,
    FetchTimeoutError,
    HttpStatusError,
    NetworkError,
)

LAST_MODIFIED = "Thu, 20 May 2021 09:00:00 GMT"


@pytest.fixture
def fetcher(settings):
    return PageFetcher(settings)


class TestConditionalHeaders:
    """Test conditional_headers."""

    def test_no_record(self):
        assert conditional_headers(None) == {}

    def test_record_without_validators(self):
        record = CacheRecord(url="https://example.com/", content_fingerprint="a" * 64)

        assert conditional_headers(record) == {}

    def test_etag_wins_over_last_modified(self):
        record = CacheRecord(
            url="https://example.com/",
            etag='W/"abc"',
            last_modified=datetime(2021, 5, 20, 9, 0, tzinfo=timezone.utc),
            content_fingerprint="a" * 64,
        )

        assert conditional_headers(record) == {"If-None-Match": 'W/"abc"'}

    def test_last_modified_sent_as_http_date(self):
        record = CacheRecord(
            url="https://example.com/",
            last_modified=datetime(2021, 5, 20, 9, 0, tzinfo=timezone.utc),
            content_fingerprint="a" * 64,
        )

        assert conditional_headers(record) == {"If-Modified-Since": LAST_MODIFIED}

    def test_parse_http_date(self):
        assert parse_http_date(LAST_MODIFIED) == datetime(
            2021, 5, 20, 9, 0, tzinfo=timezone.utc
        )
        assert parse_http_date("not a date") is None
        assert parse_http_date(None) is None


class TestHttpFetch:
    """Test PageFetcher.fetch over HTTP."""

    @pytest.mark.asyncio
    async def test_first_fetch_is_unconditional(self, fetcher, page_site):
        page_site.set_page("/blog/", "<h2>Hello</h2>", etag='"v1"')

        async with page_site.serve() as server:
            url = str(server.make_url("/blog/"))
            outcome = await fetcher.fetch(url)

        assert isinstance(outcome, Modified)
        assert outcome.body == b"<h2>Hello</h2>"
        assert outcome.encoding == "utf-8"
        assert outcome.final_url == url
        assert outcome.unchanged is False
        assert outcome.record.url == url
        assert outcome.record.etag == '"v1"'
        assert outcome.record.content_fingerprint == fingerprint_bytes(b"<h2>Hello</h2>")

        headers = page_site.requests_for("/blog/")[0]["headers"]
        assert "If-None-Match" not in headers
        assert "If-Modified-Since" not in headers

    @pytest.mark.asyncio
    async def test_etag_revalidation_not_modified(self, fetcher, page_site):
        page_site.set_page("/blog/", "<h2>Hello</h2>", etag='"v1"')

        async with page_site.serve() as server:
            url = str(server.make_url("/blog/"))
            first = await fetcher.fetch(url)
            second = await fetcher.fetch(url, prior_record=first.record)

        assert isinstance(second, NotModified)
        assert second.url == url
        assert page_site.requests_for("/blog/")[1]["headers"]["If-None-Match"] == '"v1"'

    @pytest.mark.asyncio
    async def test_last_modified_revalidation_not_modified(self, fetcher, page_site):
        page_site.set_page("/blog/", "<h2>Hello</h2>", last_modified=LAST_MODIFIED)

        async with page_site.serve() as server:
            url = str(server.make_url("/blog/"))
            first = await fetcher.fetch(url)
            second = await fetcher.fetch(url, prior_record=first.record)

        assert first.record.last_modified == datetime(
            2021, 5, 20, 9, 0, tzinfo=timezone.utc
        )
        assert isinstance(second, NotModified)
        request = page_site.requests_for("/blog/")[1]
        assert request["headers"]["If-Modified-Since"] == LAST_MODIFIED

    @pytest.mark.asyncio
    async def test_resent_identical_body_is_flagged_unchanged(self, fetcher, page_site):
        page_site.set_page("/blog/", "<h2>Hello</h2>")

        async with page_site.serve() as server:
            url = str(server.make_url("/blog/"))
            first = await fetcher.fetch(url)
            second = await fetcher.fetch(url, prior_record=first.record)

        assert isinstance(second, Modified)
        assert second.unchanged is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [404, 500])
    async def test_error_status_fails(self, fetcher, page_site, status):
        page_site.set_page("/broken", "", status=status)

        async with page_site.serve() as server:
            outcome = await fetcher.fetch(str(server.make_url("/broken")))

        assert isinstance(outcome, Failed)
        assert isinstance(outcome.error, HttpStatusError)
        assert outcome.error.status == status
        assert outcome.error.error_code == ErrorCode.FEED_HTTP_STATUS

    @pytest.mark.asyncio
    async def test_unsolicited_not_modified_fails(self, fetcher, page_site):
        page_site.set_page("/stale", "", status=304)

        async with page_site.serve() as server:
            outcome = await fetcher.fetch(str(server.make_url("/stale")))

        assert isinstance(outcome, Failed)
        assert isinstance(outcome.error, HttpStatusError)
        assert outcome.error.status == 304
        assert "If-None-Match" not in page_site.requests_for("/stale")[0]["headers"]

    @pytest.mark.asyncio
    async def test_timeout_fails(self, settings, page_site):
        quick = settings.model_copy(
            update={"limits": LimitsSettings(request_timeout=0.5, connect_timeout=0.5)}
        )
        page_site.set_page("/slow", "<h2>Late</h2>", delay=2.0)

        async with page_site.serve() as server:
            outcome = await PageFetcher(quick).fetch(str(server.make_url("/slow")))

        assert isinstance(outcome, Failed)
        assert isinstance(outcome.error, FetchTimeoutError)
        assert outcome.error.context["timeout_seconds"] == 0.5

    @pytest.mark.asyncio
    async def test_connection_refused_fails(self, fetcher):
        outcome = await fetcher.fetch("http://127.0.0.1:1/")

        assert isinstance(outcome, Failed)
        assert isinstance(outcome.error, NetworkError)
        assert outcome.error.recoverable is True

    @pytest.mark.asyncio
    async def test_user_agent_override(self, fetcher, page_site):
        page_site.set_page("/blog/", "<h2>Hello</h2>")

        async with page_site.serve() as server:
            url = str(server.make_url("/blog/"))
            await fetcher.fetch(url)
            await fetcher.fetch(url, user_agent="custom-agent/2.0")

        requests = page_site.requests_for("/blog/")
        assert requests[0]["headers"]["User-Agent"] == "pagefeed/1.0"
        assert requests[1]["headers"]["User-Agent"] == "custom-agent/2.0"

    @pytest.mark.asyncio
    async def test_shared_session(self, fetcher, page_site):
        page_site.set_page("/a", "a")
        page_site.set_page("/b", "b")

        async with page_site.serve() as server:
            async with fetcher.get_session() as session:
                first = await fetcher.fetch(str(server.make_url("/a")), session=session)
                second = await fetcher.fetch(str(server.make_url("/b")), session=session)

        assert first.body == b"a"
        assert second.body == b"b"


class TestFileFetch:
    """Test PageFetcher.fetch for file:// URLs."""

    @pytest.mark.asyncio
    async def test_disabled_by_default(self, fetcher, tmp_path):
        page = tmp_path / "page.html"
        page.write_text("<h2>Local</h2>")

        outcome = await fetcher.fetch(page.as_uri())

        assert isinstance(outcome, Failed)
        assert isinstance(outcome.error, FetchError)
        assert outcome.error.error_code == ErrorCode.FEED_INVALID_URL

    @pytest.mark.asyncio
    async def test_reads_file_when_enabled(self, settings, tmp_path):
        page = tmp_path / "page.html"
        page.write_text("<h2>Local</h2>")
        fetcher = PageFetcher(settings, file_urls=True)

        outcome = await fetcher.fetch(page.as_uri())

        assert isinstance(outcome, Modified)
        assert outcome.body == b"<h2>Local</h2>"
        assert outcome.final_url == page.as_uri()
        assert outcome.record.last_modified is not None
        assert outcome.record.etag is None

    @pytest.mark.asyncio
    async def test_unchanged_mtime_not_modified(self, settings, tmp_path):
        page = tmp_path / "page.html"
        page.write_text("<h2>Local</h2>")
        fetcher = PageFetcher(settings, file_urls=True)

        first = await fetcher.fetch(page.as_uri())
        second = await fetcher.fetch(page.as_uri(), prior_record=first.record)

        assert isinstance(second, NotModified)

    @pytest.mark.asyncio
    async def test_missing_file_fails(self, settings, tmp_path):
        fetcher = PageFetcher(settings, file_urls=True)

        outcome = await fetcher.fetch((tmp_path / "missing.html").as_uri())

        assert isinstance(outcome, Failed)
        assert outcome.error.error_code == ErrorCode.FEED_NOT_FOUND

    def test_settings_enable_file_urls(self, settings):
        enabled = settings.model_copy(
            update={"http": settings.http.model_copy(update={"file_urls": True})}
        )

        assert PageFetcher(enabled).file_urls is True
        assert PageFetcher(enabled, file_urls=False).file_urls is False
        assert isinstance(settings, PageFeedSettings)
