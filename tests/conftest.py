"""
PyTest Configuration and Fixtures
=================================

Shared fixtures for PageFeed tests:
- Settings pointing at a temporary cache database and output directory
- Database, cache store and output ledger over that database
- A small local web site served with aiohttp for fetcher and pipeline tests
"""

import asyncio
import os
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Dict, List, Optional

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

PROXY_VARIABLES = (
    "HTTP_PROXY",
    "HTTPS_PROXY",
    "ALL_PROXY",
    "http_proxy",
    "https_proxy",
    "all_proxy",
)


BLOG_HTML = """<!DOCTYPE html>
<html>
<head><title>Example Blog</title></head>
<body>
  <nav><a href="/about">About</a></nav>
  <article class="post">
    <h2><a href="/posts/one">First post</a></h2>
    <time datetime="2022-04-20T06:38:27+10:00">20 April</time>
    <div class="excerpt"><p>Hello <b>world</b></p></div>
    <img src="/media/one.mp3">
  </article>
  <article class="post">
    <h2><a href="https://other.example/two">Second
        post</a></h2>
    <time>May 20, 2021</time>
  </article>
  <article class="post">
    <h2><a href="posts/three">Third post</a></h2>
    <time>sometime last week</time>
  </article>
</body>
</html>
"""


# ============================================================================
# Environment
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Keep proxy variables and cached settings from leaking into tests."""
    for variable in PROXY_VARIABLES:
        monkeypatch.delenv(variable, raising=False)

    import pagefeed.config.settings as settings_module

    monkeypatch.setattr(settings_module, "_settings", None)


# ============================================================================
# Settings and Database Fixtures
# ============================================================================


@pytest.fixture
def settings(tmp_path):
    """Settings using a temp cache database and output directory."""
    from pagefeed.config.settings import (
        CacheSettings,
        LimitsSettings,
        PageFeedSettings,
        ProcessingSettings,
    )

    return PageFeedSettings(
        processing=ProcessingSettings(parallel_feeds=3),
        limits=LimitsSettings(request_timeout=5, connect_timeout=2),
        cache=CacheSettings(path=str(tmp_path / "cache" / "pagefeed.db")),
        output_dir=str(tmp_path / "feeds"),
    )


@pytest.fixture
def db_connection(settings):
    """Database connection manager with the schema created."""
    from pagefeed.database.connection import DatabaseConnection
    from pagefeed.database.schema import DatabaseSchema

    DatabaseSchema(settings.cache.path).create_tables()
    connection = DatabaseConnection(settings.cache.path, pool_size=2)
    yield connection

    connection.close_all_connections()


@pytest.fixture
def cache_store(db_connection):
    from pagefeed.storage.cache_repository import CacheStore

    return CacheStore(db_connection)


@pytest.fixture
def output_ledger(db_connection):
    from pagefeed.storage.output_repository import OutputLedger

    return OutputLedger(db_connection)


@pytest.fixture
def blog_html():
    return BLOG_HTML


@pytest.fixture
def blog_rule():
    """Extraction rule matching BLOG_HTML."""
    from pagefeed.config.feeds import ExtractionRule

    return ExtractionRule(
        url="https://example.com/blog/",
        item="article.post",
        heading="h2",
        link="h2 a",
        summary=".excerpt",
        date="time",
        media="img",
    )


# ============================================================================
# Local Web Site
# ============================================================================


class PageSite:
    """A tiny configurable web site for fetch tests.

    Pages honour ``If-None-Match`` and ``If-Modified-Since`` when they were
    given an ETag or Last-Modified value, and every request is recorded.
    """

    def __init__(self):
        self.pages: Dict[str, dict] = {}
        self.requests: List[dict] = []
        self.active = 0
        self.max_active = 0

    def set_page(
        self,
        path: str,
        body,
        etag: Optional[str] = None,
        last_modified: Optional[str] = None,
        status: int = 200,
        delay: float = 0.0,
        content_type: str = "text/html; charset=utf-8",
    ) -> None:
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.pages[path] = {
            "body": body,
            "etag": etag,
            "last_modified": last_modified,
            "status": status,
            "delay": delay,
            "content_type": content_type,
        }

    def requests_for(self, path: str) -> List[dict]:
        return [request for request in self.requests if request["path"] == path]

    async def _handle(self, request: web.Request) -> web.Response:
        self.requests.append({"path": request.path, "headers": request.headers.copy()})
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            page = self.pages.get(request.path)
            if page is None:
                return web.Response(status=404, text="not found")

            if page["delay"]:
                await asyncio.sleep(page["delay"])

            if page["status"] != 200:
                return web.Response(status=page["status"], text="error")

            if page["etag"] and request.headers.get("If-None-Match") == page["etag"]:
                return web.Response(status=304)
            if (
                page["last_modified"]
                and request.headers.get("If-Modified-Since") == page["last_modified"]
            ):
                return web.Response(status=304)

            headers = {"Content-Type": page["content_type"]}
            if page["etag"]:
                headers["ETag"] = page["etag"]
            if page["last_modified"]:
                headers["Last-Modified"] = page["last_modified"]

            return web.Response(body=page["body"], headers=headers)
        finally:
            self.active -= 1

    @asynccontextmanager
    async def serve(self):
        """Run the site on a local port for the duration of the block."""
        app = web.Application()
        app.router.add_route("GET", "/{tail:.*}", self._handle)
        server = TestServer(app)
        await server.start_server()
        try:
            yield server
        finally:
            await server.close()


@pytest.fixture
def page_site():
    return PageSite()


@pytest.fixture
def make_definition():
    """Factory for feed definitions with sensible selectors."""
    from pagefeed.config.feeds import FeedDefinition

    def factory(url: str, filename: str = "blog.rss", **overrides):
        config = {
            "url": url,
            "item": "article.post",
            "heading": "h2",
            "link": "h2 a",
            "summary": ".excerpt",
            "date": "time",
        }
        config.update(overrides.pop("config", {}))
        return FeedDefinition(
            title=overrides.pop("title", "Example Blog"),
            filename=filename,
            config=config,
            **overrides,
        )

    return factory


@pytest.fixture
def make_orchestrator(settings, cache_store, output_ledger):
    """Factory for orchestrators writing into the temp output directory."""
    from pagefeed.processing.pipeline import FeedOrchestrator

    def factory(**kwargs):
        kwargs.setdefault("settings", settings)
        return FeedOrchestrator(
            cache_store, output_ledger, settings.output_dir, **kwargs
        )

    return factory
