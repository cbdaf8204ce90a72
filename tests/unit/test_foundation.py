"""
Foundation Tests for PageFeed
=============================

Test suite for core foundation components: database connection, logging,
exceptions, validators, atomic writes and the output directory lock.
"""

import json
import logging
import os
from unittest.mock import patch

import pytest

from pagefeed.database.connection import DatabaseConnection
from pagefeed.database.schema import DatabaseSchema
from pagefeed.utils.atomic import write_atomic
from pagefeed.utils.exceptions import (
    ConfigurationError,
    DuplicateOutputError,
    ErrorCode,
    FetchTimeoutError,
    HttpStatusError,
    NetworkError,
    PageFeedError,
    ValidationError,
    WriteError,
    get_user_friendly_message,
    handle_exception,
)
from pagefeed.utils.logging import (
    PerformanceLogger,
    get_logger_for_component,
    setup_logger,
)
from pagefeed.utils.process_lock import ProcessLock, output_dir_lock
from pagefeed.utils.validators import OutputValidator, SelectorValidator, URLValidator


class TestDatabaseConnection:
    """Test database connection management."""

    def test_transaction_management(self, tmp_path):
        """Committed rows persist, failed transactions roll back."""
        db_path = tmp_path / "test.db"
        DatabaseSchema(str(db_path)).create_tables()
        db = DatabaseConnection(str(db_path), pool_size=2)

        with db.transaction() as conn:
            conn.execute(
                "INSERT INTO cache_records (url, content_fingerprint, recorded_at, "
                "checked_at) VALUES (?, ?, ?, ?)",
                ("https://a.example/", "x", "2021-05-20", "2021-05-20"),
            )

        with pytest.raises(RuntimeError):
            with db.transaction() as conn:
                conn.execute(
                    "INSERT INTO cache_records (url, content_fingerprint, "
                    "recorded_at, checked_at) VALUES (?, ?, ?, ?)",
                    ("https://b.example/", "y", "2021-05-20", "2021-05-20"),
                )
                raise RuntimeError("abort")

        rows = db.execute_query("SELECT url FROM cache_records")
        assert [row["url"] for row in rows] == ["https://a.example/"]

        info = db.get_database_info()
        assert info["table_counts"]["cache_records"] == 1

        db.close_all_connections()

    def test_sql_errors_become_database_errors(self, db_connection):
        from pagefeed.utils.exceptions import DatabaseError

        with pytest.raises(DatabaseError) as exc_info:
            db_connection.execute_query("SELECT * FROM missing_table")

        assert exc_info.value.error_code == ErrorCode.DATABASE_ERROR


class TestLogging:
    """Test logging system."""

    def test_file_logging_is_structured(self, tmp_path):
        log_file = tmp_path / "logs" / "pagefeed.log"
        logger = setup_logger(
            name="pagefeed_test_file",
            level="INFO",
            log_file=str(log_file),
            console=False,
        )

        logger.info("Feed written", extra={"feed": "blog.rss"})
        for handler in logger.handlers:
            handler.flush()

        record = json.loads(log_file.read_text().splitlines()[0])
        assert record["message"] == "Feed written"
        assert record["level"] == "INFO"
        assert record["extra"]["feed"] == "blog.rss"

        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)

    def test_component_logger(self, caplog):
        logger = get_logger_for_component(
            "fetcher", feed="blog.rss", url="https://example.com/"
        )

        with caplog.at_level(logging.INFO, logger="pagefeed.fetcher"):
            logger.info("Component test message")

        record = caplog.records[0]
        assert record.name == "pagefeed.fetcher"
        assert record.component == "fetcher"
        assert record.feed == "blog.rss"
        assert record.url == "https://example.com/"

    def test_performance_logger(self, caplog):
        caplog.set_level(logging.INFO, logger="pagefeed.test")
        logger = logging.getLogger("pagefeed.test")

        with PerformanceLogger(logger, "feed run", feeds=2):
            pass

        assert "Completed feed run" in caplog.text


class TestExceptions:
    """Test exception handling system."""

    def test_pagefeed_error(self):
        error = PageFeedError(
            message="Test error",
            error_code=ErrorCode.CONFIG_INVALID,
            context={"key": "value"},
            user_message="User-friendly message",
            recoverable=True,
        )

        assert str(error) == "[C001] Test error"
        assert error.to_dict() == {
            "error_type": "PageFeedError",
            "error_code": "C001",
            "error_message": "[C001] Test error",
            "user_message": "User-friendly message",
            "context": {"key": "value"},
            "recoverable": True,
        }

    def test_specific_errors(self):
        timeout = FetchTimeoutError("slow", timeout=30, feed_url="https://a.example/")
        assert isinstance(timeout, NetworkError)
        assert timeout.error_code == ErrorCode.FEED_FETCH_TIMEOUT
        assert timeout.context == {"feed_url": "https://a.example/", "timeout_seconds": 30}
        assert timeout.recoverable is True

        status = HttpStatusError("gone", status=410)
        assert status.status == 410
        assert status.context["status"] == 410

        duplicate = DuplicateOutputError("twice", output_path="blog.rss")
        assert isinstance(duplicate, WriteError)
        assert duplicate.error_code == ErrorCode.OUTPUT_DUPLICATE
        assert duplicate.recoverable is False

        config = ConfigurationError("bad value", config_key="feeds.toml")
        assert config.user_message == "Configuration error: bad value"
        assert config.context["config_key"] == "feeds.toml"

    def test_exception_handling(self, caplog):
        logger = logging.getLogger("pagefeed.test")

        with caplog.at_level(logging.ERROR):
            network = handle_exception(ConnectionError("refused"), logger, "fetch")
            unexpected = handle_exception(KeyError("x"), logger, "extract")

        assert isinstance(network, NetworkError)
        assert network.context["operation"] == "fetch"
        assert unexpected.context["original_exception_type"] == "KeyError"
        assert "Operation 'extract' failed" in caplog.text

    def test_user_friendly_message(self):
        assert get_user_friendly_message(WriteError("disk full")) == (
            "Unable to write feed: disk full"
        )
        assert get_user_friendly_message(ValueError("x")) == (
            "An unexpected error occurred."
        )


class TestValidators:
    """Test input validators."""

    @pytest.mark.parametrize(
        "url",
        [
            "https://example.com/blog",
            "http://localhost:8080/",
            "file:///srv/pages/index.html",
        ],
    )
    def test_valid_source_urls(self, url):
        assert URLValidator.validate_source_url(f"  {url} ") == url

    @pytest.mark.parametrize(
        "url", ["", "example.com/blog", "ftp://example.com/", "https:///path", "file://"]
    )
    def test_invalid_source_urls(self, url):
        with pytest.raises(ValidationError):
            URLValidator.validate_source_url(url)

    def test_filename_validation(self):
        assert OutputValidator.validate_filename("blog.rss") == "blog.rss"

        for bad in ("", ".", "..", "feeds/blog.rss", "..\\blog.rss", "a\x00b"):
            with pytest.raises(ValidationError):
                OutputValidator.validate_filename(bad)

    def test_selector_validation(self):
        assert SelectorValidator.validate_selector(" article.post > h2 ") == (
            "article.post > h2"
        )

        with pytest.raises(ValidationError) as exc_info:
            SelectorValidator.validate_selector("div[", "item")
        assert exc_info.value.context["field_name"] == "item"

        with pytest.raises(ValidationError):
            SelectorValidator.validate_selector("   ")


class TestAtomicWrite:
    """Test write_atomic."""

    def test_replaces_content(self, tmp_path):
        target = tmp_path / "blog.rss"
        target.write_bytes(b"old")

        write_atomic(target, b"new")

        assert target.read_bytes() == b"new"
        assert [p.name for p in tmp_path.iterdir()] == ["blog.rss"]

    def test_failure_keeps_original_and_cleans_up(self, tmp_path):
        target = tmp_path / "blog.rss"
        target.write_bytes(b"old")

        with patch("pagefeed.utils.atomic.os.replace", side_effect=OSError("boom")):
            with pytest.raises(OSError):
                write_atomic(target, b"new")

        assert target.read_bytes() == b"old"
        assert [p.name for p in tmp_path.iterdir()] == ["blog.rss"]

    def test_missing_directory_raises(self, tmp_path):
        with pytest.raises(OSError):
            write_atomic(tmp_path / "missing" / "blog.rss", b"data")


class TestProcessLock:
    """Test the output directory lock."""

    def test_second_holder_is_refused(self, tmp_path):
        first = ProcessLock("test", lock_dir=str(tmp_path))
        second = ProcessLock("test", lock_dir=str(tmp_path))

        assert first.acquire() is True
        try:
            assert second.acquire() is False
            assert second.get_lock_holder_pid() == os.getpid()
        finally:
            first.release()

        assert second.acquire() is True
        second.release()

    def test_context_manager(self, tmp_path):
        with ProcessLock("ctx", lock_dir=str(tmp_path)) as lock:
            assert lock.acquired is True
            with pytest.raises(RuntimeError):
                with ProcessLock("ctx", lock_dir=str(tmp_path)):
                    pass

        assert not (tmp_path / "ctx.lock").exists()

    def test_same_directory_same_lock(self, tmp_path):
        feeds = tmp_path / "feeds"
        feeds.mkdir()

        first = output_dir_lock(feeds, lock_dir=str(tmp_path))
        second = output_dir_lock(feeds / ".." / "feeds", lock_dir=str(tmp_path))
        other = output_dir_lock(tmp_path, lock_dir=str(tmp_path))

        assert first.lock_file == second.lock_file
        assert first.lock_file != other.lock_file
