"""
Feed Orchestrator
=================

Drives each feed definition through fetch, extract, build and write, and
runs many definitions concurrently. A failing feed never affects the others:
its error is recorded in the run summary and the run carries on.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, Union

import aiohttp

from .. import __version__
from ..config.feeds import FeedDefinition
from ..config.settings import PageFeedSettings, get_settings
from ..database.models import CacheRecord, OutputRecord
from ..storage.cache_repository import CacheStore
from ..storage.output_repository import OutputLedger
from ..utils.atomic import write_atomic
from ..utils.exceptions import (
    DuplicateOutputError,
    PageFeedError,
    WriteError,
    handle_exception,
)
from ..utils.logging import PerformanceLogger, get_logger_for_component
from .dates import DateNormalizer
from .extractor import CssExtractor
from .feed_builder import FeedBuilder
from .fetcher import Failed, NotModified, PageFetcher, fingerprint_bytes


class FeedState(str, Enum):
    """Terminal state of one feed in a run."""

    WRITTEN = "written"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class FeedRunResult:
    """Outcome of processing one feed definition."""

    filename: str
    url: str
    state: FeedState
    reason: str = ""
    item_count: int = 0
    error: Optional[PageFeedError] = None
    duration_seconds: float = 0.0


@dataclass
class RunSummary:
    """Outcomes of a whole run, in definition order."""

    results: List[FeedRunResult] = field(default_factory=list)
    duration_seconds: float = 0.0

    def _count(self, state: FeedState) -> int:
        return sum(1 for result in self.results if result.state == state)

    @property
    def written(self) -> int:
        return self._count(FeedState.WRITTEN)

    @property
    def skipped(self) -> int:
        return self._count(FeedState.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(FeedState.FAILED)

    @property
    def ok(self) -> bool:
        """True when no feed failed."""
        return self.failed == 0


class FeedOrchestrator:
    """Runs feed definitions end to end."""

    def __init__(
        self,
        cache_store: CacheStore,
        output_ledger: OutputLedger,
        output_dir: Union[str, Path],
        settings: Optional[PageFeedSettings] = None,
        fetcher: Optional[PageFetcher] = None,
        extractor: Optional[CssExtractor] = None,
        builder: Optional[FeedBuilder] = None,
        version: str = __version__,
    ):
        """Initialize the orchestrator.

        Args:
            cache_store: Validators per source URL
            output_ledger: Last output written per filename
            output_dir: Directory feeds are written to
            settings: Application settings (default: global settings)
            fetcher: Page fetcher (default: built from settings)
            extractor: CSS extractor (default: built from settings)
            builder: Feed builder
            version: Application version recorded with every output
        """
        self.settings = settings or get_settings()
        self.cache_store = cache_store
        self.output_ledger = output_ledger
        self.output_dir = Path(output_dir).expanduser()
        self.fetcher = fetcher or PageFetcher(self.settings)
        self.extractor = extractor or CssExtractor(
            DateNormalizer(self.settings.dates.reference_timezone)
        )
        self.builder = builder or FeedBuilder()
        self.version = version
        self.parallel_feeds = self.settings.processing.parallel_feeds
        self.logger = get_logger_for_component("pipeline")

    async def run(self, definitions: Sequence[FeedDefinition]) -> RunSummary:
        """Process every definition and summarise the outcomes.

        The first definition claiming a filename wins; later ones fail with
        ``DuplicateOutputError`` without being fetched.

        Raises:
            WriteError: If the output directory cannot be created
        """
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WriteError(
                f"Unable to create output directory {self.output_dir}: {e}",
                output_path=str(self.output_dir),
                recoverable=False,
            ) from e

        start = time.monotonic()
        results: List[Optional[FeedRunResult]] = [None] * len(definitions)
        scheduled = []
        claimed = {}

        for index, definition in enumerate(definitions):
            owner = claimed.get(definition.filename)
            if owner is not None:
                error = DuplicateOutputError(
                    f"{definition.filename} is already produced by feed '{owner.title}'",
                    output_path=str(self.output_dir / definition.filename),
                )
                self.logger.error(
                    f"Skipping feed '{definition.title}': {error}",
                    extra={"feed": definition.filename},
                )
                results[index] = FeedRunResult(
                    filename=definition.filename,
                    url=definition.url,
                    state=FeedState.FAILED,
                    reason="duplicate output filename",
                    error=error,
                )
            else:
                claimed[definition.filename] = definition
                scheduled.append((index, definition))

        semaphore = asyncio.Semaphore(self.parallel_feeds)

        with PerformanceLogger(
            self.logger, "feed run", feed_count=len(scheduled)
        ):
            async with self.fetcher.get_session() as session:

                async def bounded(definition: FeedDefinition) -> FeedRunResult:
                    async with semaphore:
                        return await self.process_feed(definition, session=session)

                outcomes = await asyncio.gather(
                    *(bounded(definition) for _, definition in scheduled)
                )

        for (index, _), outcome in zip(scheduled, outcomes):
            results[index] = outcome

        summary = RunSummary(
            results=list(results), duration_seconds=time.monotonic() - start
        )
        self.logger.info(
            f"Run finished: {summary.written} written, {summary.skipped} skipped, "
            f"{summary.failed} failed"
        )
        return summary

    async def process_feed(
        self,
        definition: FeedDefinition,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> FeedRunResult:
        """Fetch, extract, build and write one feed.

        Feed-level errors are captured in the result. Cancellation propagates.
        """
        url = definition.url
        output_path = self.output_dir / definition.filename
        logger = get_logger_for_component(
            "pipeline", feed=definition.filename, url=url
        )
        start = time.monotonic()

        def finish(state: FeedState, **kwargs) -> FeedRunResult:
            return FeedRunResult(
                filename=definition.filename,
                url=url,
                state=state,
                duration_seconds=time.monotonic() - start,
                **kwargs,
            )

        logger.info(f"processing {url}")

        try:
            prior = self._prior_record(definition, output_path, logger)
            outcome = await self.fetcher.fetch(
                url, definition.user_agent, prior, session=session
            )

            if isinstance(outcome, NotModified):
                self.cache_store.touch(url)
                return finish(FeedState.SKIPPED, reason="source not modified")

            if isinstance(outcome, Failed):
                raise outcome.error

            self.cache_store.update(url, outcome.record)
            if outcome.unchanged:
                logger.debug("source body identical to the previous fetch")

            items = await asyncio.to_thread(
                self.extractor.extract_all,
                outcome.body,
                outcome.encoding,
                definition.config,
                outcome.final_url,
            )
            if not items:
                logger.warning(
                    f"no items matched '{definition.config.item}', "
                    f"the selectors may need updating"
                )

            data = self.builder.serialize(self.builder.build(definition, items))
            entry = OutputRecord(
                filename=definition.filename,
                fingerprint=fingerprint_bytes(data),
                source_url=url,
                source_fingerprint=outcome.record.content_fingerprint,
                definition_hash=definition.fingerprint(),
                version=self.version,
            )

            previous = self.output_ledger.lookup(definition.filename)
            if (
                previous is not None
                and previous.fingerprint == entry.fingerprint
                and output_path.exists()
            ):
                # Keep provenance current so the next run may revalidate
                self.output_ledger.record(
                    entry.model_copy(update={"written_at": previous.written_at})
                )
                logger.info(f"{definition.filename} is unchanged, not rewriting")
                return finish(
                    FeedState.SKIPPED, reason="output unchanged", item_count=len(items)
                )

            try:
                await asyncio.to_thread(write_atomic, output_path, data)
            except OSError as e:
                raise WriteError(
                    f"Unable to write {output_path}: {e}", output_path=str(output_path)
                ) from e

            self.output_ledger.record(entry)
            logger.info(f"wrote {len(items)} items to {output_path}")
            return finish(FeedState.WRITTEN, item_count=len(items))

        except PageFeedError as e:
            logger.error(f"feed '{definition.title}' failed: {e}", extra=e.to_dict())
            return finish(FeedState.FAILED, reason=e.user_message, error=e)

        except Exception as e:
            error = handle_exception(
                e, logger, "process_feed", {"feed": definition.filename}
            )
            return finish(FeedState.FAILED, reason=error.user_message, error=error)

    def _prior_record(
        self, definition: FeedDefinition, output_path: Path, logger
    ) -> Optional[CacheRecord]:
        """Cache record to revalidate against, or None to fetch unconditionally.

        Validators are only trusted when the existing output was produced by
        this definition, this version, from the content they describe.
        """
        record = self.cache_store.lookup(definition.url)
        if record is None:
            return None

        if not output_path.exists():
            logger.debug("output file missing, fetching unconditionally")
            return None

        entry = self.output_ledger.lookup(definition.filename)
        if (
            entry is None
            or entry.source_url != definition.url
            or entry.definition_hash != definition.fingerprint()
            or entry.version != self.version
            or entry.source_fingerprint != record.content_fingerprint
        ):
            logger.debug("output is stale relative to the cache, ignoring validators")
            return None

        return record
