"""Incremental crawl orchestrator.

ForumMonitor runs crawl cycles over the configured sources:

    1. Direct thread URLs (``extra_urls``), in order
    2. Feed URLs (``urls``), in order, unless ``only_extra`` is set

Every discovered thread is stored (idempotently) before any notification
logic runs, then its comment pages are walked from the stored cursor until
a page fails or comes back empty. New comments are stored, gated, filtered
and dispatched one by one.

Failures are per item: they are logged, recorded in the cycle's CycleReport
and never abort the cycle.

The engine state (config, filter pipeline, notifier, comment policy) is an
immutable snapshot. ``reconfigure`` builds a new one and swaps it under the
write lock; an item already being processed keeps the snapshot it took.
"""

import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from threadwatch.backend.utils.concurrency import ReadWriteLock
from threadwatch.backend.utils.errors import (
    ERROR_KIND_CLASSIFIER_FAILED,
    ERROR_KIND_FETCH_FAILED,
    ERROR_KIND_NOTIFICATION_FAILED,
    ERROR_KIND_PARSE_FAILED,
    ERROR_KIND_STORAGE_FAILED,
    ConfigError,
    CycleReport,
    FetchError,
    NotificationError,
    ParseError,
    StorageError,
)
from threadwatch.backend.utils.logging_config import get_logger
from threadwatch.config import MIN_FREQUENCY_SECONDS, ConfigManager, MonitorConfig
from threadwatch.eligibility import CommentPolicy
from threadwatch.feed import FeedReader
from threadwatch.filters import build_pipeline
from threadwatch.filters.pipeline import REASON_CLASSIFIER_ERROR, FilterPipeline, Verdict
from threadwatch.models.forum_models import Comment, Thread, utc_now
from threadwatch.notifier import Notifier, create_notifier
from threadwatch.scraper import PageFetcher
from threadwatch.storage import ThreadStore

logger = get_logger(__name__)

# Items older than this are stored but never dispatched
RECENCY_WINDOW = timedelta(hours=24)

SHUTDOWN_GRACE_SECONDS = 10

# Statuses that end a comment walk once past its first page
PAGE_EXHAUSTED_STATUSES = (404, 410)


@dataclass(frozen=True)
class ThrottlePolicy:
    """Fixed pauses, in seconds, between consecutive outbound fetches."""

    between_feeds: float = 1.0
    between_feed_threads: float = 0.5
    between_direct_urls: float = 2.0
    between_pages: float = 1.0

    @classmethod
    def disabled(cls) -> "ThrottlePolicy":
        return cls(0.0, 0.0, 0.0, 0.0)


@dataclass(frozen=True)
class EngineState:
    config: MonitorConfig
    pipeline: FilterPipeline
    notifier: Notifier
    policy: CommentPolicy


class ForumMonitor:
    """Stateful, resumable crawl engine with its own scheduling loop.

    Attributes:
        store: Dedup/cursor store
        feed_reader: RSS source adapter
        page_fetcher: HTML page source adapter
        config_manager: Used by ``reload``; optional otherwise
        throttle: Pauses between fetches

    Example:
        >>> monitor = ForumMonitor(create_store("sqlite"), manager.load(), config_manager=manager)
        >>> report = monitor.run_cycle()
        >>> report.count("threads_inserted")
        2
        >>> monitor.start()
        >>> monitor.stop(timeout=SHUTDOWN_GRACE_SECONDS)
        True
    """

    def __init__(
        self,
        store: ThreadStore,
        config: MonitorConfig,
        config_manager: Optional[ConfigManager] = None,
        feed_reader: Optional[FeedReader] = None,
        page_fetcher: Optional[PageFetcher] = None,
        throttle: Optional[ThrottlePolicy] = None,
        clock: Callable[[], datetime] = utc_now,
        pipeline_factory: Callable[[MonitorConfig], FilterPipeline] = build_pipeline,
        notifier_factory: Callable[[MonitorConfig], Notifier] = create_notifier,
    ):
        self.store = store
        self.config_manager = config_manager
        self.feed_reader = feed_reader or FeedReader()
        self.page_fetcher = page_fetcher or PageFetcher()
        self.throttle = throttle or ThrottlePolicy()
        self.clock = clock
        self._pipeline_factory = pipeline_factory
        self._notifier_factory = notifier_factory

        self._state_lock = ReadWriteLock()
        self._state = self._build_state(config)

        self._cycle_lock = threading.Lock()
        self._lifecycle_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._last_report: Optional[CycleReport] = None

    # ------------------------------------------------------------------
    # Engine state
    # ------------------------------------------------------------------

    def _build_state(self, config: MonitorConfig) -> EngineState:
        config.validate_backends()
        return EngineState(
            config=config,
            pipeline=self._pipeline_factory(config),
            notifier=self._notifier_factory(config),
            policy=CommentPolicy(config.comment_filter),
        )

    def _snapshot(self) -> EngineState:
        with self._state_lock.read_locked():
            return self._state

    @property
    def config(self) -> MonitorConfig:
        return self._snapshot().config

    @property
    def last_report(self) -> Optional[CycleReport]:
        return self._last_report

    def reconfigure(self, new_config: MonitorConfig) -> None:
        """Swap in a new engine state built from ``new_config``.

        Everything is built before the swap, so on failure the previous
        state stays active.

        Raises:
            ConfigError: The configuration is incomplete or names an unknown backend
        """
        state = self._build_state(new_config)
        with self._state_lock.write_locked():
            self._state = state
        logger.info(
            "monitor_reconfigured",
            notice_type=new_config.notice_type,
            use_ai_filter=new_config.use_ai_filter,
            use_keywords_filter=new_config.use_keywords_filter,
            comment_filter=new_config.comment_filter,
        )

    def reload(self) -> MonitorConfig:
        """Re-read the config file and apply it.

        Raises:
            ConfigError: No config manager, or the file is invalid
        """
        if self.config_manager is None:
            raise ConfigError("Monitor has no config manager to reload from")
        config = self.config_manager.reload()
        self.reconfigure(config)
        return config

    # ------------------------------------------------------------------
    # Crawl cycle
    # ------------------------------------------------------------------

    def run_cycle(self) -> CycleReport:
        """Run one full crawl cycle and return its report.

        Item failures never propagate; only unexpected programming errors do.
        """
        with self._cycle_lock:
            report = CycleReport()
            config = self._snapshot().config
            logger.info(
                "cycle_started",
                extra_urls=len(config.extra_urls),
                feeds=0 if config.only_extra else len(config.urls),
            )

            fetched_before = False
            for url in config.extra_urls:
                if fetched_before:
                    self._pause(self.throttle.between_direct_urls)
                self._process_thread_url(url, report)
                fetched_before = True

            if not config.only_extra:
                for url in config.urls:
                    if fetched_before:
                        self._pause(self.throttle.between_feeds)
                    self._process_feed(url, report)
                    fetched_before = True

            report.finish()
            self._last_report = report

        logger.info("cycle_finished", errors=len(report.errors), **report.to_dict()["counters"])
        return report

    def _pause(self, seconds: float) -> None:
        # Pacing holds while a stop drains the in-flight cycle
        if seconds > 0:
            time.sleep(seconds)

    def _is_recent(self, timestamp: datetime) -> bool:
        return self.clock() - timestamp <= RECENCY_WINDOW

    def _process_feed(self, url: str, report: CycleReport) -> None:
        try:
            threads = self.feed_reader.fetch_feed(url)
        except FetchError as e:
            logger.warning("feed_fetch_failed", url=url, error=str(e))
            report.record_error(ERROR_KIND_FETCH_FAILED, str(e), {"url": url})
            return
        except ParseError as e:
            logger.warning("feed_parse_failed", url=url, error=str(e))
            report.record_error(ERROR_KIND_PARSE_FAILED, str(e), {"url": url})
            return

        report.increment("feeds_fetched")
        logger.debug("feed_fetched", url=url, threads=len(threads))

        for i, thread in enumerate(threads):
            if i:
                self._pause(self.throttle.between_feed_threads)
            self._process_thread(thread, report)

    def _process_thread_url(self, url: str, report: CycleReport) -> None:
        try:
            existing = self.store.find_thread(url)
        except StorageError as e:
            logger.error("thread_lookup_failed", link=url, error=str(e))
            report.record_error(ERROR_KIND_STORAGE_FAILED, str(e), {"link": url})
            return

        if existing is not None:
            report.increment("threads_seen")
            self._walk_comments(existing, self._snapshot(), report)
            return

        try:
            thread = self.page_fetcher.fetch_thread_page(url)
        except FetchError as e:
            logger.warning("thread_page_fetch_failed", link=url, error=str(e))
            report.record_error(ERROR_KIND_FETCH_FAILED, str(e), {"link": url})
            return
        except ParseError as e:
            logger.warning("thread_page_parse_failed", link=url, error=str(e))
            report.record_error(ERROR_KIND_PARSE_FAILED, str(e), {"link": url})
            return

        self._process_thread(thread, report)

    def _process_thread(self, thread: Thread, report: CycleReport) -> None:
        state = self._snapshot()
        report.increment("threads_seen")

        try:
            inserted = self.store.insert_thread(thread)
            stored = thread if inserted else self.store.find_thread(thread.link)
        except StorageError as e:
            logger.error("thread_store_failed", link=thread.link, error=str(e))
            report.record_error(ERROR_KIND_STORAGE_FAILED, str(e), {"link": thread.link})
            return

        if inserted:
            report.increment("threads_inserted")
            logger.info("thread_inserted", link=thread.link, domain=thread.domain, title=thread.title)
            self._notify_thread(thread, state, report)

        self._walk_comments(stored or thread, state, report)

    def _notify_thread(self, thread: Thread, state: EngineState, report: CycleReport) -> None:
        if not self._is_recent(thread.publish_time):
            logger.debug("thread_too_old_to_notify", link=thread.link,
                         publish_time=thread.publish_time.isoformat())
            return

        verdict = state.pipeline.evaluate_thread(thread)
        if not self._accepted(verdict, report, {"link": thread.link}):
            return

        try:
            state.notifier.send_thread(thread, verdict.annotation)
        except NotificationError as e:
            logger.warning("thread_notification_failed", link=thread.link, error=str(e))
            report.record_error(ERROR_KIND_NOTIFICATION_FAILED, str(e), {"link": thread.link})
            return

        report.increment("threads_notified")
        logger.info("thread_notified", link=thread.link, channel=state.notifier.channel)

    def _walk_comments(self, thread: Thread, state: EngineState, report: CycleReport) -> None:
        """Walk comment pages from the stored cursor until exhaustion.

        The cursor only ever records pages that returned at least one
        comment. The page at the cursor is fetched again on the next cycle
        since sites append new comments to it.
        """
        start = max(thread.last_page_fetched, 1)
        page = start
        ceiling = state.config.max_pages_per_cycle

        while True:
            if ceiling and page - start >= ceiling:
                logger.info("page_ceiling_reached", link=thread.link, page=page, ceiling=ceiling)
                break
            if page > start:
                self._pause(self.throttle.between_pages)

            try:
                comments = self.page_fetcher.fetch_comments_page(thread.link, page)
            except (FetchError, ParseError) as e:
                if page > start and getattr(e, "status_code", None) in PAGE_EXHAUSTED_STATUSES:
                    report.increment("pages_exhausted")
                    logger.debug("comment_pages_exhausted", link=thread.link, page=page, status=e.status_code)
                    break
                logger.info("comment_page_fetch_failed", link=thread.link, page=page, error=str(e))
                kind = ERROR_KIND_FETCH_FAILED if isinstance(e, FetchError) else ERROR_KIND_PARSE_FAILED
                report.record_error(kind, str(e), {"link": thread.link, "page": page})
                break

            report.increment("pages_fetched")
            if not comments:
                break

            for comment in comments:
                self._process_comment(thread, comment, state, report)
            page += 1

        if page > start:
            try:
                self.store.update_last_page(thread.link, page - 1)
            except StorageError as e:
                logger.error("cursor_update_failed", link=thread.link, page=page - 1, error=str(e))
                report.record_error(ERROR_KIND_STORAGE_FAILED, str(e),
                                    {"link": thread.link, "page": page - 1})
                return
            logger.debug("cursor_advanced", link=thread.link, last_page_fetched=page - 1)

    def _process_comment(self, thread: Thread, comment: Comment, state: EngineState,
                         report: CycleReport) -> None:
        report.increment("comments_seen")

        try:
            if self.store.comment_exists(comment.comment_id):
                return
            if not self.store.insert_comment(comment):
                return
        except StorageError as e:
            logger.error("comment_store_failed", comment_id=comment.comment_id, error=str(e))
            report.record_error(ERROR_KIND_STORAGE_FAILED, str(e), {"comment_id": comment.comment_id})
            return

        report.increment("comments_inserted")

        if not state.policy.allows(thread, comment):
            return
        if not self._is_recent(comment.created_time):
            return

        verdict = state.pipeline.evaluate_comment(comment)
        if not self._accepted(verdict, report, {"comment_id": comment.comment_id}):
            return

        try:
            state.notifier.send_comment(thread, comment, verdict.annotation)
        except NotificationError as e:
            logger.warning("comment_notification_failed", comment_id=comment.comment_id, error=str(e))
            report.record_error(ERROR_KIND_NOTIFICATION_FAILED, str(e),
                                {"comment_id": comment.comment_id})
            return

        report.increment("comments_notified")
        logger.info("comment_notified", comment_id=comment.comment_id, channel=state.notifier.channel)

    @staticmethod
    def _accepted(verdict: Verdict, report: CycleReport, context: dict) -> bool:
        if verdict.reason == REASON_CLASSIFIER_ERROR:
            report.record_error(ERROR_KIND_CLASSIFIER_FAILED, verdict.error or "", context)
        return verdict.accepted

    # ------------------------------------------------------------------
    # Scheduling loop
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def start(self) -> bool:
        """Start the scheduling loop. Returns False if it was already running."""
        with self._lifecycle_lock:
            if self.is_running:
                return False
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._run_loop, name="threadwatch-monitor", daemon=True)
            self._thread.start()
        logger.info("monitor_started", frequency=self.config.frequency)
        return True

    def stop(self, timeout: Optional[float] = None) -> bool:
        """Signal the loop to stop and wait for the in-flight cycle to drain.

        Returns:
            True if the loop has finished, False if ``timeout`` elapsed first
        """
        with self._lifecycle_lock:
            self._stop_event.set()
            thread = self._thread
            if thread is None:
                return True
            thread.join(timeout)
            finished = not thread.is_alive()
            if finished:
                self._thread = None
        logger.info("monitor_stopped", drained=finished)
        return finished

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_cycle()
            except Exception as e:
                logger.error("cycle_crashed", error=str(e), exc_info=True)

            interval = max(self.config.frequency, MIN_FREQUENCY_SECONDS)
            if self._stop_event.wait(interval):
                break
