from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Mapping, Optional

from newscrawl.domain import BatchOutcome, Candidate, CrawlRun, ProgressEvent, ProgressPhase, RunCounters, RunStatus, Source
from newscrawl.exceptions import AlreadyRunningError, ExtractionError, FetchError, NoRunError
from newscrawl.services.crawl_strategies import (
    DEFAULT_MAX_PAGES,
    DEFAULT_MAX_RANGE_ITEMS,
    CrawlStrategy,
    build_strategy,
)
from newscrawl.services.deduplicator import Decision, Deduplicator
from newscrawl.services.progress_bus import ProgressBus, Subscription

logger = logging.getLogger(__name__)

RECOVERY_MESSAGE = "Scrape interrupted by service restart"


class RunCoordinator:
    """Admits, executes and cancels scrape runs.

    At most one run executes at a time. Admission holds an in-process lock
    while checking the store; the store's partial unique index on running
    runs backs it up across processes. Each admitted run gets its own
    `threading.Event` which only that run's loop observes.
    """

    def __init__(
        self,
        *,
        runs_repo,
        articles_repo,
        fetcher,
        extractors: Mapping[Source, Any],
        progress_bus: ProgressBus,
        deduplicator: Optional[Deduplicator] = None,
        settings_repo=None,
        flush_every: int = 50,
        progress_every: int = 100,
        max_range_items: int = DEFAULT_MAX_RANGE_ITEMS,
        default_max_pages: int = DEFAULT_MAX_PAGES,
        thread_factory: Callable[..., threading.Thread] = threading.Thread,
    ):
        self.runs_repo = runs_repo
        self.articles_repo = articles_repo
        self.fetcher = fetcher
        self.extractors = extractors
        self.progress_bus = progress_bus
        self.deduplicator = deduplicator or Deduplicator(articles_repo)
        self.settings_repo = settings_repo
        self.flush_every = max(1, int(flush_every))
        self.progress_every = max(1, int(progress_every))
        self.max_range_items = int(max_range_items)
        self.default_max_pages = int(default_max_pages)
        self._thread_factory = thread_factory
        self._lock = threading.Lock()
        self._cancel_events: Dict[str, threading.Event] = {}
        self._threads: Dict[str, threading.Thread] = {}

    # --- admission -----------------------------------------------------

    def _max_pages_default(self) -> int:
        if self.settings_repo is None:
            return self.default_max_pages
        try:
            return int(self.settings_repo.get_value("max_pages", self.default_max_pages))
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid max_pages setting")
            return self.default_max_pages

    def build_strategy(self, strategy_kind: Optional[str], params: Mapping[str, Any]) -> CrawlStrategy:
        return build_strategy(
            strategy_kind,
            params,
            extractors=self.extractors,
            fetcher=self.fetcher,
            max_range_items=self.max_range_items,
            default_max_pages=self._max_pages_default(),
        )

    def admit_run(self, strategy_kind: Optional[str], params: Mapping[str, Any]) -> str:
        """Validate, record and start a run in the background.

        Raises `InvalidRunRequest` before anything is stored, and
        `AlreadyRunningError` when another run is running.
        """
        strategy = self.build_strategy(strategy_kind, params)
        with self._lock:
            running = self.runs_repo.find_running_run()
            if running is not None:
                raise AlreadyRunningError(running.id)
            run_id = self.runs_repo.create_run(strategy.run_kind, strategy.config(), strategy.total_hint)
            cancel_event = threading.Event()
            self._cancel_events[run_id] = cancel_event

        logger.info(
            "Admitted %s run %s (%s, %s)",
            strategy.run_kind.value,
            run_id,
            strategy.source.display_name,
            strategy.kind,
        )
        thread = self._thread_factory(
            target=self._run,
            args=(run_id, strategy, cancel_event),
            name=f"scrape-{run_id[:8]}",
            daemon=True,
        )
        self._threads[run_id] = thread
        thread.start()
        return run_id

    def wait(self, run_id: str, timeout: Optional[float] = None) -> bool:
        """Block until the run's thread exits; returns False on timeout."""
        thread = self._threads.get(run_id)
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    # --- cancellation and queries --------------------------------------

    def cancel_current_run(self) -> str:
        running = self.runs_repo.find_running_run()
        if running is None:
            raise NoRunError()
        with self._lock:
            cancel_event = self._cancel_events.get(running.id)
        if cancel_event is not None:
            cancel_event.set()
        self.runs_repo.complete_run(running.id, RunStatus.CANCELLED)
        logger.info("Cancellation requested for run %s", running.id)
        if cancel_event is None:
            # no loop in this process will report it
            self._publish(running.id, ProgressPhase.CANCELLED, running.counters, message="Scrape cancelled")
        return running.id

    def subscribe_progress(self) -> Subscription:
        return self.progress_bus.subscribe()

    def current_run_status(self) -> Optional[CrawlRun]:
        return self.runs_repo.find_running_run()

    def list_runs(self, limit: int = 20):
        return self.runs_repo.list_runs(limit)

    @property
    def is_running(self) -> bool:
        return self.runs_repo.find_running_run() is not None

    def recover_incomplete_runs(self) -> int:
        """Fail runs a previous process left running; call once at startup."""
        return self.runs_repo.fail_incomplete_runs(RECOVERY_MESSAGE)

    # --- run loop ------------------------------------------------------

    def _publish(self, run_id: str, phase: ProgressPhase, counters: RunCounters,
                 current_article: Optional[str] = None, message: Optional[str] = None) -> None:
        self.progress_bus.publish(
            ProgressEvent.from_counters(run_id, phase, counters, current_article=current_article, message=message)
        )

    def _flush(self, run_id: str, counters: RunCounters) -> None:
        self.runs_repo.update_run_progress(run_id, counters.snapshot())

    def _final_flush(self, run_id: str, counters: RunCounters) -> None:
        try:
            self._flush(run_id, counters)
        except Exception:
            logger.exception("Final progress flush failed for run %s", run_id)

    def _run(self, run_id: str, strategy: CrawlStrategy, cancel_event: threading.Event) -> None:
        try:
            self._run_to_end(run_id, strategy, cancel_event)
        finally:
            self._threads.pop(run_id, None)

    def _run_to_end(self, run_id: str, strategy: CrawlStrategy, cancel_event: threading.Event) -> None:
        name = strategy.source.display_name
        counters = RunCounters(total_pages=strategy.total_hint)
        self._publish(run_id, ProgressPhase.STARTED, counters, message=f"{name} scrape started")

        error: Optional[Exception] = None
        cancelled = False
        try:
            cancelled = self._execute(run_id, strategy, cancel_event, counters)
        except Exception as e:
            logger.exception("Scrape run %s failed", run_id)
            error = e
        finally:
            self._final_flush(run_id, counters)
            with self._lock:
                self._cancel_events.pop(run_id, None)

        if error is not None:
            self._finish(run_id, RunStatus.FAILED, counters, f"{name} scrape failed", str(error))
        elif cancelled or cancel_event.is_set():
            logger.info("Run %s cancelled", run_id)
            self._publish(run_id, ProgressPhase.CANCELLED, counters, message=f"{name} scrape cancelled")
        else:
            self._finish(run_id, RunStatus.COMPLETED, counters, f"{name} scrape completed")

    def _finish(self, run_id: str, status: RunStatus, counters: RunCounters,
                message: str, error: Optional[str] = None) -> None:
        try:
            changed = self.runs_repo.complete_run(run_id, status, error)
        except Exception:
            logger.exception("Failed to record %s status for run %s", status.value, run_id)
            changed = True
        if not changed:
            # cancelled from elsewhere after the loop's last check
            self._publish(run_id, ProgressPhase.CANCELLED, counters, message=message)
            return
        logger.info(
            "Run %s %s: found=%s new=%s updated=%s failed=%s skipped=%s",
            run_id,
            status.value,
            counters.articles_found,
            counters.articles_new,
            counters.articles_updated,
            counters.articles_failed,
            counters.articles_skipped,
        )
        self._publish(run_id, ProgressPhase(status.value), counters, message=error or message)

    def _execute(self, run_id: str, strategy: CrawlStrategy, cancel_event: threading.Event,
                 counters: RunCounters) -> bool:
        """Drive the strategy to exhaustion. Returns True if cancelled."""
        since_flush = 0
        batches = iter(strategy.produce_batches())
        while True:
            if cancel_event.is_set():
                return True
            batch = next(batches, None)
            if batch is None:
                return False
            counters.total_pages = strategy.total_hint
            if strategy.found_on_discovery:
                counters.articles_found += len(batch)
                self._publish(
                    run_id, ProgressPhase.PROGRESS, counters, message=f"Discovered {len(batch)} articles"
                )

            outcome = BatchOutcome(batch_index=batch.index, batch_size=len(batch))
            stop = False
            for candidate in batch.candidates:
                if cancel_event.is_set():
                    return True
                if strategy.candidates_confirmed and not strategy.found_on_discovery:
                    counters.articles_found += 1
                existed = self._process_candidate(run_id, strategy, candidate, counters)
                if strategy.progress_unit == "items":
                    counters.pages_scraped += 1

                outcome.seen += 1
                outcome.last_existing = existed
                if existed:
                    outcome.existing += 1

                since_flush += 1
                if since_flush >= self.flush_every:
                    self._flush(run_id, counters)
                    since_flush = 0
                if strategy.should_stop_early(outcome):
                    stop = True
                    break

            if strategy.progress_unit == "pages":
                counters.pages_scraped += 1
            outcome.batch_complete = True
            self._flush(run_id, counters)
            since_flush = 0

            if stop or strategy.should_stop_early(outcome):
                logger.info("Stopping early after batch %s: reached already-stored articles", batch.index)
                return False

    def _process_candidate(self, run_id: str, strategy: CrawlStrategy, candidate: Candidate,
                           counters: RunCounters) -> bool:
        """Handle one candidate; returns True if the store already had it."""
        source = strategy.source.display_name
        external_id = candidate.external_id
        decision = self.deduplicator.classify(source, external_id, strategy.force_rescrape)

        if decision == Decision.SKIP:
            counters.articles_skipped += 1
            if counters.articles_skipped % self.progress_every == 0:
                self._publish(
                    run_id,
                    ProgressPhase.PROGRESS,
                    counters,
                    message=f"Skipped {counters.articles_skipped} existing articles",
                )
            return True

        url = strategy.article_url(candidate)
        self._publish(run_id, ProgressPhase.PROGRESS, counters, current_article=candidate.title or external_id)
        try:
            markup = self.fetcher.fetch(url)
            draft = strategy.extractor.extract(external_id, url, markup)
        except FetchError as e:
            if e.is_not_found:
                logger.debug("Article %s not found", external_id)
                counters.articles_skipped += 1
            else:
                logger.warning("Failed to fetch article %s: %s", external_id, e)
                counters.articles_failed += 1
            return decision == Decision.UPDATE
        except ExtractionError as e:
            logger.warning("%s", e)
            counters.articles_failed += 1
            return decision == Decision.UPDATE

        if not strategy.candidates_confirmed:
            counters.articles_found += 1
        if decision == Decision.INSERT:
            self.articles_repo.insert(draft)
            counters.articles_new += 1
            logger.info("Saved new article: %s", draft.title)
        else:
            self.articles_repo.update(source, external_id, draft)
            counters.articles_updated += 1
            logger.info("Updated article: %s", draft.title)
        return decision == Decision.UPDATE
