import threading
from unittest.mock import Mock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from newscrawl.db.engine import init_orm
from newscrawl.domain import ArticleDraft, ProgressPhase, RunCounters, RunKind, RunStatus, Source
from newscrawl.exceptions import AlreadyRunningError, FetchError, InvalidRunRequest, NoRunError
from newscrawl.repository.articles import ArticlesRepository
from newscrawl.repository.scrape_runs import ScrapeRunsRepository
from newscrawl.repository.settings import SettingsRepository
from newscrawl.services.extractors import default_extractors
from newscrawl.services.progress_bus import ProgressBus
from newscrawl.services.run_coordinator import RunCoordinator

LISTING = "https://news.aibase.com/news"
ARCHIVE = "https://news.smol.ai/issues"


class InlineThread:
    """Runs the target synchronously when started."""

    def __init__(self, target, args=(), name=None, daemon=None):
        self._target = target
        self._args = args
        self.started = False

    def start(self):
        self.started = True
        self._target(*self._args)

    def join(self, timeout=None):
        pass

    def is_alive(self):
        return False


class DeferredThread(InlineThread):
    """Holds the target until the test runs it."""

    created = []

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        DeferredThread.created.append(self)

    def start(self):
        self.started = True

    def run_now(self):
        self._target(*self._args)


def _listing(*ids):
    return "".join(f'<a href="/news/{i}"><h3>Story {i}</h3></a>' for i in ids)


def _article(i):
    return f"<html><body><h1>Story {i}</h1><article><p>Body of story {i}</p></article></body></html>"


class FakeFetcher:
    """Serves canned markup by URL; values may be exceptions or callables."""

    def __init__(self, pages):
        self.pages = pages
        self.calls = []

    def fetch(self, url):
        self.calls.append(url)
        value = self.pages.get(url)
        if value is None:
            raise FetchError(url, status_code=404)
        if isinstance(value, Exception):
            raise value
        if callable(value):
            return value()
        return value


def _stores(url="sqlite:///:memory:"):
    kwargs = {"future": True}
    if url != "sqlite:///:memory:":
        kwargs["connect_args"] = {"check_same_thread": False}
    engine = create_engine(url, **kwargs)
    init_orm(engine)
    session_factory = sessionmaker(bind=engine, future=True)
    return (
        ScrapeRunsRepository(session_factory),
        ArticlesRepository(session_factory),
        SettingsRepository(session_factory),
    )


def _coordinator(fetcher, thread_factory=InlineThread, url="sqlite:///:memory:", **kwargs):
    runs, articles, settings = _stores(url)
    bus = ProgressBus(queue_size=1000)
    coordinator = RunCoordinator(
        runs_repo=runs,
        articles_repo=articles,
        fetcher=fetcher,
        extractors=default_extractors(),
        progress_bus=bus,
        settings_repo=settings,
        thread_factory=thread_factory,
        **kwargs,
    )
    return coordinator, runs, articles


def _seed(articles, *ids, source="AIBase"):
    for i in ids:
        articles.insert(ArticleDraft(
            external_id=str(i), url=f"{LISTING}/{i}", title=f"Story {i}", content="x",
            content_hash="h", source=source,
        ))


def _assert_monotonic(events):
    fields = ("pages_scraped", "articles_found", "articles_new", "articles_updated",
              "articles_failed", "articles_skipped")
    for prev, cur in zip(events, events[1:]):
        for f in fields:
            assert getattr(cur, f) >= getattr(prev, f), f


def test_full_listing_run_inserts_everything_and_completes():
    fetcher = FakeFetcher({
        LISTING: _listing(1, 2),
        f"{LISTING}?page=2": _listing(3),
        f"{LISTING}?page=3": "<html></html>",
        f"{LISTING}/1": _article(1),
        f"{LISTING}/2": _article(2),
        f"{LISTING}/3": _article(3),
    })
    coordinator, runs, articles = _coordinator(fetcher)
    sub = coordinator.subscribe_progress()

    run_id = coordinator.admit_run(None, {"source": "aibase", "mode": "full"})

    run = runs.get_run(run_id)
    assert run.status == RunStatus.COMPLETED
    assert run.kind == RunKind.FULL
    assert run.counters.pages_scraped == 2
    assert run.counters.articles_found == 3
    assert run.counters.articles_new == 3
    assert articles.exists("AIBase", "3")

    events = sub.drain()
    assert events[0].phase == ProgressPhase.STARTED
    assert events[-1].phase == ProgressPhase.COMPLETED
    assert [e.current_article for e in events if e.current_article] == ["Story 1", "Story 2", "Story 3"]
    _assert_monotonic(events)
    assert coordinator.current_run_status() is None


def test_incremental_listing_stops_after_first_fully_known_page():
    fetcher = FakeFetcher({
        LISTING: _listing(1, 2, 3),
        f"{LISTING}?page=2": _listing(4, 5),
    })
    coordinator, runs, articles = _coordinator(fetcher)
    _seed(articles, 1, 2, 3)

    run_id = coordinator.admit_run(None, {"source": "aibase"})

    assert fetcher.calls == [LISTING]
    run = runs.get_run(run_id)
    assert run.status == RunStatus.COMPLETED
    assert run.kind == RunKind.INCREMENTAL
    assert run.counters.pages_scraped == 1
    assert run.counters.articles_found == 3
    assert run.counters.articles_skipped == 3
    assert run.counters.articles_new == 0


def test_force_rescrape_updates_existing_articles():
    fetcher = FakeFetcher({
        LISTING: _listing(1),
        f"{LISTING}?page=2": "",
        f"{LISTING}/1": _article(1),
    })
    coordinator, runs, articles = _coordinator(fetcher)
    _seed(articles, 1)

    run_id = coordinator.admit_run(None, {"source": "aibase", "force_rescrape": True})

    run = runs.get_run(run_id)
    assert run.counters.articles_updated == 1
    assert articles.get_by_external_id("AIBase", "1").content == "Body of story 1"


def test_id_range_counts_not_found_as_skipped_and_errors_as_failed():
    fetcher = FakeFetcher({
        f"{LISTING}/10": _article(10),
        f"{LISTING}/12": FetchError(f"{LISTING}/12", status_code=500),
        f"{LISTING}/13": "<html><body><h1>No body</h1></body></html>",
    })
    coordinator, runs, articles = _coordinator(fetcher)

    run_id = coordinator.admit_run("id_range", {"source": "aibase", "start_id": 10, "end_id": 13})

    run = runs.get_run(run_id)
    assert run.status == RunStatus.COMPLETED
    assert run.counters.pages_scraped == 4
    assert run.counters.articles_found == 1
    assert run.counters.articles_new == 1
    assert run.counters.articles_skipped == 1
    assert run.counters.articles_failed == 2
    assert run.counters.total_pages == 4


def test_range_over_bound_is_rejected_before_run_exists():
    coordinator, runs, _ = _coordinator(FakeFetcher({}))

    with pytest.raises(InvalidRunRequest):
        coordinator.admit_run("id_range", {"source": "aibase", "start_id": 1, "end_id": 50_001})

    assert runs.list_runs() == []
    assert not coordinator.is_running


def test_second_admission_while_running_is_rejected():
    DeferredThread.created = []
    fetcher = FakeFetcher({f"{LISTING}/1": _article(1)})
    coordinator, runs, _ = _coordinator(fetcher, thread_factory=DeferredThread)

    first = coordinator.admit_run("id_range", {"start_id": 1, "end_id": 1})
    with pytest.raises(AlreadyRunningError) as exc:
        coordinator.admit_run("id_range", {"start_id": 2, "end_id": 2})
    assert exc.value.run_id == first
    assert len(runs.list_runs()) == 1

    DeferredThread.created[0].run_now()
    assert runs.get_run(first).status == RunStatus.COMPLETED
    second = coordinator.admit_run("id_range", {"start_id": 2, "end_id": 2})
    assert second != first


def test_concurrent_admissions_admit_exactly_one(tmp_path):
    DeferredThread.created = []
    coordinator, runs, _ = _coordinator(
        FakeFetcher({}), thread_factory=DeferredThread, url=f"sqlite:///{tmp_path / 'admit.db'}"
    )
    barrier = threading.Barrier(4)
    admitted, rejected = [], []

    def worker(i):
        barrier.wait()
        try:
            admitted.append(coordinator.admit_run("id_range", {"start_id": i, "end_id": i}))
        except AlreadyRunningError:
            rejected.append(i)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(1, 5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(admitted) == 1
    assert len(rejected) == 3
    assert [r.id for r in runs.list_runs()] == admitted


def test_cancel_mid_run_stops_loop_and_keeps_cancelled_status():
    holder = {}

    def cancel_then_serve():
        holder["cancelled"] = holder["coordinator"].cancel_current_run()
        holder["before_cancel"] = holder["sub"].drain()
        return _article(2)

    fetcher = FakeFetcher({
        f"{LISTING}/1": _article(1),
        f"{LISTING}/2": cancel_then_serve,
        f"{LISTING}/3": _article(3),
    })
    coordinator, runs, articles = _coordinator(fetcher)
    holder["coordinator"] = coordinator
    sub = holder["sub"] = coordinator.subscribe_progress()

    run_id = coordinator.admit_run("id_range", {"start_id": 1, "end_id": 5})

    assert holder["cancelled"] == run_id
    # the in-flight fetch finishes, nothing after it starts
    assert fetcher.calls == [f"{LISTING}/1", f"{LISTING}/2"]
    run = runs.get_run(run_id)
    assert run.status == RunStatus.CANCELLED
    assert run.counters.articles_new == 2
    assert holder["before_cancel"][-1].phase == ProgressPhase.PROGRESS
    assert holder["before_cancel"][-1].current_article == "2"
    # only the terminal event follows the cancellation
    assert [e.phase for e in sub.drain()] == [ProgressPhase.CANCELLED]


def test_cancel_before_first_batch_fetches_nothing():
    DeferredThread.created = []
    fetcher = FakeFetcher({})
    coordinator, runs, _ = _coordinator(fetcher, thread_factory=DeferredThread)
    run_id = coordinator.admit_run(None, {"source": "aibase"})

    assert coordinator.cancel_current_run() == run_id
    DeferredThread.created[0].run_now()

    assert fetcher.calls == []
    assert runs.get_run(run_id).status == RunStatus.CANCELLED


def test_cancel_without_running_run_raises():
    coordinator, _, _ = _coordinator(FakeFetcher({}))
    with pytest.raises(NoRunError):
        coordinator.cancel_current_run()


def test_cancel_run_owned_by_another_process_publishes_event():
    coordinator, runs, _ = _coordinator(FakeFetcher({}))
    orphan = runs.create_run(RunKind.FULL)
    sub = coordinator.subscribe_progress()

    assert coordinator.cancel_current_run() == orphan

    assert runs.get_run(orphan).status == RunStatus.CANCELLED
    assert sub.get_nowait().phase == ProgressPhase.CANCELLED


def test_archive_fetch_failure_fails_run_without_raising(caplog):
    fetcher = FakeFetcher({ARCHIVE: FetchError(ARCHIVE, status_code=503)})
    coordinator, runs, _ = _coordinator(fetcher)
    sub = coordinator.subscribe_progress()

    run_id = coordinator.admit_run(None, {"source": "smolai"})

    run = runs.get_run(run_id)
    assert run.status == RunStatus.FAILED
    assert "503" in run.last_error
    assert sub.drain()[-1].phase == ProgressPhase.FAILED
    assert "failed" in caplog.text


def test_archive_incremental_stops_at_first_known_issue():
    fetcher = FakeFetcher({
        ARCHIVE: '<a href="/issues/25-01-03-c">c</a><a href="/issues/25-01-02-b">b</a>'
                 '<a href="/issues/25-01-01-a">a</a>',
        "https://news.smol.ai/issues/25-01-03-c":
            '<html><body><article class="content-area"><p>c</p></article></body></html>',
    })
    coordinator, runs, articles = _coordinator(fetcher)
    _seed(articles, "25-01-02-b", source="smol.ai")

    run_id = coordinator.admit_run(None, {"source": "smolai"})

    run = runs.get_run(run_id)
    assert run.status == RunStatus.COMPLETED
    assert run.counters.articles_new == 1
    assert run.counters.articles_skipped == 1
    assert run.counters.articles_found == 3
    assert run.counters.pages_scraped == 2
    assert run.counters.total_pages == 3
    assert "https://news.smol.ai/issues/25-01-01-a" not in fetcher.calls


def _issue(slug):
    return f'<html><body><article class="content-area"><p>Issue {slug}</p></article></body></html>'


def test_archive_counts_every_discovered_issue_as_found():
    slugs = ["25-01-05-e", "25-01-04-d", "25-01-03-c", "25-01-02-b", "25-01-01-a"]
    pages = {ARCHIVE: "".join(f'<a href="/issues/{s}">{s}</a>' for s in slugs)}
    pages.update({f"https://news.smol.ai/issues/{s}": _issue(s) for s in slugs})
    fetcher = FakeFetcher(pages)
    coordinator, runs, articles = _coordinator(fetcher)
    _seed(articles, "25-01-03-c", source="smol.ai")
    sub = coordinator.subscribe_progress()

    run_id = coordinator.admit_run(None, {"source": "smolai", "mode": "incremental"})

    run = runs.get_run(run_id)
    assert run.counters.articles_found == 5
    assert run.counters.articles_new == 2
    assert run.counters.articles_skipped == 1
    assert run.counters.pages_scraped == 3
    assert run.counters.total_pages == 5

    events = sub.drain()
    assert [e.phase for e in events[:2]] == [ProgressPhase.STARTED, ProgressPhase.PROGRESS]
    assert events[1].message == "Discovered 5 articles"
    assert events[1].articles_found == 5
    assert all(e.articles_found == 5 for e in events[1:])
    _assert_monotonic(events)


def test_store_error_fails_run():
    runs = Mock()
    runs.find_running_run.return_value = None
    runs.create_run.return_value = "run-1"
    runs.complete_run.return_value = True
    articles = Mock()
    articles.exists.side_effect = RuntimeError("database is gone")
    coordinator = RunCoordinator(
        runs_repo=runs,
        articles_repo=articles,
        fetcher=FakeFetcher({}),
        extractors=default_extractors(),
        progress_bus=ProgressBus(),
        thread_factory=InlineThread,
    )

    coordinator.admit_run("id_range", {"start_id": 1, "end_id": 3})

    runs.complete_run.assert_called_once_with("run-1", RunStatus.FAILED, "database is gone")


def test_progress_flushes_on_cadence_and_batch_end():
    runs = Mock()
    runs.find_running_run.return_value = None
    runs.create_run.return_value = "run-1"
    runs.complete_run.return_value = True
    articles = Mock()
    articles.exists.return_value = False
    fetcher = FakeFetcher({f"{LISTING}/{i}": _article(i) for i in range(1, 6)})
    coordinator = RunCoordinator(
        runs_repo=runs,
        articles_repo=articles,
        fetcher=fetcher,
        extractors=default_extractors(),
        progress_bus=ProgressBus(),
        flush_every=2,
        thread_factory=InlineThread,
    )

    coordinator.admit_run("id_range", {"start_id": 1, "end_id": 5, "batch_size": 5})

    snapshots = [c.args[1] for c in runs.update_run_progress.call_args_list]
    # after 2 and 4 candidates, end of batch, final flush
    assert [s.pages_scraped for s in snapshots] == [2, 4, 5, 5]
    assert all(isinstance(s, RunCounters) for s in snapshots)
    assert articles.insert.call_count == 5


def test_skip_progress_events_every_n():
    fetcher = FakeFetcher({})
    coordinator, runs, articles = _coordinator(fetcher, progress_every=2)
    _seed(articles, 1, 2, 3, 4)
    sub = coordinator.subscribe_progress()

    coordinator.admit_run("id_range", {"start_id": 1, "end_id": 4})

    skip_events = [e for e in sub.drain() if e.phase == ProgressPhase.PROGRESS]
    assert [e.articles_skipped for e in skip_events] == [2, 4]
    assert fetcher.calls == []


def test_max_pages_default_comes_from_settings():
    fetcher = FakeFetcher({})
    coordinator, _, _ = _coordinator(fetcher)
    coordinator.settings_repo.update("max_pages", 4)

    strategy = coordinator.build_strategy(None, {"source": Source.AIBASE.id})

    assert strategy.max_pages == 4


def test_recover_incomplete_runs_marks_orphans_failed():
    coordinator, runs, _ = _coordinator(FakeFetcher({}))
    orphan = runs.create_run(RunKind.FULL)

    assert coordinator.recover_incomplete_runs() == 1
    assert runs.get_run(orphan).status == RunStatus.FAILED


def test_finished_runs_release_their_threads(tmp_path):
    fetcher = FakeFetcher({f"{LISTING}/{i}": _article(i) for i in (1, 2)})
    coordinator, runs, _ = _coordinator(
        fetcher, thread_factory=threading.Thread, url=f"sqlite:///{tmp_path / 'threads.db'}"
    )

    run_ids = []
    for i in (1, 2):
        run_id = coordinator.admit_run("id_range", {"start_id": i, "end_id": i})
        assert coordinator.wait(run_id, timeout=10)
        run_ids.append(run_id)

    assert coordinator._threads == {}
    assert [runs.get_run(r).status for r in run_ids] == [RunStatus.COMPLETED, RunStatus.COMPLETED]
