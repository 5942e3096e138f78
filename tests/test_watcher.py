import threading
import time

import pytest
from watchdog.events import (DirCreatedEvent, DirDeletedEvent, DirModifiedEvent,
                             FileCreatedEvent, FileDeletedEvent, FileModifiedEvent,
                             FileMovedEvent)

from obsidian_blog.collector import FileFilter
from obsidian_blog.config import FilesConfig
from obsidian_blog.errors import StructuralError
from obsidian_blog.generator import GenerationResult
from obsidian_blog.watcher import (BlogWatcher, RegenerationScheduler, SchedulerState,
                                   VaultEventHandler)


class FakeTimer:
    """threading.Timer stand-in that only fires when told to."""

    created = []

    def __init__(self, interval, function, args=()):
        self.interval = interval
        self.function = function
        self.args = args
        self.cancelled = False
        self.started = False
        self.daemon = False
        FakeTimer.created.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        # a real Timer can still run after cancel() if it raced; the scheduler must cope
        self.function(*self.args)


@pytest.fixture(autouse=True)
def _reset_timers():
    FakeTimer.created = []
    yield
    FakeTimer.created = []


def live_timers():
    return [t for t in FakeTimer.created if not t.cancelled]


def test_burst_of_triggers_runs_once():
    calls = []
    scheduler = RegenerationScheduler(lambda: calls.append(1), 0.5, timer_factory=FakeTimer)

    for _ in range(5):
        scheduler.trigger()

    assert scheduler.state is SchedulerState.SCHEDULED
    assert len(FakeTimer.created) == 5
    assert len(live_timers()) == 1
    # only the last timer may run the callback
    for timer in FakeTimer.created:
        timer.fire()
    assert calls == [1]
    assert scheduler.state is SchedulerState.IDLE


def test_trigger_during_run_schedules_one_more():
    calls = []
    scheduler = RegenerationScheduler(lambda: None, 0.5, timer_factory=FakeTimer)

    def callback():
        calls.append(len(calls))
        if len(calls) == 1:
            scheduler.trigger()
            assert scheduler.state is SchedulerState.RUNNING_PENDING

    scheduler.callback = callback
    scheduler.trigger()
    FakeTimer.created[0].fire()

    assert scheduler.state is SchedulerState.SCHEDULED
    live_timers()[-1].fire()
    assert calls == [0, 1]
    assert scheduler.state is SchedulerState.IDLE


def test_timer_expiring_mid_run_is_rearmed_not_overlapped():
    running = []
    overlaps = []
    scheduler = RegenerationScheduler(lambda: None, 0.5, timer_factory=FakeTimer)

    def callback():
        if running:
            overlaps.append(True)
        running.append(True)
        if len(FakeTimer.created) == 1:
            scheduler.trigger()
            FakeTimer.created[1].fire()  # expires while the first run is still going
        running.pop()

    scheduler.callback = callback
    scheduler.trigger()
    FakeTimer.created[0].fire()

    assert overlaps == []
    assert scheduler.state is SchedulerState.SCHEDULED
    rearmed = FakeTimer.created[-1]
    assert len(FakeTimer.created) == 3 and not rearmed.cancelled
    rearmed.fire()
    assert scheduler.state is SchedulerState.IDLE


def test_close_cancels_pending_run():
    calls = []
    scheduler = RegenerationScheduler(lambda: calls.append(1), 0.5, timer_factory=FakeTimer)
    scheduler.trigger()

    scheduler.close()
    FakeTimer.created[0].fire()
    scheduler.trigger()

    assert FakeTimer.created[0].cancelled
    assert len(FakeTimer.created) == 1
    assert calls == []
    assert scheduler.state is SchedulerState.IDLE


def test_close_waits_for_running_callback():
    started = threading.Event()
    release = threading.Event()
    finished = []

    def callback():
        started.set()
        release.wait(5)
        finished.append(True)

    scheduler = RegenerationScheduler(callback, 0.5, timer_factory=FakeTimer)
    scheduler.trigger()
    runner = threading.Thread(target=FakeTimer.created[0].fire, daemon=True)
    runner.start()
    assert started.wait(5)

    assert scheduler.close(timeout=0) is False
    threading.Timer(0.05, release.set).start()
    assert scheduler.close(timeout=5) is True

    assert finished == [True]
    assert scheduler.state is SchedulerState.IDLE
    runner.join(5)


def test_callback_errors_do_not_wedge_the_scheduler():
    def boom():
        raise RuntimeError("boom")

    scheduler = RegenerationScheduler(boom, 0.5, timer_factory=FakeTimer)
    scheduler.trigger()
    FakeTimer.created[0].fire()

    assert scheduler.state is SchedulerState.IDLE


def test_real_timer_debounces_burst():
    done = threading.Event()
    calls = []

    def callback():
        calls.append(time.monotonic())
        done.set()

    scheduler = RegenerationScheduler(callback, 0.2)
    started = time.monotonic()
    for _ in range(5):
        scheduler.trigger()
        time.sleep(0.02)
    last_trigger = time.monotonic()

    assert done.wait(5)
    time.sleep(0.4)
    scheduler.close()
    assert len(calls) == 1
    assert calls[0] - last_trigger >= 0.1
    assert calls[0] - started >= 0.2


class RecordingScheduler:
    def __init__(self):
        self.count = 0

    def trigger(self):
        self.count += 1


@pytest.fixture
def handler(tmp_path):
    source = tmp_path / "go"
    source.mkdir()
    return VaultEventHandler(source, FileFilter.from_config(FilesConfig()), RecordingScheduler(),
                             output_dir=source / "site")


@pytest.mark.parametrize(
    "event, expected",
    [
        (lambda s: FileCreatedEvent(f"{s}/Notes/new.md"), "Added: Notes/new.md"),
        (lambda s: FileModifiedEvent(f"{s}/a.md"), "Modified: a.md"),
        (lambda s: FileDeletedEvent(f"{s}/img/pic.png"), "Deleted: img/pic.png"),
        (lambda s: DirCreatedEvent(f"{s}/Folder"), "Folder added: Folder"),
        (lambda s: DirDeletedEvent(f"{s}/Folder"), "Folder removed: Folder"),
        (lambda s: FileMovedEvent(f"{s}/a.md", f"{s}/b.md"), "Moved: a.md -> b.md"),
    ],
)
def test_qualifying_events(handler, event, expected):
    evt = event(handler.source_dir)
    assert handler.classify(evt) == expected
    handler.dispatch(evt)
    assert handler.scheduler.count == 1


@pytest.mark.parametrize(
    "event",
    [
        lambda s: FileModifiedEvent(f"{s}/notes.txt"),
        lambda s: FileModifiedEvent(f"{s}/.obsidian/workspace.md"),
        lambda s: FileCreatedEvent(f"{s}/Notes/.hidden.md"),
        lambda s: FileCreatedEvent(f"{s}/_drafts/a.md"),
        lambda s: FileCreatedEvent(f"{s}/site/a.html"),
        lambda s: FileCreatedEvent(f"{s}/site/page.md"),
        lambda s: DirModifiedEvent(f"{s}/Notes"),
        lambda s: FileCreatedEvent("/somewhere/else/a.md"),
    ],
)
def test_ignored_events(handler, event):
    evt = event(handler.source_dir)
    assert handler.classify(evt) is None
    handler.dispatch(evt)
    assert handler.scheduler.count == 0


def test_move_into_vault_qualifies(handler):
    evt = FileMovedEvent("/tmp/outside.md", f"{handler.source_dir}/inside.md")
    assert handler.classify(evt) == "Moved: (outside) -> inside.md"


class FakeObserver:
    def __init__(self):
        self.scheduled = []
        self.started = self.stopped = self.joined = False

    def schedule(self, handler, path, recursive=False):
        self.scheduled.append((handler, path, recursive))

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def join(self, timeout=None):
        self.joined = True


class CountingGenerator:
    def __init__(self, file_filter):
        self.file_filter = file_filter
        self.runs = 0

    def generate(self):
        self.runs += 1
        return GenerationResult(True, 0)


def test_watcher_generates_before_watching(vault, config):
    generator = CountingGenerator(FileFilter.from_config(config.files))
    observers = []

    def factory():
        observers.append(FakeObserver())
        return observers[-1]

    watcher = BlogWatcher(config, generator=generator, observer_factory=factory)
    result = watcher.start()

    assert result.success
    assert generator.runs == 1
    observer = observers[0]
    assert observer.started
    assert observer.scheduled == [(watcher.handler, str(config.paths.source), True)]

    watcher.stop()
    assert observer.stopped and observer.joined
    watcher.scheduler.trigger()
    assert watcher.scheduler.state is SchedulerState.IDLE


def test_watcher_requires_source(tmp_path, config):
    config.paths.source = tmp_path / "missing"
    watcher = BlogWatcher(config, generator=CountingGenerator(FileFilter()),
                          observer_factory=FakeObserver)

    with pytest.raises(StructuralError):
        watcher.start()


def test_regenerate_runs_generator(vault, config):
    generator = CountingGenerator(FileFilter.from_config(config.files))
    watcher = BlogWatcher(config, generator=generator, observer_factory=FakeObserver)

    assert watcher.regenerate().success
    assert generator.runs == 1
