"""Watch the vault and regenerate after a quiet period.

Bursts of filesystem events are coalesced by ``RegenerationScheduler``: each
qualifying event restarts a single timer, and generation runs once the timer
expires. Generation never runs twice at the same time; a timer that expires
during a run is re-armed for after it.
"""

from __future__ import annotations

import enum
import logging
import os
import signal
import threading
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .collector import FileFilter
from .config import BlogConfig
from .errors import StructuralError
from .generator import BlogGenerator, GenerationResult

logger = logging.getLogger(__name__)


class SchedulerState(enum.Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    RUNNING = "running"
    RUNNING_PENDING = "running-pending"


class RegenerationScheduler:
    """Debounce triggers into single callback runs.

    ``timer_factory`` must build an object with ``start()`` and ``cancel()``
    from ``(interval, function, args)``, like ``threading.Timer``.
    """

    def __init__(self, callback: Callable[[], object], delay: float,
                 timer_factory: Callable[..., threading.Timer] = threading.Timer):
        self.callback = callback
        self.delay = delay
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer = None
        self._token = 0
        self._deferred = False
        self._closed = False
        self._idle = threading.Event()
        self._idle.set()
        self._runner = None
        self.state = SchedulerState.IDLE

    def _arm(self) -> None:
        # caller holds the lock
        if self._timer is not None:
            self._timer.cancel()
        self._token += 1
        timer = self._timer_factory(self.delay, self._fire, args=(self._token,))
        timer.daemon = True
        self._timer = timer
        timer.start()

    def trigger(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._arm()
            if self.state in (SchedulerState.RUNNING, SchedulerState.RUNNING_PENDING):
                self.state = SchedulerState.RUNNING_PENDING
            else:
                self.state = SchedulerState.SCHEDULED

    def _fire(self, token: int) -> None:
        with self._lock:
            if self._closed or token != self._token:
                return  # cancelled or superseded
            self._timer = None
            if self.state in (SchedulerState.RUNNING, SchedulerState.RUNNING_PENDING):
                self._deferred = True
                self.state = SchedulerState.RUNNING_PENDING
                return
            self.state = SchedulerState.RUNNING
            self._idle.clear()
            self._runner = threading.current_thread()

        try:
            self.callback()
        except Exception:
            logger.exception("Scheduled regeneration failed")
        finally:
            with self._lock:
                if self._closed:
                    self.state = SchedulerState.IDLE
                elif self.state is SchedulerState.RUNNING_PENDING:
                    if self._deferred:
                        self._deferred = False
                        self._arm()
                    self.state = SchedulerState.SCHEDULED
                else:
                    self.state = SchedulerState.IDLE
                self._runner = None
                self._idle.set()

    def close(self, timeout: Optional[float] = None) -> bool:
        """Cancel any pending run and wait for a running one to finish.

        Returns False if the running callback is still going after ``timeout``.
        """
        with self._lock:
            self._closed = True
            self._token += 1
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            if self.state is not SchedulerState.RUNNING:
                self.state = SchedulerState.IDLE
            runner = self._runner
        if runner is threading.current_thread():
            return True  # closed from inside the callback
        return self._idle.wait(timeout)


_EVENT_LABELS = {
    ("created", False): "Added",
    ("modified", False): "Modified",
    ("deleted", False): "Deleted",
    ("moved", False): "Moved",
    ("created", True): "Folder added",
    ("deleted", True): "Folder removed",
    ("moved", True): "Folder moved",
}


class VaultEventHandler(FileSystemEventHandler):
    """Forward relevant vault changes to the scheduler."""

    def __init__(self, source_dir: Path, file_filter: FileFilter,
                 scheduler: RegenerationScheduler, output_dir: Optional[Path] = None):
        super().__init__()
        self.source_dir = Path(source_dir).resolve()
        self.output_dir = Path(output_dir).resolve() if output_dir is not None else None
        self.file_filter = file_filter
        self.scheduler = scheduler

    def _relative(self, raw_path) -> Optional[str]:
        if not raw_path:
            return None
        path = Path(os.fsdecode(raw_path))
        try:
            path = path.resolve()
        except OSError:
            pass
        if self.output_dir is not None and (path == self.output_dir or self.output_dir in path.parents):
            return None
        try:
            return path.relative_to(self.source_dir).as_posix()
        except ValueError:
            return None

    def _qualifies(self, raw_path, is_directory: bool) -> Optional[str]:
        rel = self._relative(raw_path)
        if not rel or rel == "." or self.file_filter.is_excluded_path(rel):
            return None
        if is_directory:
            return rel
        name = rel.rsplit("/", 1)[-1]
        if self.file_filter.is_markdown(name) or self.file_filter.is_image(name):
            return rel
        return None

    def classify(self, event: FileSystemEvent) -> Optional[str]:
        """Return a log line for a qualifying event, else None."""
        label = _EVENT_LABELS.get((event.event_type, event.is_directory))
        if label is None:
            return None
        rel = self._qualifies(event.src_path, event.is_directory)
        dest = getattr(event, "dest_path", "") if event.event_type == "moved" else ""
        dest_rel = self._qualifies(dest, event.is_directory) if dest else None
        if rel is None and dest_rel is None:
            return None
        if dest_rel is not None:
            return f"{label}: {rel or '(outside)'} -> {dest_rel}"
        return f"{label}: {rel}"

    def on_any_event(self, event: FileSystemEvent) -> None:
        message = self.classify(event)
        if message is None:
            return
        logger.info(message)
        self.scheduler.trigger()


class BlogWatcher:
    """Initial generation, then debounced regeneration on vault changes."""

    def __init__(self, config: BlogConfig, generator: Optional[BlogGenerator] = None,
                 observer_factory: Callable[[], Observer] = Observer):
        self.config = config
        self.generator = generator or BlogGenerator(config)
        self.scheduler = RegenerationScheduler(self.regenerate, config.watch.debounce_ms / 1000.0)
        self.handler = VaultEventHandler(
            Path(config.paths.source),
            self.generator.file_filter,
            self.scheduler,
            output_dir=Path(config.paths.output),
        )
        self._observer_factory = observer_factory
        self.observer = None
        self._stopped = threading.Event()

    def regenerate(self) -> GenerationResult:
        logger.info("Regenerating blog...")
        result = self.generator.generate()
        if result.success:
            logger.info("Regeneration complete (%d posts)", result.post_count)
        else:
            logger.error("Regeneration failed")
        logger.info("Watching for changes... (Ctrl+C to stop)")
        return result

    def start(self) -> GenerationResult:
        source = Path(self.config.paths.source)
        logger.info("Watching folder: %s", source)
        logger.info("Output folder: %s", self.config.paths.output)
        if not source.is_dir():
            raise StructuralError(f"Source directory not found: {source}")

        logger.info("Running initial generation...")
        result = self.generator.generate()
        if result.success:
            logger.info("Initial generation complete (%d posts)", result.post_count)
        else:
            logger.error("Initial generation failed")

        self.observer = self._observer_factory()
        self.observer.schedule(self.handler, str(source), recursive=True)
        self.observer.start()
        logger.info("Watching for changes... (Ctrl+C to stop)")
        return result

    def stop(self) -> None:
        """Stop watching. A regeneration already in progress is allowed to finish first."""
        if not self.scheduler.close(timeout=0):
            logger.info("Waiting for the running regeneration to finish...")
            self.scheduler.close()
        if self.observer is not None:
            self.observer.stop()
            self.observer.join()
            self.observer = None
        self._stopped.set()
        logger.info("File watching stopped")

    def run_forever(self) -> None:
        """Start watching and block until interrupted."""
        self.start()
        previous = signal.signal(signal.SIGTERM, lambda signum, frame: self._stopped.set())
        try:
            while not self._stopped.wait(0.5):
                pass
        except KeyboardInterrupt:
            logger.info("Stopping watcher...")
        finally:
            signal.signal(signal.SIGTERM, previous)
            self.stop()
