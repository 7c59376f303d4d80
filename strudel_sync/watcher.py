import asyncio
import logging
import os

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .errors import TransientReadError, WatchError
from .models import ChangeEvent

logger = logging.getLogger(__name__)


# -------- Observer thread --------
class TargetEventHandler(FileSystemEventHandler):
    """Forwards every raw event from the observer thread to the loop."""

    def __init__(self, detector):
        self.detector = detector

    def on_any_event(self, event):
        self.detector.loop.call_soon_threadsafe(self.detector.handle_event, event)


# -------- Change detector --------
class ChangeDetector:
    """Debounced, rename-tolerant watch over one file.

    Raw events for the target name reset a debounce timer on the event
    loop. When the timer fires the file's mtime is compared with the last
    one seen, and only a different mtime produces a read and a call to
    ``on_change(content)``. A missing file at fire time is a half-finished
    atomic save and is ignored; the rename that completes it re-arms the
    timer.
    """

    def __init__(self, target, on_change, loop=None, debounce=0.15, on_error=None):
        self.target = target
        self.on_change = on_change
        self.on_error = on_error
        self.debounce = debounce
        self.loop = loop or asyncio.get_running_loop()
        self.last_event = None
        self._last_mtime = self._stat_mtime()
        self._timer = None
        self._observer = None
        self._running = False

    # -------- Lifecycle --------
    def start(self):
        if not self.target.directory.is_dir():
            raise WatchError(f"cannot watch {self.target.directory}: not a directory")
        observer = Observer()
        try:
            observer.schedule(
                TargetEventHandler(self), str(self.target.directory), recursive=False
            )
            observer.start()
        except OSError as e:
            raise WatchError(f"cannot watch {self.target.directory}: {e}") from e
        self._observer = observer
        self._running = True
        logger.info(f"Watching {self.target.path}")
        return self

    def stop(self):
        self._running = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._observer is not None:
            self._observer.stop()
            if self._observer.is_alive():
                self._observer.join(timeout=2)
            self._observer = None
        logger.debug("Watcher stopped")

    def is_alive(self):
        return self._observer is not None and self._observer.is_alive()

    # -------- Event filtering --------
    def matches(self, event):
        names = [os.path.basename(os.fsdecode(event.src_path))]
        dest = getattr(event, "dest_path", "")
        if dest:
            names.append(os.path.basename(os.fsdecode(dest)))
        return self.target.name in names

    def handle_event(self, event):
        if not self._running:
            return

        src = os.path.abspath(os.fsdecode(event.src_path))
        if event.event_type == "deleted" and src == str(self.target.directory):
            self.fail(WatchError(f"watched directory {src} was removed"))
            return

        if event.is_directory:
            return

        if not self.matches(event):
            return

        logger.debug(f"{event.event_type}: {os.fsdecode(event.src_path)}")
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self.loop.call_later(self.debounce, self.fire)

    def fail(self, error):
        logger.error(str(error))
        self._running = False
        if self.on_error is not None:
            self.on_error(error)

    # -------- Debounce --------
    def fire(self):
        self._timer = None
        if not self._running:
            return

        if not self.target.path.exists():
            logger.debug(f"{self.target.name} missing after debounce; waiting for the rename")
            return

        mtime = self._stat_mtime()
        if mtime is None:
            logger.info(f"Skipped change: cannot stat {self.target.path}")
            return
        if mtime == self._last_mtime:
            logger.debug(f"{self.target.name}: mtime unchanged, ignoring")
            return

        try:
            content = self.read()
        except TransientReadError as e:
            logger.info(f"Skipped change: {e}")
            return

        self._last_mtime = mtime
        self.last_event = ChangeEvent(mtime_ns=mtime)
        logger.debug(f"{self.target.name} changed ({len(content)} chars)")
        self.on_change(content)

    def read(self):
        try:
            return self.target.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise TransientReadError(f"{self.target.path}: {e}") from e

    def _stat_mtime(self):
        try:
            return self.target.path.stat().st_mtime_ns
        except OSError:
            return None


def watch_file(target, on_change, **kwargs):
    """Start watching ``target``; the returned detector is the stop handle."""
    return ChangeDetector(target, on_change, **kwargs).start()
