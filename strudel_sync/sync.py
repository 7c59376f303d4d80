import asyncio
import logging
import signal
import time

from .config import BridgeConfig
from .errors import TransientReadError, WatchError
from .injector import inject
from .locator import Locator
from .models import InjectionOutcome, InjectionStatus, SyncResult, TriggerOutcome
from .trigger import trigger_evaluation
from .watcher import ChangeDetector

logger = logging.getLogger(__name__)

WATCHDOG_POLL = 1.0


# -------- Sync session --------
class SyncSession:
    """Owns the page and serializes syncs onto it.

    ``pending`` holds the newest content not yet applied and ``in_flight``
    is set while a drain task runs. Content submitted mid-sync overwrites
    ``pending``, so a burst of edits costs one extra sync with the last
    version, never one per edit and never an older version after a newer.
    """

    def __init__(self, page, config=None, locator=None):
        self.page = page
        self.config = config or BridgeConfig()
        self.locator = locator or Locator(self.config)
        self.content = None
        self.pending = None
        self.in_flight = False
        self.last_result = None
        self._task = None
        self._idle = asyncio.Event()
        self._idle.set()

    def submit(self, content):
        self.pending = content
        if self.in_flight:
            logger.debug("Sync in flight; queued newest content")
            return
        self.in_flight = True
        self._idle.clear()
        self._task = asyncio.ensure_future(self._drain())

    async def _drain(self):
        try:
            while self.pending is not None:
                content, self.pending = self.pending, None
                self.content = content
                self.last_result = await self.sync_once(content)
        finally:
            self.in_flight = False
            self._idle.set()

    async def sync_once(self, content):
        started = time.monotonic()
        try:
            handle = await self.locator.locate(self.page)
            injection = await inject(self.page, handle, content, self.config)
            trigger = await trigger_evaluation(self.page, injection, self.config)
        except Exception as e:
            logger.exception("Sync step raised")
            injection = InjectionOutcome(InjectionStatus.FAILED, "error", str(e))
            trigger = TriggerOutcome("skipped", False, "sync step raised")

        result = SyncResult.from_steps(injection, trigger, time.monotonic() - started)
        logger.info(f"Sync {result}")
        if injection.error:
            logger.info(f"Injection: {injection.error}")
        if trigger.error and trigger.method != "skipped":
            logger.info(f"Evaluation: {trigger.error}")
        return result

    async def wait_idle(self, timeout=None):
        """Let an in-flight sync finish; cancel it after ``timeout`` seconds."""
        if self._idle.is_set():
            return True
        try:
            await asyncio.wait_for(self._idle.wait(), timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning("In-flight sync did not settle; cancelling it")
            if self._task is not None:
                self._task.cancel()
            return False


# -------- Bridge --------
def _install_signal_handlers(loop, stop):
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError, ValueError):
            continue
        installed.append(sig)
    return installed


async def _wait_for_stop(stop, detector, on_error):
    while not stop.is_set():
        try:
            await asyncio.wait_for(stop.wait(), WATCHDOG_POLL)
        except asyncio.TimeoutError:
            if not detector.is_alive():
                on_error(WatchError("watchdog observer exited"))


async def run_bridge(target, page, config=None, session=None):
    """Mirror ``target`` into ``page`` until a signal or a fatal watch error.

    Shutdown stops the detector first, then gives an in-flight sync up to
    ``config.shutdown_grace`` seconds. Closing the browser is left to the
    caller that opened it. A :class:`WatchError` is re-raised afterwards.
    """
    config = config or BridgeConfig()
    loop = asyncio.get_running_loop()
    session = session or SyncSession(page, config)
    stop = asyncio.Event()
    fatal = []

    def on_error(error):
        fatal.append(error)
        stop.set()

    detector = ChangeDetector(
        target, session.submit, loop=loop, debounce=config.debounce, on_error=on_error
    )
    installed = _install_signal_handlers(loop, stop)
    try:
        detector.start()
        if config.sync_on_start:
            try:
                session.submit(detector.read())
            except TransientReadError as e:
                logger.info(f"Skipped initial sync: {e}")
        await _wait_for_stop(stop, detector, on_error)
        logger.info("Shutting down")
    finally:
        detector.stop()
        for sig in installed:
            loop.remove_signal_handler(sig)
        await session.wait_idle(config.shutdown_grace)

    if fatal:
        raise fatal[0]
    return session
