import enum
import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WatchTarget:
    """The one file mirrored into the browser.

    The detector watches ``directory`` rather than ``path``: editors that
    save by writing a temp file and renaming it over the target replace
    the inode, which orphans a watch placed on the file itself.
    """

    path: Path
    directory: Path
    name: str

    @classmethod
    def from_path(cls, raw):
        path = Path(os.path.abspath(os.path.expanduser(str(raw))))
        if not path.exists():
            raise ConfigurationError(f"{path}: no such file")
        if not path.is_file():
            raise ConfigurationError(f"{path}: not a regular file")
        return cls(path=path, directory=path.parent, name=path.name)


@dataclass(frozen=True)
class ChangeEvent:
    mtime_ns: int
    observed_at: float = field(default_factory=time.monotonic)


@dataclass
class EditorHandle:
    """A located in-page editor view, valid for one sync attempt."""

    js: Any
    strategy: str
    has_doc_length: bool = False
    can_dispatch: bool = False

    @property
    def valid(self):
        return self.has_doc_length and self.can_dispatch

    async def dispose(self):
        try:
            await self.js.dispose()
        except Exception as e:
            logger.debug(f"Could not dispose {self.strategy} handle: {e}")


class InjectionStatus(enum.Enum):
    TRANSACTIONAL = "transactional"
    DOM_FALLBACK = "dom-fallback"
    FAILED = "failed"


@dataclass
class InjectionOutcome:
    status: InjectionStatus
    method: str
    error: Optional[str] = None

    @property
    def ok(self):
        return self.status is not InjectionStatus.FAILED


@dataclass
class TriggerOutcome:
    method: str
    triggered: bool
    error: Optional[str] = None


class SyncOutcome(enum.Enum):
    SUCCESS = "success"
    DEGRADED = "degraded"
    FAILED = "failed"


@dataclass
class SyncResult:
    outcome: SyncOutcome
    injection: InjectionOutcome
    trigger: TriggerOutcome
    duration: float = 0.0

    @classmethod
    def from_steps(cls, injection, trigger, duration=0.0):
        if injection.status is InjectionStatus.TRANSACTIONAL:
            outcome = SyncOutcome.SUCCESS
        elif injection.status is InjectionStatus.DOM_FALLBACK:
            outcome = SyncOutcome.DEGRADED
        else:
            outcome = SyncOutcome.FAILED
        return cls(outcome, injection, trigger, duration)

    def __str__(self):
        return (
            f"{self.outcome.value} (inject={self.injection.method}, "
            f"evaluate={self.trigger.method}, {self.duration * 1000:.0f}ms)"
        )
