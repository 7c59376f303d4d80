import asyncio
import logging
import os
import time

import pytest
import pytest_asyncio
from watchdog.events import DirDeletedEvent, FileModifiedEvent, FileMovedEvent

from strudel_sync.errors import WatchError
from strudel_sync.models import WatchTarget
from strudel_sync.watcher import ChangeDetector, watch_file

DEBOUNCE = 0.15
SETTLE = DEBOUNCE * 4


@pytest.fixture
def song(tmp_path):
    path = tmp_path / "song.txt"
    path.write_text("a", encoding="utf-8")
    # push the starting mtime into the past so fresh writes always differ
    past = time.time() - 60
    os.utime(path, (past, past))
    return path


@pytest.fixture
def changes():
    return []


@pytest_asyncio.fixture
async def detector(song, changes):
    d = watch_file(WatchTarget.from_path(song), changes.append, debounce=DEBOUNCE)
    yield d
    d.stop()


@pytest.mark.asyncio
async def test_edit_emits_new_content(song, changes, detector):
    song.write_text("b", encoding="utf-8")
    await asyncio.sleep(SETTLE)

    assert changes == ["b"]
    assert detector.last_event.mtime_ns == song.stat().st_mtime_ns


@pytest.mark.asyncio
async def test_rapid_writes_collapse_to_last(song, changes, detector):
    for text in ("b", "bb", "bbb", "final"):
        song.write_text(text, encoding="utf-8")
        await asyncio.sleep(0.01)
    await asyncio.sleep(SETTLE)

    assert changes == ["final"]


@pytest.mark.asyncio
async def test_atomic_rename_survives_transient_absence(song, changes, detector):
    song.unlink()
    await asyncio.sleep(0.02)
    tmp = song.with_name(".song.txt.swp")
    tmp.write_text("saved", encoding="utf-8")
    os.replace(tmp, song)
    await asyncio.sleep(SETTLE)

    assert changes == ["saved"]
    assert detector.is_alive()


@pytest.mark.asyncio
async def test_deleted_file_alone_is_not_an_error(song, changes, detector):
    song.unlink()
    await asyncio.sleep(SETTLE)

    assert changes == []
    assert detector.is_alive()


@pytest.mark.asyncio
async def test_other_files_are_ignored(song, changes, detector):
    (song.parent / "other.txt").write_text("x", encoding="utf-8")
    await asyncio.sleep(SETTLE)

    assert changes == []


@pytest.mark.asyncio
async def test_unchanged_mtime_is_not_a_change(song, changes, detector):
    before = song.stat()
    song.write_text("b", encoding="utf-8")
    os.utime(song, ns=(before.st_atime_ns, before.st_mtime_ns))
    await asyncio.sleep(SETTLE)

    assert changes == []

    # a spurious notification on its own changes nothing either
    detector.handle_event(FileModifiedEvent(str(song)))
    await asyncio.sleep(SETTLE)
    assert changes == []


@pytest.mark.asyncio
async def test_moved_event_matches_destination(song):
    target = WatchTarget.from_path(song)
    detector = ChangeDetector(target, lambda content: None)

    moved_in = FileMovedEvent(str(song.with_name("tmp123")), str(song))
    moved_away = FileMovedEvent(str(song.with_name("a")), str(song.with_name("b")))

    assert detector.matches(moved_in)
    assert not detector.matches(moved_away)


@pytest.mark.asyncio
async def test_unreadable_file_skips_cycle_then_retries(song, changes, detector):
    song.write_bytes(b"\xff\xfe not utf-8")
    await asyncio.sleep(SETTLE)
    assert changes == []

    song.write_text("fixed", encoding="utf-8")
    await asyncio.sleep(SETTLE)
    assert changes == ["fixed"]


@pytest.mark.asyncio
async def test_removed_directory_is_fatal(song):
    errors = []
    target = WatchTarget.from_path(song)
    detector = ChangeDetector(target, lambda content: None, on_error=errors.append)
    detector.start()
    try:
        detector.handle_event(DirDeletedEvent(str(target.directory)))
    finally:
        detector.stop()

    assert len(errors) == 1
    assert isinstance(errors[0], WatchError)


@pytest.mark.asyncio
async def test_missing_directory_cannot_be_watched(song):
    target = WatchTarget.from_path(song)
    gone = WatchTarget(target.path, target.directory / "missing", target.name)

    with pytest.raises(WatchError):
        ChangeDetector(gone, lambda content: None).start()


@pytest.mark.asyncio
async def test_stat_failure_is_logged_as_skipped_read(song, changes, monkeypatch, caplog):
    detector = ChangeDetector(WatchTarget.from_path(song), changes.append)
    detector.start()
    try:
        monkeypatch.setattr(detector, "_stat_mtime", lambda: None)
        with caplog.at_level(logging.INFO, logger="strudel_sync.watcher"):
            detector.fire()
    finally:
        detector.stop()

    assert changes == []
    assert "cannot stat" in caplog.text
    assert "mtime unchanged" not in caplog.text
