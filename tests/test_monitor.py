"""Tests for the workspace watcher."""

import asyncio

from watchdog.events import DirModifiedEvent, FileModifiedEvent, FileMovedEvent

from depgen.monitor import WorkspaceWatcher


def make_watcher(root, regenerate=lambda: True, delay=0.0):
    return WorkspaceWatcher(root, regenerate, update_delay=delay, output=root / "depgen.json")


def test_should_process(tmp_path):
    """Test which changed paths can affect the build graph."""
    watcher = make_watcher(tmp_path)

    assert watcher.should_process(tmp_path / "lib" / "a.ts")
    assert watcher.should_process(tmp_path / "lib" / "BUILD")
    assert watcher.should_process(tmp_path / "package.json")
    assert not watcher.should_process(tmp_path / "depgen.json")
    assert not watcher.should_process(tmp_path / "README.md")
    assert not watcher.should_process(tmp_path / "node_modules" / "pkg" / "index.js")
    assert not watcher.should_process(tmp_path / ".git" / "index.ts")
    assert not watcher.should_process(tmp_path.parent / "elsewhere.ts")


def test_events_mark_pending_update(tmp_path):
    watcher = make_watcher(tmp_path)

    watcher.on_any_event(DirModifiedEvent(str(tmp_path / "lib")))
    watcher.on_any_event(FileModifiedEvent(str(tmp_path / "notes.txt")))
    assert not watcher.pending_update

    watcher.on_any_event(FileMovedEvent(str(tmp_path / "a.tmp"), str(tmp_path / "a.ts")))
    assert watcher.pending_update


def test_take_pending_waits_for_changes_to_settle(tmp_path):
    """Test the debounce delay."""
    watcher = make_watcher(tmp_path, delay=60.0)
    watcher.on_any_event(FileModifiedEvent(str(tmp_path / "a.ts")))
    assert not watcher.take_pending()

    watcher.update_delay = 0.0
    assert watcher.take_pending()
    assert not watcher.take_pending()


def test_process_updates_survives_failed_regeneration(tmp_path):
    calls = []

    def regenerate():
        calls.append(len(calls))
        if len(calls) == 1:
            watcher.pending_update = True
            raise RuntimeError("broken edit")
        watcher._running = False
        return True

    watcher = make_watcher(tmp_path, regenerate)
    watcher._running = True
    watcher.pending_update = True

    asyncio.run(watcher.process_updates())

    assert calls == [0, 1]
