"""Regenerating the build graph when a workspace changes."""

import asyncio
import logging
import threading
import time
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .config import GlobalConfig

logger = logging.getLogger(__name__)


class WorkspaceWatcher(FileSystemEventHandler):
    """Watch a workspace and call ``regenerate`` once changes settle."""

    def __init__(
        self,
        repo_root: Path,
        regenerate: Callable[[], bool],
        settings: Optional[GlobalConfig] = None,
        update_delay: float = 1.0,
        output: Optional[Path] = None,
    ):
        self.repo_root = Path(repo_root).resolve()
        self.regenerate = regenerate
        self.settings = settings or GlobalConfig()
        self.update_delay = update_delay
        self.output = output.resolve() if output else None
        self.pending_update = False
        self.last_event_time = time.time()
        self.observer: Optional[Observer] = None
        self._lock = threading.Lock()
        self._running = False

    def should_process(self, path: Path) -> bool:
        """Check if a changed path can affect the generated graph."""
        path = path.resolve()
        if self.output is not None and path == self.output:
            return False

        try:
            relative = path.relative_to(self.repo_root)
        except ValueError:
            return False

        for part in relative.parts[:-1]:
            if part.startswith(".") or part in self.settings.ignored_directories:
                return False

        name = path.name
        if name in self.settings.build_file_names or name == "package.json":
            return True
        return name.endswith(tuple(self.settings.source_extensions))

    def on_any_event(self, event: FileSystemEvent):
        if event.is_directory:
            return
        if event.event_type not in ("created", "modified", "deleted", "moved"):
            return

        paths = [event.src_path]
        dest = getattr(event, "dest_path", "")
        if dest:
            paths.append(dest)

        if any(self.should_process(Path(p)) for p in paths):
            logger.debug(f"Event {event.event_type} for {event.src_path}")
            with self._lock:
                self.last_event_time = time.time()
                self.pending_update = True

    def take_pending(self) -> bool:
        """Consume a pending update once no event arrived for ``update_delay`` seconds."""
        with self._lock:
            if not self.pending_update:
                return False
            if time.time() - self.last_event_time < self.update_delay:
                return False
            self.pending_update = False
            return True

    async def process_updates(self):
        """Regenerate after changes, debounced."""
        while self._running:
            if self.take_pending():
                logger.info(f"Changes detected in {self.repo_root}, regenerating")
                try:
                    self.regenerate()
                except Exception as e:
                    # A broken edit should not stop the watcher.
                    logger.error(f"Regeneration failed: {e}")
            await asyncio.sleep(0.2)

    def start(self):
        """Start the filesystem observer."""
        if self.observer is not None:
            return
        self.observer = Observer()
        self.observer.schedule(self, str(self.repo_root), recursive=True)
        self.observer.start()
        self._running = True
        logger.info(f"Started watching {self.repo_root}")

    def stop(self):
        """Stop the filesystem observer."""
        self._running = False
        if self.observer:
            try:
                self.observer.stop()
                self.observer.join(timeout=5)
            finally:
                self.observer = None

    async def run(self):
        """Generate once, then keep regenerating until cancelled."""
        self.regenerate()
        self.start()
        try:
            await self.process_updates()
        finally:
            self.stop()
