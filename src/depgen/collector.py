"""Collecting the source files that belong to one generation unit."""

import logging
import os
from fnmatch import fnmatchcase
from pathlib import Path
from typing import List, Optional, Sequence

from .buildfile import find_build_file
from .config import ConfigNode, GlobalConfig

logger = logging.getLogger(__name__)


class CollectionError(Exception):
    """Raised when walking a unit's directory tree fails."""


def match_glob(pattern: str, path: str) -> bool:
    """Match a slash-separated path against a glob.

    ``**`` matches any number of path segments (including none); every other
    wildcard stays within a single segment.
    """
    return _match_segments(pattern.strip("/").split("/"), path.strip("/").split("/"))


def _match_segments(pattern: List[str], parts: List[str]) -> bool:
    if not pattern:
        return not parts
    head, rest = pattern[0], pattern[1:]
    if head == "**":
        for i in range(len(parts) + 1):
            if _match_segments(rest, parts[i:]):
                return True
        return False
    if not parts:
        return False
    return fnmatchcase(parts[0], head) and _match_segments(rest, parts[1:])


class SourceCollector:
    """Gathers importable files for a unit, stopping at package boundaries."""

    def __init__(self, settings: Optional[GlobalConfig] = None):
        self.settings = settings or GlobalConfig()
        self.extensions = tuple(self.settings.source_extensions)

    def is_source(self, name: str) -> bool:
        return name.endswith(self.extensions)

    def is_package(self, directory: Path) -> bool:
        """A directory holding a build descriptor is a package boundary."""
        return find_build_file(directory, self.settings.build_file_names) is not None

    def should_skip_directory(self, name: str) -> bool:
        return name.startswith(".") or name in self.settings.ignored_directories

    def _is_excluded(self, rel_path: str, patterns: Sequence[str]) -> bool:
        return any(match_glob(pattern, rel_path) for pattern in patterns)

    def collect(self, directory: Path, node: ConfigNode) -> List[str]:
        """Return the unit's source files, relative to ``directory`` and sorted."""
        directory = Path(directory)
        files = set()

        try:
            entries = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError as e:
            raise CollectionError(f"cannot list {directory}: {e}") from e

        subdirs = []
        for entry in entries:
            if entry.is_file() and self.is_source(entry.name) and not node.ignores_file(entry.name):
                files.add(entry.name)
            elif entry.is_dir() and not self.should_skip_directory(entry.name):
                subdirs.append(Path(entry.path))

        if node.coarse_grained:
            patterns = node.excluded_patterns
            for subdir in subdirs:
                files.update(self._walk_subtree(directory, subdir, node, patterns))

        return sorted(files)

    def _walk_subtree(self, unit_dir: Path, subdir: Path, node: ConfigNode, patterns: Sequence[str]) -> List[str]:
        if self.is_package(subdir):
            return []

        def on_error(error: OSError):
            raise CollectionError(f"cannot walk {error.filename}: {error}") from error

        found = []
        for root, dirs, filenames in os.walk(subdir, onerror=on_error):
            root_path = Path(root)
            dirs[:] = sorted(
                d for d in dirs
                if not self.should_skip_directory(d) and not self.is_package(root_path / d)
            )
            for filename in sorted(filenames):
                if not self.is_source(filename) or node.ignores_file(filename):
                    continue
                rel_path = (root_path / filename).relative_to(unit_dir).as_posix()
                if self._is_excluded(rel_path, patterns):
                    logger.debug(f"Excluded by pattern: {rel_path}")
                    continue
                found.append(rel_path)
        return found
