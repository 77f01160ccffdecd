"""Parsing source files for imports, locally or through the parse server bridge.

The bridge talks to a long-lived subprocess. A request is one JSON object per
line on the process's stdin::

    {"repo_root": "...", "rel_package_path": "...", "filenames": ["a.ts"]}

The reply is a JSON array with one record per file, terminated by a NUL
byte. The protocol carries no request ids, so only one request may be in
flight at a time.
"""

import json
import logging
import subprocess
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Set

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from .analyzer import CodeAnalyzer
from .models import ImportStatement

logger = logging.getLogger(__name__)

ANNOTATION_PREFIX = "depgen:"
ANNOTATION_IGNORE = "ignore"


class BridgeError(Exception):
    """The parse server failed. The shared process cannot be reused."""


class ParsedModule(BaseModel):
    """A module reference as written in an import, with its line number."""

    name: str
    lineno: int = 0
    filepath: str = ""


class ParsedFile(BaseModel):
    """Parse result for one source file."""

    modules: List[ParsedModule] = Field(default_factory=list)
    comments: List[str] = Field(default_factory=list)


_RESPONSE_ADAPTER = TypeAdapter(List[ParsedFile])


def parse_annotations(comments: Sequence[str]) -> Set[str]:
    """Module names suppressed by ``depgen:ignore a,b`` comments."""
    ignored = set()
    for comment in comments:
        text = comment.strip()
        if text.startswith("/*"):
            text = text[2:]
            if text.endswith("*/"):
                text = text[:-2]
        text = text.lstrip("/*# \t")
        if not text.startswith(ANNOTATION_PREFIX):
            continue
        parts = text[len(ANNOTATION_PREFIX):].split(None, 1)
        if len(parts) < 2 or parts[0] != ANNOTATION_IGNORE:
            continue
        for name in parts[1].split(","):
            name = name.strip()
            if name:
                ignored.add(name)
    return ignored


class ImportParser(ABC):
    """Base class for anything that turns source files into ParsedFile records."""

    @abstractmethod
    def parse(self, repo_root: Path, rel_package_path: str, filenames: Sequence[str]) -> List[ParsedFile]:
        """Return one record per file, in the order of ``filenames``."""

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


def parse_source_files(repo_root: Path, rel_package_path: str, filenames: Sequence[str]) -> List[ParsedFile]:
    """Parse files in-process. Unreadable files yield empty records."""
    package_dir = Path(repo_root) / rel_package_path
    results = []
    for filename in filenames:
        path = package_dir / filename
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"{path}: error reading source file: {e}")
            results.append(ParsedFile())
            continue
        modules, comments = CodeAnalyzer.analyze_javascript(content)
        results.append(ParsedFile(
            modules=[ParsedModule(filepath=filename, **m) for m in modules],
            comments=comments,
        ))
    return results


class LocalParser(ImportParser):
    """Parses files in the current process with CodeAnalyzer."""

    def parse(self, repo_root: Path, rel_package_path: str, filenames: Sequence[str]) -> List[ParsedFile]:
        return parse_source_files(repo_root, rel_package_path, filenames)


class ParserSession(ImportParser):
    """A session with an external parse server process.

    ``start()`` spawns the process, ``parse()`` sends one request and blocks
    until the NUL-terminated reply is read, ``close()`` shuts it down. The
    process is killed once ``timeout`` seconds have passed since start.
    """

    def __init__(self, command: Sequence[str], timeout: Optional[float] = 300.0, cwd: Optional[Path] = None):
        if not command:
            raise ValueError("parse server command is empty")
        self.command = list(command)
        self.timeout = timeout
        self.cwd = cwd
        self._process: Optional[subprocess.Popen] = None
        self._lock = threading.Lock()
        self._buffer = b""
        self._closing = False
        self._exited = threading.Event()
        self._watcher: Optional[threading.Thread] = None
        self._deadline: Optional[threading.Timer] = None

    @property
    def running(self) -> bool:
        return self._process is not None and not self._exited.is_set()

    def start(self):
        """Spawn the parse server."""
        if self._process is not None:
            return
        try:
            self._process = subprocess.Popen(
                self.command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                cwd=str(self.cwd) if self.cwd else None,
            )
        except OSError as e:
            raise BridgeError(f"failed to start parse server {self.command}: {e}") from e

        logger.debug(f"Started parse server (PID: {self._process.pid}): {' '.join(self.command)}")

        self._watcher = threading.Thread(target=self._watch_exit, name="depgen-parser-watch", daemon=True)
        self._watcher.start()

        if self.timeout:
            self._deadline = threading.Timer(self.timeout, self._expire)
            self._deadline.daemon = True
            self._deadline.start()

    def _watch_exit(self):
        code = self._process.wait()
        self._exited.set()
        if not self._closing:
            logger.error(f"Parse server exited unexpectedly with code {code}")

    def _expire(self):
        if self._process is not None and self._process.poll() is None:
            logger.error(f"Parse server exceeded its {self.timeout}s lifetime, killing it")
            self._process.kill()

    def __enter__(self):
        self.start()
        return self

    def _read_reply(self) -> bytes:
        stdout = self._process.stdout
        while b"\0" not in self._buffer:
            chunk = stdout.read1(65536)
            if not chunk:
                raise BridgeError("parse server closed its output stream")
            self._buffer += chunk
        data, self._buffer = self._buffer.split(b"\0", 1)
        return data

    def parse(self, repo_root: Path, rel_package_path: str, filenames: Sequence[str]) -> List[ParsedFile]:
        request = {
            "repo_root": str(repo_root),
            "rel_package_path": rel_package_path,
            "filenames": list(filenames),
        }
        with self._lock:
            if self._process is None:
                self.start()
            if self._exited.is_set():
                raise BridgeError("parse server is not running")
            try:
                self._process.stdin.write(json.dumps(request).encode("utf-8") + b"\n")
                self._process.stdin.flush()
                data = self._read_reply()
            except (OSError, ValueError) as e:
                raise BridgeError(f"failed to parse: {e}") from e

        try:
            results = _RESPONSE_ADAPTER.validate_json(data)
        except ValidationError as e:
            raise BridgeError(f"failed to parse: malformed reply: {e}") from e
        if len(results) != len(filenames):
            raise BridgeError(f"failed to parse: expected {len(filenames)} records, got {len(results)}")
        return results

    def close(self):
        """Stop the parse server."""
        if self._process is None:
            return
        self._closing = True
        if self._deadline is not None:
            self._deadline.cancel()
        try:
            self._process.stdin.close()
        except OSError:
            pass
        try:
            self._process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            self._process.kill()
            self._process.wait()
        if self._process.stdout is not None:
            self._process.stdout.close()
        self._process = None


def collect_imports(
    parser: ImportParser,
    repo_root: Path,
    rel_package_path: str,
    filenames: Sequence[str],
    ignores_dependency: Callable[[str], bool],
) -> Set[ImportStatement]:
    """Parse a unit's files and keep the imports that are not ignored.

    An import is dropped when a comment in its own file carries an ignore
    annotation for it, or when the directory configuration ignores it.
    """
    if not filenames:
        return set()

    statements: Set[ImportStatement] = set()
    results = parser.parse(repo_root, rel_package_path, filenames)
    for filename, result in zip(filenames, results):
        annotated = parse_annotations(result.comments)
        for module in result.modules:
            if module.name in annotated:
                continue
            if ignores_dependency(module.name):
                continue
            statements.add(ImportStatement(
                path=module.name,
                source_path=module.filepath or filename,
                line_number=module.lineno,
            ))
    return statements

