"""Reading build descriptor files: directives and manually declared rules."""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .config import ConfigurationError
from .models import ManualRule

DIRECTIVE_PREFIX = "depgen:"

_DIRECTIVE_RE = re.compile(r"^\s*#\s*" + re.escape(DIRECTIVE_PREFIX) + r"(\w+)(?:\s+(.*?))?\s*$")
_RULE_START_RE = re.compile(r"^([A-Za-z_][\w.]*)\s*\(", re.MULTILINE)
_NAME_RE = re.compile(r"\bname\s*=\s*[\"']([^\"']+)[\"']")
_SRCS_RE = re.compile(r"\bsrcs\s*=\s*\[(.*?)\]", re.DOTALL)
_STRING_RE = re.compile(r"[\"']([^\"']+)[\"']")


@dataclass
class BuildFile:
    """Parsed contents of a BUILD file."""

    path: Path
    directives: List[Tuple[str, str]] = field(default_factory=list)
    rules: List[ManualRule] = field(default_factory=list)

    def rule_named(self, name: str) -> Optional[ManualRule]:
        for rule in self.rules:
            if rule.name == name:
                return rule
        return None


def find_build_file(directory: Path, build_file_names: Sequence[str]) -> Optional[Path]:
    """Return the first build descriptor present in ``directory``."""
    for filename in build_file_names:
        path = directory / filename
        if path.is_file():
            return path
    return None


def _call_body(content: str, start: int) -> str:
    """Text between the parenthesis opened just before ``start`` and its match."""
    depth = 1
    quote = None
    i = start
    while i < len(content):
        ch = content[i]
        if quote:
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch == "#":
            newline = content.find("\n", i)
            i = len(content) if newline == -1 else newline
            continue
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return content[start:i]
        i += 1
    return content[start:]


def parse_build_file(content: str, path: Path = Path("BUILD")) -> BuildFile:
    """Extract ``# depgen:`` directives and top-level rule calls."""
    build_file = BuildFile(path=path)

    for line in content.splitlines():
        match = _DIRECTIVE_RE.match(line)
        if match:
            build_file.directives.append((match.group(1), match.group(2) or ""))

    for match in _RULE_START_RE.finditer(content):
        kind = match.group(1)
        if kind in ("load", "package", "exports_files", "licenses"):
            continue
        body = _call_body(content, match.end())
        name_match = _NAME_RE.search(body)
        if not name_match:
            continue
        srcs: List[str] = []
        srcs_match = _SRCS_RE.search(body)
        if srcs_match:
            srcs = _STRING_RE.findall(srcs_match.group(1))
        build_file.rules.append(ManualRule(kind=kind, name=name_match.group(1), srcs=srcs))

    return build_file


def load_build_file(directory: Path, build_file_names: Sequence[str]) -> Optional[BuildFile]:
    """Read and parse the build descriptor of ``directory``, if any."""
    path = find_build_file(directory, build_file_names)
    if path is None:
        return None
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"{path}: cannot read build file: {e}") from e
    return parse_build_file(content, path)
