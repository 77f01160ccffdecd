"""Import path normalization.

Imports are matched to targets by logical module identity: a
workspace-relative path with no file extension. ``./util.ts``, ``./util.js``
and ``./util`` written next to each other all name the module ``pkg/util``.
"""

import posixpath
from typing import Iterable, List

# Longest suffix first so declaration files lose the whole ".d.ts".
SOURCE_EXTENSIONS = (
    ".d.ts",
    ".ts",
    ".tsx",
    ".mts",
    ".cts",
    ".js",
    ".jsx",
    ".mjs",
    ".cjs",
)

INDEX_FILE_NAME = "index"


def is_relative_import(imp: str) -> bool:
    """Return True for imports written relative to the importing file."""
    return imp in (".", "..") or imp.startswith("./") or imp.startswith("../")


def clean_path(path: str) -> str:
    """Collapse ``.`` and ``..`` segments.

    ``..`` never climbs above the workspace root: extra parent segments are
    dropped instead of producing a path outside the tree.
    """
    parts: List[str] = []
    for segment in path.replace("\\", "/").split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if parts:
                parts.pop()
            continue
        parts.append(segment)
    return "/".join(parts)


def strip_extension(path: str) -> str:
    """Remove a recognized source extension from ``path``."""
    base = posixpath.basename(path)
    for ext in SOURCE_EXTENSIONS:
        if base.endswith(ext) and len(base) > len(ext):
            return path[: -len(ext)]
    return path


def normalize(package: str, source_path: str, imp: str) -> str:
    """Turn a raw import into a logical import path.

    ``package`` is the workspace-relative directory of the importing unit and
    ``source_path`` the importing file relative to that directory.
    Non-relative imports are already workspace-absolute and ignore both.
    """
    if is_relative_import(imp):
        imp = posixpath.join(package, posixpath.dirname(source_path), imp)
    return strip_extension(clean_path(imp))


def is_index_file(path: str, index_name: str = INDEX_FILE_NAME) -> bool:
    """Return True if ``path`` names an index module (``dir/index.ts``)."""
    return posixpath.basename(strip_extension(path)) == index_name


def provided_imports(package: str, srcs: Iterable[str], index_name: str = INDEX_FILE_NAME) -> List[str]:
    """Logical import paths served by a unit with the given sources.

    Index files are importable through their directory as well, so
    ``dir/index.ts`` provides both ``dir/index`` and ``dir``.
    """
    provides: List[str] = []
    seen = set()
    for src in srcs:
        module = strip_extension(clean_path(posixpath.join(package, src)))
        candidates = [module]
        if is_index_file(src, index_name):
            parent = posixpath.dirname(module)
            if parent:
                candidates.append(parent)
        for candidate in candidates:
            if candidate not in seen:
                seen.add(candidate)
                provides.append(candidate)
    return provides
