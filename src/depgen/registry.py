"""Third-party package lookup backed by package.json dependency tables."""

import json
import logging
from pathlib import Path
from typing import Dict, Optional, Set

from .imports import is_relative_import

logger = logging.getLogger(__name__)

DEPENDENCY_TABLES = (
    "dependencies",
    "devDependencies",
    "peerDependencies",
    "optionalDependencies",
)

NODE_BUILTIN_MODULES: Set[str] = {
    "assert", "async_hooks", "buffer", "child_process", "cluster", "console",
    "constants", "crypto", "dgram", "diagnostics_channel", "dns", "domain",
    "events", "fs", "http", "http2", "https", "inspector", "module", "net",
    "os", "path", "perf_hooks", "process", "punycode", "querystring",
    "readline", "repl", "stream", "string_decoder", "sys", "timers",
    "tls", "trace_events", "tty", "url", "util", "v8", "vm", "wasi",
    "worker_threads", "zlib",
    # Subpath modules shipped with node.
    "assert/strict", "dns/promises", "fs/promises", "inspector/promises",
    "path/posix", "path/win32", "readline/promises", "stream/consumers",
    "stream/promises", "stream/web", "timers/promises", "util/types",
}


def package_name(imp: str) -> Optional[str]:
    """npm package an import refers to: ``lodash/fp`` -> ``lodash``, ``@a/b/c`` -> ``@a/b``."""
    if not imp or is_relative_import(imp) or imp.startswith("/"):
        return None
    parts = imp.split("/")
    if imp.startswith("@"):
        if len(parts) < 2 or not parts[1]:
            return None
        return "/".join(parts[:2])
    return parts[0]


def is_node_builtin(imp: str) -> bool:
    """True for ``fs``, ``fs/promises`` and ``node:``-prefixed modules.

    Only exact module names match, so a workspace path such as
    ``util/strings`` is never taken for a builtin.
    """
    if imp.startswith("node:"):
        return True
    return imp in NODE_BUILTIN_MODULES


class PackageRegistry:
    """Resolves imports of npm packages declared in the project's package.json.

    The manifest read is the one in the directory's project root (the nearest
    ``ts_root``, or the workspace root). A declared package ``pkg`` maps to the
    target ``//<project_root>:node_modules/pkg``.
    """

    def __init__(self, repo_root: Path, target_prefix: str = "node_modules"):
        self.repo_root = Path(repo_root)
        self.target_prefix = target_prefix
        self._packages: Dict[str, Set[str]] = {}

    def packages(self, project_root: str) -> Set[str]:
        """Package names declared by the package.json of ``project_root``."""
        if project_root in self._packages:
            return self._packages[project_root]

        manifest = self.repo_root / project_root / "package.json"
        names: Set[str] = set()
        if manifest.is_file():
            try:
                data = json.loads(manifest.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.warning(f"{manifest}: cannot read package manifest: {e}")
                data = {}
            for table in DEPENDENCY_TABLES:
                names.update((data.get(table) or {}).keys())
        self._packages[project_root] = names
        return names

    def lookup(self, node, imp: str) -> Optional[str]:
        """Target providing ``imp``, or None if no declared package matches."""
        name = package_name(imp)
        if name is None:
            return None
        declared = self.packages(node.project_root)
        if name not in declared:
            types_name = "@types/" + name.lstrip("@").replace("/", "__")
            if types_name not in declared:
                return None
            name = types_name
        return f"//{node.project_root}:{self.target_prefix}/{name}"
