"""Configuration for depgen: process settings and the per-directory config tree."""

import logging
import posixpath
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

from platformdirs import user_state_dir
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .imports import clean_path, strip_extension
from .models import Label

logger = logging.getLogger(__name__)

PACKAGE_NAME_TOKEN = "$package_name$"

# Directives
GENERATION_DIRECTIVE = "ts_generation"
ROOT_DIRECTIVE = "ts_root"
IGNORE_DEPENDENCIES_DIRECTIVE = "ts_ignore_dependencies"
IGNORE_FILES_DIRECTIVE = "ts_ignore_files"
VALIDATE_IMPORTS_DIRECTIVE = "ts_validate_import_statements"
GENERATION_MODE_DIRECTIVE = "ts_generation_mode"
ENVIRONMENT_DIRECTIVE = "ts_environment"
LIBRARY_NAMING_DIRECTIVE = "ts_project_naming_convention"
TEST_NAMING_DIRECTIVE = "ts_test_naming_convention"
EXCLUDE_DIRECTIVE = "exclude"
RESOLVE_DIRECTIVE = "resolve"

KNOWN_DIRECTIVES: Dict[str, str] = {
    GENERATION_DIRECTIVE: "enabled|disabled - toggle generation for this subtree",
    ROOT_DIRECTIVE: "mark this directory as the project root",
    IGNORE_DEPENDENCIES_DIRECTIVE: "comma-separated imports never reported as invalid",
    IGNORE_FILES_DIRECTIVE: "comma-separated file names left out of generated targets",
    VALIDATE_IMPORTS_DIRECTIVE: "true|false - fail on imports that cannot be resolved",
    GENERATION_MODE_DIRECTIVE: "package|project - one target per directory or per subtree",
    ENVIRONMENT_DIRECTIVE: "node|browser|other - runtime whose builtin modules are skipped",
    LIBRARY_NAMING_DIRECTIVE: f"library target name template using {PACKAGE_NAME_TOKEN}",
    TEST_NAMING_DIRECTIVE: f"test target name template using {PACKAGE_NAME_TOKEN}",
    EXCLUDE_DIRECTIVE: "glob of files left out of coarse-grained targets",
    RESOLVE_DIRECTIVE: "[ts] <import> <label> - resolve an import to a fixed target",
}

_TRUE_LITERALS = {"1", "t", "T", "true", "TRUE", "True"}
_FALSE_LITERALS = {"0", "f", "F", "false", "FALSE", "False"}


class ConfigurationError(Exception):
    """Raised for workspace misconfiguration. Fatal to the whole run."""


class GenerationMode(str, Enum):
    PACKAGE = "package"
    PROJECT = "project"


class Environment(str, Enum):
    NODE = "node"
    BROWSER = "browser"
    OTHER = "other"


class GlobalConfig(BaseSettings):
    """Process-wide settings for depgen."""

    model_config = SettingsConfigDict(
        env_prefix="DEPGEN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    explain_dependency: Optional[str] = Field(
        default=None, description="Log how every import resolving to this dependency was resolved"
    )
    language: str = Field(default="ts", description="Language family used in the rule index")
    library_kind: str = Field(default="ts_project", description="Kind of generated library targets")
    test_kind: str = Field(default="ts_project", description="Kind of generated test targets")
    indexed_kinds: List[str] = Field(
        default=["ts_project", "js_library"],
        description="Manual rule kinds whose srcs are added to the rule index",
    )
    build_file_names: List[str] = Field(default=["BUILD", "BUILD.bazel"])
    source_extensions: List[str] = Field(
        default=[".ts", ".tsx", ".mts", ".cts", ".js", ".jsx", ".mjs", ".cjs"]
    )
    test_file_patterns: List[str] = Field(default=["*.test.*", "*.spec.*"])
    ignored_directories: List[str] = Field(default=["node_modules"])
    parser_command: List[str] = Field(
        default=[], description="External parse server command; empty uses the in-process parser"
    )
    parser_timeout: float = Field(default=300.0, description="Lifetime bound of the parse server in seconds")


def state_dir() -> Path:
    """Directory holding depgen's log file."""
    path = Path(user_state_dir("depgen", "depgen"))
    path.mkdir(parents=True, exist_ok=True)
    return path


def parse_bool(value: str) -> bool:
    value = value.strip()
    if value in _TRUE_LITERALS:
        return True
    if value in _FALSE_LITERALS:
        return False
    raise ValueError(f"invalid boolean literal {value!r}")


def _split_names(value: str) -> List[str]:
    return [name.strip() for name in value.split(",") if name.strip()]


class ConfigNode:
    """Configuration for a single directory of the workspace.

    Scalar settings are copied from the parent when the node is created. The
    ignore sets, exclusion patterns and resolve overrides are per-directory
    and merged with every ancestor when queried. A node is frozen once its
    directory's directives have been applied.
    """

    def __init__(self, repo_root: Path, rel: str = "", parent: Optional["ConfigNode"] = None, registry=None):
        self.parent = parent
        self.rel = rel
        self.repo_root = repo_root
        self.registry = registry if registry is not None else (parent.registry if parent else None)

        if parent is None:
            self.generation_enabled = True
            self.project_root = ""
            self.environment = Environment.OTHER
            self.validate_import_statements = True
            self.generation_mode = GenerationMode.PACKAGE
            self.library_naming_convention = PACKAGE_NAME_TOKEN
            self.test_naming_convention = f"{PACKAGE_NAME_TOKEN}_test"
        else:
            self.generation_enabled = parent.generation_enabled
            self.project_root = parent.project_root
            self.environment = parent.environment
            self.validate_import_statements = parent.validate_import_statements
            self.generation_mode = parent.generation_mode
            self.library_naming_convention = parent.library_naming_convention
            self.test_naming_convention = parent.test_naming_convention

        self.own_excluded_patterns: List[str] = []
        self.own_ignored_dependencies: Set[str] = set()
        self.own_ignored_files: Set[str] = set()
        self.own_overrides: Dict[str, Label] = {}
        self._frozen = False

    def __setattr__(self, name, value):
        if getattr(self, "_frozen", False):
            raise AttributeError(f"config for {self.rel or '.'!r} is frozen")
        super().__setattr__(name, value)

    def __repr__(self) -> str:
        return f"ConfigNode(rel={self.rel!r}, mode={self.generation_mode.value})"

    def freeze(self):
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _check_mutable(self):
        if self._frozen:
            raise AttributeError(f"config for {self.rel or '.'!r} is frozen")

    def ancestors(self) -> Iterable["ConfigNode"]:
        """Yield this node, then its parent, up to the workspace root."""
        node = self
        while node is not None:
            yield node
            node = node.parent

    @property
    def coarse_grained(self) -> bool:
        return self.generation_mode is GenerationMode.PROJECT

    @property
    def excluded_patterns(self) -> List[str]:
        """Exclusion globs of this node and its ancestors, root first."""
        chain = list(self.ancestors())
        patterns: List[str] = []
        for node in reversed(chain):
            patterns.extend(node.own_excluded_patterns)
        return patterns

    def add_excluded_pattern(self, pattern: str):
        self._check_mutable()
        self.own_excluded_patterns.append(pattern.strip())

    def add_ignore_dependency(self, dep: str):
        self._check_mutable()
        self.own_ignored_dependencies.add(dep.strip())

    def ignores_dependency(self, dep: str) -> bool:
        """Check the node and every ancestor up to the workspace root."""
        dep = dep.strip()
        return any(dep in node.own_ignored_dependencies for node in self.ancestors())

    def add_ignore_file(self, name: str):
        self._check_mutable()
        self.own_ignored_files.add(name.strip())

    def ignores_file(self, name: str) -> bool:
        name = name.strip()
        return any(name in node.own_ignored_files for node in self.ancestors())

    def add_override(self, imp: str, label: Label):
        self._check_mutable()
        self.own_overrides[imp] = label

    def find_override(self, imp: str) -> Optional[Tuple[Label, str]]:
        """Nearest override for ``imp`` and the package that declared it."""
        for node in self.ancestors():
            if imp in node.own_overrides:
                return node.own_overrides[imp], node.rel
        return None

    def find_third_party_dependency(self, imp: str) -> Optional[str]:
        """Map an import to an external package target via the registry."""
        if self.registry is None:
            return None
        return self.registry.lookup(self, imp)

    def render_library_name(self, package_name: str) -> str:
        return self.library_naming_convention.replace(PACKAGE_NAME_TOKEN, package_name)

    def render_test_name(self, package_name: str) -> str:
        return self.test_naming_convention.replace(PACKAGE_NAME_TOKEN, package_name)

    def apply_directive(self, key: str, value: str):
        """Apply a single ``key value`` directive to this node."""
        self._check_mutable()
        value = value.strip()

        if key == EXCLUDE_DIRECTIVE:
            self.add_excluded_pattern(value)
        elif key == GENERATION_DIRECTIVE:
            if value == "enabled":
                self.generation_enabled = True
            elif value == "disabled":
                self.generation_enabled = False
            else:
                raise ConfigurationError(
                    f"invalid value for directive {key!r}: {value}: possible values are enabled/disabled"
                )
        elif key == ROOT_DIRECTIVE:
            self.project_root = self.rel
        elif key == IGNORE_DEPENDENCIES_DIRECTIVE:
            for dep in _split_names(value):
                self.add_ignore_dependency(dep)
        elif key == IGNORE_FILES_DIRECTIVE:
            for name in _split_names(value):
                self.add_ignore_file(name)
        elif key == VALIDATE_IMPORTS_DIRECTIVE:
            try:
                self.validate_import_statements = parse_bool(value)
            except ValueError as e:
                raise ConfigurationError(f"invalid value for directive {key!r}: {e}") from e
        elif key == GENERATION_MODE_DIRECTIVE:
            try:
                self.generation_mode = GenerationMode(value)
            except ValueError:
                raise ConfigurationError(
                    f"invalid value for directive {key!r}: {value}: possible values are package/project"
                ) from None
        elif key == ENVIRONMENT_DIRECTIVE:
            try:
                self.environment = Environment(value)
            except ValueError:
                raise ConfigurationError(
                    f"invalid value for directive {key!r}: {value}: possible values are node/browser/other"
                ) from None
        elif key == LIBRARY_NAMING_DIRECTIVE:
            self.library_naming_convention = value
        elif key == TEST_NAMING_DIRECTIVE:
            self.test_naming_convention = value
        elif key == RESOLVE_DIRECTIVE:
            self._apply_resolve(value)
        else:
            raise ConfigurationError(f"unknown directive {key!r}")

    def _apply_resolve(self, value: str):
        parts = value.split()
        if len(parts) == 3:
            lang, imp, target = parts
            if lang not in ("ts", "js"):
                # Resolve entries for other languages do not concern us.
                return
        elif len(parts) == 2:
            imp, target = parts
        else:
            raise ConfigurationError(
                f"invalid value for directive {RESOLVE_DIRECTIVE!r}: {value!r}: expected '[ts] <import> <label>'"
            )
        try:
            label = Label.parse(target)
        except ValueError as e:
            raise ConfigurationError(f"invalid value for directive {RESOLVE_DIRECTIVE!r}: {e}") from e
        self.add_override(strip_extension(clean_path(imp)), label)


class ConfigTree:
    """Per-directory configuration nodes for one workspace, keyed by relative path."""

    def __init__(self, repo_root: Path, registry=None):
        self.repo_root = Path(repo_root)
        self.root = ConfigNode(self.repo_root, "", registry=registry)
        self.nodes: Dict[str, ConfigNode] = {"": self.root}

    def __contains__(self, rel: str) -> bool:
        return rel in self.nodes

    def __getitem__(self, rel: str) -> ConfigNode:
        return self.nodes[rel]

    def resolve(self, rel: str) -> ConfigNode:
        """Return the node for ``rel``, deriving it from its nearest configured ancestor."""
        rel = clean_path(rel)
        node = self.nodes.get(rel)
        if node is not None:
            return node

        parent_rel = posixpath.dirname(rel)
        while parent_rel and parent_rel not in self.nodes:
            parent_rel = posixpath.dirname(parent_rel)
        parent = self.nodes[parent_rel]

        node = ConfigNode(self.repo_root, rel, parent=parent)
        self.nodes[rel] = node
        return node

    def configure(self, rel: str, directives: Iterable[Tuple[str, str]] = ()) -> ConfigNode:
        """Resolve the node for ``rel``, apply its directives and freeze it."""
        node = self.resolve(rel)
        if node.frozen:
            return node
        for key, value in directives:
            logger.debug(f"Directive in {rel or '.'}: {key} {value}")
            node.apply_directive(key, value)
        node.freeze()
        return node
