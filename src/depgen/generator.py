"""Generating targets and their dependencies for a whole workspace."""

import json
import logging
import os
from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Dict, List, Optional

from .buildfile import BuildFile, load_build_file
from .builder import TargetBuilder, TargetCollisionError, check_collisions
from .collector import CollectionError, SourceCollector
from .config import (
    KNOWN_DIRECTIVES,
    TEST_NAMING_DIRECTIVE,
    ConfigNode,
    ConfigTree,
    ConfigurationError,
    GlobalConfig,
)
from .imports import provided_imports
from .index import RuleIndex
from .models import GenerationUnit, Label, ManualRule
from .parser import ImportParser, LocalParser, collect_imports
from .registry import PackageRegistry
from .resolver import DependencyResolver, Diagnostics, OverrideTable

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    """Everything one generation run produced."""

    units: List[GenerationUnit] = field(default_factory=list)
    empty: List[GenerationUnit] = field(default_factory=list)
    diagnostics: Diagnostics = field(default_factory=Diagnostics)

    @property
    def ok(self) -> bool:
        return not self.diagnostics.fatal

    def unit(self, label: str) -> Optional[GenerationUnit]:
        for unit in self.units:
            if str(unit.label) == label:
                return unit
        return None

    def to_dict(self) -> Dict:
        return {
            "units": [unit.to_dict() for unit in self.units],
            "empty": [str(unit.label) for unit in self.empty],
        }

    def write(self, path: Path):
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)
            f.write("\n")


class Generator:
    """Walks a workspace, generates a unit per qualifying directory and resolves deps.

    Directories are configured parent-first and generated depth-first
    post-order. Resolution happens once every unit is known, against an index
    of all generated units and manually declared rules.
    """

    def __init__(
        self,
        repo_root: Path,
        settings: Optional[GlobalConfig] = None,
        parser: Optional[ImportParser] = None,
        registry=None,
        overrides: Optional[OverrideTable] = None,
    ):
        self.repo_root = Path(repo_root).resolve()
        self.settings = settings or GlobalConfig()
        self.parser = parser or LocalParser()
        self.registry = registry if registry is not None else PackageRegistry(self.repo_root)
        self.overrides = overrides or OverrideTable()
        self.collector = SourceCollector(self.settings)
        self.resolver = DependencyResolver(self.settings)

        self.tree: Optional[ConfigTree] = None
        self.index: Optional[RuleIndex] = None
        self._units: List[GenerationUnit] = []
        self._empty: List[GenerationUnit] = []
        self._manual_rules: Dict[str, List[ManualRule]] = {}

    def run(self) -> GenerationResult:
        """Generate every unit of the workspace and resolve its dependencies."""
        self.tree = ConfigTree(self.repo_root, registry=self.registry)
        self.index = RuleIndex()
        self._units = []
        self._empty = []
        self._manual_rules = {}

        self._visit("")
        self._build_index()

        diagnostics = Diagnostics()
        for unit in self._units:
            node = self.tree[unit.package]
            resolution = self.resolver.resolve(
                unit, unit.imports, node, self.index, self.overrides, diagnostics
            )
            unit.deps = set(resolution.deps)

        units = sorted(self._units, key=lambda u: str(u.label))
        empty = sorted(self._empty, key=lambda u: str(u.label))
        logger.info(f"Generated {len(units)} target(s) in {self.repo_root}")
        return GenerationResult(units=units, empty=empty, diagnostics=diagnostics)

    def _subdirectories(self, directory: Path) -> List[str]:
        try:
            entries = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError as e:
            logger.error(f"ERROR: cannot list {directory}: {e}")
            return []
        return [
            entry.name for entry in entries
            if entry.is_dir(follow_symlinks=False) and not self.collector.should_skip_directory(entry.name)
        ]

    def _visit(self, rel: str):
        directory = self.repo_root / rel
        build_file = load_build_file(directory, self.settings.build_file_names)

        directives = build_file.directives if build_file else []
        for key, _ in directives:
            if key not in KNOWN_DIRECTIVES:
                raise ConfigurationError(f"{build_file.path}: unknown directive 'depgen:{key}'")
        node = self.tree.configure(rel, directives)

        for name in self._subdirectories(directory):
            self._visit(f"{rel}/{name}" if rel else name)

        self._generate(rel, directory, node, build_file)

    def _is_test(self, src: str) -> bool:
        name = os.path.basename(src)
        return any(fnmatchcase(name, pattern) for pattern in self.settings.test_file_patterns)

    def _generate(self, rel: str, directory: Path, node: ConfigNode, build_file: Optional[BuildFile]):
        existing = build_file.rules if build_file else []
        if build_file is not None:
            self._manual_rules[rel] = existing

        if not node.generation_enabled:
            return

        # A plain directory under a coarse-grained one was swallowed by the
        # ancestor's unit.
        if build_file is None and node.coarse_grained and node.parent is not None and node.parent.coarse_grained:
            return

        try:
            srcs = self.collector.collect(directory, node)
        except CollectionError as e:
            logger.error(f"ERROR: {e}")
            return

        package_name = directory.name
        lib_srcs = [s for s in srcs if not self._is_test(s)]
        test_srcs = [s for s in srcs if self._is_test(s)]

        lib_name = node.render_library_name(package_name)
        test_name = node.render_test_name(package_name)
        lib_kind = self.settings.library_kind
        test_kind = self.settings.test_kind

        collisions = []
        if lib_srcs:
            collisions += check_collisions(lib_name, lib_kind, rel, existing)
        if test_srcs:
            collisions += check_collisions(test_name, test_kind, rel, existing, TEST_NAMING_DIRECTIVE)
            if lib_srcs and lib_name == test_name:
                collisions.append(
                    f"library and test targets in \"{Label(package=rel, name=lib_name)}\" render to the same name; "
                    f"use the '# depgen:{TEST_NAMING_DIRECTIVE}' directive to change the naming convention."
                )
        if collisions:
            for error in collisions:
                logger.error(f"ERROR: {error}")
            raise TargetCollisionError(collisions)

        visibility = f"//{node.project_root}:__subpackages__"
        for kind, name, files, testonly in (
            (lib_kind, lib_name, lib_srcs, False),
            (test_kind, test_name, test_srcs, True),
        ):
            builder = TargetBuilder(kind, name, node.project_root, rel)
            if not files:
                stale = build_file.rule_named(name) if build_file else None
                if stale is not None and stale.kind == kind:
                    self._empty.append(builder.build())
                continue

            imports = collect_imports(self.parser, self.repo_root, rel, files, node.ignores_dependency)
            builder.add_visibility(visibility).add_srcs(files).add_imports(imports)
            if testonly:
                builder.set_testonly()
            unit = builder.build()
            logger.debug(f"Generated {unit.label} with {len(unit.srcs)} source(s)")
            self._units.append(unit)

    def _build_index(self):
        language = self.settings.language
        generated = {(unit.package, unit.name) for unit in self._units}

        for unit in self._units:
            self.index.add(unit.label, language, unit.provides())

        for rel, rules in self._manual_rules.items():
            for rule in rules:
                if rule.kind not in self.settings.indexed_kinds or not rule.srcs:
                    continue
                if (rel, rule.name) in generated:
                    continue
                self.index.add(Label(package=rel, name=rule.name), language, provided_imports(rel, rule.srcs))

        self.index.finish()
