"""Resolving a unit's imports into dependency targets.

Every import is tried against, in order: explicit resolve overrides, the
workspace rule index, and the third-party package registry. Imports that none
of them can answer are fatal when the directory validates imports, and are
dropped otherwise.
"""

import logging
import posixpath
from typing import Dict, Iterable, List, Optional

from .config import ConfigNode, Environment, GlobalConfig, RESOLVE_DIRECTIVE
from .imports import clean_path, normalize, strip_extension
from .index import RuleIndex
from .models import GenerationUnit, ImportStatement, Label, Resolution, ResolutionError
from .registry import is_node_builtin

logger = logging.getLogger(__name__)

AMBIGUOUS = "ambiguous"
INVALID = "invalid"


class OverrideTable:
    """Explicit import -> target mapping that bypasses the rule index.

    Entries come from ``resolve`` directives on the config tree (nearest
    directory wins) and from workspace-wide entries added here.
    """

    def __init__(self, entries: Optional[Dict[str, str]] = None):
        self._entries: Dict[str, Label] = {}
        for imp, target in (entries or {}).items():
            self.add(imp, Label.parse(target))

    def add(self, imp: str, label: Label):
        self._entries[strip_extension(clean_path(imp))] = label

    def find(self, imp: str, node: Optional[ConfigNode] = None) -> Optional[Label]:
        if node is not None:
            found = node.find_override(imp)
            if found is not None:
                label, package = found
                return label.absolute("", package)
        label = self._entries.get(imp)
        if label is None:
            return None
        return label.absolute("", "")

    def __len__(self) -> int:
        return len(self._entries)


class Diagnostics:
    """Fatal problems collected over a whole run."""

    def __init__(self):
        self.errors: List[ResolutionError] = []

    def add(self, error: ResolutionError):
        logger.error(f"ERROR: {error.message}")
        self.errors.append(error)

    @property
    def fatal(self) -> bool:
        return bool(self.errors)

    def by_kind(self, kind: str) -> List[ResolutionError]:
        return [e for e in self.errors if e.kind == kind]

    def __len__(self) -> int:
        return len(self.errors)


class DependencyResolver:
    """Turns ImportStatements into dependency labels for one unit at a time."""

    def __init__(self, settings: Optional[GlobalConfig] = None):
        self.settings = settings or GlobalConfig()
        self.language = self.settings.language
        self.explain_dependency = self.settings.explain_dependency

    def _explain(self, dep: str, unit: GenerationUnit, mod: ImportStatement, how: str):
        if self.explain_dependency and self.explain_dependency == dep:
            logger.info(
                f"Explaining dependency ({dep}): in the target \"{unit.label}\", "
                f"the file \"{self._source(unit, mod)}\" imports \"{mod.path}\" "
                f"at line {mod.line_number}, which resolves {how}."
            )

    @staticmethod
    def _source(unit: GenerationUnit, mod: ImportStatement) -> str:
        return posixpath.join(unit.package, mod.source_path)

    def resolve(
        self,
        unit: GenerationUnit,
        imports: Iterable[ImportStatement],
        node: ConfigNode,
        index: RuleIndex,
        overrides: Optional[OverrideTable] = None,
        diagnostics: Optional[Diagnostics] = None,
    ) -> Resolution:
        """Resolve ``imports`` of ``unit`` into a sorted list of dependency labels."""
        if overrides is None:
            overrides = OverrideTable()
        if diagnostics is None:
            diagnostics = Diagnostics()

        from_label = unit.label
        provides = set(unit.provides())
        deps = set()
        fatal = False

        for mod in sorted(imports):
            if node.environment is Environment.NODE and is_node_builtin(mod.path):
                logger.debug(f"BUILTIN({unit.name}): {mod.path}")
                continue

            imp = normalize(unit.package, mod.source_path, mod.path)
            logger.debug(f"FIND({unit.name}): {imp}")

            if imp in provides:
                continue

            override = overrides.find(imp, node)
            if override is not None:
                if override != from_label:
                    dep = str(override.rel("", unit.package))
                    deps.add(dep)
                    self._explain(dep, unit, mod, f"using the \"depgen:{RESOLVE_DIRECTIVE}\" directive")
                continue

            matches = [m for m in index.find(self.language, imp) if m != from_label]
            logger.debug(f"MATCHES({unit.name}): {[str(m) for m in matches]}")
            if len(matches) == 1:
                dep = str(matches[0].rel("", unit.package))
                deps.add(dep)
                self._explain(dep, unit, mod, "from the first-party indexed labels")
                continue
            if len(matches) > 1:
                candidates = ", ".join(str(m) for m in matches)
                diagnostics.add(ResolutionError(
                    kind=AMBIGUOUS,
                    target=str(from_label),
                    message=(
                        f"multiple targets ({candidates}) may be imported with \"{mod.path}\" "
                        f"at line {mod.line_number} in \"{self._source(unit, mod)}\" "
                        f"- this must be fixed using the \"depgen:{RESOLVE_DIRECTIVE}\" directive"
                    ),
                    source_path=self._source(unit, mod),
                    line_number=mod.line_number,
                ))
                fatal = True
                continue

            dep = node.find_third_party_dependency(mod.path)
            if dep is not None:
                deps.add(dep)
                self._explain(dep, unit, mod, f"from the third-party package \"{dep}\"")
                continue

            if node.validate_import_statements:
                diagnostics.add(ResolutionError(
                    kind=INVALID,
                    target=str(from_label),
                    message=(
                        f"failed to validate dependencies for target \"{from_label}\": "
                        f"\"{mod.path}\" at line {mod.line_number} from \"{self._source(unit, mod)}\" "
                        f"is an invalid dependency: possible solutions:\n"
                        f"\t1. Add it as a dependency in the package.json file.\n"
                        f"\t2. Instruct depgen to resolve to a known dependency using the "
                        f"'# depgen:{RESOLVE_DIRECTIVE}' directive.\n"
                        f"\t3. Ignore it with a comment '// depgen:ignore {mod.path}' in the source file.\n"
                    ),
                    source_path=self._source(unit, mod),
                    line_number=mod.line_number,
                ))
                fatal = True
            else:
                logger.debug(f"UNRESOLVED({unit.name}): {mod.path} dropped, validation disabled")

        return Resolution(deps=sorted(deps), fatal=fatal)
