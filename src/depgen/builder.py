"""Assembling generated targets and checking them against manual declarations."""

from typing import Iterable, List

from .config import LIBRARY_NAMING_DIRECTIVE, ConfigurationError
from .models import GenerationUnit, ImportStatement, Label, ManualRule


class TargetBuilder:
    """Fluent builder for a GenerationUnit."""

    def __init__(self, kind: str, name: str, root: str, package: str):
        self.kind = kind
        self.name = name
        self.root = root
        self.package = package
        self.srcs = set()
        self.imports = set()
        self.visibility: List[str] = []
        self.testonly = False

    def add_src(self, src: str) -> "TargetBuilder":
        self.srcs.add(src)
        return self

    def add_srcs(self, srcs: Iterable[str]) -> "TargetBuilder":
        for src in srcs:
            self.add_src(src)
        return self

    def add_imports(self, imports: Iterable[ImportStatement]) -> "TargetBuilder":
        self.imports.update(imports)
        return self

    def add_visibility(self, visibility: str) -> "TargetBuilder":
        if visibility not in self.visibility:
            self.visibility.append(visibility)
        return self

    def set_testonly(self) -> "TargetBuilder":
        self.testonly = True
        return self

    def build(self) -> GenerationUnit:
        return GenerationUnit(
            kind=self.kind,
            name=self.name,
            root=self.root,
            package=self.package,
            srcs=sorted(self.srcs),
            visibility=list(self.visibility),
            imports=set(self.imports),
            testonly=self.testonly,
        )


def check_collisions(
    name: str,
    kind: str,
    package: str,
    existing_rules: Iterable[ManualRule],
    naming_directive: str = LIBRARY_NAMING_DIRECTIVE,
) -> List[str]:
    """Report manual rules that share ``name`` but are of a different kind.

    A same-kind rule is the one being regenerated and is not a conflict.
    """
    errors = []
    for rule in existing_rules:
        if rule.name == name and rule.kind != kind:
            target = Label(package=package, name=name)
            errors.append(
                f"failed to generate target \"{target}\" of kind \"{kind}\": "
                f"a target of kind \"{rule.kind}\" with the same name already exists. "
                f"Use the '# depgen:{naming_directive}' directive to change the naming convention."
            )
    return errors


class TargetCollisionError(ConfigurationError):
    """A generated target would clash with a manual rule of another kind."""

    def __init__(self, errors: List[str]):
        super().__init__("\n".join(errors))
        self.errors = list(errors)
