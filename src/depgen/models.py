"""Data models for depgen."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from .imports import provided_imports


@dataclass(frozen=True, order=True)
class ImportStatement:
    """A single import found in a source file.

    ``source_path`` is relative to the package directory of the unit that owns
    the file. Equality and ordering only look at ``(path, source_path)``.
    """

    path: str
    source_path: str
    line_number: int = field(default=0, compare=False)


@dataclass(frozen=True)
class Label:
    """A build target reference: ``@repo//package:name``."""

    repo: str = ""
    package: str = ""
    name: str = ""
    relative: bool = False

    @classmethod
    def parse(cls, value: str) -> "Label":
        """Parse ``@repo//pkg:name``, ``//pkg:name``, ``//pkg`` or ``:name``."""
        value = value.strip()
        if not value:
            raise ValueError("empty label")

        repo = ""
        if value.startswith("@"):
            if "//" not in value:
                raise ValueError(f"invalid label {value!r}: missing '//'")
            repo, value = value[1:].split("//", 1)
            value = "//" + value

        if value.startswith(":"):
            if repo:
                raise ValueError(f"invalid label {value!r}")
            return cls(name=value[1:], relative=True)

        if not value.startswith("//"):
            raise ValueError(f"invalid label {value!r}: must start with '//' or ':'")

        body = value[2:]
        if ":" in body:
            package, name = body.split(":", 1)
        else:
            package = body
            name = body.rsplit("/", 1)[-1]
        if not name:
            raise ValueError(f"invalid label {value!r}: missing target name")
        return cls(repo=repo, package=package.strip("/"), name=name)

    def rel(self, repo: str, package: str) -> "Label":
        """Shorten the label as seen from ``//package`` in ``repo``."""
        if self.relative:
            return self
        if self.repo != repo:
            return self
        if self.package == package:
            return Label(name=self.name, relative=True)
        return Label(package=self.package, name=self.name)

    def absolute(self, repo: str, package: str) -> "Label":
        """Expand a relative label declared in ``//package`` of ``repo``."""
        if self.relative:
            return Label(repo=repo, package=package, name=self.name)
        if not self.repo:
            return Label(repo=repo, package=self.package, name=self.name)
        return self

    def __str__(self) -> str:
        if self.relative:
            return f":{self.name}"
        prefix = f"@{self.repo}" if self.repo else ""
        return f"{prefix}//{self.package}:{self.name}"


@dataclass
class ManualRule:
    """A rule declared by hand in a build descriptor."""

    kind: str
    name: str
    srcs: List[str] = field(default_factory=list)


@dataclass
class GenerationUnit:
    """A target being generated for one directory."""

    kind: str
    name: str
    root: str
    package: str
    srcs: List[str] = field(default_factory=list)
    deps: Set[str] = field(default_factory=set)
    visibility: List[str] = field(default_factory=list)
    imports: Set[ImportStatement] = field(default_factory=set)
    testonly: bool = False

    @property
    def label(self) -> Label:
        return Label(package=self.package, name=self.name)

    def provides(self) -> List[str]:
        """Logical import paths this unit answers to."""
        return provided_imports(self.package, self.srcs)

    def to_dict(self) -> Dict:
        return {
            "label": str(self.label),
            "kind": self.kind,
            "name": self.name,
            "package": self.package,
            "srcs": list(self.srcs),
            "deps": sorted(self.deps),
            "visibility": list(self.visibility),
            "testonly": self.testonly,
        }


@dataclass
class Resolution:
    """Outcome of resolving one unit's imports."""

    deps: List[str] = field(default_factory=list)
    fatal: bool = False


@dataclass
class ResolutionError:
    """A fatal diagnostic collected during resolution."""

    kind: str
    target: str
    message: str
    source_path: Optional[str] = None
    line_number: int = 0
