"""
depgen - build graph generator for TypeScript/JavaScript workspaces.

Infers build targets and their dependencies from the imports in the source
tree, so build files do not need hand-maintained dependency lists.
"""

__version__ = "0.1.0"

from .generator import GenerationResult, Generator
from .resolver import DependencyResolver, Diagnostics, OverrideTable

__all__ = [
    "DependencyResolver",
    "Diagnostics",
    "GenerationResult",
    "Generator",
    "OverrideTable",
    "__version__",
]
