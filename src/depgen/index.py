"""Workspace-wide index of which targets provide which logical imports."""

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Tuple

from .models import Label

logger = logging.getLogger(__name__)


class RuleIndex:
    """Map from (language, logical import path) to the targets declaring it."""

    def __init__(self):
        self._index: Dict[Tuple[str, str], List[Label]] = defaultdict(list)
        self._finished = False

    def add(self, label: Label, language: str, imports: Iterable[str]):
        """Record that ``label`` provides every path in ``imports``."""
        if self._finished:
            raise RuntimeError("rule index is read-only after finish()")
        imports = list(imports)
        for imp in imports:
            targets = self._index[(language, imp)]
            if label not in targets:
                targets.append(label)
        logger.debug(f"PROVIDES({label}): {imports}")

    def finish(self):
        """Freeze the index; lookups are deterministic from here on."""
        for targets in self._index.values():
            targets.sort(key=str)
        self._finished = True

    def find(self, language: str, imp: str) -> List[Label]:
        return list(self._index.get((language, imp), ()))

    def __len__(self) -> int:
        return len(self._index)
