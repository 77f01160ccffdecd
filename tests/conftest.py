"""Shared fixtures for depgen tests."""

from pathlib import Path
from typing import Dict

import pytest


def write_files(root: Path, files: Dict[str, str]) -> Path:
    """Create ``files`` (relative path -> content) below ``root``."""
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root


@pytest.fixture
def workspace(tmp_path):
    """Return a function that populates a temporary workspace."""

    def make(files: Dict[str, str]) -> Path:
        return write_files(tmp_path, files)

    return make
