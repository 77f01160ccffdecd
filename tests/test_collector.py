"""Tests for source collection."""

import pytest

from depgen.collector import CollectionError, SourceCollector, match_glob
from depgen.config import ConfigTree


@pytest.mark.parametrize(
    "pattern, path, expected",
    [
        ("**/*.gen.ts", "a.gen.ts", True),
        ("**/*.gen.ts", "sub/deep/a.gen.ts", True),
        ("*.gen.ts", "sub/a.gen.ts", False),
        ("fixtures/**", "fixtures/a/b.ts", True),
        ("fixtures/**", "src/fixtures/b.ts", False),
        ("sub/*.ts", "sub/a.ts", True),
        ("sub/*.ts", "sub/x/a.ts", False),
        ("**/test/**", "a/test/b/c.ts", True),
    ],
)
def test_match_glob(pattern, path, expected):
    """Test that ** spans segments and other wildcards stay within one."""
    assert match_glob(pattern, path) is expected


def test_fine_grained_collects_immediate_files(workspace):
    """Test that package mode only takes the directory's own files."""
    root = workspace({
        "lib/a.ts": "",
        "lib/b.tsx": "",
        "lib/README.md": "",
        "lib/sub/c.ts": "",
    })
    node = ConfigTree(root).configure("lib")

    assert SourceCollector().collect(root / "lib", node) == ["a.ts", "b.tsx"]


def test_ignored_files_are_left_out(workspace):
    root = workspace({"lib/a.ts": "", "lib/gen.ts": ""})
    tree = ConfigTree(root)
    tree.configure("", [("ts_ignore_files", "gen.ts")])
    node = tree.configure("lib")

    assert SourceCollector().collect(root / "lib", node) == ["a.ts"]


def test_coarse_grained_walks_subtree(workspace):
    """Test that project mode walks non-package subdirectories recursively."""
    root = workspace({
        "app/main.ts": "",
        "app/util/strings.ts": "",
        "app/util/deep/more.js": "",
        "app/node_modules/pkg/index.js": "",
        "app/.cache/x.ts": "",
    })
    node = ConfigTree(root).configure("app", [("ts_generation_mode", "project")])

    assert SourceCollector().collect(root / "app", node) == [
        "main.ts",
        "util/deep/more.js",
        "util/strings.ts",
    ]


def test_coarse_grained_stops_at_package_boundaries(workspace):
    """Test that a subdirectory with a build file belongs to another unit."""
    root = workspace({
        "app/main.ts": "",
        "app/feature/BUILD": "",
        "app/feature/f.ts": "",
        "app/util/a.ts": "",
        "app/util/nested/BUILD.bazel": "",
        "app/util/nested/n.ts": "",
    })
    node = ConfigTree(root).configure("app", [("ts_generation_mode", "project")])

    assert SourceCollector().collect(root / "app", node) == ["main.ts", "util/a.ts"]


def test_coarse_grained_applies_exclusions(workspace):
    """Test that exclusion globs match paths relative to the unit root."""
    root = workspace({
        "app/main.ts": "",
        "app/api/client.gen.ts": "",
        "app/api/client.ts": "",
        "app/fixtures/data.ts": "",
    })
    tree = ConfigTree(root)
    tree.configure("", [("exclude", "**/*.gen.ts")])
    node = tree.configure("app", [("ts_generation_mode", "project"), ("exclude", "fixtures/**")])

    assert SourceCollector().collect(root / "app", node) == ["api/client.ts", "main.ts"]


def test_exclusions_do_not_apply_to_immediate_files(workspace):
    root = workspace({"app/main.gen.ts": ""})
    node = ConfigTree(root).configure("app", [("ts_generation_mode", "project"), ("exclude", "*.gen.ts")])

    assert SourceCollector().collect(root / "app", node) == ["main.gen.ts"]


def test_missing_directory_raises(tmp_path):
    node = ConfigTree(tmp_path).configure("")
    with pytest.raises(CollectionError):
        SourceCollector().collect(tmp_path / "missing", node)
