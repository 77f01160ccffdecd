"""Tests for import extraction and the parse server bridge."""

import json
import sys
from concurrent.futures import ThreadPoolExecutor

import pytest

from depgen.analyzer import CodeAnalyzer
from depgen.models import ImportStatement
from depgen.parse_server import handle_request
from depgen.parser import (
    BridgeError,
    ImportParser,
    LocalParser,
    ParsedFile,
    ParserSession,
    collect_imports,
    parse_annotations,
    parse_source_files,
)

SOURCE = '''import React from "react";
import { a, b } from './local';
import type { T } from "../types";
import './styles.css';
export * from "./reexport";
const x = require('lodash');
const y = await import("./lazy");
// import fake from "commented-out";
/* import other from "block" */
/// <reference path="./globals.d.ts" />
'''

SERVER_COMMAND = [sys.executable, "-m", "depgen.parse_server"]


def test_analyze_javascript_modules():
    """Test that every import form is found with its line number."""
    modules, _ = CodeAnalyzer.analyze_javascript(SOURCE)
    assert [(m["name"], m["lineno"]) for m in modules] == [
        ("react", 1),
        ("./local", 2),
        ("../types", 3),
        ("./styles.css", 4),
        ("./reexport", 5),
        ("lodash", 6),
        ("./lazy", 7),
        ("./globals.d.ts", 10),
    ]


def test_analyze_javascript_comments():
    """Test that comments are returned and ignored as code."""
    _, comments = CodeAnalyzer.analyze_javascript(SOURCE)
    assert comments == [
        '// import fake from "commented-out";',
        '/* import other from "block" */',
        '/// <reference path="./globals.d.ts" />',
    ]


def test_multiline_import_keeps_line_number():
    content = 'const a = 1;\n/* multi\nline */\nimport {\n  x,\n  y,\n} from "pkg";\n'
    modules, _ = CodeAnalyzer.analyze_javascript(content)
    assert modules == [{"name": "pkg", "lineno": 7}]


def test_line_numbers_in_large_file():
    """Test line numbers of imports spread through a long file."""
    lines = ["const filler = 1;"] * 5000
    lines[0] = 'import a from "first";'
    lines[2499] = 'import b from "middle";'
    lines[4999] = 'const c = require("last");'
    modules, _ = CodeAnalyzer.analyze_javascript("\n".join(lines) + "\n")
    assert modules == [
        {"name": "first", "lineno": 1},
        {"name": "middle", "lineno": 2500},
        {"name": "last", "lineno": 5000},
    ]


def test_comment_markers_inside_strings_are_code():
    content = 'const url = "http://example.com";\nimport a from "a";\n'
    modules, comments = CodeAnalyzer.analyze_javascript(content)
    assert comments == []
    assert modules == [{"name": "a", "lineno": 2}]


def test_parse_annotations():
    """Test the inline ignore annotation forms."""
    ignored = parse_annotations([
        "// depgen:ignore a, b",
        "/* depgen:ignore c */",
        "// something else",
        "// depgen:other x",
        "// depgen:ignore",
    ])
    assert ignored == {"a", "b", "c"}


def test_parse_source_files_handles_unreadable_files(tmp_path, caplog):
    (tmp_path / "ok.ts").write_text('import x from "x";\n')

    results = parse_source_files(tmp_path, "", ["ok.ts", "missing.ts"])

    assert [m.name for m in results[0].modules] == ["x"]
    assert results[0].modules[0].filepath == "ok.ts"
    assert results[1] == ParsedFile()
    assert "missing.ts" in caplog.text


def test_collect_imports_applies_annotations_and_ignores(workspace):
    """Test that annotations are scoped to their own file."""
    root = workspace({
        "lib/a.ts": (
            "// depgen:ignore virtual-module\n"
            'import x from "virtual-module";\n'
            'import y from "./b";\n'
            'import z from "moment";\n'
        ),
        "lib/sub/b.ts": 'import v from "virtual-module";\n',
    })

    with LocalParser() as parser:
        imports = collect_imports(parser, root, "lib", ["a.ts", "sub/b.ts"], lambda name: name == "moment")

    assert imports == {
        ImportStatement("./b", "a.ts"),
        ImportStatement("virtual-module", "sub/b.ts"),
    }
    assert {i.line_number for i in imports} == {1, 3}


def test_collect_imports_without_files():
    assert collect_imports(LocalParser(), "/nowhere", "", [], lambda name: False) == set()


def test_handle_request_reply_is_nul_terminated(workspace):
    root = workspace({"a.ts": 'import x from "./x";\n'})
    request = json.dumps({"repo_root": str(root), "rel_package_path": "", "filenames": ["a.ts"]})

    reply = handle_request(request)

    assert reply.endswith(b"\0")
    data = json.loads(reply[:-1])
    assert data[0]["modules"] == [{"name": "./x", "lineno": 1, "filepath": "a.ts"}]


def test_parser_session_round_trip(workspace):
    """Test a real parse server process serving several requests."""
    root = workspace({
        "lib/a.ts": 'import x from "./x";\n// depgen:ignore y\n',
        "lib/b.ts": 'import y from "y";\n',
    })

    with ParserSession(SERVER_COMMAND, timeout=60) as session:
        first = session.parse(root, "lib", ["a.ts", "b.ts"])
        second = session.parse(root, "lib", ["b.ts"])
        assert session.running

    assert first == LocalParser().parse(root, "lib", ["a.ts", "b.ts"])
    assert [m.name for m in second[0].modules] == ["y"]
    assert first[0].comments == ["// depgen:ignore y"]


def test_parser_session_serializes_concurrent_callers(workspace):
    """Test that callers sharing one server each get their own records."""
    files = {f"lib/m{i}.ts": f'import x from "dep{i}";\n' for i in range(8)}
    root = workspace(files)
    requests = [[f"m{i}.ts", f"m{(i + 1) % 8}.ts"] for i in range(8)] * 4

    def parse(filenames):
        return filenames, session.parse(root, "lib", filenames)

    with ParserSession(SERVER_COMMAND, timeout=60) as session:
        with ThreadPoolExecutor(max_workers=8) as pool:
            replies = list(pool.map(parse, requests))

    for filenames, records in replies:
        assert [r.modules[0].filepath for r in records] == filenames
        expected = [f"dep{name[1:-3]}" for name in filenames]
        assert [r.modules[0].name for r in records] == expected


def test_import_parser_is_abstract():
    with pytest.raises(TypeError):
        ImportParser()


def test_parser_session_malformed_reply(tmp_path):
    """Test that a reply that is not a list of records is a bridge failure."""
    script = "import sys; sys.stdin.readline(); sys.stdout.write('not json\\0'); sys.stdout.flush()"
    with ParserSession([sys.executable, "-c", script]) as session:
        with pytest.raises(BridgeError):
            session.parse(tmp_path, "", ["a.ts"])


def test_parser_session_wrong_record_count(tmp_path):
    script = "import sys; sys.stdin.readline(); sys.stdout.write('[]\\0'); sys.stdout.flush()"
    with ParserSession([sys.executable, "-c", script]) as session:
        with pytest.raises(BridgeError, match="expected 1 records"):
            session.parse(tmp_path, "", ["a.ts"])


def test_parser_session_server_exits(tmp_path):
    """Test that a server that dies is reported instead of hanging."""
    with ParserSession([sys.executable, "-c", "pass"]) as session:
        with pytest.raises(BridgeError):
            session.parse(tmp_path, "", ["a.ts"])


def test_parser_session_bad_command():
    with pytest.raises(BridgeError):
        ParserSession(["/nonexistent/depgen-parse-server"]).start()
    with pytest.raises(ValueError):
        ParserSession([])
