"""Extracting module references and comments from JavaScript/TypeScript source."""

import re
from bisect import bisect_right
from typing import Dict, List, Tuple

# Patterns run over source with comments and string bodies left intact but
# comments blanked out, so line numbers survive.
_IMPORT_PATTERNS = [
    # import x from 'y', import {a, b} from "y", import type T from 'y'
    re.compile(r"\bimport\s+(?:type\s+)?[\w*{}\s,$]+?\s+from\s*['\"]([^'\"\n]+)['\"]"),
    # import 'side-effect'
    re.compile(r"\bimport\s*['\"]([^'\"\n]+)['\"]"),
    # export * from 'y', export {a} from 'y'
    re.compile(r"\bexport\s+(?:type\s+)?[\w*{}\s,$]+?\s+from\s*['\"]([^'\"\n]+)['\"]"),
    # require('y'), import('y')
    re.compile(r"\b(?:require|import)\s*\(\s*['\"]([^'\"\n]+)['\"]\s*\)"),
]

_REFERENCE_PATH_RE = re.compile(r"^///\s*<reference\s+path\s*=\s*['\"]([^'\"]+)['\"]")


class CodeAnalyzer:
    """Analyzes source files to extract their imports."""

    @staticmethod
    def split_comments(content: str) -> Tuple[str, List[Tuple[str, int]]]:
        """Separate comments from code.

        Returns the code with every comment replaced by whitespace (newlines
        kept) and the list of ``(comment_text, line)`` pairs.
        """
        code = []
        comments = []
        i = 0
        line = 1
        quote = None
        length = len(content)

        while i < length:
            ch = content[i]
            nxt = content[i + 1] if i + 1 < length else ""

            if quote:
                code.append(ch)
                if ch == "\\" and nxt:
                    code.append(nxt)
                    if nxt == "\n":
                        line += 1
                    i += 2
                    continue
                if ch == quote or (ch == "\n" and quote != "`"):
                    quote = None
                if ch == "\n":
                    line += 1
                i += 1
                continue

            if ch in ("'", '"', "`"):
                quote = ch
                code.append(ch)
                i += 1
                continue

            if ch == "/" and nxt == "/":
                end = content.find("\n", i)
                end = length if end == -1 else end
                comments.append((content[i:end], line))
                code.append(" " * (end - i))
                i = end
                continue

            if ch == "/" and nxt == "*":
                end = content.find("*/", i + 2)
                end = length if end == -1 else end + 2
                text = content[i:end]
                comments.append((text, line))
                code.append("".join("\n" if c == "\n" else " " for c in text))
                line += text.count("\n")
                i = end
                continue

            if ch == "\n":
                line += 1
            code.append(ch)
            i += 1

        return "".join(code), comments

    @staticmethod
    def analyze_javascript(content: str) -> Tuple[List[Dict], List[str]]:
        """Extract imported modules and raw comments from JavaScript/TypeScript code."""
        code, comments = CodeAnalyzer.split_comments(content)

        newlines = [i for i, ch in enumerate(code) if ch == "\n"]
        modules = []
        seen = set()
        for pattern in _IMPORT_PATTERNS:
            for match in pattern.finditer(code):
                name = match.group(1).strip()
                lineno = bisect_right(newlines, match.start(1)) + 1
                if (name, lineno) in seen:
                    continue
                seen.add((name, lineno))
                modules.append({"name": name, "lineno": lineno})

        for text, lineno in comments:
            reference = _REFERENCE_PATH_RE.match(text)
            if reference and (reference.group(1), lineno) not in seen:
                seen.add((reference.group(1), lineno))
                modules.append({"name": reference.group(1), "lineno": lineno})

        modules.sort(key=lambda m: (m["lineno"], m["name"]))
        return modules, [text for text, _ in comments]
