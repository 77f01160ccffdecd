"""Parse server speaking the depgen bridge protocol on stdin/stdout.

Run with ``python -m depgen.parse_server``. Each input line is a JSON request;
each reply is a JSON array followed by a NUL byte.
"""

import json
import sys

from .parser import parse_source_files


def handle_request(line: str) -> bytes:
    request = json.loads(line)
    results = parse_source_files(
        request["repo_root"],
        request.get("rel_package_path", ""),
        request.get("filenames", []),
    )
    payload = json.dumps([result.model_dump() for result in results])
    return payload.encode("utf-8") + b"\0"


def main():
    stdin = sys.stdin
    stdout = sys.stdout.buffer
    for line in stdin:
        line = line.strip()
        if not line:
            continue
        stdout.write(handle_request(line))
        stdout.flush()


if __name__ == "__main__":
    main()
