#!/usr/bin/env python3
"""Log-safety gate for the booking engine sources.

Fails if:
- print( appears in runtime code (src/**)
- a logger call mentions free text or credentials (special instructions,
  cancellation reasons, passwords, connection URLs) without going through
  safe_log_context / redact_*

Logger calls usually span several lines, so each call is checked as a
whole statement, from ``logger.<level>(`` to its closing parenthesis.

Usage:
    python scripts/check_log_safety.py [src_dir]
"""

import re
import sys
from pathlib import Path

SENSITIVE_KEYWORDS = (
    "special_instructions",
    "reason",
    "password",
    "database_url",
    "redis_url",
    "dsn",
)

PRINT_PATTERN = re.compile(r"\bprint\s*\(")

LOGGER_CALL_PATTERN = re.compile(
    r"\blogger\.(debug|info|warning|error|critical|exception)\s*\("
)

REDACTION_PATTERNS = (
    "safe_log_context",
    "redact_value",
    "redact_string",
    "redact_url",
)


def _code_part(line: str) -> str:
    return line.split("#", 1)[0]


def _statement(lines: list[str], start: int) -> str:
    """Text of the call starting on lines[start], up to its balancing paren."""
    depth = 0
    parts = []
    for line in lines[start:]:
        code = _code_part(line)
        parts.append(code)
        depth += code.count("(") - code.count(")")
        if depth <= 0:
            break
    return "\n".join(parts)


def check_source(path: str, content: str) -> list[str]:
    """Violations in one file's source text, as ``path:line: message`` strings."""
    errors = []
    lines = content.splitlines()

    for index, line in enumerate(lines):
        lineno = index + 1
        code = _code_part(line)
        if not code.strip():
            continue

        if PRINT_PATTERN.search(code):
            errors.append(f"{path}:{lineno}: print() not allowed in runtime code")

        if LOGGER_CALL_PATTERN.search(code):
            statement = _statement(lines, index)
            if any(rp in statement for rp in REDACTION_PATTERNS):
                continue
            lowered = statement.lower()
            for keyword in SENSITIVE_KEYWORDS:
                if keyword in lowered:
                    errors.append(
                        f"{path}:{lineno}: logger call with '{keyword}' "
                        "must use redaction (safe_log_context/redact_*)"
                    )
    return errors


def check_file(filepath: Path) -> list[str]:
    try:
        content = filepath.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        return []
    return check_source(str(filepath), content)


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    src_dir = Path(args[0]) if args else Path(__file__).resolve().parent.parent / "src"

    if not src_dir.is_dir():
        sys.stderr.write(f"Error: {src_dir} is not a directory\n")
        return 1

    all_errors: list[str] = []
    for pyfile in sorted(src_dir.rglob("*.py")):
        all_errors.extend(check_file(pyfile))

    if all_errors:
        sys.stderr.write("Log-safety check FAILED:\n")
        for err in all_errors:
            sys.stderr.write(f"  {err}\n")
        return 1

    sys.stdout.write("Log-safety check passed\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
