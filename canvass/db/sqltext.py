"""Text-level helpers for SQL templates.

Templates are written once with `?` positional placeholders. The pooled
engine needs them numbered; these helpers do that rewrite and the other small
string edits the adapters share. Everything here is purely syntactic: a `?`
inside a string literal is rewritten too, so templates must not contain one.
"""
import re
from typing import Any, Sequence

PLACEHOLDER = "?"
BIND_PREFIX = "p"

_RETURNING_RE = re.compile(r"\breturning\b", re.IGNORECASE)
_INSERT_RE = re.compile(r"^\s*insert\b", re.IGNORECASE)


def number_placeholders(sql: str, prefix: str = BIND_PREFIX) -> tuple[str, int]:
    """Rewrite each `?` left to right into `:p1`, `:p2`, ...

    Returns the rewritten text and the number of placeholders found.
    """
    parts = sql.split(PLACEHOLDER)
    out = [parts[0]]
    for i, part in enumerate(parts[1:], start=1):
        out.append(f":{prefix}{i}")
        out.append(part)
    return "".join(out), len(parts) - 1


def bind_params(params: Sequence[Any], prefix: str = BIND_PREFIX) -> dict[str, Any]:
    return {f"{prefix}{i}": value for i, value in enumerate(params, start=1)}


def is_insert(sql: str) -> bool:
    return bool(_INSERT_RE.match(sql))


def has_returning(sql: str) -> bool:
    return bool(_RETURNING_RE.search(sql))


def with_returning(sql: str, column: str = "id") -> str:
    """Append `RETURNING <column>` to an INSERT that does not already have one."""
    if not is_insert(sql) or has_returning(sql):
        return sql
    return f"{sql.rstrip().rstrip(';').rstrip()} RETURNING {column}"


def split_script(script: str) -> list[str]:
    """Split a DDL script on `;` into single statements, dropping blanks."""
    return [stmt.strip() for stmt in script.split(";") if stmt.strip()]
