"""
SQL extraction from raw model output.

Small models sometimes wrap the query in Markdown fences or keep talking
after the statement. These helpers recover the first SQL statement.
"""

from __future__ import annotations

import re

_FENCE_SQL = re.compile(r"```sql\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)
_FENCE_ANY = re.compile(r"```[a-zA-Z]*\s*(.*?)\s*```", re.DOTALL)


def strip_code_fences(text: str) -> str:
    """Return the body of the first fenced block, or `text` unchanged."""
    match = _FENCE_SQL.search(text) or _FENCE_ANY.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def first_statement(sql: str) -> str:
    """
    Cut `sql` after its first top-level `;`.

    Semicolons inside single-quoted strings or double-quoted identifiers do
    not terminate the statement. The terminator is kept.
    """
    quote: str | None = None
    for i, ch in enumerate(sql):
        if quote:
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch == ";":
            return sql[: i + 1].strip()
    return sql.strip()


def extract_sql(generated_text: str) -> str:
    """
    Extract a single SQL statement from generated text.

    Args:
        generated_text: Raw text output from the model

    Returns:
        The first statement, without fences or trailing commentary
    """
    return first_statement(strip_code_fences(generated_text))
