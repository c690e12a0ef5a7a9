import re
from typing import Optional

import sqlparse

from datamind.utils.exceptions import ValidationFailedError

_IDENTIFIER_PATTERN = re.compile(r'^[A-Za-z_][A-Za-z0-9_$]*$')
_CODE_FENCE_PATTERN = re.compile(r'^```[a-zA-Z]*\s*|\s*```$')

# Statement shapes that read as SQL rather than as a sentence starting with a SQL verb
_SQL_STATEMENT = re.compile(
    r"^\s*(?:"
    r"select\s+.+\bfrom\b|select\s+(?:\d|\*|'|current_)"
    r"|with\s+\w+\s+as\s*\("
    r"|show\s+(?:terse\s+)?(?:databases|schemas|tables|views|stages|warehouses|columns|roles|grants|functions|tasks|streams|objects|parameters|sequences|pipes)\b"
    r"|(?:describe|desc)\s+(?:table|view|stage|warehouse|database|schema|function|result)\b"
    r"|explain\s+(?:using\s+\w+\s+)?(?:select|with)\b"
    r"|insert\s+(?:overwrite\s+)?into\s|update\s+\S+\s+set\s|delete\s+from\s|merge\s+into\s"
    r"|(?:create|drop|alter)\s+(?:or\s+replace\s+)?(?:temporary\s+|transient\s+)?"
    r"(?:table|view|schema|database|warehouse|stage|function|procedure|sequence|task|stream)\b"
    r"|use\s+(?:database|schema|warehouse|role)\s"
    r"|call\s+\w+\s*\("
    r")",
    re.IGNORECASE | re.DOTALL,
)

def validate_identifier(name: str, kind: str = "identifier") -> str:
    """Validate a Snowflake object name before it is embedded in SQL"""

    cleaned = (name or "").strip().strip('"')
    if not cleaned or not _IDENTIFIER_PATTERN.match(cleaned):
        raise ValidationFailedError(f"Invalid {kind} name: {name!r}")
    return cleaned

def safe_identifier(name: str, kind: str = "identifier") -> str:
    """Unquoted so Snowflake resolves it case-insensitively, as a user typed it"""
    return validate_identifier(name, kind)

def qualified_name(*parts: str) -> str:
    return ".".join(safe_identifier(p) for p in parts if p)

def detect_sql_statement(text: str) -> Optional[str]:
    """Return the leading keyword when the text is a SQL statement, else None"""

    if not _SQL_STATEMENT.match(text or ""):
        return None
    statements = [s for s in sqlparse.parse(text or "") if str(s).strip()]
    if not statements:
        return None
    first = statements[0].token_first(skip_cm=True, skip_ws=True)
    if first is None:
        return None
    return first.value.upper()

def strip_code_fences(text: str) -> str:
    """Remove markdown code fences the LLM wraps around generated SQL"""

    return _CODE_FENCE_PATTERN.sub('', (text or '').strip()).strip()
