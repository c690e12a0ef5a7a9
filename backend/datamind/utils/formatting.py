from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, List, Sequence

def to_json_safe(value: Any) -> Any:
    """Convert driver values (Decimal, datetime, bytes) into JSON types"""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, dict):
        return {k: to_json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_safe(v) for v in value]
    return value

def json_safe_rows(rows: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [{k: to_json_safe(v) for k, v in row.items()} for row in rows]

def _cell(value: Any) -> str:
    if value is None:
        return "NULL"
    return str(value).replace("|", "\\|").replace("\n", " ")

def markdown_table(columns: Sequence[str], rows: Sequence[Dict[str, Any]], limit: int) -> str:
    """Render the first `limit` rows, noting how many were left out"""
    if not columns:
        return ""
    lines = [
        "| " + " | ".join(columns) + " |",
        "| " + " | ".join("---" for _ in columns) + " |",
    ]
    for row in rows[:limit]:
        lines.append("| " + " | ".join(_cell(row.get(c)) for c in columns) + " |")
    if len(rows) > limit:
        lines.append("")
        lines.append(f"... and {len(rows) - limit} more rows.")
    return "\n".join(lines)

def numbered_list(items: Sequence[str]) -> str:
    return "\n".join(f"{i}. {item}" for i, item in enumerate(items, 1))
