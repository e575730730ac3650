"""Column value formatting for the monday.com API, and its inverse.

``format_column_value`` turns a human value ("done", "2024-03-15", 42) into
the JSON shape monday.com expects for the column's type.
``parse_column_value`` reads such a shape back into a plain value; it is
defined for the text, numbers, date, checkbox and people types.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from boardpilot.models.context import Column


STATUS_SYNONYMS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("Done", ("done", "complete", "completed", "finished", "closed")),
    ("Working on it", ("working", "progress", "in progress", "ongoing", "active")),
    ("To Do", ("todo", "to do", "pending", "new", "open")),
    ("Stuck", ("stuck", "blocked", "issue", "problem")),
    ("Waiting", ("waiting", "hold", "on hold", "paused")),
)

COLUMN_TYPE_MAP: Dict[str, str] = {
    "text": "text",
    "number": "numbers",
    "numbers": "numbers",
    "status": "color",
    "date": "date",
    "people": "people",
    "person": "people",
    "checkbox": "checkbox",
    "dropdown": "dropdown",
    "email": "email",
    "phone": "phone",
    "link": "link",
    "url": "link",
    "rating": "rating",
    "long_text": "long_text",
    "textarea": "long_text",
}

STATUS_TYPES = ("status", "color")


def map_column_type(type_name: Any) -> str:
    """API column type for a user-facing type name; unknown names become text."""

    return COLUMN_TYPE_MAP.get(str(type_name or "text").strip().lower(), "text")


def map_status_label(value: Any) -> Optional[str]:
    """Normalise a status word to the board's standard label, or pass it through."""

    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, dict) and value.get("label"):
        value = value["label"]
    text = str(value).strip()
    lowered = text.lower()

    for label, synonyms in STATUS_SYNONYMS:
        if lowered in synonyms or lowered == label.lower():
            return label
    for label, synonyms in STATUS_SYNONYMS:
        for synonym in synonyms:
            if synonym in lowered or lowered in synonym:
                return label
    return text


def _to_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, dict) and value.get("date"):
        time_part = value.get("time")
        value = f"{value['date']}T{time_part}" if time_part else value["date"]
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None


def format_date(value: Any) -> Optional[Dict[str, str]]:
    parsed = _to_datetime(value)
    if parsed is None:
        return None
    return {"date": parsed.strftime("%Y-%m-%d"), "time": parsed.strftime("%H:%M:%S")}


def _person_id(value: Any) -> Optional[int]:
    if isinstance(value, dict):
        value = value.get("id")
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def format_people(value: Any) -> Optional[Dict[str, List[Dict[str, Any]]]]:
    values = value if isinstance(value, (list, tuple)) else [value]
    ids = [_person_id(v) for v in values]
    if not ids or any(i is None for i in ids):
        return None
    return {"personsAndTeams": [{"id": i, "kind": "person"} for i in ids]}


def find_dropdown_option_id(value: Any, column: Column) -> Optional[Any]:
    options = column.settings().get("labels") or column.settings().get("options") or []
    wanted = str(value).strip().lower()
    for option in options:
        if isinstance(option, dict) and str(option.get("name", "")).lower() == wanted:
            return option.get("id")
    return None


def format_column_value(value: Any, column: Column) -> Any:
    """Format ``value`` for ``column``; ``None`` means the value cannot be used."""

    if value is None:
        return None

    kind = column.type
    if kind in ("text", "long_text"):
        return str(value)
    if kind == "numbers":
        return _to_float(value)
    if kind in STATUS_TYPES:
        label = map_status_label(value)
        return {"label": label} if label is not None else None
    if kind == "date":
        return format_date(value)
    if kind == "people":
        return format_people(value)
    if kind == "checkbox":
        if isinstance(value, dict) and "checked" in value:
            value = value["checked"]
        if isinstance(value, str):
            return {"checked": value.strip().lower() in ("true", "yes", "1", "checked", "on")}
        return {"checked": bool(value)}
    if kind == "dropdown":
        option_id = find_dropdown_option_id(value, column)
        return {"ids": [option_id]} if option_id is not None else None
    if kind == "email":
        return {"email": str(value), "text": str(value)}
    if kind == "phone":
        return {"phone": str(value), "countryShortName": "US"}
    if kind == "link":
        return {"url": str(value), "text": str(value)}
    if kind == "rating":
        number = _to_float(value)
        if number is None:
            return None
        return {"rating": max(1, min(5, int(number)))}
    return str(value)


def parse_column_value(formatted: Any, column: Column) -> Any:
    """Inverse of :func:`format_column_value` for the round-trippable types."""

    if formatted is None:
        return None

    kind = column.type
    if kind in ("text", "long_text"):
        return str(formatted)
    if kind == "numbers":
        return _to_float(formatted)
    if kind == "date":
        if not isinstance(formatted, dict) or not formatted.get("date"):
            return None
        time_part = formatted.get("time")
        if time_part and time_part != "00:00:00":
            return f"{formatted['date']}T{time_part}"
        return formatted["date"]
    if kind == "checkbox":
        if isinstance(formatted, dict):
            return bool(formatted.get("checked"))
        return bool(formatted)
    if kind == "people":
        if not isinstance(formatted, dict):
            return None
        return [p.get("id") for p in formatted.get("personsAndTeams") or []]
    raise ValueError(f"No inverse parser for {kind} columns")


def find_column(board_columns, key: Any) -> Optional[Column]:
    """Column by exact id, then case-insensitive title."""

    wanted = str(key)
    for column in board_columns:
        if column.id == wanted:
            return column
    lowered = wanted.lower()
    for column in board_columns:
        if column.title.lower() == lowered:
            return column
    return None


def format_column_values(values: Dict[str, Any], board_columns) -> Tuple[Dict[str, Any], List[str]]:
    """Format a ``{column id or title: value}`` map, keyed by column id.

    Returns the formatted map and warnings for entries that were dropped.
    """

    formatted: Dict[str, Any] = {}
    warnings: List[str] = []
    if not isinstance(values, dict):
        return formatted, warnings
    for key, value in values.items():
        column = find_column(board_columns, key)
        if column is None:
            warnings.append(f"Column '{key}' not found on board; value skipped")
            continue
        mapped = format_column_value(value, column)
        if mapped is None:
            warnings.append(f"Value for column '{column.title}' could not be formatted; value skipped")
            continue
        formatted[column.id] = mapped
    return formatted, warnings
