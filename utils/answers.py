"""
Raw QaPair answer decoding.

Answers are stored as text: plain scalars, JSON lists or JSON objects depending
on the question type. Decoding happens here, once, by question type.
"""
import json
from datetime import date, datetime
from typing import Any, Optional, Tuple

# Question types whose answers are stored as JSON
JSON_LIST_TYPES = {
    "checkbox",
    "checkbox-button",
    "multi-select",
    "room",
    "health-info",
    "goal-table",
    "care-table",
    "service-cards",
    "card-selection-multi",
}
JSON_OBJECT_TYPES = {"rooms", "package-selection", "equipment"}

_TRUE_WORDS = {"true", "1", "yes", "y"}
_EMPTY_JSON = {"[]", "{}", "null", '""'}

HEALTH_INFO_KEYWORDS = (
    "pressure injuries",
    "open wounds",
    "admission to hospital",
    "recent surgery",
    "mental health",
    "anaphalaxis",
    "diabetes",
    "epilepsy",
    "subcutaneous injections",
)


def loads_or_raw(raw: Any):
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except (ValueError, TypeError):
        return raw


def decode_answer(raw: Any, question_type: Optional[str] = None):
    """Decode a stored answer according to its question type."""
    if raw is None:
        return None
    qtype = (question_type or "").lower()
    if qtype in JSON_LIST_TYPES or qtype in JSON_OBJECT_TYPES:
        return loads_or_raw(raw)
    if qtype == "number":
        return parse_int(raw, default=None)
    if qtype == "date":
        return parse_date(raw)
    if qtype == "date-range":
        return parse_date_range(raw)
    if qtype in ("boolean", "toggle"):
        return decode_boolean(raw)
    return raw


def decode_list(raw: Any) -> list:
    """Answer as a list: JSON lists decoded, scalars wrapped, empties as []."""
    if raw is None:
        return []
    value = loads_or_raw(raw)
    if isinstance(value, list):
        return value
    if value in ("", None):
        return []
    return [value]


def is_answered(raw: Any) -> bool:
    if raw is None:
        return False
    if isinstance(raw, (list, dict)):
        return len(raw) > 0
    text = str(raw).strip()
    return bool(text) and text not in _EMPTY_JSON


def answer_matches(raw: Any, expected: Any) -> bool:
    """Raw equality, or membership when the stored answer is a list."""
    if raw is None:
        return False
    if raw == expected or str(raw) == str(expected):
        return True
    value = loads_or_raw(raw)
    if isinstance(value, list):
        return expected in value
    return False


def decode_boolean(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    if raw is None:
        return False
    return str(raw).strip().lower() in _TRUE_WORDS


def parse_int(raw: Any, default: Optional[int] = 0) -> Optional[int]:
    if raw is None or raw == "":
        return default
    try:
        return int(float(str(raw).strip()))
    except (ValueError, TypeError):
        return default


def parse_date(raw: Any) -> Optional[date]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    text = str(raw).strip()
    for fmt in ("%Y-%m-%d", "%d/%m/%Y", "%Y/%m/%d"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def split_date_range(raw: Any) -> Optional[Tuple[str, str]]:
    """'start - end' -> ('start', 'end'); None unless both halves are present."""
    if not raw or not isinstance(raw, str):
        return None
    parts = [p.strip() for p in raw.split(" - ")]
    if len(parts) < 2 or not parts[0] or not parts[1]:
        return None
    return parts[0], parts[1]


def parse_date_range(raw: Any) -> Optional[Tuple[date, date]]:
    parts = split_date_range(raw)
    if not parts:
        return None
    start, end = parse_date(parts[0]), parse_date(parts[1])
    if start is None or end is None:
        return None
    return start, end


def format_date(value: Any, fmt: str = "%d/%m/%Y") -> Optional[str]:
    d = parse_date(value)
    return d.strftime(fmt) if d else None


def filter_health_info(conditions: list) -> list:
    out = []
    for c in conditions or []:
        text = str(c).lower()
        if any(k in text for k in HEALTH_INFO_KEYWORDS):
            out.append(c)
    return out


def parse_and_concatenate(raw: Any, question_type: str = "") -> str:
    """Flatten a stored answer into a comma separated display string."""
    value = loads_or_raw(raw)

    def _object_values(obj: dict) -> list:
        if question_type == "room" and obj.get("name"):
            return [obj["name"]]
        return [json.dumps(v) if isinstance(v, (dict, list)) else str(v) for v in obj.values()]

    def _flatten(items) -> list:
        out = []
        for item in items:
            if isinstance(item, list):
                out.extend(_flatten(item))
            elif isinstance(item, dict):
                out.extend(_object_values(item))
            else:
                out.append(str(item))
        return out

    if isinstance(value, list):
        parts = _flatten(value)
    elif isinstance(value, dict):
        parts = _object_values(value)
    else:
        parts = ["" if value is None else str(value)]
    return ", ".join(parts)
