import json
from datetime import datetime, timezone
from typing import Any, Mapping, Optional


# From glglgl on
# https://stackoverflow.com/questions/4978738/is-there-a-python-equivalent-of-the-c-sharp-null-coalescing-operator
def coalesce(*arg):
    return next((a for a in arg if a is not None), None)


def string_to_bool(
    s: Optional[str], default_value: Optional[bool] = None
) -> Optional[bool]:
    if s is None:
        return default_value

    trimmed = s.strip()
    if trimmed == "":
        return default_value

    return (trimmed == "1") or (trimmed.upper() == "TRUE")


def string_to_int(
    s: Optional[Any],
    default_value: Optional[int] = None,
    negative_value: Optional[int] = None,
) -> Optional[int]:
    if s is None:
        return default_value
    else:
        trimmed = str(s).strip()

        if trimmed == "":
            return default_value

        x = int(trimmed)

        if x < 0:
            return negative_value

        return x


def string_to_float(
    s: Optional[Any],
    default_value: Optional[float] = None,
    negative_value: Optional[float] = None,
) -> Optional[float]:
    if s is None:
        return default_value
    else:
        trimmed = str(s).strip()

        if trimmed == "":
            return default_value

        x = float(trimmed)

        if x < 0.0:
            return negative_value

        return x


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(t: datetime) -> str:
    """
    RFC 3339 with microseconds, using 'Z' for UTC.
    """
    return t.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


# Lookups into untyped JSON documents. Each returns None instead of raising
# when the container or the value has an unexpected type.


def get_list_value(doc: Any, key: str) -> Optional[list[Any]]:
    if not isinstance(doc, Mapping):
        return None

    value = doc.get(key)
    return value if isinstance(value, list) else None


def get_str_value(doc: Any, key: str) -> Optional[str]:
    if not isinstance(doc, Mapping):
        return None

    value = doc.get(key)
    return value if isinstance(value, str) else None


def parse_json(data: str) -> Optional[Any]:
    return json.loads(data)
