from typing import Any

"""Small coercion helpers shared by collectors, aggregation and export."""


def safe_list(value: Any) -> list[Any]:
    if isinstance(value, (str, bytes)):
        return []
    if isinstance(value, dict):
        return [value]
    try:
        return list(value or [])
    except (TypeError, ValueError):
        return []


def to_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return int(default)


def as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def format_wwn(value: Any) -> str:
    """Render a numeric World Wide Name as colon-separated hex pairs.

    >>> format_wwn(0x2000001B32A1B2C3)
    '20:00:00:1b:32:a1:b2:c3'
    """
    number = to_int(value, 0)
    if number <= 0:
        return ""
    digits = f"{number:016x}"
    return ":".join(digits[i : i + 2] for i in range(0, len(digits), 2))


def unique_preserve_order(values: list[str]) -> tuple[str, ...]:
    seen: set[str] = set()
    out: list[str] = []
    for v in values:
        if v in seen:
            continue
        seen.add(v)
        out.append(v)
    return tuple(out)
