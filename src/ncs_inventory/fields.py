"""Schema-tolerant field resolution for loosely-typed inventory records.

Different sources describe the same entity with different spellings
("Firmware Version", "FirmwareVersion", "firmware_version").  A lookup walks
an ordered list of candidate spellings and returns the value of the first one
physically present on the record, comparing names after removing whitespace,
underscores and hyphens and case-folding.

A miss is not an error: it returns :data:`ABSENT`.
"""

import re
from collections.abc import Mapping, Sequence
from typing import Any

_SEPARATORS_RE = re.compile(r"[\s_\-]+")

Candidates = Sequence[str]


class _Absent:
    """Marker for "no candidate matched"; distinct from ``None`` and ``""``."""

    _instance: "_Absent | None" = None

    def __new__(cls) -> "_Absent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"

    def __reduce__(self) -> str:
        return "ABSENT"


ABSENT: Any = _Absent()


def is_absent(value: Any) -> bool:
    return value is ABSENT


def normalize_key(name: Any) -> str:
    """Collapse a field name to its lookup form.

    >>> normalize_key("Path Selection-Policy")
    'pathselectionpolicy'
    """
    return _SEPARATORS_RE.sub("", str(name)).casefold()


def _candidate_list(candidates: Candidates | str) -> tuple[str, ...]:
    if isinstance(candidates, str):
        candidates = (candidates,)
    out = tuple(candidates)
    assert out, "candidate field set must contain at least one name"
    return out


class FieldIndex:
    """NormalizedKey -> original field name index for one record.

    Build it once when the same record is queried for several logical fields.
    If two fields collapse to the same normalized key, the later one in
    mapping order wins.
    """

    __slots__ = ("record", "_names")

    def __init__(self, record: Mapping[str, Any] | None) -> None:
        self.record: Mapping[str, Any] = record if isinstance(record, Mapping) else {}
        self._names: dict[str, Any] = {normalize_key(name): name for name in self.record}

    def original_name(self, candidates: Candidates | str) -> Any:
        """Return the record's own spelling of the first matching candidate, or None."""
        for candidate in _candidate_list(candidates):
            name = self._names.get(normalize_key(candidate))
            if name is not None:
                return name
        return None

    def lookup(self, candidates: Candidates | str) -> Any:
        name = self.original_name(candidates)
        if name is None:
            return ABSENT
        # A present field holding None is still a match.
        return self.record[name]

    def get(self, candidates: Candidates | str, default: Any = "") -> Any:
        value = self.lookup(candidates)
        return default if value is ABSENT else value

    def has(self, candidates: Candidates | str) -> bool:
        return self.original_name(candidates) is not None

    def __len__(self) -> int:
        return len(self._names)


def resolve(record: Mapping[str, Any] | None, candidates: Candidates | str) -> Any:
    """Return the value of the first candidate present on *record*, else ABSENT."""
    names = _candidate_list(candidates)
    if not isinstance(record, Mapping) or not record:
        return ABSENT
    return FieldIndex(record).lookup(names)


def resolve_or(record: Mapping[str, Any] | None, candidates: Candidates | str, default: Any = "") -> Any:
    value = resolve(record, candidates)
    return default if value is ABSENT else value
