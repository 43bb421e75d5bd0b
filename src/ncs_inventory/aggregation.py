"""Join per-entity side-tables into flat report rows.

Every function here is pure: the working maps are built per call and
returned to the caller.  Data-source failures never reach this module; the
collection boundary (:mod:`ncs_inventory.sources`) has already turned them
into empty collections.
"""

import logging
import re
from collections import Counter
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from ncs_inventory.fields import ABSENT, Candidates, FieldIndex, resolve
from ncs_inventory.models.report import CountSpec, JoinSpec, ReportDefinition
from ncs_inventory.primitives import safe_list

logger = logging.getLogger(__name__)

Record = Mapping[str, Any]
Row = dict[str, Any]

TRUTHY_FLAGS = frozenset({"true", "y", "yes", "working"})

# Get-Acl reports paths as "Microsoft.PowerShell.Core\FileSystem::C:\Share".
_PS_PROVIDER_RE = re.compile(r"^[\w.]+\\[\w.]+::")


def has_value(value: Any) -> bool:
    if value is ABSENT or value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def records_of(value: Any) -> list[Record]:
    return [r for r in safe_list(value) if isinstance(r, Mapping)]


def join_key(value: Any, transform: str = "exact") -> str | None:
    """Turn a resolved value into a comparable join key; blank keys never join."""
    if not has_value(value):
        return None
    text = str(value).strip()
    if transform == "path":
        text = _PS_PROVIDER_RE.sub("", text).rstrip("\\/").casefold()
    elif transform == "casefold":
        text = text.casefold()
    return text or None


# ---------------------------------------------------------------------------
# Build phase
# ---------------------------------------------------------------------------


def build_lookup(
    records: Iterable[Record],
    key: Candidates,
    fields: Mapping[str, Candidates],
    transform: str = "exact",
) -> dict[str, dict[str, Any]]:
    """Map join key -> attribute bag for one secondary collection.

    When several records share a key, the first present value of each field wins.
    """
    lookup: dict[str, dict[str, Any]] = {}
    for record in records_of(records):
        index = FieldIndex(record)
        k = join_key(index.lookup(key), transform)
        if k is None:
            continue
        bag = lookup.setdefault(k, {})
        for column, candidates in fields.items():
            if column in bag:
                continue
            value = index.lookup(candidates)
            if has_value(value):
                bag[column] = value
    return lookup


def count_by_key(records: Iterable[Record], key: Candidates, transform: str = "exact") -> Counter[str]:
    counts: Counter[str] = Counter()
    for record in records_of(records):
        k = join_key(resolve(record, key), transform)
        if k is not None:
            counts[k] += 1
    return counts


def count_matching(
    records: Iterable[Record],
    key: Candidates,
    predicate: Callable[[Record], bool],
    transform: str = "exact",
) -> Counter[str]:
    counts: Counter[str] = Counter()
    for record in records_of(records):
        k = join_key(resolve(record, key), transform)
        if k is None:
            continue
        # Keys with zero matches are still reported.
        counts[k] += 1 if predicate(record) else 0
    return counts


# ---------------------------------------------------------------------------
# Active / working rule
# ---------------------------------------------------------------------------


def is_truthy_flag(value: Any) -> bool:
    if not has_value(value):
        return False
    return str(value).strip().casefold() in TRUTHY_FLAGS


def is_active_path(state: Any, working: Any = ABSENT) -> bool:
    """A path is active if its state mentions "active" OR its working flag is truthy."""
    state_text = str(state).casefold() if has_value(state) else ""
    return "active" in state_text or is_truthy_flag(working)


# ---------------------------------------------------------------------------
# Emit phase
# ---------------------------------------------------------------------------


def merge_fields(row: Row, bag: Mapping[str, Any]) -> Row:
    """Fill columns of *row* that have no value yet; existing values always win."""
    for column, value in bag.items():
        if has_value(value) and not has_value(row.get(column, ABSENT)):
            row[column] = value
    return row


def _apply_joins(
    row: Row,
    index: FieldIndex,
    lookups: list[tuple[JoinSpec, dict[str, dict[str, Any]]]],
) -> None:
    for join, lookup in lookups:
        value = index.lookup(join.primary_key)
        if value is ABSENT:
            value = resolve(row, join.primary_key)
        bag = lookup.get(join_key(value, join.transform) or "")
        if bag:
            merge_fields(row, bag)


def _active_predicate(count: CountSpec) -> Callable[[Record], bool]:
    def predicate(record: Record) -> bool:
        index = FieldIndex(record)
        state = index.lookup(count.state) if count.state else ABSENT
        working = index.lookup(count.working) if count.working else ABSENT
        return is_active_path(state, working)

    return predicate


def _apply_count(rows: list[Row], counted: list[Record], count: CountSpec) -> None:
    totals = count_by_key(counted, count.key, count.transform)
    actives = (
        count_matching(counted, count.key, _active_predicate(count), count.transform)
        if count.active
        else Counter()
    )
    for row in rows:
        k = join_key(resolve(row, count.row_key), count.transform)
        if k is None:
            continue
        bag: dict[str, Any] = {}
        if count.total:
            bag[count.total] = totals.get(k, 0)
        if count.active:
            bag[count.active] = actives.get(k, 0)
        merge_fields(row, bag)


def _cell(value: Any) -> Any:
    return "" if value is ABSENT or value is None else value


def _finalize(row: Row, columns: list[str]) -> Row:
    return {column: _cell(row.get(column, ABSENT)) for column in columns}


def aggregate(
    definition: ReportDefinition,
    collections: Mapping[str, Any] | None,
    context: Mapping[str, Any] | None = None,
) -> list[Row]:
    """Build one batch of report rows from already-collected record collections.

    One row per primary record.  When the primary collection is empty and the
    definition declares a fallback, one row per fallback record instead, with
    every primary-only column left blank.
    """
    collections = collections or {}
    context = context or {}

    lookups = [
        (join, build_lookup(records_of(collections.get(join.source)), join.key, join.fields, join.transform))
        for join in definition.joins
    ]

    primary = records_of(collections.get(definition.primary))
    rows: list[Row] = []
    if primary:
        for record in primary:
            index = FieldIndex(record)
            row: Row = {}
            for column in definition.columns:
                value = index.lookup(column.candidates)
                if value is ABSENT and column.default is not None:
                    value = column.default
                row[column.name] = value
            _apply_joins(row, index, lookups)
            rows.append(row)
        primary_rows: list[Row] = list(rows)
    elif definition.fallback is not None:
        fallback = records_of(collections.get(definition.fallback.source))
        logger.debug(
            "%s: no %s records, emitting %d %s rows",
            definition.name,
            definition.primary,
            len(fallback),
            definition.fallback.source,
        )
        for record in fallback:
            index = FieldIndex(record)
            row = {column: index.lookup(cands) for column, cands in definition.fallback.columns.items()}
            _apply_joins(row, index, lookups)
            rows.append(row)
        primary_rows = []
    else:
        return []

    for count in definition.counts:
        counted = records_of(collections.get(count.source)) if count.source else primary_rows
        _apply_count(rows, counted, count)

    fill = {c: context[c] for c in definition.context_columns if c in context}
    if fill:
        for row in rows:
            merge_fields(row, fill)

    out = [_finalize(row, definition.output) for row in rows]
    if definition.sort_by:
        out.sort(key=lambda r: tuple(str(r.get(c, "")).casefold() for c in definition.sort_by))
    return out


def aggregate_hosts(
    definition: ReportDefinition,
    hosts: Mapping[str, Mapping[str, Any]],
    context_key: str = "Host",
) -> list[Row]:
    """Run :func:`aggregate` once per host and concatenate the rows in host order."""
    rows: list[Row] = []
    for hostname in sorted(hosts):
        host_rows = aggregate(definition, hosts[hostname], {context_key: hostname})
        logger.debug("%s: %d rows for %s", definition.name, len(host_rows), hostname)
        rows.extend(host_rows)
    return rows
