"""Pydantic models for the YAML report definition format."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

KeyTransform = Literal["exact", "casefold", "path"]


def _check_candidates(value: list[str], label: str) -> list[str]:
    cleaned = [str(v) for v in value if str(v).strip()]
    if not cleaned:
        raise ValueError(f"{label}: candidate list must contain at least one name")
    return cleaned


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------


class ColumnSpec(BaseModel):
    """One output column resolved from the primary record."""

    model_config = ConfigDict(extra="forbid")

    name: str
    # Acceptable spellings on the source record, most preferred first.
    # Defaults to the column name itself.
    candidates: list[str] = Field(default_factory=list)
    default: Any = None

    @model_validator(mode="after")
    def _default_candidates(self) -> "ColumnSpec":
        if not self.candidates:
            self.candidates = [self.name]
        else:
            self.candidates = _check_candidates(self.candidates, f"column {self.name!r}")
        return self


class JoinSpec(BaseModel):
    """Merge attributes from a secondary collection into each primary row."""

    model_config = ConfigDict(extra="forbid")

    source: str
    # Join key candidates on the secondary records.
    key: list[str]
    # Join key candidates on the primary record; defaults to ``key``.
    on: list[str] | None = None
    fields: dict[str, list[str]]
    transform: KeyTransform = "exact"

    @field_validator("key")
    @classmethod
    def _key_not_empty(cls, v: list[str]) -> list[str]:
        return _check_candidates(v, "join key")

    @field_validator("on")
    @classmethod
    def _on_not_empty(cls, v: list[str] | None) -> list[str] | None:
        return None if v is None else _check_candidates(v, "join on")

    @field_validator("fields")
    @classmethod
    def _fields_not_empty(cls, v: dict[str, list[str]]) -> dict[str, list[str]]:
        return {col: _check_candidates(cands, f"join field {col!r}") for col, cands in v.items()}

    @property
    def primary_key(self) -> list[str]:
        return self.on or self.key


class CountSpec(BaseModel):
    """Per-key record counts attached to every row carrying the key.

    Without ``source`` the counted records are the merged primary rows, so
    ``key``/``state``/``working`` may name output columns.  With ``source``
    they are candidates on that collection's records.
    """

    model_config = ConfigDict(extra="forbid")

    source: str | None = None
    key: list[str]
    # Key candidates on the row; defaults to ``key``.
    on: list[str] | None = None
    total: str | None = None
    active: str | None = None
    state: list[str] = Field(default_factory=list)
    working: list[str] = Field(default_factory=list)
    transform: KeyTransform = "exact"

    @field_validator("key")
    @classmethod
    def _key_not_empty(cls, v: list[str]) -> list[str]:
        return _check_candidates(v, "count key")

    @model_validator(mode="after")
    def _needs_output(self) -> "CountSpec":
        if not self.total and not self.active:
            raise ValueError(f"count on {self.key!r} must set 'total' and/or 'active'")
        if self.active and not (self.state or self.working):
            raise ValueError(f"count {self.active!r} needs 'state' and/or 'working' candidates")
        return self

    @property
    def row_key(self) -> list[str]:
        return self.on or self.key

    def columns(self) -> list[str]:
        return [c for c in (self.total, self.active) if c]


class FallbackSpec(BaseModel):
    """Coarser collection emitted one row per record when the primary is empty."""

    model_config = ConfigDict(extra="forbid")

    source: str
    columns: dict[str, list[str]]

    @field_validator("columns")
    @classmethod
    def _columns_not_empty(cls, v: dict[str, list[str]]) -> dict[str, list[str]]:
        return {col: _check_candidates(cands, f"fallback column {col!r}") for col, cands in v.items()}


# ---------------------------------------------------------------------------
# Top-level definition
# ---------------------------------------------------------------------------


class ReportDefinition(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    title: str = ""
    description: str = ""
    platform: str = "generic"
    primary: str
    columns: list[ColumnSpec] = Field(default_factory=list)
    joins: list[JoinSpec] = Field(default_factory=list)
    counts: list[CountSpec] = Field(default_factory=list)
    fallback: FallbackSpec | None = None
    # Columns filled from the per-invocation context (e.g. Host).
    context_columns: list[str] = Field(default_factory=list)
    output: list[str] = Field(default_factory=list)
    sort_by: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _resolve_output(self) -> "ReportDefinition":
        produced = self.produced_columns()
        if not self.output:
            self.output = produced
        unknown = [c for c in self.output if c not in produced]
        if unknown:
            raise ValueError(f"report {self.name!r}: output columns not produced by any source: {unknown}")
        missing_sort = [c for c in self.sort_by if c not in self.output]
        if missing_sort:
            raise ValueError(f"report {self.name!r}: sort_by columns not in output: {missing_sort}")
        return self

    def produced_columns(self) -> list[str]:
        """All columns any part of the definition can fill, in declaration order."""
        names: list[str] = list(self.context_columns)
        names += [c.name for c in self.columns]
        for join in self.joins:
            names += list(join.fields)
        for count in self.counts:
            names += count.columns()
        if self.fallback is not None:
            names += list(self.fallback.columns)
        seen: set[str] = set()
        return [n for n in names if not (n in seen or seen.add(n))]

    @property
    def sources(self) -> list[str]:
        names = [self.primary] + [j.source for j in self.joins]
        names += [c.source for c in self.counts if c.source]
        if self.fallback is not None:
            names.append(self.fallback.source)
        return list(dict.fromkeys(names))
