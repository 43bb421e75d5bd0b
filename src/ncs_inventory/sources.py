"""Collection boundary: turn data-source output into plain record lists.

:func:`collect_or_empty` is the only place a failing data-source call is
caught.  Everything downstream sees an empty collection instead.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

RECORD_SUFFIXES = (".json", ".yaml", ".yml")

_TRAVERSAL_EXCLUDE = {"__pycache__", ".git", "history", "raw_state"}


def unwrap_ps_json(value: Any) -> Any:
    """Unwrap Ansible's win_powershell register envelope.

    ``{"output": ["<json string>"], ...}`` becomes the parsed JSON value.
    Anything else is passed through unchanged.
    """
    if isinstance(value, dict) and "output" in value:
        output = value["output"]
        try:
            raw = output[0] if isinstance(output, list) else output
            return json.loads(raw) if isinstance(raw, str) else raw
        except (IndexError, json.JSONDecodeError, TypeError):
            return value
    return value


def as_records(value: Any) -> list[dict[str, Any]]:
    """Coerce a source result into a list of plain dicts.

    Accepts a list of mappings, a single mapping, ``None``, the PowerShell
    ``{"value": [...], "Count": n}`` wrapper and the win_powershell envelope.
    Non-mapping items are dropped.
    """
    value = unwrap_ps_json(value)
    if value is None:
        return []
    if isinstance(value, Mapping):
        inner = value.get("value")
        if isinstance(inner, list) and set(value) <= {"value", "Count", "count"}:
            value = inner
        else:
            return [dict(value)]
    if isinstance(value, (str, bytes)):
        return []
    try:
        items = list(value)
    except TypeError:
        return []
    return [dict(item) for item in items if isinstance(item, Mapping)]


def collect_or_empty(fetch: Callable[..., Any], label: str, *args: Any, **kwargs: Any) -> list[dict[str, Any]]:
    """Call *fetch* and return its records, or ``[]`` if the call fails."""
    try:
        result = fetch(*args, **kwargs)
    except Exception as exc:
        logger.warning("Failed to collect %s: %s", label, exc)
        return []
    records = as_records(result)
    logger.debug("Collected %d %s records", len(records), label)
    return records


# ---------------------------------------------------------------------------
# File-based sources
# ---------------------------------------------------------------------------


def load_records(path: str | Path) -> Any:
    """Parse a JSON or YAML export.  Returns the raw document."""
    path = Path(path)
    # PowerShell's Out-File writes a UTF-8 BOM.
    text = path.read_text(encoding="utf-8-sig")
    if not text.strip():
        return []
    if path.suffix == ".json":
        return json.loads(text)
    return yaml.safe_load(text)


def load_host_collections(input_dir: str | Path) -> dict[str, dict[str, list[dict[str, Any]]]]:
    """Read ``<input_dir>/<host>/<collection>.{json,yaml,yml}`` into host collections."""
    root = Path(input_dir)
    hosts: dict[str, dict[str, list[dict[str, Any]]]] = {}
    if not root.is_dir():
        return hosts

    for host_dir in sorted(p for p in root.iterdir() if p.is_dir() and p.name not in _TRAVERSAL_EXCLUDE):
        files = sorted(f for f in host_dir.iterdir() if f.is_file() and f.suffix in RECORD_SUFFIXES)
        if not files:
            continue
        collections = hosts.setdefault(host_dir.name, {})
        for file_path in files:
            collections.setdefault(file_path.stem, []).extend(
                collect_or_empty(load_records, f"{host_dir.name}/{file_path.name}", file_path)
            )
    return hosts


def load_state(path: str | Path) -> dict[str, dict[str, list[dict[str, Any]]]]:
    """Read a YAML state file ``{"hosts": {host: {collection: [records]}}}``."""
    with open(path, encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        return {}
    hosts = raw.get("hosts", raw)
    if not isinstance(hosts, dict):
        return {}
    out: dict[str, dict[str, list[dict[str, Any]]]] = {}
    for hostname, collections in hosts.items():
        if not isinstance(collections, dict):
            continue
        out[str(hostname)] = {str(name): as_records(records) for name, records in collections.items()}
    return out


def load_input(path: str | Path) -> dict[str, dict[str, list[dict[str, Any]]]]:
    """Host collections from either a host directory or a YAML state file."""
    if os.path.isdir(path):
        return load_host_collections(path)
    return load_state(path)


def write_state(hosts: Mapping[str, Any], output_path: str | Path) -> None:
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump({"hosts": dict(hosts)}, f, default_flow_style=False, sort_keys=False)
