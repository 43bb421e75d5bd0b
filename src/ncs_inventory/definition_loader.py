"""Discovery and validation of YAML report definitions."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

import yaml

from ncs_inventory.models.report import ReportDefinition

logger = logging.getLogger(__name__)

# Built-in definitions directory (ships with the package)
BUILTIN_DEFINITIONS_DIR = Path(__file__).parent / "definitions"

# User-level config directory
USER_DEFINITIONS_DIR = Path.home() / ".config" / "ncs_inventory" / "definitions"


def load_definition_file(path: str | Path) -> ReportDefinition:
    """Load one definition file.  Raises on unreadable or invalid content."""
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a YAML mapping")
    return ReportDefinition.model_validate(data)


def _scan_dir(directory: Path, result: dict[str, ReportDefinition]) -> None:
    """Scan a directory for *.yaml / *.yml definition files (non-recursive)."""
    if not directory.is_dir():
        return
    for path in sorted(directory.iterdir()):
        if path.suffix not in {".yaml", ".yml"}:
            continue
        try:
            definition = load_definition_file(path)
        except Exception as exc:
            logger.warning("Skipping definition %s: %s", path, exc)
            continue
        if definition.name in result:
            logger.debug("Definition '%s' already registered (first-wins); skipping %s", definition.name, path)
        else:
            result[definition.name] = definition
            logger.debug("Registered definition '%s' from %s", definition.name, path)


@lru_cache(maxsize=8)
def discover_definitions(extra_dirs: tuple[str, ...] = ()) -> dict[str, ReportDefinition]:
    """Return all available definitions keyed by name.

    Search order (first registration of a name wins): extra dirs, the user
    config dir, then the built-in definitions.
    """
    result: dict[str, ReportDefinition] = {}
    for d in extra_dirs:
        _scan_dir(Path(d), result)
    _scan_dir(USER_DEFINITIONS_DIR, result)
    _scan_dir(BUILTIN_DEFINITIONS_DIR, result)
    return result


def get_definition(name: str, extra_dirs: tuple[str, ...] = ()) -> ReportDefinition | None:
    return discover_definitions(extra_dirs).get(name)


def get_definitions(platform: str, extra_dirs: tuple[str, ...] = ()) -> list[ReportDefinition]:
    """Return definitions for a given platform, sorted by name."""
    found = discover_definitions(extra_dirs)
    return [found[n] for n in sorted(found) if found[n].platform == platform]
