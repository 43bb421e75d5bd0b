"""Shared fixtures for ncs_inventory tests."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from ncs_inventory import definition_loader
from ncs_inventory.models.report import ReportDefinition

FIXTURES_DIR = Path(__file__).resolve().parent / "fixtures"


@pytest.fixture(autouse=True)
def _isolated_discovery(tmp_path, monkeypatch):
    """Keep the user definitions dir and the discovery cache out of every test."""
    monkeypatch.setattr(definition_loader, "USER_DEFINITIONS_DIR", tmp_path / "no-user-dir")
    definition_loader.discover_definitions.cache_clear()
    yield
    definition_loader.discover_definitions.cache_clear()


def path_report(**overrides: Any) -> ReportDefinition:
    """Minimal one-row-per-path report used across aggregation tests."""
    data: dict[str, Any] = {
        "name": "paths_test",
        "primary": "paths",
        "context_columns": ["Host"],
        "columns": [
            {"name": "Host", "candidates": ["Host", "VMHost"]},
            {"name": "Device"},
            {"name": "Adapter"},
            {"name": "State", "candidates": ["State", "PathState"]},
            {"name": "Runtime Name", "candidates": ["RuntimeName", "Name"]},
        ],
        "joins": [
            {
                "source": "devices",
                "key": ["Device", "CanonicalName"],
                "fields": {"SATP": ["SATP"], "PSP": ["PSP", "PathSelectionPolicy"]},
            },
            {
                "source": "path_status",
                "key": ["Name"],
                "on": ["RuntimeName", "Name"],
                "fields": {"Working": ["IsWorkingPath", "Working"]},
            },
        ],
        "counts": [
            {
                "key": ["Device"],
                "total": "Device_PathCount",
                "active": "Device_ActivePaths",
                "state": ["State"],
                "working": ["Working"],
            }
        ],
        "fallback": {"source": "devices", "columns": {"Device": ["Device", "CanonicalName"]}},
    }
    data.update(overrides)
    return ReportDefinition.model_validate(data)


@pytest.fixture()
def paths_definition() -> ReportDefinition:
    return path_report()


@pytest.fixture()
def end_to_end_collections() -> dict[str, list[dict[str, Any]]]:
    return {
        "paths": [
            {"Device": "naa.1", "Adapter": "vmhba0", "State": "active"},
            {"Device": "naa.1", "Adapter": "vmhba1", "State": "dead"},
        ],
        "devices": [{"Device": "naa.1", "SATP": "VMW_SATP_ALUA", "PSP": "VMW_PSP_RR"}],
    }


def _load_fixture(name: str) -> Any:
    return json.loads((FIXTURES_DIR / name).read_text(encoding="utf-8"))


@pytest.fixture()
def load_fixture():
    """Return the fixture loader callable."""
    return _load_fixture
