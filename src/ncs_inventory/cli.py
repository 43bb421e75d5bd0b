import logging
import os
from pathlib import Path
from typing import Any

import click
import yaml
from pydantic import ValidationError

from .aggregation import aggregate_hosts
from .csv_export import export_csv
from .definition_loader import discover_definitions
from .models.config import InventoryConfig
from .models.report import ReportDefinition
from .primitives import unique_preserve_order
from .sources import load_input, write_state

logger = logging.getLogger("ncs_inventory")

_DEFAULT_VSPHERE_DEFINITIONS = ("storage_paths", "storage_adapters")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def _resolve_path_from_config_root(config_dir: str | None, value: str) -> str:
    p = Path(value)
    if p.is_absolute() or not config_dir:
        return str(p)
    return str(Path(config_dir) / p)


def _load_config(config_dir: str | None) -> InventoryConfig:
    """Load optional config.yaml from config_dir."""
    if not config_dir:
        return InventoryConfig()
    cfg_path = Path(config_dir) / "config.yaml"
    if not cfg_path.is_file():
        return InventoryConfig()
    with open(cfg_path, encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise click.ClickException(f"Invalid config file: {cfg_path} (expected YAML mapping)")
    try:
        config = InventoryConfig.model_validate(raw)
    except ValidationError as exc:
        raise click.ClickException(f"Invalid config file: {cfg_path}: {exc}") from exc

    config.extra_definition_dirs = [
        _resolve_path_from_config_root(config_dir, d) for d in config.extra_definition_dirs if d.strip()
    ]
    if config.output_dir:
        config.output_dir = _resolve_path_from_config_root(config_dir, config.output_dir)
    logger.debug("Loaded config from %s", cfg_path)
    return config


def _definition_dirs(config: InventoryConfig, extra: tuple[str, ...]) -> tuple[str, ...]:
    return unique_preserve_order(list(extra) + list(config.extra_definition_dirs))


def _select_definitions(names: tuple[str, ...], dirs: tuple[str, ...]) -> list[ReportDefinition]:
    available = discover_definitions(dirs)
    unknown = [n for n in names if n not in available]
    if unknown:
        raise click.ClickException(
            f"Unknown definition(s): {', '.join(unknown)}. Available: {', '.join(sorted(available))}"
        )
    return [available[n] for n in names]


def _write_reports(
    definitions: list[ReportDefinition], hosts: dict[str, Any], output_dir: str
) -> None:
    out = Path(output_dir)
    for definition in definitions:
        rows = aggregate_hosts(definition, hosts)
        target = out / f"{definition.name}.csv"
        count = export_csv(rows, definition.output, target)
        click.echo(f"  {definition.name}: {count} rows -> {target}")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug-level logging.")
@click.option(
    "--config-dir",
    type=click.Path(exists=True, file_okay=False, dir_okay=True),
    help="Directory containing config.yaml.",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, config_dir: str | None) -> None:
    """NCS Inventory: storage and share inventory export."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        force=True,
    )
    ctx.obj = _load_config(config_dir)


@main.command("definitions")
@click.option("--definition-dir", "extra_dirs", multiple=True, type=click.Path(), help="Extra definition directory.")
@click.pass_obj
def list_definitions(config: InventoryConfig, extra_dirs: tuple[str, ...]) -> None:
    """List available report definitions."""
    found = discover_definitions(_definition_dirs(config, extra_dirs))
    for name in sorted(found):
        d = found[name]
        click.echo(f"{name:<24} {d.platform:<10} {d.title or d.description}")


@main.command()
@click.option(
    "--input",
    "-i",
    "input_path",
    required=True,
    type=click.Path(exists=True),
    help="Host directory (<host>/<collection>.json) or YAML state file.",
)
@click.option("--definition", "-d", "names", multiple=True, required=True, help="Report definition name.")
@click.option("--output-dir", "-o", type=click.Path(), help="Output directory for CSV files.")
@click.option("--definition-dir", "extra_dirs", multiple=True, type=click.Path(), help="Extra definition directory.")
@click.pass_obj
def report(
    config: InventoryConfig,
    input_path: str,
    names: tuple[str, ...],
    output_dir: str | None,
    extra_dirs: tuple[str, ...],
) -> None:
    """Build CSV reports from collected record files."""
    output_dir = output_dir or config.output_dir
    if not output_dir:
        raise click.ClickException("No output directory: pass --output-dir or set output_dir in config.yaml")
    definitions = _select_definitions(names, _definition_dirs(config, extra_dirs))

    hosts = load_input(input_path)
    if not hosts:
        click.echo(f"Warning: no host data found in {input_path}")
    click.echo(f"Building {len(definitions)} report(s) for {len(hosts)} host(s)...")
    _write_reports(definitions, hosts, output_dir)
    click.echo(f"Done! Reports written to {output_dir}")


@main.command()
@click.option("--server", "-s", help="vCenter or ESXi host name.")
@click.option("--user", "-u", help="User name.")
@click.option("--password-env", help="Environment variable holding the password.")
@click.option("--port", type=int, help="HTTPS port.")
@click.option("--verify-ssl/--no-verify-ssl", default=None, help="Verify the server certificate.")
@click.option("--host-filter", help="Only collect hosts matching this glob.")
@click.option("--definition", "-d", "names", multiple=True, help="Report definition name (repeatable).")
@click.option("--output-dir", "-o", type=click.Path(), help="Output directory for CSV files.")
@click.option("--state-file", type=click.Path(), help="Also write the collected records to this YAML file.")
@click.option("--definition-dir", "extra_dirs", multiple=True, type=click.Path(), help="Extra definition directory.")
@click.pass_obj
def vsphere(
    config: InventoryConfig,
    server: str | None,
    user: str | None,
    password_env: str | None,
    port: int | None,
    verify_ssl: bool | None,
    host_filter: str | None,
    names: tuple[str, ...],
    output_dir: str | None,
    state_file: str | None,
    extra_dirs: tuple[str, ...],
) -> None:
    """Collect storage inventory from vSphere and build CSV reports."""
    from .collectors.vsphere import collect_inventory, connect

    vs = config.vsphere
    server = server or vs.server
    user = user or vs.user
    password_env = password_env or vs.password_env
    output_dir = output_dir or config.output_dir
    if not server or not user:
        raise click.ClickException("--server and --user are required (or set them under vsphere: in config.yaml)")
    if not output_dir:
        raise click.ClickException("No output directory: pass --output-dir or set output_dir in config.yaml")
    password = os.environ.get(password_env, "")
    if not password:
        raise click.ClickException(f"Password not provided via {password_env}")

    definitions = _select_definitions(names or _DEFAULT_VSPHERE_DEFINITIONS, _definition_dirs(config, extra_dirs))

    click.echo(f"Collecting storage inventory from {server}...")
    try:
        with connect(
            server,
            user,
            password,
            port=port or vs.port,
            verify_ssl=vs.verify_ssl if verify_ssl is None else verify_ssl,
        ) as si:
            hosts = collect_inventory(si, host_filter=host_filter)
    except Exception as exc:
        logger.error("vSphere collection failed: %s", exc)
        raise click.ClickException(f"Failed to collect from {server}: {exc}") from exc

    if state_file:
        write_state(hosts, state_file)
        click.echo(f"  State written to {state_file}")
    _write_reports(definitions, hosts, output_dir)
    click.echo(f"Done! Reports written to {output_dir}")


if __name__ == "__main__":
    main()
