"""vSphere storage inventory collector (pyVmomi).

Reads ``host.config.storageDevice`` for every ESXi host and converts the
vendor objects into plain record dicts.  Only retrieves information; nothing
is modified on the hosts.
"""

from __future__ import annotations

import fnmatch
import logging
import re
import ssl
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from pyVim.connect import Disconnect, SmartConnect
from pyVmomi import vim

from ncs_inventory.primitives import as_text, format_wwn, safe_list, to_int
from ncs_inventory.sources import collect_or_empty

logger = logging.getLogger(__name__)

# vmhba1:C0:T2:L14
_RUNTIME_NAME_RE = re.compile(r":C(?P<channel>\d+):T(?P<target>\d+):L(?P<lun>\d+)$")


@contextmanager
def connect(server: str, user: str, password: str, port: int = 443, verify_ssl: bool = False) -> Iterator[Any]:
    """Yield a service instance, disconnecting on exit."""
    # Lab vCenters commonly run self-signed certificates; verification is opt-in.
    context = ssl.create_default_context() if verify_ssl else ssl._create_unverified_context()
    si = SmartConnect(host=server, user=user, pwd=password, port=port, sslContext=context)
    logger.info("Connected to %s as %s", server, user)
    try:
        yield si
    finally:
        Disconnect(si)


def iter_hosts(si: Any) -> Iterator[Any]:
    content = si.RetrieveContent()
    view = content.viewManager.CreateContainerView(content.rootFolder, [vim.HostSystem], True)
    try:
        hosts = list(view.view)
    finally:
        view.Destroy()
    logger.info("Retrieved %d hosts from inventory", len(hosts))
    yield from hosts


def _storage_device(host: Any) -> Any:
    config = getattr(host, "config", None)
    storage = getattr(config, "storageDevice", None)
    if storage is None:
        raise LookupError(f"{getattr(host, 'name', host)}: no storage device info (host disconnected?)")
    return storage


def _type_name(obj: Any) -> str:
    # pyVmomi class names look like "vim.host.FibreChannelHba"
    return type(obj).__name__.rsplit(".", 1)[-1]


def _policy_name(policy: Any) -> str:
    return as_text(getattr(policy, "policy", None))


def _number(value: Any) -> int | None:
    # xsd:long and xsd:short arrive as int subclasses; records carry plain ints.
    return None if value is None else to_int(value)


# ---------------------------------------------------------------------------
# Record builders
# ---------------------------------------------------------------------------


def adapter_records(host: Any) -> list[dict[str, Any]]:
    records = []
    for hba in safe_list(getattr(_storage_device(host), "hostBusAdapter", None)):
        record: dict[str, Any] = {
            "Device": as_text(getattr(hba, "device", None)),
            "Key": as_text(getattr(hba, "key", None)),
            "Type": _type_name(hba),
            "Model": as_text(getattr(hba, "model", None)),
            "Driver": as_text(getattr(hba, "driver", None)),
            "Status": as_text(getattr(hba, "status", None)),
            "PCI": as_text(getattr(hba, "pci", None)),
        }
        if hasattr(hba, "portWorldWideName"):
            record["WWPN"] = format_wwn(getattr(hba, "portWorldWideName", 0))
            record["WWNN"] = format_wwn(getattr(hba, "nodeWorldWideName", 0))
        if hasattr(hba, "iScsiName"):
            record["IScsiName"] = as_text(getattr(hba, "iScsiName", None))
        records.append(record)
    return records


def adapter_detail_records(host: Any) -> list[dict[str, Any]]:
    """Link attributes the API exposes for Fibre Channel adapters."""
    records = []
    for hba in safe_list(getattr(_storage_device(host), "hostBusAdapter", None)):
        if not hasattr(hba, "portWorldWideName"):
            continue
        records.append(
            {
                "Adapter": as_text(getattr(hba, "device", None)),
                "Speed": _number(getattr(hba, "speed", None)),
                "Port Type": as_text(getattr(hba, "portType", None)),
            }
        )
    return records


def device_records(host: Any) -> list[dict[str, Any]]:
    storage = _storage_device(host)
    policies: dict[str, dict[str, str]] = {}
    multipath = getattr(storage, "multipathInfo", None)
    for lun in safe_list(getattr(multipath, "lun", None)):
        policies[as_text(getattr(lun, "lun", None))] = {
            "PSP": _policy_name(getattr(lun, "policy", None)),
            "SATP": _policy_name(getattr(lun, "storageArrayTypePolicy", None)),
        }

    records = []
    for scsi_lun in safe_list(getattr(storage, "scsiLun", None)):
        key = as_text(getattr(scsi_lun, "key", None))
        record: dict[str, Any] = {
            "CanonicalName": as_text(getattr(scsi_lun, "canonicalName", None)),
            "DisplayName": as_text(getattr(scsi_lun, "displayName", None)),
            "Vendor": as_text(getattr(scsi_lun, "vendor", None)),
            "Model": as_text(getattr(scsi_lun, "model", None)),
            "Revision": as_text(getattr(scsi_lun, "revision", None)),
            "LunType": as_text(getattr(scsi_lun, "lunType", None)),
            "QueueDepth": _number(getattr(scsi_lun, "queueDepth", None)),
            "OperationalState": ", ".join(as_text(s) for s in safe_list(getattr(scsi_lun, "operationalState", None))),
            "LunKey": key,
        }
        record.update(policies.get(key, {}))
        records.append(record)
    return records


def _transport_target(transport: Any) -> str:
    if transport is None:
        return ""
    if hasattr(transport, "portWorldWideName"):
        return format_wwn(getattr(transport, "portWorldWideName", 0))
    return as_text(getattr(transport, "iScsiName", None))


def path_records(host: Any) -> list[dict[str, Any]]:
    storage = _storage_device(host)
    adapters = {
        as_text(getattr(hba, "key", None)): as_text(getattr(hba, "device", None))
        for hba in safe_list(getattr(storage, "hostBusAdapter", None))
    }
    devices = {
        as_text(getattr(scsi_lun, "key", None)): as_text(getattr(scsi_lun, "canonicalName", None))
        for scsi_lun in safe_list(getattr(storage, "scsiLun", None))
    }

    records = []
    multipath = getattr(storage, "multipathInfo", None)
    for lun in safe_list(getattr(multipath, "lun", None)):
        device = devices.get(as_text(getattr(lun, "lun", None)), "")
        for path in safe_list(getattr(lun, "path", None)):
            name = as_text(getattr(path, "name", None))
            adapter_key = as_text(getattr(path, "adapter", None))
            transport = getattr(path, "transport", None)
            match = _RUNTIME_NAME_RE.search(name)
            records.append(
                {
                    "RuntimeName": name,
                    "Device": device,
                    "Adapter": adapters.get(adapter_key, adapter_key),
                    "PathState": as_text(getattr(path, "pathState", None)),
                    "TransportType": _type_name(transport) if transport is not None else "",
                    "TargetWWPN": _transport_target(transport),
                    "LUN": int(match.group("lun")) if match else None,
                }
            )
    return records


def path_status_records(host: Any) -> list[dict[str, Any]]:
    """The per-path working flag, kept apart from the path state it sits beside."""
    multipath = getattr(_storage_device(host), "multipathInfo", None)
    return [
        {
            "Name": as_text(getattr(path, "name", None)),
            "IsWorkingPath": getattr(path, "isWorkingPath", None),
        }
        for lun in safe_list(getattr(multipath, "lun", None))
        for path in safe_list(getattr(lun, "path", None))
    ]


COLLECTIONS = {
    "adapters": adapter_records,
    "adapter_details": adapter_detail_records,
    "devices": device_records,
    "paths": path_records,
    "path_status": path_status_records,
}


def collect_host(host: Any) -> dict[str, list[dict[str, Any]]]:
    hostname = as_text(getattr(host, "name", None)) or "unknown"
    return {
        name: collect_or_empty(builder, f"{hostname} {name}", host)
        for name, builder in COLLECTIONS.items()
    }


def collect_inventory(si: Any, host_filter: str | None = None) -> dict[str, dict[str, list[dict[str, Any]]]]:
    """Collect storage records for every host matching *host_filter* (glob, case-insensitive)."""
    inventory: dict[str, dict[str, list[dict[str, Any]]]] = {}
    for host in iter_hosts(si):
        name = as_text(getattr(host, "name", None))
        if host_filter and not fnmatch.fnmatch(name.lower(), host_filter.lower()):
            continue
        logger.info("Processing host: %s", name)
        inventory[name] = collect_host(host)
    return inventory
