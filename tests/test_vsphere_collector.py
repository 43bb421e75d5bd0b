"""Tests for the pyVmomi storage collector, using stand-in and real vSphere data objects."""

import logging
import ssl
from types import SimpleNamespace

import pytest
from pyVmomi import VmomiSupport, vim

from ncs_inventory.aggregation import aggregate
from ncs_inventory.collectors import vsphere
from ncs_inventory.definition_loader import get_definition
from ncs_inventory.sources import load_state, write_state


# pyVmomi data objects are identified by class name, so the stand-ins mirror them.
class FibreChannelHba(SimpleNamespace):
    pass


class InternetScsiHba(SimpleNamespace):
    pass


class FibreChannelTargetTransport(SimpleNamespace):
    pass


class InternetScsiTargetTransport(SimpleNamespace):
    pass


FC_KEY = "key-vim.host.FibreChannelHba-vmhba1"
ISCSI_KEY = "key-vim.host.InternetScsiHba-vmhba64"
LUN_KEY = "020001000060060160"


def _host(name="esx01.lab.local"):
    fc = FibreChannelHba(
        device="vmhba1",
        key=FC_KEY,
        model="LPe32002-M2",
        driver="lpfc",
        status="online",
        pci="0000:3b:00.0",
        portWorldWideName=0x1000_0010_9B1A_2B3C,
        nodeWorldWideName=0x2000_0010_9B1A_2B3C,
        speed=32,
        portType="fabric",
    )
    iscsi = InternetScsiHba(
        device="vmhba64",
        key=ISCSI_KEY,
        model="iSCSI Software Adapter",
        driver="iscsi_vmk",
        status="online",
        pci="",
        iScsiName="iqn.1998-01.com.vmware:esx01",
    )
    scsi_lun = SimpleNamespace(
        key=LUN_KEY,
        canonicalName="naa.600601601f5041001b6c8a5a1b2ce811",
        displayName="DGC Fibre Channel Disk",
        vendor="DGC     ",
        model="VRAID",
        revision="0533",
        lunType="disk",
        queueDepth=64,
        operationalState=["ok"],
    )
    paths = [
        SimpleNamespace(
            name="vmhba1:C0:T0:L1",
            adapter=FC_KEY,
            pathState="active",
            isWorkingPath=True,
            transport=FibreChannelTargetTransport(portWorldWideName=0x5006_0160_C8E0_0B5A),
        ),
        SimpleNamespace(
            name="vmhba64:C0:T1:L1",
            adapter=ISCSI_KEY,
            pathState="standby",
            isWorkingPath=False,
            transport=InternetScsiTargetTransport(iScsiName="iqn.1992-04.com.emc:target"),
        ),
    ]
    multipath_lun = SimpleNamespace(
        lun=LUN_KEY,
        policy=SimpleNamespace(policy="VMW_PSP_RR"),
        storageArrayTypePolicy=SimpleNamespace(policy="VMW_SATP_ALUA_CX"),
        path=paths,
    )
    storage = SimpleNamespace(
        hostBusAdapter=[fc, iscsi],
        scsiLun=[scsi_lun],
        multipathInfo=SimpleNamespace(lun=[multipath_lun]),
    )
    return SimpleNamespace(name=name, config=SimpleNamespace(storageDevice=storage))


class TestRecordBuilders:
    def test_adapter_records(self):
        fc, iscsi = vsphere.adapter_records(_host())
        assert fc["Device"] == "vmhba1"
        assert fc["Type"] == "FibreChannelHba"
        assert fc["WWPN"] == "10:00:00:10:9b:1a:2b:3c"
        assert fc["WWNN"] == "20:00:00:10:9b:1a:2b:3c"
        assert "IScsiName" not in fc
        assert iscsi["Type"] == "InternetScsiHba"
        assert iscsi["IScsiName"] == "iqn.1998-01.com.vmware:esx01"
        assert "WWPN" not in iscsi

    def test_adapter_details_only_for_fibre_channel(self):
        assert vsphere.adapter_detail_records(_host()) == [
            {"Adapter": "vmhba1", "Speed": 32, "Port Type": "fabric"}
        ]

    def test_device_records_carry_policies(self):
        (device,) = vsphere.device_records(_host())
        assert device["CanonicalName"] == "naa.600601601f5041001b6c8a5a1b2ce811"
        assert device["Vendor"] == "DGC"
        assert device["PSP"] == "VMW_PSP_RR"
        assert device["SATP"] == "VMW_SATP_ALUA_CX"
        assert device["QueueDepth"] == 64
        assert device["OperationalState"] == "ok"

    def test_path_records(self):
        fc_path, iscsi_path = vsphere.path_records(_host())
        assert fc_path == {
            "RuntimeName": "vmhba1:C0:T0:L1",
            "Device": "naa.600601601f5041001b6c8a5a1b2ce811",
            "Adapter": "vmhba1",
            "PathState": "active",
            "TransportType": "FibreChannelTargetTransport",
            "TargetWWPN": "50:06:01:60:c8:e0:0b:5a",
            "LUN": 1,
        }
        assert iscsi_path["Adapter"] == "vmhba64"
        assert iscsi_path["TargetWWPN"] == "iqn.1992-04.com.emc:target"

    def test_unknown_adapter_key_kept_verbatim(self):
        host = _host()
        host.config.storageDevice.hostBusAdapter = []
        assert [p["Adapter"] for p in vsphere.path_records(host)] == [FC_KEY, ISCSI_KEY]

    def test_path_status_records(self):
        assert vsphere.path_status_records(_host()) == [
            {"Name": "vmhba1:C0:T0:L1", "IsWorkingPath": True},
            {"Name": "vmhba64:C0:T1:L1", "IsWorkingPath": False},
        ]

    def test_missing_storage_info_raises(self):
        host = SimpleNamespace(name="esx09", config=None)
        with pytest.raises(LookupError):
            vsphere.device_records(host)


class TestCollectHost:
    def test_all_collections_present(self):
        collections = vsphere.collect_host(_host())
        assert set(collections) == set(vsphere.COLLECTIONS)
        assert len(collections["paths"]) == 2

    def test_disconnected_host_yields_empty_collections(self, caplog):
        host = SimpleNamespace(name="esx09", config=None)
        with caplog.at_level(logging.WARNING, logger="ncs_inventory.sources"):
            collections = vsphere.collect_host(host)
        assert all(records == [] for records in collections.values())
        assert "Failed to collect esx09 paths" in caplog.text

    def test_collected_records_feed_storage_paths(self):
        collections = vsphere.collect_host(_host())
        rows = aggregate(get_definition("storage_paths"), collections, {"Host": "esx01.lab.local"})
        assert [r["Runtime Name"] for r in rows] == ["vmhba1:C0:T0:L1", "vmhba64:C0:T1:L1"]
        fc_row, iscsi_row = rows
        assert fc_row["PSP"] == "VMW_PSP_RR"
        assert fc_row["WWPN"] == "10:00:00:10:9b:1a:2b:3c"
        assert fc_row["Link Speed"] == 32
        assert fc_row["Working"] is True
        assert iscsi_row["Working"] is False
        assert iscsi_row["WWPN"] == ""
        assert {r["Device_PathCount"] for r in rows} == {2}
        assert {r["Device_ActivePaths"] for r in rows} == {1}

    def test_collected_records_feed_storage_adapters(self):
        collections = vsphere.collect_host(_host())
        rows = aggregate(get_definition("storage_adapters"), collections, {"Host": "esx01.lab.local"})
        by_adapter = {r["Adapter"]: r for r in rows}
        assert by_adapter["vmhba1"]["Path Count"] == 1
        assert by_adapter["vmhba1"]["Active Paths"] == 1
        assert by_adapter["vmhba64"]["Active Paths"] == 0
        assert by_adapter["vmhba64"]["IQN"] == "iqn.1998-01.com.vmware:esx01"
        assert by_adapter["vmhba1"]["Port Type"] == "fabric"


def _vim_host(name="esx01.lab.local"):
    """A host whose storage info is built from real pyVmomi data objects."""
    hba = vim.host.FibreChannelHba(
        key=FC_KEY,
        device="vmhba1",
        bus=59,
        status="online",
        model="LPe32002-M2",
        driver="lpfc",
        pci="0000:3b:00.0",
        portWorldWideName=VmomiSupport.long(0x1000_0010_9B1A_2B3C),
        nodeWorldWideName=VmomiSupport.long(0x2000_0010_9B1A_2B3C),
        portType=vim.host.FibreChannelHba.PortType.fabric,
        speed=VmomiSupport.long(16),
    )
    disk = vim.host.ScsiDisk(
        key=LUN_KEY,
        uuid="02000100006006016",
        canonicalName="naa.600601601f5041001b6c8a5a1b2ce811",
        displayName="DGC Fibre Channel Disk",
        lunType="disk",
        vendor="DGC",
        model="VRAID",
        revision="0533",
        queueDepth=64,
        operationalState=["ok"],
    )
    path = vim.host.MultipathInfo.Path(
        key="key-vim.host.MultipathInfo.Path-vmhba1:C0:T0:L1",
        name="vmhba1:C0:T0:L1",
        pathState="active",
        state="active",
        isWorkingPath=True,
        adapter=FC_KEY,
        lun="key-vim.host.MultipathInfo.LogicalUnit-" + LUN_KEY,
        transport=vim.host.FibreChannelTargetTransport(
            portWorldWideName=VmomiSupport.long(0x5006_0160_C8E0_0B5A),
            nodeWorldWideName=VmomiSupport.long(0x5006_0160_C8E0_0B5B),
        ),
    )
    logical_unit = vim.host.MultipathInfo.LogicalUnit(
        key="key-vim.host.MultipathInfo.LogicalUnit-" + LUN_KEY,
        id=LUN_KEY,
        lun=LUN_KEY,
        path=[path],
        policy=vim.host.MultipathInfo.LogicalUnitPolicy(policy="VMW_PSP_RR"),
        storageArrayTypePolicy=vim.host.MultipathInfo.LogicalUnitStorageArrayTypePolicy(policy="VMW_SATP_ALUA_CX"),
    )
    storage = vim.host.StorageDeviceInfo(
        hostBusAdapter=[hba],
        scsiLun=[disk],
        multipathInfo=vim.host.MultipathInfo(lun=[logical_unit]),
    )
    return SimpleNamespace(name=name, config=SimpleNamespace(storageDevice=storage))


class TestPyVmomiDataObjects:
    def test_typed_values_become_plain_python(self):
        collections = vsphere.collect_host(_vim_host())
        (detail,) = collections["adapter_details"]
        assert detail == {"Adapter": "vmhba1", "Speed": 16, "Port Type": "fabric"}
        assert type(detail["Speed"]) is int
        (device,) = collections["devices"]
        assert type(device["QueueDepth"]) is int
        assert device["PSP"] == "VMW_PSP_RR"

    def test_class_names_from_pyvmomi(self):
        collections = vsphere.collect_host(_vim_host())
        (adapter,) = collections["adapters"]
        assert adapter["Type"] == "FibreChannelHba"
        assert adapter["WWPN"] == "10:00:00:10:9b:1a:2b:3c"
        (path,) = collections["paths"]
        assert path["TransportType"] == "FibreChannelTargetTransport"
        assert path["TargetWWPN"] == "50:06:01:60:c8:e0:0b:5a"
        assert path["Device"] == "naa.600601601f5041001b6c8a5a1b2ce811"

    def test_state_file_round_trip(self, tmp_path):
        hosts = {"esx01.lab.local": vsphere.collect_host(_vim_host())}
        state = tmp_path / "state.yaml"
        write_state(hosts, state)
        assert load_state(state) == hosts


class TestInventory:
    def test_host_filter_is_case_insensitive_glob(self, monkeypatch):
        hosts = [_host("ESX01.lab.local"), _host("esx02.lab.local"), _host("vc01.lab.local")]
        monkeypatch.setattr(vsphere, "iter_hosts", lambda si: iter(hosts))
        inventory = vsphere.collect_inventory(object(), host_filter="esx*")
        assert sorted(inventory) == ["ESX01.lab.local", "esx02.lab.local"]

    def test_no_filter_collects_everything(self, monkeypatch):
        monkeypatch.setattr(vsphere, "iter_hosts", lambda si: iter([_host("a"), _host("b")]))
        assert sorted(vsphere.collect_inventory(object())) == ["a", "b"]

    def test_iter_hosts_destroys_view(self):
        destroyed = []
        view = SimpleNamespace(view=[_host("a")], Destroy=lambda: destroyed.append(True))
        content = SimpleNamespace(
            rootFolder="root",
            viewManager=SimpleNamespace(CreateContainerView=lambda folder, types, recursive: view),
        )
        si = SimpleNamespace(RetrieveContent=lambda: content)
        assert [h.name for h in vsphere.iter_hosts(si)] == ["a"]
        assert destroyed == [True]


class TestConnect:
    def test_disconnects_after_use(self, monkeypatch):
        calls = {}

        def fake_connect(**kwargs):
            calls.update(kwargs)
            return "si"

        disconnected = []
        monkeypatch.setattr(vsphere, "SmartConnect", fake_connect)
        monkeypatch.setattr(vsphere, "Disconnect", disconnected.append)

        with vsphere.connect("vc01", "admin", "secret", port=8443) as si:
            assert si == "si"
        assert disconnected == ["si"]
        assert calls["host"] == "vc01"
        assert calls["port"] == 8443
        assert calls["sslContext"].verify_mode == ssl.CERT_NONE

    def test_disconnects_on_error(self, monkeypatch):
        disconnected = []
        monkeypatch.setattr(vsphere, "SmartConnect", lambda **kwargs: "si")
        monkeypatch.setattr(vsphere, "Disconnect", disconnected.append)

        with pytest.raises(RuntimeError):
            with vsphere.connect("vc01", "admin", "secret"):
                raise RuntimeError("boom")
        assert disconnected == ["si"]

    def test_verify_ssl_uses_default_context(self, monkeypatch):
        calls = {}
        monkeypatch.setattr(vsphere, "SmartConnect", lambda **kwargs: calls.update(kwargs) or "si")
        monkeypatch.setattr(vsphere, "Disconnect", lambda si: None)

        with vsphere.connect("vc01", "admin", "secret", verify_ssl=True):
            pass
        assert calls["sslContext"].verify_mode == ssl.CERT_REQUIRED
