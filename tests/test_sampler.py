"""Tests for the HostSampler class."""

import multiprocessing
import os
import time
from types import SimpleNamespace

import psutil
import pytest

from sysdeck import sampler as sampler_module
from sysdeck.models import ProcessRecord, RefreshScope, SensorReading
from sysdeck.sampler import HostSampler, HostSnapshot, read_sensors


def dummy_worker(duration: float = 30.0) -> None:
    """A dummy worker process that sleeps for a given duration."""
    try:
        time.sleep(duration)
    except (KeyboardInterrupt, SystemExit):
        pass


class TestHostSnapshot:
    """Tests for HostSnapshot dataclass."""

    def test_defaults_are_empty(self):
        snapshot = HostSnapshot()
        assert snapshot.processes == {}
        assert snapshot.sensors == []
        assert snapshot.users == {}
        assert snapshot.os_name is None

    def test_uses_slots(self):
        """Slots-based dataclasses don't have __dict__."""
        assert not hasattr(HostSnapshot(), "__dict__")

    def test_instances_do_not_share_collections(self):
        first, second = HostSnapshot(), HostSnapshot()
        first.users[0] = "root"
        assert second.users == {}


class TestHostSampler:
    """Tests for HostSampler against the live host."""

    def test_full_refresh_collects_host_state(self):
        sampler = HostSampler()
        sampler.refresh(RefreshScope.ALL)
        snapshot = sampler.snapshot_view()

        assert len(snapshot.processes) > 0
        assert os.getpid() in snapshot.processes
        assert snapshot.mem_total > 0
        assert 0 < snapshot.mem_used <= snapshot.mem_total
        assert snapshot.cpu_cores >= 1
        assert len(snapshot.cpu_per_core) >= 1
        assert snapshot.uptime_seconds > 0
        assert snapshot.os_name
        assert isinstance(snapshot.networks, dict)
        assert isinstance(snapshot.sensors, list)

    def test_refresh_without_scope_is_full(self):
        sampler = HostSampler()
        sampler.refresh()
        assert sampler.snapshot_view().processes

    def test_own_process_record(self):
        sampler = HostSampler()
        sampler.refresh(RefreshScope.PROCESSES)
        record = sampler.snapshot_view().processes[os.getpid()]

        assert isinstance(record, ProcessRecord)
        assert record.memory_rss > 0
        assert record.create_time == pytest.approx(psutil.Process().create_time(), abs=0.01)
        if psutil.POSIX:
            assert record.uid == os.getuid()

    @pytest.mark.skipif(not psutil.POSIX, reason="passwd database is POSIX only")
    def test_users_include_root(self):
        sampler = HostSampler()
        sampler.refresh(RefreshScope.USERS)
        users = sampler.snapshot_view().users

        assert users.get(0) == "root"

    def test_refresh_mutates_snapshot_in_place(self):
        snapshot = HostSnapshot()
        sampler = HostSampler(snapshot)
        processes = snapshot.processes

        sampler.refresh(RefreshScope.PROCESSES)
        sampler.refresh(RefreshScope.PROCESSES)

        assert sampler.snapshot_view() is snapshot
        assert snapshot.processes is processes
        assert processes

    def test_partial_refresh_leaves_other_fields(self):
        sampler = HostSampler()
        sampler.refresh(RefreshScope.MEMORY)
        snapshot = sampler.snapshot_view()

        assert snapshot.mem_total > 0
        assert snapshot.processes == {}
        assert snapshot.users == {}

    def test_failing_facility_does_not_block_others(self, monkeypatch):
        def broken(*args, **kwargs):
            raise psutil.AccessDenied()

        monkeypatch.setattr(psutil, "net_io_counters", broken)
        sampler = HostSampler()
        sampler.refresh(RefreshScope.NETWORK, RefreshScope.MEMORY)
        snapshot = sampler.snapshot_view()

        assert snapshot.networks == {}
        assert snapshot.mem_total > 0

    def test_exited_processes_disappear(self):
        child = multiprocessing.Process(target=dummy_worker, args=(30.0,))
        child.start()
        try:
            sampler = HostSampler()
            sampler.refresh(RefreshScope.PROCESSES)
            assert child.pid in sampler.snapshot_view().processes

            child.terminate()
            child.join(timeout=5.0)
            sampler.refresh(RefreshScope.PROCESSES)
            assert child.pid not in sampler.snapshot_view().processes
        finally:
            if child.is_alive():
                child.terminate()
            child.join(timeout=1.0)


class TestReadSensors:
    """Tests for sensor reading and labelling."""

    def test_labels_combine_chip_and_entry(self, monkeypatch):
        chips = {
            "coretemp": [
                SimpleNamespace(label="Package id 0", current=55.0),
                SimpleNamespace(label="Core 0", current=51.0),
            ],
            "nvme": [SimpleNamespace(label="", current=38.5)],
        }
        monkeypatch.setattr(psutil, "sensors_temperatures", lambda: chips, raising=False)

        assert read_sensors() == [
            SensorReading("coretemp Package id 0", 55.0),
            SensorReading("coretemp Core 0", 51.0),
            SensorReading("nvme", 38.5),
        ]

    def test_non_finite_readings_skipped(self, monkeypatch):
        chips = {"acpitz": [SimpleNamespace(label="", current=float("nan"))]}
        monkeypatch.setattr(psutil, "sensors_temperatures", lambda: chips, raising=False)

        assert read_sensors() == []

    def test_unreadable_sensors_yield_empty(self, monkeypatch):
        def broken():
            raise OSError("no hwmon")

        monkeypatch.setattr(psutil, "sensors_temperatures", broken, raising=False)
        assert read_sensors() == []

    def test_missing_sensor_support_yields_empty(self, monkeypatch):
        monkeypatch.delattr(psutil, "sensors_temperatures", raising=False)
        assert read_sensors() == []


def test_read_cpu_model_falls_back(monkeypatch, tmp_path):
    monkeypatch.setattr(sampler_module, "_CPUINFO", tmp_path / "missing")
    monkeypatch.setattr(sampler_module.platform, "processor", lambda: "x86_64")
    assert sampler_module.read_cpu_model() == "x86_64"


def test_read_cpu_model_from_cpuinfo(monkeypatch, tmp_path):
    cpuinfo = tmp_path / "cpuinfo"
    cpuinfo.write_text("processor\t: 0\nmodel name\t: Example CPU @ 3.00GHz\n", encoding="utf-8")
    monkeypatch.setattr(sampler_module, "_CPUINFO", cpuinfo)
    assert sampler_module.read_cpu_model() == "Example CPU @ 3.00GHz"
