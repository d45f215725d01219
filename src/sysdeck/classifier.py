"""Derived facts computed from a host snapshot."""

import re
from collections.abc import Iterable, Mapping, Sequence

from sysdeck.models import (
    UNKNOWN,
    GpuStats,
    HardwareInfo,
    ProcessInfo,
    ProcessRecord,
    SecurityAudit,
    SensorReading,
    SystemStats,
    TemperatureRule,
)
from sysdeck.sampler import HostSnapshot

SYSTEM_OWNER = "system"
NO_GPU = "integrated or unknown"

_GPU_CLASS_MARKERS = ("VGA", "3D")
_REVISION = re.compile(r"\s*\(rev [0-9a-fA-F]+\)\s*$")


def resolve_owner(uid: int | None, users: Mapping[int, str]) -> str:
    """
    Resolve a user id against the known accounts.

    Returns 'system' when the process reports no owner and 'unknown' when the
    id is not a known account.
    """
    if uid is None:
        return SYSTEM_OWNER
    return users.get(uid, UNKNOWN)


def to_process_info(record: ProcessRecord, users: Mapping[int, str], privileged_account: str) -> ProcessInfo:
    """Attach the resolved owner and privilege flag to a process record."""
    owner = resolve_owner(record.uid, users)
    return ProcessInfo(
        pid=record.pid,
        name=record.name,
        owner=owner,
        exe=record.exe,
        command_line=record.command_line,
        status=record.status,
        cpu_percent=record.cpu_percent,
        memory_rss=record.memory_rss,
        disk_read_bytes=record.disk_read_bytes,
        is_privileged=owner == privileged_account,
    )


def rank_processes(snapshot: HostSnapshot, privileged_account: str, limit: int) -> list[ProcessInfo]:
    """
    Return the busiest processes, sorted by CPU usage descending.

    The sort is stable, so ties keep enumeration order.
    """
    infos = [
        to_process_info(record, snapshot.users, privileged_account)
        for record in snapshot.processes.values()
    ]
    infos.sort(key=lambda info: info.cpu_percent, reverse=True)
    return infos[:limit]


def select_cpu_temperature(
    sensors: Sequence[SensorReading],
    rules: Iterable[TemperatureRule],
) -> float | None:
    """
    Pick the CPU temperature from labelled sensors.

    Labels are matched case-insensitively against each rule's substring. The
    sensor matched by the highest-priority rule wins; among sensors matched by
    the same rule, the first in enumeration order wins.

    Returns:
        The temperature in degrees Celsius, or None if no label matches.
    """
    ordered = sorted(rules, key=lambda rule: rule.priority, reverse=True)
    labels = [sensor.label.lower() for sensor in sensors]
    for rule in ordered:
        needle = rule.substring.lower()
        for sensor, label in zip(sensors, labels):
            if needle in label:
                return sensor.current
    return None


def build_system_stats(
    snapshot: HostSnapshot,
    rules: Iterable[TemperatureRule],
    gpu: GpuStats,
) -> SystemStats:
    """Build SystemStats from a refreshed snapshot and a GPU sample."""
    net_in = sum(counters.bytes_recv for counters in snapshot.networks.values())
    net_out = sum(counters.bytes_sent for counters in snapshot.networks.values())
    return SystemStats(
        cpu_util=snapshot.cpu_util,
        cpu_per_core=tuple(snapshot.cpu_per_core),
        mem_used=snapshot.mem_used,
        mem_total=snapshot.mem_total,
        net_in=net_in,
        net_out=net_out,
        cpu_temp=select_cpu_temperature(snapshot.sensors, rules),
        gpu_temp=gpu.temp,
        gpu_util=gpu.util,
        uptime=snapshot.uptime_seconds,
        proc_count=len(snapshot.processes),
    )


def count_privileged(snapshot: HostSnapshot, privileged_account: str) -> int:
    """Count processes owned by the privileged account."""
    return sum(
        1
        for record in snapshot.processes.values()
        if resolve_owner(record.uid, snapshot.users) == privileged_account
    )


def build_security_audit(
    snapshot: HostSnapshot,
    privileged_account: str,
    listening_ports: int | None,
    mac_status: str | None,
    secure_boot: bool | None,
) -> SecurityAudit:
    """Build a SecurityAudit. Missing OS identity is reported as 'unknown'."""
    return SecurityAudit(
        kernel_version=snapshot.kernel_version or UNKNOWN,
        os_name=snapshot.os_name or UNKNOWN,
        root_procs=count_privileged(snapshot, privileged_account),
        listening_ports=listening_ports,
        mac_status=mac_status,
        secure_boot=secure_boot,
    )


def parse_gpu_model(listing: str | None) -> str:
    """
    Extract the GPU model from an lspci listing.

    Takes the first device whose class contains 'VGA' or '3D' and returns
    the description after the last ':' without its revision suffix.
    """
    if not listing:
        return NO_GPU
    for line in listing.splitlines():
        # "00:02.0 VGA compatible controller: Intel Corporation UHD Graphics 620 (rev 07)"
        _, _, rest = line.partition(" ")
        device_class, sep, _ = rest.partition(":")
        if not sep or not any(marker in device_class for marker in _GPU_CLASS_MARKERS):
            continue
        model = _REVISION.sub("", line.rsplit(":", 1)[-1]).strip()
        if model:
            return model
    return NO_GPU


def build_hardware_info(snapshot: HostSnapshot, pci_listing: str | None) -> HardwareInfo:
    """Build HardwareInfo from the snapshot and an lspci listing."""
    return HardwareInfo(
        cpu_model=snapshot.cpu_model or UNKNOWN,
        cpu_cores=snapshot.cpu_cores,
        mem_total=snapshot.mem_total,
        gpu_model=parse_gpu_model(pci_listing),
        os_distro=snapshot.os_distro or snapshot.os_name or UNKNOWN,
    )
