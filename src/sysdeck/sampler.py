"""Host sampling for sysdeck."""

import logging
import math
import platform
import time
from dataclasses import dataclass, field
from pathlib import Path

import psutil

from sysdeck.models import NetCounters, ProcessRecord, RefreshScope, SensorReading

try:
    import pwd
except ImportError:  # Windows has no passwd database
    pwd = None

log = logging.getLogger(__name__)

_PROCESS_ATTRS = [
    "pid",
    "name",
    "exe",
    "cmdline",
    "status",
    "cpu_percent",
    "memory_info",
    "create_time",
]
if psutil.POSIX:
    _PROCESS_ATTRS.append("uids")
if hasattr(psutil.Process, "io_counters"):
    _PROCESS_ATTRS.append("io_counters")

_CPUINFO = Path("/proc/cpuinfo")


@dataclass(slots=True)
class HostSnapshot:
    """
    Mutable view of host state as of the last refresh.

    Fields are refreshed independently, so values of different fields may
    come from slightly different moments.
    """

    processes: dict[int, ProcessRecord] = field(default_factory=dict)
    cpu_per_core: list[float] = field(default_factory=list)
    cpu_util: float = 0.0
    cpu_model: str | None = None
    cpu_cores: int = 0
    mem_used: int = 0
    mem_total: int = 0
    networks: dict[str, NetCounters] = field(default_factory=dict)
    sensors: list[SensorReading] = field(default_factory=list)
    uptime_seconds: float = 0.0
    os_name: str | None = None
    kernel_version: str | None = None
    os_distro: str | None = None
    users: dict[int, str] = field(default_factory=dict)


class HostSampler:
    """
    Refreshes a HostSnapshot from the operating system using psutil.

    Not thread-safe on its own; the engine serializes access. A failure to
    read one facility never prevents the others from being read.
    """

    def __init__(self, snapshot: HostSnapshot | None = None) -> None:
        """
        Initialize the HostSampler.

        Args:
            snapshot: Snapshot to refresh in place. A new empty one by default.
        """
        self._snapshot = snapshot if snapshot is not None else HostSnapshot()
        self._refreshers = {
            RefreshScope.PROCESSES: self._refresh_processes,
            RefreshScope.CPU: self._refresh_cpu,
            RefreshScope.MEMORY: self._refresh_memory,
            RefreshScope.NETWORK: self._refresh_network,
            RefreshScope.COMPONENTS: self._refresh_components,
            RefreshScope.USERS: self._refresh_users,
        }
        # Initialize CPU percent (first call returns 0.0)
        psutil.cpu_percent(percpu=True)

    def snapshot_view(self) -> HostSnapshot:
        """Return the current snapshot without refreshing it. Callers must not mutate it."""
        return self._snapshot

    def refresh(self, *scopes: RefreshScope) -> None:
        """
        Re-query the OS for the given scopes and update the snapshot in place.

        Args:
            scopes: Facilities to refresh. RefreshScope.ALL refreshes everything.
        """
        requested = set(scopes) or {RefreshScope.ALL}
        if RefreshScope.ALL in requested:
            requested = set(self._refreshers)
            self._refresh_identity()

        for scope, refresher in self._refreshers.items():
            if scope not in requested:
                continue
            try:
                refresher()
            except (psutil.Error, OSError) as exc:
                log.debug("Refresh of %s failed: %s", scope.value, exc)

        self._refresh_uptime()

    def _refresh_processes(self) -> None:
        """
        Rebuild process records from the live process table.

        Uses psutil.process_iter() so per-process CPU usage accumulates across
        calls. Processes that exit or deny access mid-read are skipped.
        """
        records: dict[int, ProcessRecord] = {}

        for proc in psutil.process_iter(attrs=_PROCESS_ATTRS, ad_value=None):
            try:
                info = proc.info

                cmdline = info.get("cmdline") or []
                name = info.get("name") or ""

                mem_info = info.get("memory_info")
                io = info.get("io_counters")
                uids = info.get("uids")

                record = ProcessRecord(
                    pid=info["pid"],
                    name=name,
                    uid=uids.real if uids is not None else None,
                    exe=info.get("exe") or "",
                    command_line=" ".join(cmdline),
                    status=info.get("status") or "unknown",
                    cpu_percent=info.get("cpu_percent") or 0.0,
                    memory_rss=mem_info.rss if mem_info else 0,
                    disk_read_bytes=io.read_bytes if io else 0,
                    create_time=info.get("create_time") or 0.0,
                )
                records[record.pid] = record

            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue

        processes = self._snapshot.processes
        processes.clear()
        processes.update(records)

    def _refresh_cpu(self) -> None:
        per_core = psutil.cpu_percent(percpu=True)
        self._snapshot.cpu_per_core[:] = per_core
        self._snapshot.cpu_util = sum(per_core) / len(per_core) if per_core else 0.0
        self._snapshot.cpu_cores = psutil.cpu_count(logical=True) or len(per_core)
        if self._snapshot.cpu_model is None:
            self._snapshot.cpu_model = read_cpu_model()

    def _refresh_memory(self) -> None:
        mem = psutil.virtual_memory()
        self._snapshot.mem_used = mem.used
        self._snapshot.mem_total = mem.total

    def _refresh_network(self) -> None:
        counters = psutil.net_io_counters(pernic=True)
        networks = self._snapshot.networks
        networks.clear()
        for nic, stats in counters.items():
            networks[nic] = NetCounters(bytes_recv=stats.bytes_recv, bytes_sent=stats.bytes_sent)

    def _refresh_components(self) -> None:
        self._snapshot.sensors[:] = read_sensors()

    def _refresh_users(self) -> None:
        if pwd is None:
            return
        users = self._snapshot.users
        users.clear()
        for entry in pwd.getpwall():
            users.setdefault(entry.pw_uid, entry.pw_name)

    def _refresh_uptime(self) -> None:
        try:
            self._snapshot.uptime_seconds = time.time() - psutil.boot_time()
        except (psutil.Error, OSError) as exc:
            log.debug("Reading boot time failed: %s", exc)

    def _refresh_identity(self) -> None:
        """Read OS name, kernel version and distribution name."""
        self._snapshot.os_name = platform.system() or None
        self._snapshot.kernel_version = platform.release() or None
        self._snapshot.os_distro = read_os_distro()


def read_sensors() -> list[SensorReading]:
    """
    Read all thermal sensors, labelled as "<chip> <label>".

    Returns an empty list when the platform exposes no sensors.
    """
    sensors_temperatures = getattr(psutil, "sensors_temperatures", None)
    if sensors_temperatures is None:
        return []
    try:
        chips = sensors_temperatures()
    except (psutil.Error, OSError, RuntimeError) as exc:
        log.debug("Reading sensors failed: %s", exc)
        return []

    readings: list[SensorReading] = []
    for chip, entries in chips.items():
        for entry in entries:
            current = entry.current
            if current is None or not math.isfinite(current):
                continue
            label = f"{chip} {entry.label}".strip() if entry.label else chip
            readings.append(SensorReading(label=label, current=float(current)))
    return readings


def read_cpu_model() -> str | None:
    """Return the CPU model name, or None if it cannot be determined."""
    try:
        for line in _CPUINFO.read_text(encoding="utf-8", errors="replace").splitlines():
            key, _, value = line.partition(":")
            if key.strip() in ("model name", "Hardware", "Processor") and value.strip():
                return value.strip()
    except OSError:
        pass
    return platform.processor() or None


def read_os_distro() -> str | None:
    """Return the distribution's pretty name from os-release, if any."""
    try:
        release = platform.freedesktop_os_release()
    except (OSError, AttributeError):
        return None
    return release.get("PRETTY_NAME") or release.get("NAME") or None
