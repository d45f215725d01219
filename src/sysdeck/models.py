"""Data models for sysdeck."""

from dataclasses import dataclass
from enum import Enum

# Marker for string fields whose value could not be determined.
UNKNOWN = "unknown"


class RefreshScope(Enum):
    """Subset of OS facilities re-queried by a refresh."""

    PROCESSES = "processes"
    CPU = "cpu"
    MEMORY = "memory"
    NETWORK = "network"
    COMPONENTS = "components"
    USERS = "users"
    ALL = "all"


class Tier(Enum):
    """Coarse scheduling priority."""

    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @classmethod
    def parse(cls, value: "str | Tier") -> "Tier":
        """Parse a tier name case-insensitively, falling back to NORMAL."""
        if isinstance(value, Tier):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.NORMAL


class ControlOutcome(Enum):
    """Result of a control action. Truthy only when the action succeeded."""

    OK = "ok"
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    INVALID = "invalid"
    FAILED = "failed"

    def __bool__(self) -> bool:
        return self is ControlOutcome.OK


@dataclass(slots=True, frozen=True)
class TemperatureRule:
    """Sensor-label substring that identifies a CPU temperature sensor.

    Rules with a higher priority win over rules with a lower one.
    """

    substring: str
    priority: int


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """One live OS process as of the last refresh."""

    pid: int
    name: str
    uid: int | None  # None when the OS reports no owning user
    exe: str
    command_line: str
    status: str  # 'running', 'sleeping', 'zombie', etc.
    cpu_percent: float  # 0.0 - 100.0 * core_count
    memory_rss: int  # Bytes
    disk_read_bytes: int  # Cumulative bytes
    create_time: float


@dataclass(slots=True, frozen=True)
class ProcessInfo:
    """Process record with its owner resolved, as returned to callers."""

    pid: int
    name: str
    owner: str
    exe: str
    command_line: str
    status: str
    cpu_percent: float
    memory_rss: int
    disk_read_bytes: int
    is_privileged: bool


@dataclass(slots=True, frozen=True)
class NetCounters:
    """Cumulative byte counters of one network interface."""

    bytes_recv: int
    bytes_sent: int


@dataclass(slots=True, frozen=True)
class SensorReading:
    """A labelled thermal sensor reading in degrees Celsius."""

    label: str
    current: float


@dataclass(slots=True, frozen=True)
class GpuStats:
    """GPU utilization and temperature. None means unavailable."""

    util: float | None
    temp: float | None


@dataclass(slots=True, frozen=True)
class SystemStats:
    """Aggregate host statistics."""

    cpu_util: float
    cpu_per_core: tuple[float, ...]
    mem_used: int
    mem_total: int
    net_in: int  # Cumulative bytes since boot, summed over interfaces
    net_out: int
    cpu_temp: float | None
    gpu_temp: float | None
    gpu_util: float | None
    uptime: float
    proc_count: int


@dataclass(slots=True, frozen=True)
class SecurityAudit:
    """Coarse security posture of the host. None means unknown."""

    kernel_version: str
    os_name: str
    root_procs: int
    listening_ports: int | None
    mac_status: str | None  # 'enforcing', 'permissive', 'apparmor'
    secure_boot: bool | None


@dataclass(slots=True, frozen=True)
class ServiceStatus:
    """State of a named service as reported by the service manager."""

    name: str
    status: str
    active: bool


@dataclass(slots=True, frozen=True)
class StartupEntry:
    """A desktop autostart entry."""

    name: str
    path: str
    enabled: bool


@dataclass(slots=True, frozen=True)
class HardwareInfo:
    """Hardware identity of the host."""

    cpu_model: str
    cpu_cores: int
    mem_total: int  # Bytes
    gpu_model: str
    os_distro: str


@dataclass(slots=True, frozen=True)
class LogEntry:
    """A single system log line."""

    time: str
    msg: str
