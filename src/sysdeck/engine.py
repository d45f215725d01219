"""Telemetry snapshot and process-control engine for sysdeck."""

import logging
import os
import threading
from dataclasses import dataclass
from queue import Queue

from sysdeck import classifier, probes
from sysdeck.actuator import ProcessActuator
from sysdeck.config import EngineConfig
from sysdeck.logs import LogTailReader
from sysdeck.models import (
    ControlOutcome,
    GpuStats,
    HardwareInfo,
    LogEntry,
    ProcessInfo,
    RefreshScope,
    SecurityAudit,
    ServiceStatus,
    StartupEntry,
    SystemStats,
    Tier,
)
from sysdeck.probes import CommandProbe, GpuProbe, PciProbe
from sysdeck.sampler import HostSampler, HostSnapshot
from sysdeck.services import ServiceInspector

log = logging.getLogger(__name__)


@dataclass(slots=True)
class DashboardFrame:
    """Stats and top processes collected by one periodic refresh."""

    stats: SystemStats
    processes: list[ProcessInfo]


class TelemetryEngine:
    """
    Owns the host snapshot and serializes every operation on it.

    Each call that reads or refreshes the snapshot holds a single lock for
    its whole duration, including any probing it triggers. Service, startup
    and log operations do not touch the snapshot and run unlocked.

    Optionally runs a daemon thread that refreshes the snapshot every
    poll_rate seconds and pushes a DashboardFrame to a queue.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        update_queue: "Queue[DashboardFrame] | None" = None,
        *,
        sampler: HostSampler | None = None,
        gpu_probe: GpuProbe | None = None,
        pci_probe: PciProbe | None = None,
        services: ServiceInspector | None = None,
        log_reader: LogTailReader | None = None,
        refresh_on_start: bool = True,
    ) -> None:
        """
        Initialize the TelemetryEngine.

        Args:
            config: Engine configuration. Defaults to EngineConfig().
            update_queue: Queue receiving frames from the periodic refresh.
            sampler: Host sampler. A new one over an empty snapshot by default.
            gpu_probe: GPU probe. nvidia-smi by default.
            pci_probe: PCI listing probe. lspci by default.
            services: Service inspector. systemctl by default.
            log_reader: Log reader. journalctl by default.
            refresh_on_start: Perform a full refresh before returning.
        """
        self._config = config if config is not None else EngineConfig()
        timeout = self._config.probe_timeout

        self._lock = threading.Lock()
        self._sampler = sampler if sampler is not None else HostSampler()
        self._actuator = ProcessActuator(self._sampler.snapshot_view())
        self._gpu_probe = gpu_probe if gpu_probe is not None else GpuProbe(CommandProbe("nvidia-smi", timeout))
        self._pci_probe = pci_probe if pci_probe is not None else PciProbe(CommandProbe("lspci", timeout))
        self._services = services if services is not None else ServiceInspector(
            self._config.services,
            self._config.resolved_autostart_dir(),
            CommandProbe("systemctl", timeout),
        )
        self._log_reader = log_reader if log_reader is not None else LogTailReader(
            CommandProbe("journalctl", timeout),
            priority=self._config.log_priority,
        )

        self._queue: Queue[DashboardFrame] = update_queue if update_queue is not None else Queue()
        self._poll_rate = self._config.poll_rate
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

        if refresh_on_start:
            self.refresh(RefreshScope.ALL)

    @property
    def config(self) -> EngineConfig:
        """The engine's configuration."""
        return self._config

    @property
    def update_queue(self) -> "Queue[DashboardFrame]":
        """Queue receiving frames from the periodic refresh."""
        return self._queue

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate."""
        self._poll_rate = max(0.1, value)  # Minimum 0.1 seconds

    @property
    def is_running(self) -> bool:
        """Check if the periodic refresh thread is running."""
        return self._thread is not None and self._thread.is_alive()

    # Snapshot

    def refresh(self, *scopes: RefreshScope) -> None:
        """Refresh the given scopes of the snapshot."""
        with self._lock:
            self._sampler.refresh(*scopes)

    def snapshot_view(self) -> HostSnapshot:
        """Return the snapshot without refreshing. Callers must not mutate it."""
        return self._sampler.snapshot_view()

    # Reads

    def list_processes(self) -> list[ProcessInfo]:
        """Return the busiest processes, CPU descending, at most process_limit of them."""
        with self._lock:
            self._sampler.refresh(RefreshScope.PROCESSES, RefreshScope.CPU, RefreshScope.USERS)
            return self._rank_processes()

    def system_stats(self) -> SystemStats:
        """Return CPU, memory, network, thermal and GPU statistics."""
        with self._lock:
            self._sampler.refresh(
                RefreshScope.CPU,
                RefreshScope.MEMORY,
                RefreshScope.NETWORK,
                RefreshScope.COMPONENTS,
            )
            return self._build_stats()

    def gpu_stats(self) -> GpuStats:
        """Return GPU utilization and temperature, None where unavailable."""
        with self._lock:
            return self._gpu_probe.sample()

    def security_audit(self) -> SecurityAudit:
        """Return the security posture of the host."""
        with self._lock:
            self._sampler.refresh(RefreshScope.PROCESSES, RefreshScope.USERS)
            return classifier.build_security_audit(
                self._sampler.snapshot_view(),
                self._config.privileged_account,
                listening_ports=probes.count_listening_ports(),
                mac_status=probes.read_mac_status(),
                secure_boot=probes.read_secure_boot(),
            )

    def hardware_info(self) -> HardwareInfo:
        """Return CPU, memory, GPU and distribution identity."""
        with self._lock:
            self._sampler.refresh(RefreshScope.CPU, RefreshScope.MEMORY)
            return classifier.build_hardware_info(
                self._sampler.snapshot_view(),
                self._pci_probe.listing(),
            )

    def list_services(self) -> list[ServiceStatus]:
        """Return the state of every configured service."""
        return self._services.list_services()

    def list_startup_entries(self) -> list[StartupEntry]:
        """Return the user's autostart entries."""
        return self._services.list_startup_entries()

    def recent_logs(self, limit: int | None = None) -> list[LogEntry]:
        """Return the most recent error-level log lines."""
        return self._log_reader.recent_errors(limit if limit is not None else self._config.log_limit)

    # Writes

    def control_service(self, name: str, action: str) -> ControlOutcome:
        """Start, stop, restart, enable or disable a service."""
        return self._services.control_service(name, action)

    def toggle_startup(self, path: str | os.PathLike[str], enable: bool) -> ControlOutcome:
        """Enable or disable an autostart entry. Its path changes on success."""
        return self._services.toggle_startup(path, enable)

    def terminate(self, pid: int) -> ControlOutcome:
        """Kill a process from the last snapshot."""
        with self._lock:
            return self._actuator.terminate(pid)

    def suspend(self, pid: int) -> ControlOutcome:
        """Stop a process from the last snapshot."""
        with self._lock:
            return self._actuator.suspend(pid)

    def resume(self, pid: int) -> ControlOutcome:
        """Continue a process from the last snapshot."""
        with self._lock:
            return self._actuator.resume(pid)

    def set_priority(self, pid: int, tier: Tier | str) -> ControlOutcome:
        """Renice a process from the last snapshot."""
        with self._lock:
            return self._actuator.set_priority(pid, tier)

    # Periodic refresh

    def start(self) -> None:
        """Start the periodic refresh thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="TelemetryEngine",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the periodic refresh thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def collect_frame(self) -> DashboardFrame:
        """Refresh everything and return stats plus the top processes."""
        with self._lock:
            self._sampler.refresh(RefreshScope.ALL)
            return DashboardFrame(stats=self._build_stats(), processes=self._rank_processes())

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        while not self._stop_event.is_set():
            try:
                self._queue.put(self.collect_frame())
            except Exception:
                log.exception("Periodic refresh failed")

            # Wait for poll_rate seconds or until stop is requested
            self._stop_event.wait(timeout=self._poll_rate)

    def _rank_processes(self) -> list[ProcessInfo]:
        return classifier.rank_processes(
            self._sampler.snapshot_view(),
            self._config.privileged_account,
            self._config.process_limit,
        )

    def _build_stats(self) -> SystemStats:
        return classifier.build_system_stats(
            self._sampler.snapshot_view(),
            self._config.temperature_rules,
            self._gpu_probe.sample(),
        )
