"""Service and autostart inspection for sysdeck."""

import logging
import os
from collections.abc import Sequence
from pathlib import Path

from sysdeck.models import UNKNOWN, ControlOutcome, ServiceStatus, StartupEntry
from sysdeck.probes import CommandProbe

log = logging.getLogger(__name__)

ACTIVE_STATE = "active"
SERVICE_ACTIONS = frozenset({"start", "stop", "restart", "enable", "disable"})

ENABLED_SUFFIX = ".desktop"
DISABLED_SUFFIX = ".desktop.bak"

# systemctl exit status for an unknown unit
_NO_SUCH_UNIT = 4
_DENIED_MARKERS = ("access denied", "authentication", "interactive", "permission denied")


class ServiceInspector:
    """
    Reports and controls a fixed set of systemd services and the user's
    desktop autostart entries.
    """

    def __init__(
        self,
        services: Sequence[str],
        autostart_dir: Path,
        systemctl: CommandProbe | None = None,
    ) -> None:
        """
        Initialize the ServiceInspector.

        Args:
            services: Names of the services to report on.
            autostart_dir: Directory holding .desktop autostart files.
            systemctl: Probe wrapping the service manager CLI.
        """
        self._services = tuple(services)
        self._autostart_dir = Path(autostart_dir)
        self._systemctl = systemctl if systemctl is not None else CommandProbe("systemctl")

    @property
    def autostart_dir(self) -> Path:
        """Directory scanned for autostart entries."""
        return self._autostart_dir

    def list_services(self) -> list[ServiceStatus]:
        """Probe every configured service. A failed probe reports 'unknown'."""
        return [self.service_status(name) for name in self._services]

    def service_status(self, name: str) -> ServiceStatus:
        """Probe a single service."""
        # is-active exits non-zero for inactive units but still prints the state
        result = self._systemctl.run("is-active", name)
        status = result.stdout.strip() if result is not None else ""
        if not status:
            status = UNKNOWN
        return ServiceStatus(name=name, status=status, active=status == ACTIVE_STATE)

    def control_service(self, name: str, action: str) -> ControlOutcome:
        """
        Apply a service manager action to a service.

        Args:
            name: Service name.
            action: One of start, stop, restart, enable, disable.
        """
        action = action.strip().lower()
        if action not in SERVICE_ACTIONS or not name.strip():
            log.warning("Rejected service action %r on %r", action, name)
            return ControlOutcome.INVALID

        result = self._systemctl.run(action, name)
        if result is None:
            return ControlOutcome.FAILED
        if result.returncode == 0:
            log.info("Service %s: %s", name, action)
            return ControlOutcome.OK

        stderr = result.stderr.lower()
        if any(marker in stderr for marker in _DENIED_MARKERS):
            log.warning("Service %s: %s denied", name, action)
            return ControlOutcome.PERMISSION_DENIED
        if result.returncode == _NO_SUCH_UNIT or "not found" in stderr or "does not exist" in stderr:
            return ControlOutcome.NOT_FOUND
        log.debug("Service %s: %s exited with %s", name, action, result.returncode)
        return ControlOutcome.FAILED

    def list_startup_entries(self) -> list[StartupEntry]:
        """List autostart entries in file name order. Other files are ignored."""
        try:
            paths = sorted(self._autostart_dir.iterdir())
        except OSError as exc:
            log.debug("Reading %s failed: %s", self._autostart_dir, exc)
            return []

        entries: list[StartupEntry] = []
        for path in paths:
            if not path.is_file():
                continue
            name = path.name
            if name.endswith(DISABLED_SUFFIX):
                entries.append(
                    StartupEntry(name=name[: -len(DISABLED_SUFFIX)], path=str(path), enabled=False)
                )
            elif name.endswith(ENABLED_SUFFIX):
                entries.append(
                    StartupEntry(name=name[: -len(ENABLED_SUFFIX)], path=str(path), enabled=True)
                )
        return entries

    def toggle_startup(self, path: str | os.PathLike[str], enable: bool) -> ControlOutcome:
        """
        Enable or disable an autostart entry by renaming it.

        The entry's path changes; callers must list entries again afterwards.
        """
        source = Path(path)
        name = source.name
        if name.endswith(DISABLED_SUFFIX):
            enabled_path = source.with_name(name[: -len(".bak")])
            currently_enabled = False
        elif name.endswith(ENABLED_SUFFIX):
            enabled_path = source
            currently_enabled = True
        else:
            return ControlOutcome.INVALID

        if not source.exists():
            return ControlOutcome.NOT_FOUND
        if currently_enabled == enable:
            return ControlOutcome.OK

        target = enabled_path if enable else source.with_name(name + ".bak")
        if target.exists():
            log.warning("Not toggling %s: %s already exists", source, target)
            return ControlOutcome.FAILED

        try:
            source.rename(target)
        except PermissionError:
            return ControlOutcome.PERMISSION_DENIED
        except FileNotFoundError:
            return ControlOutcome.NOT_FOUND
        except OSError as exc:
            log.debug("Renaming %s failed: %s", source, exc)
            return ControlOutcome.FAILED

        log.info("Startup entry %s %s", target, "enabled" if enable else "disabled")
        return ControlOutcome.OK
