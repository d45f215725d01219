"""
External probes for sysdeck.

A probe sources optional data from a tool or pseudo-file outside of psutil.
Every probe is bounded by a timeout and reports failure as None so callers
can mark the data unavailable. A tool that is not installed is looked up
only once.
"""

import logging
import shutil
import subprocess
from pathlib import Path

import psutil

from sysdeck.models import GpuStats

log = logging.getLogger(__name__)

SELINUX_ENFORCE = Path("/sys/fs/selinux/enforce")
APPARMOR_ENABLED = Path("/sys/module/apparmor/parameters/enabled")
SECURE_BOOT_VAR = Path(
    "/sys/firmware/efi/efivars/SecureBoot-8be4df61-93ca-11d2-aa0d-00e098032b8c"
)


class CommandProbe:
    """
    Runs one external command-line tool with a bounded wait.

    The tool's path is resolved on first use. If it is not installed the
    probe short-circuits every later call without spawning a process.
    """

    def __init__(self, tool: str, timeout: float = 2.0) -> None:
        """
        Initialize the CommandProbe.

        Args:
            tool: Executable name, looked up on PATH.
            timeout: Maximum seconds to wait for the tool to exit.
        """
        self._tool = tool
        self._timeout = timeout
        self._path: str | None = None
        self._missing = False

    @property
    def tool(self) -> str:
        """Name of the wrapped tool."""
        return self._tool

    @property
    def timeout(self) -> float:
        """Maximum seconds to wait for the tool."""
        return self._timeout

    def is_available(self) -> bool:
        """Check whether the tool is installed."""
        if self._missing:
            return False
        if self._path is None:
            self._path = shutil.which(self._tool)
            if self._path is None:
                log.debug("%s not found on PATH", self._tool)
                self._missing = True
                return False
        return True

    def run(self, *args: str) -> subprocess.CompletedProcess[str] | None:
        """
        Run the tool with the given arguments.

        Returns:
            The completed process (whatever its exit code), or None if the
            tool is missing, timed out or could not be started.
        """
        if not self.is_available():
            return None

        try:
            return subprocess.run(
                [self._path, *args],
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except subprocess.TimeoutExpired:
            log.debug("%s %s timed out after %.1fs", self._tool, " ".join(args), self._timeout)
            return None
        except FileNotFoundError:
            log.debug("%s disappeared from PATH", self._tool)
            self._missing = True
            return None
        except OSError as exc:
            log.debug("%s could not be started: %s", self._tool, exc)
            return None


class GpuProbe:
    """GPU utilization and temperature via nvidia-smi."""

    QUERY = ("--query-gpu=utilization.gpu,temperature.gpu", "--format=csv,noheader,nounits")

    def __init__(self, probe: CommandProbe | None = None) -> None:
        self._probe = probe if probe is not None else CommandProbe("nvidia-smi")

    def sample(self) -> GpuStats:
        """Sample the first GPU. Fields are None when unavailable."""
        result = self._probe.run(*self.QUERY)
        if result is None or result.returncode != 0:
            return GpuStats(util=None, temp=None)
        return parse_gpu_query(result.stdout)


def parse_gpu_query(output: str) -> GpuStats:
    """Parse 'util, temp' from the first line of nvidia-smi CSV output."""
    lines = output.strip().splitlines()
    if not lines:
        return GpuStats(util=None, temp=None)
    parts = [part.strip() for part in lines[0].split(",")]
    return GpuStats(
        util=_to_float(parts[0]) if len(parts) > 0 else None,
        temp=_to_float(parts[1]) if len(parts) > 1 else None,
    )


def _to_float(value: str) -> float | None:
    try:
        return float(value)
    except ValueError:
        # nvidia-smi reports '[N/A]' or '[Not Supported]' for missing fields
        return None


class PciProbe:
    """PCI device listing via lspci."""

    def __init__(self, probe: CommandProbe | None = None) -> None:
        self._probe = probe if probe is not None else CommandProbe("lspci")

    def listing(self) -> str | None:
        """Return lspci's output, or None if unavailable."""
        result = self._probe.run()
        if result is None or result.returncode != 0:
            return None
        return result.stdout


def read_mac_status() -> str | None:
    """
    Read the mandatory access control mode.

    Returns 'enforcing' or 'permissive' for SELinux, 'apparmor' when
    AppArmor is enabled, or None when neither can be determined.
    """
    try:
        value = SELINUX_ENFORCE.read_text(encoding="ascii").strip()
        return "enforcing" if value == "1" else "permissive"
    except OSError:
        pass
    try:
        if APPARMOR_ENABLED.read_text(encoding="ascii").strip().upper().startswith("Y"):
            return "apparmor"
    except OSError:
        pass
    return None


def read_secure_boot() -> bool | None:
    """
    Read the UEFI SecureBoot variable.

    Returns None on legacy-BIOS hosts or when the variable is unreadable.
    """
    try:
        data = SECURE_BOOT_VAR.read_bytes()
    except OSError:
        return None
    if not data:
        return None
    # 4 bytes of attributes followed by a single value byte
    return data[-1] == 1


def count_listening_ports() -> int | None:
    """Count distinct local ports in LISTEN state, or None if not permitted."""
    try:
        connections = psutil.net_connections(kind="inet")
    except (psutil.AccessDenied, OSError) as exc:
        log.debug("Listing sockets failed: %s", exc)
        return None
    return len({conn.laddr.port for conn in connections if conn.status == psutil.CONN_LISTEN and conn.laddr})
