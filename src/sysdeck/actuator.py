"""Process control actions for sysdeck."""

import logging
from collections.abc import Callable

import psutil

from sysdeck.models import ControlOutcome, Tier
from sysdeck.sampler import HostSnapshot

log = logging.getLogger(__name__)

_WINDOWS_PRIORITY = {
    Tier.HIGH: getattr(psutil, "HIGH_PRIORITY_CLASS", 128),
    Tier.NORMAL: getattr(psutil, "NORMAL_PRIORITY_CLASS", 32),
    Tier.LOW: getattr(psutil, "IDLE_PRIORITY_CLASS", 64),
}

_POSIX_PRIORITY = {
    Tier.HIGH: -20,
    Tier.NORMAL: 0,
    Tier.LOW: 19,
}


def priority_for_tier(tier: Tier) -> int:
    """Map a tier to the platform's scheduling priority value."""
    table = _WINDOWS_PRIORITY if psutil.WINDOWS else _POSIX_PRIORITY
    return table[tier]


class ProcessActuator:
    """
    Delivers control actions to processes known to the snapshot.

    A PID absent from the last refresh, or reused by a different process
    since, is reported as NOT_FOUND. Actions are not retried.
    """

    def __init__(self, snapshot: HostSnapshot) -> None:
        """
        Initialize the ProcessActuator.

        Args:
            snapshot: Snapshot used for existence checks.
        """
        self._snapshot = snapshot

    def terminate(self, pid: int) -> ControlOutcome:
        """Send SIGKILL. Success means delivery, not that the process has exited."""
        return self._apply(pid, "terminate", lambda proc: proc.kill())

    def suspend(self, pid: int) -> ControlOutcome:
        """Send SIGSTOP."""
        return self._apply(pid, "suspend", lambda proc: proc.suspend())

    def resume(self, pid: int) -> ControlOutcome:
        """Send SIGCONT."""
        return self._apply(pid, "resume", lambda proc: proc.resume())

    def set_priority(self, pid: int, tier: Tier | str) -> ControlOutcome:
        """Renice a process. Unrecognized tiers are treated as NORMAL."""
        priority = priority_for_tier(Tier.parse(tier))
        return self._apply(pid, f"set priority {priority}", lambda proc: proc.nice(priority))

    def _lookup(self, pid: int) -> psutil.Process | None:
        """Return the live process for a snapshot PID, or None if it is gone or reused."""
        record = self._snapshot.processes.get(pid)
        if record is None:
            return None
        proc = psutil.Process(pid)
        if record.create_time and abs(proc.create_time() - record.create_time) > 0.01:
            log.debug("PID %s was reused since the last refresh", pid)
            return None
        return proc

    def _apply(self, pid: int, action: str, func: Callable[[psutil.Process], object]) -> ControlOutcome:
        try:
            proc = self._lookup(pid)
            if proc is None:
                return ControlOutcome.NOT_FOUND
            func(proc)
        except (psutil.NoSuchProcess, psutil.ZombieProcess) as exc:
            log.debug("%s pid=%s failed: %s", action, pid, exc)
            return ControlOutcome.NOT_FOUND
        except psutil.AccessDenied as exc:
            log.warning("%s pid=%s denied: %s", action, pid, exc)
            return ControlOutcome.PERMISSION_DENIED
        except (psutil.Error, OSError, ValueError) as exc:
            log.debug("%s pid=%s failed: %s", action, pid, exc)
            return ControlOutcome.FAILED

        log.info("%s pid=%s", action, pid)
        return ControlOutcome.OK
