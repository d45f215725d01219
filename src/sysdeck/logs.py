"""Recent high-severity system log lines."""

import logging
import re

from sysdeck.models import LogEntry
from sysdeck.probes import CommandProbe

log = logging.getLogger(__name__)

_ISO_TIMESTAMP = re.compile(r"^\d{4}-\d{2}-\d{2}T\S+$")
_SYSLOG_TIMESTAMP = re.compile(r"^([A-Z][a-z]{2} [ \d]\d \d{2}:\d{2}:\d{2})\s+(.*)$")


def parse_log_line(line: str) -> LogEntry:
    """
    Split a journal line into its leading timestamp and the rest.

    If no timestamp can be isolated, the whole line is used for both.
    """
    line = line.rstrip()
    match = _SYSLOG_TIMESTAMP.match(line)
    if match:
        return LogEntry(time=match.group(1), msg=match.group(2))

    head, _, rest = line.partition(" ")
    if _ISO_TIMESTAMP.match(head) and rest.strip():
        return LogEntry(time=head, msg=rest.strip())
    return LogEntry(time=line, msg=line)


class LogTailReader:
    """Reads the most recent error-level lines from the systemd journal."""

    def __init__(self, journalctl: CommandProbe | None = None, priority: str = "3") -> None:
        """
        Initialize the LogTailReader.

        Args:
            journalctl: Probe wrapping journalctl.
            priority: Highest syslog priority to include (3 = err).
        """
        self._journalctl = journalctl if journalctl is not None else CommandProbe("journalctl")
        self._priority = priority

    def recent_errors(self, limit: int) -> list[LogEntry]:
        """Return up to `limit` entries in journal order. Empty on any failure."""
        if limit <= 0:
            return []
        result = self._journalctl.run(
            "-p", self._priority, "-n", str(limit), "--output=short-iso", "--no-pager"
        )
        if result is None:
            return []
        if result.returncode != 0:
            log.debug("journalctl exited with %s: %s", result.returncode, result.stderr.strip())
            return []

        entries: list[LogEntry] = []
        for line in result.stdout.splitlines():
            # Journal markers such as "-- No entries --" or "-- Boot ... --"
            if not line.strip() or line.startswith("-- "):
                continue
            entries.append(parse_log_line(line))
        return entries[-limit:]
