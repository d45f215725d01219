"""sysdeck - Textual dashboard over the telemetry engine."""

import argparse
from enum import Enum
from queue import Empty

from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.widgets import DataTable, Footer, Static

from sysdeck.config import EngineConfig, load_config
from sysdeck.engine import DashboardFrame, TelemetryEngine
from sysdeck.logging_ import setup_logging
from sysdeck.models import ControlOutcome, ProcessInfo, SystemStats, Tier


class SortKey(Enum):
    """Sort keys for the process table."""

    CPU = "cpu"
    MEM = "mem"
    PID = "pid"
    USER = "user"


def format_bytes(size: int) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:5.1f}{unit}" if unit != "B" else f"{size:5d}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def format_uptime(seconds: float) -> str:
    """Format an uptime in seconds as '[N days, ]HH:MM:SS'."""
    days = int(seconds // 86400)
    hours = int((seconds % 86400) // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)
    if days > 0:
        return f"{days} days, {hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_temperature(value: float | None) -> str:
    """Format a temperature, or 'n/a' when unavailable."""
    return "n/a" if value is None else f"{value:.1f}°C"


def _bar(percent: float, color: str) -> str:
    bar_len = min(int(percent / 5), 20)  # Cap at 20 chars
    return f"[{color}]█[/{color}]" * bar_len + "[dim]░[/dim]" * (20 - bar_len)


class HeaderStats(Static):
    """Header widget showing CPU, memory, thermal and network statistics."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        min-height: 5;
        padding: 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize HeaderStats."""
        super().__init__(*args, **kwargs)
        self._stats: SystemStats | None = None

    def compose(self) -> ComposeResult:
        """Compose the header stats layout."""
        yield Horizontal(
            Static(self._get_cpu_info(), id="cpu-info"),
            Static(self._get_mem_info(), id="mem-info"),
        )

    def update_stats(self, stats: SystemStats) -> None:
        """Update the statistics from a SystemStats."""
        self._stats = stats
        self._refresh_display()

    def _refresh_display(self) -> None:
        """Refresh the display with current data."""
        try:
            self.query_one("#cpu-info", Static).update(self._get_cpu_info())
            self.query_one("#mem-info", Static).update(self._get_mem_info())
        except Exception:
            pass  # Widget not mounted yet

    def _get_cpu_info(self) -> str:
        """Get CPU info display."""
        if self._stats is None or not self._stats.cpu_per_core:
            return "Loading CPU info..."
        lines = []
        for i, usage in enumerate(self._stats.cpu_per_core):
            # Use escaped brackets for the bar container
            lines.append(f"CPU{i:<2} \\[{_bar(usage, 'green')}] {usage:5.1f}%")
        return "\n".join(lines)

    def _get_mem_info(self) -> str:
        """Get memory, thermal and network info display."""
        stats = self._stats
        if stats is None or stats.mem_total == 0:
            return "Loading memory info..."

        mem_percent = stats.mem_used / stats.mem_total * 100
        return (
            f"Mem\\[{_bar(mem_percent, 'cyan')}] "
            f"{format_bytes(stats.mem_used).strip()}/{format_bytes(stats.mem_total).strip()}\n"
            f"CPU temp: {format_temperature(stats.cpu_temp)}  GPU temp: {format_temperature(stats.gpu_temp)}\n"
            f"Net in: {format_bytes(stats.net_in).strip()}  out: {format_bytes(stats.net_out).strip()}\n"
            f"Tasks: {stats.proc_count}  Uptime: {format_uptime(stats.uptime)}"
        )


class ProcessTable(Container):
    """Container for the process data table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize ProcessTable."""
        super().__init__(*args, **kwargs)
        self._sort_key: SortKey = SortKey.CPU
        self._current_pids: set[int] = set()
        self._sort_reverse: bool = True  # Default: descending for CPU

    @property
    def sort_key(self) -> SortKey:
        """Get current sort key."""
        return self._sort_key

    def cycle_sort(self) -> SortKey:
        """Cycle to the next sort key and return it."""
        keys = list(SortKey)
        next_index = (keys.index(self._sort_key) + 1) % len(keys)
        self._sort_key = keys[next_index]
        self._sort_reverse = self._sort_key in (SortKey.CPU, SortKey.MEM)
        return self._sort_key

    def compose(self) -> ComposeResult:
        """Compose the process table."""
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"

        table.add_column("PID", key="pid", width=8)
        table.add_column("USER", key="user", width=10)
        table.add_column("!", key="privileged", width=2)
        table.add_column("S", key="status", width=9)
        table.add_column("CPU%", key="cpu", width=8)
        table.add_column("RES", key="rss", width=8)
        table.add_column("READ", key="read", width=8)
        table.add_column("Command", key="command")

    def selected_pid(self) -> int | None:
        """Return the PID of the highlighted row, if any."""
        table = self.query_one("#process-table", DataTable)
        if table.row_count == 0:
            return None
        try:
            row_key = table.coordinate_to_cell_key(table.cursor_coordinate).row_key
        except Exception:
            return None
        return int(row_key.value) if row_key.value is not None else None

    def update_processes(self, processes: list[ProcessInfo]) -> None:
        """Replace the table rows with the given processes."""
        table = self.query_one("#process-table", DataTable)
        cursor_row = table.cursor_row
        table.clear()
        for proc in self._sort_processes(processes):
            table.add_row(
                str(proc.pid),
                proc.owner[:10],
                "#" if proc.is_privileged else "",
                proc.status,
                f"{proc.cpu_percent:5.1f}",
                format_bytes(proc.memory_rss),
                format_bytes(proc.disk_read_bytes),
                (proc.command_line or proc.name)[:50],
                key=str(proc.pid),
            )
        if table.row_count:
            table.move_cursor(row=min(cursor_row, table.row_count - 1))
        self._current_pids = {proc.pid for proc in processes}

    def _sort_processes(self, processes: list[ProcessInfo]) -> list[ProcessInfo]:
        """Sort processes based on the current sort key."""
        key_func = {
            SortKey.CPU: lambda p: p.cpu_percent,
            SortKey.MEM: lambda p: p.memory_rss,
            SortKey.PID: lambda p: p.pid,
            SortKey.USER: lambda p: p.owner.lower(),
        }
        return sorted(processes, key=key_func[self._sort_key], reverse=self._sort_reverse)


class SysdeckApp(App):
    """Main sysdeck application."""

    TITLE = "sysdeck"
    SUB_TITLE = "System Telemetry & Process Control"

    CSS = """
    Screen {
        layout: vertical;
    }

    #header-stats {
        dock: top;
        height: auto;
        min-height: 6;
    }

    Horizontal {
        height: auto;
    }

    #cpu-info {
        width: 1fr;
        padding-right: 2;
    }

    #mem-info {
        width: 1fr;
        padding-left: 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("f6", "sort", "Sort"),
        ("k", "terminate", "Kill"),
        ("s", "suspend", "Suspend"),
        ("r", "resume", "Resume"),
        ("h", "priority('high')", "Prio high"),
        ("n", "priority('normal')", "Prio normal"),
        ("l", "priority('low')", "Prio low"),
    ]

    def __init__(self, engine: TelemetryEngine | None = None, config: EngineConfig | None = None) -> None:
        """
        Initialize the SysdeckApp.

        Args:
            engine: Engine to display. Built from config if omitted.
            config: Engine configuration used when no engine is given.
        """
        super().__init__()
        self._engine = engine if engine is not None else TelemetryEngine(config)
        self._update_queue = self._engine.update_queue

    @property
    def engine(self) -> TelemetryEngine:
        """The engine backing this app."""
        return self._engine

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield HeaderStats(id="header-stats")
        yield ProcessTable()
        yield Footer()

    def on_mount(self) -> None:
        """Start the periodic refresh when the app is mounted."""
        self._engine.start()
        self.set_interval(0.5, self._check_for_updates)

    def _check_for_updates(self) -> None:
        """Drain the queue and show the most recent frame."""
        frame = None
        while True:
            try:
                frame = self._update_queue.get_nowait()
            except Empty:
                break

        if frame is not None:
            self.show_frame(frame)

    def show_frame(self, frame: DashboardFrame) -> None:
        """Update the UI with a frame from the engine."""
        self.query_one("#header-stats", HeaderStats).update_stats(frame.stats)
        self.query_one(ProcessTable).update_processes(frame.processes)

    def _control(self, label: str, action) -> None:
        pid = self.query_one(ProcessTable).selected_pid()
        if pid is None:
            self.notify("No process selected", severity="warning")
            return
        outcome: ControlOutcome = action(pid)
        if outcome:
            self.notify(f"{label} {pid}: done")
        elif outcome is ControlOutcome.PERMISSION_DENIED:
            self.notify(f"{label} {pid}: permission denied, run as root", severity="error")
        else:
            self.notify(f"{label} {pid}: {outcome.value.replace('_', ' ')}", severity="warning")

    def action_sort(self) -> None:
        """Cycle through sort keys."""
        new_sort_key = self.query_one(ProcessTable).cycle_sort()
        self.notify(f"Sort: {new_sort_key.value.upper()}")

    def action_terminate(self) -> None:
        """Kill the selected process."""
        self._control("Kill", self._engine.terminate)

    def action_suspend(self) -> None:
        """Suspend the selected process."""
        self._control("Suspend", self._engine.suspend)

    def action_resume(self) -> None:
        """Resume the selected process."""
        self._control("Resume", self._engine.resume)

    def action_priority(self, tier: str) -> None:
        """Set the selected process's priority tier."""
        parsed = Tier.parse(tier)
        self._control(f"Priority {parsed.value}", lambda pid: self._engine.set_priority(pid, parsed))

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._engine.stop()
        self.exit()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="sysdeck system telemetry dashboard")
    parser.add_argument("--config", help="Path to JSON config")
    parser.add_argument("--log-level", help="Override log level from config")
    parser.add_argument("--log-file", help="Write logs to this file")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point for the sysdeck application."""
    args = build_parser().parse_args(argv)
    config = load_config(args.config) if args.config else EngineConfig()
    level = (args.log_level or config.log_level).upper()
    # The terminal belongs to the UI; only log to a file.
    setup_logging(level, log_file=args.log_file, console=False)

    app = SysdeckApp(config=config)
    app.run()


if __name__ == "__main__":
    main()
