"""Shared fixtures for sysdeck tests."""

import subprocess
import time
from collections.abc import Callable

import pytest

from sysdeck.config import EngineConfig
from sysdeck.engine import TelemetryEngine
from sysdeck.logs import LogTailReader
from sysdeck.probes import GpuProbe, PciProbe
from sysdeck.services import ServiceInspector


class FakeProbe:
    """Stands in for CommandProbe with canned responses keyed by arguments."""

    def __init__(self, tool: str = "fake", responses: dict | None = None, default=None) -> None:
        self.tool = tool
        self.responses: dict[tuple[str, ...], object] = responses or {}
        self.default = default
        self.calls: list[tuple[str, ...]] = []

    def is_available(self) -> bool:
        return True

    def run(self, *args: str):
        self.calls.append(args)
        response = self.responses.get(args, self.default)
        if callable(response):
            response = response(args)
        return response


def completed(stdout: str = "", returncode: int = 0, stderr: str = "") -> subprocess.CompletedProcess[str]:
    """Build a CompletedProcess as returned by subprocess.run(text=True)."""
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


def wait_for(predicate: Callable[[], bool], timeout: float = 3.0, interval: float = 0.05) -> bool:
    """Poll until predicate() is true or the timeout expires."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def autostart_dir(tmp_path):
    path = tmp_path / "autostart"
    path.mkdir()
    return path


@pytest.fixture
def systemctl():
    return FakeProbe("systemctl", default=completed(stdout="inactive\n", returncode=3))


@pytest.fixture
def journalctl():
    return FakeProbe("journalctl", default=completed(stdout=""))


@pytest.fixture
def engine(autostart_dir, systemctl, journalctl):
    """Engine over the real host with every external tool faked."""
    config = EngineConfig(autostart_dir=autostart_dir, services=("sshd", "docker"))
    eng = TelemetryEngine(
        config,
        gpu_probe=GpuProbe(FakeProbe("nvidia-smi")),
        pci_probe=PciProbe(FakeProbe("lspci")),
        services=ServiceInspector(config.services, autostart_dir, systemctl),
        log_reader=LogTailReader(journalctl),
    )
    yield eng
    eng.stop()
