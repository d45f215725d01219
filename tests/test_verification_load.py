"""Verification Test: Load Test - many processes on the host.

The listing must stay truncated to the configured limit and a full refresh
must stay fast even with a few hundred extra processes.
"""

import multiprocessing
import os
import time

import pytest

from sysdeck.models import RefreshScope


def dummy_worker(duration: float = 30.0) -> None:
    """A dummy worker process that sleeps for a given duration."""
    try:
        time.sleep(duration)
    except (KeyboardInterrupt, SystemExit):
        pass


@pytest.fixture
def dummy_processes():
    """Spawn sleeping processes, fewer of them on CI."""
    is_ci = os.environ.get("CI", "false").lower() == "true"
    num_processes = 100 if is_ci else 300

    processes = []
    for _ in range(num_processes):
        p = multiprocessing.Process(target=dummy_worker, args=(30.0,))
        p.start()
        processes.append(p)

    time.sleep(0.5)

    yield processes

    for p in processes:
        if p.is_alive():
            p.terminate()
    for p in processes:
        p.join(timeout=1.0)


class TestLoad:
    """Load verification suite tests."""

    def test_snapshot_holds_every_process(self, engine, dummy_processes):
        engine.refresh(RefreshScope.PROCESSES)

        pids = set(engine.snapshot_view().processes)
        seen = sum(1 for p in dummy_processes if p.pid in pids)

        assert seen >= len(dummy_processes) // 2

    def test_listing_is_truncated(self, engine, dummy_processes):
        processes = engine.list_processes()

        assert len(processes) == 60
        cpus = [proc.cpu_percent for proc in processes]
        assert cpus == sorted(cpus, reverse=True)

    def test_full_refresh_time_under_threshold(self, engine, dummy_processes):
        start = time.perf_counter()
        frame = engine.collect_frame()
        elapsed = time.perf_counter() - start

        assert elapsed < 2.0, f"Full refresh took {elapsed:.2f}s, expected < 2.0s"
        assert frame.stats.proc_count >= len(dummy_processes)

    def test_poll_cycles_with_load(self, engine, dummy_processes):
        engine.poll_rate = 0.2
        engine.start()
        try:
            frames = [engine.update_queue.get(timeout=5.0) for _ in range(3)]
        finally:
            engine.stop()

        assert all(len(frame.processes) <= 60 for frame in frames)
