"""Verification Test: Chaos Monkey - process churn while the engine is sampling.

Processes are spawned and killed, both from outside and through the engine,
while the periodic refresh keeps running. Vanished, zombie or denied
processes must never surface as exceptions.
"""

import multiprocessing
import random
import threading
import time
from queue import Empty

import psutil
import pytest

from sysdeck.engine import DashboardFrame, TelemetryEngine
from sysdeck.models import ControlOutcome, RefreshScope


def dummy_worker(duration: float = 60.0) -> None:
    """A dummy worker process that sleeps for a given duration."""
    try:
        time.sleep(duration)
    except (KeyboardInterrupt, SystemExit):
        pass


def _cleanup(processes) -> None:
    for p in processes:
        if p.is_alive():
            p.terminate()
    for p in processes:
        p.join(timeout=1.0)


class TestChaosMonkey:
    """Chaos Monkey verification suite tests."""

    def test_engine_survives_process_termination(self, engine: TelemetryEngine):
        """The periodic refresh keeps producing frames while processes die mid-poll."""
        processes = [multiprocessing.Process(target=dummy_worker, args=(60.0,)) for _ in range(30)]
        for p in processes:
            p.start()

        engine.poll_rate = 0.3
        queue = engine.update_queue
        try:
            engine.start()
            assert queue.get(timeout=5.0) is not None

            for p in random.sample(processes, 15):
                p.terminate()
                time.sleep(0.05)

            frames = 0
            start_time = time.time()
            while time.time() - start_time < 4.0:
                try:
                    frame = queue.get(timeout=1.0)
                except Empty:
                    continue
                assert isinstance(frame, DashboardFrame)
                frames += 1

            assert frames >= 3, f"Expected at least 3 frames after chaos, got {frames}"
            assert engine.is_running, "Engine should still be running after chaos"
        finally:
            engine.stop()
            _cleanup(processes)

    @pytest.mark.skipif(not psutil.POSIX, reason="signals are POSIX")
    def test_kills_race_with_refresh(self, engine: TelemetryEngine):
        """Kills through the engine interleave with the refresh thread without errors."""
        processes = [multiprocessing.Process(target=dummy_worker, args=(60.0,)) for _ in range(20)]
        for p in processes:
            p.start()
        engine.refresh(RefreshScope.PROCESSES)

        engine.poll_rate = 0.1
        outcomes: list[ControlOutcome] = []
        errors: list[BaseException] = []

        def killer():
            try:
                for p in processes:
                    outcomes.append(engine.terminate(p.pid))
                    time.sleep(0.02)
                # Second pass hits processes that are already gone
                for p in processes:
                    outcomes.append(engine.terminate(p.pid))
            except BaseException as exc:
                errors.append(exc)

        try:
            engine.start()
            thread = threading.Thread(target=killer)
            thread.start()
            thread.join(timeout=30.0)

            assert errors == []
            assert len(outcomes) == 40
            assert all(outcome in (ControlOutcome.OK, ControlOutcome.NOT_FOUND) for outcome in outcomes)
            assert outcomes[:20].count(ControlOutcome.OK) == 20
            assert engine.is_running
        finally:
            engine.stop()
            _cleanup(processes)

    def test_rapid_process_churn(self, engine: TelemetryEngine):
        """Rapid creation and destruction of processes does not stop the refresh."""
        engine.poll_rate = 0.2
        processes = []

        try:
            engine.start()

            start_time = time.time()
            while time.time() - start_time < 3.0:
                for _ in range(5):
                    p = multiprocessing.Process(target=dummy_worker, args=(10.0,))
                    p.start()
                    processes.append(p)

                alive = [p for p in processes if p.is_alive()]
                if len(alive) > 10:
                    for p in random.sample(alive, 3):
                        p.terminate()

                time.sleep(0.1)

            assert engine.is_running, "Engine crashed during rapid churn"
            assert engine.update_queue.get(timeout=3.0) is not None
        finally:
            engine.stop()
            _cleanup(processes)

    def test_listing_after_exit(self, engine: TelemetryEngine):
        """A process that exits between refreshes simply drops out of the listing."""
        p = multiprocessing.Process(target=dummy_worker, args=(60.0,))
        p.start()
        time.sleep(0.1)
        p.terminate()
        p.join(timeout=1.0)

        processes = engine.list_processes()

        assert p.pid not in {proc.pid for proc in processes}

    def test_zombie_process_handling(self, engine: TelemetryEngine):
        """Children that exit without being reaped do not break sampling."""
        engine.poll_rate = 0.5
        engine.start()

        try:
            p = multiprocessing.Process(target=dummy_worker, args=(0.1,))
            p.start()
            time.sleep(0.3)

            for _ in range(3):
                try:
                    frame = engine.update_queue.get(timeout=2.0)
                    assert isinstance(frame.processes, list)
                except Empty:
                    continue

            assert engine.security_audit().root_procs >= 0
            p.join(timeout=1.0)
            assert engine.is_running, "Engine should survive zombie processes"
        finally:
            engine.stop()
