import asyncio
import threading

import requests

from unsealer.config import UnsealerConfig
from unsealer.models import FailureReason, Outcome, ReconcileResult
from unsealer.services.scheduler.poll_service import TOPIC_OUTCOME, TOPIC_SWEEP_FINISHED, PollScheduler
from conftest import TARGET_A, TARGET_B


class StubDriver:
    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.calls = []
        self.lock = threading.Lock()

    def reconcile(self, target):
        with self.lock:
            self.calls.append(target)
        if target in self.fail_on:
            raise RuntimeError(f"boom at {target}")
        return ReconcileResult(target=target, outcome=Outcome.ALREADY_UNSEALED)


class BlockingDriver(StubDriver):
    def __init__(self):
        super().__init__()
        self.release = threading.Event()

    def reconcile(self, target):
        self.release.wait(timeout=5)
        return super().reconcile(target)


def _config(*targets, interval_ms=20):
    return UnsealerConfig(target_vault_addrs=targets, poll_interval_ms=interval_ms)


def test_failure_on_one_target_does_not_stop_others(event_bus):
    driver = StubDriver(fail_on={TARGET_A})
    scheduler = PollScheduler(_config(TARGET_A, TARGET_B), driver, bus=event_bus)

    results = asyncio.run(scheduler.run_sweep())

    assert sorted(driver.calls) == sorted([TARGET_A, TARGET_B])
    by_target = {r.target: r for r in results}
    assert by_target[TARGET_A].outcome == Outcome.FAILED
    assert by_target[TARGET_A].reason == FailureReason.UNEXPECTED
    assert by_target[TARGET_B].outcome == Outcome.ALREADY_UNSEALED


def test_results_keep_target_order(event_bus):
    scheduler = PollScheduler(_config(TARGET_B, TARGET_A), StubDriver(), bus=event_bus)

    results = asyncio.run(scheduler.run_sweep())

    assert [r.target for r in results] == [TARGET_B, TARGET_A]


def test_empty_target_list_only_warns(event_bus, caplog):
    driver = StubDriver()
    scheduler = PollScheduler(_config(), driver, bus=event_bus)

    results = asyncio.run(scheduler.run_sweep())

    assert results == []
    assert driver.calls == []
    assert "TARGET_VAULT_ADDRS" in caplog.text


def test_outcomes_are_published_on_the_bus(event_bus):
    outcomes, summaries = [], []
    event_bus.subscribe(TOPIC_OUTCOME)(outcomes.append)
    event_bus.subscribe(TOPIC_SWEEP_FINISHED)(summaries.append)
    scheduler = PollScheduler(_config(TARGET_A, TARGET_B), StubDriver(fail_on={TARGET_B}), bus=event_bus)

    asyncio.run(scheduler.run_sweep())

    assert {o["target"] for o in outcomes} == {TARGET_A, TARGET_B}
    assert summaries == [{"targets": 2, "outcomes": {"already_unsealed": 1, "failed": 1}, "failures": 1}]


def test_overlapping_sweep_is_skipped(event_bus):
    driver = BlockingDriver()
    scheduler = PollScheduler(_config(TARGET_A), driver, bus=event_bus)

    async def scenario():
        first = asyncio.create_task(scheduler.run_sweep())
        await asyncio.sleep(0.05)
        second = await scheduler.run_sweep()
        driver.release.set()
        return await first, second

    first, second = asyncio.run(scenario())

    assert second is None
    assert [r.target for r in first] == [TARGET_A]
    assert driver.calls == [TARGET_A]
    assert scheduler.sweeps_skipped == 1


def test_parallelism_is_bounded(event_bus):
    active, peak = [0], [0]
    lock = threading.Lock()

    class CountingDriver(StubDriver):
        def reconcile(self, target):
            with lock:
                active[0] += 1
                peak[0] = max(peak[0], active[0])
            threading.Event().wait(0.02)
            with lock:
                active[0] -= 1
            return super().reconcile(target)

    targets = tuple(f"https://vault-{i}:8200" for i in range(6))
    config = UnsealerConfig(target_vault_addrs=targets, max_parallel_targets=2)
    scheduler = PollScheduler(config, CountingDriver(), bus=event_bus)

    results = asyncio.run(scheduler.run_sweep())

    assert len(results) == 6
    assert peak[0] <= 2


def test_loop_sweeps_immediately_and_repeats_until_stopped(event_bus):
    driver = StubDriver()
    scheduler = PollScheduler(_config(TARGET_A, interval_ms=20), driver, bus=event_bus)

    async def scenario():
        scheduler.start()
        assert scheduler.is_running
        await asyncio.sleep(0.15)
        await scheduler.stop()

    asyncio.run(scenario())

    assert scheduler.sweeps_completed >= 2
    assert not scheduler.is_running
    assert len(driver.calls) >= 2


def test_sweep_against_fake_vaults(config, driver, transport, event_bus):
    transport.nodes[TARGET_A].seal_status = {"sealed": True, "t": 2, "progress": 0}
    transport.nodes[TARGET_A].unseal_responses = [
        {"sealed": True, "t": 2, "progress": 1},
        {"sealed": False, "t": 2, "progress": 0},
    ]
    # Ziel B ist nicht erreichbar, darf A nicht beeinflussen
    transport.nodes[TARGET_B].probe_error = requests.exceptions.ConnectionError("refused")
    scheduler = PollScheduler(config, driver, bus=event_bus)

    results = asyncio.run(scheduler.run_sweep())

    by_target = {r.target: r for r in results}
    assert by_target[TARGET_A].outcome == Outcome.UNSEALED
    assert by_target[TARGET_B].reason == FailureReason.UNREACHABLE
    assert transport.nodes[TARGET_A].submitted == ["k1", "k2"]
