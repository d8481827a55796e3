import asyncio
import time
from collections import Counter
from typing import List, Optional

from unsealer.bus import GlobalEventBus, bus as global_bus
from unsealer.config import UnsealerConfig
from unsealer.logger import get_logger
from unsealer.models import FailureReason, Outcome, ReconcileResult
from unsealer.services.vault.unseal_driver import UnsealDriver

log = get_logger("PollScheduler")

TOPIC_OUTCOME = "vault:unseal_outcome"
TOPIC_SWEEP_FINISHED = "unsealer:sweep_finished"


class PollScheduler:
    """
    Startet pro Intervall einen Sweep über alle Ziel-Nodes.
    Läuft ein Sweep noch, wird der nächste übersprungen (skip-if-running).
    """

    def __init__(self, config: UnsealerConfig, driver: UnsealDriver, bus: GlobalEventBus = global_bus):
        self.targets = config.target_vault_addrs
        self.interval_s = config.poll_interval_s
        self.max_parallel = config.max_parallel_targets
        self.driver = driver
        self.bus = bus
        self._task: Optional[asyncio.Task] = None
        self._sweep_running = False
        self.sweeps_completed = 0
        self.sweeps_skipped = 0

    async def run_sweep(self) -> Optional[List[ReconcileResult]]:
        if self._sweep_running:
            self.sweeps_skipped += 1
            log.warning("⏭️ Vorheriger Sweep läuft noch, überspringe diesen Zyklus.")
            return None

        log.info("--- Starte neuen Poll-Zyklus ---")
        if not self.targets:
            log.warning("Keine Ziel-Vaults konfiguriert. Setze TARGET_VAULT_ADDRS.")
            return []

        self._sweep_running = True
        try:
            semaphore = asyncio.Semaphore(self.max_parallel)
            results = await asyncio.gather(*(self._reconcile_guarded(t, semaphore) for t in self.targets))
        finally:
            self._sweep_running = False

        self.sweeps_completed += 1
        counts = Counter(r.outcome.value for r in results)
        failures = sum(1 for r in results if r.is_failure)
        self.bus.emit(TOPIC_SWEEP_FINISHED, {"targets": len(results), "outcomes": dict(counts), "failures": failures})
        return list(results)

    async def _reconcile_guarded(self, target: str, semaphore: asyncio.Semaphore) -> ReconcileResult:
        async with semaphore:
            try:
                # hvac blockiert, daher im Thread
                result = await asyncio.to_thread(self.driver.reconcile, target)
            except Exception as e:
                log.error(f"❌ Unerwarteter Fehler bei {target}: {e}", exc_info=True)
                result = ReconcileResult(target=target, outcome=Outcome.FAILED,
                                         reason=FailureReason.UNEXPECTED, detail=str(e))

        self.bus.emit(TOPIC_OUTCOME, result.to_event())
        return result

    async def _poll_loop(self):
        log.info(f"🔄 Starte Poll-Loop (Intervall: {self.interval_s:g}s)...")
        while True:
            started = time.monotonic()
            try:
                await self.run_sweep()
            except Exception as e:
                log.error(f"❌ Fehler im Poll-Loop: {e}", exc_info=True)

            elapsed = time.monotonic() - started
            if elapsed > self.interval_s:
                missed = int(elapsed // self.interval_s)
                self.sweeps_skipped += missed
                log.warning(f"⏱️ Sweep dauerte {elapsed:.1f}s (> {self.interval_s:g}s), {missed} Zyklus/Zyklen übersprungen.")
            # Auf den nächsten Takt warten, verpasste Takte holen wir nicht nach
            await asyncio.sleep(self.interval_s - (elapsed % self.interval_s))

    def start(self) -> asyncio.Task:
        """Erster Sweep sofort, danach im festen Takt."""
        if self._task and not self._task.done():
            return self._task
        self._task = asyncio.create_task(self._poll_loop())
        return self._task

    async def stop(self):
        if not self._task:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        log.info("🛑 Poll-Loop gestoppt.")

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()
