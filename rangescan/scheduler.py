"""
Manages the lifecycle of a scan: N concurrent slots pulling targets from a
TargetStream, probing them, and recording each outcome.
"""
from __future__ import annotations
import asyncio
import logging
from enum import Enum, auto
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .ledger import ScanLedger
from .models import Outcome, ScanResult, ScanSummary, SlotState
from .source import TargetStream

Probe = Callable[[str], Awaitable[Any]]


class ScanState(Enum):
    """Represents the lifecycle state of a scan."""
    IDLE = auto()
    RUNNING = auto()
    STOPPING = auto()
    STOPPED = auto()
    COMPLETED = auto()


class ScanScheduler:
    """Runs at most ``parallelism`` probes at a time over a target stream."""

    def __init__(
        self,
        source: TargetStream,
        ledger: ScanLedger,
        parallelism: int = 64,
        on_result: Optional[Callable[[ScanResult], None]] = None,
        on_state_change: Optional[Callable[[ScanState], None]] = None,
    ):
        if parallelism < 1:
            raise ValueError("parallelism must be at least 1")
        self.source = source
        self.ledger = ledger
        self.parallelism = parallelism
        self.on_result = on_result
        self.on_state_change = on_state_change

        self.state = ScanState.IDLE
        self.slots: List[SlotState] = [SlotState.IDLE] * parallelism
        self.in_flight: Dict[str, int] = {}
        self.max_in_flight = 0
        self.summary = ScanSummary()

    def _set_state(self, new_state: ScanState) -> None:
        self.state = new_state
        logging.debug(f"Scan state -> {new_state.name}")
        if self.on_state_change:
            self.on_state_change(new_state)

    async def start(self, probe: Probe) -> ScanSummary:
        """
        Runs the scan until the source is exhausted or stop() has drained
        every in-flight probe, then returns the run's counters.

        ``probe`` is awaited with a target; returning means success and
        raising any exception means failure.
        """
        if self.state is not ScanState.IDLE:
            raise RuntimeError(f"Scan already started (state {self.state.name}).")
        self._set_state(ScanState.RUNNING)

        tasks = [
            asyncio.create_task(self._run_slot(index, probe), name=f"scan-slot-{index}")
            for index in range(self.parallelism)
        ]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

        self.summary.invalid = self.source.invalid_count
        if self.state is ScanState.STOPPING:
            self._set_state(ScanState.STOPPED)
        else:
            self._set_state(ScanState.COMPLETED)
        return self.summary

    def stop(self) -> None:
        """Stops intake of new targets; in-flight probes finish normally."""
        if self.state is not ScanState.RUNNING:
            return
        self._set_state(ScanState.STOPPING)
        for index, slot in enumerate(self.slots):
            if slot is not SlotState.BUSY:
                self.slots[index] = SlotState.DRAINING
        self.source.close()

    async def _run_slot(self, index: int, probe: Probe) -> None:
        try:
            while self.state is ScanState.RUNNING:
                target = await self.source.next_target()
                if target is None:
                    break
                if self.state is not ScanState.RUNNING:
                    logging.debug(f"Not probing {target}: scan is stopping.")
                    break
                if self.ledger.has(target) or target in self.in_flight:
                    self.summary.skipped += 1
                    # Long runs of known targets are served synchronously.
                    await asyncio.sleep(0)
                    continue
                await self._probe_one(index, target, probe)
        finally:
            self.slots[index] = SlotState.IDLE

    async def _probe_one(self, index: int, target: str, probe: Probe) -> None:
        self.slots[index] = SlotState.BUSY
        self.in_flight[target] = index
        self.max_in_flight = max(self.max_in_flight, len(self.in_flight))

        reason = None
        try:
            await probe(target)
            outcome = Outcome.SUCCESS
        except asyncio.CancelledError:
            raise
        except Exception as e:
            outcome = Outcome.FAILURE
            reason = str(e) or type(e).__name__
        finally:
            del self.in_flight[target]
            self.slots[index] = SlotState.IDLE if self.state is ScanState.RUNNING else SlotState.DRAINING

        self.summary.probed += 1
        if outcome is Outcome.SUCCESS:
            self.summary.succeeded += 1
        else:
            self.summary.failed += 1
            logging.debug(f"Probe of {target} failed: {reason}")

        self.ledger.record(target, outcome)
        if self.on_result:
            self.on_result(ScanResult(target, outcome, reason))
