from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
import logging
import threading
import time
from typing import Any, Callable

from hostwatch.config import AppConfig
from hostwatch.hub import BroadcastHub
from hostwatch.local import LocalCollector, LocalState
from hostwatch.models import CpuInfo, RealtimeData
from hostwatch.sources import Source, build_sources


class CycleState(Enum):
    IDLE = "idle"
    COLLECTING = "collecting"


class CycleOrchestrator:
    """Ticks at the configured interval and publishes one snapshot per cycle.

    The local OS-counter state is only touched from the cycle thread. The
    optional sources run concurrently in a worker pool; the cycle waits for
    all of them before it assembles and publishes.
    """

    def __init__(
        self,
        config: AppConfig,
        hub: BroadcastHub,
        local: LocalCollector | None = None,
        sources: list[Source] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.hub = hub
        self.local = local if local is not None else LocalCollector()
        self.sources = sources if sources is not None else build_sources(config.collector, self.local)
        self.state = CycleState.IDLE
        self.cycles = 0
        self._clock = clock
        self._local_state: LocalState = self.local.new_state(self.interval)
        self._executor = ThreadPoolExecutor(
            max_workers=max(len(self.sources), 1), thread_name_prefix="hostwatch-source"
        )
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def interval(self) -> float:
        return max(0.1, self.config.publish.interval_s)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def collect_once(self) -> RealtimeData:
        """Run one full cycle: sample, fan out, assemble, publish."""
        self.state = CycleState.COLLECTING
        try:
            local = self.local.sample(self._local_state)
            results = self._fan_out()
            temperature, power = results.get("sensors", (None, None))
            snapshot = RealtimeData(
                timestamp=int(time.time()),
                cpu=CpuInfo(
                    total_usage=local.cpu.total_usage,
                    core_usage=local.cpu.core_usage,
                    temperature_celsius=temperature,
                    power_watts=power,
                ),
                memory=local.memory,
                disks=local.disks,
                network=local.network,
                load_average=local.load_average,
                uptime_secs=local.uptime_secs,
                gpu=results.get("gpu"),
                ports=results.get("ports", []),
                processes=results.get("processes", []),
                docker_containers=results.get("containers", []),
            )
            receivers = self.hub.publish(snapshot)
            self.cycles += 1
            self.logger.debug("Cycle %s published to %s receiver(s).", self.cycles, receivers)
            return snapshot
        finally:
            self.state = CycleState.IDLE

    def _fan_out(self) -> dict[str, Any]:
        futures: dict[str, tuple[Source, Future[Any]]] = {
            source.name: (source, self._executor.submit(source.collect))
            for source in self.sources
        }
        results: dict[str, Any] = {}
        for name, (source, future) in futures.items():
            try:
                results[name] = future.result()
            except Exception:
                self.logger.exception("Source %s failed; reporting it as empty.", name)
                results[name] = source.empty()
        return results

    def run_forever(self) -> None:
        """Fixed-rate loop until ``stop`` is called."""
        interval = self.interval
        next_tick = self._clock()
        self.logger.info("Collecting every %s seconds.", interval)
        while not self._stop_event.is_set():
            try:
                self.collect_once()
            except Exception:
                self.logger.exception("Collection cycle failed; continuing.")
            next_tick += interval
            now = self._clock()
            if next_tick < now:
                # Cycle overran; realign instead of bursting to catch up
                self.logger.debug("Cycle overran its interval by %.3fs.", now - next_tick)
                next_tick = now
            self._stop_event.wait(timeout=next_tick - now)

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self.run_forever, daemon=True, name="CycleOrchestrator"
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        self._executor.shutdown(wait=False, cancel_futures=True)
