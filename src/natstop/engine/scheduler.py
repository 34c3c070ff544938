"""Poll scheduler: fetch -> compute -> publish, once per interval."""

import asyncio
from dataclasses import dataclass
from enum import IntEnum, auto
from typing import Awaitable, cast

import structlog
from codetiming import Timer

from natstop.core.logging import Logger
from natstop.engine.rates import compute_rates
from natstop.engine.state import EngineState, EngineStateRef
from natstop.monitor.protocol import ConnectionsPage, ServerSnapshot, StatsResult
from natstop.monitor.types import Err, FetchResult, Ok, SnapshotFetcher

logger: Logger = structlog.getLogger(__name__)

DEFAULT_INTERVAL = 1.0  # Seconds between tick starts


class SchedulerStatus(IntEnum):
    """Scheduler lifecycle status"""

    IDLE = auto()  # Waiting for next tick
    POLLING = auto()  # Request in flight
    STOPPED = auto()  # Cancelled, terminal


@dataclass(slots=True)
class SchedulerStats:
    """Poll cycle counters."""

    polls_completed: int = 0
    polls_failed: int = 0
    last_poll_duration_ms: float = 0.0
    total_poll_duration_ms: float = 0.0

    @property
    def polls_total(self) -> int:
        return self.polls_completed + self.polls_failed

    @property
    def success_rate(self) -> float:
        """
        Share of successful polls.

        Returns 1.0 when nothing has been polled yet.
        """
        if self.polls_total > 0:
            return self.polls_completed / self.polls_total
        return 1.0

    @property
    def avg_poll_duration_ms(self) -> float:
        if self.polls_total > 0:
            return self.total_poll_duration_ms / self.polls_total
        return 0.0


class PollScheduler:
    """
    Drives the poll cycle on a fixed interval until stopped.

    Sole writer of the engine state. Each cycle fetches /varz and /connz
    concurrently, computes rates against the retained state and publishes a
    new EngineState with one reference swap. Failures become error results;
    the loop only ends on stop().

    Interval is measured from tick start to tick start. A cycle that overruns
    the interval is followed immediately by the next one, never by a burst.
    """

    __slots__ = (
        "_client",
        "_interval",
        "_state",
        "_stats",
        "_status",
        "_stop_event",
        "_publish_event",
        "_poll_task",
    )

    def __init__(
        self,
        client: SnapshotFetcher,
        interval: float = DEFAULT_INTERVAL,
        state: EngineStateRef | None = None,
    ) -> None:
        """
        Args:
            client: Snapshot fetcher for /varz and /connz
            interval: Seconds between the start of two polls
            state: Holder to publish into (a fresh empty one by default)
        """
        if interval <= 0:
            raise ValueError("interval must be greater than 0")

        self._client = client
        self._interval = interval
        self._state = state or EngineStateRef()
        self._stats = SchedulerStats()
        self._status = SchedulerStatus.IDLE
        self._stop_event = asyncio.Event()
        self._publish_event = asyncio.Event()
        self._poll_task: asyncio.Task | None = None

    @property
    def state(self) -> EngineState:
        """Current published state. Safe to hold while rendering."""
        return self._state.current

    @property
    def latest(self) -> StatsResult | None:
        return self._state.current.last_result

    @property
    def stats(self) -> SchedulerStats:
        return self._stats

    @property
    def status(self) -> SchedulerStatus:
        return self._status

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    async def start(self) -> None:
        if self.is_running:
            logger.warning("PollScheduler already running")
            return

        self._stop_event.clear()
        self._status = SchedulerStatus.IDLE
        self._poll_task = asyncio.create_task(
            self._poll_loop(),
            name="natstop-poll",
        )
        logger.info(f"PollScheduler started, interval {self._interval:.1f}s")

    async def stop(self) -> None:
        """
        Request a stop and wait for the loop to exit.

        An in-flight poll is allowed to finish and publish first.
        """
        if self._poll_task is None:
            self._status = SchedulerStatus.STOPPED
            return

        self._stop_event.set()

        try:
            await self._poll_task
        except asyncio.CancelledError:
            pass
        finally:
            self._poll_task = None

        self._status = SchedulerStatus.STOPPED
        logger.info(
            f"PollScheduler stopped after {self._stats.polls_total} polls "
            f"({self._stats.polls_failed} failed)"
        )

    def wait_for_publish(self) -> Awaitable[StatsResult]:
        """
        Wait for the next publish and return its result.

        The waiter is taken when this is called, not when it is first
        awaited, so a publish in between is not missed.
        """
        return self._wait_for(self._publish_event)

    async def _wait_for(self, event: asyncio.Event) -> StatsResult:
        await event.wait()
        # Every publish sets last_result
        return cast(StatsResult, self._state.current.last_result)

    async def _poll_loop(self) -> None:
        loop = asyncio.get_running_loop()

        while not self._stop_event.is_set():
            tick_start = loop.time()

            await self.poll_once()

            # Stop is only observed here, between cycles
            remaining = self._interval - (loop.time() - tick_start)
            if remaining <= 0:
                continue

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                pass

    async def poll_once(self) -> StatsResult:
        """
        Run one fetch -> compute -> publish cycle.

        Never raises for fetch or decode failures, they are published as
        error results with the retained history left intact.
        """
        self._status = SchedulerStatus.POLLING

        with Timer(logger=None) as timer:
            try:
                varz, connz = await asyncio.gather(
                    self._client.fetch_varz(),
                    self._client.fetch_connz(),
                )
                result = self._build_result(varz, connz)

            except Exception as e:
                logger.error(f"Unexpected poll error: {e}", exc_info=True)
                result = StatsResult.failed(f"poll failed: {e}")

        self._publish(result)
        self._record(result, timer.last * 1000)
        self._status = SchedulerStatus.IDLE

        return result

    def _build_result(
        self,
        varz: FetchResult[ServerSnapshot],
        connz: FetchResult[ConnectionsPage],
    ) -> StatsResult:
        match (varz, connz):
            case (Ok(value=server), Ok(value=page)):
                rates = compute_rates(
                    server,
                    page.connections or (),
                    self._state.current,
                )
                return StatsResult(server=server, connections=page, rates=rates)

            case (Err() as err, _) | (_, Err() as err):
                logger.warning(f"Poll failed ({err.kind.name.lower()}): {err.message}")
                return StatsResult.failed(err.message)

            case _:
                raise AssertionError(f"Unexpected fetch results: {varz!r}, {connz!r}")

    def _publish(self, result: StatsResult) -> None:
        self._state.publish(self._state.current.advance(result))

        event, self._publish_event = self._publish_event, asyncio.Event()
        event.set()

    def _record(self, result: StatsResult, duration_ms: float) -> None:
        if result.is_error:
            self._stats.polls_failed += 1
        else:
            self._stats.polls_completed += 1

        self._stats.last_poll_duration_ms = duration_ms
        self._stats.total_poll_duration_ms += duration_ms

        logger.debug(
            f"Poll {'failed' if result.is_error else 'completed'} "
            f"in {duration_ms:.1f}ms"
        )
