"""Statistics engine: retained state, rate computation and poll scheduling."""

from natstop.engine.index import EMPTY_INDEX, ConnectionIndex
from natstop.engine.rates import compute_rates, connection_delta
from natstop.engine.scheduler import (
    DEFAULT_INTERVAL,
    PollScheduler,
    SchedulerStats,
    SchedulerStatus,
)
from natstop.engine.state import EngineState, EngineStateRef

__all__ = [
    "ConnectionIndex",
    "EMPTY_INDEX",
    "EngineState",
    "EngineStateRef",
    "PollScheduler",
    "SchedulerStats",
    "SchedulerStatus",
    "compute_rates",
    "connection_delta",
    "DEFAULT_INTERVAL",
]
