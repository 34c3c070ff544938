from dataclasses import dataclass, field

from natstop.engine.index import EMPTY_INDEX, ConnectionIndex
from natstop.monitor.protocol import ServerSnapshot, StatsResult


@dataclass(slots=True, frozen=True)
class EngineState:
    """
    Everything the engine retains between polls.

    last_result: latest published result, success or error
    last_success: latest successful result, the baseline for the next diff
    connection_index: connections from `last_success`, keyed by cid
    """

    last_result: StatsResult | None = None
    last_success: StatsResult | None = None
    connection_index: ConnectionIndex = field(default_factory=lambda: EMPTY_INDEX)

    @property
    def baseline(self) -> ServerSnapshot | None:
        """Server snapshot of the last successful poll, if any"""
        if self.last_success is None:
            return None
        return self.last_success.server

    @property
    def has_baseline(self) -> bool:
        return self.baseline is not None

    def advance(self, result: StatsResult) -> "EngineState":
        """
        Next state after publishing `result`.

        A failed poll only replaces `last_result`; the baseline and index
        are kept so the next success diffs against the last good data.
        """
        if result.is_error:
            return EngineState(
                last_result=result,
                last_success=self.last_success,
                connection_index=self.connection_index,
            )

        connections = result.connections.connections if result.connections else ()
        return EngineState(
            last_result=result,
            last_success=result,
            connection_index=ConnectionIndex(connections or ()),
        )

    def display(self) -> tuple[StatsResult | None, str | None]:
        """
        Data to show and the error to annotate it with.

        After a failed poll this is the last good result plus the failure
        message, so consumers never go blank.
        """
        if self.last_result is None:
            return None, None
        if self.last_result.is_error:
            return self.last_success, self.last_result.error
        return self.last_result, None


class EngineStateRef:
    """
    Single-writer holder for the current EngineState.

    `publish()` swaps the reference in one assignment; readers keep whatever
    state object they fetched and never see a half-updated one.
    """

    __slots__ = ("_state",)

    def __init__(self, state: EngineState | None = None) -> None:
        self._state = state or EngineState()

    @property
    def current(self) -> EngineState:
        return self._state

    def publish(self, state: EngineState) -> None:
        self._state = state
