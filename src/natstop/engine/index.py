from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType

from natstop.monitor.protocol import ConnectionSnapshot


class ConnectionIndex(Mapping[int, ConnectionSnapshot]):
    """
    Read-only cid -> ConnectionSnapshot table from one successful poll.

    Built fresh every cycle and never mutated, so a cid missing from the
    latest poll simply is not in the next index.
    """

    __slots__ = ("_by_cid",)

    def __init__(self, connections: Iterable[ConnectionSnapshot] = ()) -> None:
        # Duplicate cids in one poll: last write wins
        self._by_cid: Mapping[int, ConnectionSnapshot] = MappingProxyType(
            {conn.cid: conn for conn in connections}
        )

    def __getitem__(self, cid: int) -> ConnectionSnapshot:
        return self._by_cid[cid]

    def __iter__(self) -> Iterator[int]:
        return iter(self._by_cid)

    def __len__(self) -> int:
        return len(self._by_cid)

    def __repr__(self) -> str:
        return f"ConnectionIndex(cids={sorted(self._by_cid)})"


EMPTY_INDEX = ConnectionIndex()
