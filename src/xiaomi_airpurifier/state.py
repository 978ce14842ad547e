"""State cache - last known normalized snapshot of a purifier."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterator, Mapping


@dataclass(frozen=True)
class StateSnapshot:
    """Immutable view of the last successful poll.

    refreshed_at is the scheduler clock time of the poll, None before the
    first successful poll.
    """

    values: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    refreshed_at: float | None = None

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def __contains__(self, key: object) -> bool:
        return key in self.values

    def __iter__(self) -> Iterator[str]:
        return iter(self.values)

    @property
    def empty(self) -> bool:
        return self.refreshed_at is None


EMPTY_SNAPSHOT = StateSnapshot()


class StateCache:
    """Holds the current snapshot and replaces it wholesale.

    Readers always get a complete snapshot: replace() swaps one immutable
    object for another, so there is nothing partially updated to observe.
    When two refreshes race, the last one to call replace() wins.
    """

    def __init__(self) -> None:
        self._snapshot = EMPTY_SNAPSHOT

    @property
    def snapshot(self) -> StateSnapshot:
        return self._snapshot

    def replace(self, values: Mapping[str, Any], refreshed_at: float) -> StateSnapshot:
        self._snapshot = StateSnapshot(MappingProxyType(dict(values)), refreshed_at)
        return self._snapshot

    def get(self, key: str, default: Any = None) -> Any:
        return self._snapshot.get(key, default)
