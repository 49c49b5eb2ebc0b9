"""In-memory position store mirrored to the snapshot file."""

from __future__ import annotations

import threading
from collections.abc import Iterator

from dex_trader.journal.store import PositionSnapshotFile
from dex_trader.types import Position


class PositionExistsError(RuntimeError):
    """Raised when a second position is added for the same address."""


class PositionStore:
    """Canonical set of open positions, keyed by token address.

    Every mutation rewrites the snapshot while holding the lock, so snapshot
    writes never observe a half-applied change.
    """

    def __init__(self, snapshot: PositionSnapshotFile) -> None:
        self._snapshot = snapshot
        self._positions: dict[str, Position] = {}
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def load(self) -> int:
        """Replace the in-memory set with the persisted snapshot."""
        with self._lock:
            self._positions = {p.address: p for p in self._snapshot.load()}
            return len(self._positions)

    def add(self, position: Position) -> None:
        with self._lock:
            if position.address in self._positions:
                raise PositionExistsError(position.address)
            self._positions[position.address] = position
            self._snapshot.save(self._positions.values())

    def remove(self, address: str) -> Position | None:
        with self._lock:
            removed = self._positions.pop(address, None)
            if removed is not None:
                self._snapshot.save(self._positions.values())
            return removed

    def get(self, address: str) -> Position | None:
        with self._lock:
            return self._positions.get(address)

    def positions(self) -> list[Position]:
        """Point-in-time copy, in insertion order."""
        with self._lock:
            return list(self._positions.values())

    def __contains__(self, address: object) -> bool:
        with self._lock:
            return address in self._positions

    def __len__(self) -> int:
        with self._lock:
            return len(self._positions)

    def __iter__(self) -> Iterator[Position]:
        return iter(self.positions())
