"""On-disk persistence: position snapshot and append-only trade log."""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from dex_trader.types import Position, TradeRecord
from dex_trader.utils.logging import get_logger

_ALLOWED_TRADE_TYPES = {"ENTRY", "EXIT"}


class PositionSnapshotFile:
    """Full snapshot of open positions, rewritten on every mutation.

    ``save`` returns only after the data is fsynced and atomically renamed
    into place, so a later ``load`` never sees a partial file.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._logger = get_logger("dex_trader.journal.store")

    @property
    def path(self) -> Path:
        return self._path

    def save(self, positions: Iterable[Position]) -> None:
        payload = [position.to_record() for position in positions]
        serialized = json.dumps(payload, ensure_ascii=True, indent=2)
        self._path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(serialized)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def load(self) -> list[Position]:
        """Read the snapshot; a missing or unreadable file yields no positions."""
        if not self._path.exists():
            return []
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            if not isinstance(raw, list):
                raise ValueError("snapshot_not_a_list")
            return [Position.from_record(item) for item in raw]
        except (OSError, ValueError, KeyError, TypeError) as exc:
            self._logger.error("positions_load_failed", path=str(self._path), error=str(exc))
            return []


class TradeLog:
    """Append-only JSONL log of ENTRY / EXIT events."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def append(self, trade: TradeRecord) -> dict[str, Any]:
        """Append one trade line and return the written record."""
        if trade.type not in _ALLOWED_TRADE_TYPES:
            raise ValueError(f"unsupported_trade_type: {trade.type}")
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **trade.to_record(),
        }
        with self._path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(record, ensure_ascii=True) + "\n")
        return record

    def load_recent(self, limit: int) -> list[dict[str, Any]]:
        """Return the last ``limit`` records, oldest first."""
        if limit <= 0 or not self._path.exists():
            return []
        rows: list[dict[str, Any]] = []
        for line in reversed(self._path.read_text(encoding="utf-8").splitlines()):
            if not line.strip():
                continue
            rows.append(json.loads(line))
            if len(rows) >= limit:
                break
        return list(reversed(rows))
