from __future__ import annotations

from pathlib import Path

from dex_trader import scheduler as scheduler_module
from dex_trader.config import Settings
from dex_trader.data.dexscreener import MarketDataError
from dex_trader.exec.swap import SimulatedExecutor
from dex_trader.journal.store import PositionSnapshotFile, TradeLog
from dex_trader.manager import PositionManager
from dex_trader.portfolio import PositionStore
from dex_trader.scheduler import ScanScheduler
from dex_trader.types import Candidate, TickResult


def _pair(index: int, *, change: float = 12.0, chain: str = "base") -> dict[str, object]:
    return {
        "chainId": chain,
        "pairAddress": f"0xpool{index}",
        "baseToken": {"address": f"0x{index}", "symbol": f"TK{index}"},
        "priceUsd": "1.0",
        "priceChange": {"h24": change},
        "volume": {"h24": 80_000},
        "liquidity": {"usd": 150_000},
        "fdv": 200_000,
    }


class _Feed:
    def __init__(self, pairs: list[dict[str, object]] | None = None, error: bool = False) -> None:
        self.pairs = pairs or []
        self.error = error
        self.prices: dict[str, float] = {}

    def fetch_candidate_pool(self) -> list[dict[str, object]]:
        if self.error:
            raise MarketDataError("all sources down")
        return list(self.pairs)

    def fetch_current_price(self, address: str) -> Candidate | None:
        price = self.prices.get(address)
        if price is None:
            return None
        return Candidate(
            address=address,
            symbol="X",
            price=price,
            price_change_24h=0.0,
            volume_24h=1.0,
            liquidity=1.0,
            market_cap=1.0,
            pair_address="",
        )


def _build(tmp_path: Path, feed: _Feed, **overrides: object) -> tuple[ScanScheduler, PositionStore]:
    values: dict[str, object] = {"dry_run": True, "state_dir": tmp_path, "max_positions": 10}
    values.update(overrides)
    settings = Settings(**values)
    store = PositionStore(PositionSnapshotFile(settings.positions_file))
    manager = PositionManager(
        settings, store, SimulatedExecutor(), TradeLog(settings.trades_file), feed
    )
    return ScanScheduler(settings, feed, manager, store), store


def test_tick_opens_at_most_three_in_feed_order(tmp_path: Path) -> None:
    feed = _Feed([_pair(i) for i in range(5)])
    scheduler, store = _build(tmp_path, feed)

    result = scheduler.run_tick()

    assert result.status == "ok"
    assert result.candidates == 5
    assert result.opened == ["TK0", "TK1", "TK2"]
    assert [p.address for p in store.positions()] == ["0x0", "0x1", "0x2"]


def test_tick_stops_opening_at_max_positions(tmp_path: Path) -> None:
    feed = _Feed([_pair(i) for i in range(3)])
    scheduler, store = _build(tmp_path, feed, max_positions=2)

    result = scheduler.run_tick()

    assert result.opened == ["TK0", "TK1"]
    assert "max_positions_reached" in result.warnings
    assert len(store) == 2


def test_second_tick_does_not_reopen_existing(tmp_path: Path) -> None:
    feed = _Feed([_pair(0)])
    scheduler, store = _build(tmp_path, feed)
    scheduler.run_tick()
    result = scheduler.run_tick()
    assert result.opened == []
    assert result.status == "no_opportunities"
    assert len(store) == 1


def test_tick_evaluates_open_positions(tmp_path: Path) -> None:
    feed = _Feed([_pair(0)])
    scheduler, store = _build(tmp_path, feed)
    scheduler.run_tick()

    feed.pairs = []
    feed.prices["0x0"] = 0.5
    result = scheduler.run_tick()

    assert result.status == "no_candidates"
    assert result.closed == ["TK0"]
    assert len(store) == 0


def test_feed_failure_is_treated_as_empty(tmp_path: Path) -> None:
    scheduler, _ = _build(tmp_path, _Feed(error=True))
    result = scheduler.run_tick()
    assert result.status == "no_candidates"
    assert result.warnings == ["feed_unavailable"]


def test_run_forever_survives_tick_errors(tmp_path: Path, monkeypatch: object) -> None:
    monkeypatch.setattr(scheduler_module, "ERROR_BACKOFF_SEC", 0.0)
    scheduler, _ = _build(tmp_path, _Feed())
    calls: list[int] = []

    def _tick() -> TickResult:
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("unexpected")
        scheduler.stop()
        return TickResult(status="ok")

    monkeypatch.setattr(scheduler, "run_tick", _tick)
    scheduler.run_forever()

    assert len(calls) == 2
    assert scheduler.iterations == 2
    assert scheduler.stopped


def test_stop_before_start_runs_no_tick(tmp_path: Path) -> None:
    scheduler, _ = _build(tmp_path, _Feed())
    scheduler.stop()
    scheduler.run_forever()
    assert scheduler.iterations == 0
