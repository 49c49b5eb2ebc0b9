"""Scan loop: fetch -> filter -> open -> evaluate -> sleep."""

from __future__ import annotations

import threading
from time import perf_counter
from typing import Any, Protocol

from dex_trader.config import Settings
from dex_trader.data.dexscreener import MarketDataError
from dex_trader.manager import PositionManager
from dex_trader.portfolio import PositionStore
from dex_trader.strategy.candidates import normalize_candidates
from dex_trader.strategy.opportunity import select_entries
from dex_trader.types import TickResult
from dex_trader.utils.logging import get_logger, log_opportunity

ERROR_BACKOFF_SEC = 5.0


class CandidateFeed(Protocol):
    def fetch_candidate_pool(self) -> list[dict[str, Any]]: ...


class ScanScheduler:
    """Runs ticks strictly one after another until stopped.

    A stop request takes effect between ticks; a running tick is never
    interrupted.
    """

    def __init__(
        self,
        settings: Settings,
        feed: CandidateFeed,
        manager: PositionManager,
        store: PositionStore,
    ) -> None:
        self._settings = settings
        self._feed = feed
        self._manager = manager
        self._store = store
        self._stop = threading.Event()
        self._logger = get_logger("dex_trader.scheduler")
        self.iterations = 0

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        self._stop.set()

    def run_forever(self) -> None:
        self._logger.info(
            "scheduler_started",
            scan_interval_ms=self._settings.scan_interval,
            dry_run=self._settings.dry_run,
            open_positions=len(self._store),
        )
        while not self._stop.is_set():
            self.iterations += 1
            try:
                result = self.run_tick()
            except Exception as exc:  # noqa: BLE001 - the loop must survive any tick failure.
                self._logger.exception("tick_failed", iteration=self.iterations, error=str(exc))
                self._stop.wait(ERROR_BACKOFF_SEC)
                continue

            self._logger.info(
                "tick_completed",
                iteration=self.iterations,
                status=result.status,
                candidates=result.candidates,
                opportunities=result.opportunities,
                opened=result.opened,
                closed=result.closed,
                warnings=result.warnings,
                elapsed_ms=round(result.elapsed_ms, 2),
            )
            self._stop.wait(self._settings.scan_interval_seconds)

        self._logger.info("scheduler_stopped", iterations=self.iterations)

    def run_tick(self) -> TickResult:
        """One scan tick. Errors outside the feed call propagate."""
        started = perf_counter()
        result = TickResult(status="ok")

        try:
            raw = self._feed.fetch_candidate_pool()
        except MarketDataError as exc:
            self._logger.warning("feed_unavailable", error=str(exc))
            result.warnings.append("feed_unavailable")
            raw = []

        candidates = normalize_candidates(raw, self._settings.chain_id)
        result.candidates = len(candidates)
        self._logger.info("markets_scanned", candidates=len(candidates))

        entries = select_entries(candidates, self._store, self._settings)
        result.opportunities = len(entries)
        if not candidates:
            result.status = "no_candidates"
        elif not entries:
            result.status = "no_opportunities"

        for candidate in entries:
            log_opportunity(
                self._logger,
                symbol=candidate.symbol,
                address=candidate.address,
                price_change_24h=candidate.price_change_24h,
                volume_24h=candidate.volume_24h,
            )
        for candidate in entries:
            if not self._manager.has_capacity:
                self._logger.info("max_positions_reached", max_positions=self._settings.max_positions)
                result.warnings.append("max_positions_reached")
                break
            position = self._manager.open_position(candidate)
            if position is not None:
                result.opened.append(position.token)

        for record in self._manager.check_positions():
            result.closed.append(record.token)

        result.elapsed_ms = (perf_counter() - started) * 1000
        return result
