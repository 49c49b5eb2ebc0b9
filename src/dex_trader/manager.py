"""Position lifecycle: open, evaluate and close."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Protocol

from dex_trader.config import Settings
from dex_trader.exec.swap import ExecutionError, Executor
from dex_trader.journal.store import TradeLog
from dex_trader.portfolio import PositionExistsError, PositionStore
from dex_trader.risk.rules import RiskEngine, pnl_percent
from dex_trader.types import Candidate, ExitDecision, Position, TradeRecord
from dex_trader.utils.logging import get_logger, log_exit_signal

Clock = Callable[[], datetime]


class PriceSource(Protocol):
    def fetch_current_price(self, address: str) -> Candidate | None: ...


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PositionManager:
    """Owns every transition of a position: Absent -> Open -> Closed.

    A position exists in the store only after a successful entry execution
    and leaves it only after a successful exit execution.
    """

    def __init__(
        self,
        settings: Settings,
        store: PositionStore,
        executor: Executor,
        trade_log: TradeLog,
        prices: PriceSource,
        *,
        clock: Clock = _utc_now,
    ) -> None:
        self._settings = settings
        self._store = store
        self._executor = executor
        self._trade_log = trade_log
        self._prices = prices
        self._clock = clock
        self._risk = RiskEngine(settings)
        self._logger = get_logger("dex_trader.manager")

    @property
    def has_capacity(self) -> bool:
        return len(self._store) < self._settings.max_positions

    def open_position(self, candidate: Candidate) -> Position | None:
        """Buy ``position_size`` of the candidate; None when nothing was opened."""
        with self._store.lock:
            if not self.has_capacity:
                self._logger.info("max_positions_reached", max_positions=self._settings.max_positions)
                return None
            if candidate.address in self._store:
                return None

            self._logger.info("entering_position", token=candidate.symbol, address=candidate.address)
            try:
                result = self._executor.execute(
                    self._settings.quote_token_symbol,
                    candidate.address,
                    self._settings.position_size,
                    simulate=self._settings.dry_run,
                    reference_price=candidate.price,
                )
            except ExecutionError as exc:
                self._logger.error(
                    "execution_failed",
                    action="open",
                    token=candidate.symbol,
                    address=candidate.address,
                    error=str(exc),
                )
                return None

            position = Position(
                token=candidate.symbol,
                address=candidate.address,
                entry_price=candidate.price,
                entry_time=self._clock().isoformat(),
                amount=result.output_amount,
                usdc_invested=self._settings.position_size,
                execution_ref=result.execution_ref,
                stop_loss=self._risk.build_stop_loss(candidate.price),
            )
            try:
                self._store.add(position)
            except PositionExistsError:
                self._logger.error("position_already_open", address=candidate.address)
                return None

        self._trade_log.append(
            TradeRecord(
                type="ENTRY",
                token=position.token,
                address=position.address,
                entry_price=position.entry_price,
                entry_time=position.entry_time,
                invested=position.usdc_invested,
                execution_ref=position.execution_ref,
            )
        )
        self._logger.info(
            "position_opened",
            token=position.token,
            amount=round(position.amount, 6),
            invested=position.usdc_invested,
            stop_loss=round(position.stop_loss, 8),
            execution_ref=position.execution_ref,
        )
        return position

    def evaluate(
        self,
        position: Position,
        current_price: float,
        now: datetime | None = None,
    ) -> ExitDecision | None:
        return self._risk.evaluate_exit(position, current_price, now or self._clock())

    def check_positions(self) -> list[TradeRecord]:
        """Evaluate every open position; one failure does not stop the rest."""
        closed: list[TradeRecord] = []
        positions = self._store.positions()
        if not positions:
            return closed
        self._logger.info("checking_positions", count=len(positions))
        for position in positions:
            try:
                record = self.check_position(position.address)
            except Exception as exc:  # noqa: BLE001 - isolate positions from each other.
                self._logger.exception(
                    "position_check_failed", token=position.token, error=str(exc)
                )
                continue
            if record is not None:
                closed.append(record)
        return closed

    def check_position(self, address: str) -> TradeRecord | None:
        """Fetch the price, apply exit rules and close when one matches."""
        position = self._store.get(address)
        if position is None:
            return None
        snapshot = self._prices.fetch_current_price(address)
        if snapshot is None or snapshot.price <= 0:
            self._logger.info("price_unavailable", token=position.token, address=address)
            return None

        current_price = snapshot.price
        pnl_pct = pnl_percent(position.entry_price, current_price)
        self._logger.info(
            "position_status",
            token=position.token,
            price=current_price,
            pnl_pct=round(pnl_pct, 2),
            value=round(position.amount * current_price, 2),
        )

        decision = self.evaluate(position, current_price)
        if decision is None:
            return None
        log_exit_signal(
            self._logger,
            token=position.token,
            reason=decision.reason,
            pnl_pct=decision.pnl_pct,
            detail=decision.detail,
        )
        return self.close_position(position, decision, current_price)

    def close_position(
        self,
        position: Position,
        decision: ExitDecision,
        current_price: float,
    ) -> TradeRecord | None:
        """Sell the full amount; the position stays open if execution fails."""
        with self._store.lock:
            if position.address not in self._store:
                return None
            try:
                result = self._executor.execute(
                    position.address,
                    self._settings.quote_token_symbol,
                    position.amount,
                    simulate=self._settings.dry_run,
                    reference_price=current_price,
                )
            except ExecutionError as exc:
                self._logger.error(
                    "execution_failed",
                    action="close",
                    token=position.token,
                    address=position.address,
                    reason=decision.reason,
                    error=str(exc),
                )
                return None
            self._store.remove(position.address)

        final_value = result.output_amount
        pnl = final_value - position.usdc_invested
        pnl_pct = pnl / position.usdc_invested * 100 if position.usdc_invested else 0.0
        record = TradeRecord(
            type="EXIT",
            token=position.token,
            address=position.address,
            reason=decision.reason,
            entry_price=position.entry_price,
            entry_time=position.entry_time,
            exit_time=self._clock().isoformat(),
            exit_price=current_price,
            invested=position.usdc_invested,
            final_value=final_value,
            pnl=pnl,
            pnl_percent=pnl_pct,
            detail=decision.detail,
            execution_ref=result.execution_ref,
        )
        self._trade_log.append(record)
        self._logger.info(
            "position_closed",
            token=position.token,
            reason=decision.reason,
            final_value=round(final_value, 2),
            pnl=round(pnl, 2),
            pnl_pct=round(pnl_pct, 2),
            execution_ref=result.execution_ref,
        )
        return record
