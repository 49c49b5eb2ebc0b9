"""Stop-loss construction and exit rules for open positions."""

from __future__ import annotations

from datetime import datetime, timedelta

from dex_trader.config import Settings
from dex_trader.types import ExitDecision, Position

TIME_EXIT_AFTER = timedelta(hours=4)
TIME_EXIT_MIN_PNL_PCT = 20.0
TAKE_PROFIT_PCT = 50.0


class RiskEngine:
    """Rule-based exits, evaluated in fixed priority order."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def build_stop_loss(self, entry: float) -> float:
        """Stop price fixed at entry; never trailed."""
        if entry <= 0:
            return 0.0
        return entry * (1.0 - self._settings.stop_loss_fraction)

    def check_time_exit(self, position: Position, now: datetime, pnl_pct: float) -> bool:
        """Position is older than the time limit without a meaningful gain."""
        opened_at = position.opened_at
        if opened_at.tzinfo is None:
            opened_at = opened_at.replace(tzinfo=now.tzinfo)
        return (now - opened_at) > TIME_EXIT_AFTER and pnl_pct < TIME_EXIT_MIN_PNL_PCT

    def evaluate_exit(
        self,
        position: Position,
        current_price: float,
        now: datetime,
    ) -> ExitDecision | None:
        """Return the first matching exit rule, or None to keep holding.

        Priority: stop loss, then time exit, then profit taking.
        """
        pnl_pct = pnl_percent(position.entry_price, current_price)

        if current_price <= position.stop_loss:
            return ExitDecision(
                reason="stop loss",
                detail=f"Stop loss triggered ({position.stop_loss:.6f})",
                pnl_pct=pnl_pct,
            )
        if self.check_time_exit(position, now, pnl_pct):
            return ExitDecision(
                reason="time exit",
                detail=f"Time exit (4h, {pnl_pct:+.1f}%)",
                pnl_pct=pnl_pct,
            )
        if pnl_pct > TAKE_PROFIT_PCT:
            return ExitDecision(
                reason="profit taking",
                detail=f"Profit taking ({pnl_pct:+.1f}%)",
                pnl_pct=pnl_pct,
            )
        return None


def pnl_percent(entry_price: float, current_price: float) -> float:
    if entry_price <= 0:
        return 0.0
    return (current_price - entry_price) / entry_price * 100.0
