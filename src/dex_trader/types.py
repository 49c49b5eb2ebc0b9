"""Shared domain types for the scan / position lifecycle."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

TradeType = Literal["ENTRY", "EXIT"]
ExitReason = Literal["stop loss", "time exit", "profit taking"]


@dataclass(frozen=True, slots=True)
class Candidate:
    """Snapshot of one tradeable token at scan time."""

    address: str
    symbol: str
    price: float
    price_change_24h: float
    volume_24h: float
    liquidity: float
    market_cap: float
    pair_address: str
    name: str = ""


@dataclass(slots=True)
class Position:
    """Open exposure to one token, keyed by address."""

    token: str
    address: str
    entry_price: float
    entry_time: str
    amount: float
    usdc_invested: float
    execution_ref: str
    stop_loss: float

    @property
    def opened_at(self) -> datetime:
        return datetime.fromisoformat(self.entry_time)

    def to_record(self) -> dict[str, Any]:
        """Snapshot file representation."""
        return {
            "address": self.address,
            "token": self.token,
            "entryPrice": self.entry_price,
            "entryTime": self.entry_time,
            "amount": self.amount,
            "usdcInvested": self.usdc_invested,
            "executionRef": self.execution_ref,
            "stopLoss": self.stop_loss,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Position:
        """Build from a snapshot record; accepts the legacy ``signature`` key."""
        return cls(
            token=str(record["token"]),
            address=str(record["address"]),
            entry_price=float(record["entryPrice"]),
            entry_time=str(record["entryTime"]),
            amount=float(record["amount"]),
            usdc_invested=float(record["usdcInvested"]),
            execution_ref=str(record.get("executionRef", record.get("signature", ""))),
            stop_loss=float(record["stopLoss"]),
        )


@dataclass(slots=True)
class ExecutionResult:
    """Outcome of one swap."""

    execution_ref: str
    output_amount: float
    price_impact: float = 0.0
    elapsed_ms: float = 0.0
    simulated: bool = False


@dataclass(frozen=True, slots=True)
class ExitDecision:
    """A triggered exit rule for one position."""

    reason: ExitReason
    detail: str
    pnl_pct: float


@dataclass(slots=True)
class TradeRecord:
    """One ENTRY or EXIT line of the trade log."""

    type: TradeType
    token: str
    entry_price: float
    entry_time: str
    invested: float
    execution_ref: str
    address: str = ""
    reason: str | None = None
    exit_time: str | None = None
    exit_price: float | None = None
    final_value: float | None = None
    pnl: float | None = None
    pnl_percent: float | None = None
    detail: str | None = None

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "type": self.type,
            "token": self.token,
            "address": self.address,
            "entryPrice": self.entry_price,
            "entryTime": self.entry_time,
            "invested": self.invested,
            "executionRef": self.execution_ref,
        }
        if self.type == "EXIT":
            record.update(
                {
                    "reason": self.reason,
                    "exitTime": self.exit_time,
                    "exitPrice": self.exit_price,
                    "finalValue": self.final_value,
                    "pnl": self.pnl,
                    "pnlPercent": self.pnl_percent,
                    "detail": self.detail,
                }
            )
        return record


@dataclass(slots=True)
class TickResult:
    """Outcome of one scan tick."""

    status: str
    candidates: int = 0
    opportunities: int = 0
    opened: list[str] = field(default_factory=list)
    closed: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    elapsed_ms: float = 0.0
