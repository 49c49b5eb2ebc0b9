"""Deterministic entry filter for scanned candidates."""

from __future__ import annotations

import math
from collections.abc import Container, Iterable

from dex_trader.config import Settings
from dex_trader.types import Candidate

MAX_ENTRIES_PER_TICK = 3


def is_opportunity(
    candidate: Candidate,
    open_positions: Container[str],
    settings: Settings,
) -> bool:
    """Return True when the candidate passes every entry rule.

    Thresholds are inclusive. Only upward moves qualify and an address with an
    open position never does. Missing or non-finite numbers fail the rule
    they feed; this function never raises.
    """
    try:
        if not _at_least(candidate.volume_24h, settings.min_volume_24h):
            return False
        if not _at_least(abs(candidate.price_change_24h), settings.min_price_change):
            return False
        if not _at_least(candidate.liquidity, settings.min_liquidity):
            return False
        if not _at_least(candidate.market_cap, settings.min_market_cap):
            return False

        symbol = candidate.symbol.lower() if isinstance(candidate.symbol, str) else ""
        if not symbol or any(word and word in symbol for word in settings.blacklist):
            return False

        if candidate.address in open_positions:
            return False

        return _is_number(candidate.price_change_24h) and candidate.price_change_24h > 0
    except (TypeError, AttributeError):
        return False


def select_entries(
    candidates: Iterable[Candidate],
    open_positions: Container[str],
    settings: Settings,
    limit: int = MAX_ENTRIES_PER_TICK,
) -> list[Candidate]:
    """Return up to ``limit`` qualifying candidates in feed order."""
    selected: list[Candidate] = []
    for candidate in candidates:
        if len(selected) >= limit:
            break
        if is_opportunity(candidate, open_positions, settings):
            selected.append(candidate)
    return selected


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _at_least(value: object, threshold: float) -> bool:
    return _is_number(value) and value >= threshold  # type: ignore[operator]
