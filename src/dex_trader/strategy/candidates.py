"""Normalization of raw DexScreener pair records into candidates."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from typing import Any

from dex_trader.types import Candidate


def normalize_candidates(records: Iterable[Any], chain_id: str) -> list[Candidate]:
    """Convert raw pair records into unique candidates on ``chain_id``.

    Pairs are deduplicated by pool address, first occurrence wins. Records
    without a positive price, positive volume, symbol or address are dropped.
    """
    seen: set[str] = set()
    candidates: list[Candidate] = []
    for record in records:
        if not isinstance(record, Mapping):
            continue
        if str(record.get("chainId", "")).lower() != chain_id.lower():
            continue
        candidate = to_candidate(record)
        if candidate is None:
            continue
        key = candidate.pair_address or candidate.address
        if key in seen:
            continue
        seen.add(key)
        candidates.append(candidate)
    return candidates


def to_candidate(record: Mapping[str, Any], *, complete: bool = True) -> Candidate | None:
    """Build one candidate from a pair record, or None when unusable.

    With ``complete=False`` only a positive price and an address are
    required, which is all a price lookup for a held token needs.
    """
    base_token = _mapping(record.get("baseToken"))
    address = _text(base_token.get("address"))
    symbol = _text(base_token.get("symbol"))
    price = parse_number(record.get("priceUsd"))
    volume_24h = parse_number(_mapping(record.get("volume")).get("h24"))

    if price <= 0 or not address:
        return None
    if complete and (volume_24h <= 0 or not symbol):
        return None

    market_cap = parse_number(record.get("fdv")) or parse_number(record.get("marketCap"))
    return Candidate(
        address=address,
        symbol=symbol,
        name=_text(base_token.get("name")),
        price=price,
        price_change_24h=parse_number(_mapping(record.get("priceChange")).get("h24")),
        volume_24h=volume_24h,
        liquidity=parse_number(_mapping(record.get("liquidity")).get("usd")),
        market_cap=market_cap,
        pair_address=_text(record.get("pairAddress")),
    )


def parse_number(value: Any) -> float:
    """Parse a feed number; anything unparseable or non-finite becomes 0."""
    if isinstance(value, bool) or value is None:
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""
