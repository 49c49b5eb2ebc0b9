"""DexScreener market data client."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol

import httpx

from dex_trader.config import Settings
from dex_trader.strategy.candidates import parse_number, to_candidate
from dex_trader.types import Candidate
from dex_trader.utils.logging import get_logger

RawRecord = dict[str, Any]


class MarketDataError(Exception):
    """Raised when no feed source could be reached."""


class PairSource(Protocol):
    """One way of obtaining raw pair records."""

    name: str

    def fetch(self, http: httpx.Client) -> list[RawRecord]: ...


class TrendingSource:
    """Trending pairs endpoint."""

    name = "trending"

    def fetch(self, http: httpx.Client) -> list[RawRecord]:
        response = http.get("/latest/dex/tokens/trending")
        response.raise_for_status()
        return _pairs(response.json())


class TokenLookupSource:
    """Pairs of a fixed list of seed tokens, restricted to liquid chain pairs."""

    name = "token_lookup"

    def __init__(self, addresses: Sequence[str], chain_id: str, min_volume_24h: float) -> None:
        self._addresses = list(addresses)
        self._chain_id = chain_id.lower()
        self._min_volume_24h = min_volume_24h
        self._logger = get_logger("dex_trader.data.dexscreener")

    def fetch(self, http: httpx.Client) -> list[RawRecord]:
        pairs: list[RawRecord] = []
        failures = 0
        for address in self._addresses:
            try:
                response = http.get(f"/latest/dex/tokens/{address}")
                response.raise_for_status()
            except httpx.HTTPError as exc:
                failures += 1
                self._logger.warning("token_lookup_failed", address=address, error=str(exc))
                continue
            pairs.extend(
                pair
                for pair in _pairs(response.json())
                if str(pair.get("chainId", "")).lower() == self._chain_id
                and _volume_24h(pair) > self._min_volume_24h
            )
        if self._addresses and failures == len(self._addresses):
            raise httpx.TransportError("all_token_lookups_failed")
        return pairs


class DexScreenerClient:
    """Read-only client for candidate pools and current prices."""

    def __init__(
        self,
        settings: Settings,
        *,
        sources: Sequence[PairSource] | None = None,
        http: httpx.Client | None = None,
    ) -> None:
        self._settings = settings
        self._logger = get_logger("dex_trader.data.dexscreener")
        self._http = http or httpx.Client(
            base_url=settings.dexscreener_url,
            timeout=settings.http_timeout,
        )
        self._sources: list[PairSource] = list(sources) if sources is not None else [
            TrendingSource(),
            TokenLookupSource(
                settings.seed_tokens,
                settings.chain_id,
                settings.min_volume_24h,
            ),
        ]

    def close(self) -> None:
        self._http.close()

    def fetch_candidate_pool(self) -> list[RawRecord]:
        """Return pairs from the first source yielding pairs on the target chain.

        Raises:
            MarketDataError: every source failed at transport level.
        """
        errors: list[str] = []
        for source in self._sources:
            try:
                pairs = source.fetch(self._http)
            except (httpx.HTTPError, ValueError) as exc:
                errors.append(f"{source.name}: {exc}")
                self._logger.warning("feed_source_failed", source=source.name, error=str(exc))
                continue
            if any(self._on_chain(pair) for pair in pairs):
                self._logger.debug("feed_source_used", source=source.name, pairs=len(pairs))
                return pairs
            self._logger.info("feed_source_empty", source=source.name, pairs=len(pairs))

        if errors and len(errors) == len(self._sources):
            raise MarketDataError("; ".join(errors))
        return []

    def fetch_current_price(self, address: str) -> Candidate | None:
        """Current snapshot of one token on the target chain. None on failure.

        The snapshot is returned whatever the pair's volume, so a held token
        that stopped trading still gets a price.
        """
        try:
            response = self._http.get(f"/latest/dex/tokens/{address}")
            response.raise_for_status()
            pairs = _pairs(response.json())
        except (httpx.HTTPError, ValueError) as exc:
            self._logger.warning("price_fetch_failed", address=address, error=str(exc))
            return None

        for pair in pairs:
            if self._on_chain(pair):
                return to_candidate(pair, complete=False)
        return None

    def _on_chain(self, pair: RawRecord) -> bool:
        return str(pair.get("chainId", "")).lower() == self._settings.chain_id.lower()


def _pairs(payload: Any) -> list[RawRecord]:
    if not isinstance(payload, dict):
        return []
    pairs = payload.get("pairs")
    if not isinstance(pairs, list):
        return []
    return [pair for pair in pairs if isinstance(pair, dict)]


def _volume_24h(pair: RawRecord) -> float:
    volume = pair.get("volume")
    return parse_number(volume.get("h24")) if isinstance(volume, dict) else 0.0
