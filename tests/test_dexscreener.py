from __future__ import annotations

import httpx
import pytest

from dex_trader.config import Settings
from dex_trader.data.dexscreener import DexScreenerClient, MarketDataError

_USDC = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"


def _pair(chain: str, pool: str, volume: float = 80_000) -> dict[str, object]:
    return {
        "chainId": chain,
        "pairAddress": pool,
        "baseToken": {"address": f"0x{pool}", "symbol": "FOO"},
        "priceUsd": "2.5",
        "priceChange": {"h24": 10},
        "volume": {"h24": volume},
        "liquidity": {"usd": 150_000},
        "fdv": 300_000,
    }


def _client(handler: object) -> DexScreenerClient:
    settings = Settings(state_dir="data/state", seed_tokens=_USDC)
    http = httpx.Client(
        transport=httpx.MockTransport(handler),  # type: ignore[arg-type]
        base_url=settings.dexscreener_url,
    )
    return DexScreenerClient(settings, http=http)


def test_trending_source_used_when_it_has_chain_pairs() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/latest/dex/tokens/trending"
        return httpx.Response(200, json={"pairs": [_pair("base", "p1"), _pair("solana", "p2")]})

    pairs = _client(handler).fetch_candidate_pool()
    assert [p["pairAddress"] for p in pairs] == ["p1", "p2"]


def test_falls_back_to_token_lookup() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/trending"):
            return httpx.Response(200, json={"pairs": [_pair("solana", "p0")]})
        return httpx.Response(
            200,
            json={"pairs": [_pair("base", "p1"), _pair("base", "p2", volume=10), _pair("eth", "p3")]},
        )

    pairs = _client(handler).fetch_candidate_pool()
    assert [p["pairAddress"] for p in pairs] == ["p1"]


def test_trending_error_falls_back() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/trending"):
            return httpx.Response(404)
        return httpx.Response(200, json={"pairs": [_pair("base", "p1")]})

    assert len(_client(handler).fetch_candidate_pool()) == 1


def test_all_sources_failing_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    with pytest.raises(MarketDataError):
        _client(handler).fetch_candidate_pool()


def test_empty_sources_return_empty_list() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"pairs": None})

    assert _client(handler).fetch_candidate_pool() == []


def test_fetch_current_price_picks_chain_pair() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/latest/dex/tokens/0xabc"
        return httpx.Response(200, json={"pairs": [_pair("solana", "p0"), _pair("base", "p1")]})

    candidate = _client(handler).fetch_current_price("0xabc")
    assert candidate is not None
    assert candidate.price == 2.5
    assert candidate.pair_address == "p1"


def test_fetch_current_price_failure_returns_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    assert _client(handler).fetch_current_price("0xabc") is None


def test_fetch_current_price_ignores_zero_volume() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        pair = _pair("base", "p1", volume=0)
        pair["priceUsd"] = "0.01"
        return httpx.Response(200, json={"pairs": [pair]})

    candidate = _client(handler).fetch_current_price("0xabc")
    assert candidate is not None
    assert candidate.price == 0.01
    assert candidate.volume_24h == 0.0


def test_fetch_current_price_without_price_returns_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        pair = _pair("base", "p1")
        pair["priceUsd"] = None
        return httpx.Response(200, json={"pairs": [pair]})

    assert _client(handler).fetch_current_price("0xabc") is None
