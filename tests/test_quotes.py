"""
Tests for the Quote Service and the Batch Quote Collector.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from dust_sweeper.exceptions import NetworkError
from dust_sweeper.jupiter_async import NETWORK_ERROR_CODE, JupiterClient
from dust_sweeper.quotes import (
    BatchQuoteCollector,
    QuoteService,
    get_error_message,
)

from .helpers import FakeResponse, make_asset, make_quoted


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def mock_client():
    client = MagicMock()
    client.request_quote = AsyncMock(
        return_value=(200, {"outAmount": "5000000", "priceImpactPct": "0.12"})
    )
    return client


@pytest.fixture
def service(mock_client, quote_cache):
    return QuoteService(mock_client, quote_cache)


@pytest.fixture
def mock_limiter():
    limiter = MagicMock()
    limiter.wait = AsyncMock(return_value=0.0)
    return limiter


def quote_body(out_amount: int) -> tuple:
    return 200, {"outAmount": str(out_amount), "priceImpactPct": "0"}


# =============================================================================
# Error messages
# =============================================================================


@pytest.mark.parametrize("code,msg,expected", [
    ("TOKEN_NOT_TRADABLE", None, "Not tradeable"),
    ("COULD_NOT_FIND_ANY_ROUTE", "", "No liquidity"),
    ("NO_ROUTES_FOUND", None, "No route found"),
    ("AMOUNT_TOO_SMALL", None, "Amount too small"),
    ("SOMETHING_ELSE", "weird", "Cannot swap"),
    (None, None, "Cannot swap"),
    ("TOKEN_NOT_TRADABLE", "Insufficient balance for swap", "Insufficient balance"),
    ("NO_ROUTES_FOUND", "Input amount too small", "Amount too small"),
])
def test_get_error_message(code, msg, expected):
    assert get_error_message(code, msg) == expected


# =============================================================================
# Quote Service
# =============================================================================


class TestQuoteService:

    async def test_fresh_quote_is_cached(self, service, mock_client, quote_cache):
        mint = make_asset(1).mint

        outcome = await service.get_quote(mint, 1_000_000)

        assert outcome.ok
        assert not outcome.from_cache
        assert outcome.quote.out_amount == 5_000_000
        assert outcome.quote.price_impact_pct == pytest.approx(0.12)
        assert quote_cache.get_cached_quote(mint, 1_000_000) == {
            "outAmount": "5000000",
            "priceImpactPct": "0.12",
        }

    async def test_cache_hit_skips_api(self, service, mock_client):
        mint = make_asset(1).mint
        await service.get_quote(mint, 1_000_000)

        outcome = await service.get_quote(mint, 1_000_000)

        assert outcome.from_cache
        assert outcome.quote.out_amount == 5_000_000
        mock_client.request_quote.assert_awaited_once()

    async def test_use_cache_false_always_calls_api(self, service, mock_client):
        mint = make_asset(1).mint
        await service.get_quote(mint, 1_000_000)

        outcome = await service.get_quote(mint, 1_000_000, use_cache=False)

        assert not outcome.from_cache
        assert mock_client.request_quote.await_count == 2

    def test_quote_params(self):
        client = JupiterClient()
        params = client.quote_params("MINT", 1_000_000)

        assert params["slippageBps"] == "50"
        assert params["platformFeeBps"] == "100"
        assert params["swapMode"] == "ExactIn"
        assert params["outputMint"] == "So11111111111111111111111111111111111111112"
        assert params["amount"] == "1000000"

    async def test_error_response_is_cached(self, service, mock_client, quote_cache):
        mint = make_asset(1).mint
        mock_client.request_quote.return_value = (
            400, {"error": "No routes", "errorCode": "COULD_NOT_FIND_ANY_ROUTE"}
        )

        outcome = await service.get_quote(mint, 10)

        assert not outcome.ok
        assert outcome.error.error_code == "COULD_NOT_FIND_ANY_ROUTE"
        cached = quote_cache.get_cached_quote(mint, 10)
        assert cached["outAmount"] == "0"
        assert cached["errorCode"] == "COULD_NOT_FIND_ANY_ROUTE"

    async def test_cached_error_is_replayed(self, service, mock_client):
        mint = make_asset(1).mint
        mock_client.request_quote.return_value = (
            400, {"error": "Not tradable", "errorCode": "TOKEN_NOT_TRADABLE"}
        )
        await service.get_quote(mint, 10)

        outcome = await service.get_quote(mint, 10)

        assert outcome.from_cache
        assert outcome.error.error_code == "TOKEN_NOT_TRADABLE"
        mock_client.request_quote.assert_awaited_once()

    async def test_error_payload_with_ok_status(self, service, mock_client):
        mock_client.request_quote.return_value = (200, {"error": "bad mint"})

        outcome = await service.get_quote(make_asset(1).mint, 10)

        assert outcome.error.error == "bad mint"

    async def test_network_error_not_cached(self, service, mock_client, quote_cache):
        mint = make_asset(1).mint
        mock_client.request_quote.side_effect = NetworkError("timeout", url="x")

        outcome = await service.get_quote(mint, 10)

        assert outcome.error.error_code == NETWORK_ERROR_CODE
        assert not outcome.from_cache
        assert quote_cache.get_cached_quote(mint, 10) is None

    @pytest.mark.parametrize("body", [
        {"outAmount": "n/a", "priceImpactPct": "0"},
        {"outAmount": "5000000", "priceImpactPct": "high"},
        {"outAmount": None},
        ["not", "a", "quote"],
    ])
    async def test_unusable_body_is_uncached_network_error(self, service, mock_client, quote_cache, body):
        mint = make_asset(1).mint
        mock_client.request_quote.return_value = (200, body)

        outcome = await service.get_quote(mint, 10)

        assert outcome.error.error == "Network error"
        assert outcome.error.error_code == NETWORK_ERROR_CODE
        assert quote_cache.get_cached_quote(mint, 10) is None

    async def test_works_without_cache(self, mock_client):
        service = QuoteService(mock_client)

        outcome = await service.get_quote(make_asset(1).mint, 10)

        assert outcome.ok


# =============================================================================
# Batch Quote Collector
# =============================================================================


class TestBatchQuoteCollector:

    async def test_end_to_end_example(self, service, mock_limiter):
        collector = BatchQuoteCollector(service, mock_limiter, min_dust_value_sol=0.002)
        asset = make_asset(1, amount=1_000_000, decimals=6)

        quoted = await collector.get_quotes_for_assets([asset])

        assert len(quoted) == 1
        assert quoted[0].tradeable
        assert quoted[0].selected
        assert quoted[0].quote_out_amount_ui == pytest.approx(0.005)
        assert asset.ui_amount == 1.0

    async def test_below_threshold_is_dropped(self, service, mock_client, mock_limiter):
        mock_client.request_quote.return_value = quote_body(1_999_999)
        collector = BatchQuoteCollector(service, mock_limiter, min_dust_value_sol=0.002)

        quoted = await collector.get_quotes_for_assets([make_asset(1)])

        assert quoted == []

    async def test_ordering(self, service, mock_client, mock_limiter):
        mock_client.request_quote.side_effect = [
            quote_body(500_000_000),
            (400, {"error": "x", "errorCode": "TOKEN_NOT_TRADABLE"}),
            quote_body(2_000_000_000),
        ]
        collector = BatchQuoteCollector(service, mock_limiter)
        assets = [make_asset(1), make_asset(2), make_asset(3)]

        quoted = await collector.get_quotes_for_assets(assets)

        assert [q.quote_out_amount_ui for q in quoted] == [2.0, 0.5, 0]
        assert [q.mint for q in quoted] == [assets[2].mint, assets[0].mint, assets[1].mint]
        assert not quoted[2].tradeable
        assert not quoted[2].selected
        assert quoted[2].error_reason == "Not tradeable"

    async def test_progress_starts_at_one(self, service, mock_limiter):
        collector = BatchQuoteCollector(service, mock_limiter)
        calls = []

        await collector.get_quotes_for_assets(
            [make_asset(1), make_asset(2)],
            on_progress=lambda current, total: calls.append((current, total)),
        )

        assert calls == [(1, 2), (2, 2)]

    async def test_rate_limit_only_on_api_calls(self, service, mock_limiter):
        collector = BatchQuoteCollector(service, mock_limiter)
        assets = [make_asset(1), make_asset(2)]

        await collector.get_quotes_for_assets(assets)
        assert mock_limiter.wait.await_count == 2

        await collector.get_quotes_for_assets(assets)
        assert mock_limiter.wait.await_count == 2

    async def test_network_error_is_untradeable(self, service, mock_client, mock_limiter):
        mock_client.request_quote.side_effect = NetworkError("down")
        collector = BatchQuoteCollector(service, mock_limiter)

        quoted = await collector.get_quotes_for_assets([make_asset(1)])

        assert quoted[0].tradeable is False
        assert quoted[0].error_reason == "Cannot swap"
        mock_limiter.wait.assert_awaited_once()

    async def test_non_numeric_quote_only_affects_that_asset(self, service, mock_client, mock_limiter):
        mock_client.request_quote.side_effect = [
            (200, {"outAmount": "n/a", "priceImpactPct": "0"}),
            quote_body(5_000_000),
        ]
        collector = BatchQuoteCollector(service, mock_limiter)
        assets = [make_asset(1), make_asset(2)]

        quoted = await collector.get_quotes_for_assets(assets)

        assert [q.mint for q in quoted] == [assets[1].mint, assets[0].mint]
        assert quoted[0].tradeable
        assert quoted[0].quote_out_amount_ui == pytest.approx(0.005)
        assert not quoted[1].tradeable
        assert mock_limiter.wait.await_count == 2

    async def test_garbage_body_only_affects_that_asset(self, quote_cache, mock_limiter):
        http_session = MagicMock()
        http_session.closed = False
        http_session.request = MagicMock(side_effect=[
            FakeResponse(200, body=b'\xff\xfe{"outAmount"'),
            FakeResponse(200, {"outAmount": "7000000", "priceImpactPct": "0"}),
        ])
        service = QuoteService(JupiterClient(session=http_session), quote_cache)
        collector = BatchQuoteCollector(service, mock_limiter)
        assets = [make_asset(1), make_asset(2)]

        quoted = await collector.get_quotes_for_assets(assets)

        assert [q.mint for q in quoted] == [assets[1].mint, assets[0].mint]
        assert quoted[0].quote_out_amount_ui == pytest.approx(0.007)
        assert not quoted[1].tradeable
        assert quote_cache.get_cached_quote(assets[0].mint, assets[0].amount) is None


def test_untradeable_cannot_be_selected():
    quoted = make_quoted(1, tradeable=False)

    assert quoted.set_selected(True) is False
    assert quoted.selected is False
    assert quoted.quote_out_amount_ui == 0
