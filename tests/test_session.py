"""
Tests for SweepSession: scanning, selection, sweeping and cache control.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from dust_sweeper.config import Settings
from dust_sweeper.metadata import TokenMetadataRegistry
from dust_sweeper.models import SwapEvent, SwapPhase, SwapResult, TokenMetadata
from dust_sweeper.session import SessionState, SweepSession

from .helpers import make_asset, make_quoted


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def jupiter():
    client = MagicMock()
    client.request_quote = AsyncMock(
        return_value=(200, {"outAmount": "5000000", "priceImpactPct": "0"})
    )
    client.close = AsyncMock()
    return client


@pytest.fixture
def session(jupiter, quote_cache, asset_cache, no_wait_limiter):
    registry = TokenMetadataRegistry({
        make_asset(1).mint: TokenMetadata(address=make_asset(1).mint, symbol="BONK", name="Bonk"),
    })
    return SweepSession(
        settings=Settings(),
        rpc_client=MagicMock(),
        jupiter=jupiter,
        quote_cache=quote_cache,
        asset_cache=asset_cache,
        rate_limiter=no_wait_limiter,
        metadata=registry,
    )


@pytest.fixture
def wallet_assets():
    return [make_asset(1), make_asset(2)]


@pytest.fixture
def mock_fetch(wallet_assets):
    with patch("dust_sweeper.session.fetch_wallet_assets", AsyncMock(return_value=wallet_assets)) as mock:
        yield mock


# =============================================================================
# Scanning
# =============================================================================


class TestScan:

    async def test_scan_enriches_caches_and_quotes(self, session, owner, mock_fetch, asset_cache):
        assets = await session.scan(owner)

        assert len(assets) == 2
        assert all(a.tradeable and a.selected for a in assets)
        assert session.state == SessionState.READY

        cached = asset_cache.get_cached_assets(owner)
        symbols = {a.mint: a.symbol for a in cached}
        assert symbols[make_asset(1).mint] == "BONK"
        assert symbols[make_asset(2).mint] == f"{make_asset(2).mint[:4]}...{make_asset(2).mint[-4:]}"
        assert cached[1].name == "Unknown Token"

    async def test_empty_wallet(self, session, owner, mock_fetch):
        mock_fetch.return_value = []

        assert await session.scan(owner) == []
        assert session.state == SessionState.READY

    async def test_force_refresh_clears_caches(self, session, owner, mock_fetch, quote_cache, jupiter):
        await session.scan(owner)
        await session.scan(owner)
        assert jupiter.request_quote.await_count == 2

        await session.scan(owner, force_refresh=True)

        assert jupiter.request_quote.await_count == 4
        assert mock_fetch.await_args.kwargs["use_cache"] is False

    async def test_scan_failure_returns_to_idle(self, session, owner, mock_fetch):
        mock_fetch.side_effect = RuntimeError("rpc down")

        with pytest.raises(RuntimeError):
            await session.scan(owner)

        assert session.state == SessionState.IDLE

    async def test_metadata_loaded_once(self, jupiter, quote_cache, asset_cache, no_wait_limiter, owner, mock_fetch):
        jupiter.get_token_list = AsyncMock(return_value=[])
        session = SweepSession(
            settings=Settings(),
            rpc_client=MagicMock(),
            jupiter=jupiter,
            quote_cache=quote_cache,
            asset_cache=asset_cache,
            rate_limiter=no_wait_limiter,
        )

        await session.scan(owner)
        await session.scan(owner)

        assert jupiter.get_token_list.await_count == len(session.settings.jupiter.token_list_urls)


# =============================================================================
# Selection
# =============================================================================


class TestSelection:

    @pytest.fixture(autouse=True)
    def quoted(self, session):
        session.assets = [make_quoted(1, 2_000_000_000), make_quoted(2), make_quoted(3, tradeable=False)]

    def test_toggle(self, session):
        mint = session.assets[0].mint

        assert session.toggle(mint) is False
        assert session.toggle(mint) is True

    def test_toggle_untradeable_never_selects(self, session):
        mint = session.assets[2].mint

        assert session.toggle(mint) is False
        assert session.toggle(mint) is False

    def test_toggle_unknown_mint(self, session):
        assert session.toggle("unknown") is False

    def test_select_all_respects_tradeable(self, session):
        session.deselect_all()
        session.select_all()

        assert [a.selected for a in session.assets] == [True, True, False]

    def test_deselect_all(self, session):
        session.deselect_all()

        assert session.selected_assets == []
        assert session.selected_total_sol == 0

    def test_selected_total(self, session):
        assert session.selected_total_sol == pytest.approx(2.005)

    def test_select_only(self, session):
        session.select_only([session.assets[1].mint, session.assets[2].mint])

        assert [a.selected for a in session.assets] == [False, True, False]


# =============================================================================
# Sweeping
# =============================================================================


class TestSweep:

    async def test_sweep_requires_scan(self, session):
        with pytest.raises(RuntimeError):
            await session.sweep(AsyncMock())

    async def test_swept_assets_are_removed(self, session, owner):
        session.owner = owner
        session.assets = [make_quoted(1), make_quoted(2)]
        results = [
            SwapResult(mint=session.assets[0].mint, success=True, signature="s", amount_out=0.005),
            SwapResult(mint=session.assets[1].mint, success=False, error="Signing cancelled"),
        ]

        async def fake_stream(assets, user_pubkey, signer):
            yield SwapEvent(SwapPhase.DONE, results=tuple(results))

        session.orchestrator.stream = fake_stream
        seen = []

        swept = await session.sweep(AsyncMock(), on_progress=seen.append)

        assert swept == results
        assert [a.mint for a in session.assets] == [results[1].mint]
        assert session.state == SessionState.COMPLETE
        assert len(seen) == 1

    async def test_sweep_with_no_selection(self, session, owner):
        session.owner = owner
        session.assets = [make_quoted(1, tradeable=False)]

        assert await session.sweep(AsyncMock()) == []


def test_clear_caches(session, owner, quote_cache, asset_cache):
    quote_cache.set_cached_quote(make_asset(1).mint, 1, {"outAmount": "1"})
    asset_cache.set_cached_assets(owner, [make_asset(1)])

    session.clear_caches()

    assert session.cache_stats() == {"quotes": 0, "tokens": 0}
