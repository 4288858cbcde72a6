"""
Sweep Session

Ties the sweeper components together for one user session:
- One RateLimiter shared by quoting and swap building
- Quote and asset-list caches
- Aggregator and RPC clients
- Token metadata loaded once
- The quoted asset list with the user's selection
"""

from enum import Enum
from typing import AsyncIterator, Callable, Dict, List, Optional

from solana.rpc.async_api import AsyncClient

from .cache import AssetListCache, QuoteCache, open_caches
from .config import Settings, get_settings
from .jupiter_async import JupiterClient
from .logger import get_logger
from .metadata import TokenMetadataRegistry
from .models import QuotedAsset, SwapEvent, SwapPhase, SwapResult
from .quotes import BatchQuoteCollector, QuoteService
from .rate_limiter import RateLimiter
from .sweeper import ProgressCallback, SwapOrchestrator
from .transaction import BatchSigner, TransactionBuilder, TransactionSender
from .wallet_async import cache_assets_for_wallet, fetch_wallet_assets


logger = get_logger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    BUILDING = "building"
    SIGNING = "signing"
    SENDING = "sending"
    COMPLETE = "complete"


_PHASE_STATES = {
    SwapPhase.BUILDING: SessionState.BUILDING,
    SwapPhase.SIGNING: SessionState.SIGNING,
    SwapPhase.SENDING: SessionState.SENDING,
    SwapPhase.DONE: SessionState.COMPLETE,
}


class SweepSession:
    """
    One user's scan and sweep workflow.

    Example:
        async with SweepSession() as session:
            await session.scan(owner)
            results = await session.sweep(signer)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        rpc_client: Optional[AsyncClient] = None,
        jupiter: Optional[JupiterClient] = None,
        quote_cache: Optional[QuoteCache] = None,
        asset_cache: Optional[AssetListCache] = None,
        rate_limiter: Optional[RateLimiter] = None,
        metadata: Optional[TokenMetadataRegistry] = None,
    ):
        self.settings = settings or get_settings()

        self._owns_rpc = rpc_client is None
        self.rpc_client = rpc_client or AsyncClient(
            str(self.settings.solana.rpc_url),
            commitment=self.settings.solana.commitment,
            timeout=self.settings.solana.timeout,
        )
        self._owns_jupiter = jupiter is None
        self.jupiter = jupiter or JupiterClient.from_settings(self.settings.jupiter)

        if quote_cache is None or asset_cache is None:
            default_quotes, default_assets = open_caches(self.settings.cache)
            quote_cache = quote_cache or default_quotes
            asset_cache = asset_cache or default_assets
        self.quote_cache = quote_cache
        self.asset_cache = asset_cache

        self.rate_limiter = rate_limiter or RateLimiter(self.settings.jupiter.min_request_interval)
        self.metadata = metadata

        self.quote_service = QuoteService(self.jupiter, self.quote_cache)
        self.collector = BatchQuoteCollector(
            self.quote_service,
            self.rate_limiter,
            min_dust_value_sol=self.settings.sweep.min_dust_value_sol,
        )
        self.orchestrator = SwapOrchestrator(
            self.quote_service,
            TransactionBuilder(self.jupiter, self.rate_limiter, self.settings.sweep.fee_account),
            TransactionSender(self.rpc_client, max_retries=self.settings.solana.send_max_retries),
            self.rate_limiter,
        )

        self.owner: Optional[str] = None
        self.assets: List[QuotedAsset] = []
        self.results: List[SwapResult] = []
        self.state = SessionState.IDLE

    async def __aenter__(self) -> "SweepSession":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        logger.debug(f"Jupiter metrics: {self.jupiter.get_metrics()}")
        logger.debug(f"Rate limiter: {self.rate_limiter.stats.to_dict()}")
        if self._owns_jupiter:
            await self.jupiter.close()
        if self._owns_rpc:
            await self.rpc_client.close()

    # =========================================================================
    # Scanning
    # =========================================================================

    async def load_metadata(self) -> TokenMetadataRegistry:
        if self.metadata is None:
            self.metadata = await TokenMetadataRegistry.load(
                self.jupiter, self.settings.jupiter.token_list_urls
            )
        return self.metadata

    async def scan(
        self,
        owner: str,
        on_progress: Optional[Callable[[int, int], None]] = None,
        force_refresh: bool = False,
    ) -> List[QuotedAsset]:
        """
        List, enrich and quote the owner's token balances.

        ``force_refresh`` clears both caches first so every balance and
        quote is fetched again.
        """
        if force_refresh:
            self.clear_caches()

        self.state = SessionState.LOADING
        self.owner = owner
        self.assets = []
        self.results = []

        try:
            raw_assets = await fetch_wallet_assets(
                self.rpc_client,
                owner,
                asset_cache=self.asset_cache,
                use_cache=not force_refresh,
            )
            if not raw_assets:
                self.state = SessionState.READY
                return self.assets

            registry = await self.load_metadata()
            enriched = registry.enrich(raw_assets)
            cache_assets_for_wallet(self.asset_cache, owner, enriched)

            self.assets = await self.collector.get_quotes_for_assets(enriched, on_progress)
        except Exception:
            self.state = SessionState.IDLE
            raise

        self.state = SessionState.READY
        return self.assets

    # =========================================================================
    # Selection
    # =========================================================================

    def _find(self, mint: str) -> Optional[QuotedAsset]:
        for asset in self.assets:
            if asset.mint == mint:
                return asset
        return None

    def toggle(self, mint: str) -> bool:
        """Flip selection of a tradeable asset. Returns the new selection state."""
        asset = self._find(mint)
        if asset is None:
            return False
        return asset.set_selected(not asset.selected)

    def select_all(self) -> None:
        for asset in self.assets:
            asset.set_selected(True)

    def deselect_all(self) -> None:
        for asset in self.assets:
            asset.set_selected(False)

    def select_only(self, mints: List[str]) -> None:
        wanted = set(mints)
        for asset in self.assets:
            asset.set_selected(asset.mint in wanted)

    @property
    def selected_assets(self) -> List[QuotedAsset]:
        return [a for a in self.assets if a.selected and a.tradeable]

    @property
    def selected_total_sol(self) -> float:
        return sum(a.quote_out_amount_ui for a in self.selected_assets)

    # =========================================================================
    # Sweeping
    # =========================================================================

    async def stream_sweep(self, signer: BatchSigner) -> AsyncIterator[SwapEvent]:
        """Sweep the selected assets, yielding each orchestrator event."""
        if self.owner is None:
            raise RuntimeError("scan() must be called before sweeping")

        selected = self.selected_assets
        self.results = []
        if not selected:
            return

        async for event in self.orchestrator.stream(selected, self.owner, signer):
            self.state = _PHASE_STATES[event.phase]
            if event.is_final:
                self.results = list(event.results)
                self._drop_swept(self.results)
            yield event

    async def sweep(
        self,
        signer: BatchSigner,
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[SwapResult]:
        async for event in self.stream_sweep(signer):
            if on_progress:
                on_progress(event)
        return self.results

    def _drop_swept(self, results: List[SwapResult]) -> None:
        swept = {r.mint for r in results if r.success}
        if swept:
            self.assets = [a for a in self.assets if a.mint not in swept]
            logger.info(f"Removed {len(swept)} swept assets from the list")

    # =========================================================================
    # Cache
    # =========================================================================

    def clear_caches(self) -> None:
        self.quote_cache.clear()
        self.asset_cache.clear()
        logger.info("All caches cleared")

    def cache_stats(self) -> Dict[str, int]:
        return {
            "quotes": self.quote_cache.store.raw_size(),
            "tokens": self.asset_cache.store.raw_size(),
        }
