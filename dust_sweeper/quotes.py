"""
Quote Service and Batch Quote Collector.

The service prices one asset, consulting the quote cache first. The collector
prices a whole wallet strictly one asset at a time: Jupiter only tolerates a
single in-flight request at a low rate, so every call that misses the cache
is followed by a wait on the session's RateLimiter.
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from .cache import QuoteCache
from .exceptions import NetworkError, QuoteError
from .jupiter_async import JupiterClient, NETWORK_ERROR_CODE
from .models import Asset, Quote, QuoteFailure, QuoteOutcome, QuotedAsset
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

DEFAULT_MIN_DUST_VALUE_SOL = 0.002

CACHED_ERROR_CODE = "CACHED_ERROR"

ProgressCallback = Callable[[int, int], None]

ERROR_CODE_MESSAGES: Dict[str, str] = {
    "TOKEN_NOT_TRADABLE": "Not tradeable",
    "COULD_NOT_FIND_ANY_ROUTE": "No liquidity",
    "NO_ROUTES_FOUND": "No route found",
    "AMOUNT_TOO_SMALL": "Amount too small",
}
DEFAULT_ERROR_MESSAGE = "Cannot swap"


def get_error_message(error_code: Optional[str], error_msg: Optional[str] = None) -> str:
    """Map a raw aggregator error to the reason shown next to an untradeable asset."""
    lowered = (error_msg or "").lower()
    if "insufficient" in lowered:
        return "Insufficient balance"
    if "too small" in lowered:
        return "Amount too small"
    return ERROR_CODE_MESSAGES.get(error_code or "", DEFAULT_ERROR_MESSAGE)


def parse_quote_response(status: int, data: Any, mint: str, amount: int) -> Quote:
    """
    Turn a raw quote response into a Quote.

    Raises:
        QuoteError: The aggregator refused to price the asset
        ValueError: The body is not a quote (wrong shape or non-numeric amounts)
    """
    if not isinstance(data, dict):
        raise ValueError(f"Unexpected quote body type {type(data).__name__}")

    if status >= 400 or data.get("error") or "outAmount" not in data:
        raise QuoteError(
            str(data.get("error") or f"HTTP {status}"),
            input_mint=mint,
            api_error_code=str(data.get("errorCode") or f"HTTP_{status}"),
        )

    return Quote.from_dict(data, input_mint=mint, in_amount=amount)


class QuoteService:
    """Fetches SOL quotes for single assets, cache first."""

    def __init__(self, client: JupiterClient, cache: Optional[QuoteCache] = None):
        self.client = client
        self.cache = cache

    def _from_cache(self, mint: str, amount: int) -> Optional[QuoteOutcome]:
        if self.cache is None:
            return None
        cached = self.cache.get_cached_quote(mint, amount)
        if cached is None:
            return None

        if cached.get("error"):
            return QuoteOutcome(
                error=QuoteFailure(
                    error=cached["error"],
                    error_code=cached.get("errorCode") or CACHED_ERROR_CODE,
                ),
                from_cache=True,
            )

        return QuoteOutcome(
            quote=Quote(
                input_mint=mint,
                in_amount=amount,
                out_amount=int(cached.get("outAmount", 0)),
                price_impact_pct=float(cached.get("priceImpactPct", 0) or 0),
                raw_response=dict(cached),
            ),
            from_cache=True,
        )

    async def get_quote(self, mint: str, amount: int, use_cache: bool = True) -> QuoteOutcome:
        """
        Price ``amount`` raw units of ``mint``.

        Aggregator rejections are cached so a known-untradeable asset is not
        asked about again within the TTL. Transport failures and bodies that
        are not a usable quote are reported as NETWORK_ERROR and never cached.
        Callers must wait on the rate limiter once for every outcome that is
        not ``from_cache``.
        """
        if use_cache:
            cached = self._from_cache(mint, amount)
            if cached is not None:
                return cached

        try:
            status, data = await self.client.request_quote(mint, amount)
            quote = parse_quote_response(status, data, mint, amount)
        except QuoteError as e:
            failure = QuoteFailure(error=e.message, error_code=e.api_error_code)
            logger.warning(f"Quote failed for {mint}: {failure.error_code} {failure.error}")
            if self.cache is not None:
                self.cache.set_cached_quote(mint, amount, {
                    "outAmount": "0",
                    "priceImpactPct": "0",
                    "error": failure.error,
                    "errorCode": failure.error_code,
                })
            return QuoteOutcome(error=failure)
        except (NetworkError, ValueError, TypeError) as e:
            logger.warning(f"Quote error for {mint}: {e}")
            return QuoteOutcome(
                error=QuoteFailure(error="Network error", error_code=NETWORK_ERROR_CODE),
            )

        if self.cache is not None:
            self.cache.set_cached_quote(mint, amount, {
                "outAmount": str(quote.out_amount),
                "priceImpactPct": str(quote.price_impact_pct),
            })
        return QuoteOutcome(quote=quote)


def sort_quoted_assets(assets: Iterable[QuotedAsset]) -> List[QuotedAsset]:
    """Tradeable first by descending SOL value, untradeable after."""
    return sorted(
        assets,
        key=lambda a: (not a.tradeable, -a.quote_out_amount if a.tradeable else 0),
    )


class BatchQuoteCollector:
    """Quotes a wallet's assets one by one and ranks the sweepable ones."""

    def __init__(
        self,
        quote_service: QuoteService,
        rate_limiter: RateLimiter,
        min_dust_value_sol: float = DEFAULT_MIN_DUST_VALUE_SOL,
    ):
        self.quote_service = quote_service
        self.rate_limiter = rate_limiter
        self.min_dust_value_sol = min_dust_value_sol

    async def get_quotes_for_assets(
        self,
        assets: List[Asset],
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[QuotedAsset]:
        """
        Quote every asset and return the ranked list.

        Assets quoted below ``min_dust_value_sol`` are dropped entirely.
        ``on_progress(current, total)`` is called before each attempt,
        starting at ``(1, total)``.
        """
        quoted: List[QuotedAsset] = []
        total = len(assets)

        for index, asset in enumerate(assets):
            if on_progress:
                on_progress(index + 1, total)

            outcome = await self.quote_service.get_quote(asset.mint, asset.amount)

            # Only rate limit if we actually hit the API
            if not outcome.from_cache:
                await self.rate_limiter.wait()

            if outcome.quote is not None:
                out_sol = outcome.quote.out_amount_sol
                if out_sol < self.min_dust_value_sol:
                    logger.debug(f"Dropping {asset.mint}: {out_sol} SOL below threshold")
                    continue
                quoted.append(QuotedAsset(
                    asset=asset,
                    tradeable=True,
                    selected=True,
                    quote_out_amount=outcome.quote.out_amount,
                    price_impact_pct=outcome.quote.price_impact_pct,
                ))
            elif outcome.error is not None:
                quoted.append(QuotedAsset(
                    asset=asset,
                    tradeable=False,
                    error_reason=get_error_message(outcome.error.error_code, outcome.error.error),
                ))

        ranked = sort_quoted_assets(quoted)
        logger.info(
            f"Quoted {total} assets: {sum(1 for a in ranked if a.tradeable)} tradeable, "
            f"{sum(1 for a in ranked if not a.tradeable)} untradeable"
        )
        return ranked
