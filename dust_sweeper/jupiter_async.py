"""
Jupiter Async Client
Thin aiohttp client for the Jupiter quote, swap-build and token-list endpoints.

The client performs exactly one HTTP request per call. It does not retry,
cache or rate limit; those policies live in the quote service and the
transaction builder, which share one RateLimiter per session.
"""

import asyncio
import aiohttp
import json
import time
import logging
from dataclasses import dataclass
from typing import Optional, List, Dict, Any, Tuple

from .config import JupiterSettings
from .exceptions import NetworkError
from .models import NATIVE_SOL_MINT, Quote

# Configure logging
logger = logging.getLogger(__name__)

# ============================================================================
# CONSTANTS
# ============================================================================

JUPITER_API_BASE = "https://api.jup.ag/swap/v1"

DEFAULT_SLIPPAGE_BPS = 50  # 0.5%
DEFAULT_PLATFORM_FEE_BPS = 100  # 1%
DEFAULT_TIMEOUT = 30
MAX_ACCOUNTS = 64

NETWORK_ERROR_CODE = "NETWORK_ERROR"


# ============================================================================
# DATA CLASSES
# ============================================================================

@dataclass
class SwapTransaction:
    """Swap transaction ready for signing."""
    swap_transaction: str  # Base64 encoded transaction
    last_valid_block_height: int
    priority_fee_lamports: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SwapTransaction":
        return cls(
            swap_transaction=data.get("swapTransaction", ""),
            last_valid_block_height=int(data.get("lastValidBlockHeight", 0)),
            priority_fee_lamports=int(data.get("prioritizationFeeLamports", 0) or 0),
        )


@dataclass
class JupiterMetrics:
    """Metrics for monitoring Jupiter client."""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    network_errors: int = 0
    invalid_responses: int = 0
    total_latency_ms: float = 0.0

    @property
    def avg_latency_ms(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.total_latency_ms / self.total_requests

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "failed_requests": self.failed_requests,
            "network_errors": self.network_errors,
            "invalid_responses": self.invalid_responses,
            "avg_latency_ms": self.avg_latency_ms,
        }


# ============================================================================
# JUPITER CLIENT
# ============================================================================

class JupiterClient:
    """
    Async Jupiter client.

    Example:
        async with JupiterClient() as jupiter:
            status, data = await jupiter.request_quote(mint, 1_000_000)
    """

    def __init__(
        self,
        api_base: str = JUPITER_API_BASE,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
        platform_fee_bps: int = DEFAULT_PLATFORM_FEE_BPS,
        output_mint: str = NATIVE_SOL_MINT,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initialize Jupiter client.

        Args:
            api_base: Base URL for Jupiter quote/swap API
            api_key: Optional key sent as the x-api-key header
            timeout: Request timeout in seconds
            slippage_bps: Slippage tolerance sent with every quote
            platform_fee_bps: Platform fee sent with every quote
            output_mint: Asset every quote converts into
            session: Externally owned session (not closed by this client)
        """
        self.api_base = api_base.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.slippage_bps = slippage_bps
        self.platform_fee_bps = platform_fee_bps
        self.output_mint = output_mint

        self._session = session
        self._owns_session = session is None
        self._session_lock = asyncio.Lock()

        self.metrics = JupiterMetrics()
        self._closed = False

    @classmethod
    def from_settings(cls, settings: JupiterSettings, **kwargs: Any) -> "JupiterClient":
        return cls(
            api_base=str(settings.api_url),
            api_key=settings.api_key.get_secret_value() if settings.api_key else None,
            timeout=settings.timeout,
            slippage_bps=settings.slippage_bps,
            platform_fee_bps=settings.platform_fee_bps,
            **kwargs
        )

    async def __aenter__(self) -> "JupiterClient":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure aiohttp session exists."""
        async with self._session_lock:
            if self._session is None or self._session.closed:
                timeout = aiohttp.ClientTimeout(total=self.timeout)
                self._session = aiohttp.ClientSession(
                    timeout=timeout,
                    headers={"User-Agent": "DustSweeper/1.0"}
                )
                self._owns_session = True
            return self._session

    async def close(self) -> None:
        """Close the client and cleanup resources."""
        if self._closed:
            return

        self._closed = True

        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

        logger.debug("JupiterClient closed")

    async def _request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None,
    ) -> Tuple[int, Any]:
        """
        Make one HTTP request.

        Returns:
            (status code, parsed JSON body). An empty body parses as ``{}``.

        Raises:
            NetworkError: No response was received, or the body was not
                UTF-8 JSON
        """
        session = await self._ensure_session()
        start_time = time.time()
        self.metrics.total_requests += 1

        logger.debug(f"Request {method} {url} params={params}")

        try:
            async with session.request(
                method,
                url,
                params=params,
                json=json_data,
                headers=self._headers(),
            ) as response:
                latency = (time.time() - start_time) * 1000
                self.metrics.total_latency_ms += latency

                raw = await response.read()

                if response.status >= 400:
                    self.metrics.failed_requests += 1
                else:
                    self.metrics.successful_requests += 1

                logger.debug(f"Request completed in {latency:.1f}ms status={response.status}")

                try:
                    data = json.loads(raw.decode("utf-8")) if raw.strip() else {}
                except ValueError as e:
                    # Covers both undecodable bytes and malformed JSON
                    self.metrics.invalid_responses += 1
                    raise NetworkError(
                        f"Invalid response body from {url} (status {response.status})",
                        url=url,
                        context={"body": raw[:200].decode("utf-8", errors="replace")},
                    ) from e
                if data is None:
                    data = {}
                return response.status, data

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.metrics.network_errors += 1
            raise NetworkError(
                f"Request to {url} failed: {e or type(e).__name__}",
                url=url,
            ) from e

    # ========================================================================
    # QUOTE OPERATIONS
    # ========================================================================

    def quote_params(self, input_mint: str, amount: int) -> Dict[str, str]:
        return {
            "slippageBps": str(self.slippage_bps),
            "swapMode": "ExactIn",
            "restrictIntermediateTokens": "true",
            "maxAccounts": str(MAX_ACCOUNTS),
            "instructionVersion": "V1",
            "inputMint": input_mint,
            "outputMint": self.output_mint,
            "amount": str(amount),
            "platformFeeBps": str(self.platform_fee_bps),
        }

    async def request_quote(self, input_mint: str, amount: int) -> Tuple[int, Any]:
        """
        Ask Jupiter to price ``amount`` raw units of ``input_mint`` in SOL.

        Returns:
            (status, body). A success body carries ``outAmount`` and
            ``priceImpactPct``; failures carry ``error`` and ``errorCode``.
        """
        return await self._request(
            "GET",
            f"{self.api_base}/quote",
            params=self.quote_params(input_mint, amount),
        )

    # ========================================================================
    # SWAP OPERATIONS
    # ========================================================================

    async def request_swap_transaction(
        self,
        quote: Quote,
        user_pubkey: str,
        fee_account: str,
    ) -> Optional[SwapTransaction]:
        """
        Get a serialized swap transaction ready for signing.

        Returns None when Jupiter rejects the request.

        Raises:
            NetworkError: No response was received
        """
        body: Dict[str, Any] = {
            "quoteResponse": quote.raw_response,
            "userPublicKey": user_pubkey,
            "wrapAndUnwrapSol": True,
            "feeAccount": fee_account,
            "dynamicComputeUnitLimit": True,
            "prioritizationFeeLamports": "auto",
        }

        status, data = await self._request("POST", f"{self.api_base}/swap", json_data=body)

        if status >= 400 or not isinstance(data, dict) or not data.get("swapTransaction"):
            logger.error(f"Swap build failed: status={status} body={data}")
            return None

        return SwapTransaction.from_dict(data)

    # ========================================================================
    # TOKEN OPERATIONS
    # ========================================================================

    async def get_token_list(self, url: str) -> List[Dict[str, Any]]:
        """
        Fetch one token list.

        Raises:
            NetworkError: On transport failure or a non-list response
        """
        status, data = await self._request("GET", url)
        if status >= 400 or not isinstance(data, list):
            raise NetworkError(f"Token list {url} returned status {status}", url=url)
        return data

    def get_metrics(self) -> Dict[str, Any]:
        return self.metrics.to_dict()
