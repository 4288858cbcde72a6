"""
Swap Orchestrator.

Converts a batch of selected dust assets into SOL in three phases:

1. Building: per asset, a fresh quote (cache bypassed) and a swap transaction.
2. Signing: one all-or-nothing call to the batch signer.
3. Sending: per transaction, broadcast then wait for confirmation.

Per-asset failures in phases 1 and 3 are recorded and never abort the batch.
A signing failure ends the batch with every built asset marked cancelled.

Progress is exposed as a finite stream of phase-tagged SwapEvents ending with
a DONE event that carries every recorded result.

Example:
    async for event in orchestrator.stream(selected, owner, signer):
        if event.is_final:
            results = event.results
"""

import logging
from dataclasses import dataclass
from typing import AsyncIterator, Callable, List, Optional, Sequence

from solders.transaction import VersionedTransaction

from .exceptions import DustSweeperError, OnChainFailureError
from .jupiter_async import SwapTransaction
from .models import (
    QuotedAsset,
    Quote,
    SwapEvent,
    SwapFailureKind,
    SwapPhase,
    SwapResult,
)
from .quotes import QuoteService
from .rate_limiter import RateLimiter
from .transaction import (
    BatchSigner,
    TransactionBuilder,
    TransactionSender,
    deserialize_transaction,
)

logger = logging.getLogger(__name__)

QUOTE_FAILED = "Failed to get quote"
BUILD_FAILED = "Failed to build transaction"
SIGNING_CANCELLED = "Signing cancelled"
FAILED_ON_CHAIN = "Transaction failed on chain"

ProgressCallback = Callable[[SwapEvent], None]


@dataclass
class BuiltSwap:
    """An asset that made it through phase 1."""
    asset: QuotedAsset
    transaction: VersionedTransaction
    quote: Quote
    swap_transaction: SwapTransaction

    @property
    def mint(self) -> str:
        return self.asset.mint


def _error_message(error: Exception, default: str) -> str:
    if isinstance(error, DustSweeperError):
        return error.message
    return str(error) or default


class SwapOrchestrator:
    """Runs build, batch-sign and send over a set of selected assets."""

    def __init__(
        self,
        quote_service: QuoteService,
        builder: TransactionBuilder,
        sender: TransactionSender,
        rate_limiter: RateLimiter,
    ):
        self.quote_service = quote_service
        self.builder = builder
        self.sender = sender
        self.rate_limiter = rate_limiter

    # ========================================================================
    # PHASE 1: BUILDING
    # ========================================================================

    async def _build_one(self, item: QuotedAsset, user_pubkey: str) -> BuiltSwap:
        await self.rate_limiter.wait()
        outcome = await self.quote_service.get_quote(item.mint, item.asset.amount, use_cache=False)
        if outcome.quote is None:
            raise _PhaseFailure(QUOTE_FAILED, SwapFailureKind.QUOTE)

        try:
            swap_tx = await self.builder.build_swap_transaction(outcome.quote, user_pubkey)
        except Exception as e:
            raise _PhaseFailure(_error_message(e, "Build error"), SwapFailureKind.BUILD) from e
        if swap_tx is None:
            raise _PhaseFailure(BUILD_FAILED, SwapFailureKind.BUILD)

        try:
            transaction = deserialize_transaction(swap_tx)
        except Exception as e:
            raise _PhaseFailure(_error_message(e, "Build error"), SwapFailureKind.BUILD) from e

        return BuiltSwap(
            asset=item,
            transaction=transaction,
            quote=outcome.quote,
            swap_transaction=swap_tx,
        )

    # ========================================================================
    # PHASE 3: SENDING
    # ========================================================================

    async def _send_one(self, built: BuiltSwap, signed_tx: VersionedTransaction) -> SwapResult:
        signature: Optional[str] = None
        try:
            signature = await self.sender.send(signed_tx)
            await self.sender.confirm(
                signature,
                last_valid_block_height=built.swap_transaction.last_valid_block_height,
                blockhash=str(signed_tx.message.recent_blockhash),
            )
        except OnChainFailureError as e:
            logger.warning(f"Swap for {built.mint} failed on chain: {e.chain_error}")
            return SwapResult(
                mint=built.mint,
                success=False,
                signature=e.transaction_signature or signature,
                error=FAILED_ON_CHAIN,
                failure=SwapFailureKind.ON_CHAIN,
            )
        except Exception as e:
            kind = SwapFailureKind.CONFIRMATION if signature else SwapFailureKind.SEND
            logger.error(f"Send failed for {built.mint} (signature={signature}): {e}")
            return SwapResult(
                mint=built.mint,
                success=False,
                error=_error_message(e, "Send error"),
                failure=kind,
            )

        return SwapResult(
            mint=built.mint,
            success=True,
            signature=signature,
            amount_out=built.quote.out_amount_sol,
        )

    # ========================================================================
    # PIPELINE
    # ========================================================================

    async def stream(
        self,
        assets: Sequence[QuotedAsset],
        user_pubkey: str,
        signer: BatchSigner,
    ) -> AsyncIterator[SwapEvent]:
        """
        Sweep ``assets`` and yield one event per item transition.

        Only selected, tradeable assets are processed. The stream is single
        use and always ends with a DONE event.
        """
        results: List[SwapResult] = []
        selected = [a for a in assets if a.selected and a.tradeable]
        logger.info(f"Sweeping {len(selected)} assets")

        built: List[BuiltSwap] = []
        for item in selected:
            try:
                swap = await self._build_one(item, user_pubkey)
            except _PhaseFailure as failure:
                logger.warning(f"Build phase failed for {item.mint}: {failure.message}")
                result = SwapResult(
                    mint=item.mint,
                    success=False,
                    error=failure.message,
                    failure=failure.kind,
                )
                results.append(result)
                yield SwapEvent(SwapPhase.BUILDING, result=result)
                continue
            except Exception as e:
                logger.warning(f"Build phase failed for {item.mint}: {e}")
                result = SwapResult(
                    mint=item.mint,
                    success=False,
                    error=_error_message(e, "Build error"),
                    failure=SwapFailureKind.QUOTE,
                )
                results.append(result)
                yield SwapEvent(SwapPhase.BUILDING, result=result)
                continue

            built.append(swap)
            logger.debug(f"Built swap for {item.mint}")
            yield SwapEvent(SwapPhase.BUILDING, result=SwapResult(mint=item.mint, success=True))

        if not built:
            yield SwapEvent(SwapPhase.DONE, results=tuple(results))
            return

        yield SwapEvent(SwapPhase.SIGNING)
        try:
            signed = await signer([b.transaction for b in built])
            if len(signed) != len(built):
                raise ValueError(f"Signer returned {len(signed)} transactions for {len(built)}")
        except Exception as e:
            logger.warning(f"Batch signing failed, cancelling {len(built)} swaps: {e}")
            for swap in built:
                result = SwapResult(
                    mint=swap.mint,
                    success=False,
                    error=SIGNING_CANCELLED,
                    failure=SwapFailureKind.SIGNING,
                )
                results.append(result)
                yield SwapEvent(SwapPhase.SIGNING, result=result)
            yield SwapEvent(SwapPhase.DONE, results=tuple(results))
            return

        for swap, signed_tx in zip(built, signed):
            result = await self._send_one(swap, signed_tx)
            results.append(result)
            yield SwapEvent(SwapPhase.SENDING, result=result)

        succeeded = sum(1 for r in results if r.success)
        logger.info(f"Sweep finished: {succeeded}/{len(results)} succeeded")
        yield SwapEvent(SwapPhase.DONE, results=tuple(results))

    async def execute(
        self,
        assets: Sequence[QuotedAsset],
        user_pubkey: str,
        signer: BatchSigner,
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[SwapResult]:
        """Run the whole sweep and return one result per swept asset."""
        results: List[SwapResult] = []
        async for event in self.stream(assets, user_pubkey, signer):
            if on_progress:
                on_progress(event)
            if event.is_final:
                results = list(event.results)
        return results


class _PhaseFailure(Exception):
    """Internal: an item dropped out of phase 1 with a known reason."""

    def __init__(self, message: str, kind: SwapFailureKind):
        super().__init__(message)
        self.message = message
        self.kind = kind
