import base64
import base58
import logging
from typing import Awaitable, Callable, List, Optional, Union

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment, Confirmed
from solana.rpc.types import TxOpts
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from .exceptions import (
    BuildError,
    ConfigurationError,
    ConfirmationError,
    OnChainFailureError,
    SigningRejectedError,
)
from .jupiter_async import JupiterClient, SwapTransaction
from .models import NATIVE_SOL_MINT, Quote
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")

DEFAULT_SEND_MAX_RETRIES = 2

BatchSigner = Callable[[List[VersionedTransaction]], Awaitable[List[VersionedTransaction]]]


def get_associated_token_address(owner: Union[str, Pubkey], mint: Union[str, Pubkey]) -> Pubkey:
    owner_key = owner if isinstance(owner, Pubkey) else Pubkey.from_string(owner)
    mint_key = mint if isinstance(mint, Pubkey) else Pubkey.from_string(mint)
    address, _bump = Pubkey.find_program_address(
        [bytes(owner_key), bytes(TOKEN_PROGRAM_ID), bytes(mint_key)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return address


def get_fee_token_account(fee_account: str, mint: str = NATIVE_SOL_MINT) -> str:
    """Fee account's wSOL token account, or the fee account itself if derivation fails."""
    try:
        return str(get_associated_token_address(fee_account, mint))
    except ValueError as e:
        logger.warning(f"Failed to derive fee ATA, using fee account directly: {e}")
        return fee_account


def deserialize_transaction(swap_tx: SwapTransaction) -> VersionedTransaction:
    try:
        return VersionedTransaction.from_bytes(base64.b64decode(swap_tx.swap_transaction))
    except ValueError as e:
        raise BuildError(f"Failed to deserialize swap transaction: {e}") from e


class TransactionBuilder:
    """Turns accepted quotes into unsigned swap transactions."""

    def __init__(
        self,
        client: JupiterClient,
        rate_limiter: RateLimiter,
        fee_account: str,
    ):
        self.client = client
        self.rate_limiter = rate_limiter
        self.fee_account = fee_account
        self.fee_token_account = get_fee_token_account(fee_account)

    async def build_swap_transaction(self, quote: Quote, user_pubkey: str) -> Optional[SwapTransaction]:
        """
        Ask Jupiter for a signable swap transaction.

        Returns None when Jupiter rejects the request. Transport failures
        raise NetworkError.
        """
        await self.rate_limiter.wait()
        return await self.client.request_swap_transaction(
            quote,
            user_pubkey=user_pubkey,
            fee_account=self.fee_token_account,
        )


class KeypairSigner:
    """Batch signer backed by a local keypair."""

    def __init__(self, keypair: Keypair):
        self.keypair = keypair

    @classmethod
    def from_base58(cls, secret: str) -> "KeypairSigner":
        """
        Load a signer from a base58 encoded 64-byte secret key.

        Raises:
            ConfigurationError: The key is not valid base58 or not a keypair
        """
        try:
            keypair = Keypair.from_bytes(base58.b58decode(secret.strip()))
        except ValueError as e:
            raise ConfigurationError("WALLET_PRIVATE_KEY is not a valid base58 keypair") from e
        return cls(keypair)

    @property
    def pubkey(self) -> str:
        return str(self.keypair.pubkey())

    async def __call__(self, transactions: List[VersionedTransaction]) -> List[VersionedTransaction]:
        return await self.sign_all_transactions(transactions)

    async def sign_all_transactions(self, transactions: List[VersionedTransaction]) -> List[VersionedTransaction]:
        try:
            return [VersionedTransaction(tx.message, [self.keypair]) for tx in transactions]
        except (ValueError, TypeError) as e:
            raise SigningRejectedError(f"Failed to sign transactions: {e}") from e


class TransactionSender:
    """Broadcasts signed transactions and waits for confirmation."""

    def __init__(
        self,
        client: AsyncClient,
        commitment: Commitment = Confirmed,
        max_retries: int = DEFAULT_SEND_MAX_RETRIES,
    ):
        self.client = client
        self.commitment = commitment
        self.max_retries = max_retries

    async def send(self, signed_tx: VersionedTransaction) -> str:
        opts = TxOpts(
            skip_preflight=True,
            preflight_commitment=self.commitment,
            max_retries=self.max_retries,
        )
        try:
            response = await self.client.send_raw_transaction(bytes(signed_tx), opts=opts)
        except Exception as e:
            raise ConfirmationError(f"Failed to send transaction: {e}") from e

        signature = getattr(response, "value", None)
        if signature is None:
            raise ConfirmationError("Empty response from send_raw_transaction")

        logger.info(f"Transaction sent: {signature}")
        return str(signature)

    async def confirm(
        self,
        signature: str,
        last_valid_block_height: int,
        blockhash: Optional[str] = None,
    ) -> None:
        """
        Wait until the transaction is confirmed or its blockhash expires.

        Raises:
            OnChainFailureError: The transaction landed but failed
            ConfirmationError: The outcome could not be determined
        """
        logger.debug(
            f"Confirming {signature} blockhash={blockhash} "
            f"last_valid_block_height={last_valid_block_height}"
        )
        try:
            response = await self.client.confirm_transaction(
                Signature.from_string(signature),
                commitment=self.commitment,
                last_valid_block_height=last_valid_block_height,
            )
        except Exception as e:
            raise ConfirmationError(
                f"Failed to confirm transaction: {e}",
                transaction_signature=signature,
            ) from e

        statuses = getattr(response, "value", None) or []
        status = statuses[0] if statuses else None
        if status is None:
            raise ConfirmationError(
                "Transaction status unavailable",
                transaction_signature=signature,
            )

        if status.err:
            logger.warning(f"Transaction failed on chain: {signature} err={status.err}")
            raise OnChainFailureError(
                "Transaction failed on chain",
                transaction_signature=signature,
                chain_error=str(status.err),
            )

        logger.info(f"Transaction confirmed: {signature}")
