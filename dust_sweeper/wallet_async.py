"""
Async wallet asset enumeration.

Lists the SPL token balances held by an owner over Solana RPC, with the
enriched result cached per wallet in the asset-list cache.
"""

from typing import Any, List, Optional, Union

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TokenAccountOpts
from solders.pubkey import Pubkey

from .cache import AssetListCache
from .exceptions import RPCError, ValidationError, wrap_exception
from .logger import get_logger
from .models import NATIVE_SOL_MINT, Asset
from .transaction import TOKEN_PROGRAM_ID
from .validators import to_pubkey, validate_decimals, validate_raw_amount


logger = get_logger(__name__)


def _parse_token_account(account: Any) -> Optional[Asset]:
    """Build an Asset from a jsonParsed token account, or None if it should be skipped."""
    data = account.account.data
    parsed = getattr(data, "parsed", None)
    if not isinstance(parsed, dict):
        return None

    info = parsed.get("info", {})
    token_amount = info.get("tokenAmount", {})
    mint = info.get("mint", "")
    amount = validate_raw_amount(token_amount.get("amount", "0"), allow_zero=True)

    # Skip empty accounts and wrapped SOL
    if amount == 0 or mint == NATIVE_SOL_MINT:
        return None

    return Asset(
        mint=mint,
        token_account=str(account.pubkey),
        amount=amount,
        decimals=validate_decimals(int(token_amount.get("decimals", 9))),
    )


async def fetch_wallet_assets(
    client: AsyncClient,
    owner: Union[str, Pubkey],
    asset_cache: Optional[AssetListCache] = None,
    use_cache: bool = True,
) -> List[Asset]:
    """
    Get every non-zero SPL token balance held by ``owner``.

    Args:
        client: Solana RPC client
        owner: Wallet address
        asset_cache: Snapshot cache consulted first when ``use_cache`` is set
        use_cache: Whether a cached snapshot may be returned

    Returns:
        Assets without display metadata (cached snapshots keep theirs)

    Raises:
        InvalidAddressError: ``owner`` is not a Solana address
        RPCError: The token accounts could not be listed
    """
    pubkey = to_pubkey(owner, "owner")
    owner_str = str(pubkey)

    if use_cache and asset_cache is not None:
        cached = asset_cache.get_cached_assets(owner_str)
        if cached is not None:
            logger.info(f"Using cached token list for {owner_str}")
            return cached

    logger.info(f"Fetching fresh token list for {owner_str}")

    try:
        response = await client.get_token_accounts_by_owner_json_parsed(
            pubkey,
            TokenAccountOpts(program_id=TOKEN_PROGRAM_ID),
            commitment=Confirmed,
        )
    except Exception as e:
        raise wrap_exception(e, RPCError, "Failed to list token accounts") from e

    assets: List[Asset] = []
    for account in response.value or []:
        try:
            asset = _parse_token_account(account)
        except (AttributeError, TypeError, ValueError, ValidationError) as e:
            logger.warning(f"Failed to parse token account: {e}")
            continue
        if asset is not None:
            assets.append(asset)

    logger.info(f"Found {len(assets)} token balances")
    return assets


def cache_assets_for_wallet(cache: AssetListCache, owner: str, assets: List[Asset]) -> None:
    """Store the enriched snapshot for ``owner``."""
    cache.set_cached_assets(str(owner), assets)
