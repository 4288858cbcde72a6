"""
Token metadata registry.

Display metadata (symbol, name, icon) comes from the aggregator's token lists.
The registry is loaded once per session and never mutated afterwards.
"""

from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .config import DEFAULT_TOKEN_LIST_URLS
from .exceptions import NetworkError
from .formatting import shorten_address
from .jupiter_async import JupiterClient
from .logger import get_logger
from .models import Asset, TokenMetadata

logger = get_logger(__name__)

UNKNOWN_TOKEN_NAME = "Unknown Token"


class TokenMetadataRegistry:
    """Read-only mint -> TokenMetadata lookup."""

    def __init__(self, entries: Optional[Mapping[str, TokenMetadata]] = None):
        self._entries: Mapping[str, TokenMetadata] = MappingProxyType(dict(entries or {}))

    @classmethod
    async def load(
        cls,
        client: JupiterClient,
        urls: Sequence[str] = DEFAULT_TOKEN_LIST_URLS,
    ) -> "TokenMetadataRegistry":
        """
        Fetch every token list in order. Entries from earlier lists win.

        A list that cannot be fetched is logged and skipped.
        """
        entries: Dict[str, TokenMetadata] = {}
        for url in urls:
            try:
                token_list = await client.get_token_list(url)
            except NetworkError as e:
                logger.warning(f"Failed to fetch token list {url}: {e.message}")
                continue

            added = 0
            for raw in token_list:
                if not isinstance(raw, dict) or not raw.get("address"):
                    continue
                if raw["address"] in entries:
                    continue
                entries[raw["address"]] = TokenMetadata.from_dict(raw)
                added += 1
            logger.info(f"Loaded {added} tokens from {url}")

        return cls(entries)

    def get(self, mint: str) -> Optional[TokenMetadata]:
        return self._entries.get(mint)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, mint: object) -> bool:
        return mint in self._entries

    @property
    def entries(self) -> Mapping[str, TokenMetadata]:
        return self._entries

    def enrich_one(self, asset: Asset) -> Asset:
        metadata = self._entries.get(asset.mint)
        return asset.with_metadata(
            symbol=(metadata.symbol if metadata else None) or shorten_address(asset.mint),
            name=(metadata.name if metadata else None) or UNKNOWN_TOKEN_NAME,
            logo_uri=metadata.logo_uri if metadata else None,
        )

    def enrich(self, assets: Iterable[Asset]) -> List[Asset]:
        return [self.enrich_one(asset) for asset in assets]
