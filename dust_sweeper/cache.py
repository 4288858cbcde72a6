"""
Persistent key-value caches with a single TTL per namespace.

Two namespaces are used by the sweeper:
- ``quotes``: (mint, raw amount) -> last known quote or aggregator error
- ``tokens``: wallet address -> enriched asset snapshot

Each namespace is one JSON document mapping key -> {"data": ..., "timestamp": ...}.
Reads treat entries at or past the TTL as absent; writes evict every expired
entry before persisting. Storage failures never reach the caller: a failed read
is a miss and a failed write is logged and dropped.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar

from .config import CacheSettings
from .exceptions import CacheError
from .models import Asset

logger = logging.getLogger(__name__)

T = TypeVar('T')

QUOTE_NAMESPACE = "quotes"
TOKEN_NAMESPACE = "tokens"
DEFAULT_TTL = 30 * 60  # 30 minutes


# ============================================================================
# ENTRIES
# ============================================================================

@dataclass
class CacheEntry(Generic[T]):
    """Cached value with the time it was written."""
    data: T
    timestamp: float

    def is_expired(self, ttl: float, now: float) -> bool:
        return now - self.timestamp >= ttl

    def to_dict(self) -> Dict[str, Any]:
        return {"data": self.data, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "CacheEntry":
        return cls(data=raw["data"], timestamp=float(raw["timestamp"]))


# ============================================================================
# BACKENDS
# ============================================================================

class CacheBackend(ABC):
    """Where a namespace document lives."""

    @abstractmethod
    def load(self) -> Dict[str, Any]:
        """Return the raw mapping. Raises CacheError if it cannot be read."""
        pass

    @abstractmethod
    def save(self, document: Dict[str, Any]) -> None:
        """Persist the raw mapping. Raises CacheError if it cannot be written."""
        pass

    @abstractmethod
    def remove(self) -> None:
        """Drop the whole document."""
        pass


class MemoryBackend(CacheBackend):

    def __init__(self):
        self._document: Dict[str, Any] = {}

    def load(self) -> Dict[str, Any]:
        return json.loads(json.dumps(self._document))

    def save(self, document: Dict[str, Any]) -> None:
        self._document = json.loads(json.dumps(document))

    def remove(self) -> None:
        self._document = {}


class JsonFileBackend(CacheBackend):
    """One JSON file per namespace, replaced atomically on write."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                document = json.load(f)
        except (OSError, ValueError) as e:
            raise CacheError(f"Failed to read cache file: {e}", namespace=self.path.stem) from e
        if not isinstance(document, dict):
            raise CacheError("Cache file is not a JSON object", namespace=self.path.stem)
        return document

    def save(self, document: Dict[str, Any]) -> None:
        temp_file = self.path.with_suffix(self.path.suffix + '.tmp')
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_file, 'w', encoding='utf-8') as f:
                json.dump(document, f)
            # Atomic rename
            temp_file.replace(self.path)
        except (OSError, TypeError, ValueError) as e:
            raise CacheError(f"Failed to write cache file: {e}", namespace=self.path.stem) from e

    def remove(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise CacheError(f"Failed to remove cache file: {e}", namespace=self.path.stem) from e


# ============================================================================
# CACHE STORE
# ============================================================================

class CacheStore:
    """Generic TTL key-value store over a backend."""

    def __init__(
        self,
        namespace: str,
        ttl: float = DEFAULT_TTL,
        backend: Optional[CacheBackend] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.namespace = namespace
        self.ttl = ttl
        self.backend = backend or MemoryBackend()
        self._clock = clock

    def _load_entries(self) -> Dict[str, CacheEntry]:
        try:
            document = self.backend.load()
        except CacheError as e:
            logger.warning(f"[Cache] {self.namespace} unreadable, treating as empty: {e.message}")
            return {}

        entries: Dict[str, CacheEntry] = {}
        for key, raw in document.items():
            try:
                entries[key] = CacheEntry.from_dict(raw)
            except (KeyError, TypeError, ValueError):
                logger.debug(f"[Cache] Skipping malformed {self.namespace} entry {key}")
        return entries

    def get(self, key: str) -> Optional[Any]:
        entry = self._load_entries().get(key)
        if entry is None or entry.is_expired(self.ttl, self._clock()):
            return None
        return entry.data

    def set(self, key: str, value: Any) -> None:
        entries = self._load_entries()
        now = self._clock()
        entries[key] = CacheEntry(data=value, timestamp=now)

        # Evict expired entries
        entries = {
            k: entry for k, entry in entries.items()
            if not entry.is_expired(self.ttl, now)
        }

        try:
            self.backend.save({k: entry.to_dict() for k, entry in entries.items()})
        except CacheError as e:
            logger.warning(f"[Cache] Failed to write {self.namespace}: {e.message}")

    def delete(self, key: str) -> bool:
        entries = self._load_entries()
        if key not in entries:
            return False
        del entries[key]
        try:
            self.backend.save({k: entry.to_dict() for k, entry in entries.items()})
        except CacheError as e:
            logger.warning(f"[Cache] Failed to write {self.namespace}: {e.message}")
            return False
        return True

    def clear(self) -> None:
        try:
            self.backend.remove()
        except CacheError as e:
            logger.warning(f"[Cache] Failed to clear {self.namespace}: {e.message}")
            return
        logger.info(f"[Cache] {self.namespace} cleared")

    def raw_size(self) -> int:
        """Entries physically present, expired or not."""
        return len(self._load_entries())


# ============================================================================
# TYPED NAMESPACES
# ============================================================================

class QuoteCache:
    """
    Quotes keyed by mint and exact raw amount.

    Values are plain dicts shaped like the aggregator response subset we
    replay: ``outAmount``, ``priceImpactPct`` and, for cached failures,
    ``error`` and ``errorCode``.
    """

    def __init__(self, store: CacheStore):
        self.store = store

    @staticmethod
    def make_key(mint: str, amount: int) -> str:
        return f"{mint}-{amount}"

    def get_cached_quote(self, mint: str, amount: int) -> Optional[Dict[str, Any]]:
        data = self.store.get(self.make_key(mint, amount))
        if data is not None:
            logger.debug(f"[Cache] Quote hit for {mint[:8]}...")
        return data

    def set_cached_quote(self, mint: str, amount: int, data: Dict[str, Any]) -> None:
        self.store.set(self.make_key(mint, amount), data)

    def clear(self) -> None:
        self.store.clear()


class AssetListCache:
    """Enriched wallet asset snapshots keyed by wallet address."""

    def __init__(self, store: CacheStore):
        self.store = store

    def get_cached_assets(self, wallet_address: str) -> Optional[List[Asset]]:
        data = self.store.get(wallet_address)
        if data is None:
            return None
        try:
            assets = [Asset.from_dict(item) for item in data["tokens"]]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"[Cache] Discarding malformed asset snapshot: {e}")
            return None
        logger.info("[Cache] Token list hit")
        return assets

    def set_cached_assets(self, wallet_address: str, assets: List[Asset]) -> None:
        self.store.set(wallet_address, {
            "walletAddress": wallet_address,
            "tokens": [asset.to_dict() for asset in assets],
        })
        logger.info("[Cache] Token list saved")

    def clear(self) -> None:
        self.store.clear()


def open_caches(
    cache_settings: Optional[CacheSettings] = None,
    clock: Callable[[], float] = time.time,
) -> Tuple[QuoteCache, AssetListCache]:
    """Build both namespaces, on disk when enabled and in memory otherwise."""
    cache_settings = cache_settings or CacheSettings()

    def backend(namespace: str) -> CacheBackend:
        if cache_settings.enabled:
            return JsonFileBackend(cache_settings.directory / f"{namespace}.json")
        return MemoryBackend()

    quote_cache = QuoteCache(CacheStore(
        QUOTE_NAMESPACE, cache_settings.quote_ttl, backend(QUOTE_NAMESPACE), clock
    ))
    asset_cache = AssetListCache(CacheStore(
        TOKEN_NAMESPACE, cache_settings.token_ttl, backend(TOKEN_NAMESPACE), clock
    ))
    return quote_cache, asset_cache
