"""Shared fixtures for the dust sweeper tests."""

from typing import List

import pytest

from dust_sweeper.cache import AssetListCache, CacheStore, MemoryBackend, QuoteCache
from dust_sweeper.models import QuotedAsset
from dust_sweeper.rate_limiter import RateLimiter

from .helpers import FakeClock, make_address, make_quoted


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def quote_cache(clock) -> QuoteCache:
    return QuoteCache(CacheStore("quotes", ttl=1800, backend=MemoryBackend(), clock=clock))


@pytest.fixture
def asset_cache(clock) -> AssetListCache:
    return AssetListCache(CacheStore("tokens", ttl=1800, backend=MemoryBackend(), clock=clock))


@pytest.fixture
def no_wait_limiter() -> RateLimiter:
    return RateLimiter(min_interval=0)


@pytest.fixture
def owner() -> str:
    return make_address(9)


@pytest.fixture
def three_assets() -> List[QuotedAsset]:
    return [make_quoted(1), make_quoted(2), make_quoted(3)]
