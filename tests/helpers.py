"""Builders shared by the test modules."""

import json
from typing import Any, Optional

from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction

from dust_sweeper.models import Asset, QuotedAsset


def make_address(seed: int) -> str:
    """Deterministic valid base58 address."""
    return str(Pubkey(bytes([seed]) * 32))


class FakeResponse:
    """Stands in for an aiohttp response used as an async context manager."""

    def __init__(self, status: int, payload: Any = None, body: Optional[bytes] = None):
        self.status = status
        if body is None:
            body = json.dumps(payload).encode() if payload is not None else b""
        self._body = body

    async def read(self) -> bytes:
        return self._body

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, *exc) -> bool:
        return False


class FakeClock:
    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_asset(seed: int, amount: int = 1_000_000, decimals: int = 6, symbol: str = None) -> Asset:
    return Asset(
        mint=make_address(seed),
        token_account=make_address(seed + 100),
        amount=amount,
        decimals=decimals,
        symbol=symbol,
    )


def make_quoted(seed: int, out_amount: int = 5_000_000, tradeable: bool = True) -> QuotedAsset:
    return QuotedAsset(
        asset=make_asset(seed),
        tradeable=tradeable,
        selected=tradeable,
        quote_out_amount=out_amount,
        error_reason=None if tradeable else "No liquidity",
    )


def make_transaction(payer: Keypair = None):
    """Signed one-instruction v0 transaction and the keypair that signed it."""
    payer = payer or Keypair()
    ix = transfer(TransferParams(
        from_pubkey=payer.pubkey(),
        to_pubkey=Pubkey(bytes([7]) * 32),
        lamports=1,
    ))
    message = MessageV0.try_compile(payer.pubkey(), [ix], [], Hash.default())
    return VersionedTransaction(message, [payer]), payer
