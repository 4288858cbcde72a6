"""
Data model for the Dust Sweeper: wallet assets, quotes, quoted assets and swap results.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Dict, Any, Tuple

from .validators import lamports_to_sol, to_ui_amount


# Wrapped SOL, the base asset every dust balance is converted into
NATIVE_SOL_MINT = "So11111111111111111111111111111111111111112"


# ============================================================================
# ENUMS
# ============================================================================

class SwapPhase(str, Enum):
    """Phases of a batch sweep, in order."""
    BUILDING = "building"
    SIGNING = "signing"
    SENDING = "sending"
    DONE = "done"


class SwapFailureKind(str, Enum):
    """Where a swap dropped out of the pipeline."""
    QUOTE = "quote"
    BUILD = "build"
    SIGNING = "signing"
    SEND = "send"
    CONFIRMATION = "confirmation"
    ON_CHAIN = "on_chain"


# ============================================================================
# ASSETS
# ============================================================================

@dataclass(frozen=True)
class TokenMetadata:
    """Display metadata from the aggregator token list."""
    address: str
    symbol: str
    name: str
    decimals: int = 0
    logo_uri: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenMetadata":
        return cls(
            address=data.get("address", ""),
            symbol=data.get("symbol", ""),
            name=data.get("name", ""),
            decimals=int(data.get("decimals", 0) or 0),
            logo_uri=data.get("logoURI"),
        )


@dataclass(frozen=True)
class Asset:
    """A non-zero token balance held by the wallet."""
    mint: str
    token_account: str
    amount: int  # Raw amount
    decimals: int
    symbol: Optional[str] = None
    name: Optional[str] = None
    logo_uri: Optional[str] = None

    @property
    def ui_amount(self) -> float:
        """Human-readable amount."""
        return to_ui_amount(self.amount, self.decimals)

    def with_metadata(
        self,
        symbol: Optional[str],
        name: Optional[str],
        logo_uri: Optional[str],
    ) -> "Asset":
        return replace(self, symbol=symbol, name=name, logo_uri=logo_uri)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mint": self.mint,
            "address": self.token_account,
            "amount": str(self.amount),
            "decimals": self.decimals,
            "uiAmount": self.ui_amount,
            "symbol": self.symbol,
            "name": self.name,
            "logoURI": self.logo_uri,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Asset":
        return cls(
            mint=data["mint"],
            token_account=data["address"],
            amount=int(data["amount"]),
            decimals=int(data["decimals"]),
            symbol=data.get("symbol"),
            name=data.get("name"),
            logo_uri=data.get("logoURI"),
        )


# ============================================================================
# QUOTES
# ============================================================================

@dataclass(frozen=True)
class Quote:
    """Priced estimate for converting one asset into SOL."""
    input_mint: str
    in_amount: int
    out_amount: int  # Lamports
    price_impact_pct: float
    raw_response: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def out_amount_sol(self) -> float:
        return lamports_to_sol(self.out_amount)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], input_mint: str = "", in_amount: int = 0) -> "Quote":
        return cls(
            input_mint=data.get("inputMint", input_mint),
            in_amount=int(data.get("inAmount", in_amount)),
            out_amount=int(data.get("outAmount", 0)),
            price_impact_pct=float(data.get("priceImpactPct", 0) or 0),
            raw_response=data,
        )


@dataclass(frozen=True)
class QuoteFailure:
    """Aggregator (or transport) refusal to price an asset."""
    error: str
    error_code: str


@dataclass(frozen=True)
class QuoteOutcome:
    """Result of one Quote Service lookup: exactly one of quote/error is set."""
    quote: Optional[Quote] = None
    error: Optional[QuoteFailure] = None
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return self.quote is not None


@dataclass
class QuotedAsset:
    """
    Asset annotated with its quote and the user's selection.

    An untradeable asset can never be selected and always shows a zero
    quoted output.
    """
    asset: Asset
    tradeable: bool
    selected: bool = False
    quote_out_amount: int = 0
    price_impact_pct: float = 0.0
    error_reason: Optional[str] = None

    def __post_init__(self):
        if not self.tradeable:
            self.selected = False
            self.quote_out_amount = 0
            self.price_impact_pct = 0.0

    @property
    def mint(self) -> str:
        return self.asset.mint

    @property
    def quote_out_amount_ui(self) -> float:
        return lamports_to_sol(self.quote_out_amount)

    def set_selected(self, selected: bool) -> bool:
        """Change selection; untradeable assets stay unselected. Returns the new state."""
        self.selected = selected and self.tradeable
        return self.selected


# ============================================================================
# SWAP RESULTS
# ============================================================================

@dataclass(frozen=True)
class SwapResult:
    """Outcome of converting one asset."""
    mint: str
    success: bool
    signature: Optional[str] = None
    amount_out: Optional[float] = None  # SOL
    error: Optional[str] = None
    failure: Optional[SwapFailureKind] = None

    @property
    def submitted(self) -> bool:
        """True once the transaction reached the network, whatever its outcome."""
        return self.signature is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mint": self.mint,
            "success": self.success,
            "signature": self.signature,
            "amount_out": self.amount_out,
            "error": self.error,
            "failure": self.failure.value if self.failure else None,
        }


@dataclass(frozen=True)
class SwapEvent:
    """
    One step of a sweep.

    For BUILDING/SIGNING/SENDING ``result`` is the item's partial or final
    result. The closing DONE event carries every recorded result.
    """
    phase: SwapPhase
    result: Optional[SwapResult] = None
    results: Tuple[SwapResult, ...] = ()

    @property
    def is_final(self) -> bool:
        return self.phase == SwapPhase.DONE
