"""
Exception Hierarchy for the Dust Sweeper.

Every error raised by the package derives from DustSweeperError and carries:
- Unique error code for logging and debugging
- Descriptive message
- Optional context dictionary for additional debugging info
- is_recoverable flag indicating whether the user may simply try again

Per-asset failures inside a sweep are not raised to the caller; they are
recorded as SwapResult entries. The exceptions below are what the building
blocks raise and what the orchestrator catches and classifies.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional
from datetime import datetime, timezone


# =============================================================================
# BASE EXCEPTIONS
# =============================================================================

@dataclass
class DustSweeperError(Exception):
    """
    Base exception for all Dust Sweeper errors.

    Attributes:
        message: Human-readable error description
        error_code: Unique identifier for the error type (e.g., "JUP_001")
        context: Optional dictionary with debugging information
        is_recoverable: Whether the operation can be retried by the user
        timestamp: When the error occurred
    """
    message: str
    error_code: str = "GENERAL_001"
    context: dict[str, Any] = field(default_factory=dict)
    is_recoverable: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the error message with code and context."""
        base = f"[{self.error_code}] {self.message}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base += f" | Context: {context_str}"
        return base

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "is_recoverable": self.is_recoverable,
            "timestamp": self.timestamp.isoformat(),
            "exception_type": self.__class__.__name__,
        }

    def __str__(self) -> str:
        return self.format_message()

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"error_code={self.error_code!r}, "
            f"message={self.message!r}, "
            f"is_recoverable={self.is_recoverable})"
        )


@dataclass
class ConfigurationError(DustSweeperError):
    """Error in sweeper configuration or settings."""
    error_code: str = "CONFIG_001"
    is_recoverable: bool = False


# =============================================================================
# NETWORK EXCEPTIONS
# =============================================================================

@dataclass
class NetworkError(DustSweeperError):
    """Transport failure talking to the aggregator. Never cached."""
    error_code: str = "NET_001"
    is_recoverable: bool = True
    url: Optional[str] = None


@dataclass
class RPCError(DustSweeperError):
    """Solana RPC call failed."""
    error_code: str = "RPC_001"
    is_recoverable: bool = True
    rpc_endpoint: Optional[str] = None


# =============================================================================
# AGGREGATOR EXCEPTIONS
# =============================================================================

@dataclass
class QuoteError(DustSweeperError):
    """Aggregator refused to price an asset."""
    error_code: str = "JUP_001"
    is_recoverable: bool = False
    input_mint: Optional[str] = None
    api_error_code: Optional[str] = None


# =============================================================================
# TRANSACTION EXCEPTIONS
# =============================================================================

@dataclass
class TransactionError(DustSweeperError):
    """Base exception for transaction-related errors."""
    error_code: str = "TX_000"
    transaction_signature: Optional[str] = None


@dataclass
class BuildError(TransactionError):
    """Swap transaction could not be constructed."""
    error_code: str = "TX_001"
    is_recoverable: bool = True


@dataclass
class SigningRejectedError(TransactionError):
    """The wallet declined (or failed) to sign the batch."""
    error_code: str = "TX_002"
    is_recoverable: bool = True


@dataclass
class OnChainFailureError(TransactionError):
    """Transaction landed but executed with an error."""
    error_code: str = "TX_003"
    is_recoverable: bool = False
    chain_error: Optional[str] = None


@dataclass
class ConfirmationError(TransactionError):
    """Transaction could not be broadcast or its execution could not be verified."""
    error_code: str = "TX_004"
    is_recoverable: bool = True


# =============================================================================
# VALIDATION EXCEPTIONS
# =============================================================================

@dataclass
class ValidationError(DustSweeperError):
    """Input validation failed."""
    error_code: str = "VAL_000"
    field_name: Optional[str] = None


@dataclass
class InvalidAddressError(ValidationError):
    """Not a valid Solana address."""
    error_code: str = "VAL_001"


@dataclass
class InvalidAmountError(ValidationError):
    """Amount out of range or malformed."""
    error_code: str = "VAL_002"


# =============================================================================
# DATA EXCEPTIONS
# =============================================================================

@dataclass
class CacheError(DustSweeperError):
    """Cache storage could not be read or written."""
    error_code: str = "DATA_001"
    is_recoverable: bool = True
    namespace: Optional[str] = None


# =============================================================================
# UTILITIES
# =============================================================================

def is_retryable(error: Exception) -> bool:
    """Check whether the user may retry the operation that raised ``error``."""
    if isinstance(error, DustSweeperError):
        return error.is_recoverable
    return False


def wrap_exception(
    original: Exception,
    wrapper_class: type[DustSweeperError] = DustSweeperError,
    message: Optional[str] = None,
    **kwargs: Any,
) -> DustSweeperError:
    """Wrap a generic exception in a DustSweeperError subclass."""
    msg = message or str(original)
    context = kwargs.pop("context", {})
    context["original_error"] = type(original).__name__
    context["original_message"] = str(original)

    return wrapper_class(
        message=msg,
        context=context,
        **kwargs
    )


__all__ = [
    "DustSweeperError", "ConfigurationError", "NetworkError", "RPCError",
    "QuoteError", "TransactionError", "BuildError", "SigningRejectedError",
    "OnChainFailureError", "ConfirmationError", "ValidationError",
    "InvalidAddressError", "InvalidAmountError", "CacheError",
    "is_retryable", "wrap_exception",
]
