import base58
from decimal import Decimal
from dataclasses import dataclass, field
from typing import Any, Optional, Dict

from solders.pubkey import Pubkey

from .exceptions import (
    InvalidAddressError,
    InvalidAmountError,
)

SOLANA_ADDRESS_LENGTH = 32
MIN_ADDRESS_CHARS = 32
MAX_ADDRESS_CHARS = 44

LAMPORTS_PER_SOL = 1_000_000_000
MAX_LAMPORTS = 2**64 - 1
MAX_TOKEN_DECIMALS = 18


@dataclass
class ValidationResult:

    is_valid: bool
    value: Any = None
    error: Optional[str] = None
    field_name: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, value: Any, field_name: Optional[str] = None) -> 'ValidationResult':
        return cls(is_valid=True, value=value, field_name=field_name)

    @classmethod
    def failure(cls, error: str, field_name: Optional[str] = None,
                details: Optional[Dict[str, Any]] = None) -> 'ValidationResult':
        return cls(is_valid=False, error=error, field_name=field_name, details=details or {})


def validate_solana_address(address: Any, field_name: str = "address") -> str:
    if not isinstance(address, str):
        raise InvalidAddressError(
            f"Address must be a string, got {type(address).__name__}",
            field_name=field_name,
        )

    address = address.strip()

    if not address:
        raise InvalidAddressError("Address cannot be empty", field_name=field_name)

    if len(address) < MIN_ADDRESS_CHARS or len(address) > MAX_ADDRESS_CHARS:
        raise InvalidAddressError(
            f"Invalid address length: {len(address)} characters",
            field_name=field_name, context={"address": address},
        )

    try:
        decoded = base58.b58decode(address)
    except ValueError as e:
        raise InvalidAddressError(
            f"Invalid base58 encoding: {str(e)}",
            field_name=field_name, context={"address": address},
        )

    if len(decoded) != SOLANA_ADDRESS_LENGTH:
        raise InvalidAddressError(
            f"Decoded address has wrong length: {len(decoded)} bytes (expected {SOLANA_ADDRESS_LENGTH})",
            field_name=field_name, context={"address": address},
        )

    return address


def validate_solana_address_safe(address: Any, field_name: str = "address") -> ValidationResult:
    try:
        validated = validate_solana_address(address, field_name)
        return ValidationResult.success(validated, field_name)
    except InvalidAddressError as e:
        return ValidationResult.failure(e.message, field_name, {"address": str(address)[:50]})


def to_pubkey(address: Any, field_name: str = "address") -> Pubkey:
    if isinstance(address, Pubkey):
        return address
    return Pubkey.from_string(validate_solana_address(address, field_name))


def validate_raw_amount(amount: Any, field_name: str = "amount", allow_zero: bool = False) -> int:
    if isinstance(amount, bool) or not isinstance(amount, (int, str)):
        raise InvalidAmountError(
            f"Raw amount must be an integer, got {type(amount).__name__}",
            field_name=field_name,
        )

    try:
        value = int(amount)
    except ValueError:
        raise InvalidAmountError(f"Invalid integer amount: {amount!r}", field_name=field_name)

    if value < 0:
        raise InvalidAmountError("Amount cannot be negative", field_name=field_name)
    if value == 0 and not allow_zero:
        raise InvalidAmountError("Amount cannot be zero", field_name=field_name)
    if value > MAX_LAMPORTS:
        raise InvalidAmountError(f"Amount exceeds u64 range: {value}", field_name=field_name)

    return value


def validate_decimals(decimals: Any, field_name: str = "decimals") -> int:
    if isinstance(decimals, bool) or not isinstance(decimals, int):
        raise InvalidAmountError(
            f"Decimals must be an integer, got {type(decimals).__name__}",
            field_name=field_name,
        )
    if decimals < 0 or decimals > MAX_TOKEN_DECIMALS:
        raise InvalidAmountError(
            f"Token decimals must be between 0 and {MAX_TOKEN_DECIMALS}, got {decimals}",
            field_name=field_name,
        )
    return decimals


def to_ui_amount(raw_amount: int, decimals: int) -> float:
    return float(Decimal(raw_amount) / (Decimal(10) ** decimals))


def lamports_to_sol(lamports: int) -> float:
    return lamports / LAMPORTS_PER_SOL
