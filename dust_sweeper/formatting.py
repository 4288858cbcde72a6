"""
Display helpers for addresses, amounts and sweep outcomes.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN
from typing import Any, Dict, Iterable, Optional, Union

from .models import SwapResult
from .validators import lamports_to_sol

MIN_DISPLAY_AMOUNT = 0.000001


def shorten_address(address: str, chars: int = 4) -> str:
    return f"{address[:chars]}...{address[-chars:]}"


def format_amount(amount: float, decimals: int = 6) -> str:
    """
    Format a human-readable amount with thousands separators.

    Zero prints as ``0`` and anything below one millionth as ``<0.000001``.
    Trailing zeros are dropped.
    """
    if amount == 0:
        return "0"
    if amount < MIN_DISPLAY_AMOUNT:
        return f"<{MIN_DISPLAY_AMOUNT:.6f}"

    quantum = Decimal(1).scaleb(-decimals)
    value = Decimal(str(amount)).quantize(quantum, rounding=ROUND_DOWN)
    text = f"{value:,.{decimals}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_sol(lamports: Union[int, float]) -> str:
    return format_amount(lamports_to_sol(lamports), 9)


@dataclass(frozen=True)
class SweepSummary:
    """Aggregate view of a finished (or running) sweep."""
    total: int
    succeeded: int
    failed: int
    total_sol_received: float

    @classmethod
    def from_results(cls, results: Iterable[SwapResult], total: Optional[int] = None) -> "SweepSummary":
        results = list(results)
        succeeded = [r for r in results if r.success]
        return cls(
            total=total if total is not None else len(results),
            succeeded=len(succeeded),
            failed=len(results) - len(succeeded),
            total_sol_received=sum(r.amount_out or 0.0 for r in succeeded),
        )

    @property
    def completed(self) -> int:
        return self.succeeded + self.failed

    @property
    def progress_pct(self) -> float:
        if self.total == 0:
            return 100.0
        return min(100.0, self.completed / self.total * 100)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "total_sol_received": self.total_sol_received,
            "progress_pct": self.progress_pct,
        }

    def __str__(self) -> str:
        return (
            f"{self.succeeded} swapped, {self.failed} failed, "
            f"received {format_amount(self.total_sol_received, 9)} SOL"
        )
