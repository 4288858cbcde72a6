"""
Dust Sweeper

Finds low-value SPL token balances in a Solana wallet, prices them in SOL
through the Jupiter aggregator and converts a selected batch into SOL.
"""

__version__ = "1.0.0"

from .config import get_settings, Settings
from .models import Asset, QuotedAsset, SwapResult, SwapEvent, SwapPhase
from .session import SweepSession
from .sweeper import SwapOrchestrator

__all__ = [
    "get_settings",
    "Settings",
    "Asset",
    "QuotedAsset",
    "SwapResult",
    "SwapEvent",
    "SwapPhase",
    "SweepSession",
    "SwapOrchestrator",
]
