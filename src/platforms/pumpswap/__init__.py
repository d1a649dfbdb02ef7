"""
PumpSwap platform exports.
"""

from .address_provider import PumpSwapAddresses, PumpSwapAddressProvider
from .curve_manager import PumpSwapCurveManager
from .instruction_builder import PumpSwapInstructionBuilder

__all__ = [
    "PumpSwapAddresses",
    "PumpSwapAddressProvider",
    "PumpSwapCurveManager",
    "PumpSwapInstructionBuilder",
]
