"""
Pump.Fun platform exports.

This module provides convenient imports for the pump.fun bonding curve
implementations.
"""

from .address_provider import PumpFunAddresses, PumpFunAddressProvider
from .curve_manager import PumpFunCurveManager
from .instruction_builder import PumpFunInstructionBuilder

__all__ = [
    "PumpFunAddresses",
    "PumpFunAddressProvider",
    "PumpFunCurveManager",
    "PumpFunInstructionBuilder",
]
