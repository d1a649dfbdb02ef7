"""
Platform factory.

Returns the address provider, instruction builder and curve manager that
belong together for a given platform.
"""

from dataclasses import dataclass

from core.client import SolanaClient
from interfaces.core import AddressProvider, CurveManager, InstructionBuilder, Platform


@dataclass
class PlatformImplementations:
    """Matched set of implementations for one platform."""

    address_provider: AddressProvider
    instruction_builder: InstructionBuilder
    curve_manager: CurveManager


def get_platform_implementations(
    platform: Platform, client: SolanaClient
) -> PlatformImplementations:
    """Build the implementations for a platform.

    Args:
        platform: Target platform
        client: RPC client used by the curve manager

    Returns:
        PlatformImplementations sharing one address provider
    """
    if platform is Platform.PUMP_FUN:
        from platforms.pumpfun import (
            PumpFunAddressProvider,
            PumpFunCurveManager,
            PumpFunInstructionBuilder,
        )

        provider = PumpFunAddressProvider()
        return PlatformImplementations(
            address_provider=provider,
            instruction_builder=PumpFunInstructionBuilder(provider),
            curve_manager=PumpFunCurveManager(client, provider),
        )

    if platform is Platform.PUMP_SWAP:
        from platforms.pumpswap import (
            PumpSwapAddressProvider,
            PumpSwapCurveManager,
            PumpSwapInstructionBuilder,
        )

        provider = PumpSwapAddressProvider()
        return PlatformImplementations(
            address_provider=provider,
            instruction_builder=PumpSwapInstructionBuilder(provider),
            curve_manager=PumpSwapCurveManager(client, provider),
        )

    raise ValueError(f"Unsupported platform: {platform}")
