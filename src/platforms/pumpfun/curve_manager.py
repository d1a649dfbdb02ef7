"""
Pump.Fun implementation of CurveManager interface.

Reads bonding curve and Global accounts through their fixed-offset layouts
and turns them into ReserveState snapshots for quoting.
"""

from typing import Any

from solders.pubkey import Pubkey

from core.client import SolanaClient
from core.curve_math import FeeScheme, ReserveState
from core.errors import AccountLayoutError, StateReadError
from core.pubkeys import LAMPORTS_PER_SOL, TOKEN_DECIMALS, SystemAddresses
from interfaces.core import CurveManager, Platform, TokenInfo
from platforms.pumpfun.account_layouts import (
    BONDING_CURVE_LAYOUT,
    GLOBAL_LAYOUT,
    is_mayhem_curve,
)
from platforms.pumpfun.address_provider import PumpFunAddresses, PumpFunAddressProvider
from utils.logger import get_logger

logger = get_logger(__name__)

# Published launch reserves, used when the Global account cannot be read
DEFAULT_INITIAL_VIRTUAL_SOL_RESERVES = 30 * LAMPORTS_PER_SOL
DEFAULT_INITIAL_VIRTUAL_TOKEN_RESERVES = 1_073_000_000 * 10**TOKEN_DECIMALS


class PumpFunCurveManager(CurveManager):
    """Pump.Fun implementation of CurveManager interface."""

    def __init__(
        self,
        client: SolanaClient,
        address_provider: PumpFunAddressProvider | None = None,
    ):
        self.client = client
        self.address_provider = address_provider or PumpFunAddressProvider()
        self._global_state: dict[str, Any] | None = None

    @property
    def platform(self) -> Platform:
        """Get the platform this manager serves."""
        return Platform.PUMP_FUN

    async def get_curve_state(self, bonding_curve: Pubkey) -> dict[str, Any]:
        """Decode a bonding curve account.

        Args:
            bonding_curve: Address of the bonding curve

        Returns:
            Field dictionary plus an is_mayhem_mode flag
        """
        account = await self.client.get_account_info(bonding_curve)
        state = BONDING_CURVE_LAYOUT.decode(account.data)
        state["is_mayhem_mode"] = is_mayhem_curve(bytes(account.data))
        return state

    async def get_token_program(self, mint: Pubkey) -> Pubkey:
        """The token program owning a mint account."""
        account = await self.client.get_account_info(mint)
        if account.owner == SystemAddresses.TOKEN_2022_PROGRAM:
            return SystemAddresses.TOKEN_2022_PROGRAM
        return SystemAddresses.TOKEN_PROGRAM

    async def resolve_token_info(self, mint: Pubkey) -> TokenInfo:
        """Read the curve of a mint and derive every trading address."""
        bonding_curve = self.address_provider.derive_pool_address(mint)
        state = await self.get_curve_state(bonding_curve)
        token_program_id = await self.get_token_program(mint)

        token_info = self.address_provider.token_info_for(
            mint,
            state["creator"],
            token_program_id=token_program_id,
            is_mayhem_mode=state["is_mayhem_mode"],
        )
        token_info.additional_data = {"complete": state["complete"]}
        logger.info(
            f"Resolved {mint}: curve {bonding_curve}, creator {state['creator']}, "
            f"mayhem={state['is_mayhem_mode']}"
        )
        return token_info

    async def get_reserves(self, token_info: TokenInfo) -> ReserveState:
        """Virtual reserves of the curve.

        Raises:
            StateReadError: The curve has completed and trades on PumpSwap now
        """
        bonding_curve = token_info.bonding_curve or self.address_provider.derive_pool_address(
            token_info.mint
        )
        state = await self.get_curve_state(bonding_curve)
        if state["complete"]:
            raise StateReadError(
                f"Bonding curve for {token_info.mint} is complete; trade it on PumpSwap"
            )
        return ReserveState(
            input_reserve=state["virtual_sol_reserves"],
            output_reserve=state["virtual_token_reserves"],
            scheme=FeeScheme.BONDING_CURVE,
        )

    async def get_global_state(self) -> dict[str, Any]:
        """Decode the program's Global account once and cache it."""
        if self._global_state is None:
            account = await self.client.get_account_info(PumpFunAddresses.GLOBAL)
            self._global_state = GLOBAL_LAYOUT.decode(account.data)
        return self._global_state

    async def get_initial_reserves(self) -> ReserveState:
        """Reserves of a curve that has not traded yet.

        Used to quote buys bundled with the creation of a new token.
        """
        try:
            state = await self.get_global_state()
            return ReserveState(
                input_reserve=state["initial_virtual_sol_reserves"],
                output_reserve=state["initial_virtual_token_reserves"],
                scheme=FeeScheme.BONDING_CURVE,
            )
        except (StateReadError, AccountLayoutError) as e:
            logger.warning(f"Global account unavailable, using launch defaults: {e}")
            return ReserveState(
                input_reserve=DEFAULT_INITIAL_VIRTUAL_SOL_RESERVES,
                output_reserve=DEFAULT_INITIAL_VIRTUAL_TOKEN_RESERVES,
                scheme=FeeScheme.BONDING_CURVE,
            )
