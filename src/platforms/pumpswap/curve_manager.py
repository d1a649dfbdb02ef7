"""
PumpSwap implementation of CurveManager interface.

Pool reserves are the balances of the pool's base and quote token
accounts, not fields of the pool account itself.
"""

import asyncio

from solders.pubkey import Pubkey

from core.client import SolanaClient
from core.curve_math import FeeScheme, ReserveState
from core.errors import AccountLayoutError, StateReadError
from core.pubkeys import SystemAddresses
from interfaces.core import CurveManager, Platform, TokenInfo
from platforms.pumpswap.account_layouts import (
    GLOBAL_CONFIG_LAYOUT,
    POOL_BASE_MINT_OFFSET,
    POOL_LAYOUT,
    is_mayhem_pool,
)
from platforms.pumpswap.address_provider import PumpSwapAddresses, PumpSwapAddressProvider
from utils.logger import get_logger

logger = get_logger(__name__)


class PumpSwapCurveManager(CurveManager):
    """PumpSwap implementation of CurveManager interface."""

    def __init__(
        self,
        client: SolanaClient,
        address_provider: PumpSwapAddressProvider | None = None,
    ):
        self.client = client
        self.address_provider = address_provider or PumpSwapAddressProvider()

    @property
    def platform(self) -> Platform:
        """Get the platform this manager serves."""
        return Platform.PUMP_SWAP

    async def find_pool(self, mint: Pubkey) -> Pubkey:
        """Locate the pool trading a mint against SOL.

        Tries the canonical migration pool first, then scans program accounts
        by base mint.
        """
        canonical = self.address_provider.derive_pool_address(mint)
        try:
            await self.client.get_account_info(canonical)
            return canonical
        except AccountLayoutError:
            logger.info(f"No canonical pool for {mint}, scanning program accounts")

        pools = await self.client.find_program_accounts(
            PumpSwapAddresses.PROGRAM, POOL_BASE_MINT_OFFSET, mint
        )
        if not pools:
            raise StateReadError(f"No PumpSwap pool found for {mint}")
        return pools[0]

    async def get_mayhem_fee_recipient(self) -> Pubkey:
        account = await self.client.get_account_info(PumpSwapAddresses.GLOBAL_CONFIG)
        return GLOBAL_CONFIG_LAYOUT.decode(account.data)["reserved_fee_recipient"]

    async def resolve_token_info(self, mint: Pubkey) -> TokenInfo:
        """Read the pool of a mint and fill every address needed to trade it."""
        pool = await self.find_pool(mint)
        account = await self.client.get_account_info(pool)
        state = POOL_LAYOUT.decode(account.data)
        if state["quote_mint"] != SystemAddresses.SOL_MINT:
            raise StateReadError(f"Pool {pool} does not quote in SOL")

        mint_account = await self.client.get_account_info(mint)
        token_program_id = (
            SystemAddresses.TOKEN_2022_PROGRAM
            if mint_account.owner == SystemAddresses.TOKEN_2022_PROGRAM
            else SystemAddresses.TOKEN_PROGRAM
        )

        mayhem = is_mayhem_pool(bytes(account.data))
        additional_data = {}
        if mayhem:
            additional_data["mayhem_fee_recipient"] = await self.get_mayhem_fee_recipient()

        logger.info(f"Resolved {mint}: pool {pool}, mayhem={mayhem}")
        return TokenInfo(
            mint=mint,
            platform=Platform.PUMP_SWAP,
            pool=pool,
            pool_base_token_account=state["pool_base_token_account"],
            pool_quote_token_account=state["pool_quote_token_account"],
            creator=state["coin_creator"],
            token_program_id=token_program_id,
            is_mayhem_mode=mayhem,
            additional_data=additional_data,
        )

    async def get_reserves(self, token_info: TokenInfo) -> ReserveState:
        """Quote (SOL) and base (token) balances of the pool."""
        if token_info.pool_base_token_account is None:
            raise StateReadError(f"Pool for {token_info.mint} not resolved")
        base, quote = await asyncio.gather(
            self.client.get_token_account_balance(token_info.pool_base_token_account),
            self.client.get_token_account_balance(token_info.pool_quote_token_account),
        )
        return ReserveState(
            input_reserve=quote, output_reserve=base, scheme=FeeScheme.AMM_POOL
        )
