"""
Core interfaces for the multi-platform bundling engine.

This module defines the abstract base classes each supported program must
implement so the orchestrator can quote, build and bundle trades without
knowing which pool type it is talking to.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

from solders.instruction import Instruction
from solders.pubkey import Pubkey

from core.curve_math import ReserveState, SwapQuote
from core.pubkeys import SystemAddresses


class Platform(Enum):
    """Supported trading platforms."""

    PUMP_FUN = "pump_fun"
    PUMP_SWAP = "pump_swap"


@dataclass
class TokenInfo:
    """A mint plus every pool-side address needed to trade it."""

    mint: Pubkey
    platform: Platform = Platform.PUMP_FUN

    # Metadata (create flow only)
    name: str | None = None
    symbol: str | None = None
    uri: str | None = None

    # pump.fun bonding curve
    bonding_curve: Pubkey | None = None
    associated_bonding_curve: Pubkey | None = None

    # PumpSwap pool
    pool: Pubkey | None = None
    pool_base_token_account: Pubkey | None = None
    pool_quote_token_account: Pubkey | None = None

    # Common fields
    creator: Pubkey | None = None
    creator_vault: Pubkey | None = None
    token_program_id: Pubkey = SystemAddresses.TOKEN_PROGRAM
    is_mayhem_mode: bool = False
    additional_data: dict[str, Any] | None = None


class AddressProvider(ABC):
    """Abstract interface for platform-specific address management."""

    @property
    @abstractmethod
    def platform(self) -> Platform:
        """Get the platform this provider serves."""
        pass

    @property
    @abstractmethod
    def program_id(self) -> Pubkey:
        """Get the main program ID for this platform."""
        pass

    @abstractmethod
    def derive_pool_address(self, base_mint: Pubkey) -> Pubkey:
        """Derive the pool/curve address for a mint.

        Args:
            base_mint: Token mint address

        Returns:
            Pool/curve address
        """
        pass

    @abstractmethod
    def derive_user_token_account(
        self, user: Pubkey, mint: Pubkey, token_program_id: Pubkey | None = None
    ) -> Pubkey:
        """Derive user's associated token account address.

        Args:
            user: User's wallet address
            mint: Token mint address
            token_program_id: Token program owning the mint

        Returns:
            User's token account address
        """
        pass

    @abstractmethod
    def get_buy_instruction_accounts(
        self, token_info: TokenInfo, user: Pubkey
    ) -> dict[str, Pubkey]:
        """Get all accounts needed for a buy instruction, in program order."""
        pass

    @abstractmethod
    def get_sell_instruction_accounts(
        self, token_info: TokenInfo, user: Pubkey
    ) -> dict[str, Pubkey]:
        """Get all accounts needed for a sell instruction, in program order."""
        pass


class InstructionBuilder(ABC):
    """Abstract interface for building platform-specific trading instructions."""

    @property
    @abstractmethod
    def platform(self) -> Platform:
        """Get the platform this builder serves."""
        pass

    @abstractmethod
    def build_buy_instructions(
        self,
        participant: Pubkey,
        token_info: TokenInfo,
        quote: SwapQuote,
        slippage_bps: int,
        amount_in: int,
    ) -> list[Instruction]:
        """Build the instructions for one participant's buy.

        Args:
            participant: Buyer's wallet address (signer)
            token_info: Mint and pool addresses
            quote: Expected un-tolerated quote for this buy
            slippage_bps: Share of the quoted tokens accepted as minimum
            amount_in: Lamports the buyer commits

        Returns:
            Ordered instructions (token account creation first)
        """
        pass

    @abstractmethod
    def build_sell_instructions(
        self,
        participant: Pubkey,
        token_info: TokenInfo,
        quote: SwapQuote,
        slippage_bps: int,
        token_amount: int,
    ) -> list[Instruction]:
        """Build the instructions for one sell.

        Args:
            participant: Seller's wallet address (signer)
            token_info: Mint and pool addresses
            quote: Expected un-tolerated quote for this sell
            slippage_bps: Share of the quoted SOL accepted as minimum
            token_amount: Raw tokens to sell

        Returns:
            Ordered instructions
        """
        pass


class CurveManager(ABC):
    """Abstract interface for reading pool state."""

    @property
    @abstractmethod
    def platform(self) -> Platform:
        """Get the platform this manager serves."""
        pass

    @abstractmethod
    async def resolve_token_info(self, mint: Pubkey) -> TokenInfo:
        """Read on-chain state and fill every address needed to trade a mint.

        Raises:
            StateReadError: The pool account cannot be read
            AccountLayoutError: The pool account is shorter than its layout
        """
        pass

    @abstractmethod
    async def get_reserves(self, token_info: TokenInfo) -> ReserveState:
        """Get current pool reserves as a ReserveState snapshot."""
        pass
