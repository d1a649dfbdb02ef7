"""
Pump.Fun implementation of AddressProvider interface.

This module provides all pump.fun-specific addresses and PDA derivations
by implementing the AddressProvider interface.
"""

from dataclasses import dataclass
from typing import Final

from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from core.pubkeys import SystemAddresses
from interfaces.core import AddressProvider, Platform, TokenInfo


@dataclass
class PumpFunAddresses:
    """Pump.fun program addresses."""

    PROGRAM: Final[Pubkey] = Pubkey.from_string(
        "6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P"
    )
    GLOBAL: Final[Pubkey] = Pubkey.from_string(
        "4wTV1YmiEkRvAtNtsSGPtUrqRYQMe5SKy2uB4Jjaxnjf"
    )
    EVENT_AUTHORITY: Final[Pubkey] = Pubkey.from_string(
        "Ce6TQqeHC9p8KetsN6JsjHK7UTZk7nasjjnr7XxXp9F1"
    )
    FEE: Final[Pubkey] = Pubkey.from_string(
        "CebN5WGQ4jvEPvsVU4EoHEpgzq1VV7AbicfhtW4xC9iM"
    )
    # Mayhem mode fee recipient, stored in the Global account at offset 483
    MAYHEM_FEE: Final[Pubkey] = Pubkey.from_string(
        "GesfTA3X2arioaHp8bbKdjG9vJtskViWACZoYvxp4twS"
    )
    MINT_AUTHORITY: Final[Pubkey] = Pubkey.from_string(
        "TSLvdd1pWpHVjahSpsvCXUbgwsL3JAcvokwaKt1eokM"
    )
    METAPLEX_METADATA: Final[Pubkey] = Pubkey.from_string(
        "metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s"
    )
    FEE_PROGRAM: Final[Pubkey] = Pubkey.from_string(
        "pfeeUxB6jkeY1Hxd7CsFCAjcbHA9rWtchMGdZ6VojVZ"
    )

    @staticmethod
    def find_global_volume_accumulator() -> Pubkey:
        """
        Derive the Program Derived Address (PDA) for the global volume accumulator.

        Returns:
            Pubkey of the derived global volume accumulator account
        """
        derived_address, _ = Pubkey.find_program_address(
            [b"global_volume_accumulator"],
            PumpFunAddresses.PROGRAM,
        )
        return derived_address

    @staticmethod
    def find_user_volume_accumulator(user: Pubkey) -> Pubkey:
        """
        Derive the Program Derived Address (PDA) for a user's volume accumulator.

        Args:
            user: Pubkey of the user account

        Returns:
            Pubkey of the derived user volume accumulator account
        """
        derived_address, _ = Pubkey.find_program_address(
            [b"user_volume_accumulator", bytes(user)],
            PumpFunAddresses.PROGRAM,
        )
        return derived_address

    @staticmethod
    def find_fee_config() -> Pubkey:
        """
        Derive the Program Derived Address (PDA) for the fee config.

        Returns:
            Pubkey of the derived fee config account
        """
        derived_address, _ = Pubkey.find_program_address(
            [b"fee_config", bytes(PumpFunAddresses.PROGRAM)],
            PumpFunAddresses.FEE_PROGRAM,
        )
        return derived_address

    @staticmethod
    def find_metadata(mint: Pubkey) -> Pubkey:
        """
        Derive the Metaplex metadata account for a mint.

        Args:
            mint: Token mint address

        Returns:
            Pubkey of the metadata account
        """
        derived_address, _ = Pubkey.find_program_address(
            [
                b"metadata",
                bytes(PumpFunAddresses.METAPLEX_METADATA),
                bytes(mint),
            ],
            PumpFunAddresses.METAPLEX_METADATA,
        )
        return derived_address


class PumpFunAddressProvider(AddressProvider):
    """Pump.Fun implementation of AddressProvider interface."""

    @property
    def platform(self) -> Platform:
        """Get the platform this provider serves."""
        return Platform.PUMP_FUN

    @property
    def program_id(self) -> Pubkey:
        """Get the main program ID for this platform."""
        return PumpFunAddresses.PROGRAM

    def derive_pool_address(self, base_mint: Pubkey) -> Pubkey:
        """Derive the bonding curve address for a token.

        Args:
            base_mint: Token mint address

        Returns:
            Bonding curve address
        """
        bonding_curve, _ = Pubkey.find_program_address(
            [b"bonding-curve", bytes(base_mint)], PumpFunAddresses.PROGRAM
        )
        return bonding_curve

    def derive_user_token_account(
        self, user: Pubkey, mint: Pubkey, token_program_id: Pubkey | None = None
    ) -> Pubkey:
        """Derive user's associated token account address.

        Args:
            user: User's wallet address
            mint: Token mint address
            token_program_id: Token program (TOKEN or TOKEN_2022). Defaults to TOKEN_PROGRAM

        Returns:
            User's associated token account address
        """
        if token_program_id is None:
            token_program_id = SystemAddresses.TOKEN_PROGRAM
        return get_associated_token_address(user, mint, token_program_id)

    def derive_associated_bonding_curve(
        self, mint: Pubkey, bonding_curve: Pubkey, token_program_id: Pubkey | None = None
    ) -> Pubkey:
        """Derive the associated bonding curve (ATA of bonding curve for the token).

        Args:
            mint: Token mint address
            bonding_curve: Bonding curve address
            token_program_id: Token program (TOKEN or TOKEN_2022). Defaults to TOKEN_PROGRAM

        Returns:
            Associated bonding curve address
        """
        if token_program_id is None:
            token_program_id = SystemAddresses.TOKEN_PROGRAM

        derived_address, _ = Pubkey.find_program_address(
            [
                bytes(bonding_curve),
                bytes(token_program_id),
                bytes(mint),
            ],
            SystemAddresses.ASSOCIATED_TOKEN_PROGRAM,
        )
        return derived_address

    def derive_creator_vault(self, creator: Pubkey) -> Pubkey:
        """Derive the creator vault address.

        Args:
            creator: Creator address

        Returns:
            Creator vault address
        """
        creator_vault, _ = Pubkey.find_program_address(
            [b"creator-vault", bytes(creator)], PumpFunAddresses.PROGRAM
        )
        return creator_vault

    def derive_metadata(self, mint: Pubkey) -> Pubkey:
        return PumpFunAddresses.find_metadata(mint)

    def token_info_for(
        self,
        mint: Pubkey,
        creator: Pubkey,
        token_program_id: Pubkey | None = None,
        is_mayhem_mode: bool = False,
    ) -> TokenInfo:
        """Derive every curve-side address for a mint and its creator.

        Args:
            mint: Token mint address
            creator: Creator recorded in the bonding curve
            token_program_id: Token program owning the mint
            is_mayhem_mode: Whether fees route to the mayhem recipient

        Returns:
            TokenInfo with curve, associated curve and creator vault filled
        """
        token_program_id = token_program_id or SystemAddresses.TOKEN_PROGRAM
        bonding_curve = self.derive_pool_address(mint)
        return TokenInfo(
            mint=mint,
            platform=Platform.PUMP_FUN,
            bonding_curve=bonding_curve,
            associated_bonding_curve=self.derive_associated_bonding_curve(
                mint, bonding_curve, token_program_id
            ),
            creator=creator,
            creator_vault=self.derive_creator_vault(creator),
            token_program_id=token_program_id,
            is_mayhem_mode=is_mayhem_mode,
        )

    def get_fee_recipient(self, token_info: TokenInfo) -> Pubkey:
        """Get the protocol fee recipient based on mayhem mode."""
        if token_info.is_mayhem_mode:
            return PumpFunAddresses.MAYHEM_FEE
        return PumpFunAddresses.FEE

    def _curve_accounts(self, token_info: TokenInfo) -> tuple[Pubkey, Pubkey, Pubkey]:
        bonding_curve = token_info.bonding_curve or self.derive_pool_address(
            token_info.mint
        )
        associated_bonding_curve = (
            token_info.associated_bonding_curve
            or self.derive_associated_bonding_curve(
                token_info.mint, bonding_curve, token_info.token_program_id
            )
        )
        if token_info.creator_vault is not None:
            creator_vault = token_info.creator_vault
        elif token_info.creator is not None:
            creator_vault = self.derive_creator_vault(token_info.creator)
        else:
            raise ValueError(
                f"Creator unknown for {token_info.mint}; cannot derive creator vault"
            )
        return bonding_curve, associated_bonding_curve, creator_vault

    def get_buy_instruction_accounts(
        self, token_info: TokenInfo, user: Pubkey
    ) -> dict[str, Pubkey]:
        """Get all accounts needed for a buy instruction.

        Args:
            token_info: Token information
            user: User's wallet address

        Returns:
            Account addresses in buy instruction order
        """
        bonding_curve, associated_bonding_curve, creator_vault = self._curve_accounts(
            token_info
        )
        return {
            "global": PumpFunAddresses.GLOBAL,
            "fee": self.get_fee_recipient(token_info),
            "mint": token_info.mint,
            "bonding_curve": bonding_curve,
            "associated_bonding_curve": associated_bonding_curve,
            "user_token_account": self.derive_user_token_account(
                user, token_info.mint, token_info.token_program_id
            ),
            "user": user,
            "system_program": SystemAddresses.SYSTEM_PROGRAM,
            "token_program": token_info.token_program_id,
            "creator_vault": creator_vault,
            "event_authority": PumpFunAddresses.EVENT_AUTHORITY,
            "program": PumpFunAddresses.PROGRAM,
            "global_volume_accumulator": PumpFunAddresses.find_global_volume_accumulator(),
            "user_volume_accumulator": PumpFunAddresses.find_user_volume_accumulator(user),
            "fee_config": PumpFunAddresses.find_fee_config(),
            "fee_program": PumpFunAddresses.FEE_PROGRAM,
        }

    def get_sell_instruction_accounts(
        self, token_info: TokenInfo, user: Pubkey
    ) -> dict[str, Pubkey]:
        """Get all accounts needed for a sell instruction.

        Args:
            token_info: Token information
            user: User's wallet address

        Returns:
            Account addresses in sell instruction order
        """
        bonding_curve, associated_bonding_curve, creator_vault = self._curve_accounts(
            token_info
        )
        return {
            "global": PumpFunAddresses.GLOBAL,
            "fee": self.get_fee_recipient(token_info),
            "mint": token_info.mint,
            "bonding_curve": bonding_curve,
            "associated_bonding_curve": associated_bonding_curve,
            "user_token_account": self.derive_user_token_account(
                user, token_info.mint, token_info.token_program_id
            ),
            "user": user,
            "system_program": SystemAddresses.SYSTEM_PROGRAM,
            "creator_vault": creator_vault,
            "token_program": token_info.token_program_id,
            "event_authority": PumpFunAddresses.EVENT_AUTHORITY,
            "program": PumpFunAddresses.PROGRAM,
            "fee_config": PumpFunAddresses.find_fee_config(),
            "fee_program": PumpFunAddresses.FEE_PROGRAM,
        }
