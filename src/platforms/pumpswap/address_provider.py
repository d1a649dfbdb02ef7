"""
PumpSwap implementation of AddressProvider interface.

Addresses and PDA derivations for pools of tokens that completed their
bonding curve and migrated to the PumpSwap AMM.
"""

from dataclasses import dataclass
from typing import Final

from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from core.pubkeys import SystemAddresses
from interfaces.core import AddressProvider, Platform, TokenInfo
from platforms.pumpfun.address_provider import PumpFunAddresses


@dataclass
class PumpSwapAddresses:
    """PumpSwap program addresses."""

    PROGRAM: Final[Pubkey] = Pubkey.from_string(
        "pAMMBay6oceH9fJKBRHGP5D4bD4sWpmSwMn52FMfXEA"
    )
    GLOBAL_CONFIG: Final[Pubkey] = Pubkey.from_string(
        "ADyA8hdefvWN2dbGGWFotbzWxrAvLW83WG6QCVXvJKqw"
    )
    EVENT_AUTHORITY: Final[Pubkey] = Pubkey.from_string(
        "GS4CU59F31iL7aR2Q8zVS8DRrcRnXX1yjQ66TqNVQnaR"
    )
    FEE_RECIPIENT: Final[Pubkey] = Pubkey.from_string(
        "7VtfL8fvgNfhz17qKRMjzQEXgbdpnHHHQRh54R9jP2RJ"
    )
    FEE_PROGRAM: Final[Pubkey] = Pubkey.from_string(
        "pfeeUxB6jkeY1Hxd7CsFCAjcbHA9rWtchMGdZ6VojVZ"
    )

    @staticmethod
    def find_coin_creator_vault_authority(coin_creator: Pubkey) -> Pubkey:
        """Derive the PDA holding creator fees for a coin."""
        derived_address, _ = Pubkey.find_program_address(
            [b"creator_vault", bytes(coin_creator)],
            PumpSwapAddresses.PROGRAM,
        )
        return derived_address

    @staticmethod
    def find_global_volume_accumulator() -> Pubkey:
        derived_address, _ = Pubkey.find_program_address(
            [b"global_volume_accumulator"],
            PumpSwapAddresses.PROGRAM,
        )
        return derived_address

    @staticmethod
    def find_user_volume_accumulator(user: Pubkey) -> Pubkey:
        derived_address, _ = Pubkey.find_program_address(
            [b"user_volume_accumulator", bytes(user)],
            PumpSwapAddresses.PROGRAM,
        )
        return derived_address

    @staticmethod
    def find_fee_config() -> Pubkey:
        derived_address, _ = Pubkey.find_program_address(
            [b"fee_config", bytes(PumpSwapAddresses.PROGRAM)],
            PumpSwapAddresses.FEE_PROGRAM,
        )
        return derived_address


class PumpSwapAddressProvider(AddressProvider):
    """PumpSwap implementation of AddressProvider interface.

    A pool cannot be derived from the mint alone, so TokenInfo must carry the
    pool and its token accounts (see PumpSwapCurveManager.resolve_token_info).
    """

    @property
    def platform(self) -> Platform:
        """Get the platform this provider serves."""
        return Platform.PUMP_SWAP

    @property
    def program_id(self) -> Pubkey:
        """Get the main program ID for this platform."""
        return PumpSwapAddresses.PROGRAM

    def derive_pool_address(self, base_mint: Pubkey) -> Pubkey:
        """Derive the canonical pool of a migrated pump.fun token.

        Migrated pools are created by the pump.fun pool authority with index 0
        and WSOL as the quote mint.
        """
        pool_authority, _ = Pubkey.find_program_address(
            [b"pool-authority", bytes(base_mint)],
            PumpFunAddresses.PROGRAM,
        )
        pool, _ = Pubkey.find_program_address(
            [
                b"pool",
                (0).to_bytes(2, "little"),
                bytes(pool_authority),
                bytes(base_mint),
                bytes(SystemAddresses.SOL_MINT),
            ],
            PumpSwapAddresses.PROGRAM,
        )
        return pool

    def derive_user_token_account(
        self, user: Pubkey, mint: Pubkey, token_program_id: Pubkey | None = None
    ) -> Pubkey:
        """Derive user's associated token account address."""
        if token_program_id is None:
            token_program_id = SystemAddresses.TOKEN_PROGRAM
        return get_associated_token_address(user, mint, token_program_id)

    def derive_wsol_account(self, user: Pubkey) -> Pubkey:
        """User's wrapped SOL account. WSOL always uses the standard Token program."""
        return get_associated_token_address(
            user, SystemAddresses.SOL_MINT, SystemAddresses.TOKEN_PROGRAM
        )

    def get_fee_recipient(self, token_info: TokenInfo) -> Pubkey:
        """Protocol fee recipient; mayhem pools use the GlobalConfig value."""
        if token_info.is_mayhem_mode:
            recipient = (token_info.additional_data or {}).get("mayhem_fee_recipient")
            if recipient is None:
                raise ValueError(
                    f"Mayhem fee recipient unknown for pool {token_info.pool}"
                )
            return recipient
        return PumpSwapAddresses.FEE_RECIPIENT

    def _common_accounts(self, token_info: TokenInfo, user: Pubkey) -> dict[str, Pubkey]:
        if token_info.pool is None or token_info.creator is None:
            raise ValueError(f"Pool state for {token_info.mint} not resolved")

        fee_recipient = self.get_fee_recipient(token_info)
        vault_authority = PumpSwapAddresses.find_coin_creator_vault_authority(
            token_info.creator
        )
        return {
            "pool": token_info.pool,
            "user": user,
            "global_config": PumpSwapAddresses.GLOBAL_CONFIG,
            "base_mint": token_info.mint,
            "quote_mint": SystemAddresses.SOL_MINT,
            "user_base_token_account": self.derive_user_token_account(
                user, token_info.mint, token_info.token_program_id
            ),
            "user_quote_token_account": self.derive_wsol_account(user),
            "pool_base_token_account": token_info.pool_base_token_account,
            "pool_quote_token_account": token_info.pool_quote_token_account,
            "protocol_fee_recipient": fee_recipient,
            "protocol_fee_recipient_token_account": get_associated_token_address(
                fee_recipient, SystemAddresses.SOL_MINT, SystemAddresses.TOKEN_PROGRAM
            ),
            "base_token_program": token_info.token_program_id,
            "quote_token_program": SystemAddresses.TOKEN_PROGRAM,
            "system_program": SystemAddresses.SYSTEM_PROGRAM,
            "associated_token_program": SystemAddresses.ASSOCIATED_TOKEN_PROGRAM,
            "event_authority": PumpSwapAddresses.EVENT_AUTHORITY,
            "program": PumpSwapAddresses.PROGRAM,
            "coin_creator_vault_ata": get_associated_token_address(
                vault_authority, SystemAddresses.SOL_MINT, SystemAddresses.TOKEN_PROGRAM
            ),
            "coin_creator_vault_authority": vault_authority,
        }

    def get_buy_instruction_accounts(
        self, token_info: TokenInfo, user: Pubkey
    ) -> dict[str, Pubkey]:
        """Get all accounts needed for a buy instruction, in program order."""
        accounts = self._common_accounts(token_info, user)
        accounts["global_volume_accumulator"] = (
            PumpSwapAddresses.find_global_volume_accumulator()
        )
        accounts["user_volume_accumulator"] = (
            PumpSwapAddresses.find_user_volume_accumulator(user)
        )
        accounts["fee_config"] = PumpSwapAddresses.find_fee_config()
        accounts["fee_program"] = PumpSwapAddresses.FEE_PROGRAM
        return accounts

    def get_sell_instruction_accounts(
        self, token_info: TokenInfo, user: Pubkey
    ) -> dict[str, Pubkey]:
        """Get all accounts needed for a sell instruction, in program order."""
        accounts = self._common_accounts(token_info, user)
        accounts["fee_config"] = PumpSwapAddresses.find_fee_config()
        accounts["fee_program"] = PumpSwapAddresses.FEE_PROGRAM
        return accounts
