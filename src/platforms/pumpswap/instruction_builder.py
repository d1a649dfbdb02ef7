"""
PumpSwap implementation of InstructionBuilder interface.

Buys spend wrapped SOL, so a buy wraps the lamports first and a sell closes
the WSOL account afterwards to unwrap the proceeds.
"""

import struct
from typing import Final

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from core.curve_math import SwapQuote, apply_slippage
from core.errors import InvalidAmountError
from core.instructions import (
    close_token_account,
    create_ata_idempotent,
    wrap_sol_instructions,
)
from core.pubkeys import U64_MAX, SystemAddresses
from interfaces.core import InstructionBuilder, Platform, TokenInfo
from platforms.pumpswap.address_provider import PumpSwapAddresses, PumpSwapAddressProvider
from utils.logger import get_logger

logger = get_logger(__name__)

BUY_DISCRIMINATOR: Final[bytes] = bytes.fromhex("66063d1201daebea")
SELL_DISCRIMINATOR: Final[bytes] = bytes.fromhex("33e685a4017f83ad")

_WRITABLE = {
    "pool",
    "user",
    "user_base_token_account",
    "user_quote_token_account",
    "pool_base_token_account",
    "pool_quote_token_account",
    "protocol_fee_recipient_token_account",
    "coin_creator_vault_ata",
    "user_volume_accumulator",
}


def _encode_u64(name: str, value: int) -> bytes:
    if value < 0 or value > U64_MAX:
        raise InvalidAmountError(f"{name} out of u64 range: {value}")
    return struct.pack("<Q", value)


def _account_metas(accounts: dict[str, Pubkey]) -> list[AccountMeta]:
    return [
        AccountMeta(
            pubkey=pubkey,
            is_signer=name == "user",
            is_writable=name in _WRITABLE,
        )
        for name, pubkey in accounts.items()
    ]


class PumpSwapInstructionBuilder(InstructionBuilder):
    """PumpSwap implementation of InstructionBuilder interface."""

    def __init__(self, address_provider: PumpSwapAddressProvider | None = None):
        self.address_provider = address_provider or PumpSwapAddressProvider()

    @property
    def platform(self) -> Platform:
        """Get the platform this builder serves."""
        return Platform.PUMP_SWAP

    def build_buy_instruction(
        self,
        user: Pubkey,
        token_info: TokenInfo,
        base_amount_out: int,
        max_quote_amount_in: int,
        track_volume: bool | None = None,
    ) -> Instruction:
        """discriminator | base_amount_out u64 | max_quote_amount_in u64 [| OptionBool]"""
        accounts = self.address_provider.get_buy_instruction_accounts(token_info, user)
        data = (
            BUY_DISCRIMINATOR
            + _encode_u64("base_amount_out", base_amount_out)
            + _encode_u64("max_quote_amount_in", max_quote_amount_in)
        )
        if track_volume is not None:
            data += bytes([1, 1 if track_volume else 0])
        return Instruction(PumpSwapAddresses.PROGRAM, data, _account_metas(accounts))

    def build_sell_instruction(
        self,
        user: Pubkey,
        token_info: TokenInfo,
        base_amount_in: int,
        min_quote_amount_out: int,
    ) -> Instruction:
        """discriminator | base_amount_in u64 | min_quote_amount_out u64"""
        accounts = self.address_provider.get_sell_instruction_accounts(token_info, user)
        data = (
            SELL_DISCRIMINATOR
            + _encode_u64("base_amount_in", base_amount_in)
            + _encode_u64("min_quote_amount_out", min_quote_amount_out)
        )
        return Instruction(PumpSwapAddresses.PROGRAM, data, _account_metas(accounts))

    def build_buy_instructions(
        self,
        participant: Pubkey,
        token_info: TokenInfo,
        quote: SwapQuote,
        slippage_bps: int,
        amount_in: int,
    ) -> list[Instruction]:
        """Wrap amount_in lamports, create the token account, then buy.

        The pool fee is charged on top of the swapped amount, so the whole
        input is the quote ceiling.
        """
        min_tokens = apply_slippage(quote.amount_out, slippage_bps)
        if min_tokens <= 0:
            raise InvalidAmountError(
                f"Buy of {amount_in} lamports quotes no tokens after slippage"
            )
        wsol_account = self.address_provider.derive_wsol_account(participant)
        logger.debug(
            f"PumpSwap buy {participant}: min_tokens={min_tokens}, max_quote_in={amount_in}"
        )
        return [
            *wrap_sol_instructions(participant, wsol_account, amount_in),
            create_ata_idempotent(
                participant, participant, token_info.mint, token_info.token_program_id
            ),
            self.build_buy_instruction(participant, token_info, min_tokens, amount_in),
            close_token_account(wsol_account, participant),
        ]

    def build_sell_instructions(
        self,
        participant: Pubkey,
        token_info: TokenInfo,
        quote: SwapQuote,
        slippage_bps: int,
        token_amount: int,
    ) -> list[Instruction]:
        """Sell into a fresh WSOL account and close it to receive native SOL."""
        if token_amount <= 0:
            raise InvalidAmountError(f"Sell amount must be positive, got {token_amount}")
        min_quote_out = apply_slippage(quote.amount_out, slippage_bps)
        wsol_account = self.address_provider.derive_wsol_account(participant)
        return [
            create_ata_idempotent(
                participant, participant, SystemAddresses.SOL_MINT
            ),
            self.build_sell_instruction(
                participant, token_info, token_amount, min_quote_out
            ),
            close_token_account(wsol_account, participant),
        ]
