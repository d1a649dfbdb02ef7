"""
Pump.Fun implementation of InstructionBuilder interface.

Encodes create, extend_account, buy and sell calls for the bonding-curve
program. Account order and data layout follow the program IDL exactly.
"""

import struct
from typing import Final

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from core.curve_math import SwapQuote, apply_slippage
from core.errors import InvalidAmountError
from core.instructions import create_ata_idempotent
from core.pubkeys import U64_MAX, SystemAddresses
from interfaces.core import InstructionBuilder, Platform, TokenInfo
from platforms.pumpfun.address_provider import PumpFunAddresses, PumpFunAddressProvider
from utils.logger import get_logger

logger = get_logger(__name__)

# Discriminators
BUY_DISCRIMINATOR: Final[bytes] = struct.pack("<Q", 16927863322537952870)
SELL_DISCRIMINATOR: Final[bytes] = struct.pack("<Q", 12502976635542562355)
CREATE_DISCRIMINATOR: Final[bytes] = bytes([24, 30, 200, 40, 5, 28, 7, 119])
EXTEND_ACCOUNT_DISCRIMINATOR: Final[bytes] = bytes(
    [234, 102, 194, 203, 150, 72, 62, 229]
)

# Writable accounts of buy/sell instructions
_WRITABLE = {
    "fee",
    "bonding_curve",
    "associated_bonding_curve",
    "user_token_account",
    "user",
    "creator_vault",
    "user_volume_accumulator",
}


def _encode_string(value: str) -> bytes:
    encoded = value.encode("utf-8")
    return struct.pack("<I", len(encoded)) + encoded


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


class PumpFunInstructionBuilder(InstructionBuilder):
    """Pump.Fun implementation of InstructionBuilder interface."""

    def __init__(self, address_provider: PumpFunAddressProvider | None = None):
        self.address_provider = address_provider or PumpFunAddressProvider()

    @property
    def platform(self) -> Platform:
        """Get the platform this builder serves."""
        return Platform.PUMP_FUN

    def build_buy_instruction(
        self,
        user: Pubkey,
        token_info: TokenInfo,
        token_amount: int,
        max_sol_cost: int,
        track_volume: bool | None = None,
    ) -> Instruction:
        """Encode a buy call.

        Data layout: discriminator | token_amount u64 | max_sol_cost u64, plus
        an OptionBool track_volume when requested.
        """
        accounts = self.address_provider.get_buy_instruction_accounts(token_info, user)
        data = (
            BUY_DISCRIMINATOR
            + _encode_u64("token_amount", token_amount)
            + _encode_u64("max_sol_cost", max_sol_cost)
        )
        if track_volume is not None:
            data += bytes([1, 1 if track_volume else 0])
        return Instruction(PumpFunAddresses.PROGRAM, data, _account_metas(accounts))

    def build_sell_instruction(
        self,
        user: Pubkey,
        token_info: TokenInfo,
        token_amount: int,
        min_sol_output: int,
    ) -> Instruction:
        """Encode a sell call: discriminator | amount u64 | min_sol_output u64."""
        accounts = self.address_provider.get_sell_instruction_accounts(token_info, user)
        data = (
            SELL_DISCRIMINATOR
            + _encode_u64("token_amount", token_amount)
            + _encode_u64("min_sol_output", min_sol_output)
        )
        return Instruction(PumpFunAddresses.PROGRAM, data, _account_metas(accounts))

    def build_create_instruction(
        self,
        mint: Pubkey,
        user: Pubkey,
        name: str,
        symbol: str,
        uri: str,
        creator: Pubkey | None = None,
    ) -> Instruction:
        """Encode token creation with Metaplex metadata.

        Both mint and user sign. The creator defaults to the user.
        """
        provider = self.address_provider
        bonding_curve = provider.derive_pool_address(mint)
        accounts = [
            AccountMeta(pubkey=mint, is_signer=True, is_writable=True),
            AccountMeta(
                pubkey=PumpFunAddresses.MINT_AUTHORITY, is_signer=False, is_writable=False
            ),
            AccountMeta(pubkey=bonding_curve, is_signer=False, is_writable=True),
            AccountMeta(
                pubkey=provider.derive_associated_bonding_curve(mint, bonding_curve),
                is_signer=False,
                is_writable=True,
            ),
            AccountMeta(pubkey=PumpFunAddresses.GLOBAL, is_signer=False, is_writable=False),
            AccountMeta(
                pubkey=PumpFunAddresses.METAPLEX_METADATA, is_signer=False, is_writable=False
            ),
            AccountMeta(
                pubkey=provider.derive_metadata(mint), is_signer=False, is_writable=True
            ),
            AccountMeta(pubkey=user, is_signer=True, is_writable=True),
            AccountMeta(
                pubkey=SystemAddresses.SYSTEM_PROGRAM, is_signer=False, is_writable=False
            ),
            AccountMeta(
                pubkey=SystemAddresses.TOKEN_PROGRAM, is_signer=False, is_writable=False
            ),
            AccountMeta(
                pubkey=SystemAddresses.ASSOCIATED_TOKEN_PROGRAM,
                is_signer=False,
                is_writable=False,
            ),
            AccountMeta(pubkey=SystemAddresses.RENT, is_signer=False, is_writable=False),
            AccountMeta(
                pubkey=PumpFunAddresses.EVENT_AUTHORITY, is_signer=False, is_writable=False
            ),
            AccountMeta(pubkey=PumpFunAddresses.PROGRAM, is_signer=False, is_writable=False),
        ]
        data = (
            CREATE_DISCRIMINATOR
            + _encode_string(name)
            + _encode_string(symbol)
            + _encode_string(uri)
            + bytes(creator or user)
        )
        return Instruction(PumpFunAddresses.PROGRAM, data, accounts)

    def build_extend_account_instruction(
        self, bonding_curve: Pubkey, user: Pubkey
    ) -> Instruction:
        """Expand the bonding curve account to its current size."""
        accounts = [
            AccountMeta(pubkey=bonding_curve, is_signer=False, is_writable=True),
            AccountMeta(pubkey=user, is_signer=True, is_writable=True),
            AccountMeta(
                pubkey=SystemAddresses.SYSTEM_PROGRAM, is_signer=False, is_writable=False
            ),
            AccountMeta(
                pubkey=PumpFunAddresses.EVENT_AUTHORITY, is_signer=False, is_writable=False
            ),
            AccountMeta(pubkey=PumpFunAddresses.PROGRAM, is_signer=False, is_writable=False),
        ]
        return Instruction(PumpFunAddresses.PROGRAM, EXTEND_ACCOUNT_DISCRIMINATOR, accounts)

    def build_buy_instructions(
        self,
        participant: Pubkey,
        token_info: TokenInfo,
        quote: SwapQuote,
        slippage_bps: int,
        amount_in: int,
    ) -> list[Instruction]:
        """Token account creation plus buy for one participant.

        The minimum token amount is the quoted output discounted by
        slippage_bps; the SOL ceiling is the input left after the service fee.
        """
        min_tokens = apply_slippage(quote.amount_out, slippage_bps)
        if min_tokens <= 0:
            raise InvalidAmountError(
                f"Buy of {amount_in} lamports quotes no tokens after slippage"
            )
        max_sol_cost = amount_in - quote.fee_amount
        if max_sol_cost <= 0:
            raise InvalidAmountError(
                f"Fee {quote.fee_amount} exceeds buy amount {amount_in}"
            )

        logger.debug(
            f"Buy {participant}: min_tokens={min_tokens}, max_sol_cost={max_sol_cost}"
        )
        return [
            create_ata_idempotent(
                participant, participant, token_info.mint, token_info.token_program_id
            ),
            self.build_buy_instruction(participant, token_info, min_tokens, max_sol_cost),
        ]

    def build_sell_instructions(
        self,
        participant: Pubkey,
        token_info: TokenInfo,
        quote: SwapQuote,
        slippage_bps: int,
        token_amount: int,
    ) -> list[Instruction]:
        """Sell with a minimum of the quoted gross SOL discounted by slippage_bps."""
        if token_amount <= 0:
            raise InvalidAmountError(f"Sell amount must be positive, got {token_amount}")
        min_sol_output = apply_slippage(quote.gross_amount_out, slippage_bps)
        logger.debug(
            f"Sell {participant}: tokens={token_amount}, min_sol_output={min_sol_output}"
        )
        return [
            self.build_sell_instruction(
                participant, token_info, token_amount, min_sol_output
            )
        ]
