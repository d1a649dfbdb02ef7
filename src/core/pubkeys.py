"""
System-wide addresses and constants shared by every platform.
"""

from dataclasses import dataclass
from typing import Final

import base58
from solders.pubkey import Pubkey

from core.errors import AddressError

LAMPORTS_PER_SOL: Final[int] = 1_000_000_000
TOKEN_DECIMALS: Final[int] = 6

U64_MAX: Final[int] = 2**64 - 1

# Rent-exempt minimum for a 165-byte SPL token account
TOKEN_ACCOUNT_RENT_LAMPORTS: Final[int] = 2_039_280

# Packet data ceiling for a serialized transaction
MAX_TRANSACTION_SIZE: Final[int] = 1232


@dataclass
class SystemAddresses:
    """Solana system program addresses."""

    SYSTEM_PROGRAM: Final[Pubkey] = Pubkey.from_string(
        "11111111111111111111111111111111"
    )
    TOKEN_PROGRAM: Final[Pubkey] = Pubkey.from_string(
        "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
    )
    TOKEN_2022_PROGRAM: Final[Pubkey] = Pubkey.from_string(
        "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"
    )
    ASSOCIATED_TOKEN_PROGRAM: Final[Pubkey] = Pubkey.from_string(
        "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
    )
    RENT: Final[Pubkey] = Pubkey.from_string(
        "SysvarRent111111111111111111111111111111111"
    )
    SOL_MINT: Final[Pubkey] = Pubkey.from_string(
        "So11111111111111111111111111111111111111112"
    )


def to_pubkey(value: str | bytes | Pubkey) -> Pubkey:
    """Parse a base58 string or 32 raw bytes into a Pubkey.

    Raises:
        AddressError: The value is not a valid 32-byte public key
    """
    if isinstance(value, Pubkey):
        return value
    if isinstance(value, str):
        try:
            raw = base58.b58decode(value.strip())
        except ValueError as e:
            raise AddressError(f"Invalid base58 address {value!r}: {e}") from e
    elif isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    else:
        raise AddressError(f"Unsupported address type: {type(value).__name__}")
    if len(raw) != 32:
        raise AddressError(f"Address must be 32 bytes, got {len(raw)}: {value!r}")
    return Pubkey.from_bytes(raw)
