"""
Fixed-offset decoding of externally owned account data.

Program accounts are treated as versionless binary records: each account type
is described once as a table of (name, offset, type) and decoded through
AccountLayout.decode. A buffer shorter than the table raises instead of being
zero-filled.
"""

import struct
from dataclasses import dataclass
from typing import Any

from solders.pubkey import Pubkey

from core.errors import AccountLayoutError

# Field widths in bytes
FIELD_SIZES = {
    "u8": 1,
    "bool": 1,
    "u16": 2,
    "u32": 4,
    "u64": 8,
    "i64": 8,
    "pubkey": 32,
}

_STRUCT_FORMATS = {
    "u16": "<H",
    "u32": "<I",
    "u64": "<Q",
    "i64": "<q",
}


@dataclass(frozen=True)
class LayoutField:
    """One field of an account layout."""

    name: str
    offset: int
    type: str

    @property
    def end(self) -> int:
        return self.offset + FIELD_SIZES[self.type]


class AccountLayout:
    """Offset table for one account type."""

    def __init__(
        self,
        name: str,
        fields: list[tuple[str, int, str]],
        discriminator: bytes | None = None,
    ):
        """Build a layout.

        Args:
            name: Account type name used in error messages
            fields: (field_name, byte_offset, type) rows
            discriminator: Expected leading 8 bytes, checked when given
        """
        self.name = name
        self.fields = [LayoutField(*row) for row in fields]
        self.discriminator = discriminator
        self.size = max(f.end for f in self.fields)

    def decode(self, data: bytes | None) -> dict[str, Any]:
        """Decode account data into a field dictionary.

        Raises:
            AccountLayoutError: Data missing, too short, or wrong discriminator
        """
        if data is None:
            raise AccountLayoutError(f"{self.name} account has no data")
        if len(data) < self.size:
            raise AccountLayoutError(
                f"{self.name} account data too short: {len(data)} < {self.size} bytes"
            )
        if self.discriminator is not None and bytes(data[:8]) != self.discriminator:
            raise AccountLayoutError(
                f"{self.name} discriminator mismatch: {bytes(data[:8]).hex()}"
            )

        decoded: dict[str, Any] = {}
        for field in self.fields:
            raw = bytes(data[field.offset : field.end])
            if field.type == "pubkey":
                decoded[field.name] = Pubkey.from_bytes(raw)
            elif field.type == "bool":
                decoded[field.name] = raw[0] != 0
            elif field.type == "u8":
                decoded[field.name] = raw[0]
            else:
                decoded[field.name] = struct.unpack(_STRUCT_FORMATS[field.type], raw)[0]
        return decoded


# SPL token account: mint(32) owner(32) amount(8) ...
TOKEN_ACCOUNT_LAYOUT = AccountLayout(
    "TokenAccount",
    [
        ("mint", 0, "pubkey"),
        ("owner", 32, "pubkey"),
        ("amount", 64, "u64"),
    ],
)
