"""
Wallet management for Solana transactions.
"""

import json
from pathlib import Path

import base58
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from core.errors import ConfigError
from core.pubkeys import SystemAddresses


class Wallet:
    """A participant's signing key."""

    def __init__(self, private_key: str):
        """Initialize wallet from private key.

        Args:
            private_key: Base58 encoded 64-byte secret key, or a JSON byte
                array as written by solana-keygen
        """
        self._keypair = self._load_keypair(private_key)

    @classmethod
    def from_keypair(cls, keypair: Keypair) -> "Wallet":
        """Wrap an existing keypair, e.g. a freshly generated mint."""
        wallet = cls.__new__(cls)
        wallet._keypair = keypair
        return wallet

    @classmethod
    def from_file(cls, path: str | Path) -> "Wallet":
        """Load a solana-keygen JSON key file."""
        return cls(Path(path).read_text().strip())

    @property
    def pubkey(self) -> Pubkey:
        """Get the public key of the wallet."""
        return self._keypair.pubkey()

    @property
    def keypair(self) -> Keypair:
        """Get the keypair for signing transactions."""
        return self._keypair

    def get_associated_token_address(
        self, mint: Pubkey, token_program_id: Pubkey | None = None
    ) -> Pubkey:
        """Get the associated token account address for a mint.

        Args:
            mint: Token mint address
            token_program_id: Token program (TOKEN or TOKEN_2022). Defaults to TOKEN_PROGRAM

        Returns:
            Associated token account address
        """
        if token_program_id is None:
            token_program_id = SystemAddresses.TOKEN_PROGRAM
        return get_associated_token_address(self.pubkey, mint, token_program_id)

    def __repr__(self) -> str:
        return f"Wallet({self.pubkey})"

    @staticmethod
    def _load_keypair(private_key: str) -> Keypair:
        """Load keypair from private key.

        Args:
            private_key: Base58 string or JSON byte array

        Returns:
            Solana keypair

        Raises:
            ConfigError: The key cannot be decoded into a 64-byte keypair
        """
        private_key = private_key.strip()
        try:
            if private_key.startswith("["):
                private_key_bytes = bytes(json.loads(private_key))
            else:
                private_key_bytes = base58.b58decode(private_key)
            return Keypair.from_bytes(private_key_bytes)
        except ValueError as e:
            raise ConfigError(f"Invalid private key: {e}") from e
