"""
Solana client abstraction for blockchain operations.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Processed
from solana.rpc.types import MemcmpOpts, TxOpts
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction
from solders.transaction_status import TransactionConfirmationStatus
from tenacity import (
    after_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from core.account_layout import TOKEN_ACCOUNT_LAYOUT
from core.errors import AccountLayoutError, StateReadError
from utils.logger import get_logger

logger = get_logger(__name__)

# Transient transport failures only; missing accounts are not retried
_rpc_retry = retry(
    reraise=True,
    wait=wait_fixed(0.5),
    stop=stop_after_attempt(3),
    retry=retry_if_exception_type(SolanaRpcException),
    after=after_log(logger, logging.INFO),
)


class ConfirmationStatus(Enum):
    """Outcome of polling a signature."""

    CONFIRMED = "confirmed"  # Landed without error
    FAILED = "failed"  # Landed with an on-chain error
    UNCONFIRMED = "unconfirmed"  # Not seen before polling ran out; may still land


@dataclass
class SignatureStatus:
    """Chain view of one signature."""

    confirmed: bool
    err: str | None = None
    slot: int | None = None


class SolanaClient:
    """Abstraction for Solana RPC client operations."""

    def __init__(self, rpc_config: dict):
        """Initialize Solana client with RPC configuration.

        Args:
            rpc_config: Dictionary containing:
                - endpoint: URL of the Solana RPC endpoint
                - skip_preflight (optional): Skip preflight on send, default True
                - max_send_retries (optional): Attempts per send, default 3
        """
        self.rpc_endpoint = rpc_config["endpoint"]
        self.skip_preflight = rpc_config.get("skip_preflight", True)
        self.max_send_retries = rpc_config.get("max_send_retries", 3)
        self._client: AsyncClient | None = None

    async def get_client(self) -> AsyncClient:
        """Get or create the AsyncClient instance.

        Returns:
            AsyncClient instance
        """
        if self._client is None:
            self._client = AsyncClient(self.rpc_endpoint)
        return self._client

    async def close(self):
        """Close the client connection."""
        if self._client:
            await self._client.close()
            self._client = None

    @_rpc_retry
    async def _call(self, method: str, *args: Any, **kwargs: Any) -> Any:
        client = await self.get_client()
        return await getattr(client, method)(*args, **kwargs)

    async def _read(self, method: str, *args: Any, **kwargs: Any) -> Any:
        try:
            return await self._call(method, *args, **kwargs)
        except SolanaRpcException as e:
            raise StateReadError(f"RPC {method} failed: {e!s}") from e

    async def get_account_info(self, pubkey: Pubkey) -> Any:
        """Get account info from the blockchain.

        Args:
            pubkey: Public key of the account

        Returns:
            Account with data, owner and lamports

        Raises:
            AccountLayoutError: If account doesn't exist
            StateReadError: If the RPC node cannot be reached
        """
        response = await self._read("get_account_info", pubkey, encoding="base64")
        if not response.value:
            raise AccountLayoutError(f"Account {pubkey} not found")
        return response.value

    async def get_token_account_balance(self, token_account: Pubkey) -> int:
        """Get raw token balance for an account.

        A token account that does not exist yet holds zero tokens.

        Args:
            token_account: Token account address

        Returns:
            Token balance as integer
        """
        response = await self._read("get_account_info", token_account, encoding="base64")
        if not response.value:
            return 0
        return TOKEN_ACCOUNT_LAYOUT.decode(response.value.data)["amount"]

    async def find_program_accounts(
        self, program_id: Pubkey, offset: int, value: Pubkey
    ) -> list[Pubkey]:
        """Addresses of program accounts holding value at a byte offset.

        Args:
            program_id: Owning program
            offset: Byte offset of the compared field
            value: Public key expected at that offset

        Returns:
            Matching account addresses
        """
        response = await self._read(
            "get_program_accounts",
            program_id,
            encoding="base64",
            filters=[MemcmpOpts(offset=offset, bytes=str(value))],
        )
        return [account.pubkey for account in response.value]

    async def get_sol_balance(self, pubkey: Pubkey) -> int:
        """Get SOL balance for a wallet account.

        Args:
            pubkey: Public key of the wallet

        Returns:
            SOL balance in lamports
        """
        response = await self._read("get_balance", pubkey)
        return response.value

    async def get_latest_blockhash(self) -> Hash:
        """Fetch a fresh blockhash. Never cached: each assembly pass asks again.

        Returns:
            Recent blockhash
        """
        response = await self._read("get_latest_blockhash", commitment=Processed)
        return response.value.blockhash

    async def send_transaction(self, transaction: Transaction) -> Signature:
        """Send a signed transaction.

        Resending the same signed bytes is safe: the network deduplicates by
        signature.

        Args:
            transaction: Fully signed transaction

        Returns:
            Transaction signature
        """
        client = await self.get_client()
        tx_opts = TxOpts(skip_preflight=self.skip_preflight, preflight_commitment=Processed)

        for attempt in range(self.max_send_retries):
            try:
                response = await client.send_raw_transaction(bytes(transaction), tx_opts)
                return response.value
            except SolanaRpcException as e:
                if attempt == self.max_send_retries - 1:
                    logger.exception(
                        f"Failed to send transaction after {self.max_send_retries} attempts"
                    )
                    raise
                wait_time = 2**attempt
                logger.warning(
                    f"Transaction attempt {attempt + 1} failed: {e!s}, retrying in {wait_time}s"
                )
                await asyncio.sleep(wait_time)

    async def get_signature_status(self, signature: Signature) -> SignatureStatus | None:
        """Look up a signature.

        Returns:
            None if the network has not seen it, otherwise its status
        """
        response = await self._read(
            "get_signature_statuses", [signature], search_transaction_history=False
        )
        status = response.value[0] if response.value else None
        if status is None:
            return None
        return SignatureStatus(
            confirmed=status.confirmation_status
            in (TransactionConfirmationStatus.Confirmed, TransactionConfirmationStatus.Finalized),
            err=str(status.err) if status.err else None,
            slot=status.slot,
        )

    @dataclass
    class ConfirmationResult:
        status: ConfirmationStatus
        signature: Signature
        error_message: str | None = None
        attempts: int = 0

        @property
        def success(self) -> bool:
            return self.status is ConfirmationStatus.CONFIRMED

        def __str__(self) -> str:
            """String representation of confirmation result."""
            result = f"ConfirmationResult(status={self.status.value}, tx='{self.signature}'"
            if self.error_message:
                result += f", error_message='{self.error_message}'"
            result += ")"
            return result

    async def confirm_signature(
        self,
        signature: Signature,
        attempts: int = 25,
        interval: float = 0.4,
    ) -> "SolanaClient.ConfirmationResult":
        """Poll a signature until it lands, fails, or polling runs out.

        Args:
            signature: Transaction signature to confirm
            attempts: Maximum number of polls
            interval: Seconds between polls

        Returns:
            ConfirmationResult; UNCONFIRMED means polling ran out, not failure
        """
        for attempt in range(1, attempts + 1):
            try:
                status = await self.get_signature_status(signature)
            except StateReadError as e:
                logger.warning(f"Status poll {attempt} for {signature} failed: {e!s}")
                status = None

            if status is not None:
                if status.err:
                    return SolanaClient.ConfirmationResult(
                        ConfirmationStatus.FAILED, signature, status.err, attempt
                    )
                if status.confirmed:
                    logger.info(f"Transaction {signature} confirmed after {attempt} polls")
                    return SolanaClient.ConfirmationResult(
                        ConfirmationStatus.CONFIRMED, signature, None, attempt
                    )
            await asyncio.sleep(interval)

        logger.warning(f"Transaction {signature} unconfirmed after {attempts} polls")
        return SolanaClient.ConfirmationResult(
            ConfirmationStatus.UNCONFIRMED, signature, None, attempts
        )
