import asyncio

import pytest
from solana.exceptions import SolanaRpcException
from solders.keypair import Keypair
from solders.signature import Signature

from core.client import ConfirmationStatus, SignatureStatus, SolanaClient
from core.errors import StateReadError


class FailingRpc:
    def __init__(self):
        self.calls = 0

    async def get_balance(self, pubkey):
        self.calls += 1
        raise SolanaRpcException(ConnectionError("connection reset"), self.get_balance, self, pubkey)


def test_reads_retry_then_raise_state_read_error(monkeypatch):
    client = SolanaClient({"endpoint": "https://rpc.example"})
    rpc = FailingRpc()

    async def get_client():
        return rpc

    monkeypatch.setattr(client, "get_client", get_client)

    with pytest.raises(StateReadError):
        asyncio.run(client.get_sol_balance(Keypair().pubkey()))
    assert rpc.calls == 3


def _client_with_statuses(monkeypatch, statuses):
    client = SolanaClient({"endpoint": "https://rpc.example"})
    remaining = list(statuses)

    async def get_signature_status(signature):
        return remaining.pop(0) if remaining else None

    monkeypatch.setattr(client, "get_signature_status", get_signature_status)
    return client


def test_confirm_after_a_few_polls(monkeypatch):
    client = _client_with_statuses(
        monkeypatch, [None, SignatureStatus(confirmed=False), SignatureStatus(confirmed=True)]
    )
    result = asyncio.run(client.confirm_signature(Signature.default(), attempts=5, interval=0))
    assert result.status is ConfirmationStatus.CONFIRMED
    assert result.attempts == 3
    assert result.success


def test_landed_with_error_is_failed(monkeypatch):
    client = _client_with_statuses(
        monkeypatch, [SignatureStatus(confirmed=True, err="Custom(6002)")]
    )
    result = asyncio.run(client.confirm_signature(Signature.default(), attempts=5, interval=0))
    assert result.status is ConfirmationStatus.FAILED
    assert result.error_message == "Custom(6002)"


def test_unseen_signature_is_unconfirmed_not_failed(monkeypatch):
    client = _client_with_statuses(monkeypatch, [])
    result = asyncio.run(client.confirm_signature(Signature.default(), attempts=3, interval=0))
    assert result.status is ConfirmationStatus.UNCONFIRMED
    assert not result.success
