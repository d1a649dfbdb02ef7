import struct
from dataclasses import dataclass

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from bundling.jito import BundleResult, EndpointResult
from core.client import ConfirmationStatus, SolanaClient
from core.errors import AccountLayoutError
from core.pubkeys import LAMPORTS_PER_SOL, SystemAddresses
from core.wallet import Wallet
from platforms.pumpfun.account_layouts import BONDING_CURVE_DISCRIMINATOR
from platforms.pumpfun.address_provider import PumpFunAddressProvider
from platforms.pumpswap.address_provider import PumpSwapAddressProvider

# Launch values of a fresh pump.fun curve
INITIAL_VIRTUAL_SOL = 30 * LAMPORTS_PER_SOL
INITIAL_VIRTUAL_TOKENS = 1_073_000_000 * 10**6


@dataclass
class FakeAccount:
    data: bytes
    owner: Pubkey
    lamports: int = 0


def bonding_curve_data(
    virtual_sol: int,
    virtual_tokens: int,
    creator: Pubkey,
    complete: bool = False,
) -> bytes:
    return (
        BONDING_CURVE_DISCRIMINATOR
        + struct.pack("<QQQQQ", virtual_tokens, virtual_sol, virtual_tokens, 0, virtual_tokens)
        + bytes([1 if complete else 0])
        + bytes(creator)
    )


def token_account_data(mint: Pubkey, owner: Pubkey, amount: int) -> bytes:
    return bytes(mint) + bytes(owner) + struct.pack("<Q", amount) + bytes(93)


class FakeClient:
    """In-memory stand-in for SolanaClient."""

    def __init__(self):
        self.accounts: dict[Pubkey, FakeAccount] = {}
        self.balances: dict[Pubkey, int] = {}
        self.token_balances: dict[Pubkey, int] = {}
        self.sent = []
        self.blockhash_requests = 0
        self.confirmation_status = ConfirmationStatus.CONFIRMED

    async def get_account_info(self, pubkey):
        if pubkey not in self.accounts:
            raise AccountLayoutError(f"Account {pubkey} not found")
        return self.accounts[pubkey]

    async def get_sol_balance(self, pubkey):
        return self.balances.get(pubkey, 0)

    async def get_token_account_balance(self, token_account):
        return self.token_balances.get(token_account, 0)

    async def get_latest_blockhash(self):
        self.blockhash_requests += 1
        return Hash.default()

    async def send_transaction(self, transaction):
        self.sent.append(transaction)
        return transaction.signatures[0]

    async def confirm_signature(self, signature, attempts=25, interval=0.4):
        error = "Custom(6002)" if self.confirmation_status is ConfirmationStatus.FAILED else None
        return SolanaClient.ConfirmationResult(
            self.confirmation_status, signature, error, attempts=1
        )

    async def close(self):
        pass


class FakeSubmitter:
    """Records bundles and accepts them on one endpoint."""

    def __init__(self):
        self.bundles = []

    async def submit_bundle(self, transactions, endpoints=None, uuid=None):
        self.bundles.append(transactions)
        return BundleResult(
            endpoint_results=[
                EndpointResult(
                    "frankfurt",
                    "https://frankfurt.mainnet.block-engine.jito.wtf/api/v1/bundles",
                    bundle_id=f"bundle-{len(self.bundles)}",
                )
            ],
            signatures=[str(tx.signatures[0]) for tx in transactions],
        )

    async def close(self):
        pass


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def submitter():
    return FakeSubmitter()


@pytest.fixture
def mint():
    return Keypair().pubkey()


@pytest.fixture
def creator():
    return Keypair().pubkey()


@pytest.fixture
def provider():
    return PumpFunAddressProvider()


@pytest.fixture
def token_info(provider, mint, creator):
    return provider.token_info_for(mint, creator)


@pytest.fixture
def live_curve(client, provider, mint, creator):
    """Register a tradeable bonding curve and its mint with the fake client."""
    client.accounts[provider.derive_pool_address(mint)] = FakeAccount(
        bonding_curve_data(INITIAL_VIRTUAL_SOL, INITIAL_VIRTUAL_TOKENS, creator),
        owner=Pubkey.default(),
    )
    client.accounts[mint] = FakeAccount(bytes(82), owner=SystemAddresses.TOKEN_PROGRAM)
    return mint


def make_wallets(count: int) -> list[Wallet]:
    return [Wallet.from_keypair(Keypair()) for _ in range(count)]


@pytest.fixture
def wallets():
    return make_wallets


# Vault balances of the PumpSwap pool registered by live_pool
POOL_SOL = 80 * LAMPORTS_PER_SOL
POOL_TOKENS = 500_000 * 10**6


@dataclass
class LivePool:
    mint: Pubkey
    pool: Pubkey
    creator: Pubkey
    base_vault: Pubkey
    quote_vault: Pubkey


def pool_data(mint: Pubkey, base_vault: Pubkey, quote_vault: Pubkey, creator: Pubkey) -> bytes:
    data = bytearray(244)
    data[11:43] = bytes(Keypair().pubkey())
    data[43:75] = bytes(mint)
    data[75:107] = bytes(SystemAddresses.SOL_MINT)
    data[139:171] = bytes(base_vault)
    data[171:203] = bytes(quote_vault)
    data[211:243] = bytes(creator)
    return bytes(data)


@pytest.fixture
def live_pool(client, mint):
    """Register a SOL-quoted PumpSwap pool for a Token-2022 mint with the fake client."""
    creator = Keypair().pubkey()
    base_vault, quote_vault = Keypair().pubkey(), Keypair().pubkey()
    pool = PumpSwapAddressProvider().derive_pool_address(mint)
    client.accounts[pool] = FakeAccount(
        pool_data(mint, base_vault, quote_vault, creator), owner=SystemAddresses.SYSTEM_PROGRAM
    )
    client.accounts[mint] = FakeAccount(bytes(82), owner=SystemAddresses.TOKEN_2022_PROGRAM)
    client.token_balances[base_vault] = POOL_TOKENS
    client.token_balances[quote_vault] = POOL_SOL
    return LivePool(mint, pool, creator, base_vault, quote_vault)
