"""
Jito block engine bundle submission.

A bundle is POSTed as one JSON-RPC sendBundle call, either to a single
block engine or to several at once. In broadcast mode every endpoint runs
in its own task under a timeout, and the bundle counts as submitted when
any endpoint accepted it.
"""

import asyncio
import base64
import json
import random
from dataclasses import dataclass, field
from typing import Any, Final
from urllib.parse import urlparse

import aiohttp
from solders.instruction import Instruction
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from core.errors import BundleSubmissionError, ConfigError
from core.instructions import transfer_sol
from utils.logger import get_logger

logger = get_logger(__name__)

MAX_BUNDLE_TRANSACTIONS: Final[int] = 5

BLOCK_ENGINES: Final[dict[str, str]] = {
    name: f"https://{name}.mainnet.block-engine.jito.wtf"
    for name in ("frankfurt", "amsterdam", "london", "ny", "tokyo", "slc")
}

BUNDLES_PATH: Final[str] = "/api/v1/bundles"
EXPLORER_URL: Final[str] = "https://explorer.jito.wtf/bundle/{bundle_id}"

TIP_ACCOUNTS: Final[list[Pubkey]] = [
    Pubkey.from_string(address)
    for address in (
        "96gYZGLnJYVFmbjzopPSU6QiEV5fGqZNyN9nmNhvrZU5",
        "HFqU5x63VTqvQss8hp11i4wVV8bD44PvwucfZ2bU7gRe",
        "Cw8CFyM9FkoMi7K7Crf6HNQqf4uEMzpKw6QNghXLvLkY",
        "ADaUMid9yfUytqMBgopwjb2DTLSokTSzL1zt6iGPaS49",
        "DfXygSm4jCyNCybVYYK6DwvWqjKee8pbDmJGcLWNDXjh",
        "ADuUkR4vqLUMWXxW9gh6D6L8pMSawimctcNZ5pGwDcEt",
        "DttWaMuVvTiduZRnguLF7jNxTgiMBZ1hyAumKUiL2KRL",
        "3AVi9Tg9Uo68tJfuvoKvqKNWKkC5wPdSSdeBnizKZ6jT",
    )
]


def random_tip_account(rng: random.Random | None = None) -> Pubkey:
    """Pick a tip account; spreading tips avoids write-lock contention."""
    return (rng or random).choice(TIP_ACCOUNTS)


def build_tip_instruction(
    payer: Pubkey, lamports: int, tip_account: Pubkey | None = None
) -> Instruction:
    """SOL transfer from payer to a block engine tip account."""
    return transfer_sol(payer, tip_account or random_tip_account(), lamports)


def resolve_endpoint(endpoint: str) -> tuple[str, str]:
    """Map a block engine name or base URL to (name, base_url).

    The name of a URL endpoint is the first label of its host.

    Raises:
        ConfigError: Unknown name
    """
    if endpoint in BLOCK_ENGINES:
        return endpoint, BLOCK_ENGINES[endpoint]
    parsed = urlparse(endpoint)
    if parsed.scheme in ("http", "https") and parsed.hostname:
        return parsed.hostname.split(".")[0], endpoint.rstrip("/")
    raise ConfigError(
        f"Unknown block engine {endpoint!r}; expected one of {sorted(BLOCK_ENGINES)} or a URL"
    )


@dataclass
class EndpointResult:
    """Response of one block engine."""

    endpoint: str
    url: str
    bundle_id: str | None = None
    error: str | None = None

    @property
    def accepted(self) -> bool:
        return self.bundle_id is not None

    @property
    def explorer_url(self) -> str | None:
        if self.bundle_id is None:
            return None
        return EXPLORER_URL.format(bundle_id=self.bundle_id)


@dataclass
class BundleResult:
    """Per-endpoint results of one submission."""

    endpoint_results: list[EndpointResult] = field(default_factory=list)
    signatures: list[str] = field(default_factory=list)

    @property
    def accepted(self) -> list[EndpointResult]:
        return [r for r in self.endpoint_results if r.accepted]

    @property
    def rejected(self) -> list[EndpointResult]:
        return [r for r in self.endpoint_results if not r.accepted]

    @property
    def success(self) -> bool:
        return bool(self.accepted)

    @property
    def bundle_id(self) -> str | None:
        accepted = self.accepted
        return accepted[0].bundle_id if accepted else None


def encode_transactions(transactions: list[Transaction]) -> list[str]:
    return [base64.b64encode(bytes(tx)).decode("ascii") for tx in transactions]


def build_send_bundle_request(transactions: list[Transaction]) -> dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": 1,
        "method": "sendBundle",
        "params": [encode_transactions(transactions), {"encoding": "base64"}],
    }


class BundleSubmitter:
    """Sends signed bundles to Jito block engines."""

    def __init__(
        self,
        endpoints: list[str],
        mode: str = "broadcast",
        uuid: str | None = None,
        timeout: float = 10.0,
        session: aiohttp.ClientSession | None = None,
    ):
        """Initialize the submitter.

        Args:
            endpoints: Block engine names (see BLOCK_ENGINES) or base URLs
            mode: "single" posts to the first endpoint, "broadcast" to all
            uuid: Optional authentication UUID appended as ?uuid=
            timeout: Seconds to wait for each endpoint
            session: Shared HTTP session; one is created lazily when omitted
        """
        if mode not in ("single", "broadcast"):
            raise ConfigError(f"Unknown submission mode: {mode}")
        if not endpoints:
            raise ConfigError("At least one block engine is required")
        self.endpoints = [resolve_endpoint(e) for e in endpoints]
        self.mode = mode
        self.uuid = uuid
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    def bundle_url(self, base_url: str, uuid: str | None = None) -> str:
        url = f"{base_url}{BUNDLES_PATH}"
        uuid = uuid or self.uuid
        if uuid:
            url += f"?uuid={uuid}"
        return url

    async def _post_bundle(self, url: str, payload: dict[str, Any]) -> str:
        """POST one sendBundle request and return the bundle id.

        Raises:
            BundleSubmissionError: Error body, empty or malformed response
        """
        session = await self._get_session()
        async with session.post(
            url, json=payload, timeout=aiohttp.ClientTimeout(self.timeout)
        ) as response:
            text = await response.text()
            status = response.status

        if not text:
            raise BundleSubmissionError(f"Empty response (HTTP {status})")
        try:
            body = json.loads(text)
        except ValueError as e:
            raise BundleSubmissionError(
                f"Malformed response (HTTP {status}): {text[:200]}"
            ) from e
        if not isinstance(body, dict):
            raise BundleSubmissionError(f"Malformed response (HTTP {status}): {text[:200]}")

        if body.get("error"):
            error = body["error"]
            message = error.get("message", "Unknown error") if isinstance(error, dict) else str(error)
            raise BundleSubmissionError(f"Relay error (HTTP {status}): {message}")
        if not body.get("result"):
            raise BundleSubmissionError(f"No bundle id in response (HTTP {status})")
        return str(body["result"])

    async def _submit_to(
        self, name: str, base_url: str, payload: dict[str, Any], uuid: str | None
    ) -> EndpointResult:
        url = self.bundle_url(base_url, uuid)
        try:
            bundle_id = await asyncio.wait_for(
                self._post_bundle(url, payload), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"[{name}] bundle submission timed out after {self.timeout}s")
            return EndpointResult(name, url, error=f"timed out after {self.timeout}s")
        except Exception as e:
            logger.warning(f"[{name}] bundle rejected: {e!s}")
            return EndpointResult(name, url, error=str(e))

        logger.info(f"[{name}] bundle accepted: {EXPLORER_URL.format(bundle_id=bundle_id)}")
        return EndpointResult(name, url, bundle_id=bundle_id)

    async def submit_bundle(
        self,
        transactions: list[Transaction],
        endpoints: list[str] | None = None,
        uuid: str | None = None,
    ) -> BundleResult:
        """Submit signed transactions as one ordered bundle.

        Args:
            transactions: 1 to 5 signed transactions, tip in the first
            endpoints: Override the configured endpoints for this call
            uuid: Override the configured UUID for this call

        Returns:
            BundleResult with one entry per endpoint tried

        Raises:
            ValueError: Empty or oversized bundle
            BundleSubmissionError: Every endpoint rejected; carries the result
        """
        if not 1 <= len(transactions) <= MAX_BUNDLE_TRANSACTIONS:
            raise ValueError(
                f"Bundle must hold 1 to {MAX_BUNDLE_TRANSACTIONS} transactions, "
                f"got {len(transactions)}"
            )

        targets = [resolve_endpoint(e) for e in endpoints] if endpoints else self.endpoints
        if self.mode == "single":
            targets = targets[:1]

        payload = build_send_bundle_request(transactions)
        logger.info(
            f"Submitting bundle of {len(transactions)} txs to "
            f"{', '.join(name for name, _ in targets)} ({self.mode})"
        )

        endpoint_results = await asyncio.gather(
            *(self._submit_to(name, url, payload, uuid) for name, url in targets)
        )
        result = BundleResult(
            endpoint_results=list(endpoint_results),
            signatures=[str(tx.signatures[0]) for tx in transactions],
        )
        if not result.success:
            reasons = "; ".join(f"[{r.endpoint}] {r.error}" for r in result.rejected)
            raise BundleSubmissionError(f"All endpoints rejected the bundle: {reasons}", result)
        return result

    async def get_bundle_statuses(
        self, bundle_ids: list[str], endpoint: str | None = None
    ) -> list[dict[str, Any]]:
        """Look up landed bundles with getBundleStatuses.

        Returns:
            The result.value list; bundles not found yet are absent
        """
        _, base_url = resolve_endpoint(endpoint) if endpoint else self.endpoints[0]
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "getBundleStatuses",
            "params": [bundle_ids],
        }
        session = await self._get_session()
        async with session.post(
            self.bundle_url(base_url), json=payload, timeout=aiohttp.ClientTimeout(self.timeout)
        ) as response:
            body = await response.json(content_type=None)
        if not isinstance(body, dict) or body.get("error"):
            raise BundleSubmissionError(f"getBundleStatuses failed: {body}")
        return (body.get("result") or {}).get("value") or []
