import asyncio
import json
import time

import pytest
from solders.hash import Hash
from solders.keypair import Keypair

from bundling.assembler import assemble_and_sign
from bundling.jito import (
    BLOCK_ENGINES,
    BundleSubmitter,
    build_send_bundle_request,
    resolve_endpoint,
)
from core.errors import BundleSubmissionError, ConfigError
from core.instructions import transfer_sol


def _signed_transaction():
    payer = Keypair()
    return assemble_and_sign(
        [transfer_sol(payer.pubkey(), Keypair().pubkey(), 1_000)],
        [payer],
        payer.pubkey(),
        Hash.default(),
    )


class FakeResponse:
    def __init__(self, text: str, status: int = 200):
        self._text = text
        self.status = status

    async def text(self):
        return self._text

    async def json(self, content_type=None):
        return json.loads(self._text)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    def __init__(self, text: str, status: int = 200):
        self.response = FakeResponse(text, status)
        self.requests = []

    def post(self, url, json=None, timeout=None):
        self.requests.append((url, json))
        return self.response

    async def close(self):
        pass


def test_resolve_named_and_url_endpoints():
    assert resolve_endpoint("ny") == ("ny", BLOCK_ENGINES["ny"])
    assert resolve_endpoint("https://custom.example.org/") == (
        "custom",
        "https://custom.example.org",
    )
    with pytest.raises(ConfigError):
        resolve_endpoint("mars")


def test_bundle_url_appends_uuid():
    submitter = BundleSubmitter(["ny"], uuid="abc-123")
    assert submitter.bundle_url(BLOCK_ENGINES["ny"]) == (
        "https://ny.mainnet.block-engine.jito.wtf/api/v1/bundles?uuid=abc-123"
    )
    assert BundleSubmitter(["ny"]).bundle_url(BLOCK_ENGINES["ny"]).endswith("/api/v1/bundles")


def test_send_bundle_payload_is_base64():
    payload = build_send_bundle_request([_signed_transaction()])
    assert payload["method"] == "sendBundle"
    assert payload["params"][1] == {"encoding": "base64"}
    assert len(payload["params"][0]) == 1


def test_bundle_size_limits():
    submitter = BundleSubmitter(["ny"])
    with pytest.raises(ValueError):
        asyncio.run(submitter.submit_bundle([]))
    with pytest.raises(ValueError):
        asyncio.run(submitter.submit_bundle([_signed_transaction() for _ in range(6)]))


def test_broadcast_returns_once_slow_endpoints_time_out(monkeypatch):
    async def fake_post(self, url, payload):
        if "frankfurt" in url or "amsterdam" in url:
            return "bundle-id"
        await asyncio.sleep(30)

    monkeypatch.setattr(BundleSubmitter, "_post_bundle", fake_post)
    submitter = BundleSubmitter(
        ["frankfurt", "amsterdam", "london", "ny", "tokyo"], mode="broadcast", timeout=0.2
    )

    started = time.monotonic()
    result = asyncio.run(submitter.submit_bundle([_signed_transaction()]))
    elapsed = time.monotonic() - started

    assert elapsed < 2
    assert sorted(r.endpoint for r in result.accepted) == ["amsterdam", "frankfurt"]
    assert len(result.rejected) == 3
    assert all("timed out" in r.error for r in result.rejected)
    assert result.bundle_id == "bundle-id"


def test_single_mode_posts_to_first_endpoint_only(monkeypatch):
    calls = []

    async def fake_post(self, url, payload):
        calls.append(url)
        return "only-one"

    monkeypatch.setattr(BundleSubmitter, "_post_bundle", fake_post)
    submitter = BundleSubmitter(["tokyo", "ny"], mode="single", uuid="u")
    result = asyncio.run(submitter.submit_bundle([_signed_transaction()]))

    assert calls == [BLOCK_ENGINES["tokyo"] + "/api/v1/bundles?uuid=u"]
    assert result.success


def test_all_rejected_raises_with_results(monkeypatch):
    async def fake_post(self, url, payload):
        raise BundleSubmissionError("Relay error (HTTP 400): bundle contains an expired blockhash")

    monkeypatch.setattr(BundleSubmitter, "_post_bundle", fake_post)
    submitter = BundleSubmitter(["ny", "slc"])

    with pytest.raises(BundleSubmissionError) as excinfo:
        asyncio.run(submitter.submit_bundle([_signed_transaction()]))

    assert len(excinfo.value.result.rejected) == 2
    assert "expired blockhash" in excinfo.value.result.rejected[0].error


@pytest.mark.parametrize(
    "body, message",
    [
        ("", "Empty response"),
        ("not json", "Malformed"),
        ('{"jsonrpc": "2.0", "error": {"message": "rate limited"}}', "rate limited"),
        ('{"jsonrpc": "2.0", "result": null}', "No bundle id"),
    ],
)
def test_post_bundle_rejects_bad_responses(body, message):
    submitter = BundleSubmitter(["ny"], mode="single", session=FakeSession(body))
    with pytest.raises(BundleSubmissionError, match=message):
        asyncio.run(submitter._post_bundle("https://ny.example/api/v1/bundles", {}))


def test_post_bundle_returns_bundle_id():
    session = FakeSession('{"jsonrpc": "2.0", "result": "abcdef"}')
    submitter = BundleSubmitter(["ny"], session=session)
    bundle_id = asyncio.run(submitter._post_bundle("https://ny.example/api/v1/bundles", {"x": 1}))

    assert bundle_id == "abcdef"
    assert session.requests == [("https://ny.example/api/v1/bundles", {"x": 1})]


def test_bundle_statuses_lookup():
    body = {
        "jsonrpc": "2.0",
        "result": {"context": {"slot": 1}, "value": [{"bundle_id": "abc", "slot": 1}]},
    }
    session = FakeSession(json.dumps(body))
    submitter = BundleSubmitter(["ny"], session=session)

    statuses = asyncio.run(submitter.get_bundle_statuses(["abc"]))

    assert statuses == [{"bundle_id": "abc", "slot": 1}]
    url, payload = session.requests[0]
    assert url.endswith("/api/v1/bundles")
    assert payload["method"] == "getBundleStatuses"
    assert payload["params"] == [["abc"]]
