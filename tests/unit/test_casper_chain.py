"""
Unit tests for the Casper gateway, lock decoder and release deploys.
"""

import hashlib
import json
import struct
from unittest.mock import AsyncMock

import aiohttp
import pytest

from casperbridge.bridge import (
    BridgeProof,
    ChainId,
    EventKind,
    ProofBuilder,
    RawEvent,
    Signer,
    TxStatus,
)
from casperbridge.bridge.chains.casper import (
    CasperGateway,
    CasperLockDecoder,
    CasperReleaseBuilder,
    CasperRPCError,
    CLValue,
    block_summary,
    execution_status,
)
from casperbridge.bridge.chains.casper.deploys import (
    format_timestamp,
    format_ttl,
    release_args,
    serialize_module_bytes,
    serialize_stored_contract_by_hash,
)
from casperbridge.crypto import verify_ed25519
from casperbridge.errors import (
    MalformedEventError,
    SubmissionRejectedError,
    TransientIOError,
)
from casperbridge.testing import (
    TEST_CASPER_RECIPIENT,
    TEST_EVM_RECIPIENT,
    TEST_VAULT_HASH,
    make_config,
    make_event,
)

CASPER = ChainId.CASPER
DEPLOY_HASH = "deadbeef" + "00" * 28


def _lock_payload(
    amount="5000000000",
    destination_chain="ethereum",
    recipient=TEST_EVM_RECIPIENT.lower(),
    entry_point="lock_cspr",
    vault=TEST_VAULT_HASH[len("hash-"):],
    succeeded=True,
    args=None,
):
    if args is None:
        args = [
            ["amount", {"cl_type": "U512", "bytes": "", "parsed": amount}],
            ["destination_chain", {"cl_type": "String", "bytes": "", "parsed": destination_chain}],
            ["destination_address", {"cl_type": "String", "bytes": "", "parsed": recipient}],
        ]
    outcome = {"Success": {}} if succeeded else {"Failure": {"error_message": "User error: 1"}}
    return {
        "deploy": {
            "header": {"account": TEST_CASPER_RECIPIENT},
            "session": {
                "StoredContractByHash": {
                    "hash": vault,
                    "entry_point": entry_point,
                    "args": args,
                }
            },
        },
        "execution": {"execution_results": [{"block_hash": "bb", "result": outcome}]},
    }


def _raw(payload, tx_id=DEPLOY_HASH):
    return RawEvent(chain=CASPER, tx_id=tx_id, block=12, index=1, payload=payload)


def _release_proof():
    event = make_event(source=ChainId.ETHEREUM, amount=3 * 10**18, source_tx_id="0x" + "56" * 32)
    message = ProofBuilder(ChainId.ETHEREUM, CASPER).build(event)
    attestation = Signer.from_config(make_config()).sign_for_destination(message)
    return BridgeProof(message=message, attestations=(attestation,))


class TestExecutionStatus:
    """Test execution result parsing across node versions."""

    @pytest.mark.parametrize(
        "info, status",
        [
            ({}, TxStatus.PENDING),
            ({"execution_results": []}, TxStatus.PENDING),
            ({"execution_results": [{"result": {"Success": {}}}]}, TxStatus.SUCCESS),
            (
                {"execution_results": [{"result": {"Failure": {"error_message": "x"}}}]},
                TxStatus.REJECTED,
            ),
            (
                {"execution_info": {"execution_result": {"Version2": {"error_message": None}}}},
                TxStatus.SUCCESS,
            ),
            (
                {"execution_info": {"execution_result": {"Version2": {"error_message": "User error: 7"}}}},
                TxStatus.REJECTED,
            ),
            (
                {"execution_info": {"execution_result": {"Version1": {"Success": {}}}}},
                TxStatus.SUCCESS,
            ),
            ({"execution_info": {"execution_result": None}}, TxStatus.PENDING),
        ],
    )
    def test_status(self, info, status):
        """Each layout maps to the right status."""
        assert execution_status(info).status is status

    def test_rejection_detail(self):
        """Failure messages are carried as the detail."""
        info = {"execution_info": {"execution_result": {"Version2": {"error_message": "User error: 7"}}}}
        assert execution_status(info).detail == "User error: 7"


class TestBlockSummary:
    """Test block parsing across node versions."""

    def test_legacy_block(self):
        """1.x blocks list deploy hashes in the body."""
        result = {"block": {"header": {"height": 5}, "body": {"deploy_hashes": ["a", "b"]}}}
        assert block_summary(result) == (5, ["a", "b"])

    def test_version2_block(self):
        """2.0 blocks keep deploys in transaction lanes."""
        result = {
            "block_with_signatures": {
                "block": {
                    "Version2": {
                        "header": {"height": 9},
                        "body": {
                            "transactions": {
                                "0": [{"Deploy": "d1"}],
                                "3": [{"Version1": "t1"}, {"Deploy": "d2"}],
                            }
                        },
                    }
                }
            }
        }
        assert block_summary(result) == (9, ["d1", "d2"])

    def test_missing_block(self):
        """A result without a block is an error."""
        with pytest.raises(KeyError):
            block_summary({})


class TestCasperLockDecoder:
    """Test lock_cspr decoding."""

    def test_decodes_lock(self):
        """A successful lock becomes a LOCKED event towards Ethereum."""
        decoder = CasperLockDecoder(TEST_VAULT_HASH)

        event = decoder.decode(_raw(_lock_payload()))

        assert event.kind is EventKind.LOCKED
        assert event.source_chain is CASPER
        assert event.destination_chain is ChainId.ETHEREUM
        assert event.amount == 5_000_000_000
        assert event.destination_address == TEST_EVM_RECIPIENT
        assert event.sender_address == TEST_CASPER_RECIPIENT
        assert event.position == (12, 1)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"succeeded": False},
            {"entry_point": "unlock"},
            {"vault": "cd" * 32},
        ],
    )
    def test_not_bridge_events(self, overrides):
        """Failed executions and other calls are ignored."""
        decoder = CasperLockDecoder(TEST_VAULT_HASH)
        assert decoder.decode(_raw(_lock_payload(**overrides))) is None

    def test_module_bytes_session_ignored(self):
        """Session code deploys are not bridge calls."""
        decoder = CasperLockDecoder(TEST_VAULT_HASH)
        payload = {"deploy": {"session": {"ModuleBytes": {"module_bytes": "00"}}}, "execution": {}}
        assert decoder.decode(_raw(payload)) is None

    def test_unexecuted_ignored(self):
        """Deploys without a result yet are ignored."""
        decoder = CasperLockDecoder(TEST_VAULT_HASH)
        payload = _lock_payload()
        payload["execution"] = {}
        assert decoder.decode(_raw(payload)) is None

    @pytest.mark.parametrize(
        "overrides",
        [
            {"amount": "lots"},
            {"amount": "0"},
            {"destination_chain": "solana"},
            {"recipient": "0x1234"},
            {"args": [["amount", {"parsed": "5"}]]},
            {"args": "not-a-list"},
            {"args": [["amount"]]},
        ],
    )
    def test_malformed(self, overrides):
        """Lock calls with unusable arguments are malformed."""
        decoder = CasperLockDecoder(TEST_VAULT_HASH)
        with pytest.raises(MalformedEventError):
            decoder.decode(_raw(_lock_payload(**overrides)))

    def test_bad_deploy_hash(self):
        """A deploy hash without a nonce prefix is malformed."""
        decoder = CasperLockDecoder(TEST_VAULT_HASH)
        with pytest.raises(MalformedEventError):
            decoder.decode(_raw(_lock_payload(), tx_id="xyz"))


class TestCLValue:
    """Test bytesrepr encoding of runtime arguments."""

    def test_u512(self):
        """U512 is length-prefixed little endian."""
        assert CLValue.u512(0).value_bytes == b"\x00"
        assert CLValue.u512(256).value_bytes == b"\x02\x00\x01"
        assert CLValue.u512(1).serialize() == b"\x02\x00\x00\x00" + b"\x01\x01" + b"\x08"
        assert CLValue.u512(10**18).parsed == str(10**18)

    def test_u512_range(self):
        """Values outside U512 are refused."""
        with pytest.raises(ValueError):
            CLValue.u512(2**512)
        with pytest.raises(ValueError):
            CLValue.u512(-1)

    def test_u64_and_string(self):
        """U64 is fixed width; strings are length-prefixed UTF-8."""
        assert CLValue.u64(1).value_bytes == b"\x01" + b"\x00" * 7
        assert CLValue.string("ab").value_bytes == b"\x02\x00\x00\x00ab"
        assert CLValue.string("ab").type_bytes == b"\x0a"

    def test_byte_array_list(self):
        """Lists of fixed-size byte arrays carry the size in the type."""
        value = CLValue.byte_array_list([b"\x01" * 4, b"\x02" * 4])
        assert value.type_bytes == b"\x0e\x0f\x04\x00\x00\x00"
        assert value.value_bytes == b"\x02\x00\x00\x00" + b"\x01" * 4 + b"\x02" * 4
        assert value.to_json()["cl_type"] == {"List": {"ByteArray": 4}}

    @pytest.mark.parametrize("items", [[], [b"\x01", b"\x01\x02"]])
    def test_byte_array_list_invalid(self, items):
        """Lists must be non-empty and uniform."""
        with pytest.raises(ValueError):
            CLValue.byte_array_list(items)

    def test_formatting(self):
        """Timestamps and TTLs use the node's JSON forms."""
        assert format_timestamp(0) == "1970-01-01T00:00:00.000Z"
        assert format_timestamp(1_700_000_000_123) == "2023-11-14T22:13:20.123Z"
        assert format_ttl(1_800_000) == "30m"
        assert format_ttl(1_500) == "1500ms"


class TestCasperReleaseBuilder:
    """Test release_cspr deploy construction."""

    def _builder(self):
        return CasperReleaseBuilder(make_config().chain(CASPER), clock=lambda: 1_700_000_000.0)

    def test_deploy_shape(self):
        """Deploy JSON carries the release call and its arguments."""
        builder = self._builder()
        proof = _release_proof()

        deploy = builder.make_deploy(proof)

        session = deploy["session"]["StoredContractByHash"]
        assert session["hash"] == "ab" * 32
        assert session["entry_point"] == "release_cspr"
        args = dict((name, value["parsed"]) for name, value in session["args"])
        assert args["source_chain"] == "ethereum"
        assert args["source_tx_hash"] == proof.message.source_tx_id
        assert args["amount"] == str(3 * 10**9)
        assert args["recipient"] == TEST_CASPER_RECIPIENT
        assert args["nonce"] == 0x56565656
        assert args["validator_signatures"] == [proof.attestations[0].signature.hex()]
        header = deploy["header"]
        assert header["chain_name"] == "casper-test"
        assert header["timestamp"] == "2023-11-14T22:13:20.000Z"
        assert header["ttl"] == "30m"
        assert header["account"] == builder.account_id

    def test_hashes_and_approval(self):
        """Body hash, deploy hash and approval follow the node's hashing rules."""
        builder = self._builder()
        deploy = builder.make_deploy(_release_proof())

        payment = [("amount", CLValue.u512(3_000_000_000))]
        body = serialize_module_bytes(payment) + serialize_stored_contract_by_hash(
            bytes.fromhex("ab" * 32), "release_cspr", release_args(_release_proof())
        )
        body_hash = hashlib.blake2b(body, digest_size=32).digest()
        assert deploy["header"]["body_hash"] == body_hash.hex()

        chain_name = b"casper-test"
        header = (
            b"\x01"
            + builder.key.public_key_bytes()
            + struct.pack("<QQQ", 1_700_000_000_000, 1_800_000, 1)
            + body_hash
            + struct.pack("<I", 0)
            + struct.pack("<I", len(chain_name))
            + chain_name
        )
        deploy_hash = hashlib.blake2b(header, digest_size=32).digest()
        assert deploy["hash"] == deploy_hash.hex()

        approval = deploy["approvals"][0]
        assert approval["signer"] == builder.account_id
        assert approval["signature"].startswith("01")
        assert verify_ed25519(
            builder.key.public_key_bytes(),
            deploy_hash,
            bytes.fromhex(approval["signature"][2:]),
        )

    @pytest.mark.asyncio
    async def test_build_is_json(self):
        """build() returns the deploy as UTF-8 JSON."""
        builder = self._builder()
        proof = _release_proof()
        assert json.loads(await builder.build(proof)) == builder.make_deploy(proof)

    @pytest.mark.asyncio
    async def test_transaction_id_is_deploy_hash(self):
        """The local id of a built deploy is its hash."""
        builder = self._builder()
        proof = _release_proof()
        raw = await builder.build(proof)
        assert builder.transaction_id(raw) == builder.make_deploy(proof)["hash"]

    def test_requires_ed25519_attestation(self):
        """Release proofs need an Ed25519 signature."""
        builder = self._builder()
        mint_message = ProofBuilder(CASPER, ChainId.ETHEREUM).build(make_event())
        attestation = Signer.from_config(make_config()).sign_for_destination(mint_message)
        proof = BridgeProof(message=_release_proof().message, attestations=(attestation,))
        with pytest.raises(ValueError):
            builder.make_deploy(proof)


class _FakeResponse:
    def __init__(self, status=200, body=None, error=None):
        self.status = status
        self.body = body
        self.error = error

    async def json(self, content_type=None):
        if self.error:
            raise self.error
        return self.body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False


class _FakeSession:
    closed = False

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def post(self, url, json=None):
        self.requests.append(json)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def close(self):
        self.closed = True


def _gateway(*responses):
    return CasperGateway(make_config().chain(CASPER), session=_FakeSession(*responses))


class TestCasperGatewayTransport:
    """Test the JSON-RPC transport."""

    @pytest.mark.asyncio
    async def test_request(self):
        """Requests are JSON-RPC 2.0 with increasing ids."""
        block = {"block": {"header": {"height": 77}, "body": {"deploy_hashes": []}}}
        gateway = _gateway(
            _FakeResponse(body={"result": block}), _FakeResponse(body={"result": block})
        )

        assert await gateway.get_finalized_head() == 77
        await gateway.get_finalized_head()

        requests = gateway.session.requests
        assert requests[0]["jsonrpc"] == "2.0"
        assert requests[0]["method"] == "chain_get_block"
        assert [r["id"] for r in requests] == [1, 2]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            _FakeResponse(status=503),
            _FakeResponse(error=ValueError("not json")),
            aiohttp.ClientConnectionError("refused"),
            _FakeResponse(body={"error": {"code": -32001, "message": "block not known"}}),
        ],
    )
    async def test_read_failures_are_transient(self, response):
        """Transport, HTTP and node errors on reads are transient."""
        gateway = _gateway(response)
        with pytest.raises(TransientIOError):
            await gateway.get_finalized_head()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [None, [], "ok", 7])
    async def test_non_object_body_is_transient(self, body):
        """A 200 response that is not a JSON object is a transport failure."""
        gateway = _gateway(_FakeResponse(body=body))
        with pytest.raises(TransientIOError):
            await gateway.get_finalized_head()

    @pytest.mark.asyncio
    async def test_close(self):
        """Closing closes the session."""
        gateway = _gateway()
        await gateway.close()
        assert gateway.session.closed


class TestCasperGateway:
    """Test gateway operations with a stubbed request method."""

    def _gateway(self, handler):
        gateway = CasperGateway(make_config().chain(CASPER))
        gateway._request = AsyncMock(side_effect=handler)
        return gateway

    @pytest.mark.asyncio
    async def test_scan_range(self):
        """Every deploy of every block in range is returned with its execution."""
        blocks = {11: ["d1"], 12: [], 13: ["d2", "d3"]}

        async def handler(method, params=None):
            if method == "chain_get_block":
                height = params["block_identifier"]["Height"]
                return {"block": {"header": {"height": height}, "body": {"deploy_hashes": blocks[height]}}}
            return {"deploy": {"hash": params["deploy_hash"]}, "execution_results": []}

        gateway = self._gateway(handler)
        events = await gateway.scan_range(10, 13)

        assert [(e.tx_id, e.block, e.index) for e in events] == [
            ("d1", 11, 0),
            ("d2", 13, 0),
            ("d3", 13, 1),
        ]
        assert events[0].payload["deploy"] == {"hash": "d1"}

    @pytest.mark.asyncio
    async def test_scan_unindexed_deploy_is_transient(self):
        """A block deploy the node cannot return yet fails the scan."""

        async def handler(method, params=None):
            if method == "chain_get_block":
                return {"block": {"header": {"height": 1}, "body": {"deploy_hashes": ["d1"]}}}
            raise CasperRPCError("No such deploy", code=-32000, method=method)

        gateway = self._gateway(handler)
        with pytest.raises(TransientIOError):
            await gateway.scan_range(0, 1)

    @pytest.mark.asyncio
    async def test_transaction_result(self):
        """Unknown deploys are pending; executed ones report their outcome."""
        responses = {
            "missing": CasperRPCError("No such deploy"),
            "ok": {"execution_results": [{"result": {"Success": {}}}]},
        }

        async def handler(method, params=None):
            response = responses[params["deploy_hash"]]
            if isinstance(response, Exception):
                raise response
            return response

        gateway = self._gateway(handler)
        assert (await gateway.get_transaction_result("missing")).status is TxStatus.PENDING
        assert (await gateway.get_transaction_result("ok")).status is TxStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_other_deploy_errors_are_transient(self):
        """Node errors other than not-found are transient."""

        async def handler(method, params=None):
            raise CasperRPCError("internal error")

        gateway = self._gateway(handler)
        with pytest.raises(TransientIOError):
            await gateway.get_transaction_result("d1")

    @pytest.mark.asyncio
    async def test_broadcast(self):
        """Broadcast submits the deploy JSON and returns its hash."""
        gateway = CasperGateway(make_config().chain(CASPER))
        gateway._request = handler = AsyncMock(return_value={"deploy_hash": "abc"})

        assert await gateway.broadcast(json.dumps({"hash": "abc"}).encode()) == "abc"
        method, params = handler.call_args.args
        assert method == "account_put_deploy"
        assert params == {"deploy": {"hash": "abc"}}

    @pytest.mark.asyncio
    async def test_broadcast_duplicate(self):
        """A deploy the node already has is treated as broadcast."""
        gateway = self._gateway(CasperRPCError("Duplicate deploy"))
        assert await gateway.broadcast(b'{"hash": "abc"}') == "abc"

    @pytest.mark.asyncio
    async def test_broadcast_refused(self):
        """Other node errors reject the deploy."""
        gateway = self._gateway(CasperRPCError("invalid deploy: expired"))
        with pytest.raises(SubmissionRejectedError) as exc_info:
            await gateway.broadcast(b'{"hash": "abc"}')
        assert exc_info.value.destination_tx_id == "abc"

    @pytest.mark.asyncio
    async def test_broadcast_not_json(self):
        """Envelopes that are not JSON are rejected before sending."""
        gateway = self._gateway(AssertionError("must not be called"))
        with pytest.raises(SubmissionRejectedError):
            await gateway.broadcast(b"\xff\xfe")

    @pytest.mark.asyncio
    async def test_fetch_transaction(self):
        """Executed deploys are returned with their block height."""

        async def handler(method, params=None):
            return {
                "deploy": {"hash": params["deploy_hash"]},
                "execution_info": {
                    "block_height": 55,
                    "execution_result": {"Version2": {"error_message": None}},
                },
            }

        gateway = self._gateway(handler)
        raw = await gateway.fetch_transaction(DEPLOY_HASH)

        assert raw.block == 55
        assert raw.tx_id == DEPLOY_HASH
        assert raw.payload["deploy"] == {"hash": DEPLOY_HASH}

    @pytest.mark.asyncio
    async def test_fetch_legacy_resolves_block_hash(self):
        """1.x results are placed by looking up their block hash."""

        async def handler(method, params=None):
            if method == "chain_get_block":
                assert params == {"block_identifier": {"Hash": "bb"}}
                return {"block": {"header": {"height": 21}, "body": {}}}
            return _lock_payload()["execution"]

        gateway = self._gateway(handler)
        raw = await gateway.fetch_transaction(DEPLOY_HASH)

        assert raw.block == 21

    @pytest.mark.asyncio
    async def test_fetch_unexecuted(self):
        """Deploys without a result are not available yet."""
        gateway = CasperGateway(make_config().chain(CASPER))
        gateway._request = AsyncMock(return_value={"execution_results": []})
        assert await gateway.fetch_transaction(DEPLOY_HASH) is None
