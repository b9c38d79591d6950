import asyncio
import json

import httpx
import pytest

from src.core.proposals import ConfidentialProposalService
from src.core.proposals.gateways import CryptoGatewayError, GatewayTimeoutError
from src.core.proposals.models import TransactionReceipt
from src.infrastructure.fhe import RelayerCryptoGateway
from tests.factories import FakeLedger

CONTRACT = "0x000000000000000000000000000000000000c0de"
USER = "0x5b38Da6a701c568545dCfcB03FcB875f56beddC4"


def _gateway(handler):
    client = httpx.AsyncClient(
        base_url="https://relayer.test", transport=httpx.MockTransport(handler)
    )
    return RelayerCryptoGateway(base_url="https://relayer.test", client=client)


def test_initialize_and_encrypt_call_relayer_endpoints():
    requests = []

    def _handler(request: httpx.Request) -> httpx.Response:
        requests.append((request.method, request.url.path))
        if request.url.path == "/v1/keyurl":
            return httpx.Response(200, json={"response": {"fhePublicKey": {"urls": ["k"]}}})
        body = json.loads(request.content)
        assert body == {
            "contractAddress": CONTRACT,
            "userAddress": USER,
            "values": [{"type": "euint32", "value": 100}],
        }
        return httpx.Response(200, json={"handles": ["0xh1"], "inputProof": "0xproof"})

    gateway = _gateway(_handler)

    async def _scenario():
        await gateway.initialize()
        return await gateway.encrypt(100, target_address=CONTRACT, actor_address=USER)

    encrypted = asyncio.run(_scenario())

    assert encrypted.ciphertext == "0xh1"
    assert encrypted.proof == "0xproof"
    assert requests == [("GET", "/v1/keyurl"), ("POST", "/v1/input-proof")]


def test_public_decrypt_returns_values_and_proof_for_ledger_submission():
    def _handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/public-decrypt"
        assert json.loads(request.content)["ciphertextHandles"] == ["0xh1"]
        return httpx.Response(
            200,
            json={
                "clearValues": {"0xh1": "100"},
                "abiEncodedClearValues": "0x" + "00" * 31 + "64",
                "decryptionProof": "0xsig",
            },
        )

    gateway = _gateway(_handler)
    submitted = []

    async def _submit(proof):
        submitted.append(proof.proof)
        return TransactionReceipt(tx_hash="0xtx", status="CONFIRMED")

    async def _scenario():
        session = await gateway.begin_decryption(["0xh1"], target_address=CONTRACT)
        return await session.complete_on_ledger(_submit)

    assert asyncio.run(_scenario()) == {"0xh1": 100}
    assert submitted == ["0xsig"]


def test_http_error_maps_to_crypto_gateway_error():
    gateway = _gateway(lambda request: httpx.Response(503, json={"message": "busy"}))

    with pytest.raises(CryptoGatewayError, match="RELAYER_HTTP_503"):
        asyncio.run(gateway.encrypt(1, target_address=CONTRACT, actor_address=USER))


def test_timeout_maps_to_gateway_timeout():
    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow relayer", request=request)

    with pytest.raises(GatewayTimeoutError):
        asyncio.run(_gateway(_handler).initialize())


def test_malformed_payloads_are_rejected():
    gateway = _gateway(lambda request: httpx.Response(200, json={"unexpected": True}))

    with pytest.raises(CryptoGatewayError, match="RELAYER_INPUT_PROOF_MALFORMED"):
        asyncio.run(gateway.encrypt(1, target_address=CONTRACT, actor_address=USER))
    with pytest.raises(CryptoGatewayError, match="RELAYER_KEY_MATERIAL_UNAVAILABLE"):
        asyncio.run(gateway.initialize())


def test_service_close_releases_relayer_client():
    client = httpx.AsyncClient(
        base_url="https://relayer.test",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={})),
    )
    gateway = RelayerCryptoGateway(base_url="https://relayer.test", client=client)
    service = ConfidentialProposalService(ledger=FakeLedger(), crypto=gateway)

    asyncio.run(service.aclose())

    assert client.is_closed
