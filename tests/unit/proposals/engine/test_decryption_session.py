import asyncio

import pytest

from src.core.proposals.gateways import (
    DecryptionProtocolError,
    DecryptionSession,
    decode_clear_values,
    encode_clear_values,
    request_decryption,
)
from src.core.proposals.ids import new_notification_id, new_operation_id, new_proposal_id
from src.core.proposals.models import DecryptionProof, TransactionReceipt
from tests.factories import FakeCrypto


def _proof(values):
    return DecryptionProof(
        clear_values=values,
        abi_encoded_clear_values=encode_clear_values(list(values.values())),
        proof="0xproof",
    )


def test_session_requires_at_least_one_handle():
    async def _fetch():
        return _proof({})

    with pytest.raises(DecryptionProtocolError, match="DECRYPTION_HANDLES_REQUIRED"):
        DecryptionSession([], _fetch)


def test_proof_ready_fetches_once_and_complete_submits_exactly_once():
    fetches = []
    submitted = []

    async def _fetch():
        fetches.append(1)
        return _proof({"0xh1": 100})

    async def _submit(proof):
        submitted.append(proof.abi_encoded_clear_values)
        return TransactionReceipt(tx_hash="0xtx", status="CONFIRMED")

    async def _scenario():
        session = DecryptionSession(["0xh1"], _fetch)
        await session.proof_ready()
        values = await session.complete_on_ledger(_submit)
        with pytest.raises(DecryptionProtocolError, match="ALREADY_SUBMITTED"):
            await session.complete_on_ledger(_submit)
        return session, values

    session, values = asyncio.run(_scenario())

    assert values == {"0xh1": 100}
    assert session.submitted is True
    assert len(fetches) == 1
    assert submitted == [encode_clear_values([100])]


def test_incomplete_decryption_result_is_rejected():
    async def _fetch():
        return _proof({"0xh1": 1})

    async def _scenario():
        await DecryptionSession(["0xh1", "0xh2"], _fetch).proof_ready()

    with pytest.raises(DecryptionProtocolError, match="0xh2"):
        asyncio.run(_scenario())


def test_request_decryption_runs_both_phases_through_gateway():
    crypto = FakeCrypto({"0xh1": 42})
    receipts = []

    async def _submit(proof):
        receipts.append(proof.proof)
        return TransactionReceipt(tx_hash="0xtx", status="CONFIRMED")

    values = asyncio.run(
        request_decryption(crypto, ["0xh1"], target_address="0xc", submit_proof=_submit)
    )

    assert values == {"0xh1": 42}
    assert receipts == ["0xdecryption-proof"]


def test_clear_values_encoding_uses_32_byte_words():
    encoded = encode_clear_values([100, 2**32 - 1])

    assert len(encoded) == 2 + 128
    assert decode_clear_values(encoded) == [100, 2**32 - 1]
    with pytest.raises(ValueError, match="MALFORMED"):
        decode_clear_values("0x0102")


def test_identifier_formats():
    assert new_proposal_id(now_ms=1_760_000_000_000).startswith("proposal-1760000000000-")
    assert new_proposal_id() != new_proposal_id()
    assert new_operation_id().startswith("pop_")
    assert new_notification_id().startswith("ntf_")
