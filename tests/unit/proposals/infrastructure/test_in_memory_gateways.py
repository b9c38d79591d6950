import asyncio

import pytest

from src.core.proposals.gateways import CryptoGatewayError, LedgerReadError, request_decryption
from src.infrastructure.fhe import InMemoryCryptoGateway, InMemoryFheCoprocessor
from src.infrastructure.ledger import InMemoryLedger

SIGNER = "0x5b38Da6a701c568545dCfcB03FcB875f56beddC4"
OTHER = "0xAb8483F64d9C6d1EcF9b849Ae677dD3315835cb2"


def _gateways():
    coprocessor = InMemoryFheCoprocessor(signing_key=b"k" * 32)
    ledger = InMemoryLedger(coprocessor=coprocessor, clock=lambda: 1_760_000_000)
    return coprocessor, ledger, InMemoryCryptoGateway(coprocessor)


async def _create(ledger, crypto, proposal_id, amount, *, signer=SIGNER, encrypt_for=SIGNER):
    encrypted = await crypto.encrypt(
        amount, target_address=ledger.contract_address, actor_address=encrypt_for
    )
    transaction = await ledger.writer_for(signer).create_proposal(
        proposal_id=proposal_id,
        name="DeFi Yield",
        ciphertext=encrypted.ciphertext,
        proof=encrypted.proof,
        public_amount_primary=amount,
        public_amount_secondary=0,
        description="vault",
    )
    return encrypted, await transaction.wait(timeout_seconds=1)


def test_create_is_applied_on_confirmation_and_readable_in_order():
    _, ledger, crypto = _gateways()

    async def _scenario():
        encrypted, receipt = await _create(ledger, crypto, "p1", 100)
        await _create(ledger, crypto, "p2", 50)
        return (
            encrypted,
            receipt,
            await ledger.list_proposal_ids(),
            await ledger.get_proposal_record("p1"),
            await ledger.get_encrypted_field_handle("p1"),
        )

    encrypted, receipt, ids, data, handle = asyncio.run(_scenario())

    assert receipt.status == "CONFIRMED"
    assert ids == ["p1", "p2"]
    assert data.creator == SIGNER
    assert data.created_at == 1_760_000_000
    assert data.is_verified is False
    assert handle == encrypted.ciphertext


def test_input_proof_bound_to_another_signer_reverts():
    _, ledger, crypto = _gateways()

    _, receipt = asyncio.run(_create(ledger, crypto, "p1", 100, signer=OTHER))

    assert receipt.status == "REVERTED"
    assert asyncio.run(ledger.list_proposal_ids()) == []


def test_duplicate_proposal_id_reverts():
    _, ledger, crypto = _gateways()

    async def _scenario():
        await _create(ledger, crypto, "p1", 100)
        return await _create(ledger, crypto, "p1", 5)

    _, receipt = asyncio.run(_scenario())

    assert receipt.status == "REVERTED"


def test_public_decryption_is_verified_once_by_ledger():
    _, ledger, crypto = _gateways()
    writer = ledger.writer_for(SIGNER)
    receipts = []

    async def _submit(proof):
        transaction = await writer.submit_decryption_proof(
            proposal_id="p1",
            abi_encoded_clear_values=proof.abi_encoded_clear_values,
            proof=proof.proof,
        )
        receipt = await transaction.wait(timeout_seconds=1)
        receipts.append(receipt.status)
        return receipt

    async def _scenario():
        await _create(ledger, crypto, "p1", 4242)
        handle = await ledger.get_encrypted_field_handle("p1")
        values = await request_decryption(
            crypto, [handle], target_address=ledger.contract_address, submit_proof=_submit
        )
        again = await request_decryption(
            crypto, [handle], target_address=ledger.contract_address, submit_proof=_submit
        )
        return handle, values, again, await ledger.get_proposal_record("p1")

    handle, values, again, data = asyncio.run(_scenario())

    assert values == {handle: 4242}
    assert again == {handle: 4242}
    assert receipts == ["CONFIRMED", "REVERTED"]
    assert data.is_verified is True
    assert data.revealed_amount == 4242


def test_forged_decryption_proof_is_rejected():
    _, ledger, crypto = _gateways()

    async def _scenario():
        encrypted, _ = await _create(ledger, crypto, "p1", 7)
        transaction = await ledger.writer_for(SIGNER).submit_decryption_proof(
            proposal_id="p1",
            abi_encoded_clear_values="0x" + "00" * 31 + "08",
            proof="0x" + "ab" * 32,
        )
        return await transaction.wait(timeout_seconds=1), await ledger.get_proposal_record("p1")

    receipt, data = asyncio.run(_scenario())

    assert receipt.status == "REVERTED"
    assert data.is_verified is False


def test_coprocessor_rejects_out_of_range_plaintext_and_unknown_handles():
    coprocessor = InMemoryFheCoprocessor()

    with pytest.raises(CryptoGatewayError, match="PLAINTEXT_OUT_OF_RANGE"):
        coprocessor.encrypt(2**32, target_address="0xc", actor_address=SIGNER)
    with pytest.raises(CryptoGatewayError, match="UNKNOWN_CIPHERTEXT_HANDLE"):
        coprocessor.decrypt(["0xdeadbeef"])


def test_reading_unknown_proposal_raises_ledger_read_error():
    _, ledger, _ = _gateways()

    with pytest.raises(LedgerReadError):
        asyncio.run(ledger.get_proposal_record("missing"))


def test_crypto_gateway_initialize_marks_client_ready():
    _, _, crypto = _gateways()

    asyncio.run(crypto.initialize())

    assert crypto.initialized is True


def test_submitted_create_changes_nothing_until_awaited():
    _, ledger, crypto = _gateways()

    async def _scenario():
        encrypted = await crypto.encrypt(
            100, target_address=ledger.contract_address, actor_address=SIGNER
        )
        transaction = await ledger.writer_for(SIGNER).create_proposal(
            proposal_id="p1",
            name="DeFi Yield",
            ciphertext=encrypted.ciphertext,
            proof=encrypted.proof,
            public_amount_primary=100,
            public_amount_secondary=0,
            description="vault",
        )
        before = await ledger.list_proposal_ids()
        receipt = await transaction.wait(timeout_seconds=1)
        return before, receipt, await ledger.list_proposal_ids()

    before, receipt, after = asyncio.run(_scenario())

    assert before == []
    assert receipt.status == "CONFIRMED"
    assert after == ["p1"]
