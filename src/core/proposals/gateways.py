from typing import Awaitable, Callable, Optional, Protocol, Sequence

from src.core.proposals.models import (
    DecryptionProof,
    EncryptedInput,
    LedgerProposalData,
    TransactionReceipt,
)

SubmitProof = Callable[[DecryptionProof], Awaitable[TransactionReceipt]]
FetchProof = Callable[[], Awaitable[DecryptionProof]]


class GatewayError(Exception):
    pass


class CryptoGatewayError(GatewayError):
    pass


class DecryptionProtocolError(CryptoGatewayError):
    pass


class LedgerReadError(GatewayError):
    pass


class LedgerTransactionRejectedError(GatewayError):
    pass


class SignatureRejectedError(GatewayError):
    pass


class GatewayTimeoutError(GatewayError):
    pass


class PendingTransaction(Protocol):
    tx_hash: str

    async def wait(self, *, timeout_seconds: float) -> TransactionReceipt: ...


class LedgerReader(Protocol):
    @property
    def contract_address(self) -> str: ...

    async def is_available(self) -> bool: ...

    async def list_proposal_ids(self) -> list[str]: ...

    async def get_proposal_record(self, proposal_id: str) -> LedgerProposalData: ...

    async def get_encrypted_field_handle(self, proposal_id: str) -> str: ...


class LedgerWriter(Protocol):
    @property
    def signer_address(self) -> str: ...

    async def create_proposal(
        self,
        *,
        proposal_id: str,
        name: str,
        ciphertext: str,
        proof: str,
        public_amount_primary: int,
        public_amount_secondary: int,
        description: str,
    ) -> PendingTransaction: ...

    async def submit_decryption_proof(
        self,
        *,
        proposal_id: str,
        abi_encoded_clear_values: str,
        proof: str,
    ) -> PendingTransaction: ...


class LedgerGateway(LedgerReader, Protocol):
    def writer_for(self, signer_address: str) -> LedgerWriter: ...


class DecryptionSession:
    """Two-phase public decryption of ledger handles.

    ``proof_ready`` obtains the clear values and their proof from the
    co-processor; ``complete_on_ledger`` hands that proof to the caller's
    ledger submission exactly once.
    """

    def __init__(self, handles: Sequence[str], fetch_proof: FetchProof) -> None:
        if not handles:
            raise DecryptionProtocolError("DECRYPTION_HANDLES_REQUIRED")
        self.handles = list(handles)
        self._fetch_proof = fetch_proof
        self._proof: Optional[DecryptionProof] = None
        self._submitted = False

    @property
    def submitted(self) -> bool:
        return self._submitted

    async def proof_ready(self) -> DecryptionProof:
        if self._proof is None:
            proof = await self._fetch_proof()
            missing = [handle for handle in self.handles if handle not in proof.clear_values]
            if missing:
                raise DecryptionProtocolError(
                    f"DECRYPTION_RESULT_INCOMPLETE: missing {', '.join(missing)}"
                )
            self._proof = proof
        return self._proof

    async def complete_on_ledger(self, submit: SubmitProof) -> dict[str, int]:
        if self._submitted:
            raise DecryptionProtocolError("DECRYPTION_PROOF_ALREADY_SUBMITTED")
        proof = await self.proof_ready()
        self._submitted = True
        await submit(proof)
        return {handle: proof.clear_values[handle] for handle in self.handles}


class CryptoGateway(Protocol):
    async def initialize(self) -> None: ...

    async def encrypt(
        self, value: int, *, target_address: str, actor_address: str
    ) -> EncryptedInput: ...

    async def begin_decryption(
        self, handles: Sequence[str], *, target_address: str
    ) -> DecryptionSession: ...


async def request_decryption(
    gateway: CryptoGateway,
    handles: Sequence[str],
    *,
    target_address: str,
    submit_proof: SubmitProof,
) -> dict[str, int]:
    session = await gateway.begin_decryption(handles, target_address=target_address)
    return await session.complete_on_ledger(submit_proof)


def encode_clear_values(values: Sequence[int]) -> str:
    return "0x" + "".join(int(value).to_bytes(32, "big").hex() for value in values)


def decode_clear_values(payload: str) -> list[int]:
    raw = bytes.fromhex(payload[2:] if payload.startswith("0x") else payload)
    if len(raw) % 32:
        raise ValueError("ABI_ENCODED_CLEAR_VALUES_MALFORMED")
    return [int.from_bytes(raw[i : i + 32], "big") for i in range(0, len(raw), 32)]
