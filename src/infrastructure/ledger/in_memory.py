import time
import uuid
from copy import deepcopy
from threading import Lock
from typing import Callable, Optional

from pydantic import BaseModel

from src.core.proposals.gateways import (
    LedgerReadError,
    LedgerTransactionRejectedError,
)
from src.core.proposals.models import LedgerProposalData, TransactionReceipt
from src.infrastructure.fhe.in_memory import InMemoryFheCoprocessor

DEFAULT_CONTRACT_ADDRESS = "0x000000000000000000000000000000000000c0de"


class _LedgerEntry(BaseModel):
    data: LedgerProposalData
    handle: str


class InMemoryPendingTransaction:
    def __init__(self, tx_hash: str, apply: Callable[[], None], block_number: int) -> None:
        self.tx_hash = tx_hash
        self._apply = apply
        self._block_number = block_number
        self._receipt: Optional[TransactionReceipt] = None

    async def wait(self, *, timeout_seconds: float) -> TransactionReceipt:
        if self._receipt is None:
            try:
                self._apply()
                status = "CONFIRMED"
            except LedgerTransactionRejectedError:
                status = "REVERTED"
            self._receipt = TransactionReceipt(
                tx_hash=self.tx_hash, status=status, block_number=self._block_number
            )
        return self._receipt


class InMemoryLedger:
    """Process-local proposal contract.

    Submitting a write only allocates a transaction; validation and the state
    change both happen when the transaction is awaited, mirroring a mined
    transaction. Reverts surface as ``REVERTED`` receipts.
    """

    def __init__(
        self,
        *,
        coprocessor: InMemoryFheCoprocessor,
        contract_address: str = DEFAULT_CONTRACT_ADDRESS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._lock = Lock()
        self._coprocessor = coprocessor
        self._contract_address = contract_address
        self._clock = clock
        self._entries: dict[str, _LedgerEntry] = {}
        self._block_number = 0

    @property
    def contract_address(self) -> str:
        return self._contract_address

    async def is_available(self) -> bool:
        return True

    async def list_proposal_ids(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    async def get_proposal_record(self, proposal_id: str) -> LedgerProposalData:
        return self._entry(proposal_id).data

    async def get_encrypted_field_handle(self, proposal_id: str) -> str:
        return self._entry(proposal_id).handle

    def writer_for(self, signer_address: str) -> "InMemoryLedgerWriter":
        return InMemoryLedgerWriter(self, signer_address)

    def _entry(self, proposal_id: str) -> _LedgerEntry:
        with self._lock:
            entry = self._entries.get(proposal_id)
            if entry is None:
                raise LedgerReadError(f"PROPOSAL_NOT_ON_LEDGER: {proposal_id}")
            return deepcopy(entry)

    def _next_transaction(self, apply: Callable[[], None]) -> InMemoryPendingTransaction:
        with self._lock:
            self._block_number += 1
            block_number = self._block_number
        return InMemoryPendingTransaction(f"0x{uuid.uuid4().hex}", apply, block_number)

    def _create(
        self,
        *,
        signer_address: str,
        proposal_id: str,
        name: str,
        ciphertext: str,
        proof: str,
        public_amount_primary: int,
        public_amount_secondary: int,
        description: str,
    ) -> None:
        if not self._coprocessor.verify_input_proof(
            ciphertext=ciphertext,
            proof=proof,
            target_address=self._contract_address,
            actor_address=signer_address,
        ):
            raise LedgerTransactionRejectedError("INVALID_INPUT_PROOF")
        with self._lock:
            if proposal_id in self._entries:
                raise LedgerTransactionRejectedError("PROPOSAL_ALREADY_EXISTS")
            self._entries[proposal_id] = _LedgerEntry(
                data=LedgerProposalData(
                    name=name,
                    description=description,
                    creator=signer_address,
                    created_at=int(self._clock()),
                    public_amount_primary=public_amount_primary,
                    public_amount_secondary=public_amount_secondary,
                ),
                handle=ciphertext,
            )

    def _verify_decryption(
        self, *, proposal_id: str, abi_encoded_clear_values: str, proof: str
    ) -> None:
        with self._lock:
            entry = self._entries.get(proposal_id)
            if entry is None:
                raise LedgerTransactionRejectedError("PROPOSAL_NOT_ON_LEDGER")
            if entry.data.is_verified:
                raise LedgerTransactionRejectedError("PROPOSAL_ALREADY_VERIFIED")
            values = self._coprocessor.verify_decryption_proof(
                handles=[entry.handle],
                abi_encoded_clear_values=abi_encoded_clear_values,
                proof=proof,
            )
            if values is None:
                raise LedgerTransactionRejectedError("INVALID_DECRYPTION_PROOF")
            entry.data.is_verified = True
            entry.data.revealed_amount = values[0]


class InMemoryLedgerWriter:
    def __init__(self, ledger: InMemoryLedger, signer_address: str) -> None:
        self._ledger = ledger
        self._signer_address = signer_address

    @property
    def signer_address(self) -> str:
        return self._signer_address

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
    ) -> InMemoryPendingTransaction:
        return self._ledger._next_transaction(
            lambda: self._ledger._create(
                signer_address=self._signer_address,
                proposal_id=proposal_id,
                name=name,
                ciphertext=ciphertext,
                proof=proof,
                public_amount_primary=public_amount_primary,
                public_amount_secondary=public_amount_secondary,
                description=description,
            )
        )

    async def submit_decryption_proof(
        self,
        *,
        proposal_id: str,
        abi_encoded_clear_values: str,
        proof: str,
    ) -> InMemoryPendingTransaction:
        return self._ledger._next_transaction(
            lambda: self._ledger._verify_decryption(
                proposal_id=proposal_id,
                abi_encoded_clear_values=abi_encoded_clear_values,
                proof=proof,
            )
        )
