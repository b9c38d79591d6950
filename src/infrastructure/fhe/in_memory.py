import hashlib
import hmac
import secrets
import uuid
from threading import Lock
from typing import Optional, Sequence

from src.core.common.canonical import canonical_json
from src.core.proposals.gateways import (
    CryptoGatewayError,
    DecryptionSession,
    decode_clear_values,
    encode_clear_values,
)
from src.core.proposals.models import CONFIDENTIAL_AMOUNT_MAX, DecryptionProof, EncryptedInput


class InMemoryFheCoprocessor:
    """Local stand-in for the FHE co-processor and decryption oracle.

    Ciphertext handles map to plaintexts held in process. Input proofs bind a
    handle to the contract and signer it was encrypted for; decryption proofs
    bind handles to their ABI-encoded clear values. Both are HMAC-SHA256 tags
    under a per-instance key.
    """

    def __init__(self, *, signing_key: Optional[bytes] = None) -> None:
        self._lock = Lock()
        self._key = signing_key or secrets.token_bytes(32)
        self._plaintexts: dict[str, int] = {}

    def encrypt(self, value: int, *, target_address: str, actor_address: str) -> EncryptedInput:
        if not 0 <= int(value) <= CONFIDENTIAL_AMOUNT_MAX:
            raise CryptoGatewayError("PLAINTEXT_OUT_OF_RANGE")
        handle = "0x" + hashlib.sha256(uuid.uuid4().bytes).hexdigest()
        with self._lock:
            self._plaintexts[handle] = int(value)
        return EncryptedInput(
            ciphertext=handle,
            proof=self._tag(
                {
                    "kind": "input",
                    "handle": handle,
                    "target": target_address.lower(),
                    "actor": actor_address.lower(),
                }
            ),
        )

    def verify_input_proof(
        self, *, ciphertext: str, proof: str, target_address: str, actor_address: str
    ) -> bool:
        with self._lock:
            known = ciphertext in self._plaintexts
        expected = self._tag(
            {
                "kind": "input",
                "handle": ciphertext,
                "target": target_address.lower(),
                "actor": actor_address.lower(),
            }
        )
        return known and hmac.compare_digest(expected, proof)

    def decrypt(self, handles: Sequence[str]) -> DecryptionProof:
        with self._lock:
            missing = [handle for handle in handles if handle not in self._plaintexts]
            if missing:
                raise CryptoGatewayError(f"UNKNOWN_CIPHERTEXT_HANDLE: {', '.join(missing)}")
            clear_values = {handle: self._plaintexts[handle] for handle in handles}
        encoded = encode_clear_values([clear_values[handle] for handle in handles])
        return DecryptionProof(
            clear_values=clear_values,
            abi_encoded_clear_values=encoded,
            proof=self._tag({"kind": "decryption", "handles": list(handles), "values": encoded}),
        )

    def verify_decryption_proof(
        self, *, handles: Sequence[str], abi_encoded_clear_values: str, proof: str
    ) -> Optional[list[int]]:
        expected = self._tag(
            {"kind": "decryption", "handles": list(handles), "values": abi_encoded_clear_values}
        )
        if not hmac.compare_digest(expected, proof):
            return None
        values = decode_clear_values(abi_encoded_clear_values)
        return values if len(values) == len(handles) else None

    def _tag(self, payload: dict) -> str:
        digest = hmac.new(self._key, canonical_json(payload).encode("utf-8"), hashlib.sha256)
        return "0x" + digest.hexdigest()


class InMemoryCryptoGateway:
    def __init__(self, coprocessor: InMemoryFheCoprocessor) -> None:
        self._coprocessor = coprocessor
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        self._initialized = True

    async def encrypt(
        self, value: int, *, target_address: str, actor_address: str
    ) -> EncryptedInput:
        return self._coprocessor.encrypt(
            value, target_address=target_address, actor_address=actor_address
        )

    async def begin_decryption(
        self, handles: Sequence[str], *, target_address: str
    ) -> DecryptionSession:
        requested = list(handles)

        async def _fetch_proof() -> DecryptionProof:
            return self._coprocessor.decrypt(requested)

        return DecryptionSession(requested, _fetch_proof)
