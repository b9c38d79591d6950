import asyncio
import logging
from typing import Any, Optional

from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from src.core.proposals.gateways import (
    GatewayError,
    GatewayTimeoutError,
    LedgerReadError,
    LedgerTransactionRejectedError,
    SignatureRejectedError,
)
from src.core.proposals.models import LedgerProposalData, TransactionReceipt

logger = logging.getLogger(__name__)

_STRING = {"internalType": "string", "name": "businessId", "type": "string"}

PROPOSAL_CONTRACT_ABI: list[dict[str, Any]] = [
    {
        "inputs": [],
        "name": "isAvailable",
        "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "getAllBusinessIds",
        "outputs": [{"internalType": "string[]", "name": "", "type": "string[]"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [_STRING],
        "name": "getBusinessData",
        "outputs": [
            {"internalType": "string", "name": "name", "type": "string"},
            {"internalType": "uint256", "name": "publicValue1", "type": "uint256"},
            {"internalType": "uint256", "name": "publicValue2", "type": "uint256"},
            {"internalType": "string", "name": "description", "type": "string"},
            {"internalType": "address", "name": "creator", "type": "address"},
            {"internalType": "uint256", "name": "timestamp", "type": "uint256"},
            {"internalType": "bool", "name": "isVerified", "type": "bool"},
            {"internalType": "uint32", "name": "decryptedValue", "type": "uint32"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [_STRING],
        "name": "getEncryptedValue",
        "outputs": [{"internalType": "euint32", "name": "", "type": "bytes32"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            _STRING,
            {"internalType": "string", "name": "name", "type": "string"},
            {"internalType": "externalEuint32", "name": "encryptedValue", "type": "bytes32"},
            {"internalType": "bytes", "name": "inputProof", "type": "bytes"},
            {"internalType": "uint256", "name": "publicValue1", "type": "uint256"},
            {"internalType": "uint256", "name": "publicValue2", "type": "uint256"},
            {"internalType": "string", "name": "description", "type": "string"},
        ],
        "name": "createBusinessData",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [
            _STRING,
            {"internalType": "bytes", "name": "abiEncodedClearValues", "type": "bytes"},
            {"internalType": "bytes", "name": "decryptionProof", "type": "bytes"},
        ],
        "name": "verifyDecryption",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]

_BUSINESS_DATA_FIELDS = [output["name"] for output in PROPOSAL_CONTRACT_ABI[2]["outputs"]]
_USER_REJECTION_MARKERS = ("user rejected", "user denied", "'code': 4001")


def is_user_rejection(exc: BaseException) -> bool:
    text = str(exc).lower()
    return any(marker in text for marker in _USER_REJECTION_MARKERS)


def _to_bytes(value: str) -> bytes:
    return bytes.fromhex(value[2:] if value.startswith("0x") else value)


def decode_business_data(raw: Any) -> LedgerProposalData:
    if isinstance(raw, dict):
        fields = raw
    else:
        values = list(raw)
        if len(values) != len(_BUSINESS_DATA_FIELDS):
            raise ValueError("BUSINESS_DATA_SHAPE_MISMATCH")
        fields = dict(zip(_BUSINESS_DATA_FIELDS, values))
    try:
        return LedgerProposalData(
            name=fields["name"],
            description=fields["description"],
            creator=fields["creator"],
            created_at=int(fields["timestamp"]),
            public_amount_primary=int(fields["publicValue1"]),
            public_amount_secondary=int(fields["publicValue2"]),
            is_verified=bool(fields["isVerified"]),
            revealed_amount=int(fields["decryptedValue"]),
        )
    except (KeyError, TypeError) as exc:
        raise ValueError("BUSINESS_DATA_SHAPE_MISMATCH") from exc


class Web3PendingTransaction:
    def __init__(self, w3: AsyncWeb3, tx_hash: bytes) -> None:
        self._w3 = w3
        self._raw_hash = tx_hash
        self.tx_hash = AsyncWeb3.to_hex(tx_hash)

    async def wait(self, *, timeout_seconds: float) -> TransactionReceipt:
        try:
            receipt = await self._w3.eth.wait_for_transaction_receipt(
                self._raw_hash, timeout=timeout_seconds
            )
        except TimeExhausted as exc:
            raise GatewayTimeoutError(f"TRANSACTION_NOT_MINED: {self.tx_hash}") from exc
        except (Web3Exception, ValueError, OSError) as exc:
            raise GatewayError(f"TRANSACTION_RECEIPT_UNAVAILABLE: {self.tx_hash}") from exc
        return TransactionReceipt(
            tx_hash=self.tx_hash,
            status="CONFIRMED" if receipt["status"] == 1 else "REVERTED",
            block_number=receipt.get("blockNumber"),
        )


class Web3ContractLedger:
    """Ledger gateway over the confidential proposal contract on an EVM node.

    Reads go through ``eth_call``; writes are sent with ``eth_sendTransaction``
    from the connected account, so the node (or the wallet behind it) owns the
    signing key.
    """

    def __init__(
        self,
        *,
        rpc_url: str,
        contract_address: str,
        w3: Optional[AsyncWeb3] = None,
    ) -> None:
        self._w3 = w3 or AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self._contract_address = AsyncWeb3.to_checksum_address(contract_address)
        self._contract = self._w3.eth.contract(
            address=self._contract_address, abi=PROPOSAL_CONTRACT_ABI
        )

    @property
    def contract_address(self) -> str:
        return self._contract_address

    async def is_available(self) -> bool:
        return bool(await self._call("isAvailable"))

    async def list_proposal_ids(self) -> list[str]:
        return [str(proposal_id) for proposal_id in await self._call("getAllBusinessIds")]

    async def get_proposal_record(self, proposal_id: str) -> LedgerProposalData:
        return decode_business_data(await self._call("getBusinessData", proposal_id))

    async def get_encrypted_field_handle(self, proposal_id: str) -> str:
        return AsyncWeb3.to_hex(await self._call("getEncryptedValue", proposal_id))

    def writer_for(self, signer_address: str) -> "Web3ContractWriter":
        return Web3ContractWriter(self, AsyncWeb3.to_checksum_address(signer_address))

    async def _call(self, function_name: str, *args: Any) -> Any:
        try:
            return await getattr(self._contract.functions, function_name)(*args).call()
        except asyncio.TimeoutError as exc:
            raise GatewayTimeoutError(f"LEDGER_CALL_TIMEOUT: {function_name}") from exc
        except (Web3Exception, ValueError, OSError) as exc:
            logger.warning(
                "ledger.call_failed",
                extra={"extra_fields": {"function": function_name, "error": str(exc)}},
            )
            raise LedgerReadError(f"LEDGER_CALL_FAILED: {function_name}") from exc

    async def _transact(
        self, signer_address: str, function_name: str, *args: Any
    ) -> Web3PendingTransaction:
        function = getattr(self._contract.functions, function_name)(*args)
        try:
            tx_hash = await function.transact({"from": signer_address})
        except ContractLogicError as exc:
            raise LedgerTransactionRejectedError(f"CONTRACT_REVERTED: {function_name}") from exc
        except asyncio.TimeoutError as exc:
            raise GatewayTimeoutError(f"LEDGER_SUBMIT_TIMEOUT: {function_name}") from exc
        except (Web3Exception, ValueError, OSError) as exc:
            if is_user_rejection(exc):
                raise SignatureRejectedError(f"SIGNATURE_REJECTED: {function_name}") from exc
            raise LedgerTransactionRejectedError(
                f"TRANSACTION_SUBMIT_FAILED: {function_name}"
            ) from exc
        return Web3PendingTransaction(self._w3, tx_hash)


class Web3ContractWriter:
    def __init__(self, ledger: Web3ContractLedger, signer_address: str) -> None:
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
    ) -> Web3PendingTransaction:
        return await self._ledger._transact(
            self._signer_address,
            "createBusinessData",
            proposal_id,
            name,
            _to_bytes(ciphertext),
            _to_bytes(proof),
            public_amount_primary,
            public_amount_secondary,
            description,
        )

    async def submit_decryption_proof(
        self,
        *,
        proposal_id: str,
        abi_encoded_clear_values: str,
        proof: str,
    ) -> Web3PendingTransaction:
        return await self._ledger._transact(
            self._signer_address,
            "verifyDecryption",
            proposal_id,
            _to_bytes(abi_encoded_clear_values),
            _to_bytes(proof),
        )
