import os
import warnings
from typing import cast

from src.core.proposals.gateways import CryptoGateway, LedgerGateway
from src.core.proposals.notifications import DEFAULT_NOTIFICATION_TTL_SECONDS
from src.core.proposals.service import (
    DEFAULT_CONFIRMATION_TIMEOUT_SECONDS,
    DEFAULT_GATEWAY_TIMEOUT_SECONDS,
    ConfidentialProposalService,
)
from src.infrastructure.fhe import (
    InMemoryCryptoGateway,
    InMemoryFheCoprocessor,
    RelayerCryptoGateway,
)
from src.infrastructure.ledger import InMemoryLedger, Web3ContractLedger


def env_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def ledger_gateway_backend_name() -> str:
    backend = os.getenv("LEDGER_GATEWAY_BACKEND", "IN_MEMORY").strip().upper()
    if backend == "WEB3":
        return "WEB3"
    warnings.warn(
        "LEDGER_GATEWAY_BACKEND IN_MEMORY keeps proposals in process; use WEB3 for a real ledger.",
        RuntimeWarning,
        stacklevel=2,
    )
    return "IN_MEMORY"


def crypto_gateway_backend_name() -> str:
    backend = os.getenv("CRYPTO_GATEWAY_BACKEND", "IN_MEMORY").strip().upper()
    if backend == "RELAYER":
        return "RELAYER"
    warnings.warn(
        "CRYPTO_GATEWAY_BACKEND IN_MEMORY simulates FHE locally; use RELAYER for real ciphertexts.",
        RuntimeWarning,
        stacklevel=2,
    )
    return "IN_MEMORY"


def ledger_rpc_url() -> str:
    return os.getenv("LEDGER_RPC_URL", "").strip()


def ledger_contract_address() -> str:
    return os.getenv("LEDGER_CONTRACT_ADDRESS", "").strip()


def crypto_relayer_url() -> str:
    return os.getenv("CRYPTO_RELAYER_URL", "").strip()


def confirmation_timeout_seconds() -> float:
    return env_positive_float(
        "LEDGER_CONFIRMATION_TIMEOUT_SECONDS", DEFAULT_CONFIRMATION_TIMEOUT_SECONDS
    )


def gateway_timeout_seconds() -> float:
    return env_positive_float("GATEWAY_TIMEOUT_SECONDS", DEFAULT_GATEWAY_TIMEOUT_SECONDS)


def notification_ttl_seconds() -> float:
    return env_positive_float("PROPOSAL_NOTIFICATION_TTL_SECONDS", DEFAULT_NOTIFICATION_TTL_SECONDS)


def _web3_connection_exception_types() -> tuple[type[BaseException], ...]:
    return (ConnectionError, OSError, TimeoutError, TypeError, ValueError)


def build_ledger_gateway(coprocessor: InMemoryFheCoprocessor) -> LedgerGateway:
    if ledger_gateway_backend_name() == "WEB3":
        rpc_url = ledger_rpc_url()
        if not rpc_url:
            raise RuntimeError("LEDGER_RPC_URL_REQUIRED")
        contract_address = ledger_contract_address()
        if not contract_address:
            raise RuntimeError("LEDGER_CONTRACT_ADDRESS_REQUIRED")
        try:
            return cast(
                LedgerGateway,
                Web3ContractLedger(rpc_url=rpc_url, contract_address=contract_address),
            )
        except _web3_connection_exception_types() as exc:
            raise RuntimeError("LEDGER_WEB3_CONFIGURATION_INVALID") from exc
    return cast(LedgerGateway, InMemoryLedger(coprocessor=coprocessor))


def build_crypto_gateway(coprocessor: InMemoryFheCoprocessor) -> CryptoGateway:
    if crypto_gateway_backend_name() == "RELAYER":
        relayer_url = crypto_relayer_url()
        if not relayer_url:
            raise RuntimeError("CRYPTO_RELAYER_URL_REQUIRED")
        return cast(
            CryptoGateway,
            RelayerCryptoGateway(base_url=relayer_url, timeout_seconds=gateway_timeout_seconds()),
        )
    return cast(CryptoGateway, InMemoryCryptoGateway(coprocessor))


def build_service() -> ConfidentialProposalService:
    coprocessor = InMemoryFheCoprocessor()
    return ConfidentialProposalService(
        ledger=build_ledger_gateway(coprocessor),
        crypto=build_crypto_gateway(coprocessor),
        confirmation_timeout_seconds=confirmation_timeout_seconds(),
        gateway_timeout_seconds=gateway_timeout_seconds(),
        notification_ttl_seconds=notification_ttl_seconds(),
    )
