from src.core.proposals.gateways import (
    CryptoGateway,
    CryptoGatewayError,
    DecryptionSession,
    GatewayError,
    GatewayTimeoutError,
    LedgerGateway,
    LedgerReadError,
    LedgerTransactionRejectedError,
    SignatureRejectedError,
    request_decryption,
)
from src.core.proposals.models import (
    ProposalCreateInput,
    ProposalRecord,
    ProposalStatistics,
    ReconciliationReport,
)
from src.core.proposals.service import (
    ConfidentialProposalService,
    DecryptionFailedError,
    EncryptionFailedError,
    LedgerRejectedError,
    LifecycleTimeoutError,
    NotConnectedError,
    ProofRejectedOnLedgerError,
    ProposalLifecycleError,
    ProposalNotFoundError,
    ProposalValidationError,
    ReconciliationError,
    UserRejectedError,
)
from src.core.proposals.session import ProposalSession
from src.core.proposals.store import ProposalStore

__all__ = [
    "ConfidentialProposalService",
    "CryptoGateway",
    "CryptoGatewayError",
    "DecryptionFailedError",
    "DecryptionSession",
    "EncryptionFailedError",
    "GatewayError",
    "GatewayTimeoutError",
    "LedgerGateway",
    "LedgerReadError",
    "LedgerRejectedError",
    "LedgerTransactionRejectedError",
    "LifecycleTimeoutError",
    "NotConnectedError",
    "ProofRejectedOnLedgerError",
    "ProposalCreateInput",
    "ProposalLifecycleError",
    "ProposalNotFoundError",
    "ProposalRecord",
    "ProposalSession",
    "ProposalStatistics",
    "ProposalStore",
    "ProposalValidationError",
    "ReconciliationError",
    "ReconciliationReport",
    "SignatureRejectedError",
    "UserRejectedError",
    "request_decryption",
]
