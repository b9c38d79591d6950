import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, TypeVar

from pydantic import ValidationError

from src.core.proposals.aggregation import (
    DEFAULT_ACTIVITY_LIMIT,
    build_user_activity,
    compute_proposal_statistics,
)
from src.core.proposals.gateways import (
    CryptoGateway,
    CryptoGatewayError,
    GatewayError,
    GatewayTimeoutError,
    LedgerGateway,
    LedgerReadError,
    PendingTransaction,
    SignatureRejectedError,
)
from src.core.proposals.ids import new_proposal_id
from src.core.proposals.models import (
    DEFAULT_CATEGORY,
    DEFAULT_STATUS,
    FILTER_ALL,
    DecryptionProof,
    LedgerProposalData,
    PendingOperation,
    ProposalCreateInput,
    ProposalRecord,
    ProposalStatistics,
    ReconciliationReport,
    TransactionReceipt,
    UserActivityItem,
)
from src.core.proposals.notifications import DEFAULT_NOTIFICATION_TTL_SECONDS
from src.core.proposals.session import ProposalSession

DEFAULT_CONFIRMATION_TIMEOUT_SECONDS = 120.0
DEFAULT_GATEWAY_TIMEOUT_SECONDS = 30.0
POST_CONFIRMATION_RELOAD_ATTEMPTS = 2

T = TypeVar("T")

logger = logging.getLogger(__name__)


class ProposalLifecycleError(Exception):
    user_message = "Operation failed"

    def __init__(self, code: str, user_message: Optional[str] = None) -> None:
        super().__init__(code)
        if user_message is not None:
            self.user_message = user_message


class NotConnectedError(ProposalLifecycleError):
    user_message = "Connect a wallet first"


class ProposalValidationError(ProposalLifecycleError):
    user_message = "Invalid proposal input"


class EncryptionFailedError(ProposalLifecycleError):
    user_message = "Encryption failed"


class UserRejectedError(ProposalLifecycleError):
    user_message = "Transaction cancelled by user"


class LedgerRejectedError(ProposalLifecycleError):
    user_message = "Transaction rejected by ledger"


class ProofRejectedOnLedgerError(LedgerRejectedError):
    user_message = "Decryption proof rejected by ledger"


class ProposalNotFoundError(ProposalLifecycleError):
    user_message = "Proposal not found"


class DecryptionFailedError(ProposalLifecycleError):
    user_message = "Decryption failed"


class LifecycleTimeoutError(ProposalLifecycleError):
    user_message = "Operation timed out"


class ReconciliationError(ProposalLifecycleError):
    user_message = "Failed to load proposals from ledger"


class ConfidentialProposalService:
    def __init__(
        self,
        *,
        ledger: LedgerGateway,
        crypto: CryptoGateway,
        confirmation_timeout_seconds: float = DEFAULT_CONFIRMATION_TIMEOUT_SECONDS,
        gateway_timeout_seconds: float = DEFAULT_GATEWAY_TIMEOUT_SECONDS,
        notification_ttl_seconds: float = DEFAULT_NOTIFICATION_TTL_SECONDS,
    ) -> None:
        self._ledger = ledger
        self._crypto = crypto
        self._confirmation_timeout_seconds = confirmation_timeout_seconds
        self._gateway_timeout_seconds = gateway_timeout_seconds
        self._notification_ttl_seconds = notification_ttl_seconds
        self._crypto_initialized = False

    async def connect(self, account_address: str) -> ProposalSession:
        if not account_address or not account_address.strip():
            raise NotConnectedError("ACCOUNT_ADDRESS_REQUIRED")
        if not self._crypto_initialized:
            try:
                await self._bounded(self._crypto.initialize())
            except GatewayTimeoutError as exc:
                raise LifecycleTimeoutError("CRYPTO_INITIALIZATION_TIMEOUT") from exc
            except CryptoGatewayError as exc:
                raise EncryptionFailedError(
                    "CRYPTO_INITIALIZATION_FAILED", "Failed to initialize FHE client"
                ) from exc
            self._crypto_initialized = True

        session = ProposalSession(
            account_address=account_address.strip(),
            notification_ttl_seconds=self._notification_ttl_seconds,
        )
        logger.info(
            "session.connected",
            extra={"extra_fields": {"account_address": session.account_address}},
        )
        try:
            await self.reconcile(session)
        except ReconciliationError:
            logger.warning(
                "session.initial_reconciliation_failed",
                extra={"extra_fields": {"account_address": session.account_address}},
            )
        return session

    def disconnect(self, session: ProposalSession) -> None:
        session.close()
        logger.info(
            "session.disconnected",
            extra={"extra_fields": {"account_address": session.account_address}},
        )

    async def aclose(self) -> None:
        for gateway in (self._crypto, self._ledger):
            close = getattr(gateway, "aclose", None)
            if close is not None:
                await close()

    async def reconcile(self, session: ProposalSession) -> ReconciliationReport:
        self._require_connected(session)
        try:
            if not await self._bounded(self._ledger.is_available()):
                raise LedgerReadError("LEDGER_UNAVAILABLE")
            proposal_ids = list(await self._bounded(self._ledger.list_proposal_ids()))
        except GatewayError as exc:
            logger.error(
                "reconcile.id_list_failed",
                extra={"extra_fields": {"error": str(exc)}},
            )
            raise ReconciliationError("PROPOSAL_ID_LIST_UNAVAILABLE") from exc

        records: list[ProposalRecord] = []
        skipped: list[str] = []
        for proposal_id in proposal_ids:
            try:
                data = await self._bounded(self._ledger.get_proposal_record(proposal_id))
                handle = await self._bounded(self._ledger.get_encrypted_field_handle(proposal_id))
                records.append(self._to_record(session, proposal_id, data, handle))
            except (GatewayError, ValueError) as exc:
                skipped.append(proposal_id)
                logger.warning(
                    "reconcile.partial_read_failure",
                    extra={"extra_fields": {"proposal_id": proposal_id, "error": str(exc)}},
                )

        if not session.connected:
            raise NotConnectedError("SESSION_CLOSED")
        session.store.replace_all(records)
        session.statistics = compute_proposal_statistics(session.store.ordered())
        session.last_reconciled_at = _utc_now()
        logger.info(
            "reconcile.completed",
            extra={
                "extra_fields": {
                    "listed_count": len(proposal_ids),
                    "loaded_count": len(records),
                    "skipped_count": len(skipped),
                }
            },
        )
        return ReconciliationReport(
            listed_ids=proposal_ids,
            loaded_ids=[record.proposal_id for record in records],
            skipped_ids=skipped,
            completed_at=session.last_reconciled_at,
        )

    async def create_proposal(
        self, session: ProposalSession, payload: ProposalCreateInput
    ) -> str:
        self._require_connected(session)
        notifications = session.notifications
        payload = self._validate_create_input(payload, notifications)

        with session.track_operation("CREATE") as operation:
            proposal_id = new_proposal_id()
            signer_address = session.account_address
            try:
                notifications.publish("PENDING", "Encrypting proposal amount with FHE")
                session.advance(operation, "SUBMITTING", "encrypting", target_id=proposal_id)
                encrypted = await self._encrypt(payload.amount, signer_address)

                writer = self._ledger.writer_for(signer_address)
                transaction = await self._submit(
                    writer.create_proposal(
                        proposal_id=proposal_id,
                        name=payload.name,
                        ciphertext=encrypted.ciphertext,
                        proof=encrypted.proof,
                        public_amount_primary=payload.amount,
                        public_amount_secondary=0,
                        description=payload.description,
                    ),
                    rejected=LedgerRejectedError("PROPOSAL_CREATE_REVERTED"),
                )
                notifications.publish("PENDING", "Waiting for transaction confirmation")
                session.advance(operation, "AWAITING_CONFIRMATION", transaction.tx_hash)
                await self._confirm(
                    transaction, rejected=LedgerRejectedError("PROPOSAL_CREATE_REVERTED")
                )
                session.categories[proposal_id] = payload.category
                await self._load_confirmed(
                    session,
                    proposal_id,
                    loaded=lambda record: True,
                    error=ReconciliationError(
                        "PROPOSAL_CONFIRMED_NOT_LOADED",
                        "Proposal confirmed on ledger but not loaded yet",
                    ),
                )
            except ProposalLifecycleError as exc:
                self._fail_operation(session, operation, exc, "proposal.create_failed")
                raise

            session.advance(operation, "SUCCEEDED", "created")
            notifications.publish("SUCCESS", "Investment proposal created")
            logger.info(
                "proposal.created",
                extra={"extra_fields": {"proposal_id": proposal_id, "tx_hash": transaction.tx_hash}},
            )
            return proposal_id

    async def reveal_proposal(self, session: ProposalSession, proposal_id: str) -> int:
        self._require_connected(session)
        notifications = session.notifications

        record = session.store.get(proposal_id)
        if record is None:
            notifications.publish("ERROR", ProposalNotFoundError.user_message)
            raise ProposalNotFoundError("PROPOSAL_NOT_FOUND")
        if record.is_verified and record.revealed_amount is not None:
            notifications.publish("SUCCESS", "Amount already verified on ledger")
            return record.revealed_amount

        with session.track_operation("REVEAL", target_id=proposal_id) as operation:
            try:
                handle = await self._read_handle(proposal_id)
                writer = self._ledger.writer_for(session.account_address)

                async def _submit_proof(proof: DecryptionProof) -> TransactionReceipt:
                    transaction = await self._submit(
                        writer.submit_decryption_proof(
                            proposal_id=proposal_id,
                            abi_encoded_clear_values=proof.abi_encoded_clear_values,
                            proof=proof.proof,
                        ),
                        rejected=ProofRejectedOnLedgerError("DECRYPTION_PROOF_REJECTED"),
                    )
                    notifications.publish("PENDING", "Verifying decryption on ledger")
                    session.advance(operation, "AWAITING_CONFIRMATION", transaction.tx_hash)
                    return await self._confirm(
                        transaction,
                        rejected=ProofRejectedOnLedgerError("DECRYPTION_PROOF_REJECTED"),
                    )

                notifications.publish("PENDING", "Requesting decryption proof")
                await self._decrypt(handle, _submit_proof)
                revealed = await self._load_confirmed(
                    session,
                    proposal_id,
                    loaded=_is_revealed,
                    error=ReconciliationError(
                        "PROPOSAL_REVEAL_NOT_LOADED",
                        "Decryption confirmed on ledger but not loaded yet",
                    ),
                )
            except ProofRejectedOnLedgerError as exc:
                # A concurrent reveal of the same proposal may have verified it first.
                revealed = await self._verified_elsewhere(session, proposal_id)
                if revealed is None:
                    self._fail_operation(session, operation, exc, "proposal.reveal_failed")
                    raise
                logger.info(
                    "proposal.reveal_superseded",
                    extra={"extra_fields": {"proposal_id": proposal_id}},
                )
            except ProposalLifecycleError as exc:
                self._fail_operation(session, operation, exc, "proposal.reveal_failed")
                raise

            session.advance(operation, "SUCCEEDED", "revealed")
            notifications.publish("SUCCESS", "Decryption verified on ledger")
            logger.info(
                "proposal.revealed",
                extra={"extra_fields": {"proposal_id": proposal_id}},
            )
            return revealed.revealed_amount

    def get_proposal(self, session: ProposalSession, proposal_id: str) -> ProposalRecord:
        self._require_connected(session)
        record = session.store.get(proposal_id)
        if record is None:
            raise ProposalNotFoundError("PROPOSAL_NOT_FOUND")
        return record

    def list_proposals(
        self,
        session: ProposalSession,
        *,
        search_term: Optional[str] = None,
        category: Optional[str] = FILTER_ALL,
        status: Optional[str] = FILTER_ALL,
    ) -> list[ProposalRecord]:
        self._require_connected(session)
        return session.store.apply_filters(search_term, category, status)

    def statistics(self, session: ProposalSession) -> ProposalStatistics:
        self._require_connected(session)
        return session.statistics.model_copy(deep=True)

    def user_activity(
        self, session: ProposalSession, *, limit: int = DEFAULT_ACTIVITY_LIMIT
    ) -> list[UserActivityItem]:
        self._require_connected(session)
        return build_user_activity(
            session.store.ordered(), session.account_address, limit=limit
        )

    async def _encrypt(self, amount: int, signer_address: str):
        try:
            return await self._bounded(
                self._crypto.encrypt(
                    amount,
                    target_address=self._ledger.contract_address,
                    actor_address=signer_address,
                )
            )
        except GatewayTimeoutError as exc:
            raise LifecycleTimeoutError("ENCRYPTION_TIMEOUT") from exc
        except CryptoGatewayError as exc:
            raise EncryptionFailedError("ENCRYPTION_FAILED") from exc

    async def _read_handle(self, proposal_id: str) -> str:
        try:
            return await self._bounded(self._ledger.get_encrypted_field_handle(proposal_id))
        except GatewayTimeoutError as exc:
            raise LifecycleTimeoutError("ENCRYPTED_HANDLE_READ_TIMEOUT") from exc
        except GatewayError as exc:
            raise DecryptionFailedError("ENCRYPTED_HANDLE_UNAVAILABLE") from exc

    async def _decrypt(self, handle: str, submit_proof) -> dict[str, int]:
        try:
            decryption = await self._bounded(
                self._crypto.begin_decryption(
                    [handle], target_address=self._ledger.contract_address
                )
            )
            await self._bounded(decryption.proof_ready())
            return await decryption.complete_on_ledger(submit_proof)
        except GatewayTimeoutError as exc:
            raise LifecycleTimeoutError("DECRYPTION_TIMEOUT") from exc
        except CryptoGatewayError as exc:
            raise DecryptionFailedError("DECRYPTION_FAILED") from exc

    async def _submit(
        self, call: Awaitable[PendingTransaction], *, rejected: ProposalLifecycleError
    ) -> PendingTransaction:
        try:
            return await self._bounded(call)
        except SignatureRejectedError as exc:
            raise UserRejectedError("USER_REJECTED_TRANSACTION") from exc
        except GatewayTimeoutError as exc:
            raise LifecycleTimeoutError("TRANSACTION_SUBMIT_TIMEOUT") from exc
        except GatewayError as exc:
            raise rejected from exc

    async def _confirm(
        self, transaction: PendingTransaction, *, rejected: ProposalLifecycleError
    ) -> TransactionReceipt:
        try:
            receipt = await transaction.wait(timeout_seconds=self._confirmation_timeout_seconds)
        except GatewayTimeoutError as exc:
            raise LifecycleTimeoutError("TRANSACTION_CONFIRMATION_TIMEOUT") from exc
        except GatewayError as exc:
            raise rejected from exc
        if receipt.status != "CONFIRMED":
            raise rejected
        return receipt

    async def _load_confirmed(
        self,
        session: ProposalSession,
        proposal_id: str,
        *,
        loaded: Callable[[ProposalRecord], bool],
        error: ProposalLifecycleError,
    ) -> ProposalRecord:
        for attempt in range(1, POST_CONFIRMATION_RELOAD_ATTEMPTS + 1):
            try:
                await self.reconcile(session)
            except ReconciliationError:
                logger.warning(
                    "reconcile.after_confirmation_failed",
                    extra={"extra_fields": {"proposal_id": proposal_id, "attempt": attempt}},
                )
            record = session.store.get(proposal_id)
            if record is not None and loaded(record):
                return record
        raise error

    async def _verified_elsewhere(
        self, session: ProposalSession, proposal_id: str
    ) -> Optional[ProposalRecord]:
        try:
            await self.reconcile(session)
        except ReconciliationError:
            return None
        record = session.store.get(proposal_id)
        return record if record is not None and _is_revealed(record) else None

    def _fail_operation(
        self,
        session: ProposalSession,
        operation: PendingOperation,
        exc: ProposalLifecycleError,
        event: str,
    ) -> None:
        session.advance(operation, "FAILED", str(exc))
        session.notifications.publish("ERROR", exc.user_message)
        logger.warning(
            event,
            extra={"extra_fields": {"proposal_id": operation.target_id, "error": str(exc)}},
        )

    async def _bounded(self, call: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self._gateway_timeout_seconds)
        except asyncio.TimeoutError as exc:
            raise GatewayTimeoutError("GATEWAY_CALL_TIMEOUT") from exc

    def _validate_create_input(self, payload, notifications) -> ProposalCreateInput:
        try:
            validated = ProposalCreateInput.model_validate(
                payload.model_dump() if isinstance(payload, ProposalCreateInput) else payload
            )
        except ValidationError as exc:
            notifications.publish("ERROR", ProposalValidationError.user_message)
            raise ProposalValidationError("PROPOSAL_INPUT_INVALID") from exc
        if not validated.name.strip():
            notifications.publish("ERROR", ProposalValidationError.user_message)
            raise ProposalValidationError("PROPOSAL_NAME_REQUIRED")
        return validated

    def _require_connected(self, session: Optional[ProposalSession]) -> None:
        if session is None or not session.connected:
            raise NotConnectedError("NOT_CONNECTED")

    def _to_record(
        self,
        session: ProposalSession,
        proposal_id: str,
        data: LedgerProposalData,
        handle: Optional[str],
    ) -> ProposalRecord:
        return ProposalRecord(
            proposal_id=proposal_id,
            name=data.name,
            description=data.description,
            creator=data.creator,
            created_at=datetime.fromtimestamp(data.created_at, tz=timezone.utc),
            public_amount_primary=data.public_amount_primary,
            public_amount_secondary=data.public_amount_secondary,
            confidential_amount_handle=handle,
            is_verified=data.is_verified,
            revealed_amount=data.revealed_amount if data.is_verified else None,
            category=session.categories.get(proposal_id, DEFAULT_CATEGORY),
            status=DEFAULT_STATUS,
        )


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _is_revealed(record: ProposalRecord) -> bool:
    return record.is_verified and record.revealed_amount is not None
