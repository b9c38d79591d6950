from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterator, Optional

from src.core.proposals.ids import new_operation_id
from src.core.proposals.models import (
    PendingOperation,
    PendingOperationKind,
    PendingOperationPhase,
    ProposalStatistics,
)
from src.core.proposals.notifications import DEFAULT_NOTIFICATION_TTL_SECONDS, NotificationCenter
from src.core.proposals.store import ProposalStore

OperationListener = Callable[[PendingOperation], None]


class ProposalSession:
    """State owned by one connected account, from connect until disconnect."""

    def __init__(
        self,
        *,
        account_address: str,
        notification_ttl_seconds: float = DEFAULT_NOTIFICATION_TTL_SECONDS,
    ) -> None:
        self.account_address = account_address
        self.store = ProposalStore()
        self.notifications = NotificationCenter(ttl_seconds=notification_ttl_seconds)
        self.statistics = ProposalStatistics()
        self.categories: dict[str, str] = {}
        self.last_reconciled_at: Optional[datetime] = None
        self._pending: dict[str, PendingOperation] = {}
        self._operation_listeners: list[OperationListener] = []
        self._connected = True

    @property
    def connected(self) -> bool:
        return self._connected

    def close(self) -> None:
        self._connected = False
        self.store.clear()
        self.statistics = ProposalStatistics()
        self.notifications.close()
        self._pending.clear()
        self._operation_listeners.clear()

    def pending_operations(self) -> list[PendingOperation]:
        return [operation.model_copy() for operation in self._pending.values()]

    def on_operation(self, listener: OperationListener) -> None:
        self._operation_listeners.append(listener)

    @contextmanager
    def track_operation(
        self, kind: PendingOperationKind, *, target_id: Optional[str] = None
    ) -> Iterator[PendingOperation]:
        now = datetime.now(timezone.utc)
        operation = PendingOperation(
            operation_id=new_operation_id(),
            kind=kind,
            target_id=target_id,
            phase="SUBMITTING",
            started_at=now,
            updated_at=now,
        )
        self._pending[operation.operation_id] = operation
        self._emit(operation)
        try:
            yield operation
        finally:
            self._pending.pop(operation.operation_id, None)

    def advance(
        self,
        operation: PendingOperation,
        phase: PendingOperationPhase,
        message: str,
        *,
        target_id: Optional[str] = None,
    ) -> None:
        operation.phase = phase
        operation.message = message
        if target_id is not None:
            operation.target_id = target_id
        operation.updated_at = datetime.now(timezone.utc)
        self._emit(operation)

    def _emit(self, operation: PendingOperation) -> None:
        for listener in list(self._operation_listeners):
            listener(operation.model_copy())
