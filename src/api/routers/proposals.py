from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Path, Query, status

from src.api.observability import record_operation_metric
from src.api.request_models import (
    NotificationResponse,
    PendingOperationsResponse,
    ProposalCreateResponse,
    ProposalListResponse,
    ProposalRevealResponse,
    SessionConnectRequest,
    SessionResponse,
    UserActivityResponse,
)
from src.api.routers.proposal_http_errors import raise_proposal_http_exception
from src.api.routers.proposals_config import build_service
from src.core.proposals import (
    ConfidentialProposalService,
    NotConnectedError,
    ProposalCreateInput,
    ProposalLifecycleError,
    ProposalRecord,
    ProposalSession,
    ProposalStatistics,
    ReconciliationReport,
)
from src.core.proposals.models import FILTER_ALL

router = APIRouter(tags=["Confidential Proposals"])

_SERVICE: Optional[ConfidentialProposalService] = None
_SESSION: Optional[ProposalSession] = None


def get_proposal_service() -> ConfidentialProposalService:
    global _SERVICE
    if _SERVICE is None:
        _SERVICE = build_service()
    return _SERVICE


def get_optional_session() -> Optional[ProposalSession]:
    if _SESSION is not None and _SESSION.connected:
        return _SESSION
    return None


def get_session() -> ProposalSession:
    session = get_optional_session()
    if session is None:
        raise_proposal_http_exception(NotConnectedError("NOT_CONNECTED"))
    return session


def reset_proposal_service_for_tests() -> None:
    global _SERVICE
    global _SESSION
    if _SESSION is not None:
        _SESSION.close()
    _SERVICE = None
    _SESSION = None


async def close_proposal_service() -> None:
    global _SERVICE
    global _SESSION
    if _SESSION is not None:
        _SESSION.close()
        _SESSION = None
    if _SERVICE is not None:
        service, _SERVICE = _SERVICE, None
        await service.aclose()


def _session_response(session: Optional[ProposalSession]) -> SessionResponse:
    if session is None:
        return SessionResponse(connected=False)
    return SessionResponse(
        connected=session.connected,
        account_address=session.account_address,
        proposal_count=len(session.store),
        last_reconciled_at=session.last_reconciled_at,
    )


@router.post(
    "/session",
    response_model=SessionResponse,
    status_code=status.HTTP_200_OK,
    summary="Connect Session",
    description=(
        "Opens a session for the account, initializes the FHE client, and loads proposals "
        "from the ledger. An existing session is closed first."
    ),
)
async def connect_session(
    payload: SessionConnectRequest,
    service: Annotated[ConfidentialProposalService, Depends(get_proposal_service)] = None,
) -> SessionResponse:
    global _SESSION
    if _SESSION is not None:
        service.disconnect(_SESSION)
        _SESSION = None
    try:
        _SESSION = await service.connect(payload.account_address)
    except ProposalLifecycleError as exc:
        raise_proposal_http_exception(exc)
    _SESSION.on_operation(record_operation_metric)
    return _session_response(_SESSION)


@router.get(
    "/session",
    response_model=SessionResponse,
    status_code=status.HTTP_200_OK,
    summary="Get Session",
    description="Returns the connection state of the current session.",
)
def get_session_state(
    session: Annotated[Optional[ProposalSession], Depends(get_optional_session)] = None,
) -> SessionResponse:
    return _session_response(session)


@router.delete(
    "/session",
    response_model=SessionResponse,
    status_code=status.HTTP_200_OK,
    summary="Disconnect Session",
    description="Closes the current session and clears its proposal store.",
)
def disconnect_session(
    service: Annotated[ConfidentialProposalService, Depends(get_proposal_service)] = None,
) -> SessionResponse:
    global _SESSION
    if _SESSION is not None:
        service.disconnect(_SESSION)
        _SESSION = None
    return _session_response(None)


@router.get(
    "/proposals",
    response_model=ProposalListResponse,
    status_code=status.HTTP_200_OK,
    summary="List Proposals",
    description=(
        "Lists proposals in ledger order. The search term matches name or description "
        "case-insensitively; `all` disables the category or status constraint."
    ),
)
def list_proposals(
    search: Annotated[
        Optional[str], Query(description="Case-insensitive search term.", examples=["defi"])
    ] = None,
    category: Annotated[
        str, Query(description="Category filter or `all`.", examples=["defi"])
    ] = FILTER_ALL,
    status_filter: Annotated[
        str,
        Query(alias="status", description="Status filter or `all`.", examples=["active"]),
    ] = FILTER_ALL,
    session: Annotated[ProposalSession, Depends(get_session)] = None,
    service: Annotated[ConfidentialProposalService, Depends(get_proposal_service)] = None,
) -> ProposalListResponse:
    items = service.list_proposals(
        session, search_term=search, category=category, status=status_filter
    )
    return ProposalListResponse(items=items, total=len(items))


@router.post(
    "/proposals",
    response_model=ProposalCreateResponse,
    status_code=status.HTTP_200_OK,
    summary="Create Confidential Proposal",
    description=(
        "Encrypts the amount with FHE, submits the proposal with its input proof to the ledger, "
        "waits for confirmation, and reloads the store from the ledger."
    ),
)
async def create_proposal(
    payload: ProposalCreateInput,
    session: Annotated[ProposalSession, Depends(get_session)] = None,
    service: Annotated[ConfidentialProposalService, Depends(get_proposal_service)] = None,
) -> ProposalCreateResponse:
    try:
        proposal_id = await service.create_proposal(session, payload)
    except ProposalLifecycleError as exc:
        raise_proposal_http_exception(exc)
    return ProposalCreateResponse(proposal_id=proposal_id, proposal=session.store.get(proposal_id))


@router.post(
    "/proposals/refresh",
    response_model=ReconciliationReport,
    status_code=status.HTTP_200_OK,
    summary="Refresh Proposals",
    description="Re-reads every proposal from the ledger and replaces the session store.",
)
async def refresh_proposals(
    session: Annotated[ProposalSession, Depends(get_session)] = None,
    service: Annotated[ConfidentialProposalService, Depends(get_proposal_service)] = None,
) -> ReconciliationReport:
    try:
        return await service.reconcile(session)
    except ProposalLifecycleError as exc:
        raise_proposal_http_exception(exc)


@router.get(
    "/proposals/statistics",
    response_model=ProposalStatistics,
    status_code=status.HTTP_200_OK,
    summary="Get Proposal Statistics",
    description="Returns totals and per-category distribution computed at the last reconciliation.",
)
def get_statistics(
    session: Annotated[ProposalSession, Depends(get_session)] = None,
    service: Annotated[ConfidentialProposalService, Depends(get_proposal_service)] = None,
) -> ProposalStatistics:
    return service.statistics(session)


@router.get(
    "/proposals/activity",
    response_model=UserActivityResponse,
    status_code=status.HTTP_200_OK,
    summary="Get Account Activity",
    description="Returns the most recent proposals created by the connected account.",
)
def get_activity(
    limit: Annotated[int, Query(description="Maximum rows.", ge=1, le=50, examples=[5])] = 5,
    session: Annotated[ProposalSession, Depends(get_session)] = None,
    service: Annotated[ConfidentialProposalService, Depends(get_proposal_service)] = None,
) -> UserActivityResponse:
    return UserActivityResponse(items=service.user_activity(session, limit=limit))


@router.get(
    "/proposals/{proposal_id}",
    response_model=ProposalRecord,
    status_code=status.HTTP_200_OK,
    summary="Get Proposal",
    description="Returns one proposal from the session store.",
)
def get_proposal(
    proposal_id: Annotated[str, Path(description="Proposal identifier.", examples=["p1"])],
    session: Annotated[ProposalSession, Depends(get_session)] = None,
    service: Annotated[ConfidentialProposalService, Depends(get_proposal_service)] = None,
) -> ProposalRecord:
    try:
        return service.get_proposal(session, proposal_id)
    except ProposalLifecycleError as exc:
        raise_proposal_http_exception(exc)


@router.post(
    "/proposals/{proposal_id}/reveal",
    response_model=ProposalRevealResponse,
    status_code=status.HTTP_200_OK,
    summary="Reveal Proposal Amount",
    description=(
        "Requests public decryption of the confidential amount and submits the decryption proof "
        "to the ledger. Already verified proposals return their amount without network calls."
    ),
)
async def reveal_proposal(
    proposal_id: Annotated[str, Path(description="Proposal identifier.", examples=["p1"])],
    session: Annotated[ProposalSession, Depends(get_session)] = None,
    service: Annotated[ConfidentialProposalService, Depends(get_proposal_service)] = None,
) -> ProposalRevealResponse:
    try:
        revealed_amount = await service.reveal_proposal(session, proposal_id)
    except ProposalLifecycleError as exc:
        raise_proposal_http_exception(exc)
    record = session.store.get(proposal_id)
    return ProposalRevealResponse(
        proposal_id=proposal_id,
        revealed_amount=revealed_amount,
        is_verified=bool(record is not None and record.is_verified),
    )


@router.get(
    "/notifications/current",
    response_model=NotificationResponse,
    status_code=status.HTTP_200_OK,
    summary="Get Current Notification",
    description="Returns the visible transaction-status notification, if it has not expired.",
)
def get_current_notification(
    session: Annotated[ProposalSession, Depends(get_session)] = None,
) -> NotificationResponse:
    return NotificationResponse(notification=session.notifications.current())


@router.get(
    "/operations",
    response_model=PendingOperationsResponse,
    status_code=status.HTTP_200_OK,
    summary="List Pending Operations",
    description="Lists create and reveal operations that are still in flight.",
)
def list_pending_operations(
    session: Annotated[ProposalSession, Depends(get_session)] = None,
) -> PendingOperationsResponse:
    return PendingOperationsResponse(items=session.pending_operations())
