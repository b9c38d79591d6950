from typing import NoReturn

from fastapi import HTTPException, status

from src.core.proposals import (
    DecryptionFailedError,
    EncryptionFailedError,
    LedgerRejectedError,
    LifecycleTimeoutError,
    NotConnectedError,
    ProposalNotFoundError,
    ProposalValidationError,
    ReconciliationError,
    UserRejectedError,
)

HTTP_422_UNPROCESSABLE = getattr(
    status, "HTTP_422_UNPROCESSABLE_CONTENT", status.HTTP_422_UNPROCESSABLE_ENTITY
)


def raise_proposal_http_exception(exc: Exception) -> NoReturn:
    if isinstance(exc, NotConnectedError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    if isinstance(exc, ProposalNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, (UserRejectedError, LedgerRejectedError)):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if isinstance(exc, ProposalValidationError):
        raise HTTPException(status_code=HTTP_422_UNPROCESSABLE, detail=str(exc)) from exc
    if isinstance(exc, (EncryptionFailedError, DecryptionFailedError, ReconciliationError)):
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    if isinstance(exc, LifecycleTimeoutError):
        raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=str(exc)) from exc
    raise exc
