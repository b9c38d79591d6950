from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from src.core.proposals.models import (
    Notification,
    PendingOperation,
    ProposalRecord,
    UserActivityItem,
)


class SessionConnectRequest(BaseModel):
    account_address: str = Field(
        min_length=1,
        description="Account that signs ledger writes for this session.",
        examples=["0x5b38Da6a701c568545dCfcB03FcB875f56beddC4"],
    )


class SessionResponse(BaseModel):
    connected: bool = Field(description="Whether a session is active.", examples=[True])
    account_address: Optional[str] = Field(
        default=None,
        description="Connected account address.",
        examples=["0x5b38Da6a701c568545dCfcB03FcB875f56beddC4"],
    )
    proposal_count: int = Field(
        default=0, description="Proposals currently held in the session store.", examples=[2]
    )
    last_reconciled_at: Optional[datetime] = Field(
        default=None,
        description="UTC timestamp of the latest successful reconciliation.",
        examples=["2026-02-19T12:00:00+00:00"],
    )


class ProposalCreateResponse(BaseModel):
    proposal_id: str = Field(
        description="Identifier of the created proposal.",
        examples=["proposal-1760000000000-3f2a9c1d"],
    )
    proposal: Optional[ProposalRecord] = Field(
        default=None,
        description="Ledger-derived proposal record after reconciliation.",
        examples=[{"name": "DeFi Yield", "is_verified": False}],
    )


class ProposalListResponse(BaseModel):
    items: List[ProposalRecord] = Field(
        default_factory=list,
        description="Proposals matching the filters in ledger order.",
        examples=[[{"proposal_id": "p1", "name": "DeFi Yield"}]],
    )
    total: int = Field(default=0, description="Number of matching proposals.", examples=[1])


class ProposalRevealResponse(BaseModel):
    proposal_id: str = Field(description="Revealed proposal identifier.", examples=["p1"])
    revealed_amount: int = Field(description="Ledger-verified clear amount.", examples=[100])
    is_verified: bool = Field(
        description="Verification flag from the reconciled store.", examples=[True]
    )


class UserActivityResponse(BaseModel):
    items: List[UserActivityItem] = Field(
        default_factory=list,
        description="Recent proposals created by the connected account.",
        examples=[[{"action": "CREATED", "proposal_id": "p1", "amount": 100}]],
    )


class NotificationResponse(BaseModel):
    notification: Optional[Notification] = Field(
        default=None,
        description="Currently visible transaction-status notification.",
        examples=[{"kind": "SUCCESS", "message": "Investment proposal created"}],
    )


class PendingOperationsResponse(BaseModel):
    items: List[PendingOperation] = Field(
        default_factory=list,
        description="Create and reveal operations still in flight.",
        examples=[[{"kind": "REVEAL", "phase": "AWAITING_CONFIRMATION"}]],
    )
