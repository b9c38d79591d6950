from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

CONFIDENTIAL_AMOUNT_MAX = 2**32 - 1
DEFAULT_CATEGORY = "crypto"
DEFAULT_STATUS = "active"
FILTER_ALL = "all"
KNOWN_CATEGORIES = ("crypto", "defi", "nft")
KNOWN_STATUSES = ("active", "completed")

PendingOperationKind = Literal["CREATE", "REVEAL"]
PendingOperationPhase = Literal["SUBMITTING", "AWAITING_CONFIRMATION", "SUCCEEDED", "FAILED"]
NotificationKind = Literal["PENDING", "SUCCESS", "ERROR"]
TransactionStatus = Literal["CONFIRMED", "REVERTED"]
UserActivityAction = Literal["CREATED"]


class LedgerProposalData(BaseModel):
    name: str = Field(description="Proposal name as stored on ledger.", examples=["DeFi Yield"])
    description: str = Field(
        default="",
        description="Proposal description as stored on ledger.",
        examples=["Stablecoin yield strategy"],
    )
    creator: str = Field(
        description="Ledger account that created the proposal.",
        examples=["0x5b38Da6a701c568545dCfcB03FcB875f56beddC4"],
    )
    created_at: int = Field(description="Block timestamp in unix seconds.", examples=[1760000000])
    public_amount_primary: int = Field(
        description="Cleartext primary amount.", examples=[100], ge=0
    )
    public_amount_secondary: int = Field(
        default=0, description="Cleartext secondary amount.", examples=[0], ge=0
    )
    is_verified: bool = Field(
        default=False,
        description="True once a decryption proof was accepted by the ledger.",
        examples=[False],
    )
    revealed_amount: int = Field(
        default=0,
        description="Ledger decrypted value; meaningful only when is_verified is true.",
        examples=[0],
    )


class ProposalRecord(BaseModel):
    proposal_id: str = Field(
        description="Proposal identifier.", examples=["proposal-1760000000000-3f2a9c1d"]
    )
    name: str = Field(description="Proposal name.", examples=["DeFi Yield"])
    description: str = Field(
        default="", description="Proposal description.", examples=["Stablecoin yield strategy"]
    )
    creator: str = Field(
        description="Account that submitted the proposal.",
        examples=["0x5b38Da6a701c568545dCfcB03FcB875f56beddC4"],
    )
    created_at: datetime = Field(
        description="UTC creation timestamp.", examples=["2026-02-19T12:00:00+00:00"]
    )
    public_amount_primary: int = Field(description="Cleartext primary amount.", examples=[100])
    public_amount_secondary: int = Field(
        default=0, description="Cleartext secondary amount.", examples=[0]
    )
    confidential_amount_handle: Optional[str] = Field(
        default=None,
        description="Ledger handle of the encrypted amount.",
        examples=["0x6a1f0c"],
    )
    is_verified: bool = Field(
        default=False,
        description="True once the ledger accepted a decryption proof.",
        examples=[False],
    )
    revealed_amount: Optional[int] = Field(
        default=None,
        description="Ledger-verified clear amount, present only when verified.",
        examples=[None],
    )
    category: str = Field(
        default=DEFAULT_CATEGORY, description="Local category label.", examples=["defi"]
    )
    status: str = Field(
        default=DEFAULT_STATUS, description="Local status label.", examples=["active"]
    )


class ProposalCreateInput(BaseModel):
    name: str = Field(
        min_length=1, description="Proposal name.", examples=["DeFi Yield"]
    )
    description: str = Field(
        default="",
        description="Free-text description of the strategy.",
        examples=["Stablecoin yield strategy"],
    )
    amount: int = Field(
        ge=0,
        le=CONFIDENTIAL_AMOUNT_MAX,
        description="Investment amount encrypted client-side before submission.",
        examples=[100],
    )
    category: str = Field(
        default=DEFAULT_CATEGORY,
        min_length=1,
        description="Local category label kept for filtering.",
        examples=["defi"],
    )


class EncryptedInput(BaseModel):
    ciphertext: str = Field(description="Encrypted value handle.", examples=["0x6a1f0c"])
    proof: str = Field(description="Input proof bound to contract and signer.", examples=["0x01"])


class DecryptionProof(BaseModel):
    clear_values: Dict[str, int] = Field(
        description="Clear value keyed by ciphertext handle.", examples=[{"0x6a1f0c": 100}]
    )
    abi_encoded_clear_values: str = Field(
        description="Clear values as 32-byte big-endian words in handle order.",
        examples=["0x" + "00" * 31 + "64"],
    )
    proof: str = Field(description="Decryption proof for ledger validation.", examples=["0x02"])


class TransactionReceipt(BaseModel):
    tx_hash: str = Field(description="Transaction hash.", examples=["0xabc123"])
    status: TransactionStatus = Field(description="Mined transaction status.", examples=["CONFIRMED"])
    block_number: Optional[int] = Field(
        default=None, description="Block number the transaction was mined in.", examples=[42]
    )


class PendingOperation(BaseModel):
    operation_id: str = Field(description="Operation identifier.", examples=["pop_1a2b3c4d5e6f"])
    kind: PendingOperationKind = Field(description="Operation kind.", examples=["CREATE"])
    target_id: Optional[str] = Field(
        default=None,
        description="Proposal targeted by the operation, once known.",
        examples=["proposal-1760000000000-3f2a9c1d"],
    )
    phase: PendingOperationPhase = Field(
        default="SUBMITTING", description="Current operation phase.", examples=["SUBMITTING"]
    )
    message: str = Field(default="", description="Progress message.", examples=["encrypting"])
    started_at: datetime = Field(
        description="UTC start timestamp.", examples=["2026-02-19T12:00:00+00:00"]
    )
    updated_at: datetime = Field(
        description="UTC timestamp of the latest phase change.",
        examples=["2026-02-19T12:00:01+00:00"],
    )


class Notification(BaseModel):
    notification_id: str = Field(description="Notification identifier.", examples=["ntf_001"])
    kind: NotificationKind = Field(description="Notification kind.", examples=["PENDING"])
    message: str = Field(
        description="User-facing message.", examples=["Encrypting proposal amount"]
    )
    created_at: datetime = Field(
        description="UTC publish timestamp.", examples=["2026-02-19T12:00:00+00:00"]
    )
    expires_at: datetime = Field(
        description="UTC timestamp after which the notification is hidden.",
        examples=["2026-02-19T12:00:03+00:00"],
    )


class CategoryShare(BaseModel):
    category: str = Field(description="Category label.", examples=["defi"])
    count: int = Field(description="Number of proposals in the category.", examples=[2])
    ratio: float = Field(description="Share of all proposals in [0, 1].", examples=[0.5])
    percentage: float = Field(description="Share of all proposals in percent.", examples=[50.0])


class ProposalStatistics(BaseModel):
    total_count: int = Field(default=0, description="Number of proposals.", examples=[2])
    total_public_value: int = Field(
        default=0, description="Sum of cleartext primary amounts.", examples=[150]
    )
    verified_count: int = Field(
        default=0, description="Proposals with a ledger-verified reveal.", examples=[1]
    )
    encrypted_count: int = Field(
        default=0, description="Proposals whose amount is still confidential.", examples=[1]
    )
    distinct_creator_count: int = Field(
        default=0, description="Number of distinct creator accounts.", examples=[2]
    )
    verified_ratio: float = Field(
        default=0.0, description="verified_count / total_count, 0 when empty.", examples=[0.5]
    )
    category_distribution: List[CategoryShare] = Field(
        default_factory=list,
        description="Per-category counts in first-seen order.",
        examples=[[{"category": "crypto", "count": 2, "ratio": 1.0, "percentage": 100.0}]],
    )


class ReconciliationReport(BaseModel):
    listed_ids: List[str] = Field(
        default_factory=list, description="Ids enumerated by the ledger.", examples=[["p1", "p2"]]
    )
    loaded_ids: List[str] = Field(
        default_factory=list, description="Ids loaded into the store.", examples=[["p1"]]
    )
    skipped_ids: List[str] = Field(
        default_factory=list,
        description="Ids skipped because their record could not be read.",
        examples=[["p2"]],
    )
    completed_at: datetime = Field(
        description="UTC completion timestamp.", examples=["2026-02-19T12:00:00+00:00"]
    )


class UserActivityItem(BaseModel):
    action: UserActivityAction = Field(description="Activity type.", examples=["CREATED"])
    proposal_id: str = Field(description="Proposal identifier.", examples=["p1"])
    proposal_name: str = Field(description="Proposal name.", examples=["DeFi Yield"])
    occurred_at: datetime = Field(
        description="UTC activity timestamp.", examples=["2026-02-19T12:00:00+00:00"]
    )
    amount: int = Field(description="Cleartext primary amount.", examples=[100])
