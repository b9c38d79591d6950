from typing import Optional, Sequence

from src.core.proposals.models import (
    CategoryShare,
    ProposalRecord,
    ProposalStatistics,
    UserActivityItem,
)

DEFAULT_ACTIVITY_LIMIT = 5


def _ratio(part: int, whole: int) -> float:
    return part / whole if whole else 0.0


def verified_ratio(records: Sequence[ProposalRecord]) -> float:
    return _ratio(sum(1 for record in records if record.is_verified), len(records))


def category_distribution(records: Sequence[ProposalRecord]) -> list[CategoryShare]:
    counts: dict[str, int] = {}
    for record in records:
        counts[record.category] = counts.get(record.category, 0) + 1
    total = len(records)
    return [
        CategoryShare(
            category=category,
            count=count,
            ratio=_ratio(count, total),
            percentage=_ratio(count, total) * 100,
        )
        for category, count in counts.items()
    ]


def compute_proposal_statistics(records: Sequence[ProposalRecord]) -> ProposalStatistics:
    total = len(records)
    verified = sum(1 for record in records if record.is_verified)
    return ProposalStatistics(
        total_count=total,
        total_public_value=sum(record.public_amount_primary for record in records),
        verified_count=verified,
        encrypted_count=total - verified,
        distinct_creator_count=len({record.creator.lower() for record in records}),
        verified_ratio=_ratio(verified, total),
        category_distribution=category_distribution(records),
    )


def build_user_activity(
    records: Sequence[ProposalRecord],
    account_address: Optional[str],
    *,
    limit: int = DEFAULT_ACTIVITY_LIMIT,
) -> list[UserActivityItem]:
    if not account_address:
        return []
    account = account_address.lower()
    created = [record for record in records if record.creator.lower() == account]
    created.sort(key=lambda record: (record.created_at, record.proposal_id), reverse=True)
    return [
        UserActivityItem(
            action="CREATED",
            proposal_id=record.proposal_id,
            proposal_name=record.name,
            occurred_at=record.created_at,
            amount=record.public_amount_primary,
        )
        for record in created[:limit]
    ]
