from copy import deepcopy
from threading import Lock
from typing import Iterable, Optional

from src.core.proposals.models import FILTER_ALL, ProposalRecord


def _is_unconstrained(value: Optional[str]) -> bool:
    return value is None or value.strip().lower() in {"", FILTER_ALL}


def matches_filters(
    record: ProposalRecord,
    *,
    search_term: Optional[str] = None,
    category: Optional[str] = FILTER_ALL,
    status: Optional[str] = FILTER_ALL,
) -> bool:
    if search_term:
        needle = search_term.lower()
        if needle not in record.name.lower() and needle not in record.description.lower():
            return False
    if not _is_unconstrained(category) and record.category != category:
        return False
    if not _is_unconstrained(status) and record.status != status:
        return False
    return True


class ProposalStore:
    """Session cache of ledger proposals in ledger enumeration order."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._records: dict[str, ProposalRecord] = {}
        self._order: list[str] = []

    def replace_all(self, records: Iterable[ProposalRecord]) -> None:
        records_by_id: dict[str, ProposalRecord] = {}
        order: list[str] = []
        for record in records:
            if record.proposal_id not in records_by_id:
                order.append(record.proposal_id)
            records_by_id[record.proposal_id] = deepcopy(record)
        with self._lock:
            self._records = records_by_id
            self._order = order

    def clear(self) -> None:
        with self._lock:
            self._records = {}
            self._order = []

    def get(self, proposal_id: str) -> Optional[ProposalRecord]:
        with self._lock:
            record = self._records.get(proposal_id)
        return deepcopy(record) if record is not None else None

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._order)

    def ordered(self) -> list[ProposalRecord]:
        with self._lock:
            records, order = self._records, self._order
        return [deepcopy(records[proposal_id]) for proposal_id in order]

    def apply_filters(
        self,
        search_term: Optional[str] = None,
        category: Optional[str] = FILTER_ALL,
        status: Optional[str] = FILTER_ALL,
    ) -> list[ProposalRecord]:
        return [
            record
            for record in self.ordered()
            if matches_filters(record, search_term=search_term, category=category, status=status)
        ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._order)

    def __contains__(self, proposal_id: object) -> bool:
        with self._lock:
            return proposal_id in self._records
