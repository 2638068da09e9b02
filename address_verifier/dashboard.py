"""
Administrator dashboard operations over the record store.

Listing is a full scan ordered by creation time; search is a plain
case-insensitive substring match over name and id done on the listing.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Iterable, Mapping
from urllib.parse import urlencode

from .models import VerificationRecord, VerificationStatus
from .store import VerificationStore
from .workflow import random_token

logger = logging.getLogger(__name__)

# Query parameter that switches the client into applicant-only mode
APPLICANT_PARAM = "verify"
PLACEHOLDER_NAME = "Pending Applicant"


def filter_records(
    records: Iterable[VerificationRecord], query: str | None
) -> list[VerificationRecord]:
    """Records whose name or id contains the query (case-insensitive)."""
    records = list(records)
    needle = (query or "").strip().lower()
    if not needle:
        return records
    return [
        r for r in records
        if needle in (r.name or "").lower() or needle in r.id.lower()
    ]


def summarize(records: Iterable[VerificationRecord]) -> dict[str, int]:
    """Count of records per status, plus the total."""
    counts = Counter(r.verification_status.value for r in records)
    summary = {status.value: counts.get(status.value, 0) for status in VerificationStatus}
    summary["total"] = sum(counts.values())
    return summary


def applicant_link(base_url: str, record_id: str) -> str:
    return f"{base_url.rstrip('/')}/?{urlencode({APPLICANT_PARAM: record_id})}"


def applicant_id_from_query(params: Mapping[str, str]) -> str | None:
    """The record id carried by an applicant link, if this is one."""
    value = (params.get(APPLICANT_PARAM) or "").strip()
    return value or None


def create_placeholder(
    store: VerificationStore, base_url: str
) -> tuple[VerificationRecord, str]:
    """Create a blank pending record and the link to hand to the applicant."""
    record = store.put(
        VerificationRecord(
            id=random_token(9),
            name=PLACEHOLDER_NAME,
            verification_status=VerificationStatus.PENDING,
        )
    )
    link = applicant_link(base_url, record.id)
    logger.info("Generated applicant link for %s", record.id)
    return record, link


def delete_record(store: VerificationStore, record_id: str) -> None:
    store.delete(record_id)
    logger.info("Deleted verification %s", record_id)


def delete_all_records(store: VerificationStore) -> int:
    deleted = store.delete_all()
    logger.warning("Deleted ALL verification records (%d)", deleted)
    return deleted
