"""
Evidence slots and the in-flight upload counter.

All five photo uploads behave identically; they differ only in label,
record field and which camera the client should open. One EvidenceSlot
type describes all of them.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Iterator


class CaptureHint(str, Enum):
    """Which camera the client should open for a slot."""

    USER = "user"  # Front camera
    ENVIRONMENT = "environment"  # Rear camera
    ANY = "any"  # Camera or gallery


@dataclass(frozen=True)
class EvidenceSlot:
    label: str
    storage_key: str  # Record field holding the data URI
    capture_hint: CaptureHint = CaptureHint.ANY

    @property
    def meta_key(self) -> str:
        """Record field holding the slot's PhotoMetadata."""
        return f"{self.storage_key}_meta"


EVIDENCE_SLOTS: tuple[EvidenceSlot, ...] = (
    EvidenceSlot("Selfie", "selfie", CaptureHint.USER),
    EvidenceSlot("Location Picture (Door/House)", "location_picture", CaptureHint.ENVIRONMENT),
    EvidenceSlot("ID Proof (Relative Verifying)", "id_proof_relative", CaptureHint.ENVIRONMENT),
    EvidenceSlot("ID Proof (The Candidate)", "id_proof_candidate", CaptureHint.ENVIRONMENT),
    EvidenceSlot("Landmark Picture", "landmark_picture", CaptureHint.ANY),
)

_SLOTS_BY_KEY = {slot.storage_key: slot for slot in EVIDENCE_SLOTS}


def get_slot(storage_key: str) -> EvidenceSlot:
    """Look up a slot by record field. Raises KeyError for unknown fields."""
    try:
        return _SLOTS_BY_KEY[storage_key]
    except KeyError:
        raise KeyError(f"Unknown evidence slot: {storage_key!r}") from None


class UploadTracker:
    """Counts evidence uploads still being processed.

    Submission is gated on this reaching zero. There is no bound on how
    many uploads run at once.
    """

    def __init__(self) -> None:
        self._in_flight = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def idle(self) -> bool:
        return self._in_flight == 0

    def begin(self) -> None:
        self._in_flight += 1

    def end(self) -> None:
        self._in_flight = max(0, self._in_flight - 1)

    @contextmanager
    def track(self) -> Iterator[None]:
        """Count one upload for the duration of the block, even if it fails."""
        self.begin()
        try:
            yield
        finally:
            self.end()
