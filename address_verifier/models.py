"""
Pydantic models for verification records, the wire format of the record store.

Field names are snake_case and match the JSON documents persisted by the
store and returned by the API. Everything an applicant may leave blank is
Optional: an empty submission is a valid submission.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# ─── Enums ──────────────────────────────────────────────────────────


class VerificationStatus(str, Enum):
    """Outcome of the address check."""

    PENDING = "pending"  # Not evaluated yet
    PASS = "pass"  # Within the match radius
    FAIL = "fail"  # Outside the match radius


class AddressType(str, Enum):
    PERMANENT = "Permanent"
    TEMPORARY = "Temporary"
    RENTED = "Rented"


# ─── Evidence Metadata ──────────────────────────────────────────────


class PhotoMetadata(BaseModel):
    """Geotag captured alongside an evidence photo."""

    timestamp: str  # "YYYY:MM:DD HH:MM:SS", EXIF-style
    location: Optional[str] = None  # "lat,lng" at 7 decimals


# ─── Verification Record ────────────────────────────────────────────


class VerificationRecord(BaseModel):
    """The single persisted entity: one applicant's verification."""

    model_config = ConfigDict(use_enum_values=False, validate_assignment=True)

    id: str = ""
    instruction_id: Optional[str] = None
    ref_id: Optional[str] = None

    # Personal
    name: Optional[str] = None
    address: Optional[str] = None
    type_of_address: Optional[AddressType] = None
    mobile_number: Optional[str] = None
    period_of_stay: Optional[str] = None
    ownership_status: Optional[str] = None
    verification_date: Optional[str] = None

    # Evidence (data URIs)
    selfie: Optional[str] = None
    location_picture: Optional[str] = None
    id_proof_relative: Optional[str] = None
    id_proof_candidate: Optional[str] = None
    landmark_picture: Optional[str] = None

    selfie_meta: Optional[PhotoMetadata] = None
    location_picture_meta: Optional[PhotoMetadata] = None
    id_proof_relative_meta: Optional[PhotoMetadata] = None
    id_proof_candidate_meta: Optional[PhotoMetadata] = None
    landmark_picture_meta: Optional[PhotoMetadata] = None

    # Geolocation
    captured_lat: Optional[float] = None
    captured_lng: Optional[float] = None
    captured_timestamp: Optional[str] = None
    claimed_lat: Optional[float] = None
    claimed_lng: Optional[float] = None

    # Outcome
    verification_status: VerificationStatus = VerificationStatus.PENDING
    comment: Optional[str] = None

    created_at: Optional[str] = None  # Server-assigned, set once

    def to_document(self) -> dict:
        """JSON-ready dict without unset (None) fields, as stored."""
        return self.model_dump(mode="json", exclude_none=True)


# ─── Evaluator Output ───────────────────────────────────────────────


class EvaluationResult(BaseModel):
    """What the address-match evaluator decides for one submission."""

    verification_status: VerificationStatus
    comment: str = ""
    claimed_lat: float
    claimed_lng: float
    source: str = Field(default="fallback", exclude=True)  # "llm" or "fallback"
