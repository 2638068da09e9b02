"""
Report projection: one ReportView per record, shared by every surface.

The interactive view, the print view and the PDF all render the SAME
ReportView, so they cannot disagree on a field value or on the distance.
The distance itself always comes from geo.haversine_km().

Missing photo metadata is shown as an explicit "Not captured" marker;
the report never invents timestamps or coordinates.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from .evidence import EVIDENCE_SLOTS
from .geo import MATCH_RADIUS_M, format_location, haversine_km
from .models import VerificationRecord, VerificationStatus

REPORT_TITLE = "Employee Residential Address Verification Form"
NOT_CAPTURED = "Not captured"
NO_IMAGE = "No image provided"
EMPTY = "-"

# Map backdrop centre when neither point is known (centre of India)
DEFAULT_CENTER = (20.5937, 78.9629)

CLAIMED_COLOR = "#ef4444"
CAPTURED_COLOR = "#22c55e"

# Report labels for the photo grid differ slightly from the upload labels
_EVIDENCE_LABELS = {
    "selfie": "Selfie",
    "location_picture": "Location Picture (Door / Full House)",
    "id_proof_relative": "ID Proof (Relative Verifying)",
    "id_proof_candidate": "ID Proof (The Candidate)",
    "landmark_picture": "Landmark Picture",
}


# ─── View Models ────────────────────────────────────────────────────


class Tone(str, Enum):
    NEUTRAL = "neutral"
    PASS = "pass"
    FAIL = "fail"
    PENDING = "pending"


class ReportRow(BaseModel):
    label: str
    value: str
    tone: Tone = Tone.NEUTRAL


class ComparisonRow(BaseModel):
    description: str
    source: str
    distance: str
    resolution: str
    legend_color: str


class MapPoint(BaseModel):
    label: str
    lat: float
    lng: float
    color: str


class MapOverlay(BaseModel):
    center: tuple[float, float]
    claimed: Optional[MapPoint] = None
    captured: Optional[MapPoint] = None
    radius_m: int = MATCH_RADIUS_M

    @property
    def points(self) -> list[MapPoint]:
        return [p for p in (self.claimed, self.captured) if p is not None]


class EvidenceBlock(BaseModel):
    label: str
    storage_key: str
    image: Optional[str] = None  # Data URI, None → placeholder
    timestamp: str = NOT_CAPTURED
    location: str = NOT_CAPTURED


class ReportView(BaseModel):
    """Everything a report surface needs, already formatted as text."""

    title: str = REPORT_TITLE
    record_id: str
    reference: str
    filename: str
    status: VerificationStatus
    left_rows: list[ReportRow]
    right_rows: list[ReportRow]
    comparison: list[ComparisonRow]
    distance_km: Optional[float] = None  # Rounded to 2 decimals
    distance_text: str
    claimed_text: str
    captured_text: str
    map: MapOverlay
    evidence: list[EvidenceBlock]
    generated_at: str


# ─── Projection ──────────────────────────────────────────────────────


def build_report(
    record: VerificationRecord, generated_at: datetime | None = None
) -> ReportView:
    """Project a persisted record into its report view. Pure."""
    distance = report_distance_km(record)
    distance_text = f"{distance:.2f} km" if distance is not None else EMPTY
    reference = record.ref_id or record.id

    return ReportView(
        record_id=record.id,
        reference=reference,
        filename=report_filename(record),
        status=record.verification_status,
        left_rows=[
            ReportRow(label="Instruction ID", value=_text(record.instruction_id)),
            ReportRow(label="Name", value=_text(record.name)),
            ReportRow(label="Address", value=_text(record.address)),
            ReportRow(label="Type of Address", value=_text(record.type_of_address)),
            ReportRow(label="Mobile Number", value=_text(record.mobile_number)),
            ReportRow(label="Period of Stay", value=_text(record.period_of_stay)),
        ],
        right_rows=[
            ReportRow(label="Ref ID", value=_text(record.ref_id)),
            ReportRow(label="Verification Date", value=_text(record.verification_date)),
            ReportRow(label="Ownership Status", value=_text(record.ownership_status)),
            ReportRow(label="Comment", value=_text(record.comment)),
            ReportRow(
                label="Verification Status",
                value=record.verification_status.value,
                tone=Tone(record.verification_status.value),
            ),
        ],
        comparison=[
            ComparisonRow(
                description=_text(record.address),
                source="Input Address",
                distance="0 km",
                resolution="Geocoded address",
                legend_color=CLAIMED_COLOR,
            ),
            ComparisonRow(
                description=_point_text(record.captured_lat, record.captured_lng),
                source="GPS",
                distance=distance_text,
                resolution="Device GPS capture",
                legend_color=CAPTURED_COLOR,
            ),
        ],
        distance_km=distance,
        distance_text=distance_text,
        claimed_text=_point_text(record.claimed_lat, record.claimed_lng),
        captured_text=_point_text(record.captured_lat, record.captured_lng),
        map=build_map_overlay(record),
        evidence=build_evidence_blocks(record),
        generated_at=(generated_at or datetime.now()).strftime("%d/%m/%Y, %H:%M:%S"),
    )


def report_distance_km(record: VerificationRecord) -> float | None:
    """Claimed-to-captured distance rounded to 2 decimals, None if a point is missing."""
    if None in (record.claimed_lat, record.claimed_lng, record.captured_lat, record.captured_lng):
        return None
    return round(
        haversine_km(
            record.claimed_lat, record.claimed_lng,  # type: ignore[arg-type]
            record.captured_lat, record.captured_lng,  # type: ignore[arg-type]
        ),
        2,
    )


def report_filename(record: VerificationRecord, ext: str = "pdf") -> str:
    return f"Verification-{record.ref_id or record.id}.{ext}"


def build_map_overlay(record: VerificationRecord) -> MapOverlay:
    claimed = captured = None
    if record.claimed_lat is not None and record.claimed_lng is not None:
        claimed = MapPoint(
            label="Claimed Location", lat=record.claimed_lat, lng=record.claimed_lng,
            color=CLAIMED_COLOR,
        )
    if record.captured_lat is not None and record.captured_lng is not None:
        captured = MapPoint(
            label="GPS Captured Point", lat=record.captured_lat, lng=record.captured_lng,
            color=CAPTURED_COLOR,
        )

    if claimed and captured:
        center = ((claimed.lat + captured.lat) / 2, (claimed.lng + captured.lng) / 2)
    elif claimed or captured:
        point = claimed or captured
        center = (point.lat, point.lng)  # type: ignore[union-attr]
    else:
        center = DEFAULT_CENTER

    return MapOverlay(center=center, claimed=claimed, captured=captured)


def build_evidence_blocks(record: VerificationRecord) -> list[EvidenceBlock]:
    blocks = []
    for slot in EVIDENCE_SLOTS:
        meta = getattr(record, slot.meta_key)
        blocks.append(
            EvidenceBlock(
                label=_EVIDENCE_LABELS.get(slot.storage_key, slot.label),
                storage_key=slot.storage_key,
                image=getattr(record, slot.storage_key),
                timestamp=(meta.timestamp if meta and meta.timestamp else NOT_CAPTURED),
                location=(meta.location if meta and meta.location else NOT_CAPTURED),
            )
        )
    return blocks


def _text(value: object) -> str:
    if value is None or value == "":
        return EMPTY
    return value.value if isinstance(value, Enum) else str(value)


def _point_text(lat: float | None, lng: float | None) -> str:
    if lat is None or lng is None:
        return EMPTY
    return format_location(lat, lng).replace(",", ", ")
