"""
Applicant workflow: a guarded state machine over one mutable draft.

Flow:
  ┌──────────┐ next  ┌────────┐ next  ┌──────────┐ submit ┌────────────┐
  │ personal │──────►│ photos │──────►│ location │───────►│ submitting │
  └──────────┘◄──────└────────┘◄──────└──────────┘        └─────┬──────┘
                back             back       ▲    save failed    │ saved
                                            └───────────────────┤
                                                          ┌─────▼─────┐
                                                          │  success  │
                                                          └───────────┘

Rules:
  - Personal fields are all optional; an empty draft may be submitted.
  - Submit needs a captured position AND no evidence upload in flight.
  - Submission runs the evaluator, then performs exactly one upsert.
  - A failed evaluation or write returns to `location` with the draft
    untouched, so the applicant can simply press submit again. Nothing
    retries on its own.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import secrets
import string
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Optional, Protocol

from .config import Settings
from .evaluator import evaluate_address
from .evidence import UploadTracker, get_slot
from .exceptions import AddressVerificationError, InvalidTransition, SubmissionBlocked
from .geotag import CAPTURE_TIMESTAMP_FORMAT, Position, PositionProvider, geotag_capture, read_position
from .imaging import compress_image
from .models import EvaluationResult, PhotoMetadata, VerificationRecord, VerificationStatus

logger = logging.getLogger(__name__)


# ─── States & Transitions ────────────────────────────────────────────


class Step(str, Enum):
    PERSONAL = "personal"
    PHOTOS = "photos"
    LOCATION = "location"
    SUBMITTING = "submitting"
    SUCCESS = "success"


class Action(str, Enum):
    NEXT = "next"
    BACK = "back"
    SUBMIT = "submit"
    SAVED = "saved"
    SAVE_FAILED = "save_failed"


TRANSITIONS: dict[tuple[Step, Action], Step] = {
    (Step.PERSONAL, Action.NEXT): Step.PHOTOS,
    (Step.PHOTOS, Action.BACK): Step.PERSONAL,
    (Step.PHOTOS, Action.NEXT): Step.LOCATION,
    (Step.LOCATION, Action.BACK): Step.PHOTOS,
    (Step.LOCATION, Action.SUBMIT): Step.SUBMITTING,
    (Step.SUBMITTING, Action.SAVED): Step.SUCCESS,
    (Step.SUBMITTING, Action.SAVE_FAILED): Step.LOCATION,
}

PERSONAL_FIELDS: frozenset[str] = frozenset({
    "name", "address", "type_of_address", "mobile_number", "ownership_status",
})


# ─── Identifiers ─────────────────────────────────────────────────────

_BASE36 = string.digits + string.ascii_lowercase


def random_token(length: int) -> str:
    """Random lowercase base-36 token."""
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def new_record_id() -> str:
    return random_token(13)


def new_instruction_id() -> str:
    return "INS-" + random_token(6).upper()


def new_ref_id() -> str:
    return "REF-" + random_token(6).upper()


# ─── Collaborators ───────────────────────────────────────────────────


class RecordSink(Protocol):
    """Anything that can persist a record: a store or the API client."""

    def put(self, record: VerificationRecord) -> Any: ...


Evaluator = Callable[..., Optional[EvaluationResult]]


# ─── Workflow ────────────────────────────────────────────────────────


class VerificationWorkflow:
    """Drives one applicant from the personal step to a persisted record.

    Usage:
        wf = VerificationWorkflow(store, record_id=link_id)
        wf.update_personal(name="Asha", address="12 MG Road, Pune")
        wf.next()
        await wf.upload_evidence("selfie", photo_bytes, provider)
        wf.next()
        await wf.capture_location(provider)
        ref_id = await wf.submit()
    """

    def __init__(
        self,
        sink: RecordSink,
        *,
        record_id: str | None = None,
        evaluator: Evaluator | None = None,
        settings: Settings | None = None,
        on_complete: Callable[[str], Any] | None = None,
        today: date | None = None,
    ):
        self.sink = sink
        self.settings = settings or Settings.from_env()
        self.evaluator = evaluator or evaluate_address
        self.on_complete = on_complete

        self.step = Step.PERSONAL
        self.uploads = UploadTracker()
        self.last_error: str | None = None
        self.submitted: VerificationRecord | None = None

        self._stay_start: str | None = None
        self._stay_end: str | None = None

        # Identifiers are fixed for the lifetime of the draft
        self.draft = VerificationRecord(
            id=record_id or new_record_id(),
            instruction_id=new_instruction_id(),
            ref_id=new_ref_id(),
            verification_status=VerificationStatus.PENDING,
            verification_date=(today or date.today()).isoformat(),
        )

    # ─── Guards ──────────────────────────────────────────────────────

    @property
    def has_position(self) -> bool:
        return self.draft.captured_lat is not None and self.draft.captured_lng is not None

    @property
    def can_submit(self) -> bool:
        return self.step == Step.LOCATION and self.has_position and self.uploads.idle

    # ─── Navigation ──────────────────────────────────────────────────

    def next(self) -> Step:
        return self._transition(Action.NEXT)

    def back(self) -> Step:
        return self._transition(Action.BACK)

    def _transition(self, action: Action) -> Step:
        target = TRANSITIONS.get((self.step, action))
        if target is None:
            raise InvalidTransition(
                f"Cannot {action.value} from step '{self.step.value}'",
                {"step": self.step.value, "action": action.value},
            )
        logger.debug("Workflow %s: %s -> %s", self.draft.id, self.step.value, target.value)
        self.step = target
        return target

    # ─── Personal Step ───────────────────────────────────────────────

    def update_personal(self, **fields: Any) -> None:
        """Set personal fields. None of them is required."""
        unknown = set(fields) - PERSONAL_FIELDS
        if unknown:
            raise ValueError(f"Not a personal field: {', '.join(sorted(unknown))}")
        for key, value in fields.items():
            setattr(self.draft, key, value if value != "" else None)

    def set_period_of_stay(self, start: date | str | None, end: date | str | None) -> None:
        """period_of_stay becomes "<start> - <end>" once both ends are known."""
        self._stay_start = _as_date_text(start)
        self._stay_end = _as_date_text(end)
        if self._stay_start and self._stay_end:
            self.draft.period_of_stay = f"{self._stay_start} - {self._stay_end}"

    # ─── Photos Step ─────────────────────────────────────────────────

    async def upload_evidence(
        self,
        storage_key: str,
        raw: bytes,
        provider: PositionProvider | None = None,
    ) -> PhotoMetadata | None:
        """Compress one evidence photo and geotag it.

        Raises:
            KeyError: Unknown evidence slot.
            ImageDecodeError: The photo could not be decoded; the slot keeps
                its previous value.
        """
        slot = get_slot(storage_key)
        with self.uploads.track():
            data_uri = await asyncio.to_thread(compress_image, raw)
            meta = await geotag_capture(provider, self.settings.geotag_timeout)

        setattr(self.draft, slot.storage_key, data_uri)
        setattr(self.draft, slot.meta_key, meta)
        logger.info(
            "Evidence '%s' attached to %s (%s)",
            slot.label, self.draft.id, "geotagged" if meta else "no geotag",
        )
        return meta

    # ─── Location Step ───────────────────────────────────────────────

    async def capture_location(
        self, provider: PositionProvider, now: Callable[[], datetime] = datetime.now
    ) -> Position:
        """Record the device position. Only the first successful read counts.

        Raises:
            GeolocationDenied: Location access refused or unavailable.
        """
        if self.has_position:
            return Position(self.draft.captured_lat, self.draft.captured_lng)  # type: ignore[arg-type]

        position = await read_position(provider, self.settings.geotag_timeout)
        self.draft.captured_lat = position.lat
        self.draft.captured_lng = position.lng
        self.draft.captured_timestamp = now().strftime(CAPTURE_TIMESTAMP_FORMAT)
        return position

    # ─── Submission ──────────────────────────────────────────────────

    async def submit(self) -> str:
        """Evaluate, persist once, and hand back the reference id.

        Raises:
            SubmissionBlocked: No captured position, or uploads in flight.
            PersistenceFailure: The write failed.
            Any evaluator or sink error is re-raised as is. In every failure
            case the workflow is back on `location` with the draft untouched
            and `last_error` holding the message.
        """
        if not self.can_submit:
            raise SubmissionBlocked(
                "Capture your location and wait for uploads to finish before submitting",
                {
                    "step": self.step.value,
                    "has_position": self.has_position,
                    "uploads_in_flight": self.uploads.in_flight,
                },
            )
        self._transition(Action.SUBMIT)
        self.last_error = None

        try:
            result = await asyncio.to_thread(
                self.evaluator,
                self.draft.address,
                self.draft.captured_lat,
                self.draft.captured_lng,
                name=self.draft.name,
                settings=self.settings,
            )
            final = self._merge(result)
            await asyncio.to_thread(self.sink.put, final)
        except AddressVerificationError as e:
            self._fail_submission(e.message)
            raise
        except Exception as e:
            self._fail_submission(str(e) or type(e).__name__)
            raise

        self.submitted = final
        self._transition(Action.SAVED)
        reference = final.ref_id or final.id

        await asyncio.sleep(self.settings.completion_delay)
        if self.on_complete is not None:
            outcome = self.on_complete(reference)
            if inspect.isawaitable(outcome):
                await outcome
        return reference

    def _fail_submission(self, message: str) -> None:
        logger.error("Submission of %s failed: %s", self.draft.id, message)
        self.last_error = message
        self._transition(Action.SAVE_FAILED)

    def _merge(self, result: EvaluationResult | None) -> VerificationRecord:
        """Evaluator fields override the draft; the draft itself is not touched."""
        final = self.draft.model_copy(deep=True)
        if result is not None:
            for key, value in result.model_dump().items():
                setattr(final, key, value)
        if final.verification_status == VerificationStatus.PENDING:
            final.verification_status = VerificationStatus.PASS
        return final


def _as_date_text(value: date | str | None) -> str | None:
    if value is None or value == "":
        return None
    return value.isoformat() if isinstance(value, date) else str(value)
