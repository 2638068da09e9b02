"""
Applicant workflow tests: step transitions, submit guards, evaluation
merge, persistence failure recovery and the completion callback.

Run: pytest tests/test_workflow.py -v
"""

from __future__ import annotations

import asyncio
import io
from datetime import date

import pytest
from PIL import Image

from address_verifier.config import Settings
from address_verifier.exceptions import (
    GeolocationDenied,
    ImageDecodeError,
    InvalidTransition,
    MissingIdError,
    PersistenceFailure,
    StatusRegression,
    SubmissionBlocked,
)
from address_verifier.geotag import denied_position, fixed_position
from address_verifier.models import EvaluationResult, VerificationRecord, VerificationStatus
from address_verifier.store import InMemoryVerificationStore
from address_verifier.workflow import (
    Step,
    VerificationWorkflow,
    new_instruction_id,
    new_record_id,
    new_ref_id,
)

SETTINGS = Settings(completion_delay=0.0, geotag_timeout=1.0)
HERE = fixed_position(12.0, 77.0)


def _photo() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (1024, 768), "#be123c").save(buf, format="JPEG")
    return buf.getvalue()


def _workflow(sink=None, **kwargs) -> VerificationWorkflow:
    return VerificationWorkflow(
        sink if sink is not None else InMemoryVerificationStore(),
        settings=SETTINGS,
        **kwargs,
    )


def _to_location(wf: VerificationWorkflow) -> None:
    wf.next()
    wf.next()


class FlakySink:
    """Fails the first `failures` writes with `error`, then stores normally."""

    def __init__(self, failures: int = 1, error: Exception | None = None):
        self.failures = failures
        self.error = error or PersistenceFailure("Network error. Please try again.")
        self.store = InMemoryVerificationStore()
        self.calls = 0

    def put(self, record: VerificationRecord) -> VerificationRecord:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.store.put(record)


# ═══════════════════════════════════════════════════════════════════════
# IDENTIFIERS
# ═══════════════════════════════════════════════════════════════════════


class TestIdentifiers:
    def test_shapes(self):
        assert len(new_record_id()) == 13
        assert new_instruction_id().startswith("INS-")
        ref = new_ref_id()
        assert ref.startswith("REF-")
        assert len(ref) == 10
        assert ref == ref.upper()

    def test_unique(self):
        assert len({new_record_id() for _ in range(200)}) == 200

    def test_draft_ids_fixed_for_lifetime(self):
        wf = _workflow()
        ids = (wf.draft.id, wf.draft.instruction_id, wf.draft.ref_id)
        wf.update_personal(name="Asha")
        wf.next()
        wf.back()
        assert (wf.draft.id, wf.draft.instruction_id, wf.draft.ref_id) == ids

    def test_link_id_is_used(self):
        assert _workflow(record_id="k3x9p0q1").draft.id == "k3x9p0q1"

    def test_verification_date(self):
        wf = _workflow(today=date(2026, 2, 18))
        assert wf.draft.verification_date == "2026-02-18"


# ═══════════════════════════════════════════════════════════════════════
# NAVIGATION
# ═══════════════════════════════════════════════════════════════════════


class TestNavigation:
    def test_forward_and_back(self):
        wf = _workflow()
        assert wf.step == Step.PERSONAL
        assert wf.next() == Step.PHOTOS
        assert wf.next() == Step.LOCATION
        assert wf.back() == Step.PHOTOS
        assert wf.back() == Step.PERSONAL

    def test_cannot_go_back_from_first_step(self):
        with pytest.raises(InvalidTransition):
            _workflow().back()

    def test_cannot_skip_past_location(self):
        wf = _workflow()
        _to_location(wf)
        with pytest.raises(InvalidTransition):
            wf.next()

    def test_empty_form_may_advance(self):
        wf = _workflow()
        wf.update_personal()
        assert wf.next() == Step.PHOTOS


class TestPersonalStep:
    def test_update_fields(self):
        wf = _workflow()
        wf.update_personal(name="Asha", type_of_address="Rented", mobile_number="")
        assert wf.draft.name == "Asha"
        assert wf.draft.type_of_address.value == "Rented"
        assert wf.draft.mobile_number is None

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError, match="selfie"):
            _workflow().update_personal(selfie="data:...")

    def test_period_of_stay_needs_both_ends(self):
        wf = _workflow()
        wf.set_period_of_stay("2019-06-01", None)
        assert wf.draft.period_of_stay is None
        wf.set_period_of_stay(date(2019, 6, 1), date(2025, 1, 31))
        assert wf.draft.period_of_stay == "2019-06-01 - 2025-01-31"


# ═══════════════════════════════════════════════════════════════════════
# EVIDENCE & LOCATION
# ═══════════════════════════════════════════════════════════════════════


class TestEvidence:
    def test_upload_compresses_and_geotags(self):
        wf = _workflow()
        meta = asyncio.run(wf.upload_evidence("landmark_picture", _photo(), HERE))
        assert wf.draft.landmark_picture.startswith("data:image/jpeg;base64,")
        assert meta is not None and meta.location == "12.0000000,77.0000000"
        assert wf.draft.landmark_picture_meta == meta
        assert wf.uploads.idle

    def test_denied_geotag_keeps_photo(self):
        wf = _workflow()
        meta = asyncio.run(wf.upload_evidence("selfie", _photo(), denied_position()))
        assert meta is None
        assert wf.draft.selfie is not None
        assert wf.draft.selfie_meta is None

    def test_bad_image_leaves_slot_untouched(self):
        wf = _workflow()
        asyncio.run(wf.upload_evidence("selfie", _photo()))
        before = wf.draft.selfie
        with pytest.raises(ImageDecodeError):
            asyncio.run(wf.upload_evidence("selfie", b"garbage"))
        assert wf.draft.selfie == before
        assert wf.uploads.idle

    def test_unknown_slot(self):
        with pytest.raises(KeyError):
            asyncio.run(_workflow().upload_evidence("passport", _photo()))

    def test_slots_upload_concurrently(self):
        wf = _workflow()

        async def _run():
            await asyncio.gather(
                wf.upload_evidence("selfie", _photo(), HERE),
                wf.upload_evidence("location_picture", _photo(), HERE),
                wf.upload_evidence("id_proof_candidate", _photo(), HERE),
            )

        asyncio.run(_run())
        assert all((wf.draft.selfie, wf.draft.location_picture, wf.draft.id_proof_candidate))
        assert wf.draft.id_proof_relative is None


class TestLocation:
    def test_first_capture_wins(self):
        wf = _workflow()
        asyncio.run(wf.capture_location(HERE))
        asyncio.run(wf.capture_location(fixed_position(40.0, -74.0)))
        assert (wf.draft.captured_lat, wf.draft.captured_lng) == (12.0, 77.0)
        assert wf.draft.captured_timestamp is not None

    def test_denied_leaves_no_position(self):
        wf = _workflow()
        with pytest.raises(GeolocationDenied):
            asyncio.run(wf.capture_location(denied_position()))
        assert not wf.has_position


# ═══════════════════════════════════════════════════════════════════════
# SUBMISSION
# ═══════════════════════════════════════════════════════════════════════


class TestSubmitGuards:
    def test_blocked_without_position(self):
        wf = _workflow()
        _to_location(wf)
        assert not wf.can_submit
        with pytest.raises(SubmissionBlocked):
            asyncio.run(wf.submit())
        assert wf.step == Step.LOCATION

    def test_blocked_while_upload_in_flight(self):
        wf = _workflow()
        _to_location(wf)
        asyncio.run(wf.capture_location(HERE))
        wf.uploads.begin()
        assert not wf.can_submit
        with pytest.raises(SubmissionBlocked):
            asyncio.run(wf.submit())
        wf.uploads.end()
        assert wf.can_submit

    def test_blocked_outside_location_step(self):
        wf = _workflow()
        asyncio.run(wf.capture_location(HERE))
        assert not wf.can_submit


class TestSubmit:
    def _ready(self, sink=None, **kwargs) -> VerificationWorkflow:
        wf = _workflow(sink, **kwargs)
        _to_location(wf)
        asyncio.run(wf.capture_location(HERE))
        return wf

    def test_empty_submission_persists_with_fallback(self):
        store = InMemoryVerificationStore()
        wf = self._ready(store)
        reference = asyncio.run(wf.submit())

        assert reference == wf.draft.ref_id
        assert wf.step == Step.SUCCESS
        record = store.get(wf.draft.id)
        assert record.verification_status == VerificationStatus.PASS
        assert record.comment == "Verified manually by system."
        assert record.claimed_lat == pytest.approx(12.002)
        assert record.claimed_lng == pytest.approx(77.002)
        assert record.name is None

    def test_evaluator_result_overrides_draft(self):
        store = InMemoryVerificationStore()

        def far_away(address, lat, lng, **kwargs):
            return EvaluationResult(
                verification_status=VerificationStatus.FAIL,
                comment="GPS location is 1500km away from claimed address",
                claimed_lat=26.9, claimed_lng=75.8,
            )

        wf = self._ready(store, evaluator=far_away)
        asyncio.run(wf.submit())
        record = store.get(wf.draft.id)
        assert record.verification_status == VerificationStatus.FAIL
        assert record.claimed_lat == 26.9
        assert "1500km" in record.comment

    def test_missing_evaluator_result_defaults_to_pass(self):
        store = InMemoryVerificationStore()
        wf = self._ready(store, evaluator=lambda *a, **k: None)
        asyncio.run(wf.submit())
        assert store.get(wf.draft.id).verification_status == VerificationStatus.PASS

    def test_evaluator_receives_draft_fields(self):
        seen = {}

        def spy(address, lat, lng, **kwargs):
            seen.update(address=address, lat=lat, lng=lng, name=kwargs.get("name"))
            return None

        wf = _workflow(evaluator=spy)
        wf.update_personal(name="Asha", address="12 MG Road")
        _to_location(wf)
        asyncio.run(wf.capture_location(HERE))
        asyncio.run(wf.submit())
        assert seen == {"address": "12 MG Road", "lat": 12.0, "lng": 77.0, "name": "Asha"}

    def test_placeholder_is_overwritten_not_duplicated(self):
        store = InMemoryVerificationStore()
        store.put(VerificationRecord(id="link01", name="Pending Applicant"))
        wf = self._ready(store, record_id="link01")
        wf.update_personal(name="Ravi Kumar")
        asyncio.run(wf.submit())
        assert [r.name for r in store.list_all()] == ["Ravi Kumar"]

    def test_failed_write_returns_to_location_and_resubmits(self):
        sink = FlakySink(failures=1)
        wf = self._ready(sink)
        draft_before = wf.draft.model_dump()

        with pytest.raises(PersistenceFailure):
            asyncio.run(wf.submit())
        assert wf.step == Step.LOCATION
        assert wf.last_error == "Network error. Please try again."
        assert wf.draft.model_dump() == draft_before
        assert wf.submitted is None

        reference = asyncio.run(wf.submit())
        assert reference == wf.draft.ref_id
        assert wf.step == Step.SUCCESS
        assert wf.last_error is None
        assert sink.calls == 2
        assert len(sink.store.list_all()) == 1

    @pytest.mark.parametrize(
        "error",
        [
            MissingIdError(),
            StatusRegression("Verification x is already 'pass' and cannot return to pending"),
            RuntimeError("disk full"),
        ],
        ids=["missing-id", "status-regression", "unexpected"],
    )
    def test_any_rejected_write_returns_to_location(self, error):
        sink = FlakySink(failures=1, error=error)
        wf = self._ready(sink)

        with pytest.raises(type(error)):
            asyncio.run(wf.submit())
        assert wf.step == Step.LOCATION
        assert wf.last_error
        assert wf.can_submit

        asyncio.run(wf.submit())
        assert wf.step == Step.SUCCESS
        assert len(sink.store.list_all()) == 1

    def test_blank_id_rejected_by_store_returns_to_location(self):
        wf = self._ready(record_id="   ")
        with pytest.raises(MissingIdError):
            asyncio.run(wf.submit())
        assert wf.step == Step.LOCATION
        assert wf.last_error == "Missing verification ID"

    def test_evaluator_crash_returns_to_location(self):
        calls = []

        def flaky_evaluator(address, lat, lng, **kwargs):
            calls.append(address)
            if len(calls) == 1:
                raise ValueError("geocoder exploded")
            return None

        store = InMemoryVerificationStore()
        wf = self._ready(store, evaluator=flaky_evaluator)
        with pytest.raises(ValueError):
            asyncio.run(wf.submit())
        assert wf.step == Step.LOCATION
        assert wf.last_error == "geocoder exploded"
        assert store.list_all() == []

        asyncio.run(wf.submit())
        assert store.get(wf.draft.id).verification_status == VerificationStatus.PASS

    def test_on_complete_called_with_reference(self):
        done = []
        wf = self._ready(on_complete=done.append)
        reference = asyncio.run(wf.submit())
        assert done == [reference]

    def test_async_on_complete_is_awaited(self):
        done = []

        async def finish(reference):
            done.append(reference)

        wf = self._ready(on_complete=finish)
        asyncio.run(wf.submit())
        assert done == [wf.draft.ref_id]

    def test_cannot_submit_twice(self):
        wf = self._ready()
        asyncio.run(wf.submit())
        with pytest.raises(SubmissionBlocked):
            asyncio.run(wf.submit())
