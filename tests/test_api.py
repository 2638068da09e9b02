"""
FastAPI endpoint tests for the Address Verifier API.

Uses httpx + FastAPI TestClient. No real server, no LLM calls,
records live in an in-memory store.
"""

from __future__ import annotations

import asyncio
import io

import api
import pytest
from api import app
from fastapi.testclient import TestClient
from PIL import Image

from address_verifier.client import VerificationApiClient
from address_verifier.config import Settings
from address_verifier.exceptions import MissingIdError, PersistenceFailure, RecordNotFound
from address_verifier.geotag import fixed_position
from address_verifier.models import VerificationRecord
from address_verifier.store import InMemoryVerificationStore, utc_now_iso
from address_verifier.workflow import VerificationWorkflow

client = TestClient(app)

SETTINGS = Settings(public_base_url="https://verify.example.com", completion_delay=0.0)


@pytest.fixture(autouse=True)
def _fresh_store() -> None:
    """A clean in-memory store per test (bypasses lifespan)."""
    api._store = InMemoryVerificationStore()
    api._settings = SETTINGS
    yield  # type: ignore[misc]
    api._store = None
    api._settings = None


def _photo(width: int = 1200, height: int = 900) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), "#0f766e").save(buf, format="JPEG")
    return buf.getvalue()


EVALUATED = {
    "id": "k3x9p0q1",
    "ref_id": "REF-7Q2W9Z",
    "instruction_id": "INS-AB12CD",
    "name": "Asha Menon",
    "address": "12 MG Road, Bengaluru",
    "captured_lat": 12.0,
    "captured_lng": 77.0,
    "claimed_lat": 12.002,
    "claimed_lng": 77.002,
    "verification_status": "pass",
    "comment": "Verified manually by system.",
}


class TestHealthEndpoint:
    def test_health_returns_200(self) -> None:
        assert client.get("/health").status_code == 200

    def test_health_response_shape(self) -> None:
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["version"] == "1.0.0"
        assert data["store"] == "InMemoryVerificationStore"
        assert data["evaluator"] == "fallback"

    def test_no_store_is_503(self) -> None:
        api._store = None
        assert client.get("/health").status_code == 503


class TestRecordEndpoints:
    def test_upsert_then_fetch(self) -> None:
        """Pending write, then fetch, then evaluated overwrite under the same id."""
        resp = client.post(
            "/verifications",
            json={"id": "abc123", "name": "Test", "verification_status": "pending"},
        )
        assert resp.status_code == 201
        assert resp.json() == {"success": True, "id": "abc123"}

        data = client.get("/verifications/abc123").json()
        assert data["id"] == "abc123"
        assert data["name"] == "Test"
        assert data["verification_status"] == "pending"
        assert data["created_at"]
        first_created = data["created_at"]

        resp = client.post(
            "/verifications",
            json={"id": "abc123", "name": "Test", "verification_status": "pass"},
        )
        assert resp.status_code == 201

        listed = client.get("/verifications").json()
        assert len(listed) == 1
        assert listed[0]["verification_status"] == "pass"
        assert listed[0]["created_at"] == first_created

    def test_missing_id_is_400(self) -> None:
        resp = client.post("/verifications", json={"name": "No Id"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Missing verification ID"}

    def test_invalid_field_is_400(self) -> None:
        resp = client.post("/verifications", json={"id": "x1", "type_of_address": "Castle"})
        assert resp.status_code == 400
        assert "type_of_address" in resp.json()["error"]

    def test_client_created_at_is_ignored(self) -> None:
        client.post("/verifications", json={"id": "x1", "created_at": "1999-01-01T00:00:00"})
        assert client.get("/verifications/x1").json()["created_at"] != "1999-01-01T00:00:00"

    def test_unknown_id_is_404(self) -> None:
        resp = client.get("/verifications/does-not-exist")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Verification not found"}

    def test_regression_to_pending_is_409(self) -> None:
        client.post("/verifications", json={"id": "x1", "verification_status": "fail"})
        resp = client.post("/verifications", json={"id": "x1", "verification_status": "pending"})
        assert resp.status_code == 409
        assert client.get("/verifications/x1").json()["verification_status"] == "fail"

    def test_unset_fields_are_omitted(self) -> None:
        client.post("/verifications", json={"id": "x1"})
        data = client.get("/verifications/x1").json()
        assert "selfie" not in data
        assert "name" not in data

    def test_delete_one(self) -> None:
        client.post("/verifications", json={"id": "x1"})
        assert client.delete("/verifications/x1").json() == {"success": True}
        assert client.get("/verifications/x1").status_code == 404

    def test_delete_missing_is_success(self) -> None:
        assert client.delete("/verifications/ghost").status_code == 200

    def test_delete_all(self) -> None:
        for i in range(3):
            client.post("/verifications", json={"id": f"r{i}"})
        assert client.delete("/verifications").json() == {"success": True, "deleted": 3}
        assert client.get("/verifications").json() == []


class TestLinkEndpoint:
    def test_creates_pending_placeholder(self) -> None:
        resp = client.post("/verifications/links")
        assert resp.status_code == 201
        data = resp.json()
        assert data["link"] == f"https://verify.example.com/?verify={data['id']}"

        record = client.get(f"/verifications/{data['id']}").json()
        assert record["name"] == "Pending Applicant"
        assert record["verification_status"] == "pending"


class TestReportEndpoints:
    def _seed(self) -> str:
        client.post("/verifications", json=EVALUATED)
        return EVALUATED["id"]

    def test_report_json(self) -> None:
        data = client.get(f"/verifications/{self._seed()}/report").json()
        assert data["distance_text"] == "0.31 km"
        assert data["filename"] == "Verification-REF-7Q2W9Z.pdf"
        assert data["status"] == "pass"

    def test_report_html(self) -> None:
        resp = client.get(f"/verifications/{self._seed()}/report.html")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/html")
        assert "0.31 km" in resp.text
        assert "Print Report" in resp.text
        assert "window.print()" not in resp.text

    def test_print_view(self) -> None:
        resp = client.get(f"/verifications/{self._seed()}/report.html?print=true")
        assert "0.31 km" in resp.text
        assert "Print Report" not in resp.text
        assert "window.print()" in resp.text

    def test_report_pdf(self) -> None:
        resp = client.get(f"/verifications/{self._seed()}/report.pdf")
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/pdf"
        assert 'filename="Verification-REF-7Q2W9Z.pdf"' in resp.headers["content-disposition"]
        assert resp.content.startswith(b"%PDF")

    def test_report_for_unknown_id_is_404(self) -> None:
        assert client.get("/verifications/nope/report.html").status_code == 404


class TestEvaluationEndpoint:
    def test_fallback_without_model(self) -> None:
        resp = client.post(
            "/evaluations",
            json={"address": "12 MG Road", "captured_lat": 12.0, "captured_lng": 77.0},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["verification_status"] == "pass"
        assert data["comment"] == "Verified manually by system."
        assert data["claimed_lat"] == pytest.approx(12.002)
        assert data["claimed_lng"] == pytest.approx(77.002)
        assert "source" not in data

    def test_empty_request_still_answers(self) -> None:
        data = client.post("/evaluations", json={}).json()
        assert data["claimed_lat"] == pytest.approx(0.002)


class TestImageEndpoint:
    def test_compresses_upload(self) -> None:
        resp = client.post(
            "/images/compress",
            files={"file": ("door.jpg", _photo(1600, 1200), "image/jpeg")},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["image"].startswith("data:image/jpeg;base64,")
        assert data["size"] == len(data["image"])

    def test_rejects_non_image(self) -> None:
        resp = client.post(
            "/images/compress",
            files={"file": ("notes.txt", b"not an image", "text/plain")},
        )
        assert resp.status_code == 400
        assert "error" in resp.json()

    @pytest.mark.parametrize(
        "params", [{"max_width": 0}, {"max_width": -10}, {"quality": 0}, {"quality": 2}]
    )
    def test_out_of_range_parameters_are_400(self, params) -> None:
        resp = client.post(
            "/images/compress",
            params=params,
            files={"file": ("door.png", _photo(100, 50), "image/png")},
        )
        assert resp.status_code == 400
        assert "error" in resp.json()

    def test_oversized_image_is_400(self, monkeypatch) -> None:
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1_000)
        resp = client.post(
            "/images/compress",
            files={"file": ("huge.jpg", _photo(200, 200), "image/jpeg")},
        )
        assert resp.status_code == 400
        assert "error" in resp.json()


class TestApiClient:
    """The workflow persisting through the HTTP API instead of a local store."""

    def test_put_and_get(self) -> None:
        api_client = VerificationApiClient(client=client)
        api_client.put(VerificationRecord(id="c1", name="Via HTTP"))
        assert api_client.get("c1").name == "Via HTTP"
        assert [r.id for r in api_client.list_all()] == ["c1"]
        assert api_client.delete_all() == 1

    def test_missing_id(self) -> None:
        with pytest.raises(MissingIdError):
            VerificationApiClient(client=client).put(VerificationRecord())

    def test_not_found(self) -> None:
        with pytest.raises(RecordNotFound):
            VerificationApiClient(client=client).get("ghost")

    def test_rejected_write_is_persistence_failure(self) -> None:
        client.post("/verifications", json={"id": "x1", "verification_status": "pass"})
        with pytest.raises(PersistenceFailure, match="cannot return to pending"):
            VerificationApiClient(client=client).put(VerificationRecord(id="x1"))

    def test_server_rejection_returns_workflow_to_location(self) -> None:
        wf = VerificationWorkflow(
            VerificationApiClient(client=client), record_id="   ", settings=SETTINGS
        )
        wf.next()
        wf.next()
        asyncio.run(wf.capture_location(fixed_position(12.0, 77.0)))

        with pytest.raises(PersistenceFailure):
            asyncio.run(wf.submit())
        assert wf.step.value == "location"
        assert "Missing verification ID" in wf.last_error
        assert wf.can_submit

    def test_placeholder_submitted_and_listed_first(self) -> None:
        stamps = iter(["2024-01-01T00:00:00+00:00"])
        api._store = InMemoryVerificationStore(clock=lambda: next(stamps, None) or utc_now_iso())
        api._store.put(VerificationRecord(id="older", name="Earlier"))
        client.post(
            "/verifications",
            json={"id": "abc123", "name": "Pending Applicant", "verification_status": "pending"},
        )
        wf = VerificationWorkflow(
            VerificationApiClient(client=client), record_id="abc123", settings=SETTINGS
        )
        wf.next()
        wf.next()

        async def _run() -> str:
            await wf.capture_location(fixed_position(17.6983203, 83.162918))
            return await wf.submit()

        asyncio.run(_run())

        listed = client.get("/verifications").json()
        assert [r["id"] for r in listed] == ["abc123", "older"]
        assert listed[0]["verification_status"] == "pass"
        assert listed[0]["claimed_lat"] == pytest.approx(17.7003203)
        assert listed[0]["claimed_lng"] == pytest.approx(83.164918)

    def test_applicant_link_end_to_end(self) -> None:
        link = client.post("/verifications/links").json()
        wf = VerificationWorkflow(
            VerificationApiClient(client=client), record_id=link["id"], settings=SETTINGS
        )
        wf.update_personal(name="Asha Menon", address="12 MG Road, Bengaluru")
        wf.next()

        async def _run() -> str:
            await wf.upload_evidence("selfie", _photo(), fixed_position(12.0, 77.0))
            wf.next()
            await wf.capture_location(fixed_position(12.0, 77.0))
            return await wf.submit()

        reference = asyncio.run(_run())
        assert reference.startswith("REF-")

        record = client.get(f"/verifications/{link['id']}").json()
        assert record["name"] == "Asha Menon"
        assert record["verification_status"] == "pass"
        assert record["selfie_meta"]["location"] == "12.0000000,77.0000000"
        assert len(client.get("/verifications").json()) == 1
