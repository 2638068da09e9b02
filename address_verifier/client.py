"""
HTTP client for the /verifications API.

Implements the same put/get/list/delete contract as the stores, so an
applicant workflow running on another machine persists through the API
exactly like a local workflow persists into a store.
"""

from __future__ import annotations

import logging

import httpx

from .exceptions import MissingIdError, PersistenceFailure, RecordNotFound
from .models import VerificationRecord

logger = logging.getLogger(__name__)


class VerificationApiClient:
    """Thin wrapper over httpx; any httpx.Client (including TestClient) works."""

    def __init__(self, base_url: str | None = None, client: httpx.Client | None = None,
                 timeout: float = 30.0):
        if client is None and base_url is None:
            raise ValueError("Either base_url or client is required")
        self.http = client or httpx.Client(base_url=base_url, timeout=timeout)

    def put(self, record: VerificationRecord) -> VerificationRecord:
        if not record.id:
            raise MissingIdError()
        try:
            resp = self.http.post("/verifications", json=record.to_document())
        except httpx.HTTPError as e:
            logger.error("Submission error: %s", e)
            raise PersistenceFailure("Network error. Please try again.") from e

        # 400 (bad payload), 409 (status regression) and 5xx all reject the write
        if resp.is_error:
            raise PersistenceFailure(f"Submission failed: {_error_message(resp)}")
        return record

    def get(self, record_id: str) -> VerificationRecord:
        resp = self._request("GET", f"/verifications/{record_id}")
        if resp.status_code == 404:
            raise RecordNotFound(record_id)
        self._raise_for_error(resp)
        return VerificationRecord.model_validate(resp.json())

    def list_all(self) -> list[VerificationRecord]:
        resp = self._request("GET", "/verifications")
        self._raise_for_error(resp)
        return [VerificationRecord.model_validate(d) for d in resp.json()]

    def delete(self, record_id: str) -> None:
        self._raise_for_error(self._request("DELETE", f"/verifications/{record_id}"))

    def delete_all(self) -> int:
        resp = self._request("DELETE", "/verifications")
        self._raise_for_error(resp)
        return int(resp.json().get("deleted", 0))

    def _request(self, method: str, url: str) -> httpx.Response:
        try:
            return self.http.request(method, url)
        except httpx.HTTPError as e:
            raise PersistenceFailure(f"Network error: {e}") from e

    @staticmethod
    def _raise_for_error(resp: httpx.Response) -> None:
        if resp.is_error:
            raise PersistenceFailure(_error_message(resp))


def _error_message(resp: httpx.Response) -> str:
    try:
        return str(resp.json().get("error") or "Unknown error")
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
