"""
Custom exception hierarchy for address verification.

Each exception type maps to one failure category of the workflow, so the
API layer can translate it into an HTTP status and the workflow can decide
whether to degrade silently or surface the problem to the applicant.
"""

from __future__ import annotations


class AddressVerificationError(Exception):
    """Base exception for all address verification failures."""

    def __init__(self, code: str, message: str, details: dict | None = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ImageDecodeError(AddressVerificationError):
    """The uploaded evidence image could not be decoded."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("IMAGE_DECODE_FAILED", message, details)


class GeolocationDenied(AddressVerificationError):
    """The device refused or failed to report its position."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("GEOLOCATION_DENIED", message, details)


class EvaluatorUnavailable(AddressVerificationError):
    """The external geocoding model could not be used. Never leaves the evaluator."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("EVALUATOR_UNAVAILABLE", message, details)


class PersistenceFailure(AddressVerificationError):
    """The record store rejected or failed the write."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("PERSISTENCE_FAILED", message, details)


class RecordNotFound(AddressVerificationError):
    """No record exists for the requested id."""

    def __init__(self, record_id: str):
        super().__init__(
            "NOT_FOUND", "Verification not found", {"id": record_id}
        )


class MissingIdError(AddressVerificationError):
    """A record was written without an id."""

    def __init__(self, message: str = "Missing verification ID"):
        super().__init__("MISSING_ID", message)


class StatusRegression(AddressVerificationError):
    """An evaluated record (pass/fail) cannot go back to pending."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("STATUS_REGRESSION", message, details)


class InvalidTransition(AddressVerificationError):
    """The workflow was asked to move between steps that are not connected."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("INVALID_TRANSITION", message, details)


class SubmissionBlocked(AddressVerificationError):
    """Submit was attempted without a captured position or with uploads in flight."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("SUBMISSION_BLOCKED", message, details)
