"""
Device position reads and photo geotags.

A position provider is any zero-argument coroutine function returning a
Position; it raises GeolocationDenied when the applicant refuses access.
Browsers, mobile clients and the demo each plug in their own provider.

Geotagging a photo is optional: geotag_capture() never raises, it returns
None and the photo is kept without a caption location.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable

from .exceptions import GeolocationDenied
from .geo import format_location
from .models import PhotoMetadata

logger = logging.getLogger(__name__)

GEOTAG_TIMEOUT = 10.0

PHOTO_TIMESTAMP_FORMAT = "%Y:%m:%d %H:%M:%S"
CAPTURE_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class Position:
    """A device-reported coordinate."""

    lat: float
    lng: float
    accuracy_m: float | None = None


PositionProvider = Callable[[], Awaitable[Position]]


def fixed_position(lat: float, lng: float) -> PositionProvider:
    """Provider for a position the client already reported (e.g. in a request body)."""

    async def _provider() -> Position:
        return Position(lat, lng)

    return _provider


def denied_position(reason: str = "User denied Geolocation") -> PositionProvider:
    async def _provider() -> Position:
        raise GeolocationDenied(reason)

    return _provider


async def read_position(
    provider: PositionProvider, timeout: float = GEOTAG_TIMEOUT
) -> Position:
    """Read the device position with a bounded wait.

    Raises:
        GeolocationDenied: On refusal, provider failure or timeout.
    """
    try:
        return await asyncio.wait_for(provider(), timeout=timeout)
    except GeolocationDenied:
        raise
    except asyncio.TimeoutError as e:
        raise GeolocationDenied(
            f"Timed out after {timeout:.0f}s waiting for a position",
            {"timeout": timeout},
        ) from e
    except Exception as e:
        raise GeolocationDenied(f"Position unavailable: {e}") from e


async def geotag_capture(
    provider: PositionProvider | None,
    timeout: float = GEOTAG_TIMEOUT,
    now: Callable[[], datetime] = datetime.now,
) -> PhotoMetadata | None:
    """Stamp a photo with the capture instant and current position.

    Returns:
        PhotoMetadata on success, None when no position could be read.
        Failure is NOT an error; the photo is still accepted.
    """
    if provider is None:
        return None

    try:
        position = await read_position(provider, timeout)
    except GeolocationDenied as e:
        logger.info("Photo kept without geotag: %s", e)
        return None

    return PhotoMetadata(
        timestamp=now().strftime(PHOTO_TIMESTAMP_FORMAT),
        location=format_location(position.lat, position.lng),
    )
