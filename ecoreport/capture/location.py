"""
Location acquisition for report tagging

Obtains a best-effort device position. Permission refusal, unavailable
position and timeout are distinguished for logging and messages but all
degrade to "no location": a report never requires one.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple

from ecoreport.core.config import settings
from ecoreport.core.exceptions import PermissionDenied, describe_error
from ecoreport.core.geo_utils import Location, is_placeholder_coordinate, is_valid_coordinate

logger = logging.getLogger(__name__)


class PermissionStatus(str, Enum):
    """Answer to a platform permission request."""
    GRANTED = "granted"
    DENIED = "denied"
    NEVER_ASK_AGAIN = "never_ask_again"


class LocationFailure(str, Enum):
    """Why no location is available."""
    PERMISSION_DENIED = "permission_denied"
    POSITION_UNAVAILABLE = "position_unavailable"
    TIMEOUT = "timeout"


FAILURE_MESSAGES = {
    LocationFailure.POSITION_UNAVAILABLE: (
        "Location information is unavailable. Please check your device's location services."
    ),
    LocationFailure.TIMEOUT: "Location request timed out. Please try again.",
}


class PositionError(Exception):
    """
    Raised by a platform when a fix cannot be produced.

    Codes follow the geolocation convention: 1 permission denied,
    2 position unavailable, 3 timeout.
    """

    PERMISSION_DENIED = 1
    POSITION_UNAVAILABLE = 2
    TIMEOUT = 3

    def __init__(self, code: int, message: str = ""):
        self.code = code
        super().__init__(message or f"Position error {code}")

    @property
    def failure(self) -> LocationFailure:
        if self.code == self.PERMISSION_DENIED:
            return LocationFailure.PERMISSION_DENIED
        if self.code == self.TIMEOUT:
            return LocationFailure.TIMEOUT
        return LocationFailure.POSITION_UNAVAILABLE


class LocationPlatform(ABC):
    """Device location services."""

    @abstractmethod
    async def check_permission(self) -> PermissionStatus:
        """Current permission state without prompting."""

    @abstractmethod
    async def request_permission(self) -> PermissionStatus:
        """Prompt the user for location permission."""

    @abstractmethod
    async def get_current_position(self, high_accuracy: bool, maximum_age_ms: int) -> Location:
        """Produce a fix. Raises PositionError."""


class StaticLocationPlatform(LocationPlatform):
    """
    Platform reporting a fixed position.

    Suitable for fixed installations and kiosks where the position is
    configured rather than sensed.
    """

    def __init__(
        self,
        location: Optional[Location],
        permission: PermissionStatus = PermissionStatus.GRANTED
    ):
        self.location = location
        self.permission = permission
        self.position_requests = 0

    async def check_permission(self) -> PermissionStatus:
        return self.permission

    async def request_permission(self) -> PermissionStatus:
        return self.permission

    async def get_current_position(self, high_accuracy: bool, maximum_age_ms: int) -> Location:
        self.position_requests += 1
        if self.location is None:
            raise PositionError(PositionError.POSITION_UNAVAILABLE, "No position configured")
        return self.location


@dataclass
class LocationResult:
    """Outcome of one acquisition attempt."""
    location: Optional[Location] = None
    failure: Optional[LocationFailure] = None
    from_cache: bool = False

    @property
    def available(self) -> bool:
        return self.location is not None

    @property
    def exception(self) -> Optional[PermissionDenied]:
        """Refusal as a core error. Unavailable and timed out fixes are not errors."""
        if self.failure == LocationFailure.PERMISSION_DENIED:
            return PermissionDenied("Location permission denied", resource="location")
        return None

    @property
    def message(self) -> Optional[str]:
        if self.failure == LocationFailure.PERMISSION_DENIED:
            return describe_error(self.exception)
        return FAILURE_MESSAGES.get(self.failure) if self.failure else None


class LocationAcquirer:
    """
    Best-effort position with permission negotiation and timeout fallback.

    A fix younger than ``maximum_age_ms`` is reused without asking the
    platform again.
    """

    def __init__(
        self,
        platform: LocationPlatform,
        timeout_ms: Optional[int] = None,
        maximum_age_ms: Optional[int] = None,
        high_accuracy: Optional[bool] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize acquirer.

        Args:
            platform: Device location services
            timeout_ms: Default bound on a fix request
            maximum_age_ms: Accepted staleness of a cached fix
            high_accuracy: Request a high-accuracy fix
            clock: Monotonic time source in seconds
        """
        self.platform = platform
        self.timeout_ms = timeout_ms if timeout_ms is not None else settings.location_timeout_ms
        self.maximum_age_ms = (
            maximum_age_ms if maximum_age_ms is not None else settings.location_maximum_age_ms
        )
        self.high_accuracy = (
            high_accuracy if high_accuracy is not None else settings.location_high_accuracy
        )
        self.clock = clock
        self._last_fix: Optional[Tuple[Location, float]] = None

    async def acquire_location(self, timeout_ms: Optional[int] = None) -> Optional[Location]:
        """Position or None. Never raises for acquisition failures."""
        result = await self.acquire(timeout_ms)
        return result.location

    async def acquire(self, timeout_ms: Optional[int] = None) -> LocationResult:
        """
        Acquire a position, reporting why when none is available.

        Args:
            timeout_ms: Bound on the fix request (defaults to the configured timeout)

        Returns:
            LocationResult
        """
        if not await self._ensure_permission():
            logger.info("Location unavailable: permission denied")
            return LocationResult(failure=LocationFailure.PERMISSION_DENIED)

        cached = self._cached_fix()
        if cached is not None:
            return LocationResult(location=cached, from_cache=True)

        timeout = (timeout_ms if timeout_ms is not None else self.timeout_ms) / 1000.0

        try:
            location = await asyncio.wait_for(
                self.platform.get_current_position(self.high_accuracy, self.maximum_age_ms),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Location request timed out after {timeout:.1f}s")
            return LocationResult(failure=LocationFailure.TIMEOUT)
        except PositionError as e:
            logger.warning(f"Location error: {e}")
            return LocationResult(failure=e.failure)

        if (
            location is None
            or not is_valid_coordinate(location.latitude, location.longitude)
            or is_placeholder_coordinate(location.latitude, location.longitude)
        ):
            logger.warning(f"Platform returned an invalid position: {location}")
            return LocationResult(failure=LocationFailure.POSITION_UNAVAILABLE)

        self._last_fix = (location, self.clock())
        logger.info(f"Location obtained: {location.format()}")
        return LocationResult(location=location)

    async def _ensure_permission(self) -> bool:
        try:
            status = await self.platform.check_permission()
            if status == PermissionStatus.GRANTED:
                return True
            if status == PermissionStatus.NEVER_ASK_AGAIN:
                return False
            status = await self.platform.request_permission()
        except Exception as e:
            logger.error(f"Location permission error: {e}")
            return False
        return status == PermissionStatus.GRANTED

    def _cached_fix(self) -> Optional[Location]:
        if self._last_fix is None:
            return None
        location, taken_at = self._last_fix
        if (self.clock() - taken_at) * 1000.0 <= self.maximum_age_ms:
            return location
        return None
