"""
Photo capture for reports

Obtains a photo from the camera or an existing gallery asset as raw,
decodable bytes. Cancellation is a normal outcome; camera permission
refusal is reported separately from cancellation.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from ecoreport.capture.imaging import inspect_image
from ecoreport.capture.location import PermissionStatus
from ecoreport.core.exceptions import (
    Cancelled,
    EcoReportError,
    PermissionDenied,
    Stage,
    describe_error,
)

logger = logging.getLogger(__name__)


class CaptureSource(str, Enum):
    """Where the photo comes from."""
    CAMERA = "camera"
    GALLERY = "gallery"


class CaptureStatus(str, Enum):
    """Outcome of a capture attempt."""
    CAPTURED = "captured"
    CANCELLED = "cancelled"
    PERMISSION_DENIED = "permission_denied"
    ERROR = "error"


@dataclass
class PickerResult:
    """What a capture surface hands back."""
    did_cancel: bool = False
    data: Optional[bytes] = None
    uri: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


@dataclass
class CapturedImage:
    """Decodable photo held in memory."""
    data: bytes
    uri: Optional[str] = None
    mime_type: str = "application/octet-stream"
    width: int = 0
    height: int = 0

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class CaptureOutcome:
    """Result of ``MediaCapturer.capture_image``."""
    status: CaptureStatus
    image: Optional[CapturedImage] = None
    error: Optional[str] = None

    @property
    def captured(self) -> bool:
        return self.status == CaptureStatus.CAPTURED

    @property
    def exception(self) -> Optional[EcoReportError]:
        """The outcome as a core error, or None when a photo was captured."""
        if self.status == CaptureStatus.PERMISSION_DENIED:
            return PermissionDenied("Camera permission denied", resource="camera")
        if self.status == CaptureStatus.CANCELLED:
            return Cancelled("Image picker cancelled")
        if self.status == CaptureStatus.ERROR:
            return EcoReportError(f"Failed to capture/select image: {self.error}", stage=Stage.CAPTURE)
        return None

    @property
    def message(self) -> Optional[str]:
        # Cancelling is silent
        if self.status in (CaptureStatus.CAPTURED, CaptureStatus.CANCELLED):
            return None
        if self.status == CaptureStatus.ERROR:
            return self.exception.detail
        return describe_error(self.exception)


class CaptureSurface(ABC):
    """Platform camera and photo library."""

    @abstractmethod
    async def request_camera_permission(self) -> PermissionStatus:
        """Prompt for camera access if needed."""

    @abstractmethod
    async def launch(self, source: CaptureSource) -> PickerResult:
        """Open the camera or library and wait for the user."""


class FileCaptureSurface(CaptureSurface):
    """
    Gallery backed by files on disk.

    ``select`` chooses the file the next gallery launch returns; launching
    with nothing selected counts as the user cancelling. There is no camera.
    """

    def __init__(self, selected: Optional[Union[str, Path]] = None):
        self.selected = Path(selected) if selected else None

    def select(self, path: Optional[Union[str, Path]]) -> None:
        self.selected = Path(path) if path else None

    async def request_camera_permission(self) -> PermissionStatus:
        return PermissionStatus.DENIED

    async def launch(self, source: CaptureSource) -> PickerResult:
        if source == CaptureSource.CAMERA:
            return PickerResult(error_code="camera_unavailable", error_message="No camera on this device")

        if self.selected is None:
            return PickerResult(did_cancel=True)

        path = self.selected
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            return PickerResult(error_code="read_failed", error_message=str(e))

        return PickerResult(data=data, uri=path.resolve().as_uri())


class MediaCapturer:
    """
    Obtains a photo as bytes from a capture surface.

    Usage:
        capturer = MediaCapturer(surface)
        outcome = await capturer.capture_image(CaptureSource.GALLERY)
        if outcome.captured:
            data = outcome.image.data
    """

    def __init__(self, surface: CaptureSurface):
        self.surface = surface

    async def capture_image(self, source: CaptureSource) -> CaptureOutcome:
        """
        Capture or pick a photo.

        Args:
            source: Camera or gallery

        Returns:
            CaptureOutcome; never raises for capture failures
        """
        source = CaptureSource(source)
        logger.info(f"Starting {source.value} image picker")

        if source == CaptureSource.CAMERA:
            try:
                permission = await self.surface.request_camera_permission()
            except Exception as e:
                logger.error(f"Camera permission error: {e}")
                permission = PermissionStatus.DENIED
            if permission != PermissionStatus.GRANTED:
                logger.info("Camera permission denied")
                return CaptureOutcome(status=CaptureStatus.PERMISSION_DENIED)

        try:
            result = await self.surface.launch(source)
        except Exception as e:
            logger.error(f"Image picker error: {e}")
            return CaptureOutcome(status=CaptureStatus.ERROR, error=str(e))

        if result.did_cancel:
            logger.info("User cancelled image picker")
            return CaptureOutcome(status=CaptureStatus.CANCELLED)

        if result.error_code:
            error = result.error_message or result.error_code
            logger.error(f"Image picker error: {error}")
            return CaptureOutcome(status=CaptureStatus.ERROR, error=error)

        if not result.data:
            return CaptureOutcome(status=CaptureStatus.ERROR, error="Failed to get image data")

        try:
            info = inspect_image(result.data)
        except ValueError as e:
            return CaptureOutcome(status=CaptureStatus.ERROR, error=str(e))

        image = CapturedImage(
            data=result.data,
            uri=result.uri,
            mime_type=info.mime_type,
            width=info.width,
            height=info.height,
        )
        logger.info(f"Image captured: {image.width}x{image.height}, {image.size} bytes")
        return CaptureOutcome(status=CaptureStatus.CAPTURED, image=image)
