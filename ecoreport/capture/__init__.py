"""
EcoReport - Capture Module
Device location and photo acquisition.
"""

from ecoreport.capture.location import (
    LocationAcquirer,
    LocationPlatform,
    LocationResult,
    LocationFailure,
    PermissionStatus,
    PositionError,
    StaticLocationPlatform,
)
from ecoreport.capture.media import (
    MediaCapturer,
    CaptureSurface,
    CaptureSource,
    CaptureStatus,
    CaptureOutcome,
    CapturedImage,
    PickerResult,
    FileCaptureSurface,
)
from ecoreport.capture.imaging import inspect_image, encode_jpeg

__all__ = [
    # Location
    "LocationAcquirer",
    "LocationPlatform",
    "LocationResult",
    "LocationFailure",
    "PermissionStatus",
    "PositionError",
    "StaticLocationPlatform",
    # Media
    "MediaCapturer",
    "CaptureSurface",
    "CaptureSource",
    "CaptureStatus",
    "CaptureOutcome",
    "CapturedImage",
    "PickerResult",
    "FileCaptureSurface",
    # Imaging
    "inspect_image",
    "encode_jpeg",
]
