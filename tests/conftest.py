"""
Pytest configuration and fixtures
"""
import io
from datetime import datetime, timedelta, timezone

import pytest
from PIL import Image

from ecoreport.backend import Identity, SessionIdentityProvider, create_memory_service
from ecoreport.core.geo_utils import Location


def make_image(size=(64, 48), color=(34, 139, 34), fmt="PNG", mode="RGB") -> bytes:
    """Encode a solid-color test image."""
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format=fmt)
    return buffer.getvalue()


class StepClock:
    """Clock that advances by a fixed step on every call."""

    def __init__(self, start=None, step=timedelta(milliseconds=5)):
        self.now = start or datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self):
        current = self.now
        self.now = current + self.step
        return current


@pytest.fixture
def png_bytes():
    """Small PNG photo."""
    return make_image()


@pytest.fixture
def jpeg_bytes():
    """Small JPEG photo."""
    return make_image(fmt="JPEG")


@pytest.fixture
def clock():
    """Deterministic UTC clock."""
    return StepClock()


@pytest.fixture
def service(clock):
    """In-memory data service."""
    return create_memory_service(clock=clock)


@pytest.fixture
def alice():
    """Signed-in user identity."""
    return Identity(id="user-alice", display_name="alice", email="alice@example.org")


@pytest.fixture
def bob():
    """Second user identity."""
    return Identity(id="user-bob", display_name="bob")


@pytest.fixture
def session(alice):
    """Session signed in as alice."""
    return SessionIdentityProvider(alice)


@pytest.fixture
def anonymous():
    """Session with nobody signed in."""
    return SessionIdentityProvider()


@pytest.fixture
def riverbank():
    """Location of a sample report."""
    return Location(latitude=-23.5505, longitude=-46.6333)


@pytest.fixture
def image_factory():
    """Builder for test images of any size, color and format."""
    return make_image
