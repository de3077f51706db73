"""
Tests for the report submission pipeline
"""
import io
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from PIL import Image

from ecoreport.backend import Identity, StorageError
from ecoreport.core.exceptions import (
    PersistFailed,
    Stage,
    Unauthenticated,
    UploadFailed,
    ValidationFailed,
)
from ecoreport.core.geo_utils import Location
from ecoreport.crowdsource import ReportSubmitter


class TestReportSubmitter:
    """Test suite for ReportSubmitter.submit."""

    @pytest.fixture(autouse=True)
    def setup(self, service, clock):
        self.service = service
        self.submitter = ReportSubmitter(service, clock=clock)

    def reports(self):
        return self.service.store.tables["reports"]

    @pytest.mark.asyncio
    async def test_submit_with_location(self, session, png_bytes, riverbank):
        """Test a complete submission persists every field."""
        report = await self.submitter.submit(
            session, png_bytes, "pollution",
            description="Oil slick near the outflow",
            location=riverbank,
        )

        assert report.author_id == "user-alice"
        assert report.category == "pollution"
        assert report.description == "Oil slick near the outflow"
        assert report.location == riverbank
        assert report.image_ref.startswith("memory://storage/reports/user-alice/")
        assert len(self.reports()) == 1
        assert self.reports()[0]["location"] == {"lat": -23.5505, "lng": -46.6333}

    @pytest.mark.asyncio
    async def test_submit_without_location(self, session, png_bytes):
        """Test a report without location stores an absent location."""
        report = await self.submitter.submit(session, png_bytes, "waste")

        assert report.location is None
        assert self.reports()[0]["location"] is None

    @pytest.mark.asyncio
    async def test_uploaded_object_is_jpeg(self, session, png_bytes):
        """Test the stored object is a JPEG under {user}/{millis}.jpg."""
        await self.submitter.submit(session, png_bytes, "deforestation")

        [(path, obj)] = self.service.storage.objects.items()
        user, filename = path.split("/")
        assert user == "user-alice"
        assert filename.endswith(".jpg")
        assert filename[:-4].isdigit()
        assert obj["content_type"] == "image/jpeg"
        assert Image.open(io.BytesIO(obj["data"])).format == "JPEG"

    @pytest.mark.asyncio
    async def test_blank_description_is_absent(self, session, png_bytes):
        """Test whitespace-only description is stored as absent."""
        report = await self.submitter.submit(session, png_bytes, "other", description="   ")
        assert report.description is None

    @pytest.mark.asyncio
    async def test_category_is_normalized(self, session, png_bytes):
        """Test category parsing ignores case and whitespace."""
        report = await self.submitter.submit(session, png_bytes, "  Waste ")
        assert report.category == "waste"
        assert report.category_label == "Illegal Waste"

    @pytest.mark.asyncio
    async def test_unknown_category(self, session, png_bytes):
        """Test unknown category fails validation before any upload."""
        with pytest.raises(ValidationFailed) as exc_info:
            await self.submitter.submit(session, png_bytes, "noise")

        assert exc_info.value.stage == Stage.VALIDATE
        assert self.service.storage.put_calls == 0
        assert self.reports() == []

    @pytest.mark.asyncio
    async def test_empty_image(self, session):
        """Test empty image fails validation."""
        with pytest.raises(ValidationFailed):
            await self.submitter.submit(session, b"", "pollution")
        assert self.service.storage.put_calls == 0

    @pytest.mark.asyncio
    async def test_undecodable_image(self, session):
        """Test non-image bytes fail validation."""
        with pytest.raises(ValidationFailed):
            await self.submitter.submit(session, b"not an image at all", "pollution")
        assert self.service.storage.put_calls == 0

    @pytest.mark.asyncio
    async def test_invalid_coordinates(self, session, png_bytes):
        """Test out-of-range coordinates fail validation."""
        with pytest.raises(ValidationFailed):
            await self.submitter.submit(
                session, png_bytes, "pollution", location=Location(latitude=91.0, longitude=0.0)
            )
        assert self.reports() == []

    @pytest.mark.asyncio
    async def test_placeholder_location_rejected(self, session, png_bytes):
        """Test (0, 0) is refused so a stored location always reads back unchanged."""
        with pytest.raises(ValidationFailed):
            await self.submitter.submit(
                session, png_bytes, "pollution", location=Location(latitude=0.0, longitude=0.0)
            )
        assert self.reports() == []
        assert self.service.storage.put_calls == 0

    @pytest.mark.asyncio
    async def test_location_on_an_axis_kept(self, session, png_bytes):
        """Test a single zero coordinate is a real position."""
        report = await self.submitter.submit(
            session, png_bytes, "pollution", location=Location(latitude=0.0, longitude=-49.5)
        )

        assert report.location == Location(latitude=0.0, longitude=-49.5)

    @pytest.mark.asyncio
    async def test_unauthenticated(self, anonymous, png_bytes):
        """Test submission without identity performs no side effects."""
        with pytest.raises(Unauthenticated):
            await self.submitter.submit(anonymous, png_bytes, "pollution")

        assert self.service.storage.put_calls == 0
        assert self.reports() == []

    @pytest.mark.asyncio
    async def test_identity_read_at_call_time(self, session, bob, png_bytes):
        """Test signing out between submissions is honored."""
        await self.submitter.submit(session, png_bytes, "pollution")
        session.sign_out()

        with pytest.raises(Unauthenticated):
            await self.submitter.submit(session, png_bytes, "pollution")

        session.sign_in(bob)
        report = await self.submitter.submit(session, png_bytes, "pollution")
        assert report.author_id == "user-bob"

    @pytest.mark.asyncio
    async def test_upload_failure_writes_no_record(self, session, png_bytes):
        """Test UploadFailed leaves nothing behind."""
        self.service.storage.put_error = "network unreachable"

        with pytest.raises(UploadFailed) as exc_info:
            await self.submitter.submit(session, png_bytes, "pollution")

        assert exc_info.value.stage == Stage.UPLOAD
        assert exc_info.value.partial is False
        assert self.service.storage.objects == {}
        assert self.service.store.insert_calls == 0

    @pytest.mark.asyncio
    async def test_persist_failure_leaves_orphan(self, session, png_bytes):
        """Test PersistFailed reports the uploaded object."""
        self.service.store.insert_errors["reports"] = "permission denied for table reports"

        with pytest.raises(PersistFailed) as exc_info:
            await self.submitter.submit(session, png_bytes, "pollution")

        failure = exc_info.value
        assert failure.partial is True
        assert failure.stage == Stage.PERSIST
        assert self.service.storage.exists(failure.object_path)
        assert failure.image_ref.endswith(failure.object_path)
        assert failure.pending["user_id"] == "user-alice"
        assert self.reports() == []

    @pytest.mark.asyncio
    async def test_resolve_failure_is_partial(self, session, png_bytes, monkeypatch):
        """Test a URL failure after upload is a partial PersistFailed."""
        monkeypatch.setattr(
            self.service.storage, "resolve_url", AsyncMock(side_effect=StorageError("gone"))
        )

        with pytest.raises(PersistFailed) as exc_info:
            await self.submitter.submit(session, png_bytes, "pollution")

        assert exc_info.value.stage == Stage.RESOLVE
        assert exc_info.value.image_ref is None
        assert self.service.store.insert_calls == 0

    @pytest.mark.asyncio
    async def test_retry_uses_new_path(self, session, png_bytes):
        """Test a fresh retry after PersistFailed uploads under a new path."""
        self.service.store.insert_errors["reports"] = "timeout"
        with pytest.raises(PersistFailed) as exc_info:
            await self.submitter.submit(session, png_bytes, "pollution")
        del self.service.store.insert_errors["reports"]

        await self.submitter.submit(session, png_bytes, "pollution")

        assert len(self.service.storage.objects) == 2
        assert exc_info.value.object_path in self.service.storage.objects
        assert len(self.reports()) == 1


class TestResume:
    """Test suite for resuming after PersistFailed."""

    @pytest.fixture(autouse=True)
    def setup(self, service, clock):
        self.service = service
        self.submitter = ReportSubmitter(service, clock=clock)

    async def failed_submission(self, session, image):
        self.service.store.insert_errors["reports"] = "timeout"
        with pytest.raises(PersistFailed) as exc_info:
            await self.submitter.submit(session, image, "deforestation", description="Clear-cut")
        del self.service.store.insert_errors["reports"]
        return exc_info.value

    @pytest.mark.asyncio
    async def test_resume_persists_without_upload(self, session, png_bytes):
        """Test resume inserts the pending record and reuses the object."""
        failure = await self.failed_submission(session, png_bytes)

        report = await self.submitter.resume(session, failure)

        assert self.service.storage.put_calls == 1
        assert report.image_ref == failure.image_ref
        assert report.description == "Clear-cut"
        assert len(self.service.store.tables["reports"]) == 1

    @pytest.mark.asyncio
    async def test_resume_re_resolves_missing_url(self, session, png_bytes, monkeypatch):
        """Test resume resolves the URL when the first attempt could not."""
        original = self.service.storage.resolve_url
        monkeypatch.setattr(
            self.service.storage, "resolve_url", AsyncMock(side_effect=StorageError("gone"))
        )
        with pytest.raises(PersistFailed) as exc_info:
            await self.submitter.submit(session, png_bytes, "pollution")
        monkeypatch.setattr(self.service.storage, "resolve_url", original)

        report = await self.submitter.resume(session, exc_info.value)

        assert report.image_ref.endswith(exc_info.value.object_path)
        assert self.service.storage.put_calls == 1

    @pytest.mark.asyncio
    async def test_resume_by_other_user(self, session, bob, png_bytes):
        """Test resume refuses a different identity."""
        failure = await self.failed_submission(session, png_bytes)
        session.sign_in(bob)

        with pytest.raises(Unauthenticated):
            await self.submitter.resume(session, failure)
        assert self.service.store.tables["reports"] == []

    @pytest.mark.asyncio
    async def test_resume_without_object(self, session):
        """Test resume needs an uploaded object."""
        with pytest.raises(ValidationFailed):
            await self.submitter.resume(session, PersistFailed("nothing"))


class TestObjectPath:
    """Test suite for object path generation."""

    def test_paths_strictly_increase(self, service):
        """Test two submissions in the same millisecond get distinct paths."""
        frozen = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        submitter = ReportSubmitter(service, clock=lambda: frozen)

        first = submitter.object_path("user-alice")
        second = submitter.object_path("user-alice")

        assert first != second
        assert first == f"user-alice/{int(frozen.timestamp() * 1000)}.jpg"

    def test_paths_are_per_author(self, service):
        """Test authors do not share a path sequence."""
        frozen = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        submitter = ReportSubmitter(service, clock=lambda: frozen)

        assert submitter.object_path("a").split("/")[1] == submitter.object_path("b").split("/")[1]

    def test_identity_dataclass(self):
        """Test identities compare by value."""
        assert Identity(id="x") == Identity(id="x")
