"""
Report submission pipeline

Turns a captured photo plus metadata into a persisted report:
encode, upload, resolve a durable URL, insert the record. Each step runs
only after the previous one succeeded, and a failure names its stage.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from ecoreport.backend.base import DataService, IdentityProvider, StorageError, StoreError
from ecoreport.capture.imaging import encode_jpeg, inspect_image
from ecoreport.core.config import settings
from ecoreport.core.constants import IMAGE_CONTENT_TYPE, IMAGE_EXTENSION, REPORTS_TABLE
from ecoreport.core.exceptions import (
    PersistFailed,
    Stage,
    Unauthenticated,
    UploadFailed,
    ValidationFailed,
)
from ecoreport.core.geo_utils import Location, is_placeholder_coordinate, is_valid_coordinate
from ecoreport.crowdsource.models import Report, ReportCategory
from ecoreport.crowdsource.session import require_identity

logger = logging.getLogger(__name__)


class ReportSubmitter:
    """
    Orchestrates the "create report" transaction.

    Guarantees:
    - no record is inserted unless the photo was uploaded and its public URL
      resolved;
    - the record's ``user_id`` is the identity read at call time;
    - an insert failure after a successful upload raises PersistFailed and
      leaves the uploaded object in place;
    - nothing is retried automatically.
    """

    def __init__(
        self,
        service: DataService,
        jpeg_quality: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize submitter.

        Args:
            service: Data service to upload to and persist in
            jpeg_quality: JPEG quality for the uploaded photo
            clock: Time source for object paths
        """
        self.service = service
        self.jpeg_quality = jpeg_quality if jpeg_quality is not None else settings.jpeg_quality
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._last_path_millis: Dict[str, int] = {}

    async def submit(
        self,
        identity_provider: IdentityProvider,
        image: bytes,
        category: Any,
        description: Optional[str] = None,
        location: Optional[Location] = None
    ) -> Report:
        """
        Create a report.

        Args:
            identity_provider: Session to act as (re-read now)
            image: Decodable photo bytes
            category: One of the report categories
            description: Optional free text
            location: Optional position

        Returns:
            The persisted Report

        Raises:
            ValidationFailed: Bad input; nothing happened
            Unauthenticated: No current identity; nothing happened
            UploadFailed: Photo not stored; nothing happened
            PersistFailed: Photo stored but record not written
        """
        report_category, description = self._validate(image, category, description, location)

        identity = await require_identity(identity_provider)
        path = self.object_path(identity.id)
        logger.info(f"Submitting report for {identity.id} as {path}")

        try:
            encoded = encode_jpeg(image, self.jpeg_quality)
        except ValueError as e:
            raise ValidationFailed(str(e), stage=Stage.ENCODE) from e

        await self._upload(path, encoded)

        pending = {
            "user_id": identity.id,
            "location": location.to_record() if location else None,
            "category": report_category.value,
            "description": description,
        }
        image_ref = await self._resolve(path, pending)
        return await self._persist(path, image_ref, pending)

    async def resume(self, identity_provider: IdentityProvider, failure: PersistFailed) -> Report:
        """
        Retry only the record insert of a submission that raised PersistFailed.

        The photo is not uploaded again. Must be invoked by the same identity
        that made the original submission.

        Args:
            identity_provider: Session to act as (re-read now)
            failure: The PersistFailed raised by ``submit``

        Returns:
            The persisted Report
        """
        if not failure.object_path or not failure.pending:
            raise ValidationFailed("Nothing to resume: the failure carries no uploaded object")

        identity = await require_identity(identity_provider)
        if identity.id != failure.pending.get("user_id"):
            raise Unauthenticated("Signed in as a different user than the original submission")

        logger.info(f"Resuming report persistence for {failure.object_path}")
        pending = dict(failure.pending)
        image_ref = failure.image_ref or await self._resolve(failure.object_path, pending)
        return await self._persist(failure.object_path, image_ref, pending)

    def object_path(self, author_id: str) -> str:
        """
        Object path ``{author_id}/{timestamp_millis}.jpg``.

        Paths for one author strictly increase, so a re-submission within
        the same millisecond still gets a new path.
        """
        millis = int(self.clock().timestamp() * 1000)
        last = self._last_path_millis.get(author_id)
        if last is not None and millis <= last:
            millis = last + 1
        self._last_path_millis[author_id] = millis
        return f"{author_id}/{millis}.{IMAGE_EXTENSION}"

    def _validate(
        self,
        image: bytes,
        category: Any,
        description: Optional[str],
        location: Optional[Location]
    ) -> Tuple[ReportCategory, Optional[str]]:
        if not image:
            raise ValidationFailed("Please select an image")

        try:
            inspect_image(image)
        except ValueError as e:
            raise ValidationFailed(str(e)) from e

        report_category = ReportCategory.parse(category)
        if report_category is None:
            raise ValidationFailed(f"Unknown category: {category!r}")

        if location is not None and not is_valid_coordinate(location.latitude, location.longitude):
            raise ValidationFailed(f"Invalid coordinates: {location}")
        if location is not None and is_placeholder_coordinate(location.latitude, location.longitude):
            raise ValidationFailed("(0, 0) is reserved for reports without a location; omit the location instead")

        description = (description or "").strip() or None
        return report_category, description

    async def _upload(self, path: str, data: bytes) -> None:
        try:
            await self.service.storage.put(path, data, IMAGE_CONTENT_TYPE)
        except StorageError as e:
            logger.error(f"Upload failed for {path}: {e}")
            raise UploadFailed(str(e)) from e
        logger.info(f"Image upload successful: {path} ({len(data)} bytes)")

    async def _resolve(self, path: str, pending: Dict[str, Any]) -> str:
        try:
            image_ref = await self.service.storage.resolve_url(path)
        except StorageError as e:
            image_ref = None
            detail = str(e)
        else:
            detail = "Storage returned an empty URL"

        if not image_ref:
            logger.warning(f"Orphaned object {path}: public URL unavailable ({detail})")
            raise PersistFailed(
                f"Failed to get public URL for uploaded image: {detail}",
                stage=Stage.RESOLVE,
                object_path=path,
                pending=pending,
            )
        return image_ref

    async def _persist(self, path: str, image_ref: str, pending: Dict[str, Any]) -> Report:
        record = dict(pending, image_url=image_ref)

        try:
            row = await self.service.store.insert(REPORTS_TABLE, record)
            report = Report.from_record(row)
        except StoreError as e:
            logger.warning(f"Orphaned object {path}: report insert failed ({e})")
            raise PersistFailed(
                f"Failed to save report: {e}",
                object_path=path,
                image_ref=image_ref,
                pending=pending,
            ) from e
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Orphaned object {path}: unexpected insert result ({e})")
            raise PersistFailed(
                f"Unexpected record returned by the store: {e}",
                object_path=path,
                image_ref=image_ref,
                pending=pending,
            ) from e

        logger.info(f"Report {report.id} saved ({report.category}, image {path})")
        return report
