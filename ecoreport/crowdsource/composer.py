"""
Report composer

Holds the state of a "new report" view: the captured photo, the optional
location, category and description. Feeds them to the submission pipeline
and drops results that arrive after the view has gone away.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from ecoreport.backend.base import Identity, IdentityProvider
from ecoreport.capture.location import LocationAcquirer, LocationFailure, LocationResult
from ecoreport.capture.media import CaptureOutcome, CaptureSource, CaptureStatus, CapturedImage, MediaCapturer
from ecoreport.core.constants import DEFAULT_CATEGORY
from ecoreport.core.exceptions import EcoReportError, PersistFailed, ValidationFailed
from ecoreport.core.geo_utils import Location
from ecoreport.crowdsource.models import Report, ReportCategory
from ecoreport.crowdsource.submission import ReportSubmitter

logger = logging.getLogger(__name__)


@dataclass
class ReportDraft:
    """Unsubmitted report."""
    image: Optional[CapturedImage] = None
    location: Optional[Location] = None
    location_failure: Optional[LocationFailure] = None
    category: str = DEFAULT_CATEGORY
    description: str = ""

    @property
    def ready(self) -> bool:
        return self.image is not None


class ReportComposer:
    """
    State behind the "report an issue" view.

    ``mount`` starts a fresh draft each time the view is entered and
    ``unmount`` detaches it. The draft is also cleared when the signed-in
    identity changes.
    """

    def __init__(
        self,
        submitter: ReportSubmitter,
        capturer: MediaCapturer,
        locator: LocationAcquirer,
        identity_provider: IdentityProvider
    ):
        self.submitter = submitter
        self.capturer = capturer
        self.locator = locator
        self.identity_provider = identity_provider

        self.draft = ReportDraft()
        self.error: Optional[str] = None
        self.mounted = False
        self.submitting = False
        self.last_report: Optional[Report] = None
        self.last_failure: Optional[EcoReportError] = None
        self._remove_identity_listener: Optional[Callable[[], None]] = None

    def mount(self) -> None:
        """Enter the view with an empty draft."""
        self.reset()
        self.mounted = True
        if self._remove_identity_listener is None:
            self._remove_identity_listener = self.identity_provider.on_identity_change(
                self._on_identity_change
            )

    def unmount(self) -> None:
        """Leave the view. Results of work still in flight are discarded."""
        self.mounted = False
        if self._remove_identity_listener is not None:
            self._remove_identity_listener()
            self._remove_identity_listener = None

    def reset(self) -> None:
        self.draft = ReportDraft()
        self.error = None
        self.last_failure = None

    async def attach_image(self, source: CaptureSource) -> CaptureOutcome:
        """Capture or pick the report photo."""
        outcome = await self.capturer.capture_image(source)
        if not self.mounted:
            return outcome

        if outcome.status == CaptureStatus.CAPTURED:
            self.draft.image = outcome.image
            self.error = None
        elif outcome.status != CaptureStatus.CANCELLED:
            self.error = outcome.message

        return outcome

    async def attach_location(self, timeout_ms: Optional[int] = None) -> LocationResult:
        """Tag the draft with the current position, if one is available."""
        result = await self.locator.acquire(timeout_ms)
        if not self.mounted:
            return result

        self.draft.location = result.location
        self.draft.location_failure = result.failure
        return result

    def set_category(self, value: str) -> None:
        category = ReportCategory.parse(value)
        if category is None:
            raise ValidationFailed(f"Unknown category: {value!r}")
        self.draft.category = category.value

    def set_description(self, text: str) -> None:
        self.draft.description = text or ""

    async def submit(self) -> Optional[Report]:
        """
        Submit the draft.

        Returns:
            The new Report, or None when the view unmounted before the
            submission finished

        Raises:
            EcoReportError: The submission failed while the view was mounted
        """
        draft = self.draft
        if draft.image is None:
            self.error = "Please select an image"
            raise ValidationFailed("Please select an image")

        return await self._run(
            self.submitter.submit(
                self.identity_provider,
                draft.image.data,
                draft.category,
                description=draft.description,
                location=draft.location,
            )
        )

    async def retry(self) -> Optional[Report]:
        """
        Retry after a failure.

        After PersistFailed only the record insert is retried; anything else
        is submitted again from the draft.
        """
        if isinstance(self.last_failure, PersistFailed):
            return await self._run(
                self.submitter.resume(self.identity_provider, self.last_failure)
            )
        return await self.submit()

    async def _run(self, operation) -> Optional[Report]:
        self.submitting = True
        try:
            report = await operation
        except EcoReportError as e:
            if not self.mounted:
                logger.warning(f"Discarding submission failure for unmounted view: {e}")
                return None
            self.error = e.user_message
            self.last_failure = e
            raise
        finally:
            self.submitting = False

        if not self.mounted:
            logger.warning(f"Discarding result for unmounted view (report {report.id})")
            return None

        self.last_report = report
        self.reset()
        return report

    def _on_identity_change(self, identity: Optional[Identity]) -> None:
        logger.info("Identity changed; clearing report draft")
        self.reset()
