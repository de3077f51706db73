"""
EcoReport - Error Taxonomy
Exceptions raised by the capture, submission, feed and comment layers.
"""

from enum import Enum
from typing import Any, Dict, Optional


class Stage(str, Enum):
    """Pipeline stage at which an operation failed."""
    CAPTURE = "capture"
    VALIDATE = "validate"
    AUTHENTICATE = "authenticate"
    ENCODE = "encode"
    UPLOAD = "upload"
    RESOLVE = "resolve"
    PERSIST = "persist"
    FETCH = "fetch"


class EcoReportError(Exception):
    """
    Base class for all core failures.

    Attributes:
        user_message: Human-readable message safe to show to the user
        partial: True when some side effect already happened
        stage: Stage that failed
    """

    user_message = "Something went wrong. Please try again."
    partial = False
    stage: Optional[Stage] = None

    def __init__(self, detail: Optional[str] = None, *, stage: Optional[Stage] = None):
        self.detail = detail
        if stage is not None:
            self.stage = stage
        super().__init__(detail or self.user_message)

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "error": self.kind,
            "message": self.user_message,
            "detail": self.detail,
            "stage": self.stage.value if self.stage else None,
            "partial": self.partial,
        }


class PermissionDenied(EcoReportError):
    """Location or camera permission was refused."""
    user_message = "Permission was denied. Please enable it in your device settings."
    stage = Stage.CAPTURE

    def __init__(
        self,
        detail: Optional[str] = None,
        *,
        stage: Optional[Stage] = None,
        resource: Optional[str] = None
    ):
        self.resource = resource
        if resource:
            self.user_message = (
                f"{resource.capitalize()} permission was denied. "
                "Please enable it in your device settings."
            )
        super().__init__(detail, stage=stage)


class Cancelled(EcoReportError):
    """The user backed out. Not a failure; nothing happened."""
    user_message = "Cancelled."
    stage = Stage.CAPTURE


class FetchFailed(EcoReportError):
    user_message = "Could not load data. Please check your connection and try again."
    stage = Stage.FETCH


class ReportNotFound(FetchFailed):
    user_message = "Report not found."


class SubmissionError(EcoReportError):
    """A create operation (report or comment) aborted at ``stage``."""
    user_message = "Your submission could not be completed. Please try again."


class ValidationFailed(SubmissionError):
    user_message = "Some required information is missing or invalid."
    stage = Stage.VALIDATE


class Unauthenticated(SubmissionError):
    user_message = "Please sign in to continue."
    stage = Stage.AUTHENTICATE


class UploadFailed(SubmissionError):
    user_message = "The photo could not be uploaded. Nothing was saved; please try again."
    stage = Stage.UPLOAD


class PersistFailed(SubmissionError):
    """
    The photo was stored but the record could not be written.

    The uploaded object is left in place (orphaned). ``pending`` holds the
    record that was about to be inserted so a caller-initiated resume can
    retry only the insert.
    """

    user_message = (
        "Your photo was uploaded but the report could not be saved. "
        "Retry to save it without uploading again."
    )
    partial = True
    stage = Stage.PERSIST

    def __init__(
        self,
        detail: Optional[str] = None,
        *,
        stage: Optional[Stage] = None,
        object_path: Optional[str] = None,
        image_ref: Optional[str] = None,
        pending: Optional[Dict[str, Any]] = None
    ):
        super().__init__(detail, stage=stage)
        self.object_path = object_path
        self.image_ref = image_ref
        self.pending = dict(pending or {})

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["object_path"] = self.object_path
        data["image_ref"] = self.image_ref
        return data


def describe_error(exc: BaseException) -> str:
    """
    Human-readable message for any exception.

    Core errors carry their own message; anything else is reported as an
    unexpected failure.
    """
    if isinstance(exc, EcoReportError):
        return exc.user_message
    return EcoReportError.user_message
