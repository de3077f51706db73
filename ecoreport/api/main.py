"""
EcoReport - REST API

FastAPI application for submitting geotagged environmental reports,
browsing the public feed and following report comment threads live.

Run with: uvicorn ecoreport.api.main:app --reload
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from fastapi import (
    Depends,
    FastAPI,
    File,
    Form,
    HTTPException,
    Query,
    UploadFile,
    WebSocket,
    WebSocketDisconnect,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import HTTPConnection
from pydantic import BaseModel, Field

from ecoreport import __version__
from ecoreport.backend import (
    DataService,
    IdentityProvider,
    RemoteIdentityProvider,
    SessionIdentityProvider,
    SqlStore,
    build_data_service,
)
from ecoreport.core.config import settings
from ecoreport.core.exceptions import (
    EcoReportError,
    FetchFailed,
    ReportNotFound,
    Unauthenticated,
    ValidationFailed,
)
from ecoreport.core.geo_utils import Location
from ecoreport.core.logging import setup_logging
from ecoreport.crowdsource import (
    Comment,
    CommentSyncEngine,
    FeedFilter,
    FeedQueryEngine,
    Report,
    ReportSubmitter,
    get_user_stats,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Pydantic Models
# ============================================================================

class HealthResponse(BaseModel):
    """API health status."""
    status: str
    version: str
    environment: str
    remote_storage: bool
    database: Optional[bool] = None


class LocationModel(BaseModel):
    """Report position."""
    latitude: float
    longitude: float


class ReportResponse(BaseModel):
    """Environmental report."""
    id: str
    author_id: str
    image_ref: str
    category: str
    category_label: str
    description: Optional[str]
    location: Optional[LocationModel]
    created_at: str


class ReportListResponse(BaseModel):
    """List of reports, newest first."""
    count: int
    reports: List[ReportResponse]


class CommentCreateRequest(BaseModel):
    """Request to comment on a report."""
    text: str = Field(..., max_length=2000)


class CommentResponse(BaseModel):
    """Report comment."""
    id: str
    report_id: str
    author_id: str
    text: str
    created_at: str


class CommentListResponse(BaseModel):
    """Comments on a report, oldest first."""
    report_id: str
    count: int
    comments: List[CommentResponse]


class StatsResponse(BaseModel):
    """Contribution statistics for the signed-in user."""
    user_id: str
    reports: int
    comments: int
    points: int


# ============================================================================
# Helper Functions
# ============================================================================

def _report_response(report: Report) -> ReportResponse:
    return ReportResponse(**report.to_dict())


def _comment_response(comment: Comment) -> CommentResponse:
    return CommentResponse(**comment.to_dict())


def _status_for(error: EcoReportError) -> int:
    if isinstance(error, ValidationFailed):
        return 422
    if isinstance(error, Unauthenticated):
        return 401
    if isinstance(error, ReportNotFound):
        return 404
    return 502


def _http_error(error: EcoReportError) -> HTTPException:
    """Map a core failure onto an HTTP error carrying its description."""
    status_code = _status_for(error)
    if status_code >= 500:
        logger.error(f"{error.kind} at stage {error.stage}: {error}")
    return HTTPException(status_code=status_code, detail=error.to_dict())


def _bearer_token(connection: HTTPConnection) -> Optional[str]:
    header = connection.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() == "bearer" and token:
        return token.strip()
    # Browsers cannot set headers on WebSocket handshakes
    return connection.query_params.get("access_token")


def get_service(connection: HTTPConnection) -> DataService:
    """Data service for this app, built from settings on first use."""
    state = connection.app.state
    if getattr(state, "service", None) is None:
        state.service = build_data_service(settings)
    return state.service


def get_submitter(connection: HTTPConnection) -> ReportSubmitter:
    state = connection.app.state
    if getattr(state, "submitter", None) is None:
        state.submitter = ReportSubmitter(get_service(connection))
    return state.submitter


async def get_identity_provider(connection: HTTPConnection) -> AsyncIterator[IdentityProvider]:
    """
    Identity of the caller.

    The bearer token is checked against the remote auth service. Without a
    configured service every request is anonymous.
    """
    if not settings.has_remote_service:
        yield SessionIdentityProvider()
        return

    provider = RemoteIdentityProvider(
        base_url=settings.supabase_url,
        api_key=settings.supabase_key,
        access_token=_bearer_token(connection),
        timeout=settings.http_timeout_seconds,
    )
    try:
        yield provider
    finally:
        await provider.aclose()


def _location_from_form(latitude: Optional[float], longitude: Optional[float]) -> Optional[Location]:
    if latitude is None and longitude is None:
        return None
    if latitude is None or longitude is None:
        raise ValidationFailed("Both latitude and longitude are required for a location")
    return Location(latitude=latitude, longitude=longitude)


# ============================================================================
# Application
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager."""
    logger.info("Starting EcoReport API")

    yield

    logger.info("Shutting down EcoReport API")
    service = getattr(app.state, "service", None)
    if service is None:
        return
    aclose = getattr(service.storage, "aclose", None)
    if aclose is not None:
        await aclose()
    if isinstance(service.store, SqlStore):
        service.store.db.close()


def create_app(service: Optional[DataService] = None) -> FastAPI:
    """
    Build the API application.

    The app owns its data service: HTTP clients and database connections
    are closed on shutdown.

    Args:
        service: Data service to use; built from settings on first request
            when omitted

    Returns:
        FastAPI application
    """
    setup_logging()

    app = FastAPI(
        title="EcoReport",
        description="Citizen reports of environmental issues with photos, locations and live comments",
        version=__version__,
        debug=settings.debug,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.service = service
    app.state.submitter = None

    # ========================================================================
    # System Routes
    # ========================================================================

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health_check():
        """Check API health status and database reachability."""
        database = None
        store = app.state.service.store if app.state.service is not None else None
        if isinstance(store, SqlStore):
            database = await asyncio.to_thread(store.db.check_connection)

        return HealthResponse(
            status="healthy" if database is not False else "degraded",
            version=__version__,
            environment=settings.app_env,
            remote_storage=settings.has_remote_service,
            database=database,
        )

    # ========================================================================
    # Report Routes
    # ========================================================================

    @app.post("/api/v1/reports", response_model=ReportResponse, status_code=201, tags=["Reports"])
    async def create_report(
        photo: UploadFile = File(...),
        category: str = Form(...),
        description: Optional[str] = Form(None),
        latitude: Optional[float] = Form(None),
        longitude: Optional[float] = Form(None),
        submitter: ReportSubmitter = Depends(get_submitter),
        identity: IdentityProvider = Depends(get_identity_provider),
    ):
        """
        Submit a report with a photo.

        The location is optional; send both coordinates or neither.
        """
        try:
            location = _location_from_form(latitude, longitude)
            data = await photo.read()
            report = await submitter.submit(
                identity,
                data,
                category,
                description=description,
                location=location,
            )
        except EcoReportError as e:
            raise _http_error(e)

        return _report_response(report)

    @app.get("/api/v1/reports", response_model=ReportListResponse, tags=["Reports"])
    async def list_reports(
        q: Optional[str] = Query(None, description="Text matched against description and category"),
        category: Optional[str] = Query(None, description="pollution, deforestation, waste or other"),
        service: DataService = Depends(get_service),
    ):
        """List all reports, newest first, optionally filtered."""
        try:
            reports = await FeedQueryEngine(service).list_reports(
                FeedFilter(text=q, category=category)
            )
        except EcoReportError as e:
            raise _http_error(e)

        return ReportListResponse(
            count=len(reports),
            reports=[_report_response(r) for r in reports],
        )

    @app.get("/api/v1/reports/mine", response_model=ReportListResponse, tags=["Reports"])
    async def list_my_reports(
        service: DataService = Depends(get_service),
        identity: IdentityProvider = Depends(get_identity_provider),
    ):
        """List the signed-in user's reports."""
        try:
            reports = await FeedQueryEngine(service).list_my_reports(identity)
        except EcoReportError as e:
            raise _http_error(e)

        return ReportListResponse(
            count=len(reports),
            reports=[_report_response(r) for r in reports],
        )

    @app.get("/api/v1/reports/{report_id}", response_model=ReportResponse, tags=["Reports"])
    async def get_report(report_id: str, service: DataService = Depends(get_service)):
        """Get report details."""
        try:
            report = await FeedQueryEngine(service).get_report(report_id)
        except EcoReportError as e:
            raise _http_error(e)

        return _report_response(report)

    # ========================================================================
    # Comment Routes
    # ========================================================================

    @app.get("/api/v1/reports/{report_id}/comments", response_model=CommentListResponse, tags=["Comments"])
    async def list_comments(report_id: str, service: DataService = Depends(get_service)):
        """List comments on a report, oldest first."""
        try:
            await FeedQueryEngine(service).get_report(report_id)
            comments = await CommentSyncEngine(service, report_id).refresh()
        except EcoReportError as e:
            raise _http_error(e)

        return CommentListResponse(
            report_id=report_id,
            count=len(comments),
            comments=[_comment_response(c) for c in comments],
        )

    @app.post(
        "/api/v1/reports/{report_id}/comments",
        response_model=CommentResponse,
        status_code=201,
        tags=["Comments"],
    )
    async def add_comment(
        report_id: str,
        payload: CommentCreateRequest,
        service: DataService = Depends(get_service),
        identity: IdentityProvider = Depends(get_identity_provider),
    ):
        """Comment on a report."""
        try:
            await FeedQueryEngine(service).get_report(report_id)
            comment = await CommentSyncEngine(service, report_id).add_comment(identity, payload.text)
        except EcoReportError as e:
            raise _http_error(e)

        return _comment_response(comment)

    @app.websocket("/api/v1/reports/{report_id}/comments/live")
    async def live_comments(
        websocket: WebSocket,
        report_id: str,
        service: DataService = Depends(get_service),
        identity: IdentityProvider = Depends(get_identity_provider),
    ):
        """
        Follow a report's comments.

        The full list is pushed on connect and again after every change.
        An unknown report gets an error message and close code 1008.
        Clients may send ``{"text": "..."}`` to post a comment.
        """
        await websocket.accept()

        async def push(comments: List[Comment]) -> None:
            await websocket.send_json({
                "type": "comments",
                "report_id": report_id,
                "comments": [c.to_dict() for c in comments],
            })

        try:
            await FeedQueryEngine(service).get_report(report_id)
            async with CommentSyncEngine(service, report_id, on_update=push) as view:
                while True:
                    message = await websocket.receive_json()
                    try:
                        text = message.get("text", "") if isinstance(message, dict) else ""
                        await view.add_comment(identity, text)
                    except EcoReportError as e:
                        await websocket.send_json({"type": "error", **e.to_dict()})
        except WebSocketDisconnect:
            logger.debug(f"Live comment client left report {report_id}")
        except ReportNotFound as e:
            logger.info(f"Live comments requested for unknown report {report_id}")
            await websocket.send_json({"type": "error", **e.to_dict()})
            await websocket.close(code=1008)
        except FetchFailed as e:
            logger.error(f"Could not open live comments for report {report_id}: {e}")
            await websocket.close(code=1011)

    # ========================================================================
    # User Routes
    # ========================================================================

    @app.get("/api/v1/users/me/stats", response_model=StatsResponse, tags=["Users"])
    async def my_stats(
        service: DataService = Depends(get_service),
        identity: IdentityProvider = Depends(get_identity_provider),
    ):
        """Report and comment counts with earned points."""
        try:
            stats = await get_user_stats(service, identity)
        except EcoReportError as e:
            raise _http_error(e)

        return StatsResponse(**stats.to_dict())

    return app


app = create_app()


# ============================================================================
# Main
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=settings.log_level.lower())
