"""FastAPI routes for tubestream."""

import logging

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from starlette.requests import ClientDisconnect

from .. import __version__
from ..config import Settings, settings as default_settings
from ..exceptions import InvalidURLError, TubeStreamError
from ..ingestion.extractor import YtDlpExtractor
from ..interfaces import DownloadRequest, MediaExtractor
from ..service import MetadataService
from ..storage.cache import MetadataCache
from ..streaming.relay import RelayResponse, StreamingRelay
from .schemas import ErrorResponse, HealthResponse, InfoRequest, InfoResponse

logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


def get_service(request: Request) -> MetadataService:
    return request.app.state.service


def get_relay(request: Request) -> StreamingRelay:
    return request.app.state.relay


@router.post("/api/info", response_model=InfoResponse, responses=ERROR_RESPONSES)
async def video_info(
    payload: InfoRequest | None = None,
    service: MetadataService = Depends(get_service),
):
    """Title, thumbnail, duration, channel and selectable formats for a URL."""
    url = service.validate((payload or InfoRequest()).url)
    info = await service.get_info(url)
    return info.to_dict()


@router.get("/api/download-stream", responses=ERROR_RESPONSES)
async def download_stream(
    request: Request,
    url: str = "",
    format_: str | None = Query(None, alias="format"),
    relay: StreamingRelay = Depends(get_relay),
):
    """
    Stream the selected rendition as an attachment.

    Errors before the first media byte come back as JSON; after that the
    connection is simply dropped.
    """
    try:
        session = await relay.open(
            DownloadRequest(source_url=url, rendition_selector=format_),
            is_disconnected=request.is_disconnected,
        )
    except ClientDisconnect:
        # Nobody is listening any more.
        return Response(status_code=204)

    return RelayResponse(session)


@router.get("/health", response_model=HealthResponse)
async def health(service: MetadataService = Depends(get_service)):
    return HealthResponse(
        ok=True,
        cacheSize=len(service.cache),
        storage="stream-only",
        toolPath=service.extractor.tool_path,
    )


async def handle_tubestream_error(request: Request, exc: TubeStreamError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.debug("Rejected request to %s: %s", request.url.path, exc.errors())
    return JSONResponse(status_code=400, content={"error": InvalidURLError().message})


def create_app(
    settings: Settings | None = None,
    extractor: MediaExtractor | None = None,
    cache: MetadataCache | None = None,
) -> FastAPI:
    """Build the API with its cache, extractor and relay."""
    settings = settings or default_settings
    if extractor is None:
        extractor = YtDlpExtractor.from_settings(settings)
    if cache is None:
        cache = MetadataCache(settings.info_ttl_seconds)

    app = FastAPI(
        title="TubeStream API",
        description="Stream YouTube downloads through yt-dlp without storing media",
        version=__version__,
    )

    service = MetadataService(extractor, cache, settings.allowed_hosts)
    app.state.service = service
    app.state.relay = StreamingRelay(service, default_height=settings.target_height)

    app.add_exception_handler(TubeStreamError, handle_tubestream_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.include_router(router)

    static_dir = settings.static_directory
    if static_dir is not None:
        app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")

    return app


app = create_app()
