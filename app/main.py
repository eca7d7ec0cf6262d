import logging
from logging.handlers import RotatingFileHandler
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from app.api.routers import auth, data, documents, itineraries
from app.core.config import LOG_LEVEL, Settings, get_settings
from app.core.errors import ItineraryError
from app.core.pipeline import ItineraryPipeline
from app.core.store import RecordStore, create_store
from app.services.convert import ConversionService, Pdf24Converter
from app.services.jobs import DocumentJobs
from app.services.snapshot import ScreenshotMachineClient, SnapshotService
from app.services.template import ensure_template

# Configure Logging
logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger("itinerary_server")
if not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
    handler = RotatingFileHandler("server.log", maxBytes=5 * 1024 * 1024, backupCount=3)
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    settings.upload_dir.mkdir(parents=True, exist_ok=True)
    ensure_template(settings.template_path)
    logger.info(f"Using template {settings.template_path}")
    yield


async def itinerary_error_handler(request: Request, exc: ItineraryError):
    logger.warning(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.title, "details": exc.message},
    )


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[RecordStore] = None,
    snapshots: Optional[SnapshotService] = None,
    converter: Optional[ConversionService] = None,
) -> FastAPI:
    settings = settings or get_settings()
    store = store or create_store(settings)
    snapshots = snapshots or ScreenshotMachineClient(
        base_url=settings.screenshot_base_url,
        map_frame_url=settings.map_frame_url,
        timeout=settings.http_timeout_seconds,
    )
    converter = converter or Pdf24Converter(
        base_url=settings.pdf24_base_url,
        poll_interval=settings.convert_poll_interval,
        max_attempts=settings.convert_max_attempts,
        timeout=settings.http_timeout_seconds,
    )
    pipeline = ItineraryPipeline(store, snapshots, converter, settings)

    app = FastAPI(title="Itinerary Builder API", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.pipeline = pipeline
    app.state.jobs = DocumentJobs(pipeline, max_finished=settings.max_finished_jobs)

    app.add_exception_handler(ItineraryError, itinerary_error_handler)

    # Mount routers
    app.include_router(auth.router)
    app.include_router(itineraries.router)
    app.include_router(documents.router)
    app.include_router(data.router)

    app.mount(
        "/img/pp",
        StaticFiles(directory=str(settings.upload_dir), check_dir=False),
        name="uploads",
    )

    app.add_middleware(
        CORSMiddleware,  # type: ignore
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health_check():
        return {"status": "ok"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=3333)
