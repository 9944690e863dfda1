import os
import time
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

import config
from clients import Clients, init_clients
from exceptions import AccessDeniedError
from handlers import SegmentQueueHandler, VideoQueueHandler
from renderer import FFmpegRenderer
from routers.processing import access_denied_handler, router as processing_router
from services import SegmentProcessor, VideoProcessor
from storage import StorageClient
from store import RecordStore
from tasks import CleanupScheduler, ProcessingController
from transcription import WhisperTranscriber
from workspace import WorkspaceManager

# --------------------------------------------------------------------------
# --- Logging ---
# --------------------------------------------------------------------------

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
logging.basicConfig(level=config.LOG_LEVEL, format=LOG_FORMAT)


def _attach_file_handler(log_file_path: str, level: int) -> None:
    root_logger = logging.getLogger()
    if any(
        isinstance(handler, logging.FileHandler)
        and getattr(handler, "baseFilename", None) == os.path.abspath(log_file_path)
        for handler in root_logger.handlers
    ):
        return

    os.makedirs(os.path.dirname(log_file_path), exist_ok=True)
    file_handler = logging.FileHandler(log_file_path, encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(file_handler)


def configure_file_logging(logs_dir: str) -> None:
    """combined.log gets every record, error.log only errors."""
    _attach_file_handler(os.path.join(logs_dir, "combined.log"), logging.DEBUG)
    _attach_file_handler(os.path.join(logs_dir, "error.log"), logging.ERROR)


# --------------------------------------------------------------------------
# --- Wiring ---
# --------------------------------------------------------------------------

def build_components(app: FastAPI, clients: Clients, temp_dir: str) -> None:
    """Construct the processing stack once and hang it on app.state."""
    workspace = WorkspaceManager(temp_dir)
    store = RecordStore(clients.session_factory)
    storage = StorageClient(clients.supabase, config.STORAGE_BUCKET)
    renderer = FFmpegRenderer(workspace.processing_root, workspace.logs_root)
    transcriber = WhisperTranscriber(workspace.transcriptions_root)

    segment_processor = SegmentProcessor(store, storage, renderer, workspace, transcriber)
    video_processor = VideoProcessor(store, storage, renderer, workspace, segment_processor)

    video_handler = VideoQueueHandler(clients.video_queue, video_processor)
    segment_handler = SegmentQueueHandler(clients.segment_queue, segment_processor, store)

    app.state.video_queue = clients.video_queue
    app.state.segment_queue = clients.segment_queue
    app.state.video_handler = video_handler
    app.state.segment_handler = segment_handler
    app.state.controller = ProcessingController(
        video_handler.handle,
        segment_handler.handle,
        worker_count=config.WORKER_COUNT,
        interval_seconds=config.PROCESSING_INTERVAL,
    )
    app.state.cleanup = CleanupScheduler(
        workspace,
        interval_hours=config.CLEANUP_INTERVAL_HOURS,
        max_age_hours=config.ORPHAN_MAX_AGE_HOURS,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    clients = init_clients()
    temp_dir = config.validate_config()
    configure_file_logging(os.path.join(temp_dir, config.LOGS_DIR_NAME))
    build_components(app, clients, temp_dir)

    app.state.cleanup.start()
    if config.AUTO_START:
        app.state.controller.start()
    logging.info(f"🚀 Story video worker listening on {config.HOST}:{config.PORT}")

    yield

    logging.info("Shutting down")
    app.state.controller.stop()
    app.state.cleanup.stop()


# --------------------------------------------------------------------------
# --- Application ---
# --------------------------------------------------------------------------

app = FastAPI(
    title="Story Video Worker",
    description="Renders narrated story segments into videos from queued work items.",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - start) * 1000
    logging.info(
        f"Request processed: {request.method} {request.url.path} "
        f"{response.status_code} {elapsed_ms:.0f}ms"
    )
    return response


app.add_exception_handler(AccessDeniedError, access_denied_handler)
app.include_router(processing_router)


@app.get("/")
def read_root():
    return {"status": "🚀 Story video worker is running!"}
