"""
Router for the processing control API.
Queue status, start/stop of the periodic loop and one-shot handler passes.
Every route is restricted to the configured client IP allow-list.
"""

import logging
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

import config
from exceptions import AccessDeniedError
from schemas import ControlResponse, QueueStatusResponse


def _normalize_ip(ip: str) -> str:
    # IPv4 clients on a dual-stack socket show up as ::ffff:a.b.c.d
    if ip.startswith("::ffff:"):
        return ip[len("::ffff:"):]
    return ip


def ip_filter(request: Request) -> None:
    client_ip = request.client.host if request.client else ""
    allowed = {_normalize_ip(ip) for ip in config.ALLOWED_IPS}
    if not client_ip or _normalize_ip(client_ip) not in allowed:
        logging.warning(f"Unauthorized access attempt from {client_ip or 'unknown'} to {request.url.path}")
        raise AccessDeniedError(client_ip)


async def access_denied_handler(request: Request, exc: AccessDeniedError) -> JSONResponse:
    return JSONResponse(status_code=403, content={"error": "Access denied"})


# Create the router
router = APIRouter(prefix="/api", tags=["processing"], dependencies=[Depends(ip_filter)])


@router.get("/queue/status", response_model=QueueStatusResponse)
def queue_status(request: Request):
    state = request.app.state
    try:
        messages_available = state.video_queue.has_messages() or state.segment_queue.has_messages()
    except Exception as e:
        logging.error(f"❌ Queue status error: {e}")
        return JSONResponse(status_code=500, content={"error": "Failed to get queue status"})

    controller = state.controller
    return QueueStatusResponse(
        isProcessing=controller.is_running,
        messagesAvailable=messages_available,
        workerCount=controller.worker_count,
        processingInterval=int(controller.interval_seconds),
    )


@router.post("/control/start", response_model=ControlResponse)
def start_processing(request: Request):
    request.app.state.controller.start()
    return ControlResponse(message="Processing started")


@router.post("/control/stop", response_model=ControlResponse)
def stop_processing(request: Request):
    request.app.state.controller.stop()
    return ControlResponse(message="Processing stopped")


@router.get("/process-video")
def process_video(request: Request):
    result = request.app.state.video_handler.handle()
    return JSONResponse(status_code=result.status_code, content=result.body)


@router.get("/process-segment")
def process_segment(request: Request):
    result = request.app.state.segment_handler.handle()
    return JSONResponse(status_code=result.status_code, content=result.body)
