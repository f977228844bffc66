"""
camcapture API Application
==========================

FastAPI entry point exposing the capture service over HTTP.

Endpoints:
    GET  /                            - Service information
    GET  /health                      - Liveness probe
    GET  /captures                    - Snapshots of all captures
    POST /captures                    - Begin a capture
    GET  /captures/{id}               - Snapshot of one capture
    POST /captures/{id}/stop          - End a capture
    WS   /ws/captures/{id}/progress   - Progress summaries until terminal
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from camcapture import __version__
from camcapture.config import load_config, setup_logging
from camcapture.errors import ErrorInfo, ErrorKind, SessionNotFoundError
from camcapture.service import CaptureRequest, CaptureResult, CaptureService


logger = logging.getLogger(__name__)


_STATUS_BY_KIND = {
    ErrorKind.CONFIGURATION: 422,
    ErrorKind.BIND: 409,
    ErrorKind.PRECONDITION: 409,
    ErrorKind.STORAGE: 507,
    ErrorKind.REMOTE_COMMAND: 502,
    ErrorKind.TRANSPORT: 502,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.SESSION_NOT_FOUND: 404,
}


def status_for(error: Optional[ErrorInfo]) -> int:
    """HTTP status code for a structured error."""
    if error is None:
        return 200
    return _STATUS_BY_KIND.get(error.kind, 500)


def _respond(result: CaptureResult, success_status: int = 200) -> JSONResponse:
    status_code = success_status if result.ok else status_for(result.error)
    return JSONResponse(result.model_dump(mode="json"), status_code=status_code)


def create_app(service: Optional[CaptureService] = None) -> FastAPI:
    """
    Build the API application.

    Args:
        service: Capture service to expose. Built from load_config()
            when omitted.
    """
    if service is None:
        settings = load_config()
        setup_logging(settings)
        service = CaptureService(settings)

    startup_time = time.time()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(f"Starting camcapture {__version__}")
        yield
        logger.info("Shutting down, ending active captures...")
        await asyncio.to_thread(service.shutdown)
        logger.info("Shutdown complete")

    app = FastAPI(
        title="camcapture",
        description="Camera control and UDP stream capture",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.service = service

    # =========================================================================
    # HTTP Endpoints
    # =========================================================================

    @app.get("/")
    def root() -> JSONResponse:
        """Service information endpoint."""
        return JSONResponse({
            "service": "camcapture",
            "version": __version__,
            "device": f"{service.settings.device.host}:{service.settings.device.port}",
            "status": "running",
        })

    @app.get("/health")
    def health() -> JSONResponse:
        """Liveness probe. Always 200 while the process is serving."""
        return JSONResponse({
            "status": "healthy",
            "uptime_seconds": round(time.time() - startup_time, 1),
        })

    @app.get("/captures")
    def list_captures() -> JSONResponse:
        return JSONResponse({
            session_id: snapshot.model_dump(mode="json")
            for session_id, snapshot in service.list_sessions().items()
        })

    @app.post("/captures")
    def begin_capture(request: CaptureRequest) -> JSONResponse:
        return _respond(service.begin_capture(request), success_status=201)

    @app.get("/captures/{session_id}")
    def capture_status(session_id: str) -> JSONResponse:
        return _respond(service.status(session_id))

    @app.post("/captures/{session_id}/stop")
    def end_capture(session_id: str) -> JSONResponse:
        return _respond(service.end_capture(session_id))

    # =========================================================================
    # WebSocket Endpoints
    # =========================================================================

    @app.websocket("/ws/captures/{session_id}/progress")
    async def capture_progress(websocket: WebSocket, session_id: str) -> None:
        """Push a progress summary every report interval until terminal."""
        await websocket.accept()

        try:
            reporter = service.reporter(session_id)
        except SessionNotFoundError as e:
            await websocket.send_json({"error": e.to_info().model_dump(mode="json")})
            await websocket.close(code=1008)
            return

        logger.info(f"Progress client connected for capture {session_id}")

        try:
            while True:
                capture = service.status(session_id)
                snapshot = capture.snapshot
                await websocket.send_json({
                    "session_id": session_id,
                    "summary": reporter.summarize(snapshot),
                    "snapshot": snapshot.model_dump(mode="json"),
                })
                if snapshot.state.is_terminal:
                    break
                await asyncio.sleep(reporter.interval)
            await websocket.close()
        except WebSocketDisconnect:
            pass
        finally:
            logger.info(f"Progress client disconnected from capture {session_id}")

    return app


# =============================================================================
# Main Entry Point
# =============================================================================

def run() -> None:
    import uvicorn

    settings = load_config()
    setup_logging(settings)
    app = create_app(CaptureService(settings))

    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        reload=False,
    )


if __name__ == "__main__":
    run()
