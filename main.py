import logging
from typing import Any, Callable

from fastapi import Depends, FastAPI, Request, WebSocket
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse

# Local imports
import ppt_generator
from llm_service import GeminiService
from models import EditRequest, GenerateRequest, GenerationResult
from realtime import ConnectionManager, SessionRelay
from settings import get_settings

# Logging configuration
settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

SUGGESTIONS = [
    "Create a presentation about renewable energy with 5 slides",
    "Build a marketing strategy presentation for a new product launch",
    "Make an educational presentation about artificial intelligence",
    "Create slides about project management best practices",
    "Design a presentation about healthy lifestyle tips",
    "Build a business plan presentation for startups",
]

# --- FastAPI App ---
app = FastAPI(
    title="MagicSlides Service",
    description="Turns chat prompts into PowerPoint presentations with Gemini and python-pptx.",
    version="1.0.0"
)

manager = ConnectionManager()


def get_service_factory() -> Callable[[], Any]:
    """Services are built per request so a missing API key surfaces as a generation failure."""
    return GeminiService


def error_response(status_code: int, error: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, **extra})


def generation_payload(presentation_data, filename: str, session_id: str) -> dict:
    result = GenerationResult.for_file(presentation_data, filename, session_id)
    return {"success": True, "data": result.model_dump()}


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        details.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))
    return error_response(400, "Validation failed", details=details)


# --- Chat Endpoints ---

@app.post("/api/chat/generate", summary="Generate a presentation from a chat prompt")
async def generate_endpoint(payload: GenerateRequest, service_factory=Depends(get_service_factory)):
    try:
        logger.info(f"Generating presentation for session: {payload.sessionId}")
        service = service_factory()
        presentation_data = await run_in_threadpool(service.generate_presentation, payload.prompt)
        filename = await run_in_threadpool(ppt_generator.generate_ppt, presentation_data)
    except Exception as e:
        logger.error(f"Error in /generate endpoint: {e}", exc_info=True)
        return error_response(500, "Failed to generate presentation", message="Please try again later")

    return generation_payload(presentation_data, filename, payload.sessionId)


@app.post("/api/chat/edit", summary="Apply an edit prompt to an existing presentation")
async def edit_endpoint(payload: EditRequest, service_factory=Depends(get_service_factory)):
    try:
        logger.info(f"Editing presentation for session: {payload.sessionId}")
        service = service_factory()
        updated_presentation = await run_in_threadpool(
            service.edit_presentation, payload.currentPresentation, payload.editPrompt
        )
        filename = await run_in_threadpool(ppt_generator.generate_ppt, updated_presentation)
    except Exception as e:
        logger.error(f"Error in /edit endpoint: {e}", exc_info=True)
        return error_response(500, "Failed to edit presentation", message="Please try again later")

    return generation_payload(updated_presentation, filename, payload.sessionId)


@app.get("/api/chat/suggestions")
async def suggestions_endpoint():
    return {"success": True, "data": {"suggestions": list(SUGGESTIONS)}}


# --- Presentation File Endpoints ---

def file_response(filename: str, download: bool):
    if not ppt_generator.is_valid_filename(filename):
        return error_response(400, "Invalid filename")

    path = ppt_generator.resolve_ppt_path(filename)
    if not path.is_file():
        logger.error(f"Error serving file: {filename} not found")
        return error_response(404, "File not found")

    logger.info(f"File downloaded: {filename}")
    if download:
        return FileResponse(path=path, filename=filename, media_type=ppt_generator.PPTX_MEDIA_TYPE)
    return FileResponse(path=path, media_type=ppt_generator.PPTX_MEDIA_TYPE)


@app.get("/api/ppt/download/{filename}")
async def download_endpoint(filename: str):
    return file_response(filename, download=True)


@app.get("/uploads/{filename}")
async def uploads_endpoint(filename: str):
    """Serves a generated file by the downloadUrl that generate and edit return."""
    return file_response(filename, download=False)


@app.get("/api/ppt/info/{filename}")
async def info_endpoint(filename: str):
    if not ppt_generator.is_valid_filename(filename):
        return error_response(400, "Invalid filename")

    try:
        info = ppt_generator.get_ppt_info(filename)
    except FileNotFoundError:
        logger.error(f"Error getting file info: {filename} not found")
        return error_response(404, "File not found")

    return {"success": True, "data": info}


@app.delete("/api/ppt/{filename}")
async def delete_endpoint(filename: str):
    if not ppt_generator.is_valid_filename(filename):
        return error_response(400, "Invalid filename")

    ppt_generator.delete_ppt(filename)
    return {"success": True, "message": "Presentation deleted successfully"}


@app.get("/api/ppt/list")
async def list_endpoint():
    try:
        presentations = ppt_generator.list_ppts()
    except OSError as e:
        logger.error(f"Error listing presentations: {e}", exc_info=True)
        return error_response(500, "Failed to list presentations")

    return {"success": True, "data": {"presentations": presentations}}


# --- Realtime ---

@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, service_factory=Depends(get_service_factory)):
    await SessionRelay(manager, service_factory).serve(websocket)


@app.get("/health")
async def health():
    return {"status": "ok", "connections": manager.connection_count}


@app.get("/")
async def root():
    return {"message": "MagicSlides API is running."}


if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "3001")))
