"""
Realtime relay for generation and edit requests.

Frames in both directions are JSON objects of the form
``{"event": <name>, "data": {...}}``. Progress milestones are broadcast to
every socket that joined the request's session room; results and errors go
back to the socket that asked.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional, Set

from fastapi import WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool

import ppt_generator
from models import GenerationProgress, GenerationResult

logger = logging.getLogger(__name__)

# Client events
GENERATE_EVENT = "generate-presentation"
EDIT_EVENT = "edit-presentation"
# Server events
PROGRESS_EVENT = "generation-progress"
GENERATED_EVENT = "presentation-generated"
UPDATED_EVENT = "presentation-updated"
ERROR_EVENT = "error"

GENERATE_MILESTONES = {
    "analyzing": GenerationProgress(stage="analyzing", progress=10, message="Analyzing your request..."),
    "generating": GenerationProgress(stage="generating", progress=30, message="Generating presentation content..."),
    "formatting": GenerationProgress(stage="formatting", progress=60, message="Formatting slides..."),
    "creating": GenerationProgress(stage="creating", progress=80, message="Creating PowerPoint file..."),
    "complete": GenerationProgress(stage="complete", progress=100, message="Presentation ready!"),
}

EDIT_MILESTONES = {
    "analyzing": GenerationProgress(stage="analyzing", progress=20, message="Analyzing edit request..."),
    "creating": GenerationProgress(stage="creating", progress=70, message="Updating presentation..."),
    "complete": GenerationProgress(stage="complete", progress=100, message="Presentation updated!"),
}


def frame(event: str, data: Dict[str, Any]) -> Dict[str, Any]:
    return {"event": event, "data": data}


class ConnectionManager:
    """
    Tracks open sockets and the session rooms they have joined.

    A socket joins the room named by the sessionId of each request it sends,
    and leaves every room when it disconnects.
    """

    def __init__(self):
        self._connections: Set[WebSocket] = set()
        self._rooms: Dict[str, Set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections.add(websocket)
        logger.info(f"Client connected (total connections: {len(self._connections)})")

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._connections.discard(websocket)
            for session_id in list(self._rooms):
                self._rooms[session_id].discard(websocket)
                if not self._rooms[session_id]:
                    del self._rooms[session_id]
        logger.info(f"Client disconnected (remaining connections: {len(self._connections)})")

    async def join(self, websocket: WebSocket, session_id: str) -> None:
        async with self._lock:
            self._rooms.setdefault(session_id, set()).add(websocket)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def send(self, websocket: WebSocket, event: str, data: Dict[str, Any]) -> None:
        await websocket.send_json(frame(event, data))

    async def emit_to_room(self, session_id: str, event: str, data: Dict[str, Any]) -> None:
        """Sends to every socket in the room; sockets that fail are dropped."""
        async with self._lock:
            members = list(self._rooms.get(session_id, ()))

        dead = []
        for websocket in members:
            try:
                await websocket.send_json(frame(event, data))
            except Exception as e:
                logger.warning(f"Failed to send '{event}' to session {session_id}: {e}")
                dead.append(websocket)

        for websocket in dead:
            await self.disconnect(websocket)


class SessionRelay:
    """Sequences parse -> render for one socket and reports milestones to its session."""

    def __init__(self, manager: ConnectionManager, service_factory: Callable[[], Any],
                 output_dir: Optional[str] = None):
        self.manager = manager
        self.service_factory = service_factory
        self.output_dir = output_dir

    async def _progress(self, session_id: str, progress: GenerationProgress):
        await self.manager.emit_to_room(session_id, PROGRESS_EVENT, progress.model_dump())

    async def _session(self, websocket: WebSocket, data: Dict[str, Any]) -> str:
        session_id = data.get("sessionId") or f"socket_{id(websocket)}"
        await self.manager.join(websocket, session_id)
        return session_id

    async def handle_generate(self, websocket: WebSocket, data: Dict[str, Any]) -> None:
        prompt = data.get("prompt")
        if not prompt:
            await self.manager.send(websocket, ERROR_EVENT, {"message": "Prompt is required"})
            return

        try:
            session_id = await self._session(websocket, data)
            service = self.service_factory()

            await self._progress(session_id, GENERATE_MILESTONES["analyzing"])
            await self._progress(session_id, GENERATE_MILESTONES["generating"])
            presentation_data = await run_in_threadpool(service.generate_presentation, prompt)

            await self._progress(session_id, GENERATE_MILESTONES["formatting"])
            await self._progress(session_id, GENERATE_MILESTONES["creating"])
            filename = await run_in_threadpool(ppt_generator.generate_ppt, presentation_data, self.output_dir)

            await self._progress(session_id, GENERATE_MILESTONES["complete"])
            await self.manager.send(websocket, GENERATED_EVENT, GenerationResult.for_file(
                presentation_data, filename, session_id
            ).model_dump())
        except WebSocketDisconnect:
            raise
        except Exception as e:
            logger.error(f"Error in {GENERATE_EVENT}: {e}", exc_info=True)
            await self.manager.send(websocket, ERROR_EVENT, {
                "message": "Failed to generate presentation. Please try again."
            })

    async def handle_edit(self, websocket: WebSocket, data: Dict[str, Any]) -> None:
        edit_prompt = data.get("editPrompt")
        current_presentation = data.get("currentPresentation")
        if not edit_prompt or not current_presentation:
            await self.manager.send(websocket, ERROR_EVENT, {
                "message": "Edit prompt and current presentation are required"
            })
            return

        try:
            session_id = await self._session(websocket, data)
            service = self.service_factory()

            await self._progress(session_id, EDIT_MILESTONES["analyzing"])
            updated_presentation = await run_in_threadpool(
                service.edit_presentation, current_presentation, edit_prompt
            )

            await self._progress(session_id, EDIT_MILESTONES["creating"])
            filename = await run_in_threadpool(ppt_generator.generate_ppt, updated_presentation, self.output_dir)

            await self._progress(session_id, EDIT_MILESTONES["complete"])
            await self.manager.send(websocket, UPDATED_EVENT, GenerationResult.for_file(
                updated_presentation, filename, session_id
            ).model_dump())
        except WebSocketDisconnect:
            raise
        except Exception as e:
            logger.error(f"Error in {EDIT_EVENT}: {e}", exc_info=True)
            await self.manager.send(websocket, ERROR_EVENT, {
                "message": "Failed to edit presentation. Please try again."
            })

    async def serve(self, websocket: WebSocket) -> None:
        """Handles one connection until the client goes away. Requests run one at a time."""
        await self.manager.connect(websocket)
        try:
            while True:
                try:
                    message = await websocket.receive_json()
                except ValueError:
                    message = None
                if not isinstance(message, dict):
                    await self.manager.send(websocket, ERROR_EVENT, {"message": "Invalid message"})
                    continue

                event = message.get("event")
                data = message.get("data")
                if not isinstance(data, dict):
                    data = {}

                if event == GENERATE_EVENT:
                    await self.handle_generate(websocket, data)
                elif event == EDIT_EVENT:
                    await self.handle_edit(websocket, data)
                else:
                    await self.manager.send(websocket, ERROR_EVENT, {"message": f"Unknown event: {event}"})
        except WebSocketDisconnect:
            pass
        finally:
            await self.manager.disconnect(websocket)
