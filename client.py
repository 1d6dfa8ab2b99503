import json
import logging
import os
import random
import string
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import requests
from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.sync.client import connect as ws_connect

from models import ChatMessage, GenerationProgress, GenerationResult, PresentationData
from realtime import EDIT_EVENT, ERROR_EVENT, GENERATE_EVENT, GENERATED_EVENT, PROGRESS_EVENT, UPDATED_EVENT

logger = logging.getLogger(__name__)

API_BASE_URL = os.getenv("MAGICSLIDES_API_URL", "http://localhost:3001")
CHAT_HISTORY_KEY = "magicslides_chat_history"
REQUEST_TIMEOUT = 60  # seconds, AI generation is slow
SOCKET_URL = os.getenv("MAGICSLIDES_SOCKET_URL", "ws://localhost:3001/ws")
SOCKET_CONNECT_TIMEOUT = 20  # seconds
MAX_RECONNECT_ATTEMPTS = 5


class ClientError(Exception):
    pass


def _random_suffix(length: int = 9) -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=length))


def generate_session_id() -> str:
    return f"session_{int(time.time() * 1000)}_{_random_suffix()}"


def generate_message_id() -> str:
    return f"msg_{int(time.time() * 1000)}_{_random_suffix()}"


class ChatHistory:
    """
    Chat transcript kept in a local JSON store.

    The store is a JSON object of key -> value, like browser local storage;
    the transcript lives under CHAT_HISTORY_KEY and is rewritten on every
    new message.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.messages: List[ChatMessage] = []

    def _read_store(self) -> Dict[str, Any]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                store = json.load(f)
        except FileNotFoundError:
            return {}
        except ValueError as e:
            logger.warning(f"Ignoring unreadable chat history at {self.path}: {e}")
            return {}
        return store if isinstance(store, dict) else {}

    def _write_store(self, store: Dict[str, Any]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(store, f, ensure_ascii=False, indent=2)

    def add_message(self, role: str, content: str, presentation_id: Optional[str] = None) -> ChatMessage:
        message = ChatMessage(
            id=generate_message_id(),
            role=role,
            content=content,
            timestamp=datetime.now(),
            presentationId=presentation_id,
        )
        self.messages = self.messages + [message]

        store = self._read_store()
        store[CHAT_HISTORY_KEY] = [m.model_dump(mode="json") for m in self.messages]
        self._write_store(store)
        return message

    def clear(self):
        self.messages = []
        store = self._read_store()
        if CHAT_HISTORY_KEY in store:
            del store[CHAT_HISTORY_KEY]
            self._write_store(store)

    def load(self) -> List[ChatMessage]:
        saved = self._read_store().get(CHAT_HISTORY_KEY, [])
        # Timestamps come back as ISO strings; pydantic turns them into datetimes
        self.messages = [ChatMessage(**m) for m in saved if isinstance(m, dict)]
        return self.messages


class MagicSlidesClient:
    """HTTP client for the MagicSlides service that also tracks the latest generated document."""

    def __init__(self, base_url: str = API_BASE_URL, session_id: Optional[str] = None,
                 history: Optional[ChatHistory] = None, timeout: float = REQUEST_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.session_id = session_id or generate_session_id()
        self.history = history
        self.timeout = timeout
        self.presentation: Optional[PresentationData] = None
        self.filename: Optional[str] = None

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}/api{path}"
        logger.debug(f"API Request: {method.upper()} {url}")
        try:
            response = requests.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout as e:
            raise ClientError("Request timeout. Please try again.") from e
        except requests.exceptions.RequestException as e:
            raise ClientError(f"Could not reach the server: {e}") from e

        if response.status_code == 429:
            raise ClientError("Too many requests. Please try again later.")
        if response.status_code >= 500:
            raise ClientError("Server error. Please try again later.")

        try:
            body = response.json()
        except ValueError as e:
            raise ClientError(f"Unexpected response from server (status {response.status_code})") from e

        if response.status_code >= 400:
            raise ClientError(body.get("error") or f"Request failed with status {response.status_code}")
        return body

    def _record(self, role: str, content: str, presentation_id: Optional[str] = None):
        if self.history is not None:
            self.history.add_message(role, content, presentation_id)

    def _accept_result(self, body: Dict[str, Any], fallback_error: str) -> Dict[str, Any]:
        data = body.get("data")
        if not body.get("success") or not data:
            raise ClientError(body.get("error") or fallback_error)

        # Each result replaces the previous document
        self.presentation = PresentationData(**data["presentationData"])
        self.filename = data["filename"]
        return data

    def generate(self, prompt: str) -> Dict[str, Any]:
        self._record("user", prompt)
        body = self._request("post", "/chat/generate", json={"prompt": prompt, "sessionId": self.session_id})
        data = self._accept_result(body, "Failed to generate presentation")
        self._record(
            "assistant",
            f'I\'ve created your presentation "{self.presentation.title}" '
            f"with {len(self.presentation.slides)} slides.",
            self.filename,
        )
        return data

    def edit(self, edit_prompt: str) -> Dict[str, Any]:
        if self.presentation is None:
            raise ClientError("There is no presentation to edit yet")

        self._record("user", edit_prompt)
        body = self._request("post", "/chat/edit", json={
            "editPrompt": edit_prompt,
            "currentPresentation": self.presentation.model_dump(),
            "sessionId": self.session_id,
        })
        data = self._accept_result(body, "Failed to edit presentation")
        self._record("assistant", "I've updated your presentation.", self.filename)
        return data

    def suggestions(self) -> List[str]:
        body = self._request("get", "/chat/suggestions")
        if not body.get("success") or not body.get("data"):
            raise ClientError("Failed to fetch suggestions")
        return body["data"]["suggestions"]

    def download_url(self, filename: Optional[str] = None) -> str:
        return f"{self.base_url}/api/ppt/download/{filename or self.filename}"

    def presentation_info(self, filename: str) -> Dict[str, Any]:
        return self._request("get", f"/ppt/info/{filename}")

    def delete_presentation(self, filename: str) -> Dict[str, Any]:
        return self._request("delete", f"/ppt/{filename}")

    def list_presentations(self) -> Dict[str, Any]:
        return self._request("get", "/ppt/list")


class RealtimeClient:
    """
    Socket client for the /ws relay.

    Progress, result and error frames for a request are handed to the
    caller's callbacks. When the connection drops it is reopened with
    exponential backoff (2, 4, 8, ... seconds, at most
    ``max_reconnect_attempts`` tries). A request that was in flight is not
    resumed: its ``on_error`` callback is told the connection was lost.
    """

    def __init__(self, url: str = SOCKET_URL, connect: Optional[Callable[[], Any]] = None,
                 max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS,
                 sleep: Callable[[float], None] = time.sleep):
        self.url = url
        self._open = connect or (lambda: ws_connect(url, open_timeout=SOCKET_CONNECT_TIMEOUT))
        self.max_reconnect_attempts = max_reconnect_attempts
        self._sleep = sleep
        self.websocket = None
        self.reconnect_attempts = 0

    @property
    def connected(self) -> bool:
        return self.websocket is not None

    def connect(self):
        try:
            self.websocket = self._open()
        except (OSError, WebSocketException) as e:
            raise ClientError(f"Could not connect to {self.url}: {e}") from e
        self.reconnect_attempts = 0
        logger.info("Connected to server")

    def reconnect(self):
        while self.reconnect_attempts < self.max_reconnect_attempts:
            self.reconnect_attempts += 1
            delay = 2 ** self.reconnect_attempts
            logger.info(
                f"Attempting to reconnect... ({self.reconnect_attempts}/{self.max_reconnect_attempts}) in {delay}s"
            )
            self._sleep(delay)
            try:
                self.websocket = self._open()
            except (OSError, WebSocketException) as e:
                logger.warning(f"Reconnect failed: {e}")
                continue
            self.reconnect_attempts = 0
            logger.info("Reconnected to server")
            return
        raise ClientError("Could not reconnect to server")

    def disconnect(self):
        if self.websocket is not None:
            self.websocket.close()
            self.websocket = None

    def _request(self, event: str, data: Dict[str, Any], complete_event: str,
                 on_progress: Callable[[GenerationProgress], None],
                 on_complete: Callable[[GenerationResult], None],
                 on_error: Callable[[str], None]):
        if self.websocket is None:
            on_error("Not connected to server")
            return

        try:
            self.websocket.send(json.dumps({"event": event, "data": data}))
            while True:
                message = json.loads(self.websocket.recv())
                name = message.get("event")
                payload = message.get("data") or {}
                if name == PROGRESS_EVENT:
                    on_progress(GenerationProgress(**payload))
                elif name == complete_event:
                    on_complete(GenerationResult(**payload))
                    return
                elif name == ERROR_EVENT:
                    on_error(payload.get("message") or "Unknown error")
                    return
                else:
                    logger.debug(f"Ignoring '{name}' while waiting for '{complete_event}'")
        except (OSError, ConnectionClosed) as e:
            logger.warning(f"Disconnected from server: {e}")
            self.websocket = None
            on_error("Connection lost")
            self.reconnect()

    def generate(self, prompt: str, session_id: str,
                 on_progress: Callable[[GenerationProgress], None],
                 on_complete: Callable[[GenerationResult], None],
                 on_error: Callable[[str], None]):
        self._request(GENERATE_EVENT, {"prompt": prompt, "sessionId": session_id},
                      GENERATED_EVENT, on_progress, on_complete, on_error)

    def edit(self, edit_prompt: str, current_presentation: Union[PresentationData, Dict[str, Any]],
             session_id: str,
             on_progress: Callable[[GenerationProgress], None],
             on_complete: Callable[[GenerationResult], None],
             on_error: Callable[[str], None]):
        if isinstance(current_presentation, PresentationData):
            current_presentation = current_presentation.model_dump()
        self._request(EDIT_EVENT, {
            "editPrompt": edit_prompt,
            "currentPresentation": current_presentation,
            "sessionId": session_id,
        }, UPDATED_EVENT, on_progress, on_complete, on_error)
