import logging
import uuid

from fastapi import HTTPException, WebSocket, WebSocketDisconnect

from lecture_capture.models import PipelineState
from lecture_capture.recording import CaptureController
from lecture_capture.services.gateway import AIGateway, Gateway, default_gateway
from lecture_capture.services.pipeline import PipelineOrchestrator

logger = logging.getLogger(__name__)

# In-memory registry of signed-in sessions.
# session_id -> PipelineOrchestrator (owns the AppSession and its capture)
_sessions: dict[str, PipelineOrchestrator] = {}

# session_id -> [WebSocket] receiving pipeline state changes
_websockets: dict[str, list[WebSocket]] = {}

_ai_gateway: AIGateway | None = None


# ------------------------------------------------------------------
# Dependencies (overridden in tests via app.dependency_overrides)
# ------------------------------------------------------------------


def get_ai_gateway() -> AIGateway:
    """In-process gateway backing the ``/functions/v1`` surface."""
    global _ai_gateway
    if _ai_gateway is None:
        _ai_gateway = AIGateway()
    return _ai_gateway


def get_session_gateway() -> Gateway:
    """Gateway used by pipeline sessions: remote when configured, else in-process."""
    return default_gateway()


def new_capture() -> CaptureController:
    return CaptureController()


# ------------------------------------------------------------------
# Registry
# ------------------------------------------------------------------


def register(orchestrator: PipelineOrchestrator) -> str:
    session_id = uuid.uuid4().hex
    _sessions[session_id] = orchestrator

    async def _on_state(state: PipelineState) -> None:
        await send_to_all(session_id, {"type": "state", "state": state.value})

    orchestrator.add_listener(_on_state)
    return session_id


def get_orchestrator(session_id: str) -> PipelineOrchestrator:
    orchestrator = _sessions.get(session_id)
    if orchestrator is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return orchestrator


def unregister(session_id: str) -> PipelineOrchestrator:
    orchestrator = get_orchestrator(session_id)
    del _sessions[session_id]
    _websockets.pop(session_id, None)
    return orchestrator


async def send_to_all(session_id: str, message: dict) -> None:
    """Broadcast a JSON message to every WebSocket watching *session_id*."""
    for ws in list(_websockets.get(session_id, [])):
        try:
            await ws.send_json(message)
        except (WebSocketDisconnect, RuntimeError):
            logger.debug("Dropping closed websocket for session %s", session_id)
            _websockets[session_id].remove(ws)
