from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ConfigDict, Field

from lecture_capture.recording import CaptureController
from lecture_capture.routes import deps
from lecture_capture.services.auth import auth_error_from_callback, authenticated_user, guest_user
from lecture_capture.services.gateway import Gateway
from lecture_capture.services.pipeline import AppSession, PipelineOrchestrator
from lecture_capture.services.storage import store_for_user

router = APIRouter(tags=["sessions"])


# ------------------------------------------------------------------
# Request bodies
# ------------------------------------------------------------------


class SessionCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    guest: bool = False
    user_id: str | None = Field(default=None, alias="userId")
    email: str = ""
    name: str | None = None
    picture: str | None = None


# ------------------------------------------------------------------
# Session endpoints
# ------------------------------------------------------------------


@router.post("/api/sessions")
async def create_session(
    body: SessionCreate,
    gateway: Gateway = Depends(deps.get_session_gateway),
    capture: CaptureController = Depends(deps.new_capture),
) -> dict:
    """Sign in (or continue as guest) and load the user's lecture history."""
    if body.guest:
        user = guest_user()
    else:
        user = authenticated_user(body.user_id or "", body.email, body.name, body.picture)

    session = AppSession(user=user, store=store_for_user(user.id))
    orchestrator = PipelineOrchestrator(session, gateway, capture=capture)
    session_id = deps.register(orchestrator)
    await orchestrator.load_lectures()
    return {"sessionId": session_id, **orchestrator.snapshot()}


@router.get("/api/sessions/{session_id}")
async def get_session(session_id: str) -> dict:
    return deps.get_orchestrator(session_id).snapshot()


@router.delete("/api/sessions/{session_id}")
async def logout(session_id: str) -> dict:
    orchestrator = deps.unregister(session_id)
    await orchestrator.logout()
    return {"sessionId": session_id, "status": "signed_out"}


# ------------------------------------------------------------------
# Lecture history
# ------------------------------------------------------------------


@router.get("/api/sessions/{session_id}/lectures")
async def list_lectures(session_id: str) -> dict:
    """Fetch (or retry fetching) the lecture list from the session's store."""
    orchestrator = deps.get_orchestrator(session_id)
    lectures = await orchestrator.load_lectures()
    sync_error = orchestrator.session.sync_error
    return {
        "lectures": [lec.to_dict() for lec in lectures],
        "syncError": sync_error.to_dict() if sync_error else None,
    }


@router.post("/api/sessions/{session_id}/lectures/{lecture_id}/select")
async def select_lecture(session_id: str, lecture_id: str) -> dict:
    orchestrator = deps.get_orchestrator(session_id)
    await orchestrator.select_lecture(lecture_id)
    return orchestrator.snapshot()


@router.delete("/api/sessions/{session_id}/lectures/{lecture_id}")
async def delete_lecture(session_id: str, lecture_id: str) -> dict:
    orchestrator = deps.get_orchestrator(session_id)
    await orchestrator.delete_lecture(lecture_id)
    return {"lectureId": lecture_id, "status": "deleted"}


# ------------------------------------------------------------------
# Sign-in redirect
# ------------------------------------------------------------------


@router.get("/api/auth/callback")
async def auth_callback(error_code: str | None = None, error_description: str | None = None) -> dict:
    """Surface a failed OAuth redirect as an error with provider-specific guidance."""
    if error_code or error_description:
        raise auth_error_from_callback(error_code, error_description)
    return {"status": "ok"}


# ------------------------------------------------------------------
# WebSocket endpoint
# ------------------------------------------------------------------


@router.websocket("/ws/sessions/{session_id}")
async def websocket_endpoint(websocket: WebSocket, session_id: str) -> None:
    """Live pipeline-state stream for a session."""
    await websocket.accept()
    orchestrator = deps._sessions.get(session_id)
    if orchestrator is None:
        await websocket.close(code=4404)
        return

    deps._websockets.setdefault(session_id, []).append(websocket)
    await websocket.send_json({"type": "state", "state": orchestrator.state.value})

    try:
        while True:
            await websocket.receive_text()  # keep-alive; client sends pings
    except WebSocketDisconnect:
        ws_list = deps._websockets.get(session_id, [])
        if websocket in ws_list:
            ws_list.remove(websocket)
