from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from lecture_capture.routes import deps

router = APIRouter(prefix="/api/sessions/{session_id}", tags=["study"])


class QuizRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question_count: Any = Field(default=5, alias="questionCount")


class ChatRequest(BaseModel):
    message: str


# ------------------------------------------------------------------
# Endpoints (all act on the session's current lecture)
# ------------------------------------------------------------------


@router.post("/flashcards")
async def generate_flashcards(session_id: str) -> dict:
    orchestrator = deps.get_orchestrator(session_id)
    cards = await orchestrator.generate_flashcards()
    return {
        "lectureId": orchestrator.session.current_lecture.id,
        "flashcards": [c.to_dict() for c in cards],
    }


@router.post("/quiz")
async def generate_quiz(session_id: str, body: QuizRequest) -> dict:
    """Generate a multiple-choice quiz (5, 10, 15 or 20 questions)."""
    orchestrator = deps.get_orchestrator(session_id)
    questions = await orchestrator.generate_quiz(body.question_count)
    return {
        "lectureId": orchestrator.session.current_lecture.id,
        "questions": [q.to_dict() for q in questions],
    }


@router.post("/chat")
async def send_chat_message(session_id: str, body: ChatRequest) -> dict:
    """Ask a question about the current lecture."""
    orchestrator = deps.get_orchestrator(session_id)
    reply = await orchestrator.send_chat_message(body.message)
    return {
        "reply": reply.to_dict(),
        "messages": [m.to_dict() for m in orchestrator.session.chat_messages],
    }


@router.delete("/chat")
async def close_chat(session_id: str) -> dict:
    orchestrator = deps.get_orchestrator(session_id)
    orchestrator.close_chat()
    return {"messages": []}
