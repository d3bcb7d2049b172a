"""Stateless AI gateway endpoints.

Each accepts a JSON body and answers with JSON; failures are rendered by the
app-level handler as ``{"error": message}`` with a non-2xx status.
"""

from fastapi import APIRouter, Depends

from lecture_capture.models import ChatMessage
from lecture_capture.routes.deps import get_ai_gateway
from lecture_capture.schemas import ChatBody, QuizBody, SummarizeBody, TranscribeBody, TranscriptBody
from lecture_capture.services.gateway import AIGateway

router = APIRouter(prefix="/functions/v1", tags=["functions"])


@router.post("/transcribe")
async def transcribe(body: TranscribeBody, gateway: AIGateway = Depends(get_ai_gateway)) -> dict:
    transcript = await gateway.transcribe(body.audio or "", body.mime_type or "")
    return {"transcript": transcript}


@router.post("/summarize")
async def summarize(body: SummarizeBody, gateway: AIGateway = Depends(get_ai_gateway)) -> dict:
    files = [{"base64": f.base64, "mimeType": f.mime_type} for f in body.files if f.base64]
    summary, cornell = await gateway.summarize(
        body.transcript or "", files, body.confusion_markers
    )
    return {"summary": summary.to_dict(), "cornellNotes": cornell.to_dict()}


@router.post("/generate-flashcards")
async def generate_flashcards(body: TranscriptBody, gateway: AIGateway = Depends(get_ai_gateway)) -> dict:
    cards = await gateway.generate_flashcards(body.transcript or "")
    return {"flashcards": [c.to_dict() for c in cards]}


@router.post("/generate-quiz")
async def generate_quiz(body: QuizBody, gateway: AIGateway = Depends(get_ai_gateway)) -> dict:
    questions = await gateway.generate_quiz(body.transcript or "", body.question_count)
    return {"questions": [q.to_dict() for q in questions]}


@router.post("/chat")
async def chat(body: ChatBody, gateway: AIGateway = Depends(get_ai_gateway)) -> dict:
    messages = [ChatMessage(role=m.role, content=m.content) for m in body.messages or []]
    reply = await gateway.chat(body.transcript or "", messages)
    return {"reply": reply}
