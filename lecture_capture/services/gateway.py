"""In-process AI gateway: the five stateless operations behind ``/functions/v1``."""

from typing import Protocol

from lecture_capture.clients import GatewayClient, GroqClient
from lecture_capture.config import settings
from lecture_capture.models import ChatMessage, CornellNotes, Flashcard, LectureSummary, QuizQuestion
from lecture_capture.services.notes import NotesService
from lecture_capture.services.study import StudyService
from lecture_capture.services.transcription import TranscriptionService


class Gateway(Protocol):
    async def transcribe(self, audio_b64: str, mime_type: str) -> str: ...

    async def summarize(
        self,
        transcript: str,
        files: list[dict],
        confusion_markers: list[int],
    ) -> tuple[LectureSummary, CornellNotes]: ...

    async def generate_flashcards(self, transcript: str) -> list[Flashcard]: ...

    async def generate_quiz(self, transcript: str, question_count: int) -> list[QuizQuestion]: ...

    async def chat(self, transcript: str, messages: list[ChatMessage]) -> str: ...


class AIGateway:
    def __init__(self, groq: GroqClient | None = None) -> None:
        groq = groq or GroqClient()
        self.transcription = TranscriptionService(groq)
        self.notes = NotesService(groq)
        self.study = StudyService(groq)

    async def transcribe(self, audio_b64: str, mime_type: str) -> str:
        return await self.transcription.transcribe(audio_b64, mime_type)

    async def summarize(
        self,
        transcript: str,
        files: list[dict],
        confusion_markers: list[int],
    ) -> tuple[LectureSummary, CornellNotes]:
        return await self.notes.summarize(transcript, files, confusion_markers)

    async def generate_flashcards(self, transcript: str) -> list[Flashcard]:
        return await self.study.generate_flashcards(transcript)

    async def generate_quiz(self, transcript: str, question_count: int) -> list[QuizQuestion]:
        return await self.study.generate_quiz(transcript, question_count)

    async def chat(self, transcript: str, messages: list[ChatMessage]) -> str:
        return await self.study.chat(transcript, messages)


def default_gateway() -> Gateway:
    """Remote functions when ``GATEWAY_URL`` is set, otherwise in-process services."""
    if settings.gateway_url:
        return GatewayClient(settings.gateway_url, settings.gateway_api_key)
    return AIGateway()
