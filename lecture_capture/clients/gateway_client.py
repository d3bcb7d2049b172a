"""HTTP client for the AI gateway functions when they are deployed remotely."""
import json
import logging

import aiohttp

from lecture_capture.errors import RemoteGatewayError
from lecture_capture.models import ChatMessage, CornellNotes, Flashcard, LectureSummary, QuizQuestion
from lecture_capture.schemas import CornellNotesOut, FlashcardsOut, QuizOut, SummaryOut, validate_output

logger = logging.getLogger(__name__)


class GatewayClient:
    """Calls ``<base_url>/<function>`` with a JSON body; mirrors ``AIGateway``."""

    def __init__(self, base_url: str, api_key: str = "") -> None:
        """
        Args:
            base_url: Functions root, e.g. ``https://host/functions/v1``
            api_key: Sent as bearer token and ``apikey`` header when set
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        # Unbounded: calls are never cut short client-side.
        self.timeout = aiohttp.ClientTimeout(total=None)

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
            headers["apikey"] = self.api_key
        return headers

    async def call(self, function_name: str, body: dict) -> dict:
        """POST *body* to *function_name*; non-2xx or malformed JSON raises."""
        url = f"{self.base_url}/{function_name}"
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(url, json=body, headers=self._headers()) as resp:
                    text = await resp.text()
                    status = resp.status
        except aiohttp.ClientError as exc:
            logger.error("Gateway %s unreachable: %s", function_name, exc)
            raise RemoteGatewayError(
                "Network error: unable to reach the AI service. The recording has been kept "
                "and you can try again later."
            ) from exc
        return self._parse(function_name, status, text)

    @staticmethod
    def _parse(function_name: str, status: int, text: str) -> dict:
        try:
            data = json.loads(text) if text else {}
        except json.JSONDecodeError:
            data = None

        if not 200 <= status < 300:
            message = data.get("error") if isinstance(data, dict) else None
            logger.error("Gateway %s returned %d: %.200s", function_name, status, text)
            raise RemoteGatewayError(message or f"Failed to call {function_name}")
        if not isinstance(data, dict):
            raise RemoteGatewayError(f"Malformed response from {function_name}")
        return data

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def transcribe(self, audio_b64: str, mime_type: str) -> str:
        data = await self.call("transcribe", {"audio": audio_b64, "mimeType": mime_type})
        transcript = data.get("transcript")
        if not isinstance(transcript, str):
            raise RemoteGatewayError("Malformed response from transcribe")
        return transcript

    async def summarize(
        self,
        transcript: str,
        files: list[dict],
        confusion_markers: list[int],
    ) -> tuple[LectureSummary, CornellNotes]:
        data = await self.call(
            "summarize",
            {"transcript": transcript, "files": files, "confusionMarkers": confusion_markers},
        )
        summary = validate_output(SummaryOut, data.get("summary") or {}, what="summary")
        cornell = validate_output(CornellNotesOut, data.get("cornellNotes") or {}, what="Cornell notes")
        return summary.to_domain(), cornell.to_domain()

    async def generate_flashcards(self, transcript: str) -> list[Flashcard]:
        data = await self.call("generate-flashcards", {"transcript": transcript})
        return validate_output(FlashcardsOut, data, what="flashcard set").to_domain()

    async def generate_quiz(self, transcript: str, question_count: int) -> list[QuizQuestion]:
        data = await self.call(
            "generate-quiz", {"transcript": transcript, "questionCount": question_count}
        )
        return validate_output(QuizOut, data, what="quiz").to_domain()

    async def chat(self, transcript: str, messages: list[ChatMessage]) -> str:
        data = await self.call(
            "chat", {"transcript": transcript, "messages": [m.to_dict() for m in messages]}
        )
        reply = data.get("reply")
        if not isinstance(reply, str):
            raise RemoteGatewayError("Malformed response from chat")
        return reply
