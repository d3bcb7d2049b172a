import logging
from typing import Any

from lecture_capture.clients import GroqClient
from lecture_capture.errors import MissingFieldError, RemoteGatewayError
from lecture_capture.models import ChatMessage, Flashcard, QuizQuestion
from lecture_capture.schemas import FlashcardsOut, QuizOut, validate_output

logger = logging.getLogger(__name__)

VALID_QUESTION_COUNTS = (5, 10, 15, 20)
DEFAULT_QUESTION_COUNT = 5

# ---------------------------------------------------------------------------
# JSON Schemas
# ---------------------------------------------------------------------------

FLASHCARDS_SCHEMA = {
    "type": "object",
    "properties": {
        "flashcards": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "term": {"type": "string"},
                    "definition": {"type": "string"},
                },
                "required": ["term", "definition"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["flashcards"],
    "additionalProperties": False,
}

QUIZ_SCHEMA = {
    "type": "object",
    "properties": {
        "questions": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "question": {"type": "string"},
                    "options": {
                        "type": "array",
                        "items": {"type": "string"},
                        "minItems": 4,
                        "maxItems": 4,
                    },
                    "correctIndex": {"type": "integer"},
                    "explanation": {"type": "string"},
                },
                "required": ["question", "options", "correctIndex", "explanation"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["questions"],
    "additionalProperties": False,
}

CHAT_SYSTEM_PROMPT = """You are a helpful professor assistant. The student has recorded a lecture and wants to ask questions about it.

Here is the full lecture transcript for context:
---
{transcript}
---

Answer the student's questions based on this specific lecture content. Be helpful, accurate, and reference specific parts of the lecture when relevant. If the student asks about something not covered in the lecture, let them know politely."""

CHAT_FALLBACK_REPLY = "I apologize, I could not generate a response."


def normalize_question_count(count: Any) -> int:
    """Coerce *count* to one of the supported quiz sizes (default 5)."""
    if isinstance(count, str) and count.strip().isdigit():
        count = int(count)
    if not isinstance(count, bool) and count in VALID_QUESTION_COUNTS:
        return int(count)
    logger.warning("Unsupported quiz size %r; using %d", count, DEFAULT_QUESTION_COUNT)
    return DEFAULT_QUESTION_COUNT


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class StudyService:
    """Generate flashcards and quizzes and answer questions about a lecture."""

    def __init__(self, groq: GroqClient | None = None) -> None:
        self.groq = groq or GroqClient()

    async def generate_flashcards(self, transcript: str) -> list[Flashcard]:
        """10-15 term/definition cards; the model decides the exact count."""
        if not transcript:
            raise MissingFieldError("Missing transcript")
        messages = [
            {
                "role": "system",
                "content": (
                    "You are an expert educator. Based on the lecture transcript, generate "
                    "flashcards for studying. Create 10-15 flashcards covering the most "
                    "important concepts, terms, and ideas from the lecture. Each flashcard "
                    'has a "term" (concept, term, or question; front of card) and a '
                    '"definition" (explanation or answer; back of card). Make them useful '
                    "for exam preparation."
                ),
            },
            {"role": "user", "content": f"Lecture transcript:\n\n{transcript}"},
        ]
        result = await self.groq.chat_json(messages, FLASHCARDS_SCHEMA, schema_name="flashcards")
        return validate_output(FlashcardsOut, result, what="flashcard set").to_domain()

    async def generate_quiz(
        self,
        transcript: str,
        question_count: int = DEFAULT_QUESTION_COUNT,
    ) -> list[QuizQuestion]:
        """Generate exactly *question_count* multiple-choice questions.

        Each question has 4 options, a ``correct_index`` in 0-3 and an
        explanation.  Surplus questions are dropped; a short set is an error.
        """
        if not transcript:
            raise MissingFieldError("Missing transcript")
        count = normalize_question_count(question_count)
        messages = [
            {
                "role": "system",
                "content": (
                    "You are an expert educator creating a quiz based on a lecture.\n\n"
                    f"Generate exactly {count} multiple-choice questions that test "
                    "understanding of the key concepts.\n\n"
                    "For each question:\n"
                    '- "question": a clear question about the lecture content\n'
                    '- "options": exactly 4 answer choices\n'
                    '- "correctIndex": the index (0-3) of the correct answer\n'
                    '- "explanation": why the correct answer is right\n\n'
                    "Make questions progressively challenging, mixing factual recall, "
                    "conceptual understanding and application."
                ),
            },
            {"role": "user", "content": f"Lecture transcript:\n\n{transcript}"},
        ]
        result = await self.groq.chat_json(messages, QUIZ_SCHEMA, schema_name="quiz")
        questions = validate_output(QuizOut, result, what="quiz").to_domain()
        if len(questions) < count:
            raise RemoteGatewayError(
                f"The AI returned {len(questions)} of {count} quiz questions. Please try again."
            )
        return questions[:count]

    async def chat(self, transcript: str, messages: list[ChatMessage]) -> str:
        """Answer the latest user message grounded in *transcript*."""
        if not transcript or not messages:
            raise MissingFieldError("Missing transcript or messages")
        payload = [{"role": "system", "content": CHAT_SYSTEM_PROMPT.format(transcript=transcript)}]
        payload.extend({"role": m.role, "content": m.content} for m in messages)
        reply = await self.groq.chat(payload)
        return reply.strip() or CHAT_FALLBACK_REPLY
