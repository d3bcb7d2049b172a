import logging

from lecture_capture.clients import GroqClient
from lecture_capture.config import settings
from lecture_capture.errors import MissingFieldError
from lecture_capture.models import CornellNotes, LectureSummary
from lecture_capture.recording.audio_utils import format_timestamp
from lecture_capture.schemas import CornellNotesOut, SummaryOut, validate_output
from lecture_capture.services.attachments import AttachmentService

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# JSON Schemas - Groq strict mode requires additionalProperties: false
# everywhere and all properties in "required".
# ---------------------------------------------------------------------------

CORNELL_NOTES_SCHEMA = {
    "type": "object",
    "properties": {
        "cues": {"type": "array", "items": {"type": "string"}},
        "notes": {"type": "array", "items": {"type": "string"}},
        "summary": {"type": "string"},
    },
    "required": ["cues", "notes", "summary"],
    "additionalProperties": False,
}

SUMMARY_SCHEMA = {
    "type": "object",
    "properties": {
        "overview": {"type": "string"},
        "keyPoints": {"type": "array", "items": {"type": "string"}},
        "vocabulary": {
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
        "actionItems": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["overview", "keyPoints", "vocabulary", "actionItems"],
    "additionalProperties": False,
}

CORNELL_SYSTEM_PROMPT = (
    "You are an expert academic assistant. Analyze the provided lecture transcript "
    "and any attached visual or document context (slides, whiteboard photos, PDFs). "
    "Use the attachments to verify spelling of technical terms and to understand "
    "diagrams mentioned in the audio.\n\n"
    "Output the summary in Cornell Notes format as a JSON object with:\n"
    '- "cues": keywords, questions, or main ideas (left column)\n'
    '- "notes": detailed notes and explanations (right column)\n'
    '- "summary": a comprehensive summary paragraph (bottom section)'
)

SUMMARY_SYSTEM_PROMPT = (
    "Analyze this lecture and output a JSON object with:\n"
    '- "overview": a high-level summary\n'
    '- "keyPoints": the main concepts\n'
    '- "vocabulary": academic terms as {term, definition} objects\n'
    '- "actionItems": assignments, readings, or dates mentioned'
)


def confusion_instruction(markers: list[int]) -> str:
    """Prompt suffix asking for extra detail around the marked moments."""
    if not markers:
        return ""
    stamps = ", ".join(format_timestamp(s) for s in markers)
    return (
        f"\n\nIMPORTANT: The student marked the following timestamps as confusing: "
        f"[{stamps}]. Provide extra detailed explanations in the notes section for "
        "the topics discussed at these times."
    )


class NotesService:
    """Produce Cornell notes and the classic structured summary via the Groq API."""

    def __init__(self, groq: GroqClient | None = None) -> None:
        self.groq = groq or GroqClient()

    async def summarize(
        self,
        transcript: str,
        files: list[dict] | None = None,
        confusion_markers: list[int] | None = None,
    ) -> tuple[LectureSummary, CornellNotes]:
        """Return ``(summary, cornell_notes)`` for *transcript*.

        *files* are ``{"base64", "mimeType"}`` attachments.  Images switch the
        Cornell-notes call to the vision model; documents are sent as text.
        """
        if not transcript:
            raise MissingFieldError("Missing transcript")

        attachment_parts = AttachmentService.to_content_parts(files or [])
        has_images = any(p["type"] == "image_url" for p in attachment_parts)
        logger.info(
            "Summarizing %d chars with %d attachment parts, %d confusion markers",
            len(transcript),
            len(attachment_parts),
            len(confusion_markers or []),
        )

        cornell_messages = [
            {
                "role": "system",
                "content": CORNELL_SYSTEM_PROMPT + confusion_instruction(confusion_markers or []),
            },
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": f"Lecture transcript:\n\n{transcript}"},
                    *attachment_parts,
                ],
            },
        ]
        cornell_raw = await self.groq.chat_json(
            cornell_messages,
            CORNELL_NOTES_SCHEMA,
            schema_name="cornell_notes",
            model=settings.vision_model if has_images else None,
        )
        cornell = validate_output(CornellNotesOut, cornell_raw, what="Cornell notes").to_domain()

        summary_messages = [
            {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
            {"role": "user", "content": transcript},
        ]
        summary_raw = await self.groq.chat_json(
            summary_messages, SUMMARY_SCHEMA, schema_name="lecture_summary"
        )
        summary = validate_output(SummaryOut, summary_raw, what="summary").to_domain()

        return summary, cornell
