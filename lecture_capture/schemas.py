"""Pydantic models validating structured model output and gateway request bodies."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from lecture_capture.errors import RemoteGatewayError
from lecture_capture.models import (
    CornellNotes,
    Flashcard,
    LectureSummary,
    QuizQuestion,
    VocabularyItem,
)

# ---------------------------------------------------------------------------
# Model output
# ---------------------------------------------------------------------------


class _TermOut(BaseModel):
    term: str
    definition: str


class SummaryOut(BaseModel):
    overview: str
    keyPoints: list[str]
    vocabulary: list[_TermOut]
    actionItems: list[str]

    def to_domain(self) -> LectureSummary:
        return LectureSummary(
            overview=self.overview,
            key_points=self.keyPoints,
            vocabulary=[VocabularyItem(v.term, v.definition) for v in self.vocabulary],
            action_items=self.actionItems,
        )


class CornellNotesOut(BaseModel):
    cues: list[str]
    notes: list[str]
    summary: str

    def to_domain(self) -> CornellNotes:
        return CornellNotes(cues=self.cues, notes=self.notes, summary=self.summary)


class FlashcardsOut(BaseModel):
    flashcards: list[_TermOut]

    def to_domain(self) -> list[Flashcard]:
        return [Flashcard(c.term, c.definition) for c in self.flashcards]


class _QuestionOut(BaseModel):
    question: str
    options: list[str] = Field(min_length=4, max_length=4)
    correctIndex: int = Field(ge=0, le=3)
    explanation: str


class QuizOut(BaseModel):
    questions: list[_QuestionOut]

    def to_domain(self) -> list[QuizQuestion]:
        return [
            QuizQuestion(
                question=q.question,
                options=q.options,
                correct_index=q.correctIndex,
                explanation=q.explanation,
            )
            for q in self.questions
        ]


def validate_output(model: type[BaseModel], data: dict, *, what: str) -> BaseModel:
    """Validate parsed model output, mapping failures to ``RemoteGatewayError``."""
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise RemoteGatewayError(
            f"The AI returned an invalid {what}. Please try again."
        ) from exc


# ---------------------------------------------------------------------------
# Gateway request bodies.  Fields are optional so missing ones can be
# reported as {"error": "Missing ..."} rather than a validation 422.
# ---------------------------------------------------------------------------


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TranscribeBody(_Body):
    audio: str | None = None
    mime_type: str | None = Field(default=None, alias="mimeType")


class InlineFile(_Body):
    base64: str | None = None
    mime_type: str | None = Field(default=None, alias="mimeType")


class SummarizeBody(_Body):
    transcript: str | None = None
    files: list[InlineFile] = Field(default_factory=list)
    confusion_markers: list[int] = Field(default_factory=list, alias="confusionMarkers")


class TranscriptBody(_Body):
    transcript: str | None = None


class QuizBody(_Body):
    transcript: str | None = None
    question_count: Any = Field(default=5, alias="questionCount")


class ChatMessageIn(_Body):
    role: Literal["user", "assistant"]
    content: str


class ChatBody(_Body):
    transcript: str | None = None
    messages: list[ChatMessageIn] | None = None
