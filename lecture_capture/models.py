from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum

GUEST_USER_ID = "guest"


class PipelineState(str, Enum):
    IDLE = "IDLE"
    RECORDING = "RECORDING"
    REVIEWING = "REVIEWING"
    TRANSCRIBING = "TRANSCRIBING"
    SUMMARIZING = "SUMMARIZING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


@dataclass
class User:
    id: str
    email: str
    name: str
    picture: str | None = None

    @property
    def is_guest(self) -> bool:
        return self.id == GUEST_USER_ID

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "picture": self.picture,
        }


@dataclass
class VocabularyItem:
    term: str
    definition: str

    def to_dict(self) -> dict:
        return {"term": self.term, "definition": self.definition}

    @classmethod
    def from_dict(cls, data: dict) -> "VocabularyItem":
        return cls(term=data["term"], definition=data["definition"])


# Flashcards share the term/definition shape of vocabulary pairs.
Flashcard = VocabularyItem


@dataclass
class LectureSummary:
    overview: str
    key_points: list[str] = field(default_factory=list)
    vocabulary: list[VocabularyItem] = field(default_factory=list)
    action_items: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "overview": self.overview,
            "keyPoints": list(self.key_points),
            "vocabulary": [v.to_dict() for v in self.vocabulary],
            "actionItems": list(self.action_items),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LectureSummary":
        return cls(
            overview=data.get("overview", ""),
            key_points=list(data.get("keyPoints", [])),
            vocabulary=[VocabularyItem.from_dict(v) for v in data.get("vocabulary", [])],
            action_items=list(data.get("actionItems", [])),
        )


@dataclass
class CornellNotes:
    cues: list[str]
    notes: list[str]
    summary: str

    def to_dict(self) -> dict:
        return {"cues": list(self.cues), "notes": list(self.notes), "summary": self.summary}

    @classmethod
    def from_dict(cls, data: dict) -> "CornellNotes":
        return cls(
            cues=list(data.get("cues", [])),
            notes=list(data.get("notes", [])),
            summary=data.get("summary", ""),
        )


@dataclass
class QuizQuestion:
    question: str
    options: list[str]
    correct_index: int
    explanation: str

    def to_dict(self) -> dict:
        return {
            "question": self.question,
            "options": list(self.options),
            "correctIndex": self.correct_index,
            "explanation": self.explanation,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "QuizQuestion":
        return cls(
            question=data["question"],
            options=list(data["options"]),
            correct_index=int(data["correctIndex"]),
            explanation=data.get("explanation", ""),
        )


@dataclass
class FileDescriptor:
    name: str
    mime_type: str

    def to_dict(self) -> dict:
        return {"name": self.name, "mimeType": self.mime_type}

    @classmethod
    def from_dict(cls, data: dict) -> "FileDescriptor":
        return cls(name=data["name"], mime_type=data["mimeType"])


@dataclass
class Lecture:
    id: str  # empty until persisted
    user_id: str
    title: str
    date: str  # ISO-8601
    transcript: str
    summary: LectureSummary
    cornell_notes: CornellNotes | None = None
    flashcards: list[Flashcard] | None = None
    quiz: list[QuizQuestion] | None = None
    confusion_markers: list[int] | None = None
    files: list[FileDescriptor] = field(default_factory=list)

    def with_id(self, lecture_id: str) -> "Lecture":
        """Return a copy carrying the store-assigned id.  Ids never change once set."""
        if self.id:
            raise ValueError(f"Lecture already persisted with id {self.id!r}")
        if not lecture_id:
            raise ValueError("Persisted lecture id must not be empty")
        return replace(self, id=lecture_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "title": self.title,
            "date": self.date,
            "transcript": self.transcript,
            "summary": self.summary.to_dict(),
            "cornellNotes": self.cornell_notes.to_dict() if self.cornell_notes else None,
            "flashcards": (
                [c.to_dict() for c in self.flashcards] if self.flashcards is not None else None
            ),
            "quizData": [q.to_dict() for q in self.quiz] if self.quiz is not None else None,
            "confusionMarkers": (
                list(self.confusion_markers) if self.confusion_markers is not None else None
            ),
            "files": [f.to_dict() for f in self.files],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Lecture":
        cornell = data.get("cornellNotes")
        flashcards = data.get("flashcards")
        quiz = data.get("quizData")
        markers = data.get("confusionMarkers")
        return cls(
            id=data.get("id") or "",
            user_id=data["userId"],
            title=data.get("title", ""),
            date=data["date"],
            transcript=data.get("transcript", ""),
            summary=LectureSummary.from_dict(data.get("summary") or {}),
            cornell_notes=CornellNotes.from_dict(cornell) if cornell else None,
            flashcards=[Flashcard.from_dict(c) for c in flashcards] if flashcards is not None else None,
            quiz=[QuizQuestion.from_dict(q) for q in quiz] if quiz is not None else None,
            confusion_markers=[int(m) for m in markers] if markers is not None else None,
            files=[FileDescriptor.from_dict(f) for f in data.get("files") or []],
        )


@dataclass
class UploadedFile:
    """A supplementary attachment held only until the lecture is saved or discarded."""

    id: str
    name: str
    mime_type: str
    base64: str
    preview_url: str | None = None

    def descriptor(self) -> FileDescriptor:
        return FileDescriptor(name=self.name, mime_type=self.mime_type)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "mimeType": self.mime_type,
            "previewUrl": self.preview_url,
        }


@dataclass
class AudioRecording:
    """A finalized recording (or uploaded audio) awaiting review."""

    data: bytes
    mime_type: str
    duration_seconds: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class ChatMessage:
    role: str  # user | assistant
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}
