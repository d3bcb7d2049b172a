from __future__ import annotations

from pathlib import Path
from typing import Any

import numpy as np
import pytest

from lecture_capture.config import Settings, settings
from lecture_capture.models import (
    ChatMessage,
    CornellNotes,
    Flashcard,
    LectureSummary,
    QuizQuestion,
    VocabularyItem,
)
from lecture_capture.recording import CaptureController


@pytest.fixture()
def temp_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Settings:
    monkeypatch.setattr(settings, "guest_store_path", str(tmp_path / "guest_lectures.json"))
    monkeypatch.setattr(settings, "database_path", str(tmp_path / "lectures.db"))
    monkeypatch.setattr(settings, "gateway_url", "")
    monkeypatch.setattr(settings, "groq_api_key", "test-key")
    return settings


# ---------------------------------------------------------------------------
# Microphone
# ---------------------------------------------------------------------------


class FakeStream:
    def __init__(self, callback, start_error: Exception | None = None) -> None:
        self.callback = callback
        self.start_error = start_error
        self.started = False
        self.stopped = False
        self.closed = False

    def start(self) -> None:
        if self.start_error is not None:
            raise self.start_error
        self.started = True

    def stop(self) -> None:
        self.stopped = True

    def close(self) -> None:
        self.closed = True

    def feed(self, samples: np.ndarray) -> None:
        block = samples.astype(np.float32).reshape(-1, 1)
        self.callback(block, len(block), None, None)


class FakeMicrophone:
    """Stream factory handing out ``FakeStream`` objects (or refusing access)."""

    def __init__(self, error: Exception | None = None, start_error: Exception | None = None) -> None:
        self.error = error
        self.start_error = start_error
        self.streams: list[FakeStream] = []

    def __call__(self, sample_rate: int, callback) -> FakeStream:
        if self.error is not None:
            raise self.error
        stream = FakeStream(callback, self.start_error)
        self.streams.append(stream)
        return stream


class RecordingEncoder:
    def __init__(self) -> None:
        self.calls: list[tuple[int, str]] = []

    def __call__(self, samples: np.ndarray, sample_rate: int, mime_type: str) -> bytes:
        self.calls.append((len(samples), mime_type))
        return b"ENC:" + mime_type.encode() + b":" + samples.astype(np.float32).tobytes()


def make_capture(
    microphone: FakeMicrophone | None = None,
    supported: tuple[str, ...] = ("audio/wav",),
    encoder: RecordingEncoder | None = None,
) -> CaptureController:
    return CaptureController(
        sample_rate=16_000,
        is_supported=lambda mime: mime in supported,
        stream_factory=microphone or FakeMicrophone(),
        encoder=encoder or RecordingEncoder(),
        tick_interval=3600,
    )


@pytest.fixture()
def microphone() -> FakeMicrophone:
    return FakeMicrophone()


@pytest.fixture()
def capture(microphone: FakeMicrophone) -> CaptureController:
    return make_capture(microphone)


# ---------------------------------------------------------------------------
# AI gateway
# ---------------------------------------------------------------------------


def sample_quiz(count: int) -> list[QuizQuestion]:
    return [
        QuizQuestion(
            question=f"Question {i + 1}?",
            options=["A", "B", "C", "D"],
            correct_index=i % 4,
            explanation="Because the lecture said so.",
        )
        for i in range(count)
    ]


class FakeGateway:
    """Stands in for ``AIGateway`` / ``GatewayClient``; counts every call."""

    def __init__(self, transcript: str = "Photosynthesis converts light into chemical energy.") -> None:
        self.transcript = transcript
        self.calls: dict[str, int] = {
            "transcribe": 0,
            "summarize": 0,
            "generate_flashcards": 0,
            "generate_quiz": 0,
            "chat": 0,
        }
        self.errors: dict[str, Exception] = {}
        self.last_summarize: dict[str, Any] | None = None

    def _enter(self, name: str) -> None:
        self.calls[name] += 1
        if name in self.errors:
            raise self.errors[name]

    async def transcribe(self, audio_b64: str, mime_type: str) -> str:
        self._enter("transcribe")
        return self.transcript

    async def summarize(self, transcript, files, confusion_markers):
        self._enter("summarize")
        self.last_summarize = {
            "transcript": transcript,
            "files": files,
            "confusion_markers": confusion_markers,
        }
        summary = LectureSummary(
            overview="Plants make sugar from light.",
            key_points=["Chlorophyll absorbs light"],
            vocabulary=[VocabularyItem("Chlorophyll", "Green pigment")],
            action_items=["Read chapter 4"],
        )
        cornell = CornellNotes(
            cues=["What is photosynthesis?"],
            notes=["Light energy becomes chemical energy."],
            summary="Plants convert light into sugar.",
        )
        return summary, cornell

    async def generate_flashcards(self, transcript: str) -> list[Flashcard]:
        self._enter("generate_flashcards")
        return [Flashcard("Chlorophyll", "Green pigment")]

    async def generate_quiz(self, transcript: str, question_count: int) -> list[QuizQuestion]:
        self._enter("generate_quiz")
        return sample_quiz(question_count)

    async def chat(self, transcript: str, messages: list[ChatMessage]) -> str:
        self._enter("chat")
        return f"You asked: {messages[-1].content}"


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()


# ---------------------------------------------------------------------------
# Groq
# ---------------------------------------------------------------------------


class FakeGroq:
    """Replays queued ``chat_json`` payloads and records what was sent."""

    def __init__(self, json_responses: list[dict] | None = None, reply: str = "", transcript: str = "") -> None:
        self.json_responses = list(json_responses or [])
        self.reply = reply
        self.transcript = transcript
        self.json_calls: list[dict[str, Any]] = []
        self.chat_calls: list[list[dict]] = []
        self.transcribe_calls: list[tuple[bytes, str]] = []

    async def chat_json(self, messages, response_schema, *, schema_name="response", model=None, **_):
        self.json_calls.append({"messages": messages, "schema_name": schema_name, "model": model})
        return self.json_responses.pop(0)

    async def chat(self, messages, *, model=None, **_):
        self.chat_calls.append(messages)
        return self.reply

    async def transcribe(self, audio: bytes, filename: str, *, model=None, prompt=None) -> str:
        self.transcribe_calls.append((audio, filename))
        return self.transcript
