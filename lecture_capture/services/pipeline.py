"""Pipeline orchestrator: the record -> transcribe -> summarize -> persist state machine.

All transitions run on the event loop and are awaited one at a time, so the
session is never touched by two pipelines at once.  No failure inside
``finalize`` escapes: it moves the session to ERROR with a user-facing
message and leaves the recording in place for a retry.
"""

import asyncio
import base64
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable

from lecture_capture.config import settings
from lecture_capture.errors import (
    CaptureError,
    InvalidFileType,
    InvalidStateError,
    LectureCaptureError,
    MissingFieldError,
    PayloadTooLarge,
    PermissionDenied,
    PersistenceError,
    RemoteGatewayError,
)
from lecture_capture.models import (
    AudioRecording,
    ChatMessage,
    Flashcard,
    Lecture,
    PipelineState,
    QuizQuestion,
    UploadedFile,
    User,
)
from lecture_capture.recording import CaptureController
from lecture_capture.services.gateway import Gateway
from lecture_capture.services.media import MediaOptimizer
from lecture_capture.services.storage import LectureStore
from lecture_capture.services.study import normalize_question_count

logger = logging.getLogger(__name__)

StateListener = Callable[[PipelineState], Awaitable[None]]

MICROPHONE_DENIED = "Microphone access denied or unavailable."
INVALID_AUDIO = "Please upload an audio file (MP3, WAV, WebM, M4A, OGG)"
CHAT_ERROR_PREFIX = "I'm sorry, I encountered an error: "


@dataclass
class AppSession:
    """Everything one signed-in (or guest) user is working on."""

    user: User
    store: LectureStore
    state: PipelineState = PipelineState.IDLE
    lectures: list[Lecture] = field(default_factory=list)
    current_lecture: Lecture | None = None
    uploaded_files: list[UploadedFile] = field(default_factory=list)
    recording: AudioRecording | None = None
    confusion_markers: list[int] = field(default_factory=list)
    error_message: str | None = None
    error: LectureCaptureError | None = None
    chat_messages: list[ChatMessage] = field(default_factory=list)
    sync_error: PersistenceError | None = None

    def clear_transients(self) -> None:
        self.recording = None
        self.uploaded_files = []
        self.confusion_markers = []

    def to_dict(self) -> dict:
        recording = None
        if self.recording is not None:
            recording = {
                "mimeType": self.recording.mime_type,
                "size": self.recording.size,
                "durationSeconds": self.recording.duration_seconds,
            }
        return {
            "user": self.user.to_dict(),
            "state": self.state.value,
            "lectures": [lec.to_dict() for lec in self.lectures],
            "currentLecture": self.current_lecture.to_dict() if self.current_lecture else None,
            "uploadedFiles": [f.to_dict() for f in self.uploaded_files],
            "recording": recording,
            "confusionMarkers": list(self.confusion_markers),
            "error": self.error.to_dict() if self.error else None,
            "syncError": self.sync_error.to_dict() if self.sync_error else None,
            "chatMessages": [m.to_dict() for m in self.chat_messages],
        }


class PipelineOrchestrator:
    def __init__(
        self,
        session: AppSession,
        gateway: Gateway,
        capture: CaptureController | None = None,
        optimizer: MediaOptimizer | None = None,
        max_audio_bytes: int | None = None,
    ) -> None:
        self.session = session
        self.gateway = gateway
        self.capture = capture or CaptureController()
        self.optimizer = optimizer or MediaOptimizer()
        self.max_audio_bytes = settings.max_audio_bytes if max_audio_bytes is None else max_audio_bytes
        self._listeners: list[StateListener] = []

    # ------------------------------------------------------------------
    # State bookkeeping
    # ------------------------------------------------------------------

    @property
    def state(self) -> PipelineState:
        return self.session.state

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    async def _set_state(self, state: PipelineState) -> None:
        if state is self.session.state:
            return
        logger.info("Pipeline %s -> %s (user %s)", self.session.state.value, state.value, self.session.user.id)
        self.session.state = state
        for listener in list(self._listeners):
            await listener(state)

    async def _fail(self, exc: LectureCaptureError) -> PipelineState:
        logger.error("Pipeline error in %s: %s", self.session.state.value, exc.message)
        self.session.error = exc
        self.session.error_message = exc.message
        await self._set_state(PipelineState.ERROR)
        return self.session.state

    def _require(self, event: str, *states: PipelineState) -> None:
        if self.session.state not in states:
            raise InvalidStateError(f"Cannot {event} while {self.session.state.value}")

    def _clear_error(self) -> None:
        self.session.error = None
        self.session.error_message = None

    def snapshot(self) -> dict:
        data = self.session.to_dict()
        data["elapsedSeconds"] = self.capture.elapsed_seconds
        data["isRecording"] = self.capture.is_recording
        return data

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    async def start_recording(self) -> PipelineState:
        self._require("start recording", PipelineState.IDLE)
        self._clear_error()
        try:
            mime_type = self.capture.start()
        except PermissionDenied:
            return await self._fail(PermissionDenied(MICROPHONE_DENIED))
        except LectureCaptureError as exc:
            return await self._fail(exc)
        self.session.confusion_markers = []
        logger.info("Recording started as %s", mime_type)
        await self._set_state(PipelineState.RECORDING)
        return self.session.state

    async def stop_recording(self) -> PipelineState:
        if self.session.state is not PipelineState.RECORDING:
            return self.session.state
        try:
            recording = await asyncio.to_thread(self.capture.stop)
        except LectureCaptureError as exc:
            return await self._fail(exc)
        except Exception as exc:
            logger.exception("Encoding the recording failed")
            return await self._fail(CaptureError(f"Could not finalize the recording: {exc}"))
        self.session.recording = recording
        self.session.confusion_markers = list(self.capture.confusion_markers)
        await self._set_state(PipelineState.REVIEWING)
        return self.session.state

    def mark_confusion(self) -> list[int]:
        if self.session.state is PipelineState.RECORDING:
            if self.capture.mark_confusion() is not None:
                self.session.confusion_markers = list(self.capture.confusion_markers)
        return list(self.session.confusion_markers)

    async def upload_audio(self, name: str, mime_type: str, data: bytes) -> PipelineState:
        self._require("upload audio", PipelineState.IDLE)
        self._clear_error()
        if not (mime_type or "").startswith("audio/"):
            logger.warning("Rejected upload %s with type %r", name, mime_type)
            return await self._fail(InvalidFileType(INVALID_AUDIO))
        self.session.recording = AudioRecording(data=data, mime_type=mime_type)
        self.session.confusion_markers = []
        await self._set_state(PipelineState.REVIEWING)
        return self.session.state

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    async def attach_files(self, files: list[tuple[str, str, bytes]]) -> list[UploadedFile]:
        self._require("attach files", PipelineState.REVIEWING)
        prepared = await asyncio.to_thread(self.optimizer.prepare_batch, files)
        self.session.uploaded_files.extend(prepared)
        return prepared

    def remove_file(self, file_id: str) -> None:
        self._require("remove files", PipelineState.REVIEWING)
        self.session.uploaded_files = [f for f in self.session.uploaded_files if f.id != file_id]

    async def discard(self) -> PipelineState:
        self._require("discard the recording", PipelineState.REVIEWING)
        self.session.clear_transients()
        await self._set_state(PipelineState.IDLE)
        return self.session.state

    def download_recording(self) -> AudioRecording:
        if self.session.recording is None:
            raise InvalidStateError("No recording is available to download.")
        return self.session.recording

    async def finalize(self) -> PipelineState:
        """Transcribe, summarize and persist the held recording."""
        self._require("process the recording", PipelineState.REVIEWING)
        session = self.session
        recording = session.recording
        if recording is None:
            raise InvalidStateError("There is no recording to process.")
        self._clear_error()

        if recording.size > self.max_audio_bytes:
            limit_mb = self.max_audio_bytes / (1024 * 1024)
            return await self._fail(PayloadTooLarge(
                f"Recording is too large ({recording.size / (1024 * 1024):.1f} MB). "
                f"The limit is {limit_mb:.1f} MB; please record a shorter segment."
            ))

        try:
            await self._set_state(PipelineState.TRANSCRIBING)
            audio_b64 = base64.b64encode(recording.data).decode("ascii")
            transcript = await self.gateway.transcribe(audio_b64, recording.mime_type)

            await self._set_state(PipelineState.SUMMARIZING)
            files = [{"base64": f.base64, "mimeType": f.mime_type} for f in session.uploaded_files]
            summary, cornell = await self.gateway.summarize(
                transcript, files, list(session.confusion_markers)
            )

            now = datetime.now()
            lecture = Lecture(
                id="",
                user_id=session.user.id,
                title=f"Lecture {now.strftime('%Y-%m-%d %H:%M')}",
                date=now.isoformat(),
                transcript=transcript,
                summary=summary,
                cornell_notes=cornell,
                confusion_markers=list(session.confusion_markers) or None,
                files=[f.descriptor() for f in session.uploaded_files],
            )
            lecture_id = await session.store.save(lecture)
        except LectureCaptureError as exc:
            return await self._fail(exc)
        except Exception as exc:
            logger.exception("Processing failed while %s", session.state.value)
            return await self._fail(RemoteGatewayError(f"Processing failed: {exc}"))

        lecture = lecture.with_id(lecture_id)
        session.lectures.insert(0, lecture)
        session.current_lecture = lecture
        session.chat_messages = []
        session.clear_transients()
        logger.info("Saved lecture %s for user %s", lecture_id, session.user.id)
        await self._set_state(PipelineState.COMPLETED)
        return session.state

    async def reset(self) -> PipelineState:
        self._require("reset", PipelineState.ERROR, PipelineState.COMPLETED)
        self.session.current_lecture = None
        self.session.chat_messages = []
        self.session.clear_transients()
        self._clear_error()
        await self._set_state(PipelineState.IDLE)
        return self.session.state

    async def resume_review(self) -> PipelineState:
        """Return to REVIEWING after a failure so the held recording can be retried."""
        self._require("resume review", PipelineState.ERROR)
        if self.session.recording is None:
            raise InvalidStateError("There is no recording to review.")
        self._clear_error()
        await self._set_state(PipelineState.REVIEWING)
        return self.session.state

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    async def load_lectures(self) -> list[Lecture]:
        try:
            self.session.lectures = await self.session.store.list_lectures(self.session.user.id)
            self.session.sync_error = None
        except PersistenceError as exc:
            logger.error("Could not load lectures for %s: %s", self.session.user.id, exc.message)
            self.session.sync_error = exc
        return self.session.lectures

    def _find(self, lecture_id: str) -> Lecture:
        for lecture in self.session.lectures:
            if lecture.id == lecture_id:
                return lecture
        raise LectureCaptureError(f"Lecture {lecture_id} not found", status_code=404)

    async def select_lecture(self, lecture_id: str) -> Lecture:
        self._require("open a lecture", PipelineState.IDLE, PipelineState.COMPLETED)
        lecture = self._find(lecture_id)
        self.session.current_lecture = lecture
        self.session.chat_messages = []
        await self._set_state(PipelineState.COMPLETED)
        return lecture

    async def delete_lecture(self, lecture_id: str) -> None:
        await self.session.store.delete(lecture_id, self.session.user.id)
        self.session.lectures = [lec for lec in self.session.lectures if lec.id != lecture_id]
        current = self.session.current_lecture
        if current is not None and current.id == lecture_id:
            self.session.current_lecture = None
            self.session.chat_messages = []
            if self.session.state is PipelineState.COMPLETED:
                await self._set_state(PipelineState.IDLE)

    # ------------------------------------------------------------------
    # Study tools
    # ------------------------------------------------------------------

    def _require_lecture(self) -> Lecture:
        if self.session.current_lecture is None:
            raise InvalidStateError("Open a lecture first.")
        return self.session.current_lecture

    async def generate_flashcards(self) -> list[Flashcard]:
        lecture = self._require_lecture()
        cards = await self.gateway.generate_flashcards(lecture.transcript)
        lecture.flashcards = cards
        try:
            await self.session.store.update_flashcards(lecture.id, lecture.user_id, cards)
        except PersistenceError as exc:
            logger.error("Could not save flashcards for lecture %s: %s", lecture.id, exc.message)
        return cards

    async def generate_quiz(self, question_count: Any = 5) -> list[QuizQuestion]:
        lecture = self._require_lecture()
        count = normalize_question_count(question_count)
        questions = await self.gateway.generate_quiz(lecture.transcript, count)
        lecture.quiz = questions
        try:
            await self.session.store.update_quiz(lecture.id, lecture.user_id, questions)
        except PersistenceError as exc:
            logger.error("Could not save quiz for lecture %s: %s", lecture.id, exc.message)
        return questions

    async def send_chat_message(self, text: str) -> ChatMessage:
        lecture = self._require_lecture()
        if not text or not text.strip():
            raise MissingFieldError("Message must not be empty")
        self.session.chat_messages.append(ChatMessage(role="user", content=text.strip()))
        try:
            content = await self.gateway.chat(lecture.transcript, list(self.session.chat_messages))
        except LectureCaptureError as exc:
            logger.error("Chat failed for lecture %s: %s", lecture.id, exc.message)
            content = CHAT_ERROR_PREFIX + exc.message
        reply = ChatMessage(role="assistant", content=content)
        self.session.chat_messages.append(reply)
        return reply

    def close_chat(self) -> None:
        self.session.chat_messages = []

    # ------------------------------------------------------------------
    # Session end
    # ------------------------------------------------------------------

    async def logout(self) -> None:
        if self.capture.is_recording:
            await asyncio.to_thread(self.capture.stop)
        session = self.session
        session.lectures = []
        session.current_lecture = None
        session.chat_messages = []
        session.sync_error = None
        session.clear_transients()
        self._clear_error()
        await self._set_state(PipelineState.IDLE)
        self._listeners.clear()
        logger.info("User %s signed out", session.user.id)
