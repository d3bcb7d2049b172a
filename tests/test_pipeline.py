from __future__ import annotations

import asyncio
from pathlib import Path

import numpy as np
import pytest

from conftest import FakeGateway, FakeMicrophone, RecordingEncoder, make_capture
from lecture_capture.errors import (
    CaptureError,
    InvalidFileType,
    InvalidStateError,
    PayloadTooLarge,
    PermissionDenied,
    PersistenceError,
    RemoteGatewayError,
)
from lecture_capture.models import Lecture, PipelineState, User
from lecture_capture.services.auth import guest_user
from lecture_capture.services.media import MediaOptimizer
from lecture_capture.services.pipeline import AppSession, PipelineOrchestrator
from lecture_capture.services.storage import LectureStore, LocalLectureStore


class FailingStore(LectureStore):
    def __init__(self, error: PersistenceError) -> None:
        self.error = error
        self.saved = 0

    async def list_lectures(self, user_id):
        raise self.error

    async def save(self, lecture):
        self.saved += 1
        raise self.error

    async def update_flashcards(self, lecture_id, user_id, flashcards):
        raise self.error

    async def update_quiz(self, lecture_id, user_id, questions):
        raise self.error

    async def delete(self, lecture_id, user_id):
        raise self.error


def _orchestrator(
    tmp_path: Path,
    gateway: FakeGateway,
    *,
    microphone: FakeMicrophone | None = None,
    store: LectureStore | None = None,
    max_audio_bytes: int = 1024,
) -> PipelineOrchestrator:
    session = AppSession(user=guest_user(), store=store or LocalLectureStore(str(tmp_path / "guest.json")))
    return PipelineOrchestrator(
        session,
        gateway,
        capture=make_capture(microphone or FakeMicrophone()),
        optimizer=MediaOptimizer(),
        max_audio_bytes=max_audio_bytes,
    )


def _reviewing(orchestrator: PipelineOrchestrator, data: bytes = b"RIFFaudio") -> None:
    asyncio.run(orchestrator.upload_audio("lecture.wav", "audio/wav", data))
    assert orchestrator.state is PipelineState.REVIEWING


# ---------------------------------------------------------------------------
# Capture transitions
# ---------------------------------------------------------------------------


def test_record_stop_reaches_reviewing_with_markers(tmp_path, gateway) -> None:
    microphone = FakeMicrophone()
    orchestrator = _orchestrator(tmp_path, gateway, microphone=microphone)

    assert asyncio.run(orchestrator.start_recording()) is PipelineState.RECORDING
    microphone.streams[0].feed(np.zeros(256))
    orchestrator.capture.tick()
    orchestrator.mark_confusion()
    assert asyncio.run(orchestrator.stop_recording()) is PipelineState.REVIEWING

    assert orchestrator.session.recording is not None
    assert orchestrator.session.recording.mime_type == "audio/wav"
    assert orchestrator.session.confusion_markers == [1]


def test_stop_recording_twice_is_a_noop(tmp_path, gateway) -> None:
    orchestrator = _orchestrator(tmp_path, gateway)
    asyncio.run(orchestrator.start_recording())
    asyncio.run(orchestrator.stop_recording())
    recording = orchestrator.session.recording

    assert asyncio.run(orchestrator.stop_recording()) is PipelineState.REVIEWING
    assert orchestrator.session.recording is recording


def test_mark_confusion_outside_recording_changes_nothing(tmp_path, gateway) -> None:
    orchestrator = _orchestrator(tmp_path, gateway)

    assert orchestrator.mark_confusion() == []
    _reviewing(orchestrator)
    assert orchestrator.mark_confusion() == []
    assert orchestrator.session.confusion_markers == []


def test_microphone_denied_moves_to_error(tmp_path, gateway) -> None:
    orchestrator = _orchestrator(tmp_path, gateway, microphone=FakeMicrophone(error=OSError("denied")))

    assert asyncio.run(orchestrator.start_recording()) is PipelineState.ERROR
    assert isinstance(orchestrator.session.error, PermissionDenied)
    assert orchestrator.session.error_message == "Microphone access denied or unavailable."


def test_stream_failing_to_start_moves_to_error(tmp_path, gateway) -> None:
    microphone = FakeMicrophone(start_error=RuntimeError("PortAudio: device unavailable"))
    orchestrator = _orchestrator(tmp_path, gateway, microphone=microphone)

    assert asyncio.run(orchestrator.start_recording()) is PipelineState.ERROR
    assert isinstance(orchestrator.session.error, PermissionDenied)
    assert microphone.streams[0].closed


def test_encoder_failure_on_stop_moves_to_error(tmp_path, gateway) -> None:
    class BrokenEncoder(RecordingEncoder):
        def __call__(self, samples, sample_rate, mime_type):
            raise RuntimeError("Error opening <_io.BytesIO>: Format not recognised.")

    orchestrator = _orchestrator(tmp_path, gateway)
    orchestrator.capture = make_capture(encoder=BrokenEncoder())
    asyncio.run(orchestrator.start_recording())

    assert asyncio.run(orchestrator.stop_recording()) is PipelineState.ERROR
    assert isinstance(orchestrator.session.error, CaptureError)
    assert not orchestrator.capture.is_recording
    assert asyncio.run(orchestrator.reset()) is PipelineState.IDLE


def test_non_audio_upload_is_rejected(tmp_path, gateway) -> None:
    orchestrator = _orchestrator(tmp_path, gateway)

    state = asyncio.run(orchestrator.upload_audio("notes.pdf", "application/pdf", b"%PDF"))

    assert state is PipelineState.ERROR
    assert isinstance(orchestrator.session.error, InvalidFileType)
    assert orchestrator.session.recording is None


def test_events_in_wrong_state_raise_invalid_state(tmp_path, gateway) -> None:
    orchestrator = _orchestrator(tmp_path, gateway)

    with pytest.raises(InvalidStateError):
        asyncio.run(orchestrator.finalize())
    with pytest.raises(InvalidStateError):
        asyncio.run(orchestrator.discard())
    with pytest.raises(InvalidStateError):
        asyncio.run(orchestrator.reset())
    assert orchestrator.state is PipelineState.IDLE


# ---------------------------------------------------------------------------
# Review
# ---------------------------------------------------------------------------


def test_attach_and_remove_files_while_reviewing(tmp_path, gateway) -> None:
    orchestrator = _orchestrator(tmp_path, gateway)
    _reviewing(orchestrator)

    prepared = asyncio.run(orchestrator.attach_files([
        ("handout.pdf", "application/pdf", b"%PDF-1.4"),
        ("broken.png", "image/png", b"garbage"),
    ]))
    assert [f.name for f in prepared] == ["handout.pdf"]

    orchestrator.remove_file(prepared[0].id)
    assert orchestrator.session.uploaded_files == []


def test_attach_files_requires_reviewing(tmp_path, gateway) -> None:
    orchestrator = _orchestrator(tmp_path, gateway)
    with pytest.raises(InvalidStateError):
        asyncio.run(orchestrator.attach_files([("a.pdf", "application/pdf", b"x")]))


def test_discard_drops_recording_and_attachments(tmp_path, gateway) -> None:
    orchestrator = _orchestrator(tmp_path, gateway)
    _reviewing(orchestrator)
    asyncio.run(orchestrator.attach_files([("a.pdf", "application/pdf", b"x")]))

    assert asyncio.run(orchestrator.discard()) is PipelineState.IDLE
    assert orchestrator.session.recording is None
    assert orchestrator.session.uploaded_files == []


# ---------------------------------------------------------------------------
# Finalize
# ---------------------------------------------------------------------------


def test_oversized_recording_never_reaches_the_gateway(tmp_path, gateway) -> None:
    orchestrator = _orchestrator(tmp_path, gateway, max_audio_bytes=16)
    _reviewing(orchestrator, data=b"x" * 17)

    assert asyncio.run(orchestrator.finalize()) is PipelineState.ERROR

    assert isinstance(orchestrator.session.error, PayloadTooLarge)
    assert gateway.calls["transcribe"] == 0
    assert gateway.calls["summarize"] == 0
    assert orchestrator.session.recording is not None


def test_zero_byte_ceiling_is_not_treated_as_unset(tmp_path, gateway) -> None:
    orchestrator = _orchestrator(tmp_path, gateway, max_audio_bytes=0)
    _reviewing(orchestrator, data=b"x")

    assert orchestrator.max_audio_bytes == 0
    assert asyncio.run(orchestrator.finalize()) is PipelineState.ERROR
    assert isinstance(orchestrator.session.error, PayloadTooLarge)


def test_recording_at_the_ceiling_is_accepted(tmp_path, gateway) -> None:
    orchestrator = _orchestrator(tmp_path, gateway, max_audio_bytes=16)
    _reviewing(orchestrator, data=b"x" * 16)

    assert asyncio.run(orchestrator.finalize()) is PipelineState.COMPLETED
    assert gateway.calls["transcribe"] == 1


def test_finalize_saves_lecture_and_clears_transients(tmp_path, gateway) -> None:
    orchestrator = _orchestrator(tmp_path, gateway)
    _reviewing(orchestrator)
    asyncio.run(orchestrator.attach_files([("handout.pdf", "application/pdf", b"%PDF")]))
    seen: list[PipelineState] = []

    async def _listener(state: PipelineState) -> None:
        seen.append(state)

    orchestrator.add_listener(_listener)

    assert asyncio.run(orchestrator.finalize()) is PipelineState.COMPLETED

    assert seen == [PipelineState.TRANSCRIBING, PipelineState.SUMMARIZING, PipelineState.COMPLETED]
    session = orchestrator.session
    lecture = session.current_lecture
    assert lecture is not None and lecture.id
    assert lecture.user_id == "guest"
    assert lecture.transcript == gateway.transcript
    assert [f.name for f in lecture.files] == ["handout.pdf"]
    assert session.lectures[0] is lecture
    assert session.recording is None
    assert session.uploaded_files == []
    assert gateway.last_summarize["files"][0]["mimeType"] == "application/pdf"

    stored = asyncio.run(session.store.list_lectures("guest"))
    assert [lec.id for lec in stored] == [lecture.id]


def test_summarize_failure_keeps_recording_and_stores_nothing(tmp_path, gateway) -> None:
    gateway.errors["summarize"] = RemoteGatewayError("Failed to summarize lecture")
    orchestrator = _orchestrator(tmp_path, gateway)
    _reviewing(orchestrator)

    assert asyncio.run(orchestrator.finalize()) is PipelineState.ERROR

    session = orchestrator.session
    assert session.error_message == "Failed to summarize lecture"
    assert session.recording is not None
    assert session.lectures == []
    assert asyncio.run(session.store.list_lectures("guest")) == []
    assert orchestrator.download_recording().data == b"RIFFaudio"


def test_retry_after_failure_via_resume_review(tmp_path, gateway) -> None:
    gateway.errors["transcribe"] = RemoteGatewayError("AI service error: overloaded")
    orchestrator = _orchestrator(tmp_path, gateway)
    _reviewing(orchestrator)
    asyncio.run(orchestrator.finalize())

    del gateway.errors["transcribe"]
    assert asyncio.run(orchestrator.resume_review()) is PipelineState.REVIEWING
    assert orchestrator.session.error is None
    assert asyncio.run(orchestrator.finalize()) is PipelineState.COMPLETED


def test_unexpected_gateway_failure_moves_to_error_and_can_reset(tmp_path, gateway) -> None:
    gateway.errors["transcribe"] = RuntimeError("decoder blew up")
    orchestrator = _orchestrator(tmp_path, gateway)
    _reviewing(orchestrator)

    assert asyncio.run(orchestrator.finalize()) is PipelineState.ERROR
    assert isinstance(orchestrator.session.error, RemoteGatewayError)
    assert "decoder blew up" in orchestrator.session.error_message
    assert orchestrator.session.recording is not None

    assert asyncio.run(orchestrator.reset()) is PipelineState.IDLE


def test_unexpected_summarize_failure_can_resume_review(tmp_path, gateway) -> None:
    gateway.errors["summarize"] = KeyError("choices")
    orchestrator = _orchestrator(tmp_path, gateway)
    _reviewing(orchestrator)

    assert asyncio.run(orchestrator.finalize()) is PipelineState.ERROR
    assert asyncio.run(orchestrator.resume_review()) is PipelineState.REVIEWING


def test_persistence_failure_during_finalize_moves_to_error(tmp_path, gateway) -> None:
    store = FailingStore(PersistenceError("Failed to save lectures: disk full"))
    orchestrator = _orchestrator(tmp_path, gateway, store=store)
    _reviewing(orchestrator)

    assert asyncio.run(orchestrator.finalize()) is PipelineState.ERROR
    assert store.saved == 1
    assert orchestrator.session.current_lecture is None


def test_reset_from_completed_clears_current_lecture(tmp_path, gateway) -> None:
    orchestrator = _orchestrator(tmp_path, gateway)
    _reviewing(orchestrator)
    asyncio.run(orchestrator.finalize())

    assert asyncio.run(orchestrator.reset()) is PipelineState.IDLE
    assert orchestrator.session.current_lecture is None
    assert len(orchestrator.session.lectures) == 1


# ---------------------------------------------------------------------------
# History and study tools
# ---------------------------------------------------------------------------


def _completed(tmp_path: Path, gateway: FakeGateway) -> PipelineOrchestrator:
    orchestrator = _orchestrator(tmp_path, gateway)
    _reviewing(orchestrator)
    asyncio.run(orchestrator.finalize())
    return orchestrator


def test_load_lectures_failure_is_recorded_not_raised(tmp_path, gateway) -> None:
    store = FailingStore(PersistenceError("Could not read locally saved lectures."))
    orchestrator = _orchestrator(tmp_path, gateway, store=store)

    assert asyncio.run(orchestrator.load_lectures()) == []
    assert orchestrator.session.sync_error is store.error


def test_select_and_delete_lecture(tmp_path, gateway) -> None:
    orchestrator = _completed(tmp_path, gateway)
    lecture_id = orchestrator.session.current_lecture.id
    asyncio.run(orchestrator.reset())

    lecture = asyncio.run(orchestrator.select_lecture(lecture_id))
    assert orchestrator.state is PipelineState.COMPLETED
    assert orchestrator.session.current_lecture is lecture

    asyncio.run(orchestrator.delete_lecture(lecture_id))
    assert orchestrator.session.lectures == []
    assert orchestrator.session.current_lecture is None
    assert orchestrator.state is PipelineState.IDLE


def test_generate_quiz_updates_current_lecture_and_store(tmp_path, gateway) -> None:
    orchestrator = _completed(tmp_path, gateway)

    questions = asyncio.run(orchestrator.generate_quiz(10))

    assert len(questions) == 10
    assert orchestrator.session.current_lecture.quiz == questions
    stored = asyncio.run(orchestrator.session.store.list_lectures("guest"))[0]
    assert stored.quiz == questions


def test_flashcards_persist_failure_is_logged_not_raised(tmp_path, gateway, caplog) -> None:
    orchestrator = _completed(tmp_path, gateway)
    orchestrator.session.store = FailingStore(PersistenceError("Failed to update lectures: locked"))

    cards = asyncio.run(orchestrator.generate_flashcards())

    assert orchestrator.session.current_lecture.flashcards == cards
    assert "Could not save flashcards" in caplog.text


def test_study_tools_require_a_lecture(tmp_path, gateway) -> None:
    orchestrator = _orchestrator(tmp_path, gateway)
    with pytest.raises(InvalidStateError):
        asyncio.run(orchestrator.generate_flashcards())


def test_chat_keeps_history_and_apologizes_on_failure(tmp_path, gateway) -> None:
    orchestrator = _completed(tmp_path, gateway)

    reply = asyncio.run(orchestrator.send_chat_message("What is chlorophyll?"))
    assert reply.content == "You asked: What is chlorophyll?"

    gateway.errors["chat"] = RemoteGatewayError("Failed to get response")
    reply = asyncio.run(orchestrator.send_chat_message("And ATP?"))

    assert reply.role == "assistant"
    assert reply.content == "I'm sorry, I encountered an error: Failed to get response"
    assert [m.role for m in orchestrator.session.chat_messages] == ["user", "assistant", "user", "assistant"]

    orchestrator.close_chat()
    assert orchestrator.session.chat_messages == []


def test_logout_stops_capture_and_clears_session(tmp_path, gateway) -> None:
    orchestrator = _orchestrator(tmp_path, gateway)
    asyncio.run(orchestrator.start_recording())

    asyncio.run(orchestrator.logout())

    assert not orchestrator.capture.is_recording
    assert orchestrator.state is PipelineState.IDLE
    assert orchestrator.session.recording is None


def test_signed_in_session_keeps_its_store(tmp_path, gateway) -> None:
    store = LocalLectureStore(str(tmp_path / "user.json"))
    session = AppSession(user=User("user-1", "a@b.c", "Ada"), store=store)
    orchestrator = PipelineOrchestrator(session, gateway, capture=make_capture())
    _reviewing(orchestrator)
    asyncio.run(orchestrator.finalize())

    saved = asyncio.run(store.list_lectures("user-1"))
    assert isinstance(saved[0], Lecture)
    assert orchestrator.session.store is store
