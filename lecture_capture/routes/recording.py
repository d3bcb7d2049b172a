from fastapi import APIRouter, File, UploadFile
from fastapi.responses import Response

from lecture_capture.recording.audio_utils import recording_filename
from lecture_capture.routes import deps

router = APIRouter(prefix="/api/sessions/{session_id}", tags=["recording"])


# ------------------------------------------------------------------
# Capture
# ------------------------------------------------------------------


@router.post("/recording/start")
async def start_recording(session_id: str) -> dict:
    """Acquire the microphone and start buffering audio."""
    orchestrator = deps.get_orchestrator(session_id)
    await orchestrator.start_recording()
    return orchestrator.snapshot()


@router.post("/recording/stop")
async def stop_recording(session_id: str) -> dict:
    """Finalize the buffered audio.  Safe to call when not recording."""
    orchestrator = deps.get_orchestrator(session_id)
    await orchestrator.stop_recording()
    return orchestrator.snapshot()


@router.post("/recording/confusion")
async def mark_confusion(session_id: str) -> dict:
    orchestrator = deps.get_orchestrator(session_id)
    return {"confusionMarkers": orchestrator.mark_confusion()}


@router.post("/audio")
async def upload_audio(session_id: str, file: UploadFile = File(...)) -> dict:
    """Use an existing audio file instead of a live recording."""
    orchestrator = deps.get_orchestrator(session_id)
    data = await file.read()
    await orchestrator.upload_audio(file.filename or "audio", file.content_type or "", data)
    return orchestrator.snapshot()


@router.get("/recording/download")
async def download_recording(session_id: str) -> Response:
    orchestrator = deps.get_orchestrator(session_id)
    recording = orchestrator.download_recording()
    filename = recording_filename(recording.mime_type, recording.created_at)
    return Response(
        content=recording.data,
        media_type=recording.mime_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ------------------------------------------------------------------
# Review
# ------------------------------------------------------------------


@router.post("/files")
async def attach_files(session_id: str, files: list[UploadFile] = File(...)) -> dict:
    """Attach slides, handouts or photos to the lecture under review."""
    orchestrator = deps.get_orchestrator(session_id)
    payload = [
        (f.filename or "file", f.content_type or "application/octet-stream", await f.read())
        for f in files
    ]
    prepared = await orchestrator.attach_files(payload)
    return {
        "attached": [f.to_dict() for f in prepared],
        "skipped": len(payload) - len(prepared),
        "uploadedFiles": [f.to_dict() for f in orchestrator.session.uploaded_files],
    }


@router.delete("/files/{file_id}")
async def remove_file(session_id: str, file_id: str) -> dict:
    orchestrator = deps.get_orchestrator(session_id)
    orchestrator.remove_file(file_id)
    return {"uploadedFiles": [f.to_dict() for f in orchestrator.session.uploaded_files]}


@router.post("/discard")
async def discard(session_id: str) -> dict:
    orchestrator = deps.get_orchestrator(session_id)
    await orchestrator.discard()
    return orchestrator.snapshot()


@router.post("/finalize")
async def finalize(session_id: str) -> dict:
    """Transcribe, summarize and save.  Failures come back as state ERROR, not HTTP errors."""
    orchestrator = deps.get_orchestrator(session_id)
    await orchestrator.finalize()
    return orchestrator.snapshot()


@router.post("/reset")
async def reset(session_id: str) -> dict:
    orchestrator = deps.get_orchestrator(session_id)
    await orchestrator.reset()
    return orchestrator.snapshot()


@router.post("/review")
async def resume_review(session_id: str) -> dict:
    orchestrator = deps.get_orchestrator(session_id)
    await orchestrator.resume_review()
    return orchestrator.snapshot()
