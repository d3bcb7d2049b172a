import asyncio
import base64
import binascii
import logging
import os
import tempfile

from lecture_capture.clients import GroqClient
from lecture_capture.config import settings
from lecture_capture.errors import MissingFieldError, RemoteGatewayError
from lecture_capture.recording.audio_utils import extension_for_mime

logger = logging.getLogger(__name__)

TRANSCRIPTION_PROMPT = (
    "Academic lecture. Transcribe exactly as spoken, without preamble."
)


class WhisperService:
    """Offline backend: one faster-whisper model per process, loaded on first ``get()``."""

    _instance: "WhisperService | None" = None

    def __init__(self) -> None:
        from faster_whisper import WhisperModel

        logger.info("Loading Whisper model %s on %s", settings.whisper_model, settings.whisper_device)
        self.model = WhisperModel(
            settings.whisper_model,
            device=settings.whisper_device,
            compute_type=settings.whisper_compute_type,
        )

    @classmethod
    def get(cls) -> "WhisperService":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def transcribe(self, audio_path: str) -> str:
        """Transcribe an audio file.  Blocking - call through ``asyncio.to_thread``."""
        segments, _info = self.model.transcribe(audio_path, beam_size=5)
        # segments is a lazy generator - the join forces evaluation
        return " ".join(seg.text.strip() for seg in segments).strip()


class TranscriptionService:
    """Turn base64 audio into transcript text with the configured backend."""

    def __init__(self, groq: GroqClient | None = None, backend: str | None = None) -> None:
        self.groq = groq or GroqClient()
        self.backend = backend or settings.transcription_backend

    async def transcribe(self, audio_b64: str, mime_type: str) -> str:
        if not audio_b64 or not mime_type:
            raise MissingFieldError("Missing audio or mimeType")
        try:
            audio = base64.b64decode(audio_b64, validate=True)
        except binascii.Error as exc:
            raise MissingFieldError("Audio payload is not valid base64") from exc

        filename = f"lecture.{extension_for_mime(mime_type)}"
        logger.info("Transcribing %d bytes of %s via %s", len(audio), mime_type, self.backend)
        if self.backend == "local":
            transcript = await asyncio.to_thread(self._transcribe_locally, audio, filename)
        else:
            transcript = await self.groq.transcribe(audio, filename, prompt=TRANSCRIPTION_PROMPT)

        if not transcript:
            raise RemoteGatewayError("No speech was detected in the recording.")
        return transcript

    @staticmethod
    def _transcribe_locally(audio: bytes, filename: str) -> str:
        suffix = os.path.splitext(filename)[1]
        with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as tmp:
            tmp.write(audio)
            path = tmp.name
        try:
            return WhisperService.get().transcribe(path)
        finally:
            os.unlink(path)
