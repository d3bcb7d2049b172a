import logging
import threading
from typing import Callable, Sequence

import numpy as np

from lecture_capture.config import settings
from lecture_capture.errors import CaptureError, PermissionDenied
from lecture_capture.models import AudioRecording
from lecture_capture.recording.audio_utils import (
    MIME_PREFERENCES,
    encode_samples,
    is_mime_supported,
    select_mime_type,
)

logger = logging.getLogger(__name__)

StreamFactory = Callable[[int, Callable], object]
Encoder = Callable[[np.ndarray, int, str], bytes]


def open_microphone(sample_rate: int, callback: Callable) -> object:
    """Open a mono input stream on the default microphone.

    Echo cancellation and noise suppression are left to the host audio
    API / OS input processing; PortAudio exposes no portable switch for them.
    """
    import sounddevice as sd  # PortAudio is loaded on first use, not at import

    try:
        return sd.InputStream(
            samplerate=sample_rate,
            channels=1,
            dtype="float32",
            callback=callback,
            blocksize=1024,
        )
    except sd.PortAudioError as exc:
        raise PermissionDenied("Microphone access denied or unavailable.") from exc


class CaptureController:
    """Owns the microphone between ``start()`` and ``stop()``.

    Threading model:

    1. **Audio callback** - runs in PortAudio's audio thread.  Only appends
       to the buffer under ``_lock``.

    2. **Ticker** - a daemon thread that advances ``elapsed_seconds`` once a
       second while recording.

    3. **Caller** - the pipeline orchestrator on the event loop.  Calls
       ``start``/``stop``/``mark_confusion``; never overlaps itself.
    """

    def __init__(
        self,
        *,
        sample_rate: int | None = None,
        preferences: Sequence[str] = MIME_PREFERENCES,
        is_supported: Callable[[str], bool] = is_mime_supported,
        stream_factory: StreamFactory = open_microphone,
        encoder: Encoder = encode_samples,
        tick_interval: float = 1.0,
    ) -> None:
        self.sample_rate = sample_rate or settings.sample_rate
        self.preferences = tuple(preferences)
        self._is_supported = is_supported
        self._stream_factory = stream_factory
        self._encoder = encoder
        self._tick_interval = tick_interval

        # Audio buffer - guarded by _lock
        self._buffer: list[np.ndarray] = []
        self._lock = threading.Lock()

        self._stream = None
        self._ticker: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._recording = False

        self.mime_type: str | None = None
        self.elapsed_seconds = 0
        self.confusion_markers: list[int] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def is_recording(self) -> bool:
        return self._recording

    def start(self) -> str:
        """Acquire the microphone and begin buffering.  Returns the chosen MIME type."""
        if self._recording:
            raise CaptureError("Recording is already in progress.")

        mime_type = select_mime_type(self.preferences, self._is_supported)
        if mime_type is None:
            raise CaptureError("No supported audio encoding is available on this host.")

        try:
            stream = self._stream_factory(self.sample_rate, self._audio_callback)
        except OSError as exc:
            raise PermissionDenied("Microphone access denied or unavailable.") from exc

        with self._lock:
            self._buffer = []
        self.mime_type = mime_type
        self.elapsed_seconds = 0
        self.confusion_markers = []

        try:
            stream.start()
        except Exception as exc:
            stream.close()
            raise PermissionDenied("Microphone access denied or unavailable.") from exc
        self._stream = stream
        self._recording = True

        self._stop_event.clear()
        self._ticker = threading.Thread(target=self._tick_loop, daemon=True)
        self._ticker.start()
        logger.info("Recording started (%s, %d Hz)", mime_type, self.sample_rate)
        return mime_type

    def stop(self) -> AudioRecording | None:
        """Finalize the buffer into one recording.  No-op when not recording."""
        if not self._recording:
            return None
        self._recording = False

        self._stop_event.set()
        if self._ticker is not None:
            self._ticker.join(timeout=2)
            self._ticker = None

        # Release the microphone unconditionally, even if encoding fails below
        stream, self._stream = self._stream, None
        if stream is not None:
            try:
                stream.stop()
            finally:
                stream.close()

        with self._lock:
            chunks, self._buffer = self._buffer, []
        if chunks:
            samples = np.concatenate(chunks, axis=0).flatten()
        else:
            samples = np.zeros(0, dtype=np.float32)

        data = self._encoder(samples, self.sample_rate, self.mime_type)
        logger.info(
            "Recording stopped after %ds (%d bytes, %d confusion markers)",
            self.elapsed_seconds,
            len(data),
            len(self.confusion_markers),
        )
        return AudioRecording(
            data=data,
            mime_type=self.mime_type,
            duration_seconds=self.elapsed_seconds,
        )

    def mark_confusion(self) -> int | None:
        """Record the current elapsed second as confusing.  Ignored unless recording."""
        if not self._recording:
            return None
        marker = self.elapsed_seconds
        self.confusion_markers.append(marker)
        return marker

    def tick(self) -> None:
        """Advance the elapsed-seconds counter by one."""
        if self._recording:
            self.elapsed_seconds += 1

    # ------------------------------------------------------------------
    # Audio callback - PortAudio thread
    # ------------------------------------------------------------------

    def _audio_callback(self, indata, frames, timeinfo, status) -> None:  # noqa: ANN001
        """Buffer only, no I/O."""
        with self._lock:
            self._buffer.append(indata.copy())

    # ------------------------------------------------------------------
    # Ticker - daemon thread
    # ------------------------------------------------------------------

    def _tick_loop(self) -> None:
        while not self._stop_event.wait(self._tick_interval):
            self.tick()
