import io
from datetime import datetime
from typing import Callable, Sequence

import numpy as np
import soundfile as sf

# Ordered preference list; the first encoding the host can produce wins.
MIME_PREFERENCES: tuple[str, ...] = (
    "audio/webm;codecs=opus",
    "audio/mp4",
    "audio/ogg;codecs=opus",
    "audio/webm",
    "audio/wav",
)

# libsndfile (format, subtype) for each MIME type it can write.  Containers
# libsndfile has no writer for map to None and are reported unsupported.
SOUNDFILE_FORMATS: dict[str, tuple[str, str] | None] = {
    "audio/webm;codecs=opus": None,
    "audio/mp4": None,
    "audio/ogg;codecs=opus": ("OGG", "OPUS"),
    "audio/webm": None,
    "audio/wav": ("WAV", "PCM_16"),
}


def is_mime_supported(mime_type: str) -> bool:
    """True if libsndfile on this host can encode *mime_type*."""
    fmt = SOUNDFILE_FORMATS.get(mime_type)
    if fmt is None:
        return False
    return sf.check_format(*fmt)


def select_mime_type(
    preferences: Sequence[str] = MIME_PREFERENCES,
    is_supported: Callable[[str], bool] = is_mime_supported,
) -> str | None:
    """Return the first entry of *preferences* reported as supported, else None."""
    for mime_type in preferences:
        if is_supported(mime_type):
            return mime_type
    return None


def encode_samples(samples: np.ndarray, sample_rate: int, mime_type: str) -> bytes:
    """Encode float32 mono samples into an in-memory file of *mime_type*."""
    fmt = SOUNDFILE_FORMATS.get(mime_type)
    if fmt is None:
        raise ValueError(f"No encoder available for {mime_type}")
    buf = io.BytesIO()
    sf.write(buf, samples, sample_rate, format=fmt[0], subtype=fmt[1])
    return buf.getvalue()


def extension_for_mime(mime_type: str) -> str:
    """File extension used when a recording of *mime_type* is downloaded."""
    if "webm" in mime_type:
        return "webm"
    if "mp4" in mime_type:
        return "m4a"
    if "ogg" in mime_type:
        return "ogg"
    if "mpeg" in mime_type or "mp3" in mime_type:
        return "mp3"
    return "wav"


def recording_filename(mime_type: str, created_at: datetime) -> str:
    """``lecture_<date>_<time>.<ext>`` with the time made filesystem-safe."""
    stamp = created_at.strftime("%Y-%m-%d_%H-%M-%S")
    return f"lecture_{stamp}.{extension_for_mime(mime_type)}"


def format_timestamp(seconds: int) -> str:
    """Render elapsed seconds as ``m:ss``, or ``h:mm:ss`` past the hour."""
    h, rem = divmod(int(seconds), 3600)
    m, s = divmod(rem, 60)
    if h > 0:
        return f"{h}:{m:02d}:{s:02d}"
    return f"{m}:{s:02d}"
