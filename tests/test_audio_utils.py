from __future__ import annotations

from datetime import datetime

import numpy as np
import pytest

from lecture_capture.recording.audio_utils import (
    MIME_PREFERENCES,
    encode_samples,
    extension_for_mime,
    format_timestamp,
    recording_filename,
    select_mime_type,
)


@pytest.mark.parametrize(
    "supported, expected",
    [
        (set(MIME_PREFERENCES), "audio/webm;codecs=opus"),
        ({"audio/mp4", "audio/wav"}, "audio/mp4"),
        ({"audio/wav", "audio/ogg;codecs=opus"}, "audio/ogg;codecs=opus"),
        ({"audio/wav"}, "audio/wav"),
    ],
)
def test_select_mime_type_prefers_first_supported_entry(supported, expected) -> None:
    assert select_mime_type(MIME_PREFERENCES, lambda mime: mime in supported) == expected


def test_select_mime_type_returns_none_when_nothing_is_supported() -> None:
    assert select_mime_type(MIME_PREFERENCES, lambda mime: False) is None


def test_select_mime_type_respects_custom_order() -> None:
    preferences = ("audio/wav", "audio/webm")
    assert select_mime_type(preferences, lambda mime: True) == "audio/wav"


@pytest.mark.parametrize(
    "mime, ext",
    [
        ("audio/webm;codecs=opus", "webm"),
        ("audio/webm", "webm"),
        ("audio/mp4", "m4a"),
        ("audio/ogg;codecs=opus", "ogg"),
        ("audio/mpeg", "mp3"),
        ("audio/wav", "wav"),
        ("audio/x-unknown", "wav"),
    ],
)
def test_extension_for_mime(mime: str, ext: str) -> None:
    assert extension_for_mime(mime) == ext


def test_recording_filename_uses_date_time_and_extension() -> None:
    created = datetime(2024, 3, 5, 14, 7, 9)
    assert recording_filename("audio/mp4", created) == "lecture_2024-03-05_14-07-09.m4a"


@pytest.mark.parametrize(
    "seconds, text",
    [(0, "0:00"), (5, "0:05"), (65, "1:05"), (600, "10:00"), (3725, "1:02:05")],
)
def test_format_timestamp(seconds: int, text: str) -> None:
    assert format_timestamp(seconds) == text


def test_encode_samples_writes_wav_container() -> None:
    samples = np.zeros(1600, dtype=np.float32)
    data = encode_samples(samples, 16_000, "audio/wav")
    assert data[:4] == b"RIFF"
    assert data[8:12] == b"WAVE"


def test_encode_samples_rejects_encodings_without_writer() -> None:
    with pytest.raises(ValueError):
        encode_samples(np.zeros(10, dtype=np.float32), 16_000, "audio/webm")
