"""Lecture capture: record, transcribe and summarize lectures into study material."""

__version__ = "0.1.0"
