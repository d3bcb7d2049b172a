from lecture_capture.recording.capture import CaptureController

__all__ = ["CaptureController"]
