"""Error taxonomy shared by the gateway, the pipeline and the stores.

Every error carries a human-readable ``message`` safe to show to the user
and the HTTP ``status_code`` the API layer renders it with.
"""


class LectureCaptureError(Exception):
    status_code = 500

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"error": self.message}


class PermissionDenied(LectureCaptureError):
    """The microphone could not be acquired."""

    status_code = 403


class CaptureError(LectureCaptureError):
    """Recording failed for a reason other than permissions."""


class InvalidFileType(LectureCaptureError):
    status_code = 415


class PayloadTooLarge(LectureCaptureError):
    status_code = 413


class InvalidStateError(LectureCaptureError):
    """The requested event is not valid in the current pipeline state."""

    status_code = 409


class MissingFieldError(LectureCaptureError):
    status_code = 400


class RemoteGatewayError(LectureCaptureError):
    """Non-2xx status or malformed structured output from the AI gateway."""

    status_code = 502


class GatewayConfigError(LectureCaptureError):
    """The upstream model credential is not configured."""


class PersistenceError(LectureCaptureError):
    pass


class PersistenceSetupError(PersistenceError):
    """The backing store exists but has not been set up (e.g. missing table)."""

    def __init__(self, message: str, *, setup_url: str | None = None) -> None:
        super().__init__(message)
        self.setup_url = setup_url or None

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.setup_url:
            data["setupUrl"] = self.setup_url
        return data


class AuthError(LectureCaptureError):
    status_code = 401

    def __init__(self, message: str, *, guidance: str | None = None) -> None:
        super().__init__(message)
        self.guidance = guidance

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.guidance:
            data["guidance"] = self.guidance
        return data
