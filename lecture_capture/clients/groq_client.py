import json
import logging

from groq import APIError, AsyncGroq

from lecture_capture.config import settings
from lecture_capture.errors import GatewayConfigError, RemoteGatewayError

logger = logging.getLogger(__name__)


class GroqClient:
    """Async wrapper around the official Groq SDK; each call may override the model.

    Usage::

        groq = GroqClient()                               # DEFAULT_MODEL from env
        text = await groq.chat(messages)                  # plain completion
        data = await groq.chat_json(messages, SCHEMA)     # structured output
        data = await groq.chat_json(messages, SCHEMA, model=settings.vision_model)
        text = await groq.transcribe(audio, "a.webm")     # hosted Whisper

    SDK failures surface as ``RemoteGatewayError``; a missing API key as
    ``GatewayConfigError``.  The ``AsyncGroq`` client is created on first use
    so services can be constructed without credentials.
    """

    def __init__(self, model: str | None = None, api_key: str | None = None) -> None:
        self._model = model or settings.default_model
        self._api_key = api_key if api_key is not None else settings.groq_api_key
        self._client: AsyncGroq | None = None

    @property
    def client(self) -> AsyncGroq:
        if self._client is None:
            if not self._api_key:
                raise GatewayConfigError("GROQ_API_KEY not configured")
            self._client = AsyncGroq(api_key=self._api_key)
        return self._client

    # ------------------------------------------------------------------
    # Completions
    # ------------------------------------------------------------------
    async def chat(
        self,
        messages: list[dict],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Free-text completion; an empty choice comes back as ``""``."""
        kwargs: dict = {
            "model": model or self._model,
            "messages": messages,
        }
        if temperature is not None:
            kwargs["temperature"] = temperature
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens

        resp = await self._create(kwargs)
        return resp.choices[0].message.content or ""

    async def chat_json(
        self,
        messages: list[dict],
        response_schema: dict,
        *,
        schema_name: str = "response",
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> dict:
        """Completion constrained to *response_schema* (strict mode); returns the decoded object.

        Malformed or non-object JSON raises ``RemoteGatewayError`` so callers
        never see a half-parsed payload.
        """
        kwargs: dict = {
            "model": model or self._model,
            "messages": messages,
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": schema_name,
                    "strict": True,
                    "schema": response_schema,
                },
            },
        }
        if temperature is not None:
            kwargs["temperature"] = temperature
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens

        resp = await self._create(kwargs)
        content = resp.choices[0].message.content or ""
        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            logger.error("Malformed %s JSON from %s: %.200s", schema_name, kwargs["model"], content)
            raise RemoteGatewayError(
                "The AI provided an invalid response format. Please try again."
            ) from exc
        if not isinstance(data, dict):
            raise RemoteGatewayError("The AI provided an invalid response format. Please try again.")
        return data

    # ------------------------------------------------------------------
    # Speech-to-text
    # ------------------------------------------------------------------
    async def transcribe(
        self,
        audio: bytes,
        filename: str,
        *,
        model: str | None = None,
        prompt: str | None = None,
    ) -> str:
        """Transcribe *audio* with Groq's hosted Whisper.  *filename* carries the format."""
        kwargs: dict = {
            "file": (filename, audio),
            "model": model or settings.transcription_model,
            "response_format": "json",
        }
        if prompt:
            kwargs["prompt"] = prompt
        try:
            resp = await self.client.audio.transcriptions.create(**kwargs)
        except APIError as exc:
            logger.error("Groq transcription failed: %s", exc)
            raise RemoteGatewayError(f"Transcription failed: {exc.message}") from exc
        return (resp.text or "").strip()

    async def _create(self, kwargs: dict):
        try:
            return await self.client.chat.completions.create(**kwargs)
        except APIError as exc:
            logger.error("Groq completion failed (%s): %s", kwargs["model"], exc)
            raise RemoteGatewayError(f"AI service error: {exc.message}") from exc
