"""Gemini client wrapper: streaming generation, tool calling, structured output and the File API."""

import asyncio
import io
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Literal, TypeVar

import httpx
from google import genai
from google.genai import errors, types

from studymode.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

T = TypeVar("T")


class GenerationError(Exception):
    """The provider failed or returned something unusable."""


class FileProcessingError(GenerationError):
    """An uploaded file failed provider-side processing or did not finish in time."""


@dataclass(frozen=True)
class FileRef:
    """A file the model should see. YouTube URLs are passed with mime_type=None."""

    uri: str
    mime_type: str | None = None


@dataclass(frozen=True)
class UploadedFile:
    name: str
    uri: str
    mime_type: str
    state: str


@dataclass(frozen=True)
class GenerationChunk:
    """One streamed unit of model output, in provider order."""

    kind: Literal["text", "thought", "function_call"]
    text: str = ""
    name: str = ""
    args: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FunctionDeclaration:
    name: str
    description: str
    parameters: dict[str, Any]


def _is_retryable(error: Exception) -> bool:
    if isinstance(error, (errors.ServerError, httpx.TransportError)):
        return True
    return isinstance(error, errors.ClientError) and error.code == 429


async def _retry_gemini(
    coro_factory: Callable[[], Awaitable[T]],
    *,
    max_attempts: int | None = None,
    base_delay: float | None = None,
) -> T:
    """
    Retry a Gemini API call with exponential backoff.

    Args:
        coro_factory: Callable that returns a new coroutine each invocation.
        max_attempts: Maximum number of attempts.
        base_delay: Base delay in seconds (doubles each retry).

    Returns:
        The result of the coroutine.
    """
    max_attempts = max_attempts or settings.gemini_max_attempts
    base_delay = settings.gemini_retry_base_delay if base_delay is None else base_delay

    for attempt in range(max_attempts):
        try:
            return await coro_factory()
        except Exception as e:
            if not _is_retryable(e) or attempt >= max_attempts - 1:
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning(
                "Gemini API transient error (attempt %d/%d), retrying in %.1fs: %s",
                attempt + 1, max_attempts, delay, str(e),
            )
            await asyncio.sleep(delay)
    raise GenerationError("Retry loop exited without a result")


def _file_part(ref: FileRef) -> types.Part:
    return types.Part(file_data=types.FileData(file_uri=ref.uri, mime_type=ref.mime_type))


def _state_name(file: types.File) -> str:
    state = file.state
    if state is None:
        return "STATE_UNSPECIFIED"
    return getattr(state, "name", str(state))


class GeminiClient:
    """Thin async facade over google-genai used by chat and assessment generation."""

    def __init__(self, api_key: str | None = None):
        self._api_key = api_key
        self._client: genai.Client | None = None

    @property
    def client(self) -> genai.Client:
        """Lazily construct the SDK client so importing this module never needs a key."""
        if self._client is None:
            self._client = genai.Client(api_key=self._api_key or settings.gemini_api_key)
        return self._client

    def _build_config(
        self,
        *,
        tools: list[FunctionDeclaration] | None,
        response_schema: dict[str, Any] | None,
        include_thoughts: bool,
    ) -> types.GenerateContentConfig:
        config = types.GenerateContentConfig()

        if tools:
            config.tools = [
                types.Tool(
                    function_declarations=[
                        types.FunctionDeclaration(
                            name=tool.name,
                            description=tool.description,
                            parameters_json_schema=tool.parameters,
                        )
                        for tool in tools
                    ]
                )
            ]

        if settings.gemini_thinking_level:
            config.thinking_config = types.ThinkingConfig(
                thinking_level=settings.gemini_thinking_level.upper(),
                include_thoughts=include_thoughts,
            )

        if response_schema is not None:
            config.response_mime_type = "application/json"
            config.response_json_schema = response_schema

        return config

    @staticmethod
    def _build_contents(prompt: str, files: list[FileRef]) -> list[types.Content]:
        # File parts go before the text prompt
        parts = [_file_part(ref) for ref in files]
        parts.append(types.Part(text=prompt))
        return [types.Content(role="user", parts=parts)]

    async def stream(
        self,
        prompt: str,
        files: list[FileRef] | None = None,
        *,
        tools: list[FunctionDeclaration] | None = None,
        response_schema: dict[str, Any] | None = None,
        include_thoughts: bool = False,
        model: str | None = None,
    ) -> AsyncIterator[GenerationChunk]:
        """
        Stream a generation as text / thought / function-call chunks.

        Only opening the stream is retried; once chunks have been yielded a
        failure propagates so callers never see duplicated output.
        """
        config = self._build_config(
            tools=tools, response_schema=response_schema, include_thoughts=include_thoughts
        )
        contents = self._build_contents(prompt, files or [])

        response_stream = await _retry_gemini(
            lambda: self.client.aio.models.generate_content_stream(
                model=model or settings.gemini_model,
                contents=contents,
                config=config,
            )
        )

        async for chunk in response_stream:
            candidates = chunk.candidates or []
            parts = (candidates[0].content.parts if candidates and candidates[0].content else None) or []

            for part in parts:
                if part.function_call is not None:
                    yield GenerationChunk(
                        kind="function_call",
                        name=part.function_call.name or "",
                        args=dict(part.function_call.args or {}),
                    )
                elif part.thought:
                    yield GenerationChunk(kind="thought", text=part.text or "")
                elif part.text:
                    yield GenerationChunk(kind="text", text=part.text)

            if not parts and chunk.text:
                yield GenerationChunk(kind="text", text=chunk.text)

    async def generate_json(
        self,
        prompt: str,
        response_schema: dict[str, Any],
        *,
        files: list[FileRef] | None = None,
        model: str | None = None,
    ) -> str:
        """Run a single structured-output call and return the raw JSON text."""
        config = self._build_config(tools=None, response_schema=response_schema, include_thoughts=False)
        response = await _retry_gemini(
            lambda: self.client.aio.models.generate_content(
                model=model or settings.gemini_model,
                contents=self._build_contents(prompt, files or []),
                config=config,
            )
        )
        text = response.text
        if not text:
            raise GenerationError("Empty response from model")
        return text

    async def upload_file(self, data: bytes, mime_type: str, display_name: str) -> UploadedFile:
        """Upload raw bytes to the File API. Files expire on the provider after 48 hours."""
        file = await _retry_gemini(
            lambda: self.client.aio.files.upload(
                file=io.BytesIO(data),
                config=types.UploadFileConfig(mime_type=mime_type, display_name=display_name),
            )
        )
        logger.info("Uploaded file %s (%s, %d bytes)", file.name, mime_type, len(data))
        return UploadedFile(
            name=file.name or "",
            uri=file.uri or "",
            mime_type=file.mime_type or mime_type,
            state=_state_name(file),
        )

    async def wait_for_processing(
        self,
        name: str,
        *,
        poll_interval: float | None = None,
        timeout: float | None = None,
    ) -> UploadedFile:
        """
        Poll an uploaded file until the provider marks it ACTIVE.

        Raises FileProcessingError when processing fails or the deadline passes.
        """
        poll_interval = settings.file_poll_interval_seconds if poll_interval is None else poll_interval
        timeout = settings.file_processing_timeout_seconds if timeout is None else timeout

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            file = await _retry_gemini(lambda: self.client.aio.files.get(name=name))
            state = _state_name(file)

            if state == "ACTIVE":
                return UploadedFile(
                    name=file.name or name,
                    uri=file.uri or "",
                    mime_type=file.mime_type or "",
                    state=state,
                )

            if state == "FAILED":
                message = file.error.message if file.error and file.error.message else "Unknown error"
                raise FileProcessingError(f"File processing failed: {message}")

            if loop.time() + poll_interval > deadline:
                raise FileProcessingError(f"File processing timed out after {timeout:.0f}s")

            logger.debug("File %s still %s, polling again in %.1fs", name, state, poll_interval)
            await asyncio.sleep(poll_interval)


# Singleton instance
gemini_client = GeminiClient()


def get_generation_client() -> GeminiClient:
    """FastAPI dependency returning the shared generation client."""
    return gemini_client
