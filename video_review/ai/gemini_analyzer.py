"""Gemini video analyzer.

Calls a Gemini model (Vertex AI mode) with the video and the analysis prompt.

Dependencies: google.genai, tenacity, httpx
System role: Analyzer adapter for the external multimodal model
"""

import asyncio
import logging
import mimetypes
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Optional

import httpx
from google.genai import errors, types
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from video_review.ai.analyzer import Analyzer
from video_review.analysis.request_builder import AnalysisRequest
from video_review.exceptions import ContentBlockedError, ExternalCallError, InvalidRequestError

if TYPE_CHECKING:
    from google import genai

logger = logging.getLogger(__name__)

_BLOCKED_FINISH_REASONS = {"SAFETY", "PROHIBITED_CONTENT", "BLOCKLIST", "SPII", "IMAGE_SAFETY"}
_REMOTE_SCHEMES = ("gs://", "http://", "https://")
_DEFAULT_MIME = "video/mp4"


def _is_transient(exc: BaseException) -> bool:
    """Server errors, rate limits and transport failures are worth retrying."""
    if isinstance(exc, errors.ServerError) or isinstance(exc, httpx.TransportError):
        return True
    return isinstance(exc, errors.ClientError) and getattr(exc, "code", None) == 429


class GeminiAnalyzer(Analyzer):
    """Remote references (gs://, http) are passed by URI. Local references are read
    only when `local_resolver` maps them to a stored upload; otherwise they are refused.
    """

    def __init__(
        self,
        client: Optional["genai.Client"] = None,
        model: str = "gemini-2.0-flash-001",
        temperature: float = 0.4,
        max_output_tokens: int = 2048,
        max_attempts: int = 3,
        project: Optional[str] = None,
        location: str = "us-central1",
        retry_wait_seconds: float = 1.0,
        local_resolver: Optional[Callable[[str], Optional[str]]] = None,
    ) -> None:
        self._client = client
        self._model = model
        self._temperature = temperature
        self._max_output_tokens = max_output_tokens
        self._max_attempts = max(1, max_attempts)
        self._project = project
        self._location = location
        self._retry_wait = retry_wait_seconds
        self._local_resolver = local_resolver

    @property
    def client(self) -> "genai.Client":
        """Created on first use so the service can start without credentials."""
        if self._client is None:
            from google import genai

            self._client = genai.Client(
                vertexai=True,
                project=self._project,
                location=self._location,
            )
        return self._client

    async def analyze(self, video_ref: str, request: AnalysisRequest) -> str:
        logger.info(f"{__name__}:analyze - START video_ref={video_ref} model={self._model}")
        video_part = await self._video_part(video_ref)
        contents = types.Content(
            role="user",
            parts=[video_part, types.Part.from_text(text=request.prompt)],
        )
        config = types.GenerateContentConfig(
            temperature=self._temperature,
            max_output_tokens=self._max_output_tokens,
        )

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_attempts),
                wait=wait_exponential_jitter(
                    initial=self._retry_wait,
                    max=self._retry_wait * 20,
                    jitter=self._retry_wait * 2,
                ),
                retry=retry_if_exception(_is_transient),
                before_sleep=lambda retry_state: logger.warning(
                    f"{__name__}:analyze - Retry {retry_state.attempt_number}/{self._max_attempts} "
                    f"after {type(retry_state.outcome.exception()).__name__}"
                ),
                reraise=True,
            ):
                with attempt:
                    response = await self.client.aio.models.generate_content(
                        model=self._model,
                        contents=contents,
                        config=config,
                    )
        except (errors.APIError, httpx.HTTPError) as e:
            raise ExternalCallError(f"Failed to analyze video: {e}") from e

        text = self._extract_text(response)
        logger.info(f"{__name__}:analyze - END video_ref={video_ref} chars={len(text)}")
        return text

    async def _video_part(self, video_ref: str) -> types.Part:
        mime_type = mimetypes.guess_type(video_ref)[0] or _DEFAULT_MIME
        if video_ref.startswith(_REMOTE_SCHEMES):
            return types.Part.from_uri(file_uri=video_ref, mime_type=mime_type)

        # Local development storage: send the bytes inline, but only for stored uploads
        resolved = self._local_resolver(video_ref) if self._local_resolver else None
        if resolved is None:
            logger.warning(f"{__name__}:_video_part - refusing local video_ref={video_ref}")
            raise InvalidRequestError(f"Video '{video_ref}' is not a stored upload", field="videoRef")
        path = Path(resolved)
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise ExternalCallError(f"Video '{video_ref}' could not be read: {e}") from e
        return types.Part.from_bytes(data=data, mime_type=mime_type)

    @staticmethod
    def _extract_text(response: Any) -> str:
        feedback = getattr(response, "prompt_feedback", None)
        block_reason = getattr(feedback, "block_reason", None) if feedback else None
        if block_reason:
            raise ContentBlockedError(_reason_name(block_reason))

        for candidate in getattr(response, "candidates", None) or []:
            reason = _reason_name(getattr(candidate, "finish_reason", None))
            if reason in _BLOCKED_FINISH_REASONS:
                raise ContentBlockedError(reason)

        text = getattr(response, "text", None)
        if not text or not text.strip():
            raise ExternalCallError("Failed to analyze video: no analysis generated")
        return text


def _reason_name(reason: Any) -> str:
    if reason is None:
        return ""
    return getattr(reason, "name", None) or str(reason)
