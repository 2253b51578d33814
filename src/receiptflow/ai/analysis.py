"""Vision-language analysis of receipt images and videos."""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Literal

from receiptflow.ai.backends import (
    DEFAULT_MODELS,
    SUPPORTED_BACKENDS,
    AnalysisBackend,
    BackendError,
    UnsupportedBackendError,
    get_api_key,
)
from receiptflow.ai.config import get_default_backend, get_setting
from receiptflow.ai.prompts import (
    CONSULTATION_ACKNOWLEDGEMENT,
    CONSULTATION_EMPTY_REPLY,
    CONSULTATION_ERROR_REPLY,
    CONSULTATION_SYSTEM_PROMPT,
    IMAGE_INSTRUCTION,
    IMAGE_REQUIRED_FIELDS,
    RECEIPT_SCHEMA,
    VIDEO_RECEIPTS_SCHEMA,
    VIDEO_REQUIRED_FIELDS,
    json_shape_hint,
    time_marker,
    video_instruction,
)
from receiptflow.base.exceptions import ServiceError, VideoDecodeError
from receiptflow.base.media import MediaFile
from receiptflow.base.video import VideoFrameSampler

logger = logging.getLogger(__name__)


@dataclass
class ImagePart:
    """Inline image sent to the analysis service."""

    data: bytes = field(repr=False)
    mime_type: str = "image/jpeg"


Part = str | ImagePart


@dataclass
class VideoCandidate:
    """A receipt the analysis service located in a video.

    Attributes:
        timestamp: Offset in seconds where the receipt is best visible
        data: Receipt fields in the service's camelCase format
    """

    timestamp: float
    data: dict[str, Any]


@dataclass
class ChatTurn:
    """One message of an accountant consultation. Any role other than "user" is the accountant."""

    role: Literal["user", "assistant"]
    text: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChatTurn:
        role = "user" if data.get("role") == "user" else "assistant"
        return cls(role=role, text=str(data.get("text", "")))


class ReceiptAnalyzer:
    """Turns receipt images and videos into structured receipt data using Gemini or OpenAI.

    The same backend also answers bookkeeping questions through ``consult``.
    """

    SUPPORTED_BACKENDS: list[str] = SUPPORTED_BACKENDS

    def __init__(
        self,
        backend: AnalysisBackend | None = None,
        model_name: str | None = None,
        api_key: str | None = None,
        temperature: float | None = None,
        sampler: VideoFrameSampler | None = None,
    ):
        """Initialize the analyzer.

        Args:
            backend: 'gemini' or 'openai'. If None, uses config default.
            model_name: Model to use. If None, uses config or the backend default.
            api_key: API key for the backend. If None, read from the environment.
            temperature: Sampling temperature, low for deterministic extraction.
            sampler: Frame sampler used for video mode.
        """
        resolved_backend: str = backend if backend is not None else get_default_backend()
        if resolved_backend not in self.SUPPORTED_BACKENDS:
            raise UnsupportedBackendError(resolved_backend, self.SUPPORTED_BACKENDS)

        self.backend: AnalysisBackend = resolved_backend  # type: ignore[assignment]
        self.model_name = model_name or get_setting("analysis", "model") or DEFAULT_MODELS[self.backend]
        self.api_key = api_key
        self.temperature = temperature if temperature is not None else float(get_setting("analysis", "temperature"))
        self.consult_temperature = float(get_setting("analysis", "consult_temperature"))
        self.sampler = sampler or VideoFrameSampler(
            interval=float(get_setting("video", "sample_interval")),
            frame_timeout=float(get_setting("video", "frame_timeout")),
        )

    async def analyze_image(self, image: bytes, mime_type: str = "image/jpeg") -> dict[str, Any]:
        """Analyze one normalized receipt image.

        Returns:
            Receipt fields in camelCase, with every required field present

        Raises:
            ServiceError: If the request fails or the response is empty or malformed.
        """
        response = await self._generate([IMAGE_INSTRUCTION, ImagePart(image, mime_type)], RECEIPT_SCHEMA)
        data = self._parse_json(response)
        if not isinstance(data, dict):
            raise ServiceError("The analysis service did not return a receipt object")

        missing = _missing_fields(data, IMAGE_REQUIRED_FIELDS)
        if missing:
            raise ServiceError(f"The analysis response is missing required fields: {', '.join(missing)}")
        return data

    async def analyze_video(self, video: MediaFile) -> list[VideoCandidate]:
        """Sample a video and locate every receipt shown in it.

        Raises:
            VideoDecodeError: If no frames could be sampled.
            ServiceError: If the request fails or the response is empty or malformed.
        """
        frames = await self.sampler.sample(video)
        if not frames:
            raise VideoDecodeError(f"No frames could be extracted from {video.name}")

        parts: list[Part] = [video_instruction(self.sampler.interval)]
        for frame in frames:
            parts.append(time_marker(frame.offset))
            parts.append(ImagePart(frame.data))

        data = self._parse_json(await self._generate(parts, VIDEO_RECEIPTS_SCHEMA))
        if isinstance(data, dict) and isinstance(data.get("receipts"), list):
            data = data["receipts"]
        if not isinstance(data, list):
            raise ServiceError("The analysis service did not return a list of receipts")

        candidates = []
        for item in data:
            if not isinstance(item, dict) or _missing_fields(item, VIDEO_REQUIRED_FIELDS):
                logger.warning("Ignoring incomplete receipt candidate in %s: %r", video.name, item)
                continue
            try:
                timestamp = float(item["timestampSeconds"])
            except (TypeError, ValueError):
                logger.warning("Ignoring receipt candidate with invalid timestamp in %s: %r", video.name, item)
                continue
            candidates.append(VideoCandidate(timestamp=timestamp, data=item))

        logger.info("Found %d receipt candidate(s) in %s", len(candidates), video.name)
        return candidates

    async def consult(self, message: str, history: list[ChatTurn | dict[str, Any]] | None = None) -> str:
        """Ask the accountant assistant a bookkeeping question.

        Args:
            message: The new question
            history: Earlier turns of the conversation, oldest first

        Returns:
            The accountant's reply. Failures and empty answers return a short apology
            instead of raising, so the conversation can continue.
        """
        if not message.strip():
            raise ValueError("message must not be empty")
        turns = [turn if isinstance(turn, ChatTurn) else ChatTurn.from_dict(turn) for turn in history or []]
        turns.append(ChatTurn("user", message))

        try:
            reply = await self._chat(turns)
        except ServiceError as e:
            logger.warning("Accountant consultation failed: %s", e)
            return CONSULTATION_ERROR_REPLY
        return (reply or "").strip() or CONSULTATION_EMPTY_REPLY

    async def _generate(self, parts: list[Part], schema: dict[str, Any]) -> str:
        try:
            if self.backend == "gemini":
                return await self._generate_gemini(parts, schema)
            elif self.backend == "openai":
                return await self._generate_openai(parts, schema)
            else:
                raise UnsupportedBackendError(self.backend, self.SUPPORTED_BACKENDS)
        except BackendError as e:
            raise ServiceError(str(e)) from e
        except Exception as e:
            raise ServiceError(f"Analysis request to {self.backend} failed: {e}") from e

    async def _generate_gemini(self, parts: list[Part], schema: dict[str, Any]) -> str:
        """Call Google Gemini with a JSON response schema."""
        import google.generativeai as genai

        api_key = get_api_key("gemini", self.api_key)
        genai.configure(api_key=api_key)

        model = genai.GenerativeModel(self.model_name)
        contents: list[Any] = [
            part if isinstance(part, str) else {"mime_type": part.mime_type, "data": part.data} for part in parts
        ]
        response = await model.generate_content_async(
            contents,
            generation_config=genai.GenerationConfig(
                temperature=self.temperature,
                response_mime_type="application/json",
                response_schema=schema,
            ),
        )
        return response.text

    async def _generate_openai(self, parts: list[Part], schema: dict[str, Any]) -> str:
        """Call OpenAI chat completions in JSON mode."""
        from openai import AsyncOpenAI

        api_key = get_api_key("openai", self.api_key)
        client = AsyncOpenAI(api_key=api_key)

        content: list[dict[str, Any]] = []
        for part in parts:
            if isinstance(part, str):
                content.append({"type": "text", "text": part})
            else:
                image_base64 = base64.b64encode(part.data).decode()
                content.append(
                    {"type": "image_url", "image_url": {"url": f"data:{part.mime_type};base64,{image_base64}"}}
                )
        content.append({"type": "text", "text": json_shape_hint(schema)})

        response = await client.chat.completions.create(
            model=self.model_name,
            messages=[{"role": "user", "content": content}],
            temperature=self.temperature,
            response_format={"type": "json_object"},
        )
        return response.choices[0].message.content or ""

    async def _chat(self, turns: list[ChatTurn]) -> str:
        try:
            if self.backend == "gemini":
                return await self._chat_gemini(turns)
            elif self.backend == "openai":
                return await self._chat_openai(turns)
            else:
                raise UnsupportedBackendError(self.backend, self.SUPPORTED_BACKENDS)
        except BackendError as e:
            raise ServiceError(str(e)) from e
        except Exception as e:
            raise ServiceError(f"Consultation request to {self.backend} failed: {e}") from e

    async def _chat_gemini(self, turns: list[ChatTurn]) -> str:
        import google.generativeai as genai

        genai.configure(api_key=get_api_key("gemini", self.api_key))
        model = genai.GenerativeModel(self.model_name)

        # Gemini has no system role here, so the instructions open the conversation
        contents = [
            {"role": "user", "parts": [CONSULTATION_SYSTEM_PROMPT]},
            {"role": "model", "parts": [CONSULTATION_ACKNOWLEDGEMENT]},
        ]
        contents += [{"role": "user" if t.role == "user" else "model", "parts": [t.text]} for t in turns]
        response = await model.generate_content_async(
            contents, generation_config=genai.GenerationConfig(temperature=self.consult_temperature)
        )
        return response.text

    async def _chat_openai(self, turns: list[ChatTurn]) -> str:
        from openai import AsyncOpenAI

        client = AsyncOpenAI(api_key=get_api_key("openai", self.api_key))
        messages = [{"role": "system", "content": CONSULTATION_SYSTEM_PROMPT}]
        messages += [{"role": t.role, "content": t.text} for t in turns]

        response = await client.chat.completions.create(
            model=self.model_name, messages=messages, temperature=self.consult_temperature
        )
        return response.choices[0].message.content or ""

    def _parse_json(self, response: str | None) -> Any:
        """Parse a JSON response, tolerating markdown code fences."""
        text = (response or "").strip()
        if text.startswith("```"):
            lines = text.split("\n")
            text = "\n".join(lines[1:-1] if lines[-1].strip() == "```" else lines[1:]).strip()
        if not text:
            raise ServiceError("The analysis service returned an empty response")

        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise ServiceError(f"The analysis service returned invalid JSON: {e}") from e


def _missing_fields(data: dict[str, Any], required: list[str]) -> list[str]:
    return [name for name in required if data.get(name) is None]
