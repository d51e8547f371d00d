"""
Vision model integration for Memorybox.
Provides a unified interface for multimodal providers that describe media.
"""

import base64
import json
import logging
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import httpx
from pydantic import BaseModel, Field

from .models.schemas import MediaType, SuggestionType

logger = logging.getLogger(__name__)


class VisionProvider(str, Enum):
    """Supported vision providers."""

    GEMINI = "gemini"
    OPENAI = "openai"
    LOCAL = "local"


class VisionError(Exception):
    """Base exception for vision model operations."""


class VisionResponse(BaseModel):
    """Vision model response format."""

    content: Optional[str] = Field(None, description="Generated text, if any")
    provider: str = Field(..., description="Vision provider used")
    model: str = Field(..., description="Model name")
    processing_time_ms: int = Field(
        ..., description="Processing time in milliseconds"
    )


class BaseVisionProvider(ABC):
    """Abstract base class for vision providers."""

    name: VisionProvider

    def __init__(self, config: Dict[str, Any]):
        """Initialize provider with configuration."""
        self.config = config
        self.timeout = config.get("timeout", 30.0)
        self.transport: Optional[httpx.AsyncBaseTransport] = config.get("transport")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport, timeout=self.timeout)

    async def analyze(
        self, media: bytes, mime_type: str, instruction: str
    ) -> VisionResponse:
        """Send media plus an instruction and return the model's text."""
        start_time = time.time()
        encoded = base64.b64encode(media).decode("ascii")

        try:
            async with self._client() as client:
                response = await self._send(client, encoded, mime_type, instruction)
                response.raise_for_status()
                content = self._extract_text(response.json())
        except httpx.TimeoutException as e:
            raise VisionError(f"{self.name.value} request timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            raise VisionError(
                f"{self.name.value} returned HTTP {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise VisionError(f"{self.name.value} request failed: {e}") from e
        except (AttributeError, KeyError, IndexError, TypeError, ValueError) as e:
            raise VisionError(
                f"{self.name.value} returned an unexpected payload: {e}"
            ) from e

        return VisionResponse(
            content=content,
            provider=self.name.value,
            model=self.get_model_name(),
            processing_time_ms=int((time.time() - start_time) * 1000),
        )

    @abstractmethod
    async def _send(
        self,
        client: httpx.AsyncClient,
        encoded_media: str,
        mime_type: str,
        instruction: str,
    ) -> httpx.Response:
        """Issue the provider-specific request."""

    @abstractmethod
    def _extract_text(self, data: Dict[str, Any]) -> Optional[str]:
        """Pull the generated text out of the provider payload."""

    @abstractmethod
    def get_model_name(self) -> str:
        """Get current model name."""


class GeminiProvider(BaseVisionProvider):
    """Google Gemini generateContent provider."""

    name = VisionProvider.GEMINI

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.api_key = config.get("api_key")
        self.model = config.get("model", "gemini-2.0-flash")
        self.base_url = config.get(
            "base_url", "https://generativelanguage.googleapis.com/v1beta"
        )

        if not self.api_key:
            raise VisionError("Gemini API key not provided")

    async def _send(self, client, encoded_media, mime_type, instruction):
        payload = {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"inline_data": {"mime_type": mime_type, "data": encoded_media}},
                        {"text": instruction},
                    ],
                }
            ]
        }
        return await client.post(
            f"{self.base_url}/models/{self.model}:generateContent",
            params={"key": self.api_key},
            json=payload,
        )

    def _extract_text(self, data):
        candidates = data.get("candidates") or []
        if not candidates:
            return None
        parts = candidates[0].get("content", {}).get("parts", [])
        text = "".join(part.get("text", "") for part in parts)
        return text or None

    def get_model_name(self) -> str:
        return self.model


class OpenAIProvider(BaseVisionProvider):
    """OpenAI chat completions provider with image input."""

    name = VisionProvider.OPENAI

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.api_key = config.get("api_key")
        self.model = config.get("model", "gpt-4o-mini")
        self.base_url = config.get("base_url", "https://api.openai.com/v1")

        if not self.api_key:
            raise VisionError("OpenAI API key not provided")

    async def _send(self, client, encoded_media, mime_type, instruction):
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": instruction},
                        {
                            "type": "image_url",
                            "image_url": {
                                "url": f"data:{mime_type};base64,{encoded_media}"
                            },
                        },
                    ],
                }
            ],
        }
        return await client.post(
            f"{self.base_url}/chat/completions", headers=headers, json=payload
        )

    def _extract_text(self, data):
        return data["choices"][0]["message"]["content"]

    def get_model_name(self) -> str:
        return self.model


class LocalProvider(BaseVisionProvider):
    """Local vision model provider (Ollama-compatible)."""

    name = VisionProvider.LOCAL

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.model = config.get("model", "llava")
        self.base_url = config.get("base_url", "http://localhost:11434")

    async def _send(self, client, encoded_media, mime_type, instruction):
        payload = {
            "model": self.model,
            "prompt": instruction,
            "images": [encoded_media],
            "stream": False,
        }
        return await client.post(f"{self.base_url}/api/generate", json=payload)

    def _extract_text(self, data):
        return data.get("response") or None

    def get_model_name(self) -> str:
        return self.model


class VisionManager:
    """Manager for vision providers with switching."""

    def __init__(self, settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        """Initialize vision manager with settings."""
        self.settings = settings
        self.transport = transport
        self.providers: Dict[VisionProvider, BaseVisionProvider] = {}
        self.current_provider = VisionProvider(settings.vision_provider)
        self._initialize_providers()

    def _initialize_providers(self):
        """Initialize vision providers that have credentials configured."""
        common = {
            "timeout": self.settings.vision_timeout_seconds,
            "transport": self.transport,
        }

        if self.settings.gemini_api_key:
            try:
                self.providers[VisionProvider.GEMINI] = GeminiProvider(
                    {
                        **common,
                        "api_key": self.settings.gemini_api_key,
                        "model": self.settings.gemini_model,
                        "base_url": self.settings.gemini_base_url,
                    }
                )
                logger.info("Gemini provider initialized")
            except Exception as e:
                logger.warning(f"Failed to initialize Gemini provider: {e}")

        if self.settings.openai_api_key:
            try:
                self.providers[VisionProvider.OPENAI] = OpenAIProvider(
                    {
                        **common,
                        "api_key": self.settings.openai_api_key,
                        "model": self.settings.openai_model,
                        "base_url": self.settings.openai_base_url,
                    }
                )
                logger.info("OpenAI provider initialized")
            except Exception as e:
                logger.warning(f"Failed to initialize OpenAI provider: {e}")

        if self.settings.local_vision_enabled:
            try:
                self.providers[VisionProvider.LOCAL] = LocalProvider(
                    {
                        **common,
                        "model": self.settings.local_vision_model,
                        "base_url": self.settings.local_vision_base_url,
                    }
                )
                logger.info("Local vision provider initialized")
            except Exception as e:
                logger.warning(f"Failed to initialize local vision provider: {e}")

    async def analyze(
        self,
        media: bytes,
        mime_type: str,
        instruction: str,
        provider: Optional[VisionProvider] = None,
    ) -> VisionResponse:
        """Analyze media using the specified or current provider."""
        provider = provider or self.current_provider

        if provider not in self.providers:
            raise VisionError(f"Provider {provider.value} not available")

        return await self.providers[provider].analyze(media, mime_type, instruction)

    def switch_provider(self, provider: VisionProvider):
        """Switch current provider."""
        if provider not in self.providers:
            raise VisionError(f"Provider {provider.value} not available")

        self.current_provider = provider
        logger.info(f"Switched to vision provider: {provider.value}")

    def get_available_providers(self) -> List[VisionProvider]:
        """Get list of available providers."""
        return list(self.providers.keys())

    def get_current_provider(self) -> VisionProvider:
        """Get current provider."""
        return self.current_provider


def build_suggestion_prompt(media_type: MediaType, vocabulary: Sequence[str]) -> str:
    """Instruction asking for a caption and categories from the vocabulary."""
    return (
        f"Analyze this {MediaType(media_type).value} and provide a short "
        f"description and relevant categories from the following list: "
        f"{json.dumps(list(vocabulary))}. Please output the result as a JSON "
        f'object with two keys: "description" (string) and "categories" '
        f"(array of strings from the list provided). For example: "
        f'{{ "description": "A photo of...", "categories": ["Nature", "Travel"] }}. '
        f'If no categories are relevant, the "categories" array should be empty.'
    )


JOURNAL_PROMPTS = {
    SuggestionType.SPECIAL_DAY: (
        "Look at this {media} and decide whether it captures a special day, "
        "such as a birthday, wedding, holiday or celebration. Write two or "
        "three sentences for a personal journal describing the occasion. If "
        "it looks like an ordinary day, say what makes the moment worth "
        "remembering instead."
    ),
    SuggestionType.MOOD: (
        "Summarize the mood of this {media} in two or three sentences written "
        "for a personal journal. Focus on the feelings and atmosphere rather "
        "than listing objects."
    ),
    SuggestionType.POETIC: (
        "Write a short poetic caption, at most four lines, inspired by this "
        "{media}, suitable for a personal memory journal."
    ),
}


def build_journal_prompt(
    suggestion_type: SuggestionType, media_type: MediaType
) -> str:
    """Instruction for one of the journal suggestion flavours."""
    template = JOURNAL_PROMPTS[SuggestionType(suggestion_type)]
    return template.format(media=MediaType(media_type).value) + (
        " Reply with the journal text only, without a preamble."
    )
