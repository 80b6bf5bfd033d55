"""
Gemini gateway - the single outbound call the relay makes.

The gateway never inspects the reply; shaping it is the normalizer's job.
A gateway is built per request from the configured API key.
"""
import asyncio
import logging
from typing import Callable, List, Optional

from google import genai
from google.genai import types

from .errors import ConfigError, UpstreamError

logger = logging.getLogger(__name__)


def text_config(instruction: str, temperature: float) -> types.GenerateContentConfig:
    """Config for a text reply. An empty instruction is omitted."""
    return types.GenerateContentConfig(
        system_instruction=instruction or None,
        temperature=temperature,
    )


def speech_config(voice: str) -> types.GenerateContentConfig:
    """Config for an audio-only reply read with a prebuilt voice."""
    return types.GenerateContentConfig(
        response_modalities=["AUDIO"],
        speech_config=types.SpeechConfig(
            voice_config=types.VoiceConfig(
                prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice),
            ),
        ),
    )


class GeminiGateway:
    """Thin wrapper around google-genai's generate_content."""

    def __init__(self, api_key: Optional[str], timeout_seconds: Optional[float] = None):
        if not api_key:
            raise ConfigError("GEMINI_API_KEY is not set")

        http_options = None
        if timeout_seconds:
            http_options = types.HttpOptions(timeout=int(timeout_seconds * 1000))
        self.client = genai.Client(api_key=api_key, http_options=http_options)

    async def generate(
        self,
        model: str,
        contents: List[types.Content],
        config: types.GenerateContentConfig,
    ) -> types.GenerateContentResponse:
        """Run one generate_content call off the event loop.

        Any SDK or transport failure is re-raised as UpstreamError.
        """
        logger.info(f"Gemini call: model={model}, turns={len(contents)}")
        try:
            return await asyncio.to_thread(
                self.client.models.generate_content,
                model=model,
                contents=contents,
                config=config,
            )
        except Exception as e:
            raise UpstreamError(f"Gemini request failed: {e}") from e


GatewayFactory = Callable[[Optional[str], Optional[float]], GeminiGateway]


def get_gateway_factory() -> GatewayFactory:
    """FastAPI dependency; overridden in tests with a fake."""
    return GeminiGateway
