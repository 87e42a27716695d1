from __future__ import annotations

import logging
from typing import Any, List, Optional

from google import genai
from google.genai import types

from ..config import Settings, get_settings
from ..schemas import GeneratedImage
from ..utils import decode_image_data, is_image_mime
from .imagegenerationclient import ImageGenerationClient, ServiceResponse, response_from_candidates

logger = logging.getLogger(__name__)


class GeminiImageGenerationClient(ImageGenerationClient):
    """Image-to-image generation through the google-genai async API."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()
        api_key = self.settings.gemini_api_key.get_secret_value()
        # Without an explicit key the SDK falls back to GEMINI_API_KEY / GOOGLE_API_KEY.
        self._client = genai.Client(api_key=api_key) if api_key else genai.Client()
        self._model = self.settings.gemini_image_model_id
        self._config = types.GenerateContentConfig(response_modalities=[types.Modality.IMAGE])

    async def generate(self, image_mime: str, image_data: bytes, instruction: str) -> ServiceResponse:
        contents = [
            types.Part.from_bytes(data=image_data, mime_type=image_mime),
            types.Part.from_text(text=instruction),
        ]
        response = await self._client.aio.models.generate_content(
            model=self._model,
            contents=contents,
            config=self._config,
        )
        return to_service_response(response)


def to_service_response(response: Any) -> ServiceResponse:
    """Reduce a ``GenerateContentResponse`` to its first image per candidate."""
    candidates = getattr(response, "candidates", None) or []
    first_images: List[Optional[GeneratedImage]] = []
    for candidate in candidates:
        first_images.append(_first_image_part(candidate))
    if candidates and not any(first_images):
        logger.debug("Gemini returned %d candidates without image data", len(candidates))
    return response_from_candidates(first_images)


def _first_image_part(candidate: Any) -> Optional[GeneratedImage]:
    content = getattr(candidate, "content", None)
    parts = getattr(content, "parts", None) or []
    for part in parts:
        inline = getattr(part, "inline_data", None)
        if inline is None or not inline.data or not is_image_mime(inline.mime_type):
            continue
        return GeneratedImage(mime_type=inline.mime_type, data=decode_image_data(inline.data))
    return None
