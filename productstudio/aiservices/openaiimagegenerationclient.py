# aiservices/openaiimagegenerationclient.py
from __future__ import annotations

import mimetypes
from typing import Any, List, Optional

from openai import AsyncOpenAI

from ..config import Settings, get_settings
from ..schemas import GeneratedImage
from ..utils import decode_image_data
from .imagegenerationclient import ImageGenerationClient, ServiceResponse, response_from_candidates


class OpenAIImageGenerationClient(ImageGenerationClient):
    """
    Works with:
      - api.openai.com image edits (gpt-image-1)
      - OpenAI-compatible servers exposing /images/edits (set base_url)
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()

        api_key = self.settings.openai_api_key.get_secret_value()
        base_url = self.settings.openai_api_base_url

        self._client = AsyncOpenAI(
            api_key=api_key or None,
            base_url=base_url,
        ) if (api_key or base_url) else AsyncOpenAI()
        self._model = self.settings.openai_image_model_id

    async def generate(self, image_mime: str, image_data: bytes, instruction: str) -> ServiceResponse:
        extension = mimetypes.guess_extension(image_mime) or ".png"
        resp = await self._client.images.edit(
            model=self._model,
            image=(f"source{extension}", image_data, image_mime),
            prompt=instruction,
            n=1,
        )
        return to_service_response(resp)


def to_service_response(resp: Any) -> ServiceResponse:
    """Each entry of ``resp.data`` counts as one candidate."""
    # gpt-image-1 answers with base64 PNG unless an output_format is requested.
    output_format = getattr(resp, "output_format", None) or "png"
    mime_type = f"image/{output_format}"

    first_images: List[Optional[GeneratedImage]] = []
    for item in getattr(resp, "data", None) or []:
        b64 = getattr(item, "b64_json", None)
        first_images.append(
            GeneratedImage(mime_type=mime_type, data=decode_image_data(b64)) if b64 else None
        )
    return response_from_candidates(first_images)
