"""Generation client: fans each user action out to the image service and aggregates the results."""

from __future__ import annotations

import asyncio
import logging
from functools import lru_cache
from typing import List, Tuple

from . import messages
from .aiservices.imagegenerationclient import ImageGenerationClient, extract_first_image
from .config import Settings, get_settings
from .prompts import get_generation_prompt
from .schemas import GeneratedImage, GenerationMode, SourceImage

logger = logging.getLogger(__name__)

# Every generation and refinement yields exactly this many images.
VARIANT_COUNT = 4


class GenerationError(Exception):
    """Raised when a generation or refinement cannot produce a full batch."""

    def __init__(self, user_message: str, detail: str | None = None) -> None:
        super().__init__(detail or user_message)
        self.user_message = user_message


class GenerationFailedError(GenerationError):
    """One of the underlying requests was rejected by the service."""


class PartialBatchError(GenerationError):
    """The requests settled but fewer images than requested came back."""

    def __init__(self, user_message: str, received: int, expected: int) -> None:
        super().__init__(user_message, f"service returned {received} of {expected} requested images")
        self.received = received
        self.expected = expected


class ProductStudioService:
    """High-level orchestrator for the image generation service."""

    def __init__(self, settings: Settings | None = None, image_client: ImageGenerationClient | None = None) -> None:
        self.settings = settings or get_settings()
        self._image_client = image_client or _build_image_client(self.settings)

    # ------------------------------------------------------------------
    # Initial generation
    # ------------------------------------------------------------------
    async def generate_from_source(self, image: SourceImage, mode: GenerationMode) -> Tuple[GeneratedImage, ...]:
        instruction = get_generation_prompt(mode)
        return await self._fan_out(
            image.mime_type,
            image.data,
            instruction,
            failure_message=messages.GENERATION_FAILED,
            operation="generate_from_source",
        )

    # ------------------------------------------------------------------
    # Refinement
    # ------------------------------------------------------------------
    async def refine(self, image: GeneratedImage, instruction: str) -> Tuple[GeneratedImage, ...]:
        if not instruction.strip():
            raise ValueError("refinement instruction must not be blank")
        return await self._fan_out(
            image.mime_type,
            image.data,
            instruction.strip(),
            failure_message=messages.REFINEMENT_FAILED,
            operation="refine",
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _fan_out(
        self,
        image_mime: str,
        image_data: bytes,
        instruction: str,
        failure_message: str,
        operation: str,
    ) -> Tuple[GeneratedImage, ...]:
        expected = VARIANT_COUNT
        requests = [
            self._image_client.generate(image_mime, image_data, instruction)
            for _ in range(expected)
        ]
        # The first rejection fails the whole batch; siblings keep running and are ignored.
        try:
            responses = await asyncio.gather(*requests)
        except Exception as exc:
            logger.exception("Image service rejected a request during %s", operation)
            raise GenerationFailedError(failure_message, f"{operation} failed: {exc}") from exc

        images: List[GeneratedImage] = []
        for response in responses:
            image = extract_first_image(response)
            if image is not None:
                images.append(image)

        if len(images) < expected:
            logger.warning(
                "Discarding partial batch during %s: %d of %d images", operation, len(images), expected
            )
            raise PartialBatchError(failure_message, received=len(images), expected=expected)

        logger.info("%s produced %d images", operation, len(images))
        return tuple(images)


def _build_image_client(settings: Settings) -> ImageGenerationClient:
    if settings.image_provider == "openai":
        from .aiservices.openaiimagegenerationclient import OpenAIImageGenerationClient

        return OpenAIImageGenerationClient(settings)

    from .aiservices.geminiimagegenerationclient import GeminiImageGenerationClient

    return GeminiImageGenerationClient(settings)


@lru_cache
def get_product_studio_service() -> ProductStudioService:
    return ProductStudioService(get_settings())
