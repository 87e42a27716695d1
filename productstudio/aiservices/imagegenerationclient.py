from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

from ..schemas import GeneratedImage

# A provider response is reduced to one of three shapes so the aggregation
# logic never has to poke at SDK objects.


@dataclass(frozen=True)
class NoCandidates:
    """The service answered without any candidate."""


@dataclass(frozen=True)
class CandidatesWithoutImage:
    """Candidates came back, none of them carrying image data."""

    count: int


@dataclass(frozen=True)
class ImageCandidates:
    """At least one candidate carried an image, in response order."""

    images: Tuple[GeneratedImage, ...]


ServiceResponse = Union[NoCandidates, CandidatesWithoutImage, ImageCandidates]


def response_from_candidates(candidate_images: Sequence[Optional[GeneratedImage]]) -> ServiceResponse:
    """Classify a response given the first image of each candidate (``None`` when absent)."""
    if not candidate_images:
        return NoCandidates()
    images = tuple(image for image in candidate_images if image is not None)
    if not images:
        return CandidatesWithoutImage(count=len(candidate_images))
    return ImageCandidates(images=images)


def extract_first_image(response: ServiceResponse) -> Optional[GeneratedImage]:
    if isinstance(response, ImageCandidates):
        return response.images[0]
    return None


class ImageGenerationClient(ABC):
    """Abstract interface for an image-to-image generation client.

    Implementations send exactly one request per call and never retry.
    """

    @abstractmethod
    async def generate(self, image_mime: str, image_data: bytes, instruction: str) -> ServiceResponse:
        """Send one image plus an instruction and ask for image-only output."""
