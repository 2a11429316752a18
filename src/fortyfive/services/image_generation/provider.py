"""Image generation provider capability and its implementations.

The pipeline only depends on ImageGenerationProvider; the concrete provider
is chosen once at startup from IMAGE_PROVIDER.
"""

from typing import Protocol

from fortyfive.core.config import Settings

MOCK_IMAGE_URLS = (
    "https://example.com/image1.png",
    "https://example.com/image2.png",
    "https://example.com/image3.png",
)


class ImageGenerationProvider(Protocol):
    """Turns a portrait plus a template into result image URLs."""

    async def generate(self, template_id: int, image_bytes: bytes) -> list[str]:
        """Generate images for one request.

        Returns:
            Ordered result URLs; the first one is the canonical result

        Raises:
            GenerationFailed: Provider error (or subclass thereof)
        """
        ...


class MockImageProvider:
    """Provider that returns three fixed example URLs without any I/O."""

    async def generate(self, template_id: int, image_bytes: bytes) -> list[str]:
        return list(MOCK_IMAGE_URLS)


def create_image_provider(settings: Settings) -> ImageGenerationProvider:
    """Build the provider selected by settings.image_provider."""
    if settings.image_provider == "replicate":
        from fortyfive.services.image_generation.replicate_client import ReplicateImageProvider

        return ReplicateImageProvider(
            api_token=settings.replicate_api_token,
            model_version=settings.replicate_model_version,
            prompt_template=settings.replicate_prompt,
        )
    return MockImageProvider()
