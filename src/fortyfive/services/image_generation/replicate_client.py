"""Replicate API client for portrait restyling with error classification."""

import asyncio
import base64
from typing import Any

import replicate
from replicate.exceptions import ReplicateError as ReplicateAPIError

from fortyfive.services.exceptions import (
    ContentPolicyError,
    GenerationFailed,
    PermanentGenerationError,
    TransientGenerationError,
)


def classify_error(exception: Exception) -> GenerationFailed:
    """Classify exception into a generation failure category.

    Args:
        exception: Original exception from Replicate SDK or network layer

    Returns:
        Classified GenerationFailed subclass instance

    Classification rules:
        - Timeout errors → TransientGenerationError
        - 429 (rate limit) → TransientGenerationError
        - 503 (service unavailable) → TransientGenerationError
        - 401/403 (authentication) → PermanentGenerationError
        - Content policy violations → ContentPolicyError
        - Connection errors → TransientGenerationError
        - Anything else → PermanentGenerationError
    """
    error_message = str(exception)
    error_message_lower = error_message.lower()

    if "timeout" in error_message_lower or isinstance(exception, TimeoutError):
        return TransientGenerationError(f"Network timeout: {error_message}")

    if "429" in error_message or "rate limit" in error_message_lower:
        return TransientGenerationError(f"Rate limit exceeded: {error_message}")

    if "503" in error_message or "service unavailable" in error_message_lower:
        return TransientGenerationError(f"Service unavailable: {error_message}")

    if (
        "401" in error_message
        or "403" in error_message
        or "unauthorized" in error_message_lower
        or "forbidden" in error_message_lower
        or "authentication" in error_message_lower
        or "invalid api token" in error_message_lower
    ):
        return PermanentGenerationError(f"Authentication failed: {error_message}")

    if (
        "content policy" in error_message_lower
        or "nsfw" in error_message_lower
        or "safety" in error_message_lower
        or "inappropriate" in error_message_lower
    ):
        return ContentPolicyError(f"Content policy violation: {error_message}")

    if isinstance(exception, (ConnectionError, OSError)):
        return TransientGenerationError(f"Connection error: {error_message}")

    return PermanentGenerationError(f"Permanent error: {error_message}")


def extract_image_urls(output: Any) -> list[str]:
    """Normalize Replicate output (list, single URL or file objects) to URL strings.

    Raises:
        PermanentGenerationError: If the output shape is not recognised
    """
    if output is None:
        return []
    if isinstance(output, (list, tuple)):
        return [str(item) for item in output]
    if isinstance(output, str):
        return [output]
    if hasattr(output, "url"):
        return [str(output.url)]
    raise PermanentGenerationError(f"Unexpected output format from Replicate: {type(output)}")


def to_data_uri(image_bytes: bytes, mime_type: str = "image/png") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(image_bytes).decode('ascii')}"


class ReplicateImageProvider:
    """Image generation provider backed by a Replicate image-to-image model.

    No retries are attempted: a classified failure is terminal for the job.
    """

    def __init__(self, api_token: str, model_version: str, prompt_template: str):
        self.model_version = model_version
        self.prompt_template = prompt_template
        self._client = replicate.Client(api_token=api_token) if api_token else None

    async def generate(self, template_id: int, image_bytes: bytes) -> list[str]:
        """Run the model on the portrait.

        Raises:
            TransientGenerationError: Temporary failure
            ContentPolicyError: Content policy violation
            PermanentGenerationError: Permanent failure (auth, config, output format)
        """
        if self._client is None:
            raise PermanentGenerationError("REPLICATE_API_TOKEN not configured")

        model_input = {
            "prompt": self.prompt_template.format(template_id=template_id),
            "input_image": to_data_uri(image_bytes),
        }

        try:
            # SDK is synchronous, run in thread pool
            output = await asyncio.to_thread(self._client.run, self.model_version, input=model_input)
        except ReplicateAPIError as e:
            raise classify_error(e) from e
        except (ConnectionError, OSError, TimeoutError) as e:
            raise classify_error(e) from e
        except Exception as e:
            raise PermanentGenerationError(f"Unexpected error: {e}") from e

        return extract_image_urls(output)
