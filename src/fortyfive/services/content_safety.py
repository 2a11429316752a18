"""Content-safety checking for uploaded portraits.

Consulted by the synchronous generation path only.
"""

from typing import Protocol


class ContentSafetyChecker(Protocol):
    async def validate(self, image_bytes: bytes) -> bool:
        """Return True if the image is acceptable.

        Raises:
            Exception: If the check itself could not be performed
        """
        ...


class MockContentSafetyChecker:
    """Checker that accepts every non-empty image."""

    async def validate(self, image_bytes: bytes) -> bool:
        return bool(image_bytes)
