"""Tracking code generation and allocation."""

import logging
import re
import secrets
from typing import Callable, Optional

from .exceptions import DataServiceError, TrackingCodeExhaustedError

logger = logging.getLogger(__name__)

# Excludes confusing characters: 0, O, 1, I
TRACKING_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
TRACKING_CODE_LENGTH = 8
MAX_ALLOCATION_ATTEMPTS = 10

_TRACKING_CODE_RE = re.compile(rf"^[{TRACKING_CODE_ALPHABET}]{{{TRACKING_CODE_LENGTH}}}$")


def generate_tracking_code(choice: Callable[[str], str] = secrets.choice) -> str:
    """Generate a random 8-character tracking code, e.g. A3B7K9M2."""
    return "".join(choice(TRACKING_CODE_ALPHABET) for _ in range(TRACKING_CODE_LENGTH))


def normalize_tracking_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def is_valid_tracking_code(code: Optional[str]) -> bool:
    """Validate tracking code format."""
    if not code or len(code) != TRACKING_CODE_LENGTH:
        return False
    return bool(_TRACKING_CODE_RE.match(code))


class TrackingCodeGenerator:
    """Allocates tracking codes not yet used by any stored order."""

    def __init__(
        self,
        data,
        max_attempts: int = MAX_ALLOCATION_ATTEMPTS,
        choice: Callable[[str], str] = secrets.choice,
    ) -> None:
        self.data = data
        self.max_attempts = max_attempts
        self.choice = choice

    def generate(self) -> str:
        return generate_tracking_code(self.choice)

    async def ensure_unique(self) -> str:
        """
        Generate candidates until one is not used by any stored order.

        Each candidate is checked with one lookup. A failed lookup uses up
        an attempt; an unchecked candidate is never returned.

        Raises:
            TrackingCodeExhaustedError: If every attempt collided or failed
        """
        for attempt in range(1, self.max_attempts + 1):
            code = self.generate()
            try:
                existing = await self.data.find_order_by_tracking_code(code)
            except DataServiceError as e:
                logger.error(f"Error checking tracking code (attempt {attempt}): {e}")
                continue

            if existing is None:
                return code
            logger.warning(f"Tracking code collision on attempt {attempt}")

        logger.error(f"Could not allocate tracking code after {self.max_attempts} attempts")
        raise TrackingCodeExhaustedError(self.max_attempts)
