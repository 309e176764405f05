"""Referral code generation."""

import secrets
from typing import Callable

from referral_ledger.ledger.errors import CodeGenerationExhaustedError
from referral_ledger.logging_config import get_logger

logger = get_logger(__name__)

# No 0/O, 1/I: codes are typed by hand
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


class CodeGenerator:
    """Draws random codes until one is not taken.

    After ``max_attempts`` collisions at the normal length the generator widens
    to ``fallback_length`` for another ``max_attempts`` draws, then gives up.
    """

    def __init__(
        self,
        is_taken: Callable[[str], bool],
        length: int = 8,
        fallback_length: int = 12,
        max_attempts: int = 20,
        choice: Callable[[str], str] = secrets.choice,
    ):
        if fallback_length <= length:
            raise ValueError("fallback_length must be longer than length")
        self.is_taken = is_taken
        self.length = length
        self.fallback_length = fallback_length
        self.max_attempts = max_attempts
        self._choice = choice

    def draw(self, length: int) -> str:
        return "".join(self._choice(CODE_ALPHABET) for _ in range(length))

    def generate(self) -> str:
        """Return a code that ``is_taken`` reports as free.

        Raises:
            CodeGenerationExhaustedError: If every attempt collided
        """
        for length in (self.length, self.fallback_length):
            for _ in range(self.max_attempts):
                code = self.draw(length)
                if not self.is_taken(code):
                    return code
            logger.warning(
                "referral_code_collisions",
                length=length,
                attempts=self.max_attempts,
            )

        raise CodeGenerationExhaustedError(
            "Could not generate a unique referral code",
            attempts=self.max_attempts * 2,
        )


def normalize_code(code: str) -> str:
    """Canonical form of a user-typed code."""
    return code.strip().upper()
