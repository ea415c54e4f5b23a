"""Random 64-bit identifiers, unique within a key set."""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING

from kasten.errors import AllocationExhausted

if TYPE_CHECKING:
    from collections.abc import Callable, Container

ID_BITS = 64
_DEFAULT_MAX_ATTEMPTS = 64


def random_id() -> int:
    """Uniform value in [0, 2**64)."""
    return secrets.randbits(ID_BITS)


class IdentifierAllocator:
    """Draws random ids until one is free in every supplied key collection.

    Each store passes its own keys, so categories (card, note, deck,
    template) get independent namespaces.
    """

    def __init__(
        self,
        source: Callable[[], int] = random_id,
        max_attempts: int = _DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self._source = source
        self.max_attempts = max_attempts

    def allocate(self, *taken: Container[int]) -> int:
        for _ in range(self.max_attempts):
            key = self._source()
            if not any(key in keys for keys in taken):
                return key
        msg = f"no free identifier after {self.max_attempts} attempts"
        raise AllocationExhausted(msg)
