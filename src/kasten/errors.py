"""Exception hierarchy for the card store.

Callers tell outcomes apart by type:

    NotFound              unknown identifier
    FieldCountMismatch    note fields don't match the template
    StorageError          the SQLite file could not be opened/created/written
    DecodeError           a stored row could not be parsed back
"""

from __future__ import annotations


class KastenError(Exception):
    """Base class for all card store errors."""


class NotFound(KastenError, KeyError):
    """An identifier (card, note, deck, template) is not in its store."""

    def __init__(self, kind: str, ident: object) -> None:
        self.kind = kind
        self.ident = ident
        super().__init__(f"{kind} not found: {ident}")

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return str(self.args[0])


class FieldCountMismatch(KastenError, ValueError):
    """Note creation with a field count that differs from the template's."""

    def __init__(self, expected: int, got: int) -> None:
        self.expected = expected
        self.got = got
        super().__init__(f"template expects {expected} field(s), got {got}")


class AllocationExhausted(KastenError):
    """No free identifier found within the retry cap."""


class IdentifierConflict(KastenError):
    """A stored identifier is already taken by a different entity."""


class DecodeError(KastenError, ValueError):
    """A flat-encoded value or stored row is malformed."""


class StorageError(KastenError):
    """Base class for SQLite failures during save/load."""


class StorageOpenError(StorageError):
    """The store file could not be opened."""


class StorageSchemaError(StorageError):
    """Tables could not be created, or an expected table is missing."""


class StorageWriteError(StorageError):
    """A row write, commit, or the final rename failed."""
