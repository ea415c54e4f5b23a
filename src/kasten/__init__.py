"""In-memory flashcard store persisted to a single SQLite file.

Model:
    Template    front/back layouts + field names; layout slot i -> one card per note
    Note        field values; owns one Card per template front layout
    Card        (template id, slot), deck id, append-only review history
    Deck        "Parent::Child" names; parents resolved and created on demand

Store file (kasten.persistence):
    cardPile, notes, boxes, templateCollection tables; list-valued columns are
    joined with the ASCII unit separator (0x1F), see kasten.codec.

Identifiers are random unsigned 64-bit integers, unique per category.
"""

from kasten.config import KastenConfig, init_config, load_config
from kasten.errors import (
    DecodeError,
    FieldCountMismatch,
    KastenError,
    NotFound,
    StorageError,
)
from kasten.kasten import Kasten
from kasten.models import Card, Deck, Note, ReviewEntry, Template
from kasten.persistence import load, save

__all__ = [
    "Card",
    "DecodeError",
    "Deck",
    "FieldCountMismatch",
    "Kasten",
    "KastenConfig",
    "KastenError",
    "Note",
    "NotFound",
    "ReviewEntry",
    "StorageError",
    "Template",
    "init_config",
    "load",
    "load_config",
    "save",
]
