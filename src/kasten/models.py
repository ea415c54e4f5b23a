"""Data models for the card store."""

from __future__ import annotations

from dataclasses import dataclass, field

DECK_SEPARATOR = "::"


@dataclass(frozen=True)
class ReviewEntry:
    """One recorded rating. Times are milliseconds."""

    elapsed: int        # since the previous review; 0 for the first
    rating: int
    timestamp: int      # absolute; 0 for the first review (placeholder)


@dataclass
class Card:
    """One renderable variant of a note."""

    id: int
    note_id: int
    deck_id: int
    template_id: int
    slot: int                          # index into the template's layouts
    history: list[ReviewEntry] = field(default_factory=list)

    @property
    def last_review(self) -> ReviewEntry | None:
        return self.history[-1] if self.history else None


@dataclass
class Note:
    """Field values plus the cards generated from them. Owns its cards."""

    id: int
    fields: list[str]
    cards: list[Card] = field(default_factory=list)


@dataclass(frozen=True)
class Template:
    """Card layout definition. Layout slot i produces one card per note."""

    id: int
    name: str
    front_layouts: tuple[str, ...]
    back_layouts: tuple[str, ...]
    field_names: tuple[str, ...]

    @property
    def slot_count(self) -> int:
        return len(self.front_layouts)


@dataclass
class Deck:
    """A named group of cards. ``A::B`` is a child of ``A``."""

    id: int
    name: str
    card_ids: list[int] = field(default_factory=list)
    parents: set[int] = field(default_factory=set)   # deck ids, non-owning

    @property
    def path(self) -> list[str]:
        return self.name.split(DECK_SEPARATOR)

    @property
    def depth(self) -> int:
        return len(self.path)

    @property
    def leaf_name(self) -> str:
        return self.path[-1]
