"""Kasten: the whole in-memory card store.

    k = Kasten()
    tid = k.register_template("Basic", ["{{Front}}"], ["{{Back}}"], ["Front", "Back"])
    did = k.resolve_deck("Lang::Spanish")
    nid = k.create_note(tid, ["Hola", "Hello"], did)
    card_id = k.note(nid).cards[0].id
    k.render(card_id, "f")          # "Hola"
    k.record_review(card_id, 3)

Persist with kasten.persistence.save / load.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from kasten.decks import DeckHierarchy
from kasten.ids import IdentifierAllocator
from kasten.notes import NoteCardStore, now_ms
from kasten.templates import TemplateStore

if TYPE_CHECKING:
    from collections.abc import Callable, Container, Iterable

    from kasten.models import Card, Deck, Note, ReviewEntry, Template

_CATEGORIES = {
    "c": "card", "card": "card",
    "n": "note", "note": "note",
    "d": "deck", "deck": "deck",
    "t": "template", "template": "template",
}


class Kasten:
    def __init__(
        self,
        allocator: IdentifierAllocator | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.allocator = allocator or IdentifierAllocator()
        self.templates = TemplateStore(self.allocator)
        self.notes = NoteCardStore(self.templates, self.allocator, clock=clock)
        self.decks = DeckHierarchy(self.allocator)

    def generate_id(self, category: str) -> int:
        """Fresh id for a category: "c"ard, "n"ote, "d"eck or "t"emplate."""
        kind = _CATEGORIES.get(category)
        keys: Container[int]
        if kind == "card":
            keys = set(self.notes.card_ids)
        elif kind == "note":
            keys = self.notes
        elif kind == "deck":
            keys = self.decks
        elif kind == "template":
            keys = self.templates
        else:
            msg = f"unknown id category: {category!r}"
            raise ValueError(msg)
        return self.allocator.allocate(keys)

    # ------------------------------------------------------------------
    # Templates / decks
    # ------------------------------------------------------------------

    def register_template(
        self,
        name: str,
        front_layouts: Iterable[str],
        back_layouts: Iterable[str],
        field_names: Iterable[str],
    ) -> int:
        return self.templates.register(name, front_layouts, back_layouts, field_names)

    def template(self, template_id: int) -> Template:
        return self.templates.get(template_id)

    def resolve_deck(self, name: str) -> int:
        return self.decks.resolve(name)

    def deck(self, deck_id: int) -> Deck:
        return self.decks.get(deck_id)

    def find_deck(self, name: str) -> int | None:
        return self.decks.find(name)

    # ------------------------------------------------------------------
    # Notes / cards
    # ------------------------------------------------------------------

    def create_note(self, template_id: int, fields: Iterable[str], deck_id: int) -> int:
        """Create a note; its cards are also listed on the deck when it exists."""
        note_id = self.notes.create_note(template_id, fields, deck_id)
        if deck_id in self.decks:
            self.decks.attach_cards(deck_id, [c.id for c in self.notes.note(note_id).cards])
        return note_id

    def note(self, note_id: int) -> Note:
        return self.notes.note(note_id)

    def card(self, card_id: int) -> Card:
        return self.notes.card(card_id)

    def render(self, card_id: int, side: str) -> str:
        return self.notes.render(card_id, side)

    def record_review(self, card_id: int, rating: int) -> ReviewEntry:
        return self.notes.record_review(card_id, rating)
