"""Notes, the cards they own, and the card-id lookup index.

The index maps a card id to ``(note_id, position)`` inside the owning note's
card list. Cards are always reached through their note; nothing outside this
module holds on to a position across a mutation of the note store.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, NamedTuple

from kasten.errors import FieldCountMismatch, IdentifierConflict, NotFound
from kasten.ids import IdentifierAllocator
from kasten.models import Card, Note, ReviewEntry

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator

    from kasten.templates import TemplateStore

logger = logging.getLogger("kasten.notes")

FRONT_SIDES = ("f", "front")
BACK_SIDES = ("r", "b", "back")


def now_ms() -> int:
    return time.time_ns() // 1_000_000


class CardRef(NamedTuple):
    note_id: int
    position: int


def substitute_fields(layout: str, field_names: Iterable[str], values: list[str]) -> str:
    """Replace ``{{name}}`` placeholders one field at a time, in order.

    Replacement is cumulative: a value that itself contains a later field's
    placeholder gets that placeholder substituted too.
    """
    text = layout
    for i, name in enumerate(field_names):
        text = text.replace("{{" + name + "}}", values[i])
    return text


class NoteCardStore:
    def __init__(
        self,
        templates: TemplateStore,
        allocator: IdentifierAllocator | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._templates = templates
        self._allocator = allocator or IdentifierAllocator()
        self._clock = clock
        self._notes: dict[int, Note] = {}
        self._index: dict[int, CardRef] = {}

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def create_note(self, template_id: int, fields: Iterable[str], deck_id: int) -> int:
        """Create a note and one card per front layout of its template.

        Raises NotFound for an unknown template and FieldCountMismatch when
        the field count differs from the template's; nothing is stored then.
        """
        template = self._templates.get(template_id)
        values = list(fields)
        if len(values) != len(template.field_names):
            raise FieldCountMismatch(len(template.field_names), len(values))

        note = Note(id=self._allocator.allocate(self._notes), fields=values)
        pending: set[int] = set()
        for slot in range(template.slot_count):
            card_id = self._allocator.allocate(self._index, pending)
            pending.add(card_id)
            note.cards.append(Card(
                id=card_id,
                note_id=note.id,
                deck_id=deck_id,
                template_id=template_id,
                slot=slot,
            ))

        self._place(note)
        logger.debug("note created: %d (%d cards)", note.id, len(note.cards))
        return note.id

    def restore(self, note: Note) -> None:
        """Install a note loaded from storage and index its cards."""
        if note.id in self._notes:
            msg = f"note id {note.id} already stored"
            raise IdentifierConflict(msg)
        for card in note.cards:
            if card.id in self._index:
                msg = f"card id {card.id} already stored"
                raise IdentifierConflict(msg)
        self._place(note)

    def _place(self, note: Note) -> None:
        # Store first, then index against the stored note's card list.
        self._notes[note.id] = note
        for position, card in enumerate(self._notes[note.id].cards):
            self._index[card.id] = CardRef(note.id, position)

    def record_review(self, card_id: int, rating: int) -> ReviewEntry:
        """Append a review entry to a card's history.

        The first review is recorded with elapsed 0 and timestamp 0. Later
        reviews measure elapsed time from the previous entry's timestamp.
        Ratings are stored unsigned; anything else raises ValueError.
        """
        if not isinstance(rating, int) or isinstance(rating, bool) or rating < 0:
            msg = f"rating must be a non-negative integer, got {rating!r}"
            raise ValueError(msg)
        card = self.card(card_id)
        now = self._clock()
        last = card.last_review
        if last is None:
            entry = ReviewEntry(elapsed=0, rating=rating, timestamp=0)
        else:
            entry = ReviewEntry(elapsed=now - last.timestamp, rating=rating, timestamp=now)
        card.history.append(entry)
        logger.debug("review recorded: card=%d rating=%d", card_id, rating)
        return entry

    def append_history(self, card_id: int, entry: ReviewEntry) -> None:
        """Append an already-built entry (e.g. imported history)."""
        self.card(card_id).history.append(entry)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def card(self, card_id: int) -> Card:
        ref = self._index.get(card_id)
        if ref is None:
            raise NotFound("card", card_id)
        return self._notes[ref.note_id].cards[ref.position]

    def note(self, note_id: int) -> Note:
        try:
            return self._notes[note_id]
        except KeyError:
            raise NotFound("note", note_id) from None

    def render(self, card_id: int, side: str) -> str:
        """Render the front ("f") or back ("r"/"b") of a card."""
        card = self.card(card_id)
        note = self._notes[card.note_id]
        template = self._templates.get(card.template_id)
        if side in FRONT_SIDES:
            layouts = template.front_layouts
        elif side in BACK_SIDES:
            layouts = template.back_layouts
        else:
            msg = f"unknown card side: {side!r}"
            raise ValueError(msg)
        if card.slot >= len(layouts):
            raise NotFound(f"layout {side!r}", card.slot)
        layout = layouts[card.slot]
        return substitute_fields(layout, template.field_names, note.fields)

    def notes(self) -> Iterator[Note]:
        return iter(self._notes.values())

    def cards(self) -> Iterator[Card]:
        for ref in self._index.values():
            yield self._notes[ref.note_id].cards[ref.position]

    def has_card(self, card_id: int) -> bool:
        return card_id in self._index

    @property
    def card_ids(self) -> list[int]:
        return list(self._index)

    @property
    def note_count(self) -> int:
        return len(self._notes)

    @property
    def card_count(self) -> int:
        return len(self._index)

    def __contains__(self, note_id: object) -> bool:
        return note_id in self._notes

    def __len__(self) -> int:
        return len(self._notes)
