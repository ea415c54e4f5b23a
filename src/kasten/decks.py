"""Deck store with ``Parent::Child`` name resolution.

    decks = DeckHierarchy()
    leaf = decks.resolve("Lang::Spanish::Verbs")   # creates Lang, Lang::Spanish too
    decks.resolve("Lang::Spanish::Verbs") == leaf    # idempotent
    [d.name for d in decks.ancestors(leaf)]          # ["Lang::Spanish", "Lang"]

Each deck keeps one direct parent reference (its longest strict prefix), by
id. Names compare exactly: no case-folding, no whitespace trimming.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from kasten.errors import IdentifierConflict, NotFound
from kasten.ids import IdentifierAllocator
from kasten.models import DECK_SEPARATOR, Deck

if TYPE_CHECKING:
    from collections.abc import Collection, Iterable, Iterator

logger = logging.getLogger("kasten.decks")


class DeckHierarchy:
    def __init__(self, allocator: IdentifierAllocator | None = None) -> None:
        self._allocator = allocator or IdentifierAllocator()
        self._decks: dict[int, Deck] = {}
        self._by_name: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, name: str, deck_id: int | None = None) -> int:
        """Return the id of deck *name*, creating it and any missing ancestors.

        *deck_id* pins the leaf's identifier (used when restoring from
        storage). Ancestors created along the way always get fresh ids.
        """
        existing = self._by_name.get(name)
        if existing is not None:
            if deck_id is not None and deck_id != existing:
                msg = f"deck {name!r} already exists as {existing}, not {deck_id}"
                raise IdentifierConflict(msg)
            return existing
        if deck_id is not None and deck_id in self._decks:
            msg = f"deck id {deck_id} already taken by {self._decks[deck_id].name!r}"
            raise IdentifierConflict(msg)

        # The pinned leaf id is not yet in _decks; keep ancestors off it.
        reserved = () if deck_id is None else (deck_id,)
        segments = name.split(DECK_SEPARATOR)
        parent: int | None = None
        for depth in range(1, len(segments)):
            prefix = DECK_SEPARATOR.join(segments[:depth])
            found = self._by_name.get(prefix)
            parent = found if found is not None else self._create(prefix, parent, reserved=reserved)

        return self._create(name, parent, deck_id)

    def _create(
        self, name: str, parent: int | None, deck_id: int | None = None, reserved: Collection[int] = (),
    ) -> int:
        if deck_id is None:
            deck_id = self._allocator.allocate(self._decks, reserved)
        deck = Deck(id=deck_id, name=name)
        if parent is not None:
            deck.parents.add(parent)
        self._decks[deck_id] = deck
        self._by_name[name] = deck_id
        logger.debug("deck created: %s (%d)", name, deck_id)
        return deck_id

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def find(self, name: str) -> int | None:
        return self._by_name.get(name)

    def get(self, deck_id: int) -> Deck:
        try:
            return self._decks[deck_id]
        except KeyError:
            raise NotFound("deck", deck_id) from None

    def ancestors(self, deck_id: int) -> list[Deck]:
        """Parent chain of a deck, nearest first."""
        chain: list[Deck] = []
        seen = {deck_id}
        pending = sorted(self.get(deck_id).parents)
        while pending:
            pid = pending.pop(0)
            if pid in seen:
                continue
            seen.add(pid)
            parent = self.get(pid)
            chain.append(parent)
            pending.extend(sorted(parent.parents))
        return chain

    def children(self, deck_id: int) -> list[Deck]:
        self.get(deck_id)
        return [d for d in self._decks.values() if deck_id in d.parents]

    def attach_cards(self, deck_id: int, card_ids: Iterable[int]) -> None:
        self.get(deck_id).card_ids.extend(card_ids)

    def __contains__(self, deck_id: object) -> bool:
        return deck_id in self._decks

    def __iter__(self) -> Iterator[Deck]:
        return iter(self._decks.values())

    def __len__(self) -> int:
        return len(self._decks)
