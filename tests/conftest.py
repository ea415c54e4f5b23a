from __future__ import annotations

import pytest

from kasten.ids import IdentifierAllocator
from kasten.kasten import Kasten


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


def sequence_source(values: list[int]):
    """Allocator source that replays *values* in order."""
    it = iter(values)
    return lambda: next(it)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kasten(clock: FakeClock) -> Kasten:
    return Kasten(clock=clock)


@pytest.fixture
def rigged_allocator():
    def _make(values: list[int], max_attempts: int = 64) -> IdentifierAllocator:
        return IdentifierAllocator(source=sequence_source(values), max_attempts=max_attempts)

    return _make


@pytest.fixture
def spanish(kasten: Kasten) -> dict[str, int]:
    """One two-field template, one Lang::Spanish deck, one note."""
    template_id = kasten.register_template("Basic", ["{{Front}}"], ["{{Back}}"], ["Front", "Back"])
    deck_id = kasten.resolve_deck("Lang::Spanish")
    note_id = kasten.create_note(template_id, ["Hola", "Hello"], deck_id)
    return {
        "template": template_id,
        "deck": deck_id,
        "note": note_id,
        "card": kasten.note(note_id).cards[0].id,
    }
