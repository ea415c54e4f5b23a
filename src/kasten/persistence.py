"""Save/load a Kasten to a SQLite file.

Tables (one row per entity; nested sequences flat-encoded, see kasten.codec):

    cardPile(cardId, templateId, noteId, noteVar, deckId,
             revHistory, timeHistory, ratingHistory)
    notes(noteId, flds)
    boxes(deckId, deckName)
    templateCollection(templateId, templateName, frontLayout, reverseLayout, fldNames)

revHistory / timeHistory / ratingHistory are index-aligned lists of elapsed
time, timestamp and rating per review.

save() writes a fresh file next to the target and renames it over the target
only after every row is committed. load() restores templates, then notes
(fields checked against their template), then decks (ancestors first, keeping
stored ids).

Ids are unsigned 64-bit; SQLite INTEGER is signed, so ids are stored as their
two's-complement signed value.
"""

from __future__ import annotations

import contextlib
import logging
import sqlite3
from pathlib import Path
from typing import TYPE_CHECKING, Any

from kasten.codec import decode, decode_uints, encode
from kasten.db import open_for_write, open_readonly
from kasten.errors import (
    DecodeError,
    IdentifierConflict,
    StorageOpenError,
    StorageSchemaError,
    StorageWriteError,
)
from kasten.kasten import Kasten
from kasten.models import DECK_SEPARATOR, Card, Note, ReviewEntry, Template
from kasten.notes import now_ms

if TYPE_CHECKING:
    from collections.abc import Callable

    from kasten.ids import IdentifierAllocator

logger = logging.getLogger("kasten.persistence")

_ID_SPAN = 1 << 64
_ID_SIGN = 1 << 63

_SCHEMA = """
    CREATE TABLE cardPile (
        cardId INTEGER,
        templateId INTEGER,
        noteId INTEGER,
        noteVar INTEGER,
        deckId INTEGER,
        revHistory TEXT,
        timeHistory TEXT,
        ratingHistory TEXT
    );

    CREATE TABLE notes (
        noteId INTEGER,
        flds TEXT
    );

    -- parents are derived from deckName ("Deck::Subdeck")
    CREATE TABLE boxes (
        deckId INTEGER,
        deckName TEXT
    );

    CREATE TABLE templateCollection (
        templateId INTEGER,
        templateName TEXT,
        frontLayout TEXT,
        reverseLayout TEXT,
        fldNames TEXT
    );
"""


def _id_to_sql(value: int) -> int:
    return value - _ID_SPAN if value >= _ID_SIGN else value


def _id_from_sql(value: Any) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        msg = f"expected integer id, got {value!r}"
        raise DecodeError(msg)
    return value + _ID_SPAN if value < 0 else value


# ---------------------------------------------------------------------------
# Save
# ---------------------------------------------------------------------------


def _card_rows(kasten: Kasten) -> list[tuple[Any, ...]]:
    return [
        (
            _id_to_sql(c.id),
            _id_to_sql(c.template_id),
            _id_to_sql(c.note_id),
            c.slot,
            _id_to_sql(c.deck_id),
            encode(h.elapsed for h in c.history),
            encode(h.timestamp for h in c.history),
            encode(h.rating for h in c.history),
        )
        for c in kasten.notes.cards()
    ]


def _write_rows(conn: sqlite3.Connection, kasten: Kasten) -> None:
    try:
        conn.executescript(_SCHEMA)
    except sqlite3.Error as exc:
        msg = f"failed to create tables: {exc}"
        raise StorageSchemaError(msg) from exc

    try:
        conn.executemany(
            "INSERT INTO cardPile (cardId, templateId, noteId, noteVar, deckId,"
            " revHistory, timeHistory, ratingHistory) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            _card_rows(kasten),
        )
        conn.executemany(
            "INSERT INTO notes (noteId, flds) VALUES (?, ?)",
            [(_id_to_sql(n.id), encode(n.fields)) for n in kasten.notes.notes()],
        )
        conn.executemany(
            "INSERT INTO boxes (deckId, deckName) VALUES (?, ?)",
            [(_id_to_sql(d.id), d.name) for d in kasten.decks],
        )
        conn.executemany(
            "INSERT INTO templateCollection (templateId, templateName, frontLayout,"
            " reverseLayout, fldNames) VALUES (?, ?, ?, ?, ?)",
            [
                (
                    _id_to_sql(t.id),
                    t.name,
                    encode(t.front_layouts),
                    encode(t.back_layouts),
                    encode(t.field_names),
                )
                for t in kasten.templates
            ],
        )
        conn.commit()
    except (sqlite3.Error, OverflowError) as exc:
        msg = f"failed to write rows: {exc}"
        raise StorageWriteError(msg) from exc


def save(kasten: Kasten, path: Path | str) -> Path:
    """Write the full store to *path*, replacing it atomically.

    On failure the target is left as it was and no temp file remains.
    """
    target = Path(path)
    tmp = target.with_name(target.name + ".tmp")
    committed = False
    try:
        try:
            tmp.unlink(missing_ok=True)
        except OSError as exc:
            msg = f"cannot clear stale {tmp}: {exc}"
            raise StorageOpenError(msg) from exc
        with contextlib.closing(open_for_write(tmp)) as conn:
            _write_rows(conn, kasten)
        try:
            tmp.replace(target)
        except OSError as exc:
            msg = f"failed to move {tmp} to {target}: {exc}"
            raise StorageWriteError(msg) from exc
        committed = True
    finally:
        if not committed:
            with contextlib.suppress(OSError):
                tmp.unlink(missing_ok=True)

    logger.info(
        "saved %s: %d cards, %d notes, %d decks, %d templates",
        target, kasten.notes.card_count, kasten.notes.note_count,
        len(kasten.decks), len(kasten.templates),
    )
    return target


# ---------------------------------------------------------------------------
# Load
# ---------------------------------------------------------------------------


def _select(conn: sqlite3.Connection, sql: str) -> list[tuple[Any, ...]]:
    try:
        return conn.execute(sql).fetchall()
    except sqlite3.OperationalError as exc:
        if "no such table" in str(exc) or "no such column" in str(exc):
            raise StorageSchemaError(str(exc)) from exc
        raise StorageOpenError(str(exc)) from exc
    except sqlite3.DatabaseError as exc:
        raise StorageOpenError(str(exc)) from exc


def _history(row_id: int, elapsed: str, stamps: str, ratings: str) -> list[ReviewEntry]:
    e = decode(elapsed, int)
    t = decode_uints(stamps)
    r = decode_uints(ratings)
    if not len(e) == len(t) == len(r):
        msg = f"card {row_id}: history lists differ in length ({len(e)}, {len(t)}, {len(r)})"
        raise DecodeError(msg)
    return [ReviewEntry(elapsed=a, rating=c, timestamp=b) for a, b, c in zip(e, t, r, strict=True)]


def _read_cards(conn: sqlite3.Connection) -> list[Card]:
    cards: list[Card] = []
    rows = _select(
        conn,
        "SELECT cardId, templateId, noteId, noteVar, deckId,"
        " revHistory, timeHistory, ratingHistory FROM cardPile",
    )
    for card_id, template_id, note_id, slot, deck_id, elapsed, stamps, ratings in rows:
        cid = _id_from_sql(card_id)
        if not isinstance(slot, int) or slot < 0:
            msg = f"card {cid}: bad layout slot {slot!r}"
            raise DecodeError(msg)
        cards.append(Card(
            id=cid,
            note_id=_id_from_sql(note_id),
            deck_id=_id_from_sql(deck_id),
            template_id=_id_from_sql(template_id),
            slot=slot,
            history=_history(cid, elapsed, stamps, ratings),
        ))
    return cards


def load(
    path: Path | str,
    allocator: IdentifierAllocator | None = None,
    clock: Callable[[], int] = now_ms,
) -> Kasten:
    """Rebuild a Kasten from a file written by save()."""
    kasten = Kasten(allocator, clock=clock)
    with contextlib.closing(open_readonly(Path(path))) as conn:
        cards = _read_cards(conn)
        note_rows = _select(conn, "SELECT noteId, flds FROM notes")
        deck_rows = _select(conn, "SELECT deckId, deckName FROM boxes")
        template_rows = _select(
            conn,
            "SELECT templateId, templateName, frontLayout, reverseLayout, fldNames"
            " FROM templateCollection",
        )

    try:
        _restore(kasten, cards, note_rows, deck_rows, template_rows)
    except IdentifierConflict as exc:
        raise DecodeError(str(exc)) from exc

    logger.info(
        "loaded %s: %d cards, %d notes, %d decks, %d templates",
        path, kasten.notes.card_count, kasten.notes.note_count,
        len(kasten.decks), len(kasten.templates),
    )
    return kasten


def _text(kind: str, row_id: int, value: Any) -> str:
    if not isinstance(value, str):
        msg = f"{kind} {row_id}: expected text name, got {value!r}"
        raise DecodeError(msg)
    return value


def _note_fields(kasten: Kasten, nid: int, flds: Any, cards: list[Card]) -> list[str]:
    """Decode a note's fields and check them against its template.

    A single empty field encodes to the empty string, which decodes to no
    fields at all; the template's field count tells the two apart.
    """
    fields = decode(flds)
    template = next(
        (kasten.templates.get(c.template_id) for c in cards if c.template_id in kasten.templates),
        None,
    )
    if template is None:
        return fields
    expected = len(template.field_names)
    if not fields and expected == 1:
        return [""]
    if len(fields) != expected:
        msg = f"note {nid}: template {template.id} expects {expected} field(s), found {len(fields)}"
        raise DecodeError(msg)
    return fields


def _restore(
    kasten: Kasten,
    cards: list[Card],
    note_rows: list[tuple[Any, ...]],
    deck_rows: list[tuple[Any, ...]],
    template_rows: list[tuple[Any, ...]],
) -> None:
    # Templates first: note fields are checked against them.
    for template_id, name, front, back, field_names in template_rows:
        tid = _id_from_sql(template_id)
        kasten.templates.restore(Template(
            id=tid,
            name=_text("template", tid, name),
            front_layouts=tuple(decode(front)),
            back_layouts=tuple(decode(back)),
            field_names=tuple(decode(field_names)),
        ))

    by_note: dict[int, list[Card]] = {}
    for card in cards:
        by_note.setdefault(card.note_id, []).append(card)

    for note_id, flds in note_rows:
        nid = _id_from_sql(note_id)
        note_cards = by_note.pop(nid, [])
        fields = _note_fields(kasten, nid, flds, note_cards)
        kasten.notes.restore(Note(id=nid, fields=fields, cards=note_cards))

    for nid, orphans in by_note.items():
        logger.warning("dropping %d card(s) of missing note %d", len(orphans), nid)

    # Ancestors first, so each keeps its stored id instead of being created
    # implicitly by a descendant.
    decks: list[tuple[int, str]] = []
    for deck_id, name in deck_rows:
        did = _id_from_sql(deck_id)
        decks.append((did, _text("deck", did, name)))
    decks.sort(key=lambda d: d[1].count(DECK_SEPARATOR))
    for deck_id, name in decks:
        kasten.decks.resolve(name, deck_id=deck_id)

    for card in kasten.notes.cards():
        if card.deck_id in kasten.decks:
            kasten.decks.attach_cards(card.deck_id, [card.id])
