from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

import pytest

from kasten import persistence
from kasten.errors import DecodeError, StorageOpenError, StorageSchemaError, StorageWriteError
from kasten.kasten import Kasten
from kasten.models import ReviewEntry
from kasten.persistence import load, save


def _deck_shape(k: Kasten) -> dict[str, tuple[int, list[int], set[int]]]:
    return {d.name: (d.id, d.card_ids, d.parents) for d in k.decks}


def _write_raw(path: Path, cards=(), notes=(), boxes=(), templates=()) -> None:
    """Write a store file by hand, bypassing save()."""
    with sqlite3.connect(path) as conn:
        conn.executescript(persistence._SCHEMA)
        conn.executemany("INSERT INTO cardPile VALUES (?, ?, ?, ?, ?, ?, ?, ?)", cards)
        conn.executemany("INSERT INTO notes VALUES (?, ?)", notes)
        conn.executemany("INSERT INTO boxes VALUES (?, ?)", boxes)
        conn.executemany("INSERT INTO templateCollection VALUES (?, ?, ?, ?, ?)", templates)
    conn.close()


# ---------------------------------------------------------------------------
# Round trip
# ---------------------------------------------------------------------------


def test_round_trip_restores_everything(tmp_path: Path, kasten: Kasten, spanish: dict[str, int]) -> None:
    path = save(kasten, tmp_path / "kasten.db")
    loaded = load(path)

    assert loaded.template(spanish["template"]) == kasten.template(spanish["template"])
    assert loaded.note(spanish["note"]) == kasten.note(spanish["note"])
    assert loaded.note(spanish["note"]).fields == ["Hola", "Hello"]

    card = loaded.card(spanish["card"])
    assert (card.note_id, card.deck_id, card.template_id, card.slot) == (
        spanish["note"], spanish["deck"], spanish["template"], 0,
    )
    assert loaded.render(spanish["card"], "f") == "Hola"

    assert _deck_shape(loaded) == _deck_shape(kasten)
    lang = loaded.find_deck("Lang")
    assert lang is not None
    assert loaded.deck(spanish["deck"]).parents == {lang}
    assert loaded.deck(spanish["deck"]).card_ids == [spanish["card"]]


def test_round_trip_keeps_review_history(tmp_path: Path, kasten: Kasten, spanish: dict[str, int], clock) -> None:
    kasten.record_review(spanish["card"], 3)
    clock.advance(1_000)
    kasten.record_review(spanish["card"], 4)
    clock.advance(2_000)
    kasten.record_review(spanish["card"], 5)

    loaded = load(save(kasten, tmp_path / "kasten.db"))

    assert loaded.card(spanish["card"]).history == kasten.card(spanish["card"]).history


def test_round_trip_of_many_notes_and_nested_decks(tmp_path: Path, kasten: Kasten) -> None:
    template_id = kasten.register_template(
        "Both", ["{{F}}", "{{B}}"], ["{{B}}", "{{F}}"], ["F", "B"],
    )
    for i, deck in enumerate(["A::B::C", "A::D", "E", "A::B::C"]):
        kasten.create_note(template_id, [f"f{i}", f"b{i}"], kasten.resolve_deck(deck))

    loaded = load(save(kasten, tmp_path / "kasten.db"))

    assert _deck_shape(loaded) == _deck_shape(kasten)
    assert {n.id: n for n in loaded.notes.notes()} == {n.id: n for n in kasten.notes.notes()}
    assert sorted(loaded.notes.card_ids) == sorted(kasten.notes.card_ids)


def test_ids_above_signed_range_survive(tmp_path: Path, rigged_allocator) -> None:
    # template, deck, note, card: one draw each
    k = Kasten(allocator=rigged_allocator([2**64 - 1, 2**64 - 1, 2**63, 2**63]))
    template_id = k.register_template("T", ["{{F}}"], ["{{F}}"], ["F"])
    deck_id = k.resolve_deck("D")
    note_id = k.create_note(template_id, ["v"], deck_id)

    loaded = load(save(k, tmp_path / "kasten.db"))

    assert loaded.template(template_id).id == 2**64 - 1
    assert loaded.note(note_id).cards[0].id == 2**63
    assert loaded.deck(deck_id).card_ids == [2**63]


def test_loaded_store_keeps_working(tmp_path: Path, kasten: Kasten, spanish: dict[str, int]) -> None:
    loaded = load(save(kasten, tmp_path / "kasten.db"))

    note_id = loaded.create_note(spanish["template"], ["Gracias", "Thanks"], spanish["deck"])
    loaded.record_review(spanish["card"], 2)

    assert note_id != spanish["note"]
    assert len(loaded.deck(spanish["deck"]).card_ids) == 2
    assert len(loaded.card(spanish["card"]).history) == 1


# ---------------------------------------------------------------------------
# File layout
# ---------------------------------------------------------------------------


def test_table_layout(tmp_path: Path, kasten: Kasten, spanish: dict[str, int]) -> None:
    path = save(kasten, tmp_path / "kasten.db")
    with sqlite3.connect(path) as conn:
        columns = {
            table: [row[1] for row in conn.execute(f"PRAGMA table_info({table})")]
            for table in ("cardPile", "notes", "boxes", "templateCollection")
        }
        flds = conn.execute("SELECT flds FROM notes").fetchone()[0]
        names = sorted(r[0] for r in conn.execute("SELECT deckName FROM boxes"))
    conn.close()

    assert columns == {
        "cardPile": [
            "cardId", "templateId", "noteId", "noteVar", "deckId",
            "revHistory", "timeHistory", "ratingHistory",
        ],
        "notes": ["noteId", "flds"],
        "boxes": ["deckId", "deckName"],
        "templateCollection": ["templateId", "templateName", "frontLayout", "reverseLayout", "fldNames"],
    }
    assert flds == "Hola\x1fHello"
    assert names == ["Lang", "Lang::Spanish"]


def test_save_replaces_existing_file_and_leaves_no_temp(tmp_path: Path, kasten: Kasten, spanish: dict[str, int]) -> None:
    path = tmp_path / "kasten.db"
    save(Kasten(), path)
    save(kasten, path)

    assert load(path).notes.note_count == 1
    assert not (tmp_path / "kasten.db.tmp").exists()


def test_save_creates_parent_directories(tmp_path: Path, kasten: Kasten) -> None:
    path = save(kasten, tmp_path / "a" / "b" / "kasten.db")
    assert path.is_file()


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


def test_failed_row_write_leaves_target_untouched(
    tmp_path: Path, kasten: Kasten, spanish: dict[str, int], monkeypatch: pytest.MonkeyPatch,
) -> None:
    path = tmp_path / "kasten.db"
    save(Kasten(), path)
    before = path.read_bytes()

    def bad_rows(_kasten: Kasten) -> list[tuple[int, ...]]:
        return [(2**70, 0, 0, 0, 0, "", "", "")]

    monkeypatch.setattr(persistence, "_card_rows", bad_rows)
    with pytest.raises(StorageWriteError):
        save(kasten, path)

    assert path.read_bytes() == before
    assert not (tmp_path / "kasten.db.tmp").exists()


def test_failed_rename_removes_temp_file(tmp_path: Path, kasten: Kasten) -> None:
    target = tmp_path / "taken"
    target.mkdir()
    (target / "keep").write_text("x")

    with pytest.raises(StorageWriteError):
        save(kasten, target)

    assert (target / "keep").read_text() == "x"
    assert not (tmp_path / "taken.tmp").exists()


def test_load_missing_file(tmp_path: Path) -> None:
    with pytest.raises(StorageOpenError):
        load(tmp_path / "nope.db")


def test_load_non_database_file(tmp_path: Path) -> None:
    path = tmp_path / "junk.db"
    path.write_bytes(b"this is not sqlite at all, just some text" * 10)
    with pytest.raises(StorageOpenError):
        load(path)


def test_load_missing_table(tmp_path: Path) -> None:
    path = tmp_path / "partial.db"
    with sqlite3.connect(path) as conn:
        conn.execute("CREATE TABLE notes (noteId INTEGER, flds TEXT)")
    conn.close()
    with pytest.raises(StorageSchemaError, match="cardPile"):
        load(path)


def test_load_malformed_history(tmp_path: Path) -> None:
    path = tmp_path / "bad.db"
    _write_raw(
        path,
        cards=[(1, 2, 3, 0, 4, "0\x1fsoon", "0\x1f10", "3\x1f4")],
        notes=[(3, "a")],
    )
    with pytest.raises(DecodeError, match="soon"):
        load(path)


def test_load_unaligned_history(tmp_path: Path) -> None:
    path = tmp_path / "bad.db"
    _write_raw(path, cards=[(1, 2, 3, 0, 4, "0\x1f5", "0", "3\x1f4")], notes=[(3, "a")])
    with pytest.raises(DecodeError, match="differ in length"):
        load(path)


def test_load_duplicate_deck_ids(tmp_path: Path) -> None:
    path = tmp_path / "bad.db"
    _write_raw(path, boxes=[(1, "A"), (1, "B")])
    with pytest.raises(DecodeError):
        load(path)


# ---------------------------------------------------------------------------
# Load ordering
# ---------------------------------------------------------------------------


def test_load_restores_ancestors_with_stored_ids(tmp_path: Path) -> None:
    path = tmp_path / "kasten.db"
    # Child row first: the parent must still come back with its own id.
    _write_raw(path, boxes=[(2, "Lang::Spanish"), (1, "Lang")])

    loaded = load(path)

    assert loaded.find_deck("Lang") == 1
    assert loaded.find_deck("Lang::Spanish") == 2
    assert loaded.deck(2).parents == {1}


def test_load_creates_ancestors_missing_from_file(tmp_path: Path) -> None:
    path = tmp_path / "kasten.db"
    _write_raw(path, boxes=[(2, "Lang::Spanish")])

    loaded = load(path)

    lang = loaded.find_deck("Lang")
    assert lang is not None
    assert loaded.deck(2).parents == {lang}


def test_load_drops_cards_of_missing_notes(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    path = tmp_path / "kasten.db"
    _write_raw(
        path,
        cards=[(10, 1, 100, 0, 7, "", "", ""), (11, 1, 200, 0, 7, "", "", "")],
        notes=[(100, "a")],
        boxes=[(7, "D")],
        templates=[(1, "T", "{{F}}", "{{F}}", "F")],
    )

    with caplog.at_level(logging.WARNING, logger="kasten.persistence"):
        loaded = load(path)

    assert loaded.notes.card_ids == [10]
    assert loaded.deck(7).card_ids == [10]
    assert "missing note 200" in caplog.text


def test_load_reads_history_columns_in_order(tmp_path: Path) -> None:
    path = tmp_path / "kasten.db"
    _write_raw(
        path,
        cards=[(10, 1, 100, 0, 7, "0\x1f500", "0\x1f1500", "3\x1f1")],
        notes=[(100, "a")],
        templates=[(1, "T", "{{F}}", "{{F}}", "F")],
    )

    history = load(path).card(10).history

    assert history == [
        ReviewEntry(elapsed=0, rating=3, timestamp=0),
        ReviewEntry(elapsed=500, rating=1, timestamp=1500),
    ]


# ---------------------------------------------------------------------------
# Field alignment and text columns
# ---------------------------------------------------------------------------


def test_single_empty_field_survives_round_trip(tmp_path: Path, kasten: Kasten) -> None:
    template_id = kasten.register_template("Cloze", ["[{{F}}]"], ["{{F}}"], ["F"])
    deck_id = kasten.resolve_deck("D")
    note_id = kasten.create_note(template_id, [""], deck_id)
    card_id = kasten.note(note_id).cards[0].id

    loaded = load(save(kasten, tmp_path / "kasten.db"))

    assert loaded.note(note_id).fields == [""]
    assert loaded.render(card_id, "f") == "[]"
    assert loaded.render(card_id, "r") == ""


def test_note_with_wrong_field_count_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "bad.db"
    _write_raw(
        path,
        cards=[(10, 1, 100, 0, 7, "", "", "")],
        notes=[(100, "a\x1fb\x1fc")],
        templates=[(1, "T", "{{F}}", "{{B}}", "F\x1fB")],
    )
    with pytest.raises(DecodeError, match="expects 2 field"):
        load(path)


def test_null_deck_name_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "bad.db"
    _write_raw(path, boxes=[(1, None)])
    with pytest.raises(DecodeError, match="deck 1"):
        load(path)


def test_null_template_name_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "bad.db"
    _write_raw(path, templates=[(1, None, "{{F}}", "{{F}}", "F")])
    with pytest.raises(DecodeError, match="template 1"):
        load(path)


def test_non_text_list_column_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "bad.db"
    # A BLOB keeps its type despite the column's TEXT affinity.
    _write_raw(path, templates=[(1, "T", "{{F}}", "{{F}}", b"F")])
    with pytest.raises(DecodeError, match="expected text"):
        load(path)
