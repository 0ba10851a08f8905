import sqlite3

import pytest

from multirole.cardsdb import CardData, CardDatabase, CardExtraData
from multirole.constants import TYPE_LINK, TYPE_MONSTER

SETCODE_PARTS = (0x1111, 0x2222, 0x3333, 0x4444)
SETCODE = SETCODE_PARTS[0] | (SETCODE_PARTS[1] << 16) | (SETCODE_PARTS[2] << 32) | (SETCODE_PARTS[3] << 48)
LEVEL, LSCALE, RSCALE = 4, 5, 3
DB_LEVEL = (LSCALE << 24) | (RSCALE << 16) | LEVEL


def _make_source(path, rows):
    CardDatabase(path).close()
    conn = sqlite3.connect(str(path))
    for row in rows:
        conn.execute("INSERT OR REPLACE INTO datas VALUES (?,?,?,?,?,?,?,?,?,?,?)", row)
        conn.execute("INSERT OR REPLACE INTO texts (id, name) VALUES (?, ?)", (row[0], "card"))
    conn.commit()
    conn.close()
    return path


@pytest.fixture
def source(tmp_path):
    rows = [
        (100, 3, 0, SETCODE, TYPE_MONSTER, 1800, 1200, DB_LEVEL, 0x10, 0x20, 7),
        (200, 1, 0, 0, TYPE_MONSTER | TYPE_LINK, 2300, 0x28, 2, 0x4, 0x8, 0),
        (300, 1, 0, 0, TYPE_MONSTER, -2, -2, 1, 0x1, 0x1, 0),
    ]
    return _make_source(tmp_path / "cards.cdb", rows)


@pytest.fixture
def db(source):
    database = CardDatabase()
    assert database.merge(source)
    yield database
    database.close()


def test_normal_card_fields(db):
    data = db.data_from_code(100)
    assert data.code == 100
    assert data.alias == 0
    assert data.setcodes == SETCODE_PARTS
    assert data.type == TYPE_MONSTER
    assert data.attack == 1800
    assert data.defense == 1200
    assert data.level == LEVEL
    assert data.lscale == LSCALE
    assert data.rscale == RSCALE
    assert data.race == 0x10
    assert data.attribute == 0x20
    assert data.link_marker == 0


def test_link_card_moves_defense_to_markers(db):
    data = db.data_from_code(200)
    assert data.link_marker == 0x28
    assert data.defense == 0


def test_negative_stats_kept(db):
    data = db.data_from_code(300)
    assert data.attack == -2
    assert data.defense == -2


def test_missing_card_is_empty(db):
    data = db.data_from_code(999)
    assert data == CardData()
    assert data.setcodes == ()


def test_extra_data(db):
    assert db.extra_from_code(100) == CardExtraData(scope=3, category=7)
    assert db.extra_from_code(999) == CardExtraData()


def test_lookups_are_cached(db, tmp_path):
    first = db.data_from_code(100)
    db.data_usage_done(first)
    assert db.data_from_code(100) is first
    updated = _make_source(
        tmp_path / "update.cdb",
        [(100, 3, 0, SETCODE, TYPE_MONSTER, 500, 1200, DB_LEVEL, 0x10, 0x20, 7)],
    )
    assert db.merge(updated)
    assert db.data_from_code(100).attack == first.attack


def test_later_merge_replaces_rows(source, tmp_path):
    updated = _make_source(
        tmp_path / "update.cdb",
        [(100, 3, 0, SETCODE, TYPE_MONSTER, 500, 1200, DB_LEVEL, 0x10, 0x20, 7)],
    )
    with CardDatabase() as database:
        assert database.merge(source)
        assert database.merge(updated)
        assert database.data_from_code(100).attack == 500
        assert database.data_from_code(200).link_marker == 0x28


def test_merge_unopenable_path_fails(tmp_path):
    with CardDatabase() as database:
        assert database.merge(tmp_path / "missing" / "cards.cdb") is False


def test_reopening_disk_database(source):
    with CardDatabase(source) as database:
        assert database.data_from_code(100).attack == 1800


def test_closed_database_raises():
    database = CardDatabase()
    database.close()
    with pytest.raises(sqlite3.ProgrammingError):
        database.data_from_code(1)