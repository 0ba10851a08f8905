"""Card database backed by SQLite, amalgamating several card files."""

import sqlite3
import threading
from dataclasses import dataclass

from .constants import TYPE_LINK

_DB_SCHEMAS = """
CREATE TABLE "datas" (
    "id"        INTEGER,
    "ot"        INTEGER,
    "alias"     INTEGER,
    "setcode"   INTEGER,
    "type"      INTEGER,
    "atk"       INTEGER,
    "def"       INTEGER,
    "level"     INTEGER,
    "race"      INTEGER,
    "attribute" INTEGER,
    "category"  INTEGER,
    PRIMARY KEY("id")
);
CREATE TABLE "texts" (
    "id"    INTEGER,
    "name"  TEXT,
    "desc"  TEXT,
    "str1"  TEXT,
    "str2"  TEXT,
    "str3"  TEXT,
    "str4"  TEXT,
    "str5"  TEXT,
    "str6"  TEXT,
    "str7"  TEXT,
    "str8"  TEXT,
    "str9"  TEXT,
    "str10" TEXT,
    "str11" TEXT,
    "str12" TEXT,
    "str13" TEXT,
    "str14" TEXT,
    "str15" TEXT,
    "str16" TEXT,
    PRIMARY KEY("id")
);
"""

_ATTACH_STMT = "ATTACH ? AS toMerge"
_MERGE_STMTS = (
    "INSERT OR REPLACE INTO datas SELECT * FROM toMerge.datas",
    "INSERT OR REPLACE INTO texts SELECT * FROM toMerge.texts",
    "DETACH toMerge",
)
_SEARCH_STMT = (
    "SELECT id,alias,setcode,type,atk,def,level,race,attribute "
    "FROM datas WHERE datas.id = ?"
)
_SEARCH2_STMT = "SELECT ot,category FROM datas WHERE datas.id = ?"

_SETCODES = 4


def _int(value) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return 0


def _u32(value: int) -> int:
    return value & 0xFFFFFFFF


def _i32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def _u64(value: int) -> int:
    return value & 0xFFFFFFFFFFFFFFFF


@dataclass(frozen=True)
class CardData:
    """Card attributes handed to the duel core.

    ``setcodes`` is empty when the card was not found.
    """

    code: int = 0
    alias: int = 0
    setcodes: tuple[int, ...] = ()
    type: int = 0
    level: int = 0
    attribute: int = 0
    race: int = 0
    attack: int = 0
    defense: int = 0
    lscale: int = 0
    rscale: int = 0
    link_marker: int = 0


@dataclass(frozen=True)
class CardExtraData:
    """Card data the server itself needs: legality scope and category."""

    scope: int = 0
    category: int = 0


def _card_data_from_row(row) -> CardData:
    code, alias, setcode, ctype, atk, defense, level, race, attribute = (_int(v) for v in row)
    ctype = _u32(ctype)
    defense = _i32(defense)
    is_link = (ctype & TYPE_LINK) != 0
    setcode = _u64(setcode)
    db_level = _i32(level)
    return CardData(
        code=_u32(code),
        alias=_u32(alias),
        setcodes=tuple((setcode >> (i * 16)) & 0xFFFF for i in range(_SETCODES)),
        type=ctype,
        level=_u32(db_level) & 0x800000FF,
        attribute=_u32(attribute),
        race=_u64(race),
        attack=_i32(atk),
        defense=0 if is_link else defense,
        lscale=(db_level >> 24) & 0xFF,
        rscale=(db_level >> 16) & 0xFF,
        link_marker=_u32(defense) if is_link else 0,
    )


class CardDatabase:
    """A card database, in memory by default, into which card files are merged.

    Lookups are cached per code, misses included.
    """

    def __init__(self, path=":memory:") -> None:
        self._db = sqlite3.connect(str(path), isolation_level=None, check_same_thread=False)
        try:
            self._db.executescript(_DB_SCHEMAS)
        except sqlite3.OperationalError:
            pass  # An existing database already has its tables.
        self._db_lock = threading.Lock()
        self._data_cache: dict[int, CardData] = {}
        self._data_lock = threading.Lock()
        self._extra_cache: dict[int, CardExtraData] = {}
        self._extra_lock = threading.Lock()

    def merge(self, path) -> bool:
        """Copy every card of the database at ``path`` into this one.

        Returns False if the file could not be attached.
        """
        with self._db_lock:
            try:
                self._db.execute(_ATTACH_STMT, (str(path),))
            except sqlite3.Error:
                return False
            for stmt in _MERGE_STMTS:
                try:
                    self._db.execute(stmt)
                except sqlite3.Error:
                    pass
        return True

    def data_from_code(self, code: int) -> CardData:
        with self._data_lock:
            cached = self._data_cache.get(code)
            if cached is not None:
                return cached
            with self._db_lock:
                row = self._db.execute(_SEARCH_STMT, (_i32(code),)).fetchone()
            data = _card_data_from_row(row) if row is not None else CardData()
            self._data_cache[code] = data
            return data

    def data_usage_done(self, data: CardData) -> None:
        """Called when the core is done with ``data``; entries stay cached.

        Raises TypeError if ``data`` is not card data.
        """
        if not isinstance(data, CardData):
            raise TypeError(f"expected CardData, got {type(data).__name__}")

    def extra_from_code(self, code: int) -> CardExtraData:
        with self._extra_lock:
            cached = self._extra_cache.get(code)
            if cached is not None:
                return cached
            with self._db_lock:
                row = self._db.execute(_SEARCH2_STMT, (_i32(code),)).fetchone()
            if row is not None:
                extra = CardExtraData(scope=_u32(_int(row[0])), category=_u32(_int(row[1])))
            else:
                extra = CardExtraData()
            self._extra_cache[code] = extra
            return extra

    def close(self) -> None:
        with self._db_lock:
            self._db.close()

    def __enter__(self) -> "CardDatabase":
        return self

    def __exit__(self, *exc) -> None:
        self.close()