"""Card queries: the structures the duel core reports and their wire encoding."""

import struct
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import ClassVar

from .constants import (
    POS_FACEUP,
    QUERY_ALIAS,
    QUERY_ATTACK,
    QUERY_ATTRIBUTE,
    QUERY_BASE_ATTACK,
    QUERY_BASE_DEFENSE,
    QUERY_CODE,
    QUERY_COUNTERS,
    QUERY_COVER,
    QUERY_DEFENSE,
    QUERY_END,
    QUERY_EQUIP_CARD,
    QUERY_IS_HIDDEN,
    QUERY_IS_PUBLIC,
    QUERY_LEVEL,
    QUERY_LINK,
    QUERY_LSCALE,
    QUERY_OVERLAY_CARD,
    QUERY_OWNER,
    QUERY_POSITION,
    QUERY_RACE,
    QUERY_RANK,
    QUERY_REASON,
    QUERY_REASON_CARD,
    QUERY_RSCALE,
    QUERY_STATUS,
    QUERY_TARGET_CARD,
    QUERY_TYPE,
)

_LOC_INFO = struct.Struct("<BBII")
_ENTRY_HEADER = struct.Struct("<HI")
_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")


@dataclass(frozen=True)
class LocInfo:
    """Where a card is: controller, location, sequence and position."""

    con: int = 0
    loc: int = 0
    seq: int = 0
    pos: int = 0

    SIZE: ClassVar[int] = _LOC_INFO.size

    def pack(self) -> bytes:
        return _LOC_INFO.pack(self.con, self.loc, self.seq, self.pos)

    @classmethod
    def unpack(cls, data: bytes, offset: int = 0) -> "LocInfo":
        if offset < 0 or offset + cls.SIZE > len(data):
            raise ValueError("buffer too small for a location")
        return cls(*_LOC_INFO.unpack_from(data, offset))


@dataclass
class Query:
    """Information about one card; ``flags`` tells which fields are present."""

    flags: int = 0
    code: int = 0
    pos: int = 0
    alias: int = 0
    type: int = 0
    level: int = 0
    rank: int = 0
    link: int = 0
    attribute: int = 0
    race: int = 0
    attack: int = 0
    defense: int = 0
    base_attack: int = 0
    base_defense: int = 0
    reason: int = 0
    owner: int = 0
    status: int = 0
    is_public: int = 0
    lscale: int = 0
    rscale: int = 0
    link_marker: int = 0
    reason_card: LocInfo = field(default_factory=LocInfo)
    equip_card: LocInfo = field(default_factory=LocInfo)
    is_hidden: int = 0
    cover: int = 0
    targets: list[LocInfo] = field(default_factory=list)
    overlays: list[int] = field(default_factory=list)
    counters: list[int] = field(default_factory=list)


_SCALARS: dict[int, tuple[str, struct.Struct]] = {
    QUERY_CODE: ("code", struct.Struct("<I")),
    QUERY_POSITION: ("pos", struct.Struct("<I")),
    QUERY_ALIAS: ("alias", struct.Struct("<I")),
    QUERY_TYPE: ("type", struct.Struct("<I")),
    QUERY_LEVEL: ("level", struct.Struct("<I")),
    QUERY_RANK: ("rank", struct.Struct("<I")),
    QUERY_ATTRIBUTE: ("attribute", struct.Struct("<I")),
    QUERY_RACE: ("race", struct.Struct("<Q")),
    QUERY_ATTACK: ("attack", struct.Struct("<i")),
    QUERY_DEFENSE: ("defense", struct.Struct("<i")),
    QUERY_BASE_ATTACK: ("base_attack", struct.Struct("<i")),
    QUERY_BASE_DEFENSE: ("base_defense", struct.Struct("<i")),
    QUERY_REASON: ("reason", struct.Struct("<I")),
    QUERY_OWNER: ("owner", struct.Struct("<B")),
    QUERY_STATUS: ("status", struct.Struct("<I")),
    QUERY_IS_PUBLIC: ("is_public", struct.Struct("<B")),
    QUERY_LSCALE: ("lscale", struct.Struct("<I")),
    QUERY_RSCALE: ("rscale", struct.Struct("<I")),
    QUERY_IS_HIDDEN: ("is_hidden", struct.Struct("<B")),
    QUERY_COVER: ("cover", struct.Struct("<I")),
}

_LOCATIONS: dict[int, str] = {
    QUERY_REASON_CARD: "reason_card",
    QUERY_EQUIP_CARD: "equip_card",
}

_CODE_LISTS: dict[int, str] = {
    QUERY_OVERLAY_CARD: "overlays",
    QUERY_COUNTERS: "counters",
}

_PRIVATE_FLAGS = frozenset({
    QUERY_CODE,
    QUERY_ALIAS,
    QUERY_TYPE,
    QUERY_LEVEL,
    QUERY_RANK,
    QUERY_ATTRIBUTE,
    QUERY_RACE,
    QUERY_ATTACK,
    QUERY_DEFENSE,
    QUERY_BASE_ATTACK,
    QUERY_BASE_DEFENSE,
    QUERY_STATUS,
    QUERY_LSCALE,
    QUERY_RSCALE,
    QUERY_LINK,
})

_ALL_FLAGS = tuple(1 << bit for bit in range(32))


class _Reader:
    """Sequential little-endian reader over a byte buffer."""

    def __init__(self, data: bytes) -> None:
        self.data = bytes(data)
        self.offset = 0

    def _ensure(self, size: int) -> None:
        if self.offset + size > len(self.data):
            raise ValueError("query buffer is truncated")

    def read(self, fmt: struct.Struct) -> int:
        self._ensure(fmt.size)
        (value,) = fmt.unpack_from(self.data, self.offset)
        self.offset += fmt.size
        return value

    def loc_info(self) -> LocInfo:
        info = LocInfo.unpack(self.data, self.offset)
        self.offset += LocInfo.SIZE
        return info

    def skip(self, size: int) -> None:
        self._ensure(size)
        self.offset += size


def _read_one(reader: _Reader) -> Query | None:
    if reader.read(_U16) == 0:
        return None
    reader.offset -= _U16.size
    query = Query()
    while True:
        size = reader.read(_U16)
        flag = reader.read(_U32)
        query.flags |= flag
        if flag in _SCALARS:
            name, fmt = _SCALARS[flag]
            setattr(query, name, reader.read(fmt))
        elif flag in _LOCATIONS:
            setattr(query, _LOCATIONS[flag], reader.loc_info())
        elif flag == QUERY_TARGET_CARD:
            count = reader.read(_U32)
            query.targets = [reader.loc_info() for _ in range(count)]
        elif flag in _CODE_LISTS:
            count = reader.read(_U32)
            setattr(query, _CODE_LISTS[flag], [reader.read(_U32) for _ in range(count)])
        elif flag == QUERY_LINK:
            query.link = reader.read(_U32)
            query.link_marker = reader.read(_U32)
        elif flag == QUERY_END:
            return query
        else:
            if size < _U32.size:
                raise ValueError(f"invalid size {size} for query entry {flag:#x}")
            reader.skip(size - _U32.size)


def deserialize_single_query(buffer: bytes) -> Query | None:
    """Decode the query of one card; None if the buffer holds no card."""
    return _read_one(_Reader(buffer))


def deserialize_location_query(buffer: bytes) -> list[Query | None]:
    """Decode the queries of every slot of a location."""
    reader = _Reader(buffer)
    total = reader.read(_U32)
    end = reader.offset + total
    if end > len(reader.data):
        raise ValueError("query buffer is truncated")
    queries = []
    while reader.offset < end:
        queries.append(_read_one(reader))
    return queries


def _is_flag_public(query: Query, flag: int) -> bool:
    if (query.flags & QUERY_IS_PUBLIC) and query.is_public:
        return True
    if (query.flags & QUERY_POSITION) and (query.pos & POS_FACEUP):
        return True
    return flag not in _PRIVATE_FLAGS


def _encode_field(query: Query, flag: int) -> bytes:
    if flag in _SCALARS:
        name, fmt = _SCALARS[flag]
        return fmt.pack(getattr(query, name))
    if flag in _LOCATIONS:
        return getattr(query, _LOCATIONS[flag]).pack()
    if flag == QUERY_TARGET_CARD:
        return _U32.pack(len(query.targets)) + b"".join(t.pack() for t in query.targets)
    if flag in _CODE_LISTS:
        codes = getattr(query, _CODE_LISTS[flag])
        return _U32.pack(len(codes)) + b"".join(_U32.pack(c) for c in codes)
    if flag == QUERY_LINK:
        return _U32.pack(query.link) + _U32.pack(query.link_marker)
    return b""


def _included_flags(query: Query, is_public: bool) -> Iterable[int]:
    hidden = bool(query.flags & QUERY_IS_HIDDEN) and bool(query.is_hidden)
    for flag in _ALL_FLAGS:
        if query.flags & flag != flag:
            continue
        if flag == QUERY_REASON_CARD and query.reason_card.loc == 0:
            continue
        if flag == QUERY_EQUIP_CARD and query.equip_card.loc == 0:
            continue
        if (hidden or is_public) and not _is_flag_public(query, flag):
            continue
        yield flag


def serialize_single_query(query: Query | None, is_public: bool) -> bytes:
    """Encode one card's query, leaving out what the viewer must not know.

    Hidden cards lose their private fields; ``is_public`` strips them as well.
    """
    if query is None:
        return _U16.pack(0)
    parts = []
    for flag in _included_flags(query, is_public):
        body = _encode_field(query, flag)
        parts.append(_ENTRY_HEADER.pack(len(body) + _U32.size, flag))
        parts.append(body)
    return b"".join(parts)


def serialize_location_query(queries: Iterable[Query | None], is_public: bool) -> bytes:
    """Encode the queries of a location, prefixed by their total byte size."""
    body = b"".join(serialize_single_query(q, is_public) for q in queries)
    return _U32.pack(len(body)) + body