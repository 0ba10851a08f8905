"""Recording of duels and their serialization to the replay file format."""

import lzma
import struct
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import IntFlag

from .constants import (
    MSG_ANNOUNCE_ATTRIB,
    MSG_ANNOUNCE_CARD,
    MSG_ANNOUNCE_NUMBER,
    MSG_ANNOUNCE_RACE,
    MSG_HINT,
    MSG_ROCK_PAPER_SCISSORS,
    MSG_SELECT_BATTLECMD,
    MSG_SELECT_CARD,
    MSG_SELECT_CHAIN,
    MSG_SELECT_COUNTER,
    MSG_SELECT_DISFIELD,
    MSG_SELECT_EFFECTYN,
    MSG_SELECT_IDLECMD,
    MSG_SELECT_OPTION,
    MSG_SELECT_PLACE,
    MSG_SELECT_POSITION,
    MSG_SELECT_SUM,
    MSG_SELECT_TRIBUTE,
    MSG_SELECT_UNSELECT_CARD,
    MSG_SELECT_YESNO,
    MSG_SORT_CARD,
    MSG_SORT_CHAIN,
)
from .protocol import SERVER_VERSION, HostInfo
from .strings import encode_utf16

REPLAY_YRP1 = 0x31707279
REPLAY_YRPX = 0x58707279


class ReplayFlag(IntFlag):
    """Flags stored in a replay header."""

    COMPRESSED = 0x1
    TAG = 0x2
    DECODED = 0x4
    SINGLE_MODE = 0x8
    LUA64 = 0x10
    NEWREPLAY = 0x20
    HAND_TEST = 0x40
    DIRECT_SEED = 0x80
    DUELFLAG_64BIT = 0x100
    EXTENDED_HEADER = 0x200


HEADER_FLAGS = (
    ReplayFlag.LUA64 | ReplayFlag.DUELFLAG_64BIT | ReplayFlag.NEWREPLAY | ReplayFlag.EXTENDED_HEADER
)
EXTENDED_HEADER_VERSION = 1
OLD_REPLAY_FORMAT = 231
"""Message type under which the older replay format is embedded."""

ENCODED_SERVER_VERSION = SERVER_VERSION.encoded()

# type, version, flags, timestamp, size, hash, props, ext. version, seed
EXTENDED_HEADER = struct.Struct("<6I8sQ4Q")

_NAME_BYTES = 40
_DICT_SIZE = 1 << 24
_LC, _LP, _PB = 3, 0, 2
LZMA_FILTERS = [
    {"id": lzma.FILTER_LZMA1, "preset": 5, "dict_size": _DICT_SIZE, "lc": _LC, "lp": _LP, "pb": _PB}
]
LZMA_PROPS = (
    bytes([(_PB * 5 + _LP) * 9 + _LC]) + struct.pack("<I", _DICT_SIZE)
).ljust(8, b"\0")

_UNRECORDED = frozenset({
    MSG_SELECT_BATTLECMD,
    MSG_SELECT_IDLECMD,
    MSG_SELECT_EFFECTYN,
    MSG_SELECT_YESNO,
    MSG_SELECT_OPTION,
    MSG_SELECT_CHAIN,
    MSG_SELECT_PLACE,
    MSG_SELECT_DISFIELD,
    MSG_SELECT_POSITION,
    MSG_SELECT_COUNTER,
    MSG_SELECT_SUM,
    MSG_SORT_CARD,
    MSG_SORT_CHAIN,
    MSG_ROCK_PAPER_SCISSORS,
    MSG_ANNOUNCE_RACE,
    MSG_ANNOUNCE_ATTRIB,
    MSG_ANNOUNCE_CARD,
    MSG_ANNOUNCE_NUMBER,
    MSG_SELECT_CARD,
    MSG_SELECT_TRIBUTE,
    MSG_SELECT_UNSELECT_CARD,
})
_PRIVATE_HINTS = frozenset({1, 2, 3, 5})


@dataclass(frozen=True)
class Duelist:
    """A duelist's name and the decks they started with."""

    name: str
    main: tuple[int, ...] = field(default_factory=tuple)
    extra: tuple[int, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "main", tuple(self.main))
        object.__setattr__(self, "extra", tuple(self.extra))


def _name_field(name: str) -> bytes:
    return (encode_utf16(name) + b"\0\0")[:_NAME_BYTES].ljust(_NAME_BYTES, b"\0")


def _code_vector(codes: Iterable[int]) -> bytes:
    codes = tuple(codes)
    return struct.pack(f"<I{len(codes)}I", len(codes), *codes)


class Replay:
    """Collects a duel's messages and responses and serializes them as a replay."""

    def __init__(
        self,
        unix_timestamp: int,
        seed: Iterable[int],
        host_info: HostInfo,
        extra_cards: Iterable[int],
    ) -> None:
        seed = tuple(seed)
        if len(seed) != 4:
            raise ValueError("the duel seed must hold exactly four words")
        self._timestamp = unix_timestamp & 0xFFFFFFFF
        self._seed = seed
        self._starting_lp = host_info.starting_lp
        self._starting_draw_count = host_info.starting_draw_count
        self._draw_count_per_turn = host_info.draw_count_per_turn
        self._duel_flags = host_info.duel_flags
        self._extra_cards = tuple(extra_cards)
        self._duelists: tuple[dict[int, Duelist], dict[int, Duelist]] = ({}, {})
        self._messages: list[bytes] = []
        self._responses: list[bytes] = []
        self._data = b""

    @property
    def data(self) -> bytes:
        """The bytes produced by the last call to serialize()."""
        return self._data

    def add_duelist(self, team: int, pos: int, duelist: Duelist) -> None:
        if team not in (0, 1):
            raise ValueError("team must be 0 or 1")
        self._duelists[team][pos] = duelist

    def record_msg(self, msg: bytes) -> None:
        """Record a core message, skipping prompts and duelist-private hints."""
        msg = bytes(msg)
        if not msg:
            raise ValueError("core message is empty")
        kind = msg[0]
        if kind == MSG_HINT and len(msg) > 1 and msg[1] in _PRIVATE_HINTS:
            return
        if kind in _UNRECORDED:
            return
        self._messages.append(msg)

    def record_response(self, response: bytes) -> None:
        self._responses.append(bytes(response))

    def pop_back_response(self) -> None:
        """Forget the last recorded response."""
        self._responses.pop()

    def _ordered_duelists(self) -> Iterable[tuple[int, list[Duelist]]]:
        for team in self._duelists:
            yield len(team), [team[pos] for pos in sorted(team)]

    def _duelists_block(self) -> bytes:
        parts = []
        for count, duelists in self._ordered_duelists():
            parts.append(struct.pack("<I", count))
            parts.extend(_name_field(d.name) for d in duelists)
        return b"".join(parts)

    def _yrp_message(self) -> bytes:
        parts = [
            self._duelists_block(),
            struct.pack(
                "<3IQ",
                self._starting_lp,
                self._starting_draw_count,
                self._draw_count_per_turn,
                self._duel_flags,
            ),
        ]
        for _, duelists in self._ordered_duelists():
            for d in duelists:
                parts.append(_code_vector(d.main))
                parts.append(_code_vector(d.extra))
        parts.append(_code_vector(self._extra_cards))
        parts.extend(bytes([len(r) & 0xFF]) + r for r in self._responses)
        body = b"".join(parts)
        header = EXTENDED_HEADER.pack(
            REPLAY_YRP1,
            ENCODED_SERVER_VERSION,
            HEADER_FLAGS,
            0,
            len(body),
            0,
            b"",
            EXTENDED_HEADER_VERSION,
            *self._seed,
        )
        return bytes([OLD_REPLAY_FORMAT]) + header + body

    def serialize(self) -> bytes:
        """Build the compressed replay file; the result is also kept in ``data``."""
        messages = [*self._messages, self._yrp_message()]
        payload = b"".join(
            [
                self._duelists_block(),
                struct.pack("<Q", self._duel_flags),
                *(struct.pack("<BI", m[0], len(m) - 1) + m[1:] for m in messages),
            ]
        )
        compressed = lzma.compress(payload, format=lzma.FORMAT_RAW, filters=LZMA_FILTERS)
        if len(compressed) > len(payload):
            # The compression output is bounded by the uncompressed size.
            compressed = b""
        header = EXTENDED_HEADER.pack(
            REPLAY_YRPX,
            ENCODED_SERVER_VERSION,
            HEADER_FLAGS | ReplayFlag.COMPRESSED,
            self._timestamp,
            len(payload),
            0,
            LZMA_PROPS,
            EXTENDED_HEADER_VERSION,
            0, 0, 0, 0,
        )
        self._data = header + compressed
        return self._data