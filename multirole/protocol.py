"""Wire structures exchanged between clients and the server."""

import struct
from dataclasses import dataclass, field
from enum import IntEnum, IntFlag
from typing import ClassVar

from .strings import buffer_to_utf16, encode_utf16

_NAME_UNITS = 20
_NAME_BYTES = _NAME_UNITS * 2
_NOTES_BYTES = 200


def _pack_utf16(text: str, units: int) -> bytes:
    """Encode ``text`` into a fixed field of ``units`` UTF-16 units, null terminated."""
    raw = encode_utf16(text)[: (units - 1) * 2]
    return raw.ljust(units * 2, b"\0")


def _unpack_utf16(data: bytes) -> str:
    return buffer_to_utf16(data, len(data))


class AllowedCards(IntEnum):
    """Which card pools a room accepts."""

    OCG_ONLY = 0
    TCG_ONLY = 1
    OCG_TCG = 2
    WITH_PRERELEASE = 3
    ANY = 4


class ExtraRule(IntFlag):
    """Optional duel rule variants a room may enable."""

    SEALED_DUEL = 0x1
    BOOSTER_DUEL = 0x2
    DESTINY_DRAW = 0x4
    CONCENTRATION_DUEL = 0x8
    BOSS_DUEL = 0x10
    BATTLE_CITY = 0x20
    DUELIST_KINGDOM = 0x40
    DIMENSION_DUEL = 0x80
    TURBO_DUEL = 0x100
    RULE_OF_THE_DAY = 0x200
    COMMAND_DUEL = 0x400
    DECK_MASTER = 0x800
    ACTION_DUEL = 0x1000


@dataclass(frozen=True)
class ClientVersion:
    """Client and core version pairs."""

    client_major: int = 0
    client_minor: int = 0
    core_major: int = 0
    core_minor: int = 0

    SIZE: ClassVar[int] = 4
    _FORMAT: ClassVar[struct.Struct] = struct.Struct("<4B")

    def pack(self) -> bytes:
        return self._FORMAT.pack(
            self.client_major, self.client_minor, self.core_major, self.core_minor
        )

    @classmethod
    def unpack(cls, data: bytes) -> "ClientVersion":
        if len(data) < cls.SIZE:
            raise ValueError("buffer too small for a client version")
        return cls(*cls._FORMAT.unpack_from(data))

    def encoded(self) -> int:
        """The version packed into one 32-bit word, as stored in replays."""
        return (
            (self.client_major & 0xFF)
            | ((self.client_minor & 0xFF) << 8)
            | ((self.core_major & 0xFF) << 16)
            | ((self.core_minor & 0xFF) << 24)
        )


@dataclass(frozen=True)
class DeckLimits:
    """(min, max) card counts for the main, extra and side decks."""

    main: tuple[int, int] = (0, 0)
    extra: tuple[int, int] = (0, 0)
    side: tuple[int, int] = (0, 0)

    SIZE: ClassVar[int] = 12
    _FORMAT: ClassVar[struct.Struct] = struct.Struct("<6H")

    def pack(self) -> bytes:
        return self._FORMAT.pack(*self.main, *self.extra, *self.side)

    @classmethod
    def unpack(cls, data: bytes) -> "DeckLimits":
        if len(data) < cls.SIZE:
            raise ValueError("buffer too small for deck limits")
        v = cls._FORMAT.unpack_from(data)
        return cls((v[0], v[1]), (v[2], v[3]), (v[4], v[5]))


def or_duel_flags(high: int, low: int) -> int:
    """Combine the two 32-bit halves of the duel flags into one 64-bit value."""
    return (low & 0xFFFFFFFF) | ((high & 0xFFFFFFFF) << 32)


_HOST_INFO = struct.Struct("<I5B3xI2BH2I4BiiiIiH6H2x")


@dataclass(frozen=True)
class HostInfo:
    """Room settings chosen by the host."""

    banlist_hash: int = 0
    allowed: int = 0
    mode: int = 0
    duel_rule: int = 0
    dont_check_deck_content: int = 0
    dont_shuffle_deck: int = 0
    starting_lp: int = 0
    starting_draw_count: int = 0
    draw_count_per_turn: int = 0
    time_limit_in_seconds: int = 0
    duel_flags_high: int = 0
    handshake: int = 0
    version: ClientVersion = field(default_factory=ClientVersion)
    t0_count: int = 0
    t1_count: int = 0
    best_of: int = 0
    duel_flags_low: int = 0
    forb: int = 0
    extra_rules: int = 0
    limits: DeckLimits = field(default_factory=DeckLimits)

    SIZE: ClassVar[int] = _HOST_INFO.size

    @property
    def duel_flags(self) -> int:
        return or_duel_flags(self.duel_flags_high, self.duel_flags_low)

    def pack(self) -> bytes:
        v = self.version
        lim = self.limits
        return _HOST_INFO.pack(
            self.banlist_hash,
            self.allowed,
            self.mode,
            self.duel_rule,
            self.dont_check_deck_content,
            self.dont_shuffle_deck,
            self.starting_lp,
            self.starting_draw_count,
            self.draw_count_per_turn,
            self.time_limit_in_seconds,
            self.duel_flags_high,
            self.handshake,
            v.client_major,
            v.client_minor,
            v.core_major,
            v.core_minor,
            self.t0_count,
            self.t1_count,
            self.best_of,
            self.duel_flags_low,
            self.forb,
            self.extra_rules,
            *lim.main,
            *lim.extra,
            *lim.side,
        )

    @classmethod
    def unpack(cls, data: bytes) -> "HostInfo":
        if len(data) < cls.SIZE:
            raise ValueError("buffer too small for host info")
        f = _HOST_INFO.unpack_from(data)
        return cls(
            *f[:12],
            ClientVersion(*f[12:16]),
            *f[16:22],
            DeckLimits((f[22], f[23]), (f[24], f[25]), (f[26], f[27])),
        )


SERVER_VERSION = ClientVersion(40, 1, 10, 0)
"""Version checked against connecting clients and written to replays."""

SERVER_HANDSHAKE = 4043399681
"""Magic value that must match the client's."""


class CTOSMsgType(IntEnum):
    """Types of client-to-server messages."""

    RESPONSE = 0x01
    UPDATE_DECK = 0x02
    RPS_CHOICE = 0x03
    TURN_CHOICE = 0x04
    PLAYER_INFO = 0x10
    CREATE_GAME = 0x11
    JOIN_GAME = 0x12
    LEAVE_GAME = 0x13
    SURRENDER = 0x14
    TIME_CONFIRM = 0x15
    CHAT = 0x16
    TO_DUELIST = 0x20
    TO_OBSERVER = 0x21
    READY = 0x22
    NOT_READY = 0x23
    TRY_KICK = 0x24
    TRY_START = 0x25
    REMATCH = 0xF0


_CREATE_GAME_SIZE = HostInfo.SIZE + _NAME_BYTES + _NAME_BYTES + _NOTES_BYTES
_JOIN_GAME = struct.Struct(f"<H2xI{_NAME_BYTES}s{ClientVersion.SIZE}s")
_CTOS_VALID_TYPES = frozenset(int(t) for t in CTOSMsgType)


class CTOSMsg:
    """A client-to-server message: int16 length, type byte, then the body."""

    HEADER_LENGTH = 3
    MSG_MAX_LENGTH = 1021

    def __init__(self, data: bytes) -> None:
        data = bytes(data)
        capacity = self.HEADER_LENGTH + self.MSG_MAX_LENGTH
        if len(data) > capacity:
            raise ValueError(f"message larger than {capacity} bytes")
        self._bytes = data.ljust(capacity, b"\0")

    @property
    def length(self) -> int:
        """Body length announced by the header."""
        (raw,) = struct.unpack_from("<h", self._bytes)
        return ((raw - 1 + 0x8000) & 0xFFFF) - 0x8000

    @property
    def msg_type(self) -> int:
        return self._bytes[2]

    @property
    def body(self) -> bytes:
        size = min(max(self.length, 0), self.MSG_MAX_LENGTH)
        return self._bytes[self.HEADER_LENGTH:self.HEADER_LENGTH + size]

    def is_header_valid(self) -> bool:
        """True if the announced length fits and the type is known."""
        if self.length > self.MSG_MAX_LENGTH:
            return False
        return self.msg_type in _CTOS_VALID_TYPES

    def _sized_body(self, size: int) -> bytes | None:
        if self.length != size:
            return None
        return self._bytes[self.HEADER_LENGTH:self.HEADER_LENGTH + size]

    def _byte_value(self) -> int | None:
        body = self._sized_body(1)
        return None if body is None else body[0]

    def rps_choice(self) -> int | None:
        return self._byte_value()

    def turn_choice(self) -> int | None:
        return self._byte_value()

    def try_kick(self) -> int | None:
        return self._byte_value()

    def rematch(self) -> int | None:
        return self._byte_value()

    def player_info(self) -> str | None:
        """The player's name, or None if the body has the wrong size."""
        body = self._sized_body(_NAME_BYTES)
        return None if body is None else _unpack_utf16(body)

    def create_game(self) -> tuple[HostInfo, str, str, str] | None:
        """(host info, room name, room password, notes) or None on wrong size."""
        body = self._sized_body(_CREATE_GAME_SIZE)
        if body is None:
            return None
        pos = HostInfo.SIZE
        info = HostInfo.unpack(body[:pos])
        name = _unpack_utf16(body[pos:pos + _NAME_BYTES])
        pos += _NAME_BYTES
        room_pass = _unpack_utf16(body[pos:pos + _NAME_BYTES])
        pos += _NAME_BYTES
        notes = body[pos:pos + _NOTES_BYTES].split(b"\0", 1)[0].decode("utf-8", "replace")
        return info, name, room_pass, notes

    def join_game(self) -> tuple[int, int, str, ClientVersion] | None:
        """(version2, room id, room password, client version) or None on wrong size."""
        body = self._sized_body(_JOIN_GAME.size)
        if body is None:
            return None
        version2, room_id, pass_raw, version_raw = _JOIN_GAME.unpack(body)
        return version2, room_id, _unpack_utf16(pass_raw), ClientVersion.unpack(version_raw)


class STOCMsgType(IntEnum):
    """Types of server-to-client messages."""

    GAME_MSG = 0x1
    ERROR_MSG = 0x2
    CHOOSE_RPS = 0x3
    CHOOSE_ORDER = 0x4
    RPS_RESULT = 0x5
    ORDER_RESULT = 0x6
    CHANGE_SIDE = 0x7
    WAITING_SIDE = 0x8
    CREATE_GAME = 0x11
    JOIN_GAME = 0x12
    TYPE_CHANGE = 0x13
    LEAVE_GAME = 0x14
    DUEL_START = 0x15
    DUEL_END = 0x16
    REPLAY = 0x17
    TIME_LIMIT = 0x18
    PLAYER_ENTER = 0x20
    PLAYER_CHANGE = 0x21
    WATCH_CHANGE = 0x22
    NEW_REPLAY = 0x30
    CATCHUP = 0xF0
    REMATCH = 0xF1
    REMATCH_WAIT = 0xF2
    CHAT_2 = 0xF3


class STOCMsg:
    """A server-to-client message: uint16 length, type byte, then the payload."""

    _HEADER = struct.Struct("<HB")
    MAX_PAYLOAD_SIZE = 0xFFFF - _HEADER.size

    def __init__(self, msg_type: int, payload: bytes = b"") -> None:
        payload = bytes(payload)
        if len(payload) > self.MAX_PAYLOAD_SIZE:
            raise ValueError(f"payload larger than {self.MAX_PAYLOAD_SIZE} bytes")
        self.msg_type = int(msg_type)
        self.data = self._HEADER.pack(len(payload) + 1, self.msg_type) + payload

    @classmethod
    def from_struct(cls, struct) -> "STOCMsg":
        """Build a message from one of the payload structures of this module."""
        return cls(struct.MSG_TYPE, struct.pack())

    def __len__(self) -> int:
        return len(self.data)

    def __bytes__(self) -> bytes:
        return self.data


@dataclass(frozen=True)
class ErrorMsg:
    MSG_TYPE: ClassVar[STOCMsgType] = STOCMsgType.ERROR_MSG
    msg: int
    code: int

    def pack(self) -> bytes:
        return struct.pack("<B3xI", self.msg, self.code)


@dataclass(frozen=True)
class DeckErrorMsg:
    MSG_TYPE: ClassVar[STOCMsgType] = STOCMsgType.ERROR_MSG
    msg: int
    error_type: int
    got: int
    minimum: int
    maximum: int
    code: int

    def pack(self) -> bytes:
        return struct.pack(
            "<B3x5I", self.msg, self.error_type, self.got, self.minimum, self.maximum, self.code
        )


@dataclass(frozen=True)
class VerErrorMsg:
    MSG_TYPE: ClassVar[STOCMsgType] = STOCMsgType.ERROR_MSG
    msg: int
    version: ClientVersion

    def pack(self) -> bytes:
        return struct.pack("<B3x", self.msg) + self.version.pack()


@dataclass(frozen=True)
class RPSResult:
    MSG_TYPE: ClassVar[STOCMsgType] = STOCMsgType.RPS_RESULT
    res0: int
    res1: int

    def pack(self) -> bytes:
        return struct.pack("<2B", self.res0, self.res1)


@dataclass(frozen=True)
class TimeLimit:
    MSG_TYPE: ClassVar[STOCMsgType] = STOCMsgType.TIME_LIMIT
    team: int
    time_left: int

    def pack(self) -> bytes:
        return struct.pack("<BxH", self.team, self.time_left)


@dataclass(frozen=True)
class PlayerEnter:
    MSG_TYPE: ClassVar[STOCMsgType] = STOCMsgType.PLAYER_ENTER
    name: str
    pos: int

    def pack(self) -> bytes:
        return _pack_utf16(self.name, _NAME_UNITS) + struct.pack("<Bx", self.pos)


@dataclass(frozen=True)
class Chat2:
    """Chat line with the kind of sender attached."""

    class PlayerType(IntEnum):
        PTYPE_DUELIST = 0
        PTYPE_OBS = 1
        PTYPE_SYSTEM = 2
        PTYPE_SYSTEM_ERROR = 3
        PTYPE_SYSTEM_SHOUT = 4

    MSG_TYPE: ClassVar[STOCMsgType] = STOCMsgType.CHAT_2
    MESSAGE_UNITS: ClassVar[int] = 256
    player_type: int
    is_team: int
    client_name: str
    message: str

    def pack(self) -> bytes:
        return (
            struct.pack("<2B", self.player_type, self.is_team)
            + _pack_utf16(self.client_name, _NAME_UNITS)
            + _pack_utf16(self.message, self.MESSAGE_UNITS)
        )