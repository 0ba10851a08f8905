"""Inspection and rewriting of the messages the duel core emits."""

import struct
from dataclasses import dataclass
from enum import Enum

from .constants import (
    LOCATION_DECK,
    LOCATION_EXTRA,
    LOCATION_GRAVE,
    LOCATION_HAND,
    LOCATION_MZONE,
    LOCATION_OVERLAY,
    LOCATION_SZONE,
    MSG_ANNOUNCE_ATTRIB,
    MSG_ANNOUNCE_CARD,
    MSG_ANNOUNCE_CARD_FILTER,
    MSG_ANNOUNCE_NUMBER,
    MSG_ANNOUNCE_RACE,
    MSG_CHAIN_END,
    MSG_CHAINED,
    MSG_CONFIRM_CARDS,
    MSG_DAMAGE_STEP_END,
    MSG_DAMAGE_STEP_START,
    MSG_DRAW,
    MSG_FLIPSUMMONED,
    MSG_FLIPSUMMONING,
    MSG_HINT,
    MSG_MISSED_EFFECT,
    MSG_MOVE,
    MSG_NEW_PHASE,
    MSG_NEW_TURN,
    MSG_POS_CHANGE,
    MSG_RELOAD_FIELD,
    MSG_REVERSE_DECK,
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
    MSG_SET,
    MSG_SHUFFLE_EXTRA,
    MSG_SHUFFLE_HAND,
    MSG_SHUFFLE_SET_CARD,
    MSG_SORT_CARD,
    MSG_SORT_CHAIN,
    MSG_SPSUMMONED,
    MSG_START,
    MSG_SUMMONED,
    MSG_SWAP,
    MSG_SWAP_GRAVE_DECK,
    MSG_TAG_SWAP,
    MSG_UPDATE_CARD,
    MSG_UPDATE_DATA,
    POS_FACEDOWN,
    POS_FACEUP,
)
from .query import LocInfo

_U32 = struct.Struct("<I")
_CODE_SIZE = 4


class MsgDistType(Enum):
    """How a core message is distributed and whether it is stripped first."""

    SPECIFIC_TEAM_DUELIST_STRIPPED = 0
    SPECIFIC_TEAM_DUELIST = 1
    SPECIFIC_TEAM = 2
    EVERYONE_EXCEPT_TEAM_DUELIST = 3
    EVERYONE_STRIPPED = 4
    EVERYONE = 5


@dataclass(frozen=True)
class MsgStartCreateInfo:
    """Starting life points and pile sizes of both teams."""

    lp: int
    t0_deck_size: int
    t0_extra_size: int
    t1_deck_size: int
    t1_extra_size: int


@dataclass(frozen=True)
class QuerySingleRequest:
    """Request to query one card."""

    con: int
    loc: int
    seq: int
    flags: int


@dataclass(frozen=True)
class QueryLocationRequest:
    """Request to query every card of a location."""

    con: int
    loc: int
    flags: int


QueryRequest = QuerySingleRequest | QueryLocationRequest

_STRIPPED_ANSWER_TYPES = frozenset({
    MSG_SELECT_CARD,
    MSG_SELECT_TRIBUTE,
    MSG_SELECT_UNSELECT_CARD,
})

_ANSWER_TYPES = _STRIPPED_ANSWER_TYPES | frozenset({
    MSG_SELECT_BATTLECMD,
    MSG_SELECT_IDLECMD,
    MSG_SELECT_EFFECTYN,
    MSG_SELECT_YESNO,
    MSG_SELECT_OPTION,
    MSG_SELECT_CHAIN,
    MSG_SELECT_PLACE,
    MSG_SELECT_DISFIELD,
    MSG_SELECT_POSITION,
    MSG_SORT_CARD,
    MSG_SORT_CHAIN,
    MSG_SELECT_COUNTER,
    MSG_SELECT_SUM,
    MSG_ROCK_PAPER_SCISSORS,
    MSG_ANNOUNCE_RACE,
    MSG_ANNOUNCE_ATTRIB,
    MSG_ANNOUNCE_CARD,
    MSG_ANNOUNCE_NUMBER,
    MSG_ANNOUNCE_CARD_FILTER,
})

_SPECIFIC_DUELIST_TYPES = (_ANSWER_TYPES - _STRIPPED_ANSWER_TYPES) | {MSG_MISSED_EFFECT}

_EVERYONE_STRIPPED_TYPES = frozenset({
    MSG_SHUFFLE_HAND,
    MSG_SHUFFLE_EXTRA,
    MSG_SET,
    MSG_MOVE,
    MSG_DRAW,
    MSG_TAG_SWAP,
})

_HINTS_FOR_DUELIST = frozenset({1, 2, 3, 5})
_HINTS_FOR_TEAM = frozenset({200})
_HINTS_FOR_OTHERS = frozenset({4, 6, 7, 8, 9, 11})

_DECK_FLAGS = 0x1181FFF
_HAND_FLAGS = 0x3781FFF
_MZONE_FLAGS = 0x3881FFF
_SZONE_FLAGS = 0x3E81FFF
_SINGLE_FLAGS = 0x3F81FFF
_PILE_FLAGS = 0x381FFF


def _byte(msg: bytes, offset: int) -> int:
    if offset >= len(msg):
        raise ValueError("core message is truncated")
    return msg[offset]


def _u32(msg: bytes, offset: int) -> int:
    if offset + _U32.size > len(msg):
        raise ValueError("core message is truncated")
    return _U32.unpack_from(msg, offset)[0]


def _zero_code(buf: bytearray, offset: int) -> None:
    if offset + _CODE_SIZE > len(buf):
        raise ValueError("core message is truncated")
    buf[offset:offset + _CODE_SIZE] = bytes(_CODE_SIZE)


def split_to_msgs(buffer: bytes) -> list[bytes]:
    """Split a core output buffer into its messages, dropping the length prefixes."""
    data = bytes(buffer)
    msgs = []
    pos = 0
    while pos < len(data):
        length = _u32(data, pos)
        pos += _U32.size
        end = pos + length
        if end > len(data):
            raise ValueError("core message is truncated")
        msgs.append(data[pos:end])
        pos = end
    return msgs


def message_type(msg: bytes) -> int:
    """The type of a core message (its first byte)."""
    return _byte(msg, 0)


def requires_answer(msg_type: int) -> bool:
    """True if the message waits for a duelist's response."""
    return msg_type in _ANSWER_TYPES


def distribution_type(msg: bytes) -> MsgDistType:
    """Who should receive the message and whether it must be stripped."""
    kind = message_type(msg)
    if kind in _STRIPPED_ANSWER_TYPES:
        return MsgDistType.SPECIFIC_TEAM_DUELIST_STRIPPED
    if kind in _SPECIFIC_DUELIST_TYPES:
        return MsgDistType.SPECIFIC_TEAM_DUELIST
    if kind == MSG_HINT:
        hint = _byte(msg, 1)
        if hint in _HINTS_FOR_DUELIST:
            return MsgDistType.SPECIFIC_TEAM_DUELIST
        if hint in _HINTS_FOR_TEAM:
            return MsgDistType.SPECIFIC_TEAM
        if hint in _HINTS_FOR_OTHERS:
            return MsgDistType.EVERYONE_EXCEPT_TEAM_DUELIST
        return MsgDistType.EVERYONE
    if kind == MSG_CONFIRM_CARDS:
        # Revealing cards from the deck is private to the duelist.
        if _u32(msg, 2) != 0 and _byte(msg, 11) == LOCATION_DECK:
            return MsgDistType.SPECIFIC_TEAM_DUELIST
        return MsgDistType.EVERYONE
    if kind in _EVERYONE_STRIPPED_TYPES:
        return MsgDistType.EVERYONE_STRIPPED
    return MsgDistType.EVERYONE


def receiving_team(msg: bytes) -> int:
    """The team a team-specific message is meant for."""
    if message_type(msg) == MSG_HINT:
        return _byte(msg, 2)
    return _byte(msg, 1)


def _is_loc_info_public(info: LocInfo) -> bool:
    if info.loc & (LOCATION_GRAVE | LOCATION_OVERLAY) and not info.loc & (
        LOCATION_DECK | LOCATION_HAND
    ):
        return True
    return not info.pos & POS_FACEDOWN


def _clear_position_array(buf: bytearray, offset: int, count: int) -> int:
    for _ in range(count):
        if not _u32(buf, offset + _CODE_SIZE) & POS_FACEUP:
            _zero_code(buf, offset)
        offset += _CODE_SIZE + _U32.size
    return offset


def _clear_loc_info_array(buf: bytearray, offset: int, count: int, team: int) -> int:
    for _ in range(count):
        info = LocInfo.unpack(buf, offset + _CODE_SIZE)
        if info.con != team:
            _zero_code(buf, offset)
        offset += _CODE_SIZE + LocInfo.SIZE
    return offset


def _strip_set(team: int, buf: bytearray) -> None:
    _zero_code(buf, 1)


def _strip_shuffle(team: int, buf: bytearray) -> None:
    if _byte(buf, 1) == team:
        return
    for i in range(_u32(buf, 2)):
        _zero_code(buf, 6 + i * _CODE_SIZE)


def _strip_move(team: int, buf: bytearray) -> None:
    current = LocInfo.unpack(buf, 1 + _CODE_SIZE + LocInfo.SIZE)
    if current.con == team or _is_loc_info_public(current):
        return
    _zero_code(buf, 1)


def _strip_draw(team: int, buf: bytearray) -> None:
    if _byte(buf, 1) == team:
        return
    _clear_position_array(buf, 6, _u32(buf, 2))


def _strip_tag_swap(team: int, buf: bytearray) -> None:
    if _byte(buf, 1) == team:
        return
    # Extra deck count at 6, hand count at 14, cards follow the top-deck code.
    count = _u32(buf, 6) + _u32(buf, 14)
    _clear_position_array(buf, 22, count)


def _strip_select_card(team: int, buf: bytearray) -> None:
    _clear_loc_info_array(buf, 15, _u32(buf, 11), team)


def _strip_select_tribute(team: int, buf: bytearray) -> None:
    offset = 15
    for _ in range(_u32(buf, 11)):
        if _byte(buf, offset + _CODE_SIZE) != team:
            _zero_code(buf, offset)
        offset += _CODE_SIZE + 1 + 1 + 4 + 1
    return None


def _strip_select_unselect_card(team: int, buf: bytearray) -> None:
    offset = _clear_loc_info_array(buf, 16, _u32(buf, 12), team)
    _clear_loc_info_array(buf, offset + _U32.size, _u32(buf, offset), team)


_STRIPPERS = {
    MSG_SET: _strip_set,
    MSG_SHUFFLE_HAND: _strip_shuffle,
    MSG_SHUFFLE_EXTRA: _strip_shuffle,
    MSG_MOVE: _strip_move,
    MSG_DRAW: _strip_draw,
    MSG_TAG_SWAP: _strip_tag_swap,
    MSG_SELECT_CARD: _strip_select_card,
    MSG_SELECT_TRIBUTE: _strip_select_tribute,
    MSG_SELECT_UNSELECT_CARD: _strip_select_unselect_card,
}


def strip_message_for_team(team: int, msg: bytes) -> bytes:
    """Return a copy of ``msg`` with card codes ``team`` must not see zeroed."""
    buf = bytearray(msg)
    stripper = _STRIPPERS.get(message_type(buf))
    if stripper is not None:
        stripper(team, buf)
    return bytes(buf)


def make_start_msg(info: MsgStartCreateInfo) -> bytes:
    """Build the MSG_START message that sets up life points and pile sizes."""
    return struct.pack(
        "<BBII4H",
        MSG_START,
        0,
        info.lp,
        info.lp,
        info.t0_deck_size & 0xFFFF,
        info.t0_extra_size & 0xFFFF,
        info.t1_deck_size & 0xFFFF,
        info.t1_extra_size & 0xFFFF,
    )


def _both(loc: int, flags: int) -> list[QueryRequest]:
    return [QueryLocationRequest(0, loc, flags), QueryLocationRequest(1, loc, flags)]


def _decks() -> list[QueryRequest]:
    return _both(LOCATION_DECK, _DECK_FLAGS)


def _hands() -> list[QueryRequest]:
    return _both(LOCATION_HAND, _HAND_FLAGS)


def _mzones() -> list[QueryRequest]:
    return _both(LOCATION_MZONE, _MZONE_FLAGS)


def _szones() -> list[QueryRequest]:
    return _both(LOCATION_SZONE, _SZONE_FLAGS)


def _single(info: LocInfo) -> QuerySingleRequest:
    return QuerySingleRequest(info.con, info.loc, info.seq, _SINGLE_FLAGS)


def pre_dist_query_requests(msg: bytes) -> list[QueryRequest]:
    """Queries to run before the message is distributed."""
    kind = message_type(msg)
    if kind in (MSG_SELECT_BATTLECMD, MSG_SELECT_IDLECMD):
        return _hands() + _mzones() + _szones()
    if kind in (MSG_SELECT_CHAIN, MSG_NEW_TURN):
        return _mzones() + _szones()
    if kind == MSG_FLIPSUMMONING:
        return [_single(LocInfo.unpack(msg, 1 + _CODE_SIZE))]
    return []


def post_dist_query_requests(msg: bytes) -> list[QueryRequest]:
    """Queries to run after the message is distributed."""
    kind = message_type(msg)
    if kind in (MSG_SHUFFLE_HAND, MSG_DRAW):
        return [QueryLocationRequest(_byte(msg, 1), LOCATION_HAND, _HAND_FLAGS)]
    if kind == MSG_SHUFFLE_EXTRA:
        return [QueryLocationRequest(_byte(msg, 1), LOCATION_EXTRA, _PILE_FLAGS)]
    if kind == MSG_SWAP_GRAVE_DECK:
        return [QueryLocationRequest(_byte(msg, 1), LOCATION_GRAVE, _PILE_FLAGS)]
    if kind == MSG_REVERSE_DECK:
        return _decks()
    if kind == MSG_SHUFFLE_SET_CARD:
        return _both(_byte(msg, 1), 0x3181FFF)
    if kind in (MSG_DAMAGE_STEP_START, MSG_DAMAGE_STEP_END):
        return _mzones()
    if kind in (MSG_SUMMONED, MSG_SPSUMMONED, MSG_FLIPSUMMONED):
        return _mzones() + _szones()
    if kind in (MSG_NEW_PHASE, MSG_CHAINED):
        return _mzones() + _szones() + _hands()
    if kind == MSG_CHAIN_END:
        return _decks() + _mzones() + _szones() + _hands()
    if kind == MSG_MOVE:
        previous = LocInfo.unpack(msg, 1 + _CODE_SIZE)
        current = LocInfo.unpack(msg, 1 + _CODE_SIZE + LocInfo.SIZE)
        moved = previous.con != current.con or previous.loc != current.loc
        if moved and current.loc != 0 and not current.loc & LOCATION_OVERLAY:
            return [_single(current)]
        return []
    if kind == MSG_POS_CHANGE:
        if len(msg) < 10:
            raise ValueError("core message is truncated")
        con, loc, seq, previous_pos, current_pos = msg[5:10]
        if previous_pos & POS_FACEDOWN and current_pos & POS_FACEUP:
            return [QuerySingleRequest(con, loc, seq, _SINGLE_FLAGS)]
        return []
    if kind == MSG_SWAP:
        first = LocInfo.unpack(msg, 1 + _CODE_SIZE)
        second = LocInfo.unpack(msg, 1 + _CODE_SIZE + LocInfo.SIZE + _CODE_SIZE)
        return [_single(first), _single(second)]
    if kind == MSG_TAG_SWAP:
        player = _byte(msg, 1)
        return [
            QueryLocationRequest(player, LOCATION_DECK, _DECK_FLAGS),
            QueryLocationRequest(player, LOCATION_EXTRA, _PILE_FLAGS),
            QueryLocationRequest(player, LOCATION_HAND, _HAND_FLAGS),
            *_both(LOCATION_MZONE, 0x3081FFF),
            *_both(LOCATION_SZONE, 0x30681FFF),
        ]
    if kind == MSG_RELOAD_FIELD:
        return _both(LOCATION_EXTRA, _PILE_FLAGS)
    return []


def make_update_card_msg(con: int, loc: int, seq: int, query_buffer: bytes) -> bytes:
    """Wrap a single card query into a MSG_UPDATE_CARD message."""
    return bytes((MSG_UPDATE_CARD, con & 0xFF, loc & 0xFF, seq & 0xFF)) + bytes(query_buffer)


def make_update_data_msg(con: int, loc: int, query_buffer: bytes) -> bytes:
    """Wrap a location query into a MSG_UPDATE_DATA message."""
    return bytes((MSG_UPDATE_DATA, con & 0xFF, loc & 0xFF)) + bytes(query_buffer)