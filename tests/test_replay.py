import lzma
import struct

import pytest

from multirole.constants import MSG_DRAW, MSG_HINT, MSG_SELECT_CARD, MSG_WIN
from multirole.protocol import SERVER_VERSION, HostInfo
from multirole.replay import (
    EXTENDED_HEADER,
    HEADER_FLAGS,
    LZMA_FILTERS,
    OLD_REPLAY_FORMAT,
    REPLAY_YRP1,
    REPLAY_YRPX,
    Duelist,
    Replay,
    ReplayFlag,
)
from multirole.strings import buffer_to_utf16

SEED = (11, 22, 33, 44)
HOST = HostInfo(
    starting_lp=8000,
    starting_draw_count=5,
    draw_count_per_turn=1,
    duel_flags_high=1,
    duel_flags_low=2,
)


def _make_replay():
    replay = Replay(1600000000, SEED, HOST, [7, 8])
    replay.add_duelist(0, 0, Duelist("Alice", [100, 101, 102], [200]))
    replay.add_duelist(1, 0, Duelist("Bob", [300], []))
    for i in range(20):
        replay.record_msg(bytes([MSG_DRAW, 0]) + bytes(30))
    replay.record_response(b"\x01\x02")
    return replay


def _read_u32(data, offset):
    return struct.unpack_from("<I", data, offset)[0], offset + 4


def _parse_duelists(data, offset):
    teams = []
    for _ in range(2):
        count, offset = _read_u32(data, offset)
        names = []
        for _ in range(count):
            names.append(buffer_to_utf16(data[offset:offset + 40], 40))
            offset += 40
        teams.append(names)
    return teams, offset


def _parse_messages(payload):
    teams, offset = _parse_duelists(payload, 0)
    (flags,) = struct.unpack_from("<Q", payload, offset)
    offset += 8
    msgs = []
    while offset < len(payload):
        kind, length = struct.unpack_from("<BI", payload, offset)
        offset += 5
        msgs.append(bytes([kind]) + payload[offset:offset + length])
        offset += length
    return teams, flags, msgs


def _decompress(data):
    return lzma.decompress(data[EXTENDED_HEADER.size:], format=lzma.FORMAT_RAW, filters=LZMA_FILTERS)


def test_yrpx_header():
    data = _make_replay().serialize()
    fields = EXTENDED_HEADER.unpack_from(data)
    rtype, version, flags, timestamp, size, hash_value, props, ext_version = fields[:8]
    assert rtype == REPLAY_YRPX
    assert version == SERVER_VERSION.encoded()
    assert flags == HEADER_FLAGS | ReplayFlag.COMPRESSED
    assert timestamp == 1600000000
    assert hash_value == 0
    assert props[0] == 0x5D
    assert props[1:5] == (1 << 24).to_bytes(4, "little")
    assert ext_version == 1
    assert fields[8:] == (0, 0, 0, 0)
    assert size == len(_decompress(data))


def test_yrpx_payload_contents():
    replay = _make_replay()
    teams, flags, msgs = _parse_messages(_decompress(replay.serialize()))
    assert teams == [["Alice"], ["Bob"]]
    assert flags == HOST.duel_flags
    assert msgs[:-1] == [bytes([MSG_DRAW, 0]) + bytes(30)] * 20
    assert msgs[-1][0] == OLD_REPLAY_FORMAT


def test_embedded_yrp_replay():
    replay = _make_replay()
    _, _, msgs = _parse_messages(_decompress(replay.serialize()))
    yrp = msgs[-1][1:]
    fields = EXTENDED_HEADER.unpack_from(yrp)
    assert fields[0] == REPLAY_YRP1
    assert fields[2] == HEADER_FLAGS
    assert fields[3] == 0
    assert fields[8:] == SEED
    body = yrp[EXTENDED_HEADER.size:]
    assert fields[4] == len(body)
    teams, offset = _parse_duelists(body, 0)
    assert teams == [["Alice"], ["Bob"]]
    lp, draw, per_turn, duel_flags = struct.unpack_from("<3IQ", body, offset)
    offset += 20
    assert (lp, draw, per_turn, duel_flags) == (8000, 5, 1, HOST.duel_flags)
    piles = []
    for _ in range(5):
        count, offset = _read_u32(body, offset)
        piles.append(list(struct.unpack_from(f"<{count}I", body, offset)))
        offset += 4 * count
    assert piles == [[100, 101, 102], [200], [300], [], [7, 8]]
    assert body[offset:] == b"\x02\x01\x02"


def test_prompts_and_private_hints_are_not_recorded():
    replay = _make_replay()
    replay.record_msg(bytes([MSG_SELECT_CARD, 0]))
    replay.record_msg(bytes([MSG_HINT, 1, 0]))
    replay.record_msg(bytes([MSG_HINT, 10, 0]))
    replay.record_msg(bytes([MSG_WIN, 0, 1]))
    _, _, msgs = _parse_messages(_decompress(replay.serialize()))
    kinds = [m[0] for m in msgs]
    assert MSG_SELECT_CARD not in kinds
    assert msgs[20:22] == [bytes([MSG_HINT, 10, 0]), bytes([MSG_WIN, 0, 1])]


def test_pop_back_response():
    replay = _make_replay()
    replay.record_response(b"\x09")
    replay.pop_back_response()
    _, _, msgs = _parse_messages(_decompress(replay.serialize()))
    assert msgs[-1].endswith(b"\x02\x01\x02")
    replay.pop_back_response()
    with pytest.raises(IndexError):
        replay.pop_back_response()


def test_serialize_is_repeatable():
    replay = _make_replay()
    first = replay.serialize()
    assert replay.serialize() == first
    assert replay.data == first


def test_invalid_arguments():
    with pytest.raises(ValueError):
        Replay(0, (1, 2, 3), HOST, [])
    replay = _make_replay()
    with pytest.raises(ValueError):
        replay.add_duelist(2, 0, Duelist("Carol"))
    with pytest.raises(ValueError):
        replay.record_msg(b"")