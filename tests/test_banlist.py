import io

import pytest

from multirole.banlist import (
    BANLIST_HASH_MAGIC,
    Banlist,
    BanlistParseError,
    parse_banlists,
    salt,
)


def test_empty_text_gives_no_banlists():
    assert parse_banlists("") == {}


def test_header_without_cards_is_not_added():
    assert parse_banlists("!2024.01 TCG\n#comment\n") == {}


def test_single_banlist_hash_and_entries():
    text = "!Test list\n12345 1\n67890 0 --comment\n"
    expected_hash = salt(salt(BANLIST_HASH_MAGIC, 12345, 1), 67890, 0)
    result = parse_banlists(text)
    assert list(result) == [expected_hash]
    assert result[expected_hash] == Banlist(False, {12345: 1, 67890: 0})


def test_accepts_stream_lines():
    stream = io.StringIO("!A\n100 2\n!B\n200 3\n")
    result = parse_banlists(stream)
    assert len(result) == 2
    assert {tuple(b.entries.items()) for b in result.values()} == {((100, 2),), ((200, 3),)}


def test_whitelist_flag_and_reset():
    text = "!White\n$whitelist\n100 3\n!Black\n100 2\n"
    result = parse_banlists(text)
    white = result[salt(BANLIST_HASH_MAGIC, 100, 3)]
    black = result[salt(BANLIST_HASH_MAGIC, 100, 2)]
    assert white.whitelist is True
    assert black.whitelist is False


def test_duplicate_hash_keeps_first():
    text = "!One\n$whitelist\n500 1\n!Two\n500 1\n"
    result = parse_banlists(text)
    assert len(result) == 1
    assert next(iter(result.values())).whitelist is True


def test_negative_count_parsed():
    result = parse_banlists("!N\n321 -1\n")
    assert next(iter(result.values())).entries == {321: -1}


def test_salt_is_involution():
    h = salt(BANLIST_HASH_MAGIC, 89631139, 3)
    assert salt(h, 89631139, 3) == BANLIST_HASH_MAGIC
    assert 0 <= h <= 0xFFFFFFFF


@pytest.mark.parametrize(
    "line, message",
    [
        ("12345", "Card code separator not found"),
        ("0 3", "Card code cannot be 0"),
        ("99999999999 1", "Could not parse code"),
        ("123 abc", "Could not find count begin"),
        ("123 -x", "Could not parse count"),
        ("123 99999999999", "Could not parse count"),
    ],
)
def test_parse_errors(line, message):
    with pytest.raises(BanlistParseError) as info:
        parse_banlists(f"!List\n{line}\n")
    assert info.value.line == 2
    assert str(info.value) == f"line 2: {message}"