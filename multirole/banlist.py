"""Banlists (forbidden/limited lists) and the parser for their text format."""

import re
from collections.abc import Iterable
from dataclasses import dataclass, field

BANLIST_HASH_MAGIC = 0x7DFCEE6A

_MASK32 = 0xFFFFFFFF
_UINT32_MAX = _MASK32
_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1
_INT_CHARS = "-0123456789"
_COUNT_RE = re.compile(r"-?\d+")
_CODE_RE = re.compile(r"\d+")


@dataclass(frozen=True)
class Banlist:
    """Card code to allowed copies; a whitelist forbids every card not listed."""

    whitelist: bool = False
    entries: dict[int, int] = field(default_factory=dict)


class BanlistParseError(ValueError):
    """Raised for a malformed banlist line."""

    def __init__(self, line: int, message: str) -> None:
        super().__init__(f"line {line}: {message}")
        self.line = line


def _shl(value: int, amount: int) -> int:
    return (value << (amount & 31)) & _MASK32


def _shr(value: int, amount: int) -> int:
    return (value & _MASK32) >> (amount & 31)


def salt(hash_value: int, code: int, count: int) -> int:
    """Mix a card code and its count into a 32-bit banlist hash."""
    code &= _MASK32
    return (
        (hash_value & _MASK32)
        ^ (_shl(code, 18) | _shr(code, 14))
        ^ (_shl(code, 27 + count) | _shr(code, 5 - count))
    ) & _MASK32


def _iter_lines(lines: str | Iterable[str]) -> Iterable[str]:
    if isinstance(lines, str):
        return lines.split("\n")
    return lines


def parse_banlists(lines: str | Iterable[str]) -> dict[int, Banlist]:
    """Parse banlist text into a mapping of banlist hash to Banlist.

    A banlist whose hash repeats an earlier one in the same text is ignored.
    Raises BanlistParseError on a malformed card line.
    """
    banlists: dict[int, Banlist] = {}
    hash_value = BANLIST_HASH_MAGIC
    whitelist = False
    entries: dict[int, int] = {}

    def add_current() -> None:
        if hash_value != BANLIST_HASH_MAGIC and hash_value not in banlists:
            banlists[hash_value] = Banlist(whitelist, dict(entries))

    for number, raw in enumerate(_iter_lines(lines), start=1):
        line = raw[:-1] if raw.endswith("\n") else raw
        if not line:
            continue
        if "$whitelist" in line:
            whitelist = True
            continue
        first = line[0]
        if first == "!":
            add_current()
            hash_value = BANLIST_HASH_MAGIC
            whitelist = False
            entries = {}
        elif first.isdigit() and first.isascii():
            code, count = _parse_card_line(number, line)
            hash_value = salt(hash_value, code, count)
            entries[code] = count
    add_current()
    return banlists


def _parse_card_line(number: int, line: str) -> tuple[int, int]:
    separator = line.find(" ")
    if separator == -1:
        raise BanlistParseError(number, "Card code separator not found")
    code_match = _CODE_RE.match(line, 0, separator)
    code = int(code_match.group()) if code_match else -1
    if not 0 <= code <= _UINT32_MAX:
        raise BanlistParseError(number, "Could not parse code")
    if code == 0:
        raise BanlistParseError(number, "Card code cannot be 0")
    begin = next((i for i in range(separator, len(line)) if line[i] in _INT_CHARS), -1)
    if begin == -1:
        raise BanlistParseError(number, "Could not find count begin")
    end = begin
    while end < len(line) and line[end] in _INT_CHARS:
        end += 1
    count_match = _COUNT_RE.match(line, begin, end)
    if count_match is None:
        raise BanlistParseError(number, "Could not parse count")
    count = int(count_match.group())
    if not _INT32_MIN <= count <= _INT32_MAX:
        raise BanlistParseError(number, "Could not parse count")
    return code, count