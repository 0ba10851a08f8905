"""UTF-16 helpers for the wire format's fixed-size text fields."""

INVALID_STRING = "Invalid String"

_UNIT = 2


def _utf16_units(text: str) -> int:
    return len(text.encode("utf-16-le", "surrogatepass")) // _UNIT


def utf16_byte_count(text: str) -> int:
    """Bytes taken by ``text`` as UTF-16 including a terminating null unit."""
    return (_utf16_units(text) + 1) * _UNIT


def buffer_to_utf16(data: bytes, max_byte_count: int) -> str:
    """Read little-endian UTF-16 units from ``data`` up to ``max_byte_count`` bytes.

    Reading stops at a null unit, a line feed or a carriage return.
    """
    if max_byte_count <= 0:
        return ""
    view = bytes(data[:max_byte_count])
    units = bytearray()
    for start in range(0, len(view) - _UNIT + 1, _UNIT):
        unit = int.from_bytes(view[start:start + _UNIT], "little")
        if unit in (0, 0x0A, 0x0D):
            break
        units += view[start:start + _UNIT]
    return units.decode("utf-16-le", "surrogatepass")


def encode_utf16(text: str | bytes) -> bytes:
    """Encode text (or UTF-8 bytes) as little-endian UTF-16, stopping at a null.

    Raises ValueError if the input bytes are not valid UTF-8.
    """
    if isinstance(text, (bytes, bytearray)):
        try:
            text = bytes(text).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ValueError("input is not valid UTF-8") from exc
    text = text.split("\0", 1)[0]
    return text.encode("utf-16-le", "surrogatepass")


def decode_utf16(data: bytes) -> str:
    """Decode little-endian UTF-16 bytes, returning a marker string when invalid."""
    try:
        return bytes(data).decode("utf-16-le")
    except UnicodeDecodeError:
        return INVALID_STRING