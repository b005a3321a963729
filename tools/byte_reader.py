"""
byte_reader.py - Primitive reads from an in-memory byte buffer

Fixed-width integers (1-4 bytes, either endianness), fixed-size strings
and zero-terminated strings. Every function takes the whole buffer plus an
absolute offset; nothing is copied except the bytes handed to the text codec.

Usage:
    from byte_reader import read_unsigned, read_stringz

    value = read_unsigned(buf, 0, 2, little_endian=True)
    text, consumed = read_stringz(buf, 2, encoding='ascii')
"""

import codecs
from typing import Optional, Tuple, Union

from ksy_errors import (
    BufferExhausted, UnsupportedEncoding, UnsupportedPrimitiveSize,
)

Buffer = Union[bytes, bytearray, memoryview]

DEFAULT_ENCODING = 'utf-8'

# Schema encoding names -> Python codec names
ENCODING_ALIASES = {
    'utf-8': 'utf-8',
    'utf8': 'utf-8',
    'ascii': 'ascii',
    'shift_jis': 'shift_jis',
    'shift-jis': 'shift_jis',
    'sjis': 'shift_jis',
    'shiftjis': 'shift_jis',
    'euc-jp': 'euc_jp',
    'eucjp': 'euc_jp',
    'iso-8859-1': 'latin-1',
    'latin1': 'latin-1',
    'utf-16le': 'utf-16-le',
    'utf-16be': 'utf-16-be',
    'cp437': 'cp437',
}

SUPPORTED_SIZES = (1, 2, 3, 4)


def codec_name(encoding: str) -> str:
    """Map a schema encoding name to a Python codec, or raise UnsupportedEncoding."""
    lower = encoding.lower()
    name = ENCODING_ALIASES.get(lower, lower)
    try:
        codecs.lookup(name)
    except LookupError:
        raise UnsupportedEncoding(encoding) from None
    return name


def decode_text(data: Buffer, encoding: str = DEFAULT_ENCODING) -> str:
    """Decode bytes; malformed sequences become U+FFFD rather than failing."""
    return bytes(data).decode(codec_name(encoding), errors='replace')


def _check_bounds(buf: Buffer, offset: int, size: int) -> None:
    if offset < 0 or offset + size > len(buf):
        raise BufferExhausted(offset, size, len(buf))


def read_unsigned(buf: Buffer, offset: int, size: int, little_endian: bool) -> int:
    """Read an unsigned integer of 1, 2, 3 or 4 bytes."""
    if size not in SUPPORTED_SIZES:
        raise UnsupportedPrimitiveSize(size, signed=False)
    _check_bounds(buf, offset, size)
    return int.from_bytes(buf[offset:offset + size],
                          'little' if little_endian else 'big', signed=False)


def read_signed(buf: Buffer, offset: int, size: int, little_endian: bool) -> int:
    """Read a two's-complement signed integer of 1, 2, 3 or 4 bytes."""
    if size not in SUPPORTED_SIZES:
        raise UnsupportedPrimitiveSize(size, signed=True)
    unsigned = read_unsigned(buf, offset, size, little_endian)
    sign_bit = 1 << (size * 8 - 1)
    if unsigned & sign_bit:
        return unsigned - (1 << (size * 8))
    return unsigned


def read_primitive(buf: Buffer, offset: int, type_info) -> int:
    """
    Read an integer described by a PrimitiveType.

    type_info needs `size`, `signed` and `little_endian`; endian may be
    absent only for 1-byte types.
    """
    if type_info.signed:
        return read_signed(buf, offset, type_info.size, type_info.little_endian)
    return read_unsigned(buf, offset, type_info.size, type_info.little_endian)


def read_bytes(buf: Buffer, offset: int, size: int) -> memoryview:
    """Zero-copy view over `size` bytes at `offset`."""
    _check_bounds(buf, offset, size)
    return memoryview(buf)[offset:offset + size]


def read_string(buf: Buffer, offset: int, size: int,
                encoding: str = DEFAULT_ENCODING) -> str:
    """Decode exactly `size` bytes at `offset`."""
    _check_bounds(buf, offset, size)
    return decode_text(buf[offset:offset + size], encoding)


def read_stringz(buf: Buffer, offset: int, max_size: Optional[int] = None,
                 encoding: str = DEFAULT_ENCODING) -> Tuple[str, int]:
    """
    Read a zero-terminated string.

    Scans from `offset` to the first 0x00, stopping at `offset + max_size`
    (clamped to the buffer end) or at the buffer end.

    Returns:
        (text, consumed) where consumed includes the terminator when one
        was found, otherwise it is the number of bytes scanned.
    """
    if offset < 0 or offset > len(buf):
        raise BufferExhausted(offset, 0, len(buf))

    end = len(buf)
    if max_size is not None:
        end = min(offset + max_size, end)

    region = bytes(buf[offset:end])
    null_pos = region.find(0)
    if null_pos == -1:
        return decode_text(region, encoding), len(region)

    return decode_text(region[:null_pos], encoding), null_pos + 1
