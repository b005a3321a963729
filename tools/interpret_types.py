"""
interpret_types.py - Value renderers attached to BinaryRange nodes

A renderer turns the bytes of one range into a display string and has a
short label naming the interpretation ("U2LE", "String(utf-8)", ...).
Renderers are stateless apart from their configuration, so one instance
can be shared by any number of ranges.
"""

from typing import Optional

from byte_reader import codec_name, decode_text, read_primitive
from ksy_errors import UnsupportedEncoding


class BinaryInterpretType:
    """Base renderer: label + interpret(bytes) -> str."""

    label = 'Raw'

    def interpret(self, data: bytes) -> str:
        return ' '.join(f'{b:02X}' for b in data)

    def __str__(self) -> str:
        return self.label


class IntegerType(BinaryInterpretType):
    """Decimal rendering of a fixed-width integer (any PrimitiveType)."""

    def __init__(self, primitive, hex_output: bool = False):
        self.primitive = primitive
        self.hex_output = hex_output
        self.label = primitive.label.upper() + (' Hex' if hex_output else '')

    def interpret(self, data: bytes) -> str:
        if len(data) < self.primitive.size:
            raise ValueError(f"Insufficient bytes for {self.label}")
        value = read_primitive(data, 0, self.primitive)
        if self.hex_output:
            return format(value, 'X')
        return str(value)


class StringType(BinaryInterpretType):
    """Quoted text up to the first NUL; byte list if the codec is unknown."""

    def __init__(self, encoding: str):
        self.encoding = encoding
        self.label = f'String({encoding})'

    def interpret(self, data: bytes) -> str:
        data = bytes(data)
        null_pos = data.find(0)
        if null_pos != -1:
            data = data[:null_pos]
        try:
            return f'"{decode_text(data, self.encoding)}"'
        except UnsupportedEncoding:
            return '[' + ', '.join(str(b) for b in data) + ']'


# =============================================================================
# Text-file renderers (used by text_decoder)
# =============================================================================

ENCODING_DISPLAY_NAMES = {
    'ascii': 'Ascii',
    'sjis': 'ShiftJis',
    'shift-jis': 'ShiftJis',
    'utf-8': 'UTF-8',
    'other': 'Binary',
}

VISIBLE_WHITESPACE = (
    (' ', '(half space)'),
    ('\t', '(tab)'),
    ('\r', '(CR)'),
    ('\n', '(LF)'),
)


def _text_codec(encoding: str) -> Optional[str]:
    """Codec for a detected text encoding; None means render as hex."""
    if encoding.lower() == 'other':
        return None
    try:
        return codec_name(encoding)
    except UnsupportedEncoding:
        return None


class TextEncoding(BinaryInterpretType):
    """Whole-line rendering in a detected encoding."""

    def __init__(self, encoding: str):
        self.encoding = encoding
        self.label = ENCODING_DISPLAY_NAMES.get(encoding.lower(), encoding)
        self._codec = _text_codec(encoding)

    def interpret(self, data: bytes) -> str:
        if self._codec is None:
            return BinaryInterpretType.interpret(self, data)
        return bytes(data).decode(self._codec, errors='replace')


class CharEncoding(TextEncoding):
    """Single-character rendering with whitespace made visible."""

    def interpret(self, data: bytes) -> str:
        decoded = TextEncoding.interpret(self, data)
        if self._codec is None:
            return decoded
        for char, name in VISIBLE_WHITESPACE:
            decoded = decoded.replace(char, name)
        return decoded


# =============================================================================
# ZIP renderers (used by zip_decoder)
# =============================================================================

ZIP_SIGNATURES = {
    0x04034B50: 'PK0304(local file)',
    0x08074B50: 'PK0708(data descriptor)',
    0x02014B50: 'PK0102(central directory)',
    0x06054B50: 'PK0506(end of central directory)',
}

ZIP_FLAG_BITS = (
    (0x0001, 'Password protected'),
    (0x0002, 'Compression option 1'),
    (0x0004, 'Compression option 2'),
    (0x0008, 'Data descriptor used'),
    (0x0010, 'Enhanced deflation'),
    (0x0020, 'Compressed patched data'),
    (0x0040, 'Strong encryption'),
    (0x0800, 'UTF-8 file names/comments'),
    (0x2000, 'Central directory encryption'),
)


def _u16le(data: bytes, what: str) -> int:
    if len(data) < 2:
        raise ValueError(f"Insufficient bytes for {what}")
    return int.from_bytes(data[:2], 'little')


class ZipDate(BinaryInterpretType):
    label = 'ZipDate'

    def interpret(self, data: bytes) -> str:
        date = _u16le(data, self.label)
        day = date & 0x1F
        month = (date >> 5) & 0x0F
        year = ((date >> 9) & 0x7F) + 1980
        return f'{year}-{month}-{day}'


class ZipTime(BinaryInterpretType):
    label = 'ZipTime'

    def interpret(self, data: bytes) -> str:
        time = _u16le(data, self.label)
        seconds = (time & 0x1F) * 2
        minutes = (time >> 5) & 0x3F
        hours = (time >> 11) & 0x1F
        return f'{hours}:{minutes}:{seconds}'


class ZipSignature(BinaryInterpretType):
    label = 'ZipSignature'

    def interpret(self, data: bytes) -> str:
        if len(data) < 4:
            raise ValueError("Insufficient bytes for ZipSignature")
        signature = int.from_bytes(data[:4], 'little')
        return ZIP_SIGNATURES.get(signature, format(signature, 'X'))


class ZipGeneralPurposeBitFlag(BinaryInterpretType):
    label = 'ZipGeneralPurposeBitFlag'

    def interpret(self, data: bytes) -> str:
        flag = _u16le(data, self.label)
        names = [name for bit, name in ZIP_FLAG_BITS if flag & bit]
        return f"{flag:016b} ({', '.join(names)})"
