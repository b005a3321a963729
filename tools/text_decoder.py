"""
text_decoder.py - Fixed-format decoder for text files

Detects the encoding (ascii / utf-8 / shift-jis / other), then splits the
bytes into Line:N ranges, each holding one Char range per character and a
trailing LineBreak range (CR, LF or CRLF).
"""

import logging
from typing import List

from binary_range import BinaryRange, as_view
from interpret_types import CharEncoding, TextEncoding

logger = logging.getLogger(__name__)

UTF8_BOM = b'\xef\xbb\xbf'
UTF16LE_BOM = b'\xff\xfe'
UTF16BE_BOM = b'\xfe\xff'


def _is_utf8(data: bytes) -> bool:
    i = 0
    n = len(data)
    while i < n:
        b = data[i]
        if b & 0x80 == 0x00:
            width = 1
        elif b & 0xE0 == 0xC0:
            if b in (0xC0, 0xC1):  # overlong
                return False
            width = 2
        elif b & 0xF0 == 0xE0:
            width = 3
        elif b & 0xF8 == 0xF0:
            if b > 0xF4:
                return False
            width = 4
        else:
            return False
        if i + width > n:
            return False
        if any(data[j] & 0xC0 != 0x80 for j in range(i + 1, i + width)):
            return False
        i += width
    return True


def _is_sjis_lead(b: int) -> bool:
    return 0x81 <= b <= 0x9F or 0xE0 <= b <= 0xFC


def _is_sjis(data: bytes) -> bool:
    i = 0
    n = len(data)
    while i < n:
        b1 = data[i]
        if b1 <= 0x7F or 0xA1 <= b1 <= 0xDF:
            i += 1
        elif _is_sjis_lead(b1):
            if i + 1 >= n:
                return False
            b2 = data[i + 1]
            if not (0x40 <= b2 <= 0x7E or 0x80 <= b2 <= 0xFC):
                return False
            i += 2
        else:
            return False
    return True


def detect_encoding(data: bytes) -> str:
    """Best-effort encoding guess: 'ascii', 'utf-8', 'shift-jis' or 'other'."""
    data = bytes(data)
    if data.startswith(UTF8_BOM):
        return 'utf-8'
    if data.startswith(UTF16LE_BOM) or data.startswith(UTF16BE_BOM):
        return 'other'  # UTF-16 is shown as raw bytes
    if all(b <= 0x7F for b in data):
        return 'ascii'
    if _is_utf8(data):
        return 'utf-8'
    if _is_sjis(data):
        return 'shift-jis'
    return 'other'


def char_length(data: bytes, pos: int, encoding: str) -> int:
    """Byte length of the character starting at `pos`."""
    b = data[pos]
    if encoding == 'shift-jis':
        return 2 if _is_sjis_lead(b) else 1
    if encoding == 'utf-8':
        if b < 0x80:
            return 1
        if b & 0xE0 == 0xC0:
            return 2
        if b & 0xF0 == 0xE0:
            return 3
        if b & 0xF8 == 0xF0:
            return 4
    return 1


class TextDecoder:

    @staticmethod
    def parse(data) -> BinaryRange:
        """Decode text bytes into BOM / Line:N / Char / LineBreak ranges."""
        buf = as_view(data)
        raw = bytes(buf)
        encoding = detect_encoding(raw)
        char_type = CharEncoding(encoding)
        line_type = TextEncoding(encoding)

        lines: List[BinaryRange] = []
        offset = 0
        if encoding == 'utf-8' and raw.startswith(UTF8_BOM):
            lines.append(BinaryRange(buf, 0, 3, 'BOM'))
            offset = 3

        line_number = 1
        while offset < len(raw):
            line_start = offset
            line_end = offset
            break_length = 0
            while line_end < len(raw):
                if raw[line_end] == 0x0D:
                    break_length = 2 if raw[line_end + 1:line_end + 2] == b'\n' else 1
                    break
                if raw[line_end] == 0x0A:
                    break_length = 1
                    break
                line_end += 1

            children: List[BinaryRange] = []
            pos = line_start
            while pos < line_end:
                # a truncated multi-byte char is clamped to the line
                length = min(char_length(raw, pos, encoding), line_end - pos)
                children.append(BinaryRange(buf, pos, length, 'Char', char_type))
                pos += length

            if break_length:
                children.append(BinaryRange(buf, line_end, break_length, 'LineBreak', char_type))

            lines.append(BinaryRange(buf, line_start, line_end + break_length - line_start,
                                     f'Line:{line_number}', line_type, children))
            offset = line_end + break_length
            line_number += 1

        logger.debug("Text: %s, %d lines", encoding, line_number - 1)
        return BinaryRange(buf, 0, len(buf), f'TextFile({encoding})', None, lines)
