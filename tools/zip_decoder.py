"""
zip_decoder.py - Fixed-format decoder for ZIP containers

Walks the records of a ZIP file from offset 0:

    PK\\x03\\x04  local file header + name + extra + compressed data
    PK\\x01\\x02  central directory record
    PK\\x05\\x06  end of central directory (stops the walk)

and returns the same BinaryRange tree contract as the structure
interpreter. Local file headers are broken down into their fields.
"""

import logging
from typing import List, Tuple

from binary_range import BinaryRange, as_view
from interpret_types import (
    IntegerType, StringType, ZipDate, ZipGeneralPurposeBitFlag,
    ZipSignature, ZipTime,
)
from ksy_errors import DecodeError
from ksy_schema import Endian, PrimitiveType

logger = logging.getLogger(__name__)

LOCAL_FILE_SIG = b'PK\x03\x04'
CENTRAL_DIR_SIG = b'PK\x01\x02'
END_OF_CENTRAL_DIR_SIG = b'PK\x05\x06'

LOCAL_HEADER_SIZE = 30
CENTRAL_DIR_SIZE = 46
END_OF_CENTRAL_DIR_SIZE = 22

U16LE = IntegerType(PrimitiveType(2, False, Endian.LITTLE))
U32LE = IntegerType(PrimitiveType(4, False, Endian.LITTLE))
U32LE_HEX = IntegerType(PrimitiveType(4, False, Endian.LITTLE), hex_output=True)

# (name, offset, size, renderer) of the fixed local file header fields
LOCAL_HEADER_FIELDS = (
    ('Signature', 0, 4, ZipSignature()),
    ('Version', 4, 2, U16LE),
    ('GeneralPurposeBitFlag', 6, 2, ZipGeneralPurposeBitFlag()),
    ('CompressionMethod', 8, 2, U16LE),
    ('LastModFileTime', 10, 2, ZipTime()),
    ('LastModFileDate', 12, 2, ZipDate()),
    ('CRC32', 14, 4, U32LE_HEX),
    ('CompressedSize', 18, 4, U32LE),
    ('UncompressedSize', 22, 4, U32LE),
    ('FileNameLength', 26, 2, U16LE),
    ('ExtraFieldLength', 28, 2, U16LE),
)


def _u16(buf: memoryview, pos: int) -> int:
    return int.from_bytes(buf[pos:pos + 2], 'little')


def _u32(buf: memoryview, pos: int) -> int:
    return int.from_bytes(buf[pos:pos + 4], 'little')


def _require(buf: memoryview, offset: int, size: int, what: str) -> None:
    if offset + size > len(buf):
        raise DecodeError(f"{what} too short at offset {offset}")


class ZipDecoder:

    @classmethod
    def parse(cls, data) -> BinaryRange:
        """Decode a complete ZIP file into a range tree."""
        buf = as_view(data)
        records: List[BinaryRange] = []
        offset = 0

        while True:
            signature = bytes(buf[offset:offset + 4])
            if signature == LOCAL_FILE_SIG:
                record = cls._parse_file_entry(buf, offset)
            elif signature == CENTRAL_DIR_SIG:
                record = cls._parse_central_directory(buf, offset)
            elif signature == END_OF_CENTRAL_DIR_SIG:
                record = cls._parse_end_of_central_directory(buf, offset)
            else:
                raise DecodeError(f"Unknown ZIP format at offset {offset}")

            records.append(record)
            offset = record.end
            if record.name == 'EndOfCentralDirectory':
                break

        logger.debug("ZIP: %d records, %d of %d bytes", len(records), offset, len(buf))
        return BinaryRange(buf, 0, len(buf), 'ZipFile', None, records)

    @staticmethod
    def _parse_end_of_central_directory(buf: memoryview, offset: int) -> BinaryRange:
        _require(buf, offset, END_OF_CENTRAL_DIR_SIZE, "End of central directory entry")
        comment_length = _u16(buf, offset + 20)
        size = END_OF_CENTRAL_DIR_SIZE + comment_length
        _require(buf, offset, size, "End of central directory entry")
        return BinaryRange(buf, offset, size, 'EndOfCentralDirectory')

    @staticmethod
    def _parse_central_directory(buf: memoryview, offset: int) -> BinaryRange:
        _require(buf, offset, CENTRAL_DIR_SIZE, "Central directory entry")
        name_length = _u16(buf, offset + 28)
        extra_length = _u16(buf, offset + 30)
        comment_length = _u16(buf, offset + 32)
        size = CENTRAL_DIR_SIZE + name_length + extra_length + comment_length
        _require(buf, offset, size, "Central directory entry")
        return BinaryRange(buf, offset, size, 'CentralDirectory')

    @staticmethod
    def _parse_file_entry(buf: memoryview, offset: int) -> BinaryRange:
        _require(buf, offset, LOCAL_HEADER_SIZE, "File entry")
        compressed_size = _u32(buf, offset + 18)
        name_length = _u16(buf, offset + 26)
        extra_length = _u16(buf, offset + 28)
        size = LOCAL_HEADER_SIZE + name_length + extra_length + compressed_size
        _require(buf, offset, size, "File entry")

        fields: List[Tuple[str, int, int, object]] = list(LOCAL_HEADER_FIELDS)
        name_at = LOCAL_HEADER_SIZE
        extra_at = name_at + name_length
        contents_at = extra_at + extra_length
        fields += [
            ('FileName', name_at, name_length, StringType('utf-8')),
            ('ExtraField', extra_at, extra_length, None),
            ('Contents', contents_at, compressed_size, None),
        ]

        sub_ranges = [
            BinaryRange(buf, offset + rel, length, name, renderer)
            for name, rel, length, renderer in fields
        ]
        return BinaryRange(buf, offset, size, 'FileEntry', None, sub_ranges)
