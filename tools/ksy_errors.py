"""
ksy_errors.py - Error taxonomy for schema loading and structure decoding

SchemaError and its subclasses are raised before any byte is read.
DecodeError and its subclasses abort a parse at the point of failure;
no partial range tree is returned to the caller.

Contents mismatches are not exceptions: they are recorded as warning
strings on the parse result and decoding continues.
"""

from typing import List, Optional


class KsyError(ValueError):
    """Base class for every schema/decode failure."""
    pass


class SchemaError(KsyError):
    """Malformed schema text or structure."""
    pass


class MarkupError(SchemaError):
    """Structural error in the schema markup, with its source line."""

    def __init__(self, message: str, line_number: Optional[int] = None):
        self.line_number = line_number
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)


class MissingEndian(SchemaError):
    """Multi-byte primitive type with no endian suffix and no default."""

    def __init__(self, type_name: str):
        self.type_name = type_name
        super().__init__(
            f'Endian must be specified for type "{type_name}" (no default endian set)'
        )


class DecodeError(KsyError):
    """
    Fatal failure while walking a buffer.

    `field` is the display name of the offending field (e.g. "items[1]"),
    `path` the dotted path from the root (e.g. "header.items[1]").
    Both are filled in by the interpreter as the error propagates.
    """

    def __init__(self, message: str, field: Optional[str] = None):
        self.detail = message
        self.field = field
        self.path: List[str] = []
        super().__init__(message)

    def attach(self, name: str) -> 'DecodeError':
        """Record one enclosing field name, innermost first."""
        if self.field is None:
            self.field = name
        self.path.insert(0, name)
        self.args = (str(self),)
        return self

    @property
    def field_path(self) -> str:
        return '.'.join(self.path)

    def __str__(self) -> str:
        if self.path:
            return f'Field "{self.field_path}": {self.detail}'
        if self.field:
            return f'Field "{self.field}": {self.detail}'
        return self.detail


class MissingSize(DecodeError):
    pass


class UnresolvableExpression(DecodeError):
    pass


class UnknownType(DecodeError):

    def __init__(self, type_name: str, field: Optional[str] = None):
        self.type_name = type_name
        super().__init__(f"Unknown type: {type_name}", field)


class UnsupportedPrimitiveSize(DecodeError):

    def __init__(self, size: int, signed: bool = False):
        self.size = size
        kind = 'signed' if signed else 'unsigned'
        super().__init__(f"Unsupported {kind} integer size: {size}")


class BufferExhausted(DecodeError):

    def __init__(self, offset: int, size: int, available: int):
        self.offset = offset
        self.size = size
        self.available = available
        super().__init__(
            f"Buffer too short: need {size} bytes at pos {offset}, "
            f"only {max(0, available - offset)} available"
        )


class NestingTooDeep(DecodeError):
    """User types nested past the interpreter's depth limit (e.g. a self-referencing type)."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"User types nested deeper than {limit} levels")


class UnsupportedEncoding(DecodeError):

    def __init__(self, encoding: str):
        self.encoding = encoding
        super().__init__(f"Unsupported text encoding: {encoding}")


def contents_mismatch(name: str, expected: bytes, actual: bytes) -> str:
    """Format the (non-fatal) warning for a magic-byte mismatch."""
    exp = ', '.join(str(b) for b in expected)
    got = ', '.join(str(b) for b in actual)
    return f'Field "{name}": expected contents [{exp}] but got [{got}]'
