#!/usr/bin/env python3
"""
structure_interpreter.py - Runtime interpreter turning a schema + bytes into a range tree

Walks a Schema's field sequence over a byte buffer and builds a tree of
named BinaryRange nodes, each primitive/string leaf carrying a renderer for
its decoded value.

Usage:
    from ksy_schema import parse_ksy_schema
    from structure_interpreter import StructureInterpreter

    interpreter = StructureInterpreter(parse_ksy_schema(text))
    result = interpreter.parse(data)

    print(result.bytes_read, result.warnings)
    for node, depth in result.root.walk():
        print('  ' * depth + node.name, node.value_string())
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple, Union

from binary_range import BinaryRange, as_view
from byte_reader import DEFAULT_ENCODING, read_primitive, read_string, read_stringz
from interpret_types import IntegerType, StringType
from ksy_errors import (
    DecodeError, MissingSize, NestingTooDeep, UnknownType,
    UnresolvableExpression, contents_mismatch,
)
from ksy_schema import (
    ContentsField, Expr, Field, FieldKind, Schema, UserType, parse_ksy_schema,
)

logger = logging.getLogger(__name__)

ScopeValue = Union[int, str, Dict[str, Any], List[Any]]

# User-type nesting limit; each level costs about five Python frames
MAX_NESTING_DEPTH = 128


@dataclass
class ParseResult:
    """Result of interpreting a buffer."""
    root: BinaryRange
    bytes_read: int
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'bytes_read': self.bytes_read,
            'warnings': self.warnings,
            'root': self.root.to_dict(),
        }


class _Walker:
    """
    State for one parse: cursor, scope stack, warnings.

    A new walker is created per parse so that one interpreter can serve
    any number of (possibly concurrent) parses.
    """

    def __init__(self, schema: Schema, buffer: memoryview):
        self.schema = schema
        self.buffer = buffer
        self.offset = 0
        self.default_encoding = schema.meta.encoding or DEFAULT_ENCODING
        self.scopes: List[Dict[str, ScopeValue]] = [{}]
        self.warnings: List[str] = []
        self._renderers: Dict[Any, Any] = {}

    @property
    def scope(self) -> Dict[str, ScopeValue]:
        return self.scopes[-1]

    @contextmanager
    def new_scope(self):
        """Fresh value scope for a user type; restored even when decoding fails."""
        self.scopes.append({})
        try:
            yield self.scope
        finally:
            self.scopes.pop()

    def parse_seq(self, seq) -> List[BinaryRange]:
        ranges: List[BinaryRange] = []
        for f in seq:
            ranges.extend(self.parse_field(f))
        return ranges

    def parse_field(self, f: Field) -> List[BinaryRange]:
        """Parse one field (or all elements of an array field)."""
        if f.is_array:
            try:
                count = self.resolve_expr(f.repeat_expr, 'repeat-expr')
            except DecodeError as e:
                raise e.attach(f.id)
            ranges = []
            values = []
            for i in range(count):
                rng, value = self.parse_single_field(f, f'{f.id}[{i}]')
                ranges.append(rng)
                values.append(value)
            self.scope[f.id] = values
            return ranges

        rng, value = self.parse_single_field(f, f.id)
        self.scope[f.id] = value
        return [rng]

    def parse_single_field(self, f: Field, name: str) -> Tuple[BinaryRange, ScopeValue]:
        try:
            if f.kind is FieldKind.CONTENTS:
                rng, value = self._dispatch(f.target, name)
                self._check_contents(f, rng, name)
                return rng, value
            return self._dispatch(f, name)
        except DecodeError as e:
            raise e.attach(name)

    def _dispatch(self, f: Field, name: str) -> Tuple[BinaryRange, ScopeValue]:
        if f.kind is FieldKind.PRIMITIVE:
            return self._parse_primitive(f, name)
        if f.kind is FieldKind.STRING:
            return self._parse_string(f, name)
        if f.kind is FieldKind.USER_TYPE:
            return self._parse_user_type(self.schema.types[f.type], name)
        raise UnknownType(f.type)

    def _check_contents(self, f: ContentsField, rng: BinaryRange, name: str) -> None:
        """Compare the bytes the field consumed; a mismatch is only a warning."""
        actual = bytes(rng.data)
        if actual != f.contents:
            message = contents_mismatch(name, f.contents, actual)
            logger.debug(message)
            self.warnings.append(message)

    def _parse_primitive(self, f: Field, name: str) -> Tuple[BinaryRange, int]:
        if f.primitive is None:
            raise UnknownType(f.type)

        start = self.offset
        size = f.primitive.size
        value = read_primitive(self.buffer, start, f.primitive)
        self.offset += size

        rng = BinaryRange(self.buffer, start, size, name, self._integer_type(f.primitive))
        return rng, value

    def _parse_string(self, f: Field, name: str) -> Tuple[BinaryRange, str]:
        start = self.offset
        encoding = f.encoding or self.default_encoding

        if f.zero_terminated:
            max_size = None
            if f.size is not None:
                max_size = self.resolve_expr(f.size, 'size')
            value, consumed = read_stringz(self.buffer, start, max_size, encoding)
        else:
            if f.size is None:
                raise MissingSize('str type requires size')
            consumed = self.resolve_expr(f.size, 'size')
            value = read_string(self.buffer, start, consumed, encoding)

        self.offset += consumed
        rng = BinaryRange(self.buffer, start, consumed, name, self._string_type(encoding))
        return rng, value

    def _parse_user_type(self, user_type: UserType, name: str) -> Tuple[BinaryRange, Dict[str, Any]]:
        if len(self.scopes) > MAX_NESTING_DEPTH:
            raise NestingTooDeep(MAX_NESTING_DEPTH)
        start = self.offset
        with self.new_scope() as values:
            sub_ranges = self.parse_seq(user_type.seq)
            result = dict(values)

        rng = BinaryRange(self.buffer, start, self.offset - start, name, None, sub_ranges)
        return rng, result

    def resolve_expr(self, expr: Expr, what: str) -> int:
        """
        Resolve a size/repeat expression to a non-negative integer.

        Only literals and ids of already-parsed fields in the current scope
        are accepted; anything else fails rather than defaulting.
        """
        if isinstance(expr, str):
            if expr not in self.scope:
                raise UnresolvableExpression(
                    f'Cannot resolve {what} "{expr}": no earlier field with that id in this scope'
                )
            value = self.scope[expr]
        else:
            value = expr

        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise UnresolvableExpression(f'Cannot resolve {what} "{expr}": not a number')
        if isinstance(value, float):
            if not value.is_integer():
                raise UnresolvableExpression(f'Cannot resolve {what} "{expr}": {value} is not an integer')
            value = int(value)
        if value < 0:
            raise UnresolvableExpression(f'Cannot resolve {what} "{expr}": negative value {value}')
        return value

    def _integer_type(self, primitive) -> IntegerType:
        key = ('int', primitive)
        if key not in self._renderers:
            self._renderers[key] = IntegerType(primitive)
        return self._renderers[key]

    def _string_type(self, encoding: str) -> StringType:
        key = ('str', encoding)
        if key not in self._renderers:
            self._renderers[key] = StringType(encoding)
        return self._renderers[key]


class StructureInterpreter:
    """
    Runtime interpreter for structure schemas.

    Supports:
    - u1..u4 / s1..s4 integers with le/be suffix or schema default endian
    - contents (magic-byte) checks on any field kind, reported as warnings
    - str (sized) and strz (zero-terminated, optional max size)
    - user-defined types with their own value scope, nested up to
      MAX_NESTING_DEPTH levels
    - repeat: expr with a literal or back-referenced count
    """

    def __init__(self, schema: Schema):
        self.schema = schema

    def parse(self, data: Union[bytes, bytearray, memoryview]) -> ParseResult:
        """
        Interpret `data` against the schema.

        Raises:
            DecodeError (or a subclass) on any structural failure; no
            partial tree is returned.
        """
        buffer = as_view(data)
        walker = _Walker(self.schema, buffer)
        logger.debug("Parsing %d bytes with schema %s", len(buffer), self.schema.meta.id)

        sub_ranges = walker.parse_seq(self.schema.seq)

        root = BinaryRange(buffer, 0, walker.offset, self.schema.meta.id, None, sub_ranges)
        if walker.offset < len(buffer):
            logger.debug("%d trailing bytes not covered by schema %s",
                         len(buffer) - walker.offset, self.schema.meta.id)

        return ParseResult(root=root, bytes_read=walker.offset, warnings=walker.warnings)


def parse_binary(schema: Union[Schema, str], data: Union[bytes, bytearray, memoryview],
                 loader: str = 'subset') -> ParseResult:
    """Convenience function: schema (object or text) + bytes -> ParseResult."""
    if isinstance(schema, str):
        schema = parse_ksy_schema(schema, loader)
    return StructureInterpreter(schema).parse(data)


if __name__ == '__main__':
    # Demo
    print("=== Structure Interpreter Demo ===\n")

    demo_schema = """
meta:
  id: my_format
  endian: le
seq:
  - id: magic
    type: u4
    contents: [0x89, 0x50, 0x4E, 0x47]
  - id: count
    type: u2
  - id: items
    type: item_t
    repeat: expr
    repeat-expr: count
types:
  item_t:
    seq:
      - id: value
        type: u4
"""
    payload = bytes([0x89, 0x50, 0x4E, 0x47, 0x02, 0x00,
                     0x01, 0x00, 0x00, 0x00, 0xFF, 0x00, 0x00, 0x00])

    result = parse_binary(demo_schema, payload)
    print(f"Payload: {payload.hex().upper()}")
    print(f"Bytes read: {result.bytes_read}\n")
    for node, depth in result.root.walk():
        value = node.value_string()
        suffix = f" = {value}" if value is not None else ""
        print(f"{'  ' * depth}{node.name} [{node.offset}, {node.end}){suffix}")
    if result.warnings:
        print("\nWarnings:")
        for w in result.warnings:
            print(f"  {w}")
