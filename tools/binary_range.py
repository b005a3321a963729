"""
binary_range.py - Range tree produced by the structure interpreter

A BinaryRange names a contiguous region [offset, offset + length) of one
shared buffer, optionally renders its value, and owns its sub-ranges.
All ranges from one parse share a single read-only memoryview, so the tree
costs O(total bytes) no matter how deeply it nests.

Usage:
    root = result.root
    for node, depth in root.walk():
        print('  ' * depth, node.name, node.value_string())

    # Highlighting: every range on the path to byte 0x10
    path = root.ranges_containing(0x10)
"""

from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union


def as_view(data: Union[bytes, bytearray, memoryview]) -> memoryview:
    """Read-only memoryview over a caller's buffer."""
    view = data if isinstance(data, memoryview) else memoryview(data)
    return view.toreadonly()


class BinaryRange:
    """A named byte region with an optional renderer and child ranges."""

    __slots__ = ('buffer', 'offset', 'length', 'name', 'interpret_type', 'sub_ranges')

    def __init__(self, buffer: memoryview, offset: int, length: int, name: str,
                 interpret_type=None, sub_ranges: Optional[Sequence['BinaryRange']] = None):
        if offset < 0 or length < 0 or offset + length > len(buffer):
            raise ValueError(
                f"Range {name!r} [{offset}, {offset + length}) outside buffer of {len(buffer)} bytes"
            )
        self.buffer = buffer
        self.offset = offset
        self.length = length
        self.name = name
        self.interpret_type = interpret_type
        self.sub_ranges: List[BinaryRange] = list(sub_ranges or ())

    @property
    def end(self) -> int:
        return self.offset + self.length

    @property
    def data(self) -> memoryview:
        """Zero-copy view of this range's bytes."""
        return self.buffer[self.offset:self.end]

    def contains(self, index: int) -> bool:
        """Does byte `index` fall inside this range?"""
        return self.offset <= index < self.end

    def contains_range(self, offset: int, length: int = 1) -> bool:
        """Is [offset, offset + length) entirely inside this range?"""
        return length >= 0 and self.offset <= offset and offset + length <= self.end

    def overlaps(self, offset: int, length: int = 1) -> bool:
        """Does [offset, offset + length) share at least one byte with this range?"""
        return length > 0 and self.length > 0 and offset < self.end and self.offset < offset + length

    def ranges_containing(self, offset: int, length: int = 1) -> List['BinaryRange']:
        """
        All ranges in this subtree that fully contain [offset, offset + length),
        in pre-order (this node first). Used for synchronized highlighting.
        """
        if not self.contains_range(offset, length) or self.length == 0:
            return []
        found = [self]
        for child in self.sub_ranges:
            found.extend(child.ranges_containing(offset, length))
        return found

    def type_label(self) -> Optional[str]:
        if self.interpret_type is None:
            return None
        return self.interpret_type.label

    def value_string(self) -> Optional[str]:
        """Rendered value, or None for ranges without a renderer."""
        if self.interpret_type is None:
            return None
        return self.interpret_type.interpret(self.data)

    def walk(self, depth: int = 0) -> Iterator[Tuple['BinaryRange', int]]:
        """Pre-order traversal yielding (node, depth)."""
        yield self, depth
        for child in self.sub_ranges:
            yield from child.walk(depth + 1)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            'name': self.name,
            'offset': self.offset,
            'length': self.length,
        }
        if self.interpret_type is not None:
            result['type'] = self.type_label()
            result['value'] = self.value_string()
        if self.sub_ranges:
            result['children'] = [child.to_dict() for child in self.sub_ranges]
        return result

    def __repr__(self) -> str:
        return f"BinaryRange({self.name!r}, offset={self.offset}, length={self.length})"
