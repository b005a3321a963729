"""
markup_parser.py - Minimal YAML-subset parser for .ksy schema text

Only the constructs a structure schema needs are supported:

    - key: value pairs and nested maps (space indentation)
    - block lists ("- item") and list items opening an inline map
      ("- id: magic" followed by more keys at the same depth)
    - scalars: null/~, true/false, 0x hex, integers, decimals,
      quoted strings, [a, b, c] inline lists
    - # comments

This is deliberately not a general YAML implementation. Full YAML files
can be loaded with PyYAML instead (see ksy_schema.parse_ksy_schema).

Usage:
    from markup_parser import parse_markup

    tree = parse_markup(text)   # -> dict
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ksy_errors import MarkupError

HEX_RE = re.compile(r'^0x[0-9a-fA-F]+$')
INT_RE = re.compile(r'^-?\d+$')
DECIMAL_RE = re.compile(r'^-?\d+\.\d+$')


@dataclass
class ParsedLine:
    indent: int
    content: str
    line_number: int

    @property
    def is_item(self) -> bool:
        return self.content == '-' or self.content.startswith('- ')


class _Cursor:
    """Position over the significant lines."""

    def __init__(self, lines: List[ParsedLine]):
        self.lines = lines
        self.index = 0

    def peek(self) -> Optional[ParsedLine]:
        if self.index < len(self.lines):
            return self.lines[self.index]
        return None


def strip_comment(line: str) -> str:
    """Drop a trailing # comment that is outside quotes."""
    quote = None
    for i, ch in enumerate(line):
        if quote:
            if ch == quote:
                quote = None
        elif ch in ('"', "'"):
            quote = ch
        elif ch == '#' and (i == 0 or line[i - 1] in ' \t'):
            return line[:i]
    return line


def split_lines(text: str) -> List[ParsedLine]:
    """Strip comments/blank lines and measure indentation."""
    lines = []
    for number, raw in enumerate(text.splitlines(), start=1):
        content = strip_comment(raw).rstrip()
        if not content.strip():
            continue
        indent = len(content) - len(content.lstrip(' '))
        lines.append(ParsedLine(indent, content.strip(), number))
    return lines


def parse_markup(text: str) -> Dict[str, Any]:
    """Parse schema text into nested dicts/lists/scalars."""
    lines = split_lines(text)
    if not lines:
        return {}

    cursor = _Cursor(lines)
    result = _parse_map(cursor, 0)

    leftover = cursor.peek()
    if leftover is not None:
        raise MarkupError(f"unexpected content {leftover.content!r}",
                          leftover.line_number)
    return result


def _split_key(line: ParsedLine, content: str):
    colon = content.find(':')
    if colon == -1:
        raise MarkupError('expected "key: value"', line.line_number)
    return content[:colon].strip(), content[colon + 1:].strip()


def _store(result: Dict[str, Any], key: str, value: Any, line: ParsedLine) -> None:
    if key in result:
        raise MarkupError(f"duplicate key {key!r}", line.line_number)
    result[key] = value


def _parse_nested(cursor: _Cursor, owner: ParsedLine) -> Any:
    """Value of a key with nothing after its colon: look at the next line."""
    following = cursor.peek()
    if following is None or following.indent <= owner.indent:
        return None
    if following.content.startswith('-'):
        return _parse_list(cursor, following.indent)
    return _parse_map(cursor, following.indent)


def _parse_map(cursor: _Cursor, min_indent: int) -> Dict[str, Any]:
    result: Dict[str, Any] = {}

    while True:
        line = cursor.peek()
        if line is None or line.indent < min_indent or line.is_item:
            break

        key, value_str = _split_key(line, line.content)
        cursor.index += 1

        if value_str == '':
            value = _parse_nested(cursor, line)
        else:
            value = parse_scalar(value_str)
        _store(result, key, value, line)

    return result


def _parse_list(cursor: _Cursor, min_indent: int) -> List[Any]:
    result: List[Any] = []

    while True:
        line = cursor.peek()
        if line is None or line.indent < min_indent:
            break
        if not line.content.startswith('-'):
            break

        item = line.content[1:].strip()
        cursor.index += 1

        if item == '':
            result.append(_parse_nested(cursor, line))
        elif ':' in item and not _is_flow_scalar(item):
            result.append(_parse_inline_map(cursor, line, item))
        else:
            result.append(parse_scalar(item))

    return result


def _is_flow_scalar(item: str) -> bool:
    return item[0] in ('"', "'", '[')


def _parse_inline_map(cursor: _Cursor, dash_line: ParsedLine, first: str) -> Dict[str, Any]:
    """A "- key: value" item plus any further keys belonging to it."""
    obj: Dict[str, Any] = {}

    key, value_str = _split_key(dash_line, first)
    if value_str == '':
        obj[key] = _parse_nested(cursor, dash_line)
    else:
        obj[key] = parse_scalar(value_str)

    while True:
        line = cursor.peek()
        if line is None or line.indent <= dash_line.indent:
            break
        if line.content.startswith('-') or ':' not in line.content:
            break

        key, value_str = _split_key(line, line.content)
        cursor.index += 1

        if value_str == '':
            value = _parse_nested(cursor, line)
        else:
            value = parse_scalar(value_str)
        _store(obj, key, value, line)

    return obj


def parse_scalar(text: str) -> Any:
    """Resolve a scalar literal."""
    if text == '':
        return None
    if text in ('null', '~'):
        return None
    if text == 'true':
        return True
    if text == 'false':
        return False
    if HEX_RE.match(text):
        return int(text, 16)
    if INT_RE.match(text):
        return int(text)
    if DECIMAL_RE.match(text):
        return float(text)
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ('"', "'"):
        return text[1:-1]
    if text.startswith('[') and text.endswith(']'):
        inner = text[1:-1].strip()
        if inner == '':
            return []
        return [parse_scalar(item.strip()) for item in inner.split(',')]
    return text
