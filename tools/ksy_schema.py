"""
ksy_schema.py - Typed model of a .ksy structure schema

Converts the generic value tree produced by markup_parser (or by PyYAML)
into immutable Schema / Field objects. Each field is classified once,
here, into one of four kinds:

    contents   - magic-number check ("contents: [0x89, 0x50, ...]")
    string     - str / strz
    user_type  - name of an entry in the schema's `types`
    primitive  - (u|s)(1|2|3|4)(le|be)?

Classification order is fixed: contents, then string type names, then
type-table membership, else primitive. A user type named like a primitive
(e.g. "u4") therefore still resolves to the user type. A contents field
wraps the field it would otherwise be, so str and user-type fields can
carry a magic check too.

Usage:
    from ksy_schema import parse_ksy_schema

    schema = parse_ksy_schema(open('png.ksy').read())
    print(schema.meta.id, [f.id for f in schema.seq])
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union

import yaml

from ksy_errors import MissingEndian, SchemaError
from markup_parser import parse_markup

logger = logging.getLogger(__name__)

PRIMITIVE_RE = re.compile(r'^([us])([1-4])(le|be)?$')
STRING_TYPES = ('str', 'strz')

# Literal number or the id of an earlier field in the same scope
Expr = Union[int, float, str]


class Endian(Enum):
    LITTLE = 'le'
    BIG = 'be'

    @property
    def byteorder(self) -> str:
        return 'little' if self is Endian.LITTLE else 'big'


class FieldKind(Enum):
    CONTENTS = 'contents'
    STRING = 'string'
    USER_TYPE = 'user_type'
    PRIMITIVE = 'primitive'


@dataclass(frozen=True)
class PrimitiveType:
    """Resolved integer type: byte size, signedness, endianness."""
    size: int
    signed: bool
    endian: Optional[Endian] = None  # None only for 1-byte types

    @property
    def little_endian(self) -> bool:
        return self.endian is Endian.LITTLE

    @property
    def label(self) -> str:
        name = f"{'s' if self.signed else 'u'}{self.size}"
        if self.endian is not None:
            name += self.endian.value
        return name


def parse_primitive_type(type_name: str,
                         default_endian: Optional[Endian] = None) -> Optional[PrimitiveType]:
    """
    Parse a compact primitive token such as "u2", "s4be" or "u3le".

    Returns None when the name is not a primitive token at all.
    Raises MissingEndian for a multi-byte type when neither the token nor
    the schema names an endianness.
    """
    match = PRIMITIVE_RE.match(type_name)
    if not match:
        return None

    sign_char, size_str, endian_str = match.groups()
    size = int(size_str)

    endian = None
    if size > 1:
        if endian_str:
            endian = Endian(endian_str)
        elif default_endian is not None:
            endian = default_endian
        else:
            raise MissingEndian(type_name)

    return PrimitiveType(size=size, signed=sign_char == 's', endian=endian)


def is_string_type(type_name: str) -> bool:
    return type_name in STRING_TYPES


# =============================================================================
# Fields
# =============================================================================

@dataclass(frozen=True)
class Field:
    """Fields shared by every kind; `repeat_expr` set means array field."""
    id: str
    type: str
    doc: Optional[str] = None
    repeat_expr: Optional[Expr] = None

    kind: ClassVar[FieldKind]

    @property
    def is_array(self) -> bool:
        return self.repeat_expr is not None


@dataclass(frozen=True)
class ContentsField(Field):
    """Magic-byte check over whatever `target` (the same field without contents) reads."""
    contents: bytes = b''
    target: Optional[Field] = None

    kind: ClassVar[FieldKind] = FieldKind.CONTENTS


@dataclass(frozen=True)
class StringField(Field):
    size: Optional[Expr] = None
    encoding: Optional[str] = None

    kind: ClassVar[FieldKind] = FieldKind.STRING

    @property
    def zero_terminated(self) -> bool:
        return self.type == 'strz'


@dataclass(frozen=True)
class PrimitiveField(Field):
    # None when the type name matched nothing; decoding raises UnknownType
    primitive: Optional[PrimitiveType] = None

    kind: ClassVar[FieldKind] = FieldKind.PRIMITIVE


@dataclass(frozen=True)
class UserTypeField(Field):
    kind: ClassVar[FieldKind] = FieldKind.USER_TYPE


@dataclass(frozen=True)
class UserType:
    seq: Tuple[Field, ...]
    doc: Optional[str] = None


@dataclass(frozen=True)
class Meta:
    id: str
    endian: Optional[Endian] = None
    encoding: Optional[str] = None
    file_extension: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Schema:
    meta: Meta
    seq: Tuple[Field, ...]
    types: Dict[str, UserType] = field(default_factory=dict)
    doc: Optional[str] = None

    def has_type(self, name: str) -> bool:
        return name in self.types

    def to_dict(self) -> Dict[str, Any]:
        """Summary used by the CLI (--json)."""
        return {
            'id': self.meta.id,
            'endian': self.meta.endian.value if self.meta.endian else None,
            'encoding': self.meta.encoding,
            'file_extension': list(self.meta.file_extension),
            'seq': [f.id for f in self.seq],
            'types': {name: [f.id for f in t.seq] for name, t in self.types.items()},
        }


# =============================================================================
# Conversion from the generic value tree
# =============================================================================

def _optional_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _parse_endian(value: Any) -> Optional[Endian]:
    if value is None:
        return None
    if value in ('le', 'be'):
        return Endian(value)
    raise SchemaError(f"meta.endian must be 'le' or 'be', got {value!r}")


def _parse_file_extension(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return tuple(value)
    raise SchemaError('meta.file-extension must be a string or list of strings')


def _parse_expr(value: Any, key: str, field_id: str) -> Optional[Expr]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise SchemaError(f'Field "{field_id}": {key} must be a number or field reference')
    return value


def _parse_contents(value: Any, field_id: str) -> bytes:
    """Expected magic bytes: ints 0-255 and/or strings (UTF-8)."""
    if isinstance(value, str):
        return value.encode('utf-8')
    if not isinstance(value, list):
        raise SchemaError(f'Field "{field_id}": contents must be a list')

    out = bytearray()
    for item in value:
        if isinstance(item, bool):
            raise SchemaError(f'Field "{field_id}": invalid contents byte {item!r}')
        if isinstance(item, int) and 0 <= item <= 0xFF:
            out.append(item)
        elif isinstance(item, str):
            out.extend(item.encode('utf-8'))
        else:
            raise SchemaError(f'Field "{field_id}": invalid contents byte {item!r}')
    return bytes(out)


class _SchemaBuilder:
    """Carries the schema-wide defaults needed while converting fields."""

    def __init__(self, default_endian: Optional[Endian], type_names):
        self.default_endian = default_endian
        self.type_names = set(type_names)

    def convert_seq(self, seq: Any, where: str) -> Tuple[Field, ...]:
        if not isinstance(seq, list):
            raise SchemaError(f'{where} is required and must be a list')
        return tuple(self.convert_field(entry) for entry in seq)

    def convert_field(self, obj: Any) -> Field:
        if not isinstance(obj, dict):
            raise SchemaError('Field must be a map')

        field_id = obj.get('id')
        type_name = obj.get('type')
        if not isinstance(field_id, str):
            raise SchemaError('Field id is required and must be a string')
        if not isinstance(type_name, str):
            raise SchemaError(f'Field type is required for field "{field_id}"')

        common = {
            'id': field_id,
            'type': type_name,
            'doc': _optional_str(obj.get('doc')),
            'repeat_expr': self._repeat(obj, field_id),
        }

        target = self._classify(obj, type_name, field_id, common)
        if 'contents' in obj:
            return ContentsField(
                contents=_parse_contents(obj['contents'], field_id),
                target=target,
                **common,
            )
        return target

    def _classify(self, obj: Dict[str, Any], type_name: str, field_id: str,
                  common: Dict[str, Any]) -> Field:
        """String, user-type or primitive field; the read a contents check applies to."""
        if is_string_type(type_name):
            encoding = obj.get('encoding')
            if encoding is not None and not isinstance(encoding, str):
                raise SchemaError(f'Field "{field_id}": encoding must be a string')
            return StringField(
                size=_parse_expr(obj.get('size'), 'size', field_id),
                encoding=encoding,
                **common,
            )

        if type_name in self.type_names:
            return UserTypeField(**common)

        return PrimitiveField(
            primitive=parse_primitive_type(type_name, self.default_endian),
            **common,
        )

    @staticmethod
    def _repeat(obj: Dict[str, Any], field_id: str) -> Optional[Expr]:
        repeat = obj.get('repeat')
        if repeat is None:
            return None
        if repeat != 'expr':
            raise SchemaError(f'Field "{field_id}": unsupported repeat {repeat!r} (only "expr")')
        repeat_expr = _parse_expr(obj.get('repeat-expr'), 'repeat-expr', field_id)
        if repeat_expr is None:
            raise SchemaError(f'Field "{field_id}": repeat: expr requires repeat-expr')
        return repeat_expr

    def convert_type(self, name: str, obj: Any) -> UserType:
        if not isinstance(obj, dict):
            raise SchemaError(f'Type "{name}" must be a map')
        if 'types' in obj:
            raise SchemaError(f'Type "{name}": nested types blocks are not supported')
        return UserType(
            seq=self.convert_seq(obj.get('seq'), f'Type "{name}" seq'),
            doc=_optional_str(obj.get('doc')),
        )


def to_schema(obj: Any) -> Schema:
    """Convert a parsed value tree (dict) into a Schema."""
    if not isinstance(obj, dict):
        raise SchemaError('Schema document must be a map')

    meta = obj.get('meta')
    if not isinstance(meta, dict):
        raise SchemaError('meta section is required')

    meta_id = meta.get('id')
    if not isinstance(meta_id, str):
        raise SchemaError('meta.id is required and must be a string')

    if not isinstance(obj.get('seq'), list):
        raise SchemaError('seq section is required and must be a list')

    types_obj = obj.get('types')
    if types_obj is None:
        types_obj = {}
    if not isinstance(types_obj, dict):
        raise SchemaError('types section must be a map')

    encoding = meta.get('encoding')
    if encoding is not None and not isinstance(encoding, str):
        raise SchemaError('meta.encoding must be a string')

    endian = _parse_endian(meta.get('endian'))
    builder = _SchemaBuilder(endian, (str(name) for name in types_obj))

    schema = Schema(
        meta=Meta(
            id=meta_id,
            endian=endian,
            encoding=encoding,
            file_extension=_parse_file_extension(meta.get('file-extension')),
        ),
        seq=builder.convert_seq(obj['seq'], 'seq section'),
        types={str(name): builder.convert_type(str(name), type_def)
               for name, type_def in types_obj.items()},
        doc=_optional_str(obj.get('doc')),
    )

    logger.debug("Loaded schema %s: %d fields, %d types",
                 meta_id, len(schema.seq), len(schema.types))
    return schema


LOADERS = ('subset', 'yaml')


def load_markup(text: str, loader: str = 'subset') -> Any:
    """Parse schema text with the built-in subset parser or PyYAML."""
    if loader == 'subset':
        return parse_markup(text)
    if loader == 'yaml':
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as e:
            line = None
            mark = getattr(e, 'problem_mark', None)
            if mark is not None:
                line = mark.line + 1
            raise SchemaError(f"Invalid YAML{f' at line {line}' if line else ''}: {e}") from e
    raise ValueError(f"Unknown schema loader: {loader} (expected one of {LOADERS})")


def parse_ksy_schema(text: str, loader: str = 'subset') -> Schema:
    """Schema text -> Schema."""
    return to_schema(load_markup(text, loader))
