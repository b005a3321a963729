"""
Tests for schema model conversion (ksy_schema).

Coverage:
- Primitive type tokens and endian resolution
- Field classification into contents / string / user type / primitive
- Structural validation errors
- Subset loader vs PyYAML loader
"""

import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'tools'))

from ksy_errors import MarkupError, MissingEndian, SchemaError
from ksy_schema import (
    ContentsField, Endian, FieldKind, PrimitiveField, PrimitiveType,
    StringField, UserTypeField, load_markup, parse_ksy_schema,
    parse_primitive_type, to_schema,
)


class TestPrimitiveTypes:

    @pytest.mark.parametrize('name,size,signed,endian', [
        ('u1', 1, False, None),
        ('s1', 1, True, None),
        ('u2le', 2, False, Endian.LITTLE),
        ('s4be', 4, True, Endian.BIG),
        ('u3be', 3, False, Endian.BIG),
    ])
    def test_explicit(self, name, size, signed, endian):
        assert parse_primitive_type(name) == PrimitiveType(size, signed, endian)

    def test_default_endian_applies(self):
        assert parse_primitive_type('u2', Endian.BIG).endian is Endian.BIG

    def test_suffix_overrides_default(self):
        assert parse_primitive_type('u2le', Endian.BIG).endian is Endian.LITTLE

    def test_one_byte_ignores_default(self):
        assert parse_primitive_type('u1', Endian.LITTLE).endian is None

    def test_missing_endian(self):
        with pytest.raises(MissingEndian) as exc:
            parse_primitive_type('u4')
        assert exc.value.type_name == 'u4'

    @pytest.mark.parametrize('name', ['u8', 'u0', 'f4', 'u2LE', 'str', 'item_t'])
    def test_not_primitive(self, name):
        assert parse_primitive_type(name, Endian.LITTLE) is None

    def test_label(self):
        assert PrimitiveType(2, False, Endian.LITTLE).label == 'u2le'
        assert PrimitiveType(1, True).label == 's1'


class TestClassification:
    """Each field gets exactly one kind, decided once at load time."""

    def _fields(self, seq_text, types_text='', endian='le'):
        text = f"meta:\n  id: t\n  endian: {endian}\nseq:\n{seq_text}{types_text}"
        return parse_ksy_schema(text).seq

    def test_primitive(self):
        (f,) = self._fields("  - id: n\n    type: u2\n")
        assert isinstance(f, PrimitiveField)
        assert f.kind is FieldKind.PRIMITIVE
        assert f.primitive == PrimitiveType(2, False, Endian.LITTLE)

    def test_contents(self):
        (f,) = self._fields("  - id: magic\n    type: u4\n    contents: [0x89, 0x50, 0x4E, 0x47]\n")
        assert isinstance(f, ContentsField)
        assert f.contents == b'\x89PNG'
        assert isinstance(f.target, PrimitiveField)
        assert f.target.primitive == PrimitiveType(4, False, Endian.LITTLE)

    def test_contents_on_string(self):
        (f,) = self._fields("  - id: sig\n    type: str\n    size: 3\n    contents: [PNG]\n")
        assert f.kind is FieldKind.CONTENTS
        assert isinstance(f.target, StringField)
        assert f.target.size == 3

    def test_contents_on_user_type(self):
        (f,) = self._fields(
            "  - id: hdr\n    type: hdr_t\n    contents: [1]\n",
            "types:\n  hdr_t:\n    seq:\n      - id: a\n        type: u1\n",
        )
        assert isinstance(f.target, UserTypeField)
        assert f.target.type == 'hdr_t'

    def test_contents_string_items(self):
        (f,) = self._fields("  - id: magic\n    type: u2\n    contents: [PK]\n")
        assert f.contents == b'PK'

    def test_contents_byte_out_of_range(self):
        with pytest.raises(SchemaError):
            self._fields("  - id: magic\n    type: u1\n    contents: [256]\n")

    def test_string_kinds(self):
        a, b = self._fields(
            "  - id: name\n    type: str\n    size: 4\n    encoding: ascii\n"
            "  - id: label\n    type: strz\n"
        )
        assert isinstance(a, StringField) and not a.zero_terminated
        assert a.size == 4 and a.encoding == 'ascii'
        assert isinstance(b, StringField) and b.zero_terminated
        assert b.size is None

    def test_user_type(self):
        (f,) = self._fields(
            "  - id: header\n    type: header_t\n",
            "types:\n  header_t:\n    seq:\n      - id: a\n        type: u1\n",
        )
        assert isinstance(f, UserTypeField)

    def test_user_type_shadows_primitive_name(self):
        (f,) = self._fields(
            "  - id: x\n    type: u4\n",
            "types:\n  u4:\n    seq:\n      - id: a\n        type: u1\n",
        )
        assert f.kind is FieldKind.USER_TYPE

    def test_unknown_type_kept_for_decode_time(self):
        (f,) = self._fields("  - id: x\n    type: mystery\n")
        assert isinstance(f, PrimitiveField)
        assert f.primitive is None

    def test_repeat(self):
        (f,) = self._fields("  - id: items\n    type: u1\n    repeat: expr\n    repeat-expr: count\n")
        assert f.is_array
        assert f.repeat_expr == 'count'

    def test_repeat_without_expr(self):
        with pytest.raises(SchemaError):
            self._fields("  - id: items\n    type: u1\n    repeat: expr\n")

    def test_unsupported_repeat_mode(self):
        with pytest.raises(SchemaError):
            self._fields("  - id: items\n    type: u1\n    repeat: eos\n")

    def test_missing_endian_at_load(self):
        text = "meta:\n  id: t\nseq:\n  - id: n\n    type: u2\n"
        with pytest.raises(MissingEndian):
            parse_ksy_schema(text)


class TestSchemaStructure:

    def test_meta(self):
        schema = parse_ksy_schema(
            "meta:\n  id: png\n  endian: be\n  encoding: ascii\n"
            "  file-extension: [png, apng]\nseq: []\n"
        )
        assert schema.meta.id == 'png'
        assert schema.meta.endian is Endian.BIG
        assert schema.meta.encoding == 'ascii'
        assert schema.meta.file_extension == ('png', 'apng')

    def test_single_file_extension(self):
        schema = parse_ksy_schema("meta:\n  id: x\n  file-extension: bin\nseq: []\n")
        assert schema.meta.file_extension == ('bin',)

    @pytest.mark.parametrize('obj', [
        [],
        {'seq': []},
        {'meta': {}, 'seq': []},
        {'meta': {'id': 'x'}},
        {'meta': {'id': 'x'}, 'seq': {}},
        {'meta': {'id': 'x', 'endian': 'middle'}, 'seq': []},
        {'meta': {'id': 'x'}, 'seq': [{'type': 'u1'}]},
        {'meta': {'id': 'x'}, 'seq': [{'id': 'a'}]},
        {'meta': {'id': 'x'}, 'seq': ['a']},
        {'meta': {'id': 'x'}, 'seq': [], 'types': []},
        {'meta': {'id': 'x'}, 'seq': [], 'types': {'t': {}}},
    ])
    def test_invalid_structure(self, obj):
        with pytest.raises(SchemaError):
            to_schema(obj)

    def test_nested_types_block_rejected(self):
        obj = {
            'meta': {'id': 'x'},
            'seq': [],
            'types': {'outer': {'seq': [], 'types': {'inner': {'seq': []}}}},
        }
        with pytest.raises(SchemaError):
            to_schema(obj)

    def test_schema_is_immutable(self):
        schema = parse_ksy_schema("meta:\n  id: x\nseq: []\n")
        with pytest.raises(AttributeError):
            schema.meta.id = 'y'

    def test_to_dict(self, my_format_ksy):
        summary = parse_ksy_schema(my_format_ksy).to_dict()
        assert summary['id'] == 'my_format'
        assert summary['endian'] == 'le'
        assert summary['seq'] == ['magic', 'count', 'items']
        assert summary['types'] == {'item_t': ['value']}


class TestLoaders:

    def test_yaml_loader_matches_subset(self, my_format_ksy):
        assert parse_ksy_schema(my_format_ksy, 'yaml') == parse_ksy_schema(my_format_ksy, 'subset')

    def test_yaml_only_syntax(self):
        text = "meta: {id: flow, endian: le}\nseq: [{id: n, type: u2}]\n"
        schema = parse_ksy_schema(text, loader='yaml')
        assert schema.seq[0].id == 'n'

    def test_invalid_yaml(self):
        with pytest.raises(SchemaError):
            load_markup("meta: [unclosed\n", loader='yaml')

    def test_subset_markup_error_is_schema_error(self):
        with pytest.raises(SchemaError):
            parse_ksy_schema("meta:\n  id x\n")
        with pytest.raises(MarkupError):
            parse_ksy_schema("meta:\n  id x\n")

    def test_unknown_loader(self):
        with pytest.raises(ValueError):
            load_markup("meta: {}", loader='toml')
