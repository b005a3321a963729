"""
test_hypothesis.py - Property-based testing with Hypothesis

Properties checked over generated buffers and values:
- Every decoder either fails with DecodeError or returns a well-formed
  tree: children inside their parent, siblings in order, no overlap
- Integer reads agree with int.to_bytes for every size/sign/endian
- strz never reads past its bound and stops after the first NUL
- Parsing the same bytes twice gives the same tree
- The markup subset parser agrees with yaml.safe_load

Run with:
    pytest tests/test_hypothesis.py -v
    HYPOTHESIS_PROFILE=ci pytest tests/test_hypothesis.py
"""

import pytest
from hypothesis import given, settings, HealthCheck
from hypothesis import strategies as st
import sys
from pathlib import Path

import yaml

sys.path.insert(0, str(Path(__file__).parent.parent / 'tools'))
from binary_range import BinaryRange
from byte_reader import read_primitive, read_stringz
from ksy_errors import DecodeError
from ksy_schema import Endian, PrimitiveType, parse_ksy_schema
from markup_parser import parse_markup
from structure_interpreter import StructureInterpreter
from text_decoder import TextDecoder
from zip_decoder import ZipDecoder


# =============================================================================
# Strategies for generating test data
# =============================================================================

bytes_strategy = st.binary(min_size=0, max_size=256)

primitive_types = st.builds(
    PrimitiveType,
    size=st.integers(min_value=1, max_value=4),
    signed=st.booleans(),
    endian=st.sampled_from([Endian.LITTLE, Endian.BIG]),
)

# words PyYAML resolves to bool/null
YAML_KEYWORDS = ('null', 'true', 'false', 'yes', 'no', 'on', 'off')

identifiers = st.from_regex(r'[a-z][a-z0-9_]{0,11}', fullmatch=True).filter(
    lambda s: s not in YAML_KEYWORDS
)

type_names = st.sampled_from(['u1', 'u2', 'u4be', 's2le', 's3', 'strz', 'item_t'])


# =============================================================================
# Helpers
# =============================================================================

def assert_well_formed(root: BinaryRange, buffer_length: int):
    """Children nested in parents, siblings ordered and disjoint."""
    assert 0 <= root.offset <= root.end <= buffer_length
    for node, _ in root.walk():
        previous_end = node.offset
        for child in node.sub_ranges:
            assert node.offset <= child.offset
            assert child.end <= node.end
            assert child.offset >= previous_end
            previous_end = child.end


MY_FORMAT = StructureInterpreter(parse_ksy_schema("""
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
"""))

STRINGS_SCHEMA = StructureInterpreter(parse_ksy_schema("""
meta:
  id: strings
  endian: be
seq:
  - id: len
    type: u1
  - id: name
    type: str
    size: len
  - id: label
    type: strz
    size: 8
  - id: blocks
    type: block_t
    repeat: expr
    repeat-expr: 2
types:
  block_t:
    seq:
      - id: n
        type: u1
      - id: data
        type: s2
        repeat: expr
        repeat-expr: n
"""))


# =============================================================================
# Property Tests: Tree Shape
# =============================================================================

class TestTreeShape:
    """Decoders never crash and always emit well-formed trees."""

    @pytest.mark.parametrize('interpreter', [MY_FORMAT, STRINGS_SCHEMA], ids=['my_format', 'strings'])
    @given(data=bytes_strategy)
    @settings(max_examples=300, suppress_health_check=[HealthCheck.too_slow])
    def test_interpreter(self, interpreter, data):
        try:
            result = interpreter.parse(data)
        except DecodeError:
            return
        assert result.root.end == result.bytes_read
        assert_well_formed(result.root, len(data))

    @given(count=st.integers(min_value=0, max_value=20), tail=bytes_strategy)
    def test_interpreter_valid_input(self, count, tail):
        data = b'\x89PNG' + count.to_bytes(2, 'little') + bytes(4 * count) + tail
        result = MY_FORMAT.parse(data)
        assert result.bytes_read == 6 + 4 * count
        assert len(result.root.sub_ranges) == 2 + count
        assert result.warnings == []
        assert_well_formed(result.root, len(data))

    @given(bytes_strategy)
    def test_text_decoder_covers_buffer(self, data):
        root = TextDecoder.parse(data)
        assert (root.offset, root.end) == (0, len(data))
        assert_well_formed(root, len(data))
        # lines tile the whole buffer
        assert sum(line.length for line in root.sub_ranges) == len(data)

    @given(bytes_strategy)
    def test_zip_decoder_random_bytes(self, data):
        try:
            root = ZipDecoder.parse(data)
        except DecodeError:
            return
        assert_well_formed(root, len(data))


# =============================================================================
# Property Tests: Primitive Round-trip
# =============================================================================

class TestPrimitives:

    @given(primitive_types, st.data())
    def test_read_matches_to_bytes(self, primitive, data):
        bits = primitive.size * 8
        if primitive.signed:
            value = data.draw(st.integers(min_value=-(1 << (bits - 1)), max_value=(1 << (bits - 1)) - 1))
        else:
            value = data.draw(st.integers(min_value=0, max_value=(1 << bits) - 1))

        raw = value.to_bytes(primitive.size, primitive.endian.byteorder, signed=primitive.signed)
        assert read_primitive(raw, 0, primitive) == value

    @given(primitive_types, st.binary(min_size=4, max_size=4))
    def test_interpreter_renders_value(self, primitive, raw):
        text = f"meta:\n  id: p\nseq:\n  - id: v\n    type: {primitive.label}\n"
        result = StructureInterpreter(parse_ksy_schema(text)).parse(raw)
        expected = int.from_bytes(raw[:primitive.size], primitive.endian.byteorder,
                                  signed=primitive.signed)
        assert result.root.sub_ranges[0].value_string() == str(expected)


# =============================================================================
# Property Tests: strz Bound
# =============================================================================

class TestStrz:

    @given(bytes_strategy, st.one_of(st.none(), st.integers(min_value=0, max_value=300)))
    def test_never_past_bound(self, data, max_size):
        _, consumed = read_stringz(data, 0, max_size)
        limit = len(data) if max_size is None else min(max_size, len(data))
        assert consumed <= limit

        window = data[:limit]
        if 0 in window:
            assert consumed == window.index(0) + 1
        else:
            assert consumed == limit


# =============================================================================
# Property Tests: Idempotence
# =============================================================================

class TestIdempotence:

    @given(bytes_strategy)
    def test_same_tree(self, data):
        try:
            first = STRINGS_SCHEMA.parse(data)
        except DecodeError:
            return
        second = STRINGS_SCHEMA.parse(data)
        assert first.to_dict() == second.to_dict()


# =============================================================================
# Property Tests: Markup Parser vs PyYAML
# =============================================================================

class TestMarkupAgreesWithYaml:

    @given(
        meta_id=identifiers,
        fields=st.lists(st.tuples(identifiers, type_names), min_size=1, max_size=6,
                        unique_by=lambda t: t[0]),
        endian=st.sampled_from(['le', 'be']),
    )
    def test_generated_schema(self, meta_id, fields, endian):
        lines = ['meta:', f'  id: {meta_id}', f'  endian: {endian}', 'seq:']
        for field_id, type_name in fields:
            lines.append(f'  - id: {field_id}')
            lines.append(f'    type: {type_name}')
        text = '\n'.join(lines) + '\n'

        assert parse_markup(text) == yaml.safe_load(text)

    @given(st.lists(st.integers(min_value=0, max_value=255), max_size=8))
    def test_contents_list(self, values):
        text = 'contents: [' + ', '.join(f'0x{v:02X}' for v in values) + ']\n'
        assert parse_markup(text) == yaml.safe_load(text)
