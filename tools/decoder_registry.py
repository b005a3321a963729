"""
decoder_registry.py - Lookup of built-in and schema-driven decoders

A parser reference names where a decoder comes from:

    zip          built-in ZIP decoder
    text         built-in text decoder
    ksy:<name>   schema <name> from the SchemaStore, run by the interpreter

Every decoder maps bytes to a BinaryRange tree; run() wraps that in a
ParseResult so callers get warnings from schema decoders too.

Usage:
    from decoder_registry import resolve_decoder
    from schema_store import SchemaStore

    decoder = resolve_decoder('ksy:png', SchemaStore())
    result = decoder.run(data)
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from binary_range import BinaryRange
from ksy_errors import SchemaError
from ksy_schema import parse_ksy_schema
from structure_interpreter import ParseResult, StructureInterpreter
from text_decoder import TextDecoder
from zip_decoder import ZipDecoder

logger = logging.getLogger(__name__)

KSY_PREFIX = 'ksy:'


@dataclass(frozen=True)
class BinaryDecoder:
    id: str
    name: str
    decode: Callable[[bytes], BinaryRange]
    parse: Optional[Callable[[bytes], ParseResult]] = None

    def run(self, data) -> ParseResult:
        if self.parse is not None:
            return self.parse(data)
        root = self.decode(data)
        return ParseResult(root=root, bytes_read=root.length)


BUILTIN_DECODERS = (
    BinaryDecoder('zip', 'ZIP', ZipDecoder.parse),
    BinaryDecoder('text', 'Text', TextDecoder.parse),
)


def get_builtin_decoders() -> List[BinaryDecoder]:
    return list(BUILTIN_DECODERS)


def get_builtin_decoder(decoder_id: str) -> Optional[BinaryDecoder]:
    for decoder in BUILTIN_DECODERS:
        if decoder.id == decoder_id:
            return decoder
    return None


def is_builtin_decoder(decoder_id: str) -> bool:
    return get_builtin_decoder(decoder_id) is not None


def schema_decoder(name: str, text: str, loader: str = 'subset') -> BinaryDecoder:
    """Decoder backed by schema text; the schema is parsed once, here."""
    interpreter = StructureInterpreter(parse_ksy_schema(text, loader))
    return BinaryDecoder(
        id=KSY_PREFIX + name,
        name=interpreter.schema.meta.id,
        decode=lambda data: interpreter.parse(data).root,
        parse=interpreter.parse,
    )


def resolve_decoder(ref: str, store=None, loader: str = 'subset') -> BinaryDecoder:
    """
    Turn a parser reference into a decoder.

    Raises:
        ValueError: unknown reference, or ksy:<name> without a store
        SchemaError: the named schema is missing or invalid
    """
    builtin = get_builtin_decoder(ref)
    if builtin is not None:
        return builtin

    if ref.startswith(KSY_PREFIX):
        name = ref[len(KSY_PREFIX):]
        if store is None:
            raise ValueError(f"Parser {ref} needs a schema store")
        text = store.load(name)
        if text is None:
            raise SchemaError(f"Schema not found: {name}")
        logger.debug("Resolved %s from %s", ref, store.root)
        return schema_decoder(name, text, loader)

    known = ', '.join(d.id for d in BUILTIN_DECODERS)
    raise ValueError(f"Unknown parser: {ref} (expected {known} or {KSY_PREFIX}<name>)")
