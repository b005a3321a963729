#!/usr/bin/env python3
"""
binary_viewer.py - Command-line binary viewer

Decodes a file with a .ksy schema or a built-in decoder and prints the
range tree, a hex grid, or JSON. Also manages the named schema store and
the file-extension -> parser mapping.

Usage:
    binview view image.png --schema png.ksy
    binview view archive.zip --parser zip --hex
    binview view data.bin --parser ksy:my_format --at 0x10 --json
    binview view image.png                      # parser from extension map

    binview schema save png png.ksy
    binview schema list
    binview schema export -o schemas.yaml
    binview schema import schemas.yaml --overwrite

    binview ext set .png ksy:png
    binview ext list

The store lives in $BINVIEW_HOME (default ~/.binview); --home overrides it.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from binary_range import BinaryRange
from decoder_registry import resolve_decoder, schema_decoder
from ksy_schema import LOADERS
from schema_store import ExtensionMap, SchemaStore, extension_from_filename
from structure_interpreter import ParseResult

logger = logging.getLogger('binary_viewer')

HEX_COLUMNS = 16


def format_node(node: BinaryRange, depth: int) -> str:
    line = f"{'  ' * depth}{node.name} [{node.offset:#06x}+{node.length}]"
    value = node.value_string()
    if value is not None:
        line += f" {node.type_label()} = {value}"
    return line


def format_tree(root: BinaryRange, max_depth: Optional[int] = None) -> List[str]:
    return [format_node(node, depth) for node, depth in root.walk()
            if max_depth is None or depth <= max_depth]


def format_hex(data, highlight: Optional[BinaryRange] = None) -> List[str]:
    """
    Hex grid, 16 bytes per row with an ASCII column. Rows touching the
    highlighted range get a marker line with ^^ under its bytes.
    """
    lines = []
    for row in range(0, len(data), HEX_COLUMNS):
        chunk = bytes(data[row:row + HEX_COLUMNS])
        cells = ' '.join(f'{b:02X}' for b in chunk)
        text = ''.join(chr(b) if 0x20 <= b < 0x7F else '.' for b in chunk)
        lines.append(f"{row:08X}  {cells:<{HEX_COLUMNS * 3 - 1}}  |{text}|")

        if highlight is not None and highlight.overlaps(row, len(chunk)):
            marks = ' '.join('^^' if highlight.contains(row + i) else '  '
                             for i in range(len(chunk)))
            lines.append(f"{'':8}  {marks.rstrip()}")
    return lines


def _select_decoder(args, store: SchemaStore, extensions: ExtensionMap):
    if args.schema:
        path = Path(args.schema)
        return schema_decoder(path.stem, path.read_text(encoding='utf-8'), args.loader)

    ref = args.parser
    if ref is None:
        ext = extension_from_filename(args.file)
        ref = extensions.get(ext) if ext else None
        if ref is None:
            raise ValueError(
                f"No parser for {args.file}: use --schema/--parser or map the extension "
                f"with 'binview ext set {ext or '.EXT'} PARSER'"
            )
        logger.debug("Extension %s mapped to %s", ext, ref)
    return resolve_decoder(ref, store, args.loader)


def cmd_view(args, store: SchemaStore, extensions: ExtensionMap) -> int:
    data = Path(args.file).read_bytes()
    decoder = _select_decoder(args, store, extensions)
    result: ParseResult = decoder.run(data)

    path: List[BinaryRange] = []
    if args.at is not None:
        path = result.root.ranges_containing(args.at, args.length)

    if args.json:
        output = result.to_dict()
        output['decoder'] = decoder.id
        if args.at is not None:
            output['highlight'] = [node.name for node in path]
        print(json.dumps(output, indent=2))
        return 0

    for line in format_tree(result.root, args.max_depth):
        print(line)

    if args.at is not None:
        print()
        if path:
            print(f"At {args.at:#x}: " + ' > '.join(node.name for node in path))
        else:
            print(f"At {args.at:#x}: no range")

    if args.hex:
        print()
        for line in format_hex(result.root.buffer, path[-1] if path else None):
            print(line)

    print(f"\nBytes read: {result.bytes_read} of {len(data)}")
    for warning in result.warnings:
        print(f"[WARN] {warning}", file=sys.stderr)
    return 0


def cmd_schema(args, store: SchemaStore, extensions: ExtensionMap) -> int:
    if args.action == 'save':
        store.save(args.name, Path(args.file).read_text(encoding='utf-8'))
        print(f"Saved schema {args.name}")
    elif args.action == 'load':
        text = store.load(args.name)
        if text is None:
            print(f"ERROR: Schema not found: {args.name}", file=sys.stderr)
            return 1
        sys.stdout.write(text)
    elif args.action == 'delete':
        if not store.delete(args.name):
            print(f"ERROR: Schema not found: {args.name}", file=sys.stderr)
            return 1
        print(f"Deleted schema {args.name}")
    elif args.action == 'list':
        for name in store.list_names():
            print(name)
    elif args.action == 'export':
        text = store.export_yaml()
        if args.output:
            Path(args.output).write_text(text, encoding='utf-8')
            print(f"Exported {len(store.list_names())} schemas to {args.output}", file=sys.stderr)
        else:
            sys.stdout.write(text)
    elif args.action == 'import':
        result = store.import_yaml(Path(args.file).read_text(encoding='utf-8'), args.overwrite)
        print(f"Imported: {len(result.imported)}, skipped: {len(result.skipped)}")
        for error in result.errors:
            print(f"[WARN] {error}", file=sys.stderr)
        return 0 if result.success else 1
    return 0


def cmd_ext(args, store: SchemaStore, extensions: ExtensionMap) -> int:
    if args.action == 'set':
        extensions.save(args.extension, args.parser)
        print(f"{args.extension} -> {args.parser}")
    elif args.action == 'get':
        parser = extensions.get(args.extension)
        if parser is None:
            print(f"ERROR: No parser mapped for {args.extension}", file=sys.stderr)
            return 1
        print(parser)
    elif args.action == 'remove':
        extensions.remove(args.extension)
    elif args.action == 'list':
        for ext, parser in sorted(extensions.all().items()):
            print(f"{ext}\t{parser}")
    return 0


def _offset(text: str) -> int:
    value = int(text, 0)
    if value < 0:
        raise argparse.ArgumentTypeError(f"must be non-negative: {text}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='binview',
        description='View binary files as named ranges decoded by .ksy schemas'
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    parser.add_argument('--home', help='Store directory (default: $BINVIEW_HOME or ~/.binview)')
    subparsers = parser.add_subparsers(dest='command', required=True)

    # view
    view = subparsers.add_parser('view', help='Decode and display a file')
    view.add_argument('file', help='File to decode')
    source = view.add_mutually_exclusive_group()
    source.add_argument('--schema', help='Path to a .ksy schema file')
    source.add_argument('--parser', help='Parser reference: zip, text or ksy:<name>')
    view.add_argument('--loader', choices=LOADERS, default='subset',
                      help='Schema text loader (default: subset)')
    view.add_argument('--json', action='store_true', help='Output the range tree as JSON')
    view.add_argument('--hex', action='store_true', help='Also print a hex grid')
    view.add_argument('--at', type=_offset, help='Show the ranges containing this offset')
    view.add_argument('--length', type=_offset, default=1,
                      help='Length of the --at selection (default: 1)')
    view.add_argument('--max-depth', type=int, help='Limit tree depth')
    view.set_defaults(handler=cmd_view)

    # schema
    schema = subparsers.add_parser('schema', help='Manage stored schemas')
    schema_sub = schema.add_subparsers(dest='action', required=True)
    save = schema_sub.add_parser('save', help='Store a schema file under a name')
    save.add_argument('name')
    save.add_argument('file')
    schema_sub.add_parser('load', help='Print a stored schema').add_argument('name')
    schema_sub.add_parser('delete', help='Delete a stored schema').add_argument('name')
    schema_sub.add_parser('list', help='List stored schemas')
    export = schema_sub.add_parser('export', help='Export all schemas as YAML')
    export.add_argument('-o', '--output', help='Output file (default: stdout)')
    imp = schema_sub.add_parser('import', help='Import schemas from a YAML export')
    imp.add_argument('file')
    imp.add_argument('--overwrite', action='store_true', help='Replace existing schemas')
    schema.set_defaults(handler=cmd_schema)

    # ext
    ext = subparsers.add_parser('ext', help='Manage extension -> parser mapping')
    ext_sub = ext.add_subparsers(dest='action', required=True)
    ext_set = ext_sub.add_parser('set', help='Map an extension to a parser')
    ext_set.add_argument('extension')
    ext_set.add_argument('parser', help='zip, text or ksy:<name>')
    ext_sub.add_parser('get', help='Show the parser for an extension').add_argument('extension')
    ext_sub.add_parser('remove', help='Remove an extension mapping').add_argument('extension')
    ext_sub.add_parser('list', help='List all mappings')
    ext.set_defaults(handler=cmd_ext)

    return parser


def main(argv: Optional[List[str]] = None):
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
        stream=sys.stderr,
    )

    store = SchemaStore(args.home)
    extensions = ExtensionMap(args.home)

    try:
        code = args.handler(args, store, extensions)
    except (ValueError, OSError) as e:
        # KsyError subclasses ValueError
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
    sys.exit(code)


if __name__ == '__main__':
    main()
