"""
schema_store.py - Named schema storage and file-extension -> parser mapping

Schemas are kept as raw text, one file per name:

    $BINVIEW_HOME/schemas/<name>.ksy
    $BINVIEW_HOME/extensions.json      {".png": "ksy:png", ".zip": "zip"}

BINVIEW_HOME defaults to ~/.binview. Nothing here parses schemas; the
store only round-trips text.

Usage:
    from schema_store import SchemaStore, ExtensionMap

    store = SchemaStore()
    store.save('png', text)
    ExtensionMap(store.root).save('.png', 'ksy:png')
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

import yaml

logger = logging.getLogger(__name__)

HOME_ENV = 'BINVIEW_HOME'
SCHEMA_SUFFIX = '.ksy'
EXTENSIONS_FILE = 'extensions.json'

NAME_RE = re.compile(r'^[A-Za-z0-9_][A-Za-z0-9_.\-]*$')
PARSER_REF_RE = re.compile(r'^(zip|text|ksy:.+)$')


def default_home() -> Path:
    """Store root from $BINVIEW_HOME, else ~/.binview."""
    env = os.environ.get(HOME_ENV)
    if env:
        return Path(env)
    return Path.home() / '.binview'


def validate_name(name: str) -> str:
    if not isinstance(name, str) or not NAME_RE.match(name):
        raise ValueError(f"Invalid schema name: {name!r}")
    return name


@dataclass
class ImportResult:
    """Outcome of a bulk import."""
    imported: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return len(self.errors) == 0


class SchemaStore:
    """Directory of named schema texts."""

    def __init__(self, root: Optional[Union[str, Path]] = None):
        self.root = Path(root) if root is not None else default_home()
        self.schema_dir = self.root / 'schemas'

    def _path(self, name: str) -> Path:
        return self.schema_dir / (validate_name(name) + SCHEMA_SUFFIX)

    def save(self, name: str, content: str) -> None:
        path = self._path(name)
        self.schema_dir.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding='utf-8')
        logger.debug("Saved schema %s (%d chars)", name, len(content))

    def load(self, name: str) -> Optional[str]:
        """Schema text, or None if no schema has that name."""
        path = self._path(name)
        if not path.is_file():
            return None
        return path.read_text(encoding='utf-8')

    def delete(self, name: str) -> bool:
        """Remove a schema; returns False if it did not exist."""
        path = self._path(name)
        if not path.is_file():
            return False
        path.unlink()
        logger.debug("Deleted schema %s", name)
        return True

    def has(self, name: str) -> bool:
        return self._path(name).is_file()

    def list_names(self) -> List[str]:
        if not self.schema_dir.is_dir():
            return []
        return sorted(p.name[:-len(SCHEMA_SUFFIX)]
                      for p in self.schema_dir.glob('*' + SCHEMA_SUFFIX) if p.is_file())

    def export_all(self) -> Dict[str, str]:
        return {name: self.load(name) for name in self.list_names()}

    def import_all(self, data: Dict[str, str], overwrite: bool = False) -> ImportResult:
        """
        Save every name -> text pair. Existing names are skipped unless
        `overwrite`; invalid entries are reported, not raised.
        """
        result = ImportResult()
        for name, content in data.items():
            if not isinstance(content, str):
                result.errors.append(f"{name}: content must be text")
                continue
            try:
                if not overwrite and self.has(name):
                    result.skipped.append(name)
                    continue
                self.save(name, content)
                result.imported.append(name)
            except (ValueError, OSError) as e:
                result.errors.append(f"{name}: {e}")
        return result

    def export_yaml(self) -> str:
        return yaml.safe_dump(self.export_all(), default_flow_style=False, sort_keys=True)

    def import_yaml(self, text: str, overwrite: bool = False) -> ImportResult:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid schema export: {e}") from e
        if not isinstance(data, dict):
            raise ValueError("Schema export must be a mapping of name -> schema text")
        return self.import_all({str(k): v for k, v in data.items()}, overwrite)


# =============================================================================
# Extension mapping
# =============================================================================

def normalize_extension(extension: str) -> str:
    """Lowercase with a leading dot; '' for blank input."""
    ext = extension.strip().lower()
    if not ext:
        return ''
    if not ext.startswith('.'):
        ext = '.' + ext
    return ext


def extension_from_filename(filename: str) -> str:
    """'.png' for 'Photo.PNG'; '' when there is no extension."""
    name = os.path.basename(str(filename))
    dot = name.rfind('.')
    if dot == -1 or dot == len(name) - 1:
        return ''
    return name[dot:].lower()


class ExtensionMap:
    """Persistent map of file extension -> parser reference ('zip', 'text', 'ksy:<name>')."""

    def __init__(self, root: Optional[Union[str, Path]] = None):
        self.root = Path(root) if root is not None else default_home()
        self.path = self.root / EXTENSIONS_FILE

    def _read(self) -> Dict[str, str]:
        if not self.path.is_file():
            return {}
        data = json.loads(self.path.read_text(encoding='utf-8'))
        if not isinstance(data, dict):
            raise ValueError(f"{self.path}: expected a JSON object")
        return data

    def _write(self, data: Dict[str, str]) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2, sort_keys=True) + '\n', encoding='utf-8')

    def save(self, extension: str, parser: str) -> None:
        ext = normalize_extension(extension)
        if not ext:
            return
        if not PARSER_REF_RE.match(parser):
            raise ValueError(f"Invalid parser reference: {parser!r} (expected zip, text or ksy:<name>)")
        data = self._read()
        data[ext] = parser
        self._write(data)

    def get(self, extension: str) -> Optional[str]:
        ext = normalize_extension(extension)
        if not ext:
            return None
        return self._read().get(ext)

    def remove(self, extension: str) -> None:
        ext = normalize_extension(extension)
        data = self._read()
        if ext in data:
            del data[ext]
            self._write(data)

    def all(self) -> Dict[str, str]:
        return dict(self._read())
