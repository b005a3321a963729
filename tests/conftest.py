"""
pytest configuration and fixtures for the binary viewer tests.

Provides:
- sys.path setup so tests import the tools/ modules directly
- Hypothesis profiles (select with HYPOTHESIS_PROFILE)
- Shared schema texts and a temporary store directory
"""

import os
import sys
from pathlib import Path

import pytest

# Add project paths
sys.path.insert(0, str(Path(__file__).parent.parent / "tools"))

# Configure Hypothesis profiles
from hypothesis import settings, Verbosity, Phase

# Default profile: balanced speed and coverage
settings.register_profile(
    "default",
    max_examples=100,
    deadline=None,
)

# CI profile: more thorough testing
settings.register_profile(
    "ci",
    max_examples=500,
    deadline=None,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
)

# Dev profile: fast iteration
settings.register_profile(
    "dev",
    max_examples=10,
    deadline=None,
)

# Debug profile: verbose output
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)

settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "default"))


MY_FORMAT_KSY = """
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

MY_FORMAT_BYTES = bytes([
    0x89, 0x50, 0x4E, 0x47,
    0x02, 0x00,
    0x01, 0x00, 0x00, 0x00,
    0xFF, 0x00, 0x00, 0x00,
])


@pytest.fixture
def my_format_ksy():
    return MY_FORMAT_KSY


@pytest.fixture
def my_format_bytes():
    return MY_FORMAT_BYTES


@pytest.fixture
def store_home(tmp_path, monkeypatch):
    """Empty store directory, also exported as BINVIEW_HOME."""
    home = tmp_path / "binview-home"
    monkeypatch.setenv("BINVIEW_HOME", str(home))
    return home


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
