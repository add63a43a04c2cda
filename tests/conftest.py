"""Pytest configuration and fixtures."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Add src to the Python path
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

# Scripted REPL used by integration tests
FAKE_REPL_PATH = PROJECT_ROOT / "tests" / "fixtures" / "fake_repl.py"


@pytest.fixture
def project_root() -> Path:
    """Project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def fake_repl_path() -> Path:
    """Path of the fake REPL script."""
    return FAKE_REPL_PATH


@pytest.fixture
def source_folder(tmp_path: Path) -> Path:
    """Source folder holding a couple of function files."""
    folder = tmp_path / "src"
    folder.mkdir()
    (folder / "square.m").write_text("y = 7 * 7\n", encoding="utf-8")
    (folder / "main.m").write_text("disp('hello from main')\nz = 40 + 2\n", encoding="utf-8")
    return folder


@pytest.fixture
def runtime_kwargs(fake_repl_path: Path) -> dict:
    """Keyword arguments that make Runtime drive the fake REPL."""
    return {"args": ["-u", str(fake_repl_path)]}
