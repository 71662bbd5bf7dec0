"""Pytest configuration and fixtures for cover-annotate tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Callable, Generator, Iterable

import pytest

from cover_annotate.storage import CoverageStore
from cover_annotate.terms import String, encode_records


def bump(module: str, line: int, hits: int, function: str = "f", arity: int = 0, clause: int = 1):
    """Plain-Python shape of one bump record."""
    return (("bump", module, function, arity, clause, line), hits)


def file_record(module: str, path: str = ""):
    return ("file", module, String((path or f"ebin/{module}.beam").encode()))


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path: Path, monkeypatch):
    """Point configuration at a throwaway directory so user settings never leak in."""
    base_dir = tmp_path / "cover-home"
    monkeypatch.setattr("cover_annotate.config.BASE_DIR", base_dir)
    monkeypatch.setattr("cover_annotate.config.CONFIG_FILE", base_dir / "config.toml")


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def write_export(temp_dir: Path) -> Callable[[str, Iterable], Path]:
    """Return a helper writing an export file from plain-Python terms."""

    def _write(name: str, terms: Iterable) -> Path:
        path = temp_dir / name
        path.write_bytes(encode_records(terms))
        return path

    return _write


@pytest.fixture
def sample_terms() -> list:
    return [
        file_record("calc"),
        bump("calc", 5, 0, "add", 2),
        bump("calc", 6, 2, "add", 2),
        bump("calc", 7, 0, "mul", 2),
        bump("calc", 8, 9, "mul", 2),
        file_record("util"),
        bump("util", 10, 0, "pick", 1, 1),
        bump("util", 10, 3, "pick", 1, 2),
        bump("util", 0, 5, "module_info", 0),
        file_record("empty"),
    ]


@pytest.fixture
def sample_export(write_export, sample_terms) -> Path:
    return write_export("cover.coverdata", sample_terms)


@pytest.fixture
def loaded_store(sample_export: Path) -> CoverageStore:
    store = CoverageStore()
    store.load(sample_export)
    return store


@pytest.fixture
def sample_source_path() -> Path:
    """Source file matching the ``calc`` module of the sample export."""
    return Path(__file__).parent / "fixtures" / "calc.erl"
