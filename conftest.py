"""Pytest configuration — ensures the project root is importable."""

import os
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent))

from owner_parser.pipeline import OwnerParsingPipeline  # noqa: E402


@pytest.fixture(scope="session")
def pipeline():
    """One pipeline for the whole suite — rules and dictionary load once."""
    return OwnerParsingPipeline()


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Keep a developer's OWNER_PARSER_* variables out of the tests."""
    for name in list(os.environ):
        if name.startswith("OWNER_PARSER_"):
            monkeypatch.delenv(name)
    yield
