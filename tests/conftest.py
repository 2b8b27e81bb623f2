"""Shared pytest fixtures for the termshape test suite."""

from __future__ import annotations

import json

import pytest
from click.testing import CliRunner


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def write_term(tmp_path):
    """Write a JSON term document and return its path."""

    def write(data, name: str = "term.json"):
        path = tmp_path / name
        path.write_text(json.dumps(data))
        return path

    return write
