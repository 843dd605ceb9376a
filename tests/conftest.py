"""Shared fixtures for powerio tests."""

from __future__ import annotations

import io
from pathlib import Path
from typing import BinaryIO

import pytest

from powerio import CompressorRegistry, reset_default_registry


SAMPLE_TEXT = "first line\nzweite Zeile – ümlaut\n第三行\nlast line"


class RecordingStream(io.BytesIO):
    """BytesIO that counts how often it was closed."""

    def __init__(self, data: bytes = b"") -> None:
        super().__init__(data)
        self.close_calls = 0

    def close(self) -> None:
        self.close_calls += 1
        super().close()


class RecordingSource:
    """Source handing out RecordingStreams and remembering them."""

    def __init__(self, data: bytes, name: str | None = None) -> None:
        self.data = data
        self._name = name
        self.opened: list[RecordingStream] = []

    @property
    def name(self) -> str | None:
        return self._name

    def has_name(self) -> bool:
        return self._name is not None

    def open_stream(self) -> BinaryIO:
        stream = RecordingStream(self.data)
        self.opened.append(stream)
        return stream


class FailingSource(RecordingSource):
    """Source whose open always fails."""

    def open_stream(self) -> BinaryIO:
        raise FileNotFoundError("no such resource")


@pytest.fixture(autouse=True)
def fresh_default_registry():
    """Give every test its own default registry."""
    reset_default_registry()
    yield
    reset_default_registry()


@pytest.fixture
def registry() -> CompressorRegistry:
    """Create a registry with the built-in wrappers."""
    return CompressorRegistry()


@pytest.fixture
def sample_text() -> str:
    return SAMPLE_TEXT


@pytest.fixture
def sample_file(tmp_path) -> Path:
    """Write the sample text as UTF-8."""
    path = tmp_path / "sample.txt"
    path.write_bytes(SAMPLE_TEXT.encode("utf-8"))
    return path
