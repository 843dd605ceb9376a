"""Entry points for building input chains.

Example:
    >>> from powerio import In
    >>> In.string("aGVsbG8=").decode_base64().read_all()
    'hello'
    >>> lines = In.file("access.log.gz").decompress().with_utf8().read_lines()
"""

from __future__ import annotations

import os
from typing import BinaryIO

from powerio.builder import InBuilder
from powerio.registry import CompressorRegistry
from powerio.sources import (
    BytesSource,
    FileSource,
    ResourceSource,
    StreamSource,
    StringSource,
)


class In:
    """Factory of input builders for the common kinds of sources."""

    @staticmethod
    def file(
        path: str | os.PathLike[str], registry: CompressorRegistry | None = None
    ) -> InBuilder:
        """Read from a file on disk."""
        return InBuilder(FileSource(path), registry)

    @staticmethod
    def resource(
        package: str, name: str, registry: CompressorRegistry | None = None
    ) -> InBuilder:
        """Read from a data file shipped inside a package."""
        return InBuilder(ResourceSource(package, name), registry)

    @staticmethod
    def string(
        text: str, encoding: str = "utf-8", registry: CompressorRegistry | None = None
    ) -> InBuilder:
        """Read from in-memory text.

        The text is encoded with ``encoding`` and character terminals decode
        it with the same charset unless ``with_charset`` picks another one.
        """
        return InBuilder(StringSource(text, encoding), registry).with_charset(encoding)

    @staticmethod
    def bytes(
        data: bytes, name: str | None = None, registry: CompressorRegistry | None = None
    ) -> InBuilder:
        """Read from in-memory bytes, optionally named for extension sniffing."""
        return InBuilder(BytesSource(data, name), registry)

    @staticmethod
    def stream(
        stream: BinaryIO, name: str | None = None, registry: CompressorRegistry | None = None
    ) -> InBuilder:
        """Read from an already open stream, which can be consumed once."""
        return InBuilder(StreamSource(stream, name), registry)
