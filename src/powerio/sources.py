"""Concrete sources for input chains.

Every source opens lazily: nothing is touched until a terminal operation
of a builder calls ``open_stream``.
"""

from __future__ import annotations

import io
import os
from abc import ABC, abstractmethod
from importlib import resources
from pathlib import Path
from typing import BinaryIO

from powerio.base import SourceOpenError


class BaseSource(ABC):
    """Abstract base class for sources.

    Subclasses implement ``_do_open``; failures raised there are reported
    as ``SourceOpenError``.
    """

    def __init__(self, name: str | None = None) -> None:
        self._name = name

    @property
    def name(self) -> str | None:
        return self._name

    def has_name(self) -> bool:
        return self._name is not None

    @abstractmethod
    def _do_open(self) -> BinaryIO:
        """Perform actual opening. Override in subclasses."""
        pass

    def open_stream(self) -> BinaryIO:
        """Open the source.

        Raises:
            SourceOpenError: If the source cannot be opened.
        """
        try:
            return self._do_open()
        except SourceOpenError:
            raise
        except (OSError, ValueError, ModuleNotFoundError) as e:
            raise SourceOpenError(f"Cannot open source: {e}", self._name) from e

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self._name!r})"


class FileSource(BaseSource):
    """A file on the local filesystem, named after its file name."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        super().__init__(self.path.name)

    def _do_open(self) -> BinaryIO:
        return open(self.path, "rb")


class ResourceSource(BaseSource):
    """A data file shipped inside an importable package."""

    def __init__(self, package: str, resource: str) -> None:
        self.package = package
        self.resource = resource
        super().__init__(resource.rsplit("/", 1)[-1])

    def _do_open(self) -> BinaryIO:
        return resources.files(self.package).joinpath(self.resource).open("rb")


class BytesSource(BaseSource):
    """In-memory bytes, optionally named for extension sniffing."""

    def __init__(self, data: bytes, name: str | None = None) -> None:
        super().__init__(name)
        self.data = bytes(data)

    def _do_open(self) -> BinaryIO:
        return io.BytesIO(self.data)


class StringSource(BytesSource):
    """In-memory text, encoded once at construction."""

    def __init__(self, text: str, encoding: str = "utf-8", name: str | None = None) -> None:
        super().__init__(text.encode(encoding), name)
        self.encoding = encoding


class StreamSource(BaseSource):
    """An already open byte stream.

    The stream can be opened only once. The chain that opens it takes
    ownership and closes it when the chain is closed.
    """

    def __init__(self, stream: BinaryIO, name: str | None = None) -> None:
        if name is None:
            stream_name = getattr(stream, "name", None)
            name = os.path.basename(stream_name) if isinstance(stream_name, str) else None
        super().__init__(name)
        self._stream = stream
        self._consumed = False

    def _do_open(self) -> BinaryIO:
        if self._consumed:
            raise SourceOpenError("Stream source was already consumed", self._name)
        if getattr(self._stream, "closed", False):
            raise SourceOpenError("Stream is closed", self._name)
        self._consumed = True
        return self._stream
