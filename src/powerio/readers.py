"""Terminal readers returned by input builders.

Each reader owns the pipeline it was created on and closes it when the
reader is closed. All of them are context managers.
"""

from __future__ import annotations

import io
import logging
import pickle
import shutil
import tarfile
import tempfile
import zipfile
from abc import ABC, abstractmethod
from typing import IO, Any, BinaryIO, Generic, Iterator, TextIO, TypeVar

from powerio.base import DEFAULT_BUFFER_SIZE, ChainIOError, DeserializationError

logger = logging.getLogger(__name__)

EntryT = TypeVar("EntryT")

# Raised by pickle for malformed data or unresolvable types
UNPICKLING_ERRORS: tuple[type[BaseException], ...] = (
    pickle.UnpicklingError,
    EOFError,
    AttributeError,
    ImportError,
    IndexError,
    KeyError,
    TypeError,
    ValueError,
)


# =============================================================================
# Lines
# =============================================================================


class LineStream:
    """Lazy, single-pass sequence of lines over an open text reader.

    Lines are yielded without their terminator. The reader is closed
    exactly once: by ``close()``, when the lines are exhausted, or when
    reading fails. A closed stream is never restarted; iterating it after
    an explicit close raises ``ValueError``.

    Abandoning a stream without exhausting or closing it leaks the
    underlying source, so prefer ``with builder.stream_lines() as lines:``.
    """

    def __init__(self, reader: TextIO, source_name: str | None = None) -> None:
        self._reader = reader
        self._source_name = source_name
        self._closed = False
        self._exhausted = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __iter__(self) -> "LineStream":
        return self

    def __next__(self) -> str:
        if self._exhausted:
            raise StopIteration
        if self._closed:
            raise ValueError("I/O operation on closed line stream")
        try:
            line = self._reader.readline()
        except UnicodeDecodeError as e:
            self.close()
            raise ChainIOError(f"Cannot decode line: {e}", self._source_name) from e
        except BaseException:
            self.close()
            raise
        if not line:
            self._exhausted = True
            self.close()
            raise StopIteration
        return line[:-1] if line.endswith("\n") else line

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._reader.close()

    def __enter__(self) -> "LineStream":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


# =============================================================================
# Objects
# =============================================================================


class ObjectReader:
    """Reads pickled objects one after another from a buffered stream.

    Only read data from sources you trust: unpickling can execute
    arbitrary code.
    """

    def __init__(self, stream: io.BufferedReader, source_name: str | None = None) -> None:
        self._stream = stream
        self._source_name = source_name

    def has_next(self) -> bool:
        """Check if another object follows."""
        return bool(self._stream.peek(1))

    def read_object(self) -> Any:
        """Read the next object.

        Raises:
            EOFError: If no object is left.
            DeserializationError: If the object framing is invalid or a
                referenced type cannot be resolved.
        """
        if not self.has_next():
            raise EOFError("No more objects in stream")
        try:
            return pickle.load(self._stream)
        except UNPICKLING_ERRORS as e:
            raise DeserializationError(
                f"Cannot read object: {e}", self._source_name
            ) from e

    def read_objects(self) -> list[Any]:
        """Read all remaining objects."""
        return list(self)

    def __iter__(self) -> Iterator[Any]:
        while self.has_next():
            yield self.read_object()

    def close(self) -> None:
        self._stream.close()

    @property
    def closed(self) -> bool:
        return self._stream.closed

    def __enter__(self) -> "ObjectReader":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


# =============================================================================
# Archives
# =============================================================================


class ArchiveReader(ABC, Generic[EntryT]):
    """Sequential reader over the entries of an archive.

    The caller advances with ``next_entry()`` and then reads the current
    entry with ``read()`` or ``open()``.
    """

    def __init__(self, source_name: str | None = None) -> None:
        self._source_name = source_name
        self._current: EntryT | None = None
        self._current_stream: IO[bytes] | None = None

    @property
    def current(self) -> EntryT | None:
        return self._current

    @abstractmethod
    def _advance(self) -> EntryT | None:
        """Move to the next entry. Override in subclasses."""
        pass

    @abstractmethod
    def _open_entry(self, entry: EntryT) -> IO[bytes]:
        """Open the data of an entry. Override in subclasses."""
        pass

    @abstractmethod
    def _close_archive(self) -> None:
        pass

    @property
    @abstractmethod
    def _format_errors(self) -> tuple[type[BaseException], ...]:
        pass

    def next_entry(self) -> EntryT | None:
        """Advance to the next entry.

        Returns:
            The entry, or None when the archive is exhausted.
        """
        self._close_current()
        try:
            self._current = self._advance()
        except self._format_errors as e:
            raise DeserializationError(
                f"Invalid archive: {e}", self._source_name
            ) from e
        return self._current

    def open(self) -> IO[bytes]:
        """Get a byte stream over the current entry."""
        if self._current is None:
            raise ValueError("No current entry; call next_entry() first")
        if self._current_stream is None:
            try:
                self._current_stream = self._open_entry(self._current)
            except self._format_errors as e:
                raise DeserializationError(
                    f"Invalid archive entry: {e}", self._source_name
                ) from e
        return self._current_stream

    def read(self, size: int = -1) -> bytes:
        """Read from the current entry."""
        stream = self.open()
        try:
            return stream.read(size)
        except self._format_errors as e:
            raise DeserializationError(
                f"Invalid archive entry: {e}", self._source_name
            ) from e

    def __iter__(self) -> Iterator[EntryT]:
        while (entry := self.next_entry()) is not None:
            yield entry

    def _close_current(self) -> None:
        if self._current_stream is not None:
            self._current_stream.close()
            self._current_stream = None

    def close(self) -> None:
        try:
            self._close_current()
        finally:
            self._close_archive()

    def __enter__(self) -> "ArchiveReader[EntryT]":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


class ZipEntryReader(ArchiveReader[zipfile.ZipInfo]):
    """Sequential reader over a ZIP archive.

    ZIP needs random access to its central directory, so a pipeline that
    cannot seek is spooled first (in memory up to ``spool_size`` bytes,
    then to a temporary file).
    """

    def __init__(
        self,
        stream: BinaryIO,
        source_name: str | None = None,
        spool_size: int = DEFAULT_BUFFER_SIZE,
    ) -> None:
        super().__init__(source_name)
        self._stream = stream
        self._spool: IO[bytes] | None = None
        try:
            if stream.seekable():
                archive_file: IO[bytes] = stream
            else:
                self._spool = tempfile.SpooledTemporaryFile(max_size=spool_size)
                shutil.copyfileobj(stream, self._spool, spool_size)
                self._spool.seek(0)
                archive_file = self._spool
                logger.debug(f"Spooled non-seekable archive {source_name}")
            self._zip = zipfile.ZipFile(archive_file)
        except zipfile.BadZipFile as e:
            self._close_streams()
            raise DeserializationError(f"Invalid archive: {e}", source_name) from e
        except BaseException:
            self._close_streams()
            raise
        self._entries = iter(self._zip.infolist())

    @property
    def _format_errors(self) -> tuple[type[BaseException], ...]:
        return (zipfile.BadZipFile,)

    def namelist(self) -> list[str]:
        return self._zip.namelist()

    def _advance(self) -> zipfile.ZipInfo | None:
        return next(self._entries, None)

    def _open_entry(self, entry: zipfile.ZipInfo) -> IO[bytes]:
        return self._zip.open(entry)

    def _close_streams(self) -> None:
        try:
            if self._spool is not None:
                self._spool.close()
        finally:
            self._stream.close()

    def _close_archive(self) -> None:
        try:
            self._zip.close()
        finally:
            self._close_streams()


class TarEntryReader(ArchiveReader[tarfile.TarInfo]):
    """Sequential reader over a tar archive in streaming mode.

    Compressed tar archives (gzip, bz2, xz) are detected automatically.
    Only the current entry can be read.
    """

    def __init__(self, stream: BinaryIO, source_name: str | None = None) -> None:
        super().__init__(source_name)
        self._stream = stream
        try:
            self._tar = tarfile.open(fileobj=stream, mode="r|*")
        except tarfile.TarError as e:
            stream.close()
            raise DeserializationError(f"Invalid archive: {e}", source_name) from e
        except BaseException:
            stream.close()
            raise

    @property
    def _format_errors(self) -> tuple[type[BaseException], ...]:
        return (tarfile.TarError,)

    def _advance(self) -> tarfile.TarInfo | None:
        return self._tar.next()

    def _open_entry(self, entry: tarfile.TarInfo) -> IO[bytes]:
        extracted = self._tar.extractfile(entry)
        if extracted is None:
            return io.BytesIO(b"")
        return extracted

    def _close_archive(self) -> None:
        try:
            self._tar.close()
        finally:
            self._stream.close()
