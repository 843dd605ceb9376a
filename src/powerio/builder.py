"""Fluent builder for input chains.

A builder only records options. Every terminal operation opens the source
again and assembles a fresh pipeline in a fixed order::

    raw source -> decompression -> base64 decoding -> charset decoding

Decompression is resolved when the pipeline is assembled: if the source
has a name whose last extension is registered, the registry peels the
name's extensions; otherwise a generic zlib inflater is used.

Example:
    >>> from powerio import In
    >>> In.file("report.csv.gz").decompress().with_utf8().read_lines()
    >>> with In.file("events.log.gz").decompress().stream_lines() as lines:
    ...     for line in lines:
    ...         handle(line)
"""

from __future__ import annotations

import codecs
import contextlib
import io
import logging
from typing import Any, BinaryIO, Iterator, TextIO
from xml.etree import ElementTree

import polars as pl

from powerio.base import (
    Base64Variant,
    ChainConfig,
    ChainConfigError,
    ChainIOError,
    DeserializationError,
    PowerIOError,
    Source,
    SourceOpenError,
)
from powerio.readers import LineStream, ObjectReader, TarEntryReader, ZipEntryReader
from powerio.registry import CompressorRegistry, get_default_registry
from powerio.wrappers import ChainStream, base64_reader, deflate_reader

logger = logging.getLogger(__name__)


class InBuilder:
    """Builder for an input chain over a source.

    Option methods return the builder itself and perform no I/O. The
    builder holds no open resources; each terminal call opens and (except
    for the ``as_*`` and ``stream_lines`` terminals, which hand the open
    pipeline to the caller) closes its own pipeline.
    """

    def __init__(
        self,
        source: Source,
        registry: CompressorRegistry | None = None,
        config: ChainConfig | None = None,
    ) -> None:
        """Initialize the builder.

        Args:
            source: Source of raw bytes.
            registry: Registry used to choose decompressors. Defaults to
                the shared registry.
            config: Initial options.
        """
        self._source = source
        self._registry = registry
        self._config = config or ChainConfig()

    @property
    def source(self) -> Source:
        return self._source

    @property
    def registry(self) -> CompressorRegistry:
        return self._registry if self._registry is not None else get_default_registry()

    @property
    def config(self) -> ChainConfig:
        """Get a snapshot of the current options."""
        return self._config

    # -------------------------------------------------------------------------
    # Options
    # -------------------------------------------------------------------------

    def decompress(self) -> "InBuilder":
        """Decompress the bytes of the source.

        The decompressor is chosen from the source name's extensions when
        the pipeline is assembled. Without a name, or when the last
        extension is unknown, a zlib inflater is used.
        """
        self._config = self._config.evolve(decompress=True)
        return self

    def decode_base64(
        self, variant: Base64Variant | str = Base64Variant.STANDARD
    ) -> "InBuilder":
        """Decode the (decompressed) bytes as base64."""
        try:
            variant = Base64Variant(variant)
        except ValueError:
            raise ChainConfigError(f"Unknown base64 variant: {variant!r}")
        self._config = self._config.evolve(base64=variant)
        return self

    def with_charset(self, encoding: str, errors: str = "strict") -> "InBuilder":
        """Use the given charset for character terminals."""
        try:
            name = codecs.lookup(encoding).name
            codecs.lookup_error(errors)
        except LookupError as e:
            raise ChainConfigError(str(e)) from e
        self._config = self._config.evolve(encoding=name, errors=errors)
        return self

    def with_utf8(self) -> "InBuilder":
        return self.with_charset("utf-8")

    def with_buffer_size(self, buffer_size: int) -> "InBuilder":
        self._config = self._config.evolve(buffer_size=buffer_size)
        self._config.validate()
        return self

    # -------------------------------------------------------------------------
    # Assembly
    # -------------------------------------------------------------------------

    @property
    def _source_name(self) -> str | None:
        return self._source.name if self._source.has_name() else None

    def _open_raw(self) -> BinaryIO:
        try:
            return self._source.open_stream()
        except PowerIOError:
            raise
        except OSError as e:
            raise SourceOpenError(f"Cannot open source: {e}", self._source_name) from e

    def _open_pipeline(self) -> ChainStream:
        config = self._config
        config.validate()
        name = self._source_name

        layers = [self._open_raw()]
        try:
            if config.decompress:
                # Non-empty exactly when the last extension is registered
                wrappers = self.registry.resolve_unwrappers(name) if name is not None else []
                if wrappers:
                    logger.debug(f"Unwrapping {name} with {len(wrappers)} decompressor(s)")
                else:
                    wrappers = [deflate_reader]
                    logger.debug(f"No decompressor registered for {name}, using deflate")
                for wrapper in wrappers:
                    layers.append(wrapper(layers[-1]))
            if config.base64 is not None:
                layers.append(base64_reader(config.base64)(layers[-1]))
        except PowerIOError:
            _close_quietly(layers)
            raise
        except Exception as e:
            _close_quietly(layers)
            raise ChainIOError(f"Cannot assemble chain: {e}", name) from e
        return ChainStream(layers, name)

    @contextlib.contextmanager
    def _decoding(self) -> Iterator[None]:
        try:
            yield
        except UnicodeDecodeError as e:
            raise ChainIOError(
                f"Cannot decode as {self._config.effective_encoding}: {e}",
                self._source_name,
            ) from e

    # -------------------------------------------------------------------------
    # Stream terminals
    # -------------------------------------------------------------------------

    def as_stream(self) -> ChainStream:
        """Open the pipeline as a byte stream."""
        return self._open_pipeline()

    def as_reader(self) -> TextIO:
        """Open the pipeline as a buffered text reader.

        Line endings are translated to ``"\\n"``.
        """
        config = self._config
        buffered = io.BufferedReader(self._open_pipeline(), config.buffer_size)
        return io.TextIOWrapper(
            buffered,
            encoding=config.effective_encoding,
            errors=config.errors,
            newline=None,
        )

    def as_objects(self) -> ObjectReader:
        """Open the pipeline as a reader of pickled objects."""
        buffered = io.BufferedReader(self._open_pipeline(), self._config.buffer_size)
        return ObjectReader(buffered, self._source_name)

    def as_zip(self) -> ZipEntryReader:
        """Open the pipeline as a ZIP archive."""
        return ZipEntryReader(
            self._open_pipeline(), self._source_name, self._config.buffer_size
        )

    def as_tar(self) -> TarEntryReader:
        """Open the pipeline as a tar archive."""
        return TarEntryReader(self._open_pipeline(), self._source_name)

    def stream_lines(self) -> LineStream:
        """Open the pipeline as a lazy sequence of lines.

        The reader stays open until the sequence is closed or exhausted.
        """
        return LineStream(self.as_reader(), self._source_name)

    # -------------------------------------------------------------------------
    # One-shot terminals
    # -------------------------------------------------------------------------

    def read_bytes(self) -> bytes:
        """Read the whole pipeline into bytes."""
        with self.as_stream() as stream:
            return stream.read()

    def read_all(self) -> str:
        """Read the whole input as text.

        Lines are separated by a single ``"\\n"`` and the final line
        terminator is dropped. An empty source gives ``""``.
        """
        with self.as_reader() as reader, self._decoding():
            text = reader.read()
        return text[:-1] if text.endswith("\n") else text

    def read_lines(self) -> list[str]:
        """Read all lines of the input."""
        with self.stream_lines() as lines:
            return list(lines)

    def read_object(self) -> Any:
        """Read the first pickled object of the input."""
        with self.as_objects() as reader:
            try:
                return reader.read_object()
            except EOFError as e:
                raise DeserializationError(
                    "Stream contains no object", self._source_name
                ) from e

    def read_objects(self) -> list[Any]:
        """Read every pickled object of the input."""
        with self.as_objects() as reader:
            return reader.read_objects()

    def read_xml(self, parser: ElementTree.XMLParser | None = None) -> ElementTree.Element:
        """Parse the input as an XML document and return its root element.

        Raises:
            DeserializationError: If the document is not well-formed.
        """
        with self.as_stream() as stream:
            try:
                return ElementTree.parse(stream, parser=parser).getroot()
            except ElementTree.ParseError as e:
                raise DeserializationError(
                    f"Invalid XML: {e}", self._source_name
                ) from e

    def read_csv(self, **kwargs: Any) -> pl.DataFrame:
        """Read the input as CSV into a Polars DataFrame.

        Args:
            **kwargs: Passed to ``polars.read_csv``.
        """
        return self._read_frame(pl.read_csv, **kwargs)

    def read_ndjson(self, **kwargs: Any) -> pl.DataFrame:
        """Read the input as newline-delimited JSON into a Polars DataFrame."""
        return self._read_frame(pl.read_ndjson, **kwargs)

    def _read_frame(self, read: Any, **kwargs: Any) -> pl.DataFrame:
        # Polars reads UTF-8 only, so the configured charset is applied here.
        with self.as_reader() as reader, self._decoding():
            text = reader.read()
        try:
            return read(io.BytesIO(text.encode("utf-8")), **kwargs)
        except pl.exceptions.PolarsError as e:
            raise DeserializationError(
                f"Invalid tabular data: {e}", self._source_name
            ) from e

    # -------------------------------------------------------------------------
    # Copying
    # -------------------------------------------------------------------------

    def copy_to(self, sink: BinaryIO) -> int:
        """Copy the bytes of the pipeline to a sink.

        The sink is left open.

        Returns:
            Number of bytes copied.
        """
        size = self._config.buffer_size
        total = 0
        with self.as_stream() as stream:
            while chunk := stream.read(size):
                try:
                    sink.write(chunk)
                except OSError as e:
                    raise ChainIOError(f"Write failed: {e}", self._source_name) from e
                total += len(chunk)
        return total

    def copy_to_text(self, sink: TextIO) -> int:
        """Copy the characters of the pipeline to a text sink.

        The sink is left open.

        Returns:
            Number of characters copied.
        """
        size = self._config.buffer_size
        total = 0
        with self.as_reader() as reader, self._decoding():
            while chunk := reader.read(size):
                try:
                    sink.write(chunk)
                except OSError as e:
                    raise ChainIOError(f"Write failed: {e}", self._source_name) from e
                total += len(chunk)
        return total

    def __repr__(self) -> str:
        return f"InBuilder(source={self._source!r}, config={self._config!r})"


def _close_quietly(layers: list[BinaryIO]) -> None:
    # The assembly error is the one reported.
    for layer in reversed(layers):
        with contextlib.suppress(Exception):
            layer.close()
