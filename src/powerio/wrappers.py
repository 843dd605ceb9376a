"""Stream adapters used as layers of an input chain.

The gzip adapters are the built-in ``gz`` registration. ``DeflateReader``
is the generic decompressor used when no extension matches, and
``Base64Reader`` is the optional base64 layer. ``ChainStream`` sits on top
of every assembled pipeline and owns closing all of its layers.

Additional codecs (bz2, xz, zstd) are provided for callers who want to
register them; they are not part of the default registry.
"""

from __future__ import annotations

import base64
import binascii
import bz2
import gzip
import io
import logging
import lzma
import re
import zlib
from contextlib import ExitStack
from typing import TYPE_CHECKING, Any, BinaryIO, Callable

from powerio.base import (
    DEFAULT_BUFFER_SIZE,
    Base64Variant,
    ChainIOError,
    InputWrapper,
    OutputWrapper,
    UnsupportedCodecError,
)

if TYPE_CHECKING:
    from powerio.registry import CompressorRegistry

logger = logging.getLogger(__name__)

# Errors raised by stream adapters while reading
READ_ERRORS: tuple[type[BaseException], ...] = (
    OSError,
    EOFError,
    zlib.error,
    binascii.Error,
    lzma.LZMAError,
)


# =============================================================================
# Gzip
# =============================================================================


def gzip_reader(stream: BinaryIO) -> BinaryIO:
    """Wrap a byte input with a gzip decompressing reader."""
    return gzip.GzipFile(fileobj=stream, mode="rb")


def gzip_writer(stream: BinaryIO) -> BinaryIO:
    """Wrap a byte output with a gzip compressing writer."""
    return gzip.GzipFile(fileobj=stream, mode="wb")


# =============================================================================
# Deflate
# =============================================================================


class DeflateReader(io.RawIOBase):
    """Incrementally inflates zlib-format data read from another stream.

    At most ``chunk_size`` inflated bytes are held at a time; input that
    would inflate past that is kept for the next read. Data after the
    end-of-stream marker is ignored. A stream that ends before the marker
    raises ``EOFError``; corrupt data raises ``zlib.error``.
    """

    def __init__(
        self,
        stream: BinaryIO,
        wbits: int = zlib.MAX_WBITS,
        chunk_size: int = DEFAULT_BUFFER_SIZE,
    ) -> None:
        super().__init__()
        self._stream = stream
        self._inflater = zlib.decompressobj(wbits)
        self._chunk_size = chunk_size
        self._buffer = bytearray()
        self._finished = False

    def readable(self) -> bool:
        return True

    def readinto(self, b: Any) -> int:
        while not self._buffer and not self._finished:
            self._fill()
        n = min(len(b), len(self._buffer))
        b[:n] = self._buffer[:n]
        del self._buffer[:n]
        return n

    def _fill(self) -> None:
        data = self._inflater.unconsumed_tail
        if not data:
            data = self._stream.read(self._chunk_size)
        if not data:
            # Output zlib still holds back once the input is exhausted
            self._buffer += self._inflater.flush(self._chunk_size)
            if not self._inflater.eof:
                raise EOFError(
                    "Compressed stream ended before the end-of-stream marker"
                )
            self._finished = True
            return
        self._buffer += self._inflater.decompress(data, self._chunk_size)
        if self._inflater.eof:
            self._finished = True


def deflate_reader(stream: BinaryIO) -> BinaryIO:
    """Wrap a byte input with a zlib-format inflater."""
    return io.BufferedReader(DeflateReader(stream))


# =============================================================================
# Base64
# =============================================================================


_NON_ALPHABET = re.compile(rb"[^A-Za-z0-9+/=]")


class Base64Reader(io.RawIOBase):
    """Incrementally decodes base64 text read from another stream.

    Input is decoded in complete 4-character quanta. A final quantum
    without padding is accepted. ``Base64Variant.MIME`` skips line breaks
    and other characters outside the alphabet; the other variants reject
    them with ``binascii.Error``.
    """

    def __init__(
        self,
        stream: BinaryIO,
        variant: Base64Variant = Base64Variant.STANDARD,
        chunk_size: int = DEFAULT_BUFFER_SIZE,
    ) -> None:
        super().__init__()
        self._stream = stream
        self._variant = variant
        self._chunk_size = chunk_size
        self._pending = b""
        self._buffer = bytearray()
        self._finished = False

    @property
    def variant(self) -> Base64Variant:
        return self._variant

    def readable(self) -> bool:
        return True

    def readinto(self, b: Any) -> int:
        while not self._buffer and not self._finished:
            self._fill()
        n = min(len(b), len(self._buffer))
        b[:n] = self._buffer[:n]
        del self._buffer[:n]
        return n

    def _fill(self) -> None:
        chunk = self._stream.read(self._chunk_size)
        if not chunk:
            self._finished = True
            tail, self._pending = self._pending, b""
            if tail:
                if len(tail) % 4 == 1:
                    raise binascii.Error("Truncated base64 input")
                tail += b"=" * (-len(tail) % 4)
                self._buffer += self._decode(tail)
            return

        if self._variant.lenient:
            chunk = _NON_ALPHABET.sub(b"", chunk)
        data = self._pending + chunk
        usable = len(data) - len(data) % 4
        self._pending = data[usable:]
        if usable:
            self._buffer += self._decode(data[:usable])

    def _decode(self, data: bytes) -> bytes:
        return base64.b64decode(
            data,
            altchars=self._variant.altchars,
            validate=not self._variant.lenient,
        )


def base64_reader(
    variant: Base64Variant = Base64Variant.STANDARD,
) -> Callable[[BinaryIO], BinaryIO]:
    """Create an input wrapper decoding the given base64 variant."""

    def wrap(stream: BinaryIO) -> BinaryIO:
        return io.BufferedReader(Base64Reader(stream, variant))

    return wrap


# =============================================================================
# Optional codecs
# =============================================================================


def bz2_reader(stream: BinaryIO) -> BinaryIO:
    return bz2.BZ2File(stream, mode="rb")


def bz2_writer(stream: BinaryIO) -> BinaryIO:
    return bz2.BZ2File(stream, mode="wb")


def xz_reader(stream: BinaryIO) -> BinaryIO:
    return lzma.LZMAFile(stream, mode="rb")


def xz_writer(stream: BinaryIO) -> BinaryIO:
    return lzma.LZMAFile(stream, mode="wb", format=lzma.FORMAT_XZ)


_zstd = None


def _get_zstd():
    """Lazy import zstandard."""
    global _zstd
    if _zstd is None:
        try:
            import zstandard

            _zstd = zstandard
        except ImportError:
            raise UnsupportedCodecError("zstd", ["gz", "bz2", "xz"])
    return _zstd


def zstd_reader(stream: BinaryIO) -> BinaryIO:
    zstd = _get_zstd()
    return zstd.ZstdDecompressor().stream_reader(stream, closefd=False)


def zstd_writer(stream: BinaryIO) -> BinaryIO:
    zstd = _get_zstd()
    return zstd.ZstdCompressor().stream_writer(stream, closefd=False)


STANDARD_CODECS: dict[str, tuple[InputWrapper, OutputWrapper]] = {
    "gz": (gzip_reader, gzip_writer),
    "bz2": (bz2_reader, bz2_writer),
    "xz": (xz_reader, xz_writer),
    "lzma": (xz_reader, xz_writer),
    "zst": (zstd_reader, zstd_writer),
}


def register_standard_codecs(registry: "CompressorRegistry") -> list[str]:
    """Register every codec in ``STANDARD_CODECS`` on a registry.

    zstd is registered even when ``zstandard`` is missing; using it then
    raises ``UnsupportedCodecError`` at chain assembly.

    Returns:
        Extensions that replaced an earlier registration.
    """
    replaced = []
    for extension, (reader, writer) in STANDARD_CODECS.items():
        if not registry.register(extension, reader, writer):
            replaced.append(extension)
    return replaced


# =============================================================================
# Chain Stream
# =============================================================================


class ChainStream(io.RawIOBase):
    """Outermost view of an assembled pipeline.

    Reads are served by the last layer. Failures raised by any layer while
    reading surface as ``ChainIOError`` with the original exception as
    cause. Closing the chain closes every layer from the outermost to the
    raw source, exactly once.
    """

    def __init__(self, layers: list[BinaryIO], source_name: str | None = None) -> None:
        if not layers:
            raise ValueError("A chain needs at least the raw source layer")
        super().__init__()
        self._layers = list(layers)
        self._source_name = source_name

    @property
    def name(self) -> str | None:
        return self._source_name

    @property
    def layers(self) -> tuple[BinaryIO, ...]:
        """Layers from the raw source (first) to the outermost (last)."""
        return tuple(self._layers)

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        # Only an unwrapped source can seek.
        if self.closed or len(self._layers) != 1:
            return False
        raw = self._layers[0]
        return hasattr(raw, "seekable") and raw.seekable()

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        if not self.seekable():
            raise io.UnsupportedOperation("seek")
        return self._layers[0].seek(offset, whence)

    def tell(self) -> int:
        if not self.seekable():
            raise io.UnsupportedOperation("tell")
        return self._layers[0].tell()

    def readinto(self, b: Any) -> int:
        try:
            data = self._layers[-1].read(len(b))
        except READ_ERRORS as e:
            raise ChainIOError(f"Read failed: {e}", self._source_name) from e
        n = len(data)
        b[:n] = data
        return n

    def close(self) -> None:
        if self.closed:
            return
        try:
            with ExitStack() as stack:
                for layer in self._layers:
                    stack.callback(layer.close)
        finally:
            super().close()
            logger.debug(f"Closed chain of {len(self._layers)} layer(s) for {self._source_name}")
