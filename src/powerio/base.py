"""Base classes, protocols, and types for input chains.

This module defines the core abstractions shared by the registry, the
stream adapters and the chain builder. Wrapper types are plain callables
checked structurally, so built-in adapters, classes and user lambdas all
fit the same slot.
"""

from __future__ import annotations

import locale
from dataclasses import dataclass, replace
from enum import Enum
from typing import BinaryIO, Protocol, runtime_checkable


# =============================================================================
# Exceptions
# =============================================================================


class PowerIOError(Exception):
    """Base exception for input chain errors."""

    def __init__(self, message: str, source_name: str | None = None) -> None:
        self.source_name = source_name
        super().__init__(f"[{source_name}] {message}" if source_name else message)


class SourceOpenError(PowerIOError):
    """The underlying source could not be opened."""

    pass


class ChainIOError(PowerIOError):
    """Failure while wrapping or reading through an opened chain."""

    pass


class DeserializationError(PowerIOError):
    """Structured content is malformed or references an unknown type."""

    pass


class ChainConfigError(PowerIOError, ValueError):
    """Invalid chain configuration."""

    pass


class UnsupportedCodecError(PowerIOError):
    """Requested codec library is not installed."""

    def __init__(self, codec: str, available: list[str] | None = None) -> None:
        self.codec = codec
        self.available = available or []
        msg = f"Codec '{codec}' is not available"
        if self.available:
            msg += f". Available: {', '.join(self.available)}"
        super().__init__(msg)


# =============================================================================
# Enums
# =============================================================================


class Base64Variant(str, Enum):
    """Base64 alphabets understood by the decoding layer."""

    STANDARD = "standard"
    URL_SAFE = "urlsafe"
    MIME = "mime"

    @property
    def altchars(self) -> bytes | None:
        """Characters replacing ``+`` and ``/`` for this alphabet."""
        return b"-_" if self is Base64Variant.URL_SAFE else None

    @property
    def lenient(self) -> bool:
        """Whether characters outside the alphabet are skipped."""
        return self is Base64Variant.MIME


# =============================================================================
# Protocols
# =============================================================================


@runtime_checkable
class InputWrapper(Protocol):
    """Wraps a raw byte input with a decompressing byte input."""

    def __call__(self, stream: BinaryIO) -> BinaryIO:
        ...


@runtime_checkable
class OutputWrapper(Protocol):
    """Wraps a byte output with a compressing byte output."""

    def __call__(self, stream: BinaryIO) -> BinaryIO:
        ...


@runtime_checkable
class Source(Protocol):
    """Producer of a raw byte input.

    ``open_stream`` is called once per terminal operation and may fail.
    The name is only used to sniff file extensions.
    """

    def open_stream(self) -> BinaryIO:
        """Open and return a fresh byte input."""
        ...

    def has_name(self) -> bool:
        """Return True if the source carries a name."""
        ...

    @property
    def name(self) -> str | None:
        """Name used for extension sniffing."""
        ...


# =============================================================================
# Configuration
# =============================================================================


DEFAULT_BUFFER_SIZE = 64 * 1024  # 64KB


def default_encoding() -> str:
    """Return the platform's preferred text encoding."""
    return locale.getpreferredencoding(False)


@dataclass(frozen=True)
class ChainConfig:
    """Options of an input chain, captured when a terminal runs.

    Attributes:
        decompress: Apply a decompression layer.
        base64: Base64 alphabet to decode, or None for no base64 layer.
        encoding: Charset for character terminals (None = platform default).
        errors: Codec error handler for character terminals.
        buffer_size: Chunk size for copying and spooling.
    """

    decompress: bool = False
    base64: Base64Variant | None = None
    encoding: str | None = None
    errors: str = "strict"
    buffer_size: int = DEFAULT_BUFFER_SIZE

    @property
    def effective_encoding(self) -> str:
        """Get the configured encoding or the platform default."""
        return self.encoding or default_encoding()

    def evolve(self, **changes: object) -> "ChainConfig":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    def validate(self) -> None:
        """Validate configuration."""
        if self.buffer_size <= 0:
            raise ChainConfigError("buffer_size must be positive")
        if self.base64 is not None and not isinstance(self.base64, Base64Variant):
            raise ChainConfigError(f"Unknown base64 variant: {self.base64!r}")
