"""Extension registry mapping file extensions to stream wrappers.

The registry holds two independent tables, one for the input direction
(decompressing wrappers) and one for the output direction (compressing
wrappers). Both are keyed by a case-sensitive extension without the
leading dot.

A file name with several extensions is peeled from right to left, one
dot-segment at a time::

    data.tar.gz  ->  gz wrapper applied first, then the tar wrapper

Peeling stops at the first segment that has no wrapper and the stream
wrapped so far is returned as it is.

Example:
    >>> registry = CompressorRegistry()
    >>> registry.can_unwrap("report.csv.gz")
    True
    >>> from powerio.wrappers import bz2_reader, bz2_writer
    >>> registry.register("bz2", bz2_reader, bz2_writer)
    True
    >>> stream = registry.unwrap("report.csv.bz2", open("report.csv.bz2", "rb"))
"""

from __future__ import annotations

import logging
import threading
from typing import BinaryIO, Generic, TypeVar

from powerio.base import InputWrapper, OutputWrapper
from powerio.wrappers import gzip_reader, gzip_writer

logger = logging.getLogger(__name__)

WrapperT = TypeVar("WrapperT")


def _last_extension(file_name: str) -> str | None:
    index = file_name.rfind(".")
    if index < 0:
        return None
    return file_name[index + 1 :]


class _ExtensionTable(Generic[WrapperT]):
    """One direction of the registry. Callers hold the registry lock."""

    def __init__(self) -> None:
        self._wrappers: dict[str, WrapperT] = {}

    def put(self, extension: str, wrapper: WrapperT) -> WrapperT | None:
        previous = self._wrappers.get(extension)
        self._wrappers[extension] = wrapper
        return previous

    def get(self, extension: str) -> WrapperT | None:
        return self._wrappers.get(extension)

    def remove(self, extension: str) -> WrapperT | None:
        return self._wrappers.pop(extension, None)

    def __contains__(self, extension: str) -> bool:
        return extension in self._wrappers

    def resolve(self, file_name: str) -> list[WrapperT]:
        """Collect wrappers for the dot-segments of a name, right to left."""
        wrappers: list[WrapperT] = []
        end = len(file_name)
        index = file_name.rfind(".", 0, end)
        while index >= 0:
            wrapper = self._wrappers.get(file_name[index + 1 : end])
            if wrapper is None:
                break
            wrappers.append(wrapper)
            end = index
            index = file_name.rfind(".", 0, end)
        return wrappers

    def extensions(self) -> list[str]:
        return sorted(self._wrappers)

    def copy(self) -> "_ExtensionTable[WrapperT]":
        table: _ExtensionTable[WrapperT] = _ExtensionTable()
        table._wrappers = dict(self._wrappers)
        return table


class CompressorRegistry:
    """Registry of compression wrappers keyed by file extension.

    Instances are independent; ``get_default_registry`` returns the shared
    one used by builders that are not given a registry. All lookups and
    registrations are serialized by a single lock held only for the
    dictionary operations, never while a wrapper is being applied.
    """

    def __init__(self, defaults: bool = True) -> None:
        """Initialize the registry.

        Args:
            defaults: Register the built-in ``gz`` wrappers.
        """
        self._lock = threading.RLock()
        self._inputs: _ExtensionTable[InputWrapper] = _ExtensionTable()
        self._outputs: _ExtensionTable[OutputWrapper] = _ExtensionTable()
        if defaults:
            self.register("gz", gzip_reader, gzip_writer)

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def register(
        self,
        extension: str,
        input_wrapper: InputWrapper,
        output_wrapper: OutputWrapper,
    ) -> bool:
        """Register wrappers for both directions of an extension.

        Mostly it is enough to pass stream constructors, e.g.
        ``registry.register("bz2", bz2.BZ2File, partial(bz2.BZ2File, mode="wb"))``.

        Args:
            extension: Extension without the leading dot.
            input_wrapper: Decompressing wrapper.
            output_wrapper: Compressing wrapper.

        Returns:
            True if neither direction replaced an existing wrapper.
        """
        with self._lock:
            replaced_input = self._inputs.put(extension, input_wrapper)
            replaced_output = self._outputs.put(extension, output_wrapper)
        logger.debug(f"Registered wrappers for extension: {extension}")
        return replaced_input is None and replaced_output is None

    def register_input(
        self, extension: str, wrapper: InputWrapper
    ) -> InputWrapper | None:
        """Register a decompressing wrapper.

        Returns:
            The wrapper previously registered for the extension, if any.
        """
        with self._lock:
            previous = self._inputs.put(extension, wrapper)
        logger.debug(f"Registered input wrapper for extension: {extension}")
        return previous

    def register_output(
        self, extension: str, wrapper: OutputWrapper
    ) -> OutputWrapper | None:
        """Register a compressing wrapper.

        Returns:
            The wrapper previously registered for the extension, if any.
        """
        with self._lock:
            previous = self._outputs.put(extension, wrapper)
        logger.debug(f"Registered output wrapper for extension: {extension}")
        return previous

    def unregister(self, extension: str) -> bool:
        """Remove both directions of an extension.

        Returns:
            True if anything was removed.
        """
        with self._lock:
            removed_input = self._inputs.remove(extension)
            removed_output = self._outputs.remove(extension)
        return removed_input is not None or removed_output is not None

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def can_unwrap(self, file_name: str) -> bool:
        """Check if the last extension of a name has a decompressing wrapper.

        Args:
            file_name: File name, URL or anything else ending in an extension.
        """
        extension = _last_extension(file_name)
        if extension is None:
            return False
        with self._lock:
            return extension in self._inputs

    def can_wrap(self, file_name: str) -> bool:
        """Check if the last extension of a name has a compressing wrapper."""
        extension = _last_extension(file_name)
        if extension is None:
            return False
        with self._lock:
            return extension in self._outputs

    def get_input(self, extension: str) -> InputWrapper | None:
        with self._lock:
            return self._inputs.get(extension)

    def get_output(self, extension: str) -> OutputWrapper | None:
        with self._lock:
            return self._outputs.get(extension)

    def resolve_unwrappers(self, file_name: str) -> list[InputWrapper]:
        """Get the decompressing wrappers ``unwrap`` applies, in order.

        The first element wraps the raw stream and corresponds to the last
        extension of the name.
        """
        with self._lock:
            return self._inputs.resolve(file_name)

    def resolve_wrappers(self, file_name: str) -> list[OutputWrapper]:
        """Get the compressing wrappers ``wrap`` applies, in order."""
        with self._lock:
            return self._outputs.resolve(file_name)

    def input_extensions(self) -> list[str]:
        with self._lock:
            return self._inputs.extensions()

    def output_extensions(self) -> list[str]:
        with self._lock:
            return self._outputs.extensions()

    # -------------------------------------------------------------------------
    # Wrapping
    # -------------------------------------------------------------------------

    def unwrap(self, file_name: str, stream: BinaryIO) -> BinaryIO:
        """Wrap a stream with decompressors chosen by the name's extensions.

        Args:
            file_name: Name used to choose the wrappers.
            stream: Stream to wrap.

        Returns:
            The wrapped stream, or ``stream`` itself if the last extension
            is unknown.

        Raises:
            OSError: If a wrapper fails.
        """
        for wrapper in self.resolve_unwrappers(file_name):
            stream = wrapper(stream)
        return stream

    def wrap(self, file_name: str, stream: BinaryIO) -> BinaryIO:
        """Wrap a stream with compressors chosen by the name's extensions."""
        for wrapper in self.resolve_wrappers(file_name):
            stream = wrapper(stream)
        return stream

    def copy(self) -> "CompressorRegistry":
        """Create an independent registry with the same wrappers."""
        registry = CompressorRegistry(defaults=False)
        with self._lock:
            registry._inputs = self._inputs.copy()
            registry._outputs = self._outputs.copy()
        return registry

    def __contains__(self, extension: str) -> bool:
        with self._lock:
            return extension in self._inputs or extension in self._outputs

    def __repr__(self) -> str:
        return (
            f"CompressorRegistry(inputs={self.input_extensions()}, "
            f"outputs={self.output_extensions()})"
        )


_default_registry: CompressorRegistry | None = None
_default_lock = threading.Lock()


def get_default_registry() -> CompressorRegistry:
    """Get the shared registry, creating it on first access."""
    global _default_registry
    with _default_lock:
        if _default_registry is None:
            _default_registry = CompressorRegistry()
        return _default_registry


def reset_default_registry() -> None:
    """Drop the shared registry so the next access recreates it (for testing)."""
    global _default_registry
    with _default_lock:
        _default_registry = None
