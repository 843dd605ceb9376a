"""powerio - fluent builders for decompressing, decoding input chains.

Example:
    >>> from powerio import In, get_default_registry
    >>> from powerio.wrappers import bz2_reader, bz2_writer
    >>>
    >>> get_default_registry().register("bz2", bz2_reader, bz2_writer)
    >>> In.file("data.csv.bz2").decompress().with_utf8().read_lines()
"""

from powerio.api import In
from powerio.base import (
    # Exceptions
    PowerIOError,
    SourceOpenError,
    ChainIOError,
    DeserializationError,
    ChainConfigError,
    UnsupportedCodecError,
    # Types
    Base64Variant,
    ChainConfig,
    InputWrapper,
    OutputWrapper,
    Source,
)
from powerio.builder import InBuilder
from powerio.readers import (
    LineStream,
    ObjectReader,
    TarEntryReader,
    ZipEntryReader,
)
from powerio.registry import (
    CompressorRegistry,
    get_default_registry,
    reset_default_registry,
)
from powerio.sources import (
    BaseSource,
    BytesSource,
    FileSource,
    ResourceSource,
    StreamSource,
    StringSource,
)
from powerio.wrappers import (
    ChainStream,
    register_standard_codecs,
)

__version__ = "0.1.0"

__all__ = [
    # Entry points
    "In",
    "InBuilder",
    # Exceptions
    "PowerIOError",
    "SourceOpenError",
    "ChainIOError",
    "DeserializationError",
    "ChainConfigError",
    "UnsupportedCodecError",
    # Types
    "Base64Variant",
    "ChainConfig",
    "InputWrapper",
    "OutputWrapper",
    "Source",
    # Registry
    "CompressorRegistry",
    "get_default_registry",
    "reset_default_registry",
    "register_standard_codecs",
    # Sources
    "BaseSource",
    "BytesSource",
    "FileSource",
    "ResourceSource",
    "StreamSource",
    "StringSource",
    # Readers
    "ChainStream",
    "LineStream",
    "ObjectReader",
    "TarEntryReader",
    "ZipEntryReader",
]
