"""Tests for the extension registry."""

import gzip
import io
import threading

import pytest

from powerio import CompressorRegistry, get_default_registry, reset_default_registry
from powerio.wrappers import bz2_reader, bz2_writer, gzip_reader, gzip_writer


class Tagged(io.BytesIO):
    """Stream recording which wrapper produced it and what it wraps."""

    def __init__(self, tag: str, inner: io.IOBase) -> None:
        super().__init__()
        self.tag = tag
        self.inner = inner


def tagging(tag: str):
    def wrap(stream):
        return Tagged(tag, stream)

    return wrap


def layers_of(stream) -> list[str]:
    """Tags from the outermost wrapper inwards."""
    tags = []
    while isinstance(stream, Tagged):
        tags.append(stream.tag)
        stream = stream.inner
    return tags


class TestDefaults:
    """Tests for the default state of a registry."""

    def test_gz_registered(self, registry):
        """Test that gz is known in both directions."""
        assert registry.can_unwrap("x.gz")
        assert registry.can_wrap("x.gz")
        assert registry.input_extensions() == ["gz"]
        assert registry.output_extensions() == ["gz"]

    def test_bz2_not_registered(self, registry):
        """Test that other extensions are unknown until registered."""
        assert not registry.can_unwrap("x.bz2")
        assert not registry.can_wrap("x.bz2")

    def test_without_defaults(self):
        """Test an empty registry."""
        registry = CompressorRegistry(defaults=False)
        assert not registry.can_unwrap("x.gz")
        assert registry.input_extensions() == []

    def test_default_registry_is_shared(self):
        """Test that the default registry is created once."""
        assert get_default_registry() is get_default_registry()

    def test_reset_default_registry(self):
        """Test that reset restores the single gz entry."""
        get_default_registry().register("bz2", bz2_reader, bz2_writer)
        reset_default_registry()
        registry = get_default_registry()
        assert registry.can_unwrap("x.gz")
        assert not registry.can_unwrap("x.bz2")


class TestCanUnwrap:
    """Tests for extension sniffing."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("data.gz", True),
            ("data.tar.gz", True),
            ("archive.gz.tar", False),
            ("gz", False),
            ("data", False),
            ("data.", False),
            ("data.GZ", False),
            (".gz", True),
            ("http://example.com/file.gz", True),
        ],
    )
    def test_last_extension_only(self, registry, name, expected):
        """Test that only the text after the last dot is looked up."""
        assert registry.can_unwrap(name) is expected

    def test_matches_registered_set(self, registry):
        """Test can_unwrap against an explicit extension set."""
        registry.register_input("tar", tagging("tar"))
        extensions = {"gz", "tar"}
        for name in ["a.gz", "a.tar", "a.zip", "a.gz.zip", "a.zip.tar", "noext"]:
            suffix = name.rsplit(".", 1)[-1] if "." in name else None
            assert registry.can_unwrap(name) == (suffix in extensions)

    def test_directions_are_independent(self, registry):
        """Test that input and output tables do not leak into each other."""
        registry.register_input("in", tagging("in"))
        registry.register_output("out", tagging("out"))

        assert registry.can_unwrap("x.in")
        assert not registry.can_wrap("x.in")
        assert registry.can_wrap("x.out")
        assert not registry.can_unwrap("x.out")


class TestUnwrap:
    """Tests for chained peeling of extensions."""

    def test_chained_peeling(self):
        """Test that a.tar.gz is unwrapped by gz first, then tar."""
        registry = CompressorRegistry(defaults=False)
        registry.register("gz", tagging("gz"), tagging("gz"))
        registry.register("tar", tagging("tar"), tagging("tar"))

        raw = io.BytesIO()
        result = registry.unwrap("a.tar.gz", raw)

        # outermost layer is the last applied one
        assert layers_of(result) == ["tar", "gz"]
        assert result.inner.inner is raw

    def test_stops_at_unknown_segment(self):
        """Test that peeling stops at the first unregistered segment."""
        registry = CompressorRegistry(defaults=False)
        registry.register("gz", tagging("gz"), tagging("gz"))
        registry.register("tar", tagging("tar"), tagging("tar"))

        raw = io.BytesIO()
        result = registry.unwrap("a.tar.unknown.gz", raw)

        assert layers_of(result) == ["gz"]
        assert result.inner is raw

    def test_unknown_last_extension_returns_original(self, registry):
        """Test that an unmatched name leaves the stream untouched."""
        raw = io.BytesIO(b"plain")
        assert registry.unwrap("a.txt", raw) is raw
        assert registry.unwrap("noext", raw) is raw

    def test_resolve_unwrappers_order(self):
        """Test the order of resolved wrappers."""
        gz, tar = tagging("gz"), tagging("tar")
        registry = CompressorRegistry(defaults=False)
        registry.register_input("gz", gz)
        registry.register_input("tar", tar)

        assert registry.resolve_unwrappers("a.tar.gz") == [gz, tar]
        assert registry.resolve_unwrappers("a.gz.tar") == [tar, gz]
        assert registry.resolve_unwrappers("a.gz.txt") == []

    def test_unwrap_real_gzip(self, registry):
        """Test unwrapping actual gzip data."""
        raw = io.BytesIO(gzip.compress(b"payload"))
        assert registry.unwrap("data.gz", raw).read() == b"payload"

    def test_double_gzip(self, registry):
        """Test that a repeated extension is peeled twice."""
        raw = io.BytesIO(gzip.compress(gzip.compress(b"twice")))
        assert registry.unwrap("data.gz.gz", raw).read() == b"twice"

    def test_wrapper_error_propagates(self):
        """Test that a failing wrapper raises to the caller."""

        def broken(stream):
            raise OSError("cannot wrap")

        registry = CompressorRegistry(defaults=False)
        registry.register_input("bad", broken)
        with pytest.raises(OSError, match="cannot wrap"):
            registry.unwrap("x.bad", io.BytesIO())


class TestWrap:
    """Tests for the output direction."""

    def test_wrap_gzip_round_trip(self, registry):
        """Test that wrap produces data unwrap understands."""
        sink = io.BytesIO()
        writer = registry.wrap("out.gz", sink)
        writer.write(b"compressed output")
        writer.close()

        assert gzip.decompress(sink.getvalue()) == b"compressed output"

    def test_chained_wrap(self):
        """Test that wrap peels extensions like unwrap."""
        registry = CompressorRegistry(defaults=False)
        registry.register_output("gz", tagging("gz"))
        registry.register_output("tar", tagging("tar"))

        result = registry.wrap("a.tar.gz", io.BytesIO())
        assert layers_of(result) == ["tar", "gz"]

    def test_unknown_extension_returns_sink(self, registry):
        """Test that an unmatched name leaves the sink untouched."""
        sink = io.BytesIO()
        assert registry.wrap("a.txt", sink) is sink


class TestRegistration:
    """Tests for registering wrappers."""

    def test_register_reports_overwrite(self, registry):
        """Test that the second registration reports an overwrite."""
        first_in, first_out = tagging("zip1"), tagging("zip1")
        second_in, second_out = tagging("zip2"), tagging("zip2")

        assert registry.register("zip", first_in, first_out) is True
        assert registry.register("zip", second_in, second_out) is False

        assert registry.get_input("zip") is second_in
        assert registry.get_output("zip") is second_out
        assert layers_of(registry.unwrap("a.zip", io.BytesIO())) == ["zip2"]

    def test_register_false_if_only_one_direction_existed(self, registry):
        """Test that overwriting one direction is enough for False."""
        registry.register_input("lz", tagging("lz"))
        assert registry.register("lz", tagging("lz"), tagging("lz")) is False

    def test_register_input_returns_previous(self, registry):
        """Test that register_input returns the replaced wrapper."""
        first, second = tagging("a"), tagging("b")
        assert registry.register_input("x", first) is None
        assert registry.register_input("x", second) is first

    def test_register_output_returns_previous(self, registry):
        """Test that register_output returns the replaced wrapper."""
        assert registry.register_output("gz", tagging("g")) is gzip_writer

    def test_replacing_gz(self, registry):
        """Test that the built-in entry can be replaced."""
        replacement = tagging("custom")
        assert registry.register_input("gz", replacement) is gzip_reader
        assert layers_of(registry.unwrap("a.gz", io.BytesIO())) == ["custom"]

    def test_unregister(self, registry):
        """Test removing an extension."""
        assert registry.unregister("gz") is True
        assert not registry.can_unwrap("a.gz")
        assert registry.unregister("gz") is False

    def test_extensions_are_case_sensitive(self, registry):
        """Test that extensions are not normalized."""
        registry.register("BZ2", bz2_reader, bz2_writer)
        assert registry.can_unwrap("x.BZ2")
        assert not registry.can_unwrap("x.bz2")

    def test_copy_is_independent(self, registry):
        """Test that a copy does not share state."""
        copied = registry.copy()
        copied.register("bz2", bz2_reader, bz2_writer)

        assert copied.can_unwrap("a.gz")
        assert copied.can_unwrap("a.bz2")
        assert not registry.can_unwrap("a.bz2")

    def test_contains(self, registry):
        """Test membership over both directions."""
        registry.register_output("only_out", tagging("o"))
        assert "gz" in registry
        assert "only_out" in registry
        assert "nope" not in registry


class TestConcurrency:
    """Tests for concurrent use of one registry."""

    def test_concurrent_register_and_unwrap(self, registry):
        """Test that registrations and lookups from many threads agree."""
        errors: list[BaseException] = []
        payload = gzip.compress(b"data")

        def register_many(offset: int) -> None:
            try:
                for i in range(200):
                    registry.register(f"ext{offset}_{i}", tagging("t"), tagging("t"))
            except BaseException as e:  # pragma: no cover - failure path
                errors.append(e)

        def unwrap_many() -> None:
            try:
                for _ in range(200):
                    assert registry.unwrap("a.gz", io.BytesIO(payload)).read() == b"data"
            except BaseException as e:  # pragma: no cover - failure path
                errors.append(e)

        threads = [threading.Thread(target=register_many, args=(n,)) for n in range(4)]
        threads += [threading.Thread(target=unwrap_many) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(registry.input_extensions()) == 1 + 4 * 200
