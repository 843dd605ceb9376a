"""Command-line interface for powerio."""

import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from powerio.api import In
from powerio.base import Base64Variant, PowerIOError
from powerio.builder import InBuilder
from powerio.registry import get_default_registry
from powerio.wrappers import register_standard_codecs

app = typer.Typer(
    name="powerio",
    help="Read files through decompressing and decoding input chains",
    add_completion=False,
)

console = Console()


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-V", help="Log chain assembly to stderr"),
    ] = False,
    all_codecs: Annotated[
        bool,
        typer.Option("--all-codecs", help="Register bz2, xz, lzma and zst besides gz"),
    ] = False,
) -> None:
    """powerio command-line tools."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(levelname)s %(name)s: %(message)s",
        )
    if all_codecs:
        register_standard_codecs(get_default_registry())


def _build(
    file: Path,
    decompress: bool,
    base64: Optional[Base64Variant],
    encoding: Optional[str],
) -> InBuilder:
    builder = In.file(file)
    if decompress:
        builder.decompress()
    if base64 is not None:
        builder.decode_base64(base64)
    if encoding:
        builder.with_charset(encoding)
    return builder


DecompressOption = Annotated[
    bool,
    typer.Option("--decompress", "-d", help="Decompress by file extension (zlib if unknown)"),
]
Base64Option = Annotated[
    Optional[Base64Variant],
    typer.Option("--base64", "-b", help="Decode base64 with the given alphabet"),
]
EncodingOption = Annotated[
    Optional[str],
    typer.Option("--encoding", "-e", help="Charset of the text (default: platform)"),
]


@app.command(name="cat")
def cat_cmd(
    file: Annotated[Path, typer.Argument(help="File to read")],
    decompress: DecompressOption = False,
    base64: Base64Option = None,
    encoding: EncodingOption = None,
    binary: Annotated[
        bool,
        typer.Option("--binary", help="Write raw bytes instead of decoded text"),
    ] = False,
) -> None:
    """Print the content of a file after decompression and decoding."""
    try:
        builder = _build(file, decompress, base64, encoding)
        if binary:
            stdout = typer.get_binary_stream("stdout")
            builder.copy_to(stdout)
            stdout.flush()
        else:
            typer.echo(builder.read_all())
    except PowerIOError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


@app.command(name="lines")
def lines_cmd(
    file: Annotated[Path, typer.Argument(help="File to read")],
    head: Annotated[
        Optional[int],
        typer.Option("--head", "-n", help="Print only the first N lines"),
    ] = None,
    number: Annotated[
        bool,
        typer.Option("--number", help="Prefix lines with their number"),
    ] = False,
    decompress: DecompressOption = False,
    base64: Base64Option = None,
    encoding: EncodingOption = None,
) -> None:
    """Print the lines of a file, reading lazily."""
    try:
        builder = _build(file, decompress, base64, encoding)
        with builder.stream_lines() as lines:
            for index, line in enumerate(lines, start=1):
                if head is not None and index > head:
                    break
                typer.echo(f"{index:>6}  {line}" if number else line)
    except PowerIOError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


@app.command(name="formats")
def formats_cmd() -> None:
    """List the extensions known to the registry."""
    registry = get_default_registry()
    inputs = set(registry.input_extensions())
    outputs = set(registry.output_extensions())

    table = Table(title="Registered Extensions", show_header=True, header_style="bold")
    table.add_column("Extension", style="cyan")
    table.add_column("Decompress", justify="center")
    table.add_column("Compress", justify="center")
    for extension in sorted(inputs | outputs):
        table.add_row(
            f".{extension}",
            "yes" if extension in inputs else "-",
            "yes" if extension in outputs else "-",
        )
    console.print(table)


if __name__ == "__main__":
    app()
