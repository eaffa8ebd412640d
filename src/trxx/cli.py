"""
CLI entry point for trxx.

`pack` bundles a directory into one markdown file, `revert` restores the files
from such a bundle, `info` shows what `pack` would include.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from . import __version__
from .config import DEFAULT_EXCLUDE_GLOBS, Config, build_language_map
from .config_loader import load_config, merge_cli_with_config
from .decoder import decode_bundle
from .encoder import pack_directory
from .errors import TrxxError
from .scanner import scan_directory
from .utils import format_bytes

# Initialize CLI app
app = typer.Typer(
    name="trxx",
    help="Pack a directory into one markdown bundle and restore it again.",
    add_completion=False,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"trxx version {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version", "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Pack a directory into one markdown bundle and restore it again."""


def build_config(
    path: Path,
    config_file: Optional[Path],
    output: Optional[str],
    include_ext: Optional[str],
    exclude_glob: Optional[str],
    max_file_bytes: Optional[int],
    no_gitignore: bool,
) -> Config:
    """Resolve defaults, config file and CLI flags into a Config."""
    project_config = load_config(path, config_file)
    merged = merge_cli_with_config(
        project_config,
        output=output,
        include_ext=include_ext,
        exclude_glob=exclude_glob,
        max_file_bytes=max_file_bytes,
        no_gitignore=no_gitignore,
    )

    kwargs = {}
    if merged["include_extensions"]:
        kwargs["include_extensions"] = merged["include_extensions"]

    return Config(
        path=path,
        output=Path(merged["output"]),
        exclude_globs=DEFAULT_EXCLUDE_GLOBS | (merged["extra_exclude_globs"] or set()),
        max_file_bytes=merged["max_file_bytes"],
        respect_gitignore=merged["respect_gitignore"],
        language_map=build_language_map(merged["languages"]),
        **kwargs,
    )


def report_error(error: Exception, verbose: bool) -> None:
    """Print a single error line (plus traceback when verbose)."""
    console.print(f"[red]Error: {error}[/red]")
    if verbose:
        console.print_exception()


@app.command()
def pack(
    path: Path = typer.Argument(
        Path("."),
        help="Directory to pack.",
        exists=True,
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
    ),
    output: Optional[str] = typer.Option(
        None,
        "--output", "-o",
        help="Bundle file to write (default: all_content.md in the current directory).",
    ),
    include_ext: Optional[str] = typer.Option(
        None,
        "--include-ext", "-i",
        help="Comma-separated text extensions to include (e.g., '.py,.md').",
    ),
    exclude_glob: Optional[str] = typer.Option(
        None,
        "--exclude-glob", "-e",
        help="Comma-separated glob patterns to exclude, on top of the defaults.",
    ),
    max_file_bytes: Optional[int] = typer.Option(
        None,
        "--max-file-bytes",
        help="Maximum size in bytes for non-image files (default: 1 MB).",
    ),
    no_gitignore: bool = typer.Option(
        False,
        "--no-gitignore",
        help="Don't respect .gitignore files.",
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="Config file (default: trxx.toml / trxx.yml in PATH).",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Show tracebacks on error.",
    ),
) -> None:
    """
    Pack every text and image file under PATH into one bundle.

    Examples:

        # Pack the current directory into ./all_content.md
        trxx pack

        # Pack a project, only Python and Markdown text
        trxx pack ./repo -i ".py,.md" -o repo.md
    """
    try:
        config = build_config(
            path, config_file, output, include_ext, exclude_glob, max_file_bytes, no_gitignore
        )

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            progress.add_task("Packing files...", total=None)
            stats = pack_directory(config)

        if not stats.files_packed:
            console.print("[yellow]Warning: No files found matching criteria.[/yellow]")
            raise typer.Exit(0)

        console.print(f"[bold green]✓ Packed {stats.files_packed} files into {config.output}[/bold green]")
        console.print()
        console.print("[cyan]Statistics:[/cyan]")
        console.print(f"  Text files: {stats.text_files}")
        console.print(f"  Binary files: {stats.binary_files}")
        console.print(f"  Bytes read: {format_bytes(stats.total_bytes_read)}")
        console.print(f"  Bundle size: {format_bytes(stats.bundle_bytes)}")
        console.print(f"  Estimated tokens: {stats.tokens_estimated:,}")
        console.print(f"  Processing time: {stats.processing_time_seconds:.2f}s")

    except (TrxxError, ValueError) as e:
        report_error(e, verbose)
        raise typer.Exit(1)


@app.command()
def revert(
    bundle: Path = typer.Argument(
        ...,
        help="Bundle file to restore from.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    target_dir: Path = typer.Option(
        Path("."),
        "--target-dir", "-t",
        help="Directory to restore files into.",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Parse and validate the bundle without writing files.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="List restored files and show tracebacks on error.",
    ),
) -> None:
    """
    Restore the files contained in a bundle.

    Existing files are overwritten. Records with an empty body are skipped.
    """
    try:
        stats = decode_bundle(bundle, target_dir, dry_run=dry_run)
    except TrxxError as e:
        report_error(e, verbose)
        raise typer.Exit(1)

    if verbose or dry_run:
        for rel_path in stats.written_paths:
            console.print(f"  {rel_path}")

    action = "Would restore" if dry_run else "Restored"
    console.print(
        f"[bold green]✓ {action} {stats.files_written} files "
        f"({stats.binary_files} binary, {format_bytes(stats.total_bytes_written)})[/bold green]"
    )
    if stats.records_skipped:
        console.print(f"[dim]Skipped {stats.records_skipped} empty records[/dim]")


@app.command()
def info(
    path: Path = typer.Argument(
        Path("."),
        help="Directory to inspect.",
        exists=True,
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
    ),
    include_ext: Optional[str] = typer.Option(
        None,
        "--include-ext", "-i",
        help="Comma-separated text extensions to include (e.g., '.py,.md').",
    ),
    exclude_glob: Optional[str] = typer.Option(
        None,
        "--exclude-glob", "-e",
        help="Comma-separated glob patterns to exclude, on top of the defaults.",
    ),
    max_file_bytes: Optional[int] = typer.Option(
        None,
        "--max-file-bytes",
        help="Maximum size in bytes for non-image files (default: 1 MB).",
    ),
    no_gitignore: bool = typer.Option(
        False,
        "--no-gitignore",
        help="Don't respect .gitignore files.",
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="Config file (default: trxx.toml / trxx.yml in PATH).",
    ),
) -> None:
    """
    Show which files `pack` would include, without writing anything.

    Uses the same scanning logic as 'pack' for consistent results.
    """
    try:
        config = build_config(
            path, config_file, None, include_ext, exclude_glob, max_file_bytes, no_gitignore
        )
    except (TrxxError, ValueError) as e:
        report_error(e, False)
        raise typer.Exit(1)

    files, stats = scan_directory(
        root_path=config.path,
        include_extensions=config.include_extensions,
        exclude_globs=config.exclude_globs,
        max_file_bytes=config.max_file_bytes,
        respect_gitignore=config.respect_gitignore,
        output_name=config.output.name,
    )

    console.print(f"\n[bold]Directory: {config.path.name}[/bold]\n")

    console.print("[cyan]Files to pack:[/cyan]")
    for f in files:
        marker = " [dim](binary)[/dim]" if f.is_binary else ""
        console.print(f"  {f.relative_path}{marker}")

    console.print("\n[cyan]Statistics:[/cyan]")
    console.print(f"  Total files scanned: {stats.files_scanned}")
    console.print(f"  Files included: {stats.files_included}")
    console.print(f"  Files skipped (size): {stats.files_skipped_size}")
    console.print(f"  Files skipped (binary): {stats.files_skipped_binary}")
    console.print(f"  Files skipped (extension): {stats.files_skipped_extension}")
    console.print(f"  Files skipped (gitignore): {stats.files_skipped_gitignore}")
    console.print(f"  Files skipped (glob): {stats.files_skipped_glob}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
