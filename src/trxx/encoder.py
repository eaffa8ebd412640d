"""
Bundle encoder for trxx.

Turns an ordered list of files under a root into one bundle text.
"""

from __future__ import annotations

import base64
import os
import tempfile
import time
from collections.abc import Iterable, Mapping
from pathlib import Path

from . import grammar
from .config import (
    BINARY_TAG,
    EXTENSION_TO_LANGUAGE,
    Config,
    FileRecord,
    PackStats,
    is_binary_extension,
    is_markdown_path,
    language_for_path,
)
from .errors import EncodeError, WriteError
from .scanner import scan_directory
from .utils import detect_encoding, estimate_tokens, normalize_path


class BundleEncoder:
    """
    Renders files as bundle records.

    The extension→label mapping is fixed at construction and only chooses the
    display tag of text fences.
    """

    def __init__(self, language_map: Mapping[str, str] = EXTENSION_TO_LANGUAGE):
        self.language_map = language_map

    def read_record(self, root: Path, file_path: Path) -> FileRecord:
        """
        Read one file into a record.

        Args:
            root: Directory the bundle is relative to
            file_path: Absolute path of a file under `root`

        Returns:
            FileRecord with the exact bytes of the file

        Raises:
            EncodeError: If the file is outside `root`, has a backslash in its
                name, cannot be read or is not UTF-8 text
        """
        try:
            rel_path = normalize_path(file_path.relative_to(root))
        except ValueError as e:
            raise EncodeError(str(file_path), f"not under {root}") from e
        if "\\" in rel_path:
            # The decoder refuses backslashes in header paths
            raise EncodeError(rel_path, "backslash in file name cannot be stored in a bundle")

        try:
            content = file_path.read_bytes()
        except OSError as e:
            raise EncodeError(rel_path, f"cannot read file: {e}") from e

        is_binary = is_binary_extension(file_path.suffix)
        if not is_binary:
            try:
                content.decode("utf-8")
            except UnicodeDecodeError as e:
                guess = detect_encoding(content)
                raise EncodeError(
                    rel_path, f"not valid UTF-8 (looks like {guess}) at byte {e.start}"
                ) from e

        return FileRecord(relative_path=rel_path, content=content, is_binary=is_binary)

    def encode_record(self, record: FileRecord) -> str:
        """Render one record, including its trailing blank line."""
        if record.is_binary:
            body = base64.b64encode(record.content).decode("ascii")
            fence = grammar.FENCE
            tag: str | None = BINARY_TAG
        else:
            body = record.content.decode("utf-8")
            if is_markdown_path(record.relative_path):
                body = grammar.escape_markdown(body)
            fence = grammar.fence_for(body)
            tag = language_for_path(record.relative_path, self.language_map)

        parts = [
            grammar.header_line(record.relative_path),
            "",
            grammar.opening_fence(fence, tag),
            "",
            body,
            "",
            fence,
            "",
            "",
        ]
        return "\n".join(parts)

    def encode(self, root: Path, files: Iterable[Path], stats: PackStats | None = None) -> str:
        """
        Encode `files` (absolute paths under `root`) in the given order.

        Any failing file aborts the whole encode. When `stats` is given, the
        per-file counters are added to it as records are encoded.

        Raises:
            EncodeError: Naming the first file that could not be encoded
        """
        root = root.resolve()
        out: list[str] = []
        for file_path in files:
            record = self.read_record(root, Path(file_path))
            out.append(self.encode_record(record))

            if stats is not None:
                stats.files_packed += 1
                stats.total_bytes_read += len(record.content)
                if record.is_binary:
                    stats.binary_files += 1
                else:
                    stats.text_files += 1
        return "".join(out)


def write_bundle(output: Path, data: bytes) -> None:
    """
    Replace `output` with `data` in one step.

    The bytes go to a temporary file next to `output` first, which is then
    renamed over it. On failure the old bundle (if any) is left untouched.

    Raises:
        WriteError: If the bundle could not be written
    """
    temp_path: Path | None = None
    try:
        output.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            mode="wb", suffix=".tmp", prefix=f".{output.name}.", dir=output.parent, delete=False
        ) as temp_file:
            temp_path = Path(temp_file.name)
            temp_file.write(data)
        os.replace(temp_path, output)
    except OSError as e:
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)
        raise WriteError(str(output), f"cannot write bundle: {e}") from e


def pack_directory(config: Config) -> PackStats:
    """
    Scan `config.path`, encode everything admitted and write the bundle.

    The bundle file is replaced only after every file has been encoded.

    Returns:
        PackStats for the run (files_packed is 0 when nothing was found)
    """
    start_time = time.time()
    stats = PackStats()

    files, _ = scan_directory(
        root_path=config.path,
        include_extensions=config.include_extensions,
        exclude_globs=config.exclude_globs,
        max_file_bytes=config.max_file_bytes,
        respect_gitignore=config.respect_gitignore,
        output_name=config.output.name,
    )
    if not files:
        return stats

    encoder = BundleEncoder(config.language_map)
    bundle = encoder.encode(config.path, [f.path for f in files], stats)
    data = bundle.encode("utf-8")
    write_bundle(config.output, data)

    stats.bundle_bytes = len(data)
    stats.tokens_estimated = estimate_tokens(bundle)
    stats.processing_time_seconds = time.time() - start_time
    return stats
