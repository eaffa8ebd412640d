"""
Bundle decoder for trxx.

Parses a bundle one line at a time with an explicit state machine and yields
the records it contains. `decode_bundle` writes them under a target directory.
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Generator
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from . import grammar
from .config import FileRecord, RevertStats, is_markdown_path
from .errors import DecodeError
from .writer import RecordWriter, validate_relative_path

UTF8_BOM = "\ufeff"


class DecoderState(str, Enum):
    """Where the decoder is within the current record."""

    IDLE = "idle"  # before the first header
    HEADER = "header"  # after a header, waiting for the blank line
    BODY = "body"  # between header block and fences
    FENCE = "fence"  # inside a fenced body


@dataclass
class DecodeState:
    """
    The decoder's latched variables for the record being read.

    Attributes:
        state: Current position in the record
        path: Relative path from the header ("" when no record is active)
        lines: Body lines collected inside the fence
        is_binary: Whether the fence was tagged `binary`
        fence_len: Backtick count of the opening fence
    """

    state: DecoderState = DecoderState.IDLE
    path: str = ""
    lines: list[str] = field(default_factory=list)
    is_binary: bool = False
    fence_len: int = 0

    @property
    def markdown(self) -> bool:
        return is_markdown_path(self.path)


def _strip_framing(text: str) -> str:
    """Remove the blank lines the encoder puts around a text body.

    Bundles written by the encoder always carry one newline before and two
    after the body. The same framing with CRLF line endings (a bundle saved
    by a Windows editor) is removed just as exactly. Anything else gets one
    leading and one trailing run of CR/LF characters removed.
    """
    if len(text) >= 3 and text.startswith("\n") and text.endswith("\n\n"):
        return text[1:-2]
    if len(text) >= 6 and text.startswith("\r\n") and text.endswith("\r\n\r\n"):
        return text[2:-4]
    return text.strip("\r\n")


def flush(state: DecodeState) -> FileRecord | None:
    """
    Turn the pending record into a FileRecord.

    Returns:
        The record, or None when there is no path or nothing in the body

    Raises:
        DecodeError: If a binary body is not valid base64
        UnsafePathError: If the header path would escape the target directory
    """
    if not state.path or not state.lines:
        return None

    text = "".join(f"{line}\n" for line in state.lines)

    if state.is_binary:
        payload = "".join(text.split())
        if not payload:
            return None
        validate_relative_path(state.path)
        try:
            content = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecodeError(state.path, f"invalid base64 in binary record: {e}") from e
        return FileRecord(relative_path=state.path, content=content, is_binary=True)

    body = _strip_framing(text)
    if not body:
        return None
    validate_relative_path(state.path)
    return FileRecord(relative_path=state.path, content=body.encode("utf-8"), is_binary=False)


def step(state: DecodeState, line: str) -> tuple[DecodeState, FileRecord | None]:
    """
    Advance the decoder by one line.

    Returns:
        The next state and the record completed by this line, if any
    """
    if state.state is not DecoderState.FENCE and grammar.is_header(line):
        record = flush(state)
        return DecodeState(state=DecoderState.HEADER, path=grammar.parse_header(line)), record

    if state.state is DecoderState.HEADER:
        if not line.strip():
            state.state = DecoderState.BODY
        return state, None

    if state.state is DecoderState.BODY:
        if grammar.is_binary_fence(line):
            state.is_binary = True
            state.lines = []
            state.fence_len = grammar.fence_run(line)
            state.state = DecoderState.FENCE
        elif grammar.fence_run(line):
            state.fence_len = grammar.fence_run(line)
            state.state = DecoderState.FENCE
        return state, None

    if state.state is DecoderState.FENCE:
        if grammar.closes_fence(line, state.fence_len):
            state.state = DecoderState.BODY
        else:
            state.lines.append(grammar.unescape_line(line) if state.markdown else line)
        return state, None

    # IDLE: material before the first header
    return state, None


def split_lines(text: str) -> list[str]:
    """Split bundle text on LF only, dropping a leading BOM."""
    if text.startswith(UTF8_BOM):
        text = text[len(UTF8_BOM):]
    return text.split("\n")


def iter_records(text: str) -> Generator[FileRecord, None, None]:
    """
    Lazily yield the records of a bundle.

    Args:
        text: Whole bundle text

    Yields:
        FileRecord for every non-empty record, in bundle order
    """
    state = DecodeState()
    for line in split_lines(text):
        state, record = step(state, line)
        if record is not None:
            yield record

    record = flush(state)
    if record is not None:
        yield record


def read_bundle(bundle_path: Path) -> str:
    """
    Read a bundle as UTF-8 without newline translation.

    Raises:
        DecodeError: If the file is unreadable or not UTF-8
    """
    try:
        data = bundle_path.read_bytes()
    except OSError as e:
        raise DecodeError(str(bundle_path), f"cannot read bundle: {e}") from e
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(str(bundle_path), f"bundle is not valid UTF-8: {e}") from e


def count_records(text: str) -> int:
    """Count header lines that sit outside fences, empty records included."""
    state = DecodeState()
    count = 0
    for line in split_lines(text):
        if state.state is not DecoderState.FENCE and grammar.is_header(line):
            count += 1
        # no body is kept, so the flush on the next header is a no-op
        state.lines = []
        state, _ = step(state, line)
    return count


def decode_bundle(bundle_path: Path, target_dir: Path, dry_run: bool = False) -> RevertStats:
    """
    Restore every record of a bundle under `target_dir`.

    Files written before a failing record stay on disk.

    Args:
        bundle_path: Bundle file to read
        target_dir: Directory the relative paths are resolved against
        dry_run: Parse and validate without touching the filesystem

    Returns:
        RevertStats for the run
    """
    text = read_bundle(bundle_path)
    stats = RevertStats()
    writer = RecordWriter(target_dir, dry_run=dry_run)

    for record in iter_records(text):
        writer.write(record)
        stats.files_written += 1
        stats.total_bytes_written += len(record.content)
        stats.written_paths.append(record.relative_path)
        if record.is_binary:
            stats.binary_files += 1

    stats.records_skipped = max(count_records(text) - stats.files_written, 0)
    stats.directories_created = writer.directories.created
    return stats
