"""
Utility functions for trxx.

Includes path normalization, lock-file detection, text sniffing, encoding hints
and token estimation for the bundle summary.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path, PurePath
from typing import Any

import chardet
import tiktoken

SNIFF_BYTES = 512

LOCK_FILE_NAMES = {
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "poetry.lock",
    "pipfile.lock",
    "cargo.lock",
    "gemfile.lock",
    "composer.lock",
    "go.sum",
}


@lru_cache(maxsize=1)
def _token_encoder() -> Any | None:
    # tiktoken fetches its BPE tables on first use; sandboxed machines may not
    # be able to, in which case the heuristic below is used.
    try:
        return tiktoken.get_encoding("cl100k_base")
    except Exception:
        return None


def estimate_tokens(text: str) -> int:
    """Estimate token count for a string.

    Uses `tiktoken` when its encoding tables are available, otherwise
    roughly four characters per token.

    Args:
        text: Input text to estimate tokens for.

    Returns:
        Estimated number of tokens in `text`.
    """
    encoder = _token_encoder()
    if encoder is not None:
        return len(encoder.encode(text, disallowed_special=()))
    return len(text) // 4


def detect_encoding(sample: bytes) -> str:
    """Guess the encoding of bytes that failed strict UTF-8 decoding.

    Only used to make error messages more helpful.

    Args:
        sample: Raw file content (only the first 8 KiB are inspected).

    Returns:
        A lowercase encoding label, or `"unknown"`.
    """
    if sample.startswith(b"\xff\xfe"):
        return "utf-16-le"
    if sample.startswith(b"\xfe\xff"):
        return "utf-16-be"

    result = chardet.detect(sample[:8192])
    encoding = result.get("encoding")
    if not isinstance(encoding, str) or not encoding:
        return "unknown"
    return encoding.lower()


def is_probably_text(file_path: Path) -> bool:
    """Sniff an extensionless file.

    A file is text when its first 512 bytes contain no NUL and the whole file
    decodes as UTF-8. Unreadable files are not text.

    Args:
        file_path: Path to the file to test.

    Returns:
        True if the file can be bundled as text.
    """
    try:
        data = file_path.read_bytes()
    except OSError:
        return False

    if b"\x00" in data[:SNIFF_BYTES]:
        return False
    try:
        data.decode("utf-8")
    except UnicodeDecodeError:
        return False
    return True


def normalize_path(path: PurePath) -> str:
    """Render a relative path with forward slashes.

    Only the platform's own separator is converted. On POSIX a backslash is
    an ordinary filename character and is kept as is.

    Args:
        path: Relative path.

    Returns:
        The path using forward slashes.
    """
    return path.as_posix()


def is_lock_file(file_path: Path) -> bool:
    """Check whether a path is a dependency lock file.

    Args:
        file_path: Path to check.

    Returns:
        True for `*.lock` files and known lock-file names.
    """
    name = file_path.name.lower()
    return name.endswith(".lock") or name in LOCK_FILE_NAMES


def format_bytes(size: int) -> str:
    """Render a byte count for console output (e.g. `1.5 MiB`)."""
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KiB"
    return f"{size / (1024 * 1024):.1f} MiB"
