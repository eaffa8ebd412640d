"""
Exception types for trxx.

Every error carries the path it concerns so the CLI can report it in one line.
"""

from __future__ import annotations


class TrxxError(Exception):
    """Base error for pack/revert failures."""

    def __init__(self, path: str, message: str):
        self.path = path
        self.message = message
        super().__init__(f"{path}: {message}")


class EncodeError(TrxxError):
    """A source file could not be read or is not valid UTF-8 text."""

    pass


class DecodeError(TrxxError):
    """A bundle record could not be turned back into bytes."""

    pass


class UnsafePathError(DecodeError):
    """A header path would escape the target directory."""

    pass


class WriteError(TrxxError):
    """A restored file or its parent directory could not be written."""

    pass


class ConfigError(TrxxError):
    """A config file could not be parsed."""

    pass
