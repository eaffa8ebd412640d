"""
Writes decoded records to disk.

`DirectoryCache` remembers which directories a revert run has already created,
so files landing in the same directory do not re-issue mkdir calls.
"""

from __future__ import annotations

import re
from pathlib import Path, PurePosixPath

from .config import FileRecord
from .errors import UnsafePathError, WriteError

_DRIVE = re.compile(r"^[A-Za-z]:")


def validate_relative_path(relative_path: str) -> PurePosixPath:
    """
    Check that a header path stays inside the directory it is restored into.

    Args:
        relative_path: Path as written in the bundle header

    Returns:
        The path as a PurePosixPath

    Raises:
        UnsafePathError: For absolute paths, `..` segments, backslashes,
            drive letters or NUL bytes
    """
    if "\x00" in relative_path:
        raise UnsafePathError(relative_path, "path contains a NUL byte")
    if "\\" in relative_path:
        raise UnsafePathError(relative_path, "path contains a backslash")
    if relative_path.startswith("/") or _DRIVE.match(relative_path):
        raise UnsafePathError(relative_path, "absolute paths are not allowed")

    path = PurePosixPath(relative_path)
    if ".." in path.parts:
        raise UnsafePathError(relative_path, "path escapes the target directory")
    if not path.parts or path.parts == (".",):
        raise UnsafePathError(relative_path, "path is empty")
    return path


class DirectoryCache:
    """
    Set of directories known to exist during one revert run.

    Not shared between runs; create one per `RecordWriter`.
    """

    def __init__(self, root: Path):
        self.root = root
        self._known: set[Path] = set()
        self.created = 0

    def __contains__(self, directory: Path) -> bool:
        return directory in self._known

    def ensure(self, directory: Path) -> None:
        """
        Create `directory` and its parents unless already seen.

        Raises:
            WriteError: If the directory cannot be created
        """
        if directory in self._known:
            return
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WriteError(str(directory), f"cannot create directory: {e}") from e
        self.created += 1

        # Ancestors exist now too
        current = directory
        while current not in self._known:
            self._known.add(current)
            if current == self.root or current.parent == current:
                break
            current = current.parent


class RecordWriter:
    """
    Writes records under a target directory.

    Each file is written with a single `write_bytes` call; a failure names the
    path and aborts, leaving earlier files in place.
    """

    def __init__(self, target_dir: Path, dry_run: bool = False):
        self.target_dir = Path(target_dir).resolve()
        self.dry_run = dry_run
        self.directories = DirectoryCache(self.target_dir)

    def resolve(self, relative_path: str) -> Path:
        """
        Map a header path to its destination under the target directory.

        Raises:
            UnsafePathError: If the path is unsafe or resolves outside the target
        """
        rel = validate_relative_path(relative_path)
        target = (self.target_dir / Path(*rel.parts)).resolve()
        try:
            target.relative_to(self.target_dir)
        except ValueError as e:
            raise UnsafePathError(relative_path, f"resolves outside {self.target_dir}") from e
        return target

    def write(self, record: FileRecord) -> Path:
        """
        Write one record, creating parent directories as needed.

        Returns:
            The destination path

        Raises:
            UnsafePathError: If the record path is unsafe
            WriteError: If the directory or file cannot be written
        """
        target = self.resolve(record.relative_path)
        if self.dry_run:
            return target

        self.directories.ensure(target.parent)
        try:
            target.write_bytes(record.content)
        except OSError as e:
            raise WriteError(record.relative_path, f"cannot write file: {e}") from e
        return target
