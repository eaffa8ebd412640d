"""
File scanner module for trxx.

Discovers the files to bundle: respects .gitignore, default excludes and lock
files, and admits text by extension/size and images by extension.
"""

from __future__ import annotations

import fnmatch
import os
from collections import defaultdict
from pathlib import Path
from typing import Generator, Optional

import pathspec

from .config import (
    DEFAULT_EXCLUDE_GLOBS,
    DEFAULT_INCLUDE_EXTENSIONS,
    DEFAULT_MAX_FILE_BYTES,
    DEFAULT_OUTPUT_NAME,
    SKIP_DIRS,
    FileInfo,
    ScanStats,
    is_binary_extension,
)
from .utils import is_lock_file, is_probably_text, normalize_path


class GitIgnoreParser:
    """
    Parser for .gitignore files.

    Supports nested .gitignore files in subdirectories.
    """

    def __init__(self, root_path: Path):
        """
        Initialize the parser.

        Args:
            root_path: Root directory being scanned
        """
        self.root_path = root_path.resolve()
        self._specs: dict[Path, pathspec.PathSpec] = {}
        self._load_gitignores()

    def _load_gitignores(self) -> None:
        """Load all .gitignore files below the root."""
        for gitignore_path in sorted(self.root_path.rglob(".gitignore")):
            if any(part in SKIP_DIRS for part in gitignore_path.relative_to(self.root_path).parts):
                continue
            self._load_gitignore_file(gitignore_path, gitignore_path.parent)

    def _load_gitignore_file(self, gitignore_path: Path, base_path: Path) -> None:
        """Load a single .gitignore file. Unreadable files are skipped."""
        try:
            patterns = gitignore_path.read_text(encoding="utf-8", errors="replace").splitlines()
        except OSError:
            return

        patterns = [
            p.strip() for p in patterns
            if p.strip() and not p.strip().startswith("#")
        ]

        if patterns:
            self._specs[base_path] = pathspec.PathSpec.from_lines(
                pathspec.patterns.GitWildMatchPattern,
                patterns
            )

    def is_ignored(self, file_path: Path) -> bool:
        """
        Check if a file is ignored by .gitignore.

        Args:
            file_path: Absolute path to the file

        Returns:
            True if the file should be ignored
        """
        file_path = file_path.resolve()

        # Most specific .gitignore first
        for base_path, spec in sorted(
            self._specs.items(),
            key=lambda x: len(x[0].parts),
            reverse=True
        ):
            try:
                rel_path = normalize_path(file_path.relative_to(base_path))
            except ValueError:
                continue
            if spec.match_file(rel_path):
                return True

        return False


class FileScanner:
    """
    Scans a directory for files to bundle.

    Handles filtering by extension, size, gitignore, lock files and the
    bundle's own output file.
    """

    def __init__(
        self,
        root_path: Path,
        include_extensions: Optional[set[str]] = None,
        exclude_globs: Optional[set[str]] = None,
        max_file_bytes: int = DEFAULT_MAX_FILE_BYTES,
        respect_gitignore: bool = True,
        output_name: str = DEFAULT_OUTPUT_NAME,
    ):
        """
        Initialize the scanner.

        Args:
            root_path: Root directory to scan
            include_extensions: Text file extensions to include
            exclude_globs: Glob patterns to exclude
            max_file_bytes: Maximum size in bytes for non-image files
            respect_gitignore: Whether to respect .gitignore files
            output_name: Bundle filename, never bundled into itself
        """
        self.root_path = root_path.resolve()
        if include_extensions is None:
            include_extensions = DEFAULT_INCLUDE_EXTENSIONS
        if exclude_globs is None:
            exclude_globs = DEFAULT_EXCLUDE_GLOBS
        self.include_extensions = {ext.lower() for ext in include_extensions}
        self.exclude_globs = set(exclude_globs)
        self.max_file_bytes = max_file_bytes
        self.respect_gitignore = respect_gitignore
        self.output_name = output_name

        self._gitignore: Optional[GitIgnoreParser] = None
        if respect_gitignore:
            self._gitignore = GitIgnoreParser(self.root_path)

        self.stats = ScanStats()
        self._ignored_pattern_counts: dict[str, int] = defaultdict(int)

    def _matches_exclude_glob(self, rel_path: str) -> Optional[str]:
        """
        Check if a path matches any exclude glob pattern.

        Returns the matching pattern or None.
        """
        for pattern in sorted(self.exclude_globs):
            if pattern.endswith("/**"):
                dir_pattern = pattern[:-3]
                parts = rel_path.split("/")[:-1]
                if rel_path.startswith(dir_pattern + "/") or any(
                    fnmatch.fnmatch(part, dir_pattern) for part in parts
                ):
                    return pattern
            elif fnmatch.fnmatch(rel_path, pattern):
                return pattern
            elif fnmatch.fnmatch(Path(rel_path).name, pattern):
                return pattern

        return None

    def _is_admissible(self, file_path: Path, size: int) -> Optional[str]:
        """
        Decide whether a file can be bundled.

        Returns None when admitted, otherwise the skip reason
        ("extension", "size" or "binary").
        """
        ext = file_path.suffix.lower()

        if is_binary_extension(ext):
            return None

        if size > self.max_file_bytes:
            return "size"

        if not ext:
            return None if is_probably_text(file_path) else "binary"

        if ext not in self.include_extensions:
            return "extension"

        return None

    def scan(self) -> Generator[FileInfo, None, None]:
        """
        Scan the directory and yield file information.

        Yields:
            FileInfo objects for each included file, in sorted path order
        """
        for file_path in self._walk_files():
            self.stats.files_scanned += 1

            try:
                rel_path = normalize_path(file_path.relative_to(self.root_path))
            except ValueError:
                continue

            if file_path.name == self.output_name:
                self.stats.files_skipped_glob += 1
                self._ignored_pattern_counts[self.output_name] += 1
                continue

            if is_lock_file(file_path):
                self.stats.files_skipped_glob += 1
                self._ignored_pattern_counts["lock file"] += 1
                continue

            matching_pattern = self._matches_exclude_glob(rel_path)
            if matching_pattern:
                self.stats.files_skipped_glob += 1
                self._ignored_pattern_counts[matching_pattern] += 1
                continue

            if self._gitignore and self._gitignore.is_ignored(file_path):
                self.stats.files_skipped_gitignore += 1
                continue

            try:
                size = file_path.stat().st_size
            except OSError:
                continue

            reason = self._is_admissible(file_path, size)
            if reason == "size":
                self.stats.files_skipped_size += 1
                continue
            if reason == "binary":
                self.stats.files_skipped_binary += 1
                continue
            if reason == "extension":
                self.stats.files_skipped_extension += 1
                continue

            ext = file_path.suffix.lower()
            self.stats.files_included += 1

            yield FileInfo(
                path=file_path,
                relative_path=rel_path,
                size_bytes=size,
                extension=ext,
                is_binary=is_binary_extension(ext),
            )

        self.stats.top_ignored_patterns = dict(self._ignored_pattern_counts)

    def _walk_files(self) -> Generator[Path, None, None]:
        """
        Walk the directory and yield file paths in sorted order.

        Symlinks are not followed.
        """
        dirs_to_process = [self.root_path]

        while dirs_to_process:
            current_dir = dirs_to_process.pop(0)

            try:
                with os.scandir(current_dir) as entries:
                    entries_list = sorted(entries, key=lambda e: e.name)
            except OSError:
                continue

            subdirs = []
            for entry in entries_list:
                try:
                    if entry.is_symlink():
                        continue

                    if entry.is_dir():
                        if entry.name not in SKIP_DIRS:
                            subdirs.append(Path(entry.path))
                    elif entry.is_file():
                        yield Path(entry.path)
                except OSError:
                    continue

            # Depth-first, keeping sorted order
            dirs_to_process[:0] = subdirs


def scan_directory(
    root_path: Path,
    include_extensions: Optional[set[str]] = None,
    exclude_globs: Optional[set[str]] = None,
    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES,
    respect_gitignore: bool = True,
    output_name: str = DEFAULT_OUTPUT_NAME,
) -> tuple[list[FileInfo], ScanStats]:
    """
    Convenience function to scan a directory.

    Returns:
        Tuple of (list of FileInfo, ScanStats)
    """
    scanner = FileScanner(
        root_path=root_path,
        include_extensions=include_extensions,
        exclude_globs=exclude_globs,
        max_file_bytes=max_file_bytes,
        respect_gitignore=respect_gitignore,
        output_name=output_name,
    )

    files = list(scanner.scan())
    return files, scanner.stats
