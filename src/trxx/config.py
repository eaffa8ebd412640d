"""
Configuration models, format constants and defaults for trxx.

Holds the shared vocabulary of the bundle format plus the extension tables used
by the scanner and the encoder.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType

from .errors import ConfigError

# Bundle grammar
HEADER_PREFIX = "###  trxx:"
FENCE = "```"
BINARY_TAG = "binary"
MARKDOWN_EXTENSION = ".md"

# Default bundle filename (also excluded from scans)
DEFAULT_OUTPUT_NAME = "all_content.md"

DEFAULT_MAX_FILE_BYTES = 1_048_576  # 1 MB

# Raster images carried as base64. SVG is text and stays out of this set.
BINARY_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".png",
        ".jpg",
        ".jpeg",
        ".gif",
        ".bmp",
        ".webp",
        ".ico",
        ".tif",
        ".tiff",
        ".avif",
    }
)

# Text extensions admitted by the scanner
DEFAULT_INCLUDE_EXTENSIONS: set[str] = {
    # Docs
    ".txt",
    ".md",
    ".log",
    # Source
    ".rs",
    ".js",
    ".ts",
    ".jsx",
    ".tsx",
    ".py",
    ".java",
    ".cpp",
    ".c",
    ".h",
    ".hpp",
    ".cs",
    ".go",
    ".rb",
    ".php",
    ".sql",
    ".vue",
    ".lua",
    ".vim",
    # Markup / data
    ".json",
    ".yaml",
    ".yml",
    ".toml",
    ".css",
    ".html",
    ".htm",
    ".xml",
    ".svg",
    # Config
    ".conf",
    ".cfg",
    ".ini",
    ".config",
    ".properties",
    ".gradle",
    ".env",
    ".rc",
    ".editorconfig",
    ".gitignore",
    ".template",
    ".dockerfile",
    # Shell
    ".sh",
    ".bash",
    ".bat",
    ".cmd",
    ".ps1",
}

# Default glob patterns to exclude
DEFAULT_EXCLUDE_GLOBS: set[str] = {
    # Build outputs
    "target/**",
    "dist/**",
    "build/**",
    # Dependencies
    "node_modules/**",
    ".venv/**",
    "venv/**",
    "__pycache__/**",
    ".tox/**",
    "*.egg-info/**",
    # Version control
    ".git/**",
    ".svn/**",
    ".hg/**",
    # Cache
    ".pytest_cache/**",
    ".mypy_cache/**",
    ".ruff_cache/**",
    "*.pyc",
    # Lock files
    "*.lock",
    # Misc
    ".DS_Store",
    "Thumbs.db",
}

# Directory names skipped outright during the walk
SKIP_DIRS: frozenset[str] = frozenset(
    {".git", ".svn", ".hg", "target", "node_modules", "__pycache__", ".venv", "venv"}
)


# Fence labels by extension
EXTENSION_TO_LANGUAGE: Mapping[str, str] = MappingProxyType(
    {
        ".rs": "rust",
        ".json": "json",
        ".js": "javascript",
        ".ts": "typescript",
        ".py": "python",
        ".java": "java",
        ".cpp": "cpp",
        ".c": "c",
        ".go": "go",
        ".rb": "ruby",
        ".php": "php",
        ".html": "html",
        ".css": "css",
        ".md": "markdown",
        ".yaml": "yaml",
        ".yml": "yaml",
        ".toml": "toml",
        ".sh": "bash",
        ".bash": "bash",
        ".sql": "sql",
        ".vue": "vue",
        ".jsx": "jsx",
        ".tsx": "tsx",
        ".lua": "lua",
        ".h": "c/c++ header",
        ".conf": "conf",
        ".ini": "ini",
        ".txt": "text",
        ".bat": "batch file",
        ".ps1": "powershell",
    }
)

# Fence labels for files recognized by their whole (lowercased) name
FILENAME_TO_LANGUAGE: Mapping[str, str] = MappingProxyType(
    {
        ".env": "env",
        ".gitignore": "gitignore",
        "dockerfile": "dockerfile",
        "makefile": "makefile",
    }
)


def is_valid_label(label: str) -> bool:
    """Return whether `label` can tag a text fence and decode as text again.

    Labels may not contain backticks or line breaks, and may not read as the
    binary tag once surrounding whitespace is dropped.
    """
    if not label.strip() or label.strip() == BINARY_TAG:
        return False
    return not any(ch in label for ch in "`\r\n")


def build_language_map(extra: Mapping[str, str] | None = None) -> Mapping[str, str]:
    """Return an immutable extension→label mapping with `extra` entries layered on top.

    Args:
        extra: Additional entries; keys are normalized to lowercase with a leading dot.

    Returns:
        A read-only mapping.

    Raises:
        ConfigError: If a label could not be decoded back as a text fence tag.
    """
    merged = dict(EXTENSION_TO_LANGUAGE)
    for ext, label in (extra or {}).items():
        ext = str(ext).strip().lower()
        if not ext:
            continue
        if not ext.startswith("."):
            ext = f".{ext}"
        label = str(label)
        if not is_valid_label(label):
            raise ConfigError(ext, f"invalid fence label {label!r}")
        merged[ext] = label.strip()
    return MappingProxyType(merged)


def get_language(extension: str, language_map: Mapping[str, str] = EXTENSION_TO_LANGUAGE) -> str | None:
    """Look up the fence label for an extension.

    Args:
        extension: File extension including the leading dot.
        language_map: Mapping to consult.

    Returns:
        The label, or None when the extension has no entry.
    """
    return language_map.get(extension.lower())


def language_for_path(
    relative_path: str, language_map: Mapping[str, str] = EXTENSION_TO_LANGUAGE
) -> str | None:
    """Pick the fence label for a record path.

    Whole file names (`.gitignore`, `Makefile`) are looked up before the
    extension. Labels that fail `is_valid_label` are dropped so the fence is
    left untagged.
    """
    path = Path(relative_path)
    label = FILENAME_TO_LANGUAGE.get(path.name.lower())
    if label is None:
        label = get_language(path.suffix, language_map)
    if label is not None and not is_valid_label(label):
        return None
    return label


def is_binary_extension(extension: str) -> bool:
    """Return whether files with this extension are carried as base64."""
    return extension.lower() in BINARY_EXTENSIONS


def is_markdown_path(relative_path: str) -> bool:
    """Return whether the record at `relative_path` gets markdown escaping."""
    return Path(relative_path).suffix.lower() == MARKDOWN_EXTENSION


@dataclass
class FileRecord:
    """One file as carried by a bundle.

    Attributes:
        relative_path: Root-relative path using forward slashes.
        content: Exact file bytes.
        is_binary: Whether the body is base64 inside a `binary` fence.
    """

    relative_path: str
    content: bytes
    is_binary: bool = False


@dataclass
class FileInfo:
    """A file admitted by the scanner.

    Attributes:
        path: Absolute path on disk.
        relative_path: Root-relative path using forward slashes.
        size_bytes: File size in bytes.
        extension: Lowercased extension including the leading dot.
        is_binary: Whether the file will be base64-encoded.
    """

    path: Path
    relative_path: str
    size_bytes: int
    extension: str
    is_binary: bool = False


@dataclass
class ScanStats:
    """Statistics from scanning a directory.

    Attributes:
        files_scanned: Total file paths visited.
        files_included: Files admitted.
        files_skipped_size: Skipped for exceeding the size ceiling.
        files_skipped_binary: Skipped by content sniffing.
        files_skipped_extension: Skipped by the extension allow-list.
        files_skipped_gitignore: Skipped by `.gitignore`.
        files_skipped_glob: Skipped by exclude globs, lock-file or output-name rules.
        top_ignored_patterns: Pattern → count of files it excluded.
    """

    files_scanned: int = 0
    files_included: int = 0
    files_skipped_size: int = 0
    files_skipped_binary: int = 0
    files_skipped_extension: int = 0
    files_skipped_gitignore: int = 0
    files_skipped_glob: int = 0
    top_ignored_patterns: dict[str, int] = field(default_factory=dict)


@dataclass
class PackStats:
    """Summary of one pack run."""

    files_packed: int = 0
    text_files: int = 0
    binary_files: int = 0
    total_bytes_read: int = 0
    bundle_bytes: int = 0
    tokens_estimated: int = 0
    processing_time_seconds: float = 0.0


@dataclass
class RevertStats:
    """Summary of one revert run."""

    files_written: int = 0
    binary_files: int = 0
    records_skipped: int = 0
    total_bytes_written: int = 0
    directories_created: int = 0
    written_paths: list[str] = field(default_factory=list)


@dataclass
class Config:
    """Resolved settings for a pack run.

    Attributes:
        path: Directory to pack.
        output: Bundle file path.
        include_extensions: Text extensions admitted by the scanner.
        exclude_globs: Glob patterns excluded from scanning.
        max_file_bytes: Size ceiling for non-image files.
        respect_gitignore: Whether `.gitignore` rules apply.
        language_map: Extension → fence label mapping.
    """

    path: Path = field(default_factory=lambda: Path("."))
    output: Path = field(default_factory=lambda: Path(DEFAULT_OUTPUT_NAME))
    include_extensions: set[str] = field(default_factory=lambda: DEFAULT_INCLUDE_EXTENSIONS.copy())
    exclude_globs: set[str] = field(default_factory=lambda: DEFAULT_EXCLUDE_GLOBS.copy())
    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES
    respect_gitignore: bool = True
    language_map: Mapping[str, str] = field(default_factory=lambda: EXTENSION_TO_LANGUAGE)

    def __post_init__(self) -> None:
        """Normalize paths and extensions.

        Raises:
            ValueError: If `path` does not exist or is not a directory.
        """
        self.path = Path(self.path).resolve()
        if not self.path.exists():
            raise ValueError(f"Path does not exist: {self.path}")
        if not self.path.is_dir():
            raise ValueError(f"Path is not a directory: {self.path}")

        self.output = Path(self.output).resolve()

        self.include_extensions = {
            (ext if ext.startswith(".") else f".{ext}").lower() for ext in self.include_extensions
        }
