"""
Configuration file loader for trxx.

Supports loading configuration from:
- trxx.toml / .trxx.toml
- trxx.yml / .trxx.yml / trxx.yaml / .trxx.yaml

Values may sit at the top level or under a `[trxx]` section.
CLI flags override config file values.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .config import (
    DEFAULT_MAX_FILE_BYTES,
    DEFAULT_OUTPUT_NAME,
    is_valid_label,
)
from .errors import ConfigError

# Config file search order (first found wins)
CONFIG_FILE_NAMES = [
    "trxx.toml",
    ".trxx.toml",
    "trxx.yml",
    ".trxx.yml",
    "trxx.yaml",
    ".trxx.yaml",
]


@dataclass
class ProjectConfig:
    """
    Project-level configuration loaded from a config file.

    All fields are optional - CLI flags will override any values set here.
    """

    output: str | None = None
    include_extensions: set[str] | None = None
    exclude_globs: set[str] | None = None
    max_file_bytes: int | None = None
    respect_gitignore: bool | None = None

    # Extra extension -> fence label entries
    languages: dict[str, str] = field(default_factory=dict)

    # Source file path (for debugging)
    _config_file: Path | None = field(default=None, repr=False)


def find_config_file(root: Path) -> Path | None:
    """
    Find a configuration file in the directory being packed.

    Args:
        root: Directory to look in

    Returns:
        Path to the config file, or None if not found
    """
    for name in CONFIG_FILE_NAMES:
        config_path = root / name
        if config_path.is_file():
            return config_path
    return None


def _unwrap_section(data: Any) -> dict[str, Any]:
    """Return the `trxx` section when present, else the whole mapping."""
    if not isinstance(data, dict):
        return {}
    if "trxx" in data and isinstance(data["trxx"], dict):
        return dict(data["trxx"])
    return dict(data)


def _parse_toml(path: Path) -> dict[str, Any]:
    """Parse a TOML config file into a dict."""
    with open(path, "rb") as f:
        return _unwrap_section(tomllib.load(f))


def _parse_yaml(path: Path) -> dict[str, Any]:
    """Parse a YAML config file into a dict."""
    with open(path, encoding="utf-8") as f:
        return _unwrap_section(yaml.safe_load(f))


def normalize_extensions(extensions: Any) -> set[str] | None:
    """Normalize extension input to a set of lowercase dot-prefixed extensions.

    Args:
        extensions: Extensions from config/CLI (comma-separated string, list, set, or None).

    Returns:
        A set of normalized extensions (e.g., `{".py", ".ts"}`) or None if unset/empty.
    """
    if extensions is None:
        return None

    if isinstance(extensions, str):
        extensions = extensions.split(",")

    if not isinstance(extensions, (list, set, tuple)):
        return None

    result = set()
    for ext in extensions:
        ext = str(ext).strip().lower()
        if ext:
            if not ext.startswith("."):
                ext = f".{ext}"
            result.add(ext)

    return result or None


def normalize_globs(globs: Any) -> set[str] | None:
    """Normalize glob input to a set of patterns.

    Args:
        globs: Globs from config/CLI (comma-separated string, list, set, or None).

    Returns:
        A set of glob patterns or None if unset/empty.
    """
    if globs is None:
        return None

    if isinstance(globs, str):
        globs = globs.split(",")

    if not isinstance(globs, (list, set, tuple)):
        return None

    result = {str(g).strip() for g in globs if str(g).strip()}
    return result or None


def load_config(root: Path, config_path: Path | None = None) -> ProjectConfig:
    """
    Load configuration from a config file.

    Args:
        root: Directory being packed (searched when `config_path` is None)
        config_path: Explicit path to a config file

    Returns:
        ProjectConfig with loaded values (unset values remain None)

    Raises:
        ConfigError: If an explicit config file is missing, or any config
            file is malformed
    """
    if config_path is None:
        config_path = find_config_file(root)
        if config_path is None:
            return ProjectConfig()
    elif not config_path.is_file():
        raise ConfigError(str(config_path), "config file not found")

    suffix = config_path.suffix.lower()
    try:
        if suffix == ".toml":
            data = _parse_toml(config_path)
        elif suffix in (".yml", ".yaml"):
            data = _parse_yaml(config_path)
        else:
            raise ConfigError(str(config_path), f"unsupported config format '{suffix}'")
    except (OSError, tomllib.TOMLDecodeError, yaml.YAMLError) as e:
        raise ConfigError(str(config_path), f"cannot parse config: {e}") from e

    config = ProjectConfig(_config_file=config_path)

    try:
        if "output" in data:
            config.output = str(data["output"])
        config.include_extensions = normalize_extensions(
            data.get("include_extensions") or data.get("include_ext")
        )
        config.exclude_globs = normalize_globs(data.get("exclude_globs") or data.get("exclude_glob"))
        if "max_file_bytes" in data:
            config.max_file_bytes = int(data["max_file_bytes"])
        if "respect_gitignore" in data:
            config.respect_gitignore = bool(data["respect_gitignore"])
    except (TypeError, ValueError) as e:
        raise ConfigError(str(config_path), f"invalid value: {e}") from e

    languages = data.get("languages") or {}
    if not isinstance(languages, dict):
        raise ConfigError(str(config_path), "'languages' must be a table of extension = label")
    for ext, label in languages.items():
        if not is_valid_label(str(label)):
            raise ConfigError(str(config_path), f"invalid fence label {str(label)!r} for '{ext}'")
    config.languages = {str(k): str(v) for k, v in languages.items()}

    return config


def merge_cli_with_config(
    config: ProjectConfig,
    *,
    # CLI arguments (None means not specified on CLI)
    output: str | None = None,
    include_ext: str | None = None,
    exclude_glob: str | None = None,
    max_file_bytes: int | None = None,
    no_gitignore: bool = False,
) -> dict[str, Any]:
    """Merge CLI arguments with config file values (CLI wins).

    Exclude globs given on the CLI or in config are added to the defaults
    rather than replacing them.

    Args:
        config: Config loaded from file (may have unset values).
        output: Bundle filename from CLI (optional).
        include_ext: Comma-separated extensions from CLI (optional).
        exclude_glob: Comma-separated exclude globs from CLI (optional).
        max_file_bytes: CLI override for the size ceiling (optional).
        no_gitignore: CLI flag to disable `.gitignore` respect.

    Returns:
        Dictionary of merged values; `None` means "use the default".
    """
    result: dict[str, Any] = {}

    # Output filename
    if output is not None:
        result["output"] = output
    elif config.output is not None:
        result["output"] = config.output
    else:
        result["output"] = DEFAULT_OUTPUT_NAME

    # Include extensions: CLI overrides config
    if include_ext:
        result["include_extensions"] = normalize_extensions(include_ext)
    else:
        result["include_extensions"] = config.include_extensions

    # Extra exclude globs: CLI overrides config
    if exclude_glob:
        result["extra_exclude_globs"] = normalize_globs(exclude_glob)
    else:
        result["extra_exclude_globs"] = config.exclude_globs

    # Max file bytes
    if max_file_bytes is not None:
        result["max_file_bytes"] = max_file_bytes
    elif config.max_file_bytes is not None:
        result["max_file_bytes"] = config.max_file_bytes
    else:
        result["max_file_bytes"] = DEFAULT_MAX_FILE_BYTES

    # Respect gitignore (CLI --no-gitignore sets False)
    if no_gitignore:
        result["respect_gitignore"] = False
    elif config.respect_gitignore is not None:
        result["respect_gitignore"] = config.respect_gitignore
    else:
        result["respect_gitignore"] = True

    # Language labels (always from config, no CLI override)
    result["languages"] = config.languages

    return result
