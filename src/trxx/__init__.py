"""
trxx: pack a directory into one markdown bundle and restore it again.

Each file becomes a record:
- a `###  trxx:<relative/path>` header
- a fenced body, tagged with the file's language
- images travel as base64 inside a `binary` fence
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
