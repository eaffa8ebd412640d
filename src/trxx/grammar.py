"""
Bundle grammar shared by the encoder and the decoder.

A record looks like::

    ###  trxx:<relative/path>

    ```<label | binary | nothing>

    <body>

    ```

Markdown bodies get a backslash in front of any line that a reader could take
for a fence or a heading; the decoder removes exactly one again.
"""

from __future__ import annotations

import re

from .config import BINARY_TAG, FENCE, HEADER_PREFIX

# Lines that need escaping in markdown bodies, with any number of backslashes
# already in front so that literal backslashes survive the round trip.
_ESCAPABLE = re.compile(r"^\\*(?:```|#)")
_ESCAPED = re.compile(r"^\\+(?:```|#)")
_LEADING_BACKTICKS = re.compile(r"^`+")


def header_line(relative_path: str) -> str:
    """Return the header line for a record (no trailing newline)."""
    return f"{HEADER_PREFIX}{relative_path}"


def is_header(line: str) -> bool:
    """Return whether `line` starts a new record."""
    return line.startswith(HEADER_PREFIX)


def parse_header(line: str) -> str:
    """Extract the relative path from a header line.

    Surrounding whitespace (including a stray CR) is dropped.
    """
    return line[len(HEADER_PREFIX):].strip()


def fence_for(body: str) -> str:
    """Pick a fence that no line of `body` can close.

    Returns three backticks unless some body line itself starts with a run of
    three or more, in which case the fence is one backtick longer than the
    longest such run.
    """
    longest = 0
    for line in body.split("\n"):
        match = _LEADING_BACKTICKS.match(line)
        if match:
            longest = max(longest, len(match.group(0)))
    return FENCE if longest < len(FENCE) else "`" * (longest + 1)


def opening_fence(fence: str, tag: str | None) -> str:
    """Return the opening fence line, tagged with `tag` when given."""
    return f"{fence}{tag or ''}"


def fence_run(line: str) -> int:
    """Return the length of the backtick run opening `line` if it is a fence, else 0."""
    match = _LEADING_BACKTICKS.match(line)
    if not match or len(match.group(0)) < len(FENCE):
        return 0
    return len(match.group(0))


def fence_tag(line: str) -> str:
    """Return the tag following the backtick run of a fence line."""
    return line[fence_run(line):].strip()


def is_binary_fence(line: str) -> bool:
    """Return whether `line` opens a base64 body."""
    return fence_run(line) > 0 and fence_tag(line) == BINARY_TAG


def closes_fence(line: str, opened_with: int) -> bool:
    """Return whether `line` closes a fence opened with `opened_with` backticks.

    Only a bare backtick run (trailing whitespace allowed) at least as long as
    the opener counts.
    """
    run = fence_run(line)
    return run >= opened_with and not line[run:].strip()


def escape_markdown(content: str) -> str:
    """Backslash-escape fence and heading lines of a markdown body."""
    return "\n".join(
        f"\\{line}" if _ESCAPABLE.match(line) else line for line in content.split("\n")
    )


def unescape_line(line: str) -> str:
    """Undo `escape_markdown` for one line."""
    if _ESCAPED.match(line):
        return line[1:]
    return line
