"""Tests for the bundle grammar."""

from trxx import grammar


class TestHeader:
    """Tests for header lines."""

    def test_header_line(self):
        """Test the header prefix and path."""
        assert grammar.header_line("a/b.txt") == "###  trxx:a/b.txt"

    def test_is_header(self):
        """Test header detection needs the exact prefix."""
        assert grammar.is_header("###  trxx:a/b.txt")
        assert not grammar.is_header("### trxx:a/b.txt")
        assert not grammar.is_header("# Title")

    def test_parse_header_strips_whitespace(self):
        """Test that a trailing CR or spaces are not part of the path."""
        assert grammar.parse_header("###  trxx:a/b.txt\r") == "a/b.txt"
        assert grammar.parse_header("###  trxx:  src/x.py  ") == "src/x.py"


class TestFences:
    """Tests for fence selection and detection."""

    def test_default_fence(self):
        """Test plain bodies use three backticks."""
        assert grammar.fence_for("plain\ntext") == "```"
        assert grammar.fence_for("uses ``inline`` code") == "```"

    def test_fence_outgrows_body_backticks(self):
        """Test the fence is longer than any backtick run starting a line."""
        assert grammar.fence_for("a\n```\nb") == "````"
        assert grammar.fence_for("`````python") == "``````"

    def test_opening_fence(self):
        """Test tagged and untagged opening fences."""
        assert grammar.opening_fence("```", "rust") == "```rust"
        assert grammar.opening_fence("```", None) == "```"

    def test_binary_fence(self):
        """Test only the binary tag marks a base64 body."""
        assert grammar.is_binary_fence("```binary")
        assert not grammar.is_binary_fence("```python")
        assert not grammar.is_binary_fence("```")
        assert not grammar.is_binary_fence("binary")

    def test_closes_fence(self):
        """Test that only a bare run at least as long as the opener closes."""
        assert grammar.closes_fence("```", 3)
        assert grammar.closes_fence("```  ", 3)
        assert grammar.closes_fence("````", 4)
        assert not grammar.closes_fence("```", 4)
        assert not grammar.closes_fence("```python", 3)
        assert not grammar.closes_fence("``", 3)

    def test_fence_tag(self):
        """Test extracting the tag of a fence line."""
        assert grammar.fence_tag("```rust") == "rust"
        assert grammar.fence_tag("````binary ") == "binary"
        assert grammar.fence_tag("```") == ""


class TestMarkdownEscaping:
    """Tests for markdown escaping."""

    def test_escapes_fences_and_headings(self):
        """Test fence and heading lines gain one backslash."""
        escaped = grammar.escape_markdown("# Title\n```code```\nplain\n  # indented")
        assert escaped == "\\# Title\n\\```code```\nplain\n  # indented"

    def test_unescape_line(self):
        """Test exactly one backslash is removed."""
        assert grammar.unescape_line("\\# Title") == "# Title"
        assert grammar.unescape_line("\\```code```") == "```code```"
        assert grammar.unescape_line("\\\\# literal") == "\\# literal"
        assert grammar.unescape_line("\\n not escaped") == "\\n not escaped"
        assert grammar.unescape_line("plain") == "plain"

    def test_existing_backslashes_survive(self):
        """Test a line that already starts with an escaped heading is preserved."""
        original = "\\# not a heading\n\\\\```"
        escaped = grammar.escape_markdown(original)
        restored = "\n".join(grammar.unescape_line(line) for line in escaped.split("\n"))
        assert restored == original
