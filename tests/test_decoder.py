"""Tests for the decoder module."""

import base64

import pytest

from trxx.config import FileRecord
from trxx.decoder import (
    DecoderState,
    DecodeState,
    count_records,
    decode_bundle,
    iter_records,
    step,
)
from trxx.encoder import BundleEncoder
from trxx.errors import DecodeError, UnsafePathError


def round_trip(records):
    encoder = BundleEncoder()
    bundle = "".join(encoder.encode_record(r) for r in records)
    return list(iter_records(bundle))


class TestScenarios:
    """Tests for hand-written and canonical bundles."""

    def test_canonical_text_record(self):
        """Test a record laid out exactly as the encoder writes it."""
        bundle = "###  trxx:a/b.txt\n\n```\n\nhello\nworld\n\n```\n\n"

        records = list(iter_records(bundle))

        assert records == [FileRecord("a/b.txt", b"hello\nworld", False)]

    def test_tight_hand_written_record(self):
        """Test a record without blank lines inside the fence."""
        bundle = "###  trxx:a/b.txt\n\n```\nhello\nworld\n```\n"

        records = list(iter_records(bundle))

        assert records[0].content == b"hello\nworld"

    def test_crlf_hand_written_record(self):
        """Test that CRLF framing lines are removed without leaving CRs behind."""
        bundle = "###  trxx:a.txt\r\n\r\n```\r\n\r\nhello\r\n\r\n```\r\n"

        records = list(iter_records(bundle))

        assert records == [FileRecord("a.txt", b"hello", False)]

    def test_crlf_tight_hand_written_record(self):
        """Test a CRLF record without blank lines inside the fence."""
        bundle = "###  trxx:a.txt\r\n\r\n```\r\none\r\ntwo\r\n```\r\n"

        records = list(iter_records(bundle))

        assert records[0].content == b"one\r\ntwo"

    def test_markdown_is_unescaped(self):
        """Test that escaped markdown lines come back unescaped."""
        bundle = "###  trxx:notes.md\n\n```markdown\n\n\\# Title\n\\```code```\n\n```\n\n"

        records = list(iter_records(bundle))

        assert records[0].content == b"# Title\n```code```"

    def test_non_markdown_keeps_backslashes(self):
        """Test that unescaping only applies to .md paths."""
        bundle = "###  trxx:notes.txt\n\n```\n\n\\# Title\n\n```\n\n"

        records = list(iter_records(bundle))

        assert records[0].content == b"\\# Title"

    def test_empty_record_is_skipped(self):
        """Test that a record with an empty body produces nothing."""
        bundle = (
            "###  trxx:empty.txt\n\n```\n\n```\n\n"
            "###  trxx:b.txt\n\n```\n\nx\n\n```\n\n"
        )

        records = list(iter_records(bundle))

        assert [r.relative_path for r in records] == ["b.txt"]

    def test_header_without_body_is_skipped(self):
        """Test a header immediately followed by another header."""
        bundle = "###  trxx:nothing.txt\n###  trxx:b.txt\n\n```\nx\n```\n"

        assert [r.relative_path for r in iter_records(bundle)] == ["b.txt"]

    def test_empty_path_is_skipped(self):
        """Test that a header with no path produces nothing."""
        bundle = "###  trxx:\n\n```\n\nx\n\n```\n\n"

        assert list(iter_records(bundle)) == []

    def test_preamble_is_ignored(self):
        """Test that text before the first header is ignored."""
        bundle = "Project dump\n```\nnot a file\n```\n###  trxx:a.txt\n\n```\n\nx\n\n```\n\n"

        assert [r.relative_path for r in iter_records(bundle)] == ["a.txt"]

    def test_text_between_records_is_ignored(self):
        """Test stray lines outside fences are not part of any body."""
        bundle = "###  trxx:a.txt\n\n```\n\nx\n\n```\n\nstray note\n"

        assert list(iter_records(bundle))[0].content == b"x"

    def test_leading_bom_is_ignored(self):
        """Test a UTF-8 BOM before the first header."""
        bundle = "\ufeff###  trxx:a.txt\n\n```\n\nx\n\n```\n\n"

        assert [r.relative_path for r in iter_records(bundle)] == ["a.txt"]

    def test_records_are_yielded_lazily(self):
        """Test that the first record is available before a later bad one is parsed."""
        bundle = (
            "###  trxx:a.txt\n\n```\n\nx\n\n```\n\n"
            "###  trxx:b.png\n\n```binary\n\n%%%\n\n```\n\n"
        )

        records = iter_records(bundle)

        assert next(records).relative_path == "a.txt"
        with pytest.raises(DecodeError):
            next(records)


class TestBinary:
    """Tests for binary records."""

    def test_binary_round_trip(self):
        """Test every byte value survives."""
        data = bytes(range(256)) * 3

        records = round_trip([FileRecord("img/all.png", data, is_binary=True)])

        assert records == [FileRecord("img/all.png", data, True)]

    def test_binary_tag_always_decodes(self):
        """Test a binary fence is decoded whatever the file name."""
        payload = base64.b64encode(b"raw").decode("ascii")
        bundle = f"###  trxx:data.txt\n\n```binary\n\n{payload}\n\n```\n\n"

        records = list(iter_records(bundle))

        assert records[0].content == b"raw"
        assert records[0].is_binary

    def test_other_tags_never_decode(self):
        """Test that base64-looking text in a normal fence stays text."""
        bundle = "###  trxx:logo.png\n\n```python\n\naGVsbG8=\n\n```\n\n"

        records = list(iter_records(bundle))

        assert records[0].content == b"aGVsbG8="
        assert not records[0].is_binary

    def test_wrapped_base64(self):
        """Test base64 split over several lines."""
        payload = base64.b64encode(b"x" * 120).decode("ascii")
        wrapped = "\n".join(payload[i:i + 76] for i in range(0, len(payload), 76))
        bundle = f"###  trxx:a.png\n\n```binary\n\n{wrapped}\n\n```\n\n"

        assert list(iter_records(bundle))[0].content == b"x" * 120

    def test_malformed_base64_names_path(self):
        """Test that bad base64 is a hard error naming the record."""
        bundle = "###  trxx:img/broken.png\n\n```binary\n\n!!!not-base64!!!\n\n```\n\n"

        with pytest.raises(DecodeError) as exc_info:
            list(iter_records(bundle))

        assert exc_info.value.path == "img/broken.png"

    def test_empty_binary_record_is_skipped(self):
        """Test that a binary fence with no payload produces nothing."""
        bundle = "###  trxx:a.png\n\n```binary\n\n\n```\n\n"

        assert list(iter_records(bundle)) == []


class TestRoundTrip:
    """Tests for encode-then-decode fidelity of text."""

    @pytest.mark.parametrize(
        "path, content",
        [
            ("a/b.txt", b"hello\nworld"),
            ("trailing.txt", b"line\n"),
            ("blank_edges.txt", b"\n\nmiddle\n\n\n"),
            ("only_newlines.txt", b"\n\n"),
            ("crlf.txt", b"one\r\ntwo\r\n"),
            ("fences.py", b"doc = '''\n```\n```python\nx\n```\n'''\n"),
            ("headers.py", b"###  trxx:evil.txt\n\n```\n\nnot a file\n"),
            ("notes.md", b"# Title\n```code```\n\n## Sub\n```\nblock\n```\n"),
            ("escaped.md", b"\\# already escaped\n\\\\```\n"),
            ("header_in.md", b"###  trxx:not/a/record.md\n"),
            ("UPPER.MD", b"# Shouting\n"),
            ("unicode.txt", "héllo wörld ✓\n".encode("utf-8")),
        ],
    )
    def test_text_round_trip(self, path, content):
        """Test decode(encode(record)) == record."""
        records = round_trip([FileRecord(path, content)])

        assert records == [FileRecord(path, content, False)]

    def test_many_records(self):
        """Test several records keep order and boundaries."""
        originals = [
            FileRecord("README.md", b"# Project\n\n```bash\nmake\n```\n"),
            FileRecord("src/main.rs", b"fn main() {}\n"),
            FileRecord("assets/icon.ico", b"\x00\x00\x01\x00", True),
            FileRecord("Makefile", b"all:\n\techo hi\n"),
        ]

        assert round_trip(originals) == originals


class TestStateMachine:
    """Tests for individual transitions."""

    def test_header_enters_header_state(self):
        """Test a header line starts a record."""
        state, record = step(DecodeState(), "###  trxx:x.txt")

        assert state.state is DecoderState.HEADER
        assert state.path == "x.txt"
        assert record is None

    def test_blank_line_ends_header(self):
        """Test metadata lines are ignored until a blank line."""
        state = DecodeState(state=DecoderState.HEADER, path="x.txt")

        state, _ = step(state, "some metadata")
        assert state.state is DecoderState.HEADER

        state, _ = step(state, "")
        assert state.state is DecoderState.BODY

    def test_binary_fence_clears_body(self):
        """Test the binary fence resets collected lines."""
        state = DecodeState(state=DecoderState.BODY, path="x.png", lines=["junk"])

        state, _ = step(state, "```binary")

        assert state.state is DecoderState.FENCE
        assert state.is_binary
        assert state.lines == []

    def test_header_inside_fence_is_content(self):
        """Test header-looking lines inside a fence are body lines."""
        state = DecodeState(state=DecoderState.FENCE, path="x.txt", fence_len=3)

        state, record = step(state, "###  trxx:y.txt")

        assert record is None
        assert state.path == "x.txt"
        assert state.lines == ["###  trxx:y.txt"]

    def test_next_header_flushes(self):
        """Test a header after a closed fence emits the pending record."""
        state = DecodeState(state=DecoderState.BODY, path="x.txt", lines=["", "data", ""])

        state, record = step(state, "###  trxx:y.txt")

        assert record == FileRecord("x.txt", b"data", False)
        assert state.path == "y.txt"


class TestPathSafety:
    """Tests for header paths that would escape the target."""

    @pytest.mark.parametrize(
        "path",
        ["../evil.txt", "a/../../evil.txt", "/etc/passwd", "C:/evil.txt", "a\\..\\evil.txt"],
    )
    def test_unsafe_paths_are_rejected(self, path):
        """Test traversal-capable paths raise UnsafePathError."""
        bundle = f"###  trxx:{path}\n\n```\n\nx\n\n```\n\n"

        with pytest.raises(UnsafePathError):
            list(iter_records(bundle))


class TestDecodeBundle:
    """Tests for decode_bundle."""

    @pytest.fixture
    def bundle_file(self, tmp_path):
        encoder = BundleEncoder()
        records = [
            FileRecord("docs/guide.md", b"# Guide\n```\ncode\n```\n"),
            FileRecord("docs/api.md", b"API"),
            FileRecord("img/logo.png", b"\x89PNG\x00\x01", True),
        ]
        text = "".join(encoder.encode_record(r) for r in records)
        text += "###  trxx:empty.txt\n\n```\n\n```\n\n"
        path = tmp_path / "bundle.md"
        path.write_bytes(text.encode("utf-8"))
        return path

    def test_writes_files(self, bundle_file, tmp_path):
        """Test that records land under the target directory."""
        target = tmp_path / "restored"

        stats = decode_bundle(bundle_file, target)

        assert (target / "docs" / "guide.md").read_bytes() == b"# Guide\n```\ncode\n```\n"
        assert (target / "docs" / "api.md").read_bytes() == b"API"
        assert (target / "img" / "logo.png").read_bytes() == b"\x89PNG\x00\x01"
        assert not (target / "empty.txt").exists()
        assert stats.files_written == 3
        assert stats.binary_files == 1
        assert stats.records_skipped == 1
        assert stats.directories_created == 2

    def test_idempotent(self, bundle_file, tmp_path):
        """Test that decoding twice yields the same files."""
        target = tmp_path / "restored"

        decode_bundle(bundle_file, target)
        first = {p: p.read_bytes() for p in target.rglob("*") if p.is_file()}
        decode_bundle(bundle_file, target)
        second = {p: p.read_bytes() for p in target.rglob("*") if p.is_file()}

        assert first == second
        assert len(second) == 3

    def test_dry_run_writes_nothing(self, bundle_file, tmp_path):
        """Test that a dry run only parses."""
        target = tmp_path / "restored"

        stats = decode_bundle(bundle_file, target, dry_run=True)

        assert stats.files_written == 3
        assert not target.exists()

    def test_earlier_files_stay_on_failure(self, tmp_path):
        """Test that a failing record does not undo earlier writes."""
        bundle = tmp_path / "bundle.md"
        bundle.write_text(
            "###  trxx:ok.txt\n\n```\n\nfine\n\n```\n\n"
            "###  trxx:bad.png\n\n```binary\n\n@@@\n\n```\n\n",
            encoding="utf-8",
        )
        target = tmp_path / "restored"

        with pytest.raises(DecodeError):
            decode_bundle(bundle, target)

        assert (target / "ok.txt").read_bytes() == b"fine"

    def test_missing_bundle(self, tmp_path):
        """Test that an unreadable bundle raises DecodeError."""
        with pytest.raises(DecodeError):
            decode_bundle(tmp_path / "nope.md", tmp_path)

    def test_count_records(self):
        """Test header counting ignores headers inside fences."""
        text = "###  trxx:a.py\n\n```\n\n###  trxx:fake\n\n```\n\n###  trxx:b\n"

        assert count_records(text) == 2
