"""Tests for the command-line interface.

WHY: The CLI is how most users run a merge. It must validate inputs before
reading anything, never overwrite an earlier result, keep stdout clean for
piping and exit with a non-zero code on errors.

HOW: main() is called with an explicit argv against files in tmp_path.
Output files are read back; stdout and stderr are captured with capsys.
"""

import json

import pytest

from transcript_merger.cli import _parse_pairs, _resolve_output_path, build_parser, main

from conftest import srt

HELLO_WORLD_SRT = (
    "1\n00:00:00,000 --> 00:00:04,000\nHello\n\n"
    "2\n00:00:04,000 --> 00:00:07,000\nWorld\n"
)


def _args(paths, *extra):
    return [str(p) for p in paths] + list(extra)


class TestMergeToFile:
    """Default run: merged file next to the first input."""

    def test_writes_merged_srt(self, tmp_path, hello_world_files):
        main(_args(hello_world_files))
        assert (tmp_path / "merged.srt").read_text(encoding="utf-8") == HELLO_WORLD_SRT

    def test_does_not_overwrite(self, tmp_path, hello_world_files):
        main(_args(hello_world_files))
        main(_args(hello_world_files))
        assert (tmp_path / "merged.srt").exists()
        assert (tmp_path / "merged-2.srt").read_text(encoding="utf-8") == HELLO_WORLD_SRT

    def test_custom_name_and_dir(self, tmp_path, hello_world_files):
        out = tmp_path / "out"
        out.mkdir()
        main(_args(hello_world_files, "--output-dir", str(out), "--name", "episode"))
        assert (out / "episode.srt").exists()

    def test_crlf(self, tmp_path, hello_world_files):
        main(_args(hello_world_files, "--line-ending", "crlf"))
        data = (tmp_path / "merged.srt").read_bytes()
        assert data == HELLO_WORLD_SRT.replace("\n", "\r\n").encode("utf-8")

    def test_markdown_with_part_markers(self, tmp_path, hello_world_files):
        main(_args(hello_world_files, "--format", "markdown", "--part-markers"))
        content = (tmp_path / "merged.md").read_text(encoding="utf-8")
        assert content.startswith("# Merged Transcription\n\n*Generated on: ")
        assert "## Part 1: a_1.srt\n\n**00:00:00** Hello" in content
        assert "## Part 2: a_2.srt\n\n**00:00:04** World" in content

    def test_plain_text_suffix(self, tmp_path, hello_world_files):
        main(_args(hello_world_files, "--format", "plain_text"))
        assert (tmp_path / "merged-plain.txt").read_text(encoding="utf-8") == "Hello\nWorld\n"

    def test_status_goes_to_stderr(self, capsys, hello_world_files):
        main(_args(hello_world_files))
        captured = capsys.readouterr()
        assert captured.out == ""
        assert "Merging 2 file(s)" in captured.err
        assert "a_1.srt (+0 ms, srt)" in captured.err
        assert "a_2.srt (+4000 ms, srt)" in captured.err


class TestStdout:
    """--stdout prints the document and writes no file."""

    def test_stdout(self, tmp_path, capsys, hello_world_files):
        main(_args(hello_world_files, "--stdout"))
        assert capsys.readouterr().out == HELLO_WORLD_SRT
        assert not (tmp_path / "merged.srt").exists()

    def test_directory_input(self, tmp_path, capsys, hello_world_files):
        (tmp_path / "notes.docx").write_text("ignored")
        main([str(tmp_path), "--stdout"])
        assert capsys.readouterr().out == HELLO_WORLD_SRT

    def test_manifest(self, tmp_path, capsys, hello_world_files):
        manifest = tmp_path / "segments.json"
        manifest.write_text(json.dumps([{"path": "a_1.wav", "duration_ms": 10000}]))
        main(_args(hello_world_files, "--stdout", "--manifest", str(manifest)))
        assert "00:00:10,000 --> 00:00:13,000\nWorld" in capsys.readouterr().out

    def test_manifest_index_mismatch_warned(self, tmp_path, capsys, hello_world_files):
        manifest = tmp_path / "segments.json"
        manifest.write_text(json.dumps([{"path": "a_2.wav", "duration_ms": 5000, "index": 0}]))
        main(_args(hello_world_files, "--stdout", "--manifest", str(manifest)))
        assert "Warning [order_mismatch]" in capsys.readouterr().err

    def test_offset_and_speaker(self, capsys, hello_world_files):
        main(_args(
            hello_world_files, "--stdout", "--format", "webvtt",
            "--offset", "a_2.srt=60000", "--speaker", "a_1.srt=Ann",
        ))
        out = capsys.readouterr().out
        assert "00:00:00.000 --> 00:00:04.000\n<v Ann>Hello" in out
        assert "00:01:00.000 --> 00:01:03.000\nWorld" in out

    def test_gap_warning_reported(self, capsys, hello_world_files):
        main(_args(hello_world_files, "--stdout", "--duration", "a_1.srt=20000", "--gap-threshold-ms", "1000"))
        captured = capsys.readouterr()
        assert "Warning [gap]" in captured.err
        assert "00:00:20,000 --> 00:00:23,000" in captured.out


class TestErrors:
    """Errors print a message and exit with code 1."""

    def _exit_code(self, argv):
        with pytest.raises(SystemExit) as exc_info:
            main(argv)
        return exc_info.value.code

    def test_missing_file(self, tmp_path, capsys):
        assert self._exit_code([str(tmp_path / "a_1.srt")]) == 1
        assert "File not found" in capsys.readouterr().err

    def test_unsupported_extension(self, tmp_path, capsys):
        path = tmp_path / "a_1.docx"
        path.write_text("x")
        assert self._exit_code([str(path)]) == 1
        assert "Unsupported file type" in capsys.readouterr().err

    def test_empty_directory(self, tmp_path):
        assert self._exit_code([str(tmp_path)]) == 1

    def test_bad_offset(self, hello_world_files, capsys):
        assert self._exit_code(_args(hello_world_files, "--offset", "a_2.srt")) == 1
        assert "--offset expects NAME=VALUE" in capsys.readouterr().err

    def test_ambiguous_order(self, write_files, capsys):
        paths = write_files({
            "a_1.srt": srt(("00:00:00,000", "00:00:01,000", "x")),
            "b_1.srt": srt(("00:00:00,000", "00:00:01,000", "y")),
        })
        assert self._exit_code(_args(paths)) == 1
        assert "Ambiguous file order" in capsys.readouterr().err

    def test_bad_manifest(self, tmp_path, hello_world_files):
        manifest = tmp_path / "segments.json"
        manifest.write_text(json.dumps([{"path": "a_1.wav", "duration_ms": -1}]))
        assert self._exit_code(_args(hello_world_files, "--manifest", str(manifest))) == 1

    def test_missing_output_dir(self, tmp_path, hello_world_files):
        assert self._exit_code(_args(hello_world_files, "--output-dir", str(tmp_path / "nope"))) == 1


class TestHelpers:
    """Small helpers used by main()."""

    def test_parse_pairs(self):
        assert _parse_pairs(["a.srt=10", " b.srt = 20 "], "--offset", int) == {"a.srt": 10, "b.srt": 20}
        assert _parse_pairs(None, "--offset", int) == {}

    @pytest.mark.parametrize("raw", ["a.srt", "=10", "a.srt=ten"])
    def test_parse_pairs_invalid(self, raw):
        with pytest.raises(ValueError):
            _parse_pairs([raw], "--offset", int)

    def test_resolve_output_path(self, tmp_path):
        (tmp_path / "merged-plain.txt").write_text("")
        (tmp_path / "merged-plain-2.txt").write_text("")
        assert _resolve_output_path("merged", "-plain.txt", tmp_path) == tmp_path / "merged-plain-3.txt"

    def test_parser_defaults(self):
        args = build_parser().parse_args(["a_1.srt"])
        assert args.format == "srt"
        assert args.line_ending == "lf"
        assert args.stdout is False
        assert args.offset is None
