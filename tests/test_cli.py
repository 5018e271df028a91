"""Command line entry point"""
import json

import pytest

from subfetch.cli import build_parser, main

from conftest import TWO_SRT_CLOSE


@pytest.fixture
def srt_file(tmp_path):
    path = tmp_path / "captions.srt"
    path.write_text(TWO_SRT_CLOSE, encoding="utf-8")
    return path


def test_parse_to_json_without_merging(srt_file, capsys):
    exit_code = main(["parse", str(srt_file), "--format", "json", "--no-merge"])

    assert exit_code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["format"] == "srt"
    assert [s["text"] for s in payload["segments"]] == ["Hello", "world"]


def test_parse_merges_and_renders_vtt(srt_file, capsys):
    exit_code = main(["parse", str(srt_file), "--format", "vtt"])

    assert exit_code == 0
    out = capsys.readouterr().out
    assert out.startswith("WEBVTT")
    assert "00:00:01.000 --> 00:00:05.000\nHello world" in out


def test_parse_writes_output_file(srt_file, tmp_path):
    target = tmp_path / "merged.srt"
    exit_code = main(["parse", str(srt_file), "--max-gap", "0.1", "-o", str(target)])

    assert exit_code == 0
    assert target.read_text(encoding="utf-8").count(" --> ") == 2


def test_missing_file_fails(tmp_path):
    assert main(["parse", str(tmp_path / "missing.srt")]) == 1


def test_no_command_prints_help(capsys):
    assert main([]) == 1
    assert "fetch" in capsys.readouterr().out


def test_fetch_arguments():
    args = build_parser().parse_args([
        "fetch", "https://example.com/a.vtt", "--strategy", "direct", "--strategy", "proxy",
        "--timeout", "5", "--no-cache",
    ])

    assert args.strategy == ["direct", "proxy"]
    assert args.timeout == 5.0
    assert args.no_cache
    assert args.format == "srt"


def test_unknown_strategy_rejected():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["fetch", "https://example.com/a.vtt", "--strategy", "teleport"])
