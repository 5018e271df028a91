"""Dialect parsers: VTT, SRT, plain text"""
import pytest

from subfetch.options import ParserConfig
from subfetch.subtitles.models import SubtitleFormat
from subfetch.subtitles.parser import (
    SubtitleParser,
    clean_subtitle_text,
    format_time,
    parse_srt_time,
    parse_vtt_time,
)

from conftest import SAMPLE_VTT


def _vtt(cues: int) -> str:
    blocks = ["WEBVTT", ""]
    for i in range(cues):
        blocks.append(f"00:00:{i * 3:02d}.000 --> 00:00:{i * 3 + 2:02d}.000")
        blocks.append(f"Cue number {i}")
        blocks.append("")
    return "\n".join(blocks)


def _srt(entries: int) -> str:
    blocks = []
    for i in range(entries):
        blocks.append(f"{i + 1}\n00:00:{i * 3:02d},000 --> 00:00:{i * 3 + 2:02d},500\nEntry {i}\n")
    return "\n".join(blocks)


def test_single_cue_with_numeric_id():
    result = SubtitleParser().parse(SAMPLE_VTT)

    assert result.success
    assert result.detected_format == SubtitleFormat.WEBVTT
    assert len(result.segments) == 1
    segment = result.segments[0]
    assert segment.start == 1.0
    assert segment.end == 2.5
    assert segment.text == "Hello world"
    assert segment.id == "1"


@pytest.mark.parametrize("count", [1, 2, 7, 20])
def test_vtt_block_count_preserved(count):
    result = SubtitleParser().parse(_vtt(count))

    assert len(result.segments) == count
    assert [s.text for s in result.segments] == [f"Cue number {i}" for i in range(count)]
    assert all(s.end > s.start for s in result.segments)


@pytest.mark.parametrize("count", [1, 3, 12])
def test_srt_block_count_preserved(count):
    result = SubtitleParser().parse(_srt(count))

    assert result.detected_format == SubtitleFormat.SRT
    assert len(result.segments) == count
    assert [s.id for s in result.segments] == [f"srt_{i + 1:04d}" for i in range(count)]
    assert all(s.end > s.start for s in result.segments)


def test_vtt_header_metadata_and_blocks_skipped():
    content = (
        "WEBVTT\nKind: captions\nLanguage: de\n\n"
        "STYLE\n::cue { color: lime }\n\n"
        "NOTE this is a comment\n\n"
        "00:00:01.000 --> 00:00:02.000 align:start position:10%\n"
        "<v Roger>Hallo <i>Welt</i>\n"
    )
    result = SubtitleParser().parse(content)

    assert result.metadata["language"] == "de"
    assert len(result.segments) == 1
    segment = result.segments[0]
    assert segment.text == "Hallo <i>Welt</i>"
    assert segment.speaker == "Roger"
    assert segment.styling.italic is True
    assert segment.position.align == "start"
    assert segment.position.position == "10%"


def test_vtt_header_without_blank_line():
    content = "WEBVTT\n00:00:01.000 --> 00:00:02.000\nTight header\n"
    result = SubtitleParser().parse(content)

    assert [s.text for s in result.segments] == ["Tight header"]


def test_vtt_short_timestamps_and_multiline_text():
    content = "WEBVTT\n\n01.500 --> 01:02.250\nline one\nline two\n"
    result = SubtitleParser().parse(content)

    segment = result.segments[0]
    assert segment.start == 1.5
    assert segment.end == 62.25
    assert segment.text == "line one\nline two"


def test_vtt_malformed_timing_is_skipped_with_warning():
    content = (
        "WEBVTT\n\n"
        "00:00:xx.000 --> 00:00:02.000\nbroken\n\n"
        "00:00:03.000 --> 00:00:04.000\nfine\n"
    )
    result = SubtitleParser().parse(content)

    assert result.success
    assert [s.text for s in result.segments] == ["fine"]
    assert any(w.code == "TIME_PARSE_ERROR" for w in result.warnings)


def test_vtt_without_formatting():
    content = "WEBVTT\n\n00:00:01.000 --> 00:00:02.000\n<b>Bold</b> &amp; plain\n"
    result = SubtitleParser(ParserConfig(preserve_formatting=False)).parse(content)

    assert result.segments[0].text == "Bold & plain"
    assert result.segments[0].styling.bold is True


def test_vtt_duplicate_ids_made_unique():
    content = (
        "WEBVTT\n\n"
        "intro\n00:00:01.000 --> 00:00:02.000\nOne\n\n"
        "intro\n00:00:03.000 --> 00:00:04.000\nTwo\n"
    )
    result = SubtitleParser().parse(content)

    assert [s.id for s in result.segments] == ["intro", "intro_1"]


def test_srt_skips_malformed_entries():
    content = (
        "1\n00:00:01,000 --> 00:00:02,000\nGood\n\n"
        "2\nnot a time line\nBad\n\n"
        "3\n00:00:05,000 --> 00:00:04,000\nBackwards\n\n"
        "4\n00:00:06,000 --> 00:00:07,000\nAlso good\n"
    )
    result = SubtitleParser().parse(content)

    assert result.success
    assert [s.text for s in result.segments] == ["Good", "Also good"]
    codes = [w.code for w in result.warnings]
    assert "SRT_ENTRY_ERROR" in codes
    assert "INVALID_TIMING" in codes


def test_srt_missing_index_and_crlf():
    content = "00:00:01,000 --> 00:00:02,000\r\nNo index\r\n\r\n00:00:03,000 --> 00:00:04,000\r\nStill none\r\n"
    result = SubtitleParser(ParserConfig(format_hint="srt")).parse(content)

    assert [s.text for s in result.segments] == ["No index", "Still none"]


def test_srt_non_ascii_digit_index_falls_back_to_position():
    content = (
        "1\n00:00:01,000 --> 00:00:02,000\nFirst\n\n"
        "²\n00:00:03,000 --> 00:00:04,000\nSuperscript index\n\n"
        "3\n00:00:05,000 --> 00:00:06,000\nThird\n"
    )
    result = SubtitleParser(ParserConfig(format_hint="srt")).parse(content)

    assert result.success
    assert [s.id for s in result.segments] == ["srt_0001", "srt_0002", "srt_0003"]
    assert result.segments[1].text == "Superscript index"


def test_strict_mode_fails_on_warnings():
    content = "1\n00:00:01,000 --> 00:00:02,000\nGood\n\n2\nbroken\nBad\n"
    result = SubtitleParser(ParserConfig(strict=True)).parse(content)

    assert not result.success
    assert len(result.segments) == 1


def test_plain_text_synthetic_timing():
    result = SubtitleParser().parse("first line\n\nsecond line\n")

    assert result.detected_format == SubtitleFormat.PLAIN_TEXT
    assert [(s.start, s.end) for s in result.segments] == [(0.0, 3.0), (3.0, 6.0)]


def test_empty_content_fails():
    result = SubtitleParser().parse("   \n")

    assert not result.success
    assert result.warnings[0].code == "EMPTY_CONTENT"


def test_no_segments_is_a_failure():
    result = SubtitleParser().parse("WEBVTT\n\nNOTE nothing here\n")

    assert not result.success
    assert result.warnings[-1].code == "NO_SEGMENTS"
    assert "No valid vtt segments" in result.error_message


def test_byte_order_mark_is_ignored():
    result = SubtitleParser().parse("\ufeff" + SAMPLE_VTT)

    assert result.detected_format == SubtitleFormat.WEBVTT
    assert len(result.segments) == 1


def test_unknown_format_hint_falls_back_to_detection():
    result = SubtitleParser(ParserConfig(format_hint="bogus")).parse(SAMPLE_VTT)

    assert result.detected_format == SubtitleFormat.WEBVTT


def test_parse_file(tmp_path):
    path = tmp_path / "captions.srt"
    path.write_text(_srt(2), encoding="utf-8")

    result = SubtitleParser().parse_file(path)
    assert len(result.segments) == 2

    missing = SubtitleParser().parse_file(tmp_path / "missing.srt")
    assert not missing.success
    assert missing.warnings[0].code == "FILE_NOT_FOUND"


def test_time_helpers():
    assert parse_vtt_time("01:02:03.5") == pytest.approx(3723.5)
    assert parse_vtt_time("02.250") == pytest.approx(2.25)
    assert parse_srt_time("00:01:02,003") == pytest.approx(62.003)
    with pytest.raises(ValueError):
        parse_srt_time("1:2:3")
    assert format_time(62.5) == "01:02.500"
    assert format_time(3723.0) == "01:02:03.000"
    assert clean_subtitle_text("<i>Hi</i>   &amp;\n there") == "Hi & there"
