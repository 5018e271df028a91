"""Format detection priority rules"""
from subfetch.subtitles.detector import detect_format, is_srt_format, is_xml_format
from subfetch.subtitles.models import SubtitleFormat

SRT_BODY = "1\n00:00:01,000 --> 00:00:02,000\nHello\n"


def test_webvtt_token_wins():
    assert detect_format("WEBVTT\n\n00:00:01.000 --> 00:00:02.000\nHi\n") == SubtitleFormat.WEBVTT


def test_webvtt_token_beats_srt_shape():
    content = SRT_BODY + "\nWEBVTT mentioned in a cue\n"
    assert is_srt_format(content)
    assert detect_format(content) == SubtitleFormat.WEBVTT


def test_arrow_with_note_is_vtt():
    content = "NOTE: exported\n\n00:00:01.000 --> 00:00:02.000\nHi\n"
    assert detect_format(content) == SubtitleFormat.VTT


def test_srt_shape():
    assert detect_format(SRT_BODY) == SubtitleFormat.SRT


def test_srt_shape_with_crlf():
    assert detect_format(SRT_BODY.replace("\n", "\r\n")) == SubtitleFormat.SRT


def test_youtube_transcript_xml():
    content = '<?xml version="1.0" encoding="utf-8" ?><transcript><text start="0" dur="1">Hi</text></transcript>'
    assert detect_format(content) == SubtitleFormat.YOUTUBE_XML


def test_transcript_without_declaration():
    assert detect_format('<transcript><text start="0" dur="1">Hi</text></transcript>') == \
        SubtitleFormat.YOUTUBE_XML


def test_srv3_dialect():
    content = '<?xml version="1.0" encoding="utf-8" ?><timedtext format="srv3"><body></body></timedtext>'
    assert detect_format(content) == SubtitleFormat.YOUTUBE_SRV3


def test_ttml_dialect():
    content = '<?xml version="1.0"?><tt xmlns="http://www.w3.org/ns/ttml"><body/></tt>'
    assert detect_format(content) == SubtitleFormat.TTML


def test_bare_arrow_falls_back_to_vtt():
    assert detect_format("00:01.000 --> 00:02.000\nHi\n") == SubtitleFormat.VTT


def test_plain_text_fallback():
    assert detect_format("just some words") == SubtitleFormat.PLAIN_TEXT
    assert detect_format("") == SubtitleFormat.PLAIN_TEXT
    assert detect_format(None) == SubtitleFormat.PLAIN_TEXT


def test_detection_is_deterministic():
    content = SRT_BODY + "\nWEBVTT\n"
    assert {detect_format(content) for _ in range(5)} == {SubtitleFormat.WEBVTT}


def test_is_xml_format():
    assert is_xml_format(SubtitleFormat.TTML)
    assert is_xml_format(SubtitleFormat.YOUTUBE_SRV1)
    assert not is_xml_format(SubtitleFormat.SRT)
