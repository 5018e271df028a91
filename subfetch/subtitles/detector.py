"""
Subtitle Format Detection

Classifies raw subtitle text into a dialect. The checks run in a fixed
priority order and the first match wins, so ambiguous content (an SRT body
that also mentions "WEBVTT") always resolves the same way.
"""
import re

from .models import SubtitleFormat, XML_FORMATS

# number line, then an SRT time range
SRT_SHAPE = re.compile(
    r'^\d+\s*\n\d{2}:\d{2}:\d{2},\d{3}\s*-->\s*\d{2}:\d{2}:\d{2},\d{3}',
    re.MULTILINE
)


def is_srt_format(content: str) -> bool:
    """Check if content contains an SRT-shaped entry"""
    return SRT_SHAPE.search(content.replace('\r\n', '\n')) is not None


def _detect_xml_dialect(cleaned: str) -> SubtitleFormat:
    if '<transcript>' in cleaned or '<text' in cleaned:
        return SubtitleFormat.YOUTUBE_XML
    if 'srv1' in cleaned:
        return SubtitleFormat.YOUTUBE_SRV1
    if 'srv2' in cleaned:
        return SubtitleFormat.YOUTUBE_SRV2
    if 'srv3' in cleaned:
        return SubtitleFormat.YOUTUBE_SRV3
    if 'tt:' in cleaned or '<tt ' in cleaned or 'ttml' in cleaned:
        return SubtitleFormat.TTML
    return SubtitleFormat.YOUTUBE_XML


def detect_format(content: str) -> SubtitleFormat:
    """
    Detect subtitle format from content.

    Priority order:
        1. "webvtt" anywhere -> WEBVTT
        2. "-->" and ("note:" or "cue") -> VTT
        3. SRT entry shape -> SRT
        4. XML declaration or <transcript> -> XML sub-dialect
        5. any "-->" -> VTT
        6. plain text

    Args:
        content: Raw subtitle text

    Returns:
        Detected SubtitleFormat (never fails)
    """
    cleaned = (content or '').strip().lower()

    if 'webvtt' in cleaned:
        return SubtitleFormat.WEBVTT

    if '-->' in cleaned and ('note:' in cleaned or 'cue' in cleaned):
        return SubtitleFormat.VTT

    if is_srt_format(cleaned):
        return SubtitleFormat.SRT

    if '<?xml' in cleaned or '<transcript>' in cleaned:
        return _detect_xml_dialect(cleaned)

    if '-->' in cleaned:
        return SubtitleFormat.VTT

    return SubtitleFormat.PLAIN_TEXT


def is_xml_format(fmt: SubtitleFormat) -> bool:
    return fmt in XML_FORMATS
