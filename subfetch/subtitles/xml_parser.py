"""
XML Caption Parser

Parses the XML caption family into segments:
- YouTube transcript XML / srv1: <transcript><text start="1.2" dur="3.4">
- srv2: <timedtext><text t="1200" d="3400"> (milliseconds)
- srv3: <timedtext><body><p t="1200" d="3400"><s>..</s></p> (milliseconds)
- TTML: <tt><body><div><p begin="00:00:01.200" end="..."> (clock or offset time)
"""
import html
import re
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional, Tuple

from loguru import logger

from ..options import ParserConfig
from .models import ParseResult, ParseWarning, SegmentMetadata, SubtitleSegment

XML_LANG = '{http://www.w3.org/XML/1998/namespace}lang'

CLOCK_TIME = re.compile(r'^(\d+):(\d{2}):(\d{2})(?:\.(\d+))?(?::(\d+))?$')
OFFSET_TIME = re.compile(r'^(\d+(?:\.\d+)?)(h|ms|m|s|f|t)$')

DEFAULT_FRAME_RATE = 30.0
DEFAULT_TICK_RATE = 1.0


def _local(tag: str) -> str:
    """Strip the namespace from an element tag or attribute name"""
    return tag.rsplit('}', 1)[-1] if '}' in tag else tag.split(':')[-1]


def _attr(element: ET.Element, name: str) -> Optional[str]:
    for key, value in element.attrib.items():
        if _local(key) == name:
            return value
    return None


def _element_text(element: ET.Element) -> str:
    parts = [element.text or '']
    for child in element:
        if _local(child.tag) == 'br':
            parts.append('\n')
        else:
            parts.append(_element_text(child))
        parts.append(child.tail or '')
    return ''.join(parts)


def _clean(text: str) -> str:
    # YouTube double-escapes entities (&amp;#39;)
    text = html.unescape(text)
    lines = [re.sub(r'[ \t]+', ' ', line).strip() for line in text.split('\n')]
    return '\n'.join(line for line in lines if line)


def parse_ttml_time(value: str, frame_rate: float = DEFAULT_FRAME_RATE,
                    tick_rate: float = DEFAULT_TICK_RATE) -> float:
    """
    Parse a TTML time expression to seconds.

    Supports clock time (HH:MM:SS.fff, HH:MM:SS:FF) and offset time
    (1.5s, 1500ms, 2m, 1h, 30f, 10000t).

    Raises:
        ValueError: If the expression is not recognised
    """
    value = value.strip()

    match = CLOCK_TIME.match(value)
    if match:
        hours, minutes, seconds, fraction, frames = match.groups()
        total = int(hours) * 3600 + int(minutes) * 60 + int(seconds)
        if fraction:
            total += float(f"0.{fraction}")
        if frames:
            total += int(frames) / frame_rate
        return total

    match = OFFSET_TIME.match(value)
    if match:
        number, unit = float(match.group(1)), match.group(2)
        if unit == 'h':
            return number * 3600
        if unit == 'm':
            return number * 60
        if unit == 's':
            return number
        if unit == 'ms':
            return number / 1000
        if unit == 'f':
            return number / frame_rate
        return number / tick_rate

    raise ValueError(f"Invalid TTML time expression: {value}")


class _XMLCaptionReader:
    """Walks one parsed document and collects timed cues"""

    def __init__(self, root: ET.Element):
        self.root = root
        self.warnings: List[ParseWarning] = []
        self.frame_rate = self._rate(root, 'frameRate', DEFAULT_FRAME_RATE)
        self.tick_rate = self._rate(root, 'tickRate', DEFAULT_TICK_RATE)

    @staticmethod
    def _rate(root: ET.Element, name: str, default: float) -> float:
        try:
            rate = float(_attr(root, name) or default)
        except ValueError:
            return default
        return rate if rate > 0 else default

    def cues(self) -> List[Tuple[float, float, str, Optional[str]]]:
        cues = []
        for index, element in enumerate(self.root.iter()):
            name = _local(element.tag)
            if name not in ('text', 'p'):
                continue
            timing = self._timing(element, index)
            if timing is None:
                continue
            start, end = timing
            text = _clean(_element_text(element))
            if not text:
                continue
            cues.append((start, end, text, _attr(element, 'agent')))
        return cues

    def _timing(self, element: ET.Element, index: int) -> Optional[Tuple[float, float]]:
        try:
            if _attr(element, 'start') is not None:
                # transcript / srv1: seconds
                start = float(_attr(element, 'start'))
                end = start + float(_attr(element, 'dur') or 0)
            elif _attr(element, 't') is not None:
                # srv2 / srv3: milliseconds
                start = float(_attr(element, 't')) / 1000
                end = start + float(_attr(element, 'd') or 0) / 1000
            elif _attr(element, 'begin') is not None:
                start = parse_ttml_time(_attr(element, 'begin'), self.frame_rate, self.tick_rate)
                if _attr(element, 'end') is not None:
                    end = parse_ttml_time(_attr(element, 'end'), self.frame_rate, self.tick_rate)
                else:
                    end = start + parse_ttml_time(_attr(element, 'dur') or '0s',
                                                  self.frame_rate, self.tick_rate)
            else:
                return None
        except ValueError as e:
            self.warnings.append(ParseWarning("TIME_PARSE_ERROR", str(e), line=index))
            return None

        if end <= start:
            self.warnings.append(ParseWarning(
                "INVALID_TIMING", f"Cue at {start:.3f}s has no duration", line=index, severity="info"
            ))
            return None
        return start, end


def parse_xml(content: str, config: Optional[ParserConfig] = None) -> ParseResult:
    """
    Parse any XML caption dialect.

    Args:
        content: Raw XML text
        config: Parser options

    Returns:
        ParseResult (success only when at least one segment was produced)
    """
    config = config or ParserConfig()

    try:
        root = ET.fromstring(content.strip().encode(config.encoding or 'utf-8', errors='replace'))
    except (ET.ParseError, LookupError) as e:
        logger.warning(f"XML caption parsing failed: {e}")
        return ParseResult(
            success=False,
            warnings=[ParseWarning("XML_PARSE_ERROR", f"Invalid caption XML: {e}", severity="error")],
        )

    reader = _XMLCaptionReader(root)
    segments: List[SubtitleSegment] = []
    for i, (start, end, text, speaker) in enumerate(reader.cues()):
        segments.append(SubtitleSegment(
            id=f"xml_{i:04d}",
            start=start,
            end=end,
            text=text,
            metadata=SegmentMetadata(speaker=speaker) if speaker else None,
        ))

    warnings = reader.warnings
    if not segments:
        warnings.append(ParseWarning("NO_SEGMENTS", "No timed cues found in caption XML", severity="error"))

    metadata: Dict[str, object] = {
        "segment_count": len(segments),
        "language": _attr(root, 'lang') or root.attrib.get(XML_LANG) or "unknown",
        "source_type": "xml",
        "root_element": _local(root.tag),
    }
    return ParseResult(success=bool(segments), segments=segments, metadata=metadata, warnings=warnings)
