"""
Subtitle Parser Module

Parses VTT, SRT, the XML caption family and plain text into the unified
SubtitleSegment model. Every parser returns the same ParseResult shape;
malformed units are skipped with a warning and only a zero-segment result
counts as a failure.
"""
import html
import re
import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from loguru import logger

from ..options import ParserConfig
from .detector import detect_format
from .models import (
    ParseResult,
    ParseWarning,
    SegmentMetadata,
    SubtitleFormat,
    SubtitlePosition,
    SubtitleSegment,
    SubtitleStyling,
    XML_FORMATS,
)
from .xml_parser import parse_xml


PLAIN_TEXT_SLOT = 3.0  # Seconds per line for untimed text

# [[H:]M:]S[.mmm]
VTT_TIME_PATTERN = re.compile(r'^(?:(?:(\d+):)?(\d{1,2}):)?(\d{1,2})(?:\.(\d{1,3}))?$')

# [id ]start --> end[ settings]
VTT_TIMING_LINE = re.compile(r'^(?:(\S+)\s+)?(\S+)\s*-->\s*(\S+)(.*)$')

SRT_TIME_PATTERN = re.compile(r'^(\d{1,2}):(\d{2}):(\d{2})[,.](\d{3})$')
SRT_INDEX = re.compile(r'[0-9]+')

SRT_TIMING_LINE = re.compile(
    r'^(\d{1,2}:\d{2}:\d{2}[,.]\d{3})\s*-->\s*(\d{1,2}:\d{2}:\d{2}[,.]\d{3})(?:\s+.*)?$'
)

VTT_BLOCK_KEYWORDS = ('STYLE', 'NOTE', 'REGION')
VTT_CUE_SETTINGS = ('line', 'position', 'align', 'size', 'vertical', 'region')

TAG_PATTERN = re.compile(r'<[^>]*>')
VOICE_TAG = re.compile(r'<v(?:\.[\w.-]+)?\s+([^>]+)>')
CLASS_COLOR_TAG = re.compile(r'<c\.([\w.-]+)>')
FONT_COLOR_TAG = re.compile(r'<font[^>]*color=["\']?([#\w]+)', re.IGNORECASE)
# Everything except <b>, <i>, <u> and their closing tags
NON_FORMATTING_TAG = re.compile(r'<(?!/?[biu]>)[^>]*>')


class _VTTState:
    SKIP_BLOCK = "skip_block"
    IDLE = "idle"
    IN_CUE = "in_cue"


def parse_vtt_time(time_str: str) -> float:
    """
    Parse a VTT timestamp ([[H:]M:]S.mmm) to seconds.

    Raises:
        ValueError: If the timestamp is malformed
    """
    match = VTT_TIME_PATTERN.match(time_str.strip())
    if not match:
        raise ValueError(f"Invalid VTT time format: {time_str}")

    hours, minutes, seconds, fraction = match.groups()
    total = int(seconds)
    total += int(minutes or 0) * 60
    total += int(hours or 0) * 3600
    if fraction:
        total += int(fraction.ljust(3, '0')) / 1000
    return total


def parse_srt_time(time_str: str) -> float:
    """
    Parse an SRT timestamp (HH:MM:SS,mmm) to seconds.

    Raises:
        ValueError: If the timestamp is malformed
    """
    match = SRT_TIME_PATTERN.match(time_str.strip())
    if not match:
        raise ValueError(f"Invalid SRT time format: {time_str}")

    hours, minutes, seconds, millis = match.groups()
    return int(hours) * 3600 + int(minutes) * 60 + int(seconds) + int(millis) / 1000


def clean_subtitle_text(text: str) -> str:
    """Remove markup and normalize whitespace"""
    text = TAG_PATTERN.sub('', text)
    return re.sub(r'\s+', ' ', html.unescape(text)).strip()


def format_time(seconds: float) -> str:
    """Human readable timestamp (MM:SS.mmm, or HH:MM:SS.mmm past one hour)"""
    total_ms = int(round(seconds * 1000))
    hours, rem = divmod(total_ms, 3600 * 1000)
    minutes, rem = divmod(rem, 60 * 1000)
    secs, ms = divmod(rem, 1000)
    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}.{ms:03d}"
    return f"{minutes:02d}:{secs:02d}.{ms:03d}"


def _extract_styling(text: str) -> Optional[SubtitleStyling]:
    lowered = text.lower()
    color = None
    class_match = CLASS_COLOR_TAG.search(text)
    if class_match:
        color = class_match.group(1).split('.')[0]
    font_match = FONT_COLOR_TAG.search(text)
    if font_match:
        color = font_match.group(1)

    styling = SubtitleStyling(
        bold=True if '<b>' in lowered else None,
        italic=True if '<i>' in lowered else None,
        underline=True if '<u>' in lowered else None,
        color=color,
    )
    return None if styling.is_empty else styling


def _render_text(raw: str, preserve_formatting: bool) -> str:
    """Strip markup from cue text, keeping <b>/<i>/<u> when formatting is preserved"""
    if preserve_formatting:
        text = NON_FORMATTING_TAG.sub('', raw)
    else:
        text = TAG_PATTERN.sub('', raw)
    lines = [html.unescape(line).strip() for line in text.split('\n')]
    return '\n'.join(line for line in lines if line)


def _parse_cue_settings(settings: str) -> Optional[SubtitlePosition]:
    if not settings or not settings.strip():
        return None

    known: Dict[str, str] = {}
    extra: Dict[str, str] = {}
    for token in settings.split():
        if ':' not in token:
            continue
        key, value = token.split(':', 1)
        if key in VTT_CUE_SETTINGS:
            known[key] = value
        else:
            extra[key] = value

    if not known and not extra:
        return None
    return SubtitlePosition(extra=extra, **known)


class _IdAllocator:
    """Keeps segment ids unique within one file"""

    def __init__(self):
        self._used: Dict[str, int] = {}

    def allocate(self, preferred: str) -> str:
        if preferred not in self._used:
            self._used[preferred] = 0
            return preferred
        while True:
            self._used[preferred] += 1
            candidate = f"{preferred}_{self._used[preferred]}"
            if candidate not in self._used:
                self._used[candidate] = 0
                return candidate


class SubtitleParser:
    """
    Multi-format subtitle parser with automatic format detection.

    Usage:
        parser = SubtitleParser()
        result = parser.parse(content)
        if result.success:
            segments = result.segments
    """

    def __init__(self, config: Optional[ParserConfig] = None):
        self.config = config or ParserConfig()

    def parse(self, content: str, config: Optional[ParserConfig] = None) -> ParseResult:
        """
        Parse subtitle content, detecting its dialect unless a format hint is set.

        Args:
            content: Raw subtitle text
            config: Parser options (defaults to the parser's own)

        Returns:
            ParseResult with detected_format set
        """
        config = config or self.config
        started = time.perf_counter()

        if not content or not content.strip():
            return ParseResult(
                success=False,
                warnings=[ParseWarning("EMPTY_CONTENT", "Empty or invalid subtitle content",
                                       severity="error")],
            )

        content = content.lstrip('\ufeff')
        fmt = self._resolve_format(content, config)
        logger.debug(f"Detected subtitle format: {fmt.value} ({len(content)} chars)")

        if fmt in (SubtitleFormat.VTT, SubtitleFormat.WEBVTT):
            result = self.parse_vtt(content, config)
        elif fmt == SubtitleFormat.SRT:
            result = self.parse_srt(content, config)
        elif fmt in XML_FORMATS:
            result = parse_xml(content, config)
        else:
            result = self.parse_text(content, config)

        result.detected_format = fmt
        result.metadata["detected_format"] = fmt.value

        if config.strict and any(w.severity in ("warning", "error") for w in result.warnings):
            result.success = False

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"Parsed {len(result.segments)} segments as {fmt.value} "
            f"({len(result.warnings)} warnings, {elapsed_ms:.1f}ms)"
        )
        return result

    def parse_file(self, file_path: Union[str, Path], config: Optional[ParserConfig] = None) -> ParseResult:
        """Parse a subtitle file from disk (format detected from content)"""
        file_path = Path(file_path)
        config = config or self.config

        if not file_path.exists():
            logger.error(f"Subtitle file not found: {file_path}")
            return ParseResult(
                success=False,
                warnings=[ParseWarning("FILE_NOT_FOUND", f"Subtitle file not found: {file_path}",
                                       severity="error")],
            )

        content = file_path.read_text(encoding=config.encoding, errors='replace')
        return self.parse(content, config)

    def _resolve_format(self, content: str, config: ParserConfig) -> SubtitleFormat:
        if config.format_hint:
            try:
                return SubtitleFormat(config.format_hint.lower())
            except ValueError:
                logger.warning(f"Ignoring unknown format hint: {config.format_hint}")
        return detect_format(content)

    # ==================== VTT ====================

    def parse_vtt(self, content: str, config: Optional[ParserConfig] = None) -> ParseResult:
        """
        Parse WebVTT content with a line-driven state machine.

        A blank line closes the open cue; a timing line opens (or re-times)
        a cue; any other line is cue text, or a cue identifier while idle.
        """
        config = config or self.config
        segments: List[SubtitleSegment] = []
        warnings: List[ParseWarning] = []
        ids = _IdAllocator()
        language: Optional[str] = None

        state = _VTTState.IDLE
        pending_id: Optional[str] = None
        cue: Dict[str, object] = {}

        def close_cue():
            if not cue:
                return
            segment = self._vtt_cue_to_segment(cue, len(segments), ids, config)
            if segment is not None:
                segments.append(segment)

        lines = content.split('\n')
        for line_no, raw_line in enumerate(lines, start=1):
            line = raw_line.strip()

            if state == _VTTState.SKIP_BLOCK:
                if line == '':
                    state = _VTTState.IDLE
                    continue
                if '-->' not in line:
                    if line.lower().startswith('language:'):
                        language = line.split(':', 1)[1].strip() or language
                    continue
                # Header without a separating blank line
                state = _VTTState.IDLE

            if line == '':
                if state == _VTTState.IN_CUE:
                    close_cue()
                    cue = {}
                state = _VTTState.IDLE
                pending_id = None
                continue

            if state == _VTTState.IDLE and (
                line.upper().startswith('WEBVTT')
                or any(line.startswith(keyword) for keyword in VTT_BLOCK_KEYWORDS)
            ):
                state = _VTTState.SKIP_BLOCK
                continue

            if '-->' in line:
                timing = self._parse_vtt_timing(line, line_no, warnings)
                if timing is None:
                    continue
                inline_id, start, end, settings = timing
                cue = {
                    "id": inline_id or pending_id or cue.get("id"),
                    "start": start,
                    "end": end,
                    "settings": settings,
                    "text": cue.get("text", []),
                }
                state = _VTTState.IN_CUE
                continue

            if state == _VTTState.IN_CUE:
                cue["text"] = list(cue.get("text", [])) + [line]
            else:
                pending_id = line

        if state == _VTTState.IN_CUE:
            close_cue()

        metadata = {
            "segment_count": len(segments),
            "language": language or "unknown",
            "source_type": "vtt",
        }
        return ParseResult(
            success=len(segments) > 0,
            segments=segments,
            metadata=metadata,
            warnings=warnings + self._no_segments_warning(segments, "vtt"),
        )

    def _parse_vtt_timing(
        self,
        line: str,
        line_no: int,
        warnings: List[ParseWarning]
    ) -> Optional[Tuple[Optional[str], float, float, str]]:
        match = VTT_TIMING_LINE.match(line)
        if not match:
            warnings.append(ParseWarning("MALFORMED_TIME", f"Malformed time line: {line}", line=line_no))
            return None

        cue_id, start_str, end_str, settings = match.groups()
        try:
            start = parse_vtt_time(start_str)
            end = parse_vtt_time(end_str)
        except ValueError:
            warnings.append(ParseWarning("TIME_PARSE_ERROR", f"Invalid time format: {line}", line=line_no))
            return None
        return cue_id, start, end, (settings or '').strip()

    def _vtt_cue_to_segment(
        self,
        cue: Dict[str, object],
        index: int,
        ids: _IdAllocator,
        config: ParserConfig
    ) -> Optional[SubtitleSegment]:
        start = cue.get("start")
        end = cue.get("end")
        raw = '\n'.join(cue.get("text", []))
        if start is None or end is None or not raw.strip() or end <= start:
            return None

        text = _render_text(raw, config.preserve_formatting)
        if not text:
            return None

        voice = VOICE_TAG.search(raw)
        metadata = SegmentMetadata(speaker=voice.group(1).strip()) if voice else None
        preferred_id = cue.get("id") or f"vtt_{index:04d}"

        return SubtitleSegment(
            id=ids.allocate(str(preferred_id)),
            start=float(start),
            end=float(end),
            text=text,
            styling=_extract_styling(raw),
            position=_parse_cue_settings(cue.get("settings") or ''),
            metadata=metadata,
        )

    # ==================== SRT ====================

    def parse_srt(self, content: str, config: Optional[ParserConfig] = None) -> ParseResult:
        """
        Parse SRT content, one blank-line-delimited block per entry.

        A block without a valid time line is reported and skipped.
        """
        config = config or self.config
        segments: List[SubtitleSegment] = []
        warnings: List[ParseWarning] = []
        ids = _IdAllocator()

        normalized = content.replace('\r\n', '\n').replace('\r', '\n')
        blocks = [b for b in re.split(r'\n\s*\n', normalized.strip()) if b.strip()]

        for block_no, block in enumerate(blocks, start=1):
            lines = [line.strip() for line in block.strip().split('\n')]

            # Some SRT files don't have proper indices
            if '-->' in lines[0]:
                lines = [str(block_no)] + lines

            if len(lines) < 2:
                warnings.append(ParseWarning(
                    "SRT_ENTRY_ERROR", f"Incomplete SRT entry {block_no}: {block[:40]!r}", line=block_no
                ))
                continue

            timing_match = SRT_TIMING_LINE.match(lines[1])
            if not timing_match:
                warnings.append(ParseWarning(
                    "SRT_ENTRY_ERROR", f"Invalid SRT time line in entry {block_no}: {lines[1]}",
                    line=block_no
                ))
                continue

            start = parse_srt_time(timing_match.group(1))
            end = parse_srt_time(timing_match.group(2))
            if end <= start:
                warnings.append(ParseWarning(
                    "INVALID_TIMING", f"SRT entry {block_no} ends before it starts", line=block_no
                ))
                continue

            raw = '\n'.join(line for line in lines[2:] if line)
            text = _render_text(raw, config.preserve_formatting)
            if not text:
                warnings.append(ParseWarning(
                    "EMPTY_TEXT", f"SRT entry {block_no} has no text", line=block_no, severity="info"
                ))
                continue

            index = lines[0] if SRT_INDEX.fullmatch(lines[0]) else str(block_no)
            segments.append(SubtitleSegment(
                id=ids.allocate(f"srt_{int(index):04d}"),
                start=start,
                end=end,
                text=text,
                styling=_extract_styling(raw),
            ))

        metadata = {
            "segment_count": len(segments),
            "language": "unknown",
            "source_type": "srt",
            "entries_processed": len(blocks),
        }
        return ParseResult(
            success=len(segments) > 0,
            segments=segments,
            metadata=metadata,
            warnings=warnings + self._no_segments_warning(segments, "srt"),
        )

    # ==================== Plain text ====================

    def parse_text(self, content: str, config: Optional[ParserConfig] = None) -> ParseResult:
        """Untimed fallback: one segment per non-blank line, in fixed 3-second slots"""
        lines = [line.strip() for line in content.splitlines() if line.strip()]
        segments = [
            SubtitleSegment(
                id=f"text_{i:04d}",
                start=i * PLAIN_TEXT_SLOT,
                end=(i + 1) * PLAIN_TEXT_SLOT,
                text=line,
            )
            for i, line in enumerate(lines)
        ]

        metadata = {
            "segment_count": len(segments),
            "language": "unknown",
            "source_type": "text",
            "synthetic_timing": True,
        }
        return ParseResult(
            success=len(segments) > 0,
            segments=segments,
            metadata=metadata,
            warnings=self._no_segments_warning(segments, "text"),
        )

    @staticmethod
    def _no_segments_warning(segments: List[SubtitleSegment], dialect: str) -> List[ParseWarning]:
        if segments:
            return []
        return [ParseWarning("NO_SEGMENTS", f"No valid {dialect} segments found", severity="error")]
