"""
Subtitle Formatter Module

Renders canonical segments back to SRT, WebVTT or plain text.
Supports dual subtitles (text + original_text).
"""
from pathlib import Path
from typing import List, Sequence, Union

from loguru import logger

from .models import SubtitleFormat, SubtitleSegment


class SubtitleFormatter:
    """
    Formats subtitle segments into SRT, VTT or plain text.

    Supports:
    - Standard SRT/VTT output
    - Dual subtitles (text + original)
    - Line break normalization
    """

    def __init__(self, max_line_length: int = 42, normalize_lines: bool = False):
        """
        Initialize formatter.

        Args:
            max_line_length: Maximum characters per line (Netflix: 42)
            normalize_lines: Re-wrap cue text to max_line_length
        """
        self.max_line_length = max_line_length
        self.normalize_lines = normalize_lines

    def format(
        self,
        segments: Sequence[SubtitleSegment],
        fmt: Union[SubtitleFormat, str] = SubtitleFormat.SRT,
        dual_subtitles: bool = False
    ) -> str:
        """Format segments in the requested output format"""
        fmt = SubtitleFormat(fmt)
        if fmt == SubtitleFormat.SRT:
            return self.format_srt(segments, dual_subtitles)
        if fmt in (SubtitleFormat.WEBVTT, SubtitleFormat.VTT):
            return self.format_vtt(segments, dual_subtitles)
        if fmt == SubtitleFormat.PLAIN_TEXT:
            return self.format_text(segments)
        raise ValueError(f"Unsupported output format: {fmt.value}")

    def format_srt(
        self,
        segments: Sequence[SubtitleSegment],
        dual_subtitles: bool = False
    ) -> str:
        """
        Format segments as SRT content.

        Args:
            segments: List of subtitle segments
            dual_subtitles: Include original text below the text

        Returns:
            SRT formatted string
        """
        lines = []

        for index, segment in enumerate(segments, start=1):
            lines.append(str(index))

            start_ts = self._format_srt_timestamp(segment.start)
            end_ts = self._format_srt_timestamp(segment.end)
            lines.append(f"{start_ts} --> {end_ts}")

            lines.extend(self._cue_lines(segment, dual_subtitles))

            # Blank line separator
            lines.append("")

        return "\n".join(lines)

    def format_vtt(
        self,
        segments: Sequence[SubtitleSegment],
        dual_subtitles: bool = False
    ) -> str:
        """
        Format segments as WebVTT content.

        Args:
            segments: List of subtitle segments
            dual_subtitles: Include original text below the text

        Returns:
            VTT formatted string
        """
        lines = ["WEBVTT", ""]

        for segment in segments:
            start_ts = self._format_vtt_timestamp(segment.start)
            end_ts = self._format_vtt_timestamp(segment.end)
            lines.append(f"{start_ts} --> {end_ts}")

            if segment.speaker:
                cue = self._cue_lines(segment, dual_subtitles)
                cue[0] = f"<v {segment.speaker}>{cue[0]}"
                lines.extend(cue)
            else:
                lines.extend(self._cue_lines(segment, dual_subtitles))

            lines.append("")

        return "\n".join(lines)

    def format_text(self, segments: Sequence[SubtitleSegment]) -> str:
        """Plain transcript, one segment per line"""
        return "\n".join(" ".join(s.text.split()) for s in segments)

    def save(
        self,
        segments: Sequence[SubtitleSegment],
        output_path: Union[str, Path],
        fmt: Union[SubtitleFormat, str] = SubtitleFormat.SRT,
        dual_subtitles: bool = False
    ) -> bool:
        """
        Save segments to a file.

        Args:
            segments: List of subtitle segments
            output_path: Output file path
            fmt: Output format
            dual_subtitles: Include original text

        Returns:
            True if successful
        """
        try:
            content = self.format(segments, fmt, dual_subtitles)
            output_path = Path(output_path)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_text(content, encoding='utf-8')
            logger.info(f"Saved {SubtitleFormat(fmt).value}: {output_path}")
            return True
        except (OSError, ValueError) as e:
            logger.error(f"Failed to save subtitles: {e}")
            return False

    def _cue_lines(self, segment: SubtitleSegment, dual_subtitles: bool) -> List[str]:
        text = self.normalize_line_breaks(segment.text) if self.normalize_lines else segment.text
        lines = [text]
        if dual_subtitles and segment.original_text:
            lines.append(segment.original_text)
        return lines

    def _format_srt_timestamp(self, seconds: float) -> str:
        """Format seconds to SRT timestamp (HH:MM:SS,mmm)"""
        return self._format_timestamp(seconds, ",")

    def _format_vtt_timestamp(self, seconds: float) -> str:
        """Format seconds to VTT timestamp (HH:MM:SS.mmm)"""
        return self._format_timestamp(seconds, ".")

    @staticmethod
    def _format_timestamp(seconds: float, separator: str) -> str:
        total_ms = int(round(seconds * 1000))
        hours, remainder = divmod(total_ms, 3600 * 1000)
        minutes, remainder = divmod(remainder, 60 * 1000)
        secs, millis = divmod(remainder, 1000)
        return f"{hours:02d}:{minutes:02d}:{secs:02d}{separator}{millis:03d}"

    def normalize_line_breaks(self, text: str) -> str:
        """
        Normalize line breaks to comply with max line length.

        Args:
            text: Subtitle text

        Returns:
            Text with normalized line breaks
        """
        lines = text.strip().split('\n')

        if all(len(line) <= self.max_line_length for line in lines):
            return text

        words = ' '.join(line.strip() for line in lines).split()

        result_lines = []
        current_line: List[str] = []
        current_length = 0

        for word in words:
            new_length = current_length + len(word) + (1 if current_line else 0)

            if new_length <= self.max_line_length:
                current_line.append(word)
                current_length = new_length
            else:
                if current_line:
                    result_lines.append(' '.join(current_line))
                current_line = [word]
                current_length = len(word)

        if current_line:
            result_lines.append(' '.join(current_line))

        return '\n'.join(result_lines)
