"""
Subtitle Segment Merger

Coalesces fragmentary segments into display-ready lines using one of three
interchangeable strategies:
- time: merge neighbours separated by a small gap
- speaker: split into same-speaker runs, then merge each run by time
- content: merge sentence continuations and incomplete phrases

Every strategy is applied until no further merge is possible, so running
the merger again on its own output changes nothing.
"""
import hashlib
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from loguru import logger

from ..options import MergeConfig
from .models import SegmentMetadata, SubtitleFile, SubtitleSegment, SubtitleStyling


CONTINUATION_WORDS = re.compile(
    r'^(and|but|or|so|then|also|however|therefore|because|since|when|while|if|as|like|than)\s+',
    re.IGNORECASE
)
SENTENCE_END = re.compile(r'[.!?]$')
# No space after an opening mark or a sentence end, none before a closing mark
OPENING_PUNCTUATION = tuple('([{"“‘¿¡-/')
CLOSING_PUNCTUATION = tuple(',.;:!?)]}"”’…%')
TERMINAL_PUNCTUATION = (".", "!", "?")

MAX_ID_LENGTH = 64


@dataclass(frozen=True)
class MergeOperation:
    """Advisory record of one merge decision"""
    type: str  # merge, skip
    source_segments: Tuple[str, ...]
    reason: str
    result_segment: Optional[str] = None
    time_saved: Optional[float] = None  # Gap eliminated, seconds


@dataclass(frozen=True)
class MergeWarning:
    """Advisory warning about a resulting segment"""
    code: str
    message: str
    segment_ids: Tuple[str, ...]
    severity: str = "warning"  # info, warning


@dataclass
class MergeResult:
    """Result of a merge run"""
    success: bool
    original_count: int
    merged_count: int
    segments: List[SubtitleSegment] = field(default_factory=list)
    operations: List[MergeOperation] = field(default_factory=list)
    warnings: List[MergeWarning] = field(default_factory=list)

    @property
    def merge_count(self) -> int:
        return sum(1 for op in self.operations if op.type == "merge")


def combine_text(first: str, second: str) -> str:
    """Join two texts with a single space unless punctuation makes it unnecessary"""
    first = first.strip()
    second = second.strip()
    if not first:
        return second
    if not second:
        return first

    if first.endswith(OPENING_PUNCTUATION + TERMINAL_PUNCTUATION) or second.startswith(CLOSING_PUNCTUATION):
        joined = f"{first}{second}"
    else:
        joined = f"{first} {second}"
    return re.sub(r'\s+', ' ', joined)


def merged_id(first_id: str, second_id: str) -> str:
    """Deterministic id for the segment built from two sources"""
    candidate = f"{first_id}_{second_id}_merged"
    if len(candidate) <= MAX_ID_LENGTH:
        return candidate
    digest = hashlib.sha1(f"{first_id}|{second_id}".encode("utf-8")).hexdigest()[:16]
    return f"merged_{digest}"


def merge_metadata(
    first: Optional[SegmentMetadata],
    second: Optional[SegmentMetadata]
) -> Optional[SegmentMetadata]:
    if first is None and second is None:
        return None
    first = first or SegmentMetadata()
    second = second or SegmentMetadata()

    confidences = [c for c in (first.confidence, second.confidence) if c is not None]
    tags = list(first.tags)
    tags.extend(tag for tag in second.tags if tag not in tags)
    extra = dict(second.extra)
    extra.update(first.extra)

    return SegmentMetadata(
        speaker=first.speaker or second.speaker,
        language=first.language or second.language,
        confidence=min(confidences) if confidences else None,
        region=first.region or second.region,
        notes=first.notes + second.notes,
        tags=tuple(dict.fromkeys(tags)),
        extra=extra,
    )


def merge_styling(
    first: Optional[SubtitleStyling],
    second: Optional[SubtitleStyling]
) -> Optional[SubtitleStyling]:
    """Keep a styling field only where both sides agree"""
    if first is None and second is None:
        return None
    first = first or SubtitleStyling()
    second = second or SubtitleStyling()

    def agree(a, b):
        return a if a == b else None

    extra = {k: v for k, v in first.extra.items() if second.extra.get(k) == v}
    styling = SubtitleStyling(
        bold=agree(first.bold, second.bold),
        italic=agree(first.italic, second.italic),
        underline=agree(first.underline, second.underline),
        color=agree(first.color, second.color),
        font_size=agree(first.font_size, second.font_size),
        extra=extra,
    )
    return None if styling.is_empty else styling


def combine_segments(first: SubtitleSegment, second: SubtitleSegment) -> SubtitleSegment:
    """Build a new segment spanning both sources"""
    if first.original_text and second.original_text:
        original_text = combine_text(first.original_text, second.original_text)
    else:
        original_text = first.original_text or second.original_text

    return SubtitleSegment(
        id=merged_id(first.id, second.id),
        start=min(first.start, second.start),
        end=max(first.end, second.end),
        text=combine_text(first.text, second.text),
        original_text=original_text,
        styling=merge_styling(first.styling, second.styling),
        position=first.position or second.position,
        metadata=merge_metadata(first.metadata, second.metadata),
    )


def is_sentence_continuation(first: str, second: str) -> bool:
    """Second text continues the first sentence"""
    first = first.strip()
    second = second.strip()
    if not first or not second or SENTENCE_END.search(first):
        return False
    return second[0].islower()


def is_incomplete_phrase(text: str) -> bool:
    trimmed = text.strip()
    if len(trimmed) < 3:
        return True
    if trimmed.endswith(','):
        return True
    return CONTINUATION_WORDS.match(trimmed) is not None


class SegmentMerger:
    """
    Merges subtitle segments by time, speaker or content.

    Usage:
        merger = SegmentMerger(MergeConfig(strategy="speaker"))
        result = merger.merge(segments)
        segments = result.segments
    """

    def __init__(self, config: Optional[MergeConfig] = None):
        self.config = config or MergeConfig()

    def with_config(self, **overrides) -> "SegmentMerger":
        """Create a new merger with updated configuration"""
        return SegmentMerger(self.config.with_overrides(overrides))

    def merge_file(self, subtitle_file: SubtitleFile) -> MergeResult:
        """Merge the segments of a subtitle file"""
        result = self.merge(subtitle_file.segments)
        logger.info(
            f"Merge completed for {subtitle_file.id}: "
            f"{result.original_count} -> {result.merged_count} segments"
        )
        return result

    def merge(self, segments: Sequence[SubtitleSegment]) -> MergeResult:
        """
        Merge a list of subtitle segments.

        Args:
            segments: Segments in any order

        Returns:
            MergeResult with segments ordered by start time
        """
        operations: List[MergeOperation] = []
        warnings: List[MergeWarning] = []
        original_count = len(segments)

        ordered = []
        for segment in sorted(segments, key=lambda s: s.start):
            if segment.text.strip():
                ordered.append(segment)
            else:
                operations.append(MergeOperation(
                    type="skip", source_segments=(segment.id,), reason="Empty segment text"
                ))

        strategies: Dict[str, Callable] = {
            "time": self._merge_by_time,
            "speaker": self._merge_by_speaker,
            "content": self._merge_by_content,
        }
        merge_pass = strategies.get(self.config.strategy, self._merge_by_time)
        merged = self._until_fixed_point(merge_pass, ordered, operations)

        for segment in merged:
            warnings.extend(self._validate_segment(segment))

        logger.debug(
            f"Merged {original_count} -> {len(merged)} segments "
            f"(strategy={self.config.strategy}, warnings={len(warnings)})"
        )
        return MergeResult(
            success=True,
            original_count=original_count,
            merged_count=len(merged),
            segments=merged,
            operations=operations,
            warnings=warnings,
        )

    @staticmethod
    def _until_fixed_point(
        merge_pass: Callable[[List[SubtitleSegment], List[MergeOperation]], List[SubtitleSegment]],
        segments: List[SubtitleSegment],
        operations: List[MergeOperation]
    ) -> List[SubtitleSegment]:
        current = segments
        while True:
            merged = merge_pass(current, operations)
            if len(merged) == len(current):
                return merged
            current = sorted(merged, key=lambda s: s.start)

    # ==================== Strategies ====================

    def _merge_pairwise(
        self,
        segments: List[SubtitleSegment],
        operations: List[MergeOperation],
        can_merge: Callable[[SubtitleSegment, SubtitleSegment], Optional[str]]
    ) -> List[SubtitleSegment]:
        """Greedy left-to-right scan merging current into next while allowed"""
        merged: List[SubtitleSegment] = []
        current: Optional[SubtitleSegment] = None

        for segment in segments:
            if current is None:
                current = segment
                continue

            reason = can_merge(current, segment)
            if reason:
                combined = combine_segments(current, segment)
                operations.append(MergeOperation(
                    type="merge",
                    source_segments=(current.id, segment.id),
                    result_segment=combined.id,
                    reason=reason,
                    time_saved=max(0.0, segment.start - current.end),
                ))
                current = combined
            else:
                merged.append(current)
                current = segment

        if current is not None:
            merged.append(current)
        return merged

    def _merge_by_time(self, segments, operations):
        return self._merge_pairwise(segments, operations, self.can_merge_by_time)

    def _merge_by_speaker(self, segments, operations):
        merged: List[SubtitleSegment] = []
        for run in self._speaker_runs(segments):
            merged.extend(self._merge_by_time(run, operations))
        return merged

    def _merge_by_content(self, segments, operations):
        return self._merge_pairwise(segments, operations, self.can_merge_by_content)

    @staticmethod
    def _speaker_runs(segments: List[SubtitleSegment]) -> List[List[SubtitleSegment]]:
        """Split into contiguous runs sharing the same speaker value (None included)"""
        runs: List[List[SubtitleSegment]] = []
        for segment in segments:
            if runs and runs[-1][-1].speaker == segment.speaker:
                runs[-1].append(segment)
            else:
                runs.append([segment])
        return runs

    # ==================== Merge decisions ====================

    def can_merge_by_time(self, first: SubtitleSegment, second: SubtitleSegment) -> Optional[str]:
        """
        Decide whether two neighbours merge by timing.

        Returns:
            The reason for merging, or None
        """
        gap = second.start - first.end
        span = max(first.end, second.end) - min(first.start, second.start)

        if first.duration < self.config.min_duration or second.duration < self.config.min_duration:
            reason = f"Segment shorter than {self.config.min_duration}s"
            if gap > self.config.max_gap or span > self.config.max_duration:
                # short segments merge whatever the distance
                reason += f" (forced across a {gap:.2f}s gap, {span:.2f}s span)"
            return reason

        if gap > self.config.max_gap:
            return None

        if span > self.config.max_duration:
            return None

        if self.config.preserve_speakers:
            if first.speaker and second.speaker and first.speaker != second.speaker:
                return None

        return f"Time gap of {gap:.2f}s within threshold"

    def can_merge_by_content(self, first: SubtitleSegment, second: SubtitleSegment) -> Optional[str]:
        """Decide whether two neighbours merge by linguistic cues"""
        text1 = first.text.strip()
        text2 = second.text.strip()
        if not text1 or not text2:
            return None

        if is_sentence_continuation(text1, text2):
            return "Sentence continues in next segment"

        if is_incomplete_phrase(text1) or is_incomplete_phrase(text2):
            return "Incomplete phrase"

        gap = second.start - first.end
        if gap <= self.config.max_gap:
            return f"Time gap of {gap:.2f}s within threshold"
        return None

    # ==================== Post-processing ====================

    def _validate_segment(self, segment: SubtitleSegment) -> List[MergeWarning]:
        warnings = []
        duration = segment.duration

        if duration > self.config.max_duration:
            warnings.append(MergeWarning(
                code="DURATION_TOO_LONG",
                message=f"Segment duration {duration:.2f}s exceeds maximum {self.config.max_duration}s",
                segment_ids=(segment.id,),
            ))

        if duration < self.config.min_duration:
            warnings.append(MergeWarning(
                code="DURATION_TOO_SHORT",
                message=f"Segment duration {duration:.2f}s below minimum {self.config.min_duration}s",
                segment_ids=(segment.id,),
                severity="info",
            ))

        if len(segment.text) > self.config.max_text_length:
            warnings.append(MergeWarning(
                code="TEXT_TOO_LONG",
                message=f"Segment text length {len(segment.text)} characters may be too long for display",
                segment_ids=(segment.id,),
            ))

        return warnings

    def calculate_merge_potential(self, segments: Sequence[SubtitleSegment]) -> Dict[str, float]:
        """Estimate how many neighbouring pairs would merge by time"""
        ordered = sorted(segments, key=lambda s: s.start)
        mergeable = 0
        time_gaps = 0.0

        for current, nxt in zip(ordered, ordered[1:]):
            if self.can_merge_by_time(current, nxt):
                mergeable += 1
                time_gaps += max(0.0, nxt.start - current.end)

        return {
            "mergeable": mergeable,
            "time_gaps": time_gaps,
            "estimated_reduction": mergeable / len(ordered) if ordered else 0.0,
        }


def create_time_merger() -> SegmentMerger:
    return SegmentMerger(MergeConfig(
        max_gap=1.5, min_duration=0.3, max_duration=8.0, strategy="time", preserve_speakers=False
    ))


def create_speaker_merger() -> SegmentMerger:
    return SegmentMerger(MergeConfig(
        max_gap=3.0, min_duration=0.5, max_duration=12.0, strategy="speaker", preserve_speakers=True
    ))


def create_content_merger() -> SegmentMerger:
    return SegmentMerger(MergeConfig(
        max_gap=2.5, min_duration=0.4, max_duration=10.0, strategy="content", preserve_speakers=True
    ))


def merge_subtitle_segments(
    segments: Sequence[SubtitleSegment],
    config: Optional[MergeConfig] = None
) -> List[SubtitleSegment]:
    """Quick merge for simple use cases"""
    return SegmentMerger(config).merge(segments).segments
