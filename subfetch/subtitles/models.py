"""
Subtitle Data Model

Canonical timed-segment model produced by the dialect parsers and consumed
by the merger and the orchestrating service. Segments and files are frozen:
parsers create them once, the merger only derives new ones.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple


class SubtitleFormat(str, Enum):
    """Detected subtitle dialect"""
    WEBVTT = "webvtt"
    VTT = "vtt"
    SRT = "srt"
    YOUTUBE_XML = "youtube_xml"
    YOUTUBE_SRV1 = "youtube_srv1"
    YOUTUBE_SRV2 = "youtube_srv2"
    YOUTUBE_SRV3 = "youtube_srv3"
    TTML = "ttml"
    PLAIN_TEXT = "plain_text"


XML_FORMATS = frozenset({
    SubtitleFormat.YOUTUBE_XML,
    SubtitleFormat.YOUTUBE_SRV1,
    SubtitleFormat.YOUTUBE_SRV2,
    SubtitleFormat.YOUTUBE_SRV3,
    SubtitleFormat.TTML,
})


@dataclass(frozen=True)
class SubtitleStyling:
    """Inline styling carried by a cue"""
    bold: Optional[bool] = None
    italic: Optional[bool] = None
    underline: Optional[bool] = None
    color: Optional[str] = None
    font_size: Optional[str] = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return (
            self.bold is None and self.italic is None and self.underline is None
            and self.color is None and self.font_size is None and not self.extra
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bold": self.bold,
            "italic": self.italic,
            "underline": self.underline,
            "color": self.color,
            "font_size": self.font_size,
            "extra": dict(self.extra),
        }


@dataclass(frozen=True)
class SubtitlePosition:
    """Cue positioning settings (VTT cue settings)"""
    line: Optional[str] = None
    position: Optional[str] = None
    align: Optional[str] = None
    size: Optional[str] = None
    vertical: Optional[str] = None
    region: Optional[str] = None
    extra: Mapping[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "line": self.line,
            "position": self.position,
            "align": self.align,
            "size": self.size,
            "vertical": self.vertical,
            "region": self.region,
            "extra": dict(self.extra),
        }


@dataclass(frozen=True)
class SegmentMetadata:
    """Known per-segment metadata plus an open extension map"""
    speaker: Optional[str] = None
    language: Optional[str] = None
    confidence: Optional[float] = None  # 0.0 - 1.0
    region: Optional[str] = None
    notes: Tuple[str, ...] = ()
    tags: Tuple[str, ...] = ()
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.confidence is not None and not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")
        object.__setattr__(self, "notes", tuple(self.notes))
        object.__setattr__(self, "tags", tuple(self.tags))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "speaker": self.speaker,
            "language": self.language,
            "confidence": self.confidence,
            "region": self.region,
            "notes": list(self.notes),
            "tags": list(self.tags),
            "extra": dict(self.extra),
        }


@dataclass(frozen=True)
class SubtitleSegment:
    """A single subtitle segment with timing and text"""
    id: str
    start: float  # Start time in seconds
    end: float    # End time in seconds
    text: str
    original_text: Optional[str] = None  # For dual subtitles
    styling: Optional[SubtitleStyling] = None
    position: Optional[SubtitlePosition] = None
    metadata: Optional[SegmentMetadata] = None

    def __post_init__(self):
        if not self.end > self.start:
            raise ValueError(
                f"Segment {self.id}: end ({self.end}) must be greater than start ({self.start})"
            )

    @property
    def duration(self) -> float:
        """Get duration in seconds"""
        return self.end - self.start

    @property
    def speaker(self) -> Optional[str]:
        return self.metadata.speaker if self.metadata else None

    @property
    def char_count(self) -> int:
        """Get total character count"""
        return sum(len(line.strip()) for line in self.text.split('\n'))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "id": self.id,
            "start": self.start,
            "end": self.end,
            "text": self.text,
            "original_text": self.original_text,
            "duration": self.duration,
            "styling": self.styling.to_dict() if self.styling else None,
            "position": self.position.to_dict() if self.position else None,
            "metadata": self.metadata.to_dict() if self.metadata else None,
        }


@dataclass(frozen=True)
class SourceInfo:
    """Where a subtitle file came from"""
    type: str = "youtube"
    url: Optional[str] = None
    is_auto_generated: bool = False
    fetched_at: float = 0.0  # Epoch seconds
    strategy: Optional[str] = None


@dataclass(frozen=True)
class FileMetadata:
    """Subtitle file metadata"""
    format: SubtitleFormat
    language: str = "unknown"
    language_code: str = "en"
    segment_count: int = 0
    source: SourceInfo = field(default_factory=SourceInfo)
    warning_count: int = 0
    extra: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CacheInfo:
    """Cache bookkeeping attached to a file built for an explicit cache key"""
    cache_key: str
    cached_at: float
    expires_at: float
    size: int


@dataclass(frozen=True)
class SubtitleFile:
    """An ordered, immutable list of segments plus metadata"""
    id: str
    segments: Tuple[SubtitleSegment, ...]
    metadata: FileMetadata
    cache_info: Optional[CacheInfo] = None

    def __post_init__(self):
        segments = tuple(self.segments)
        seen = set()
        for segment in segments:
            if segment.id in seen:
                raise ValueError(f"Duplicate segment id in file {self.id}: {segment.id}")
            seen.add(segment.id)
        object.__setattr__(self, "segments", segments)

    @property
    def format(self) -> SubtitleFormat:
        return self.metadata.format

    @property
    def language(self) -> str:
        return self.metadata.language

    @property
    def is_auto_generated(self) -> bool:
        return self.metadata.source.is_auto_generated

    @property
    def fetched_at(self) -> float:
        return self.metadata.source.fetched_at

    @property
    def duration(self) -> float:
        if not self.segments:
            return 0.0
        return max(s.end for s in self.segments) - min(s.start for s in self.segments)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "format": self.format.value,
            "language": self.language,
            "language_code": self.metadata.language_code,
            "is_auto_generated": self.is_auto_generated,
            "fetched_at": self.fetched_at,
            "segment_count": len(self.segments),
            "source": {
                "type": self.metadata.source.type,
                "url": self.metadata.source.url,
                "strategy": self.metadata.source.strategy,
            },
            "segments": [s.to_dict() for s in self.segments],
            "cache_info": {
                "cache_key": self.cache_info.cache_key,
                "cached_at": self.cache_info.cached_at,
                "expires_at": self.cache_info.expires_at,
                "size": self.cache_info.size,
            } if self.cache_info else None,
        }


@dataclass(frozen=True)
class ParseWarning:
    """A non-fatal parser diagnostic"""
    code: str
    message: str
    line: Optional[int] = None
    severity: str = "warning"  # info, warning, error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "line": self.line,
            "severity": self.severity,
        }


@dataclass
class ParseResult:
    """Uniform result shape of every dialect parser"""
    success: bool
    segments: List[SubtitleSegment] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    warnings: List[ParseWarning] = field(default_factory=list)
    detected_format: Optional[SubtitleFormat] = None

    @property
    def error_message(self) -> str:
        errors = [w for w in self.warnings if w.severity == "error"] or self.warnings
        return errors[0].message if errors else "Failed to parse subtitle content"
