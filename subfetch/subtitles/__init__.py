"""
Subtitle Processing Module

Provides:
- Format detection (WebVTT, SRT, XML caption family, plain text)
- Subtitle parsing into a unified segment model
- Segment merging (time, speaker, content strategies)
- Subtitle formatting (SRT, VTT, text)
"""
from .errors import ErrorCode, FetchError, SubtitleFetchException
from .models import (
    ParseResult,
    ParseWarning,
    SegmentMetadata,
    SubtitleFile,
    SubtitleFormat,
    SubtitleSegment,
)
from .detector import detect_format
from .parser import SubtitleParser
from .xml_parser import parse_xml
from .merger import MergeResult, SegmentMerger
from .formatter import SubtitleFormatter

__all__ = [
    "ErrorCode",
    "FetchError",
    "SubtitleFetchException",
    "ParseResult",
    "ParseWarning",
    "SegmentMetadata",
    "SubtitleFile",
    "SubtitleFormat",
    "SubtitleSegment",
    "detect_format",
    "SubtitleParser",
    "parse_xml",
    "MergeResult",
    "SegmentMerger",
    "SubtitleFormatter",
]
