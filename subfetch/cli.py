"""
CLI entry point for subfetch
"""
import argparse
import asyncio
import json
import sys
from typing import List, Optional

from loguru import logger

from .config import settings
from .log_setup import setup_logging
from .options import CHAIN_STRATEGIES, MERGE_STRATEGIES, MergeConfig
from .service import FetchRequest, create_subtitle_fetching_service
from .subtitles.formatter import SubtitleFormatter
from .subtitles.merger import SegmentMerger
from .subtitles.parser import SubtitleParser

OUTPUT_FORMATS = ("srt", "vtt", "text", "json")


def _render(segments, output_format: str, payload: Optional[dict] = None) -> str:
    if output_format == "json":
        return json.dumps(payload, ensure_ascii=False, indent=2)
    formatter = SubtitleFormatter()
    if output_format == "vtt":
        return formatter.format_vtt(segments)
    if output_format == "text":
        return formatter.format_text(segments)
    return formatter.format_srt(segments)


def _write(content: str, output: Optional[str]) -> None:
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(content)
        logger.info(f"Saved: {output}")
    else:
        sys.stdout.write(content)
        if not content.endswith("\n"):
            sys.stdout.write("\n")


def _merge_overrides(args) -> Optional[dict]:
    overrides = {}
    if args.merge_strategy:
        overrides["strategy"] = args.merge_strategy
    if args.max_gap is not None:
        overrides["max_gap"] = args.max_gap
    return overrides or None


def run_fetch(args) -> int:
    service_config = settings.to_service_config()
    overrides = {}
    if args.no_merge:
        overrides["enable_merging"] = False
    if args.no_cache:
        overrides["enable_cache"] = False
    if args.strategy:
        overrides["chain"] = service_config.chain.with_overrides({"strategies": tuple(args.strategy)})
    service = create_subtitle_fetching_service(config=service_config.with_overrides(overrides))

    result = asyncio.run(service.fetch_subtitles(FetchRequest(
        url=args.url,
        timeout=args.timeout,
        format=args.format_hint,
        language=args.language,
        merge=_merge_overrides(args),
    )))

    if not result.success:
        logger.error(f"Fetch failed: {result.error.code.value} {result.error.message}")
        return 1

    segments = result.subtitle_file.segments
    _write(_render(segments, args.format, result.to_dict()), args.output)
    return 0


def run_parse(args) -> int:
    parser = SubtitleParser()
    parse_result = parser.parse_file(args.file)
    if not parse_result.success:
        logger.error(f"Parse failed: {parse_result.error_message}")
        return 1

    segments = parse_result.segments
    if not args.no_merge:
        merge_config = MergeConfig().with_overrides(_merge_overrides(args))
        segments = SegmentMerger(merge_config).merge(segments).segments

    payload = {
        "format": parse_result.detected_format.value if parse_result.detected_format else None,
        "segments": [s.to_dict() for s in segments],
        "warnings": [w.to_dict() for w in parse_result.warnings],
    }
    _write(_render(segments, args.format, payload), args.output)
    return 0


def run_serve(args) -> int:
    import uvicorn

    uvicorn.run(
        "subfetch.api.main:app",
        host=args.host or settings.API_HOST,
        port=args.port or settings.API_PORT,
        log_level=args.log_level.lower(),
    )
    return 0


def _add_output_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--format", choices=OUTPUT_FORMATS, default="srt", help="Output format")
    parser.add_argument("-o", "--output", type=str, help="Write to file instead of stdout")
    parser.add_argument("--no-merge", action="store_true", help="Keep parsed segments as-is")
    parser.add_argument("--merge-strategy", choices=MERGE_STRATEGIES, help="Segment merge strategy")
    parser.add_argument("--max-gap", type=float, help="Maximum gap (seconds) bridged by merging")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Fetch, parse and merge subtitle files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  subfetch fetch "https://example.com/captions.vtt" --format srt
  subfetch fetch URL --strategy direct --no-merge --format json
  subfetch parse captions.srt --merge-strategy content --format vtt
  subfetch serve --port 8890
        """
    )
    parser.add_argument("--log-level", default=settings.LOG_LEVEL, help="Log level (DEBUG, INFO, ...)")

    subparsers = parser.add_subparsers(dest="command", help="Command")

    fetch_parser = subparsers.add_parser("fetch", help="Fetch subtitles from a URL")
    fetch_parser.add_argument("url", type=str, help="Subtitle URL")
    fetch_parser.add_argument("--timeout", type=float, help="Timeout in seconds")
    fetch_parser.add_argument("--strategy", action="append", choices=CHAIN_STRATEGIES,
                              help="Retrieval strategy (repeat to set the order)")
    fetch_parser.add_argument("--format-hint", type=str, help="Skip detection and parse as this format")
    fetch_parser.add_argument("--language", type=str, help="Language hint")
    fetch_parser.add_argument("--no-cache", action="store_true", help="Bypass the cache")
    _add_output_args(fetch_parser)

    parse_parser = subparsers.add_parser("parse", help="Parse a local subtitle file")
    parse_parser.add_argument("file", type=str, help="Subtitle file path")
    _add_output_args(parse_parser)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", type=str, help="Bind address")
    serve_parser.add_argument("--port", type=int, help="Bind port")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.log_level, json=settings.LOG_JSON, log_file=settings.LOG_FILE)

    commands = {
        "fetch": run_fetch,
        "parse": run_parse,
        "serve": run_serve,
    }
    try:
        return commands[args.command](args)
    except ValueError as e:
        logger.error(f"Invalid option: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
