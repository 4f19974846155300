from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

from .advisor import Advisor, HttpAdvisor
from .codec import PillowCodec
from .config import Config
from .dimensions import InvalidDimension, parse_dimension
from .engine import EncodeError
from .formats import FORMAT_CAPABILITIES, format_from_mime
from .report import build_report, save_report_json
from .session import ConversionSession
from .settings import OPTIMIZATION_GOALS, OUTPUT_FORMATS
from .source import UnsupportedSource, open_source

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="rtpc",
        description="RT Photo Converter (engine + CLI)",
    )
    p.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-v info, -vv debug)")
    sub = p.add_subparsers(dest="command", required=True)

    info = sub.add_parser("info", help="Show what the converter sees in an image")
    info.add_argument("source", help="Image file")

    rec = sub.add_parser("recommend", help="Recommend format and quality for a goal")
    rec.add_argument("source", help="Image file")
    rec.add_argument("--goal", required=True, choices=OPTIMIZATION_GOALS, help="Optimization goal")
    _add_advisor_args(rec)

    conv = sub.add_parser("convert", help="Convert one image")
    conv.add_argument("source", help="Image file")
    conv.add_argument("--out", required=True, help="Output directory")
    conv.add_argument("--overwrite", action="store_true", help="Overwrite the output file if it exists")
    conv.add_argument("--report", default=None, help="Write a JSON report to this path")

    # Format
    fmt = conv.add_mutually_exclusive_group()
    for name in OUTPUT_FORMATS:
        fmt.add_argument(f"--{name}", dest="format", action="store_const", const=name, help=f"Output {name.upper()}")

    # Goal-driven settings; explicit flags below override what the goal picks
    conv.add_argument("--goal", choices=OPTIMIZATION_GOALS, default=None, help="Start from a recommendation")
    _add_advisor_args(conv)

    conv.add_argument("--quality", type=int, default=None, help="Quality 1-100 (JPEG/WebP only)")

    # Resize (strings on purpose: parse_dimension gives the same errors as the UI)
    conv.add_argument("--width", default=None, help="Output width in pixels")
    conv.add_argument("--height", default=None, help="Output height in pixels")
    conv.add_argument("--no-aspect-lock", action="store_true", help="Do not keep the source aspect ratio")

    return p


def _add_advisor_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--advisor-url", default=None, help="Advisor endpoint (default: $RTPC_ADVISOR_URL)")
    parser.add_argument("--timeout", type=float, default=None, help="Advisor timeout in seconds")


def _configure_logging(verbose: int, config: Config) -> None:
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = getattr(logging, config.log_level, logging.WARNING)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _resolve_config(args: argparse.Namespace, config: Config) -> Config:
    url = getattr(args, "advisor_url", None)
    timeout = getattr(args, "timeout", None)
    if url:
        config = replace(config, advisor_url=url)
    if timeout is not None and timeout > 0:
        config = replace(config, advisor_timeout=timeout)
    return config


def _build_advisor(config: Config) -> Optional[Advisor]:
    if not config.advisor_enabled:
        return None
    logger.info("using advisor at %s (timeout %.1fs)", config.advisor_url, config.advisor_timeout)
    return HttpAdvisor(config.advisor_url or "", api_key=config.advisor_api_key, timeout=config.advisor_timeout)


def _next_available_name(path: Path) -> Path:
    # photo_converted.jpg -> photo_converted (1).jpg
    base = path.with_suffix("")
    ext = path.suffix
    i = 1
    while True:
        candidate = Path(f"{base} ({i}){ext}")
        if not candidate.exists():
            return candidate
        i += 1


def _fail(message: str) -> int:
    print(f"error: {message}", file=sys.stderr)
    return 1


def main(argv: list[str] | None = None, config: Optional[Config] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = _resolve_config(args, config or Config.from_env())
    _configure_logging(args.verbose, config)

    codec = PillowCodec()

    try:
        source, raster = open_source(Path(args.source), codec)
    except FileNotFoundError:
        return _fail(f"no such file: {args.source}")
    except UnsupportedSource as exc:
        return _fail(str(exc))

    if args.command == "info":
        print("Name        :", source.name)
        print("Type        :", source.mime_type)
        print("Size        :", f"{source.byte_size} bytes")
        print("Dimensions  :", f"{source.width} x {source.height}px")
        print("Transparency:", "yes" if source.has_transparency else "no")
        fmt = format_from_mime(source.mime_type)
        if fmt:
            caps = FORMAT_CAPABILITIES[fmt]
            print("Quality knob:", "yes" if caps.supports_quality else "no")
        return 0

    advisor = _build_advisor(config)
    try:
        session = ConversionSession(source, raster, codec, advisor=advisor, config=config)
        if args.command == "recommend":
            return _recommend(session, args.goal)
        if args.command == "convert":
            return _convert(session, args)
    finally:
        if isinstance(advisor, HttpAdvisor):
            advisor.close()

    parser.print_help()
    return 2


def _recommend(session: ConversionSession, goal: str) -> int:
    outcome = session.recommend(goal)
    r = outcome.recommendation
    print("Format   :", r.format)
    print("Quality  :", r.quality if r.quality is not None else "n/a")
    if r.width or r.height:
        print("Size     :", f"{r.width or '?'} x {r.height or '?'}px")
    print("Reasoning:", r.reasoning)
    if outcome.used_fallback:
        print(f"\nNote: advisor not used ({outcome.error_kind}); showing the built-in recommendation.")
    return 0


def _convert(session: ConversionSession, args: argparse.Namespace) -> int:
    source = session.source
    recommendation = None
    if args.goal:
        outcome = session.optimize(args.goal)
        recommendation = outcome.recommendation
        if outcome.used_fallback:
            print(f"Note: advisor not used ({outcome.error_kind}); using the built-in recommendation.")

    if args.format:
        session.set_format(args.format)
    if args.quality is not None:
        session.set_quality(args.quality)

    # Both sides given: that is an explicit size, not a proportional edit
    if args.no_aspect_lock or (args.width is not None and args.height is not None):
        session.set_aspect_lock(False)

    try:
        if args.width is not None:
            session.edit_dimension("width", parse_dimension(args.width, "width"))
        if args.height is not None:
            session.edit_dimension("height", parse_dimension(args.height, "height"))
    except InvalidDimension as exc:
        return _fail(str(exc))

    try:
        result = session.encode()
    except EncodeError as exc:
        return _fail(f"{exc} [{exc.kind}]")

    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / result.output_name(source.name)
    if out_path.exists() and not args.overwrite:
        out_path = _next_available_name(out_path)
    out_path.write_bytes(result.data)

    print("\n=== Conversion ===")
    print("Output     :", out_path)
    print("Format     :", result.format)
    print("Quality    :", session.settings.quality if session.settings.quality is not None else "n/a")
    print("Dimensions :", f"{result.width} x {result.height}px")
    print(f"Size       : {result.byte_size} bytes (was {source.byte_size})")
    print(f"Saved      : {result.saved_bytes} bytes ({result.saved_percent:.1f}%)")
    if recommendation:
        print("Reasoning  :", recommendation.reasoning)

    if args.report:
        report = build_report(
            source,
            session.settings,
            result,
            recommendation=recommendation,
            corrections=session.result_corrections,
            out_path=out_path,
        )
        save_report_json(report, Path(args.report))
        print("\nReport written:", args.report)
    return 0
