"""Command line interface for the Linemend line-break cleaner."""

from __future__ import annotations

import argparse
import logging
import pathlib
import sys
from dataclasses import replace
from typing import Iterable, List, Optional

from .configuration import (
    JsonConfigStore,
    available_fonts,
    clamp_threshold,
    default_processing_config,
    get_settings,
    load_processing_config,
    parse_soft_break_chars,
    save_processing_config,
    store_path,
)
from .errors import (
    ConfigurationError,
    LinemendError,
    OverwriteRefusedError,
    UnsupportedFileTypeError,
)
from .runner import CleanupRunner, CleanupSummary, validate_paths
from .structures import ProcessingConfig, ProcessingOptions

OUTPUT_SUFFIX = "_cleaned"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="linemend",
        description=(
            "Find and remove unnecessary line breaks in PowerPoint (.pptx) text boxes."
        ),
    )
    parser.add_argument(
        "input_file",
        help="Path to the .pptx file to scan.",
    )
    parser.add_argument(
        "-o",
        "--output",
        help="Output file path. Defaults to appending '_cleaned' to the input name.",
    )
    parser.add_argument(
        "--apply",
        action="store_true",
        help="Fix every flagged text block and save the result.",
    )
    parser.add_argument(
        "--select",
        action="append",
        default=[],
        metavar="BLOCK_ID",
        help="Process only this block (repeatable, e.g. slide1/shape3).",
    )
    parser.add_argument(
        "--remove-breaks",
        action="store_true",
        help="With --select: join lines that were broken only to fit the box.",
    )
    parser.add_argument(
        "--convert-soft-breaks",
        action="store_true",
        help="With --select: turn soft breaks into paragraph breaks.",
    )
    parser.add_argument(
        "--normalize-spaces",
        action="store_true",
        help="With --select: tidy spaces around CJK punctuation.",
    )
    parser.add_argument(
        "--auto-height",
        action="store_true",
        help="With --select: switch the text boxes to auto-height.",
    )
    parser.add_argument(
        "--threshold",
        type=float,
        help="Width ratio (0-1] at or above which a line counts as wrapped.",
    )
    parser.add_argument(
        "--min-characters",
        type=int,
        help="Skip text blocks shorter than this many characters.",
    )
    parser.add_argument(
        "--soft-break",
        action="append",
        metavar="CHAR",
        help="Soft-break character, e.g. U+2028 (repeatable; replaces the stored list).",
    )
    parser.add_argument(
        "--font-width-multiplier",
        type=float,
        help="Scale estimated glyph widths for wide or narrow fonts.",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Never join into a line that starts with a bullet or a capital letter.",
    )
    parser.add_argument(
        "--save-config",
        action="store_true",
        help="Persist the effective settings for later runs.",
    )
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Allow overwriting the output file if it already exists.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show detailed progress information.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log join decisions and apply steps to stderr.",
    )
    return parser


def derive_output_path(input_path: pathlib.Path) -> pathlib.Path:
    return input_path.with_name(f"{input_path.stem}{OUTPUT_SUFFIX}{input_path.suffix}")


def apply_overrides(config: ProcessingConfig, args: argparse.Namespace) -> ProcessingConfig:
    """Layer command line tuning flags over the stored configuration."""

    overrides = {}
    if args.threshold is not None:
        try:
            overrides["line_break_threshold"] = clamp_threshold(args.threshold)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid --threshold: {exc}") from exc
    if args.min_characters is not None:
        if args.min_characters < 0:
            raise ConfigurationError("Invalid --min-characters: must not be negative")
        overrides["min_characters"] = args.min_characters
    if args.soft_break:
        overrides["soft_break_chars"] = parse_soft_break_chars(",".join(args.soft_break))
    if args.font_width_multiplier is not None:
        if args.font_width_multiplier <= 0:
            raise ConfigurationError("Invalid --font-width-multiplier: must be positive")
        overrides["font_width_multiplier"] = args.font_width_multiplier
    if args.strict:
        overrides["strict_join"] = True
    return replace(config, **overrides)


def options_from_args(args: argparse.Namespace) -> ProcessingOptions:
    explicit = args.convert_soft_breaks or args.normalize_spaces or args.auto_height
    return ProcessingOptions(
        remove_breaks=args.remove_breaks or not explicit,
        convert_soft_breaks=args.convert_soft_breaks,
        normalize_spaces=args.normalize_spaces,
        convert_to_auto_height=args.auto_height,
    )


def execute_cleanup(
    *,
    input_file: str,
    output_file: str | None,
    config: ProcessingConfig,
    fonts: List[str],
    store: JsonConfigStore | None,
    apply: bool,
    selected_ids: List[str],
    options: ProcessingOptions,
    force_overwrite: bool,
    verbose: bool,
) -> tuple[int, CleanupSummary | None, str | None]:
    """Execute a cleanup run and return the exit code, summary, and message."""

    input_path = pathlib.Path(input_file).expanduser().resolve()
    modifies = apply or bool(selected_ids)
    output_path: pathlib.Path | None = None
    if modifies:
        output_path = (
            pathlib.Path(output_file).expanduser().resolve()
            if output_file
            else derive_output_path(input_path)
        )

    try:
        validate_paths(input_path, output_path, force_overwrite=force_overwrite)
    except (FileNotFoundError, OverwriteRefusedError, LinemendError) as exc:
        return 1, None, str(exc)

    if output_path is not None:
        output_path.parent.mkdir(parents=True, exist_ok=True)

    runner = CleanupRunner(
        input_path=input_path,
        output_path=output_path,
        config=config,
        available_fonts=fonts,
        store=store,
        apply=apply,
        selected_ids=selected_ids,
        options=options,
        verbose=verbose,
    )

    try:
        summary = runner.run()
    except UnsupportedFileTypeError as exc:
        return 1, None, str(exc)
    except LinemendError as exc:
        return 1, None, str(exc)
    except KeyboardInterrupt:
        return 2, None, "Cleanup interrupted by user."
    except Exception as exc:  # pragma: no cover - unexpected host failures
        error_message = (
            f"{exc}\n"
            "An unexpected error occurred. Please rerun with --debug for more details."
        )
        return 1, None, error_message

    if summary.cancelled:
        return 2, summary, "Cleanup was cancelled before it finished."
    if summary.errors:
        return 1, summary, summary.errors[0]
    return 0, summary, None


def print_summary(summary: CleanupSummary) -> None:
    """Output a friendly report once processing completes."""

    print("\nScan complete." if not summary.processing else "\nCleanup complete.")
    print(f"  Input file:      {summary.input_path}")
    if summary.saved:
        print(f"  Output file:     {summary.output_path}")
    print(f"  Text blocks:     {summary.total_blocks}")
    if summary.analysis:
        print(
            f"  Flagged:         {summary.flagged_blocks} "
            f"({summary.skipped_blocks} skipped)"
        )
        for label, count in sorted(summary.skip_breakdown.items()):
            print(f"    - {label}: {count}")
        for result in summary.analysis:
            if not result.issues:
                continue
            kinds = ", ".join(issue.kind.value for issue in result.issues)
            print(f"  [{result.block.block_id}] {result.block.display_name}: {kinds}")
            print(f"      {result.estimated_changes}")
    if summary.statistics is not None:
        stats = summary.statistics
        print(f"  Processed:       {stats.successful} succeeded / {stats.total} total")
        for reason, count in sorted(stats.error_summary.items()):
            print(f"    - {reason}: {count}")
    print(f"  Elapsed time:    {summary.elapsed_seconds:.2f} seconds")
    if summary.warnings:
        print("  Notes:")
        for message in summary.warnings:
            print(f"    - {message}")


def check_selection_flags(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    """Reject manual rewrite flags that have no block selection to act on."""

    manual = (
        args.remove_breaks
        or args.convert_soft_breaks
        or args.normalize_spaces
        or args.auto_height
    )
    if manual and not args.select:
        parser.error(
            "--remove-breaks/--convert-soft-breaks/--normalize-spaces/--auto-height "
            "require --select"
        )
    if args.select and args.apply:
        parser.error("--apply and --select cannot be combined")


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        settings = get_settings()
    except ConfigurationError as exc:
        print(exc)
        return 1

    if args.debug or settings.LINEMEND_DEBUG:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(name)s %(levelname)s: %(message)s",
            stream=sys.stderr,
        )

    check_selection_flags(parser, args)

    store = JsonConfigStore(store_path(settings))
    try:
        config = apply_overrides(
            load_processing_config(store, default_processing_config(settings)), args
        )
    except ConfigurationError as exc:
        print(exc)
        return 1

    if args.save_config:
        try:
            save_processing_config(store, config)
        except OSError as exc:
            print(f"Settings could not be saved: {exc}")

    exit_code, summary, message = execute_cleanup(
        input_file=args.input_file,
        output_file=args.output,
        config=config,
        fonts=available_fonts(settings),
        store=store if args.save_config else None,
        apply=args.apply,
        selected_ids=args.select,
        options=options_from_args(args),
        force_overwrite=args.force,
        verbose=args.verbose,
    )

    if message:
        print(message)
    if summary:
        print_summary(summary)
    return exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
