"""
trackprobe - command-line track analysis

Estimates tempo, musical key and loudness for audio files, running
several files in parallel worker processes.

Example usage:
    trackprobe track.wav
    trackprobe --recursive --max-concurrent 4 music/
    trackprobe --output-file report.txt --output-json report.json music/
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional, Union

from trackprobe import __version__
from trackprobe.core.batch_processor import create_batch_processor
from trackprobe.core.models import AnalysisError, AnalysisResult
from trackprobe.core.result_writer import JSONResultWriter, TextResultWriter, format_result
from trackprobe.core.scheduler import create_analysis_queue
from trackprobe.utils.config import validate_queue_config, load_config
from trackprobe.utils.errors import ConfigurationError
from trackprobe.utils.logging import setup_logging_from_config


def print_outcome(done: int, total: int, file_path: Path, outcome: Union[AnalysisResult, AnalysisError]) -> None:
    """Print one finished file to the console."""
    print(f"[{done}/{total}] {file_path.name}")
    if isinstance(outcome, AnalysisError):
        print(f"  Error: {outcome.message}\n")
    else:
        print(format_result(file_path, outcome))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trackprobe",
        description="Estimate tempo, key and loudness of audio files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  trackprobe track.wav
  trackprobe --recursive music/
  trackprobe --max-concurrent 4 --output-json report.json a.wav b.flac
        """
    )
    parser.add_argument(
        "inputs",
        nargs="+",
        type=Path,
        help="Audio files or directories"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"trackprobe {__version__}"
    )
    parser.add_argument(
        "--recursive",
        "-r",
        action="store_true",
        help="Search directories recursively"
    )
    parser.add_argument(
        "--max-concurrent",
        type=int,
        default=None,
        help="Number of files analyzed in parallel (default from config)"
    )
    parser.add_argument(
        "--output-file",
        "-o",
        type=Path,
        default=None,
        help="Write a text report to this path"
    )
    parser.add_argument(
        "--output-json",
        type=Path,
        default=None,
        help="Write a JSON report to this path"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for trackprobe."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(str(args.config) if args.config else None)
        if args.max_concurrent is not None:
            config.setdefault("queue", {})["max_concurrent"] = args.max_concurrent
        validate_queue_config(config)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    setup_logging_from_config(config.get("logging", {}), verbose=args.verbose)

    queue = create_analysis_queue(config)
    try:
        processor = create_batch_processor(queue, config, progress_callback=print_outcome)
        batch_result = processor.process(args.inputs, recursive=args.recursive)
    except KeyboardInterrupt:
        print("\nInterrupted by user.", file=sys.stderr)
        queue.shutdown(wait=False)
        return 130
    else:
        queue.shutdown()

    if batch_result.total_files == 0:
        print("No audio files found.")
        return 1

    print("=" * 60)
    print("ANALYSIS COMPLETE")
    print("=" * 60)
    print(f"Total Files: {batch_result.total_files}")
    print(f"Successful: {batch_result.success_count}")
    print(f"Failed: {batch_result.failure_count}")
    print(f"Total Time: {batch_result.total_time:.2f}s")

    if batch_result.failed:
        print("\nFailed Files:")
        for path, error in batch_result.failed.items():
            print(f"  {path.name}: {error}")

    if args.output_file:
        TextResultWriter().write(batch_result.successful, args.output_file, batch_result.failed)
        print(f"\nText results saved to: {args.output_file}")
    if args.output_json:
        JSONResultWriter().write(batch_result.successful, args.output_json, batch_result.failed)
        print(f"JSON results saved to: {args.output_json}")

    return 0 if batch_result.failure_count == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
