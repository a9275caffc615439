# main.py
"""CLI entry point for the visual bible extraction engine."""

from __future__ import annotations

import argparse

from orchestration.cli_runner import RunOptions, run


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Extract a visual bible (characters and scenes) from a long text."
    )
    parser.add_argument("text_file", nargs="?", default=None, help="Path to the source text")
    parser.add_argument("--prompt-file", default=None, help="Custom extraction prompt")
    parser.add_argument(
        "--enrichment-prompt-file", default=None, help="Custom enrichment prompt"
    )
    parser.add_argument(
        "--pace-ms", type=int, default=None, help="Minimum milliseconds between requests"
    )
    parser.add_argument(
        "--chunk-size", type=int, default=None, help="Maximum characters per chunk"
    )
    parser.add_argument("--output-dir", default=None, help="Directory for output files")
    parser.add_argument(
        "--enrich-only",
        default=None,
        metavar="BIBLE_JSON",
        help="Re-run only the enrichment pass on a saved visual bible",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override AGENT_LOG_LEVEL for this run",
    )
    return parser


def main() -> None:
    """Parse command-line arguments and start the run."""
    parser = build_parser()
    args = parser.parse_args()
    if not args.text_file and not args.enrich_only:
        parser.error("text_file is required unless --enrich-only is given")
    run(RunOptions(**vars(args)))


if __name__ == "__main__":
    main()
