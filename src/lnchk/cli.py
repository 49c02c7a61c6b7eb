"""
Command-line interface for lnchk.
"""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from lnchk.core import DEFAULT_USER_AGENT, UNKNOWN_STATUS, Link, LinkCheckError, Summary, check_page


class UsageError(ValueError):
    """Wrong number of command-line targets."""


def validate_args(targets: Sequence[str]) -> None:
    """Ensure exactly one target URL was given."""
    given = len(targets)

    if given == 0:
        raise UsageError("Missing URL")

    if given > 1:
        raise UsageError(f"Got {given} Arguments, expected 1")


def print_link_line(link: Link) -> None:
    """Print single probe result line."""
    line = f"\n  → {link.response_code} {link.url} ({link.latency:.1f} ms)"
    if link.error:
        line += f" {link.error}"
    sys.stderr.write(line)
    sys.stderr.flush()


def print_summary(summary: Summary) -> None:
    """Print check summary to stderr."""
    sys.stderr.write("\n\n" + "=" * 50 + "\n")
    sys.stderr.write("LINK CHECK SUMMARY\n")
    sys.stderr.write("=" * 50 + "\n\n")

    sys.stderr.write(f"Page:                   {summary.url} ({summary.response_code})\n")
    sys.stderr.write(f"Total links checked:    {summary.total_links}\n")
    sys.stderr.write(f"Average latency:        {summary.avg_latency:.1f} ms\n\n")

    if summary.responses_per_code:
        sys.stderr.write("Responses by code:\n")
        for code, count in sorted(summary.responses_per_code.items()):
            label = "No response" if code == UNKNOWN_STATUS else f"HTTP {code}"
            sys.stderr.write(f"  {label}: {count}\n")
    else:
        sys.stderr.write("No links found.\n")

    sys.stderr.write("\n")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lnchk",
        description="Check every link on a web page and output a JSON summary.",
    )
    parser.add_argument("url", nargs="*", help="Page URL (e.g. https://example.com)")
    parser.add_argument("--timeout", type=float, default=None, help="Request timeout in seconds (default: none)")
    parser.add_argument("--workers", type=int, default=None, help="Maximum concurrent probes (default: one per link)")
    parser.add_argument("--user-agent", default=DEFAULT_USER_AGENT, help="User-Agent header")
    parser.add_argument("--out", default="-", help="Output file path, or '-' for stdout (default: stdout)")
    parser.add_argument("--pretty", action="store_true", help="Pretty-print JSON")
    parser.add_argument("--verbose", action="store_true", help="Show progress and summary on stderr")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the lnchk CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        validate_args(args.url)
    except UsageError as e:
        sys.stderr.write(f"Error: {e}\n\n")
        parser.print_usage(sys.stderr)
        return 1

    if args.workers is not None and args.workers < 1:
        parser.error("--workers must be at least 1")

    page_url = args.url[0]
    if args.verbose:
        sys.stderr.write(f"Checking links on: {page_url}\n")

    try:
        summary = check_page(
            page_url,
            timeout=args.timeout,
            max_workers=args.workers,
            user_agent=args.user_agent,
            on_link=print_link_line if args.verbose else None,
        )
    except LinkCheckError as e:
        sys.stderr.write(f"Error: {e}\n")
        return 1

    if args.verbose:
        print_summary(summary)

    json_text = json.dumps(summary.to_dict(), ensure_ascii=False, indent=2 if args.pretty else None)

    if args.out == "-":
        print(json_text)
    else:
        output_path = Path(args.out)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(json_text, encoding="utf-8")
        if args.verbose:
            sys.stderr.write(f"Results written to: {output_path}\n")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
