#!/usr/bin/env python3
"""
zipshrink — In-place ZIP archive recompressor

Command-line interface.

Usage:
    zipshrink shrink <file>...        Shrink archives in place
    zipshrink shrink <file> -o <out>  Shrink one archive to a new file
    zipshrink list <file>             Show central directory entries
"""

from __future__ import annotations

import argparse
import sys
import textwrap
from pathlib import Path

# Ensure zipshrink package is importable
zipshrink_root = Path(__file__).resolve().parent.parent
if str(zipshrink_root) not in sys.path:
    sys.path.insert(0, str(zipshrink_root))

from zipshrink import Shrinker, ShrinkOptions, inspect_archive
from zipshrink.codecs import ENCODERS
from zipshrink.records import FLAG_DATA_DESCRIPTOR, METHOD_DEFLATED, METHOD_STORED, Limits
from zipshrink.result import ShrinkStatus


# ============================================================================
# Formatting helpers
# ============================================================================

class C:
    """ANSI colors."""
    BOLD = "\033[1m"
    DIM = "\033[2m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    CYAN = "\033[36m"
    RESET = "\033[0m"

    @staticmethod
    def off():
        C.BOLD = C.DIM = C.RED = C.GREEN = C.YELLOW = C.CYAN = C.RESET = ""


def header(text: str) -> str:
    return f"\n{C.BOLD}{C.CYAN}{'─' * 60}{C.RESET}\n{C.BOLD}  {text}{C.RESET}\n{C.BOLD}{C.CYAN}{'─' * 60}{C.RESET}"


def ok(text: str) -> str:
    return f"  {C.GREEN}✓{C.RESET} {text}"


def warn(text: str) -> str:
    return f"  {C.YELLOW}⚠{C.RESET} {text}"


def fail(text: str) -> str:
    return f"  {C.RED}✗{C.RESET} {text}"


def dim(text: str) -> str:
    return f"{C.DIM}{text}{C.RESET}"


def bar(ratio: float, width: int = 30) -> str:
    filled = int(min(ratio, 1.0) * width)
    empty = width - filled
    if ratio < 0.8:
        color = C.GREEN
    elif ratio < 0.98:
        color = C.YELLOW
    else:
        color = C.RED
    return f"{color}{'█' * filled}{'░' * empty}{C.RESET} {ratio:.1%}"


def filesize(n: int) -> str:
    if n > 1_000_000:
        return f"{n/1_000_000:.1f} MB"
    if n > 1_000:
        return f"{n/1_000:.1f} KB"
    return f"{n} B"


METHOD_NAMES = {METHOD_STORED: "stored", METHOD_DEFLATED: "deflate"}


def method_name(method: int) -> str:
    return METHOD_NAMES.get(method, f"method {method}")


# ============================================================================
# Commands
# ============================================================================

def cmd_shrink(args):
    """Shrink one or more files."""
    if args.output and len(args.files) > 1:
        print(fail("--output takes a single input file"))
        sys.exit(2)

    options = ShrinkOptions(
        max_depth=args.max_depth,
        fast=args.fast,
        iterations=args.iterations,
        encoder=args.encoder,
    )

    def on_entry(name: str, depth: int) -> None:
        if not args.quiet:
            print(f"  {'  ' * depth}{dim(name)}")

    shrinker = Shrinker(options, on_entry=on_entry)
    total_before = total_after = 0

    for path in args.files:
        data = Path(path).read_bytes()
        print(header(f"SHRINK: {path}"))
        print(f"  {C.DIM}Size: {filesize(len(data))}  |  Encoder: {shrinker.deflater.name}"
              f"{'  |  fast' if options.fast else ''}{C.RESET}")

        out = shrinker.shrink_bytes(data, name=Path(path).name)
        result = shrinker.top_result

        if result is None:
            print(warn("Not a ZIP archive, left unchanged"))
        elif not result.success:
            print(warn(f"{result.status.value}: {result.diagnostics[0] if result.diagnostics else ''}"))
        else:
            kept = len(result.written)
            dropped = len(result.entries) - kept
            print(f"\n  Entries:  {kept} written" + (f", {C.RED}{dropped} dropped{C.RESET}" if dropped else ""))
            if result.status is ShrinkStatus.PARTIAL:
                print(warn("Archive truncated, entries after the damage were not written"))

        if args.verbose:
            for r in shrinker.results:
                for d in r.diagnostics:
                    where = f"{r.name}: " if r.depth > 1 else ""
                    print(warn(f"{where}{d}"))

        total_before += len(data)
        total_after += min(len(out), len(data))

        if len(out) < len(data):
            target = Path(args.output) if args.output else Path(path)
            target.write_bytes(out)
            print(ok(f"{filesize(len(data))} → {filesize(len(out))}  "
                     f"(saved {filesize(len(data) - len(out))})  → {target}"))
        else:
            if args.output:
                Path(args.output).write_bytes(data)
            print(dim("  No reduction"))
        print(f"  Ratio:    {bar(len(out) / len(data) if data else 1.0)}")

    if len(args.files) > 1:
        print(f"\n  {C.BOLD}Total:{C.RESET} {filesize(total_before)} → {filesize(total_after)}")


def cmd_list(args):
    """List central directory entries."""
    data = Path(args.file).read_bytes()
    layout, directory, result = inspect_archive(data, name=Path(args.file).name)

    print(header(f"LIST: {args.file}"))
    print(f"  {C.DIM}Size: {filesize(len(data))}{C.RESET}")

    if layout is None:
        print(fail(f"Not a usable ZIP archive: {result.diagnostics[0]}"))
        return

    if layout.zip_offset:
        print(f"  Prefix:   {filesize(layout.zip_offset)} before first local header")
    if directory.base_offset:
        print(f"  {C.YELLOW}Offsets are relative to the first local header "
              f"(base {directory.base_offset:#x}){C.RESET}")
    if layout.eocd.comment_len:
        print(f"  Comment:  {layout.eocd.comment_len} bytes")
    print(f"  Entries:  {len(directory)} of {layout.eocd.num_records_total} declared\n")

    for entry in directory.entries:
        flags = []
        if entry.is_encrypted:
            flags.append("encrypted")
        if entry.flag & FLAG_DATA_DESCRIPTOR:
            flags.append("descriptor")
        flag_str = f"  {C.YELLOW}[{', '.join(flags)}]{C.RESET}" if flags else ""
        print(f"    {C.CYAN}{entry.local_header_offset:#010x}{C.RESET}  "
              f"{method_name(entry.compression_method):9s} "
              f"{entry.compressed_size:>10d} / {entry.uncompressed_size:<10d} "
              f"{entry.name}{flag_str}")

    for d in result.diagnostics:
        print(warn(str(d)))


# ============================================================================
# CLI setup
# ============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="zipshrink",
        description="zipshrink — In-place ZIP archive recompressor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""
        examples:
          zipshrink shrink bundle.jar
          zipshrink shrink report.docx -o smaller.docx -i 50
          zipshrink shrink *.zip --fast -d 1
          zipshrink list installer.exe
        """),
    )
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")

    sub = parser.add_subparsers(dest="command", help="Command to run")

    # shrink
    p = sub.add_parser("shrink", help="Shrink archives in place")
    p.add_argument("files", nargs="+", help="Files to shrink")
    p.add_argument("-o", "--output", help="Write result here instead of in place")
    p.add_argument("-d", "--max-depth", type=int, default=Limits.DEFAULT_MAX_DEPTH,
                   help=f"Max nesting depth to shrink (default: {Limits.DEFAULT_MAX_DEPTH})")
    p.add_argument("-f", "--fast", action="store_true", help="Fast mode, no recompression")
    p.add_argument("-i", "--iterations", type=int, default=Limits.DEFAULT_ITERATIONS,
                   help=f"Zopfli iterations (default: {Limits.DEFAULT_ITERATIONS})")
    p.add_argument("--encoder", default="zopfli", choices=list(ENCODERS), help="Deflate encoder")
    p.add_argument("-q", "--quiet", action="store_true", help="Don't print entry names")
    p.add_argument("-v", "--verbose", action="store_true", help="Print diagnostics")

    # list
    p = sub.add_parser("list", aliases=["ls"], help="Show central directory entries")
    p.add_argument("file", help="Archive to list")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.no_color:
        C.off()

    if not args.command:
        parser.print_help()
        return

    commands = {
        "shrink": cmd_shrink,
        "list": cmd_list, "ls": cmd_list,
    }

    handler = commands.get(args.command)
    if handler:
        try:
            handler(args)
        except FileNotFoundError as e:
            print(fail(f"File not found: {e}"))
            sys.exit(1)
        except ValueError as e:
            print(fail(f"Error: {e}"))
            sys.exit(2)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
