"""tplasm CLI entry point.

Builds a template file and writes the final assembly:

  tplasm main.tpl -o main.asm
  tplasm main.tpl --rebuild --show-map -v
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import traceback
from pathlib import Path
from typing import List, Optional

from tabulate import tabulate

from . import __version__
from .build import MacroAssembler, ProcessResult
from .errors import ImportNotFoundError, TemplateCompilationError, TemplateError, TemplateSyntaxError
from .options import DEFAULT_TIMEOUT, TemplateOptions
from .sourcemap import SourceMap

LOG = logging.getLogger("tplasm.cli")
LOG_ENV = "TPLASM_LOG"


def _select_symbol(preferred: str, fallback: str) -> str:
    """Return preferred symbol when it can be encoded, otherwise fallback."""
    for stream in (sys.stdout, sys.stderr):
        encoding = getattr(stream, "encoding", None)
        if not encoding:
            continue
        try:
            preferred.encode(encoding)
        except UnicodeEncodeError:
            return fallback
    return preferred


SUCCESS_MARK = _select_symbol("✓", "[OK]")
FAIL_MARK = _select_symbol("✗", "[ERROR]")


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
    )


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Template macro assembler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("input", help="Template file to build")
    parser.add_argument("-o", "--output", metavar="FILE", help="Write the assembly here (default: stdout)")
    parser.add_argument("--bin", dest="bin_folder", default="bin", metavar="DIR", help="Folder for compiled binaries")
    parser.add_argument("--base-path", metavar="DIR", help="Base search path (default: current directory)")
    parser.add_argument("--lib-path", metavar="DIR", help="Library search root (default: $TPLASM_LIB_PATH or BASE/lib)")
    parser.add_argument("--rebuild", action="store_true", help="Rebuild every unit even when cached")
    parser.add_argument("--save-generated", action="store_true", help="Write the final output beside the binary")
    parser.add_argument("--save-pre-generated", action="store_true", help="Write the generated Python program beside the binary")
    parser.add_argument("--isolated", action="store_true", help="Run the template in a child interpreter")
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT, help="Timeout in seconds for child processes")
    parser.add_argument("--emit-map", metavar="FILE", help="Write the composed source map as JSON")
    parser.add_argument("--show-map", action="store_true", help="Print the composed source map as a table")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log build progress and show tracebacks")
    parser.add_argument(
        "--log-level",
        default=os.environ.get(LOG_ENV, "WARNING"),
        help="Logging level (default WARNING, or $TPLASM_LOG)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def options_from_args(args: argparse.Namespace) -> TemplateOptions:
    base_path = Path(args.base_path) if args.base_path else Path.cwd()
    return TemplateOptions(
        base_path=base_path,
        bin_folder=args.bin_folder,
        rebuild=args.rebuild,
        save_generated_template=args.save_generated,
        save_pre_generated_template=args.save_pre_generated,
        library_path=Path(args.lib_path) if args.lib_path else None,
        isolated=args.isolated,
        timeout=args.timeout,
    )


def format_error(exc: TemplateError) -> str:
    """Human readable description of a build failure."""
    if isinstance(exc, TemplateCompilationError):
        rows = [
            (error.filename or "<unknown>", error.line if error.line >= 0 else "?", error.message)
            for error in exc.errors
        ]
        return "Compilation failed\n" + tabulate(rows, headers=["file", "line", "error"], tablefmt="github")
    if isinstance(exc, ImportNotFoundError):
        rows = [(path,) for path in exc.searched]
        return f"{exc}\n" + tabulate(rows, headers=["searched"], tablefmt="github")
    if isinstance(exc, TemplateSyntaxError) and exc.line:
        return f"{exc}\n  > {exc.line.strip()}"
    return str(exc)


def _write_output(result: ProcessResult, output: Optional[str]) -> None:
    if output:
        Path(output).write_text(result.code, encoding="utf-8")
    else:
        sys.stdout.write(result.code)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    _configure_logging("INFO" if args.verbose else args.log_level)

    try:
        assembler = MacroAssembler(options_from_args(args))
        result = assembler.process_file(args.input)
        _write_output(result, args.output)

        source_map = SourceMap.from_unit(result)
        if args.emit_map:
            source_map.save(args.emit_map)
            LOG.info("Source map written to %s", args.emit_map)
        if args.show_map:
            print(tabulate(source_map.rows(), headers=["output", "file", "line"], tablefmt="github"), file=sys.stderr)

        if args.output:
            rebuilt = len(assembler.state.rebuilt) if assembler.state else 0
            print(f"{SUCCESS_MARK} Built {args.output} ({rebuilt} unit(s) compiled)", file=sys.stderr)
    except TemplateError as exc:
        print(f"{FAIL_MARK} Build failed: {format_error(exc)}", file=sys.stderr)
        if args.verbose:
            traceback.print_exc()
        return 1
    except KeyboardInterrupt:
        print(f"\n{FAIL_MARK} Build interrupted", file=sys.stderr)
        return 130
    except Exception as exc:
        print(f"{FAIL_MARK} Unexpected error: {exc}", file=sys.stderr)
        if args.verbose:
            traceback.print_exc()
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
