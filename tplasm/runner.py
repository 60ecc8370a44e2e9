"""Child-process entry point that runs a compiled template and prints its output as JSON.

Usage:
  python -m tplasm.runner -l lib.tpc -l main.tpc -n app.main -c Template [-b DIR]
"""

from __future__ import annotations

import argparse
import contextlib
import io
import json
import os
import sys
import traceback
from pathlib import Path
from typing import List, Optional

from . import csasm
from .executor import TemplateExecutor


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a compiled template unit")
    parser.add_argument("-l", dest="binaries", action="append", default=[], help="Compiled binary to load, in order")
    parser.add_argument("-n", dest="namespace", required=True, help="Namespace of the runnable unit")
    parser.add_argument("-c", dest="classname", required=True, help="Class name of the runnable unit")
    parser.add_argument("-b", dest="base_path", default="", help="Base path for relative binaries")
    parser.add_argument("-r", dest="references", action="append", default=[], help="Referenced module")
    parser.add_argument("-a", dest="assemblies", action="append", default=[], help="Python file to load as a module")
    parser.add_argument("-p", dest="packages", action="append", default=[], help="Resolved package module path")
    parser.add_argument("--beautify", action="store_true", help="Apply the csasm beautifier before printing")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    base_path = Path(os.path.abspath(args.base_path or "."))
    try:
        executor = TemplateExecutor(
            references=args.references,
            assembly_filenames=args.assemblies,
            packages=args.packages,
        )
        binaries = [(base_path / name).read_bytes() for name in args.binaries]
        # template prints must not corrupt the JSON written to stdout
        with contextlib.redirect_stdout(io.StringIO()):
            result = executor.run(binaries, f"{args.namespace}.{args.classname}")
        if args.beautify:
            result = csasm.beautify(result)
    except Exception as exc:
        print(exc, file=sys.stderr)
        traceback.print_exc(file=sys.stderr)
        return 1
    print(json.dumps(result.to_json()))
    return 0


if __name__ == "__main__":
    sys.exit(main())
