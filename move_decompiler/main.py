"""Command line entry point for the decompiler."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Sequence

from .config import load_config
from .exceptions import LoadError
from .io.loader import load_module
from .lifter.debug_dump import DecompilerDebugDump
from .pipeline import decompile_module
from .utils import setup_logging, write_text

LOG = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FUNCTION_FAILED = 1
EXIT_LOAD_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="move-decompile",
        description="Decompile a compiled Move module into Move-like source",
    )
    parser.add_argument(
        "--bytecode-file",
        required=True,
        type=Path,
        help="JSON rendering of the compiled module to decompile",
    )
    parser.add_argument("-o", "--out", "--output", dest="output", type=Path, help="output file path")
    parser.add_argument("--jobs", type=int, help="number of worker threads (default 1)")
    parser.add_argument("--config", type=Path, help="JSON configuration file")
    parser.add_argument("--debug-dir", type=Path, help="write CFG DOT files and a trace log here")
    parser.add_argument("--report", type=Path, help="write a JSON run report to this path")
    parser.add_argument(
        "--emit-lints",
        action="store_const",
        const=True,
        help="print lints as comments inside function bodies",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config(args.config).merged(
        jobs=args.jobs,
        debug_dir=str(args.debug_dir) if args.debug_dir else None,
        log_level="DEBUG" if args.verbose else None,
        emit_lints_as_comments=args.emit_lints,
    )
    setup_logging(str(config.log_level))

    try:
        module = load_module(args.bytecode_file)
    except LoadError as exc:
        LOG.error("Cannot load %s: %s", args.bytecode_file, exc)
        return EXIT_LOAD_ERROR

    dump = DecompilerDebugDump(Path(config.debug_dir)) if config.debug_dir else None
    try:
        result = decompile_module(
            module,
            jobs=max(1, config.jobs),
            debug_dump=dump,
            emit_lints=config.emit_lints_as_comments,
        )
    finally:
        if dump is not None:
            dump.close()

    if args.output:
        write_text(args.output, result.text)
        LOG.info("Wrote %s", args.output)
    else:
        sys.stdout.write(result.text)

    report = result.report(module)
    if args.report:
        write_text(args.report, json.dumps(report.to_json(), indent=2, sort_keys=True) + "\n")
    LOG.debug("%s", report.to_text())

    for name, messages in result.failures.items():
        for message in messages:
            LOG.warning("%s: %s", name, message)
    return EXIT_OK if result.ok else EXIT_FUNCTION_FAILED


if __name__ == "__main__":  # pragma: no cover - CLI wrapper
    raise SystemExit(main())
