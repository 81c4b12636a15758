"""VERISM CLI — Command-line interface for the VERISM compiler.

Commands:
  verism compile <file>    — Generate relations, tokens and lemma contracts
  verism check <file>      — Validate a specification, report every error (JSON)
  verism ir <file>         — Emit the classified state machine (JSON)
  verism smt <file>        — Export relations, contracts and lemmas as SMT-LIB2
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import Optional

from verism import __version__
from verism.config import VerismConfig, load_config
from verism.errors import CompileError
from verism.parser import parse
from verism.pipeline import compile_sm, compile_source, check_source
from verism.printer import render_module
from verism.spec_parser import parse_program
from verism.z3_adapter import Z3Adapter

logger = logging.getLogger("verism")


def _read_source(path: str) -> Optional[str]:
    if not os.path.exists(path):
        print(json.dumps({"error": f"File not found: {path}"}))
        return None
    with open(path, "r") as f:
        return f.read()


def _effective_config(args: argparse.Namespace) -> VerismConfig:
    """File configuration with command-line flags applied on top."""
    config = load_config(getattr(args, "config", None), start_dir=os.path.dirname(os.path.abspath(args.file)))
    if getattr(args, "concurrent", False):
        config.concurrent = True
    if getattr(args, "collect_errors", False):
        config.collect_errors = True
    if getattr(args, "format", None):
        config.format = args.format
    if getattr(args, "verbose", 0):
        config.log_level = "debug" if args.verbose > 1 else "info"
    return config


def _write_output(args: argparse.Namespace, output: str, machines: list[str]) -> None:
    if args.output:
        with open(args.output, "w") as f:
            f.write(output)
        print(json.dumps({"status": "ok", "output": args.output, "machines": machines}))
    else:
        sys.stdout.write(output)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    logger.setLevel(getattr(logging, level.upper(), logging.WARNING))


def cmd_compile(args: argparse.Namespace) -> int:
    """Compile a specification and print the generated declarations."""
    source = _read_source(args.file)
    if source is None:
        return 1
    config = _effective_config(args)
    _configure_logging(config.log_level)

    try:
        modules = compile_source(
            source,
            filename=args.file,
            concurrent=config.concurrent,
            collect_errors=config.collect_errors,
        )
    except CompileError as e:
        print(e.to_json())
        return 1

    if config.format == "json":
        output = json.dumps([m.to_dict() for m in modules], indent=2) + "\n"
    else:
        output = "\n".join(render_module(m) for m in modules)

    _write_output(args, output, [m.machine for m in modules])
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    """Validate a specification; every error is reported."""
    source = _read_source(args.file)
    if source is None:
        return 1
    config = _effective_config(args)
    _configure_logging(config.log_level)

    errors = check_source(source, filename=args.file, concurrent=config.concurrent)
    if errors:
        print(json.dumps({"status": "error", "errors": [e.to_dict() for e in errors]}, indent=2))
        return 1
    print(json.dumps({"status": "ok", "file": args.file}))
    return 0


def cmd_ir(args: argparse.Namespace) -> int:
    """Emit the classified state machines as JSON."""
    source = _read_source(args.file)
    if source is None:
        return 1
    config = _effective_config(args)
    _configure_logging(config.log_level)

    try:
        program = parse(source, filename=args.file)
        sms = parse_program(program, collect_errors=config.collect_errors)
    except CompileError as e:
        print(e.to_json())
        return 1

    print(json.dumps([sm.to_dict() for sm in sms], indent=2))
    return 0


def cmd_smt(args: argparse.Namespace) -> int:
    """Export every generated declaration as SMT-LIB2 queries, without solving.

    Relations, safety, strong and enabled predicates and exchange contracts
    are asserted as they are. Lemma obligations (requires ==> ensures) are
    negated, so an unsat answer proves the lemma.
    """
    source = _read_source(args.file)
    if source is None:
        return 1
    config = _effective_config(args)
    _configure_logging(config.log_level)

    try:
        program = parse(source, filename=args.file)
        sms = parse_program(program, collect_errors=config.collect_errors)
        bundles = [
            Z3Adapter(compile_sm(sm, config.concurrent, config.collect_errors), sm).to_smtlib2_bundle(args.file)
            for sm in sms
        ]
    except CompileError as e:
        print(e.to_json())
        return 1

    _write_output(args, "\n".join(bundles), [sm.name for sm in sms])
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="verism",
        description="VERISM — state-machine specification compiler",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("file", help="State-machine source file")
    common.add_argument("--config", help="Configuration file (default: nearest .verismrc.*)")
    common.add_argument("-v", "--verbose", action="count", default=0, help="Log progress (-vv for debug)")
    common.add_argument("--collect-errors", action="store_true", dest="collect_errors",
                        help="Report every error instead of stopping at the first")

    # compile
    p_compile = subparsers.add_parser("compile", parents=[common], help="Generate verification artifacts")
    p_compile.add_argument("--concurrent", action="store_true", help="Emit resource tokens and exchange operations")
    p_compile.add_argument("--format", choices=["text", "json"], help="Output format (default: text)")
    p_compile.add_argument("-o", "--output", help="Write output to a file")
    p_compile.set_defaults(func=cmd_compile)

    # check
    p_check = subparsers.add_parser("check", parents=[common], help="Validate a specification")
    p_check.add_argument("--concurrent", action="store_true", help="Also validate token generation")
    p_check.set_defaults(func=cmd_check)

    # ir
    p_ir = subparsers.add_parser("ir", parents=[common], help="Emit the classified state machine (JSON)")
    p_ir.set_defaults(func=cmd_ir)

    # smt
    p_smt = subparsers.add_parser("smt", parents=[common], help="Export verification queries as SMT-LIB2")
    p_smt.add_argument("--concurrent", action="store_true", help="Include exchange operation contracts")
    p_smt.add_argument("-o", "--output", help="Write output to a file")
    p_smt.set_defaults(func=cmd_smt)

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
