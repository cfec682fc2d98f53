"""revlang CLI: command-line interface for the reversible interpreter.

Commands:
  revlang check <file.rev>                    Parse and validate every procedure
  revlang run <file.rev> <proc> x=1 arr=1,2   Run a procedure forward
  revlang run --backward <file.rev> <proc> .. Run it backward
  revlang invert <file.rev> [proc]            Print the inverse procedure(s)
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import Optional, Union

from revlang import __version__
from revlang.compiler.parser import parse
from revlang.config import RevConfig, load_config
from revlang.ast_nodes import Program
from revlang.errors import RevlangError
from revlang.formatters import format_procedure, render_error
from revlang.inversion import invert_procedure
from revlang.registry import ProcedureRegistry


def _print_error(exc: RevlangError, output_format: str) -> None:
    if output_format == "pretty":
        for error in exc.errors:
            print(render_error(error))
    else:
        print(exc.to_json())


def _load_program(path: str, output_format: str) -> Optional[Program]:
    if not os.path.exists(path):
        print(json.dumps({"error": f"File not found: {path}"}))
        return None
    with open(path, "r") as f:
        source = f.read()
    try:
        return parse(source, filename=path)
    except RevlangError as e:
        _print_error(e, output_format)
        return None


def _config(args: argparse.Namespace) -> RevConfig:
    config = load_config(args.config)
    if getattr(args, "verify", False):
        config.verify_assertions = True
    if getattr(args, "int_type", None):
        config.int_type = args.int_type
        config.validate()
    return config


def parse_value(text: str) -> Union[int, list[int]]:
    """``5`` is a scalar; ``1,2,3``, ``5,`` and ``[1, 2]`` are arrays."""
    text = text.strip()
    if text.startswith("[") and text.endswith("]"):
        inner = text[1:-1].strip()
        return [int(v) for v in inner.split(",") if v.strip()] if inner else []
    if "," in text:
        return [int(v) for v in text.split(",") if v.strip()]
    return int(text)


def parse_assignments(items: list[str]) -> dict[str, Union[int, list[int]]]:
    values: dict[str, Union[int, list[int]]] = {}
    for item in items:
        name, sep, value = item.partition("=")
        if not sep or not name.strip():
            raise ValueError(f"Expected name=value, got '{item}'")
        values[name.strip()] = parse_value(value)
    return values


def cmd_check(args: argparse.Namespace) -> int:
    """Parse and register every procedure of a file."""
    program = _load_program(args.file, args.format)
    if program is None:
        return 1

    registry = ProcedureRegistry(_config(args))
    try:
        names = registry.register_program(program)
    except RevlangError as e:
        _print_error(e, args.format)
        return 1

    print(json.dumps({"status": "ok", "procedures": names}, indent=2))
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    """Run one procedure forward or backward over the given values."""
    program = _load_program(args.file, args.format)
    if program is None:
        return 1

    registry = ProcedureRegistry(_config(args))
    try:
        registry.register_program(program)
        values = parse_assignments(args.values)
        if args.backward:
            result = registry.backward(args.procedure, values)
        else:
            result = registry.forward(args.procedure, values)
    except RevlangError as e:
        _print_error(e, args.format)
        return 1
    except (KeyError, ValueError) as e:
        message = e.args[0] if e.args else str(e)
        print(json.dumps({"error": message}))
        return 1

    print(json.dumps(result, indent=2))
    return 0


def cmd_invert(args: argparse.Namespace) -> int:
    """Print the inverse of one procedure, or of every procedure."""
    program = _load_program(args.file, args.format)
    if program is None:
        return 1

    try:
        procs = [program.get(args.procedure)] if args.procedure else program.procedures
    except KeyError as e:
        print(json.dumps({"error": e.args[0]}))
        return 1

    print("\n".join(format_procedure(invert_procedure(p)) for p in procs), end="")
    return 0


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        prog="revlang",
        description="revlang: reversible imperative mini-language",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", dest="log_level", default="warning",
                        choices=["debug", "info", "warning", "error"],
                        help="Logging verbosity on stderr (default: warning)")
    parser.add_argument("--config", default=None,
                        help="Config file (default: nearest .revlangrc.yml)")
    parser.add_argument("--format", choices=["json", "pretty"], default="json",
                        help="Error output format (default: json)")

    subparsers = parser.add_subparsers(dest="command")

    # check
    p_check = subparsers.add_parser("check", help="Validate every procedure of a file")
    p_check.add_argument("file", help="revlang source file (.rev)")
    p_check.add_argument("--verify", action="store_true",
                         help="Reject provably failing assertions with Z3")
    p_check.add_argument("--int-type", dest="int_type", help="Slot width, e.g. i32 or u64")
    p_check.set_defaults(func=cmd_check)

    # run
    p_run = subparsers.add_parser("run", help="Run a procedure")
    p_run.add_argument("file", help="revlang source file (.rev)")
    p_run.add_argument("procedure", help="Procedure to run")
    p_run.add_argument("values", nargs="*", help="Parameter values: name=5 or name=1,2,3")
    p_run.add_argument("--backward", action="store_true", help="Run backward")
    p_run.add_argument("--verify", action="store_true",
                       help="Reject provably failing assertions with Z3")
    p_run.add_argument("--int-type", dest="int_type", help="Slot width, e.g. i32 or u64")
    p_run.set_defaults(func=cmd_run)

    # invert
    p_invert = subparsers.add_parser("invert", help="Print inverse procedures")
    p_invert.add_argument("file", help="revlang source file (.rev)")
    p_invert.add_argument("procedure", nargs="?", default=None, help="Only this procedure")
    p_invert.set_defaults(func=cmd_invert)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if not args.command:
        parser.print_help()
        sys.exit(1)

    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
