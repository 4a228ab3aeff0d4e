#!/usr/bin/env python3
"""plonk_analyzer/main.py: CLI entry-point for the circuit analyzer.

Usage examples
--------------
    # Report gates that are never enabled by any region
    python -m plonk_analyzer analyze circuit.json --type unused-gates

    # Check uniqueness of the witness for one concrete public input
    python -m plonk_analyzer analyze circuit.json --type underconstrained \\
        --instance I-0-0=5

    # Sample up to 20 public inputs chosen by the solver
    python -m plonk_analyzer analyze circuit.json --type underconstrained \\
        --iterations 20

    # Print the SMT-LIB encoding of the circuit
    python -m plonk_analyzer encode circuit.json

    # List the instance cells that take a public value
    python -m plonk_analyzer instances circuit.json

Exit codes
----------
    0   Success (no findings).
    1   One or more findings were reported.
    2   Infrastructure failure (bad file, missing solver, encoding error).
    3   The circuit is underconstrained or overconstrained.

The module doubles as ``python -m plonk_analyzer`` via the companion
``plonk_analyzer/__main__.py`` which simply calls :func:`main`.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import textwrap
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, TextIO, Tuple

from . import __version__
from .analyzer import Analyzer
from .circuit_io import CircuitDescription, load_circuit
from .config import SOLVER_BACKENDS, AnalyzerConfig
from .errors import AnalyzerError
from .io_types import AnalyzerInput, AnalyzerOutput, AnalyzerType

_log = logging.getLogger("plonk_analyzer")

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_ERROR: int = 1
EXIT_INFRA: int = 2
EXIT_VIOLATION: int = 3


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the ``plonk_analyzer`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    root = logging.getLogger("plonk_analyzer")
    root.setLevel(level)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
                datefmt="%H:%M:%S",
            )
        )
        root.addHandler(handler)


def _open_output(dest: Optional[str]) -> TextIO:
    """Return a writable text stream.

    *dest* ``None`` or ``"-"`` → ``sys.stdout``; otherwise open the path
    for writing (creating parent directories as needed).
    """
    if dest is None or dest == "-":
        return sys.stdout
    p = Path(dest).expanduser().resolve()
    p.parent.mkdir(parents=True, exist_ok=True)
    return open(p, "w", encoding="utf-8")


def _instance_arg(raw: str) -> Tuple[str, int]:
    name, sep, value = raw.partition("=")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"expected NAME=VALUE, got {raw!r}")
    try:
        return name, int(value, 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"value of {name!r} is not an integer: {value!r}")


def _positive_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got {raw!r}")
    if value <= 0:
        raise argparse.ArgumentTypeError(f"must be positive, got {value}")
    return value


def _load_config(args: argparse.Namespace) -> AnalyzerConfig:
    config = AnalyzerConfig.from_file(args.config) if args.config else AnalyzerConfig()
    if getattr(args, "solver", None):
        config.solver = args.solver
    if getattr(args, "solver_path", None):
        config.solver_path = args.solver_path
    if getattr(args, "timeout", None) is not None:
        config.solver_timeout = args.timeout
    if getattr(args, "iterations", None) is not None:
        config.random_iterations = args.iterations
    if getattr(args, "dump_smt", None):
        config.smt_output = Path(args.dump_smt)
    if args.prime is not None:
        config.prime = args.prime
    return config


def _resolve_prime(args: argparse.Namespace, circuit: CircuitDescription,
                   config: AnalyzerConfig) -> int:
    """``--prime`` wins over the circuit's own prime, which wins over config."""
    if args.prime is not None:
        return args.prime
    if circuit.prime is not None:
        return circuit.prime
    return config.prime


def _input_provider(given: Mapping[str, int]):
    """Specific mode over *given*; unnamed instance cells default to 0."""

    def provide(instance_cols: Mapping[str, int]) -> AnalyzerInput:
        for name in given:
            if name not in instance_cols:
                _log.warning("--instance %s does not name an instance cell", name)
        values: Dict[str, int] = {}
        for name, default in instance_cols.items():
            if name not in given:
                _log.warning("no value given for instance %s; using %d", name, default)
            values[name] = given.get(name, default)
        for name, value in given.items():
            values.setdefault(name, value)
        return AnalyzerInput.specific(values)

    return provide


def _emit_output(output: AnalyzerOutput, fmt: str, stream: TextIO) -> None:
    if fmt == "json":
        stream.write(json.dumps(output.to_json(), indent=2) + "\n")
        return
    for finding in output.findings:
        stream.write(finding.to_gcc_format() + "\n")
    if output.counterexample is not None:
        first, second = output.counterexample
        stream.write("counterexample:\n")
        for name in sorted(set(first) | set(second)):
            stream.write(f"  {name}: {first.get(name)} / {second.get(name)}\n")
    stream.write(f"\n--- {output.output_status.value}, "
                 f"{len(output.findings)} finding(s) ---\n")


# ===========================================================================
# Sub-commands
# ===========================================================================

def cmd_analyze(args: argparse.Namespace) -> int:
    """Run one analysis on a circuit description."""
    try:
        circuit = load_circuit(args.circuit)
        config = _load_config(args)
    except AnalyzerError as exc:
        _log.error("%s", exc)
        return EXIT_INFRA
    config.prime = _resolve_prime(args, circuit, config)
    for warning in config.validate():
        _log.warning("config: %s", warning)
    if config.random_iterations <= 0:
        _log.error("config: random_iterations must be positive, got %d",
                   config.random_iterations)
        return EXIT_INFRA

    analyzer_type = AnalyzerType(args.type)
    provider = None
    if args.instance:
        provider = _input_provider(dict(args.instance))

    analyzer = Analyzer(circuit.cs, circuit.layout, config)
    try:
        output = analyzer.dispatch_analysis(
            analyzer_type,
            fixed=circuit.fixed,
            prime=config.prime,
            input_provider=provider,
        )
    except AnalyzerError as exc:
        _log.error("%s", exc)
        return EXIT_INFRA

    stream = _open_output(args.output)
    try:
        _emit_output(output, args.format, stream)
    finally:
        if stream is not sys.stdout:
            stream.close()

    if output.output_status.is_violation:
        return EXIT_VIOLATION
    return EXIT_ERROR if output.findings else EXIT_OK


def cmd_encode(args: argparse.Namespace) -> int:
    """Print the SMT-LIB encoding of a circuit."""
    try:
        circuit = load_circuit(args.circuit)
        config = _load_config(args)
        analyzer = Analyzer(circuit.cs, circuit.layout, config)
        printer = analyzer.build_encoding(circuit.fixed, _resolve_prime(args, circuit, config))
    except AnalyzerError as exc:
        _log.error("%s", exc)
        return EXIT_INFRA

    stream = _open_output(args.output)
    try:
        stream.write(printer.render())
    finally:
        if stream is not sys.stdout:
            stream.close()
    return EXIT_OK


def cmd_instances(args: argparse.Namespace) -> int:
    """List the instance cells of a circuit."""
    try:
        circuit = load_circuit(args.circuit)
    except AnalyzerError as exc:
        _log.error("%s", exc)
        return EXIT_INFRA

    names: List[str] = list(Analyzer(circuit.cs, circuit.layout).instance_columns())
    if args.format == "json":
        sys.stdout.write(json.dumps(names) + "\n")
    else:
        for name in names:
            sys.stdout.write(name + "\n")
    return EXIT_OK


# ===========================================================================
# Argument parser
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    """Construct the full CLI argument parser with subcommands."""

    parser = argparse.ArgumentParser(
        prog="plonk-analyzer",
        description=(
            "Static analysis of PLONK circuits: dead gates and columns,\n"
            "unconstrained cells, and SMT-based underconstraint detection."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              plonk-analyzer analyze circuit.json --type unused-gates
              plonk-analyzer analyze circuit.json --type underconstrained --instance I-0-0=5
              plonk-analyzer encode circuit.json -o circuit.smt2
        """),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug).",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        metavar="<command>",
    )

    def _add_circuit_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("circuit", metavar="CIRCUIT", help="Circuit description (JSON).")
        p.add_argument(
            "--config",
            default=None,
            metavar="FILE",
            help="JSON configuration file; flags override its values.",
        )
        p.add_argument(
            "--prime",
            type=int,
            default=None,
            metavar="P",
            help="Field order (default: the circuit's, else BN254).",
        )
        p.add_argument(
            "-o", "--output",
            default=None,
            metavar="FILE",
            help='Output file ("-" or omit for stdout).',
        )

    # --- analyze -----------------------------------------------------------
    p_analyze = subparsers.add_parser(
        "analyze",
        aliases=["analyse"],
        help="Run an analysis on a circuit description.",
    )
    _add_circuit_args(p_analyze)
    p_analyze.add_argument(
        "-t", "--type",
        choices=[t.value for t in AnalyzerType],
        required=True,
        help="Analysis to run.",
    )
    p_analyze.add_argument(
        "-f", "--format",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text).",
    )
    g = p_analyze.add_argument_group("underconstraint analysis")
    g.add_argument(
        "--instance",
        type=_instance_arg,
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Pin an instance cell (Specific mode); repeatable.",
    )
    g.add_argument(
        "--iterations",
        type=_positive_int,
        default=None,
        metavar="N",
        help="Public inputs to sample in Random mode (default: 10).",
    )
    g.add_argument(
        "--solver",
        choices=SOLVER_BACKENDS,
        default=None,
        help="Solver backend (default: cvc5).",
    )
    g.add_argument(
        "--solver-path",
        default=None,
        metavar="PATH",
        help="Path to the cvc5 executable.",
    )
    g.add_argument(
        "--timeout",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Per-query solver timeout (default: 300).",
    )
    g.add_argument(
        "--dump-smt",
        default=None,
        metavar="FILE",
        help="Also write the base SMT-LIB encoding to FILE.",
    )
    p_analyze.set_defaults(func=cmd_analyze)

    # --- encode ------------------------------------------------------------
    p_encode = subparsers.add_parser(
        "encode",
        help="Print the SMT-LIB encoding of a circuit.",
    )
    _add_circuit_args(p_encode)
    p_encode.set_defaults(func=cmd_encode)

    # --- instances ---------------------------------------------------------
    p_instances = subparsers.add_parser(
        "instances",
        help="List instance cells that take a public value.",
    )
    p_instances.add_argument("circuit", metavar="CIRCUIT", help="Circuit description (JSON).")
    p_instances.add_argument(
        "-f", "--format",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text).",
    )
    p_instances.set_defaults(func=cmd_instances)

    return parser


# ===========================================================================
# Main entry point
# ===========================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the analyzer CLI.

    Parameters
    ----------
    argv:
        Command-line arguments.  ``None`` → ``sys.argv[1:]``.

    Returns
    -------
    int
        Exit code (see module docstring for semantics).
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.verbose)

    # No subcommand given → print help.
    if not hasattr(args, "func"):
        parser.print_help(sys.stderr)
        return EXIT_INFRA

    try:
        return args.func(args)
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130
    except Exception as exc:
        _log.error("Unhandled exception: %s", exc, exc_info=True)
        return EXIT_INFRA


if __name__ == "__main__":
    sys.exit(main())
