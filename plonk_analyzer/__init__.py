"""
plonk_analyzer: Static Analysis of PLONK Arithmetic Circuits
=============================================================

Finds correctness bugs in synthesized PLONK/halo2-style circuits: gates
that are never enabled, advice columns no gate mentions, cells assigned
but never constrained, and underconstrained circuits, where one public
input admits two different private witnesses.

Core modules
------------
algebra
    Expression sum type, gates, lookups, constraint system and layout.
abstract_expr
    Three-valued selector-lattice evaluation used by the dead-code passes.
encoder / smt
    Translation of gates, lookups and copy constraints into SMT-LIB over a
    prime field (``QF_FF``).
prover
    Counterexample-guided uniqueness search.
solver / smt_parser
    Solver gateway (cvc5, built-in enumerative, optional z3) and response
    parsing.
analyzer
    The :class:`Analyzer` facade and its per-run context.
circuit_io
    JSON circuit description loader.

Quick start
-----------
>>> from plonk_analyzer import load_circuit, Analyzer, AnalyzerInput
>>> circuit = load_circuit("examples/add_public.json")
>>> analyzer = Analyzer(circuit.cs, circuit.layout)
>>> analyzer.analyze_unused_custom_gates().output_status
<AnalyzerOutputStatus.UNUSED_CUSTOM_GATES: 'unused-custom-gates'>
"""

from __future__ import annotations

import importlib
import logging
import sys
from typing import Dict, List

# ---------------------------------------------------------------------------
# Package metadata
# ---------------------------------------------------------------------------

__version__ = "0.1.0"
__all__: List[str] = []          # populated incrementally below

_log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Internal registry: module_name -> names re-exported at package level
# ---------------------------------------------------------------------------

_CORE_MODULES: Dict[str, List[str]] = {
    "errors": [
        "AnalyzerError",
        "CircuitFormatError",
        "EncodingFailure",
        "SolverInvocationFailure",
        "ModelLookupFailure",
        "ErrorCodes",
    ],
    "algebra": [
        "Expression",
        "Constant",
        "Selector",
        "FixedQuery",
        "AdviceQuery",
        "InstanceQuery",
        "Negated",
        "Sum",
        "Product",
        "Scaled",
        "Column",
        "ColumnType",
        "Gate",
        "Lookup",
        "ConstraintSystem",
        "Region",
        "Layout",
        "CellValue",
        "FixedMatrix",
    ],
    "abstract_expr": [
        "AbsResult",
        "eval_abstract",
        "extract_columns",
    ],
    "smt": [
        "Printer",
        "SymbolicTerm",
        "NodeKind",
        "Operation",
    ],
    "encoder": [
        "SymbolicEncoder",
    ],
    "solver": [
        "Satisfiability",
        "Model",
        "SMTSolver",
        "CVC5Backend",
        "EnumerativeBackend",
        "Z3Backend",
        "make_solver",
    ],
    "io_types": [
        "AnalyzerType",
        "VerificationMethod",
        "AnalyzerInput",
        "AnalyzerOutputStatus",
        "AnalyzerOutput",
        "Finding",
    ],
    "prover": [
        "UniquenessProver",
    ],
    "config": [
        "AnalyzerConfig",
    ],
    "analyzer": [
        "Analyzer",
        "AnalysisContext",
    ],
    "circuit_io": [
        "CircuitDescription",
        "load_circuit",
        "parse_expression",
    ],
}


def _import_names(module_rel_name: str, names: List[str]) -> None:
    """Import *names* from a submodule and bind them in the package namespace."""
    fq_name = f"{__name__}.{module_rel_name}"
    try:
        mod = importlib.import_module(fq_name)
    except ImportError as exc:
        raise ImportError(
            f"plonk_analyzer: required submodule '{module_rel_name}' "
            f"failed to import: {exc}"
        ) from exc

    current_module = sys.modules[__name__]
    for name in names:
        obj = getattr(mod, name, None)
        if obj is None:
            raise AttributeError(
                f"plonk_analyzer.{module_rel_name} does not export '{name}'"
            )
        setattr(current_module, name, obj)
        __all__.append(name)


for _mod_name, _names in _CORE_MODULES.items():
    _import_names(_mod_name, _names)

_log.debug("plonk_analyzer %s loaded (%d names)", __version__, len(__all__))

del _mod_name, _names
