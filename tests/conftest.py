# tests/conftest.py
"""
Shared builders and a scripted solver for the plonk_analyzer tests.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence

import pytest

from plonk_analyzer.algebra import (
    AdviceQuery,
    Column,
    ColumnType,
    ConstraintSystem,
    FixedQuery,
    Gate,
    Layout,
    Lookup,
    Region,
    Selector,
)
from plonk_analyzer.analyzer import AnalysisContext, Analyzer
from plonk_analyzer.config import AnalyzerConfig
from plonk_analyzer.smt import Printer
from plonk_analyzer.smt_parser import Model, Satisfiability
from plonk_analyzer.solver import EnumerativeBackend, SMTSolver

# Small field so the enumerative backend can decide every query.
P = 7


def advice(col: int, rot: int = 0) -> AdviceQuery:
    return AdviceQuery(col, rot)


def fixed(col: int, rot: int = 0) -> FixedQuery:
    return FixedQuery(col, rot)


def sel(index: int) -> Selector:
    return Selector(index)


def adv_col(col: int, rot: int = 0):
    return (Column(ColumnType.ADVICE, col), rot)


def fix_col(col: int, rot: int = 0):
    return (Column(ColumnType.FIXED, col), rot)


def make_region(
    name: str = "main",
    rows: int = 1,
    columns: Iterable = (),
    enabled: Iterable = (),
    advice_eq: Optional[Dict[str, str]] = None,
    eq: Optional[Dict[str, str]] = None,
) -> Region:
    """A region; *enabled* takes ``(selector, row)`` pairs."""
    return Region(
        name=name,
        row_count=rows,
        columns=set(columns),
        enabled_selectors=set(enabled),
        advice_eq_table=dict(advice_eq or {}),
        eq_table=dict(eq or {}),
    )


def make_cs(
    gates: Sequence[Gate] = (),
    lookups: Sequence[Lookup] = (),
    advice_queries: Optional[List] = None,
) -> ConstraintSystem:
    cs = ConstraintSystem(gates=list(gates), lookups=list(lookups))
    cs.advice_queries = (
        list(advice_queries) if advice_queries is not None else cs.derive_advice_queries()
    )
    return cs


def make_analyzer(
    gates: Sequence[Gate] = (),
    regions: Sequence[Region] = (),
    lookups: Sequence[Lookup] = (),
    eq_table: Optional[Dict[str, str]] = None,
    advice_queries: Optional[List] = None,
    **config,
) -> Analyzer:
    config.setdefault("prime", P)
    config.setdefault("solver", "enumerative")
    return Analyzer(
        make_cs(gates, lookups, advice_queries),
        Layout(regions=list(regions), eq_table=dict(eq_table or {})),
        AnalyzerConfig(**config),
    )


# ---------------------------------------------------------------------------
# Toy circuits
# ---------------------------------------------------------------------------

def add_public_analyzer() -> Analyzer:
    """``a + b = public`` with nothing tying ``a`` or ``b`` down."""
    gate = Gate("add", (sel(0) * (advice(0) + advice(1) - advice(2)),))
    region = make_region(
        "add",
        columns=[adv_col(0), adv_col(1), adv_col(2)],
        enabled=[(0, 0)],
        eq={"I-0-0": "A-0-2-0"},
    )
    return make_analyzer([gate], [region])


def copy_public_analyzer() -> Analyzer:
    """``a = public`` through a copy constraint only."""
    region = make_region("copy", columns=[adv_col(0)], eq={"I-0-0": "A-0-0-0"})
    return make_analyzer([], [region])


def ranged_public_analyzer() -> Analyzer:
    """``a = public`` with ``a`` looked up in fixed column 0."""
    lookup = Lookup("range", (advice(0),), (fixed(0),))
    region = make_region("copy", columns=[adv_col(0)], eq={"I-0-0": "A-0-0-0"})
    return make_analyzer([], [region], lookups=[lookup])


# ---------------------------------------------------------------------------
# Scripted solver
# ---------------------------------------------------------------------------

class ScriptedSolver(SMTSolver):
    """Answers queries from a fixed list of models and records each query."""

    name = "scripted"

    def __init__(self, models: Sequence[Model]) -> None:
        self.models = list(models)
        self.queries: List[str] = []

    def submit(self, query: str) -> Model:
        self.queries.append(query)
        if not self.models:
            raise AssertionError("unexpected solver query")
        return self.models.pop(0)


def sat(**assignments: int) -> Model:
    return Model(Satisfiability.SAT, {k.replace("_", "-"): v for k, v in assignments.items()})


def unsat() -> Model:
    return Model(Satisfiability.UNSAT)


@pytest.fixture
def enumerative() -> EnumerativeBackend:
    return EnumerativeBackend(max_assignments=100_000)


@pytest.fixture
def printer() -> Printer:
    return Printer(P)


@pytest.fixture
def context() -> AnalysisContext:
    return AnalysisContext()


@pytest.fixture(autouse=True)
def _reset_cli_logging():
    """Drop handlers the CLI installs so they never outlive a captured stream."""
    yield
    logger = logging.getLogger("plonk_analyzer")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
