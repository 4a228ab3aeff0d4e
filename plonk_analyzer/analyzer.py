"""
plonk_analyzer.analyzer
=======================

Facade over the analyses of one synthesized circuit.

Architecture
------------
::

    ConstraintSystem + Layout ─┬─► eval_abstract ──► dead-code analyses
                               │                     (unused gates / columns,
                               │                      unconstrained cells)
                               │
                               └─► SymbolicEncoder ─► Printer ─► UniquenessProver
                                                                  │
                                                                  ▼
                                                              SMTSolver

Every public analysis starts a fresh :class:`AnalysisContext`; findings,
the solver query counter and sampled public inputs never leak from one
run into the next.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from .abstract_expr import AbsResult, eval_abstract, extract_columns
from .algebra import ColumnType, ConstraintSystem, FixedMatrix, Layout
from .config import AnalyzerConfig
from .encoder import SymbolicEncoder
from .io_types import (
    AnalyzerInput,
    AnalyzerOutput,
    AnalyzerOutputStatus,
    AnalyzerType,
    Finding,
    Severity,
)
from .prover import UniquenessProver
from .smt import Printer
from .solver import SMTSolver, make_solver

logger = logging.getLogger(__name__)

InputProvider = Callable[[Mapping[str, int]], AnalyzerInput]


@dataclass
class AnalysisContext:
    """Mutable state of a single analysis run."""
    findings: List[Finding] = field(default_factory=list)
    counter: int = 0
    samples: List[Dict[str, int]] = field(default_factory=list)
    counterexample: Optional[Tuple[Dict[str, int], Dict[str, int]]] = None

    @property
    def log(self) -> List[str]:
        return [f.message for f in self.findings]

    def report(self, finding: Finding) -> None:
        self.findings.append(finding)


class Analyzer:
    """
    Runs the dead-code and underconstraint analyses over one circuit.

    Parameters
    ----------
    cs : ConstraintSystem
    layout : Layout
    config : AnalyzerConfig, optional
    """

    def __init__(
        self,
        cs: ConstraintSystem,
        layout: Layout,
        config: Optional[AnalyzerConfig] = None,
    ) -> None:
        self.cs = cs
        self.layout = layout
        self.config = config or AnalyzerConfig()
        self.context = AnalysisContext()

    def _begin(self) -> AnalysisContext:
        self.context = AnalysisContext()
        return self.context

    def _output(self, status: AnalyzerOutputStatus) -> AnalyzerOutput:
        return AnalyzerOutput(
            output_status=status,
            findings=tuple(self.context.findings),
            counterexample=self.context.counterexample,
        )

    # ------------------------------------------------------------------
    # dead-code analyses
    # ------------------------------------------------------------------

    def analyze_unused_custom_gates(self) -> AnalyzerOutput:
        """Report gates that are identically zero in every region."""
        context = self._begin()
        count = 0
        for gate in self.cs.gates:
            used = any(
                eval_abstract(poly, region.selectors()) is not AbsResult.ZERO
                for region in self.layout.regions
                for poly in gate.polynomials
            )
            if not used:
                count += 1
                context.report(Finding(
                    "unusedGate",
                    f'unused gate: "{gate.name}" (consider removing the gate '
                    f"or checking selectors in regions)",
                    Severity.WARNING,
                    location=gate.name,
                ))
        logger.info("Finished analysis: %d unused gates found.", count)
        return self._output(AnalyzerOutputStatus.UNUSED_CUSTOM_GATES)

    def analyze_unused_columns(self) -> AnalyzerOutput:
        """Report declared advice queries that no gate polynomial mentions."""
        context = self._begin()
        referenced = set()
        for gate in self.cs.gates:
            for poly in gate.polynomials:
                referenced |= extract_columns(poly)

        count = 0
        seen = set()
        for column, rotation in self.cs.advice_queries:
            if (column, rotation) in seen:
                continue
            seen.add((column, rotation))
            if (column, rotation) not in referenced:
                count += 1
                context.report(Finding(
                    "unusedColumn",
                    f"unused column: {column} (rotation: {rotation})",
                    Severity.STYLE,
                    location=str(column),
                    evidence={"rotation": rotation},
                ))
        logger.info("Finished analysis: %d unused columns found.", count)
        return self._output(AnalyzerOutputStatus.UNUSED_COLUMNS)

    def analyze_unconstrained_cells(self) -> AnalyzerOutput:
        """Report region cells that no live gate polynomial constrains."""
        context = self._begin()
        polys = [
            (poly, extract_columns(poly))
            for gate in self.cs.gates
            for poly in gate.polynomials
        ]
        count = 0
        for region in self.layout.regions:
            selectors = region.selectors()
            live = set()
            for poly, columns in polys:
                if eval_abstract(poly, selectors) is not AbsResult.ZERO:
                    live |= columns
            for column, rotation in sorted(region.columns, key=_query_key):
                if column.column_type is ColumnType.SELECTOR:
                    continue
                if (column, rotation) in live:
                    continue
                count += 1
                context.report(Finding(
                    "unconstrainedCell",
                    f'unconstrained cell in "{region.name}" region: {column} '
                    f"(rotation: {rotation}) -- very likely a bug.",
                    Severity.ERROR,
                    location=region.name,
                    evidence={"column": str(column), "rotation": rotation},
                ))
        logger.info("Finished analysis: %d unconstrained cells found.", count)
        return self._output(AnalyzerOutputStatus.UNCONSTRAINED_CELLS)

    # ------------------------------------------------------------------
    # instance cells
    # ------------------------------------------------------------------

    def extract_instance_cols(self, eq_table: Mapping[str, str]) -> Dict[str, int]:
        """Left-hand cells of a copy table, each with default value 0."""
        return {name: 0 for name in eq_table}

    def extract_instance_cols_from_region(self) -> Dict[str, int]:
        cols: Dict[str, int] = {}
        for region in self.layout.regions:
            cols.update(self.extract_instance_cols(region.eq_table))
        return cols

    def instance_columns(self) -> Dict[str, int]:
        """Every instance cell that needs a value, top-level table first."""
        cols = self.extract_instance_cols(self.layout.eq_table)
        for name, value in self.extract_instance_cols_from_region().items():
            cols.setdefault(name, value)
        return cols

    # ------------------------------------------------------------------
    # underconstraint analysis
    # ------------------------------------------------------------------

    def build_encoding(self, fixed: FixedMatrix, prime: Optional[int] = None) -> Printer:
        """Encode gates, lookups and copy constraints into a new script."""
        printer = Printer(prime if prime is not None else self.config.prime)
        encoder = SymbolicEncoder(self.cs, self.layout, printer)
        encoder.decompose_polynomial(fixed)
        encoder.encode_copy_constraints()
        return printer

    def analyze_underconstrained(
        self,
        analyzer_input: AnalyzerInput,
        fixed: FixedMatrix,
        prime: Optional[int] = None,
        solver: Optional[SMTSolver] = None,
    ) -> AnalyzerOutput:
        """Search for two witnesses sharing a public input."""
        context = self._begin()
        printer = self.build_encoding(fixed, prime)
        if self.config.smt_output is not None:
            printer.dump(self.config.smt_output)

        solver = solver or make_solver(self.config)
        logger.info(
            "Checking uniqueness (%s mode, %d iteration(s)) with %s",
            analyzer_input.verification_method.value,
            analyzer_input.max_iterations,
            getattr(solver, "name", type(solver).__name__),
        )
        status = UniquenessProver(solver, printer, context).run(analyzer_input)

        if status is AnalyzerOutputStatus.UNDERCONSTRAINED:
            first, second = context.counterexample
            context.report(Finding(
                "underconstrained",
                "circuit is underconstrained: two witnesses share the same public input",
                Severity.ERROR,
                evidence={"first": first, "second": second},
            ))
        elif status is AnalyzerOutputStatus.OVERCONSTRAINED:
            context.report(Finding(
                "overconstrained",
                "circuit is overconstrained: no witness satisfies the constraints",
                Severity.ERROR,
            ))
        logger.info(
            "Finished analysis: %s after %d solver quer%s.",
            status.value, context.counter, "y" if context.counter == 1 else "ies",
        )
        return self._output(status)

    # ------------------------------------------------------------------
    # dispatch
    # ------------------------------------------------------------------

    def dispatch_analysis(
        self,
        analyzer_type: AnalyzerType,
        fixed: Optional[FixedMatrix] = None,
        prime: Optional[int] = None,
        input_provider: Optional[InputProvider] = None,
        solver: Optional[SMTSolver] = None,
    ) -> AnalyzerOutput:
        """Run the analysis named by *analyzer_type*.

        For the underconstraint analysis *input_provider* receives the
        instance cells (with default values) and returns the
        :class:`AnalyzerInput`; without one, Random mode is used with the
        configured iteration bound.
        """
        if analyzer_type is AnalyzerType.UNUSED_GATES:
            return self.analyze_unused_custom_gates()
        if analyzer_type is AnalyzerType.UNUSED_COLUMNS:
            return self.analyze_unused_columns()
        if analyzer_type is AnalyzerType.UNCONSTRAINED_CELLS:
            return self.analyze_unconstrained_cells()

        instance_cols = self.instance_columns()
        if input_provider is not None:
            analyzer_input = input_provider(instance_cols)
        else:
            analyzer_input = AnalyzerInput.random(self.config.random_iterations, instance_cols)
        return self.analyze_underconstrained(
            analyzer_input, fixed if fixed is not None else FixedMatrix(), prime, solver,
        )


def _query_key(query):
    column, rotation = query
    return (column.column_type.value, column.index, rotation)
