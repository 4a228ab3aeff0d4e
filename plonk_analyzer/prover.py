"""
plonk_analyzer.prover
=====================

Counterexample-guided search for a second witness sharing a public input.

Algorithm
---------
Given the encoded circuit, the tracked variables ``V`` and the instance
variables ``I ⊆ V``::

    pin I to the user's values                      (Specific mode only)
    M0 := check()            unsat → OVERCONSTRAINED
    for i in 1..N:           (N = 1 in Specific mode)
        M := M0 if i == 1 else check()
                             unsat → NOT_UNDERCONSTRAINED
        push
          assert  ∧{v = M[v] : v ∈ same}  ∧  ∨{v ≠ M[v] : v ∈ diff}
          check()            sat   → UNDERCONSTRAINED
        pop
        assert ∨{v ≠ M[v] : v ∈ I}          (never revisit this public input)
    → NOT_UNDERCONSTRAINED_LOCAL

``same`` holds the unpinned instance variables and the fixed cells (public
circuit data); ``diff`` holds every other variable.  Pinned instance
variables are already equal by construction and appear in neither set.

The first model is reused for iteration 1: nothing is asserted between
the two queries, so reissuing it cannot change any decision.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, List, Set

from .errors import AnalyzerError, ErrorCodes, SolverInvocationFailure
from .io_types import AnalyzerInput, AnalyzerOutputStatus, VerificationMethod
from .smt import NodeKind, Operation, Printer, SymbolicTerm, VarRole
from .smt_parser import Model
from .solver import SMTSolver

if TYPE_CHECKING:
    from .analyzer import AnalysisContext

logger = logging.getLogger(__name__)


class UniquenessProver:
    """Decides whether public inputs determine the witness.

    Parameters
    ----------
    solver : SMTSolver
        Gateway used for every satisfiability query.
    printer : Printer
        The fully encoded circuit; pinning and blocking clauses are
        appended to it, per-iteration assertions live in popped scopes.
    context : AnalysisContext
        Receives the query counter, sampled public inputs and, on
        ``UNDERCONSTRAINED``, the two witnesses.
    """

    def __init__(self, solver: SMTSolver, printer: Printer, context: "AnalysisContext") -> None:
        self.solver = solver
        self.printer = printer
        self.context = context

    def run(self, analyzer_input: AnalyzerInput) -> AnalyzerOutputStatus:
        printer = self.printer
        variables = printer.tracked()
        declared = set(variables)
        instance_vars = set(printer.tracked(VarRole.INSTANCE))
        instance_vars |= declared & set(analyzer_input.instance_names)
        fixed_vars = set(printer.tracked(VarRole.FIXED))

        pinned: Set[str] = set()
        if analyzer_input.verification_method is VerificationMethod.SPECIFIC:
            for name, value in analyzer_input.instances.items():
                if name not in declared:
                    logger.warning("instance %r does not occur in the circuit encoding", name)
                printer.write_var(name, VarRole.INSTANCE)
                printer.write_assert(SymbolicTerm(name, NodeKind.INSTANCE), value, Operation.EQUAL)
                pinned.add(name)

        public = [v for v in variables if v in instance_vars]
        same = [v for v in variables if (v in instance_vars and v not in pinned) or v in fixed_vars]
        diff = [v for v in variables if v not in instance_vars and v not in fixed_vars]
        logger.debug(
            "Uniqueness search over %d variable(s): %d public, %d pinned, %d compared",
            len(variables), len(public), len(pinned), len(diff),
        )

        first = self._query(variables)
        if first.is_unsat:
            logger.info("Base encoding is unsatisfiable")
            return AnalyzerOutputStatus.OVERCONSTRAINED

        for iteration in range(1, analyzer_input.max_iterations + 1):
            model = first if iteration == 1 else self._query(variables)
            if model.is_unsat:
                logger.info("No further public input to check after %d iteration(s)", iteration - 1)
                return AnalyzerOutputStatus.NOT_UNDERCONSTRAINED
            self._require_model(model, iteration)

            point = {v: model[v] for v in public}
            self.context.samples.append(point)
            logger.info("Model %d to be checked: %s", iteration, _fmt(model.assignments))

            with printer.scope():
                equal = [printer.get_assert(v, model[v], Operation.EQUAL) for v in same]
                differ = [printer.get_assert(v, model[v], Operation.NOT_EQUAL) for v in diff]
                printer.write_assert_bool(printer.get_and(equal + [printer.get_or(differ)]))

                other = self._query(variables)
                if other.is_sat:
                    logger.info("Equivalent model for the same public input: %s",
                                _fmt(other.assignments))
                    self.context.counterexample = (dict(model.assignments), dict(other.assignments))
                    return AnalyzerOutputStatus.UNDERCONSTRAINED
                if not other.is_unsat:
                    raise SolverInvocationFailure(
                        "solver could not decide whether a second witness exists",
                        code=ErrorCodes.SOLVER_ERROR,
                        context={"iteration": iteration, "verdict": other.sat.value},
                    )
            logger.info("No equivalent model with the same public input for model %d", iteration)

            blocking = [printer.get_assert(v, model[v], Operation.NOT_EQUAL) for v in public]
            printer.write_assert_bool(printer.get_or(blocking))

        return AnalyzerOutputStatus.NOT_UNDERCONSTRAINED_LOCAL

    def _query(self, variables: List[str]) -> Model:
        self.context.counter += 1
        logger.debug("Solver query #%d (scope depth %d)", self.context.counter, self.printer.depth)
        try:
            return self.solver.submit(self.printer.render_query(variables))
        except AnalyzerError as exc:
            exc.context.setdefault("query", self.context.counter)
            exc.context.setdefault("scope_depth", self.printer.depth)
            raise

    @staticmethod
    def _require_model(model: Model, iteration: int) -> None:
        if not model.is_sat:
            raise SolverInvocationFailure(
                f"solver answered {model.sat.value}; no model to examine",
                code=ErrorCodes.SOLVER_ERROR,
                context={"iteration": iteration, "verdict": model.sat.value},
            )


def _fmt(assignments: Dict[str, int]) -> str:
    return ", ".join(f"{k}={v}" for k, v in sorted(assignments.items()))
