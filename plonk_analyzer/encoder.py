"""
plonk_analyzer.encoder
======================

Translation of gate polynomials, lookups and copy constraints into an
SMT-LIB finite-field encoding.

Cells are named by region, column and absolute row inside the region::

    A-<region>-<column>-<row + rotation>     advice cell (witness variable)
    F-<region>-<column>-<row + rotation>     fixed cell

Selectors never become variables: at encoding time a selector is the
literal 1 when the region enables it on the current row and 0 otherwise.
Instance cells never appear inside polynomials; they are tied to advice
cells exclusively through the copy tables of the layout.

Encoding
--------
* every gate polynomial, at every row of every region, is asserted ``= 0``;
* every lookup, at every row of every region, is asserted as

  .. math::

      \\bigvee_{t \\in rows} \\bigwedge_{i} input_i = table_i[t]

  over the concrete fixed-column values, reading the table only up to the
  first cell that holds no data;
* every copy-table pair ``a -> b`` is asserted ``a = b``.
"""

from __future__ import annotations

import logging
from typing import AbstractSet, Callable, Dict, List, Optional, Tuple

from .algebra import (
    CellState,
    ConstraintSystem,
    Constant,
    Expression,
    ExprKind,
    FixedMatrix,
    Layout,
    Lookup,
    Product,
    check_exhaustive,
)
from .errors import EncodingFailure
from .smt import NodeKind, Operation, Printer, SymbolicTerm, VarRole

logger = logging.getLogger(__name__)

EnabledSelectors = AbstractSet[Tuple[int, int]]


def advice_cell(region: int, column: int, row: int) -> str:
    return f"A-{region}-{column}-{row}"


def fixed_cell(region: int, column: int, row: int) -> str:
    return f"F-{region}-{column}-{row}"


_Decomposer = Callable[
    ["SymbolicEncoder", Expression, int, int, EnabledSelectors], SymbolicTerm
]
_DECOMPOSE_DISPATCH: Dict[ExprKind, _Decomposer] = {}


def _register(kind: ExprKind):
    def deco(fn: _Decomposer) -> _Decomposer:
        _DECOMPOSE_DISPATCH[kind] = fn
        return fn
    return deco


class SymbolicEncoder:
    """Encodes a constraint system and its layout into a :class:`Printer`.

    Parameters
    ----------
    cs : ConstraintSystem
        Gates and lookups of the circuit.
    layout : Layout
        Concrete regions (row counts, enabled selectors, copy tables).
    printer : Printer
        Destination script; declarations and assertions are appended.
    """

    def __init__(self, cs: ConstraintSystem, layout: Layout, printer: Printer) -> None:
        self.cs = cs
        self.layout = layout
        self.printer = printer

    # ------------------------------------------------------------------
    # expressions
    # ------------------------------------------------------------------

    def decompose_expression(
        self,
        expr: Expression,
        region_no: int,
        row_num: int,
        enabled_selectors: EnabledSelectors,
    ) -> SymbolicTerm:
        """Translate *expr* at ``(region_no, row_num)`` into a solver term.

        Returns
        -------
        SymbolicTerm
            ``(text, kind)``; unpacks as a pair.
        """
        handler = _DECOMPOSE_DISPATCH.get(getattr(expr, "kind", None))
        if handler is None:
            raise EncodingFailure(
                f"cannot encode {type(expr).__name__}",
                context={"region": region_no, "row": row_num},
            )
        return handler(self, expr, region_no, row_num, enabled_selectors)

    # ------------------------------------------------------------------
    # constraint system
    # ------------------------------------------------------------------

    def decompose_polynomial(self, fixed: FixedMatrix) -> None:
        """Assert every gate and lookup at every row of every region."""
        regions = self.layout.regions
        for region_no, region in enumerate(regions):
            for row_num in range(region.row_count):
                for gate in self.cs.gates:
                    for poly in gate.polynomials:
                        term = self._decompose_in(
                            poly, region_no, row_num, region.enabled_selectors,
                            what=f"gate {gate.name!r}",
                        )
                        self.printer.write_assert(term, 0, Operation.EQUAL)

        for region_no, region in enumerate(regions):
            for row_num in range(region.row_count):
                for lookup in self.cs.lookups:
                    self._encode_lookup(
                        lookup, fixed, region_no, row_num, region.enabled_selectors,
                    )
        logger.debug(
            "Encoded %d gate(s) and %d lookup(s) over %d region(s)",
            len(self.cs.gates), len(self.cs.lookups), len(regions),
        )

    def _decompose_in(self, expr, region_no, row_num, enabled, what) -> SymbolicTerm:
        try:
            term = self.decompose_expression(expr, region_no, row_num, enabled)
            term.require_value()
        except EncodingFailure as exc:
            exc.context.setdefault("constraint", what)
            exc.context.setdefault("region", region_no)
            exc.context.setdefault("row", row_num)
            raise
        return term

    def _encode_lookup(
        self,
        lookup: Lookup,
        fixed: FixedMatrix,
        region_no: int,
        row_num: int,
        enabled: EnabledSelectors,
    ) -> None:
        printer = self.printer
        inputs = [
            self._decompose_in(e, region_no, row_num, enabled,
                               what=f"lookup {lookup.name!r}")
            for e in lookup.input_expressions
        ]

        # Pair each input with the fixed column of its table expression.
        pairs: List[Tuple[SymbolicTerm, int]] = []
        for term, table_expr in zip(inputs, lookup.table_expressions):
            if table_expr.kind is ExprKind.FIXED:
                pairs.append((term, table_expr.column_index))
            else:
                logger.debug(
                    "lookup %r: table expression %s is not a fixed column; skipped",
                    lookup.name, table_expr,
                )
        if not pairs:
            logger.warning("lookup %r has no fixed table column; not encoded", lookup.name)
            return

        for _, column in pairs:
            if column >= len(fixed):
                raise EncodingFailure(
                    f"lookup {lookup.name!r} refers to fixed column {column} "
                    f"but only {len(fixed)} fixed column(s) were supplied",
                    context={"region": region_no, "row": row_num},
                )

        table_rows = min(fixed.num_rows(column) for _, column in pairs)
        rows: List[str] = []
        for table_row in range(table_rows):
            equalities = []
            for term, column in pairs:
                cell = fixed[column][table_row]
                if cell.state is not CellState.ASSIGNED:
                    break
                equalities.append(printer.get_assert(term.sexp, cell.value, Operation.EQUAL))
            else:
                rows.append(printer.get_and(equalities))
                continue
            # Table data ends at the first cell without a value.
            break
        printer.write_assert_bool(printer.get_or(rows))

    # ------------------------------------------------------------------
    # copy constraints
    # ------------------------------------------------------------------

    def encode_copy_constraints(self) -> None:
        """Assert every pair of every copy table as a field equality."""
        for region in self.layout.regions:
            for left, right in region.advice_eq_table.items():
                self._write_copy(left, right, VarRole.ADVICE)
        for region in self.layout.regions:
            for left, right in region.eq_table.items():
                self._write_copy(left, right, VarRole.INSTANCE)
        for left, right in self.layout.eq_table.items():
            self._write_copy(left, right, VarRole.INSTANCE)

    def _write_copy(self, left: str, right: str, left_role: VarRole) -> None:
        self.printer.write_var(left, left_role)
        self.printer.write_var(right, VarRole.ADVICE)
        self.printer.write_assert_bool(self.printer.get_equality(left, right))


# ======================================================================
# Per-variant translation
# ======================================================================

@_register(ExprKind.CONSTANT)
def _constant(enc, expr, region_no, row_num, enabled) -> SymbolicTerm:
    return SymbolicTerm(enc.printer.constant(expr.value), NodeKind.CONSTANT)


@_register(ExprKind.SELECTOR)
def _selector(enc, expr, region_no, row_num, enabled) -> SymbolicTerm:
    bit = 1 if (expr.index, row_num) in enabled else 0
    return SymbolicTerm(enc.printer.constant(bit), NodeKind.FIXED)


@_register(ExprKind.FIXED)
def _fixed(enc, expr, region_no, row_num, enabled) -> SymbolicTerm:
    name = fixed_cell(region_no, expr.column_index, row_num + expr.rotation)
    enc.printer.write_var(name, VarRole.FIXED)
    return SymbolicTerm(name, NodeKind.FIXED)


@_register(ExprKind.ADVICE)
def _advice(enc, expr, region_no, row_num, enabled) -> SymbolicTerm:
    name = advice_cell(region_no, expr.column_index, row_num + expr.rotation)
    enc.printer.write_var(name, VarRole.ADVICE)
    return SymbolicTerm(name, NodeKind.ADVICE)


@_register(ExprKind.INSTANCE)
def _instance(enc, expr, region_no, row_num, enabled) -> SymbolicTerm:
    return SymbolicTerm("", NodeKind.INSTANCE)


@_register(ExprKind.NEGATED)
def _negated(enc, expr, region_no, row_num, enabled) -> SymbolicTerm:
    operand = enc.decompose_expression(expr.operand, region_no, row_num, enabled)
    return SymbolicTerm(enc.printer.negate(operand), NodeKind.NEGATED)


@_register(ExprKind.SUM)
def _sum(enc, expr, region_no, row_num, enabled) -> SymbolicTerm:
    left = enc.decompose_expression(expr.left, region_no, row_num, enabled)
    right = enc.decompose_expression(expr.right, region_no, row_num, enabled)
    return SymbolicTerm(enc.printer.write_term("add", left, right), NodeKind.ADD)


@_register(ExprKind.PRODUCT)
def _product(enc, expr, region_no, row_num, enabled) -> SymbolicTerm:
    left = enc.decompose_expression(expr.left, region_no, row_num, enabled)
    right = enc.decompose_expression(expr.right, region_no, row_num, enabled)
    return SymbolicTerm(enc.printer.write_term("mul", left, right), NodeKind.MULT)


@_register(ExprKind.SCALED)
def _scaled(enc, expr, region_no, row_num, enabled) -> SymbolicTerm:
    product = enc.decompose_expression(
        Product(Constant(expr.factor), expr.operand), region_no, row_num, enabled,
    )
    return SymbolicTerm(product.text, NodeKind.SCALED)


check_exhaustive(_DECOMPOSE_DISPATCH, "SymbolicEncoder.decompose_expression")
