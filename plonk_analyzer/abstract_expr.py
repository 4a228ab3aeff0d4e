"""
plonk_analyzer.abstract_expr
============================

Selector-only abstract evaluation of gate polynomials.

Theory
------
A gate polynomial is dead in a region when it is identically zero there.
Deciding that does not need concrete witness values: it only needs to know
which selectors the region enables.  Values are abstracted to the
three-point lattice::

           UNKNOWN
           /     \\
        ZERO   NONZERO

A selector is ``NONZERO`` (the literal 1) when the region enables it and
``ZERO`` otherwise; a constant is ``ZERO`` only when it is literally 0;
every column reference is ``UNKNOWN``.  Sum and product follow the field
identities lifted to the lattice.  The abstraction only ever *proves*
zero.  ``NONZERO`` is produced from selectors alone and is never derived
for cells or constants, so an "unused" conclusion is sound.

Public API
----------
    AbsResult
    eval_abstract(expr, enabled_selectors)
    extract_columns(expr)
"""

from __future__ import annotations

import enum
from typing import AbstractSet, Callable, Dict, Set

from .algebra import (
    ColumnQuery,
    Expression,
    ExprKind,
    check_exhaustive,
)


class AbsResult(enum.Enum):
    """Abstract value of an expression under a selector configuration."""
    ZERO = "zero"
    NONZERO = "nonzero"
    UNKNOWN = "unknown"


_Evaluator = Callable[[Expression, AbstractSet[int]], AbsResult]
_EVAL_DISPATCH: Dict[ExprKind, _Evaluator] = {}


def _register(kind: ExprKind):
    def deco(fn: _Evaluator) -> _Evaluator:
        _EVAL_DISPATCH[kind] = fn
        return fn
    return deco


def eval_abstract(expr: Expression, enabled_selectors: AbstractSet[int]) -> AbsResult:
    """Evaluate *expr* over the selector lattice.

    Parameters
    ----------
    expr : Expression
        The polynomial to evaluate.
    enabled_selectors : set[int]
        Selector indices enabled in the region under consideration.

    Returns
    -------
    AbsResult
        ``ZERO`` only when the polynomial is provably zero.
    """
    return _EVAL_DISPATCH[expr.kind](expr, enabled_selectors)


@_register(ExprKind.CONSTANT)
def _eval_constant(expr, enabled) -> AbsResult:
    return AbsResult.ZERO if expr.value == 0 else AbsResult.UNKNOWN


@_register(ExprKind.SELECTOR)
def _eval_selector(expr, enabled) -> AbsResult:
    return AbsResult.NONZERO if expr.index in enabled else AbsResult.ZERO


@_register(ExprKind.FIXED)
@_register(ExprKind.ADVICE)
@_register(ExprKind.INSTANCE)
def _eval_query(expr, enabled) -> AbsResult:
    return AbsResult.UNKNOWN


@_register(ExprKind.NEGATED)
def _eval_negated(expr, enabled) -> AbsResult:
    return eval_abstract(expr.operand, enabled)


@_register(ExprKind.SUM)
def _eval_sum(expr, enabled) -> AbsResult:
    left = eval_abstract(expr.left, enabled)
    right = eval_abstract(expr.right, enabled)
    if left is AbsResult.ZERO and right is AbsResult.ZERO:
        return AbsResult.ZERO
    # Cancellation (1 + -1) is not attempted.
    return AbsResult.UNKNOWN


@_register(ExprKind.PRODUCT)
def _eval_product(expr, enabled) -> AbsResult:
    left = eval_abstract(expr.left, enabled)
    right = eval_abstract(expr.right, enabled)
    if left is AbsResult.ZERO or right is AbsResult.ZERO:
        return AbsResult.ZERO
    if left is AbsResult.NONZERO and right is AbsResult.NONZERO:
        return AbsResult.NONZERO
    return AbsResult.UNKNOWN


@_register(ExprKind.SCALED)
def _eval_scaled(expr, enabled) -> AbsResult:
    if expr.factor == 0:
        return AbsResult.ZERO
    if eval_abstract(expr.operand, enabled) is AbsResult.ZERO:
        return AbsResult.ZERO
    return AbsResult.UNKNOWN


check_exhaustive(_EVAL_DISPATCH, "eval_abstract")


def extract_columns(expr: Expression) -> Set[ColumnQuery]:
    """Collect every fixed/advice ``(column, rotation)`` referenced by *expr*.

    Selector state is irrelevant here: this is textual presence only.
    """
    found: Set[ColumnQuery] = set()
    for node in expr.walk():
        if node.kind in (ExprKind.FIXED, ExprKind.ADVICE):
            found.add((node.column, node.rotation))
    return found
