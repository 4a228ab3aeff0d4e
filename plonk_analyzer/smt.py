"""
plonk_analyzer.smt
==================

Append-only SMT-LIB v2 script builder over a prime finite field.

The script targets cvc5's ``QF_FF`` logic::

    (set-logic QF_FF)
    (set-option :produce-models true)
    (define-sort F () (_ FiniteField <p>))
    (declare-fun A-0-1-0 () F)
    (assert (= (ff.add A-0-0-0 A-0-1-0) (as ff0 F)))
    (push 1)
    ...
    (pop 1)

A query is the current script followed by ``(check-sat)`` and one
``(get-value (v))`` per tracked variable; the script itself is never
mutated by rendering a query, so the same :class:`Printer` can be queried
repeatedly while assertions accumulate.

Terms
-----
:class:`SymbolicTerm` pairs the text of a term with the :class:`NodeKind`
that produced it.  Atomic kinds (constants, cells) carry self-delimiting
text; compound kinds carry the bare body of an application, e.g.
``ff.add a b``, which :attr:`SymbolicTerm.sexp` parenthesizes when the
term is used as an operand.
"""

from __future__ import annotations

import contextlib
import enum
import logging
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, NamedTuple, Optional, Sequence

from .errors import EncodingFailure, ErrorCodes

logger = logging.getLogger(__name__)

SORT_NAME = "F"


class NodeKind(enum.Enum):
    """Which expression variant produced a :class:`SymbolicTerm`."""
    CONSTANT = "constant"
    ADVICE = "advice"
    INSTANCE = "instance"
    FIXED = "fixed"
    NEGATED = "negated"
    ADD = "add"
    MULT = "mult"
    SCALED = "scaled"
    POLY = "poly"

    @property
    def is_atomic(self) -> bool:
        return self in _ATOMIC_KINDS


_ATOMIC_KINDS = frozenset({
    NodeKind.CONSTANT, NodeKind.ADVICE, NodeKind.INSTANCE, NodeKind.FIXED,
})


class Operation(enum.Enum):
    EQUAL = "="
    NOT_EQUAL = "!="
    AND = "and"
    OR = "or"


class VarRole(enum.Enum):
    """Role a declared variable plays in the uniqueness search."""
    ADVICE = "advice"
    FIXED = "fixed"
    INSTANCE = "instance"


class SymbolicTerm(NamedTuple):
    text: str
    kind: NodeKind

    @property
    def is_placeholder(self) -> bool:
        return self.kind is NodeKind.INSTANCE and not self.text

    def require_value(self) -> None:
        if self.is_placeholder:
            raise EncodingFailure(
                "instance reference cannot be used inside a polynomial; "
                "instance values are tied in through copy constraints",
                code=ErrorCodes.INSTANCE_IN_POLYNOMIAL,
            )

    @property
    def sexp(self) -> str:
        """The term as a standalone S-expression."""
        self.require_value()
        if self.kind.is_atomic:
            return self.text
        return f"({self.text})"


class Printer:
    """Builds an SMT-LIB script incrementally.

    Parameters
    ----------
    prime : int
        Order of the prime field all terms live in.
    """

    def __init__(self, prime: int) -> None:
        if prime < 2:
            raise ValueError(f"field order must be a prime >= 2, got {prime}")
        self.prime = int(prime)
        self.lines: List[str] = []
        self.vars: Dict[str, VarRole] = {}
        self.depth = 0
        self.write_start()

    # -- script structure ---------------------------------------------------

    def write_start(self) -> None:
        self.lines.extend([
            "(set-logic QF_FF)",
            "(set-option :produce-models true)",
            f"(define-sort {SORT_NAME} () (_ FiniteField {self.prime}))",
        ])

    def write_var(self, name: str, role: VarRole = VarRole.ADVICE) -> None:
        """Declare *name* once; re-declaring only upgrades its role."""
        if name in self.vars:
            if role is VarRole.INSTANCE:
                self.vars[name] = role
            return
        if self.depth:
            # Declarations made inside a scope would vanish on pop.
            raise EncodingFailure(
                f"variable {name!r} declared inside an assertion scope",
                code=ErrorCodes.UNBALANCED_SCOPE,
                context={"depth": self.depth},
            )
        self.vars[name] = role
        self.lines.append(f"(declare-fun {name} () {SORT_NAME})")

    def write_push(self, levels: int = 1) -> None:
        self.depth += levels
        self.lines.append(f"(push {levels})")

    def write_pop(self, levels: int = 1) -> None:
        if levels > self.depth:
            raise EncodingFailure(
                "pop without matching push",
                code=ErrorCodes.UNBALANCED_SCOPE,
                context={"depth": self.depth, "levels": levels},
            )
        self.depth -= levels
        self.lines.append(f"(pop {levels})")

    @contextlib.contextmanager
    def scope(self) -> Iterator[None]:
        """A backtrackable assertion scope, popped on every exit path."""
        self.write_push(1)
        try:
            yield
        finally:
            self.write_pop(1)

    # -- terms --------------------------------------------------------------

    def constant(self, value: int) -> str:
        return f"(as ff{int(value) % self.prime} {SORT_NAME})"

    def write_term(self, op: str, left: SymbolicTerm, right: SymbolicTerm) -> str:
        """Body of the field operation ``ff.<op>`` applied to two terms."""
        return f"ff.{op} {left.sexp} {right.sexp}"

    def negate(self, operand: SymbolicTerm) -> str:
        """Body of ``ff.neg`` applied to *operand*."""
        operand.require_value()
        if operand.kind.is_atomic:
            return f"ff.neg {operand.text}"
        return f"ff.neg ({operand.text})"

    def get_assert(self, lhs: str, value: int, op: Operation) -> str:
        """``lhs`` compared against the field literal *value*."""
        literal = self.constant(value)
        if op is Operation.EQUAL:
            return f"(= {lhs} {literal})"
        if op is Operation.NOT_EQUAL:
            return f"(not (= {lhs} {literal}))"
        raise ValueError(f"{op} is not a comparison")

    def get_equality(self, lhs: str, rhs: str) -> str:
        return f"(= {lhs} {rhs})"

    def get_and(self, parts: Sequence[str]) -> str:
        return _connective("and", "true", parts)

    def get_or(self, parts: Sequence[str]) -> str:
        return _connective("or", "false", parts)

    # -- assertions ---------------------------------------------------------

    def write_assert(self, term: SymbolicTerm, value: int = 0,
                     op: Operation = Operation.EQUAL) -> None:
        self.write_assert_bool(self.get_assert(term.sexp, value, op))

    def write_assert_bool(self, formula: str) -> None:
        self.lines.append(f"(assert {formula})")

    # -- queries ------------------------------------------------------------

    def tracked(self, *roles: VarRole) -> List[str]:
        """Declared variable names, optionally filtered by role."""
        if not roles:
            return list(self.vars)
        return [n for n, r in self.vars.items() if r in roles]

    def render(self) -> str:
        return "\n".join(self.lines) + "\n"

    def render_query(self, variables: Iterable[str]) -> str:
        tail = ["(check-sat)"]
        tail.extend(f"(get-value ({name}))" for name in variables)
        return self.render() + "\n".join(tail) + "\n"

    def dump(self, path: Path, variables: Optional[Iterable[str]] = None) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        text = self.render() if variables is None else self.render_query(variables)
        path.write_text(text, encoding="utf-8")
        logger.debug("Wrote SMT-LIB script (%d lines) to %s", len(self.lines), path)
        return path


def _connective(op: str, unit: str, parts: Sequence[str]) -> str:
    parts = list(parts)
    if not parts:
        return unit
    if len(parts) == 1:
        return parts[0]
    return f"({op} {' '.join(parts)})"
