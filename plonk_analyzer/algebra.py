"""
plonk_analyzer.algebra
======================

Algebra model consumed by the analyses: the expression tree of a PLONK-style
custom gate, the constraint system that declares gates and lookups, and the
concrete region layout produced by synthesizing a circuit.

Expressions
-----------
:class:`Expression` is a closed sum type::

    e ::= const(v) | selector(i)
        | fixed(c, r) | advice(c, r) | instance(c, r)
        | -e | e + e | e * e | scale(e, k)

Every node is an immutable frozen dataclass.  Code that dispatches on the
variant keeps a registry keyed by :class:`ExprKind` and validates it with
:func:`check_exhaustive` at import time, so adding a variant without
handling it everywhere fails loudly.

Layout
------
A :class:`Region` records the cells (column, rotation) it touches, the
selectors it enables (per row), and two copy tables mapping one cell name
to another: ``advice_eq_table`` (advice to advice) and ``eq_table``
(general copies, whose left-hand names are instance cells).
"""

from __future__ import annotations

import abc
import enum
from dataclasses import dataclass, field
from typing import (
    Any,
    ClassVar,
    Dict,
    FrozenSet,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
)


# ===================================================================
# COLUMNS
# ===================================================================

class ColumnType(enum.Enum):
    ADVICE = "advice"
    FIXED = "fixed"
    INSTANCE = "instance"
    SELECTOR = "selector"


@dataclass(frozen=True)
class Column:
    """A column of the constraint system, identified by type and index."""

    column_type: ColumnType
    index: int = 0

    def __str__(self) -> str:
        return f"{self.column_type.value}[{self.index}]"


# Cell reference inside a region or a gate: (column, rotation).
ColumnQuery = Tuple[Column, int]


# ===================================================================
# EXPRESSION SUM TYPE
# ===================================================================

class ExprKind(enum.Enum):
    """Variants of :class:`Expression`."""
    CONSTANT = "constant"
    SELECTOR = "selector"
    FIXED = "fixed"
    ADVICE = "advice"
    INSTANCE = "instance"
    NEGATED = "negated"
    SUM = "sum"
    PRODUCT = "product"
    SCALED = "scaled"


def check_exhaustive(registry: Mapping[ExprKind, Any], owner: str) -> None:
    """Raise if *registry* does not handle every :class:`ExprKind`."""
    missing = [k.name for k in ExprKind if k not in registry]
    if missing:
        raise TypeError(
            f"{owner} does not handle expression kind(s): {', '.join(missing)}"
        )


class Expression(abc.ABC):
    """Abstract base class for gate polynomial expressions."""

    kind: ClassVar[ExprKind]

    @property
    def children(self) -> Tuple["Expression", ...]:
        return ()

    def walk(self) -> Iterator["Expression"]:
        """Pre-order traversal of this expression tree."""
        stack: List[Expression] = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    # Operator sugar mirrors how circuit code composes expressions.
    def __add__(self, other: "Expression") -> "Expression":
        return Sum(self, _lift(other))

    def __radd__(self, other: Any) -> "Expression":
        return Sum(_lift(other), self)

    def __sub__(self, other: "Expression") -> "Expression":
        return Sum(self, Negated(_lift(other)))

    def __rsub__(self, other: Any) -> "Expression":
        return Sum(_lift(other), Negated(self))

    def __mul__(self, other: "Expression") -> "Expression":
        return Product(self, _lift(other))

    def __rmul__(self, other: Any) -> "Expression":
        return Product(_lift(other), self)

    def __neg__(self) -> "Expression":
        return Negated(self)


def _lift(value: Any) -> Expression:
    if isinstance(value, Expression):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return Constant(value)
    raise TypeError(f"cannot use {type(value).__name__} as an expression")


@dataclass(frozen=True, eq=True)
class Constant(Expression):
    value: int
    kind: ClassVar[ExprKind] = ExprKind.CONSTANT

    def __str__(self) -> str:
        return f"(const {self.value})"


@dataclass(frozen=True, eq=True)
class Selector(Expression):
    index: int
    kind: ClassVar[ExprKind] = ExprKind.SELECTOR

    def __str__(self) -> str:
        return f"(selector {self.index})"


@dataclass(frozen=True, eq=True)
class FixedQuery(Expression):
    column_index: int
    rotation: int = 0
    kind: ClassVar[ExprKind] = ExprKind.FIXED

    @property
    def column(self) -> Column:
        return Column(ColumnType.FIXED, self.column_index)

    def __str__(self) -> str:
        return f"(fixed {self.column_index} {self.rotation})"


@dataclass(frozen=True, eq=True)
class AdviceQuery(Expression):
    column_index: int
    rotation: int = 0
    kind: ClassVar[ExprKind] = ExprKind.ADVICE

    @property
    def column(self) -> Column:
        return Column(ColumnType.ADVICE, self.column_index)

    def __str__(self) -> str:
        return f"(advice {self.column_index} {self.rotation})"


@dataclass(frozen=True, eq=True)
class InstanceQuery(Expression):
    column_index: int
    rotation: int = 0
    kind: ClassVar[ExprKind] = ExprKind.INSTANCE

    @property
    def column(self) -> Column:
        return Column(ColumnType.INSTANCE, self.column_index)

    def __str__(self) -> str:
        return f"(instance {self.column_index} {self.rotation})"


@dataclass(frozen=True, eq=True)
class Negated(Expression):
    operand: Expression
    kind: ClassVar[ExprKind] = ExprKind.NEGATED

    @property
    def children(self) -> Tuple[Expression, ...]:
        return (self.operand,)

    def __str__(self) -> str:
        return f"(- {self.operand})"


@dataclass(frozen=True, eq=True)
class Sum(Expression):
    left: Expression
    right: Expression
    kind: ClassVar[ExprKind] = ExprKind.SUM

    @property
    def children(self) -> Tuple[Expression, ...]:
        return (self.left, self.right)

    def __str__(self) -> str:
        return f"(+ {self.left} {self.right})"


@dataclass(frozen=True, eq=True)
class Product(Expression):
    left: Expression
    right: Expression
    kind: ClassVar[ExprKind] = ExprKind.PRODUCT

    @property
    def children(self) -> Tuple[Expression, ...]:
        return (self.left, self.right)

    def __str__(self) -> str:
        return f"(* {self.left} {self.right})"


@dataclass(frozen=True, eq=True)
class Scaled(Expression):
    operand: Expression
    factor: int
    kind: ClassVar[ExprKind] = ExprKind.SCALED

    @property
    def children(self) -> Tuple[Expression, ...]:
        return (self.operand,)

    def __str__(self) -> str:
        return f"(scale {self.operand} {self.factor})"


# ===================================================================
# CONSTRAINT SYSTEM
# ===================================================================

@dataclass(frozen=True)
class Gate:
    """A named custom gate; each polynomial is constrained to zero."""
    name: str
    polynomials: Tuple[Expression, ...] = ()


@dataclass(frozen=True)
class Lookup:
    """Input tuple must match some row of the (fixed) table tuple."""
    name: str
    input_expressions: Tuple[Expression, ...] = ()
    table_expressions: Tuple[Expression, ...] = ()


@dataclass
class ConstraintSystem:
    """Gates, lookups and declared advice queries of a circuit."""
    gates: List[Gate] = field(default_factory=list)
    lookups: List[Lookup] = field(default_factory=list)
    advice_queries: List[ColumnQuery] = field(default_factory=list)
    num_selectors: Optional[int] = None

    def all_expressions(self) -> Iterator[Expression]:
        for gate in self.gates:
            yield from gate.polynomials
        for lookup in self.lookups:
            yield from lookup.input_expressions
            yield from lookup.table_expressions

    def declared_selectors(self) -> Set[int]:
        """Selector indices declared by the constraint system."""
        if self.num_selectors is not None:
            return set(range(self.num_selectors))
        return {
            node.index
            for expr in self.all_expressions()
            for node in expr.walk()
            if isinstance(node, Selector)
        }

    def derive_advice_queries(self) -> List[ColumnQuery]:
        """Every distinct advice (column, rotation) queried, in first-use order."""
        seen: Dict[ColumnQuery, None] = {}
        for expr in self.all_expressions():
            for node in expr.walk():
                if isinstance(node, AdviceQuery):
                    seen.setdefault((node.column, node.rotation), None)
        return list(seen)


# ===================================================================
# LAYOUT
# ===================================================================

@dataclass
class Region:
    """A synthesized region of the circuit layout."""
    name: str
    row_count: int = 0
    columns: Set[ColumnQuery] = field(default_factory=set)
    enabled_selectors: Set[Tuple[int, int]] = field(default_factory=set)
    advice_eq_table: Dict[str, str] = field(default_factory=dict)
    eq_table: Dict[str, str] = field(default_factory=dict)

    def selectors(self) -> FrozenSet[int]:
        """Selector indices enabled on at least one row of the region."""
        return frozenset(sel for sel, _row in self.enabled_selectors)

    def is_enabled(self, selector: int, row: int) -> bool:
        return (selector, row) in self.enabled_selectors


@dataclass
class Layout:
    """Regions of a synthesized circuit plus the top-level copy table."""
    regions: List[Region] = field(default_factory=list)
    eq_table: Dict[str, str] = field(default_factory=dict)


# ===================================================================
# FIXED COLUMN VALUES
# ===================================================================

class CellState(enum.Enum):
    UNASSIGNED = "unassigned"
    ASSIGNED = "assigned"
    POISON = "poison"


@dataclass(frozen=True)
class CellValue:
    """A concrete fixed cell.  Only ``ASSIGNED`` cells carry data."""
    state: CellState
    value: Optional[int] = None

    @classmethod
    def assigned(cls, value: int) -> "CellValue":
        return cls(CellState.ASSIGNED, int(value))

    @property
    def is_assigned(self) -> bool:
        return self.state is CellState.ASSIGNED

    def __str__(self) -> str:
        if self.is_assigned:
            return str(self.value)
        return self.state.value


UNASSIGNED = CellValue(CellState.UNASSIGNED)
POISON = CellValue(CellState.POISON)


class FixedMatrix:
    """Column-major fixed-column values: ``matrix[column][row]``."""

    def __init__(self, columns: Sequence[Sequence[CellValue]] = ()) -> None:
        self._columns: List[Tuple[CellValue, ...]] = [tuple(c) for c in columns]

    @classmethod
    def from_values(cls, columns: Sequence[Sequence[Optional[int]]]) -> "FixedMatrix":
        """Build from plain values; ``None`` marks an unassigned cell."""
        return cls([
            [UNASSIGNED if v is None else CellValue.assigned(v) for v in column]
            for column in columns
        ])

    def __len__(self) -> int:
        return len(self._columns)

    def __getitem__(self, column: int) -> Tuple[CellValue, ...]:
        return self._columns[column]

    def num_rows(self, column: int) -> int:
        return len(self._columns[column])
