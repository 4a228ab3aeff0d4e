"""
plonk_analyzer.circuit_io
=========================

Loader for synthesized circuit descriptions.

A description is a JSON document::

    {
      "name": "add-public",
      "prime": 7,
      "num_selectors": 1,
      "gates": [
        {"name": "add", "polys": ["(* (selector 0) (- (+ (advice 0 0) (advice 1 0)) (advice 2 0)))"]}
      ],
      "lookups": [
        {"name": "range", "inputs": ["(advice 0 0)"], "table": ["(fixed 0 0)"]}
      ],
      "advice_queries": [[0, 0], [1, 0], [2, 0]],
      "regions": [
        {"name": "add", "row_count": 1,
         "columns": [["advice", 0, 0], ["advice", 1, 0], ["advice", 2, 0]],
         "enabled_selectors": [[0, 0]],
         "advice_eq_table": {},
         "eq_table": {"I-0-0": "A-0-2-0"}}
      ],
      "eq_table": {},
      "fixed": [[0, 1, 2, null]]
    }

Expressions are S-expressions parsed with ``sexpdata``::

    e ::= <int> | (const v) | (selector i)
        | (fixed c r) | (advice c r) | (instance c r)
        | (- e) | (- a b) | (+ e e ...) | (* e e ...) | (scale e k)

Fixed cells are an integer (assigned), ``null`` (unassigned) or the string
``"poison"``.  Every structural problem raises
:class:`~plonk_analyzer.errors.CircuitFormatError` naming the JSON path.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from functools import reduce
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Union

import sexpdata
from sexpdata import Symbol

from .algebra import (
    POISON,
    UNASSIGNED,
    AdviceQuery,
    CellValue,
    Column,
    ColumnQuery,
    ColumnType,
    Constant,
    ConstraintSystem,
    Expression,
    FixedMatrix,
    FixedQuery,
    Gate,
    InstanceQuery,
    Layout,
    Lookup,
    Negated,
    Product,
    Region,
    Scaled,
    Selector,
    Sum,
)
from .errors import CircuitFormatError, ErrorCodes

logger = logging.getLogger(__name__)

Sexp = Any


@dataclass
class CircuitDescription:
    """A loaded circuit: constraint system, layout and fixed values."""
    name: str
    cs: ConstraintSystem
    layout: Layout
    fixed: FixedMatrix = field(default_factory=FixedMatrix)
    prime: Optional[int] = None


# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------

_Builder = Callable[[List[Sexp], str], Expression]
_BUILDERS: Dict[str, _Builder] = {}


def _register(*tags: str):
    def deco(fn: _Builder) -> _Builder:
        for tag in tags:
            _BUILDERS[tag] = fn
        return fn
    return deco


def _bad(path: str, message: str) -> CircuitFormatError:
    return CircuitFormatError(
        message, code=ErrorCodes.MALFORMED_EXPRESSION, context={"path": path},
    )


def parse_expression(text: Union[str, int], path: str = "<expr>") -> Expression:
    """Parse one expression from its S-expression text."""
    if isinstance(text, bool):
        raise _bad(path, f"expected an expression, got {text!r}")
    if isinstance(text, int):
        return Constant(text)
    if not isinstance(text, str):
        raise _bad(path, f"expected an expression string, got {type(text).__name__}")
    try:
        raw = sexpdata.loads(text, nil=None, true=None, false=None)
    except Exception as exc:
        raise _bad(path, f"S-expression syntax error: {exc}") from exc
    return _build(raw, path)


def _build(s: Sexp, path: str) -> Expression:
    if isinstance(s, int) and not isinstance(s, bool):
        return Constant(s)
    if not (isinstance(s, list) and s and isinstance(s[0], Symbol)):
        raise _bad(path, f"malformed expression {sexpdata.dumps(s)}")
    tag = s[0].value()
    builder = _BUILDERS.get(tag)
    if builder is None:
        raise _bad(path, f"unknown expression form {tag!r}")
    return builder(s[1:], path)


def _ints(args: List[Sexp], count: int, tag: str, path: str) -> List[int]:
    if len(args) != count or not all(isinstance(a, int) and not isinstance(a, bool) for a in args):
        raise _bad(path, f"({tag} ...) takes {count} integer argument(s)")
    return list(args)


@_register("const")
def _build_const(args, path):
    (value,) = _ints(args, 1, "const", path)
    return Constant(value)


@_register("selector")
def _build_selector(args, path):
    (index,) = _ints(args, 1, "selector", path)
    return Selector(index)


@_register("fixed")
def _build_fixed(args, path):
    return FixedQuery(*_ints(args, 2, "fixed", path))


@_register("advice")
def _build_advice(args, path):
    return AdviceQuery(*_ints(args, 2, "advice", path))


@_register("instance")
def _build_instance(args, path):
    return InstanceQuery(*_ints(args, 2, "instance", path))


@_register("-")
def _build_minus(args, path):
    if len(args) == 1:
        return Negated(_build(args[0], path))
    if len(args) == 2:
        return Sum(_build(args[0], path), Negated(_build(args[1], path)))
    raise _bad(path, "(- ...) takes one or two operands")


@_register("+")
def _build_sum(args, path):
    if len(args) < 2:
        raise _bad(path, "(+ ...) takes at least two operands")
    return reduce(Sum, [_build(a, path) for a in args])


@_register("*")
def _build_product(args, path):
    if len(args) < 2:
        raise _bad(path, "(* ...) takes at least two operands")
    return reduce(Product, [_build(a, path) for a in args])


@_register("scale")
def _build_scale(args, path):
    if len(args) != 2 or not isinstance(args[1], int) or isinstance(args[1], bool):
        raise _bad(path, "(scale e k) takes an expression and an integer")
    return Scaled(_build(args[0], path), args[1])


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------

def _require(data: Any, kind: type, path: str) -> Any:
    if not isinstance(data, kind) or isinstance(data, bool):
        raise CircuitFormatError(
            f"expected {kind.__name__}, got {type(data).__name__}",
            context={"path": path},
        )
    return data


def _column(raw: Any, path: str) -> ColumnQuery:
    if not (isinstance(raw, list) and len(raw) == 3):
        raise CircuitFormatError(
            "column query must be [type, index, rotation]", context={"path": path},
        )
    kind, index, rotation = raw
    try:
        column_type = ColumnType(kind)
    except ValueError:
        raise CircuitFormatError(
            f"unknown column type {kind!r}", context={"path": path},
        ) from None
    _require(index, int, path)
    _require(rotation, int, path)
    return (Column(column_type, index), rotation)


def _copy_table(raw: Any, path: str) -> Dict[str, str]:
    table = _require(raw if raw is not None else {}, dict, path)
    for left, right in table.items():
        _require(right, str, f"{path}.{left}")
    return dict(table)


def _cell(raw: Any, path: str) -> CellValue:
    if raw is None:
        return UNASSIGNED
    if raw == "poison":
        return POISON
    if isinstance(raw, int) and not isinstance(raw, bool):
        return CellValue.assigned(raw)
    raise CircuitFormatError(
        f"fixed cell must be an integer, null or \"poison\", got {raw!r}",
        context={"path": path},
    )


def _gates(raw: Sequence[Any]) -> List[Gate]:
    gates = []
    for i, g in enumerate(raw):
        path = f"gates[{i}]"
        _require(g, dict, path)
        polys = _require(g.get("polys", []), list, f"{path}.polys")
        gates.append(Gate(
            name=str(g.get("name", f"gate-{i}")),
            polynomials=tuple(
                parse_expression(p, f"{path}.polys[{j}]") for j, p in enumerate(polys)
            ),
        ))
    return gates


def _lookups(raw: Sequence[Any]) -> List[Lookup]:
    lookups = []
    for i, lk in enumerate(raw):
        path = f"lookups[{i}]"
        _require(lk, dict, path)
        inputs = _require(lk.get("inputs", []), list, f"{path}.inputs")
        table = _require(lk.get("table", []), list, f"{path}.table")
        if len(inputs) != len(table):
            raise CircuitFormatError(
                "lookup inputs and table must have the same length",
                context={"path": path},
            )
        lookups.append(Lookup(
            name=str(lk.get("name", f"lookup-{i}")),
            input_expressions=tuple(
                parse_expression(e, f"{path}.inputs[{j}]") for j, e in enumerate(inputs)
            ),
            table_expressions=tuple(
                parse_expression(e, f"{path}.table[{j}]") for j, e in enumerate(table)
            ),
        ))
    return lookups


def _regions(raw: Sequence[Any], declared: Set[int]) -> List[Region]:
    regions = []
    for i, r in enumerate(raw):
        path = f"regions[{i}]"
        _require(r, dict, path)
        enabled = set()
        for j, pair in enumerate(_require(r.get("enabled_selectors", []), list,
                                          f"{path}.enabled_selectors")):
            at = f"{path}.enabled_selectors[{j}]"
            if not (isinstance(pair, list) and len(pair) == 2):
                raise CircuitFormatError("enabled selector must be [selector, row]",
                                         context={"path": at})
            sel, row = _require(pair[0], int, at), _require(pair[1], int, at)
            if sel not in declared:
                raise CircuitFormatError(
                    f"region enables selector {sel}, which is not declared",
                    code=ErrorCodes.UNDECLARED_SELECTOR,
                    context={"path": at},
                )
            enabled.add((sel, row))
        regions.append(Region(
            name=str(r.get("name", f"region-{i}")),
            row_count=_require(r.get("row_count", 0), int, f"{path}.row_count"),
            columns={
                _column(c, f"{path}.columns[{j}]")
                for j, c in enumerate(_require(r.get("columns", []), list, f"{path}.columns"))
            },
            enabled_selectors=enabled,
            advice_eq_table=_copy_table(r.get("advice_eq_table"), f"{path}.advice_eq_table"),
            eq_table=_copy_table(r.get("eq_table"), f"{path}.eq_table"),
        ))
    return regions


def circuit_from_dict(data: Dict[str, Any], name: str = "circuit") -> CircuitDescription:
    """Map a parsed JSON document onto the algebra model."""
    _require(data, dict, "$")
    num_selectors = data.get("num_selectors")
    if num_selectors is not None:
        _require(num_selectors, int, "num_selectors")

    cs = ConstraintSystem(
        gates=_gates(_require(data.get("gates", []), list, "gates")),
        lookups=_lookups(_require(data.get("lookups", []), list, "lookups")),
        num_selectors=num_selectors,
    )
    if "advice_queries" in data:
        queries = _require(data["advice_queries"], list, "advice_queries")
        for i, q in enumerate(queries):
            if not (isinstance(q, list) and len(q) == 2):
                raise CircuitFormatError("advice query must be [column, rotation]",
                                         context={"path": f"advice_queries[{i}]"})
            cs.advice_queries.append((
                Column(ColumnType.ADVICE, _require(q[0], int, f"advice_queries[{i}]")),
                _require(q[1], int, f"advice_queries[{i}]"),
            ))
    else:
        cs.advice_queries = cs.derive_advice_queries()

    layout = Layout(
        regions=_regions(_require(data.get("regions", []), list, "regions"),
                         cs.declared_selectors()),
        eq_table=_copy_table(data.get("eq_table"), "eq_table"),
    )

    fixed_raw = _require(data.get("fixed", []), list, "fixed")
    fixed = FixedMatrix([
        [_cell(v, f"fixed[{c}][{r}]") for r, v in enumerate(_require(col, list, f"fixed[{c}]"))]
        for c, col in enumerate(fixed_raw)
    ])

    # Large primes may be given as decimal strings.
    prime = data.get("prime")
    if prime is not None:
        if isinstance(prime, bool) or not isinstance(prime, (int, str)):
            raise CircuitFormatError("prime must be an integer", context={"path": "prime"})
        try:
            prime = int(prime)
        except ValueError:
            raise CircuitFormatError(
                f"prime must be an integer, got {prime!r}", context={"path": "prime"},
            ) from None

    logger.debug(
        "Loaded %s: %d gate(s), %d lookup(s), %d region(s), %d fixed column(s)",
        name, len(cs.gates), len(cs.lookups), len(layout.regions), len(fixed),
    )
    return CircuitDescription(
        name=str(data.get("name", name)), cs=cs, layout=layout, fixed=fixed, prime=prime,
    )


def loads_circuit(text: str, name: str = "circuit") -> CircuitDescription:
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise CircuitFormatError(
            f"invalid JSON: {exc}", context={"file": name}, cause=exc,
        ) from exc
    return circuit_from_dict(data, name)


def load_circuit(path: Union[str, Path]) -> CircuitDescription:
    """Read and parse a circuit description file."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CircuitFormatError(
            f"cannot read circuit description: {exc}",
            context={"file": str(path)}, cause=exc,
        ) from exc
    try:
        return loads_circuit(text, name=path.stem)
    except CircuitFormatError as exc:
        exc.context.setdefault("file", str(path))
        raise
