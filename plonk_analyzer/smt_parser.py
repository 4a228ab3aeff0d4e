"""
plonk_analyzer.smt_parser
=========================

Parsing on both sides of the solver boundary, built on ``sexpdata``:

* :func:`parse_response` turns the textual output of an SMT solver into a
  :class:`Model`;
* :func:`interpret_script` replays an SMT-LIB script written by
  :class:`~plonk_analyzer.smt.Printer` and returns the assertions that are
  live at its ``(check-sat)``, for the in-process backends.

Solver output looks like::

    sat
    ((A-0-0-0 #f3m7))
    ((A-0-1-0 #f-1m7))

Field values are accepted as cvc5 ``#f<v>m<p>`` literals (cvc5 may print a
negative representative), as ``(as ff<v> F)`` terms, or as plain integers.
Every value is normalized into ``[0, p)``.
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import sexpdata
from sexpdata import Symbol

from .errors import ErrorCodes, ModelLookupFailure, SolverInvocationFailure

logger = logging.getLogger(__name__)

Sexp = Any  # Union[list, Symbol, str, int, float]

_FF_LITERAL = re.compile(r"^#f(-?\d+)m(\d+)$")
_FF_CONSTANT = re.compile(r"^ff(-?\d+)$")


class Satisfiability(enum.Enum):
    SAT = "sat"
    UNSAT = "unsat"
    UNKNOWN = "unknown"


@dataclass
class Model:
    """Verdict of one solver query plus, when satisfiable, its assignment.

    Attributes
    ----------
    sat : Satisfiability
    assignments : dict[str, int]
        Map from variable name to a field element in ``[0, p)``.
    """
    sat: Satisfiability
    assignments: Dict[str, int] = field(default_factory=dict)

    @property
    def is_sat(self) -> bool:
        return self.sat is Satisfiability.SAT

    @property
    def is_unsat(self) -> bool:
        return self.sat is Satisfiability.UNSAT

    def __getitem__(self, name: str) -> int:
        try:
            return self.assignments[name]
        except KeyError:
            raise ModelLookupFailure(
                f"variable {name!r} is missing from the solver model",
                context={"verdict": self.sat.value, "known": len(self.assignments)},
            ) from None

    def __contains__(self, name: object) -> bool:
        return name in self.assignments

    def get(self, name: str, default: Optional[int] = None) -> Optional[int]:
        return self.assignments.get(name, default)


# ---------------------------------------------------------------------------
# sexpdata helpers
# ---------------------------------------------------------------------------

def _loads_all(text: str) -> List[Sexp]:
    """Parse every top-level form in *text*."""
    # Disable nil/true/false auto-mapping so SMT-LIB's ``true`` and
    # ``false`` stay symbols.
    try:
        forms = sexpdata.loads(f"({text}\n)", nil=None, true=None, false=None)
    except Exception as exc:
        raise SolverInvocationFailure(
            f"S-expression syntax error: {exc}",
            code=ErrorCodes.UNPARSABLE_RESPONSE,
            cause=exc,
        ) from exc
    return list(forms)


def sym_name(s: Sexp) -> Optional[str]:
    """Name of a :class:`sexpdata.Symbol`, or ``None`` for other atoms."""
    if isinstance(s, Symbol):
        return s.value()
    return None


def head(form: Sexp) -> Optional[str]:
    """Name of the operator symbol of a list form."""
    if isinstance(form, list) and form:
        return sym_name(form[0])
    return None


def field_value(s: Sexp, prime: Optional[int] = None) -> Optional[int]:
    """Decode a field literal; ``None`` when *s* is not a literal.

    Without *prime*, ``(as ffN F)`` and plain integers are returned as-is;
    ``#f<v>m<p>`` always carries its own modulus.
    """
    if isinstance(s, bool):
        return None
    if isinstance(s, int):
        return s % prime if prime else s
    name = sym_name(s)
    if name is not None:
        m = _FF_LITERAL.match(name)
        if m:
            value, modulus = int(m.group(1)), int(m.group(2))
            return value % modulus
        return None
    if head(s) == "as" and len(s) == 3:
        m = _FF_CONSTANT.match(sym_name(s[1]) or "")
        if m:
            value = int(m.group(1))
            return value % prime if prime else value
    return None


# ---------------------------------------------------------------------------
# solver responses
# ---------------------------------------------------------------------------

def parse_response(text: str, prime: Optional[int] = None) -> Model:
    """Parse solver stdout into a :class:`Model`.

    Raises
    ------
    SolverInvocationFailure
        On an ``(error ...)`` form, a missing verdict, or any output that is
        not a verdict followed by ``get-value`` responses.
    """
    forms = _loads_all(text)
    if not forms:
        raise SolverInvocationFailure(
            "solver produced no output", code=ErrorCodes.UNPARSABLE_RESPONSE,
        )

    verdict: Optional[Satisfiability] = None
    assignments: Dict[str, int] = {}
    for form in forms:
        if verdict is not None and verdict is not Satisfiability.SAT:
            # get-value is rejected after unsat/unknown; nothing more to read.
            logger.debug("Ignoring output after %s verdict", verdict.value)
            break
        if head(form) == "error":
            message = form[1] if len(form) > 1 else ""
            raise SolverInvocationFailure(
                f"solver reported an error: {message}",
                code=ErrorCodes.SOLVER_ERROR,
            )
        if verdict is None:
            name = sym_name(form)
            try:
                verdict = Satisfiability(name)
            except ValueError:
                raise SolverInvocationFailure(
                    f"expected a verdict, got {sexpdata.dumps(form)!r}",
                    code=ErrorCodes.UNPARSABLE_RESPONSE,
                ) from None
            continue
        _collect_values(form, assignments, prime)

    logger.debug("Solver verdict %s with %d value(s)", verdict.value, len(assignments))
    return Model(verdict, assignments)


def _collect_values(form: Sexp, out: Dict[str, int], prime: Optional[int]) -> None:
    if not isinstance(form, list):
        raise SolverInvocationFailure(
            f"unexpected solver output {sexpdata.dumps(form)!r}",
            code=ErrorCodes.UNPARSABLE_RESPONSE,
        )
    for pair in form:
        if not (isinstance(pair, list) and len(pair) == 2):
            raise SolverInvocationFailure(
                f"malformed get-value entry {sexpdata.dumps(pair)!r}",
                code=ErrorCodes.UNPARSABLE_RESPONSE,
            )
        name = sym_name(pair[0])
        value = field_value(pair[1], prime)
        if name is None or value is None:
            raise SolverInvocationFailure(
                f"malformed get-value entry {sexpdata.dumps(pair)!r}",
                code=ErrorCodes.UNPARSABLE_RESPONSE,
            )
        out[name] = value


# ---------------------------------------------------------------------------
# scripts
# ---------------------------------------------------------------------------

@dataclass
class SmtQuery:
    """State of an SMT-LIB script at its ``(check-sat)``.

    Attributes
    ----------
    prime : int or None
        Field order from the ``define-sort`` command.
    variables : list[str]
        Declared constants still in scope, in declaration order.
    assertions : list
        Raw ``sexpdata`` bodies of the live assertions.
    get_values : list[str]
        Variables requested with ``get-value``.
    check_sat : bool
    """
    prime: Optional[int] = None
    variables: List[str] = field(default_factory=list)
    assertions: List[Sexp] = field(default_factory=list)
    get_values: List[str] = field(default_factory=list)
    check_sat: bool = False


def interpret_script(text: str) -> SmtQuery:
    """Replay declarations, assertions and scopes of an SMT-LIB script."""
    query = SmtQuery()
    frames: List[tuple] = []
    for form in _loads_all(text):
        command = head(form)
        if command in ("set-logic", "set-option", "set-info", "exit"):
            continue
        if command == "define-sort":
            query.prime = _sort_prime(form)
        elif command in ("declare-fun", "declare-const"):
            query.variables.append(sym_name(form[1]))
        elif command == "assert":
            query.assertions.append(form[1])
        elif command == "push":
            levels = form[1] if len(form) > 1 else 1
            for _ in range(levels):
                frames.append((len(query.variables), len(query.assertions)))
        elif command == "pop":
            levels = form[1] if len(form) > 1 else 1
            if levels > len(frames):
                raise SolverInvocationFailure(
                    "pop without matching push", code=ErrorCodes.SOLVER_ERROR,
                )
            for _ in range(levels):
                n_vars, n_asserts = frames.pop()
                del query.variables[n_vars:]
                del query.assertions[n_asserts:]
        elif command == "check-sat":
            query.check_sat = True
        elif command == "get-value":
            query.get_values.extend(sym_name(t) for t in form[1])
        else:
            raise SolverInvocationFailure(
                f"unsupported command {sexpdata.dumps(form)!r}",
                code=ErrorCodes.SOLVER_ERROR,
            )
    return query


def _sort_prime(form: Sexp) -> int:
    # (define-sort F () (_ FiniteField p))
    try:
        sort = form[3]
        if head(sort) == "_" and sym_name(sort[1]) == "FiniteField":
            return int(sort[2])
    except (IndexError, TypeError, ValueError):
        pass
    raise SolverInvocationFailure(
        f"unsupported sort definition {sexpdata.dumps(form)!r}",
        code=ErrorCodes.SOLVER_ERROR,
    )
