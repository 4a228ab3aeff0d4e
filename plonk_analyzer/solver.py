"""
plonk_analyzer.solver
=====================

Solver gateway: the narrow ``submit(query) -> Model`` capability the
uniqueness prover depends on, and its backends.

Backends
--------
:class:`CVC5Backend`
    Runs the external ``cvc5`` binary on a temporary ``.smt2`` file.  This
    is the production backend; cvc5 decides ``QF_FF`` natively.
:class:`EnumerativeBackend`
    Built-in, no external dependencies.  Replays the script and searches
    assignments exhaustively with equality propagation.  Only practical for
    small primes; used for toy circuits and the test-suite.
:class:`Z3Backend`
    Optional (``pip install z3-solver``).  Encodes field arithmetic as
    bounded integer arithmetic modulo ``p``.

None of the backends retry.  A missing binary, a timeout or unreadable
output raises :class:`~plonk_analyzer.errors.SolverInvocationFailure`.
"""

from __future__ import annotations

import abc
import logging
import os
import subprocess
import tempfile
import warnings
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Set

from sexpdata import Symbol

from .errors import ErrorCodes, SolverInvocationFailure
from .smt_parser import (
    Model,
    Satisfiability,
    SmtQuery,
    field_value,
    head,
    interpret_script,
    parse_response,
    sym_name,
)

if TYPE_CHECKING:
    from .config import AnalyzerConfig

logger = logging.getLogger(__name__)

__all__ = [
    "Satisfiability",
    "Model",
    "SMTSolver",
    "CVC5Backend",
    "EnumerativeBackend",
    "Z3Backend",
    "make_solver",
]


class SMTSolver(abc.ABC):
    """Abstract interface to an SMT solver.

    A query is a complete SMT-LIB script ending in ``(check-sat)`` and
    ``get-value`` commands; the answer is the parsed :class:`Model`.
    """

    name: str = "abstract"

    @abc.abstractmethod
    def submit(self, query: str) -> Model:
        """Decide *query* and return the verdict and requested values."""
        ...


# ---- cvc5 Backend ---------------------------------------------------------

class CVC5Backend(SMTSolver):
    """Invokes an external cvc5 process once per query.

    Parameters
    ----------
    executable : str
        Name or path of the cvc5 binary.
    timeout : float or None
        Seconds before the process is killed.  A stuck solver is fatal to
        the analysis.
    extra_args : list[str]
        Additional command-line options passed before the script path.
    """

    name = "cvc5"

    def __init__(
        self,
        executable: str = "cvc5",
        timeout: Optional[float] = 300.0,
        extra_args: Optional[List[str]] = None,
    ) -> None:
        self.executable = executable
        self.timeout = timeout
        self.extra_args = list(extra_args or [])

    def submit(self, query: str) -> Model:
        fd, path = tempfile.mkstemp(prefix="plonk-", suffix=".smt2")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(query)
            return self._run(path)
        finally:
            os.unlink(path)

    def _run(self, path: str) -> Model:
        cmd = [self.executable, *self.extra_args, path]
        logger.debug("Running %s", " ".join(cmd))
        try:
            proc = subprocess.run(
                cmd, capture_output=True, text=True, timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            raise SolverInvocationFailure(
                f"solver executable {self.executable!r} not found",
                code=ErrorCodes.SOLVER_NOT_FOUND,
                cause=exc,
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise SolverInvocationFailure(
                f"solver did not answer within {self.timeout}s",
                code=ErrorCodes.SOLVER_TIMEOUT,
                context={"script": path},
                cause=exc,
            ) from exc

        if not proc.stdout.strip():
            raise SolverInvocationFailure(
                f"solver exited with status {proc.returncode} and no output",
                code=ErrorCodes.UNPARSABLE_RESPONSE,
                context={"stderr": proc.stderr.strip()[:200]},
            )
        try:
            return parse_response(proc.stdout)
        except SolverInvocationFailure as exc:
            # The script is gone once submit() returns; keep what cvc5 said.
            exc.context.setdefault("stdout", proc.stdout.strip()[:200])
            raise


# ---- Enumerative Backend --------------------------------------------------

_Op = Callable[[List[Any], int], Any]
_OPS: Dict[str, _Op] = {}


def _register(*names: str):
    def deco(fn: _Op) -> _Op:
        for name in names:
            _OPS[name] = fn
        return fn
    return deco


@_register("ff.add")
def _ff_add(args, p):
    return sum(args) % p


@_register("ff.mul")
def _ff_mul(args, p):
    acc = 1
    for a in args:
        acc = acc * a % p
    return acc


@_register("ff.neg")
def _ff_neg(args, p):
    return -args[0] % p


@_register("=")
def _eq(args, p):
    return all(a == args[0] for a in args[1:])


@_register("distinct")
def _distinct(args, p):
    return len(set(args)) == len(args)


@_register("not")
def _not(args, p):
    return not args[0]


@_register("and")
def _and(args, p):
    return all(args)


@_register("or")
def _or(args, p):
    return any(args)


def evaluate(form: Any, env: Dict[str, int], prime: int) -> Any:
    """Evaluate an SMT-LIB term over concrete field values."""
    if isinstance(form, Symbol):
        name = form.value()
        if name == "true":
            return True
        if name == "false":
            return False
        if name in env:
            return env[name]
        literal = field_value(form, prime)
        if literal is not None:
            return literal % prime
        raise SolverInvocationFailure(
            f"undeclared symbol {name!r}", code=ErrorCodes.SOLVER_ERROR,
        )
    literal = field_value(form, prime)
    if literal is not None:
        return literal
    op = _OPS.get(head(form))
    if op is None:
        raise SolverInvocationFailure(
            f"unsupported term {form!r}", code=ErrorCodes.SOLVER_ERROR,
        )
    return op([evaluate(arg, env, prime) for arg in form[1:]], prime)


def free_symbols(form: Any, declared: Set[str]) -> Set[str]:
    """Declared variables occurring in *form*."""
    found: Set[str] = set()
    stack = [form]
    while stack:
        node = stack.pop()
        if isinstance(node, list):
            stack.extend(node)
        else:
            name = sym_name(node)
            if name in declared:
                found.add(name)
    return found


class EnumerativeBackend(SMTSolver):
    """A built-in solver for small fields (no external dependencies).

    Assertions of the form ``(= x y)`` between two variables merge them
    into one class and ``(= x c)`` against a literal narrows a class to a
    single value.  The remaining classes are assigned depth-first in
    declaration order; each assertion is checked as soon as its last
    variable is assigned.

    Parameters
    ----------
    max_assignments : int
        Upper bound on partial assignments tried before giving up with
        ``SEARCH_SPACE_TOO_LARGE``.
    """

    name = "enumerative"

    def __init__(self, max_assignments: int = 1_000_000) -> None:
        self.max_assignments = max_assignments

    def submit(self, query: str) -> Model:
        script = interpret_script(query)
        if not script.check_sat:
            raise SolverInvocationFailure(
                "query has no (check-sat) command", code=ErrorCodes.SOLVER_ERROR,
            )
        if script.prime is None:
            raise SolverInvocationFailure(
                "query does not define a finite-field sort",
                code=ErrorCodes.SOLVER_ERROR,
            )
        env = self._solve(script)
        if env is None:
            logger.debug("enumerative: unsat")
            return Model(Satisfiability.UNSAT)
        wanted = script.get_values or script.variables
        return Model(Satisfiability.SAT, {name: env[name] for name in wanted})

    # -- search -------------------------------------------------------------

    def _solve(self, script: SmtQuery) -> Optional[Dict[str, int]]:
        p = script.prime
        declared = set(script.variables)
        parent = {v: v for v in script.variables}

        def find(v: str) -> str:
            while parent[v] != v:
                parent[v] = parent[parent[v]]
                v = parent[v]
            return v

        pinned: Dict[str, List[Any]] = {}
        for form in script.assertions:
            if head(form) != "=" or len(form) != 3:
                continue
            left, right = sym_name(form[1]), sym_name(form[2])
            if left in declared and right in declared:
                parent[find(left)] = find(right)
            elif left in declared or right in declared:
                var, other = (form[1], form[2]) if left in declared else (form[2], form[1])
                if not free_symbols(other, declared):
                    pinned.setdefault(sym_name(var), []).append(other)

        domains: Dict[str, List[int]] = {}
        for var, terms in pinned.items():
            values = {evaluate(t, {}, p) for t in terms}
            rep = find(var)
            current = set(domains.get(rep, range(p)))
            domains[rep] = sorted(current & values)
            if not domains[rep]:
                return None

        reps: List[str] = []
        members: Dict[str, List[str]] = {}
        for v in script.variables:
            rep = find(v)
            if rep not in members:
                members[rep] = []
                reps.append(rep)
            members[rep].append(v)
        position = {rep: i for i, rep in enumerate(reps)}

        # Each assertion is due at the position of its last class.
        due: List[List[Any]] = [[] for _ in reps]
        env: Dict[str, int] = {}
        for form in script.assertions:
            classes = {find(v) for v in free_symbols(form, declared)}
            if not classes:
                if not evaluate(form, env, p):
                    return None
                continue
            due[max(position[c] for c in classes)].append(form)

        budget = [self.max_assignments]

        def search(i: int) -> bool:
            if i == len(reps):
                return True
            rep = reps[i]
            for value in domains.get(rep, range(p)):
                budget[0] -= 1
                if budget[0] < 0:
                    raise SolverInvocationFailure(
                        f"more than {self.max_assignments} assignments explored",
                        code=ErrorCodes.SEARCH_SPACE_TOO_LARGE,
                        context={"variables": len(script.variables), "prime": p},
                    )
                for v in members[rep]:
                    env[v] = value
                if all(evaluate(f, env, p) for f in due[i]) and search(i + 1):
                    return True
            for v in members[rep]:
                env.pop(v, None)
            return False

        return dict(env) if search(0) else None


# ---- Z3 Backend -----------------------------------------------------------

class Z3Backend(SMTSolver):
    """SMT solver backend using the Z3 theorem prover.

    Requires the ``z3-solver`` package (``pip install z3-solver``).  Field
    elements become integers constrained to ``[0, p)`` and every field
    operation is reduced modulo ``p``.
    """

    name = "z3"

    def __init__(self, timeout: Optional[float] = 300.0) -> None:
        self.timeout = timeout
        self._z3 = None
        try:
            import z3  # type: ignore
            self._z3 = z3
        except ImportError:
            warnings.warn(
                "z3-solver not installed; Z3Backend will not function. "
                "Install with: pip install z3-solver",
                stacklevel=2,
            )

    @property
    def available(self) -> bool:
        return self._z3 is not None

    def submit(self, query: str) -> Model:
        if not self.available:
            raise SolverInvocationFailure(
                "z3-solver is not installed", code=ErrorCodes.SOLVER_NOT_FOUND,
            )
        z3 = self._z3
        script = interpret_script(query)
        if script.prime is None:
            raise SolverInvocationFailure(
                "query does not define a finite-field sort",
                code=ErrorCodes.SOLVER_ERROR,
            )
        p = script.prime

        solver = z3.Solver()
        if self.timeout:
            solver.set("timeout", int(self.timeout * 1000))
        var_cache: Dict[str, Any] = {}
        for name in script.variables:
            var = z3.Int(name)
            var_cache[name] = var
            solver.add(var >= 0, var < p)
        for form in script.assertions:
            solver.add(self._to_z3(form, var_cache, p))

        result = solver.check()
        if result == z3.unsat:
            return Model(Satisfiability.UNSAT)
        if result != z3.sat:
            return Model(Satisfiability.UNKNOWN)

        model = solver.model()
        wanted = script.get_values or script.variables
        assignments = {
            name: model.eval(var_cache[name], model_completion=True).as_long() % p
            for name in wanted
        }
        return Model(Satisfiability.SAT, assignments)

    def _to_z3(self, form: Any, var_cache: Dict[str, Any], p: int) -> Any:
        z3 = self._z3
        if isinstance(form, Symbol):
            name = form.value()
            if name == "true":
                return z3.BoolVal(True)
            if name == "false":
                return z3.BoolVal(False)
            if name in var_cache:
                return var_cache[name]
        literal = field_value(form, p)
        if literal is not None:
            return z3.IntVal(literal)
        if not isinstance(form, list):
            raise SolverInvocationFailure(
                f"undeclared symbol {form!r}", code=ErrorCodes.SOLVER_ERROR,
            )

        op = head(form)
        args = [self._to_z3(a, var_cache, p) for a in form[1:]]
        if op == "ff.add":
            return z3.Sum(args) % p
        if op == "ff.mul":
            acc = args[0]
            for a in args[1:]:
                acc = (acc * a) % p
            return acc % p
        if op == "ff.neg":
            return (p - args[0]) % p
        if op == "=":
            return z3.And([args[0] == a for a in args[1:]])
        if op == "distinct":
            return z3.Distinct(args)
        if op == "not":
            return z3.Not(args[0])
        if op == "and":
            return z3.And(args)
        if op == "or":
            return z3.Or(args)
        raise SolverInvocationFailure(
            f"unsupported term {form!r}", code=ErrorCodes.SOLVER_ERROR,
        )


# ---- factory --------------------------------------------------------------

def make_solver(config: "AnalyzerConfig") -> SMTSolver:
    """Instantiate the backend named by ``config.solver``."""
    if config.solver == "cvc5":
        return CVC5Backend(config.solver_path or "cvc5", timeout=config.solver_timeout)
    if config.solver == "enumerative":
        return EnumerativeBackend(max_assignments=config.enumeration_limit)
    if config.solver == "z3":
        return Z3Backend(timeout=config.solver_timeout)
    raise ValueError(f"unknown solver backend {config.solver!r}")
