"""
plonk_analyzer/errors.py
========================

Error hierarchy for the circuit analyzer.

Hierarchy
---------
::

    AnalyzerError (base)
    ├── CircuitFormatError        - malformed circuit description
    ├── EncodingFailure           - unexpected expression shape during encoding
    ├── SolverInvocationFailure   - solver process missing, stuck or unparsable
    └── ModelLookupFailure        - a tracked variable is absent from a model

Error codes follow the pattern ``PLNK-NNNN``:

  - 1000-1999: circuit loading
  - 2000-2999: symbolic encoding
  - 3000-3999: solver gateway
  - 9000-9999: internal

None of these errors are retried.  The uniqueness search loop is a search,
not a retry loop, so every failure aborts the current analysis and
propagates to the caller with the stage that produced it.
"""

from __future__ import annotations

from enum import Enum, unique
from typing import Any, Dict, Optional


@unique
class ErrorStage(Enum):
    """Analysis stage where the error occurred."""

    LOADING = "loading"
    ENCODING = "encoding"
    SOLVING = "solving"
    INTERNAL = "internal"


class ErrorCode:
    """A structured ``PREFIX-NNNN`` error code bound to a stage."""

    __slots__ = ("prefix", "number", "stage")

    def __init__(self, prefix: str, number: int, stage: ErrorStage) -> None:
        self.prefix = prefix
        self.number = number
        self.stage = stage

    @property
    def code(self) -> str:
        return f"{self.prefix}-{self.number:04d}"

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"ErrorCode({self.code!r}, {self.stage.name})"

    def __hash__(self) -> int:
        return hash((self.prefix, self.number))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ErrorCode):
            return self.prefix == other.prefix and self.number == other.number
        if isinstance(other, str):
            return self.code == other
        return False


class ErrorCodes:
    """Predefined error codes."""

    MALFORMED_DOCUMENT = ErrorCode("PLNK", 1000, ErrorStage.LOADING)
    MALFORMED_EXPRESSION = ErrorCode("PLNK", 1001, ErrorStage.LOADING)
    UNDECLARED_SELECTOR = ErrorCode("PLNK", 1002, ErrorStage.LOADING)

    UNEXPECTED_EXPRESSION = ErrorCode("PLNK", 2000, ErrorStage.ENCODING)
    INSTANCE_IN_POLYNOMIAL = ErrorCode("PLNK", 2001, ErrorStage.ENCODING)
    UNBALANCED_SCOPE = ErrorCode("PLNK", 2002, ErrorStage.ENCODING)

    SOLVER_NOT_FOUND = ErrorCode("PLNK", 3000, ErrorStage.SOLVING)
    SOLVER_TIMEOUT = ErrorCode("PLNK", 3001, ErrorStage.SOLVING)
    UNPARSABLE_RESPONSE = ErrorCode("PLNK", 3002, ErrorStage.SOLVING)
    SOLVER_ERROR = ErrorCode("PLNK", 3003, ErrorStage.SOLVING)
    SEARCH_SPACE_TOO_LARGE = ErrorCode("PLNK", 3004, ErrorStage.SOLVING)
    MISSING_MODEL_VALUE = ErrorCode("PLNK", 3005, ErrorStage.SOLVING)

    INTERNAL_ERROR = ErrorCode("PLNK", 9000, ErrorStage.INTERNAL)


class AnalyzerError(Exception):
    """
    Base exception for all analyzer errors.

    Carries an :class:`ErrorCode` and a free-form ``context`` mapping
    (which file, region, row or query failed) so that a failure can be
    diagnosed without re-running the analysis.
    """

    default_code: ErrorCode = ErrorCodes.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.context: Dict[str, Any] = dict(context or {})
        self.cause = cause

    @property
    def stage(self) -> ErrorStage:
        return self.code.stage

    def __str__(self) -> str:
        text = f"[{self.code}] {self.stage.value}: {self.message}"
        if self.context:
            details = ", ".join(f"{k}={v}" for k, v in self.context.items())
            text = f"{text} ({details})"
        return text


class CircuitFormatError(AnalyzerError):
    """A circuit description could not be mapped onto the algebra model."""

    default_code = ErrorCodes.MALFORMED_DOCUMENT


class EncodingFailure(AnalyzerError):
    """An expression had an unexpected shape during symbolic encoding."""

    default_code = ErrorCodes.UNEXPECTED_EXPRESSION


class SolverInvocationFailure(AnalyzerError):
    """The solver could not be started, timed out, or answered garbage."""

    default_code = ErrorCodes.SOLVER_ERROR


class ModelLookupFailure(AnalyzerError):
    """A variable expected in a satisfying model is absent from it."""

    default_code = ErrorCodes.MISSING_MODEL_VALUE
