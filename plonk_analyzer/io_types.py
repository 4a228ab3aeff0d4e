"""
plonk_analyzer.io_types
=======================

Inputs and outputs exchanged with the collaborators around the analyzer:
the user-input collaborator supplies an :class:`AnalyzerInput`; the
reporting collaborator receives an :class:`AnalyzerOutput` and the
:class:`Finding` records accumulated during the run.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple


class AnalyzerType(Enum):
    UNUSED_GATES = "unused-gates"
    UNUSED_COLUMNS = "unused-columns"
    UNCONSTRAINED_CELLS = "unconstrained-cells"
    UNDERCONSTRAINED = "underconstrained"


class VerificationMethod(Enum):
    """How public inputs are chosen for the uniqueness search.

    SPECIFIC : one user-chosen assignment of every instance cell
    RANDOM   : solver-chosen assignments, blocked one by one
    """
    SPECIFIC = "specific"
    RANDOM = "random"


@dataclass(frozen=True)
class AnalyzerInput:
    """
    Verification mode plus the instance cells it applies to.

    Attributes
    ----------
    verification_method : VerificationMethod
    instances           : pinned value per instance cell (Specific mode)
    iterations          : iteration bound (Random mode; 1 for Specific)
    instance_names      : every instance cell known to the analyzer
    """
    verification_method: VerificationMethod
    instances: Mapping[str, int] = field(default_factory=dict)
    iterations: int = 1
    instance_names: Tuple[str, ...] = ()

    @classmethod
    def specific(cls, instances: Mapping[str, int]) -> "AnalyzerInput":
        return cls(
            VerificationMethod.SPECIFIC,
            instances=dict(instances),
            iterations=1,
            instance_names=tuple(instances),
        )

    @classmethod
    def random(cls, iterations: int, instance_names: Iterable[str] = ()) -> "AnalyzerInput":
        if iterations < 1:
            raise ValueError(f"iterations must be >= 1, got {iterations}")
        return cls(
            VerificationMethod.RANDOM,
            iterations=int(iterations),
            instance_names=tuple(instance_names),
        )

    @property
    def max_iterations(self) -> int:
        if self.verification_method is VerificationMethod.SPECIFIC:
            return 1
        return self.iterations


class AnalyzerOutputStatus(Enum):
    UNUSED_CUSTOM_GATES = "unused-custom-gates"
    UNUSED_COLUMNS = "unused-columns"
    UNCONSTRAINED_CELLS = "unconstrained-cells"
    OVERCONSTRAINED = "overconstrained"
    UNDERCONSTRAINED = "underconstrained"
    NOT_UNDERCONSTRAINED = "not-underconstrained"
    NOT_UNDERCONSTRAINED_LOCAL = "not-underconstrained-local"
    INVALID = "invalid"

    @property
    def is_violation(self) -> bool:
        """Verdicts that prove the circuit wrong."""
        return self in (
            AnalyzerOutputStatus.UNDERCONSTRAINED,
            AnalyzerOutputStatus.OVERCONSTRAINED,
        )


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"
    STYLE = "style"
    INFORMATION = "information"


@dataclass(frozen=True)
class Finding:
    """
    A single reported problem.

    Attributes
    ----------
    finding_id : identifier of the kind of problem (e.g. "unusedGate")
    message    : human-readable description
    severity   : Severity
    location   : gate, column or region the finding refers to
    evidence   : machine-readable details for downstream tooling
    """
    finding_id: str
    message: str
    severity: Severity = Severity.WARNING
    location: str = ""
    evidence: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "id": self.finding_id,
            "severity": self.severity.value,
            "message": self.message,
            "location": self.location,
        }
        if self.evidence:
            result["evidence"] = self.evidence
        return result

    def to_json_str(self) -> str:
        return json.dumps(self.to_json())

    def to_gcc_format(self) -> str:
        """GCC-style line: location: severity: message [id]."""
        return f"{self.location}: {self.severity.value}: {self.message} [{self.finding_id}]"


@dataclass
class AnalyzerOutput:
    output_status: AnalyzerOutputStatus = AnalyzerOutputStatus.INVALID
    findings: Tuple[Finding, ...] = ()
    counterexample: Optional[Tuple[Dict[str, int], Dict[str, int]]] = None

    def to_json(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "status": self.output_status.value,
            "findings": [f.to_json() for f in self.findings],
        }
        if self.counterexample is not None:
            first, second = self.counterexample
            result["counterexample"] = {"first": first, "second": second}
        return result
