"""
plonk_analyzer.config
=====================

Tuning knobs for an analysis run.  Values come from defaults, then an
optional JSON configuration file (``--config``), then command-line flags.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, List, Mapping, Optional, Union

from .errors import CircuitFormatError

logger = logging.getLogger(__name__)

# Scalar field of BN254, the curve most halo2 circuits are built over.
BN254_SCALAR_PRIME = (
    21888242871839275222246405745257275088548364400416034343698204186575808495617
)

SOLVER_BACKENDS = ("cvc5", "enumerative", "z3")


@dataclass
class AnalyzerConfig:
    """Tuning knobs for the analyzer."""
    prime: int = BN254_SCALAR_PRIME
    solver: str = "cvc5"
    solver_path: Optional[str] = None
    solver_timeout: Optional[float] = 300.0
    random_iterations: int = 10
    enumeration_limit: int = 1_000_000
    smt_output: Optional[Path] = None

    def validate(self) -> List[str]:
        """Return a list of validation warnings (empty if valid)."""
        warnings: List[str] = []
        if self.prime < 2:
            warnings.append("prime must be at least 2")
        if self.solver not in SOLVER_BACKENDS:
            warnings.append(
                f"solver must be one of {', '.join(SOLVER_BACKENDS)}, got {self.solver!r}"
            )
        if self.solver_timeout is not None and self.solver_timeout <= 0:
            warnings.append("solver_timeout must be positive")
        if self.random_iterations <= 0:
            warnings.append("random_iterations must be positive")
        if self.enumeration_limit <= 0:
            warnings.append("enumeration_limit must be positive")
        if self.solver == "enumerative" and self.prime > 1_000:
            warnings.append("the enumerative solver is only practical for small primes")
        return warnings

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AnalyzerConfig":
        """Build from a parsed JSON object; unknown keys are ignored."""
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            if key not in known:
                logger.warning("Ignoring unknown configuration key %r", key)
                continue
            kwargs[key] = value
        if "prime" in kwargs:
            kwargs["prime"] = int(kwargs["prime"])
        if kwargs.get("smt_output") is not None:
            kwargs["smt_output"] = Path(kwargs["smt_output"])
        return cls(**kwargs)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "AnalyzerConfig":
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise CircuitFormatError(
                f"cannot read configuration: {exc}",
                context={"file": str(path)},
                cause=exc,
            ) from exc
        if not isinstance(data, dict):
            raise CircuitFormatError(
                "configuration must be a JSON object", context={"file": str(path)},
            )
        return cls.from_mapping(data)
