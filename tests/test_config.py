# tests/test_config.py
"""
Tests for configuration loading, finding formatting and error rendering.
"""

import json
from pathlib import Path

import pytest

from plonk_analyzer.config import BN254_SCALAR_PRIME, AnalyzerConfig
from plonk_analyzer.errors import (
    AnalyzerError,
    CircuitFormatError,
    ErrorCodes,
    ErrorStage,
    SolverInvocationFailure,
)
from plonk_analyzer.io_types import (
    AnalyzerInput,
    AnalyzerOutput,
    AnalyzerOutputStatus,
    Finding,
    Severity,
    VerificationMethod,
)


class TestAnalyzerConfig:

    def test_defaults_are_valid(self):
        config = AnalyzerConfig()
        assert config.prime == BN254_SCALAR_PRIME
        assert config.solver == "cvc5"
        assert config.validate() == []

    @pytest.mark.parametrize("kwargs, needle", [
        ({"prime": 1}, "prime"),
        ({"solver": "yices"}, "solver"),
        ({"solver_timeout": 0}, "solver_timeout"),
        ({"random_iterations": 0}, "random_iterations"),
        ({"enumeration_limit": -1}, "enumeration_limit"),
        ({"solver": "enumerative"}, "small primes"),
    ])
    def test_validate_warnings(self, kwargs, needle):
        warnings = AnalyzerConfig(**kwargs).validate()
        assert any(needle in w for w in warnings)

    def test_enumerative_over_small_prime_is_fine(self):
        assert AnalyzerConfig(solver="enumerative", prime=7).validate() == []

    def test_from_mapping(self, caplog):
        config = AnalyzerConfig.from_mapping({
            "prime": "7",
            "solver": "z3",
            "smt_output": "out/base.smt2",
            "colour": "blue",
        })
        assert config.prime == 7
        assert config.solver == "z3"
        assert config.smt_output == Path("out/base.smt2")
        assert "colour" in caplog.text

    def test_from_file(self, tmp_path):
        path = tmp_path / "cfg.json"
        path.write_text(json.dumps({"random_iterations": 3}))
        assert AnalyzerConfig.from_file(path).random_iterations == 3

    @pytest.mark.parametrize("content", ["{broken", "[1, 2]"])
    def test_bad_file(self, tmp_path, content):
        path = tmp_path / "cfg.json"
        path.write_text(content)
        with pytest.raises(CircuitFormatError):
            AnalyzerConfig.from_file(path)


class TestAnalyzerInput:

    def test_specific_runs_once(self):
        inp = AnalyzerInput.specific({"I-0-0": 5})
        assert inp.verification_method is VerificationMethod.SPECIFIC
        assert inp.max_iterations == 1
        assert inp.instance_names == ("I-0-0",)

    def test_random(self):
        inp = AnalyzerInput.random(4, {"I-0-0": 0})
        assert inp.max_iterations == 4
        assert inp.instances == {}
        assert inp.instance_names == ("I-0-0",)

    def test_random_needs_an_iteration(self):
        with pytest.raises(ValueError):
            AnalyzerInput.random(0)


class TestFinding:

    def test_gcc_format(self):
        finding = Finding("unusedGate", 'unused gate: "g"', Severity.WARNING, location="g")
        assert finding.to_gcc_format() == 'g: warning: unused gate: "g" [unusedGate]'

    def test_json_omits_empty_evidence(self):
        doc = Finding("x", "m").to_json()
        assert "evidence" not in doc
        assert doc["severity"] == "warning"

    def test_json_round_trips_through_text(self):
        finding = Finding("unusedColumn", "m", Severity.STYLE, evidence={"rotation": 1})
        assert json.loads(finding.to_json_str())["evidence"] == {"rotation": 1}

    def test_output_json_with_counterexample(self):
        out = AnalyzerOutput(
            AnalyzerOutputStatus.UNDERCONSTRAINED,
            counterexample=({"a": 1}, {"a": 2}),
        )
        assert out.to_json()["counterexample"] == {"first": {"a": 1}, "second": {"a": 2}}

    @pytest.mark.parametrize("status, violation", [
        (AnalyzerOutputStatus.UNDERCONSTRAINED, True),
        (AnalyzerOutputStatus.OVERCONSTRAINED, True),
        (AnalyzerOutputStatus.NOT_UNDERCONSTRAINED_LOCAL, False),
        (AnalyzerOutputStatus.UNUSED_COLUMNS, False),
    ])
    def test_violations(self, status, violation):
        assert status.is_violation is violation


class TestErrors:

    def test_default_codes(self):
        assert CircuitFormatError("x").code == ErrorCodes.MALFORMED_DOCUMENT
        assert SolverInvocationFailure("x").stage is ErrorStage.SOLVING

    def test_str_includes_code_and_context(self):
        exc = CircuitFormatError("bad", context={"path": "gates[0]"})
        assert str(exc) == "[PLNK-1000] loading: bad (path=gates[0])"

    def test_codes_compare_to_strings(self):
        assert ErrorCodes.SOLVER_TIMEOUT == "PLNK-3001"
        assert issubclass(SolverInvocationFailure, AnalyzerError)
