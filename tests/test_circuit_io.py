# tests/test_circuit_io.py
"""
Tests for the JSON circuit loader and its S-expression grammar.
"""

import json

import pytest

from plonk_analyzer.algebra import (
    POISON,
    UNASSIGNED,
    AdviceQuery,
    CellValue,
    Column,
    ColumnType,
    Constant,
    FixedQuery,
    InstanceQuery,
    Negated,
    Product,
    Scaled,
    Selector,
    Sum,
)
from plonk_analyzer.circuit_io import circuit_from_dict, load_circuit, loads_circuit, parse_expression
from plonk_analyzer.errors import CircuitFormatError, ErrorCodes


def minimal(**overrides):
    doc = {
        "name": "toy",
        "prime": 7,
        "gates": [{"name": "g", "polys": ["(* (selector 0) (advice 0 0))"]}],
        "regions": [{"name": "r", "row_count": 1,
                     "columns": [["advice", 0, 0]],
                     "enabled_selectors": [[0, 0]]}],
    }
    doc.update(overrides)
    return doc


class TestParseExpression:

    @pytest.mark.parametrize("text, expected", [
        ("3", Constant(3)),
        ("(const -2)", Constant(-2)),
        ("(selector 4)", Selector(4)),
        ("(fixed 1 -1)", FixedQuery(1, -1)),
        ("(advice 2 1)", AdviceQuery(2, 1)),
        ("(instance 0 3)", InstanceQuery(0, 3)),
        ("(- (advice 0 0))", Negated(AdviceQuery(0, 0))),
        ("(scale (advice 0 0) 5)", Scaled(AdviceQuery(0, 0), 5)),
    ])
    def test_forms(self, text, expected):
        assert parse_expression(text) == expected

    def test_integer_value(self):
        assert parse_expression(9) == Constant(9)

    def test_binary_minus_is_sum_of_negation(self):
        expr = parse_expression("(- (advice 0 0) (advice 1 0))")
        assert expr == Sum(AdviceQuery(0, 0), Negated(AdviceQuery(1, 0)))

    def test_variadic_operators_fold_left(self):
        expr = parse_expression("(+ 1 2 3)")
        assert expr == Sum(Sum(Constant(1), Constant(2)), Constant(3))
        expr = parse_expression("(* (selector 0) (advice 0 0) 2)")
        assert expr == Product(Product(Selector(0), AdviceQuery(0, 0)), Constant(2))

    @pytest.mark.parametrize("text", [
        "(advice 0)",
        "(selector x)",
        "(+ 1)",
        "(frobnicate 1)",
        "(scale (advice 0 0) x)",
        "(- 1 2 3)",
        "((advice 0 0))",
        "(advice 0 0",
    ])
    def test_malformed(self, text):
        with pytest.raises(CircuitFormatError) as exc_info:
            parse_expression(text, "gates[0].polys[0]")
        assert exc_info.value.code == ErrorCodes.MALFORMED_EXPRESSION
        assert exc_info.value.context["path"] == "gates[0].polys[0]"

    @pytest.mark.parametrize("value", [True, None, 1.5, ["advice", 0, 0]])
    def test_non_expression_values(self, value):
        with pytest.raises(CircuitFormatError):
            parse_expression(value)


class TestCircuitFromDict:

    def test_minimal_document(self):
        circuit = circuit_from_dict(minimal())
        assert circuit.name == "toy"
        assert circuit.prime == 7
        assert [g.name for g in circuit.cs.gates] == ["g"]
        region = circuit.layout.regions[0]
        assert region.columns == {(Column(ColumnType.ADVICE, 0), 0)}
        assert region.is_enabled(0, 0)

    def test_advice_queries_derived_when_absent(self):
        circuit = circuit_from_dict(minimal())
        assert circuit.cs.advice_queries == [(Column(ColumnType.ADVICE, 0), 0)]

    def test_explicit_advice_queries(self):
        circuit = circuit_from_dict(minimal(advice_queries=[[0, 0], [3, 1]]))
        assert circuit.cs.advice_queries == [
            (Column(ColumnType.ADVICE, 0), 0),
            (Column(ColumnType.ADVICE, 3), 1),
        ]

    def test_fixed_cells(self):
        circuit = circuit_from_dict(minimal(fixed=[[0, None, "poison", 5]]))
        assert circuit.fixed[0] == (CellValue.assigned(0), UNASSIGNED, POISON, CellValue.assigned(5))
        assert circuit.fixed.num_rows(0) == 4

    def test_bad_fixed_cell(self):
        with pytest.raises(CircuitFormatError) as exc_info:
            circuit_from_dict(minimal(fixed=[[1, "junk"]]))
        assert exc_info.value.context["path"] == "fixed[0][1]"

    def test_prime_as_decimal_string(self):
        p = "21888242871839275222246405745257275088548364400416034343698204186575808495617"
        assert circuit_from_dict(minimal(prime=p)).prime == int(p)

    @pytest.mark.parametrize("prime", ["seven", 7.0, True])
    def test_bad_prime(self, prime):
        with pytest.raises(CircuitFormatError):
            circuit_from_dict(minimal(prime=prime))

    def test_prime_is_optional(self):
        doc = minimal()
        del doc["prime"]
        assert circuit_from_dict(doc).prime is None

    def test_undeclared_selector(self):
        with pytest.raises(CircuitFormatError) as exc_info:
            circuit_from_dict(minimal(num_selectors=0))
        assert exc_info.value.code == ErrorCodes.UNDECLARED_SELECTOR
        assert exc_info.value.context["path"] == "regions[0].enabled_selectors[0]"

    def test_selector_unused_by_any_gate_is_undeclared(self):
        regions = [{"name": "r", "enabled_selectors": [[5, 0]]}]
        with pytest.raises(CircuitFormatError) as exc_info:
            circuit_from_dict(minimal(regions=regions))
        assert exc_info.value.code == ErrorCodes.UNDECLARED_SELECTOR
        assert exc_info.value.context["path"] == "regions[0].enabled_selectors[0]"

    def test_selector_used_by_a_lookup_is_declared(self):
        lookups = [{"name": "l", "inputs": ["(* (selector 1) (advice 0 0))"], "table": ["(fixed 0 0)"]}]
        regions = [{"name": "r", "enabled_selectors": [[1, 0]]}]
        circuit = circuit_from_dict(minimal(lookups=lookups, regions=regions))
        assert circuit.layout.regions[0].is_enabled(1, 0)

    def test_declared_selector_count_is_kept(self):
        assert circuit_from_dict(minimal(num_selectors=2)).cs.num_selectors == 2

    def test_lookup_arity_mismatch(self):
        lookups = [{"name": "l", "inputs": ["(advice 0 0)"], "table": []}]
        with pytest.raises(CircuitFormatError) as exc_info:
            circuit_from_dict(minimal(lookups=lookups))
        assert exc_info.value.context["path"] == "lookups[0]"

    def test_bad_polynomial_reports_path(self):
        gates = [{"name": "g", "polys": ["(advice 0 0)", "(advice)"]}]
        with pytest.raises(CircuitFormatError) as exc_info:
            circuit_from_dict(minimal(gates=gates))
        assert exc_info.value.context["path"] == "gates[0].polys[1]"

    @pytest.mark.parametrize("column", [["advice", 0], ["lookup", 0, 0], ["advice", "0", 0]])
    def test_bad_column(self, column):
        regions = [{"name": "r", "columns": [column]}]
        with pytest.raises(CircuitFormatError):
            circuit_from_dict(minimal(regions=regions))

    def test_copy_tables(self):
        regions = [{"name": "r", "eq_table": {"I-0-0": "A-0-0-0"},
                    "advice_eq_table": {"A-0-0-0": "A-0-1-0"}}]
        circuit = circuit_from_dict(minimal(regions=regions, eq_table={"I-0-1": "A-0-1-0"}))
        assert circuit.layout.regions[0].eq_table == {"I-0-0": "A-0-0-0"}
        assert circuit.layout.regions[0].advice_eq_table == {"A-0-0-0": "A-0-1-0"}
        assert circuit.layout.eq_table == {"I-0-1": "A-0-1-0"}

    def test_not_an_object(self):
        with pytest.raises(CircuitFormatError):
            circuit_from_dict([])


class TestLoadCircuit:

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "toy.json"
        path.write_text(json.dumps(minimal()))
        assert load_circuit(path).cs.gates[0].name == "g"

    def test_name_defaults_to_stem(self, tmp_path):
        doc = minimal()
        del doc["name"]
        path = tmp_path / "square.json"
        path.write_text(json.dumps(doc))
        assert load_circuit(path).name == "square"

    def test_invalid_json(self):
        with pytest.raises(CircuitFormatError) as exc_info:
            loads_circuit("{not json")
        assert exc_info.value.code == ErrorCodes.MALFORMED_DOCUMENT

    def test_missing_file(self, tmp_path):
        with pytest.raises(CircuitFormatError) as exc_info:
            load_circuit(tmp_path / "absent.json")
        assert "absent.json" in exc_info.value.context["file"]

    def test_errors_carry_the_file(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps(minimal(fixed=[["junk"]])))
        with pytest.raises(CircuitFormatError) as exc_info:
            load_circuit(path)
        assert exc_info.value.context["file"] == str(path)
        assert exc_info.value.context["path"] == "fixed[0][0]"
