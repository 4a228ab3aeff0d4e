# tests/test_encoder.py
"""
Tests for the SMT-LIB script builder and the symbolic encoder.
"""

import pytest

from plonk_analyzer.algebra import (
    POISON,
    UNASSIGNED,
    CellValue,
    ConstraintSystem,
    Constant,
    FixedMatrix,
    Gate,
    InstanceQuery,
    Layout,
    Lookup,
    Negated,
    Product,
    Scaled,
    Sum,
)
from plonk_analyzer.encoder import SymbolicEncoder
from plonk_analyzer.errors import EncodingFailure, ErrorCodes
from plonk_analyzer.smt import NodeKind, Operation, Printer, SymbolicTerm, VarRole
from tests.conftest import P, advice, fixed, make_region, sel


def encoder_for(printer, gates=(), lookups=(), regions=(), eq_table=None):
    cs = ConstraintSystem(gates=list(gates), lookups=list(lookups))
    return SymbolicEncoder(cs, Layout(list(regions), dict(eq_table or {})), printer)


def asserts(printer):
    return [line for line in printer.lines if line.startswith("(assert")]


class TestPrinter:

    def test_header(self, printer):
        assert printer.lines == [
            "(set-logic QF_FF)",
            "(set-option :produce-models true)",
            f"(define-sort F () (_ FiniteField {P}))",
        ]

    def test_constants_are_reduced(self, printer):
        assert printer.constant(3) == "(as ff3 F)"
        assert printer.constant(-1) == "(as ff6 F)"
        assert printer.constant(P + 2) == "(as ff2 F)"

    def test_declares_once_and_upgrades_role(self, printer):
        printer.write_var("x")
        printer.write_var("x", VarRole.INSTANCE)
        printer.write_var("x", VarRole.ADVICE)
        assert printer.lines.count("(declare-fun x () F)") == 1
        assert printer.vars["x"] is VarRole.INSTANCE

    def test_declaring_inside_scope_fails(self, printer):
        with pytest.raises(EncodingFailure) as exc_info:
            with printer.scope():
                printer.write_var("late")
        assert exc_info.value.code == ErrorCodes.UNBALANCED_SCOPE
        assert printer.depth == 0

    def test_scope_pops_on_exception(self, printer):
        with pytest.raises(RuntimeError):
            with printer.scope():
                raise RuntimeError("boom")
        assert printer.depth == 0
        assert printer.lines[-2:] == ["(push 1)", "(pop 1)"]

    def test_pop_without_push(self, printer):
        with pytest.raises(EncodingFailure):
            printer.write_pop()

    def test_connectives(self, printer):
        assert printer.get_and([]) == "true"
        assert printer.get_or([]) == "false"
        assert printer.get_or(["a"]) == "a"
        assert printer.get_and(["a", "b"]) == "(and a b)"

    def test_comparisons(self, printer):
        assert printer.get_assert("x", 2, Operation.EQUAL) == "(= x (as ff2 F))"
        assert printer.get_assert("x", 2, Operation.NOT_EQUAL) == "(not (= x (as ff2 F)))"
        with pytest.raises(ValueError):
            printer.get_assert("x", 2, Operation.AND)

    def test_query_leaves_script_untouched(self, printer):
        printer.write_var("x")
        before = list(printer.lines)
        query = printer.render_query(["x"])
        assert query.endswith("(check-sat)\n(get-value (x))\n")
        assert printer.lines == before

    def test_dump(self, printer, tmp_path):
        printer.write_var("x")
        path = printer.dump(tmp_path / "out" / "base.smt2")
        assert path.read_text().splitlines()[-1] == "(declare-fun x () F)"

    def test_compound_terms_are_parenthesized(self):
        term = SymbolicTerm("ff.add a b", NodeKind.ADD)
        assert term.sexp == "(ff.add a b)"
        assert SymbolicTerm("a", NodeKind.ADVICE).sexp == "a"


class TestDecomposeExpression:

    def decompose(self, printer, expr, row=0, enabled=frozenset()):
        return encoder_for(printer).decompose_expression(expr, 0, row, enabled)

    def test_constant(self, printer):
        term, kind = self.decompose(printer, Constant(-2))
        assert (term, kind) == ("(as ff5 F)", NodeKind.CONSTANT)

    def test_selector_is_literal(self, printer):
        assert self.decompose(printer, sel(0), row=1, enabled={(0, 1)}) == ("(as ff1 F)", NodeKind.FIXED)
        assert self.decompose(printer, sel(0), row=0, enabled={(0, 1)}) == ("(as ff0 F)", NodeKind.FIXED)
        assert printer.vars == {}

    def test_advice_names_absolute_row(self, printer):
        enc = encoder_for(printer)
        term, kind = enc.decompose_expression(advice(1, 1), 2, 3, set())
        assert (term, kind) == ("A-2-1-4", NodeKind.ADVICE)
        assert printer.vars == {"A-2-1-4": VarRole.ADVICE}
        assert "(declare-fun A-2-1-4 () F)" in printer.lines

    def test_fixed_is_tracked_as_fixed(self, printer):
        term, kind = self.decompose(printer, fixed(2, -1), row=1)
        assert (term, kind) == ("F-0-2-0", NodeKind.FIXED)
        assert printer.vars["F-0-2-0"] is VarRole.FIXED

    def test_instance_is_placeholder(self, printer):
        term = self.decompose(printer, InstanceQuery(0, 0))
        assert term.is_placeholder
        assert printer.vars == {}

    def test_negation_of_atomic_and_compound(self, printer):
        assert self.decompose(printer, Negated(advice(0))).text == "ff.neg A-0-0-0"
        term = self.decompose(printer, Negated(advice(0) + advice(1)))
        assert term == ("ff.neg (ff.add A-0-0-0 A-0-1-0)", NodeKind.NEGATED)

    def test_sum_and_product_nest(self, printer):
        term = self.decompose(printer, Product(Sum(advice(0), Constant(1)), advice(1)))
        assert term.text == "ff.mul (ff.add A-0-0-0 (as ff1 F)) A-0-1-0"
        assert term.kind is NodeKind.MULT

    def test_scaled_rewrites_to_product(self, printer):
        term = self.decompose(printer, Scaled(advice(0), 3))
        assert term == ("ff.mul (as ff3 F) A-0-0-0", NodeKind.SCALED)

    def test_instance_in_arithmetic_fails(self, printer):
        with pytest.raises(EncodingFailure) as exc_info:
            self.decompose(printer, advice(0) + InstanceQuery(0, 0))
        assert exc_info.value.code == ErrorCodes.INSTANCE_IN_POLYNOMIAL

    def test_negated_instance_fails(self, printer):
        with pytest.raises(EncodingFailure):
            self.decompose(printer, Negated(InstanceQuery(0, 0)))


class TestDecomposePolynomial:

    def test_gate_asserted_at_every_row(self, printer):
        gate = Gate("g", (sel(0) * advice(0),))
        region = make_region(rows=2, enabled=[(0, 1)])
        encoder_for(printer, [gate], regions=[region]).decompose_polynomial(FixedMatrix())
        assert asserts(printer) == [
            "(assert (= (ff.mul (as ff0 F) A-0-0-0) (as ff0 F)))",
            "(assert (= (ff.mul (as ff1 F) A-0-0-1) (as ff0 F)))",
        ]

    def test_bare_instance_polynomial_reports_location(self, printer):
        gate = Gate("pub", (InstanceQuery(0, 0),))
        enc = encoder_for(printer, [gate], regions=[make_region("r")])
        with pytest.raises(EncodingFailure) as exc_info:
            enc.decompose_polynomial(FixedMatrix())
        assert exc_info.value.context["constraint"] == "gate 'pub'"
        assert exc_info.value.context["row"] == 0

    def test_no_regions_no_assertions(self, printer):
        gate = Gate("g", (advice(0),))
        encoder_for(printer, [gate]).decompose_polynomial(FixedMatrix())
        assert asserts(printer) == []


class TestLookupEncoding:

    def encode(self, printer, lookup, columns):
        enc = encoder_for(printer, lookups=[lookup], regions=[make_region()])
        enc.decompose_polynomial(FixedMatrix.from_values(columns))
        return asserts(printer)

    def test_disjunction_over_table_rows(self, printer):
        lookup = Lookup("l", (advice(0),), (fixed(0),))
        assert self.encode(printer, lookup, [[1, 2]]) == [
            "(assert (or (= A-0-0-0 (as ff1 F)) (= A-0-0-0 (as ff2 F))))",
        ]

    def test_conjunction_per_row(self, printer):
        lookup = Lookup("l", (advice(0), advice(1)), (fixed(0), fixed(1)))
        assert self.encode(printer, lookup, [[1, 2], [3, 4]]) == [
            "(assert (or (and (= A-0-0-0 (as ff1 F)) (= A-0-1-0 (as ff3 F)))"
            " (and (= A-0-0-0 (as ff2 F)) (= A-0-1-0 (as ff4 F)))))",
        ]

    def test_table_ends_at_first_unassigned_cell(self, printer):
        # Row 2 holds data but is never reached.
        lookup = Lookup("l", (advice(0),), (fixed(0),))
        assert self.encode(printer, lookup, [[1, None, 3]]) == [
            "(assert (= A-0-0-0 (as ff1 F)))",
        ]

    def test_poison_cell_ends_table(self, printer):
        lookup = Lookup("l", (advice(0),), (fixed(0),))
        enc = encoder_for(printer, lookups=[lookup], regions=[make_region()])
        enc.decompose_polynomial(FixedMatrix([[CellValue.assigned(5), POISON, CellValue.assigned(6)]]))
        assert asserts(printer) == ["(assert (= A-0-0-0 (as ff5 F)))"]

    def test_empty_table_is_false(self, printer):
        lookup = Lookup("l", (advice(0),), (fixed(0),))
        assert self.encode(printer, lookup, [[None, 2]]) == ["(assert false)"]

    def test_non_fixed_table_expression_is_skipped(self, printer):
        lookup = Lookup("l", (advice(0), advice(1)), (fixed(0), advice(5)))
        assert self.encode(printer, lookup, [[4]]) == ["(assert (= A-0-0-0 (as ff4 F)))"]

    def test_lookup_without_fixed_column_is_not_encoded(self, printer, caplog):
        lookup = Lookup("l", (advice(0),), (advice(1),))
        with caplog.at_level("WARNING", logger="plonk_analyzer.encoder"):
            assert self.encode(printer, lookup, []) == []
        assert "no fixed table column" in caplog.text

    def test_missing_fixed_column(self, printer):
        lookup = Lookup("l", (advice(0),), (fixed(3),))
        with pytest.raises(EncodingFailure):
            self.encode(printer, lookup, [[1]])

    def test_selector_gated_input(self, printer):
        lookup = Lookup("l", (sel(0) * advice(0),), (fixed(0),))
        enc = encoder_for(printer, lookups=[lookup], regions=[make_region(enabled=[(0, 0)])])
        enc.decompose_polynomial(FixedMatrix.from_values([[0]]))
        assert asserts(printer) == ["(assert (= (ff.mul (as ff1 F) A-0-0-0) (as ff0 F)))"]


class TestCopyConstraints:

    def test_all_three_tables(self, printer):
        regions = [make_region(advice_eq={"A-0-0-0": "A-0-1-0"}, eq={"I-0-0": "A-0-2-0"})]
        enc = encoder_for(printer, regions=regions, eq_table={"I-0-1": "A-0-0-0"})
        enc.encode_copy_constraints()
        assert asserts(printer) == [
            "(assert (= A-0-0-0 A-0-1-0))",
            "(assert (= I-0-0 A-0-2-0))",
            "(assert (= I-0-1 A-0-0-0))",
        ]
        assert printer.tracked(VarRole.INSTANCE) == ["I-0-0", "I-0-1"]
        assert printer.vars["A-0-0-0"] is VarRole.ADVICE
