"""Tests for the rule evaluator."""

import math

import pytest

from sheetrules.rules import (
    Constant,
    Direct,
    FormulaRule,
    NumberLit,
    RuleEvaluator,
    RuleParser,
    SelfRef,
    SourceRef,
    StringLit,
    format_formula_value,
)
from sheetrules.rules.evaluator import loose_equals
from sheetrules.rules.syntax import parse_float

from conftest import FakeSandbox

HEADERS = ["Name", "Age", "Score", "Amount", "Amount Net"]


def parse(header, instruction):
    return RuleParser(HEADERS).parse_instruction(header, instruction)


class TestFormatFormulaValue:
    """Test formula-safe value formatting."""

    def test_empty_and_missing(self):
        assert format_formula_value("") == '""'
        assert format_formula_value(None) == '""'

    def test_dates_are_reordered(self):
        assert format_formula_value("15/03/2024") == "DATE(2024,3,15)"
        assert format_formula_value("01-12-2023") == "DATE(2023,12,1)"

    def test_numbers_stay_unquoted(self):
        assert format_formula_value("42") == "42"
        assert format_formula_value("-3.5") == "-3.5"
        assert format_formula_value("4,5") == "4.5"

    def test_percent_kept_when_numeric(self):
        """Test that % is only ignored for the numeric test."""
        assert format_formula_value("10%") == "10%"
        assert format_formula_value("abc%") == '"abc%"'

    def test_text_is_quoted(self):
        assert format_formula_value("Ana") == '"Ana"'
        assert format_formula_value("A1") == '"A1"'
        assert format_formula_value('say "hi"') == '"say ""hi"""'

    def test_evaluated_values(self):
        """Test values coming back from the sandbox."""
        assert format_formula_value(6.0) == "6"
        assert format_formula_value(2.5) == "2.5"
        assert format_formula_value(True) == "TRUE"


class TestOperators:
    """Test operator semantics."""

    def test_parse_float_prefix(self):
        assert parse_float("12abc") == 12.0
        assert parse_float("  7.5 kg") == 7.5
        assert parse_float("4,6") == 4.6
        assert math.isnan(parse_float("abc"))
        assert math.isnan(parse_float(""))

    def test_loose_equality(self):
        """Test that text is compared as given and numbers coerce text."""
        assert loose_equals("18", 18.0) is True
        assert loose_equals("abc", "abc") is True
        assert loose_equals("5", "5.0") is False
        assert loose_equals("", 0.0) is True
        assert loose_equals("abc", 1.0) is False
        assert loose_equals(True, "TRUE") is False
        assert loose_equals(True, 1.0) is True


class TestResolveOperand:
    """Test operand resolution."""

    def test_literals(self, sandbox, make_context):
        evaluator = RuleEvaluator(sandbox)
        ctx = make_context()

        assert evaluator.resolve_operand(StringLit(value="x"), ctx) == "x"
        assert evaluator.resolve_operand(NumberLit(value=4.5), ctx) == 4.5

    def test_references(self, sandbox, make_context):
        evaluator = RuleEvaluator(sandbox)
        ctx = make_context({"Name": "Ana"}, {"Label": "VIP"})

        assert evaluator.resolve_operand(SourceRef(column="Name"), ctx) == "Ana"
        assert evaluator.resolve_operand(SelfRef(column="Label"), ctx) == "VIP"

    def test_missing_self_reference_is_empty(self, sandbox, make_context):
        """Test that an output not yet computed resolves to empty."""
        evaluator = RuleEvaluator(sandbox)

        assert evaluator.resolve_operand(SelfRef(column="Later"), make_context()) == ""

    def test_formula_mode_formats_references(self, sandbox, make_context):
        evaluator = RuleEvaluator(sandbox)
        ctx = make_context({"Name": "Ana"}).in_formula_mode()

        assert evaluator.resolve_operand(SourceRef(column="Name"), ctx) == '"Ana"'

    def test_template_does_not_mix_up_similar_names(self, sandbox, make_context):
        """Test that 'Amount' is never substituted inside 'Amount Net'."""
        evaluator = RuleEvaluator(sandbox)
        ctx = make_context({"Amount": "100", "Amount Net": "80"})

        result = evaluator.resolve_template("=src[Amount Net]-src[Amount]", ctx)

        assert result == "=80-100"


class TestEvaluateFilter:
    """Test filter evaluation."""

    def test_documentation_filter_always_passes(self, sandbox, make_context):
        evaluator = RuleEvaluator(sandbox)
        rule = parse("_filter:Doc", "src[Age] > 100")

        assert evaluator.evaluate_filter(rule, make_context({"Age": "1"})) is True
        assert sandbox.calls == []

    def test_or_short_circuits(self, sandbox, make_context):
        """Test that the first true condition wins without evaluating the rest."""
        evaluator = RuleEvaluator(sandbox)
        rule = parse("_filter:Adult", "eval:src[Age] >= 18 || =ISBLANK(src[Age])")

        assert evaluator.evaluate_filter(rule, make_context({"Age": "25"})) is True
        assert sandbox.calls == []

    def test_or_falls_through(self, make_context):
        sandbox = FakeSandbox({"=ISBLANK(10)": False})
        evaluator = RuleEvaluator(sandbox)
        rule = parse("_filter:Adult", "eval:src[Age] >= 18 || =ISBLANK(src[Age])")

        assert evaluator.evaluate_filter(rule, make_context({"Age": "10"})) is False
        assert sandbox.calls == ["=ISBLANK(10)"]

    def test_locale_decimals(self, sandbox, make_context):
        evaluator = RuleEvaluator(sandbox)
        rule = parse("_filter:Good", "eval:src[Score] > 4,5")

        assert evaluator.evaluate_filter(rule, make_context({"Score": "4.6"})) is True
        assert evaluator.evaluate_filter(rule, make_context({"Score": "4,6"})) is True
        assert evaluator.evaluate_filter(rule, make_context({"Score": "4,4"})) is False

    def test_nan_comparison_is_false(self, sandbox, make_context):
        evaluator = RuleEvaluator(sandbox)
        ctx = make_context({"Score": "abc"})

        for op in (">", "<", ">=", "<="):
            rule = parse("_filter:Good", f"eval:src[Score] {op} 4,5")
            assert evaluator.evaluate_filter(rule, ctx) is False

    def test_equality_against_number_literal(self, sandbox, make_context):
        evaluator = RuleEvaluator(sandbox)
        rule = parse("_filter:Eighteen", "eval:src[Age] == 18")

        assert evaluator.evaluate_filter(rule, make_context({"Age": "18"})) is True
        assert evaluator.evaluate_filter(rule, make_context({"Age": "19"})) is False

    def test_inequality_of_strings(self, sandbox, make_context):
        evaluator = RuleEvaluator(sandbox)
        rule = parse("_filter:NotAna", 'eval:src[Name] != "Ana"')

        assert evaluator.evaluate_filter(rule, make_context({"Name": "Ana"})) is False
        assert evaluator.evaluate_filter(rule, make_context({"Name": "Bruno"})) is True

    def test_whole_filter_formula(self, make_context):
        """Test that boolean and TRUE/true string results pass."""
        sandbox = FakeSandbox({"=25>=18": True, "=17>=18": "FALSE", "=30>=18": "true"})
        evaluator = RuleEvaluator(sandbox)
        rule = parse("_filter:Adult", "eval:formula:=src[Age]>=18")

        assert evaluator.evaluate_filter(rule, make_context({"Age": "25"})) is True
        assert evaluator.evaluate_filter(rule, make_context({"Age": "17"})) is False
        assert evaluator.evaluate_filter(rule, make_context({"Age": "30"})) is True

    def test_formula_operand_in_comparison(self, make_context):
        """Test that a formula operand resolves to the sandbox's boolean verdict."""
        sandbox = FakeSandbox({'=ISBLANK("")': True, '=ISBLANK("Ana")': "FALSE"})
        evaluator = RuleEvaluator(sandbox)
        rule = parse("_filter:Unnamed", "eval:=ISBLANK(src[Name]) != src[Age]")

        # True != "0" and False == "0" under loose equality
        assert evaluator.evaluate_filter(rule, make_context({"Name": "", "Age": "0"})) is True
        assert evaluator.evaluate_filter(rule, make_context({"Name": "Ana", "Age": "0"})) is False
        assert sandbox.calls == ['=ISBLANK("")', '=ISBLANK("Ana")']

    def test_compound_operand(self, sandbox, make_context):
        evaluator = RuleEvaluator(sandbox)
        rule = parse("_filter:Who", 'eval:src[Name] src[Age] == "Ana 17"')

        assert evaluator.evaluate_filter(rule, make_context({"Name": "Ana", "Age": "17"})) is True

    def test_self_reference_sees_evaluated_value(self, sandbox, make_context):
        """Test that filters observe evaluated output values."""
        evaluator = RuleEvaluator(sandbox)
        rule = parse("_filter:Big", "eval:self[Total] > 5")

        assert evaluator.evaluate_filter(rule, make_context(output_so_far={"Total": 6})) is True


class TestResolveOutput:
    """Test output column resolution."""

    def test_direct_and_constant(self, sandbox, make_context):
        evaluator = RuleEvaluator(sandbox)
        ctx = make_context({"Name": "Ana"})

        assert evaluator.resolve_output(Direct(header="N", column="Name"), ctx) == ("Ana", "Ana")
        assert evaluator.resolve_output(Direct(header="N", column="Nope"), ctx) == ("", "")
        assert evaluator.resolve_output(Constant(header="C", value="EUR"), ctx) == ("EUR", "EUR")

    def test_self_reference_formula(self, make_context):
        """Test that self[] in a formula resolves to the earlier literal value."""
        sandbox = FakeSandbox({"=5+1": 6})
        evaluator = RuleEvaluator(sandbox)
        rule = FormulaRule(header="B", formula_template="=self[A]+1")
        ctx = make_context(output_so_far={"A": "5"})

        literal, evaluated = evaluator.resolve_output(rule, ctx)

        assert sandbox.calls == ["=5+1"]
        assert literal == "=5+1"
        assert evaluated == 6

    def test_live_formula_uses_cell_refs(self, make_context):
        """Test that the written formula points at output cells."""
        sandbox = FakeSandbox({"=5+1": 6})
        evaluator = RuleEvaluator(sandbox)
        rule = FormulaRule(header="B", formula_template="=self[A]+1")
        ctx = make_context(output_so_far={"A": "5"}, output_cell_refs={"A": "A2", "B": "B2"})

        literal, evaluated = evaluator.resolve_output(rule, ctx)

        assert literal == "=A2+1"
        assert sandbox.calls == ["=5+1"]
        assert evaluated == 6

    def test_formula_quotes_text(self, make_context):
        sandbox = FakeSandbox({'=LEN("Ana")': 3})
        evaluator = RuleEvaluator(sandbox)
        rule = parse("Len", "formula:=LEN(src[Name])")

        literal, evaluated = evaluator.resolve_output(rule, make_context({"Name": "Ana"}))

        assert literal == '=LEN("Ana")'
        assert evaluated == 3

    def test_plain_expression(self, sandbox, make_context):
        """Test that text expressions substitute raw values."""
        evaluator = RuleEvaluator(sandbox)
        rule = parse("Label", "Hello src[Name]!")

        assert evaluator.resolve_output(rule, make_context({"Name": "Ana"})) == (
            "Hello Ana!",
            "Hello Ana!",
        )
        assert sandbox.calls == []

    def test_formula_expression(self, make_context):
        """Test an expression written as a formula without the formula: prefix."""
        sandbox = FakeSandbox({"=17*2": 34})
        evaluator = RuleEvaluator(sandbox)
        rule = parse("Double", "=src[Age]*2")

        assert evaluator.resolve_output(rule, make_context({"Age": "17"})) == ("=17*2", 34)

    def test_formula_expression_without_references(self, make_context):
        sandbox = FakeSandbox({"=TODAY()": 45000})
        evaluator = RuleEvaluator(sandbox)
        rule = parse("Today", "=TODAY()")

        assert evaluator.resolve_output(rule, make_context()) == ("=TODAY()", 45000)


@pytest.mark.parametrize(
    "value,expected",
    [("25", True), ("18", True), ("17", False), ("", False)],
)
def test_adult_filter_values(value, expected, sandbox, make_context):
    """Test the >= boundary and empty data."""
    evaluator = RuleEvaluator(sandbox)
    rule = parse("_filter:Adult", "eval:src[Age] >= 18")

    assert evaluator.evaluate_filter(rule, make_context({"Age": value})) is expected
