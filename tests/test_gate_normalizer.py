"""
Tests for gate parsing, normalization and AST-level implication.
"""

import pytest

from overlap.gates import GateASTNormalizer
from overlap.gates.ast import TRUE, And, Comparison, Not, Or, TrueNode, parse_predicate


@pytest.fixture
def normalizer():
    return GateASTNormalizer()


# ============================================================
# Parsing
# ============================================================

class TestParse:
    """Test gate parsing across input forms."""

    def test_none_is_true(self, normalizer):
        """Absent gates admit everything."""
        result = normalizer.parse(None)
        assert isinstance(result.ast, TrueNode)
        assert result.parse_complete
        assert result.errors == []

    def test_predicate_string(self, normalizer):
        """Predicate strings parse into comparisons."""
        result = normalizer.parse("valence >= 0.2 AND arousal < 0.5")
        assert result.parse_complete
        assert result.ast == And((Comparison('valence', '>=', 0.2), Comparison('arousal', '<', 0.5)))

    def test_keywords_case_insensitive(self, normalizer):
        """and/or/not accepted in any case, with symbolic aliases."""
        a = normalizer.parse("x > 1 and (y < 2 or not z == 3)").ast
        b = normalizer.parse("x > 1 && (y < 2 || !z == 3)").ast
        assert a == b

    def test_number_first_inverts_operator(self, normalizer):
        """0.2 <= x is stored as x >= 0.2."""
        assert normalizer.parse("0.2 <= valence").ast == Comparison('valence', '>=', 0.2)

    def test_single_equals_alias(self, normalizer):
        """A single = means equality."""
        assert normalizer.parse("x = 1").ast == Comparison('x', '==', 1)

    def test_json_logic(self, normalizer):
        """JSON-Logic gates parse like predicates."""
        gate = {"and": [{">=": [{"var": "valence"}, 0.2]}, {"<": [{"var": "arousal"}, 0.5]}]}
        result = normalizer.parse(gate)
        assert result.parse_complete
        assert normalizer.to_string(result.ast) == "valence >= 0.2 AND arousal < 0.5"

    def test_json_logic_var_second(self, normalizer):
        """{"<=": [0.2, {"var": "x"}]} reads as x >= 0.2."""
        result = normalizer.parse({"<=": [0.2, {"var": "x"}]})
        assert result.ast == Comparison('x', '>=', 0.2)

    def test_json_logic_not_unwraps_list(self, normalizer):
        """Negation takes its operand from a list."""
        result = normalizer.parse({"!": [{">": [{"var": "threat"}, 0.3]}]})
        assert result.ast == Not(Comparison('threat', '>', 0.3))

    def test_json_logic_strict_equality_alias(self, normalizer):
        """=== means equality."""
        assert normalizer.parse({"===": [{"var": "x"}, 1]}).ast == Comparison('x', '==', 1)

    def test_list_is_and(self, normalizer):
        """A list of gates is a conjunction."""
        result = normalizer.parse(["valence >= 0.2", {"<=": [{"var": "threat"}, 0.2]}])
        assert result.parse_complete
        assert result.ast == And((Comparison('valence', '>=', 0.2), Comparison('threat', '<=', 0.2)))

    def test_empty_list_is_true(self, normalizer):
        """An empty list admits everything."""
        result = normalizer.parse([])
        assert isinstance(result.ast, TrueNode)
        assert result.parse_complete

    def test_list_collects_errors(self, normalizer):
        """A bad element is reported by index; good elements are kept."""
        result = normalizer.parse(["valence >= 0.2", "valence >>> 1", 42])
        assert not result.parse_complete
        assert len(result.errors) == 2
        assert result.errors[0].startswith("[1]")
        assert result.errors[1].startswith("[2]")
        assert result.ast == Comparison('valence', '>=', 0.2)

    def test_unparseable_string(self, normalizer):
        """Bad syntax falls back to true with errors."""
        result = normalizer.parse("valence >=")
        assert not result.parse_complete
        assert isinstance(result.ast, TrueNode)
        assert result.errors

    def test_non_numeric_threshold_rejected(self, normalizer):
        """Thresholds must be numeric."""
        result = normalizer.parse({">=": [{"var": "x"}, "high"]})
        assert not result.parse_complete

    def test_bool_threshold_rejected(self, normalizer):
        """Booleans are not numeric thresholds."""
        result = normalizer.parse({"==": [{"var": "x"}, True]})
        assert not result.parse_complete

    def test_empty_predicate_raises(self):
        """Blank predicates raise."""
        with pytest.raises(ValueError):
            parse_predicate("   ")


# ============================================================
# Serialization / Evaluation
# ============================================================

class TestToStringAndEvaluate:
    """Test serialization and evaluation."""

    def test_round_trip(self, normalizer):
        """Parsed text serializes back unchanged."""
        text = "valence >= 0.2 AND arousal <= 0.5"
        assert normalizer.to_string(normalizer.parse(text).ast) == text

    def test_integer_threshold_kept(self, normalizer):
        """Integer thresholds print without a decimal."""
        assert normalizer.to_string(normalizer.parse("x >= 1").ast) == "x >= 1"

    def test_or_inside_and_parenthesized(self, normalizer):
        """Disjunctions inside conjunctions are parenthesized."""
        ast = normalizer.parse("x > 1 AND (y < 2 OR z < 3)").ast
        assert normalizer.to_string(ast) == "x > 1 AND (y < 2 OR z < 3)"

    def test_not_serialization(self, normalizer):
        """Negation wraps its operand."""
        assert normalizer.to_string(normalizer.parse("NOT x > 1").ast) == "NOT (x > 1)"

    def test_none_to_string(self, normalizer):
        """No gate prints as true."""
        assert normalizer.to_string(None) == "true"

    def test_evaluate(self, normalizer):
        """Conjunction holds only when every comparison does."""
        ast = normalizer.parse("valence >= 0.2 AND arousal < 0.5").ast
        assert normalizer.evaluate(ast, {'valence': 0.3, 'arousal': 0.1})
        assert not normalizer.evaluate(ast, {'valence': 0.1, 'arousal': 0.1})

    def test_absent_axis_is_satisfied(self, normalizer):
        """An axis missing from the context does not constrain."""
        ast = normalizer.parse("threat <= 0.2").ast
        assert normalizer.evaluate(ast, {'valence': 0.9})

    def test_evaluate_none_ast(self, normalizer):
        """No gate always passes."""
        assert normalizer.evaluate(None, {})


# ============================================================
# Normalization
# ============================================================

class TestNormalize:
    """Test canonical normalization."""

    def test_flattens_nested_and(self, normalizer):
        """Nested conjunctions are flattened."""
        ast = And((Comparison('b', '>', 1), And((Comparison('a', '<', 2), Comparison('c', '>=', 0)))))
        normalized = normalizer.normalize(ast)
        assert isinstance(normalized, And)
        assert [c.axis for c in normalized.children] == ['a', 'b', 'c']

    def test_dedupes(self, normalizer):
        """Duplicate comparisons collapse."""
        ast = normalizer.parse("x > 1 AND x > 1").ast
        assert normalizer.normalize(ast) == Comparison('x', '>', 1)

    def test_sorted_by_axis(self, normalizer):
        """Children are ordered by axis."""
        ast = normalizer.parse("valence >= 0.2 AND arousal <= 0.5").ast
        assert normalizer.to_string(normalizer.normalize(ast)) == "arousal <= 0.5 AND valence >= 0.2"

    def test_true_dropped_from_and(self, normalizer):
        """True is dropped from conjunctions."""
        ast = And((TRUE, Comparison('x', '>', 1)))
        assert normalizer.normalize(ast) == Comparison('x', '>', 1)

    def test_true_absorbs_or(self, normalizer):
        """True absorbs a disjunction."""
        ast = Or((TRUE, Comparison('x', '>', 1)))
        assert isinstance(normalizer.normalize(ast), TrueNode)

    def test_double_negation(self, normalizer):
        """Double negation cancels."""
        ast = Not(Not(Comparison('x', '>', 1)))
        assert normalizer.normalize(ast) == Comparison('x', '>', 1)

    def test_idempotent(self, normalizer):
        """Normalizing twice changes nothing."""
        ast = normalizer.parse("z < 1 AND (b > 0 OR a > 0) AND NOT (NOT y == 2) AND z < 1").ast
        once = normalizer.normalize(ast)
        assert normalizer.normalize(once) == once

    def test_order_independent(self, normalizer):
        """Operand order does not matter."""
        a = normalizer.normalize(normalizer.parse("x > 1 AND y < 2").ast)
        b = normalizer.normalize(normalizer.parse("y < 2 AND x > 1").ast)
        assert a == b


# ============================================================
# AST Implication
# ============================================================

class TestCheckImplication:
    """Test AST-level implication."""

    def test_b_true_is_vacuous(self, normalizer):
        """Everything implies true."""
        a = normalizer.parse("x > 0.5").ast
        assert normalizer.check_implication(a, TRUE) == {'implies': True, 'is_vacuous': True}

    def test_a_true_is_vacuous_false(self, normalizer):
        """True implies nothing constrained."""
        b = normalizer.parse("x > 0.5").ast
        assert normalizer.check_implication(TRUE, b) == {'implies': False, 'is_vacuous': True}

    def test_strict_implies_non_strict(self, normalizer):
        """x > 0.5 admits a subset of x >= 0.5."""
        a = normalizer.parse("x > 0.5").ast
        b = normalizer.parse("x >= 0.5").ast
        assert normalizer.check_implication(a, b) == {'implies': True, 'is_vacuous': False}
        assert normalizer.check_implication(b, a)['implies'] is False

    def test_narrower_implies_wider(self, normalizer):
        """Narrower range implies the wider one."""
        a = normalizer.parse("threat >= 0.1 AND threat <= 0.3").ast
        b = normalizer.parse("threat >= 0.0 AND threat <= 0.5").ast
        assert normalizer.check_implication(a, b)['implies'] is True
        assert normalizer.check_implication(b, a)['implies'] is False

    def test_extra_axis_in_b_blocks(self, normalizer):
        """B constraining another axis blocks implication."""
        a = normalizer.parse("x > 0.5").ast
        b = normalizer.parse("x > 0.1 AND y > 0.1").ast
        assert normalizer.check_implication(a, b)['implies'] is False

    def test_unsatisfiable_a_is_vacuous(self, normalizer):
        """Unsatisfiable A implies anything."""
        a = normalizer.parse("x > 0.5 AND x < 0.2").ast
        b = normalizer.parse("y > 0.9").ast
        assert normalizer.check_implication(a, b) == {'implies': True, 'is_vacuous': True}

    def test_disjunction_is_unknown(self, normalizer):
        """Disjunctions are not decided."""
        a = normalizer.parse("x > 0.5 OR y > 0.5").ast
        b = normalizer.parse("x > 0.1").ast
        assert normalizer.check_implication(a, b) == {'implies': False, 'is_vacuous': False}

    def test_not_equal_excluded_by_interval(self, normalizer):
        """A range excluding the value implies inequality."""
        a = normalizer.parse("x > 0.5").ast
        b = normalizer.parse("x != 0.2").ast
        assert normalizer.check_implication(a, b)['implies'] is True

    def test_not_equal_same_comparison(self, normalizer):
        """Shared inequality implies itself."""
        a = normalizer.parse("x != 0.2 AND y > 0").ast
        b = normalizer.parse("x != 0.2").ast
        assert normalizer.check_implication(a, b)['implies'] is True
