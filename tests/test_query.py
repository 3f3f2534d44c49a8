"""Tests for server-side query expressions and client-side predicates."""

import pytest

from docuware_helper.query import (
    PredicateSyntaxError,
    QueryCondition,
    QuerySyntaxError,
    build_query_body,
    compile_predicate,
    parse_query,
)


class TestQueryExpression:
    """Test the NAME = [VALUE] | ... parser."""

    def test_two_conditions_or_combined(self):
        body = build_query_body("A = [1] | B = [2]")

        assert body == {
            "Condition": [
                {"DBName": "A", "Value": ["1"]},
                {"DBName": "B", "Value": ["2"]},
            ],
            "Operation": "Or",
        }

    def test_whitespace_around_equals_ignored(self):
        assert parse_query("SERIAL_NO=[X]") == parse_query("  SERIAL_NO   =   [X]  ")
        assert parse_query("SERIAL_NO=[X]") == [QueryCondition("SERIAL_NO", "X")]

    def test_value_keeps_inner_spaces(self):
        assert parse_query("NAME = [Meter 12]")[0].value == "Meter 12"

    def test_value_may_contain_equals(self):
        assert parse_query("NOTE = [a=b]")[0].value == "a=b"

    def test_empty_brackets(self):
        assert parse_query("NOTE = []")[0].value == ""

    @pytest.mark.parametrize(
        "query",
        [
            "SERIAL_NO = 3080RC20119",
            "SERIAL_NO = [3080RC20119",
            "SERIAL_NO [3080RC20119]",
            "= [X]",
            "A = [1] |",
            "",
            "   ",
        ],
    )
    def test_unsupported_input(self, query):
        with pytest.raises(QuerySyntaxError):
            parse_query(query)

    def test_query_syntax_error_is_value_error(self):
        with pytest.raises(ValueError):
            build_query_body("broken")


class TestPredicate:
    """Test the restricted predicate evaluator."""

    FIELDS = {"SERIAL_NO": "3080RC20114", "STATUS": "Open", "PAGES": 3, "ARCHIVED": None}

    @pytest.mark.parametrize(
        "expression,expected",
        [
            ("fields['SERIAL_NO'] == '3080RC20114'", True),
            ("fields['SERIAL_NO'] != '3080RC20114'", False),
            ("fields['STATUS'] == 'Open' and fields['PAGES'] > 2", True),
            ("fields['STATUS'] == 'Closed' or fields['PAGES'] >= 3", True),
            ("not fields['ARCHIVED']", True),
            ("fields['STATUS'] in ('Open', 'Pending')", True),
            ("fields['STATUS'] not in ['Open']", False),
            ("1 <= fields['PAGES'] < 5", True),
            ("fields['PAGES'] > -1", True),
            ("fields.get('MISSING', 'x') == 'x'", True),
            ("fields.get('MISSING') == None", True),
            ("(fields['STATUS'] == 'Open')", True),
        ],
    )
    def test_evaluation(self, expression, expected):
        assert compile_predicate(expression)(self.FIELDS) is expected

    def test_missing_field_is_none(self):
        assert compile_predicate("fields['NOPE'] == 'x'")(self.FIELDS) is False

    def test_incompatible_ordering_is_false(self):
        assert compile_predicate("fields['ARCHIVED'] < 'x'")(self.FIELDS) is False

    @pytest.mark.parametrize(
        "expression",
        [
            "__import__('os').system('true')",
            "fields['A'].upper() == 'X'",
            "open('/etc/passwd')",
            "fields[0] == 1",
            "other['A'] == 1",
            "fields['A'] == fields.__class__",
            "[x for x in fields]",
            "lambda: 1",
            "fields['A'] + 1 == 2",
            "fields['A'] is None",
            "fields['A'] ==",
            "",
        ],
    )
    def test_unsupported_expression(self, expression):
        with pytest.raises(PredicateSyntaxError):
            compile_predicate(expression)

    def test_repr(self):
        assert "SERIAL_NO" in repr(compile_predicate("fields['SERIAL_NO'] == 'X'"))
