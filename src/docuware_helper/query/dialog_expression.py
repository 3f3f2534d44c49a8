"""
Server-side query expressions.

Parses the small pipe/bracket language used on the command line into the
body expected by the ``Query/DialogExpressionLink`` endpoint:

    SERIAL_NO = [3080RC20119] | STATUS = [Open]

becomes

    {"Condition": [{"DBName": "SERIAL_NO", "Value": ["3080RC20119"]},
                   {"DBName": "STATUS", "Value": ["Open"]}],
     "Operation": "Or"}

Conditions are always OR-combined; the language has no AND.
"""

from dataclasses import dataclass

CONDITION_SEPARATOR = "|"
OPERATION_OR = "Or"


class QuerySyntaxError(ValueError):
    """Query expression is not in ``NAME = [VALUE] | ...`` form."""

    pass


@dataclass(frozen=True)
class QueryCondition:
    """One ``NAME = [VALUE]`` term."""

    db_name: str
    value: str

    def to_dict(self) -> dict:
        return {"DBName": self.db_name, "Value": [self.value]}


def parse_condition(text: str) -> QueryCondition:
    name, sep, raw_value = text.partition("=")
    name = name.strip()
    raw_value = raw_value.strip()

    if not sep:
        raise QuerySyntaxError(f"Missing '=' in condition: {text.strip()!r}")
    if not name:
        raise QuerySyntaxError(f"Missing field name in condition: {text.strip()!r}")
    if len(raw_value) < 2 or not (raw_value.startswith("[") and raw_value.endswith("]")):
        raise QuerySyntaxError(
            f"Value must be wrapped in brackets, e.g. {name} = [value]: {text.strip()!r}"
        )

    return QueryCondition(db_name=name, value=raw_value[1:-1])


def parse_query(query: str) -> list[QueryCondition]:
    """Split a query expression into its conditions."""
    if not query or not query.strip():
        raise QuerySyntaxError("Query expression is empty")
    return [parse_condition(part) for part in query.split(CONDITION_SEPARATOR)]


def build_query_body(query: str) -> dict:
    """Build the DialogExpressionLink request body for a query expression."""
    return {
        "Condition": [condition.to_dict() for condition in parse_query(query)],
        "Operation": OPERATION_OR,
    }
