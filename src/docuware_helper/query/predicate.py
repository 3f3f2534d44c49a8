"""
Client-side document predicates.

Expressions are written against a ``fields`` mapping, for example:

    fields['SERIAL_NO'] == '3080RC20114'
    fields['STATUS'] in ('Open', 'Pending') and not fields.get('ARCHIVED')

The expression is parsed with ``ast`` and interpreted node by node. Only field
lookups, literals, comparisons and boolean operators are accepted; nothing is
ever passed to ``eval``.
"""

import ast
import operator
from typing import Any, Callable, Mapping

FIELDS_NAME = "fields"

_COMPARATORS: dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda left, right: left in right,
    ast.NotIn: lambda left, right: left not in right,
}

_LITERAL_TYPES = (str, int, float, bool, type(None))


class PredicateSyntaxError(ValueError):
    """Predicate uses syntax outside the supported subset."""

    pass


class Predicate:
    """A compiled predicate over a document's field map."""

    def __init__(self, expression: str):
        self.expression = expression
        try:
            tree = ast.parse(expression.strip(), mode="eval")
        except SyntaxError as e:
            raise PredicateSyntaxError(f"Invalid predicate {expression!r}: {e.msg}") from e
        self._validate(tree.body)
        self._body = tree.body

    def __call__(self, fields: Mapping[str, Any]) -> bool:
        return bool(self._eval(self._body, fields))

    def __repr__(self) -> str:
        return f"Predicate({self.expression!r})"

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate(self, node: ast.AST) -> None:
        if isinstance(node, ast.BoolOp):
            for value in node.values:
                self._validate(value)
        elif isinstance(node, ast.UnaryOp) and isinstance(node.op, ast.Not):
            self._validate(node.operand)
        elif isinstance(node, ast.Compare):
            for op in node.ops:
                if type(op) not in _COMPARATORS:
                    raise PredicateSyntaxError(
                        f"Unsupported comparison {type(op).__name__} in {self.expression!r}"
                    )
            self._validate(node.left)
            for comparator in node.comparators:
                self._validate(comparator)
        elif isinstance(node, ast.Constant):
            if not isinstance(node.value, _LITERAL_TYPES):
                raise PredicateSyntaxError(f"Unsupported literal in {self.expression!r}")
        elif isinstance(node, (ast.Tuple, ast.List)):
            for element in node.elts:
                if not isinstance(element, ast.Constant):
                    raise PredicateSyntaxError(
                        f"Only literals are allowed inside lists in {self.expression!r}"
                    )
                self._validate(element)
        elif isinstance(node, ast.UnaryOp) and isinstance(node.op, ast.USub):
            if not isinstance(node.operand, ast.Constant) or not isinstance(
                node.operand.value, (int, float)
            ):
                raise PredicateSyntaxError(f"Unary minus needs a number in {self.expression!r}")
        elif isinstance(node, ast.Subscript):
            self._field_key(node)
        elif isinstance(node, ast.Call):
            self._field_get_args(node)
        else:
            raise PredicateSyntaxError(
                f"Unsupported expression {type(node).__name__} in {self.expression!r}"
            )

    def _field_key(self, node: ast.Subscript) -> str:
        """Key of a ``fields['NAME']`` lookup."""
        key = node.slice
        if (
            not isinstance(node.value, ast.Name)
            or node.value.id != FIELDS_NAME
            or not isinstance(key, ast.Constant)
            or not isinstance(key.value, str)
        ):
            raise PredicateSyntaxError(
                f"Only fields['NAME'] lookups are allowed in {self.expression!r}"
            )
        return key.value

    def _field_get_args(self, node: ast.Call) -> tuple[str, Any]:
        """Key and default of a ``fields.get('NAME'[, default])`` call."""
        func = node.func
        if (
            not isinstance(func, ast.Attribute)
            or func.attr != "get"
            or not isinstance(func.value, ast.Name)
            or func.value.id != FIELDS_NAME
            or node.keywords
            or not 1 <= len(node.args) <= 2
            or not all(isinstance(arg, ast.Constant) for arg in node.args)
            or not isinstance(node.args[0].value, str)
        ):
            raise PredicateSyntaxError(
                f"Only fields.get('NAME'[, default]) calls are allowed in {self.expression!r}"
            )
        default = node.args[1].value if len(node.args) == 2 else None
        return node.args[0].value, default

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _eval(self, node: ast.AST, fields: Mapping[str, Any]) -> Any:
        if isinstance(node, ast.BoolOp):
            if isinstance(node.op, ast.And):
                return all(self._eval(value, fields) for value in node.values)
            return any(self._eval(value, fields) for value in node.values)
        if isinstance(node, ast.UnaryOp):
            if isinstance(node.op, ast.Not):
                return not self._eval(node.operand, fields)
            return -node.operand.value
        if isinstance(node, ast.Compare):
            left = self._eval(node.left, fields)
            for op, comparator in zip(node.ops, node.comparators):
                right = self._eval(comparator, fields)
                try:
                    if not _COMPARATORS[type(op)](left, right):
                        return False
                except TypeError:
                    # e.g. None < 'x' or 'a' in None
                    return False
                left = right
            return True
        if isinstance(node, ast.Constant):
            return node.value
        if isinstance(node, (ast.Tuple, ast.List)):
            return tuple(element.value for element in node.elts)
        if isinstance(node, ast.Subscript):
            return fields.get(self._field_key(node))
        if isinstance(node, ast.Call):
            key, default = self._field_get_args(node)
            return fields.get(key, default)
        raise PredicateSyntaxError(f"Unsupported expression in {self.expression!r}")


def compile_predicate(expression: str) -> Predicate:
    """Compile a predicate expression, raising PredicateSyntaxError if unsupported."""
    if not expression or not expression.strip():
        raise PredicateSyntaxError("Predicate expression is empty")
    return Predicate(expression)
