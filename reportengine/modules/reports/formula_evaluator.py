"""
Formula Evaluator for summary calculations.
Evaluates simple arithmetic, comparison and boolean expressions over a flat
context using a whitelist of Python AST nodes. There is no attribute access,
subscripting, comprehension or import, so an expression can only read the
names it is given and call SAFE_FUNCTIONS.
"""
import ast
from decimal import Decimal
from typing import Any, Dict, Optional

MAX_EXPRESSION_LENGTH = 1000


def _to_decimal(value):
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        return Decimal(int(value))
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    return Decimal(str(value).strip())


class FormulaEvaluator:
    """Evaluates simple arithmetic/string/boolean expressions safely using Python AST."""

    SAFE_FUNCTIONS = {
        "CONCAT": lambda *args: "".join("" if arg is None else str(arg) for arg in args),
        "COALESCE": lambda *args: next((arg for arg in args if arg not in (None, "")), None),
        "UPPER": lambda value: str(value).upper() if value is not None else None,
        "LOWER": lambda value: str(value).lower() if value is not None else None,
        "TRIM": lambda value: str(value).strip() if value is not None else None,
        "ABS": lambda value: abs(_to_decimal(value)) if value is not None else None,
        "ROUND": lambda value, digits=0: round(_to_decimal(value), int(digits)) if value is not None else None,
        "LEN": lambda value: len(value) if value is not None else 0,
        "NUMBER": lambda value: _to_decimal(value) if value not in (None, "") else None,
        "STARTSWITH": lambda value, prefix: str(value).startswith(str(prefix)) if value is not None else False,
        "CONTAINS": lambda value, part: str(part) in str(value) if value is not None else False,
    }

    ALLOWED_BINOPS = (ast.Add, ast.Sub, ast.Mult, ast.Div, ast.Mod)
    ALLOWED_UNARYOPS = (ast.UAdd, ast.USub, ast.Not)
    ALLOWED_CMPOPS = (ast.Eq, ast.NotEq, ast.Lt, ast.LtE, ast.Gt, ast.GtE, ast.In, ast.NotIn)

    def compile(self, expression: Optional[str]):
        """
        Parse an expression once so it can be evaluated against many rows.

        Raises:
            ValueError: If the expression is too long or has invalid syntax
        """
        if expression is None:
            return None
        expr = expression.strip()
        if not expr:
            return None
        if len(expr) > MAX_EXPRESSION_LENGTH:
            raise ValueError(f"Formula exceeds {MAX_EXPRESSION_LENGTH} characters")
        try:
            return ast.parse(expr, mode="eval")
        except SyntaxError as exc:
            raise ValueError(f"Invalid formula syntax: {exc.msg}") from exc

    def evaluate(self, expression, context: Dict[str, Any]) -> Any:
        """
        Evaluate a formula expression (text or a tree from compile()).

        Args:
            expression: e.g. "TOTAL - TAX", "STATUS == 'PAID' and TOTAL > 0"
            context: Values keyed by uppercase name

        Raises:
            ValueError: If the formula uses disallowed syntax or functions
        """
        tree = self.compile(expression) if isinstance(expression, str) or expression is None else expression
        if tree is None:
            return None
        return self._eval_node(tree.body, context)

    def _eval_node(self, node, context):
        if isinstance(node, ast.BinOp) and isinstance(node.op, self.ALLOWED_BINOPS):
            left = self._eval_node(node.left, context)
            right = self._eval_node(node.right, context)
            return self._apply_binop(node.op, left, right)
        if isinstance(node, ast.UnaryOp) and isinstance(node.op, self.ALLOWED_UNARYOPS):
            operand = self._eval_node(node.operand, context)
            if isinstance(node.op, ast.Not):
                return not operand
            if operand is None:
                return None
            return -operand if isinstance(node.op, ast.USub) else operand
        if isinstance(node, ast.BoolOp):
            if isinstance(node.op, ast.And):
                result = True
                for value in node.values:
                    result = self._eval_node(value, context)
                    if not result:
                        return result
                return result
            result = False
            for value in node.values:
                result = self._eval_node(value, context)
                if result:
                    return result
            return result
        if isinstance(node, ast.Compare):
            left = self._eval_node(node.left, context)
            for op, comparator in zip(node.ops, node.comparators):
                if not isinstance(op, self.ALLOWED_CMPOPS):
                    raise ValueError("Unsupported comparison operator in formula")
                right = self._eval_node(comparator, context)
                if not self._apply_compare(op, left, right):
                    return False
                left = right
            return True
        if isinstance(node, (ast.Tuple, ast.List)):
            return tuple(self._eval_node(item, context) for item in node.elts)
        if isinstance(node, ast.Name):
            return context.get(node.id.upper())
        if isinstance(node, ast.Constant):
            return node.value
        if isinstance(node, ast.Call):
            if node.keywords:
                raise ValueError("Keyword arguments are not allowed in formulas")
            func_name = self._get_func_name(node.func)
            if func_name not in self.SAFE_FUNCTIONS:
                raise ValueError(f"Function '{func_name}' is not allowed in formulas")
            args = [self._eval_node(arg, context) for arg in node.args]
            return self.SAFE_FUNCTIONS[func_name](*args)
        raise ValueError("Unsupported expression component in formula")

    def _numeric_pair(self, left, right):
        if isinstance(left, Decimal) or isinstance(right, Decimal):
            return _to_decimal(left or 0), _to_decimal(right or 0)
        return left or 0, right or 0

    def _apply_binop(self, op, left, right):
        if isinstance(left, tuple) or isinstance(right, tuple):
            raise ValueError("Arithmetic on lists is not supported in formulas")
        if isinstance(op, ast.Add):
            if isinstance(left, str) or isinstance(right, str):
                return ("" if left is None else str(left)) + ("" if right is None else str(right))
            left, right = self._numeric_pair(left, right)
            return left + right
        if isinstance(left, str) or isinstance(right, str):
            raise ValueError("Only '+' is supported for text values in formulas")
        if isinstance(op, ast.Sub):
            left, right = self._numeric_pair(left, right)
            return left - right
        if isinstance(op, ast.Mult):
            left, right = self._numeric_pair(left, right)
            return left * right
        if isinstance(op, ast.Div):
            if right in (0, None):
                return None
            left, right = self._numeric_pair(left, right)
            return left / right
        if isinstance(op, ast.Mod):
            if right in (0, None):
                return None
            left, right = self._numeric_pair(left, right)
            return left % right
        raise ValueError("Unsupported arithmetic operator in formula")

    def _apply_compare(self, op, left, right):
        if isinstance(op, (ast.In, ast.NotIn)):
            members = right if isinstance(right, tuple) else (right,)
            found = left in members
            return found if isinstance(op, ast.In) else not found
        if isinstance(left, (int, float, Decimal)) and isinstance(right, (int, float, Decimal)):
            left, right = _to_decimal(left), _to_decimal(right)
        if isinstance(op, ast.Eq):
            return left == right
        if isinstance(op, ast.NotEq):
            return left != right
        if left is None or right is None:
            return False
        if isinstance(op, ast.Lt):
            return left < right
        if isinstance(op, ast.LtE):
            return left <= right
        if isinstance(op, ast.Gt):
            return left > right
        return left >= right

    def _get_func_name(self, func_node):
        """Extract function name from AST node."""
        if isinstance(func_node, ast.Name):
            return func_node.id.upper()
        raise ValueError("Only simple function names are allowed in formulas")
