"""
Safe evaluation of security rule expressions.

Rule strings use the JavaScript-like syntax of realtime database rules
(``auth.uid === $uid && !data.exists()``). They are translated token by
token into a Python expression, parsed with ``ast`` and checked against a
whitelist of node types, then evaluated by walking the tree. Nothing is ever
passed to eval().

Supported:
    - literals: null, true, false, numbers, 'strings', "strings", [arrays]
    - operators: === !== == != < <= > >= && || ! + - * / % and parentheses
    - variables: auth, root, data, newData, now and $wildcard captures
    - snapshot methods: val() exists() child(p) parent() hasChild(p)
      hasChildren([keys]) isNumber() isString() isBoolean() getPriority()
    - string members: length contains() beginsWith() endsWith()
      toLowerCase() toUpperCase() replace() matches()
    - attribute access into auth (auth.uid, auth.token.email)

Invariants:
    - Compilation rejects unknown variables and disallowed constructs
    - Evaluation never has side effects
    - A rule passes only if it evaluates to exactly True
"""

from __future__ import annotations

import ast
import keyword
import logging
import re
from functools import lru_cache
from typing import Any, Callable, Mapping, Sequence

from ..errors import RuleEvaluationError, RulesSyntaxError
from ..paths import split
from .tree import children, get_in, priority_of, to_python

logger = logging.getLogger(__name__)

WILDCARD_PREFIX = "_var_"

BUILTIN_VARIABLES = frozenset({"auth", "root", "data", "newData", "now"})

_TOKEN = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
  | (?P<number>\d+(?:\.\d+)?)
  | (?P<name>\$?[A-Za-z_][A-Za-z0-9_]*)
  | (?P<op>===|!==|==|!=|<=|>=|&&|\|\||[!<>+\-*/%().,\[\]])
    """,
    re.VERBOSE,
)

_OPERATORS = {
    "===": "==",
    "==": "==",
    "!==": "!=",
    "!=": "!=",
    "&&": "and",
    "||": "or",
    "!": "~",  # unary precedence, evaluated as logical not
}

_LITERALS = {"null": "None", "true": "True", "false": "False"}

_ALLOWED_NODES = (
    ast.Expression, ast.BoolOp, ast.And, ast.Or, ast.UnaryOp, ast.Invert, ast.USub, ast.UAdd,
    ast.BinOp, ast.Add, ast.Sub, ast.Mult, ast.Div, ast.Mod,
    ast.Compare, ast.Eq, ast.NotEq, ast.Lt, ast.LtE, ast.Gt, ast.GtE,
    ast.Name, ast.Load, ast.Constant, ast.Attribute, ast.Call, ast.List,
)


def wildcard_variable(name: str) -> str:
    """Python name used for a ``$wildcard`` capture."""
    return WILDCARD_PREFIX + name.lstrip("$")


def translate(source: str) -> str:
    """Translate a rule string into equivalent Python expression source.

    Raises:
        RulesSyntaxError: On characters or identifiers outside the rule language
    """
    out: list[str] = []
    pos = 0
    while pos < len(source):
        match = _TOKEN.match(source, pos)
        if match is None:
            raise RulesSyntaxError(f"Unexpected character {source[pos]!r} in rule: {source}")
        pos = match.end()
        kind, text = match.lastgroup, match.group()

        if kind == "ws":
            continue
        if kind == "name":
            if text in _LITERALS:
                out.append(_LITERALS[text])
            elif text.startswith("$"):
                out.append(wildcard_variable(text))
            elif keyword.iskeyword(text):
                raise RulesSyntaxError(f"'{text}' is not part of the rule language: {source}")
            else:
                out.append(text)
        elif kind == "op":
            out.append(_OPERATORS.get(text, text))
        else:
            out.append(text)
    return " ".join(out)


class RuleDataSnapshot:
    """Read-only view of one location of a data tree, as seen by rules.

    ``data``, ``newData`` and ``root`` are instances of this class.
    """

    __slots__ = ("_root", "_segments")

    def __init__(self, root: Any, segments: Sequence[str] = ()) -> None:
        self._root = root
        self._segments = tuple(segments)

    @property
    def _node(self) -> Any:
        return get_in(self._root, self._segments)

    def val(self) -> Any:
        return to_python(self._node)

    def exists(self) -> bool:
        return self._node is not None

    def child(self, path: str) -> RuleDataSnapshot:
        if not isinstance(path, str):
            raise RuleEvaluationError(f"child() expects a string path, got {path!r}")
        return RuleDataSnapshot(self._root, self._segments + split(path))

    def parent(self) -> RuleDataSnapshot:
        if not self._segments:
            raise RuleEvaluationError("parent() called on the root")
        return RuleDataSnapshot(self._root, self._segments[:-1])

    def hasChild(self, path: str) -> bool:
        return self.child(path).exists()

    def hasChildren(self, keys: list[str] | None = None) -> bool:
        if keys is None:
            return any(True for _ in children(self._node))
        if not isinstance(keys, list):
            raise RuleEvaluationError("hasChildren() expects an array of keys")
        return all(self.hasChild(k) for k in keys)

    def isNumber(self) -> bool:
        value = self.val()
        return isinstance(value, (int, float)) and not isinstance(value, bool)

    def isString(self) -> bool:
        return isinstance(self.val(), str)

    def isBoolean(self) -> bool:
        return isinstance(self.val(), bool)

    def getPriority(self) -> Any:
        return priority_of(self._node)

    def __repr__(self) -> str:
        return f"RuleDataSnapshot(/{'/'.join(self._segments)})"


_SNAPSHOT_METHODS = frozenset(
    {
        "val", "exists", "child", "parent", "hasChild", "hasChildren",
        "isNumber", "isString", "isBoolean", "getPriority",
    }
)


def _matches(s: str, pattern: str) -> bool:
    try:
        return re.search(pattern, s) is not None
    except re.error as e:
        raise RuleEvaluationError(f"Invalid pattern {pattern!r}: {e}") from e


_STRING_METHODS: dict[str, Callable[..., Any]] = {
    "contains": lambda s, sub: sub in s,
    "beginsWith": lambda s, prefix: s.startswith(prefix),
    "endsWith": lambda s, suffix: s.endswith(suffix),
    "toLowerCase": lambda s: s.lower(),
    "toUpperCase": lambda s: s.upper(),
    "replace": lambda s, old, new: s.replace(old, new),
    "matches": _matches,
}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _js_str(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _strict_equal(a: Any, b: Any) -> bool:
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    if _is_number(a) and _is_number(b):
        return a == b
    if type(a) is not type(b):
        return False
    return a == b


def _order(op: ast.cmpop, a: Any, b: Any) -> bool:
    if not ((_is_number(a) and _is_number(b)) or (isinstance(a, str) and isinstance(b, str))):
        raise RuleEvaluationError(f"Cannot compare {a!r} and {b!r}")
    if isinstance(op, ast.Lt):
        return a < b
    if isinstance(op, ast.LtE):
        return a <= b
    if isinstance(op, ast.Gt):
        return a > b
    return a >= b


class RuleExpression:
    """A compiled rule expression.

    Attributes:
        source: Original rule string
        python_source: Translated Python expression
    """

    def __init__(self, source: str, python_source: str, tree: ast.Expression) -> None:
        self.source = source
        self.python_source = python_source
        self._tree = tree

    def evaluate(self, variables: Mapping[str, Any]) -> bool:
        """Evaluate against a variable scope.

        Returns:
            True only if the expression evaluates to exactly True

        Raises:
            RuleEvaluationError: On any runtime error inside the expression
        """
        try:
            result = self._eval(self._tree.body, variables)
        except RuleEvaluationError as e:
            e.expression = self.source
            raise
        except (TypeError, ValueError, ZeroDivisionError, AttributeError) as e:
            raise RuleEvaluationError(f"Error evaluating rule: {e}", self.source) from e
        return result is True

    def _eval(self, node: ast.AST, scope: Mapping[str, Any]) -> Any:
        if isinstance(node, ast.Constant):
            return node.value

        if isinstance(node, ast.Name):
            if node.id not in scope:
                raise RuleEvaluationError(f"Unknown variable '{node.id}'")
            return scope[node.id]

        if isinstance(node, ast.List):
            return [self._eval(e, scope) for e in node.elts]

        if isinstance(node, ast.BoolOp):
            result: Any = None
            for value_node in node.values:
                result = self._eval(value_node, scope)
                if isinstance(node.op, ast.And) and not result:
                    return result
                if isinstance(node.op, ast.Or) and result:
                    return result
            return result

        if isinstance(node, ast.UnaryOp):
            operand = self._eval(node.operand, scope)
            if isinstance(node.op, ast.Invert):
                return not operand
            if not _is_number(operand):
                raise RuleEvaluationError(f"Unary minus on non-number {operand!r}")
            return -operand if isinstance(node.op, ast.USub) else operand

        if isinstance(node, ast.BinOp):
            return self._binop(node, scope)

        if isinstance(node, ast.Compare):
            left = self._eval(node.left, scope)
            for op, comparator in zip(node.ops, node.comparators):
                right = self._eval(comparator, scope)
                if isinstance(op, ast.Eq):
                    ok = _strict_equal(left, right)
                elif isinstance(op, ast.NotEq):
                    ok = not _strict_equal(left, right)
                else:
                    ok = _order(op, left, right)
                if not ok:
                    return False
                left = right
            return True

        if isinstance(node, ast.Attribute):
            base = self._eval(node.value, scope)
            return self._member(base, node.attr)

        if isinstance(node, ast.Call):
            return self._call(node, scope)

        raise RuleEvaluationError(f"Unsupported expression node {type(node).__name__}")

    def _binop(self, node: ast.BinOp, scope: Mapping[str, Any]) -> Any:
        left = self._eval(node.left, scope)
        right = self._eval(node.right, scope)

        if isinstance(node.op, ast.Add) and (isinstance(left, str) or isinstance(right, str)):
            return _js_str(left) + _js_str(right)
        if not (_is_number(left) and _is_number(right)):
            raise RuleEvaluationError(f"Arithmetic on non-numbers {left!r}, {right!r}")

        if isinstance(node.op, ast.Add):
            return left + right
        if isinstance(node.op, ast.Sub):
            return left - right
        if isinstance(node.op, ast.Mult):
            return left * right
        if isinstance(node.op, ast.Div):
            return left / right
        return left % right

    def _member(self, base: Any, attr: str) -> Any:
        if isinstance(base, Mapping):
            return base.get(attr)
        if isinstance(base, (str, list)) and attr == "length":
            return len(base)
        raise RuleEvaluationError(f"Cannot read property '{attr}' of {_js_str(base)}")

    def _call(self, node: ast.Call, scope: Mapping[str, Any]) -> Any:
        func = node.func
        if not isinstance(func, ast.Attribute):
            raise RuleEvaluationError("Only method calls are allowed")
        target = self._eval(func.value, scope)
        args = [self._eval(a, scope) for a in node.args]

        if isinstance(target, RuleDataSnapshot) and func.attr in _SNAPSHOT_METHODS:
            return getattr(target, func.attr)(*args)
        if isinstance(target, str) and func.attr in _STRING_METHODS:
            if not all(isinstance(a, str) for a in args):
                raise RuleEvaluationError(f"{func.attr}() expects string arguments")
            return _STRING_METHODS[func.attr](target, *args)
        raise RuleEvaluationError(f"{_js_str(target)}.{func.attr} is not a function")

    def __repr__(self) -> str:
        return f"RuleExpression({self.source!r})"


@lru_cache(maxsize=1024)
def compile_expression(source: str, variables: frozenset[str] = BUILTIN_VARIABLES) -> RuleExpression:
    """Compile a rule string.

    Args:
        source: Rule expression in rule-language syntax
        variables: Names that may appear in the expression (builtins plus
            the Python names of the wildcards in scope)

    Returns:
        Compiled RuleExpression

    Raises:
        RulesSyntaxError: If the rule does not parse or uses disallowed syntax
    """
    python_source = translate(source)
    try:
        tree = ast.parse(python_source, mode="eval")
    except SyntaxError as e:
        raise RulesSyntaxError(f"Invalid rule syntax in {source!r}: {e.msg}") from e

    for n in ast.walk(tree):
        if not isinstance(n, _ALLOWED_NODES):
            raise RulesSyntaxError(f"Disallowed construct {type(n).__name__} in rule {source!r}")
        if isinstance(n, ast.Call):
            if not isinstance(n.func, ast.Attribute) or n.keywords:
                raise RulesSyntaxError(f"Only plain method calls are allowed in rule {source!r}")
        if isinstance(n, ast.Name) and n.id not in variables and n.id not in ("None", "True", "False"):
            raise RulesSyntaxError(f"Unknown variable '{n.id}' in rule {source!r}")
        if isinstance(n, ast.Constant) and not isinstance(n.value, (str, int, float, bool, type(None))):
            raise RulesSyntaxError(f"Unsupported literal in rule {source!r}")

    logger.debug(f"Compiled rule {source!r} as {python_source!r}")
    return RuleExpression(source, python_source, tree)


__all__ = [
    "BUILTIN_VARIABLES",
    "RuleDataSnapshot",
    "RuleExpression",
    "compile_expression",
    "translate",
    "wildcard_variable",
]
