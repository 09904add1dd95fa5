"""Constrained expression evaluator for data-shaping plan steps.

Steps of kind "javascript" (and transform/filter/map/format/aggregate/...) run
a short expression over the previous step's output. The expression is parsed
with `ast` and interpreted node by node against a whitelist: literals, names
from the bindings, key access on dicts, indexing, comparisons, boolean and
arithmetic operators, comprehensions, lambdas and a fixed set of builtins.
There is no attribute access on arbitrary objects, no imports, no I/O.

Dict attributes read keys (`data.orders` == `data["orders"]`, missing keys
give None). JavaScript-only forms such as `x.length` or `items.filter(...)`
are rejected.
"""

import ast
import operator
import re
from collections.abc import Callable, Mapping
from typing import Any

from admin_agent.errors import ValidationError

MAX_EXPRESSION_CHARS = 2000

SAFE_BIN_OPS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}
SAFE_UNARY_OPS: dict[type, Callable[[Any], Any]] = {
    ast.UAdd: lambda v: +v,
    ast.USub: lambda v: -v,
    ast.Not: lambda v: not v,
}
SAFE_COMPARE_OPS: dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}
SAFE_BUILTINS: dict[str, Any] = {
    "len": len,
    "sum": sum,
    "min": min,
    "max": max,
    "sorted": sorted,
    "list": list,
    "dict": dict,
    "set": set,
    "str": str,
    "int": int,
    "float": float,
    "round": round,
    "any": any,
    "all": all,
    "abs": abs,
    "True": True,
    "False": False,
    "None": None,
}
_STR_METHODS = frozenset(
    {"lower", "upper", "strip", "title", "startswith", "endswith", "split", "join", "replace"}
)
_DICT_METHODS = frozenset({"get", "keys", "values", "items"})
_RETURN_PREFIX_RE = re.compile(r"^\s*return\s+")


class _Evaluator:
    def __init__(self, bindings: Mapping[str, Any]) -> None:
        self.names = {**SAFE_BUILTINS, **bindings}

    def eval(self, node: ast.AST, env: dict[str, Any]) -> Any:
        method = getattr(self, f"_eval_{type(node).__name__}", None)
        if method is None:
            raise ValidationError(f"Expression element not allowed: {type(node).__name__}")
        return method(node, env)

    def _eval_Expression(self, node: ast.Expression, env: dict[str, Any]) -> Any:
        return self.eval(node.body, env)

    def _eval_Constant(self, node: ast.Constant, env: dict[str, Any]) -> Any:
        if node.value is None or isinstance(node.value, (bool, int, float, str)):
            return node.value
        raise ValidationError("Unsupported literal")

    def _eval_Name(self, node: ast.Name, env: dict[str, Any]) -> Any:
        if node.id in env:
            return env[node.id]
        if node.id in self.names:
            return self.names[node.id]
        raise ValidationError(f"Unknown name: {node.id}")

    def _eval_List(self, node: ast.List, env: dict[str, Any]) -> Any:
        return [self.eval(elt, env) for elt in node.elts]

    def _eval_Tuple(self, node: ast.Tuple, env: dict[str, Any]) -> Any:
        return tuple(self.eval(elt, env) for elt in node.elts)

    def _eval_Set(self, node: ast.Set, env: dict[str, Any]) -> Any:
        return {self.eval(elt, env) for elt in node.elts}

    def _eval_Dict(self, node: ast.Dict, env: dict[str, Any]) -> Any:
        if any(key is None for key in node.keys):
            raise ValidationError("Dict unpacking not allowed")
        return {
            self.eval(k, env): self.eval(v, env)  # type: ignore[arg-type]
            for k, v in zip(node.keys, node.values)
        }

    def _eval_JoinedStr(self, node: ast.JoinedStr, env: dict[str, Any]) -> Any:
        return "".join(str(self.eval(value, env)) for value in node.values)

    def _eval_FormattedValue(self, node: ast.FormattedValue, env: dict[str, Any]) -> Any:
        if node.format_spec is not None:
            spec = self.eval(node.format_spec, env)
            return format(self.eval(node.value, env), spec)
        return self.eval(node.value, env)

    def _eval_Attribute(self, node: ast.Attribute, env: dict[str, Any]) -> Any:
        if node.attr.startswith("_"):
            raise ValidationError(f"Attribute not allowed: {node.attr}")
        target = self.eval(node.value, env)
        if isinstance(target, Mapping):
            if node.attr in target:
                return target[node.attr]
            if node.attr in _DICT_METHODS:
                return getattr(target, node.attr)
            return None
        if isinstance(target, str) and node.attr in _STR_METHODS:
            return getattr(target, node.attr)
        raise ValidationError(f"Attribute not allowed: {node.attr}")

    def _eval_Subscript(self, node: ast.Subscript, env: dict[str, Any]) -> Any:
        target = self.eval(node.value, env)
        if isinstance(node.slice, ast.Slice):
            bounds = (node.slice.lower, node.slice.upper, node.slice.step)
            return target[slice(*(self.eval(b, env) if b else None for b in bounds))]
        index = self.eval(node.slice, env)
        try:
            return target[index]
        except (KeyError, IndexError, TypeError):
            return None

    def _eval_Compare(self, node: ast.Compare, env: dict[str, Any]) -> Any:
        left = self.eval(node.left, env)
        for op, comparator in zip(node.ops, node.comparators):
            right = self.eval(comparator, env)
            fn = SAFE_COMPARE_OPS.get(type(op))
            if fn is None:
                raise ValidationError("Comparison not allowed")
            if not fn(left, right):
                return False
            left = right
        return True

    def _eval_BoolOp(self, node: ast.BoolOp, env: dict[str, Any]) -> Any:
        value: Any = None
        if isinstance(node.op, ast.And):
            for expr in node.values:
                value = self.eval(expr, env)
                if not value:
                    return value
            return value
        for expr in node.values:
            value = self.eval(expr, env)
            if value:
                return value
        return value

    def _eval_BinOp(self, node: ast.BinOp, env: dict[str, Any]) -> Any:
        fn = SAFE_BIN_OPS.get(type(node.op))
        if fn is None:
            raise ValidationError("Operator not allowed")
        return fn(self.eval(node.left, env), self.eval(node.right, env))

    def _eval_UnaryOp(self, node: ast.UnaryOp, env: dict[str, Any]) -> Any:
        fn = SAFE_UNARY_OPS.get(type(node.op))
        if fn is None:
            raise ValidationError("Operator not allowed")
        return fn(self.eval(node.operand, env))

    def _eval_IfExp(self, node: ast.IfExp, env: dict[str, Any]) -> Any:
        return self.eval(node.body, env) if self.eval(node.test, env) else self.eval(node.orelse, env)

    def _eval_Lambda(self, node: ast.Lambda, env: dict[str, Any]) -> Any:
        params = [arg.arg for arg in node.args.args]
        if node.args.vararg or node.args.kwarg or node.args.kwonlyargs or node.args.defaults:
            raise ValidationError("Only simple lambda parameters are allowed")

        def _fn(*args: Any) -> Any:
            if len(args) != len(params):
                raise ValidationError("Lambda called with the wrong number of arguments")
            return self.eval(node.body, {**env, **dict(zip(params, args))})

        return _fn

    def _eval_Call(self, node: ast.Call, env: dict[str, Any]) -> Any:
        fn = self.eval(node.func, env)
        if not callable(fn):
            raise ValidationError("Call target is not callable")
        args = []
        for arg in node.args:
            if isinstance(arg, ast.Starred):
                raise ValidationError("Argument unpacking not allowed")
            args.append(self.eval(arg, env))
        kwargs = {}
        for kw in node.keywords:
            if kw.arg is None:
                raise ValidationError("Keyword unpacking not allowed")
            kwargs[kw.arg] = self.eval(kw.value, env)
        return fn(*args, **kwargs)

    def _assign(self, target: ast.AST, value: Any, env: dict[str, Any]) -> None:
        if isinstance(target, ast.Name):
            env[target.id] = value
        elif isinstance(target, ast.Tuple) and isinstance(value, (list, tuple)):
            if len(target.elts) != len(value):
                raise ValidationError("Unpacking mismatch")
            for elt, item in zip(target.elts, value):
                self._assign(elt, item, env)
        else:
            raise ValidationError("Unsupported comprehension target")

    def _comprehension(self, node: Any, env: dict[str, Any], emit: Callable[[dict[str, Any]], None]) -> None:
        def _walk(index: int, scope: dict[str, Any]) -> None:
            if index == len(node.generators):
                emit(scope)
                return
            generator = node.generators[index]
            if generator.is_async:
                raise ValidationError("Async comprehensions not allowed")
            for item in self.eval(generator.iter, scope):
                inner = dict(scope)
                self._assign(generator.target, item, inner)
                if all(self.eval(cond, inner) for cond in generator.ifs):
                    _walk(index + 1, inner)

        _walk(0, dict(env))

    def _eval_ListComp(self, node: ast.ListComp, env: dict[str, Any]) -> Any:
        out: list[Any] = []
        self._comprehension(node, env, lambda scope: out.append(self.eval(node.elt, scope)))
        return out

    _eval_GeneratorExp = _eval_ListComp

    def _eval_SetComp(self, node: ast.SetComp, env: dict[str, Any]) -> Any:
        out: set[Any] = set()
        self._comprehension(node, env, lambda scope: out.add(self.eval(node.elt, scope)))
        return out

    def _eval_DictComp(self, node: ast.DictComp, env: dict[str, Any]) -> Any:
        out: dict[Any, Any] = {}

        def _emit(scope: dict[str, Any]) -> None:
            out[self.eval(node.key, scope)] = self.eval(node.value, scope)

        self._comprehension(node, env, _emit)
        return out


def evaluate_expression(expression: str, bindings: Mapping[str, Any]) -> Any:
    """Evaluate a constrained expression.

    Args:
        expression: Python-style expression; a leading "return" and trailing
            ";" are tolerated.
        bindings: Names visible to the expression (e.g. result, items, count).

    Returns:
        The expression's value.

    Raises:
        ValidationError: If the expression is malformed, uses anything outside
            the whitelist, or fails while evaluating.
    """
    text = _RETURN_PREFIX_RE.sub("", (expression or "").strip()).rstrip(";").strip()
    if not text:
        raise ValidationError("Empty expression")
    if len(text) > MAX_EXPRESSION_CHARS:
        raise ValidationError("Expression too long")
    try:
        tree = ast.parse(text, mode="eval")
    except SyntaxError as e:
        raise ValidationError(f"Invalid expression: {e.msg}") from None

    try:
        return _Evaluator(bindings).eval(tree, {})
    except ValidationError:
        raise
    except (TypeError, ValueError, KeyError, IndexError, ZeroDivisionError, RecursionError) as e:
        raise ValidationError(f"Expression failed: {type(e).__name__}: {e}") from None
