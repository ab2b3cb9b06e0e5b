"""Expression/field resolver for the rule DSL.

Rule configurations reference record fields with ``{field.path}`` placeholders
inside small expressions, e.g.::

    {total_excl_vat} + {vat_total}
    {invoice_type} == "380" && {amount_due} > 0

Expressions are parsed by a recursive-descent parser into a tiny AST and
evaluated over typed values (number / string / bool / null).  Nothing is ever
handed to ``eval``.  Grammar, loosest binding first::

    or       := and (('||' | 'or') and)*
    and      := compare (('&&' | 'and') compare)*
    compare  := additive (('==' | '!=' | '===' | '!==' | '<' | '<=' | '>' | '>=') additive)?
    additive := term (('+' | '-') term)*
    term     := unary (('*' | '/' | '%') unary)*
    unary    := ('-' | '+' | '!' | 'not') unary | primary
    primary  := NUMBER | STRING | FIELD | 'null' | 'true' | 'false' | '(' or ')'

Failure policy lives with the callers:
  - evaluate_condition() is fail-open (any error → condition holds)
  - evaluate_arithmetic() returns None on missing fields or errors
  - evaluate_formula() raises ExpressionError so the runner can skip the record
"""

import math
import re
import logging
from collections.abc import Mapping, Sequence
from functools import lru_cache
from typing import Any, Callable, Optional

from pintae.config import TRACE_ENABLED

logger = logging.getLogger(__name__)

UNDEFINED_PLACEHOLDER = "(undefined)"

_PLACEHOLDER_RE = re.compile(r"\{([^{}]+)\}")


def _trace(msg: str):
    if TRACE_ENABLED:
        logger.debug(f"[TRACE] {msg}")


class ExpressionError(ValueError):
    """Raised when an expression cannot be parsed or evaluated."""


class _Unresolved(Exception):
    """Internal signal: a referenced field has no value (arithmetic mode)."""


# ═══════════════════════════════════════════════════
# 1. FIELD RESOLUTION & TEMPLATES
# ═══════════════════════════════════════════════════

def resolve_field(record: Any, field_path: str) -> Any:
    """Walk a dot path (``"a.b.c"``) through nested mappings.

    Returns None on any missing segment; never raises.
    """
    value = record
    for part in field_path.strip().split("."):
        if value is None:
            return None
        if isinstance(value, Mapping):
            value = value.get(part)
        elif isinstance(value, Sequence) and not isinstance(value, str) and part.isdigit():
            idx = int(part)
            value = value[idx] if idx < len(value) else None
        else:
            return None
    return value


def field_references(template: Optional[str]) -> list[str]:
    """Return every ``{field}`` path referenced by a template, in order."""
    if not template:
        return []
    return [m.strip() for m in _PLACEHOLDER_RE.findall(template)]


def stringify(value: Any) -> str:
    """Render a value the way it is shown in messages (1050.0 → "1050")."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def substitute(template: str, record: Any, extra: Optional[Mapping[str, Any]] = None) -> str:
    """Replace ``{field}`` placeholders with resolved values.

    Values from ``extra`` win over the record.  Unresolvable placeholders
    render as ``(undefined)`` instead of failing.
    """
    if not template:
        return ""

    def _replace(match: re.Match) -> str:
        path = match.group(1).strip()
        value = extra.get(path) if extra else None
        if value is None:
            value = resolve_field(record, path)
        if value is None:
            return UNDEFINED_PLACEHOLDER
        return stringify(value)

    return _PLACEHOLDER_RE.sub(_replace, template)


# ═══════════════════════════════════════════════════
# 2. TOKENIZER
# ═══════════════════════════════════════════════════

_TOKEN_RE = re.compile(r"""
    (?P<ws>\s+)
  | (?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)
  | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
  | (?P<field>\{[^{}]+\})
  | (?P<op>===|!==|==|!=|<=|>=|&&|\|\||[-+*/%<>!()])
  | (?P<name>[A-Za-z_][A-Za-z0-9_]*)
""", re.VERBOSE)

_KEYWORD_CONSTANTS = {"null": None, "true": True, "false": False}
_KEYWORD_OPS = {"and": "&&", "or": "||", "not": "!"}
_STRING_ESCAPES = {"n": "\n", "t": "\t", "r": "\r"}


def _unescape(body: str) -> str:
    out = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\" and i + 1 < len(body):
            nxt = body[i + 1]
            out.append(_STRING_ESCAPES.get(nxt, nxt))
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def _tokenize(text: str) -> list[tuple[str, Any]]:
    tokens: list[tuple[str, Any]] = []
    pos = 0
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if not m:
            raise ExpressionError(f"Unexpected character {text[pos]!r} at position {pos}")
        pos = m.end()
        kind = m.lastgroup
        raw = m.group()
        if kind == "ws":
            continue
        if kind == "number":
            tokens.append(("num", float(raw) if any(c in raw for c in ".eE") else int(raw)))
        elif kind == "string":
            tokens.append(("str", _unescape(raw[1:-1])))
        elif kind == "field":
            tokens.append(("field", raw[1:-1].strip()))
        elif kind == "op":
            tokens.append(("op", raw))
        else:
            lowered = raw.lower()
            if lowered in _KEYWORD_CONSTANTS:
                tokens.append(("const", _KEYWORD_CONSTANTS[lowered]))
            elif lowered in _KEYWORD_OPS:
                tokens.append(("op", _KEYWORD_OPS[lowered]))
            else:
                raise ExpressionError(f"Unknown identifier {raw!r}; wrap field names in braces")
    tokens.append(("end", None))
    return tokens


# ═══════════════════════════════════════════════════
# 3. RECURSIVE-DESCENT PARSER
# ═══════════════════════════════════════════════════

_COMPARISON_OPS = ("==", "!=", "===", "!==", "<", "<=", ">", ">=")


class _Parser:
    """Builds a tuple AST: ("lit", v) | ("field", path) | ("unary", op, n)
    | ("binary", op, l, r) | ("and", l, r) | ("or", l, r)."""

    def __init__(self, tokens: list[tuple[str, Any]]):
        self.tokens = tokens
        self.pos = 0

    def _peek(self) -> tuple[str, Any]:
        return self.tokens[self.pos]

    def _next(self) -> tuple[str, Any]:
        tok = self.tokens[self.pos]
        self.pos += 1
        return tok

    def _at_op(self, *ops: str) -> bool:
        kind, value = self._peek()
        return kind == "op" and value in ops

    def parse(self):
        node = self._or()
        kind, value = self._peek()
        if kind != "end":
            raise ExpressionError(f"Unexpected token {value!r}")
        return node

    def _or(self):
        node = self._and()
        while self._at_op("||"):
            self._next()
            node = ("or", node, self._and())
        return node

    def _and(self):
        node = self._compare()
        while self._at_op("&&"):
            self._next()
            node = ("and", node, self._compare())
        return node

    def _compare(self):
        node = self._additive()
        if self._at_op(*_COMPARISON_OPS):
            op = self._next()[1]
            node = ("binary", op, node, self._additive())
        return node

    def _additive(self):
        node = self._term()
        while self._at_op("+", "-"):
            op = self._next()[1]
            node = ("binary", op, node, self._term())
        return node

    def _term(self):
        node = self._unary()
        while self._at_op("*", "/", "%"):
            op = self._next()[1]
            node = ("binary", op, node, self._unary())
        return node

    def _unary(self):
        if self._at_op("-", "+", "!"):
            op = self._next()[1]
            return ("unary", op, self._unary())
        return self._primary()

    def _primary(self):
        kind, value = self._next()
        if kind in ("num", "str", "const"):
            return ("lit", value)
        if kind == "field":
            return ("field", value)
        if kind == "op" and value == "(":
            node = self._or()
            if not self._at_op(")"):
                raise ExpressionError("Missing closing parenthesis")
            self._next()
            return node
        if kind == "end":
            raise ExpressionError("Unexpected end of expression")
        raise ExpressionError(f"Unexpected token {value!r}")


@lru_cache(maxsize=512)
def parse_expression(text: str):
    """Parse an expression into an AST (cached per expression string)."""
    if not text or not text.strip():
        raise ExpressionError("Empty expression")
    return _Parser(_tokenize(text)).parse()


# ═══════════════════════════════════════════════════
# 4. EVALUATOR
# ═══════════════════════════════════════════════════

def is_truthy(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0 and not math.isnan(value)
    if isinstance(value, str):
        return value != ""
    return True


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _numeric_string(value: Any) -> Optional[float]:
    if isinstance(value, str) and value.strip():
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_number(value: Any, op: str) -> float:
    if _is_number(value):
        return value
    raise ExpressionError(f"Operator {op!r} needs numbers, got {stringify(value)!r}")


def _coerce_pair(left: Any, right: Any) -> tuple[Any, Any]:
    """Line up a number with a numeric string so "100" compares as 100."""
    if _is_number(left) and isinstance(right, str):
        num = _numeric_string(right)
        if num is not None:
            return left, num
    if _is_number(right) and isinstance(left, str):
        num = _numeric_string(left)
        if num is not None:
            return num, right
    return left, right


def _loose_equal(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return left is None and right is None
    left, right = _coerce_pair(left, right)
    return left == right


def _strict_equal(left: Any, right: Any) -> bool:
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    if _is_number(left) != _is_number(right):
        return False
    return left == right


def _order(op: str, left: Any, right: Any) -> bool:
    if left is None or right is None:
        return False
    left, right = _coerce_pair(left, right)
    comparable = (_is_number(left) and _is_number(right)) or (
        isinstance(left, str) and isinstance(right, str)
    )
    if not comparable:
        # "abc" > 0 is false, not an error
        return False
    if op == "<":
        return left < right
    if op == "<=":
        return left <= right
    if op == ">":
        return left > right
    return left >= right


def _binary(op: str, left: Any, right: Any) -> Any:
    if op == "==":
        return _loose_equal(left, right)
    if op == "!=":
        return not _loose_equal(left, right)
    if op == "===":
        return _strict_equal(left, right)
    if op == "!==":
        return not _strict_equal(left, right)
    if op in ("<", "<=", ">", ">="):
        return _order(op, left, right)
    if op == "+" and (isinstance(left, str) or isinstance(right, str)):
        if left is None or right is None:
            raise ExpressionError("Cannot concatenate null")
        return stringify(left) + stringify(right)

    a = _as_number(left, op)
    b = _as_number(right, op)
    if op == "+":
        return a + b
    if op == "-":
        return a - b
    if op == "*":
        return a * b
    if b == 0:
        raise ExpressionError("Division by zero")
    if op == "/":
        return a / b
    return math.fmod(a, b)


def _evaluate(node, lookup: Callable[[str], Any]) -> Any:
    tag = node[0]
    if tag == "lit":
        return node[1]
    if tag == "field":
        return lookup(node[1])
    if tag == "unary":
        operand = _evaluate(node[2], lookup)
        if node[1] == "!":
            return not is_truthy(operand)
        number = _as_number(operand, node[1])
        return -number if node[1] == "-" else number
    if tag == "and":
        left = _evaluate(node[1], lookup)
        return _evaluate(node[2], lookup) if is_truthy(left) else left
    if tag == "or":
        left = _evaluate(node[1], lookup)
        return left if is_truthy(left) else _evaluate(node[2], lookup)
    return _binary(node[1], _evaluate(node[2], lookup), _evaluate(node[3], lookup))


def _typed_value(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    raise ExpressionError(f"Unsupported field value type: {type(value).__name__}")


def _condition_lookup(record: Any) -> Callable[[str], Any]:
    return lambda path: _typed_value(resolve_field(record, path))


def _arithmetic_lookup(record: Any) -> Callable[[str], Any]:
    def lookup(path: str) -> Any:
        value = resolve_field(record, path)
        if value is None:
            raise _Unresolved(path)
        if isinstance(value, str):
            num = _numeric_string(value)
            return num if num is not None else value
        return _typed_value(value)
    return lookup


# ═══════════════════════════════════════════════════
# 5. PUBLIC EVALUATION API
# ═══════════════════════════════════════════════════

def evaluate(expression: str, record: Any) -> Any:
    """Evaluate an expression with condition-style field values.

    Strings stay strings, missing fields become null.  Raises ExpressionError.
    """
    return _evaluate(parse_expression(expression), _condition_lookup(record))


def evaluate_condition(condition: Optional[str], record: Any) -> bool:
    """Per-record gate.  Empty condition or any evaluation error → True."""
    if not condition or not condition.strip():
        return True
    try:
        return is_truthy(evaluate(condition, record))
    except (ExpressionError, RecursionError) as e:
        _trace(f"condition {condition!r} failed open: {e}")
        return True


def evaluate_arithmetic(expression: str, record: Any) -> Optional[float]:
    """Evaluate a numeric expression, or None when it cannot be resolved."""
    try:
        result = _evaluate(parse_expression(expression), _arithmetic_lookup(record))
    except _Unresolved as missing:
        _trace(f"arithmetic {expression!r}: field {missing} unresolved")
        return None
    except (ExpressionError, RecursionError) as e:
        _trace(f"arithmetic {expression!r} failed: {e}")
        return None
    if not _is_number(result) or not math.isfinite(result):
        return None
    return result


def evaluate_formula(formula: str, record: Any) -> bool:
    """Evaluate a boolean formula; errors propagate as ExpressionError."""
    try:
        return is_truthy(evaluate(formula, record))
    except RecursionError as e:
        raise ExpressionError(f"Formula too deeply nested: {formula!r}") from e
