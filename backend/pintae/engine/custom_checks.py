"""Rule runner for user-configured (custom) checks.

A check configuration selects one of three record kinds via
``dataset_scope`` and applies one of five rule types to every record that
passes its optional ``condition``:

  - missing        — field absent, null or blank
  - duplicate      — composite key shared by more than one record
  - math           — left/right arithmetic expressions compared with tolerance
  - regex          — non-empty field fails a pattern
  - custom_formula — boolean formula evaluates falsy

Each rule type has its own parameter class; ``load_check_config`` picks the
class from ``rule_type`` and rejects unknown kinds up front, so the runner's
dispatch table is always complete.  Incomplete parameters are tolerated at
load time and the rule is skipped when run.
"""

from __future__ import annotations

import re
import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Union

from pintae.config import MONETARY_TOLERANCE, TRACE_ENABLED
from pintae.engine.datasets import (
    CheckException,
    DataContext,
    is_blank,
    record_coordinates,
    within_tolerance,
)
from pintae.engine.expressions import (
    ExpressionError,
    evaluate_arithmetic,
    evaluate_condition,
    evaluate_formula,
    resolve_field,
    stringify,
    substitute,
)

logger = logging.getLogger(__name__)


def _trace(msg: str):
    if TRACE_ENABLED:
        logger.debug(f"[TRACE] {msg}")


class CheckConfigError(ValueError):
    """Raised when a check configuration has an unusable shape."""


# dataset_scope → DataContext attribute
DATASET_SCOPES = {
    "buyers": "buyers",
    "header": "headers",
    "lines": "lines",
    "cross-file": "headers",
}


# ═══════════════════════════════════════════════════
# 1. RULE PARAMETERS (one class per rule type)
# ═══════════════════════════════════════════════════

@dataclass(frozen=True)
class MissingParams:
    field: Optional[str] = None

    def missing(self) -> list[str]:
        return [] if self.field else ["field"]

    @classmethod
    def from_parameters(cls, p: Mapping[str, Any]) -> "MissingParams":
        return cls(field=p.get("field") or None)


@dataclass(frozen=True)
class DuplicateParams:
    fields: tuple[str, ...] = ()

    def missing(self) -> list[str]:
        return [] if self.fields else ["fields"]

    @classmethod
    def from_parameters(cls, p: Mapping[str, Any]) -> "DuplicateParams":
        raw = p.get("fields") or ()
        if isinstance(raw, str):
            raw = [f.strip() for f in raw.split(",")]
        return cls(fields=tuple(f for f in raw if f))


@dataclass(frozen=True)
class MathParams:
    left_expression: Optional[str] = None
    right_expression: Optional[str] = None
    operator: Optional[str] = None
    tolerance: float = MONETARY_TOLERANCE

    def missing(self) -> list[str]:
        return [
            name for name in ("left_expression", "right_expression", "operator")
            if not getattr(self, name)
        ]

    @classmethod
    def from_parameters(cls, p: Mapping[str, Any]) -> "MathParams":
        tolerance = p.get("tolerance")
        try:
            tolerance = MONETARY_TOLERANCE if tolerance is None else float(tolerance)
        except (TypeError, ValueError):
            raise CheckConfigError(f"math tolerance must be a number, got {tolerance!r}")
        return cls(
            left_expression=p.get("left_expression") or None,
            right_expression=p.get("right_expression") or None,
            operator=p.get("operator") or None,
            tolerance=tolerance,
        )


@dataclass(frozen=True)
class RegexParams:
    field: Optional[str] = None
    pattern: Optional[str] = None

    def missing(self) -> list[str]:
        return [name for name in ("field", "pattern") if not getattr(self, name)]

    @classmethod
    def from_parameters(cls, p: Mapping[str, Any]) -> "RegexParams":
        return cls(field=p.get("field") or None, pattern=p.get("pattern") or None)


@dataclass(frozen=True)
class FormulaParams:
    formula: Optional[str] = None

    def missing(self) -> list[str]:
        return [] if self.formula else ["formula"]

    @classmethod
    def from_parameters(cls, p: Mapping[str, Any]) -> "FormulaParams":
        return cls(formula=p.get("formula") or None)


RuleParams = Union[MissingParams, DuplicateParams, MathParams, RegexParams, FormulaParams]

RULE_PARAM_TYPES: dict[str, type] = {
    "missing": MissingParams,
    "duplicate": DuplicateParams,
    "math": MathParams,
    "regex": RegexParams,
    "custom_formula": FormulaParams,
}


@dataclass(frozen=True)
class CheckConfig:
    """A loaded custom check definition."""
    name: str
    rule_type: str
    dataset_scope: str
    params: RuleParams
    id: Optional[str] = None
    description: str = ""
    severity: str = "Medium"
    message_template: str = ""
    condition: Optional[str] = None
    is_active: bool = True


def load_check_config(raw: Mapping[str, Any]) -> CheckConfig:
    """Validate a raw check configuration dict and build a :class:`CheckConfig`.

    Raises:
        CheckConfigError: unknown/absent ``rule_type`` or ``dataset_scope``,
            or ``parameters`` that is not a mapping.
    """
    if not isinstance(raw, Mapping):
        raise CheckConfigError("Check configuration must be an object")
    label = raw.get("name") or raw.get("id") or "(unnamed)"

    rule_type = raw.get("rule_type")
    if rule_type not in RULE_PARAM_TYPES:
        raise CheckConfigError(
            f"Check '{label}': unsupported rule_type {rule_type!r} "
            f"(expected one of {', '.join(RULE_PARAM_TYPES)})"
        )
    scope = raw.get("dataset_scope")
    if scope not in DATASET_SCOPES:
        raise CheckConfigError(
            f"Check '{label}': unsupported dataset_scope {scope!r} "
            f"(expected one of {', '.join(DATASET_SCOPES)})"
        )
    parameters = raw.get("parameters") or {}
    if not isinstance(parameters, Mapping):
        raise CheckConfigError(f"Check '{label}': parameters must be an object")

    is_active = raw.get("is_active", raw.get("is_enabled", True))
    return CheckConfig(
        id=raw.get("id"),
        name=raw.get("name") or str(label),
        description=raw.get("description") or "",
        rule_type=rule_type,
        dataset_scope=scope,
        params=RULE_PARAM_TYPES[rule_type].from_parameters(parameters),
        severity=raw.get("severity") or "Medium",
        message_template=raw.get("message_template") or "",
        condition=raw.get("condition") or parameters.get("condition") or None,
        is_active=bool(is_active),
    )


def load_check_configs(raws: list[Mapping[str, Any]]) -> list[CheckConfig]:
    return [load_check_config(r) for r in raws]


# ═══════════════════════════════════════════════════
# 2. RULE EVALUATORS
# ═══════════════════════════════════════════════════

def _make_exception(
    check: CheckConfig,
    record: Mapping[str, Any],
    data: DataContext,
    message: str,
    **details: Any,
) -> CheckException:
    return CheckException(
        check_id=check.id or "custom",
        check_name=check.name,
        severity=check.severity,
        message=message,
        **record_coordinates(record, data),
        **details,
    )


def _compare(operator: str, left: float, right: float, tolerance: float) -> bool:
    if operator == "=":
        return within_tolerance(left, right, tolerance)
    if operator == "!=":
        return not within_tolerance(left, right, tolerance)
    if operator == ">":
        return left > right
    if operator == "<":
        return left < right
    if operator == ">=":
        return left >= right
    if operator == "<=":
        return left <= right
    return False


def _run_missing(check: CheckConfig, records, data: DataContext) -> list[CheckException]:
    p: MissingParams = check.params
    out = []
    for record in records:
        if is_blank(resolve_field(record, p.field)):
            out.append(_make_exception(
                check, record, data, substitute(check.message_template, record),
                field=p.field, actual_value="(empty)",
            ))
    return out


def _key_part(value: Any) -> str:
    return "" if value is None else stringify(value)


def _run_duplicate(check: CheckConfig, records, data: DataContext) -> list[CheckException]:
    p: DuplicateParams = check.params
    groups: dict[str, list[Mapping[str, Any]]] = {}
    for record in records:
        key = "|".join(_key_part(resolve_field(record, f)) for f in p.fields)
        groups.setdefault(key, []).append(record)

    out = []
    for key, members in groups.items():
        if len(members) < 2:
            continue
        _trace(f"duplicate [{check.name}] key={key!r} count={len(members)}")
        for record in members:
            out.append(_make_exception(
                check, record, data,
                substitute(check.message_template, record, {"count": len(members)}),
                field=", ".join(p.fields),
                actual_value=f"{len(members)} duplicates",
            ))
    return out


def _run_math(check: CheckConfig, records, data: DataContext) -> list[CheckException]:
    p: MathParams = check.params
    out = []
    for record in records:
        left = evaluate_arithmetic(p.left_expression, record)
        right = evaluate_arithmetic(p.right_expression, record)
        if left is None or right is None:
            continue
        if _compare(p.operator, left, right, p.tolerance):
            continue
        out.append(_make_exception(
            check, record, data,
            substitute(check.message_template, record, {"left": left, "right": right}),
            field=p.left_expression, expected_value=right, actual_value=left,
        ))
    return out


def _run_regex(check: CheckConfig, records, data: DataContext) -> list[CheckException]:
    p: RegexParams = check.params
    try:
        pattern = re.compile(p.pattern)
    except re.error as e:
        logger.warning(f"Custom check [{check.name}] skipped: invalid pattern {p.pattern!r} ({e})")
        return []

    out = []
    for record in records:
        value = resolve_field(record, p.field)
        if is_blank(value) or pattern.search(stringify(value)):
            continue
        out.append(_make_exception(
            check, record, data, substitute(check.message_template, record),
            field=p.field, expected_value=f"matches {p.pattern}", actual_value=value,
        ))
    return out


def _run_formula(check: CheckConfig, records, data: DataContext) -> list[CheckException]:
    p: FormulaParams = check.params
    out = []
    for record in records:
        try:
            passed = evaluate_formula(p.formula, record)
        except ExpressionError as e:
            # Fail-open: a formula that cannot be evaluated never flags the record
            _trace(f"formula [{check.name}] skipped record: {e}")
            continue
        if not passed:
            out.append(_make_exception(
                check, record, data, substitute(check.message_template, record),
            ))
    return out


_EVALUATORS: dict[type, Callable[..., list[CheckException]]] = {
    MissingParams: _run_missing,
    DuplicateParams: _run_duplicate,
    MathParams: _run_math,
    RegexParams: _run_regex,
    FormulaParams: _run_formula,
}


# ═══════════════════════════════════════════════════
# 3. RUNNER
# ═══════════════════════════════════════════════════

def run_custom_check(
    check: Union[CheckConfig, Mapping[str, Any]], data: DataContext
) -> list[CheckException]:
    """Run one custom check over the dataset slice selected by its scope."""
    if not isinstance(check, CheckConfig):
        check = load_check_config(check)

    missing = check.params.missing()
    if missing:
        logger.warning(f"Custom check [{check.name}] skipped: missing parameter(s) {', '.join(missing)}")
        return []

    records = [
        r for r in getattr(data, DATASET_SCOPES[check.dataset_scope])
        if evaluate_condition(check.condition, r)
    ]
    return _EVALUATORS[type(check.params)](check, records, data)


def run_custom_checks(
    checks: list[Union[CheckConfig, Mapping[str, Any]]], data: DataContext
) -> list[CheckException]:
    """Run every active custom check and concatenate the exceptions."""
    all_exceptions: list[CheckException] = []
    for check in checks:
        if not isinstance(check, CheckConfig):
            check = load_check_config(check)
        if not check.is_active:
            continue
        results = run_custom_check(check, data)
        if results:
            logger.info(f"Custom check [{check.name}]: {len(results)} exception(s)")
        all_exceptions.extend(results)
    return all_exceptions
