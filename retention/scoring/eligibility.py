"""
Play eligibility rules as a small expression tree.

A rule such as ``risk >= 70 AND ltvTier in [Gold,VIP]`` is parsed into
``Comparison`` / ``Membership`` leaves joined by ``And`` / ``Or`` / ``Not``
and evaluated against a typed customer-field accessor.

Two compilers produce the same node types:

* ``parse_eligibility``: strict parser for the full grammar.
* ``legacy_eligibility``: reproduces the historical substring matcher,
  which only enforced four fixed clauses and ignored everything else.

``compile_eligibility`` picks one according to ``ELIGIBILITY_MODE``; the
default is the legacy compiler. In expression mode a rule outside the grammar
is logged and compiled with the legacy patterns instead, so the known clauses
are still enforced and only the unknown ones pass.
"""
from __future__ import annotations

import logging
import operator
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))
from configs.config import ELIGIBILITY_MODE
from retention.data.models import Customer

logger = logging.getLogger(__name__)


class EligibilityRuleError(ValueError):
    """Rule text outside the supported grammar."""


# ----------------------------------------------------------------------
# field access
# ----------------------------------------------------------------------

NUMBER = "number"
TEXT = "text"
BOOL = "bool"


@dataclass(frozen=True)
class FieldAccessor:
    name: str
    kind: str
    get: Callable[[Customer], Any]


_ACCESSORS = [
    FieldAccessor("risk", NUMBER, lambda c: c.risk_score),
    FieldAccessor("riskScore", NUMBER, lambda c: c.risk_score),
    FieldAccessor("riskBand", TEXT, lambda c: c.risk_band),
    FieldAccessor("ltv", NUMBER, lambda c: c.ltv),
    FieldAccessor("ltvTier", TEXT, lambda c: c.ltv_tier),
    FieldAccessor("loyaltyScore", NUMBER, lambda c: c.loyalty_score),
    FieldAccessor("engagementScore", NUMBER, lambda c: c.engagement_score),
    FieldAccessor("totalOrders", NUMBER, lambda c: c.total_orders),
    FieldAccessor("totalRevenue", NUMBER, lambda c: c.total_revenue),
    FieldAccessor("customerAge", NUMBER, lambda c: c.customer_age),
    FieldAccessor("daysSinceLastActivity", NUMBER, lambda c: c.days_since_last_activity),
    FieldAccessor("status", TEXT, lambda c: c.status),
    FieldAccessor("priceSensitivity", TEXT, lambda c: c.price_sensitivity),
    FieldAccessor("seasonalPattern", BOOL, lambda c: c.seasonal_pattern),
    FieldAccessor("emailEngagement.openRate", NUMBER, lambda c: c.email_engagement.open_rate),
    FieldAccessor("emailEngagement.clickRate", NUMBER, lambda c: c.email_engagement.click_rate),
    FieldAccessor("emailEngagement.unsubscribed", BOOL, lambda c: c.email_engagement.unsubscribed),
]

# rule text is matched case-insensitively
FIELD_ACCESSORS: Dict[str, FieldAccessor] = {a.name.lower(): a for a in _ACCESSORS}


def lookup_field(name: str) -> FieldAccessor:
    try:
        return FIELD_ACCESSORS[name.lower()]
    except KeyError:
        raise EligibilityRuleError(f"Unknown eligibility field: {name!r}") from None


# ----------------------------------------------------------------------
# expression nodes
# ----------------------------------------------------------------------

_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    ">=": operator.ge,
    "<=": operator.le,
    ">": operator.gt,
    "<": operator.lt,
    "==": operator.eq,
    "=": operator.eq,
    "!=": operator.ne,
}

Literal = Union[float, str, bool]


_BOOL_WORDS = {"true": True, "false": False}


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        try:
            return _BOOL_WORDS[value.strip().lower()]
        except KeyError:
            raise EligibilityRuleError(f"Not a boolean literal: {value!r}") from None
    return bool(value)


def _normalise(value: Any, kind: str) -> Any:
    if kind == NUMBER:
        return float(value)
    if kind == BOOL:
        return _as_bool(value)
    return str(value).lower()


@dataclass(frozen=True)
class Always:
    def evaluate(self, customer: Customer) -> bool:
        return True

    def __str__(self) -> str:
        return "TRUE"


@dataclass(frozen=True)
class Comparison:
    field: str
    op: str
    value: Literal

    def evaluate(self, customer: Customer) -> bool:
        accessor = lookup_field(self.field)
        actual = _normalise(accessor.get(customer), accessor.kind)
        return _OPERATORS[self.op](actual, _normalise(self.value, accessor.kind))

    def __str__(self) -> str:
        return f"{self.field} {self.op} {self.value}"


@dataclass(frozen=True)
class Membership:
    field: str
    values: Tuple[Literal, ...]

    def evaluate(self, customer: Customer) -> bool:
        accessor = lookup_field(self.field)
        actual = _normalise(accessor.get(customer), accessor.kind)
        return actual in {_normalise(v, accessor.kind) for v in self.values}

    def __str__(self) -> str:
        return f"{self.field} in [{','.join(str(v) for v in self.values)}]"


@dataclass(frozen=True)
class And:
    terms: Tuple["Expr", ...]

    def evaluate(self, customer: Customer) -> bool:
        return all(t.evaluate(customer) for t in self.terms)

    def __str__(self) -> str:
        return "(" + " AND ".join(str(t) for t in self.terms) + ")"


@dataclass(frozen=True)
class Or:
    terms: Tuple["Expr", ...]

    def evaluate(self, customer: Customer) -> bool:
        return any(t.evaluate(customer) for t in self.terms)

    def __str__(self) -> str:
        return "(" + " OR ".join(str(t) for t in self.terms) + ")"


@dataclass(frozen=True)
class Not:
    term: "Expr"

    def evaluate(self, customer: Customer) -> bool:
        return not self.term.evaluate(customer)

    def __str__(self) -> str:
        return f"NOT {self.term}"


Expr = Union[Always, Comparison, Membership, And, Or, Not]


# ----------------------------------------------------------------------
# strict parser
# ----------------------------------------------------------------------

_TOKEN_RE = re.compile(
    r"""\s*(?:
        (?P<num>-?\d+(?:\.\d+)?)
      | (?P<op>>=|<=|==|!=|>|<|=)
      | (?P<punct>[\[\](),])
      | (?P<str>'[^']*'|"[^"]*")
      | (?P<name>[A-Za-z_][A-Za-z0-9_.]*)
    )""",
    re.VERBOSE,
)
_KEYWORDS = {"and", "or", "not", "in", "true", "false"}


def _tokenize(text: str) -> List[Tuple[str, Any]]:
    tokens: List[Tuple[str, Any]] = []
    pos = 0
    text = text.rstrip()
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if m is None or m.end() == pos:
            raise EligibilityRuleError(f"Unexpected character at {pos} in {text!r}")
        pos = m.end()
        kind = m.lastgroup
        raw = m.group(kind)
        if kind == "num":
            tokens.append(("literal", float(raw)))
        elif kind == "str":
            tokens.append(("literal", raw[1:-1]))
        elif kind == "name" and raw.lower() in _KEYWORDS:
            word = raw.lower()
            if word in ("true", "false"):
                tokens.append(("literal", word == "true"))
            else:
                tokens.append(("kw", word))
        else:
            tokens.append((kind, raw))
    return tokens


class _Parser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.tokens = _tokenize(text)
        self.pos = 0

    def _peek(self) -> Optional[Tuple[str, Any]]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _next(self) -> Tuple[str, Any]:
        tok = self._peek()
        if tok is None:
            raise EligibilityRuleError(f"Unexpected end of rule {self.text!r}")
        self.pos += 1
        return tok

    def _accept(self, kind: str, value: Any = None) -> bool:
        tok = self._peek()
        if tok is not None and tok[0] == kind and (value is None or tok[1] == value):
            self.pos += 1
            return True
        return False

    def _expect(self, kind: str, value: Any = None) -> Tuple[str, Any]:
        tok = self._next()
        if tok[0] != kind or (value is not None and tok[1] != value):
            raise EligibilityRuleError(
                f"Expected {value or kind} but found {tok[1]!r} in {self.text!r}"
            )
        return tok

    def parse(self) -> Expr:
        expr = self._or()
        if self._peek() is not None:
            raise EligibilityRuleError(
                f"Unexpected token {self._peek()[1]!r} in {self.text!r}"
            )
        return expr

    def _or(self) -> Expr:
        terms = [self._and()]
        while self._accept("kw", "or"):
            terms.append(self._and())
        return terms[0] if len(terms) == 1 else Or(tuple(terms))

    def _and(self) -> Expr:
        terms = [self._not()]
        while self._accept("kw", "and"):
            terms.append(self._not())
        return terms[0] if len(terms) == 1 else And(tuple(terms))

    def _not(self) -> Expr:
        if self._accept("kw", "not"):
            return Not(self._not())
        return self._primary()

    def _literal(self) -> Literal:
        tok = self._next()
        if tok[0] == "literal":
            return tok[1]
        if tok[0] == "name":
            return tok[1]
        raise EligibilityRuleError(f"Expected a value but found {tok[1]!r} in {self.text!r}")

    def _primary(self) -> Expr:
        if self._accept("punct", "("):
            expr = self._or()
            self._expect("punct", ")")
            return expr

        _, name = self._expect("name")
        accessor = lookup_field(name)

        if self._accept("kw", "in"):
            self._expect("punct", "[")
            values = [self._literal()]
            while self._accept("punct", ","):
                values.append(self._literal())
            self._expect("punct", "]")
            if accessor.kind == NUMBER and not all(isinstance(v, float) for v in values):
                raise EligibilityRuleError(f"{accessor.name} needs numeric values in {self.text!r}")
            if accessor.kind == BOOL:
                values = [_as_bool(v) for v in values]
            return Membership(accessor.name, tuple(values))

        _, op = self._expect("op")
        value = self._literal()
        if accessor.kind == NUMBER and not isinstance(value, float):
            raise EligibilityRuleError(f"{accessor.name} needs a numeric value in {self.text!r}")
        if accessor.kind == BOOL:
            value = _as_bool(value)
        if accessor.kind != NUMBER and op not in ("=", "==", "!="):
            raise EligibilityRuleError(f"{accessor.name} only supports equality in {self.text!r}")
        return Comparison(accessor.name, op, value)


def parse_eligibility(text: str) -> Expr:
    """Parse ``text`` strictly. Empty rules are always eligible."""
    if text is None or not text.strip():
        return Always()
    return _Parser(text).parse()


# ----------------------------------------------------------------------
# historical pattern matcher
# ----------------------------------------------------------------------

_LEGACY_PATTERNS: List[Tuple[str, Expr]] = [
    ("risk >= 70", Comparison("risk", ">=", 70.0)),
    ("risk >= 50", Comparison("risk", ">=", 50.0)),
    ("ltvtier in [gold,vip]", Membership("ltvTier", ("Gold", "VIP"))),
    ("ltvtier in [silver,gold,vip]", Membership("ltvTier", ("Silver", "Gold", "VIP"))),
]


def legacy_eligibility(text: str) -> Expr:
    """Only the four fixed substrings are enforced; all other clauses pass."""
    lowered = (text or "").lower()
    terms = tuple(expr for pattern, expr in _LEGACY_PATTERNS if pattern in lowered)
    if not terms:
        return Always()
    return terms[0] if len(terms) == 1 else And(terms)


@lru_cache(maxsize=256)
def compile_eligibility(text: str, mode: str = ELIGIBILITY_MODE) -> Expr:
    if mode == "legacy":
        return legacy_eligibility(text)
    if mode != "expression":
        raise ValueError(f"Unknown eligibility mode: {mode!r}")
    try:
        return parse_eligibility(text)
    except EligibilityRuleError as exc:
        fallback = legacy_eligibility(text)
        logger.warning(
            "Unparseable eligibility rule %r compiled as %s: %s", text, fallback, exc
        )
        return fallback
