"""
Quantity formulas for template items.

A formula states how much of a supply one order consumes, e.g.
``ceil(quantity / 4) + 1``. The grammar is closed:

    expr    := term (("+" | "-") term)*
    term    := unary (("*" | "/") unary)*
    unary   := ("+" | "-") unary | primary
    primary := NUMBER | "quantity" | "ceil" "(" expr ")" | "(" expr ")"

Evaluation is a tokenizer plus a recursive-descent parser over Decimal.
Nothing from the host interpreter is reachable from a formula.
"""
from __future__ import annotations

import re
from decimal import Decimal, DecimalException, ROUND_CEILING, localcontext
from typing import List, Optional, Tuple

from ..core.errors import InvalidFormula, InvalidFormulaResult, InvalidInput, InvalidQuantity

QUANTITY_VAR = "quantity"
CEIL_FUNC = "ceil"
# nested parentheses plus chained signs
MAX_NESTING = 50

ALLOWED_CHARS_RE = re.compile(r"^[0-9+\-*/().\s_a-zA-Z]+$")
_TOKEN_RE = re.compile(r"\s*(?:(?P<num>\d+(?:\.\d*)?|\.\d+)|(?P<name>[A-Za-z_][A-Za-z_0-9]*)|(?P<op>[-+*/()]))")

Token = Tuple[str, str]  # (kind, text)


def _tokenize(formula: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    text = formula.rstrip()
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if not m or m.end() == pos:
            raise InvalidFormula(formula, f"unexpected character at position {pos}")
        kind = m.lastgroup or ""
        tokens.append((kind, m.group(kind)))
        pos = m.end()
    return tokens


class _Parser:
    def __init__(self, formula: str, tokens: List[Token], quantity: Optional[Decimal]):
        self.formula = formula
        self.tokens = tokens
        self.pos = 0
        self.depth = 0
        # None means "syntax check only"; the variable evaluates to 1
        self.quantity = quantity if quantity is not None else Decimal(1)

    def _peek(self) -> Optional[Token]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _take(self) -> Token:
        tok = self._peek()
        if tok is None:
            raise InvalidFormula(self.formula, "unexpected end of formula")
        self.pos += 1
        return tok

    def _expect(self, text: str) -> None:
        kind, value = self._take()
        if kind != "op" or value != text:
            raise InvalidFormula(self.formula, f"expected {text!r}, got {value!r}")

    def parse(self) -> Decimal:
        if not self.tokens:
            raise InvalidFormula(self.formula, "empty formula")
        value = self._expr()
        if self._peek() is not None:
            raise InvalidFormula(self.formula, f"unexpected token {self._peek()[1]!r}")
        return value

    def _expr(self) -> Decimal:
        value = self._term()
        while True:
            tok = self._peek()
            if tok == ("op", "+"):
                self.pos += 1
                value = value + self._term()
            elif tok == ("op", "-"):
                self.pos += 1
                value = value - self._term()
            else:
                return value

    def _term(self) -> Decimal:
        value = self._unary()
        while True:
            tok = self._peek()
            if tok == ("op", "*"):
                self.pos += 1
                value = value * self._unary()
            elif tok == ("op", "/"):
                self.pos += 1
                value = value / self._unary()
            else:
                return value

    def _unary(self) -> Decimal:
        self.depth += 1
        if self.depth > MAX_NESTING:
            raise InvalidFormula(self.formula, f"nested deeper than {MAX_NESTING} levels")
        try:
            tok = self._peek()
            if tok == ("op", "-"):
                self.pos += 1
                return -self._unary()
            if tok == ("op", "+"):
                self.pos += 1
                return self._unary()
            return self._primary()
        finally:
            self.depth -= 1

    def _primary(self) -> Decimal:
        kind, value = self._take()
        if kind == "num":
            return Decimal(value)
        if kind == "name":
            if value == QUANTITY_VAR:
                return self.quantity
            if value == CEIL_FUNC:
                self._expect("(")
                inner = self._expr()
                self._expect(")")
                return inner.to_integral_value(rounding=ROUND_CEILING)
            raise InvalidFormula(self.formula, f"unknown identifier {value!r}")
        if value == "(":
            inner = self._expr()
            self._expect(")")
            return inner
        raise InvalidFormula(self.formula, f"unexpected token {value!r}")


def to_decimal(value, error_cls=InvalidQuantity, label: str = "quantity") -> Decimal:
    """Coerce int/float/str/Decimal to a finite Decimal or raise error_cls."""
    if isinstance(value, bool) or value is None:
        raise error_cls(f"{label} must be a number")
    try:
        d = value if isinstance(value, Decimal) else Decimal(str(value))
    except (DecimalException, ValueError, TypeError):
        raise error_cls(f"{label} must be a number")
    if not d.is_finite():
        raise error_cls(f"{label} must be finite")
    return d


def _check_syntax(formula) -> str:
    if not isinstance(formula, str) or not ALLOWED_CHARS_RE.match(formula):
        raise InvalidFormula(str(formula), "only digits, + - * / ( ) . and names are allowed")
    return formula


def validate_formula(formula: str) -> str:
    """Parse without a concrete quantity. Returns the stripped formula."""
    _check_syntax(formula)
    parser = _Parser(formula, _tokenize(formula), None)
    with localcontext() as ctx:
        ctx.prec = 28
        try:
            parser.parse()
        except DecimalException:
            # syntax is fine; the value only fails for some quantities
            pass
    return formula.strip()


def evaluate_formula(formula: str, quantity) -> Decimal:
    """Consumed supply quantity for an order of ``quantity`` units."""
    _check_syntax(formula)
    qty = to_decimal(quantity)
    if qty <= 0:
        raise InvalidQuantity("quantity must be > 0")

    parser = _Parser(formula, _tokenize(formula), qty)
    with localcontext() as ctx:
        ctx.prec = 28
        try:
            result = parser.parse()
        except DecimalException:
            raise InvalidFormulaResult(formula, "arithmetic error (division by zero or overflow)")

    if not result.is_finite() or result < 0:
        raise InvalidFormulaResult(formula)
    return result


def default_formula_for(default_qty_per_unit, rounding: str = "none") -> str:
    """Formula derived from a supply's default consumption per ordered unit."""
    k = to_decimal(default_qty_per_unit, InvalidInput, "default_qty_per_unit")
    if k < 0:
        raise InvalidInput("default_qty_per_unit must be >= 0")
    expr = f"{QUANTITY_VAR} * {k.normalize():f}"
    return f"{CEIL_FUNC}({expr})" if rounding == "ceil" else expr
