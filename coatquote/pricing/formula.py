"""
Small Excel-like formula interpreter.

Formulas are tokenized, parsed by recursive descent into an expression tree
and evaluated against a worksheet snapshot. Nothing is ever passed to
``eval``; the supported grammar is exactly what the parser accepts:

    expr        := additive (compare_op additive)?
    additive    := term (('+' | '-') term)*
    term        := power (('*' | '/') power)*
    power       := signed ('^' signed)*
    signed      := ('+' | '-') signed | postfix
    postfix     := primary '%'*
    primary     := NUMBER | TRUE | FALSE | REF | FUNC '(' args ')' | '(' expr ')'

Ranges (``A1:B3``) are only valid as arguments of SUM, MAX and MIN.
"""

from __future__ import annotations

import math
import operator
import re
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Callable, Dict, List, Optional, Set, Tuple, Union

from openpyxl.utils.cell import get_column_letter, range_boundaries

from coatquote.core.exceptions import EvaluationFailure
from coatquote.core.logging import get_logger
from coatquote.pricing.cells import FormulaCell, NumericCell, OtherCell, Worksheet, get_numeric

logger = get_logger(__name__)

MAX_RANGE_CELLS = 100_000
ROUND_DIGITS_LIMIT = 340


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Token:
    kind: str  # NUMBER, REF, RANGE, FUNC, BOOL, OP, LPAREN, RPAREN, SEP
    text: str
    pos: int


_TOKEN_SPEC = [
    ("SPACE", r"\s+"),
    ("FUNC", r"[A-Za-z_][A-Za-z0-9_.]*(?=\s*\()"),
    ("RANGE", r"\$?[A-Za-z]{1,3}\$?\d+\s*:\s*\$?[A-Za-z]{1,3}\$?\d+"),
    ("REF", r"\$?[A-Za-z]{1,3}\$?\d+(?![A-Za-z0-9_])"),
    ("NUMBER", r"(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?"),
    ("BOOL", r"(?i:TRUE|FALSE)(?![A-Za-z0-9_])"),
    ("OP", r"<=|>=|<>|[-+*/^%=<>]"),
    ("LPAREN", r"\("),
    ("RPAREN", r"\)"),
    ("SEP", r"[,;]"),
]
_TOKEN_RE = re.compile("|".join(f"(?P<{name}>{pattern})" for name, pattern in _TOKEN_SPEC))


def tokenize(formula: str) -> List[Token]:
    """Split a formula (without leading '=') into tokens."""
    tokens: List[Token] = []
    pos = 0
    while pos < len(formula):
        match = _TOKEN_RE.match(formula, pos)
        if match is None:
            raise EvaluationFailure(
                f"Unsupported syntax at position {pos}: {formula[pos:pos + 10]!r}",
                formula=formula,
            )
        kind = match.lastgroup or ""
        if kind != "SPACE":
            tokens.append(Token(kind=kind, text=match.group(), pos=pos))
        pos = match.end()
    return tokens


# ---------------------------------------------------------------------------
# Expression tree
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class Ref:
    address: str


@dataclass(frozen=True)
class Range:
    start: str
    end: str


@dataclass(frozen=True)
class Unary:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class Binary:
    op: str
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Call:
    name: str
    args: Tuple["Node", ...]


Node = Union[Number, Ref, Range, Unary, Binary, Call]

COMPARE_OPS = {"=", "<>", "<", ">", "<=", ">="}


def _clean_address(text: str) -> str:
    return text.replace("$", "").replace(" ", "").upper()


class Parser:
    """Recursive-descent parser producing a ``Node`` tree."""

    def __init__(self, formula: str):
        self.formula = formula
        self.tokens = tokenize(formula)
        self.index = 0

    def parse(self) -> Node:
        if not self.tokens:
            raise EvaluationFailure("Empty formula", formula=self.formula)
        node = self._expr()
        if self._peek() is not None:
            token = self._peek()
            raise EvaluationFailure(
                f"Unexpected {token.text!r} at position {token.pos}", formula=self.formula
            )
        return node

    def _peek(self) -> Optional[Token]:
        if self.index < len(self.tokens):
            return self.tokens[self.index]
        return None

    def _next(self) -> Token:
        token = self._peek()
        if token is None:
            raise EvaluationFailure("Unexpected end of formula", formula=self.formula)
        self.index += 1
        return token

    def _accept_op(self, *ops: str) -> Optional[str]:
        token = self._peek()
        if token is not None and token.kind == "OP" and token.text in ops:
            self.index += 1
            return token.text
        return None

    def _expect(self, kind: str) -> Token:
        token = self._next()
        if token.kind != kind:
            raise EvaluationFailure(
                f"Expected {kind.lower()} but found {token.text!r} at position {token.pos}",
                formula=self.formula,
            )
        return token

    def _expr(self) -> Node:
        left = self._additive()
        op = self._accept_op(*COMPARE_OPS)
        if op is not None:
            left = Binary(op, left, self._additive())
        return left

    def _additive(self) -> Node:
        node = self._term()
        while True:
            op = self._accept_op("+", "-")
            if op is None:
                return node
            node = Binary(op, node, self._term())

    def _term(self) -> Node:
        node = self._power()
        while True:
            op = self._accept_op("*", "/")
            if op is None:
                return node
            node = Binary(op, node, self._power())

    def _power(self) -> Node:
        # Excel binds unary minus tighter than '^': -2^2 == 4
        node = self._signed()
        while self._accept_op("^") is not None:
            node = Binary("^", node, self._signed())
        return node

    def _signed(self) -> Node:
        op = self._accept_op("+", "-")
        if op is not None:
            return Unary(op, self._signed())
        return self._postfix()

    def _postfix(self) -> Node:
        node = self._primary()
        while self._accept_op("%") is not None:
            node = Unary("%", node)
        return node

    def _primary(self) -> Node:
        token = self._next()
        if token.kind == "NUMBER":
            return Number(float(token.text))
        if token.kind == "BOOL":
            return Number(1.0 if token.text.upper() == "TRUE" else 0.0)
        if token.kind == "REF":
            return Ref(_clean_address(token.text))
        if token.kind == "RANGE":
            start, end = token.text.split(":")
            return Range(_clean_address(start), _clean_address(end))
        if token.kind == "FUNC":
            return self._call(token.text.upper())
        if token.kind == "LPAREN":
            node = self._expr()
            self._expect("RPAREN")
            return node
        raise EvaluationFailure(
            f"Unexpected {token.text!r} at position {token.pos}", formula=self.formula
        )

    def _call(self, name: str) -> Call:
        self._expect("LPAREN")
        args: List[Node] = []
        token = self._peek()
        if token is not None and token.kind == "RPAREN":
            self.index += 1
            return Call(name, tuple(args))
        while True:
            args.append(self._expr())
            token = self._next()
            if token.kind == "RPAREN":
                return Call(name, tuple(args))
            if token.kind != "SEP":
                raise EvaluationFailure(
                    f"Expected ',' or ')' in {name}() but found {token.text!r}",
                    formula=self.formula,
                )


def parse_formula(formula: str) -> Node:
    """Parse a formula string, with or without the leading '='."""
    text = formula.strip()
    if text.startswith("="):
        text = text[1:]
    return Parser(text).parse()


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def round_half_away(value: float, digits: int) -> float:
    """Round half away from zero, as Excel's ROUND does."""
    # Beyond this a double has no digits left to round
    digits = max(-ROUND_DIGITS_LIMIT, min(ROUND_DIGITS_LIMIT, digits))
    try:
        with localcontext() as ctx:
            ctx.prec = 1000
            quantum = Decimal(1).scaleb(-digits)
            return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))
    except (InvalidOperation, OverflowError, ValueError) as e:
        raise EvaluationFailure(f"Cannot round {value} to {digits} digits") from e


@dataclass
class FormulaResult:
    value: float
    references: Dict[str, float] = field(default_factory=dict)


_ARITHMETIC: Dict[str, Callable[[float, float], float]] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
    "^": operator.pow,
}

_COMPARISON: Dict[str, Callable[[float, float], bool]] = {
    "=": operator.eq,
    "<>": operator.ne,
    "<": operator.lt,
    ">": operator.gt,
    "<=": operator.le,
    ">=": operator.ge,
}


class FormulaEngine:
    """
    Evaluates formulas against one worksheet snapshot.

    Cell references read numeric cells directly, evaluate formula cells
    recursively with the same engine and read anything else as 0.
    """

    def __init__(self, sheet: Worksheet):
        self.sheet = sheet
        self.references: Dict[str, float] = {}
        self._memo: Dict[str, float] = {}
        self._active: Set[str] = set()
        self._functions: Dict[str, Callable[[Tuple[Node, ...]], float]] = {
            "IF": self._fn_if,
            "SUM": self._fn_sum,
            "MAX": self._fn_max,
            "MIN": self._fn_min,
            "ABS": self._fn_abs,
            "ROUND": self._fn_round,
        }

    def eval(self, formula: str) -> FormulaResult:
        """
        Evaluate a formula string.

        Raises:
            EvaluationFailure: On unsupported syntax or a non-finite result
        """
        tree = parse_formula(formula)
        value = self._finite(self.evaluate(tree), formula)
        return FormulaResult(value=value, references=dict(self.references))

    def evaluate(self, node: Node) -> float:
        if isinstance(node, Number):
            return node.value
        if isinstance(node, Ref):
            return self._resolve(node.address)
        if isinstance(node, Range):
            raise EvaluationFailure(
                f"Range {node.start}:{node.end} is only allowed inside SUM, MAX or MIN"
            )
        if isinstance(node, Unary):
            return self._unary(node)
        if isinstance(node, Binary):
            return self._binary(node)
        if isinstance(node, Call):
            handler = self._functions.get(node.name)
            if handler is None:
                raise EvaluationFailure(f"Unsupported function {node.name}()")
            return handler(node.args)
        raise TypeError(f"Unknown node type: {type(node).__name__}")

    # -- operators --

    def _unary(self, node: Unary) -> float:
        value = self.evaluate(node.operand)
        if node.op == "-":
            return -value
        if node.op == "%":
            return value / 100.0
        return value

    def _binary(self, node: Binary) -> float:
        left = self.evaluate(node.left)
        right = self.evaluate(node.right)
        if node.op in _COMPARISON:
            return 1.0 if _COMPARISON[node.op](left, right) else 0.0
        try:
            result = _ARITHMETIC[node.op](left, right)
        except ZeroDivisionError as e:
            raise EvaluationFailure("#DIV/0! division by zero") from e
        except OverflowError as e:
            raise EvaluationFailure(f"Numeric overflow in {node.op!r}") from e
        if isinstance(result, complex):
            raise EvaluationFailure(f"#NUM! {left} ^ {right} has no real result")
        return result

    # -- references --

    def _resolve(self, address: str) -> float:
        if address in self._memo:
            return self._memo[address]
        if address in self._active:
            raise EvaluationFailure(f"Circular reference through {address}")

        cell = self.sheet.get(address)
        if cell is None or isinstance(cell, OtherCell):
            value = get_numeric(self.sheet, address) or 0.0
        elif isinstance(cell, NumericCell):
            value = cell.value
        elif isinstance(cell, FormulaCell):
            self._active.add(address)
            try:
                value = self._finite(self.evaluate(parse_formula(cell.formula)), cell.formula)
            finally:
                self._active.discard(address)
        else:
            raise TypeError(f"Unknown cell type: {type(cell).__name__}")

        self._memo[address] = value
        self.references[address] = value
        return value

    def _expand(self, node: Range) -> List[str]:
        try:
            min_col, min_row, max_col, max_row = range_boundaries(f"{node.start}:{node.end}")
        except ValueError as e:
            raise EvaluationFailure(f"Invalid range {node.start}:{node.end}") from e
        count = (max_col - min_col + 1) * (max_row - min_row + 1)
        if count > MAX_RANGE_CELLS:
            raise EvaluationFailure(f"Range {node.start}:{node.end} is too large ({count} cells)")
        return [
            f"{get_column_letter(col)}{row}"
            for row in range(min_row, max_row + 1)
            for col in range(min_col, max_col + 1)
        ]

    def _collect(self, args: Tuple[Node, ...]) -> List[float]:
        """Flatten aggregate arguments; blank and text cells inside ranges are skipped."""
        values: List[float] = []
        for arg in args:
            if not isinstance(arg, Range):
                values.append(self.evaluate(arg))
                continue
            for address in self._expand(arg):
                cell = self.sheet.get(address)
                if cell is None:
                    continue
                if isinstance(cell, OtherCell) and get_numeric(self.sheet, address) is None:
                    continue
                values.append(self._resolve(address))
        return values

    # -- functions --

    def _fn_if(self, args: Tuple[Node, ...]) -> float:
        if len(args) not in (2, 3):
            raise EvaluationFailure(f"IF() takes 2 or 3 arguments, got {len(args)}")
        if self.evaluate(args[0]) != 0:
            return self.evaluate(args[1])
        if len(args) == 3:
            return self.evaluate(args[2])
        return 0.0

    def _fn_sum(self, args: Tuple[Node, ...]) -> float:
        return math.fsum(self._collect(args))

    def _fn_max(self, args: Tuple[Node, ...]) -> float:
        values = self._collect(args)
        return max(values) if values else 0.0

    def _fn_min(self, args: Tuple[Node, ...]) -> float:
        values = self._collect(args)
        return min(values) if values else 0.0

    def _fn_abs(self, args: Tuple[Node, ...]) -> float:
        if len(args) != 1:
            raise EvaluationFailure(f"ABS() takes 1 argument, got {len(args)}")
        return abs(self.evaluate(args[0]))

    def _fn_round(self, args: Tuple[Node, ...]) -> float:
        if len(args) != 2:
            raise EvaluationFailure(f"ROUND() takes 2 arguments, got {len(args)}")
        value = self.evaluate(args[0])
        digits = int(self._finite(self.evaluate(args[1]), "ROUND"))
        return round_half_away(self._finite(value, "ROUND"), digits)

    @staticmethod
    def _finite(value: float, formula: str) -> float:
        if not math.isfinite(value):
            raise EvaluationFailure(f"Formula produced a non-finite value: {value}", formula=formula)
        return value


def evaluate_formula(
    formula: str,
    sheet: Worksheet,
    errors: Optional[List[str]] = None,
    references: Optional[Dict[str, float]] = None,
) -> Optional[float]:
    """
    Evaluate ``formula`` against ``sheet`` without raising.

    Args:
        formula: Formula text, e.g. ``=IF(D67>1000, D74*2.5, D74*3)``
        sheet: Worksheet snapshot to read references from
        errors: Optional list that receives a message on failure
        references: Optional dict that receives every cell value read

    Returns:
        The finite result, or None when the formula could not be computed
    """
    engine = FormulaEngine(sheet)
    try:
        result = engine.eval(formula)
    except EvaluationFailure as e:
        message = f"Formula {formula!r} could not be evaluated: {e}"
        logger.warning(message)
        if errors is not None:
            errors.append(message)
        return None
    except RecursionError:
        message = f"Formula {formula!r} is nested too deeply to evaluate"
        logger.warning(message)
        if errors is not None:
            errors.append(message)
        return None
    finally:
        if references is not None:
            references.update(engine.references)

    logger.debug(f"Formula {formula!r} -> {result.value} using {result.references}")
    return result.value
