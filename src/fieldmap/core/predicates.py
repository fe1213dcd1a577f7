"""
Predicate Grammar: Conditional Field Expressions.

This module defines the boolean expression grammar used by conditional
field mappings. Predicates are tokenized and parsed once into an immutable
AST, then evaluated against each record.

Grammar (lowest to highest precedence):
    or_expr    := and_expr (('||' | OR) and_expr)*
    and_expr   := unary (('&&' | AND) unary)*
    unary      := ('!' | NOT) unary | '(' or_expr ')' | comparison
    comparison := operand COMPARATOR operand
                | operand IS [NOT] NULL
                | operand [NOT] IN '(' literal (',' literal)* ')'
                | operand [NOT] BETWEEN literal AND literal
                | operand [NOT] LIKE literal

    operand    := identifier | 'quoted' | "quoted" | number | TRUE | FALSE | NULL
    COMPARATOR := == | = | != | <> | < | > | <= | >=

Keywords are case-insensitive. LIKE uses SQL wildcards: % (any run) and
_ (one character); a backslash makes the next character literal.

Examples:
    "amount > 1000000 && status == 'ACTIVE'"
    "amount BETWEEN 100000 AND 1000000"
    "region IN ('NE', 'SE') || !(code LIKE 'X%')"
    "closed_date IS NULL"
"""

import logging
import re
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Pattern, Tuple

from fieldmap.core.diagnostics import PredicateSyntaxError
from fieldmap.core.resolver import lookup_field
from fieldmap.core.values import to_number, to_text

logger = logging.getLogger(__name__)


class Comparator(Enum):
    """Comparison operators for predicates."""
    EQ = "=="
    NE = "!="
    GT = ">"
    GE = ">="
    LT = "<"
    LE = "<="


class BoolOperator(Enum):
    """Boolean operators for combining predicates."""
    AND = "AND"
    OR = "OR"
    NOT = "NOT"


COMPARATOR_ALIASES = {
    "==": Comparator.EQ,
    "=": Comparator.EQ,
    "!=": Comparator.NE,
    "<>": Comparator.NE,
    ">": Comparator.GT,
    ">=": Comparator.GE,
    "<": Comparator.LT,
    "<=": Comparator.LE,
}

KEYWORDS = {"AND", "OR", "NOT", "IN", "BETWEEN", "LIKE", "IS", "NULL", "TRUE", "FALSE"}


# =============================================================================
# AST
# =============================================================================

@dataclass(frozen=True)
class PredicateAST:
    """Base class for predicate AST nodes."""
    pass


@dataclass(frozen=True)
class FieldRef:
    """Bare identifier, resolved against the record."""
    name: str


@dataclass(frozen=True)
class Literal:
    """Quoted string, number, or boolean literal."""
    text: str
    number: Optional[float] = None


@dataclass(frozen=True)
class NullLiteral:
    """The NULL keyword. Only valid against == / != and rewritten to NullPredicate."""
    pass


Operand = Any  # FieldRef | Literal


@dataclass(frozen=True)
class ComparisonPredicate(PredicateAST):
    """A simple comparison: left COMPARATOR right."""
    left: Operand
    comparator: Comparator
    right: Operand


@dataclass(frozen=True)
class InPredicate(PredicateAST):
    """operand [NOT] IN (v1, v2, ...)."""
    operand: Operand
    values: Tuple[Literal, ...]
    negated: bool = False


@dataclass(frozen=True)
class BetweenPredicate(PredicateAST):
    """operand [NOT] BETWEEN low AND high (inclusive)."""
    operand: Operand
    low: Literal
    high: Literal
    negated: bool = False


@dataclass(frozen=True)
class LikePredicate(PredicateAST):
    """operand [NOT] LIKE pattern."""
    operand: Operand
    pattern: str
    regex: Pattern = field(compare=False, repr=False)
    negated: bool = False


@dataclass(frozen=True)
class NullPredicate(PredicateAST):
    """operand IS [NOT] NULL."""
    operand: Operand
    negated: bool = False


@dataclass(frozen=True)
class BooleanPredicate(PredicateAST):
    """Boolean combination of predicates."""
    operator: BoolOperator
    operands: Tuple[PredicateAST, ...]


def like_to_regex(pattern: str) -> Pattern:
    """
    Translate a SQL LIKE pattern into an anchored regular expression.

    A backslash escapes the following character.

    Example:
        >>> like_to_regex("AB_%").fullmatch("ABC123") is not None
        True
    """
    parts: List[str] = []
    escaped = False
    for ch in pattern:
        if escaped:
            parts.append(re.escape(ch))
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == "%":
            parts.append(".*")
        elif ch == "_":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    if escaped:
        parts.append(re.escape("\\"))
    return re.compile("".join(parts), re.DOTALL)


# =============================================================================
# TOKENIZER
# =============================================================================

@dataclass(frozen=True)
class Token:
    kind: str  # NUMBER | STRING | IDENT | KEYWORD | OP | LPAREN | RPAREN | COMMA | EOF
    text: str
    position: int


TOKEN_PATTERN = re.compile(
    r"""
      (?P<WS>\s+)
    | (?P<NUMBER>[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?(?![A-Za-z_]))
    | (?P<STRING>'(?:[^'\\]|\\.|'')*'|"(?:[^"\\]|\\.|"")*")
    | (?P<OP>&&|\|\||==|!=|<>|<=|>=|=|<|>|!)
    | (?P<LPAREN>\()
    | (?P<RPAREN>\))
    | (?P<COMMA>,)
    | (?P<IDENT>[A-Za-z_][A-Za-z0-9_.\-]*)
    """,
    re.VERBOSE,
)


def tokenize(expr: str) -> List[Token]:
    """
    Split a predicate string into tokens.

    Raises:
        PredicateSyntaxError: On an unexpected character or unterminated string.
    """
    tokens: List[Token] = []
    pos = 0
    while pos < len(expr):
        match = TOKEN_PATTERN.match(expr, pos)
        if not match:
            snippet = expr[pos:pos + 10]
            raise PredicateSyntaxError(f"Unexpected input at {pos}: {snippet!r}", expr, pos)
        kind = match.lastgroup
        text = match.group(kind)
        if kind == "IDENT" and text.upper() in KEYWORDS:
            tokens.append(Token("KEYWORD", text.upper(), pos))
        elif kind != "WS":
            tokens.append(Token(kind, text, pos))
        pos = match.end()
    tokens.append(Token("EOF", "", len(expr)))
    return tokens


def _unquote(text: str, keep_escapes: bool = False) -> str:
    """
    Strip quotes from a STRING token.

    Doubled quotes and backslash-escaped quotes always unescape. With
    keep_escapes, every other backslash sequence is left in place for LIKE
    patterns, where a backslash escapes a wildcard.
    """
    quote = text[0]

    def replace(match):
        escaped = match.group(1)
        if escaped is None:
            return quote
        if keep_escapes and escaped != quote:
            return match.group(0)
        return escaped

    return re.sub(r"\\(.)|" + re.escape(quote * 2), replace, text[1:-1], flags=re.DOTALL)


# =============================================================================
# PREDICATE PARSER
# =============================================================================

# Maximum nesting of parentheses / negations
MAX_NESTING_DEPTH = 64


class PredicateParser:
    """
    Recursive-descent parser from predicate strings to AST.

    The parser is stateless between calls; each parse() works on its own
    token list.
    """

    def parse(self, expr: str) -> PredicateAST:
        """
        Parse a predicate expression into an AST.

        Args:
            expr: The predicate string to parse.

        Returns:
            A PredicateAST node representing the expression.

        Raises:
            PredicateSyntaxError: If the expression is invalid.
        """
        if expr is None or not expr.strip():
            raise PredicateSyntaxError("Empty predicate expression", expr or "", 0)
        return _ParseRun(expr, tokenize(expr)).run()


class _ParseRun:
    """Cursor over one token list."""

    def __init__(self, expr: str, tokens: List[Token]):
        self.expr = expr
        self.tokens = tokens
        self.index = 0
        self.depth = 0

    def run(self) -> PredicateAST:
        node = self._parse_or()
        if self._peek().kind != "EOF":
            self._fail(f"Unexpected token {self._peek().text!r}")
        return node

    # -- token helpers -------------------------------------------------------

    def _peek(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        token = self.tokens[self.index]
        if token.kind != "EOF":
            self.index += 1
        return token

    def _at(self, kind: str, *texts: str) -> bool:
        token = self._peek()
        return token.kind == kind and (not texts or token.text in texts)

    def _expect(self, kind: str, text: Optional[str] = None) -> Token:
        if not self._at(kind, *([text] if text else [])):
            wanted = text or kind
            found = self._peek().text or "end of expression"
            self._fail(f"Expected {wanted}, found {found!r}")
        return self._advance()

    def _fail(self, message: str):
        position = self._peek().position
        raise PredicateSyntaxError(f"{message} at {position} in: {self.expr}", self.expr, position)

    # -- grammar -------------------------------------------------------------

    def _parse_or(self) -> PredicateAST:
        """Parse OR expressions (lowest precedence)."""
        operands = [self._parse_and()]
        while self._at("OP", "||") or self._at("KEYWORD", "OR"):
            self._advance()
            operands.append(self._parse_and())
        if len(operands) == 1:
            return operands[0]
        return BooleanPredicate(operator=BoolOperator.OR, operands=tuple(operands))

    def _parse_and(self) -> PredicateAST:
        """Parse AND expressions."""
        operands = [self._parse_unary()]
        while self._at("OP", "&&") or self._at("KEYWORD", "AND"):
            self._advance()
            operands.append(self._parse_unary())
        if len(operands) == 1:
            return operands[0]
        return BooleanPredicate(operator=BoolOperator.AND, operands=tuple(operands))

    def _parse_unary(self) -> PredicateAST:
        """Parse negation, grouping, or a comparison."""
        if self._at("OP", "!") or self._at("KEYWORD", "NOT"):
            self._advance()
            saved_depth = self._enter()
            operand = self._parse_unary()
            self.depth = saved_depth
            return BooleanPredicate(operator=BoolOperator.NOT, operands=(operand,))
        if self._at("LPAREN"):
            self._advance()
            saved_depth = self._enter()
            node = self._parse_or()
            self._expect("RPAREN")
            self.depth = saved_depth
            return node
        return self._parse_comparison()

    def _enter(self) -> int:
        previous = self.depth
        self.depth += 1
        if self.depth > MAX_NESTING_DEPTH:
            self._fail(f"Nesting deeper than {MAX_NESTING_DEPTH}")
        return previous

    def _parse_comparison(self) -> PredicateAST:
        """Parse a comparison expression."""
        left = self._parse_operand()
        if isinstance(left, NullLiteral):
            self._fail("NULL cannot start a comparison")

        if self._at("OP") and self._peek().text in COMPARATOR_ALIASES:
            comparator = COMPARATOR_ALIASES[self._advance().text]
            right = self._parse_operand()
            if isinstance(right, NullLiteral):
                if comparator not in (Comparator.EQ, Comparator.NE):
                    self._fail("NULL can only be compared with == or !=")
                return NullPredicate(operand=left, negated=comparator is Comparator.NE)
            return ComparisonPredicate(left=left, comparator=comparator, right=right)

        if self._at("KEYWORD", "IS"):
            self._advance()
            negated = False
            if self._at("KEYWORD", "NOT"):
                self._advance()
                negated = True
            self._expect("KEYWORD", "NULL")
            return NullPredicate(operand=left, negated=negated)

        negated = False
        if self._at("KEYWORD", "NOT"):
            self._advance()
            negated = True
            if not self._at("KEYWORD", "IN", "BETWEEN", "LIKE"):
                self._fail("Expected IN, BETWEEN or LIKE after NOT")

        if self._at("KEYWORD", "IN"):
            self._advance()
            self._expect("LPAREN")
            values = [self._parse_literal()]
            while self._at("COMMA"):
                self._advance()
                values.append(self._parse_literal())
            self._expect("RPAREN")
            return InPredicate(operand=left, values=tuple(values), negated=negated)

        if self._at("KEYWORD", "BETWEEN"):
            self._advance()
            low = self._parse_literal()
            self._expect("KEYWORD", "AND")
            high = self._parse_literal()
            return BetweenPredicate(operand=left, low=low, high=high, negated=negated)

        if self._at("KEYWORD", "LIKE"):
            self._advance()
            pattern = self._parse_literal(keep_escapes=True).text
            return LikePredicate(operand=left, pattern=pattern, regex=like_to_regex(pattern), negated=negated)

        self._fail("Expected comparison operator")

    def _parse_operand(self):
        token = self._peek()
        if token.kind == "IDENT":
            self._advance()
            return FieldRef(token.text)
        if token.kind == "KEYWORD" and token.text == "NULL":
            self._advance()
            return NullLiteral()
        return self._parse_literal()

    def _parse_literal(self, keep_escapes: bool = False) -> Literal:
        token = self._peek()
        if token.kind == "NUMBER":
            self._advance()
            return Literal(text=token.text, number=to_number(token.text))
        if token.kind == "STRING":
            self._advance()
            text = _unquote(token.text, keep_escapes)
            return Literal(text=text, number=to_number(text))
        if token.kind == "KEYWORD" and token.text in ("TRUE", "FALSE"):
            self._advance()
            return Literal(text=token.text.lower())
        self._fail(f"Expected a value, found {token.text or 'end of expression'!r}")


# =============================================================================
# PREDICATE EVALUATOR
# =============================================================================

Coerced = Tuple[Optional[str], Optional[float]]


class PredicateEvaluator:
    """
    Evaluates predicate AST against a record.

    Coercion rules:
    - both operands numeric -> numeric comparison
    - otherwise case-sensitive string comparison, null reading as ""
    - null against a numeric operand is not-a-number: only != holds
    """

    def __init__(self, case_insensitive: bool = True):
        """
        Initialize evaluator.

        Args:
            case_insensitive: Fall back to case-insensitive field lookup.
        """
        self.case_insensitive = case_insensitive

    def evaluate(self, predicate: PredicateAST, record: Mapping[str, Any]) -> bool:
        """
        Evaluate a predicate against a record.

        Args:
            predicate: The predicate AST to evaluate.
            record: Field-name to value mapping.

        Returns:
            True if the predicate is satisfied, False otherwise.
        """
        if isinstance(predicate, BooleanPredicate):
            return self._eval_boolean(predicate, record)
        if isinstance(predicate, ComparisonPredicate):
            return self._compare(
                self._coerce(predicate.left, record),
                predicate.comparator,
                self._coerce(predicate.right, record),
            )
        if isinstance(predicate, InPredicate):
            value = self._coerce(predicate.operand, record)
            found = any(
                self._compare(value, Comparator.EQ, (lit.text, lit.number))
                for lit in predicate.values
            )
            return found != predicate.negated
        if isinstance(predicate, BetweenPredicate):
            value = self._coerce(predicate.operand, record)
            low, high = predicate.low, predicate.high
            inside = (
                self._compare(value, Comparator.GE, (low.text, low.number))
                and self._compare(value, Comparator.LE, (high.text, high.number))
            )
            return inside != predicate.negated
        if isinstance(predicate, LikePredicate):
            text, _ = self._coerce(predicate.operand, record)
            matched = predicate.regex.fullmatch(text or "") is not None
            return matched != predicate.negated
        if isinstance(predicate, NullPredicate):
            text, _ = self._coerce(predicate.operand, record)
            return (text is None) != predicate.negated
        raise TypeError(f"Unknown predicate type: {type(predicate)}")

    def _eval_boolean(self, pred: BooleanPredicate, record: Mapping[str, Any]) -> bool:
        """Evaluate a boolean predicate, short-circuiting left to right."""
        if pred.operator == BoolOperator.AND:
            return all(self.evaluate(op, record) for op in pred.operands)
        if pred.operator == BoolOperator.OR:
            return any(self.evaluate(op, record) for op in pred.operands)
        return not self.evaluate(pred.operands[0], record)

    def _coerce(self, operand: Operand, record: Mapping[str, Any]) -> Coerced:
        """Text and numeric views of an operand; text is None for null."""
        if isinstance(operand, Literal):
            return operand.text, operand.number
        raw = lookup_field(record, operand.name, self.case_insensitive)
        return to_text(raw), to_number(raw)

    def _compare(self, left: Coerced, comparator: Comparator, right: Coerced) -> bool:
        """Perform comparison operation."""
        left_text, left_num = left
        right_text, right_num = right

        if left_num is not None and right_num is not None:
            a, b = left_num, right_num
        elif (left_text is None and right_num is not None) or (right_text is None and left_num is not None):
            return comparator == Comparator.NE
        else:
            a, b = left_text or "", right_text or ""

        if comparator == Comparator.EQ:
            return a == b
        if comparator == Comparator.NE:
            return a != b
        if comparator == Comparator.GT:
            return a > b
        if comparator == Comparator.GE:
            return a >= b
        if comparator == Comparator.LT:
            return a < b
        return a <= b


# =============================================================================
# PREDICATE COMPILER
# =============================================================================

class CompiledPredicate:
    """
    A compiled predicate ready for evaluation.

    Holds the parsed AST, or the syntax error if the expression did not
    parse. A predicate that failed to compile always evaluates to False.
    """

    def __init__(
        self,
        expression: str,
        parser: PredicateParser = None,
        evaluator: PredicateEvaluator = None,
    ):
        """
        Compile a predicate expression.

        Args:
            expression: The predicate string to compile.
            parser: Optional parser to use.
            evaluator: Optional evaluator to use.
        """
        self.expression = expression
        self._evaluator = evaluator or PredicateEvaluator()
        self._ast: Optional[PredicateAST] = None
        self._error: Optional[PredicateSyntaxError] = None
        try:
            self._ast = (parser or PredicateParser()).parse(expression)
        except PredicateSyntaxError as e:
            self._error = e

    def evaluate(self, record: Mapping[str, Any]) -> bool:
        """
        Evaluate this predicate against a record.

        Args:
            record: The record to evaluate against.

        Returns:
            True if predicate is satisfied; False when it is not or did not parse.
        """
        if self._ast is None:
            return False
        return self._evaluator.evaluate(self._ast, record)

    @property
    def ast(self) -> Optional[PredicateAST]:
        """Get the parsed AST."""
        return self._ast

    @property
    def error(self) -> Optional[PredicateSyntaxError]:
        return self._error

    @property
    def ok(self) -> bool:
        return self._error is None

    def __repr__(self) -> str:
        state = "ok" if self.ok else "invalid"
        return f"CompiledPredicate({self.expression!r}, {state})"


class PredicateCache:
    """
    Read-through cache of compiled predicates keyed by expression string.

    Populate it with prime() before processing records; afterwards lookups
    are plain dict reads. A miss compiles under a lock, so concurrent
    population is safe.
    """

    def __init__(self, evaluator: PredicateEvaluator = None):
        self._parser = PredicateParser()
        self._evaluator = evaluator or PredicateEvaluator()
        self._compiled: Dict[str, CompiledPredicate] = {}
        self._lock = threading.Lock()

    def get(self, expression: str) -> CompiledPredicate:
        compiled = self._compiled.get(expression)
        if compiled is not None:
            return compiled
        with self._lock:
            compiled = self._compiled.get(expression)
            if compiled is None:
                compiled = CompiledPredicate(expression, self._parser, self._evaluator)
                if not compiled.ok:
                    logger.warning(f"Predicate does not parse, treated as false: {compiled.error}")
                self._compiled[expression] = compiled
        return compiled

    def prime(self, expressions: Iterable[str]) -> List[CompiledPredicate]:
        """Compile every expression up front; returns the ones that failed."""
        failed = []
        for expression in expressions:
            compiled = self.get(expression)
            if not compiled.ok:
                failed.append(compiled)
        return failed

    def __contains__(self, expression: str) -> bool:
        return expression in self._compiled

    def __len__(self) -> int:
        return len(self._compiled)


def compile_predicate(expression: str, case_insensitive: bool = True) -> CompiledPredicate:
    """
    Compile a predicate expression.

    Args:
        expression: The predicate string to compile.
        case_insensitive: Fall back to case-insensitive field lookup.

    Returns:
        A CompiledPredicate ready for evaluation.
    """
    return CompiledPredicate(expression, evaluator=PredicateEvaluator(case_insensitive))


def evaluate_predicate(expression: str, record: Mapping[str, Any]) -> bool:
    """
    Parse and evaluate a predicate in one step.

    For repeated evaluation, use compile_predicate() instead.

    Args:
        expression: The predicate string.
        record: The record to evaluate against.

    Returns:
        True if predicate is satisfied.
    """
    return compile_predicate(expression).evaluate(record)
