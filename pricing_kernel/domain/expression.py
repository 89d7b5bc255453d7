"""
Expression -- Restricted arithmetic expressions for pricing rules.

Rule expressions are small arithmetic formulas such as
``basePrice * (1 + vatRate)`` evaluated against named parameters. They are
parsed with Python's own ``ast`` module and then checked against a fixed
whitelist before being compiled into a postfix program of Decimal
operations. Nothing is ever passed to ``eval``.

Allowed:
  - Numeric literals: ``123``, ``1.5``, ``.5``
  - Identifiers: ``[A-Za-z][A-Za-z0-9_]*``
  - Binary operators: ``+ - * /`` with standard precedence
  - Unary minus and parentheses

Rejected:
  - Function calls, attribute access, subscripts, comparisons, boolean
    operators, strings, exponents (``**``), floor division, modulo,
    scientific / hex / underscore-separated literals, unary plus

Evaluation uses a fixed Decimal context (34 significant digits,
ROUND_HALF_EVEN) so results never depend on the caller's thread-local
decimal settings. Negative intermediate and final values are allowed here;
clamping is the rule engine's concern.
"""

from __future__ import annotations

import ast
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import (
    ROUND_HALF_EVEN,
    Context,
    Decimal,
    DivisionByZero,
    InvalidOperation,
    Overflow,
)
from enum import Enum
from functools import lru_cache

from pricing_kernel.domain.dtos import ValidationIssue, ValidationResult
from pricing_kernel.exceptions import (
    DivisionByZeroError,
    ExpressionError,
    ExpressionSyntaxError,
    InvalidBindingError,
    UnknownParameterError,
)
from pricing_kernel.logging_config import get_logger

logger = get_logger("domain.expression")

MAX_EXPRESSION_LENGTH = 2000

EXPRESSION_CONTEXT = Context(
    prec=34,
    rounding=ROUND_HALF_EVEN,
    traps=[InvalidOperation, DivisionByZero, Overflow],
)

_NUMBER_LITERAL = re.compile(r"\d+(\.\d+)?|\.\d+")
IDENTIFIER_PATTERN = re.compile(r"[A-Za-z][A-Za-z0-9_]*")

_BINARY_SYMBOLS: dict[type[ast.operator], str] = {
    ast.Add: "+",
    ast.Sub: "-",
    ast.Mult: "*",
    ast.Div: "/",
    ast.Pow: "**",
    ast.FloorDiv: "//",
    ast.Mod: "%",
    ast.MatMult: "@",
    ast.LShift: "<<",
    ast.RShift: ">>",
    ast.BitAnd: "&",
    ast.BitOr: "|",
    ast.BitXor: "^",
}


class OpCode(str, Enum):
    PUSH = "push"
    LOAD = "load"
    NEGATE = "negate"
    ADD = "add"
    SUBTRACT = "subtract"
    MULTIPLY = "multiply"
    DIVIDE = "divide"


_BINARY_OPCODES: dict[type[ast.operator], OpCode] = {
    ast.Add: OpCode.ADD,
    ast.Sub: OpCode.SUBTRACT,
    ast.Mult: OpCode.MULTIPLY,
    ast.Div: OpCode.DIVIDE,
}


@dataclass(frozen=True, slots=True)
class Instruction:
    opcode: OpCode
    operand: Decimal | str | None = None


@dataclass(frozen=True)
class ParsedExpression:
    """
    A validated, compiled expression.

    Contract:
        ``program`` is a postfix sequence of instructions; ``parameters`` is
        the set of identifiers the expression reads. Immutable and safe to
        share across threads.
    """

    source: str
    program: tuple[Instruction, ...]
    parameters: frozenset[str]

    def evaluate(self, bindings: Mapping[str, object]) -> Decimal:
        """Evaluate against ``bindings``.

        Only referenced parameters are read and coerced; unrelated bindings
        may hold any value.

        Raises:
            UnknownParameterError: a referenced parameter has no binding.
            InvalidBindingError: a referenced binding is not numeric.
            DivisionByZeroError: a divisor evaluated to exactly zero.
            ExpressionError: the result overflowed the decimal context.
        """
        values: dict[str, Decimal] = {}
        for name in sorted(self.parameters):
            if name not in bindings:
                raise UnknownParameterError(name)
            values[name] = coerce_binding(name, bindings[name])

        ctx = EXPRESSION_CONTEXT
        stack: list[Decimal] = []
        try:
            for ins in self.program:
                if ins.opcode is OpCode.PUSH:
                    stack.append(ins.operand)  # type: ignore[arg-type]
                elif ins.opcode is OpCode.LOAD:
                    stack.append(values[ins.operand])  # type: ignore[index]
                elif ins.opcode is OpCode.NEGATE:
                    stack.append(ctx.minus(stack.pop()))
                else:
                    right = stack.pop()
                    left = stack.pop()
                    if ins.opcode is OpCode.ADD:
                        stack.append(ctx.add(left, right))
                    elif ins.opcode is OpCode.SUBTRACT:
                        stack.append(ctx.subtract(left, right))
                    elif ins.opcode is OpCode.MULTIPLY:
                        stack.append(ctx.multiply(left, right))
                    else:
                        if right == 0:
                            raise DivisionByZeroError(f"in '{self.source}'")
                        stack.append(ctx.divide(left, right))
        except (Overflow, InvalidOperation) as e:
            raise ExpressionError(
                f"Arithmetic error evaluating '{self.source}': {type(e).__name__}"
            ) from e

        return ctx.plus(stack.pop())


def coerce_binding(name: str, value: object) -> Decimal:
    """
    Read a bound value as a Decimal.

    Accepts Decimal, int, float (through its ``str`` form), bool (1/0) and
    numeric strings. Non-finite values are rejected.

    Raises:
        InvalidBindingError: the value cannot be read as a finite number.
    """
    if isinstance(value, bool):
        return Decimal(1) if value else Decimal(0)
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, (float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise InvalidBindingError(name, value) from e
    else:
        raise InvalidBindingError(name, value)
    if not result.is_finite():
        raise InvalidBindingError(name, value)
    return result


@lru_cache(maxsize=2048)
def parse_expression(expression: str) -> ParsedExpression:
    """
    Parse and compile an expression.

    Results are cached; the cache is bounded and thread-safe.

    Raises:
        ExpressionSyntaxError: the expression is empty, too long, malformed
            or uses a construct outside the arithmetic whitelist.
    """
    if not isinstance(expression, str) or not expression.strip():
        raise ExpressionSyntaxError(str(expression), "expression is empty")
    if len(expression) > MAX_EXPRESSION_LENGTH:
        raise ExpressionSyntaxError(
            expression[:40] + "...",
            f"expression exceeds {MAX_EXPRESSION_LENGTH} characters",
        )

    # Collapse whitespace so multi-line YAML expressions parse as one line
    source = " ".join(expression.split())
    try:
        tree = ast.parse(source, mode="eval")
    except SyntaxError as e:
        position = (e.offset - 1) if e.offset else None
        raise ExpressionSyntaxError(source, e.msg, position) from e
    except (ValueError, RecursionError, MemoryError) as e:
        raise ExpressionSyntaxError(source, "expression cannot be parsed") from e

    program, parameters = _compile(tree.body, source)
    logger.debug(
        "expression_compiled",
        extra={"expression": source, "instructions": len(program)},
    )
    return ParsedExpression(
        source=source, program=program, parameters=frozenset(parameters)
    )


def _compile(root: ast.expr, source: str) -> tuple[tuple[Instruction, ...], set[str]]:
    """Compile a whitelisted AST into postfix instructions (iterative)."""
    program: list[Instruction] = []
    parameters: set[str] = set()
    pending: list[tuple[ast.AST, bool]] = [(root, False)]

    while pending:
        node, expanded = pending.pop()

        if isinstance(node, ast.BinOp):
            if expanded:
                program.append(Instruction(_BINARY_OPCODES[type(node.op)]))
                continue
            if type(node.op) not in _BINARY_OPCODES:
                symbol = _BINARY_SYMBOLS.get(type(node.op), type(node.op).__name__)
                raise ExpressionSyntaxError(
                    source, f"unsupported operator '{symbol}'", node.col_offset
                )
            pending.append((node, True))
            pending.append((node.right, False))
            pending.append((node.left, False))

        elif isinstance(node, ast.UnaryOp):
            if expanded:
                program.append(Instruction(OpCode.NEGATE))
                continue
            if not isinstance(node.op, ast.USub):
                raise ExpressionSyntaxError(
                    source,
                    f"unsupported unary operator {type(node.op).__name__}",
                    node.col_offset,
                )
            pending.append((node, True))
            pending.append((node.operand, False))

        elif isinstance(node, ast.Name):
            if not IDENTIFIER_PATTERN.fullmatch(node.id):
                raise ExpressionSyntaxError(
                    source, f"invalid identifier '{node.id}'", node.col_offset
                )
            parameters.add(node.id)
            program.append(Instruction(OpCode.LOAD, node.id))

        elif isinstance(node, ast.Constant):
            text = ast.get_source_segment(source, node) or ""
            if (
                isinstance(node.value, bool)
                or not isinstance(node.value, (int, float))
                or not _NUMBER_LITERAL.fullmatch(text)
            ):
                raise ExpressionSyntaxError(
                    source, f"invalid literal {text or node.value!r}", node.col_offset
                )
            program.append(Instruction(OpCode.PUSH, Decimal(text)))

        else:
            raise ExpressionSyntaxError(
                source,
                f"unsupported construct {type(node).__name__}",
                getattr(node, "col_offset", None),
            )

    return tuple(program), parameters


class ExpressionEvaluator:
    """
    Validates and evaluates rule expressions.

    Stateless apart from the shared parse cache; one instance may be used
    from any number of threads.
    """

    def parse(self, expression: str) -> ParsedExpression:
        return parse_expression(expression)

    def validate(
        self, expression: str, declared_parameters: Iterable[str]
    ) -> ValidationResult:
        """
        Check syntax and identifiers without evaluating.

        Returns a ValidationResult whose errors carry code
        ``EXPRESSION_SYNTAX`` or ``UNKNOWN_PARAMETER``. Never raises for
        bad input.
        """
        try:
            parsed = parse_expression(expression)
        except ExpressionSyntaxError as e:
            return ValidationResult.failure(
                ValidationIssue(
                    code=e.code,
                    message=str(e),
                    field="expression",
                    details={"position": e.position} if e.position is not None else None,
                )
            )

        declared = set(declared_parameters)
        unknown = sorted(parsed.parameters - declared)
        if unknown:
            return ValidationResult.failure(
                *(
                    ValidationIssue(
                        code=UnknownParameterError.code,
                        message=f"Unknown parameter: {name}",
                        field="expression",
                        details={"parameter": name},
                    )
                    for name in unknown
                )
            )
        return ValidationResult.success()

    def evaluate(self, expression: str, bindings: Mapping[str, object]) -> Decimal:
        """Parse (cached) and evaluate ``expression`` against ``bindings``."""
        return parse_expression(expression).evaluate(bindings)
