"""
A small arithmetic evaluator for legacy, formula-based custom shapes.

Supported syntax: numbers, named variables, binary `+ - * /`, unary `+ -`
and parentheses. Nothing else is recognised, so a formula can only ever
produce a number or raise FormulaError.

    evaluate_formula('2*(A+B) + 10*d', {'A': 400, 'B': 250, 'd': 10})  # -> 1400.0
"""
import re
from typing import Mapping

from errors import FormulaError

TOKEN_PATTERN = re.compile(r'\s*(?:(\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?)|([A-Za-z_][A-Za-z0-9_]*)|(.))')
MAX_FORMULA_LENGTH = 500


def tokenize(formula: str) -> list[tuple[str, str]]:
    """Splits a formula into ('num' | 'name' | 'op', text) tokens."""
    tokens = []
    for number, name, op in TOKEN_PATTERN.findall(formula):
        if number:
            tokens.append(('num', number))
        elif name:
            tokens.append(('name', name))
        elif op.strip():
            if op not in '+-*/()':
                raise FormulaError(f'Unexpected character {op!r} in formula.')
            tokens.append(('op', op))
    return tokens


class _Parser:
    def __init__(self, tokens: list[tuple[str, str]], variables: Mapping[str, float]):
        self.tokens = tokens
        self.pos = 0
        self.variables = variables

    def peek(self) -> tuple[str, str] | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def take(self) -> tuple[str, str]:
        token = self.peek()
        if token is None:
            raise FormulaError('Unexpected end of formula.')
        self.pos += 1
        return token

    def parse(self) -> float:
        value = self.expression()
        if self.peek() is not None:
            raise FormulaError(f'Unexpected token {self.peek()[1]!r}.')
        return value

    def expression(self) -> float:
        value = self.term()
        while self.peek() in (('op', '+'), ('op', '-')):
            _, op = self.take()
            rhs = self.term()
            value = value + rhs if op == '+' else value - rhs
        return value

    def term(self) -> float:
        value = self.factor()
        while self.peek() in (('op', '*'), ('op', '/')):
            _, op = self.take()
            rhs = self.factor()
            if op == '*':
                value *= rhs
            else:
                if rhs == 0:
                    raise FormulaError('Division by zero.')
                value /= rhs
        return value

    def factor(self) -> float:
        kind, text = self.take()
        if kind == 'op' and text in '+-':
            value = self.factor()
            return -value if text == '-' else value
        if kind == 'op' and text == '(':
            value = self.expression()
            if self.take() != ('op', ')'):
                raise FormulaError('Missing closing parenthesis.')
            return value
        if kind == 'num':
            return float(text)
        if kind == 'name':
            if text not in self.variables:
                raise FormulaError(f'Unknown variable {text!r}.')
            return float(self.variables[text])
        raise FormulaError(f'Unexpected token {text!r}.')


def evaluate_formula(formula: str, variables: Mapping[str, float]) -> float:
    """
    Evaluates an arithmetic formula against a variable mapping.

    Raises:
        FormulaError: On empty, oversized or malformed formulas, unknown
            variables, or division by zero.
    """
    if not isinstance(formula, str) or not formula.strip():
        raise FormulaError('Formula is empty.')
    if len(formula) > MAX_FORMULA_LENGTH:
        raise FormulaError(f'Formula longer than {MAX_FORMULA_LENGTH} characters.')
    try:
        return _Parser(tokenize(formula), variables).parse()
    except RecursionError:
        raise FormulaError('Formula is nested too deeply.') from None
