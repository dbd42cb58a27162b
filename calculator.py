# calculator.py
import math
import re

from errors import ValidationError

FUNCTIONS = {
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
    "log": math.log10,
    "sqrt": math.sqrt,
}
CONSTANTS = {"PI": math.pi}
MAX_DEPTH = 100

_TOKEN = re.compile(r"\s*(?:(\d+\.\d*|\.\d+|\d+)|([A-Za-z]+)|(.))")


def tokenize(text):
    tokens = []
    pos = 0
    text = text.rstrip()
    while pos < len(text):
        m = _TOKEN.match(text, pos)
        number, name, op = m.groups()
        if number is not None:
            tokens.append(("num", float(number)))
        elif name is not None:
            tokens.append(("name", name))
        elif op in "+-*/()":
            tokens.append(("op", op))
        else:
            raise ValidationError(f"Unexpected character {op!r}")
        pos = m.end()
    return tokens


class _Parser:
    """expr := term (+|- term)* ; term := factor (*|/ factor)* ; factor := (+|-) factor | primary"""

    def __init__(self, tokens):
        self.tokens = tokens
        self.pos = 0
        self.depth = 0

    def peek(self):
        return self.tokens[self.pos] if self.pos < len(self.tokens) else (None, None)

    def take(self):
        tok = self.peek()
        self.pos += 1
        return tok

    def expect(self, op):
        if self.take() != ("op", op):
            raise ValidationError(f"Expected {op!r}")

    def expr(self):
        value = self.term()
        while self.peek() in (("op", "+"), ("op", "-")):
            _, op = self.take()
            rhs = self.term()
            value = value + rhs if op == "+" else value - rhs
        return value

    def term(self):
        value = self.factor()
        while self.peek() in (("op", "*"), ("op", "/")):
            _, op = self.take()
            rhs = self.factor()
            if op == "*":
                value *= rhs
            else:
                if rhs == 0:
                    raise ValidationError("Division by zero")
                value /= rhs
        return value

    def factor(self):
        # nested parentheses and unary signs both recurse through here
        self.depth += 1
        if self.depth > MAX_DEPTH:
            raise ValidationError("Expression is nested too deeply")
        try:
            return self._signed()
        finally:
            self.depth -= 1

    def _signed(self):
        if self.peek() == ("op", "-"):
            self.take()
            return -self.factor()
        if self.peek() == ("op", "+"):
            self.take()
            return self.factor()
        return self.primary()

    def primary(self):
        kind, val = self.take()
        if kind == "num":
            return val
        if kind == "op" and val == "(":
            value = self.expr()
            self.expect(")")
            return value
        if kind == "name":
            if val in CONSTANTS:
                return CONSTANTS[val]
            if val in FUNCTIONS:
                self.expect("(")
                arg = self.expr()
                self.expect(")")
                try:
                    return FUNCTIONS[val](arg)
                except ValueError:
                    raise ValidationError(f"{val} is undefined for {arg}")
            raise ValidationError(f"Unknown name {val!r}")
        raise ValidationError("Incomplete expression")


def evaluate(expression):
    tokens = tokenize(expression or "")
    if not tokens:
        raise ValidationError("Empty expression")
    parser = _Parser(tokens)
    value = parser.expr()
    if parser.pos != len(tokens):
        raise ValidationError("Unexpected input after expression")
    if not math.isfinite(value):
        raise ValidationError("Result is out of range")
    return value
