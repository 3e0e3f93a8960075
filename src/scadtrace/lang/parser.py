"""Recursive-descent parser producing :mod:`scadtrace.lang.nodes` trees.

Operator precedence, lowest to highest::

    ?:   ||   &&   == !=   < <= > >=   + -   * / %   unary ! - +   ^   postfix

``^`` is right associative and binds tighter than unary minus, so ``-2^2``
is ``-(2^2)``.

Constructs outside the supported subset (``let``, list comprehensions,
``each``, ``assert``, function literals and the ``! # % *`` modifiers) are
rejected with a ``ScadSyntaxError`` whose message starts with
``"unsupported construct"``.

Example:
    >>> from scadtrace.lang.parser import parse
    >>> program = parse("translate([1, 0, 0]) sphere(r=2);")
    >>> program.statements[0].name
    'translate'
"""

from __future__ import annotations

from scadtrace.errors import ScadSyntaxError
from scadtrace.lang import nodes
from scadtrace.lang.lexer import Token, tokenize

_COMPARISON_OPS = ("<", "<=", ">", ">=")
_EQUALITY_OPS = ("==", "!=")
_ADDITIVE_OPS = ("+", "-")
_MULTIPLICATIVE_OPS = ("*", "/", "%")
_UNARY_OPS = ("!", "-", "+")
_MODIFIERS = ("!", "#", "%", "*")


def _describe(token: Token) -> str:
    if token.kind == "EOF":
        return "end of input"
    if token.kind == "IDENT":
        return f"identifier '{token.value}'"
    if token.kind == "NUMBER":
        return f"number {token.value:g}"
    if token.kind == "STRING":
        return f'string "{token.value}"'
    return f"'{token.kind}'"


class Parser:
    """Parser over a token list; use :func:`parse` for the common case."""

    def __init__(self, tokens: list[Token]) -> None:
        self.tokens = tokens
        self.index = 0

    # -------------------------------------------------------------------------
    # Token helpers
    # -------------------------------------------------------------------------

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def peek(self, ahead: int = 1) -> Token:
        index = min(self.index + ahead, len(self.tokens) - 1)
        return self.tokens[index]

    def at(self, *kinds: str) -> bool:
        return self.current.kind in kinds

    def advance(self) -> Token:
        token = self.current
        if token.kind != "EOF":
            self.index += 1
        return token

    def accept(self, kind: str) -> Token | None:
        if self.current.kind == kind:
            return self.advance()
        return None

    def expect(self, kind: str, what: str | None = None) -> Token:
        if self.current.kind != kind:
            raise self.error(f"expected {what or repr(kind)} but found {_describe(self.current)}")
        return self.advance()

    def error(self, message: str, token: Token | None = None) -> ScadSyntaxError:
        token = token or self.current
        return ScadSyntaxError(message, token.line, token.column)

    def unsupported(self, construct: str, token: Token | None = None) -> ScadSyntaxError:
        return self.error(f"unsupported construct: {construct}", token)

    # -------------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------------

    def parse_program(self) -> nodes.Program:
        statements = []
        while not self.at("EOF"):
            statements.append(self.parse_statement())
        return nodes.Program(tuple(statements))

    def parse_statement(self) -> nodes.Statement:
        token = self.current
        pos = token.position

        if token.kind == ";":
            self.advance()
            return nodes.Empty(pos=pos)

        if token.kind == "{":
            return nodes.Block(self.parse_braced_body(), pos=pos)

        if token.kind in ("INCLUDE", "USE"):
            self.advance()
            self.accept(";")
            return nodes.Include(token.value, use_only=token.kind == "USE", pos=pos)

        if token.kind == "function":
            return self.parse_function_def()

        if token.kind == "module":
            return self.parse_module_def()

        if token.kind == "for":
            return self.parse_for()

        if token.kind == "if":
            return self.parse_if()

        if token.kind in ("let", "each", "assert"):
            raise self.unsupported(f"'{token.kind}'")

        if token.kind in _MODIFIERS:
            raise self.unsupported(f"'{token.kind}' modifier")

        if token.kind == "IDENT":
            if self.peek().kind == "=":
                return self.parse_assignment()
            if self.peek().kind == "(":
                return self.parse_module_call()
            raise self.error(
                f"expected '=' or '(' after identifier '{token.value}' "
                f"but found {_describe(self.peek())}",
                self.peek(),
            )

        raise self.error(f"expected statement but found {_describe(token)}")

    def parse_assignment(self) -> nodes.Assignment:
        name_token = self.expect("IDENT")
        self.expect("=")
        value = self.parse_expr()
        self.expect(";", "';' after assignment")
        return nodes.Assignment(name_token.value, value, pos=name_token.position)

    def parse_module_call(self) -> nodes.ModuleCall:
        name_token = self.expect("IDENT")
        args = self.parse_call_arguments()
        children, braced = self.parse_child()
        return nodes.ModuleCall(
            name_token.value, args, children, braced=braced, pos=name_token.position
        )

    def parse_child(self) -> tuple[tuple[nodes.Statement, ...], bool]:
        """Parse what follows a module instantiation or control statement."""
        if self.accept(";"):
            return (), False
        if self.at("{"):
            return self.parse_braced_body(), True
        if self.at("EOF"):
            raise self.error("expected ';' or child statement but found end of input")
        return (self.parse_statement(),), False

    def parse_braced_body(self) -> tuple[nodes.Statement, ...]:
        self.expect("{")
        body = []
        while not self.at("}"):
            if self.at("EOF"):
                raise self.error("expected '}' but found end of input")
            body.append(self.parse_statement())
        self.expect("}")
        return tuple(body)

    def parse_parameters(self) -> tuple[nodes.Parameter, ...]:
        self.expect("(")
        params = []
        while not self.at(")"):
            name_token = self.expect("IDENT", "parameter name")
            default = None
            if self.accept("="):
                default = self.parse_expr()
            params.append(nodes.Parameter(name_token.value, default, pos=name_token.position))
            if not self.accept(","):
                break
        self.expect(")", "')' after parameters")
        return tuple(params)

    def parse_function_def(self) -> nodes.FunctionDef:
        keyword = self.expect("function")
        if self.at("("):
            raise self.unsupported("function literal", keyword)
        name_token = self.expect("IDENT", "function name")
        params = self.parse_parameters()
        self.expect("=", "'=' in function definition")
        body = self.parse_expr()
        self.expect(";", "';' after function definition")
        return nodes.FunctionDef(name_token.value, params, body, pos=keyword.position)

    def parse_module_def(self) -> nodes.ModuleDef:
        keyword = self.expect("module")
        name_token = self.expect("IDENT", "module name")
        params = self.parse_parameters()
        if self.at("{"):
            body = self.parse_braced_body()
        else:
            body = (self.parse_statement(),)
        return nodes.ModuleDef(name_token.value, params, body, pos=keyword.position)

    def parse_for(self) -> nodes.ForLoop:
        keyword = self.expect("for")
        bindings = self.parse_call_arguments()
        if not bindings:
            raise self.error("for loop requires at least one 'name = value' binding", keyword)
        for binding in bindings:
            if binding.name is None:
                raise self.error("for loop bindings must have the form 'name = value'", keyword)
        body, _ = self.parse_child()
        return nodes.ForLoop(bindings, body, pos=keyword.position)

    def parse_if(self) -> nodes.IfElse:
        keyword = self.expect("if")
        self.expect("(")
        condition = self.parse_expr()
        self.expect(")", "')' after if condition")
        then_body, _ = self.parse_child()
        else_body: tuple[nodes.Statement, ...] = ()
        if self.accept("else"):
            else_body, _ = self.parse_child()
        return nodes.IfElse(condition, then_body, else_body, pos=keyword.position)

    # -------------------------------------------------------------------------
    # Arguments
    # -------------------------------------------------------------------------

    def parse_call_arguments(self) -> tuple[nodes.Argument, ...]:
        self.expect("(")
        args = []
        while not self.at(")"):
            token = self.current
            if token.kind == "IDENT" and self.peek().kind == "=":
                self.advance()
                self.advance()
                args.append(nodes.Argument(self.parse_expr(), token.value, pos=token.position))
            else:
                args.append(nodes.Argument(self.parse_expr(), pos=token.position))
            if not self.accept(","):
                break
        self.expect(")", "')' after arguments")
        return tuple(args)

    # -------------------------------------------------------------------------
    # Expressions
    # -------------------------------------------------------------------------

    def parse_expr(self) -> nodes.Expr:
        condition = self.parse_or()
        if self.at("?"):
            token = self.advance()
            if_true = self.parse_expr()
            self.expect(":", "':' in conditional expression")
            if_false = self.parse_expr()
            return nodes.Ternary(condition, if_true, if_false, pos=token.position)
        return condition

    def _parse_left_assoc(self, operators, operand) -> nodes.Expr:
        left = operand()
        while self.current.kind in operators:
            token = self.advance()
            right = operand()
            left = nodes.BinaryOp(token.kind, left, right, pos=token.position)
        return left

    def parse_or(self) -> nodes.Expr:
        return self._parse_left_assoc(("||",), self.parse_and)

    def parse_and(self) -> nodes.Expr:
        return self._parse_left_assoc(("&&",), self.parse_equality)

    def parse_equality(self) -> nodes.Expr:
        return self._parse_left_assoc(_EQUALITY_OPS, self.parse_comparison)

    def parse_comparison(self) -> nodes.Expr:
        return self._parse_left_assoc(_COMPARISON_OPS, self.parse_additive)

    def parse_additive(self) -> nodes.Expr:
        return self._parse_left_assoc(_ADDITIVE_OPS, self.parse_multiplicative)

    def parse_multiplicative(self) -> nodes.Expr:
        return self._parse_left_assoc(_MULTIPLICATIVE_OPS, self.parse_unary)

    def parse_unary(self) -> nodes.Expr:
        if self.current.kind in _UNARY_OPS:
            token = self.advance()
            return nodes.UnaryOp(token.kind, self.parse_unary(), pos=token.position)
        return self.parse_power()

    def parse_power(self) -> nodes.Expr:
        base = self.parse_postfix()
        if self.at("^"):
            token = self.advance()
            exponent = self.parse_unary()
            return nodes.BinaryOp("^", base, exponent, pos=token.position)
        return base

    def parse_postfix(self) -> nodes.Expr:
        expr = self.parse_primary()
        while True:
            if self.at("("):
                pos = self.current.position
                expr = nodes.Call(expr, self.parse_call_arguments(), pos=pos)
            elif self.at("["):
                token = self.advance()
                index = self.parse_expr()
                self.expect("]", "']' after index")
                expr = nodes.Index(expr, index, pos=token.position)
            elif self.at("."):
                token = self.advance()
                name = self.expect("IDENT", "member name after '.'")
                expr = nodes.Member(expr, name.value, pos=token.position)
            else:
                return expr

    def parse_primary(self) -> nodes.Expr:
        token = self.current
        pos = token.position

        if token.kind == "NUMBER":
            self.advance()
            return nodes.NumberLit(token.value, pos=pos)
        if token.kind == "STRING":
            self.advance()
            return nodes.StringLit(token.value, pos=pos)
        if token.kind in ("true", "false"):
            self.advance()
            return nodes.BoolLit(token.kind == "true", pos=pos)
        if token.kind == "undef":
            self.advance()
            return nodes.UndefLit(pos=pos)
        if token.kind == "IDENT":
            self.advance()
            return nodes.Identifier(token.value, pos=pos)
        if token.kind == "(":
            self.advance()
            expr = self.parse_expr()
            self.expect(")", "')'")
            return expr
        if token.kind == "[":
            return self.parse_vector_or_range()
        if token.kind == "let":
            raise self.unsupported("'let' expression")
        if token.kind == "function":
            raise self.unsupported("function literal")
        if token.kind in ("assert", "each"):
            raise self.unsupported(f"'{token.kind}' expression")

        raise self.error(f"expected expression but found {_describe(token)}")

    def parse_vector_or_range(self) -> nodes.Expr:
        open_token = self.expect("[")
        pos = open_token.position

        if self.accept("]"):
            return nodes.VectorLit((), pos=pos)
        if self.at("for", "each", "if", "let"):
            raise self.unsupported("list comprehension")

        first = self.parse_expr()
        if self.accept(":"):
            second = self.parse_expr()
            if self.accept(":"):
                third = self.parse_expr()
                self.expect("]", "']' after range")
                return nodes.RangeLit(first, third, step=second, pos=pos)
            self.expect("]", "']' after range")
            return nodes.RangeLit(first, second, pos=pos)

        items = [first]
        while self.accept(","):
            if self.at("]"):
                break
            if self.at("for", "each", "if", "let"):
                raise self.unsupported("list comprehension")
            items.append(self.parse_expr())
        self.expect("]", "',' or ']' in vector")
        return nodes.VectorLit(tuple(items), pos=pos)


def parse(source: str) -> nodes.Program:
    """Parse scene source text into a :class:`~scadtrace.lang.nodes.Program`.

    Args:
        source: Scene description source text.

    Returns:
        The immutable program tree.

    Raises:
        ScadSyntaxError: On malformed input or an unsupported construct.
    """
    return Parser(tokenize(source)).parse_program()
