"""ERB-style inline template handler.

Compiles ERB-flavoured template text straight to a Python ``ast.Module`` and
exec()s it into a render function, without generating Python source strings.

Syntax:
    ```
    <%= expr %>      escaped output
    <%== expr %>     raw output (no escaping)
    <% stmt %>       Python statement(s)
    <% for x in y: %>...<% end %>
    <%# comment %>   ignored
    -%>              trims the newline after the tag
    <%%              literal "<%"
    ```

Block statements end in ``:`` and are closed by a unified ``<% end %>``.
Continuations (``elif``, ``else``, ``except``, ``finally``) attach to the
innermost open block.

Name Resolution:
Bare names resolve, in order, to template locals, names assigned inside the
template, builtins and template globals (``Markup``, ``escape``). Any other
name becomes an attribute lookup on ``self``, the host object, so template
code can call presenter helpers directly:

    ```
    <p><%= full_name() %></p>     →   _append(_e(self.full_name()))
    ```

The generated function's own names (``_locals``, ``_buf``, ``_append``,
``_e``, ``_s``) cannot be used as locals; compiling with one raises
``TemplateSyntaxError``.

Generated Code:
    ```python
    def _inline_render(self, _locals, _buf):
        _e = _escape
        _s = _to_str
        _append = _buf.append
        user = _locals['user']
        _append('<p>')
        _append(_e(user.name))
        _append('</p>')
        return ''.join(_buf)
    ```

Line numbers in the generated code are file line numbers, so tracebacks
point at the template lines inside the presenter source.
"""

from __future__ import annotations

import ast
import builtins
import keyword
import re
import textwrap
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from markupsafe import Markup, escape

from keynote._types import RenderFunc
from keynote.exceptions import TemplateSyntaxError

RENDER_FUNCTION = "_inline_render"

_RESERVED = frozenset({"self", "_locals", "_buf", "_append", "_e", "_s"})
_BUILTINS = frozenset(dir(builtins))
_CONTINUATIONS = frozenset({"elif", "else", "except", "finally"})
_LEADING_WORD = re.compile(r"^([A-Za-z_]+)")


def _to_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _escape(value: Any) -> Markup:
    if value is None:
        return Markup("")
    return escape(value)


TEMPLATE_GLOBALS: dict[str, Any] = {
    "Markup": Markup,
    "escape": escape,
}


class TokenType(Enum):
    DATA = "data"
    OUTPUT = "output"
    RAW_OUTPUT = "raw_output"
    CODE = "code"


@dataclass(frozen=True, slots=True)
class Token:
    """One lexical unit of ERB source.

    Attributes:
        type: Token kind.
        value: Literal text for DATA, tag body otherwise.
        lineno: 1-based template line where the token starts.
    """

    type: TokenType
    value: str
    lineno: int


def tokenize(source: str) -> list[Token]:
    """Split ERB source into tokens. Comment tags produce no token.

    Raises:
        TemplateSyntaxError: For an unclosed ``<%`` tag. The line number is
            template-relative; ``ErbHandler`` rebases it onto the file.
    """
    tokens: list[Token] = []
    data: list[str] = []
    data_start = 0
    pos = 0

    def flush() -> None:
        value = "".join(data)
        data.clear()
        if value:
            tokens.append(Token(TokenType.DATA, value, 1 + source.count("\n", 0, data_start)))

    while True:
        start = source.find("<%", pos)
        if start == -1:
            data.append(source[pos:])
            break
        data.append(source[pos:start])

        if source.startswith("<%%", start):
            data.append("<%")
            pos = start + 3
            continue

        lineno = 1 + source.count("\n", 0, start)
        end = source.find("%>", start + 2)
        if end == -1:
            raise TemplateSyntaxError("Unclosed '<%' tag", lineno=lineno, source=source)

        body = source[start + 2 : end]
        trim = body.endswith("-")
        if trim:
            body = body[:-1]

        flush()
        if body.startswith("=="):
            tokens.append(Token(TokenType.RAW_OUTPUT, body[2:], lineno))
        elif body.startswith("="):
            tokens.append(Token(TokenType.OUTPUT, body[1:], lineno))
        elif not body.startswith("#"):
            tokens.append(Token(TokenType.CODE, body, lineno))

        pos = end + 2
        if trim and source.startswith("\n", pos):
            pos += 1
        data_start = pos

    flush()
    return tokens


@dataclass(slots=True)
class _Frame:
    """An open block.

    ``root`` is the statement that opened the block, ``tail`` the statement
    receiving continuations (the last ``elif`` of an if-chain), and ``body``
    the list new statements are appended to.
    """

    keyword: str
    root: ast.stmt
    tail: ast.stmt
    body: list[ast.stmt]
    lineno: int


class _BoundNames(ast.NodeVisitor):
    """Collect every name the template binds itself."""

    def __init__(self) -> None:
        self.names: set[str] = set()

    def visit_Name(self, node: ast.Name) -> None:
        if isinstance(node.ctx, (ast.Store, ast.Del)):
            self.names.add(node.id)

    def visit_arg(self, node: ast.arg) -> None:
        self.names.add(node.arg)

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        self.names.add(node.name)
        self.generic_visit(node)

    visit_AsyncFunctionDef = visit_FunctionDef  # type: ignore[assignment]

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        self.names.add(node.name)
        self.generic_visit(node)

    def visit_alias(self, node: ast.alias) -> None:
        self.names.add(node.asname or node.name.split(".")[0])

    def visit_ExceptHandler(self, node: ast.ExceptHandler) -> None:
        if node.name:
            self.names.add(node.name)
        self.generic_visit(node)


class _HostNameRewriter(ast.NodeTransformer):
    """Rewrite free names to ``self.<name>`` lookups on the host."""

    def __init__(self, bound: frozenset[str]):
        self._bound = bound

    def visit_Name(self, node: ast.Name) -> ast.expr:
        if isinstance(node.ctx, ast.Load) and node.id not in self._bound:
            host = ast.copy_location(ast.Name(id="self", ctx=ast.Load()), node)
            return ast.copy_location(ast.Attribute(value=host, attr=node.id, ctx=ast.Load()), node)
        return node


class ErbCompiler:
    """Compile ERB tokens to a Python ``ast.Module``.

    One compiler per ``compile()`` call; ``ErbHandler`` itself is stateless
    and can serve many threads.

    Attributes:
        _filename: File name recorded in the code object.
        _offset: File line preceding template line 1.
        _source: Template source, for syntax error snippets.
        _root: Top-level statements of the render function.
        _stack: Open blocks, innermost last.
    """

    __slots__ = ("_filename", "_offset", "_root", "_source", "_stack")

    def __init__(self, source: str, filename: str, offset: int):
        self._source = source
        self._filename = filename
        self._offset = offset
        self._root: list[ast.stmt] = []
        self._stack: list[_Frame] = []

    # ─────────────────────────────────────────────────────────────────────
    # Errors and locations
    # ─────────────────────────────────────────────────────────────────────

    def _error(self, message: str, lineno: int) -> TemplateSyntaxError:
        return TemplateSyntaxError(
            message,
            lineno=self._offset + lineno,
            filename=self._filename,
            source=self._source,
            first_line=self._offset + 1,
        )

    def _locate(self, node: ast.AST, lineno: int) -> Any:
        line = self._offset + lineno
        node.lineno = node.end_lineno = line  # type: ignore[attr-defined]
        node.col_offset = node.end_col_offset = 0  # type: ignore[attr-defined]
        return ast.fix_missing_locations(node)

    def _pass(self, lineno: int) -> ast.stmt:
        return self._locate(ast.Pass(), lineno)

    def _parse(self, code: str, lineno: int, mode: str = "exec") -> Any:
        try:
            tree = ast.parse(code, filename=self._filename, mode=mode)
        except SyntaxError as exc:
            raise self._error(exc.msg, lineno + (exc.lineno or 1) - 1) from exc
        return ast.increment_lineno(tree, self._offset + lineno - 1)

    # ─────────────────────────────────────────────────────────────────────
    # Token compilation
    # ─────────────────────────────────────────────────────────────────────

    @property
    def _body(self) -> list[ast.stmt]:
        return self._stack[-1].body if self._stack else self._root

    def compile(self, tokens: Sequence[Token], local_names: Sequence[str]) -> ast.Module:
        """Compile tokens into a module defining ``_inline_render``.

        Raises:
            TemplateSyntaxError: For invalid Python in a tag or bad block
                structure.
        """
        for token in tokens:
            if token.type is TokenType.DATA:
                self._body.append(self._locate(_emit(ast.Constant(value=token.value)), token.lineno))
            elif token.type is TokenType.OUTPUT:
                self._body.append(self._compile_output(token, "_e"))
            elif token.type is TokenType.RAW_OUTPUT:
                self._body.append(self._compile_output(token, "_s"))
            else:
                self._compile_code(token)

        if self._stack:
            frame = self._stack[-1]
            raise self._error(f"Unclosed '{frame.keyword}' block, expected <% end %>", frame.lineno)

        declared = [n for n in local_names if n.isidentifier() and not keyword.iskeyword(n)]
        collector = _BoundNames()
        for stmt in self._root:
            collector.visit(stmt)
        bound = frozenset(
            collector.names | set(declared) | _RESERVED | _BUILTINS | set(TEMPLATE_GLOBALS)
        )
        rewriter = _HostNameRewriter(bound)
        body = [rewriter.visit(stmt) for stmt in self._root]

        return self._make_module(body, [n for n in declared if n != "self"])

    def _compile_output(self, token: Token, wrapper: str) -> ast.stmt:
        text = token.value.strip()
        if not text:
            raise self._error("Empty output tag", token.lineno)
        expr = self._parse(f"({text}\n)", token.lineno, mode="eval")
        call = ast.Call(func=ast.Name(id=wrapper, ctx=ast.Load()), args=[expr.body], keywords=[])
        return self._locate(_emit(call), token.lineno)

    def _compile_code(self, token: Token) -> None:
        code, lineno = _fragment(token.value, token.lineno)
        if not code:
            return

        if code == "end":
            if not self._stack:
                raise self._error("Unexpected <% end %> with no open block", lineno)
            self._stack.pop()
            return

        if not code.endswith(":") or "\n" in code:
            self._body.extend(self._parse(code, lineno).body)
            return

        match = _LEADING_WORD.match(code)
        word = match.group(1) if match else ""
        if word in _CONTINUATIONS:
            self._continue_block(word, code, lineno)
        else:
            self._open_block(word, code, lineno)

    def _open_block(self, word: str, code: str, lineno: int) -> None:
        if word == "try":
            if code.replace(" ", "") != "try:":
                raise self._error(f"Invalid block header '{code}'", lineno)
            node: Any = self._locate(
                ast.Try(body=[], handlers=[], orelse=[], finalbody=[]), lineno
            )
        else:
            parsed = self._parse(f"{code}\n    pass", lineno).body
            node = parsed[0] if parsed else None
            if not isinstance(getattr(node, "body", None), list):
                raise self._error(f"'{code}' does not open a block", lineno)
        node.body = [self._pass(lineno)]
        self._body.append(node)
        self._stack.append(_Frame(word or code, node, node, node.body, lineno))

    def _continue_block(self, word: str, code: str, lineno: int) -> None:
        if not self._stack:
            raise self._error(f"'{word}' outside of a block", lineno)
        frame = self._stack[-1]
        tail: Any = frame.tail

        if word == "elif":
            if not isinstance(tail, ast.If) or tail.orelse:
                raise self._error("'elif' must follow an 'if' block", lineno)
            branch = self._parse(f"if{code[4:]}\n    pass", lineno).body[0]
            branch.body = [self._pass(lineno)]
            tail.orelse = [branch]
            frame.tail = branch
            frame.body = branch.body
        elif word == "else":
            if code.replace(" ", "") != "else:":
                raise self._error(f"Invalid block header '{code}'", lineno)
            if not isinstance(tail, (ast.If, ast.For, ast.While, ast.Try)) or tail.orelse:
                raise self._error("'else' must follow an 'if', 'for', 'while' or 'except' block", lineno)
            if isinstance(tail, ast.Try) and (not tail.handlers or tail.finalbody):
                raise self._error("'else' in a 'try' block must follow an 'except'", lineno)
            tail.orelse = [self._pass(lineno)]
            frame.body = tail.orelse
        elif word == "except":
            if not isinstance(tail, ast.Try) or tail.orelse or tail.finalbody:
                raise self._error("'except' must follow a 'try' block", lineno)
            parsed = self._parse(f"try:\n    pass\n{code}\n    pass", lineno - 2)
            handler = parsed.body[0].handlers[0]
            handler.body = [self._pass(lineno)]
            tail.handlers.append(handler)
            frame.body = handler.body
        else:
            if code.replace(" ", "") != "finally:":
                raise self._error(f"Invalid block header '{code}'", lineno)
            if not isinstance(tail, ast.Try) or tail.finalbody:
                raise self._error("'finally' must follow a 'try' block", lineno)
            tail.finalbody = [self._pass(lineno)]
            frame.body = tail.finalbody

    # ─────────────────────────────────────────────────────────────────────
    # Module assembly
    # ─────────────────────────────────────────────────────────────────────

    def _make_module(self, body: list[ast.stmt], local_names: list[str]) -> ast.Module:
        module = ast.parse(f"def {RENDER_FUNCTION}(self, _locals, _buf):\n    pass")
        func = module.body[0]
        assert isinstance(func, ast.FunctionDef)

        prelude = ast.parse(
            "_e = _escape\n_s = _to_str\n_append = _buf.append\n"
            + "".join(f"{name} = _locals[{name!r}]\n" for name in local_names)
        ).body
        epilogue = ast.parse("return ''.join(_buf)").body

        # Scaffolding lives on the line before the template text
        first = max(self._offset, 1)
        for node in (func, func.args, *prelude, *epilogue):
            for child in ast.walk(node):
                if hasattr(child, "lineno"):
                    child.lineno = child.end_lineno = first  # type: ignore[attr-defined]

        func.body = [*prelude, *body, *epilogue]
        return module


def _emit(value: ast.expr) -> ast.stmt:
    return ast.Expr(
        value=ast.Call(
            func=ast.Name(id="_append", ctx=ast.Load()),
            args=[value],
            keywords=[],
        )
    )


def _fragment(body: str, lineno: int) -> tuple[str, int]:
    """Normalize a code tag body, returning (code, line of first code line)."""
    if "\n" not in body:
        return body.strip(), lineno
    lines = body.split("\n")
    while lines and not lines[0].strip():
        lines.pop(0)
        lineno += 1
    return textwrap.dedent("\n".join(lines)).strip(), lineno


class ErbHandler:
    """Handler for the ``erb`` format.

    Example:
        >>> render = ErbHandler().compile("Hi <%= name %>", "demo:1", local_names=("name",))
        >>> render(object(), {"name": "<b>"}, [])
        'Hi &lt;b&gt;'
    """

    __slots__ = ()

    def compile(
        self,
        source: str,
        identity: str,
        *,
        local_names: tuple[str, ...] = (),
        filename: str | None = None,
        lineno: int = 0,
    ) -> RenderFunc:
        filename = filename or f"<inline {identity}>"
        try:
            tokens = tokenize(source)
        except TemplateSyntaxError as exc:
            raise TemplateSyntaxError(
                exc.message,
                lineno=(exc.lineno or 1) + lineno,
                filename=filename,
                source=source,
                first_line=lineno + 1,
            ) from None

        clashes = sorted(_RESERVED.intersection(local_names) - {"self"})
        if clashes:
            raise TemplateSyntaxError(
                f"Local names reserved by the erb handler: {', '.join(clashes)}",
                lineno=lineno + 1,
                filename=filename,
                source=source,
                first_line=lineno + 1,
            )

        module = ErbCompiler(source, filename, lineno).compile(tokens, local_names)
        try:
            code = compile(module, filename, "exec")
        except (SyntaxError, ValueError) as exc:
            raise TemplateSyntaxError(
                str(exc),
                lineno=getattr(exc, "lineno", None),
                filename=filename,
                source=source,
                first_line=lineno + 1,
            ) from exc

        namespace: dict[str, Any] = {
            "__builtins__": builtins,
            "_escape": _escape,
            "_to_str": _to_str,
            **TEMPLATE_GLOBALS,
        }
        exec(code, namespace)
        return namespace[RENDER_FUNCTION]
