"""Exceptions for keynote inline templates.

Exception Hierarchy:
TemplateError (base)
├── LocateError              # Template text or mtime could not be read (also OSError)
├── UnknownFormatError       # No handler registered for a format (also LookupError)
├── TemplateSyntaxError      # Handler could not tokenize/structure the source
├── TemplateCompileError     # Handler rejected the source; cause attached
└── TemplateRenderError      # Template body raised; cause attached

None of these are recovered inside keynote. They propagate to the presenter
method that asked for the template, with the underlying failure available as
``__cause__``.

Example:
    ```
    KN-RUN-001: Error rendering inline template app/presenters/user.py:12
      Location: app/presenters/user.py:14
       |
     13 | <p>
    >14 |   <%= profile.name %>
     15 | </p>
       |
      Cause: AttributeError: 'NoneType' object has no attribute 'name'
    ```

"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from keynote import terminal


class ErrorCode(Enum):
    """Searchable error codes.

    Format: KN-{CATEGORY}-{NUMBER}
    Categories: LOC (locating source), FMT (format lookup), SYN (syntax),
    CMP (compilation), RUN (rendering)
    """

    LOCATE_FAILED = "KN-LOC-001"
    UNKNOWN_FORMAT = "KN-FMT-001"
    SYNTAX_ERROR = "KN-SYN-001"
    COMPILE_FAILED = "KN-CMP-001"
    RENDER_FAILED = "KN-RUN-001"

    @property
    def category(self) -> str:
        prefix = self.value.split("-")[1]
        return {
            "LOC": "locate",
            "FMT": "format",
            "SYN": "syntax",
            "CMP": "compile",
            "RUN": "render",
        }.get(prefix, "unknown")


@dataclass(frozen=True, slots=True)
class SourceSnippet:
    """Template source lines around a failing line.

    Attributes:
        lines: (line_number, content) pairs, numbered as in the source file.
        error_line: Line number of the failure.
    """

    lines: tuple[tuple[int, str], ...]
    error_line: int

    def format(self) -> str:
        parts = [terminal.dim_text("   |")]
        for lineno, content in self.lines:
            parts.append(
                terminal.format_source_line(lineno, content, is_error=lineno == self.error_line)
            )
        parts.append(terminal.dim_text("   |"))
        return "\n".join(parts)


def build_source_snippet(
    source: str,
    error_line: int,
    *,
    first_line: int = 1,
    context_lines: int = 1,
) -> SourceSnippet:
    """Build a SourceSnippet from template source.

    Args:
        source: Template source text.
        error_line: Line number of the failure, in file coordinates.
        first_line: File line number of the first source line. Inline
            templates start below their call site, not at line 1.
        context_lines: Lines to show before and after the failure.
    """
    all_lines = source.splitlines()
    index = error_line - first_line
    start = max(0, index - context_lines)
    end = min(len(all_lines), index + context_lines + 1)
    lines = tuple((first_line + i, all_lines[i]) for i in range(start, end))
    return SourceSnippet(lines=lines, error_line=error_line)


class TemplateError(Exception):
    """Base exception for all keynote template errors.

        >>> try:
        ...     presenter.header()
        ... except TemplateError as e:
        ...     log.error(e.format_compact())

    Attributes:
        code: ErrorCode identifying the failure class.
    """

    code: ErrorCode | None = None

    def format_compact(self) -> str:
        """Return the message prefixed with its error code."""
        header = str(self)
        if self.code and self.code.value not in header:
            header = f"{terminal.error_code(self.code.value)}: {header}"
        return header


class LocateError(TemplateError, OSError):
    """Inline template source could not be read from its file."""

    code: ErrorCode | None = ErrorCode.LOCATE_FAILED

    def __init__(self, message: str, filename: str | None = None):
        super().__init__(message)
        self.message = message
        self.filename = filename

    def __str__(self) -> str:
        return self.message


class UnknownFormatError(TemplateError, LookupError):
    """No syntax handler is registered for the requested format."""

    code: ErrorCode | None = ErrorCode.UNKNOWN_FORMAT

    def __init__(self, format: str, available: tuple[str, ...] = ()):
        self.format = format
        self.available = available
        message = f"No template handler registered for format {format!r}"
        if available:
            message += f" (available: {', '.join(available)})"
        super().__init__(message)


class TemplateSyntaxError(TemplateError):
    """Template source is structurally invalid for its handler."""

    code: ErrorCode | None = ErrorCode.SYNTAX_ERROR

    def __init__(
        self,
        message: str,
        lineno: int | None = None,
        filename: str | None = None,
        source: str | None = None,
        first_line: int = 1,
    ):
        self.message = message
        self.lineno = lineno
        self.filename = filename
        self.source = source
        self.first_line = first_line
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        location = self.filename or "<inline>"
        if self.lineno:
            location += f":{self.lineno}"
        header = f"Syntax Error: {self.message}\n  --> {location}"
        if self.source and self.lineno:
            snippet = build_source_snippet(self.source, self.lineno, first_line=self.first_line)
            if snippet.lines:
                return f"{header}\n{snippet.format()}"
        return header


class TemplateCompileError(TemplateError):
    """A syntax handler rejected the template source.

    The handler's own exception is chained as ``__cause__``.

    Attributes:
        identity: Cache identity of the template (``path:line``).
        filename: File the template was read from.
        lineno: Line reported by the handler, in file coordinates, if known.
    """

    code: ErrorCode | None = ErrorCode.COMPILE_FAILED

    def __init__(
        self,
        message: str,
        *,
        identity: str,
        filename: str | None = None,
        lineno: int | None = None,
    ):
        self.message = message
        self.identity = identity
        self.filename = filename
        self.lineno = lineno
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        location = self.filename or self.identity
        if self.lineno:
            location += f":{self.lineno}"
        return (
            f"Error compiling inline template {self.identity}: {self.message}\n"
            f"  Location: {terminal.location(location)}"
        )


class TemplateRenderError(TemplateError):
    """An exception escaped while the template body was running.

    The original exception is both ``__cause__`` and ``original_exception``
    so host error pages can show the wrapper and the root cause.

    Attributes:
        identity: Cache identity of the template (``path:line``).
        lineno: Failing template line in file coordinates, when the handler
            maps template lines back to the source file.
        source_snippet: Source context around ``lineno``.
    """

    code: ErrorCode | None = ErrorCode.RENDER_FAILED

    def __init__(
        self,
        original: BaseException,
        *,
        identity: str,
        filename: str | None = None,
        lineno: int | None = None,
        source_snippet: SourceSnippet | None = None,
    ):
        self.original_exception = original
        self.identity = identity
        self.filename = filename
        self.lineno = lineno
        self.source_snippet = source_snippet
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        parts = [f"Error rendering inline template {self.identity}"]
        if self.lineno:
            loc = f"{self.filename or self.identity}:{self.lineno}"
            parts.append(f"  Location: {terminal.location(loc)}")
        if self.source_snippet:
            parts.append(self.source_snippet.format())
        cause = self.original_exception
        parts.append(f"  {terminal.hint('Cause:')} {type(cause).__name__}: {cause}")
        return "\n".join(parts)
