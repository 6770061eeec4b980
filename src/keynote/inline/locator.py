"""Locate inline template text in presenter source files.

Comment-style inline templates are the run of ``#`` comment lines right
after the call that renders them:

    ```python
    def header(self):
        return self.erb()
        # <h1><%= title %></h1>      ← line + 1
        # <p><%= subtitle %></p>     ← line + 2
    ```

The comment markers are stripped and the common indentation removed, so the
template can be indented to match the surrounding code.
"""

from __future__ import annotations

import re

from keynote.config import get_config
from keynote.exceptions import LocateError

COMMENTED_LINE = re.compile(r"^\s*#(.*)$")
_MARGIN = re.compile(r"^[ \t]*(?=[^ \t\n])", re.MULTILINE)


def read_template(path: str, line: int, *, encoding: str | None = None) -> str:
    """Return the commented template following ``line`` in ``path``.

    Reading starts on line ``line + 1`` and stops at the first line that is
    not a ``#`` comment. One space after the ``#`` is dropped.

    Args:
        path: Source file containing the template.
        line: 1-based line of the rendering call.
        encoding: File encoding; defaults to the configured encoding.

    Returns:
        Unindented template text, ``""`` when no comment lines follow.

    Raises:
        LocateError: If the file cannot be read.
    """
    encoding = encoding or get_config().encoding
    result: list[str] = []
    try:
        with open(path, encoding=encoding) as f:
            for index, text in enumerate(f, start=1):
                if index <= line:
                    continue
                match = COMMENTED_LINE.match(text.rstrip("\r\n"))
                if match is None:
                    break
                body = match.group(1)
                result.append(body[1:] if body.startswith(" ") else body)
    except (OSError, UnicodeDecodeError) as exc:
        raise LocateError(f"Cannot read inline template from {path}:{line}: {exc}", path) from exc

    return unindent("\n".join(result))


def unindent(text: str, left_padding: int = 0) -> str:
    """Remove the whitespace margin shared by every non-blank line.

    The margin is found pairwise: keep the current margin while each next
    indent extends it, shrink to the next indent when it is a prefix of the
    current margin, otherwise there is no common margin.

    Example:
        >>> unindent("  <div>\\n    <p>x</p>\\n  </div>")
        '<div>\\n  <p>x</p>\\n</div>'
    """
    indents = _MARGIN.findall(text)
    if not indents:
        return text

    margin = indents[0]
    for indent in indents[1:]:
        if indent.startswith(margin):
            continue
        if margin.startswith(indent):
            margin = indent
        else:
            margin = ""
            break

    if not margin and not left_padding:
        return text
    pattern = re.compile(rf"^{re.escape(margin)}", re.MULTILINE)
    return pattern.sub(" " * left_padding, text)


def normalize_literal(text: str) -> str:
    """Prepare a template passed as a string literal.

    Leading and trailing blank lines are dropped so triple-quoted literals
    can start on the line after the opening quotes, then the text is
    unindented.
    """
    lines = text.split("\n")
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    return unindent("\n".join(lines))
