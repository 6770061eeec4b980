"""Tests for reading inline templates out of source files."""

import pytest

from keynote import LocateError
from keynote.inline.locator import normalize_literal, read_template, unindent

SOURCE = '''\
class Presenter:
    def header(self):
        return self.erb()
        # <h1>
        #   <%= title %>
        # </h1>

    def footer(self):
        return self.erb()
        #<footer>
        #</footer>
        value = 1
'''


@pytest.fixture
def source_file(tmp_path):
    path = tmp_path / "presenter.py"
    path.write_text(SOURCE)
    return str(path)


class TestReadTemplate:
    """Extracting comment runs after a call site."""

    def test_reads_comment_run_after_line(self, source_file):
        assert read_template(source_file, 3) == "<h1>\n  <%= title %>\n</h1>"

    def test_stops_at_first_non_comment_line(self, source_file):
        assert read_template(source_file, 9) == "<footer>\n</footer>"

    def test_comment_without_space_after_hash(self, source_file):
        assert read_template(source_file, 9).startswith("<footer>")

    def test_no_comments_gives_empty_template(self, source_file):
        assert read_template(source_file, 1) == ""

    def test_line_past_end_of_file(self, source_file):
        assert read_template(source_file, 500) == ""

    def test_starting_mid_run_reads_the_rest(self, source_file):
        assert read_template(source_file, 4) == "  <%= title %>\n</h1>"

    def test_crlf_line_endings(self, tmp_path):
        path = tmp_path / "crlf.py"
        path.write_bytes(b"x = erb()\r\n# <b>\r\n#   hi\r\n# </b>\r\ny = 2\r\n")
        assert read_template(str(path), 1) == "<b>\n  hi\n</b>"

    def test_encoding(self, tmp_path):
        path = tmp_path / "latin.py"
        path.write_bytes("x = erb()\n# caf\xe9\n".encode("latin-1"))
        assert read_template(str(path), 1, encoding="latin-1") == "caf\xe9"

    def test_missing_file_raises_locate_error(self, tmp_path):
        missing = str(tmp_path / "nope.py")

        with pytest.raises(LocateError) as exc_info:
            read_template(missing, 1)

        error = exc_info.value
        assert error.filename == missing
        assert isinstance(error.__cause__, FileNotFoundError)
        assert isinstance(error, OSError)
        assert "nope.py" in str(error)

    def test_undecodable_file_raises_locate_error(self, tmp_path):
        path = tmp_path / "binary.py"
        path.write_bytes(b"x = erb()\n# \xff\xfe\n")

        with pytest.raises(LocateError) as exc_info:
            read_template(str(path), 1, encoding="utf-8")

        assert isinstance(exc_info.value.__cause__, UnicodeDecodeError)


class TestUnindent:
    """Removing the shared whitespace margin."""

    def test_nested_markup(self):
        assert unindent("  <div>\n    <p>x</p>\n  </div>") == "<div>\n  <p>x</p>\n</div>"

    def test_no_margin_is_unchanged(self):
        text = "<div>\n  <p>x</p>\n</div>"
        assert unindent(text) == text

    def test_margin_shrinks_to_smallest_indent(self):
        assert unindent("    a\n  b\n      c") == "  a\nb\n    c"

    def test_blank_lines_do_not_count(self):
        assert unindent("    a\n\n    b") == "a\n\nb"

    def test_whitespace_only_lines_do_not_count(self):
        assert unindent("    a\n  \n    b") == "a\n  \nb"

    def test_incompatible_tabs_and_spaces_keep_text(self):
        text = "\ta\n  b"
        assert unindent(text) == text

    def test_tabs(self):
        assert unindent("\t\ta\n\tb") == "\ta\nb"

    def test_left_padding(self):
        assert unindent("    a\n      b", left_padding=2) == "  a\n    b"

    def test_empty(self):
        assert unindent("") == ""


class TestNormalizeLiteral:
    """Preparing ``source=`` literals."""

    def test_triple_quoted_literal(self):
        literal = """
            <ul>
              <li>one</li>
            </ul>
        """
        assert normalize_literal(literal) == "<ul>\n  <li>one</li>\n</ul>"

    def test_single_line(self):
        assert normalize_literal("<b>hi</b>") == "<b>hi</b>"

    def test_inner_blank_lines_kept(self):
        assert normalize_literal("\n  a\n\n  b\n") == "a\n\nb"
