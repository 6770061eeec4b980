"""Tests for the handler registry and the Jinja2 / Mako handlers."""

import jinja2
import pytest
from mako import exceptions as mako_exceptions
from markupsafe import Markup

from keynote import (
    CallSite,
    Handler,
    HandlerRegistry,
    OutputBuffer,
    TemplateSyntaxError,
    UnknownFormatError,
    render_inline,
)
from keynote import handlers as handlers_module
from keynote.handlers import handler_for, register_handler
from keynote.handlers.erb import ErbHandler
from keynote.handlers.jinja import JinjaHandler, create_environment
from keynote.handlers.mako import MakoHandler


class UpperHandler:
    """Minimal custom handler used by the registry tests."""

    def compile(self, source, identity, *, local_names=(), filename=None, lineno=0):
        def render(host, locals, buffer):
            buffer.append(source.upper())
            return "".join(buffer)

        return render


class Host:
    nickname = "ada"

    def full_name(self):
        return "Ada Lovelace"


@pytest.fixture
def isolated_registry(monkeypatch):
    """Swap the default registry for a copy the test may mutate."""
    registry = HandlerRegistry({fmt: handlers_module.handlers[fmt] for fmt in handlers_module.handlers})
    monkeypatch.setattr(handlers_module, "handlers", registry)
    return registry


class TestHandlerRegistry:
    """Dict-like, copy-on-write handler registry."""

    def test_default_formats(self):
        assert handlers_module.handlers.formats() == ("erb", "jinja", "mako")
        assert isinstance(handler_for("erb"), ErbHandler)
        assert isinstance(handler_for("jinja"), JinjaHandler)
        assert isinstance(handler_for("mako"), MakoHandler)

    def test_builtin_handlers_satisfy_protocol(self):
        for fmt in ("erb", "jinja", "mako"):
            assert isinstance(handler_for(fmt), Handler)

    def test_unknown_format(self):
        registry = HandlerRegistry({"erb": ErbHandler()})

        with pytest.raises(UnknownFormatError) as exc_info:
            registry["haml"]

        error = exc_info.value
        assert isinstance(error, LookupError)
        assert error.format == "haml"
        assert error.available == ("erb",)
        assert "available: erb" in str(error)

    def test_register_and_lookup(self):
        registry = HandlerRegistry()
        handler = UpperHandler()

        registry["upper"] = handler

        assert registry["upper"] is handler
        assert "upper" in registry
        assert list(registry) == ["upper"]
        assert len(registry) == 1
        assert registry.get("missing") is None

    def test_register_rejects_non_handlers(self):
        with pytest.raises(TypeError, match="must define compile"):
            HandlerRegistry().register("bad", object())

    def test_mutation_replaces_mapping(self):
        registry = HandlerRegistry({"erb": ErbHandler()})
        before = registry._handlers

        registry.update({"upper": UpperHandler()})

        assert registry._handlers is not before
        assert "upper" not in before

    def test_unregister(self):
        registry = HandlerRegistry({"erb": ErbHandler(), "upper": UpperHandler()})
        registry.unregister("upper")
        registry.unregister("never-registered")
        assert registry.formats() == ("erb",)

    def test_custom_handler_end_to_end(self, isolated_registry, tmp_path):
        path = tmp_path / "views.py"
        path.write_text("render()\n# shout this\n")
        register_handler("upper", UpperHandler())

        output = render_inline(object(), None, CallSite(str(path), 1), "upper")

        assert output == "SHOUT THIS"


class TestJinjaHandler:
    """Jinja2 templates with host fallback."""

    def render(self, source, host=None, **locals):
        func = JinjaHandler().compile(source, "test:1", local_names=tuple(locals))
        return func(host or Host(), locals, OutputBuffer())

    def test_locals(self):
        assert self.render("{{ a }}-{{ b }}", a=1, b=2) == "1-2"

    def test_host_attribute_and_method(self):
        assert self.render("{{ nickname }}: {{ full_name() }}") == "ada: Ada Lovelace"

    def test_locals_shadow_host(self):
        assert self.render("{{ nickname }}", nickname="local") == "local"

    def test_autoescape(self):
        assert self.render("{{ v }}", v="<b>") == "&lt;b&gt;"

    def test_markup_global(self):
        assert self.render('{{ Markup("<b>") }}') == "<b>"

    def test_markup_values_unescaped(self):
        assert self.render("{{ v }}", v=Markup("<b>")) == "<b>"

    def test_undefined_is_strict(self):
        with pytest.raises(jinja2.UndefinedError):
            self.render("{{ nowhere }}")

    def test_syntax_error_rebased(self):
        with pytest.raises(TemplateSyntaxError) as exc_info:
            JinjaHandler().compile("ok\n{% if %}", "f.py:10", filename="f.py", lineno=10)

        error = exc_info.value
        assert error.lineno == 12
        assert error.filename == "f.py"
        assert isinstance(error.__cause__, jinja2.TemplateSyntaxError)

    def test_custom_environment_gets_host_context(self):
        env = jinja2.Environment(autoescape=False)
        handler = JinjaHandler(env)
        func = handler.compile("{{ nickname }}{{ v }}", "test:1")
        assert func(Host(), {"v": "<b>"}, OutputBuffer()) == "ada<b>"

    def test_create_environment_options(self):
        env = create_environment(autoescape=False)
        assert env.autoescape is False
        assert env.undefined is jinja2.StrictUndefined


class TestMakoHandler:
    """Mako templates with host fallback and default escaping."""

    def render(self, source, host=None, **locals):
        func = MakoHandler().compile(source, "test:1", local_names=tuple(locals))
        return func(host or Host(), locals, OutputBuffer())

    def test_locals(self):
        assert self.render("${a}-${b}", a=1, b=2) == "1-2"

    def test_host_attribute_and_method(self):
        assert self.render("${nickname}: ${full_name()}") == "ada: Ada Lovelace"

    def test_builtins_resolve(self):
        assert self.render("${len(items)}", items=[1, 2, 3]) == "3"

    def test_escapes_by_default(self):
        assert self.render("${v}", v="<b>") == "&lt;b&gt;"

    def test_markup_unescaped(self):
        assert self.render("${Markup(v)}", v="<b>") == "<b>"

    def test_n_filter_disables_escaping(self):
        assert self.render("${v | n}", v="<b>") == "<b>"

    def test_control_lines(self):
        source = "% for i in items:\n${i}\n% endfor\n"
        assert self.render(source, items=[1, 2]) == "1\n2\n"

    def test_def_blocks_see_host(self):
        source = "<%def name='badge()'>[${nickname}]</%def>${badge()}"
        assert self.render(source) == "[ada]"

    def test_syntax_error_rebased(self):
        with pytest.raises(TemplateSyntaxError) as exc_info:
            MakoHandler().compile("% if x:\nnever closed\n", "f.py:30", filename="f.py", lineno=30)

        error = exc_info.value
        assert error.filename == "f.py"
        assert error.lineno > 30
        assert isinstance(error.__cause__, mako_exceptions.SyntaxException)

    def test_undefined_name_raises(self):
        with pytest.raises(NameError):
            self.render("${nowhere}")
