"""Pytest configuration and fixtures for keynote tests."""

import importlib.util
import itertools
import shutil
import textwrap
from pathlib import Path

import pytest

import keynote
from keynote import config

FIXTURES = Path(__file__).parent / "fixtures"

_module_ids = itertools.count()


@pytest.fixture(autouse=True)
def fresh_cache():
    """Give every test an empty template cache."""
    keynote.reset()
    yield
    keynote.reset()


@pytest.fixture
def restore_config(monkeypatch):
    """Undo any configure() calls made by the test."""
    monkeypatch.setattr(config, "_config", config.get_config())


def _import_path(path: Path):
    module_name = f"keynote_test_{path.stem}_{next(_module_ids)}"
    spec = importlib.util.spec_from_file_location(module_name, str(path))
    assert spec is not None
    assert spec.loader is not None
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def load_module(tmp_path):
    """Write Python source to tmp_path and import it as a fresh module.

    Inline templates are read from the module's file, so each test gets its
    own copy whose mtime it can change freely.
    """

    def load(source: str, name: str = "presenters"):
        path = tmp_path / f"{name}.py"
        path.write_text(textwrap.dedent(source).lstrip("\n"))
        return _import_path(path)

    return load


@pytest.fixture
def inline_presenters(tmp_path):
    """Fresh import of ``fixtures/inline_user_presenter.py`` from a private copy."""
    path = tmp_path / "inline_user_presenter.py"
    shutil.copyfile(FIXTURES / "inline_user_presenter.py", path)
    return _import_path(path)


@pytest.fixture
def presenter(inline_presenters):
    """An ``InlineUserPresenter`` with a bare view."""
    return inline_presenters.InlineUserPresenter(View())


class View:
    """Minimal view context: accepts attributes and offers one helper."""

    def link_to(self, label, href):
        return f'<a href="{href}">{label}</a>'


def line_of(path, text: str) -> int:
    """1-based line number of the first line in ``path`` containing ``text``."""
    for lineno, line in enumerate(Path(path).read_text().splitlines(), start=1):
        if text in line:
            return lineno
    raise AssertionError(f"{text!r} not found in {path}")
