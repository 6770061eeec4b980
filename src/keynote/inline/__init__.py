"""Inline templates: extraction, compilation, caching and rendering.

Pipeline:
    call site → locator (comment text) → handler compile → cache → render

See ``keynote.inline.renderer.render_inline`` for the entry point.
"""

from keynote.inline.cache import CacheEntry, TemplateCache, cache_scope, get_cache, reset
from keynote.inline.locator import normalize_literal, read_template, unindent
from keynote.inline.mixin import Inline, inline
from keynote.inline.renderer import Binding, Renderer, extract_locals, render_inline, run_template
from keynote.inline.template import InlineTemplate

__all__ = [
    "Binding",
    "CacheEntry",
    "Inline",
    "InlineTemplate",
    "Renderer",
    "TemplateCache",
    "cache_scope",
    "extract_locals",
    "get_cache",
    "inline",
    "normalize_literal",
    "read_template",
    "render_inline",
    "reset",
    "run_template",
    "unindent",
]
