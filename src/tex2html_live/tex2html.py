#!/usr/bin/env python3
"""
tex2html.py - LaTeX to HTML live-preview transpiler

Converts a LaTeX document (or any fragment of one) into a self-contained
HTML page for MathJax 3, with line anchors and the sync script embedded.

The conversion pipeline:
  1. Normalize input (CRLF, stray NUL characters)
  2. Inline \\input/\\include references and build the line map
  3. Strip comments (verbatim and \\verb aware)
  4. Extract macros, title metadata, \\newtheorem declarations
     and the TikZ preamble
  5. Isolate the document body and remove macro definitions from it
  6. Extract code blocks
  7. Run the environment pipeline (environments.PIPELINE)
  8. Wrap paragraphs, convert prose around math
  9. Restore fragments, inject line anchors
 10. Assemble the page (assemble.build_document)

transpile() and render_source() never raise: an unexpected error becomes an
error page and a warning on stderr.
"""

__version__ = "1.0"
__date__ = "17-10-2026"

import os
import re
import sys
import traceback

from . import assemble
from .anchors import inject_line_anchors
from .config import Config
from .context import RenderContext, RenderResult
from .diagrams import collect_tikz_preamble
from .environments import (
    convert_block, extract_code_blocks, extract_theorem_environments,
    extract_title_meta,
)
from .macros import build_macro_table, extract_macros, strip_definitions
from .resolve_tex import LineMap, _read_source, inline_with_line_map
from .scanner import is_escaped, strip_comments


EMPTY_BODY = '<p class="placeholder">Start typing LaTeX to see the preview.</p>'

_BEGIN_DOCUMENT_RE = re.compile(r'\\begin\s*\{document\}')
_END_DOCUMENT_RE = re.compile(r'\\end\s*\{document\}')


def normalize_source(text):
    """Unify line endings and drop NUL characters (used internally as tokens)."""
    if text is None:
        return ''
    return text.replace('\r\n', '\n').replace('\r', '\n').replace('\x00', '')


def isolate_body(text):
    """Split a document into (preamble, body, abs_offset).

    abs_offset is the merged line number of the first body line. Without
    \\begin{document} the whole text is the body.
    """
    begin = None
    for m in _BEGIN_DOCUMENT_RE.finditer(text):
        if not is_escaped(text, m.start()):
            begin = m
            break
    if begin is None:
        return '', text, 1

    body_start = begin.end()
    body_end = len(text)
    for m in _END_DOCUMENT_RE.finditer(text, body_start):
        if not is_escaped(text, m.start()):
            body_end = m.start()
            break
    preamble = text[:begin.start()]
    return preamble, text[body_start:body_end], 1 + text.count('\n', 0, body_start)


def _title_text(meta, config):
    title = meta.get('title')
    if not title:
        return config.title
    # Page <title> is plain text
    plain = re.sub(r'\\[A-Za-z@]+\*?|[{}$]', ' ', title)
    return ' '.join(plain.split()) or config.title


def _render(text, base_dir, config, diagrams, main_path):
    if base_dir:
        merged, line_map = inline_with_line_map(
            text, base_dir, tuple(config.include_suffixes), main_path)
    else:
        merged = text
        line_map = LineMap.identity(text.count('\n') + 1)

    source = strip_comments(merged)
    user_macros = extract_macros(source)
    table = build_macro_table(user_macros)

    preamble, body, abs_offset = isolate_body(source)
    ctx = RenderContext(config, base_dir, line_map, diagrams, abs_offset)
    ctx.macros = user_macros
    ctx.title_meta = extract_title_meta(source)
    ctx.theorems.update(extract_theorem_environments(source))
    ctx.tikz_preamble = collect_tikz_preamble(preamble)

    body = strip_definitions(body)
    body = extract_code_blocks(body, ctx)
    html = convert_block(body, ctx)
    html = ctx.fragments.restore(html)
    html = inject_line_anchors(html, abs_offset, config.anchor_stride)

    document = assemble.build_document(
        html, table, line_map, config, title=_title_text(ctx.title_meta, config))
    return RenderResult(document, line_map, table, list(ctx.diagram_keys))


def render_source(text, base_dir=None, config=None, diagrams=None, main_path=None):
    """Transpile LaTeX source into a RenderResult.

    Args:
        text: LaTeX source as edited (may be empty or malformed).
        base_dir: Directory used for includes and images; None disables both.
        config: Config instance (defaults if None).
        diagrams: DiagramQueue shared across renders, or None.
        main_path: Path of the edited file, for include cycle detection.
    """
    config = config or Config()
    text = normalize_source(text)
    if not text.strip():
        line_map = LineMap.identity(text.count('\n') + 1)
        table = build_macro_table()
        document = assemble.build_document(EMPTY_BODY, table, line_map, config)
        return RenderResult(document, line_map, table, [])

    try:
        return _render(text, base_dir, config, diagrams, main_path)
    except Exception as e:
        print(f"  WARNING: Preview failed: {e}", file=sys.stderr)
        traceback.print_exc(file=sys.stderr)
        line_map = LineMap.identity(text.count('\n') + 1)
        return RenderResult(assemble.build_error_page(str(e) or type(e).__name__, config),
                            line_map, build_macro_table(), [])


def transpile(text, base_dir=None, config=None, diagrams=None):
    """Return the HTML page for text."""
    return render_source(text, base_dir, config, diagrams).html


def render_file(path, config=None, diagrams=None):
    """Render a .tex file from disk; includes resolve relative to it."""
    path = os.path.abspath(path)
    return render_source(_read_source(path), os.path.dirname(path),
                         config, diagrams, main_path=path)
