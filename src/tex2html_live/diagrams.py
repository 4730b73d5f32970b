#!/usr/bin/env python3
"""
diagrams.py - TikZ diagram cache and render queue

TikZ pictures cannot be typeset by MathJax. Each tikzpicture/tikzcd is
wrapped in a standalone document, keyed by the SHA-1 of that document and
rendered on demand (pdflatex -> dvisvgm, or pdf2svg) into SVG.

  - DiagramCache: content-addressed SVG cache in memory plus an optional
    directory of <key>.svg files.
  - DiagramQueue: get-or-compute with single flight. Identical diagrams
    render once even when several requests arrive while rendering.

The page shows a lazy placeholder with a "Render diagram" button until the
SVG is available.
"""

__version__ = "1.0"
__date__ = "17-10-2026"

import concurrent.futures
import hashlib
import os
import re
import shutil
import subprocess
import sys
import tempfile
import threading
from collections import namedtuple

from .macros import macros_to_newcommands
from .scanner import read_brace_arg


DiagramResult = namedtuple('DiagramResult', 'key success payload error')

DIAGRAM_ENVS = ('tikzpicture', 'tikzcd')

# Preamble packages worth carrying into the standalone document
_DIAGRAM_PACKAGES = ('tikz', 'tikz-cd', 'pgfplots', 'circuitikz', 'xcolor',
                     'amsmath', 'amssymb', 'amsfonts', 'bm', 'siunitx')

_USEPACKAGE_RE = re.compile(r'\\usepackage\s*(?:\[[^\]]*\])?\s*\{([^{}]*)\}')
_PREAMBLE_CMD_RE = re.compile(
    r'\\(usetikzlibrary|tikzset|pgfplotsset|definecolor|colorlet|tikzcdset)(?![A-Za-z@])')
_XML_DECL_RE = re.compile(r'<\?xml[^>]*\?>\s*|<!DOCTYPE[^>]*>\s*')


# ============================================================================
# STANDALONE DOCUMENTS
# ============================================================================
def collect_tikz_preamble(preamble):
    """Pick the preamble lines a standalone diagram document needs."""
    lines = []
    for m in _USEPACKAGE_RE.finditer(preamble):
        names = [p.strip() for p in m.group(1).split(',')]
        if any(p in _DIAGRAM_PACKAGES for p in names):
            lines.append(m.group(0))
    for m in _PREAMBLE_CMD_RE.finditer(preamble):
        pos = m.end()
        # \definecolor takes three arguments, \colorlet two, the rest one
        count = {'definecolor': 3, 'colorlet': 2}.get(m.group(1), 1)
        for _ in range(count):
            arg = read_brace_arg(preamble, pos)
            if arg is None:
                break
            pos = arg[1]
        else:
            lines.append(preamble[m.start():pos])
    return '\n'.join(lines)


def build_standalone_document(picture, preamble='', macros=None):
    """Wrap one tikzpicture/tikzcd in a compilable standalone document."""
    lines = [
        '\\documentclass[tikz,border=1pt]{standalone}',
        '\\usepackage{amsmath,amssymb}',
    ]
    if 'tikzcd' in picture and 'tikz-cd' not in preamble:
        lines.append('\\usepackage{tikz-cd}')
    if preamble:
        lines.append(preamble)
    if macros:
        lines.append(macros_to_newcommands(macros))
    lines += ['\\begin{document}', picture.strip(), '\\end{document}', '']
    return '\n'.join(lines)


def diagram_key(document):
    return hashlib.sha1(document.encode('utf-8')).hexdigest()


def render_standalone_svg(document, timeout=60):
    """Compile a standalone document and convert it to SVG.

    Returns (svg_text, None) on success or (None, error_message).
    """
    latex_cmd = shutil.which('pdflatex') or shutil.which('xelatex')
    if not latex_cmd:
        return None, 'pdflatex/xelatex not available'
    dvisvgm = shutil.which('dvisvgm')
    pdf2svg = shutil.which('pdf2svg')
    if not dvisvgm and not pdf2svg:
        return None, 'dvisvgm/pdf2svg not available'

    with tempfile.TemporaryDirectory(prefix='tikz_') as tmpdir:
        tex_path = os.path.join(tmpdir, 'diagram.tex')
        pdf_path = os.path.join(tmpdir, 'diagram.pdf')
        svg_path = os.path.join(tmpdir, 'diagram.svg')

        with open(tex_path, 'w', encoding='utf-8') as f:
            f.write(document)

        try:
            result = subprocess.run(
                [latex_cmd, '-interaction=nonstopmode', '-halt-on-error',
                 '-output-directory', tmpdir, tex_path],
                capture_output=True, text=True, timeout=timeout, cwd=tmpdir)
        except subprocess.TimeoutExpired:
            return None, 'diagram compilation timed out'
        except OSError as e:
            return None, f'cannot run {latex_cmd}: {e}'

        if not os.path.isfile(pdf_path):
            tail = (result.stdout or result.stderr or 'no output')[-300:]
            return None, f'diagram compilation failed: {tail}'

        if dvisvgm:
            command = [dvisvgm, '--pdf', '--no-fonts', '--exact', '-o', svg_path, pdf_path]
        else:
            command = [pdf2svg, pdf_path, svg_path]
        try:
            subprocess.run(command, capture_output=True, text=True,
                           timeout=timeout, cwd=tmpdir)
        except subprocess.TimeoutExpired:
            return None, 'SVG conversion timed out'
        except OSError as e:
            return None, f'cannot run {command[0]}: {e}'

        if not os.path.isfile(svg_path):
            return None, 'SVG conversion failed'
        with open(svg_path, 'r', encoding='utf-8') as f:
            return f.read(), None


# ============================================================================
# CACHE
# ============================================================================
class DiagramCache:
    """Content-addressed SVG cache, shared across renders."""

    def __init__(self, directory=None):
        self.directory = directory
        self._memory = {}
        self._lock = threading.Lock()

    def _path(self, key):
        return os.path.join(self.directory, key + '.svg')

    def get(self, key):
        with self._lock:
            svg = self._memory.get(key)
        if svg is not None or not self.directory:
            return svg
        path = self._path(key)
        if not os.path.isfile(path):
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                svg = f.read()
        except (IOError, OSError) as e:
            print(f"  WARNING: Cannot read cached diagram {path}: {e}", file=sys.stderr)
            return None
        with self._lock:
            self._memory[key] = svg
        return svg

    def put(self, key, svg):
        with self._lock:
            self._memory[key] = svg
        if not self.directory:
            return
        try:
            os.makedirs(self.directory, exist_ok=True)
            tmp_path = self._path(key) + '.tmp'
            with open(tmp_path, 'w', encoding='utf-8') as f:
                f.write(svg)
            os.replace(tmp_path, self._path(key))
        except (IOError, OSError) as e:
            print(f"  WARNING: Cannot write diagram cache: {e}", file=sys.stderr)

    def __contains__(self, key):
        return self.get(key) is not None

    def clear(self):
        with self._lock:
            self._memory.clear()
        if not self.directory or not os.path.isdir(self.directory):
            return
        for name in os.listdir(self.directory):
            if name.endswith('.svg'):
                try:
                    os.remove(os.path.join(self.directory, name))
                except OSError as e:
                    print(f"  WARNING: Cannot remove {name}: {e}", file=sys.stderr)


# ============================================================================
# RENDER QUEUE
# ============================================================================
class DiagramQueue:
    """Registered diagram jobs plus single-flight rendering.

    Args:
        cache: DiagramCache holding finished SVGs.
        renderer: callable(document) -> (svg, error); defaults to
            render_standalone_svg.
        timeout: seconds request() waits for a result.
        render_timeout: seconds allowed per external tool run.
        max_workers: size of the render thread pool.
    """

    def __init__(self, cache=None, renderer=None, timeout=20.0,
                 render_timeout=60, max_workers=2):
        self.cache = cache if cache is not None else DiagramCache()
        self.renderer = renderer or (lambda doc: render_standalone_svg(doc, render_timeout))
        self.timeout = timeout
        self._jobs = {}
        self._inflight = {}
        self._lock = threading.Lock()
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix='diagram')

    @classmethod
    def from_config(cls, config):
        return cls(DiagramCache(config.diagram_cache_dir),
                   timeout=config.diagram_wait,
                   render_timeout=config.diagram_timeout,
                   max_workers=config.diagram_workers)

    def register(self, key, document):
        with self._lock:
            self._jobs[key] = document

    def cached(self, key):
        return self.cache.get(key)

    def prune(self, keep=()):
        """Forget registered documents not in keep, except those rendering."""
        keep = set(keep)
        with self._lock:
            stale = [k for k in self._jobs if k not in keep and k not in self._inflight]
            for key in stale:
                del self._jobs[key]
        return len(stale)

    def clear(self, keep=()):
        """Empty the SVG cache and drop every job outside keep."""
        self.cache.clear()
        self.prune(keep)

    def request(self, key, timeout=None):
        """Return the DiagramResult for key, rendering it if needed."""
        svg = self.cache.get(key)
        if svg is not None:
            return DiagramResult(key, True, svg, None)

        with self._lock:
            document = self._jobs.get(key)
            if document is None:
                return DiagramResult(key, False, None, 'unknown diagram key')
            future = self._inflight.get(key)
            if future is None:
                svg = self.cache.get(key)
                if svg is not None:
                    return DiagramResult(key, True, svg, None)
                # Deduplicate renders: identical diagram source only renders once.
                future = self._executor.submit(self._compute, key, document)
                self._inflight[key] = future

        wait = self.timeout if timeout is None else timeout
        try:
            return future.result(timeout=wait)
        except concurrent.futures.TimeoutError:
            print(f"  WARNING: Diagram {key[:10]} not ready after {wait:g}s", file=sys.stderr)
            return DiagramResult(key, False, None, f'diagram render timed out after {wait:g}s')

    def _compute(self, key, document):
        try:
            svg, error = self.renderer(document)
            if svg is not None:
                self.cache.put(key, svg)
                return DiagramResult(key, True, svg, None)
            print(f"  WARNING: Diagram {key[:10]} failed: {error}", file=sys.stderr)
            return DiagramResult(key, False, None, error or 'diagram render failed')
        except Exception as e:
            print(f"  WARNING: Diagram {key[:10]} failed: {e}", file=sys.stderr)
            return DiagramResult(key, False, None, str(e))
        finally:
            with self._lock:
                self._inflight.pop(key, None)

    def close(self):
        self._executor.shutdown(wait=False)


# ============================================================================
# HTML
# ============================================================================
def placeholder_html(key, lazy=True):
    if not lazy:
        return ('<div class="tikz-placeholder" style="background:#fff3cd;'
                'border:1px solid #ffc107;border-radius:6px;padding:1em;'
                'margin:1em 0;text-align:center"><em>[TikZ diagram]</em></div>')
    return ('<div class="tikz-lazy" data-tikz-key="%s" style="text-align:center;margin:1em 0;">'
            '<button type="button" class="tikz-load" data-tikz-key="%s">Render diagram</button>'
            ' <span class="tikz-status"></span></div>' % (key, key))


def inline_svg_html(key, svg):
    return '<div class="tikz-svg" data-tikz-key="%s" style="text-align:center;margin:1em 0;">%s</div>' % (
        key, _XML_DECL_RE.sub('', svg).strip())


def result_message(result):
    """Core -> host message for a finished diagram request."""
    message = {'type': 'diagram-result', 'key': result.key, 'success': result.success}
    if result.success:
        message['payload'] = result.payload
    else:
        message['error'] = result.error or 'diagram render failed'
    return message
