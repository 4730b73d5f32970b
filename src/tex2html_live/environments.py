#!/usr/bin/env python3
"""
environments.py - Environment Converter Pipeline

Every converter has the signature convert_x(text, ctx) -> text. It replaces
whole LaTeX constructs with fragment tokens (see context.FragmentStore),
never looks inside math spans and is a no-op when nothing matches.
Environment bodies are converted recursively with convert_block(), so
nested constructs resolve no matter which converter reaches them first.

Pipeline order (PIPELINE at the bottom of this module):

  sections/markers -> diagrams -> title block -> siunitx -> alignment and
  abstract -> theorem-like blocks -> figures/images -> multicols ->
  longtable normalization -> colored boxes -> table wrappers -> lists ->
  tabulars -> bibliography -> auxiliary directives -> unknown environments

Code blocks are extracted before the pipeline runs (extract_code_blocks).
"""

__version__ = "1.0"
__date__ = "17-10-2026"

import base64
import os
import re
import sys
from collections import namedtuple
from pathlib import Path

from . import diagrams
from .colors import parse_options, xcolor_to_css
from .context import TOKEN_RE
from .prose import escape_html, latex_prose_to_html, today_string, wrap_paragraphs
from .scanner import (
    MATH_ENVS, MathMask, find_environment, is_escaped, read_brace_arg,
    read_bracket_arg, split_top_level,
)


BLOCK = 'block'
INLINE = 'inline'
RAW = 'raw'

CODE_STYLE = (
    'background:#f6f8fa; border:1px solid #e1e4e8; border-radius:6px; '
    'padding:1em; overflow-x:auto; font-size:0.9em; line-height:1.5'
)
CAP_STYLE = 'text-align:center;font-size:0.9em;color:#586069'
INLINE_CODE_STYLE = ('background:#f0f0f0; padding:0.15em 0.4em; border-radius:3px; '
                     'font-family:monospace; font-size:0.9em')
LIST_STYLE = 'margin:12px 0 12px 24px;'
CELL_STYLE = 'padding:4px 8px;border:1px solid var(--border);vertical-align:top;'
SPACER_CELL = '<td style="width:1em;border:none;"></td>'

MIME_TYPES = {
    '.png': 'image/png', '.jpg': 'image/jpeg', '.jpeg': 'image/jpeg',
    '.gif': 'image/gif', '.svg': 'image/svg+xml', '.pdf': 'application/pdf',
}

HEADING_TAGS = {
    'chapter': 'h1', 'section': 'h2', 'subsection': 'h3',
    'subsubsection': 'h4', 'paragraph': 'h5',
}

TABULAR_ENVS = ('tabular', 'tabular*', 'tabularx')
LIST_ENVS = ('itemize', 'enumerate', 'description')

# Environments some converter owns; everything else is stripped to prose
HANDLED_ENVS = frozenset(
    ('center', 'flushleft', 'flushright', 'abstract', 'figure', 'figure*',
     'table', 'table*', 'longtable', 'multicols', 'multicols*', 'tcolorbox',
     'thebibliography') + TABULAR_ENVS + LIST_ENVS + diagrams.DIAGRAM_ENVS)

_NO_LETTER = r'(?![A-Za-z@])'


def convert_block(text, ctx, paragraphs=True):
    """Run the whole pipeline on text, then the prose pass."""
    for converter in PIPELINE:
        text = converter(text, ctx)
    if paragraphs:
        return wrap_paragraphs(text)
    return latex_prose_to_html(text)


# ============================================================================
# SHARED REPLACEMENT LOOPS
# ============================================================================
def _emit(ctx, html, source, mode):
    if mode == RAW:
        return html
    if not html:
        return '\n' * source.count('\n')
    return ctx.fragments.put(html, source, mode == BLOCK)


def _replace_commands(text, pattern, handler, ctx, mode=BLOCK):
    """Replace every pattern match outside math with handler's output.

    handler(text, m) returns (html, end) or None to leave the match alone.
    """
    mask = MathMask(text)
    out = []
    pos = 0
    for m in pattern.finditer(text):
        start = m.start()
        if start < pos or mask.contains(start) or is_escaped(text, start):
            continue
        result = handler(text, m)
        if result is None:
            continue
        html, end = result
        out.append(text[pos:start])
        out.append(_emit(ctx, html, text[start:end], mode))
        pos = end
    out.append(text[pos:])
    return ''.join(out)


def _rewrite_environments(text, names, rewrite):
    """Replace balanced environments by rewrite(span, text).

    A rewrite returning None leaves that environment unconverted.
    """
    mask = MathMask(text)
    out = []
    pos = search = 0
    while True:
        span = find_environment(text, names, search, mask)
        if span is None:
            break
        replacement = rewrite(span, text)
        if replacement is None:
            search = span.begin_end
            continue
        out.append(text[pos:span.start])
        out.append(replacement)
        pos = search = span.end
    out.append(text[pos:])
    return ''.join(out)


def _replace_environments(text, names, render, ctx, mode=BLOCK):
    def rewrite(span, text):
        html = render(span, text)
        if html is None:
            return None
        return _emit(ctx, html, text[span.start:span.end], mode)
    return _rewrite_environments(text, names, rewrite)


def _leading_option(text, span):
    """Optional [..] right after \\begin{name}, as (content, end) or None."""
    opt = read_bracket_arg(text, span.begin_end)
    if opt is None or opt[1] > span.body_end:
        return None
    return opt


def _find_command(text, name):
    """First unescaped \\name outside math, as a match object or None."""
    mask = MathMask(text)
    for m in re.finditer(r'\\' + name + _NO_LETTER, text):
        if not mask.contains(m.start()) and not is_escaped(text, m.start()):
            return m
    return None


def _take_caption(body):
    """Remove the first \\caption[..]{..} from body.

    Returns (caption or None, position of the caption, body without it).
    """
    m = _find_command(body, 'caption')
    if m is None:
        return None, -1, body
    pos = m.end()
    short = read_bracket_arg(body, pos)
    if short is not None:
        pos = short[1]
    arg = read_brace_arg(body, pos, allow_math=True)
    if arg is None:
        return None, -1, body
    removed = body[m.start():arg[1]]
    return arg[0], m.start(), body[:m.start()] + '\n' * removed.count('\n') + body[arg[1]:]


def slugify(text):
    text = TOKEN_RE.sub('', text).lower()
    text = re.sub(r'\\[a-z@]+', '', text)
    text = re.sub(r'[^a-z0-9]+', '-', text)
    return text.strip('-')


def _clamp(value, low, high):
    return max(low, min(high, value))


# ============================================================================
# CODE BLOCKS
# ============================================================================
def _escape_code(s):
    return escape_html(s).replace('\\', '&#92;').replace('$', '&#36;')


def _code_html(content, lang='', caption=''):
    badge = (f'<div style="text-align:right;font-size:0.8em;color:#6a737d;'
             f'margin-bottom:0.3em">{escape_html(lang)}</div>') if lang else ''
    data_lang = f' data-lang="{escape_html(lang, quote=True)}"' if lang else ''
    cap_html = (f'<p style="{CAP_STYLE}"><em>{latex_prose_to_html(caption)}</em></p>'
                if caption else '')
    return (f'{badge}<pre style="{CODE_STYLE}"{data_lang}><code>'
            f'{_escape_code(content.strip(chr(10)))}</code></pre>{cap_html}')


def extract_code_blocks(text, ctx):
    """Park verbatim-like environments and inline code as fragments.

    Runs before everything else so code is never treated as LaTeX.
    """
    def _put(m, html, block=True):
        return _emit(ctx, html, m.group(0), BLOCK if block else INLINE)

    def _verbatim_repl(m):
        return _put(m, _code_html(m.group(2)))

    text = re.sub(r'\\begin\{(verbatim\*?|Verbatim)\}(?:\[[^\]\n]*\])?(.*?)\\end\{\1\}',
                  _verbatim_repl, text, flags=re.DOTALL)

    def _lst_repl(m):
        opts = parse_options(m.group(1) or '')
        return _put(m, _code_html(m.group(2), opts.get('language', ''), opts.get('caption', '')))

    text = re.sub(r'\\begin\{lstlisting\}[ \t]*(?:\[([^\]]*)\])?(.*?)\\end\{lstlisting\}',
                  _lst_repl, text, flags=re.DOTALL)

    def _minted_repl(m):
        opts = parse_options(m.group(1) or '')
        return _put(m, _code_html(m.group(3), m.group(2), opts.get('caption', '')))

    text = re.sub(r'\\begin\{minted\}[ \t]*(?:\[([^\]]*)\])?\s*\{([\w+-]+)\}(.*?)\\end\{minted\}',
                  _minted_repl, text, flags=re.DOTALL)

    # comment environment bodies are dropped
    text = re.sub(r'\\begin\{comment\}.*?\\end\{comment\}',
                  lambda m: '\n' * m.group(0).count('\n'), text, flags=re.DOTALL)

    def _inline_repl(m):
        content = m.group('delim') if m.group('delim') is not None else m.group('brace')
        return _put(m, f'<code style="{INLINE_CODE_STYLE}">{_escape_code(content)}</code>',
                    block=False)

    text = re.sub(
        r'\\(?:verb\*?|lstinline(?:\[[^\]]*\])?|mintinline\{[\w+-]+\})'
        r'(?:([^A-Za-z\s{*])(?P<delim>.*?)\1|\{(?P<brace>[^{}\n]*)\})',
        _inline_repl, text)
    return text


# ============================================================================
# SECTIONS AND MARKERS
# ============================================================================
_SECTION_RE = re.compile(r'\\(chapter|section|subsection|subsubsection|paragraph)(\*?)' + _NO_LETTER)
_LLMARK_RE = re.compile(r'\\llmark' + _NO_LETTER)
_TEXORPDF_RE = re.compile(r'\\texorpdfstring' + _NO_LETTER)


def resolve_texorpdfstring(title):
    """Replace every \\texorpdfstring{tex}{plain} by its plain form."""
    while True:
        m = _TEXORPDF_RE.search(title)
        if m is None:
            return title
        first = read_brace_arg(title, m.end(), allow_math=True)
        second = read_brace_arg(title, first[1], allow_math=True) if first else None
        if second is None:
            return title
        title = title[:m.start()] + second[0] + title[second[1]:]


def _mark_html(ctx, mark_id, text, start):
    abs_line = ctx.abs_offset + text.count('\n', 0, start)
    return f'<span class="llmark" data-id="{mark_id}" data-abs="{abs_line}"></span>'


def convert_sections(text, ctx):
    def handler(text, m):
        cursor = m.end()
        short = read_bracket_arg(text, cursor)
        if short is not None:
            cursor = short[1]
        arg = read_brace_arg(text, cursor, allow_math=True)
        if arg is None:
            return None
        title = resolve_texorpdfstring(arg[0]).strip()
        kind = m.group(1)
        anchor_id = ctx.unique_id('%s-%s' % (kind, slugify(title) or 'untitled'))
        tag = HEADING_TAGS[kind]
        html = (_mark_html(ctx, anchor_id, text, m.start()) +
                f'<{tag} id="{anchor_id}">{latex_prose_to_html(title)}</{tag}>')
        return html, arg[1]

    return _replace_commands(text, _SECTION_RE, handler, ctx)


def convert_llmarks(text, ctx):
    """\\llmark[Caption]{key} becomes an explicit sync mark."""
    def handler(text, m):
        cursor = m.end()
        caption = read_bracket_arg(text, cursor)
        if caption is not None:
            cursor = caption[1]
        key = read_brace_arg(text, cursor)
        if key is None:
            return None
        mark_id = ctx.unique_id('mark-' + (slugify(key[0]) or 'mark'))
        html = _mark_html(ctx, mark_id, text, m.start())
        if caption is not None and caption[0].strip():
            html += ('<span class="llmark-caption">%s</span>'
                     % latex_prose_to_html(caption[0].strip()))
        return html, key[1]

    return _replace_commands(text, _LLMARK_RE, handler, ctx, INLINE)


# ============================================================================
# DIAGRAMS
# ============================================================================
def convert_diagrams(text, ctx):
    """tikzpicture/tikzcd become lazy diagram placeholders (or cached SVG)."""
    def render(span, text):
        document = diagrams.build_standalone_document(
            text[span.start:span.end], ctx.tikz_preamble, ctx.macros)
        key = diagrams.diagram_key(document)
        ctx.diagram_keys.append(key)
        if ctx.diagrams is None:
            return diagrams.placeholder_html(key, lazy=False)
        ctx.diagrams.register(key, document)
        svg = ctx.diagrams.cached(key)
        if svg is not None:
            return diagrams.inline_svg_html(key, svg)
        return diagrams.placeholder_html(key)

    return _replace_environments(text, diagrams.DIAGRAM_ENVS, render, ctx)


# ============================================================================
# TITLE BLOCK
# ============================================================================
_AND_RE = re.compile(r'\\and' + _NO_LETTER)
_THANKS_RE = re.compile(r'\\thanks' + _NO_LETTER)
_MAKETITLE_RE = re.compile(r'\\maketitle' + _NO_LETTER)


def extract_title_meta(source):
    """Last \\title, \\author and \\date arguments of the source."""
    meta = {}
    for key in ('title', 'author', 'date'):
        value = None
        for m in re.finditer(r'\\' + key + _NO_LETTER, source):
            if is_escaped(source, m.start()):
                continue
            cursor = m.end()
            short = read_bracket_arg(source, cursor)
            if short is not None:
                cursor = short[1]
            arg = read_brace_arg(source, cursor, allow_math=True)
            if arg is not None:
                value = arg[0].strip()
        if value is not None:
            meta[key] = value
    return meta


def _with_thanks(text, notes):
    """Convert text, turning each \\thanks{..} into a numbered marker."""
    out = []
    pos = 0
    for m in _THANKS_RE.finditer(text):
        if m.start() < pos:
            continue
        arg = read_brace_arg(text, m.end(), allow_math=True)
        if arg is None:
            continue
        notes.append(arg[0])
        out.append(latex_prose_to_html(text[pos:m.start()]))
        out.append('<sup>%d</sup>' % len(notes))
        pos = arg[1]
    out.append(latex_prose_to_html(text[pos:]))
    return ''.join(out).strip()


def render_title_block(meta):
    title = meta.get('title')
    if not title:
        return ''
    notes = []
    parts = ['<div class="titleblock" style="text-align:center;margin:18px 0 24px;">',
             '<h1 class="title">%s</h1>' % _with_thanks(title, notes)]
    authors = [a.strip() for a in split_top_level(meta.get('author', ''), _AND_RE)]
    authors = [_with_thanks(a, notes) for a in authors if a]
    if authors:
        parts.append('<div class="authors">%s</div>' % ''.join(
            '<span class="author" style="margin:0 12px;">%s</span>' % a for a in authors))
    date_text = meta.get('date')
    if date_text is None:
        parts.append('<div class="date">%s</div>' % today_string())
    elif date_text.strip():
        parts.append('<div class="date">%s</div>' % latex_prose_to_html(date_text))
    for idx, note in enumerate(notes, 1):
        parts.append('<div class="thanks" style="font-size:0.85em;"><sup>%d</sup> %s</div>'
                     % (idx, latex_prose_to_html(note)))
    parts.append('</div>')
    return ''.join(parts)


def convert_maketitle(text, ctx):
    return _replace_commands(
        text, _MAKETITLE_RE,
        lambda text, m: (render_title_block(ctx.title_meta), m.end()), ctx)


# ============================================================================
# SIUNITX
# ============================================================================
_SI_RE = re.compile(r'\\(SI|qty|num|si|unit)' + _NO_LETTER)
_EXPONENT_RE = re.compile(r'([-+]?[\d.,]*\d)\s*[eE]\s*([-+]?\d+)')


def _si_number(value):
    value = value.strip().replace('+-', '\\pm ')
    m = _EXPONENT_RE.fullmatch(value)
    if m:
        mantissa = m.group(1)
        exponent = m.group(2).lstrip('+')
        if mantissa in ('1', '1.0'):
            return '10^{%s}' % exponent
        return '%s\\times 10^{%s}' % (mantissa, exponent)
    return value


def _si_unit(value):
    value = value.strip()
    value = re.sub(r'\\per\s*', '/', value)
    value = re.sub(r'(?<=[A-Za-z}])[.~](?=[A-Za-z\\])', r'\\,', value)
    return '\\mathrm{%s}' % value


def convert_siunitx(text, ctx):
    def handler(text, m):
        name = m.group(1)
        cursor = m.end()
        options = read_bracket_arg(text, cursor)
        if options is not None:
            cursor = options[1]
        first = read_brace_arg(text, cursor)
        if first is None:
            return None
        if name in ('num',):
            return '\\(%s\\)' % _si_number(first[0]), first[1]
        if name in ('si', 'unit'):
            return '\\(%s\\)' % _si_unit(first[0]), first[1]
        second = read_brace_arg(text, first[1])
        if second is None:
            return None
        return '\\(%s\\,%s\\)' % (_si_number(first[0]), _si_unit(second[0])), second[1]

    return _replace_commands(text, _SI_RE, handler, ctx, RAW)


# ============================================================================
# ALIGNMENT, ABSTRACT, THEOREMS
# ============================================================================
_ALIGNMENTS = {'center': 'center', 'flushleft': 'left', 'flushright': 'right'}


def convert_alignment(text, ctx):
    def render(span, text):
        body = convert_block(text[span.begin_end:span.body_end], ctx)
        return '<div class="%s" style="text-align:%s;">%s</div>' % (
            span.name, _ALIGNMENTS[span.name], body)

    return _replace_environments(text, tuple(_ALIGNMENTS), render, ctx)


def convert_abstract(text, ctx):
    def render(span, text):
        body = convert_block(text[span.begin_end:span.body_end], ctx, paragraphs=False)
        return ('<div class="abstract" style="margin:12px 24px;">'
                '<strong>Abstract.</strong>&nbsp;%s</div>' % body.strip())

    return _replace_environments(text, ('abstract',), render, ctx)


_NEWTHEOREM_RE = re.compile(
    r'\\newtheorem\*?\s*\{([^{}]+)\}\s*(?:\[[^\]]*\])?\s*\{([^{}]*)\}')


def extract_theorem_environments(source):
    """Environments declared with \\newtheorem, as name -> (css, label)."""
    found = {}
    for m in _NEWTHEOREM_RE.finditer(source):
        if is_escaped(source, m.start()):
            continue
        label = m.group(2).strip() or m.group(1).strip().capitalize()
        found[m.group(1).strip()] = ('env-theorem', label)
    return found


def convert_theorems(text, ctx):
    def render(span, text):
        css, label = ctx.theorems[span.name]
        cursor = span.begin_end
        title = None
        opt = _leading_option(text, span)
        if opt is not None:
            title, cursor = opt[0].strip(), opt[1]
        if span.name == 'proof' and title:
            head = latex_prose_to_html(title)
        elif title:
            head = '%s (%s)' % (escape_html(label), latex_prose_to_html(title))
        else:
            head = escape_html(label)
        body = convert_block(text[cursor:span.body_end], ctx)
        if span.name == 'proof':
            body += '<span class="qed" style="float:right;">&#8718;</span>'
        return ('<div class="%s env-%s" style="margin:12px 0;">'
                '<div class="env-label"><strong>%s.</strong></div>%s</div>'
                % (css, span.name.rstrip('*'), head, body))

    return _replace_environments(text, tuple(ctx.theorems), render, ctx)


# ============================================================================
# FIGURES AND IMAGES
# ============================================================================
_INCLUDEGRAPHICS_RE = re.compile(r'\\includegraphics' + _NO_LETTER + r'\*?')


def width_to_percent(width, units):
    """'0.5\\linewidth' or '40%' as a percentage of the line, else None."""
    width = width.replace(' ', '')
    m = re.fullmatch(r'([\d.]*)\\([A-Za-z]+)', width)
    if m and m.group(2) in units:
        try:
            factor = float(m.group(1) or 1)
        except ValueError:
            return None
        return _clamp(int(round(factor * units[m.group(2)] * 100)), 1, 100)
    m = re.fullmatch(r'([\d.]+)\\?%', width)
    if m:
        try:
            return _clamp(int(round(float(m.group(1)))), 1, 100)
        except ValueError:
            return None
    return None


def image_style(options, config):
    opts = parse_options(options or '')
    width = opts.get('width', '').replace(' ', '')
    if width:
        pct = width_to_percent(width, config.width_units)
        if pct is not None:
            return 'max-width:%d%%;height:auto;' % pct
        m = re.fullmatch(r'([\d.]+)(cm|mm|pt|bp|px|in|em|ex)', width)
        if m:
            return 'width:%s%s;height:auto;max-width:100%%;' % (m.group(1), m.group(2))
    scale = opts.get('scale', '').strip()
    if scale:
        try:
            return 'max-width:%d%%;height:auto;' % _clamp(int(round(float(scale) * 100)), 1, 500)
        except ValueError:
            pass
    return 'max-width:100%;height:auto;'


def resolve_image(filename, ctx):
    """Locate an image relative to the base directory, or return None."""
    if not ctx.base_dir:
        return None
    config = ctx.config
    for sub in config.image_dirs:
        base = os.path.join(ctx.base_dir, sub) if sub else ctx.base_dir
        candidate = os.path.join(base, filename)
        if os.path.isfile(candidate):
            return os.path.abspath(candidate)
        for ext in config.image_extensions:
            if os.path.isfile(candidate + ext):
                return os.path.abspath(candidate + ext)
    return None


def _missing_image(filename, kind='Image'):
    return ('<span class="missing-image" style="display:inline-block;padding:6px;'
            'border:1px dashed var(--border);"><em>[%s: %s]</em></span>'
            % (kind, escape_html(filename)))


def image_html(filename, options, ctx):
    filename = filename.strip()
    style = image_style(options, ctx.config)
    alt = escape_html(filename, quote=True)
    if not ctx.base_dir:
        return '<img src="%s" alt="%s" style="%s">' % (alt, alt, style)

    path = resolve_image(filename, ctx)
    if path is None:
        print(f"  WARNING: Image not found: {filename}", file=sys.stderr)
        return _missing_image(filename)
    ext = os.path.splitext(path)[1].lower()
    if ext == '.pdf':
        # PDF can't be shown by <img>
        return _missing_image(filename, 'PDF image')

    if ctx.config.embed_images:
        try:
            with open(path, 'rb') as f:
                data = base64.b64encode(f.read()).decode('ascii')
        except (IOError, OSError) as e:
            print(f"  WARNING: Failed to read image {path}: {e}", file=sys.stderr)
            return _missing_image(filename)
        src = 'data:%s;base64,%s' % (MIME_TYPES.get(ext, 'image/png'), data)
    else:
        src = Path(path).as_uri()
    return '<img src="%s" alt="%s" style="%s">' % (src, alt, style)


def _read_includegraphics(text, m):
    cursor = m.end()
    options = read_bracket_arg(text, cursor)
    if options is not None:
        cursor = options[1]
    arg = read_brace_arg(text, cursor)
    if arg is None:
        return None
    return (options[0] if options else ''), arg[0], arg[1]


def convert_includegraphics(text, ctx):
    def handler(text, m):
        found = _read_includegraphics(text, m)
        if found is None:
            return None
        options, filename, end = found
        return image_html(filename, options, ctx), end

    return _replace_commands(text, _INCLUDEGRAPHICS_RE, handler, ctx, INLINE)


def convert_figures(text, ctx):
    def render(span, text):
        cursor = span.begin_end
        placement = _leading_option(text, span)
        if placement is not None:
            cursor = placement[1]
        body = text[cursor:span.body_end]

        caption, _, body = _take_caption(body)
        image = ''
        m = _find_command(body, 'includegraphics')
        if m is not None:
            found = _read_includegraphics(body, m)
            if found is not None:
                options, filename, end = found
                image = image_html(filename, options, ctx)
                body = body[:m.start()] + '\n' * body.count('\n', m.start(), end) + body[end:]

        rest = convert_block(body, ctx, paragraphs=False).strip()
        parts = ['<figure class="figure" style="margin:14px 0;text-align:center;">']
        if image:
            parts.append(image)
        if rest:
            parts.append('<div>%s</div>' % rest)
        if caption is not None:
            parts.append('<figcaption style="%s">%s</figcaption>'
                         % (CAP_STYLE, latex_prose_to_html(caption.strip())))
        parts.append('</figure>')
        return ''.join(parts)

    return _replace_environments(text, ('figure', 'figure*'), render, ctx)


def convert_multicols(text, ctx):
    def render(span, text):
        arg = read_brace_arg(text, span.begin_end)
        if arg is None or arg[1] > span.body_end:
            return None
        try:
            count = _clamp(int(arg[0].strip()), 1, 8)
        except ValueError:
            count = 2
        body = convert_block(text[arg[1]:span.body_end], ctx)
        return ('<div class="multicols" style="column-count:%d;column-gap:24px;">%s</div>'
                % (count, body))

    return _replace_environments(text, ('multicols', 'multicols*'), render, ctx)


# ============================================================================
# TABLES
# ============================================================================
ColumnSpec = namedtuple('ColumnSpec', 'align width spacer')

_ALIGN = {'l': 'left', 'c': 'center', 'r': 'right'}
_SPACER_RE = re.compile(r'\\(?:hspace|quad|qquad|hskip|enspace)' + _NO_LETTER)
_ROW_SEP_RE = re.compile(r'\\\\(?:[ \t]*\[[^\]\n]*\])?')
_CELL_SEP_RE = re.compile(r'&')
_RULE = (r'\\(?:hline|toprule|midrule|bottomrule|endhead|endfirsthead|endfoot|endlastfoot)'
         + _NO_LETTER +
         r'|\\(?:cline|cmidrule)(?:\s*\([^)]*\))?\s*\{[^{}]*\}')
_RULE_RE = re.compile(_RULE)
_LEADING_RULE_RE = re.compile(r'\s*(?:' + _RULE + ')')
_TABLE_SETUP_RE = re.compile(
    r'\\renewcommand\s*\{?\\arraystretch\}?\s*\{[^{}]*\}'
    r'|\\setlength\s*\{?\\tabcolsep\}?\s*\{[^{}]*\}'
    r'|\\rowcolor\s*(?:\[[^\]]*\])?\s*\{[^{}]*\}')
_MULTICOLUMN_RE = re.compile(r'\s*\\multicolumn\s*(?=\{)')


def parse_column_spec(spec, width_units=None):
    """Parse a tabular column specification into ColumnSpec entries."""
    width_units = width_units or {}
    columns = []
    i = 0
    n = len(spec)
    while i < n:
        c = spec[i]
        if c in _ALIGN:
            columns.append(ColumnSpec(_ALIGN[c], None, False))
            i += 1
        elif c in 'pmb':
            arg = read_brace_arg(spec, i + 1)
            if arg is None:
                i += 1
                continue
            columns.append(ColumnSpec('left', width_to_percent(arg[0], width_units), False))
            i = arg[1]
        elif c == 'X':
            columns.append(ColumnSpec('left', None, False))
            i += 1
        elif c == '*':
            count = read_brace_arg(spec, i + 1)
            inner = read_brace_arg(spec, count[1]) if count else None
            if inner is None:
                i += 1
                continue
            try:
                repeat = int(count[0].strip())
            except ValueError:
                repeat = 0
            columns.extend(parse_column_spec(inner[0], width_units) * repeat)
            i = inner[1]
        elif c in '@!':
            arg = read_brace_arg(spec, i + 1)
            if arg is None:
                i += 1
                continue
            if _SPACER_RE.search(arg[0]):
                columns.append(ColumnSpec(None, None, True))
            i = arg[1]
        elif c in '<>':
            arg = read_brace_arg(spec, i + 1)
            i = arg[1] if arg else i + 1
        else:
            i += 1
    return columns


def _render_cells(cells, columns, tag, ctx):
    out = []
    col = 0
    for raw in cells:
        while col < len(columns) and columns[col].spacer:
            out.append(SPACER_CELL)
            col += 1
        cell = raw.strip()
        span = 1
        align = None
        mc = _MULTICOLUMN_RE.match(cell)
        if mc:
            count = read_brace_arg(cell, mc.end())
            spec = read_brace_arg(cell, count[1]) if count else None
            content = read_brace_arg(cell, spec[1], allow_math=True) if spec else None
            if content is not None:
                try:
                    span = max(1, int(count[0].strip()))
                except ValueError:
                    span = 1
                parsed = [c for c in parse_column_spec(spec[0]) if not c.spacer]
                align = parsed[0].align if parsed else None
                cell = (content[0] + cell[content[1]:]).strip()
        column = columns[col] if col < len(columns) else ColumnSpec('left', None, False)
        style = 'text-align:%s;' % (align or column.align or 'left')
        if column.width and span == 1:
            style += 'width:%d%%;' % column.width
        style += CELL_STYLE
        colspan = ' colspan="%d"' % span if span > 1 else ''
        html = convert_block(cell, ctx, paragraphs=False).strip()
        out.append('<%s%s style="%s">%s</%s>' % (tag, colspan, style, html, tag))
        col += span
    return ''.join(out)


def render_tabular(spec, body, ctx):
    columns = parse_column_spec(spec, ctx.config.width_units)
    body = _TABLE_SETUP_RE.sub('', body)
    rows = []
    for raw in split_top_level(body, _ROW_SEP_RE):
        rule_before = bool(_LEADING_RULE_RE.match(raw))
        rows.append((_RULE_RE.sub('', raw), rule_before))
    header = len(rows) > 1 and rows[1][1] and bool(rows[0][0].strip())

    html_rows = []
    for idx, (row, _) in enumerate(rows):
        if not row.strip():
            continue
        tag = 'th' if header and idx == 0 else 'td'
        cells = split_top_level(row, _CELL_SEP_RE)
        html_rows.append('<tr>%s</tr>' % _render_cells(cells, columns, tag, ctx))
    if not html_rows:
        return ''
    return ('<table class="tabular" style="border-collapse:collapse;margin:12px auto;">'
            '%s</table>' % ''.join(html_rows))


def convert_tabulars(text, ctx):
    def render(span, text):
        cursor = span.begin_end
        if span.name != 'tabular':
            width = read_brace_arg(text, cursor)
            if width is None:
                return None
            cursor = width[1]
        position = read_bracket_arg(text, cursor)
        if position is not None:
            cursor = position[1]
        spec = read_brace_arg(text, cursor)
        if spec is None or spec[1] > span.body_end:
            return None
        return render_tabular(spec[0], text[spec[1]:span.body_end], ctx)

    return _replace_environments(text, TABULAR_ENVS, render, ctx)


_CONT_HEADER_RE = re.compile(r'\\endfirsthead' + _NO_LETTER + r'.*?\\endhead' + _NO_LETTER, re.DOTALL)
_LONGTABLE_MARKER_RE = re.compile(r'\\(?:endfirsthead|endhead|endfoot|endlastfoot)' + _NO_LETTER)


def normalize_longtables(text, ctx):
    """Rewrite longtable into table + tabular so the regular converters apply."""
    def rewrite(span, text):
        cursor = span.begin_end
        position = _leading_option(text, span)
        if position is not None:
            cursor = position[1]
        spec = read_brace_arg(text, cursor)
        if spec is None or spec[1] > span.body_end:
            return None
        body = text[spec[1]:span.body_end]
        caption, _, body = _take_caption(body)
        if caption is not None:
            body = re.sub(r'^\s*\\\\', '', body, count=1)
        body = _CONT_HEADER_RE.sub(lambda m: '\n' * m.group(0).count('\n'), body)
        body = _LONGTABLE_MARKER_RE.sub('', body)
        head = '\\begin{table}'
        if caption is not None:
            head += '\\caption{%s}' % caption
        replacement = '%s\\begin{tabular}{%s}%s\\end{tabular}\\end{table}' % (head, spec[0], body)
        missing = text.count('\n', span.start, span.end) - replacement.count('\n')
        return replacement + '\n' * max(0, missing)

    return _rewrite_environments(text, ('longtable',), rewrite)


# a tabular, or a block already converted (a centered tabular, for instance)
_TABLE_BODY_RE = re.compile("\\\\begin\\{tab|\x00B")


def convert_table_envs(text, ctx):
    def render(span, text):
        cursor = span.begin_end
        placement = _leading_option(text, span)
        if placement is not None:
            cursor = placement[1]
        body = text[cursor:span.body_end]
        first_block = _TABLE_BODY_RE.search(body)
        table_pos = first_block.start() if first_block else -1
        caption, caption_pos, body = _take_caption(body)
        caption_first = caption is not None and (table_pos < 0 or caption_pos < table_pos)
        rest = convert_block(body, ctx, paragraphs=False).strip()
        cap_html = ''
        if caption is not None:
            cap_html = ('<figcaption style="%s">%s</figcaption>'
                        % (CAP_STYLE, latex_prose_to_html(caption.strip())))
        return '<figure class="table" style="margin:14px 0;">%s%s%s</figure>' % (
            cap_html if caption_first else '', rest, '' if caption_first else cap_html)

    return _replace_environments(text, ('table', 'table*'), render, ctx)


# ============================================================================
# COLORED BOXES
# ============================================================================
def convert_tcolorboxes(text, ctx):
    config = ctx.config

    def color(value, default):
        if not value:
            return default
        return xcolor_to_css(value, config.color_palette, config.fallback_color)

    def render(span, text):
        cursor = span.begin_end
        opts = {}
        opt = _leading_option(text, span)
        if opt is not None:
            opts = parse_options(opt[0])
            cursor = opt[1]
        back = color(opts.get('colback'), config.box_colback)
        frame = color(opts.get('colframe'), config.box_colframe)
        body = convert_block(text[cursor:span.body_end], ctx)
        head = ''
        if opts.get('title'):
            head = ('<div class="tcb-title" style="background:%s;color:#fff;'
                    'padding:6px 10px;font-weight:600;">%s</div>'
                    % (frame, latex_prose_to_html(opts['title'])))
        return ('<div class="tcolorbox" style="border:1px solid %s;background:%s;'
                'border-radius:6px;margin:12px 0;overflow:hidden;">%s'
                '<div class="tcb-body" style="padding:8px 12px;">%s</div></div>'
                % (frame, back, head, body))

    return _replace_environments(text, ('tcolorbox',), render, ctx)


# ============================================================================
# LISTS
# ============================================================================
_ITEM_RE = re.compile(r'\\item' + _NO_LETTER)
_ENUM_LABELS = (
    ('\\alph', 'lower-alpha'), ('\\Alph', 'upper-alpha'),
    ('\\roman', 'lower-roman'), ('\\Roman', 'upper-roman'),
    ('\\arabic', 'decimal'),
)
_BOLD_LABEL_RE = re.compile(r'\s*\\textbf(?![A-Za-z@])')


def _plain_label(label):
    """Description labels are bold already; unwrap a single \\textbf{..}."""
    m = _BOLD_LABEL_RE.match(label)
    if m:
        arg = read_brace_arg(label, m.end())
        if arg is not None and not label[arg[1]:].strip():
            return arg[0]
    return label


def _split_items(body):
    """(label or None, content) for every top-level \\item."""
    items = []
    for piece in split_top_level(body, _ITEM_RE)[1:]:
        label = None
        opt = read_bracket_arg(piece, 0)
        if opt is not None:
            label, piece = opt[0], piece[opt[1]:]
        items.append((label, piece))
    return items


def convert_lists(text, ctx):
    def render(span, text):
        cursor = span.begin_end
        list_style = ''
        opt = _leading_option(text, span)
        if opt is not None:
            cursor = opt[1]
            for macro, css in _ENUM_LABELS:
                if macro in opt[0]:
                    list_style = 'list-style-type:%s;' % css
                    break
        items = _split_items(text[cursor:span.body_end])

        if span.name == 'description':
            entries = []
            for label, piece in items:
                content = convert_block(piece, ctx, paragraphs=False).strip()
                if label is None and not content:
                    continue
                term = ''
                if label is not None:
                    term = '<dt><strong>%s</strong></dt>' % latex_prose_to_html(
                        _plain_label(label).strip())
                entries.append('%s<dd>%s</dd>' % (term, content))
            return '<dl class="description" style="%s">%s</dl>' % (LIST_STYLE, ''.join(entries))

        entries = []
        for label, piece in items:
            if not piece.strip() and not label:
                continue
            content = convert_block(piece, ctx, paragraphs=False).strip()
            if label:
                content = '<strong>%s</strong> %s' % (latex_prose_to_html(label), content)
                entries.append('<li style="list-style:none;">%s</li>' % content)
            elif content:
                entries.append('<li>%s</li>' % content)
        tag = 'ol' if span.name == 'enumerate' else 'ul'
        return '<%s class="%s" style="%s%s">%s</%s>' % (
            tag, span.name, LIST_STYLE, list_style, ''.join(entries), tag)

    return _replace_environments(text, LIST_ENVS, render, ctx)


# ============================================================================
# BIBLIOGRAPHY
# ============================================================================
_BIBITEM_RE = re.compile(r'\\bibitem' + _NO_LETTER)


def convert_bibliography(text, ctx):
    def render(span, text):
        cursor = span.begin_end
        widest = read_brace_arg(text, cursor)
        if widest is not None and widest[1] <= span.body_end:
            cursor = widest[1]
        body = text[cursor:span.body_end]
        entries = []
        for piece in split_top_level(body, _BIBITEM_RE)[1:]:
            pos = 0
            label = read_bracket_arg(piece, pos)
            if label is not None:
                pos = label[1]
            key = read_brace_arg(piece, pos)
            if key is None:
                continue
            entry = ' '.join(piece[key[1]:].split())
            entries.append('<li id="bib-%s">%s</li>' % (
                escape_html(key[0].strip(), quote=True), escape_html(entry)))
        return ('<div class="thebibliography"><h4>References</h4>'
                '<ol class="bibliography" style="%s">%s</ol></div>'
                % (LIST_STYLE, ''.join(entries)))

    return _replace_environments(text, ('thebibliography',), render, ctx)


# ============================================================================
# AUXILIARY DIRECTIVES
# ============================================================================
# command -> number of required arguments
AUX_COMMANDS = {
    'addcontentsline': 3, 'nocite': 1, 'bibliographystyle': 1,
    'tableofcontents': 0, 'listoffigures': 0, 'listoftables': 0,
    'documentclass': 1, 'usepackage': 1, 'RequirePackage': 1,
    'title': 1, 'author': 1, 'date': 1, 'newtheorem': 2, 'theoremstyle': 1,
    'usetikzlibrary': 1, 'tikzset': 1, 'pgfplotsset': 1, 'geometry': 1,
    'pagestyle': 1, 'thispagestyle': 1, 'graphicspath': 1, 'setcounter': 2,
    'addtocounter': 2, 'hypersetup': 1, 'definecolor': 3, 'colorlet': 2,
    'numberwithin': 2, 'setlength': 2, 'addbibresource': 1, 'lstset': 1,
    'sisetup': 1, 'captionsetup': 1, 'makeatletter': 0, 'makeatother': 0,
}
_AUX_RE = re.compile(
    r'\\(' + '|'.join(sorted(AUX_COMMANDS, key=len, reverse=True)) + r')' + _NO_LETTER + r'\*?')
_BIB_RE = re.compile(r'\\(bibliography|printbibliography|appendix)' + _NO_LETTER)

BIB_PLACEHOLDER = ('<div class="bib-placeholder" style="padding:8px 12px;'
                   'border:1px dashed var(--border);margin:12px 0;">'
                   '<em>References: compile in PDF mode</em></div>')


def strip_aux_directives(text, ctx):
    def aux_handler(text, m):
        cursor = m.end()
        for _ in range(AUX_COMMANDS[m.group(1)]):
            opt = read_bracket_arg(text, cursor)
            if opt is not None:
                cursor = opt[1]
            arg = read_brace_arg(text, cursor, allow_math=True)
            if arg is None:
                return None
            cursor = arg[1]
        if m.group(1) in ('newtheorem', 'usepackage', 'documentclass'):
            trailing = read_bracket_arg(text, cursor)
            if trailing is not None:
                cursor = trailing[1]
        return '', cursor

    def bib_handler(text, m):
        if m.group(1) == 'appendix':
            return '<hr class="appendix">', m.end()
        cursor = m.end()
        opt = read_bracket_arg(text, cursor)
        if opt is not None:
            cursor = opt[1]
        if m.group(1) == 'bibliography':
            arg = read_brace_arg(text, cursor)
            if arg is None:
                return None
            cursor = arg[1]
        return BIB_PLACEHOLDER, cursor

    text = _replace_commands(text, _AUX_RE, aux_handler, ctx)
    return _replace_commands(text, _BIB_RE, bib_handler, ctx)


# ============================================================================
# UNKNOWN ENVIRONMENTS
# ============================================================================
_ENV_MARKER_RE = re.compile(r'\\(begin|end)\s*\{([^{}]+)\}')


def strip_unknown_environments(text, ctx):
    """Drop \\begin/\\end markers of unhandled environments, keeping content."""
    known = HANDLED_ENVS | MATH_ENVS | set(ctx.theorems)

    def handler(text, m):
        name = m.group(2).strip()
        if name in known:
            return None
        end = m.end()
        if m.group(1) == 'begin':
            opt = read_bracket_arg(text, end)
            if opt is not None:
                end = opt[1]
            for _ in range(ctx.config.env_required_args.get(name, 0)):
                arg = read_brace_arg(text, end)
                if arg is None:
                    break
                end = arg[1]
        return '', end

    return _replace_commands(text, _ENV_MARKER_RE, handler, ctx)


PIPELINE = (
    convert_sections,
    convert_llmarks,
    convert_diagrams,
    convert_maketitle,
    convert_siunitx,
    convert_alignment,
    convert_abstract,
    convert_theorems,
    convert_figures,
    convert_includegraphics,
    convert_multicols,
    normalize_longtables,
    convert_tcolorboxes,
    convert_table_envs,
    convert_lists,
    convert_tabulars,
    convert_bibliography,
    strip_aux_directives,
    strip_unknown_environments,
)
