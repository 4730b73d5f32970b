#!/usr/bin/env python3
"""
prose.py - Prose/Math Splitter

Turns LaTeX prose into HTML while leaving every math span byte-identical
for MathJax:

  1. argument-taking inline commands (\\textbf{..}, \\href{..}{..},
     {\\bf ..}, ...) are converted left to right outside math, their
     arguments converted recursively;
  2. the remaining text is split on math spans and the gaps go through a
     single tokenizing pass (escapes, accents, dashes, quotes, symbols).

wrap_paragraphs() adds <p> structure on top of that.
"""

__version__ = "1.0"
__date__ = "17-10-2026"

import re
import unicodedata
from datetime import date

from .colors import xcolor_to_css
from .context import BLOCK_TOKEN_RE
from .scanner import (
    MathMask, find_balanced_brace_allow_math, find_math_spans, is_escaped,
    read_brace_arg, read_bracket_arg,
)


def escape_html(s, quote=False):
    s = s.replace('&', '&amp;').replace('<', '&lt;').replace('>', '&gt;')
    if quote:
        s = s.replace('"', '&quot;').replace("'", '&#39;')
    return s


def today_string():
    d = date.today()
    return '%s %d, %d' % (d.strftime('%B'), d.day, d.year)


# ============================================================================
# INLINE PROSE TOKENS
# ============================================================================
_ACCENTS = {
    "'": "\u0301", "`": "\u0300", "^": "\u0302", "\"": "\u0308",
    "~": "\u0303", "=": "\u0304", ".": "\u0307",
    "c": "\u0327", "v": "\u030c", "u": "\u0306", "H": "\u030b",
    "k": "\u0328", "r": "\u030a",
}

_SPACER = '<div class="vspace" style="height:%dpx;"></div>'

TEXT_SYMBOLS = {
    'textellipsis': '&hellip;', 'ldots': '&hellip;', 'dots': '&hellip;',
    'textbackslash': '&#92;', 'textasciitilde': '&#126;',
    'textasciicircum': '&#94;', 'textbar': '|', 'textless': '&lt;',
    'textgreater': '&gt;', 'textunderscore': '_',
    'textendash': '&ndash;', 'textemdash': '&mdash;',
    'textquoteleft': '&lsquo;', 'textquoteright': '&rsquo;',
    'textquotedblleft': '&ldquo;', 'textquotedblright': '&rdquo;',
    'textbullet': '&bull;', 'textdegree': '&deg;',
    'textregistered': '&reg;', 'texttrademark': '&trade;',
    'textcopyright': '&copy;', 'copyright': '&copy;',
    'S': '&sect;', 'P': '&para;', 'dag': '&dagger;', 'ddag': '&Dagger;',
    'pounds': '&pound;', 'euro': '&euro;',
    'ss': 'ß', 'ae': 'æ', 'AE': 'Æ', 'oe': 'œ',
    'OE': 'Œ', 'o': 'ø', 'O': 'Ø', 'aa': 'å',
    'AA': 'Å', 'l': 'ł', 'L': 'Ł', 'i': 'ı',
    'LaTeX': 'LaTeX', 'TeX': 'TeX', 'LaTeXe': 'LaTeX2ε',
    'quad': '&emsp;', 'qquad': '&emsp;&emsp;', 'enspace': '&ensp;',
    'thinspace': '&thinsp;', 'space': ' ', 'hfill': ' ',
    'newline': '<br/>', 'linebreak': '<br/>',
    'smallbreak': _SPACER % 6, 'medbreak': _SPACER % 10,
    'bigbreak': _SPACER % 16, 'smallskip': _SPACER % 6,
    'medskip': _SPACER % 10, 'bigskip': _SPACER % 16,
}

# Declarations and layout commands that have no preview rendering
for _name in ('noindent', 'indent', 'par', 'centering', 'raggedright',
              'raggedleft', 'clearpage', 'cleardoublepage', 'newpage',
              'pagebreak', 'nopagebreak', 'vfill', 'hfil', 'protect',
              'relax', 'normalsize', 'normalfont', 'bfseries', 'mdseries',
              'itshape', 'upshape', 'slshape', 'scshape', 'rmfamily',
              'sffamily', 'ttfamily', 'em', 'bf', 'it', 'tt', 'sc', 'sl',
              'tiny', 'scriptsize', 'footnotesize', 'small', 'large',
              'Large', 'LARGE', 'huge', 'Huge', 'maketitle', 'frenchspacing',
              'sloppy', 'fussy', 'null', 'strut', 'leavevmode'):
    TEXT_SYMBOLS[_name] = ''

CONTROL_SYMBOLS = {
    '&': '&amp;', '%': '%', '#': '#', '_': '_', '{': '{', '}': '}',
    '$': '\\$', ' ': ' ', '\n': '\n', '\t': ' ', ',': '&thinsp;',
    ';': ' ', ':': ' ', '!': '', '-': '', '/': '', '@': '',
}

PUNCTUATION = {
    '---': '&mdash;', '--': '&ndash;', '``': '&ldquo;', "''": '&rdquo;',
    '~': '&nbsp;', '&': '&amp;', '<': '&lt;', '>': '&gt;', '$': '\\$',
}

_PROSE_TOKEN_RE = re.compile(
    r"\\\\(?:[ \t]*\[[^\]\n]*\])?[ \t]*"
    r"|\\([`'^\"~=.])\s*(?:\{\s*([A-Za-z])\s*\}|([A-Za-z]))"
    r"|\\([cvuHkr])(?:\{\s*([A-Za-z])\s*\}|[ \t]+([A-Za-z]))"
    r"|\\([A-Za-z@]+)\*?(?:\{\})?"
    r"|\\(.)"
    r"|---|--|``|''|~|[&<>$]",
    re.DOTALL)


def _accent(mark, letter):
    return unicodedata.normalize('NFC', letter + _ACCENTS[mark])


def _prose_token(m):
    tok = m.group(0)
    if tok.startswith('\\\\'):
        return '<br/>'
    if m.group(1):
        return _accent(m.group(1), m.group(2) or m.group(3))
    if m.group(4):
        return _accent(m.group(4), m.group(5) or m.group(6))
    if m.group(7) is not None:
        name = m.group(7)
        if name == 'today':
            return today_string()
        if name in TEXT_SYMBOLS:
            return TEXT_SYMBOLS[name]
        return tok
    if m.group(8) is not None:
        return CONTROL_SYMBOLS.get(m.group(8), escape_html(tok))
    return PUNCTUATION[tok]


def _keep_lines(source, html):
    """Pad html with the newlines it dropped from source."""
    missing = source.count('\n') - html.count('\n')
    return html + '\n' * missing if missing > 0 else html


def format_inline_prose(text):
    """Convert math-free LaTeX prose to HTML in a single pass.

    Unknown control words are left exactly as written.
    """
    if not text:
        return ''
    return _PROSE_TOKEN_RE.sub(lambda m: _keep_lines(m.group(0), _prose_token(m)), text)


def _convert_flat(text):
    """Prose conversion with math spans copied verbatim."""
    if not text:
        return ''
    out = []
    pos = 0
    for start, end in find_math_spans(text):
        out.append(format_inline_prose(text[pos:start]))
        out.append(text[start:end])
        pos = end
    out.append(format_inline_prose(text[pos:]))
    return ''.join(out)


# ============================================================================
# ARGUMENT-TAKING INLINE COMMANDS
# ============================================================================
def _code_safe(html):
    # MathJax skips <code>, so an escaped dollar would stay backslashed
    return html.replace('\\$', '&#36;')


def _wrap(open_tag, close_tag):
    def render(args, optional):
        inner = latex_prose_to_html(args[0])
        if open_tag.startswith('<code'):
            inner = _code_safe(inner)
        return open_tag + inner + close_tag
    return render


def _literal(html):
    return lambda args, optional: html


def _clean_url(url):
    url = re.sub(r'\\([%#&_~$])', r'\1', url.strip())
    return escape_html(url, quote=True)


def _render_href(args, optional):
    return '<a href="%s" target="_blank" rel="noopener">%s</a>' % (
        _clean_url(args[0]), latex_prose_to_html(args[1]))


def _render_url(args, optional):
    url = _clean_url(args[0])
    return '<a href="%s" target="_blank" rel="noopener"><code>%s</code></a>' % (url, url)


def _render_footnote(args, optional):
    return '<span class="footnote"> (%s)</span>' % latex_prose_to_html(args[0])


def _render_textcolor(args, optional):
    return '<span style="color:%s;">%s</span>' % (
        xcolor_to_css(args[0]), latex_prose_to_html(args[1]))


def _render_colorbox(args, optional):
    return '<span style="background:%s;padding:0 3px;">%s</span>' % (
        xcolor_to_css(args[0]), latex_prose_to_html(args[1]))


def _render_cite(args, optional):
    keys = ', '.join(k.strip() for k in args[0].split(',') if k.strip())
    note = ', ' + latex_prose_to_html(optional) if optional else ''
    return '<span class="cite">[%s%s]</span>' % (escape_html(keys), note)


def _render_ref(args, optional):
    return '<span class="ref" title="%s">(?)</span>' % escape_html(args[0].strip(), quote=True)


def _render_hspace(args, optional):
    return '<span class="hspace" style="display:inline-block;width:1em;"></span>'


# name -> (required args, takes [optional], renderer)
INLINE_COMMANDS = {
    'textbf': (1, False, _wrap('<strong>', '</strong>')),
    'emph': (1, False, _wrap('<em>', '</em>')),
    'textit': (1, False, _wrap('<em>', '</em>')),
    'textsl': (1, False, _wrap('<em>', '</em>')),
    'itshape': (1, False, _wrap('<em>', '</em>')),
    'underline': (1, False, _wrap('<u>', '</u>')),
    'uline': (1, False, _wrap('<u>', '</u>')),
    'texttt': (1, False, _wrap('<code>', '</code>')),
    'textsc': (1, False, _wrap('<span style="font-variant:small-caps;">', '</span>')),
    'textsf': (1, False, _wrap('<span style="font-family:sans-serif;">', '</span>')),
    'textrm': (1, False, _wrap('<span>', '</span>')),
    'textnormal': (1, False, _wrap('<span>', '</span>')),
    'textup': (1, False, _wrap('<span>', '</span>')),
    'small': (1, False, _wrap('<small>', '</small>')),
    'footnotesize': (1, False, _wrap('<small>', '</small>')),
    'textsuperscript': (1, False, _wrap('<sup>', '</sup>')),
    'textsubscript': (1, False, _wrap('<sub>', '</sub>')),
    'mbox': (1, False, _wrap('<span style="white-space:nowrap;">', '</span>')),
    'fbox': (1, False, _wrap(
        '<span style="border:1px solid currentColor;padding:0 3px;">', '</span>')),
    'footnote': (1, True, _render_footnote),
    'href': (2, False, _render_href),
    'url': (1, False, _render_url),
    'textcolor': (2, False, _render_textcolor),
    'colorbox': (2, False, _render_colorbox),
    'label': (1, False, _literal('')),
    'index': (1, False, _literal('')),
    'vspace': (1, False, _literal('')),
    'hspace': (1, False, _render_hspace),
    'texorpdfstring': (2, False, lambda args, optional: latex_prose_to_html(args[1])),
}

for _name in ('cite', 'citep', 'citet', 'parencite', 'textcite', 'autocite',
              'footcite'):
    INLINE_COMMANDS[_name] = (1, True, _render_cite)
for _name in ('ref', 'eqref', 'cref', 'Cref', 'autoref', 'pageref', 'nameref'):
    INLINE_COMMANDS[_name] = (1, False, _render_ref)

# {\bf ..} style group declarations
DECLARATIONS = {
    'bf': ('<strong>', '</strong>'), 'bfseries': ('<strong>', '</strong>'),
    'it': ('<em>', '</em>'), 'itshape': ('<em>', '</em>'),
    'em': ('<em>', '</em>'), 'sl': ('<em>', '</em>'),
    'tt': ('<code>', '</code>'), 'ttfamily': ('<code>', '</code>'),
    'sc': ('<span style="font-variant:small-caps;">', '</span>'),
    'scshape': ('<span style="font-variant:small-caps;">', '</span>'),
    'small': ('<small>', '</small>'), 'footnotesize': ('<small>', '</small>'),
}

_NO_LETTER = r'(?![A-Za-z@])'
_INLINE_CMD_RE = re.compile(
    r'\\(' + '|'.join(sorted(INLINE_COMMANDS, key=len, reverse=True)) + r')'
    + _NO_LETTER + r'\*?'
    r'|\{\\(' + '|'.join(sorted(DECLARATIONS, key=len, reverse=True)) + r')'
    + _NO_LETTER + r'\s*')


def _convert_command(text, m):
    """Return (html, end) for the command matched by m, or None if malformed."""
    if m.group(2):
        close = find_balanced_brace_allow_math(text, m.start())
        if close < 0:
            return None
        open_tag, close_tag = DECLARATIONS[m.group(2)]
        inner = latex_prose_to_html(text[m.end():close])
        if open_tag.startswith('<code'):
            inner = _code_safe(inner)
        return open_tag + inner + close_tag, close + 1

    nargs, takes_optional, render = INLINE_COMMANDS[m.group(1)]
    pos = m.end()
    optional = None
    if takes_optional:
        bracket = read_bracket_arg(text, pos)
        if bracket is not None:
            optional, pos = bracket
    args = []
    for _ in range(nargs):
        arg = read_brace_arg(text, pos, allow_math=True)
        if arg is None:
            return None
        args.append(arg[0])
        pos = arg[1]
    return render(args, optional), pos


def latex_prose_to_html(text):
    """Convert LaTeX prose (with embedded math) to inline HTML."""
    if not text:
        return ''
    mask = MathMask(text)
    out = []
    pos = 0
    for m in _INLINE_CMD_RE.finditer(text):
        start = m.start()
        if start < pos or mask.contains(start) or is_escaped(text, start):
            continue
        converted = _convert_command(text, m)
        if converted is None:
            continue
        out.append(_convert_flat(text[pos:start]))
        # arguments that are dropped take their line breaks with them
        out.append(_keep_lines(text[start:converted[1]], converted[0]))
        pos = converted[1]
    out.append(_convert_flat(text[pos:]))
    return ''.join(out)


# ============================================================================
# PARAGRAPHS
# ============================================================================
_BLANK_SPLIT_RE = re.compile(r'\n[ \t]*\n\s*')


def _wrap_chunk(chunk):
    parts = BLOCK_TOKEN_RE.split(chunk)
    out = []
    for idx, part in enumerate(parts):
        if idx % 2 == 1 or not part.strip():
            out.append(part)
            continue
        core = part.strip()
        lead = part[:len(part) - len(part.lstrip())]
        trail = part[len(part.rstrip()):]
        out.append(lead + '<p>' + latex_prose_to_html(core) + '</p>' + trail)
    return ''.join(out)


def wrap_paragraphs(text):
    """Wrap prose paragraphs in <p>, leaving block fragments unwrapped.

    Blank lines inside math do not end a paragraph. Whitespace around each
    paragraph stays outside the <p> so line counts are unchanged.
    """
    mask = MathMask(text)
    out = []
    pos = 0
    for m in _BLANK_SPLIT_RE.finditer(text):
        if mask.contains(m.start()):
            continue
        out.append(_wrap_chunk(text[pos:m.start()]))
        out.append(m.group(0))
        pos = m.end()
    out.append(_wrap_chunk(text[pos:]))
    return ''.join(out)
