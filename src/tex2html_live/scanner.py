#!/usr/bin/env python3
"""
scanner.py - Brace and Region Scanner

Low-level scanning helpers shared by every stage of the preview pipeline:

  - balanced brace / bracket matching (with and without math tolerance)
  - region-aware comment stripping
  - math span detection over LaTeX prose ($..$, $$..$$, \\[..\\], \\(..\\)
    and the math environment allow-list)
  - depth-matched environment lookup and top-level splitting
  - RegionScanner, the state machine that classifies every position of the
    mixed HTML/TeX output (plain, math, HTML tag/comment, verbatim element)

Nothing in here raises for malformed markup. Finders return UNBALANCED or
None and the caller leaves the offending text alone.
"""

__version__ = "1.0"
__date__ = "17-10-2026"

import re
from bisect import bisect_right
from collections import namedtuple


UNBALANCED = -1

MATH_ENVS = frozenset([
    'equation', 'equation*', 'align', 'align*', 'aligned', 'aligned*',
    'gather', 'gather*', 'multline', 'multline*', 'flalign', 'flalign*',
    'alignat', 'alignat*', 'bmatrix', 'pmatrix', 'vmatrix', 'Bmatrix',
    'Vmatrix', 'smallmatrix', 'matrix', 'cases', 'split',
])

# Environments whose body is copied literally by the code-block extractor.
VERBATIM_ENVS = ('verbatim', 'verbatim*', 'Verbatim', 'lstlisting', 'minted')

# HTML elements whose content is never scanned for math or anchors.
VERBATIM_TAGS = frozenset(['script', 'style', 'pre', 'code', 'textarea'])

# Region names reported by RegionScanner.region
PLAIN = 'plain'
INLINE_MATH = 'inline-math'
DISPLAY_DOUBLE = 'display-double'
DISPLAY_BRACKET = 'display-bracket'
DISPLAY_PAREN = 'display-paren'
MATH_ENV = 'math-env'
HTML_TAG = 'html-tag'
HTML_COMMENT = 'html-comment'
VERBATIM = 'verbatim'

EnvSpan = namedtuple('EnvSpan', 'name start begin_end body_end end')
EnvSpan.__doc__ = """A matched environment.

start/end delimit the whole construct, begin_end is the index just past
\\begin{name} and body_end the index of the closing \\end{name}.
"""

_ARG_GAP_RE = re.compile(r'[ \t]*\n?[ \t]*')
_BEGIN_NAME_RE = re.compile(r'\\begin\s*\{([^{}]*)\}')
_ENV_MARKER_RE = re.compile(r'\\(begin|end)\s*\{([^{}]*)\}')
_STRUCTURE_RE = re.compile(r'\\(begin|end)\s*\{[^{}]*\}|[{}]')
_BLANK_LINE_RE = re.compile(r'\n[ \t]*\n')
_VERB_RE = re.compile(r'\\verb\*?([^A-Za-z\s*])')
_VERBATIM_BEGIN_RE = re.compile(
    r'\\begin\s*\{(' + '|'.join(re.escape(n) for n in VERBATIM_ENVS + ('comment',)) + r')\}')
_TAG_NAME_RE = re.compile(r'/?[A-Za-z][A-Za-z0-9-]*')


# ============================================================================
# ESCAPES AND BALANCED DELIMITERS
# ============================================================================
def is_escaped(s, i):
    """True when s[i] is preceded by an odd number of backslashes."""
    count = 0
    j = i - 1
    while j >= 0 and s[j] == '\\':
        count += 1
        j -= 1
    return count % 2 == 1


def find_balanced_brace(s, open_idx):
    """Return the index of the '}' matching the '{' at open_idx.

    A backslash protects the following character, so \\{ and \\} never
    change the depth. Returns UNBALANCED when s[open_idx] is not '{' or the
    group is never closed.
    """
    n = len(s)
    if open_idx < 0 or open_idx >= n or s[open_idx] != '{':
        return UNBALANCED
    depth = 0
    i = open_idx
    while i < n:
        c = s[i]
        if c == '\\':
            i += 2
            continue
        if c == '{':
            depth += 1
        elif c == '}':
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return UNBALANCED


def find_balanced_brace_allow_math(s, open_idx):
    """Like find_balanced_brace, but braces inside math spans do not count.

    Needed for captions and titles such as {Plot of $f(x)=\\{x\\}$}.
    """
    n = len(s)
    if open_idx < 0 or open_idx >= n or s[open_idx] != '{':
        return UNBALANCED
    depth = 0
    in_dollar = in_double = in_bracket = in_paren = False
    i = open_idx
    while i < n:
        c = s[i]
        if c == '\\' and i + 1 < n:
            nxt = s[i + 1]
            if not (in_dollar or in_double):
                if nxt == '[' and not in_paren:
                    in_bracket = True
                elif nxt == ']' and in_bracket:
                    in_bracket = False
                elif nxt == '(' and not in_bracket:
                    in_paren = True
                elif nxt == ')' and in_paren:
                    in_paren = False
            i += 2
            continue
        if c == '$' and not (in_bracket or in_paren):
            if s.startswith('$$', i) and not in_dollar:
                in_double = not in_double
                i += 2
                continue
            if not in_double:
                in_dollar = not in_dollar
            i += 1
            continue
        if not (in_dollar or in_double or in_bracket or in_paren):
            if c == '{':
                depth += 1
            elif c == '}':
                depth -= 1
                if depth == 0:
                    return i
        i += 1
    return UNBALANCED


def find_matching_bracket(s, open_idx):
    """Return the index of the ']' closing an optional argument at open_idx.

    Brackets nested inside braces are ignored, so [title={A [draft]}] works.
    """
    n = len(s)
    if open_idx < 0 or open_idx >= n or s[open_idx] != '[':
        return UNBALANCED
    depth = 0
    i = open_idx + 1
    while i < n:
        c = s[i]
        if c == '\\':
            i += 2
            continue
        if c == '{':
            depth += 1
        elif c == '}':
            depth = max(0, depth - 1)
        elif c == ']' and depth == 0:
            return i
        i += 1
    return UNBALANCED


def read_brace_arg(s, pos, allow_math=False):
    """Read a {..} argument starting at pos (after optional whitespace).

    Returns (content, end) where end is the index after the closing brace,
    or None when no balanced argument starts there.
    """
    start = _ARG_GAP_RE.match(s, pos).end()
    if start >= len(s) or s[start] != '{':
        return None
    finder = find_balanced_brace_allow_math if allow_math else find_balanced_brace
    close = finder(s, start)
    if close == UNBALANCED:
        return None
    return s[start + 1:close], close + 1


def read_bracket_arg(s, pos):
    """Read an optional [..] argument starting at pos, or return None."""
    start = _ARG_GAP_RE.match(s, pos).end()
    if start >= len(s) or s[start] != '[':
        return None
    close = find_matching_bracket(s, start)
    if close == UNBALANCED:
        return None
    return s[start + 1:close], close + 1


# ============================================================================
# COMMENT STRIPPING
# ============================================================================
def first_comment_index(line):
    """Index of the first unescaped % in line, or -1.

    Percent signs inside \\verb|..| do not start a comment.
    """
    i = 0
    n = len(line)
    while i < n:
        c = line[i]
        if c == '\\':
            m = _VERB_RE.match(line, i)
            if m:
                close = line.find(m.group(1), m.end())
                if close < 0:
                    return -1
                i = close + 1
                continue
            i += 2
            continue
        if c == '%':
            return i
        i += 1
    return -1


def strip_comments(text):
    """Remove LaTeX comments while keeping the line count intact.

    Lines inside verbatim-like environments are left untouched.
    """
    out = []
    verbatim_end = None
    for line in text.split('\n'):
        if verbatim_end is not None:
            out.append(line)
            if verbatim_end in line:
                verbatim_end = None
            continue
        cut = first_comment_index(line)
        m = _VERBATIM_BEGIN_RE.search(line)
        if m and (cut < 0 or m.start() < cut):
            end_marker = '\\end{%s}' % m.group(1)
            if end_marker not in line[m.end():]:
                verbatim_end = end_marker
            out.append(line)
            continue
        if cut >= 0:
            line = line[:cut]
        out.append(line)
    return '\n'.join(out)


# ============================================================================
# MATH SPANS
# ============================================================================
def _find_unescaped(s, token, start):
    i = s.find(token, start)
    while i >= 0 and is_escaped(s, i):
        i = s.find(token, i + 1)
    return i


def _environment_end(s, name, start, mask=None):
    """Locate the \\end{name} closing an environment whose body starts at start.

    Returns (end_start, end_stop) or None when the environment is unbalanced.
    """
    pattern = re.compile(r'\\(begin|end)\s*\{' + re.escape(name) + r'\}')
    depth = 1
    for m in pattern.finditer(s, start):
        pos = m.start()
        if is_escaped(s, pos) or (mask is not None and mask.contains(pos)):
            continue
        if m.group(1) == 'begin':
            depth += 1
        else:
            depth -= 1
            if depth == 0:
                return m.start(), m.end()
    return None


def find_math_spans(s, math_envs=MATH_ENVS):
    """Return the (start, end) spans of every math region in LaTeX text.

    Delimiters are taken in order of appearance. An opening delimiter that is
    never closed is ordinary text. Inline spans ($..$ and \\(..\\)) may not
    cross a blank line.
    """
    spans = []
    i = 0
    n = len(s)
    while i < n:
        c = s[i]
        if c == '\\':
            if i + 1 >= n:
                break
            nxt = s[i + 1]
            if nxt == '[' or nxt == '(':
                close = _find_unescaped(s, '\\]' if nxt == '[' else '\\)', i + 2)
                if close >= 0 and (nxt == '[' or not _BLANK_LINE_RE.search(s, i, close)):
                    spans.append((i, close + 2))
                    i = close + 2
                    continue
            elif nxt == 'b':
                m = _BEGIN_NAME_RE.match(s, i)
                if m and m.group(1) in math_envs:
                    end = _environment_end(s, m.group(1), m.end())
                    if end is not None:
                        spans.append((i, end[1]))
                        i = end[1]
                        continue
            i += 2
            continue
        if c == '$':
            if s.startswith('$$', i):
                close = _find_unescaped(s, '$$', i + 2)
                if close >= 0:
                    spans.append((i, close + 2))
                    i = close + 2
                    continue
                i += 2
                continue
            close = _find_unescaped(s, '$', i + 1)
            if close >= 0 and not _BLANK_LINE_RE.search(s, i, close):
                spans.append((i, close + 1))
                i = close + 1
                continue
        i += 1
    return spans


class MathMask:
    """Answers 'is this offset inside a math span' for one string."""

    def __init__(self, text='', spans=None):
        self.spans = find_math_spans(text) if spans is None else spans
        self._starts = [start for start, _ in self.spans]

    def contains(self, pos):
        idx = bisect_right(self._starts, pos) - 1
        return idx >= 0 and pos < self.spans[idx][1]


# ============================================================================
# ENVIRONMENTS AND TOP-LEVEL SPLITTING
# ============================================================================
def find_environment(text, names, pos=0, mask=None):
    """Find the next balanced \\begin{name}..\\end{name} outside math.

    names may be a single name or a sequence. Begins without a matching end
    are skipped. Returns an EnvSpan or None.
    """
    if isinstance(names, str):
        names = (names,)
    if not names:
        return None
    if mask is None:
        mask = MathMask(text)
    pattern = re.compile(
        r'\\begin\s*\{(' + '|'.join(re.escape(n) for n in names) + r')\}')
    for m in pattern.finditer(text, pos):
        start = m.start()
        if is_escaped(text, start) or mask.contains(start):
            continue
        end = _environment_end(text, m.group(1), m.end(), mask)
        if end is None:
            continue
        return EnvSpan(m.group(1), start, m.end(), end[0], end[1])
    return None


def split_top_level(text, separator, mask=None):
    """Split text at separator matches outside braces, nested environments and math."""
    if isinstance(separator, str):
        separator = re.compile(separator)
    if mask is None:
        mask = MathMask(text)

    events = []
    for m in _STRUCTURE_RE.finditer(text):
        pos = m.start()
        if is_escaped(text, pos) or mask.contains(pos):
            continue
        if m.group(1):
            delta = 1 if m.group(1) == 'begin' else -1
        else:
            delta = 1 if m.group(0) == '{' else -1
        events.append((pos, delta))

    pieces = []
    last = 0
    depth = 0
    k = 0
    for m in separator.finditer(text):
        pos = m.start()
        if is_escaped(text, pos) or mask.contains(pos):
            continue
        while k < len(events) and events[k][0] < pos:
            depth += events[k][1]
            k += 1
        if depth > 0:
            continue
        pieces.append(text[last:pos])
        last = m.end()
    pieces.append(text[last:])
    return pieces


# ============================================================================
# REGION STATE MACHINE
# ============================================================================
def _previous_nonspace(s, i):
    j = i - 1
    while j >= 0 and s[j] in ' \t\n':
        j -= 1
    return s[j] if j >= 0 else ''


class RegionScanner:
    """Classifies positions of mixed HTML/TeX output.

    Feed it with step(s, i), which consumes one token starting at i and
    returns the index of the next token. Math delimiters are ignored inside
    HTML tags, comments and verbatim elements. HTML markup is ignored inside
    math.
    """

    def __init__(self, math_envs=MATH_ENVS):
        self.math_envs = math_envs
        self.reset()

    def reset(self):
        self.in_tag = False
        self.quote = None
        self.tag_name = ''
        self.in_comment = False
        self.verbatim = ''
        self._verbatim_close = None
        self.dollar = False
        self.double = False
        self.bracket = False
        self.paren = False
        self.env_stack = []

    @property
    def in_math(self):
        return (self.dollar or self.double or self.bracket or self.paren
                or bool(self.env_stack))

    @property
    def region(self):
        if self.in_comment:
            return HTML_COMMENT
        if self.in_tag:
            return HTML_TAG
        if self.verbatim:
            return VERBATIM
        if self.double:
            return DISPLAY_DOUBLE
        if self.dollar:
            return INLINE_MATH
        if self.bracket:
            return DISPLAY_BRACKET
        if self.paren:
            return DISPLAY_PAREN
        if self.env_stack:
            return MATH_ENV
        return PLAIN

    def is_plain(self):
        return self.region == PLAIN

    def step(self, s, i):
        n = len(s)
        if self.in_comment:
            end = s.find('-->', i)
            if end < 0:
                return n
            self.in_comment = False
            return end + 3
        if self.in_tag:
            return self._step_tag(s, i)
        if self.verbatim:
            m = self._verbatim_close.search(s, i)
            if m is None:
                return n
            if m.start() > i:
                return m.start()
            return self._open_tag(s, i)

        c = s[i]
        if not self.in_math:
            if s.startswith('<!--', i):
                self.in_comment = True
                return i + 4
            if c == '<' and i + 1 < n and (s[i + 1].isalpha() or s[i + 1] == '/'):
                return self._open_tag(s, i)
        if c == '\\':
            return self._step_backslash(s, i)
        if c == '$':
            return self._step_dollar(s, i)
        return i + 1

    def _open_tag(self, s, i):
        self.in_tag = True
        self.quote = None
        m = _TAG_NAME_RE.match(s, i + 1)
        if m is None:
            self.tag_name = ''
            return i + 1
        self.tag_name = m.group(0).lower()
        return m.end()

    def _step_tag(self, s, i):
        c = s[i]
        if self.quote:
            if c == self.quote:
                self.quote = None
        elif c in '"\'' and _previous_nonspace(s, i) == '=':
            self.quote = c
        elif c == '>':
            self.in_tag = False
            name = self.tag_name
            self.tag_name = ''
            if name.startswith('/'):
                if self.verbatim and name[1:] == self.verbatim:
                    self.verbatim = ''
                    self._verbatim_close = None
            elif name in VERBATIM_TAGS and s[i - 1] != '/':
                self.verbatim = name
                self._verbatim_close = re.compile(
                    r'</' + re.escape(name) + r'\b', re.IGNORECASE)
        return i + 1

    def _step_backslash(self, s, i):
        n = len(s)
        if i + 1 >= n:
            return n
        nxt = s[i + 1]
        if not (self.dollar or self.double):
            nested = self.bracket or self.paren or bool(self.env_stack)
            if nxt == '[' and not nested:
                self.bracket = True
                return i + 2
            if nxt == ']' and self.bracket:
                self.bracket = False
                return i + 2
            if nxt == '(' and not nested:
                self.paren = True
                return i + 2
            if nxt == ')' and self.paren:
                self.paren = False
                return i + 2
            if nxt in 'be':
                m = _ENV_MARKER_RE.match(s, i)
                if m and m.group(2) in self.math_envs:
                    name = m.group(2)
                    if m.group(1) == 'begin':
                        self.env_stack.append(name)
                    elif name in self.env_stack:
                        while self.env_stack and self.env_stack.pop() != name:
                            pass
                    return m.end()
        return i + 2

    def _step_dollar(self, s, i):
        if self.bracket or self.paren or self.env_stack:
            return i + 1
        if s.startswith('$$', i) and not self.dollar:
            self.double = not self.double
            return i + 2
        if not self.double:
            self.dollar = not self.dollar
        return i + 1


def collapse_plain_newlines(html):
    """Replace newlines that sit in plain regions with spaces.

    Newlines inside math and verbatim elements are kept.
    """
    if '\n' not in html:
        return html
    scanner = RegionScanner()
    out = []
    i = 0
    n = len(html)
    while i < n:
        if html[i] == '\n' and scanner.is_plain():
            out.append(' ')
            i += 1
            continue
        j = scanner.step(html, i)
        out.append(html[i:j])
        i = j
    return ''.join(out)
