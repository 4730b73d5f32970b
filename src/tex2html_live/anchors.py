"""
anchors.py - Line anchor injection

Adds zero-footprint <span class="syncline"> anchors after newlines of the
converted body so the page can map scroll positions back to merged source
lines. Anchors go only where the RegionScanner reports plain text: never
inside math, HTML tags, HTML comments or verbatim elements.
"""

import re
from collections import namedtuple

from .scanner import RegionScanner


Anchor = namedtuple('Anchor', 'kind id line')

_ANCHOR_RE = re.compile(
    r'<span class="(syncline|llmark)"(?: data-id="([^"]*)")? data-abs="(\d+)"></span>')


def syncline_html(line):
    return '<span class="syncline" data-abs="%d"></span>' % line


def inject_line_anchors(html, abs_offset=1, stride=1):
    """Insert a syncline anchor after every stride-th plain newline.

    Every newline advances the line counter, so line k of the body is
    merged line abs_offset + k; anchors themselves are only placed after
    plain newlines. A stride of zero or less disables anchors.
    """
    if stride is None or stride <= 0 or '\n' not in html:
        return html
    scanner = RegionScanner()
    out = []
    line = 0
    i = 0
    n = len(html)
    while i < n:
        if html[i] == '\n':
            line += 1
            out.append('\n')
            if line % stride == 0 and scanner.is_plain():
                out.append(syncline_html(abs_offset + line))
            i += 1
            continue
        j = scanner.step(html, i)
        # verbatim elements and comments are consumed in one step
        line += html.count('\n', i, j)
        out.append(html[i:j])
        i = j
    return ''.join(out)


def find_anchors(html):
    """Return the Anchor list of a rendered body, in document order."""
    return [Anchor(m.group(1), m.group(2), int(m.group(3)))
            for m in _ANCHOR_RE.finditer(html)]
