"""
context.py - Per-render state

RenderContext carries everything one transpile call needs: configuration,
base directory, line map, the diagram queue and the fragment store.
Nothing in it is shared between calls.

Converted HTML never goes back into the working text. It is parked in the
FragmentStore and replaced by an opaque token followed by enough newlines
that the working text keeps the line count of the source it replaced.
"""

import re
from collections import namedtuple

from .config import Config
from .scanner import collapse_plain_newlines


TOKEN_RE = re.compile('\x00([BI])(\\d+)\x00')
BLOCK_TOKEN_RE = re.compile('(\x00B\\d+\x00)')

RenderResult = namedtuple('RenderResult', 'html line_map macros diagram_keys')


class FragmentStore:
    """Holds converted HTML fragments behind opaque tokens."""

    def __init__(self):
        self._items = []

    def __len__(self):
        return len(self._items)

    def put(self, html, source='', block=True):
        """Park html and return its token, padded to source's line count."""
        html = collapse_plain_newlines(html)
        self._items.append(html)
        token = '\x00%s%d\x00' % ('B' if block else 'I', len(self._items) - 1)
        missing = source.count('\n') - self.restore(html).count('\n')
        return token + '\n' * max(0, missing)

    def restore(self, text):
        """Replace tokens by their fragments until none are left."""
        while '\x00' in text:
            expanded = TOKEN_RE.sub(lambda m: self._items[int(m.group(2))], text)
            if expanded == text:
                break
            text = expanded
        return text


class RenderContext:

    def __init__(self, config=None, base_dir=None, line_map=None,
                 diagrams=None, abs_offset=1):
        self.config = config or Config()
        self.base_dir = base_dir
        self.line_map = line_map
        self.diagrams = diagrams
        self.abs_offset = abs_offset
        self.fragments = FragmentStore()
        self.macros = {}
        self.title_meta = {}
        self.theorems = dict(self.config.theorem_environments)
        self.tikz_preamble = ''
        self.diagram_keys = []
        self._ids = {}

    def unique_id(self, base):
        """base the first time, then base-2, base-3, ..."""
        count = self._ids.get(base, 0) + 1
        self._ids[base] = count
        return base if count == 1 else '%s-%d' % (base, count)
