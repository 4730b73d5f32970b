#!/usr/bin/env python3
"""
resolve_tex.py - Include inlining and line remapping

Recursively inlines \\input/\\include/\\subimport references so the
transpiler sees one merged source, and builds the two-way line map between
the editor's original line numbers and the merged line numbers used by the
sync anchors.

Supports:
  - \\input{x}, \\include{x} with '', .tex and .sty suffixes
  - \\subimport{dir}{x} and \\import{dir}{x}
  - nested includes, relative to the including file, then to the root
  - cycle detection along the include chain and a depth limit

Missing and circular references are replaced by a placeholder comment and
reported on stderr.
"""

__version__ = "1.0"
__date__ = "17-10-2026"

import os
import re
import sys

from .scanner import first_comment_index, is_escaped


MAX_DEPTH = 20
DEFAULT_SUFFIXES = ('', '.tex', '.sty')

MARKER_FORMAT = '%%LLM{}%%'
_MARKER_RE = re.compile(r'%%LLM\d+%%')

_INPUT_RE = re.compile(
    r'\\(input|include)\s*\{([^{}\n]+)\}'
    r'|\\(?:sub)?import\*?\s*\{([^{}\n]*)\}\s*\{([^{}\n]+)\}')


# ============================================================================
# LINE MAP
# ============================================================================
class LineMap:
    """Two-way line correspondence between original and merged source.

    Both directions are 1-based, non-decreasing and total. Lookups outside
    the known range are clamped.
    """

    def __init__(self, orig_to_merged, merged_to_orig):
        self.orig_to_merged = list(orig_to_merged) or [1]
        self.merged_to_orig = list(merged_to_orig) or [1]

    @classmethod
    def identity(cls, lines):
        lines = max(1, lines)
        numbers = list(range(1, lines + 1))
        return cls(numbers, numbers)

    @property
    def original_lines(self):
        return len(self.orig_to_merged)

    @property
    def merged_lines(self):
        return len(self.merged_to_orig)

    def to_merged(self, line):
        line = min(max(int(line), 1), len(self.orig_to_merged))
        return self.orig_to_merged[line - 1]

    def to_orig(self, line):
        line = min(max(int(line), 1), len(self.merged_to_orig))
        return self.merged_to_orig[line - 1]

    def to_dict(self):
        return {
            'origToMerged': list(self.orig_to_merged),
            'mergedToOrig': list(self.merged_to_orig),
        }


# ============================================================================
# INCLUDE RESOLUTION
# ============================================================================
def _resolve_file_path(filename, current_dir, root_dir, suffixes=DEFAULT_SUFFIXES):
    """Try to find an included file given a reference.

    Searches relative to the including file's directory first, then the
    project root, trying each suffix in turn. Returns the absolute path or
    None.
    """
    bases = [current_dir]
    if root_dir and os.path.abspath(root_dir) != os.path.abspath(current_dir):
        bases.append(root_dir)

    for base in bases:
        for suffix in suffixes:
            if suffix and filename.endswith(suffix):
                continue
            candidate = os.path.join(base, filename + suffix)
            if os.path.isfile(candidate):
                return os.path.abspath(candidate)
    return None


def _read_source(path):
    with open(path, 'r', encoding='utf-8', errors='replace') as f:
        return f.read().replace('\r\n', '\n').replace('\r', '\n')


def inline_inputs(source, base_dir, root_dir=None, suffixes=DEFAULT_SUFFIXES,
                  ancestors=(), depth=0):
    """Return source with every include reference replaced by file content.

    Args:
        source: LaTeX text (may carry line markers).
        base_dir: Directory of the file source came from.
        root_dir: Project root, the second search location.
        suffixes: Suffixes tried after the literal name.
        ancestors: Absolute paths of the files currently being inlined.
        depth: Current nesting depth.
    """
    root_dir = root_dir or base_dir

    def _replace_input(m):
        full_match = m.group(0)
        if is_escaped(source, m.start()):
            return full_match
        # Check if this match is inside a comment. Line markers look like
        # comments, so they are removed before the check.
        line_start = source.rfind('\n', 0, m.start()) + 1
        line_before = _MARKER_RE.sub('', source[line_start:m.start()])
        if first_comment_index(line_before) >= 0:
            return full_match

        if m.group(1):
            filename = m.group(2).strip()
            search_dir = base_dir
        else:
            filename = m.group(4).strip()
            search_dir = os.path.join(base_dir, m.group(3).strip())

        resolved = _resolve_file_path(filename, search_dir, root_dir, suffixes)
        if resolved is None:
            print(f"  WARNING: Input file not found: {filename}", file=sys.stderr)
            return f'% Missing input: {filename} %'
        if resolved in ancestors or depth >= MAX_DEPTH:
            print(f"  WARNING: Circular input detected: {filename}", file=sys.stderr)
            return f'% Circular input: {filename} %'

        try:
            content = _read_source(resolved)
        except (IOError, OSError) as e:
            print(f"  WARNING: Cannot read {resolved}: {e}", file=sys.stderr)
            return f'% Missing input: {filename} %'

        return inline_inputs(content, os.path.dirname(resolved), root_dir,
                             suffixes, ancestors + (resolved,), depth + 1)

    return _INPUT_RE.sub(_replace_input, source)


def inline_with_line_map(source, base_dir, suffixes=DEFAULT_SUFFIXES, main_path=None):
    """Inline includes and compute the line map.

    Every original line is tagged with a %%LLM<n>%% marker before
    inlining. The marker positions in the merged text give orig_to_merged
    (a lost marker reuses the previous value); merged_to_orig[m] is the
    largest original line whose merged line is <= m.

    Returns (merged_text, LineMap).
    """
    lines = source.split('\n')
    marked = '\n'.join(MARKER_FORMAT.format(i) + line
                       for i, line in enumerate(lines, 1))
    ancestors = (os.path.abspath(main_path),) if main_path else ()
    merged_marked = inline_inputs(marked, base_dir, base_dir, suffixes, ancestors)

    orig_to_merged = []
    cursor = 0
    line_no = 1
    previous = 1
    for i in range(1, len(lines) + 1):
        marker = MARKER_FORMAT.format(i)
        pos = merged_marked.find(marker, cursor)
        if pos < 0:
            orig_to_merged.append(previous)
            continue
        line_no += merged_marked.count('\n', cursor, pos)
        cursor = pos + len(marker)
        previous = line_no
        orig_to_merged.append(line_no)

    merged = _MARKER_RE.sub('', merged_marked)
    total = merged.count('\n') + 1
    merged_to_orig = []
    j = 0
    for m_line in range(1, total + 1):
        while j + 1 < len(orig_to_merged) and orig_to_merged[j + 1] <= m_line:
            j += 1
        merged_to_orig.append(j + 1)

    return merged, LineMap(orig_to_merged, merged_to_orig)
