#!/usr/bin/env python3
"""
HTML page assembler.

Reads the bundled skeleton template (data/skeleton.html) with __PLACEHOLDER__
markers and fills it with the converted body, the MathJax macro table, the
line maps, the sync timings and the sync script (data/sync.js).
"""

__version__ = "1.0"
__date__ = "17-10-2026"

import json
import re
import sys
from importlib.resources import files
from pathlib import Path

from .macros import macros_to_json
from .prose import escape_html
from .sync import SyncTimings


PLACEHOLDER_RE = re.compile(r'__([A-Z][A-Z0-9_]+)__')

PACKAGE = 'tex2html_live'


# ---------------------------------------------------------------------------
# Utility
# ---------------------------------------------------------------------------

def die(msg: str) -> None:
    """Print error message and exit with code 1."""
    print(f"ERROR: {msg}", file=sys.stderr)
    sys.exit(1)


def read_file(path: str, label: str = "") -> str:
    """Read a UTF-8 file or die with a clear message."""
    p = Path(path)
    if not p.exists():
        die(f"{label or 'File'} not found: {path}")
    if not p.is_file():
        die(f"{label or 'Path'} is not a file: {path}")
    try:
        return p.read_text(encoding="utf-8")
    except Exception as e:
        die(f"Cannot read {label or 'file'} {path}: {e}")


_ASSETS = {}


def load_asset(name: str) -> str:
    """Text of a bundled file under data/ (cached)."""
    if name not in _ASSETS:
        _ASSETS[name] = files(PACKAGE).joinpath('data', name).read_text(encoding='utf-8')
    return _ASSETS[name]


# ---------------------------------------------------------------------------
# Placeholder replacement
# ---------------------------------------------------------------------------

def replace_placeholders(skeleton: str, replacements: dict) -> str:
    """Replace all __PLACEHOLDER__ markers in skeleton with values from replacements.

    Replacement values are inserted verbatim and never rescanned. A marker
    without a replacement is left as is, with a warning.
    """
    found = set(PLACEHOLDER_RE.findall(skeleton))
    missing = found - set(replacements)
    for m in sorted(missing):
        print(f"  WARNING: Placeholder __{m}__ found in skeleton but no replacement provided",
              file=sys.stderr)

    def _replacer(match):
        key = match.group(1)
        if key in replacements:
            return replacements[key]
        return match.group(0)

    return PLACEHOLDER_RE.sub(_replacer, skeleton)


def json_for_script(value) -> str:
    """JSON that can sit inside a <script> element."""
    return json.dumps(value, ensure_ascii=False).replace('</', '<\\/')


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

def build_document(body: str, macros: dict, line_map, config, title: str = None) -> str:
    """Full preview page around a converted body."""
    maps = line_map.to_dict()
    replacements = {
        "TITLE": escape_html(title or config.title),
        "MATHJAX_URL": escape_html(config.mathjax_url, quote=True),
        "MACROS": macros_to_json(macros),
        "LINE_MAP_O2M": json_for_script(maps['origToMerged']),
        "LINE_MAP_M2O": json_for_script(maps['mergedToOrig']),
        "SYNC_CONFIG": SyncTimings.from_config(config).to_json(),
        "SYNC_SCRIPT": load_asset('sync.js'),
        "BODY": body,
    }
    return replace_placeholders(load_asset('skeleton.html'), replacements)


def build_error_page(message: str, config) -> str:
    """Page shown when the transpiler hit an internal error."""
    body = ('<div class="error-page"><h2>Preview error</h2><pre>%s</pre></div>'
            % escape_html(message))
    replacements = {
        "TITLE": "Preview error",
        "MATHJAX_URL": escape_html(config.mathjax_url, quote=True),
        "MACROS": "{}",
        "LINE_MAP_O2M": "[1]",
        "LINE_MAP_M2O": "[1]",
        "SYNC_CONFIG": SyncTimings.from_config(config).to_json(),
        "SYNC_SCRIPT": load_asset('sync.js'),
        "BODY": body,
    }
    return replace_placeholders(load_asset('skeleton.html'), replacements)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_output(html: str) -> bool:
    """Check an assembled page and print diagnostics. Returns True if all checks pass."""
    open_divs = len(re.findall(r'<div[\s>]', html))
    close_divs = len(re.findall(r'</div>', html))
    marks = len(re.findall(r'class="llmark"', html))
    anchors = len(re.findall(r'class="syncline"', html))
    leftover = sorted(set(PLACEHOLDER_RE.findall(html)) & {
        'TITLE', 'MATHJAX_URL', 'MACROS', 'LINE_MAP_O2M', 'LINE_MAP_M2O',
        'SYNC_CONFIG', 'SYNC_SCRIPT', 'BODY'})

    issues = []
    if open_divs != close_divs:
        issues.append(f"Div balance MISMATCH: {open_divs} open / {close_divs} close")
    if '\x00' in html:
        issues.append("Unrestored fragment token in output")
    for name in leftover:
        issues.append(f"Unfilled placeholder __{name}__")

    print(f"  Marks: {marks}, line anchors: {anchors}, "
          f"size: {len(html.encode('utf-8')) / 1024:.0f} KB", file=sys.stderr)
    for issue in issues:
        print(f"  WARNING: {issue}", file=sys.stderr)
    return not issues
