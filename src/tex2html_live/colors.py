"""
colors.py - xcolor expressions to CSS

Understands the subset of xcolor syntax that shows up in box and text
colors: named colors, "c!p" (tint with white), "c1!p!c2" (p% of c1 mixed
with c2) and literal "#rrggbb". Also parses key=value option lists such as
the optional argument of tcolorbox.
"""

import re

from .scanner import UNBALANCED, find_balanced_brace


DEFAULT_PALETTE = {
    'black':   (0, 0, 0),
    'white':   (255, 255, 255),
    'red':     (220, 38, 38),
    'green':   (22, 163, 74),
    'blue':    (37, 99, 235),
    'cyan':    (6, 182, 212),
    'magenta': (168, 85, 247),
    'violet':  (168, 85, 247),
    'purple':  (168, 85, 247),
    'yellow':  (234, 179, 8),
    'orange':  (249, 115, 22),
    'gray':    (156, 163, 175),
    'grey':    (156, 163, 175),
    'brown':   (150, 95, 59),
}

FALLBACK_COLOR = '#1e3a8a'

_HEX_RE = re.compile(r'^#([0-9A-Fa-f]{6})$')
_MIX_RE = re.compile(r'^([A-Za-z]+)(?:!(\d{1,3}(?:\.\d+)?)(?:!([A-Za-z]+))?)?$')


def rgb_to_hex(rgb):
    return '#%02x%02x%02x' % tuple(rgb)


def xcolor_to_css(spec, palette=None, fallback=FALLBACK_COLOR):
    """Translate an xcolor expression into a CSS hex color.

    >>> xcolor_to_css('red!50!white')
    '#ed9292'
    """
    palette = DEFAULT_PALETTE if palette is None else palette
    value = (spec or '').replace(' ', '')
    if _HEX_RE.match(value):
        return value.lower()
    m = _MIX_RE.match(value)
    if not m:
        return fallback
    base = palette.get(m.group(1).lower())
    if base is None:
        return fallback
    if m.group(2) is None:
        return rgb_to_hex(base)

    share = min(100.0, float(m.group(2))) / 100.0
    if m.group(3):
        other = palette.get(m.group(3).lower())
        if other is None:
            return fallback
    else:
        other = (255, 255, 255)
    return rgb_to_hex(int(a * share + b * (1 - share)) for a, b in zip(base, other))


def parse_options(text):
    """Parse 'key=value, key={a, b}, flag' into an ordered dict.

    A value is either a balanced {..} group or everything up to the next
    comma at brace depth zero. Keys without a value map to ''.
    """
    result = {}
    i = 0
    n = len(text)
    while i < n:
        while i < n and text[i] in ' \t\n,':
            i += 1
        if i >= n:
            break
        start = i
        while i < n and text[i] not in '=,':
            if text[i] == '{':
                close = find_balanced_brace(text, i)
                i = n if close == UNBALANCED else close + 1
                continue
            i += 1
        key = text[start:i].strip()
        value = ''
        if i < n and text[i] == '=':
            i += 1
            while i < n and text[i] in ' \t\n':
                i += 1
            if i < n and text[i] == '{':
                close = find_balanced_brace(text, i)
                if close == UNBALANCED:
                    value = text[i + 1:]
                    i = n
                else:
                    value = text[i + 1:close]
                    i = close + 1
                while i < n and text[i] != ',':
                    i += 1
            else:
                value_start = i
                depth = 0
                while i < n:
                    c = text[i]
                    if c == '{':
                        depth += 1
                    elif c == '}':
                        depth -= 1
                    elif c == ',' and depth <= 0:
                        break
                    i += 1
                value = text[value_start:i].strip()
        if key:
            result[key] = value
    return result
