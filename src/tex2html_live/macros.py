"""
macros.py - Macro Table Builder

Collects user macro definitions from the source and merges them with the
built-in table handed to MathJax. The same table feeds the standalone
documents used for diagram rendering.
"""

import json
import re
from collections import namedtuple

from .scanner import is_escaped, read_brace_arg, read_bracket_arg


Macro = namedtuple('Macro', 'name template arity')


def _builtin(*entries):
    return {name: Macro(name, template, arity) for name, template, arity in entries}


BUILTIN_MACROS = _builtin(
    ('ae', r'\unicode{x00E6}', 0),
    ('AE', r'\unicode{x00C6}', 0),
    ('vb', r'\mathbf{#1}', 1),
    ('bm', r'\boldsymbol{#1}', 1),
    ('dv', r'\frac{d #1}{d #2}', 2),
    ('pdv', r'\frac{\partial #1}{\partial #2}', 2),
    ('abs', r'\left|#1\right|', 1),
    ('norm', r'\left\lVert #1\right\rVert', 1),
    ('qty', r'\left(#1\right)', 1),
    ('qtyb', r'\left[#1\right]', 1),
    ('qed', r'\square', 0),
    ('si', r'\mathrm{#1}', 1),
    ('num', r'{#1}', 1),
    ('SI', r'#1\,\mathrm{#2}', 2),
    ('textrm', r'\mathrm{#1}', 1),
    ('Lam', r'\Lambda', 0),
    ('rc', r'r_c', 0),
)

_NAME = r'(?:\{\s*\\([A-Za-z@]+)\s*\}|\\([A-Za-z@]+))'

_COMMAND_DEF_RE = re.compile(
    r'\\(?:newcommand|renewcommand|providecommand)(?![A-Za-z@])\*?\s*' + _NAME +
    r'(?:\s*\[\s*(\d)\s*\])?')
_DEF_RE = re.compile(r'\\def\s*\\([A-Za-z@]+)((?:\s*#\d)*)\s*(?=\{)')
_OPERATOR_RE = re.compile(r'\\DeclareMathOperator(\*?)\s*' + _NAME)


def _command_definitions(source):
    """Yield (start, end, Macro) for every \\newcommand-style definition."""
    for m in _COMMAND_DEF_RE.finditer(source):
        if is_escaped(source, m.start()):
            continue
        arity = int(m.group(3)) if m.group(3) else 0
        pos = m.end()
        if arity:
            default = read_bracket_arg(source, pos)
            if default is not None:
                pos = default[1]
        body = read_brace_arg(source, pos)
        if body is None:
            continue
        name = m.group(1) or m.group(2)
        yield m.start(), body[1], Macro(name, body[0].strip(), arity)


def _def_definitions(source):
    for m in _DEF_RE.finditer(source):
        if is_escaped(source, m.start()):
            continue
        body = read_brace_arg(source, m.end())
        if body is None:
            continue
        arity = m.group(2).count('#')
        yield m.start(), body[1], Macro(m.group(1), body[0].strip(), arity)


def _operator_definitions(source):
    for m in _OPERATOR_RE.finditer(source):
        if is_escaped(source, m.start()):
            continue
        body = read_brace_arg(source, m.end())
        if body is None:
            continue
        name = m.group(2) or m.group(3)
        template = '\\operatorname%s{%s}' % (m.group(1), body[0].strip())
        yield m.start(), body[1], Macro(name, template, 0)


def extract_macros(source):
    """Return {name: Macro} for the definitions found in source.

    \\newcommand and friends override each other (last definition wins).
    \\def and \\DeclareMathOperator only fill names that are still free.
    """
    macros = {}
    for _, _, macro in _command_definitions(source):
        macros[macro.name] = macro
    for _, _, macro in _def_definitions(source):
        macros.setdefault(macro.name, macro)
    for _, _, macro in _operator_definitions(source):
        macros.setdefault(macro.name, macro)
    return macros


def build_macro_table(user_macros=None):
    """Built-ins merged with user macros; user definitions take precedence."""
    table = dict(BUILTIN_MACROS)
    if user_macros:
        table.update(user_macros)
    return table


def macros_to_json(table):
    """MathJax tex.macros object, safe to embed inside a <script> element."""
    payload = {}
    for name, macro in table.items():
        payload[name] = [macro.template, macro.arity] if macro.arity > 0 else macro.template
    return json.dumps(payload, ensure_ascii=False).replace('</', '<\\/')


def macros_to_newcommands(table):
    """\\providecommand lines reproducing table inside a standalone document."""
    lines = []
    for name, macro in table.items():
        arity = '[%d]' % macro.arity if macro.arity > 0 else ''
        lines.append('\\providecommand{\\%s}%s{%s}' % (name, arity, macro.template))
    return '\n'.join(lines)


def strip_definitions(text):
    """Remove macro definitions from a body, keeping its newlines."""
    spans = []
    for finder in (_command_definitions, _def_definitions, _operator_definitions):
        spans.extend((start, end) for start, end, _ in finder(text))
    if not spans:
        return text
    spans.sort()
    out = []
    pos = 0
    for start, end in spans:
        if start < pos:
            continue  # nested inside a definition already removed
        out.append(text[pos:start])
        out.append('\n' * text.count('\n', start, end))
        pos = end
    out.append(text[pos:])
    return ''.join(out)
