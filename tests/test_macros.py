"""Tests for macros module."""
import json
import os
import sys

# Support running tests both with pytest (installed package) and standalone
try:
    from tex2html_live import macros
except ImportError:
    sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))
    from tex2html_live import macros


class TestExtractMacros:
    def test_newcommand_forms(self):
        src = r"\newcommand{\R}{\mathbb{R}}" "\n" r"\newcommand\vect[1]{\mathbf{#1}}"
        found = macros.extract_macros(src)
        assert found['R'] == macros.Macro('R', r'\mathbb{R}', 0)
        assert found['vect'] == macros.Macro('vect', r'\mathbf{#1}', 1)

    def test_default_argument_skipped(self):
        found = macros.extract_macros(r"\newcommand{\pair}[2][a]{(#1,#2)}")
        assert found['pair'].template == '(#1,#2)'
        assert found['pair'].arity == 2

    def test_renew_and_provide(self):
        src = r"\renewcommand*{\x}{1}\providecommand{\y}{2}"
        found = macros.extract_macros(src)
        assert found['x'].template == '1'
        assert found['y'].template == '2'

    def test_last_newcommand_wins(self):
        found = macros.extract_macros(r"\newcommand{\x}{1}\renewcommand{\x}{2}")
        assert found['x'].template == '2'

    def test_def(self):
        found = macros.extract_macros(r"\def\e{\mathrm{e}}\def\pr#1#2{P(#1|#2)}")
        assert found['e'] == macros.Macro('e', r'\mathrm{e}', 0)
        assert found['pr'].arity == 2

    def test_def_does_not_override_newcommand(self):
        found = macros.extract_macros(r"\def\x{a}\newcommand{\x}{b}")
        assert found['x'].template == 'b'

    def test_math_operator(self):
        found = macros.extract_macros(
            r"\DeclareMathOperator{\tr}{tr}\DeclareMathOperator*{\argmax}{arg\,max}")
        assert found['tr'].template == r'\operatorname{tr}'
        assert found['argmax'].template == r'\operatorname*{arg\,max}'

    def test_unbalanced_body_ignored(self):
        assert macros.extract_macros(r"\newcommand{\x}{oops") == {}


class TestMacroTable:
    def test_builtins_present(self):
        table = macros.build_macro_table()
        assert table['vb'].arity == 1
        assert table['qed'].template == r'\square'

    def test_user_overrides_builtin(self):
        user = {'qed': macros.Macro('qed', r'\blacksquare', 0)}
        table = macros.build_macro_table(user)
        assert table['qed'].template == r'\blacksquare'
        assert 'vb' in table

    def test_json_shape(self):
        table = {
            'R': macros.Macro('R', r'\mathbb{R}', 0),
            'vect': macros.Macro('vect', r'\mathbf{#1}', 1),
        }
        data = json.loads(macros.macros_to_json(table))
        assert data == {'R': r'\mathbb{R}', 'vect': [r'\mathbf{#1}', 1]}

    def test_json_script_safe(self):
        table = {'bad': macros.Macro('bad', '</script>', 0)}
        text = macros.macros_to_json(table)
        assert '</script>' not in text
        assert json.loads(text)['bad'] == '</script>'

    def test_newcommands(self):
        table = {
            'R': macros.Macro('R', r'\mathbb{R}', 0),
            'vect': macros.Macro('vect', r'\mathbf{#1}', 1),
        }
        lines = macros.macros_to_newcommands(table).split('\n')
        assert r'\providecommand{\R}{\mathbb{R}}' in lines
        assert r'\providecommand{\vect}[1]{\mathbf{#1}}' in lines


class TestStripDefinitions:
    def test_removed_keeping_lines(self):
        text = "a\\newcommand{\\R}{\n\\mathbb{R}}b"
        assert macros.strip_definitions(text) == "a\nb"

    def test_no_definitions(self):
        assert macros.strip_definitions("plain $x$") == "plain $x$"

    def test_all_kinds(self):
        text = r"\def\e{e}\DeclareMathOperator{\tr}{tr}\newcommand{\x}{1}rest"
        assert macros.strip_definitions(text) == "rest"


if __name__ == '__main__':
    import pytest
    pytest.main([__file__, '-v'])
