"""Tests for assemble module."""
import os
import sys
import tempfile

import pytest

try:
    from tex2html_live import assemble
except ImportError:
    sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))
    from tex2html_live import assemble
from tex2html_live.config import Config
from tex2html_live.macros import Macro
from tex2html_live.resolve_tex import LineMap


class TestReplacePlaceholders:
    def test_basic(self):
        skeleton = "Hello __NAME__, welcome to __PLACE__!"
        result = assemble.replace_placeholders(skeleton, {
            "NAME": "World",
            "PLACE": "Earth",
        })
        assert result == "Hello World, welcome to Earth!"

    def test_missing_placeholder(self, capsys):
        skeleton = "Hello __NAME__ from __PLACE__!"
        result = assemble.replace_placeholders(skeleton, {"NAME": "World"})
        assert result == "Hello World from __PLACE__!"
        assert "__PLACE__" in capsys.readouterr().err

    def test_values_not_rescanned(self):
        result = assemble.replace_placeholders("__BODY__", {"BODY": "__TITLE__"})
        assert result == "__TITLE__"

    def test_lowercase_ignored(self):
        assert assemble.replace_placeholders("__llSync", {}) == "__llSync"


class TestJsonForScript:
    def test_script_close_escaped(self):
        assert assemble.json_for_script(["</script>"]) == '["<\\/script>"]'

    def test_unicode_kept(self):
        assert assemble.json_for_script({"a": "é"}) == '{"a": "é"}'


class TestBuildDocument:
    def _page(self, body="<p>x</p>", title=None):
        config = Config()
        macros = {'R': Macro('R', '\\mathbb{R}', 0)}
        return assemble.build_document(body, macros, LineMap([1, 2], [1, 2]), config, title)

    def test_all_placeholders_filled(self):
        page = self._page()
        assert not set(assemble.PLACEHOLDER_RE.findall(page)) & {
            'TITLE', 'BODY', 'MACROS', 'SYNC_SCRIPT', 'SYNC_CONFIG'}

    def test_body_in_wrap(self):
        assert '<div class="wrap">\n<p>x</p>\n</div>' in self._page()

    def test_title_escaped(self):
        assert '<title>A &lt;b&gt;</title>' in self._page(title='A <b>')
        assert '<title>LaTeX Preview</title>' in self._page()

    def test_scripts(self):
        page = self._page()
        assert 'window.__llO2M = [1, 2];' in page
        assert '"dwellMs": 140' in page
        assert 'macros: {"R": "\\\\mathbb{R}"}' in page
        assert assemble.load_asset('sync.js') in page

    def test_validates(self, capsys):
        assert assemble.validate_output(self._page())
        assert 'Marks: 0, line anchors: 0' in capsys.readouterr().err


class TestErrorPage:
    def test_message_escaped(self):
        page = assemble.build_error_page("bad <input>", Config())
        assert '<h2>Preview error</h2><pre>bad &lt;input&gt;</pre>' in page
        assert '<title>Preview error</title>' in page
        assert assemble.validate_output(page)


class TestValidateOutput:
    def test_div_mismatch(self, capsys):
        assert not assemble.validate_output("<div><div></div>")
        assert 'MISMATCH' in capsys.readouterr().err

    def test_fragment_token(self):
        assert not assemble.validate_output("<p>\x00B0\x00</p>")

    def test_unfilled_placeholder(self, capsys):
        assert not assemble.validate_output("<title>__TITLE__</title>")
        assert '__TITLE__' in capsys.readouterr().err

    def test_counts(self, capsys):
        html = ('<span class="llmark" data-id="a" data-abs="1"></span>'
                '<span class="syncline" data-abs="2"></span>')
        assert assemble.validate_output(html)
        assert 'Marks: 1, line anchors: 1' in capsys.readouterr().err


class TestReadFile:
    def test_reads_utf8(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'a.tex')
            with open(path, 'w', encoding='utf-8') as f:
                f.write('Café')
            assert assemble.read_file(path) == 'Café'

    def test_missing_dies(self, capsys):
        with pytest.raises(SystemExit) as exc:
            assemble.read_file('/nonexistent/main.tex', 'Main file')
        assert exc.value.code == 1
        assert 'Main file not found' in capsys.readouterr().err


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
