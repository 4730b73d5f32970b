"""Tests for resolve_tex module."""
import os
import sys
import tempfile

# Support running tests both with pytest (installed package) and standalone
try:
    from tex2html_live import resolve_tex
except ImportError:
    sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))
    from tex2html_live import resolve_tex


def _write_file(path, content):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        f.write(content)


class TestLineMap:
    def test_identity(self):
        line_map = resolve_tex.LineMap.identity(3)
        assert line_map.orig_to_merged == [1, 2, 3]
        assert line_map.merged_to_orig == [1, 2, 3]

    def test_identity_never_empty(self):
        assert resolve_tex.LineMap.identity(0).original_lines == 1

    def test_lookups_are_clamped(self):
        line_map = resolve_tex.LineMap([1, 4], [1, 1, 1, 2])
        assert line_map.to_merged(0) == 1
        assert line_map.to_merged(99) == 4
        assert line_map.to_orig(3) == 1
        assert line_map.to_orig(-5) == 1
        assert line_map.to_orig(99) == 2

    def test_to_dict(self):
        line_map = resolve_tex.LineMap([1, 2], [1, 2])
        assert line_map.to_dict() == {'origToMerged': [1, 2], 'mergedToOrig': [1, 2]}


class TestInlineInputs:
    def test_nested_inputs(self):
        with tempfile.TemporaryDirectory() as tmp:
            _write_file(os.path.join(tmp, 'chapters', 'ch01.tex'), "One \\input{part}")
            _write_file(os.path.join(tmp, 'chapters', 'part.tex'), "Nested")
            merged = resolve_tex.inline_inputs("\\input{chapters/ch01}", tmp)
        assert merged == "One Nested"

    def test_include_with_suffix(self):
        with tempfile.TemporaryDirectory() as tmp:
            _write_file(os.path.join(tmp, 'defs.sty'), "DEFS")
            assert resolve_tex.inline_inputs("\\include{defs.sty}", tmp) == "DEFS"
            assert resolve_tex.inline_inputs("\\input{defs}", tmp) == "DEFS"

    def test_subimport(self):
        with tempfile.TemporaryDirectory() as tmp:
            _write_file(os.path.join(tmp, 'parts', 'intro.tex'), "Intro")
            merged = resolve_tex.inline_inputs("\\subimport{parts/}{intro}", tmp)
        assert merged == "Intro"

    def test_missing_input_placeholder(self, capsys):
        with tempfile.TemporaryDirectory() as tmp:
            merged = resolve_tex.inline_inputs("a \\input{nothere} b", tmp)
        assert merged == "a % Missing input: nothere % b"
        assert "Input file not found: nothere" in capsys.readouterr().err

    def test_cycle_detected(self, capsys):
        with tempfile.TemporaryDirectory() as tmp:
            _write_file(os.path.join(tmp, 'a.tex'), "A \\input{b}")
            _write_file(os.path.join(tmp, 'b.tex'), "B \\input{a}")
            main = os.path.join(tmp, 'a.tex')
            merged, _ = resolve_tex.inline_with_line_map("A \\input{b}", tmp, main_path=main)
        assert merged == "A B % Circular input: a %"
        assert "Circular input detected" in capsys.readouterr().err

    def test_self_include(self):
        with tempfile.TemporaryDirectory() as tmp:
            _write_file(os.path.join(tmp, 'main.tex'), "\\input{main}")
            merged, _ = resolve_tex.inline_with_line_map(
                "\\input{main}", tmp, main_path=os.path.join(tmp, 'main.tex'))
        assert merged == "% Circular input: main %"

    def test_commented_input_ignored(self):
        with tempfile.TemporaryDirectory() as tmp:
            _write_file(os.path.join(tmp, 'sub.tex'), "SUB")
            merged = resolve_tex.inline_inputs("% \\input{sub}\n\\input{sub}", tmp)
        assert merged == "% \\input{sub}\nSUB"


class TestLineMapping:
    def test_multiline_include(self):
        with tempfile.TemporaryDirectory() as tmp:
            _write_file(os.path.join(tmp, 'sub.tex'), "x\ny")
            merged, line_map = resolve_tex.inline_with_line_map("a\n\\input{sub}\nb", tmp)
        assert merged == "a\nx\ny\nb"
        assert line_map.orig_to_merged == [1, 2, 4]
        assert line_map.merged_to_orig == [1, 2, 2, 3]

    def test_maps_are_total_and_monotonic(self):
        with tempfile.TemporaryDirectory() as tmp:
            _write_file(os.path.join(tmp, 'one.tex'), "1\n2\n3")
            _write_file(os.path.join(tmp, 'two.tex'), "\\input{one}\n4")
            source = "top\n\\input{two}\nmiddle\n\\input{missing}\n\\input{one}\nend"
            merged, line_map = resolve_tex.inline_with_line_map(source, tmp)

        o2m = line_map.orig_to_merged
        m2o = line_map.merged_to_orig
        assert len(o2m) == source.count('\n') + 1
        assert len(m2o) == merged.count('\n') + 1
        assert o2m == sorted(o2m)
        assert m2o == sorted(m2o)
        assert all(1 <= m <= len(m2o) for m in o2m)
        assert all(1 <= o <= len(o2m) for o in m2o)
        for i, m in enumerate(o2m, 1):
            assert m2o[m - 1] <= i
        assert merged.split('\n')[o2m[2] - 1] == 'middle'
        assert merged.split('\n')[o2m[-1] - 1] == 'end'

    def test_no_markers_left(self):
        with tempfile.TemporaryDirectory() as tmp:
            merged, line_map = resolve_tex.inline_with_line_map("a\nb", tmp)
        assert merged == "a\nb"
        assert '%%LLM' not in merged
        assert line_map.orig_to_merged == [1, 2]


if __name__ == '__main__':
    import pytest
    pytest.main([__file__, '-v'])
