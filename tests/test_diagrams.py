"""Tests for diagrams module."""
import os
import sys
import tempfile
import threading

# Support running tests both with pytest (installed package) and standalone
try:
    from tex2html_live import diagrams
except ImportError:
    sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))
    from tex2html_live import diagrams
from tex2html_live.macros import Macro


PICTURE = "\\begin{tikzpicture}\\draw (0,0) -- (1,1);\\end{tikzpicture}"
SVG = '<?xml version="1.0"?>\n<svg xmlns="http://www.w3.org/2000/svg"></svg>'


class BlockingRenderer:
    """Renderer that waits for a release and counts its calls."""

    def __init__(self, svg=SVG, error=None):
        self.release = threading.Event()
        self.calls = 0
        self.svg = svg
        self.error = error

    def __call__(self, document):
        self.calls += 1
        self.release.wait(5)
        return self.svg, self.error


class TestStandaloneDocument:
    def test_wraps_picture(self):
        doc = diagrams.build_standalone_document(PICTURE)
        assert doc.startswith('\\documentclass[tikz,border=1pt]{standalone}')
        assert '\\begin{document}\n' + PICTURE + '\n\\end{document}' in doc

    def test_tikzcd_package(self):
        doc = diagrams.build_standalone_document("\\begin{tikzcd}A \\arrow[r] & B\\end{tikzcd}")
        assert '\\usepackage{tikz-cd}' in doc

    def test_macros_carried(self):
        doc = diagrams.build_standalone_document(PICTURE, macros={'R': Macro('R', '\\mathbb{R}', 0)})
        assert '\\providecommand{\\R}{\\mathbb{R}}' in doc

    def test_collect_preamble(self):
        preamble = ("\\usepackage{hyperref}\n\\usepackage[all]{tikz}\n"
                    "\\usetikzlibrary{arrows}\n\\definecolor{navy}{RGB}{0,0,128}\n")
        lines = diagrams.collect_tikz_preamble(preamble).split('\n')
        assert lines == ['\\usepackage[all]{tikz}', '\\usetikzlibrary{arrows}',
                         '\\definecolor{navy}{RGB}{0,0,128}']

    def test_key_is_content_hash(self):
        a = diagrams.diagram_key(diagrams.build_standalone_document(PICTURE))
        b = diagrams.diagram_key(diagrams.build_standalone_document(PICTURE))
        c = diagrams.diagram_key(diagrams.build_standalone_document(PICTURE + ' '))
        assert a == b
        assert len(a) == 40
        assert a == c
        assert a != diagrams.diagram_key('other')


class TestDiagramCache:
    def test_memory(self):
        cache = diagrams.DiagramCache()
        assert cache.get('k') is None
        cache.put('k', SVG)
        assert 'k' in cache
        cache.clear()
        assert 'k' not in cache

    def test_directory(self):
        with tempfile.TemporaryDirectory() as tmp:
            cache = diagrams.DiagramCache(os.path.join(tmp, 'svg'))
            cache.put('abc', SVG)
            assert os.path.isfile(os.path.join(tmp, 'svg', 'abc.svg'))
            # a fresh cache reads what an earlier one stored
            assert diagrams.DiagramCache(os.path.join(tmp, 'svg')).get('abc') == SVG
            cache.clear()
            assert os.listdir(os.path.join(tmp, 'svg')) == []


class TestDiagramQueue:
    def test_unknown_key(self):
        queue = diagrams.DiagramQueue(renderer=BlockingRenderer())
        result = queue.request('missing')
        assert not result.success
        assert result.error == 'unknown diagram key'
        queue.close()

    def test_render_and_cache(self):
        renderer = BlockingRenderer()
        renderer.release.set()
        queue = diagrams.DiagramQueue(renderer=renderer)
        queue.register('k', 'doc')
        assert queue.request('k', timeout=5) == diagrams.DiagramResult('k', True, SVG, None)
        assert queue.request('k').success
        assert queue.cached('k') == SVG
        assert renderer.calls == 1
        queue.close()

    def test_single_flight(self, capsys):
        renderer = BlockingRenderer()
        queue = diagrams.DiagramQueue(renderer=renderer)
        queue.register('k', 'doc')
        first = queue.request('k', timeout=0.05)
        second = queue.request('k', timeout=0.05)
        assert not first.success and not second.success
        assert 'timed out' in first.error
        assert 'not ready' in capsys.readouterr().err
        renderer.release.set()
        assert queue.request('k', timeout=5).success
        assert renderer.calls == 1
        queue.close()

    def test_concurrent_requests(self):
        renderer = BlockingRenderer()
        queue = diagrams.DiagramQueue(renderer=renderer)
        queue.register('k', 'doc')
        results = []
        threads = [threading.Thread(target=lambda: results.append(queue.request('k', timeout=5)))
                   for _ in range(4)]
        for t in threads:
            t.start()
        renderer.release.set()
        for t in threads:
            t.join()
        assert len(results) == 4
        assert all(r.success for r in results)
        assert renderer.calls == 1
        queue.close()

    def test_render_failure(self, capsys):
        renderer = BlockingRenderer(svg=None, error='pdflatex/xelatex not available')
        renderer.release.set()
        queue = diagrams.DiagramQueue(renderer=renderer)
        queue.register('k', 'doc')
        result = queue.request('k', timeout=5)
        assert not result.success
        assert result.error == 'pdflatex/xelatex not available'
        assert 'failed' in capsys.readouterr().err
        assert queue.cached('k') is None
        queue.close()

    def test_renderer_exception(self, capsys):
        def broken(document):
            raise ValueError("bad svg")
        queue = diagrams.DiagramQueue(renderer=broken)
        queue.register('k', 'doc')
        result = queue.request('k', timeout=5)
        assert result == diagrams.DiagramResult('k', False, None, 'bad svg')
        queue.close()

    def test_prune_and_clear(self):
        renderer = BlockingRenderer()
        renderer.release.set()
        queue = diagrams.DiagramQueue(renderer=renderer)
        queue.register('k1', 'doc1')
        queue.register('k2', 'doc2')
        assert queue.request('k1', timeout=5).success
        assert queue.prune(['k1']) == 1
        assert queue.request('k2').error == 'unknown diagram key'
        queue.clear(['k1'])
        assert queue.cached('k1') is None
        assert queue.request('k1', timeout=5).success
        assert renderer.calls == 2
        queue.clear()
        assert queue.request('k1').error == 'unknown diagram key'
        queue.close()

    def test_prune_keeps_inflight(self):
        renderer = BlockingRenderer()
        queue = diagrams.DiagramQueue(renderer=renderer)
        queue.register('k', 'doc')
        assert not queue.request('k', timeout=0.01).success
        assert queue.prune() == 0
        renderer.release.set()
        assert queue.request('k', timeout=5).success
        queue.close()


class TestHtml:
    def test_lazy_placeholder(self):
        html = diagrams.placeholder_html('abc')
        assert 'class="tikz-lazy" data-tikz-key="abc"' in html
        assert 'class="tikz-load"' in html

    def test_static_placeholder(self):
        assert 'class="tikz-placeholder"' in diagrams.placeholder_html('abc', lazy=False)

    def test_inline_svg(self):
        html = diagrams.inline_svg_html('abc', SVG)
        assert html.startswith('<div class="tikz-svg" data-tikz-key="abc"')
        assert '<?xml' not in html
        assert '<svg' in html

    def test_result_message(self):
        ok = diagrams.result_message(diagrams.DiagramResult('k', True, SVG, None))
        assert ok == {'type': 'diagram-result', 'key': 'k', 'success': True, 'payload': SVG}
        failed = diagrams.result_message(diagrams.DiagramResult('k', False, None, None))
        assert failed['error'] == 'diagram render failed'
        assert 'payload' not in failed


if __name__ == '__main__':
    import pytest
    pytest.main([__file__, '-v'])
