"""Tests for colors and config modules."""
import json
import os
import sys
import tempfile

# Support running tests both with pytest (installed package) and standalone
try:
    from tex2html_live import colors
except ImportError:
    sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))
    from tex2html_live import colors
from tex2html_live.config import Config


class TestXcolor:
    def test_named(self):
        assert colors.xcolor_to_css('red') == '#dc2626'

    def test_mix_with_white(self):
        assert colors.xcolor_to_css('red!50!white') == '#ed9292'

    def test_tint_defaults_to_white(self):
        assert colors.xcolor_to_css('red!50') == colors.xcolor_to_css('red!50!white')

    def test_mix_two_colors(self):
        assert colors.xcolor_to_css('white!50!black') == '#7f7f7f'

    def test_percent_clamped(self):
        assert colors.xcolor_to_css('red!150!white') == '#dc2626'

    def test_hex_passthrough(self):
        assert colors.xcolor_to_css('#ABCDEF') == '#abcdef'

    def test_unknown_falls_back(self):
        assert colors.xcolor_to_css('nosuchcolor') == colors.FALLBACK_COLOR
        assert colors.xcolor_to_css('red!50!nosuch', fallback='#000000') == '#000000'
        assert colors.xcolor_to_css('') == colors.FALLBACK_COLOR

    def test_custom_palette(self):
        palette = {'brand': (0, 0, 255)}
        assert colors.xcolor_to_css('brand', palette=palette) == '#0000ff'
        assert colors.xcolor_to_css('red', palette=palette) == colors.FALLBACK_COLOR


class TestParseOptions:
    def test_key_values(self):
        opts = colors.parse_options('colback=red!5!white, colframe=blue, title={A, B}')
        assert opts == {'colback': 'red!5!white', 'colframe': 'blue', 'title': 'A, B'}

    def test_flags(self):
        assert colors.parse_options('breakable, width=5cm') == {'breakable': '', 'width': '5cm'}

    def test_empty(self):
        assert colors.parse_options('') == {}


class TestConfig:
    def test_defaults(self):
        cfg = Config()
        assert cfg.anchor_stride == 1
        assert cfg.dwell_ms == 140
        assert cfg.theorem_environments['lemma'] == ('env-theorem', 'Lemma')

    def test_from_dict(self):
        cfg = Config.from_dict({
            '_comment': 'ignored',
            'title': 'Draft',
            'dwell_ms': 200,
            'theorem_environments': {
                'thm': {'css': 'env-theorem', 'label': 'Theorem'},
                'claim': ['env-remark', 'Claim'],
            },
            'color_palette': {'Brand': [1, 2, 3]},
            'width_units': {'paperwidth': 1.2},
            'no_such_option': 1,
        })
        assert cfg.title == 'Draft'
        assert cfg.dwell_ms == 200
        assert cfg.theorem_environments['thm'] == ('env-theorem', 'Theorem')
        assert cfg.theorem_environments['claim'] == ('env-remark', 'Claim')
        assert 'theorem' in cfg.theorem_environments
        assert cfg.color_palette['brand'] == (1, 2, 3)
        assert cfg.width_units['paperwidth'] == 1.2
        assert cfg.width_units['linewidth'] == 1.0
        assert not hasattr(cfg, 'no_such_option')

    def test_defaults_not_shared(self):
        a = Config.from_dict({'color_palette': {'brand': [1, 2, 3]}})
        assert 'brand' in a.color_palette
        assert 'brand' not in Config().color_palette

    def test_from_json(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'config.json')
            with open(path, 'w', encoding='utf-8') as f:
                json.dump({'anchor_stride': 3}, f)
            assert Config.from_json(path).anchor_stride == 3


if __name__ == '__main__':
    import pytest
    pytest.main([__file__, '-v'])
