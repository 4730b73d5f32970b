#!/usr/bin/env python3
"""
config.py - Preview configuration

Defaults for every tunable of the transpiler, the sync protocol and the
diagram pipeline. Load overrides from JSON:

    {
      "title": "Thesis draft",
      "anchor_stride": 2,
      "theorem_environments": {
        "thm": {"css": "env-theorem", "label": "Theorem"}
      },
      "_comment": "keys starting with _ are ignored"
    }
"""

import json

from .colors import DEFAULT_PALETTE


DEFAULT_MATHJAX_URL = 'https://cdn.jsdelivr.net/npm/mathjax@3/es5/tex-chtml.js'

# Environment name -> (CSS class, display label)
DEFAULT_THEOREM_ENVIRONMENTS = {
    'theorem':     ('env-theorem', 'Theorem'),
    'lemma':       ('env-theorem', 'Lemma'),
    'proposition': ('env-theorem', 'Proposition'),
    'corollary':   ('env-theorem', 'Corollary'),
    'definition':  ('env-theorem', 'Definition'),
    'conjecture':  ('env-theorem', 'Conjecture'),
    'identity':    ('env-theorem', 'Identity'),
    'remark':      ('env-remark', 'Remark'),
    'note':        ('env-remark', 'Note'),
    'example':     ('env-example', 'Example'),
    'exercise':    ('env-example', 'Exercise'),
    'proof':       ('env-proof', 'Proof'),
}

# Relative length unit -> fraction of the line width
DEFAULT_WIDTH_UNITS = {
    'linewidth': 1.0,
    'textwidth': 1.0,
    'columnwidth': 1.0,
    'hsize': 1.0,
}

# Unknown environments whose required arguments are dropped with the marker
DEFAULT_ENV_REQUIRED_ARGS = {
    'minipage': 1,
    'wrapfigure': 2,
    'adjustbox': 1,
    'subfigure': 1,
    'resizebox': 2,
    'spacing': 1,
}


class Config:
    """Holds all configuration for a preview session."""

    def __init__(self):
        self.title = 'LaTeX Preview'
        self.mathjax_url = DEFAULT_MATHJAX_URL
        self.anchor_stride = 1
        self.debounce_ms = 300

        # sync protocol
        self.band_top = 0.12
        self.band_bottom = 0.70
        self.dwell_ms = 140
        self.ratio_epsilon = 0.015
        self.echo_window_ms = 450
        self.suppress_emit_ms = 350
        self.scroll_dedupe_ms = 50
        self.scroll_tolerance_px = 1.0

        # diagrams
        self.render_diagrams = False
        self.diagram_cache_dir = None
        self.diagram_timeout = 60      # seconds per external tool run
        self.diagram_wait = 20         # seconds a request waits for a result
        self.diagram_workers = 2

        # files
        self.include_suffixes = ['', '.tex', '.sty']
        self.image_extensions = ['.png', '.jpg', '.jpeg', '.svg', '.gif', '.pdf']
        self.image_dirs = ['', 'figures', 'images']
        self.embed_images = False

        # styling
        self.color_palette = dict(DEFAULT_PALETTE)
        self.box_colback = '#f8fafc'
        self.box_colframe = '#1e3a8a'
        self.fallback_color = '#1e3a8a'
        self.width_units = dict(DEFAULT_WIDTH_UNITS)
        self.theorem_environments = dict(DEFAULT_THEOREM_ENVIRONMENTS)
        self.env_required_args = dict(DEFAULT_ENV_REQUIRED_ARGS)

    @classmethod
    def from_json(cls, filepath):
        """Load configuration from a JSON file."""
        with open(filepath, 'r', encoding='utf-8') as f:
            data = json.load(f)
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data):
        cfg = cls()
        for key, value in data.items():
            if key.startswith('_'):
                continue  # skip _comment keys
            if key == 'color_palette':
                for name, rgb in value.items():
                    if not name.startswith('_'):
                        cfg.color_palette[name.lower()] = tuple(int(c) for c in rgb)
            elif key == 'theorem_environments':
                for env_name, env_info in value.items():
                    if env_name.startswith('_'):
                        continue
                    if isinstance(env_info, dict):
                        cfg.theorem_environments[env_name] = (
                            env_info.get('css', 'env-theorem'),
                            env_info.get('label', env_name.capitalize()),
                        )
                    elif isinstance(env_info, (list, tuple)) and len(env_info) == 2:
                        cfg.theorem_environments[env_name] = tuple(env_info)
                    else:
                        cfg.theorem_environments[env_name] = ('env-theorem', str(env_info))
            elif key in ('width_units', 'env_required_args'):
                getattr(cfg, key).update(
                    {k: v for k, v in value.items() if not k.startswith('_')})
            elif hasattr(cfg, key):
                setattr(cfg, key, value)
        return cfg
