#!/usr/bin/env python3
"""
Standalone runner for latex-live-preview.

No pip install required, just run:

  python3 livepreview.py paper/main.tex -o preview.html

This script adds src/ to the Python path and invokes the package CLI.
For pip-installed usage, use the `livepreview` command directly.
"""
import os
import sys

# Add src/ directory to path so tex2html_live package can be imported
_ROOT = os.path.dirname(os.path.abspath(__file__))
_SRC = os.path.join(_ROOT, 'src')
if _SRC not in sys.path:
    sys.path.insert(0, _SRC)

from tex2html_live.cli import main

if __name__ == '__main__':
    main()
