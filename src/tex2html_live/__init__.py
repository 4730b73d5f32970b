"""tex2html_live - LaTeX to HTML Live Preview

Transpiles a LaTeX subset into a MathJax 3 preview page and keeps the
editor and the preview scrolled to the same place through line anchors.
"""

__version__ = "1.0.0"
