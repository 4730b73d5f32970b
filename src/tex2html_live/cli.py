#!/usr/bin/env python3
"""
cli.py - LaTeX live preview from the command line

Renders a .tex file into a self-contained preview page (MathJax 3, line
anchors, scroll sync script):

  livepreview paper/main.tex -o paper/preview.html

Keep the page up to date while editing:

  livepreview paper/main.tex -o preview.html --watch

Under the hood it chains:
  1. resolve_tex  - inline \\input/\\include, build the line map
  2. tex2html     - convert the LaTeX subset to HTML
  3. assemble     - fill the page skeleton

Options can also come from a config JSON (--config).
"""

import argparse
import json
import os
import sys
import time

from . import __version__
from .assemble import die, read_file, validate_output
from .config import Config
from .diagrams import DiagramQueue
from .pdf_export import compile_pdf
from .preview import PreviewSession


# ============================================================================
# HELPERS
# ============================================================================
def load_config(args):
    if args.config:
        if not os.path.isfile(args.config):
            die(f"Config file not found: {args.config}")
        try:
            config = Config.from_json(args.config)
        except (ValueError, IOError, OSError) as e:
            die(f"Cannot load config {args.config}: {e}")
        print(f"  Loaded config: {args.config}", file=sys.stderr)
    else:
        config = Config()

    # CLI overrides
    if args.stride is not None:
        config.anchor_stride = args.stride
    if args.cache_dir:
        config.diagram_cache_dir = args.cache_dir
    if args.render_diagrams:
        config.render_diagrams = True
    return config


def write_output(path, text):
    output_dir = os.path.dirname(path)
    if output_dir and not os.path.isdir(output_dir):
        os.makedirs(output_dir, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        f.write(text)


def watched_files(main_tex):
    """Files whose modification triggers a re-render."""
    base_dir = os.path.dirname(main_tex)
    paths = [main_tex]
    for root, _, names in os.walk(base_dir):
        for name in names:
            if name.endswith(('.tex', '.sty')):
                paths.append(os.path.join(root, name))
    return sorted(set(paths))


def snapshot(paths):
    stamps = {}
    for path in paths:
        try:
            stamps[path] = os.path.getmtime(path)
        except OSError:
            stamps[path] = None
    return stamps


# ============================================================================
# MAIN FLOW
# ============================================================================
def run(args):
    """Main execution flow."""
    main_tex = os.path.abspath(args.main_tex)
    output_path = os.path.abspath(args.output or os.path.splitext(main_tex)[0] + '.html')
    base_dir = os.path.dirname(main_tex)

    print(f"{'=' * 60}", file=sys.stderr)
    print(f"livepreview: LaTeX → HTML Live Preview", file=sys.stderr)
    print(f"{'=' * 60}", file=sys.stderr)

    config = load_config(args)
    diagrams = DiagramQueue.from_config(config) if config.render_diagrams else None
    state = {'count': 0}
    ok = False

    def on_render(result):
        write_output(output_path, result.html)
        if args.maps:
            write_output(args.maps, json.dumps(result.line_map.to_dict()))
        state['count'] += 1
        print(f"  [{time.strftime('%H:%M:%S')}] Wrote {output_path} "
              f"({result.line_map.original_lines} source lines)", file=sys.stderr)

    session = PreviewSession(base_dir, config, on_render=on_render,
                             diagrams=diagrams, main_path=main_tex)

    def render(text):
        session.text_changed(text)
        result = session.flush()
        if result is not None and diagrams is not None and result.diagram_keys:
            print(f"  Rendering {len(result.diagram_keys)} diagram(s)...", file=sys.stderr)
            for key in result.diagram_keys:
                diagrams.request(key, timeout=config.diagram_timeout * 2)
            result = session.flush()
        return result

    try:
        print(f"\n[1/2] Rendering {main_tex}...", file=sys.stderr)
        text = read_file(main_tex, "Main file")
        result = render(text)
        ok = validate_output(result.html) if result is not None else False

        if args.pdf:
            print(f"\n[2/2] Compiling PDF...", file=sys.stderr)
            if compile_pdf(text, os.path.abspath(args.pdf), args.cache_dir, base_dir=base_dir):
                print(f"  PDF written to: {args.pdf}", file=sys.stderr)
            else:
                print("  WARNING: PDF export failed", file=sys.stderr)
                ok = False

        if args.watch:
            print(f"\nWatching {base_dir} (Ctrl+C to stop)...", file=sys.stderr)
            paths = watched_files(main_tex)
            stamps = snapshot(paths)
            while True:
                time.sleep(args.interval)
                paths = watched_files(main_tex)
                current = snapshot(paths)
                if current != stamps:
                    stamps = current
                    try:
                        render(read_file(main_tex, "Main file"))
                    except (IOError, OSError) as e:
                        print(f"  WARNING: {e}", file=sys.stderr)
    except KeyboardInterrupt:
        print("\nStopped.", file=sys.stderr)
    finally:
        session.close()
        if diagrams is not None:
            diagrams.close()

    print(f"\n{'=' * 60}", file=sys.stderr)
    print(f"DONE ({state['count']} render(s))", file=sys.stderr)
    print(f"  Output: {output_path}", file=sys.stderr)
    print(f"{'=' * 60}", file=sys.stderr)
    if not args.watch and not ok:
        print("\nCompleted with warnings. Please review.", file=sys.stderr)
        sys.exit(2)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog='livepreview',
        description='LaTeX → HTML live preview with editor line sync',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Render once
  %(prog)s paper/main.tex -o paper/preview.html

  # Re-render on every save, with a line map for the editor plugin
  %(prog)s paper/main.tex -o preview.html --watch --maps preview.map.json

  # Anchor every 5th line, render TikZ diagrams to SVG
  %(prog)s paper/main.tex --stride 5 --render-diagrams --cache-dir .preview-cache

  # Also compile a PDF (tectonic, xelatex or pdflatex)
  %(prog)s paper/main.tex --pdf paper/main.pdf
""")

    parser.add_argument(
        'main_tex',
        help='Path to the .tex file to preview')
    parser.add_argument(
        '-o', '--output',
        help='Output HTML file (default: next to main_tex with .html)')
    parser.add_argument(
        '--config', '-f',
        help='Optional config JSON (sync timings, palette, environments, ...)')
    parser.add_argument(
        '--stride', type=int, default=None,
        help='Line anchor stride; 0 disables line anchors (default: 1)')
    parser.add_argument(
        '--maps',
        help='Also write the line maps (origToMerged/mergedToOrig) as JSON')
    parser.add_argument(
        '--pdf',
        help='Also compile a PDF to this path')
    parser.add_argument(
        '--cache-dir',
        help='Directory for the diagram SVG cache and PDF build files')
    parser.add_argument(
        '--render-diagrams', action='store_true',
        help='Render tikzpicture/tikzcd to inline SVG (needs pdflatex + dvisvgm/pdf2svg)')
    parser.add_argument(
        '--watch', action='store_true',
        help='Keep running and re-render when .tex files change')
    parser.add_argument(
        '--interval', type=float, default=1.0,
        help='Polling interval in seconds for --watch (default: 1.0)')
    parser.add_argument(
        '--version', action='version', version=f'%(prog)s {__version__}')
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    if not os.path.isfile(args.main_tex):
        die(f"File not found: {args.main_tex}")
    if args.stride is not None and args.stride < 0:
        die("--stride must be 0 or positive")
    if args.interval <= 0:
        die("--interval must be positive")

    run(args)


if __name__ == '__main__':
    main()
