"""
pdf_export.py - Compile the edited source to PDF

Tries the engines in ENGINES order (tectonic, xelatex, pdflatex) and
returns a plain success flag. All failures are reported on stderr.
"""

import os
import shutil
import subprocess
import sys
import tempfile


ENGINES = ('tectonic', 'xelatex', 'pdflatex')

JOB_NAME = 'preview'


def find_engine(engines=ENGINES):
    """Return (name, path) of the first available engine, or None."""
    for name in engines:
        path = shutil.which(name)
        if path:
            return name, path
    return None


def _command(name, path, tex_path, outdir):
    if name == 'tectonic':
        return [path, '--outdir', outdir, tex_path]
    return [path, '-interaction=nonstopmode', '-halt-on-error',
            '-output-directory', outdir, tex_path]


def _run(command, cwd, env, timeout):
    try:
        return subprocess.run(command, capture_output=True, text=True,
                              timeout=timeout, cwd=cwd, env=env)
    except subprocess.TimeoutExpired:
        print(f"  WARNING: {os.path.basename(command[0])} timed out after {timeout}s",
              file=sys.stderr)
    except OSError as e:
        print(f"  WARNING: Cannot run {command[0]}: {e}", file=sys.stderr)
    return None


def compile_pdf(source, output_path, cache_path=None, timeout=120, base_dir=None):
    """Compile LaTeX source into output_path.

    Args:
        source: Complete LaTeX document.
        output_path: Where the PDF is written.
        cache_path: Directory kept between runs (engine cache and aux
            files); a temporary directory is used if None.
        timeout: Seconds allowed per engine run.
        base_dir: Directory searched for includes and images.

    Returns:
        True if a PDF was written.
    """
    engine = find_engine()
    if engine is None:
        print("  WARNING: No LaTeX engine found (tried %s)" % ', '.join(ENGINES), file=sys.stderr)
        return False
    name, path = engine

    env = dict(os.environ)
    if base_dir:
        # trailing separator keeps the default search path
        env['TEXINPUTS'] = os.path.abspath(base_dir) + os.pathsep
    if cache_path and name == 'tectonic':
        env['TECTONIC_CACHE_DIR'] = os.path.join(cache_path, 'tectonic')

    with tempfile.TemporaryDirectory(prefix='livepreview_') as tmpdir:
        workdir = tmpdir
        if cache_path:
            workdir = os.path.join(cache_path, 'build')
            try:
                os.makedirs(workdir, exist_ok=True)
            except OSError as e:
                print(f"  WARNING: Cannot create cache directory {workdir}: {e}", file=sys.stderr)
                workdir = tmpdir

        tex_path = os.path.join(workdir, JOB_NAME + '.tex')
        pdf_path = os.path.join(workdir, JOB_NAME + '.pdf')
        try:
            with open(tex_path, 'w', encoding='utf-8') as f:
                f.write(source)
            if os.path.exists(pdf_path):
                os.remove(pdf_path)
        except (IOError, OSError) as e:
            print(f"  WARNING: Cannot write {tex_path}: {e}", file=sys.stderr)
            return False

        command = _command(name, path, tex_path, workdir)
        result = _run(command, workdir, env, timeout)
        if result is not None and name != 'tectonic' and 'Rerun to get' in (result.stdout or ''):
            result = _run(command, workdir, env, timeout)
        if result is None:
            return False

        if result.returncode != 0 or not os.path.isfile(pdf_path):
            tail = (result.stdout or result.stderr or 'no output')[-300:]
            print(f"  WARNING: {name} failed: {tail}", file=sys.stderr)
            return False

        try:
            out_dir = os.path.dirname(os.path.abspath(output_path))
            os.makedirs(out_dir, exist_ok=True)
            shutil.copyfile(pdf_path, output_path)
        except (IOError, OSError) as e:
            print(f"  WARNING: Cannot write {output_path}: {e}", file=sys.stderr)
            return False
    return True
