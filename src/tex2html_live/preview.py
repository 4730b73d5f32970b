"""
preview.py - Debounced live-preview session

Glue between a host editor and the transpiler. Edits arrive through
text_changed() (or a "text-changed" message); each one restarts a
threading.Timer, and only the newest generation of the text is published
through on_render. Diagram requests run on worker threads and come back
through on_message as "diagram-result" messages.
"""

import sys
import threading

from .config import Config
from .diagrams import DiagramQueue, DiagramResult, result_message
from .tex2html import render_source


class PreviewSession:
    """One editor buffer being previewed.

    Args:
        base_dir: Directory for includes and images.
        config: Config instance.
        on_render: callable(RenderResult), called for every published render.
        on_message: callable(dict) for core -> host messages.
        diagrams: DiagramQueue; created from config when render_diagrams is
            set and none is given.
        timer_factory: threading.Timer compatible factory.
        main_path: Path of the edited file, for include cycle detection.
    """

    def __init__(self, base_dir=None, config=None, on_render=None, on_message=None,
                 diagrams=None, timer_factory=threading.Timer, main_path=None):
        self.base_dir = base_dir
        self.config = config or Config()
        self.on_render = on_render or (lambda result: None)
        self.on_message = on_message or (lambda message: None)
        self._owns_diagrams = diagrams is None and self.config.render_diagrams
        if self._owns_diagrams:
            diagrams = DiagramQueue.from_config(self.config)
        self.diagrams = diagrams
        self.timer_factory = timer_factory
        self.main_path = main_path
        self.generation = 0
        self.last_result = None
        self._text = ''
        self._timer = None
        self._lock = threading.Lock()

    def text_changed(self, text):
        """Record an edit and (re)start the debounce timer."""
        with self._lock:
            self._text = text or ''
            self.generation += 1
            generation = self.generation
            if self._timer is not None:
                self._timer.cancel()
            self._timer = self.timer_factory(
                self.config.debounce_ms / 1000.0, self._render, args=(generation,))
            self._timer.daemon = True
            self._timer.start()
        return generation

    def flush(self):
        """Render the current text now, skipping the pending timer."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            generation = self.generation
        return self._render(generation)

    def _render(self, generation):
        with self._lock:
            if generation != self.generation:
                return None
            text = self._text
        result = render_source(text, self.base_dir, self.config, self.diagrams, self.main_path)
        with self._lock:
            # a newer edit arrived while rendering
            if generation != self.generation:
                return None
            self.last_result = result
        if self.diagrams is not None:
            # only the diagrams on the published page can still be requested
            self.diagrams.prune(result.diagram_keys)
        self.on_render(result)
        return result

    # ------------------------------------------------------------------
    # messages
    # ------------------------------------------------------------------
    def handle_message(self, message):
        """Dispatch one host -> core message. Returns False if it was ignored."""
        kind = message.get('type') if isinstance(message, dict) else None
        if kind == 'text-changed':
            self.text_changed(message.get('text', ''))
        elif kind == 'diagram-render':
            key = message.get('key')
            if not key:
                print("  WARNING: diagram-render message without key", file=sys.stderr)
                return False
            threading.Thread(target=self.render_diagram, args=(key,),
                             name='diagram-request', daemon=True).start()
        elif kind == 'clear-cache':
            if self.diagrams is not None:
                result = self.last_result
                self.diagrams.clear(result.diagram_keys if result is not None else ())
        else:
            print(f"  WARNING: Ignoring unknown message type: {kind!r}", file=sys.stderr)
            return False
        return True

    def render_diagram(self, key):
        if self.diagrams is None:
            result = DiagramResult(key, False, None, 'diagram rendering is disabled')
        else:
            result = self.diagrams.request(key)
        self.on_message(result_message(result))
        return result

    def request_scroll(self, original_line=None, mark_id=None, mode='center'):
        """Ask the page to scroll to an original line or a mark."""
        message = {'type': 'scroll-to', 'mode': mode}
        if mark_id is not None:
            message['markId'] = mark_id
        else:
            message['originalLine'] = int(original_line or 1)
        self.on_message(message)
        return message

    def close(self):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        if self._owns_diagrams and self.diagrams is not None:
            self.diagrams.close()
