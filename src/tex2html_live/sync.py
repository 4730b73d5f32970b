"""
sync.py - Preview/editor scroll synchronization model

The page script (data/sync.js) and SyncSession implement the same state
machine. SyncSession is the reference: the clock, the outgoing message
callback and the scroll primitive are injected, so every guard can be
exercised without a browser.

State:
  active      id of the mark the preview currently reports
  candidate   best visible mark waiting out the dwell time
  echo        (id, expires_at): inbound scrolls to id are ignored until then
  suppress    outgoing emission is muted until this deadline
  last scroll (id, top, at) used to drop duplicate scroll requests

All times are milliseconds.
"""

import json
import time

from .anchors import Anchor


SYNTHETIC_ID = 'doc-start'


class SyncTimings:
    """Timing constants shared by the model and the page script."""

    FIELDS = (
        ('band_top', 'bandTop'),
        ('band_bottom', 'bandBottom'),
        ('dwell_ms', 'dwellMs'),
        ('ratio_epsilon', 'ratioEpsilon'),
        ('echo_window_ms', 'echoWindowMs'),
        ('suppress_emit_ms', 'suppressEmitMs'),
        ('scroll_dedupe_ms', 'scrollDedupeMs'),
        ('scroll_tolerance_px', 'scrollTolerancePx'),
        ('diagram_timeout_ms', 'diagramTimeoutMs'),
    )

    def __init__(self, band_top=0.12, band_bottom=0.70, dwell_ms=140,
                 ratio_epsilon=0.015, echo_window_ms=450, suppress_emit_ms=350,
                 scroll_dedupe_ms=50, scroll_tolerance_px=1.0,
                 diagram_timeout_ms=20000):
        self.band_top = band_top
        self.band_bottom = band_bottom
        self.dwell_ms = dwell_ms
        self.ratio_epsilon = ratio_epsilon
        self.echo_window_ms = echo_window_ms
        self.suppress_emit_ms = suppress_emit_ms
        self.scroll_dedupe_ms = scroll_dedupe_ms
        self.scroll_tolerance_px = scroll_tolerance_px
        self.diagram_timeout_ms = diagram_timeout_ms

    @classmethod
    def from_config(cls, config):
        values = {name: getattr(config, name) for name, _ in cls.FIELDS
                  if name != 'diagram_timeout_ms'}
        # the page gives up on a diagram when the server side does
        values['diagram_timeout_ms'] = int(config.diagram_wait * 1000)
        return cls(**values)

    def to_dict(self):
        return {js: getattr(self, name) for name, js in self.FIELDS}

    def to_json(self):
        return json.dumps(self.to_dict())


class SyncSession:
    """Scroll sync state for one loaded document.

    Args:
        line_map: resolve_tex.LineMap, or None for identity numbering.
        timings: SyncTimings.
        clock: callable returning seconds (time.monotonic by default).
        publish: callable(message_dict) for core -> host messages.
        locate: callable(mark_id) -> scroll top in px; defaults to the
            mark's merged line.
        scroller: callable(mark_id, top, mode) performing the scroll.
    """

    def __init__(self, line_map=None, timings=None, clock=None, publish=None,
                 locate=None, scroller=None):
        self.line_map = line_map
        self.timings = timings or SyncTimings()
        self.clock = clock or time.monotonic
        self.publish = publish or (lambda message: None)
        self.locate = locate
        self.scroller = scroller or (lambda mark_id, top, mode: None)
        self.marks = []
        self._index = {}
        self.reset()

    def reset(self):
        self.active_id = None
        self.candidate_id = None
        self.candidate_deadline = 0.0
        self.echo_id = None
        self.echo_until = 0.0
        self.suppress_emit_until = 0.0
        self.last_scroll = None

    def now(self):
        return self.clock() * 1000.0

    # ------------------------------------------------------------------
    # document
    # ------------------------------------------------------------------
    def load(self, anchors):
        """Take the anchors of a freshly rendered page and reset all state.

        Without a heading or \\llmark, a synthetic mark sits on the first
        syncline (or line 1).
        """
        self.reset()
        self.marks = [a for a in anchors if a.kind == 'llmark']
        if not self.marks:
            lines = [a.line for a in anchors if a.kind == 'syncline']
            self.marks = [Anchor('llmark', SYNTHETIC_ID, lines[0] if lines else 1)]
        self._index = {m.id: pos for pos, m in enumerate(self.marks)}

    def real_marks(self):
        return [m for m in self.marks if m.id != SYNTHETIC_ID]

    def mark(self, mark_id):
        pos = self._index.get(mark_id)
        return None if pos is None else self.marks[pos]

    def original_line(self, mark):
        if self.line_map is None:
            return mark.line
        return self.line_map.to_orig(mark.line)

    # ------------------------------------------------------------------
    # preview -> editor
    # ------------------------------------------------------------------
    def best_candidate(self, ratios):
        """Highest visible ratio; within epsilon the later mark wins."""
        best = None
        best_ratio = -1.0
        eps = self.timings.ratio_epsilon
        for mark in self.marks:
            ratio = ratios.get(mark.id, 0.0)
            if ratio <= 0:
                continue
            if ratio > best_ratio + eps or abs(ratio - best_ratio) <= eps:
                best = mark.id
                best_ratio = ratio
        return best

    def observe(self, ratios):
        """Feed band visibility ratios ({mark_id: ratio}) from the page."""
        now = self.now()
        if now < self.suppress_emit_until:
            return
        best = self.best_candidate(ratios)
        if best is None or best == self.active_id:
            self.candidate_id = None
            return
        if best != self.candidate_id:
            self.candidate_id = best
            self.candidate_deadline = now + self.timings.dwell_ms
        self.tick()

    def tick(self):
        """Accept the pending candidate once its dwell time has passed."""
        now = self.now()
        if self.candidate_id is None or now < self.suppress_emit_until:
            return False
        if now < self.candidate_deadline:
            return False
        mark_id = self.candidate_id
        self.candidate_id = None
        self._accept(mark_id, now)
        return True

    def _accept(self, mark_id, now):
        mark = self.mark(mark_id)
        if mark is None:
            return
        self.active_id = mark_id
        self.echo_id = mark_id
        self.echo_until = now + self.timings.echo_window_ms
        self._emit(mark)
        self.suppress_emit_until = now + self.timings.suppress_emit_ms

    def _emit(self, mark):
        line = self.original_line(mark)
        self.publish({'type': 'move-caret', 'line': line, 'markId': mark.id})
        self.publish({'type': 'position-changed', 'markId': mark.id, 'originalLine': line})

    # ------------------------------------------------------------------
    # editor -> preview
    # ------------------------------------------------------------------
    def scroll_to_line(self, orig_line, mode='center'):
        """Scroll to the last real mark at or before an original line."""
        real = self.real_marks()
        if not real:
            return self.jump_to_mark(self.marks[0].id, mode) if self.marks else False
        if self.line_map is None:
            merged = int(orig_line)
        else:
            merged = self.line_map.to_merged(orig_line)
        target = real[0]
        for mark in real:
            if mark.line > merged:
                break
            target = mark
        return self.jump_to_mark(target.id, mode)

    def scroll_to_mark(self, mark_id, mode='center'):
        return self.jump_to_mark(mark_id, mode)

    def jump_to_mark(self, mark_id, mode='center'):
        """Programmatic scroll to a mark; returns False when ignored."""
        mark = self.mark(mark_id)
        if mark is None:
            return False
        now = self.now()
        if mark_id == self.echo_id and now < self.echo_until:
            return False
        self.suppress_emit_until = now + self.timings.suppress_emit_ms
        self.active_id = mark_id
        self.candidate_id = None
        return self._scroll(mark, mode, now)

    def select_outline(self, mark_id):
        """User picked a heading in the outline: scroll and tell the editor."""
        mark = self.mark(mark_id)
        if mark is None:
            return False
        now = self.now()
        self.suppress_emit_until = now + self.timings.suppress_emit_ms
        self.echo_id = mark_id
        self.echo_until = now + self.timings.echo_window_ms
        self.active_id = mark_id
        self.candidate_id = None
        self._scroll(mark, 'start', now)
        self._emit(mark)
        return True

    def _scroll(self, mark, mode, now):
        top = float(self.locate(mark.id)) if self.locate else float(mark.line)
        last = self.last_scroll
        if last is not None and last[0] == mark.id \
                and abs(top - last[1]) <= self.timings.scroll_tolerance_px \
                and now - last[2] < self.timings.scroll_dedupe_ms:
            return False
        self.last_scroll = (mark.id, top, now)
        self.scroller(mark.id, top, mode)
        return True
