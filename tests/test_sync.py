"""Tests for sync module."""
import json
import os
import sys

# Support running tests both with pytest (installed package) and standalone
try:
    from tex2html_live import sync
except ImportError:
    sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))
    from tex2html_live import sync
from tex2html_live.anchors import Anchor
from tex2html_live.config import Config
from tex2html_live.resolve_tex import LineMap


class FakeClock:
    """Manually advanced clock, in seconds like time.monotonic."""

    def __init__(self):
        self.t = 0.0

    def __call__(self):
        return self.t

    def at_ms(self, ms):
        self.t = ms / 1000.0


ANCHORS = [
    Anchor('syncline', None, 2),
    Anchor('llmark', 'a', 3),
    Anchor('llmark', 'b', 10),
    Anchor('syncline', None, 11),
    Anchor('llmark', 'c', 20),
]


def _session(line_map=None, locate=None):
    clock = FakeClock()
    messages = []
    scrolls = []
    session = sync.SyncSession(
        line_map=line_map, clock=clock, publish=messages.append, locate=locate,
        scroller=lambda mark_id, top, mode: scrolls.append((mark_id, top, mode)))
    session.load(ANCHORS)
    return session, clock, messages, scrolls


def _positions(messages):
    return [m for m in messages if m['type'] == 'position-changed']


class TestTimings:
    def test_from_config(self):
        config = Config()
        config.dwell_ms = 200
        timings = sync.SyncTimings.from_config(config)
        assert timings.dwell_ms == 200
        assert timings.echo_window_ms == 450

    def test_diagram_timeout_from_server_wait(self):
        config = Config()
        config.diagram_wait = 5
        timings = sync.SyncTimings.from_config(config)
        assert timings.diagram_timeout_ms == 5000
        assert timings.to_dict()['diagramTimeoutMs'] == 5000
        assert sync.SyncTimings.from_config(Config()).diagram_timeout_ms == 20000

    def test_json_uses_page_names(self):
        data = json.loads(sync.SyncTimings().to_json())
        assert data['dwellMs'] == 140
        assert data['bandTop'] == 0.12
        assert set(data) == {js for _, js in sync.SyncTimings.FIELDS}


class TestLoad:
    def test_only_llmarks_are_marks(self):
        session, _, _, _ = _session()
        assert [m.id for m in session.marks] == ['a', 'b', 'c']

    def test_synthetic_mark(self):
        session = sync.SyncSession()
        session.load([Anchor('syncline', None, 4), Anchor('syncline', None, 5)])
        assert session.marks == [Anchor('llmark', sync.SYNTHETIC_ID, 4)]
        assert session.real_marks() == []

    def test_synthetic_mark_empty_page(self):
        session = sync.SyncSession()
        session.load([])
        assert session.marks[0].line == 1

    def test_load_resets_state(self):
        session, clock, _, _ = _session()
        session.observe({'b': 1.0})
        clock.at_ms(200)
        session.tick()
        assert session.active_id == 'b'
        session.load(ANCHORS)
        assert session.active_id is None
        assert session.suppress_emit_until == 0.0


class TestPreviewToEditor:
    def test_dwell(self):
        session, clock, messages, _ = _session()
        session.observe({'b': 0.5})
        assert messages == []
        clock.at_ms(100)
        assert session.tick() is False
        clock.at_ms(150)
        assert session.tick() is True
        assert messages == [
            {'type': 'move-caret', 'line': 10, 'markId': 'b'},
            {'type': 'position-changed', 'markId': 'b', 'originalLine': 10},
        ]
        assert session.active_id == 'b'

    def test_candidate_change_restarts_dwell(self):
        session, clock, messages, _ = _session()
        session.observe({'a': 1.0})
        clock.at_ms(100)
        session.observe({'c': 1.0})
        clock.at_ms(150)
        session.tick()
        assert messages == []
        clock.at_ms(250)
        session.tick()
        assert _positions(messages)[0]['markId'] == 'c'

    def test_one_position_per_echo_window(self):
        session, clock, messages, _ = _session()
        for t in range(0, 450, 10):
            clock.at_ms(t)
            session.observe({'b': 1.0} if t <= 140 else {'a': 0.4, 'c': 0.9})
        assert len(_positions(messages)) == 1
        assert session.active_id == 'b'

    def test_active_mark_not_reemitted(self):
        session, clock, messages, _ = _session()
        session.observe({'b': 1.0})
        clock.at_ms(150)
        session.tick()
        clock.at_ms(1000)
        session.observe({'b': 1.0})
        clock.at_ms(2000)
        session.tick()
        assert len(_positions(messages)) == 1

    def test_tie_goes_to_later_mark(self):
        session, _, _, _ = _session()
        assert session.best_candidate({'a': 0.5, 'b': 0.51}) == 'b'
        assert session.best_candidate({'a': 0.51, 'b': 0.5}) == 'b'
        assert session.best_candidate({'a': 0.6, 'b': 0.5}) == 'a'
        assert session.best_candidate({'a': 0.0}) is None
        assert session.best_candidate({}) is None

    def test_original_line_through_map(self):
        line_map = LineMap([1, 10, 20], [1] * 9 + [2] * 10 + [3])
        session, clock, messages, _ = _session(line_map)
        session.observe({'c': 1.0})
        clock.at_ms(200)
        session.tick()
        assert messages[0] == {'type': 'move-caret', 'line': 3, 'markId': 'c'}


class TestEditorToPreview:
    def test_scroll_to_line(self):
        session, clock, _, scrolls = _session()
        session.scroll_to_line(12)
        clock.at_ms(100)
        session.scroll_to_line(1)
        clock.at_ms(200)
        session.scroll_to_line(99)
        assert [s[0] for s in scrolls] == ['b', 'a', 'c']
        assert scrolls[0] == ('b', 10.0, 'center')

    def test_scroll_to_line_through_map(self):
        line_map = LineMap([1, 10, 20], [1] * 9 + [2] * 10 + [3])
        session, _, _, scrolls = _session(line_map)
        session.scroll_to_line(2)
        assert scrolls[0][0] == 'b'

    def test_scroll_without_real_marks(self):
        scrolls = []
        session = sync.SyncSession(
            clock=FakeClock(), scroller=lambda mark_id, top, mode: scrolls.append(mark_id))
        session.load([Anchor('syncline', None, 4)])
        assert session.scroll_to_line(10) is True
        assert scrolls == [sync.SYNTHETIC_ID]

    def test_unknown_mark(self):
        session, _, _, scrolls = _session()
        assert session.jump_to_mark('nope') is False
        assert session.select_outline('nope') is False
        assert scrolls == []

    def test_echo_ignored(self):
        session, clock, _, scrolls = _session()
        session.observe({'b': 1.0})
        clock.at_ms(150)
        session.tick()
        clock.at_ms(300)
        assert session.jump_to_mark('b') is False
        assert session.jump_to_mark('c') is True
        clock.at_ms(700)
        assert session.jump_to_mark('b') is True
        assert [s[0] for s in scrolls] == ['c', 'b']

    def test_jump_suppresses_emission(self):
        session, clock, messages, _ = _session()
        session.jump_to_mark('c')
        clock.at_ms(100)
        session.observe({'a': 1.0})
        clock.at_ms(300)
        session.tick()
        assert messages == []
        assert session.active_id == 'c'

    def test_scroll_dedupe(self):
        session, clock, _, scrolls = _session()
        clock.at_ms(1000)
        assert session.jump_to_mark('c') is True
        clock.at_ms(1020)
        assert session.jump_to_mark('c') is False
        clock.at_ms(1100)
        assert session.jump_to_mark('c') is True
        assert len(scrolls) == 2

    def test_dedupe_respects_tolerance(self):
        tops = {'c': 500.0}
        session, clock, _, scrolls = _session(locate=lambda mark_id: tops[mark_id])
        session.jump_to_mark('c')
        tops['c'] = 540.0
        clock.at_ms(10)
        assert session.jump_to_mark('c') is True
        assert [s[1] for s in scrolls] == [500.0, 540.0]

    def test_select_outline(self):
        session, clock, messages, scrolls = _session()
        assert session.select_outline('c') is True
        assert scrolls == [('c', 20.0, 'start')]
        assert _positions(messages) == [
            {'type': 'position-changed', 'markId': 'c', 'originalLine': 20}]
        # the host echoes the caret move back
        clock.at_ms(100)
        assert session.jump_to_mark('c') is False
        session.observe({'a': 1.0})
        clock.at_ms(300)
        session.tick()
        assert len(_positions(messages)) == 1


if __name__ == '__main__':
    import pytest
    pytest.main([__file__, '-v'])
