"""Node to line index tests."""
from __future__ import annotations

from solc_audit.annotate import NodeLineIndex


def test_first_occurrence_by_position_decides_line():
    index = NodeLineIndex([(5, 2, 7), (3, 9, 7), (3, 1, 8)])

    assert index.line_of(7) == 3
    assert index.nodes_on_line(3) == (8, 7)
    assert index.nodes_on_line(5) == (7,)


def test_unknown_and_missing_nodes():
    index = NodeLineIndex([(1, 0, 1)])

    assert index.line_of(2) is None
    assert index.line_of(None) is None
    assert index.nodes_on_line(9) == ()
    assert 1 in index
    assert 2 not in index


def test_invalid_triples_are_skipped():
    index = NodeLineIndex([(0, 0, 1), (2, 0), (2, "x", 3), (True, 0, 4), (4, 0, 5)])

    assert len(index) == 1
    assert index.line_of(5) == 4
