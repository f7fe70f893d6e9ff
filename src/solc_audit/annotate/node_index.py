"""AST node to source line index."""
from __future__ import annotations

from collections.abc import Iterable

__all__ = ["NodeLineIndex"]


class NodeLineIndex:
    """Lookups between AST node ids and 1-based source lines.

    Built once from the ``(line, column, node_id)`` triples of the displayed source. The first
    triple of a node by source position decides its line.
    """

    __slots__ = ("_line_by_node", "_nodes_by_line")

    def __init__(self, triples: Iterable[tuple[int, int, int]] = ()) -> None:
        self._line_by_node: dict[int, int] = {}
        self._nodes_by_line: dict[int, list[int]] = {}
        for entry in sorted(self._valid(triples), key=lambda t: (t[0], t[1])):
            line, _column, node_id = entry
            self._line_by_node.setdefault(node_id, line)
            nodes = self._nodes_by_line.setdefault(line, [])
            if node_id not in nodes:
                nodes.append(node_id)

    @staticmethod
    def _valid(triples: Iterable[tuple[int, int, int]]) -> list[tuple[int, int, int]]:
        valid: list[tuple[int, int, int]] = []
        for entry in triples:
            if len(entry) != 3 or not all(isinstance(v, int) and not isinstance(v, bool) for v in entry):
                continue
            if entry[0] < 1:
                continue
            valid.append(entry)
        return valid

    def line_of(self, node_id: int | None) -> int | None:
        if node_id is None:
            return None
        return self._line_by_node.get(node_id)

    def nodes_on_line(self, line: int) -> tuple[int, ...]:
        return tuple(self._nodes_by_line.get(line, ()))

    def __len__(self) -> int:
        return len(self._line_by_node)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._line_by_node
