"""Report generator - JSON and Markdown output of an annotated function."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from ..annotate import RISK_RANK, AnnotatedLine, RiskLevel, VarDiff, check_level
from ..model import FunctionSummary, PathTrace

if TYPE_CHECKING:
    from ..session import AuditSession

__all__ = ["FunctionView", "ReportGenerator"]


@dataclass(slots=True)
class FunctionView:
    """Everything a report shows about one function, captured from a session."""

    function_name: str
    lines: list[AnnotatedLine] = field(default_factory=list)
    paths: list[PathTrace] = field(default_factory=list)
    risk_summary: dict[str, int] = field(default_factory=dict)
    selected_path: int | None = None
    step_diffs: list[list[VarDiff]] = field(default_factory=list)
    summary: FunctionSummary | None = None

    @classmethod
    def from_session(cls, session: AuditSession) -> FunctionView:
        analysis = session.function_analysis()
        path_index = session.state.path_index
        function_id = session.state.function_id
        results = session.analysis
        return cls(
            function_name=analysis.function_name if analysis is not None else str(session.state.function_id),
            lines=session.annotated_lines(),
            paths=list(session.paths() or ()),
            risk_summary=session.risk_summary(),
            selected_path=path_index,
            step_diffs=session.step_diffs() if path_index is not None else [],
            summary=results.summary(function_id) if results is not None and function_id is not None else None,
        )


class ReportGenerator:
    _LEVEL_WEIGHTS: dict[RiskLevel, int] = {
        RiskLevel.RED: 10,
        RiskLevel.ORANGE: 3,
        RiskLevel.BLUE: 1,
        RiskLevel.GREEN: 0,
        RiskLevel.NONE: 0,
    }

    def __init__(self, contract_name: str = "unknown") -> None:
        self.contract_name = contract_name

    @staticmethod
    def _risky_lines(view: FunctionView) -> list[AnnotatedLine]:
        risky = [line for line in view.lines if line.risk is not None]
        return sorted(risky, key=lambda line: (RISK_RANK[line.risk.level], line.number))

    def _risk_profile(self, view: FunctionView) -> dict[str, Any]:
        risky = self._risky_lines(view)
        levels = {level.value: 0 for level in RiskLevel if level is not RiskLevel.NONE}
        for line in risky:
            if line.risk.level is not RiskLevel.NONE:
                levels[line.risk.level.value] += 1
        overall = risky[0].risk.level if risky else RiskLevel.NONE
        return {
            "overall_max_level": overall.value,
            "lines_by_level": levels,
            "weighted_score": sum(self._LEVEL_WEIGHTS[line.risk.level] for line in risky),
            "checks": {
                check: {"count": count, "level": check_level(check).value}
                for check, count in sorted(view.risk_summary.items())
            },
        }

    @staticmethod
    def _line_to_dict(line: AnnotatedLine) -> dict[str, Any]:
        return {
            "line": line.number,
            "text": line.text,
            "risk": line.risk.to_dict() if line.risk is not None else None,
            "ranges": [
                {"var": item.var_name, "kind": item.kind.value, "from": item.previous, "to": item.domain}
                for item in line.ranges
            ],
            "badge": {"text": line.badge.text, "kind": line.badge.badge.value} if line.badge is not None else None,
        }

    @staticmethod
    def _path_to_dict(path: PathTrace) -> dict[str, Any]:
        return {
            "index": path.index,
            "exit": path.exit.value,
            "feasible": path.feasible,
            "steps": len(path.steps),
            "constraints": path.constraint_count,
            "arith_checks": [
                {"op_node": check.op_node, "check": check.check, "severity": check.severity, "bound": check.bound}
                for check in path.arith_checks
            ],
            "inlined_calls": [
                {"callee": call.callee_name, "call_node": call.call_node, "paths": call.callee_paths}
                for call in path.inlined_calls
            ],
        }

    @staticmethod
    def _domains_to_dict(summary: FunctionSummary) -> dict[str, Any]:
        return {
            "params": {str(index): bound.render() for index, bound in summary.param_ranges},
            "return": summary.return_range.render() if summary.return_range is not None else None,
            "state_writes": {write.var_name: write.bound.render() for write in summary.state_writes},
        }

    def to_dict(self, view: FunctionView) -> dict[str, Any]:
        """Serialize an annotated function into a structured report dictionary."""
        annotated = [line for line in view.lines if line.risk or line.ranges or line.badge]
        report: dict[str, Any] = {
            "contract": self.contract_name,
            "function": view.function_name,
            "timestamp": datetime.now(UTC).isoformat(),
            "paths": {
                "total": len(view.paths),
                "feasible": sum(1 for path in view.paths if path.feasible),
                "items": [self._path_to_dict(path) for path in view.paths],
            },
            "risk_profile": self._risk_profile(view),
            "lines": [self._line_to_dict(line) for line in annotated],
        }
        if view.summary is not None:
            report["domains"] = self._domains_to_dict(view.summary)
        if view.selected_path is not None:
            report["selected_path"] = {
                "index": view.selected_path,
                "steps": [
                    {
                        "step": step_index,
                        "diffs": [
                            {"var": diff.var_name, "kind": diff.kind.value, "from": diff.old_range, "to": diff.new_range}
                            for diff in diffs
                        ],
                    }
                    for step_index, diffs in enumerate(view.step_diffs)
                    if diffs
                ],
            }
        return report

    def to_json(self, view: FunctionView) -> str:
        """Return the report as a pretty-printed JSON string."""
        return json.dumps(self.to_dict(view), indent=2, ensure_ascii=False)

    @staticmethod
    def _markdown_table(headers: list[str], rows: list[list[str]]) -> list[str]:
        sep = "|".join("-" * max(len(h), 3) for h in headers)
        lines = [
            "| " + " | ".join(headers) + " |",
            "|" + sep + "|",
        ]
        for row in rows:
            lines.append("| " + " | ".join(cell.replace("|", "\\|") for cell in row) + " |")
        return lines

    def to_markdown(self, view: FunctionView) -> str:
        """Render the report as a Markdown document."""
        d = self.to_dict(view)
        lines = [
            f"# Range Audit Report: {self.contract_name}.{view.function_name}",
            f"\nGenerated: {d['timestamp']}\n",
            "## Summary\n",
            f"- **Paths:** {d['paths']['total']} ({d['paths']['feasible']} feasible)",
        ]
        risk = d["risk_profile"]
        lines.append(f"- **Overall Max Level:** {risk['overall_max_level'].capitalize()}")
        lines.append(f"- **Weighted Score:** {risk['weighted_score']}")
        lines.append("")
        if risk["checks"]:
            lines.extend(self._markdown_table(
                ["Check", "Count", "Level"],
                [[check, str(item["count"]), item["level"].capitalize()] for check, item in risk["checks"].items()],
            ))
            lines.append("")

        domains = d.get("domains")
        if domains is not None:
            lines.append("## Domains\n")
            lines.extend(f"- param[{index}]: {text}" for index, text in domains["params"].items())
            if domains["return"] is not None:
                lines.append(f"- return: {domains['return']}")
            lines.extend(f"- writes {name}: {text}" for name, text in domains["state_writes"].items())
            lines.append("")

        lines.append("## Annotated Lines\n")
        if d["lines"]:
            rows = []
            for item in d["lines"]:
                notes = list(item["risk"]["descriptions"]) if item["risk"] else []
                notes.extend(
                    f"{r['var']} = {r['to']}" if r["from"] is None else f"{r['var']}: {r['from']} → {r['to']}"
                    for r in item["ranges"]
                )
                if item["badge"]:
                    notes.append(item["badge"]["text"])
                level = item["risk"]["level"].capitalize() if item["risk"] else "-"
                rows.append([str(item["line"]), level, f"`{item['text'].strip()}`", "; ".join(notes)])
            lines.extend(self._markdown_table(["Line", "Level", "Source", "Notes"], rows))
        else:
            lines.append("- none")
        lines.append("")

        selected = d.get("selected_path")
        if selected is not None:
            lines.append(f"## Path #{selected['index']} Domain Changes\n")
            if selected["steps"]:
                for step in selected["steps"]:
                    changes = ", ".join(
                        f"{diff['var']} {diff['kind']} "
                        + (diff["to"] if diff["from"] is None else f"{diff['from']} → {diff['to']}")
                        for diff in step["diffs"]
                    )
                    lines.append(f"- step {step['step']}: {changes}")
            else:
                lines.append("- none")
            lines.append("")
        return "\n".join(lines)
