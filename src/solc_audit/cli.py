"""CLI entry point for solc-audit."""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Iterable
from pathlib import Path

import click
import structlog
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .annotate import RISK_RANK, AnnotatedLine, DomainTracker, RiskLevel
from .config import WorkbenchConfig, load_config
from .engine import load_dump
from .log import LOG_LEVELS, configure_logging
from .model import AnalyzedStep
from .report import FunctionView, ReportGenerator
from .session import AuditSession, HighlightStep, PathFilter, SelectPath, filter_paths

console = Console()
logger = structlog.get_logger(__name__)

_GATE_LEVELS = [level.value for level in RiskLevel if level is not RiskLevel.NONE]
_RANK_BY_NAME: dict[str, int] = {level.value: rank for level, rank in RISK_RANK.items()}
_LEVEL_COLORS = {"red": "red", "orange": "dark_orange", "blue": "blue", "green": "green", "none": "white"}


def _parse_level_count_specs(specs: Iterable[str]) -> dict[str, int]:
    policies: dict[str, int] = {}
    for raw_spec in specs:
        if "=" not in raw_spec:
            raise click.BadParameter(
                f"Invalid --fail-on-level-count value '{raw_spec}'. Expected format '<level>=<count>'."
            )
        level_text, count_text = raw_spec.split("=", 1)
        level_name = level_text.strip().lower()
        if level_name not in _GATE_LEVELS:
            allowed = ", ".join(sorted(_GATE_LEVELS))
            raise click.BadParameter(f"Invalid level '{level_name}' in --fail-on-level-count. Allowed: {allowed}.")
        try:
            count_threshold = int(count_text.strip())
        except ValueError as exc:
            raise click.BadParameter(f"Invalid count threshold '{count_text}' in --fail-on-level-count.") from exc
        if count_threshold < 1:
            raise click.BadParameter(f"Count threshold for level '{level_name}' must be >= 1.")
        policies[level_name] = count_threshold
    return policies


def _collect_gate_violations(
    *,
    risk_profile: dict,
    fail_on_level: str | None,
    level_count_policies: dict[str, int],
) -> list[str]:
    violations: list[str] = []
    overall = str(risk_profile.get("overall_max_level", RiskLevel.NONE.value))
    if fail_on_level is not None and _RANK_BY_NAME.get(overall, 99) <= _RANK_BY_NAME[fail_on_level.lower()]:
        violations.append(f"Max level gate failed: {overall} >= threshold {fail_on_level.lower()}.")

    lines_by_level = risk_profile.get("lines_by_level", {})
    for level_name, threshold_count in sorted(level_count_policies.items()):
        matching_count = int(lines_by_level.get(level_name, 0))
        if matching_count >= threshold_count:
            violations.append(
                f"Level count gate failed for '{level_name}': {matching_count} line(s) >= threshold {threshold_count}."
            )
    return violations


def _render_gate_evaluation_markdown(gate_evaluation: dict) -> str:
    lines = [
        "## Gate Evaluation",
        "",
        f"- **Passed:** {'Yes' if gate_evaluation['passed'] else 'No'}",
    ]
    configured = [
        f"- `{key}`: {value}"
        for key, value in gate_evaluation.get("policies", {}).items()
        if value not in (None, {}, ())
    ]
    if configured:
        lines.extend(["", "### Active Policies", "", *configured])
    lines.extend(["", "### Violations", ""])
    violations = gate_evaluation.get("violations", [])
    if violations:
        lines.extend(f"- {violation}" for violation in violations)
    else:
        lines.append("- none")
    return "\n".join(lines)


async def _open_session(
    dump_file: str,
    function_spec: str,
    config: WorkbenchConfig,
    path_index: int | None = None,
    step_index: int | None = None,
) -> AuditSession:
    session = AuditSession(load_dump(dump_file), config)
    await session.load()
    _contract, function = session.find_function(function_spec)
    await session.select_function(function.id)
    await session.settle()
    if path_index is not None:
        paths = session.paths() or []
        if not 0 <= path_index < len(paths):
            raise ValueError(f"Path {path_index} out of range; function has {len(paths)} path(s)")
        await session.dispatch(SelectPath(path_index=path_index))
        if step_index is not None:
            await session.dispatch(HighlightStep(step_index=step_index))
    return session


def _session_or_exit(ctx: click.Context, dump_file: str, function_spec: str, **kwargs) -> AuditSession:
    try:
        return asyncio.run(_open_session(dump_file, function_spec, ctx.obj["config"], **kwargs))
    except (ValueError, KeyError) as exc:
        console.print(f"[red]{escape(str(exc))}[/]")
        sys.exit(1)


def _contract_name(session: AuditSession) -> str:
    contract_id = session.state.contract_id
    contract = session.contract(contract_id) if contract_id is not None else None
    return contract.name if contract is not None else "unknown"


@click.group(context_settings={"auto_envvar_prefix": "SOLC_AUDIT"})
@click.version_option(version=__version__)
@click.option("--log-level", type=click.Choice(LOG_LEVELS, case_sensitive=False), default="WARNING")
@click.option("--log-json", is_flag=True, default=False, help="Emit log lines as JSON on stderr")
@click.option("--config", "config_file", type=click.Path(exists=True, dir_okay=False), help="Config JSON file")
@click.pass_context
def main(ctx: click.Context, log_level: str, log_json: bool, config_file: str | None) -> None:
    """Solidity symbolic-execution audit workbench."""
    configure_logging(log_level, json_output=log_json)
    try:
        config = load_config(config_file)
    except ValueError as exc:
        console.print(f"[red]Failed to load config: {escape(str(exc))}[/]")
        sys.exit(1)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@main.command()
@click.argument("dump_file", type=click.Path(exists=True, dir_okay=False))
def contracts(dump_file: str) -> None:
    """List contracts and their functions in an analysis dump."""
    try:
        engine = load_dump(dump_file)
    except ValueError as exc:
        console.print(f"[red]Failed to load dump: {escape(str(exc))}[/]")
        sys.exit(1)

    table = Table(title="Contracts")
    table.add_column("Contract", style="bold")
    table.add_column("Kind")
    table.add_column("Function")
    table.add_column("Id", justify="right")
    table.add_column("Visibility")
    for contract in engine.list_contracts():
        if not contract.functions:
            table.add_row(contract.name, contract.kind, "-", str(contract.id), "-")
        for function in contract.functions:
            table.add_row(contract.name, contract.kind, function.display_name, str(function.id), function.visibility)
    console.print(table)


@main.command()
@click.argument("dump_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--function", "-f", "function_spec", required=True, help="Contract.function, function name or id")
@click.option("--filter", "path_filter", type=click.Choice([f.value for f in PathFilter]), default="all")
@click.option("--include-infeasible", is_flag=True, default=False, help="Also list infeasible paths")
@click.pass_context
def paths(ctx: click.Context, dump_file: str, function_spec: str, path_filter: str, include_infeasible: bool) -> None:
    """List the explored paths of one function."""
    session = _session_or_exit(ctx, dump_file, function_spec)
    all_paths = session.paths() or []
    selected = filter_paths(
        all_paths,
        PathFilter(path_filter),
        include_infeasible=include_infeasible or session.config.include_infeasible_paths,
    )

    table = Table(title=f"Paths of {_contract_name(session)}.{escape(function_spec.rpartition('.')[2])}")
    table.add_column("#", justify="right")
    table.add_column("Exit")
    table.add_column("Feasible")
    table.add_column("Steps", justify="right")
    table.add_column("Constraints", justify="right")
    table.add_column("Checks")
    for position, path in selected:
        checks = ", ".join(dict.fromkeys(check.check for check in path.arith_checks)) or "-"
        table.add_row(
            str(position),
            path.exit.value,
            "yes" if path.feasible else "[dim]no[/]",
            str(len(path.steps)),
            str(path.constraint_count),
            checks,
        )
    console.print(table)
    console.print(f"\n[bold]{len(selected)} of {len(all_paths)} paths shown[/]")
    for check, count in sorted(session.risk_summary().items()):
        console.print(f"  {check}: {count}")


def _render_line(line: AnnotatedLine, *, show_badges: bool, highlighted: bool) -> str:
    glyph = line.risk.glyph if line.risk is not None else ""
    color = _LEVEL_COLORS[line.risk.level.value] if line.risk is not None else "white"
    marker = "▶" if highlighted else " "
    rendered = f"{marker}{line.number:>4} [{color}]{glyph:>2}[/] │ {escape(line.text)}"
    notes = [escape(item.text) for item in line.ranges]
    if show_badges and line.badge is not None:
        notes.append(escape(line.badge.text))
    if notes:
        rendered += f"  [dim]// {'; '.join(notes)}[/]"
    return rendered


@main.command()
@click.argument("dump_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--function", "-f", "function_spec", required=True, help="Contract.function, function name or id")
@click.option("--path", "path_index", type=int, default=None, help="Path whose domain changes are projected")
@click.option("--step", "step_index", type=int, default=None, help="Step to highlight on the selected path")
@click.option("--no-annotations", is_flag=True, default=False, help="Hide static badges")
@click.pass_context
def annotate(
    ctx: click.Context,
    dump_file: str,
    function_spec: str,
    path_index: int | None,
    step_index: int | None,
    no_annotations: bool,
) -> None:
    """Print the function source annotated with risks and domain changes."""
    session = _session_or_exit(ctx, dump_file, function_spec, path_index=path_index, step_index=step_index)
    config = session.config.merged(show_annotations=False if no_annotations else None)
    lines = session.annotated_lines()
    if not lines:
        console.print("[yellow]No source available for this function.[/]")
        return
    highlighted = session.highlighted_line()
    for line in lines:
        console.print(
            _render_line(line, show_badges=config.show_annotations, highlighted=line.number == highlighted),
            soft_wrap=True,
            highlight=False,
        )
    risky = sum(1 for line in lines if line.risk is not None)
    console.print(f"\n[bold]{risky} risk-annotated line(s)[/]")


@main.command()
@click.argument("dump_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--function", "-f", "function_spec", required=True, help="Contract.function, function name or id")
@click.option("--path", "path_index", type=int, required=True, help="Path to inspect")
@click.option("--step", "step_index", type=int, default=None, help="Step for the watch panel (default: last)")
@click.pass_context
def inspect(ctx: click.Context, dump_file: str, function_spec: str, path_index: int, step_index: int | None) -> None:
    """Walk one path step by step with domain changes and a variable watch."""
    session = _session_or_exit(ctx, dump_file, function_spec, path_index=path_index, step_index=step_index)
    path = session.selected_path()
    if path is None:
        console.print(f"[red]Path {path_index} not available[/]")
        sys.exit(1)
    if step_index is None and path.steps:
        session.navigation.dispatch(HighlightStep(step_index=len(path.steps) - 1))

    console.print(
        f"[bold]Path #{path_index}[/] exit={path.exit.value} feasible={'yes' if path.feasible else 'no'} "
        f"constraints={path.constraint_count}"
    )
    diffs = session.step_diffs()
    current = session.state.effective_step
    table = Table(title="Steps")
    table.add_column("#", justify="right")
    table.add_column("Kind")
    table.add_column("Statement")
    table.add_column("Changes")
    for number, step in enumerate(path.steps):
        kind = step.statement.kind.label if isinstance(step, AnalyzedStep) else ""
        changes = "; ".join(
            f"{diff.var_name} {diff.kind.value} "
            + (diff.new_range if diff.old_range is None else f"{diff.old_range} → {diff.new_range}")
            for diff in (diffs[number] if number < len(diffs) else [])
        )
        marker = "▶ " if number == current else ""
        table.add_row(f"{marker}{number}", kind, escape(step.text), escape(changes))
    console.print(table)

    if not DomainTracker(path).has_data:
        console.print("[yellow]No domain data on this path.[/]")
        return
    watch = Table(title=f"Watch @ step {current}")
    watch.add_column("Variable", style="bold")
    watch.add_column("Domain")
    watch.add_column("Changed at", justify="right")
    for row in session.watch():
        domain = f"[red]{escape(row.domain)}[/]" if row.unrestricted else escape(row.domain)
        watch.add_row(escape(row.name), domain, str(row.last_changed_step))
    console.print(watch)


@main.command()
@click.argument("dump_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--function", "-f", "function_spec", required=True, help="Contract.function, function name or id")
@click.option("--path", "path_index", type=int, default=None, help="Include the domain changes of this path")
@click.option("--output", "-o", type=click.Path(), help="Output file path")
@click.option("--format", "fmt", type=click.Choice(["json", "markdown"]), default="markdown")
@click.option(
    "--fail-on-level",
    type=click.Choice(_GATE_LEVELS, case_sensitive=False),
    default=None,
    help="Exit with code 3 if any line is at or above this risk level.",
)
@click.option(
    "--fail-on-level-count",
    "level_count_specs",
    multiple=True,
    help="Fail gate in the form <level>=<count> (e.g. red=1). Can be repeated.",
)
@click.pass_context
def report(
    ctx: click.Context,
    dump_file: str,
    function_spec: str,
    path_index: int | None,
    output: str | None,
    fmt: str,
    fail_on_level: str | None,
    level_count_specs: tuple[str, ...],
) -> None:
    """Export the annotated function as a JSON or Markdown report."""
    level_count_policies = _parse_level_count_specs(level_count_specs)
    session = _session_or_exit(ctx, dump_file, function_spec, path_index=path_index)

    view = FunctionView.from_session(session)
    gen = ReportGenerator(_contract_name(session))
    report_dict = gen.to_dict(view)
    gate_violations = _collect_gate_violations(
        risk_profile=report_dict["risk_profile"],
        fail_on_level=fail_on_level,
        level_count_policies=level_count_policies,
    )
    gate_evaluation = {
        "passed": not gate_violations,
        "violations": list(gate_violations),
        "policies": {"fail_on_level": fail_on_level, "fail_on_level_count": level_count_policies},
    }
    report_dict["gate_evaluation"] = gate_evaluation
    logger.info("report_generated", function=view.function_name, lines=len(report_dict["lines"]))

    if fmt == "json":
        rendered = json.dumps(report_dict, indent=2, ensure_ascii=False)
    else:
        rendered = f"{gen.to_markdown(view)}\n\n{_render_gate_evaluation_markdown(gate_evaluation)}"

    if output:
        Path(output).write_text(rendered, encoding="utf-8")
        console.print(f"[green]Report saved to {escape(output)}[/]")
    else:
        console.print(rendered, markup=False, highlight=False, soft_wrap=True)
    if gate_violations:
        for violation in gate_violations:
            console.print(f"[red]{escape(violation)}[/]")
        sys.exit(3)


if __name__ == "__main__":
    main()
