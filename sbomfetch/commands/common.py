"""Options and helpers shared by the resolve commands."""
from pathlib import Path

import structlog
import typer
from rich.table import Table

from sbomfetch.core.config import ResolutionContext
from sbomfetch.core.logging import console
from sbomfetch.core.stats import ResolveStats
from sbomfetch.core.tools import check_tools
from sbomfetch.models.arch import Arch

logger = structlog.get_logger('cli')


def build_context(
    arch: Arch,
    privileged: bool,
    dry_run: bool,
    yes: bool,
    work_dir: Path,
    tools: list[str],
) -> ResolutionContext:
    """Check external tools, then freeze the settings for this run."""
    check_tools(tools, console=console)
    context = ResolutionContext(
        arch=arch,
        privileged=privileged,
        dry_run=dry_run,
        yes=yes,
        work_dir=work_dir,
    )
    logger.debug('Resolution context', **{k: str(v) for k, v in vars(context).items()})
    return context


def confirm(context: ResolutionContext, target: str) -> None:
    if context.yes or context.dry_run:
        return
    typer.confirm(
        f"Fetch sources for {target} into {context.work_dir.resolve()}?",
        abort=True,
    )


def print_summary(stats: ResolveStats, context: ResolutionContext) -> None:
    title = 'Resolution Summary (dry run)' if context.dry_run else 'Resolution Summary'
    table = Table(title=title)
    table.add_column('Counter', style='cyan')
    table.add_column('Value', justify='right', style='green')
    for name, value in stats.as_dict().items():
        table.add_row(name.replace('_', ' '), f"{value:,}")
    table.add_row('elapsed', f"{stats.elapsed_time:.2f}s")
    console.print(table)
