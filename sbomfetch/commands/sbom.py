from pathlib import Path

import typer

from sbomfetch.commands.common import build_context
from sbomfetch.commands.common import confirm
from sbomfetch.commands.common import print_summary
from sbomfetch.core.container import Container
from sbomfetch.core.decorators import handle_errors
from sbomfetch.models.arch import Arch


@handle_errors
def main(
    sbom_file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True,
        help='SPDX or CycloneDX JSON document',
    ),
    arch: Arch = typer.Option(Arch.AMD64, help='Target architecture'),
    privileged: bool = typer.Option(
        False, '--privileged', help='Use authenticated transports and private sources',
    ),
    dry_run: bool = typer.Option(
        False, '--dry-run', help='Log intended actions without fetching',
    ),
    yes: bool = typer.Option(False, '--yes', '-y', help='Do not ask for confirmation'),
    work_dir: Path = typer.Option(Path('sources'), help='Root of the work area'),
):
    """
    Fetch the sources referenced by a local SBOM document.
    """
    context = build_context(arch, privileged, dry_run, yes, work_dir, tools=['git'])
    confirm(context, str(sbom_file))

    container = Container(context)
    container.get_resolver().resolve_file(sbom_file)
    print_summary(container.stats, context)
