from pathlib import Path

import typer

from sbomfetch.commands.common import build_context
from sbomfetch.commands.common import confirm
from sbomfetch.commands.common import print_summary
from sbomfetch.core.container import Container
from sbomfetch.core.decorators import handle_errors
from sbomfetch.core.logging import console
from sbomfetch.models.arch import Arch


@handle_errors
def main(
    package: str = typer.Argument(
        ..., help='Package name, <name>-<version>-r<N>, pkg:apk locator or artifact URL',
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
    Extract a package's embedded SBOM and fetch the sources it references.
    """
    context = build_context(arch, privileged, dry_run, yes, work_dir, tools=['git'])
    confirm(context, package)

    container = Container(context)
    sbom_path = container.get_apk_service().fetch_sbom(package)
    if sbom_path is None:
        console.print(f"[yellow]No SBOM could be obtained for {package}.[/yellow]")
        raise typer.Exit(1)

    container.get_resolver().resolve_file(sbom_path)
    print_summary(container.stats, context)
