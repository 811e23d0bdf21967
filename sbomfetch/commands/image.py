import re
from pathlib import Path

import typer

from sbomfetch.commands.common import build_context
from sbomfetch.commands.common import confirm
from sbomfetch.commands.common import print_summary
from sbomfetch.core.container import Container
from sbomfetch.core.decorators import handle_errors
from sbomfetch.core.logging import console
from sbomfetch.models.arch import Arch


def image_sbom_stem(image: str, arch: Arch) -> str:
    """cgr.dev/chainguard/nginx:latest -> cgr.dev_chainguard_nginx_latest-amd64"""
    return re.sub(r'[^A-Za-z0-9._-]+', '_', image).strip('_') + f"-{arch.value}"


@handle_errors
def main(
    image: str = typer.Argument(..., help='Container image reference'),
    arch: Arch = typer.Option(Arch.AMD64, help='Target architecture'),
    privileged: bool = typer.Option(
        False, '--privileged', help='Use authenticated transports and private sources',
    ),
    dry_run: bool = typer.Option(
        False, '--dry-run', help='Log intended actions without fetching',
    ),
    yes: bool = typer.Option(False, '--yes', '-y', help='Do not ask for confirmation'),
    work_dir: Path = typer.Option(Path('sources'), help='Root of the work area'),
    verify: bool = typer.Option(
        True, '--verify/--no-verify', help='Verify the attestation signature with cosign',
    ),
):
    """
    Fetch an image's SBOM attestation and the sources it references.
    """
    context = build_context(arch, privileged, dry_run, yes, work_dir, tools=['git', 'cosign'])
    confirm(context, image)

    container = Container(context, verify=verify)
    sbom_path = container.work_area.sbom_path(image_sbom_stem(image, arch))
    container.get_attestation_service().fetch_image_sbom(image, sbom_path)
    container.get_resolver().resolve_file(sbom_path)
    if not context.dry_run:
        console.print(f"Image SBOM: [bold]{sbom_path}[/bold]")
    print_summary(container.stats, context)
