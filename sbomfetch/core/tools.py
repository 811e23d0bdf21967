"""Presence checks for the external tools the resolver shells out to."""
import shutil

from rich.console import Console
from rich.panel import Panel

from sbomfetch.core.exceptions import MissingToolError

INSTALL_HINTS = {
    'git': (
        'Official Site: [link=https://git-scm.com][blue]https://git-scm.com[/link]\n\n'
        '[bold]Debian/Ubuntu[/]\n  [blue]sudo apt-get install git[/]\n\n'
        '[bold]macOS[/]\n  [blue]brew install git[/]'
    ),
    'cosign': (
        'Official Repository: [link=https://github.com/sigstore/cosign][blue]https://github.com/sigstore/cosign[/link]\n\n'
        '[bold]Option 1: Using Homebrew (macOS/Linux)[/]\n  [blue]brew install cosign[/]\n\n'
        '[bold]Option 2: Using Go[/]\n  [blue]go install github.com/sigstore/cosign/v2/cmd/cosign@latest[/]'
    ),
}


def check_tools(names: list[str], console: Console | None = None) -> None:
    """
    Make sure every named command is in PATH.
    Prints an installation guide per missing tool and raises MissingToolError.
    """
    missing = [name for name in names if not shutil.which(name)]
    if not missing:
        return

    console = console or Console()
    for name in missing:
        console.print()
        console.print(
            Panel(
                f"[bold]{name} Not Found[/]\n\n"
                f"sbomfetch requires [bold blue]{name}[/] to retrieve sources.\n"
                f"{INSTALL_HINTS.get(name, '')}\n\n"
                f"After installation, ensure [bold]{name}[/] is in your [bold]PATH[/].",
                title='[bold red]Dependency Missing[/]',
                title_align='left',
                border_style='red',
                padding=(1, 2),
            ),
        )
    raise MissingToolError(missing)
