import dotenv
import typer

from sbomfetch.__version__ import __version__
from sbomfetch.commands import image
from sbomfetch.commands import package
from sbomfetch.commands import sbom
from sbomfetch.core.logging import setup_logging

app = typer.Typer(
    help='sbomfetch: resolve an SBOM into the exact upstream sources it was built from.',
    no_args_is_help=True,
    pretty_exceptions_show_locals=False,
)

app.command('sbom')(sbom.main)
app.command('image')(image.main)
app.command('package')(package.main)


def _version_callback(value: bool):
    if value:
        typer.echo(f"sbomfetch {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    debug: bool = typer.Option(False, '--debug', help='Enable debug logging'),
    version: bool = typer.Option(
        False, '--version', callback=_version_callback, is_eager=True,
        help='Show the version and exit',
    ),
):
    """
    sbomfetch CLI - fetch the sources behind an SBOM.
    """
    dotenv.load_dotenv()
    level = 'DEBUG' if debug else 'INFO'
    setup_logging(level=level)


if __name__ == '__main__':
    app()
