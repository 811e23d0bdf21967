from pathlib import Path

import structlog

from sbomfetch.core.config import ResolutionContext
from sbomfetch.core.exceptions import MalformedLocator
from sbomfetch.core.exceptions import UnresolvedPackageURL
from sbomfetch.core.stats import ResolveStats
from sbomfetch.models.reference import Reference
from sbomfetch.models.sbom import SbomDocument
from sbomfetch.services.dispatcher import Dispatcher

logger = structlog.get_logger('resolver')


class ResolverService:
    """
    Walks an SBOM document and dispatches every reference locator in it,
    descending into SBOMs derived from packages along the way.

    The walker keeps the chain of SBOMs currently being processed; an SBOM
    already on that chain is never entered again, which stops both a
    package pointing at its own SBOM and longer cycles (A -> B -> A).
    """

    def __init__(self, context: ResolutionContext, dispatcher: Dispatcher, stats: ResolveStats | None = None):
        self.context = context
        self.dispatcher = dispatcher
        self.stats = stats or ResolveStats()
        self._active: list[Path] = []

    @property
    def active_sbom(self) -> Path | None:
        return self._active[-1] if self._active else None

    def resolve_file(self, path: Path) -> None:
        """Resolve every reference of the SBOM document stored at `path`."""
        path = Path(path).resolve()
        # Any SBOM on the active chain, not only the parent
        if path in self._active:
            logger.info(
                'SBOM is already being processed, not recursing',
                sbom=str(path), depth=len(self._active), _style='dim',
            )
            self.stats.inc('skipped')
            return

        if not path.is_file():
            if self.context.dry_run:
                logger.info('Would resolve SBOM', sbom=str(path), _style='dim')
            else:
                logger.warning('SBOM not found, skipping', sbom=str(path))
                self.stats.inc('skipped')
            return

        self.walk(SbomDocument.load(path), path)

    def walk(self, document: SbomDocument, path: Path) -> None:
        locators = document.locators()
        logger.info(
            'Resolving SBOM', sbom=str(path), name=document.name,
            packages=len(document.packages), locators=len(locators),
            depth=len(self._active),
        )
        self._active.append(Path(path).resolve())
        try:
            with structlog.contextvars.bound_contextvars(sbom=Path(path).name):
                for locator in locators:
                    self.resolve_locator(locator)
        finally:
            self._active.pop()

    def resolve_locator(self, locator: str) -> None:
        """
        Dispatch a single locator.
        Only this branch is abandoned on malformed or unresolvable input.
        """
        self.stats.inc('locators')
        try:
            reference = Reference.parse(locator)
        except MalformedLocator as e:
            logger.warning('Malformed locator, skipping', locator=locator, reason=e.reason)
            self.stats.inc('malformed')
            return

        try:
            derived = self.dispatcher.dispatch(reference, active_sbom=self.active_sbom)
        except UnresolvedPackageURL as e:
            logger.warning('Could not resolve package URL, skipping', locator=locator, reason=str(e))
            self.stats.inc('skipped')
            return

        if derived is not None:
            self.resolve_file(derived)
