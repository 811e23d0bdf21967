from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import structlog

from sbomfetch.core.config import get_config
from sbomfetch.core.config import ResolutionContext
from sbomfetch.core.stats import ResolveStats
from sbomfetch.models.reference import Reference
from sbomfetch.services.apk_service import ApkService
from sbomfetch.services.download_service import DownloadService
from sbomfetch.services.git_service import GitService
from sbomfetch.services.git_service import is_vcs_url

logger = structlog.get_logger('dispatcher')

PRIVATE_SUFFIX = '-private'


class Strategy(str, Enum):
    VCS = 'vcs'
    DOWNLOAD = 'download'
    PACKAGE_SBOM = 'package-sbom'
    IMAGE = 'image'
    SKIP = 'skip'
    UNHANDLED = 'unhandled'

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Decision:
    strategy: Strategy
    reference: Reference
    reason: str = ''


def is_private(reference: Reference) -> bool:
    """Forge references flagged as private-only, by qualifier or name suffix."""
    flag = reference.qualifiers.get('private', '').lower()
    return flag in ('true', '1', 'yes') or reference.name.endswith(PRIVATE_SUFFIX)


class Dispatcher:
    """Chooses exactly one fetch strategy per reference and runs it."""

    def __init__(
        self,
        context: ResolutionContext,
        git_service: GitService,
        download_service: DownloadService,
        apk_service: ApkService,
        stats: ResolveStats | None = None,
    ):
        self.context = context
        self.git_service = git_service
        self.download_service = download_service
        self.apk_service = apk_service
        self.stats = stats or ResolveStats()
        self.config = get_config()

    def classify(self, reference: Reference) -> Decision:
        """Pure classification, first matching rule wins."""
        if is_vcs_url(reference.vcs_url):
            return Decision(Strategy.VCS, reference)

        if reference.type == 'generic' and reference.download_url:
            return Decision(Strategy.DOWNLOAD, reference)

        if reference.type == 'github':
            if not reference.namespace:
                return Decision(Strategy.UNHANDLED, reference, 'github reference without owner')
            if is_private(reference) and not self.context.privileged:
                return Decision(Strategy.SKIP, reference, 'private repository requires --privileged')
            return Decision(Strategy.VCS, reference)

        if reference.type == 'apk' and reference.namespace in self.config.apk.namespaces:
            return Decision(Strategy.PACKAGE_SBOM, reference)

        if reference.type == 'oci':
            if not self.context.privileged:
                return Decision(Strategy.SKIP, reference, 'image references require --privileged')
            return Decision(Strategy.IMAGE, reference, 'image references are not implemented')

        return Decision(Strategy.UNHANDLED, reference, f"no strategy for type {reference.type!r}")

    def dispatch(self, reference: Reference, active_sbom: Path | None = None) -> Path | None:
        """
        Run the strategy for a reference.
        Returns the path of a derived SBOM to walk next, if any.
        """
        decision = self.classify(reference)
        log = logger.bind(locator=reference.raw, strategy=str(decision.strategy))

        # Exactly one service runs per reference
        if decision.strategy is Strategy.VCS:
            self.git_service.checkout_reference(reference)
        elif decision.strategy is Strategy.DOWNLOAD:
            self.download_service.fetch_reference(reference)
        elif decision.strategy is Strategy.PACKAGE_SBOM:
            return self.apk_service.fetch_sbom(reference, active_sbom=active_sbom)
        elif decision.strategy is Strategy.IMAGE:
            log.info('Not implemented, skipping', reason=decision.reason, _style='yellow')
            self.stats.inc('unhandled')
        elif decision.strategy is Strategy.SKIP:
            log.info('Skipping', reason=decision.reason, _style='dim')
            self.stats.inc('skipped')
        else:
            log.warning('Unhandled reference, skipping', reason=decision.reason)
            self.stats.inc('unhandled')
        return None
