"""Dependency Injection Container."""
from sbomfetch.core.config import get_config
from sbomfetch.core.config import ResolutionContext
from sbomfetch.core.config import SbomFetchConfig
from sbomfetch.core.stats import ResolveStats
from sbomfetch.core.workarea import WorkArea
from sbomfetch.services.apk_service import ApkService
from sbomfetch.services.attestation_service import AttestationService
from sbomfetch.services.dispatcher import Dispatcher
from sbomfetch.services.download_service import DownloadService
from sbomfetch.services.git_service import GitService
from sbomfetch.services.resolver_service import ResolverService


class Container:
    """Wires the services of one resolution run around a shared context."""

    def __init__(self, context: ResolutionContext, verify: bool = True) -> None:
        self.config: SbomFetchConfig = get_config()
        self.context = context
        self.verify = verify
        self.stats = ResolveStats()
        self.work_area = WorkArea(context.work_dir)
        self._git_service: GitService | None = None
        self._download_service: DownloadService | None = None
        self._apk_service: ApkService | None = None
        self._attestation_service: AttestationService | None = None
        self._resolver: ResolverService | None = None

    def get_git_service(self) -> GitService:
        if not self._git_service:
            self._git_service = GitService(self.context, self.work_area, self.stats)
        return self._git_service

    def get_download_service(self) -> DownloadService:
        if not self._download_service:
            self._download_service = DownloadService(self.context, self.work_area, self.stats)
        return self._download_service

    def get_apk_service(self) -> ApkService:
        if not self._apk_service:
            self._apk_service = ApkService(
                self.context, self.work_area, self.get_download_service(), self.stats,
            )
        return self._apk_service

    def get_attestation_service(self) -> AttestationService:
        if not self._attestation_service:
            self._attestation_service = AttestationService(self.context, self.stats, verify=self.verify)
        return self._attestation_service

    def get_resolver(self) -> ResolverService:
        if not self._resolver:
            dispatcher = Dispatcher(
                self.context,
                self.get_git_service(),
                self.get_download_service(),
                self.get_apk_service(),
                self.stats,
            )
            self._resolver = ResolverService(self.context, dispatcher, self.stats)
        return self._resolver
