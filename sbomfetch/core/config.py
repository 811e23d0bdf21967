"""Configuration management for sbomfetch."""
import os
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path

from sbomfetch.models.arch import Arch


@dataclass(frozen=True)
class ResolutionContext:
    """
    Process-wide resolution settings.
    Built once from the command line and handed to every service.
    """
    arch: Arch = Arch.AMD64
    privileged: bool = False
    dry_run: bool = False
    yes: bool = False
    work_dir: Path = field(default_factory=lambda: Path('sources'))


@dataclass
class GitHubConfig:
    token: str | None = field(
        default_factory=lambda: os.getenv('GITHUB_TOKEN'),
    )
    host: str = 'github.com'

    def __repr__(self) -> str:
        return f"GitHubConfig(token='*****', host={self.host!r})"


@dataclass
class ApkConfig:
    """Package repository of the distribution whose packages carry SBOMs."""
    repository: str = field(
        default_factory=lambda: os.getenv(
            'SBOMFETCH_APK_REPOSITORY', 'https://packages.wolfi.dev/os',
        ),
    )
    namespaces: tuple[str, ...] = field(
        default_factory=lambda: tuple(
            ns.strip() for ns in os.getenv('SBOMFETCH_DISTRO_NAMESPACES', 'wolfi').split(',')
            if ns.strip()
        ),
    )
    index_name: str = 'APKINDEX.tar.gz'
    index_ttl: int = 60 * 60  # 1 hour in seconds
    sbom_dir: str = 'var/lib/db/sbom'

    def artifact_url(self, arch: str, filename: str) -> str:
        return f"{self.repository.rstrip('/')}/{arch}/{filename}"

    def index_url(self, arch: str) -> str:
        return self.artifact_url(arch, self.index_name)


@dataclass
class AttestationConfig:
    predicate_type: str = 'https://spdx.dev/Document'
    identity: str = field(
        default_factory=lambda: os.getenv(
            'SBOMFETCH_IDENTITY',
            'https://github.com/chainguard-images/images/.github/workflows/release.yaml@refs/heads/main',
        ),
    )
    oidc_issuer: str = field(
        default_factory=lambda: os.getenv(
            'SBOMFETCH_OIDC_ISSUER', 'https://token.actions.githubusercontent.com',
        ),
    )


@dataclass
class HttpConfig:
    timeout: int = field(
        default_factory=lambda: int(os.getenv('SBOMFETCH_HTTP_TIMEOUT', '60')),
    )
    chunk_size: int = 1024 * 64
    cache_name: str = '.requests-cache/index.sqlite3'


@dataclass
class SbomFetchConfig:
    github: GitHubConfig = field(default_factory=GitHubConfig)
    apk: ApkConfig = field(default_factory=ApkConfig)
    attestation: AttestationConfig = field(default_factory=AttestationConfig)
    http: HttpConfig = field(default_factory=HttpConfig)

    @classmethod
    def load(cls) -> 'SbomFetchConfig':
        return cls()


_config: SbomFetchConfig | None = None


def get_config() -> SbomFetchConfig:
    global _config
    if _config is None:
        _config = SbomFetchConfig.load()
    return _config
