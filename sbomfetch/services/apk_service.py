import io
import re
import tarfile
from dataclasses import dataclass
from pathlib import Path

import requests
import structlog

from sbomfetch.core.client import get_http_client
from sbomfetch.core.config import get_config
from sbomfetch.core.config import ResolutionContext
from sbomfetch.core.exceptions import ArchiveError
from sbomfetch.core.exceptions import MalformedLocator
from sbomfetch.core.exceptions import UnresolvedPackageURL
from sbomfetch.core.stats import ResolveStats
from sbomfetch.core.workarea import url_basename
from sbomfetch.core.workarea import WorkArea
from sbomfetch.models.apk_version import ApkVersion
from sbomfetch.models.reference import Reference
from sbomfetch.services.download_service import DownloadService

logger = structlog.get_logger('apk_service')

APK_SUFFIX = '.apk'
SBOM_SUFFIX = '.spdx.json'

# `<name>-<version>-r<N>`, e.g. glibc-2.39-r5
RELEASE_RE = re.compile(r'^(?P<name>.+?)-(?P<version>\d[^-]*-r\d+)$')


@dataclass
class IndexEntry:
    name: str
    version: str
    arch: str = ''

    @property
    def filename(self) -> str:
        return f"{self.name}-{self.version}{APK_SUFFIX}"


def parse_apkindex(text: str) -> list[IndexEntry]:
    """Parse the `P:`/`V:`/`A:` stanzas of an APKINDEX file."""
    entries = []
    fields: dict[str, str] = {}
    for line in text.splitlines() + ['']:
        if not line.strip():
            if 'P' in fields and 'V' in fields:
                entries.append(
                    IndexEntry(name=fields['P'], version=fields['V'], arch=fields.get('A', '')),
                )
            fields = {}
            continue
        key, sep, value = line.partition(':')
        if sep:
            fields[key] = value
    return entries


def read_apkindex(data: bytes) -> list[IndexEntry]:
    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode='r:gz') as tf:
            member = tf.extractfile('APKINDEX')
            if member is None:
                raise ArchiveError('APKINDEX member is not a regular file')
            return parse_apkindex(member.read().decode('utf-8'))
    except (tarfile.TarError, KeyError, OSError) as e:
        raise ArchiveError(f"Unreadable package index: {e}") from e


def sbom_stem(path: Path) -> str:
    name = path.name
    return name[:-len(SBOM_SUFFIX)] if name.endswith(SBOM_SUFFIX) else path.stem


def package_stem(package: str | Reference) -> str:
    """The artifact basename a package reference points at, without suffix."""
    if isinstance(package, Reference):
        return f"{package.name}-{package.version}" if package.version else package.name
    name = url_basename(package) if '://' in package else package
    return name[:-len(APK_SUFFIX)] if name.endswith(APK_SUFFIX) else name


class ApkService:
    """Package-to-SBOM strategy: resolve an apk, download it, pull out its SBOM."""

    def __init__(
        self,
        context: ResolutionContext,
        work_area: WorkArea,
        downloader: DownloadService,
        stats: ResolveStats | None = None,
        index_session: requests.Session | None = None,
    ):
        self.context = context
        self.work_area = work_area
        self.downloader = downloader
        self.stats = stats or ResolveStats()
        self.config = get_config()
        self.index_session = index_session or get_http_client(
            cache_name=self.config.http.cache_name,
            expire_after=self.config.apk.index_ttl,
        )
        self._index: dict[str, list[IndexEntry]] = {}

    @property
    def arch(self) -> str:
        return self.context.arch.canonical

    def resolve_url(self, package: str | Reference) -> str:
        """
        Artifact URL for a full URL, a `pkg:apk/...` locator, a
        `<name>-<version>-r<N>` stem, or a bare package name.

        Raises:
            UnresolvedPackageURL if no artifact can be determined
        """
        if isinstance(package, str):
            package = package.strip()
            if package.startswith(('https://', 'http://')):
                return package
            if package.startswith('pkg:'):
                try:
                    package = Reference.parse(package)
                except MalformedLocator as e:
                    raise UnresolvedPackageURL(str(e)) from e

        if isinstance(package, Reference):
            arch = package.arch or self.arch
            if package.version:
                return self.config.apk.artifact_url(arch, f"{package.name}-{package.version}{APK_SUFFIX}")
            return self._lookup(package.name, arch)

        if package.endswith(APK_SUFFIX):
            package = package[:-len(APK_SUFFIX)]
        if RELEASE_RE.match(package):
            return self.config.apk.artifact_url(self.arch, f"{package}{APK_SUFFIX}")
        return self._lookup(package, self.arch)

    def _lookup(self, name: str, arch: str) -> str:
        candidates = [e for e in self.load_index(arch) if e.name == name]
        if not candidates:
            raise UnresolvedPackageURL(f"Package {name!r} not found in the {arch} package index")
        best = max(candidates, key=lambda e: ApkVersion(e.version))
        logger.debug(
            'Resolved package from index', name=name,
            version=best.version, candidates=len(candidates),
        )
        return self.config.apk.artifact_url(arch, best.filename)

    def load_index(self, arch: str) -> list[IndexEntry]:
        """Fetch (or refresh) the package index for an architecture."""
        if arch in self._index:
            return self._index[arch]

        url = self.config.apk.index_url(arch)
        logger.info('Fetching package index', url=url)
        try:
            response = self.index_session.get(url, timeout=self.config.http.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise UnresolvedPackageURL(f"Could not fetch package index {url}: {e}") from e

        if not self.context.dry_run:
            # Kept on disk for inspection; lookups use the cached session
            path = self.work_area.index_path(arch)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(response.content)

        self._index[arch] = read_apkindex(response.content)
        return self._index[arch]

    def fetch_sbom(self, package: str | Reference, active_sbom: Path | None = None) -> Path | None:
        """
        Produce the SBOM embedded in a package and return its path.

        Returns None when the branch is skipped: the package is the one
        whose SBOM is being processed, no URL can be resolved, or the
        artifact carries no SBOM.
        """
        label = package.raw if isinstance(package, Reference) else package
        # A package listed inside its own SBOM must not be fetched again
        if active_sbom is not None and package_stem(package) == sbom_stem(active_sbom):
            logger.info(
                'Package refers to the SBOM being processed, skipping',
                package=label, sbom=str(active_sbom), _style='dim',
            )
            self.stats.inc('skipped')
            return None

        try:
            url = self.resolve_url(package)
        except UnresolvedPackageURL as e:
            logger.warning('Could not resolve package URL, skipping', package=label, reason=str(e))
            self.stats.inc('skipped')
            return None

        filename = url_basename(url)
        sbom_path = self.work_area.sbom_path(package_stem(filename))
        if sbom_path.is_file():
            logger.info('SBOM already extracted', package=label, sbom=str(sbom_path), _style='dim')
            self.stats.inc('cache_hits')
            return sbom_path

        arch = package.arch if isinstance(package, Reference) and package.arch else self.arch
        artifact = self.downloader.fetch(
            url, self.work_area.artifact_path(arch, filename),
            locator=label, extract=False,
        )
        if self.context.dry_run:
            logger.info('Would extract SBOM', artifact=str(artifact), sbom=str(sbom_path), _style='dim')
            return sbom_path

        if not self.extract_sbom(artifact, sbom_path):
            logger.warning('Package carries no SBOM, skipping', package=label, artifact=str(artifact))
            self.stats.inc('skipped')
            return None
        self.stats.inc('sboms')
        return sbom_path

    def extract_sbom(self, artifact: Path, dest: Path) -> bool:
        """
        Copy the SBOM stored under the package database path of an apk into
        `dest`. An apk is a sequence of gzipped tar segments.
        """
        prefix = self.config.apk.sbom_dir.strip('/') + '/'
        try:
            # Signature, control and data segments are separate gzip streams, each
            # ending in tar end-of-archive blocks; ignore_zeros reads across them
            with tarfile.open(artifact, mode='r:gz', ignore_zeros=True) as tf:
                for member in tf:
                    # Data members may be stored as ./var/...
                    name = member.name.lstrip('./')
                    if not (member.isfile() and name.startswith(prefix) and name.endswith(SBOM_SUFFIX)):
                        continue
                    source = tf.extractfile(member)
                    if source is None:
                        continue
                    dest.parent.mkdir(parents=True, exist_ok=True)
                    dest.write_bytes(source.read())
                    logger.info('Extracted SBOM', member=name, sbom=str(dest))
                    return True
        except (tarfile.TarError, OSError) as e:
            raise ArchiveError(f"Failed to read {artifact}: {e}") from e
        return False
