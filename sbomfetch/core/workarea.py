"""Deterministic on-disk layout of the work directory."""
import hashlib
import re
from pathlib import Path
from urllib.parse import unquote
from urllib.parse import urlparse

from sbomfetch.models.reference import Reference

_UNSAFE_RE = re.compile(r'[^A-Za-z0-9._+-]+')


def _safe(segment: str) -> str:
    cleaned = _UNSAFE_RE.sub('_', segment).strip('.')
    return cleaned or '_'


def url_basename(url: str) -> str:
    """Last path segment of a URL, without query or fragment."""
    name = unquote(urlparse(url).path.rstrip('/').rsplit('/', 1)[-1])
    return _safe(name) if name else 'download'


class WorkArea:
    """
    Maps references to stable destination paths under the work directory.
    The raw locator string keys every path, so repeated runs land in the
    same place.
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    def path_for(self, reference: Reference) -> Path:
        """work_dir/<type>/<namespace>/<name>/<version>-<locator hash>"""
        digest = hashlib.sha256(reference.raw.encode()).hexdigest()[:12]
        path = self.root / _safe(reference.type)
        if reference.namespace:
            for segment in reference.namespace.split('/'):
                path /= _safe(segment)
        path /= _safe(reference.name)
        return path / f"{_safe(reference.version or '_')}-{digest}"

    def download_path(self, reference: Reference, url: str) -> Path:
        return self.path_for(reference) / url_basename(url)

    def sbom_path(self, stem: str) -> Path:
        return self.root / 'sboms' / f"{_safe(stem)}.spdx.json"

    def artifact_path(self, arch: str, filename: str) -> Path:
        return self.root / 'apks' / _safe(arch) / _safe(filename)

    def index_path(self, arch: str) -> Path:
        return self.root / 'index' / _safe(arch) / 'APKINDEX.tar.gz'
