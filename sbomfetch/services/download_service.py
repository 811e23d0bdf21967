import hashlib
import tarfile
import zipfile
from collections.abc import Callable
from pathlib import Path

import requests
import structlog

from sbomfetch.core.client import get_http_client
from sbomfetch.core.config import get_config
from sbomfetch.core.config import ResolutionContext
from sbomfetch.core.exceptions import ArchiveError
from sbomfetch.core.exceptions import ChecksumMismatch
from sbomfetch.core.exceptions import DownloadError
from sbomfetch.core.exceptions import UnsupportedChecksumAlgorithm
from sbomfetch.core.stats import ResolveStats
from sbomfetch.core.workarea import WorkArea
from sbomfetch.models.reference import Checksum
from sbomfetch.models.reference import Reference

logger = structlog.get_logger('download_service')

DIGESTS: dict[str, Callable] = {
    'md5': hashlib.md5,
    'sha1': hashlib.sha1,
    'sha224': hashlib.sha224,
    'sha256': hashlib.sha256,
    'sha384': hashlib.sha384,
    'sha512': hashlib.sha512,
    'sha3-256': hashlib.sha3_256,
    'sha3-512': hashlib.sha3_512,
    'blake2b': hashlib.blake2b,
    'blake2s': hashlib.blake2s,
}

TAR_SUFFIXES = ('.tar', '.tar.gz', '.tgz', '.tar.bz2', '.tbz2', '.tar.xz', '.txz')
ZIP_SUFFIXES = ('.zip',)


def get_digest(algorithm: str):
    """Return a fresh hash object; unknown algorithms fail closed."""
    try:
        return DIGESTS[algorithm.lower()]()
    except KeyError:
        raise UnsupportedChecksumAlgorithm(algorithm) from None


def file_digest(path: Path, algorithm: str, chunk_size: int = 1024 * 64) -> str:
    hasher = get_digest(algorithm)
    with open(path, 'rb') as f:
        while chunk := f.read(chunk_size):
            hasher.update(chunk)
    return hasher.hexdigest()


def is_archive(path: Path) -> bool:
    return path.name.lower().endswith(TAR_SUFFIXES + ZIP_SUFFIXES)


def _check_member(dest_dir: Path, name: str, archive: Path) -> None:
    target = (dest_dir / name).resolve()
    if target != dest_dir and dest_dir not in target.parents:
        raise ArchiveError(f"Refusing to extract {name!r} outside {dest_dir} from {archive}")


def extract_archive(archive: Path, dest_dir: Path | None = None) -> Path:
    """
    Extract a tar or zip archive, by default next to the archive itself.

    Raises:
        ArchiveError for unreadable archives or members escaping dest_dir
    """
    dest_dir = (dest_dir or archive.parent).resolve()
    name = archive.name.lower()
    try:
        if name.endswith(ZIP_SUFFIXES):
            with zipfile.ZipFile(archive) as zf:
                for member in zf.namelist():
                    _check_member(dest_dir, member, archive)
                zf.extractall(dest_dir)
        else:
            with tarfile.open(archive) as tf:
                members = tf.getmembers()
                for member in members:
                    _check_member(dest_dir, member.name, archive)
                if hasattr(tarfile, 'data_filter'):
                    tf.extractall(dest_dir, members=members, filter='data')
                else:
                    tf.extractall(dest_dir, members=members)
    except (tarfile.TarError, zipfile.BadZipFile, OSError) as e:
        raise ArchiveError(f"Failed to extract {archive}: {e}") from e
    return dest_dir


class DownloadService:
    """Checksummed download strategy with resumable transfers."""

    def __init__(
        self,
        context: ResolutionContext,
        work_area: WorkArea,
        stats: ResolveStats | None = None,
        session: requests.Session | None = None,
    ):
        self.context = context
        self.work_area = work_area
        self.stats = stats or ResolveStats()
        self.config = get_config()
        self.session = session or get_http_client()

    def fetch_reference(self, reference: Reference) -> Path:
        """Download, verify and unpack the archive named by `download_url`."""
        url = reference.download_url
        if not url:
            raise DownloadError(f"No download_url qualifier in {reference.raw}")
        if not reference.checksum:
            logger.warning('No checksum to verify against', url=url, locator=reference.raw)
        dest = self.work_area.download_path(reference, url)
        return self.fetch(url, dest, checksum=reference.checksum, locator=reference.raw)

    def fetch(
        self,
        url: str,
        dest: Path,
        checksum: Checksum | None = None,
        locator: str | None = None,
        extract: bool = True,
    ) -> Path:
        """
        Ensure `dest` holds the content of `url` matching `checksum`.

        A present file with a matching digest is reused as-is; anything
        else is removed and downloaded again, then verified.

        Raises:
            UnsupportedChecksumAlgorithm, ChecksumMismatch, DownloadError
        """
        if checksum:
            # Unknown algorithms fail before any I/O
            get_digest(checksum.algorithm)

        if dest.is_file() and self._is_valid(dest, checksum):
            logger.info(
                'File present and verified, skipping download',
                path=str(dest), locator=locator, _style='dim',
            )
            self.stats.inc('cache_hits')
            if extract:
                self._extract(dest, checksum)
            return dest

        if self.context.dry_run:
            logger.info(
                'Would download', url=url, dest=str(dest),
                checksum=str(checksum) if checksum else None,
                locator=locator, _style='dim',
            )
            return dest

        if dest.exists():
            logger.warning('Removing stale file', path=str(dest))
            dest.unlink()

        logger.info('Downloading', url=url, dest=str(dest), locator=locator)
        part = self.download(url, dest.with_name(dest.name + '.part'))

        if checksum:
            actual = file_digest(part, checksum.algorithm, self.config.http.chunk_size)
            if actual != checksum.digest.lower():
                part.unlink()
                raise ChecksumMismatch(str(dest), checksum.algorithm, checksum.digest, actual)
        part.replace(dest)
        self.stats.inc('downloaded')

        if extract:
            self._extract(dest, checksum)
        return dest

    def _is_valid(self, path: Path, checksum: Checksum | None) -> bool:
        if checksum is None:
            return True
        actual = file_digest(path, checksum.algorithm, self.config.http.chunk_size)
        if actual == checksum.digest.lower():
            return True
        logger.warning(
            'Checksum mismatch on existing file, fetching again',
            path=str(path), expected=checksum.digest, actual=actual,
        )
        return False

    def download(self, url: str, part: Path) -> Path:
        """
        Stream `url` into `part`, continuing a previous partial transfer
        when the server honours the Range header.
        """
        part.parent.mkdir(parents=True, exist_ok=True)
        # A leftover .part file is resumed from its current size
        offset = part.stat().st_size if part.exists() else 0
        headers = {'Range': f"bytes={offset}-"} if offset else {}

        try:
            with self.session.get(
                url, headers=headers, stream=True,
                timeout=self.config.http.timeout,
            ) as response:
                # 416: the range starts at the end, so the part file is already whole
                if offset and response.status_code == 416:
                    logger.debug('Partial file already complete', path=str(part))
                    return part
                # Any other status is a failed transfer
                if response.status_code not in (200, 206):
                    raise DownloadError(
                        f"Download of {url} failed with HTTP {response.status_code}",
                    )
                # 206 carries only the bytes after offset
                if offset and response.status_code == 206:
                    logger.info('Resuming download', url=url, offset=offset)
                    mode = 'ab'
                else:
                    # 200 means the server ignored Range and sent the whole body
                    mode = 'wb'
                with open(part, mode) as f:
                    for chunk in response.iter_content(chunk_size=self.config.http.chunk_size):
                        if chunk:
                            f.write(chunk)
        except requests.RequestException as e:
            raise DownloadError(f"Download of {url} failed: {e}") from e
        return part

    def _extract(self, path: Path, checksum: Checksum | None) -> None:
        if not is_archive(path):
            logger.info('Not an archive, leaving as-is', path=str(path), _style='dim')
            return

        marker = path.with_name(f".{path.name}.extracted")
        # The marker records which content was unpacked
        stamp = str(checksum) if checksum else str(path.stat().st_size)
        if marker.is_file() and marker.read_text(encoding='utf-8') == stamp:
            logger.debug('Archive already extracted', path=str(path))
            return

        logger.info('Extracting', archive=str(path), dest=str(path.parent))
        extract_archive(path)
        marker.write_text(stamp, encoding='utf-8')
        self.stats.inc('extracted')
