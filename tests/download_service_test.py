import hashlib
import io
import tarfile
from dataclasses import replace
from unittest.mock import MagicMock

import pytest
import requests

from sbomfetch.core.exceptions import ArchiveError
from sbomfetch.core.exceptions import ChecksumMismatch
from sbomfetch.core.exceptions import DownloadError
from sbomfetch.core.exceptions import UnsupportedChecksumAlgorithm
from sbomfetch.models.reference import Reference
from sbomfetch.services.download_service import DownloadService
from sbomfetch.services.download_service import extract_archive
from sbomfetch.services.download_service import file_digest
from sbomfetch.services.download_service import get_digest
from conftest import make_tar_gz

ARCHIVE = make_tar_gz({'zlib-1.3/README': b'zlib readme\n', 'zlib-1.3/zlib.h': b'/* header */\n'})
SHA256 = hashlib.sha256(ARCHIVE).hexdigest()
URL = 'https://zlib.net/zlib-1.3.tar.gz'


def make_response(status=200, body=b''):
    response = MagicMock()
    response.status_code = status
    response.iter_content.return_value = [body] if body else []
    response.__enter__.return_value = response
    return response


def zlib_reference(checksum=f'sha256:{SHA256}'):
    return Reference.parse(f'pkg:generic/zlib?download_url={URL}&checksum={checksum}')


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def service(context, work_area, stats, session):
    return DownloadService(context, work_area, stats, session=session)


def test_get_digest_known_and_unknown():
    assert get_digest('SHA256').name == 'sha256'
    assert get_digest('sha3-256').name == 'sha3_256'
    with pytest.raises(UnsupportedChecksumAlgorithm):
        get_digest('crc32')


def test_download_verifies_and_extracts_beside_file(service, session, work_area, stats):
    session.get.return_value = make_response(body=ARCHIVE)
    ref = zlib_reference()

    dest = service.fetch_reference(ref)

    assert dest == work_area.download_path(ref, URL)
    assert dest.read_bytes() == ARCHIVE
    assert (dest.parent / 'zlib-1.3' / 'README').read_bytes() == b'zlib readme\n'
    assert not dest.with_name(dest.name + '.part').exists()
    assert stats.downloaded == 1
    assert stats.extracted == 1


def test_second_run_makes_no_request(service, session, stats):
    session.get.return_value = make_response(body=ARCHIVE)
    ref = zlib_reference()

    service.fetch_reference(ref)
    service.fetch_reference(ref)

    assert session.get.call_count == 1
    assert stats.cache_hits == 1
    assert stats.extracted == 1


def test_corrupt_existing_file_is_replaced(service, session, work_area):
    ref = zlib_reference()
    dest = work_area.download_path(ref, URL)
    dest.parent.mkdir(parents=True)
    dest.write_bytes(b'not the archive')
    session.get.return_value = make_response(body=ARCHIVE)

    service.fetch_reference(ref)

    session.get.assert_called_once()
    assert dest.read_bytes() == ARCHIVE


def test_mismatch_after_download_is_fatal(service, session, work_area):
    ref = zlib_reference(checksum='sha256:' + '0' * 64)
    session.get.return_value = make_response(body=ARCHIVE)

    with pytest.raises(ChecksumMismatch):
        service.fetch_reference(ref)

    dest = work_area.download_path(ref, URL)
    assert not dest.exists()
    assert not dest.with_name(dest.name + '.part').exists()


def test_unsupported_algorithm_fails_before_network(service, session):
    with pytest.raises(UnsupportedChecksumAlgorithm):
        service.fetch_reference(zlib_reference(checksum='crc32:deadbeef'))
    session.get.assert_not_called()


def test_partial_download_is_resumed(service, session, work_area):
    ref = zlib_reference()
    dest = work_area.download_path(ref, URL)
    part = dest.with_name(dest.name + '.part')
    part.parent.mkdir(parents=True)
    half = len(ARCHIVE) // 2
    part.write_bytes(ARCHIVE[:half])
    session.get.return_value = make_response(status=206, body=ARCHIVE[half:])

    service.fetch_reference(ref)

    assert session.get.call_args.kwargs['headers'] == {'Range': f'bytes={half}-'}
    assert dest.read_bytes() == ARCHIVE


def test_range_ignored_restarts_transfer(service, session, work_area):
    ref = zlib_reference()
    dest = work_area.download_path(ref, URL)
    part = dest.with_name(dest.name + '.part')
    part.parent.mkdir(parents=True)
    part.write_bytes(b'garbage')
    session.get.return_value = make_response(status=200, body=ARCHIVE)

    service.fetch_reference(ref)

    assert dest.read_bytes() == ARCHIVE


def test_http_error_raises(service, session):
    session.get.return_value = make_response(status=404)
    with pytest.raises(DownloadError, match='404'):
        service.fetch_reference(zlib_reference())


def test_connection_error_raises(service, session):
    session.get.side_effect = requests.ConnectionError('boom')
    with pytest.raises(DownloadError, match='boom'):
        service.fetch_reference(zlib_reference())


def test_dry_run_does_not_download(context, work_area, session):
    service = DownloadService(replace(context, dry_run=True), work_area, session=session)
    dest = service.fetch_reference(zlib_reference())
    session.get.assert_not_called()
    assert not dest.exists()


def test_non_archive_is_kept(service, session, work_area):
    body = b'plain file'
    ref = Reference.parse(
        f'pkg:generic/notes?download_url=https://example.com/NOTES.txt'
        f'&checksum=sha1:{hashlib.sha1(body).hexdigest()}',
    )
    session.get.return_value = make_response(body=body)

    dest = service.fetch_reference(ref)

    assert dest.read_bytes() == body
    assert sorted(p.name for p in dest.parent.iterdir()) == ['NOTES.txt']


def test_extract_rejects_path_traversal(tmp_path):
    archive = tmp_path / 'evil.tar.gz'
    archive.write_bytes(make_tar_gz({'../evil.txt': b'x'}))
    with pytest.raises(ArchiveError):
        extract_archive(archive)
    assert not (tmp_path.parent / 'evil.txt').exists()


def test_extract_zip(tmp_path):
    import zipfile
    archive = tmp_path / 'src.zip'
    with zipfile.ZipFile(archive, 'w') as zf:
        zf.writestr('src/main.c', 'int main(void) { return 0; }\n')
    extract_archive(archive)
    assert (tmp_path / 'src' / 'main.c').exists()


def test_file_digest(tmp_path):
    path = tmp_path / 'blob'
    path.write_bytes(b'abc')
    assert file_digest(path, 'md5') == hashlib.md5(b'abc').hexdigest()


def test_tarball_helper_is_readable():
    with tarfile.open(fileobj=io.BytesIO(ARCHIVE)) as tf:
        assert 'zlib-1.3/README' in tf.getnames()
